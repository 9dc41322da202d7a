"""Microphone capture engine: callback-driven capture plus a periodic flush."""

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

import numpy as np
import pyaudio

from ..errors import CaptureDeviceError
from ..models.audio import CaptureStats
from ..models.events import ConnectedEvent, DisconnectedEvent, ErrorEvent, PipelineEvent
from ..transcription.consumers import TranscriptionWorker
from .buffer import AccumulationBuffer
from .resampler import TARGET_SAMPLE_RATE, resample
from .silence import FixedThresholdGate, SilenceGate
from .wav_encoder import encode_packet

logger = logging.getLogger(__name__)


class AudioCaptureEngine:
    """Turns a live microphone stream into transcription requests.

    PyAudio calls ``_on_audio`` on its own thread at the device's native rate;
    blocks are resampled and accumulated. A separate flush thread drains the
    accumulation every ``flush_interval`` seconds and hands the chunk to the
    transcription worker pool without waiting for the reply.
    """

    def __init__(
        self,
        client,
        publish: Callable[[PipelineEvent], None],
        silence_gate: Optional[SilenceGate] = None,
        target_sample_rate: int = TARGET_SAMPLE_RATE,
        flush_interval: float = 3.0,
        frames_per_buffer: int = 4096,
        device_index: Optional[int] = None,
        pre_roll: bool = True,
        max_concurrent_requests: int = 2,
        drain_timeout: float = 30.0,
    ):
        """Initialize the capture engine.

        Args:
            client: Transcription backend client
            publish: Receives every pipeline event (usually PipelineEventPublisher.publish)
            silence_gate: Policy for dropping quiet chunks (fixed threshold by default)
            target_sample_rate: Rate every chunk is resampled to before encoding
            flush_interval: Seconds between flushes
            frames_per_buffer: Frames per PyAudio callback
            device_index: Input device, or None for the system default
            pre_roll: Send a short silent packet on start to wake the backend
            max_concurrent_requests: Worker threads posting to the backend
            drain_timeout: How long stop() waits for in-flight requests
        """
        self.client = client
        self.publish = publish
        self.silence_gate = silence_gate or FixedThresholdGate()
        self.target_sample_rate = target_sample_rate
        self.flush_interval = flush_interval
        self.frames_per_buffer = frames_per_buffer
        self.device_index = device_index
        self.pre_roll = pre_roll
        self.max_concurrent_requests = max_concurrent_requests
        self.drain_timeout = drain_timeout

        self.buffer = AccumulationBuffer()
        self.worker: Optional[TranscriptionWorker] = None
        self.flush_thread: Optional[threading.Thread] = None
        self.stop_event = threading.Event()
        self._lifecycle_lock = threading.Lock()

        self.is_capturing = False
        self._accepting = False
        self.native_sample_rate: Optional[int] = None

        self.pyaudio_instance: Optional[pyaudio.PyAudio] = None
        self.stream = None

        # Statistics tracking
        self.start_time: Optional[datetime] = None
        self.callbacks_received = 0
        self.chunks_flushed = 0
        self.chunks_skipped_silent = 0

    def start(self) -> None:
        """Open the microphone and begin flushing.

        Raises:
            CaptureDeviceError: if the device cannot be opened; the engine is left untouched
        """
        with self._lifecycle_lock:
            if self.is_capturing:
                logger.warning("Capture already in progress")
                return

            instance, stream, native_rate = self._open_stream()

            logger.info(f"Starting audio capture: native {native_rate}Hz -> {self.target_sample_rate}Hz")
            self.pyaudio_instance = instance
            self.stream = stream
            self.native_sample_rate = native_rate
            self.start_time = datetime.now()
            self.callbacks_received = 0
            self.chunks_flushed = 0
            self.chunks_skipped_silent = 0
            self.buffer.clear()
            self.silence_gate.reset()
            self.stop_event.clear()

            self.is_capturing = True
            self.publish(ConnectedEvent(sample_rate=self.target_sample_rate))
            self._start_transcription()
            self._accepting = True
            self._start_flushing()

    def _start_transcription(self) -> None:
        # Each run reports its own "ready" once.
        self.client.reset_ready()
        self.worker = TranscriptionWorker(self.client, self._on_pipeline_event,
                                          max_concurrent_threads=self.max_concurrent_requests)
        if self.pre_roll:
            self.worker.submit_pre_roll()

    def _start_flushing(self) -> None:
        logger.debug(f"Flushing every {self.flush_interval}s")
        self.flush_thread = threading.Thread(target=self._flush_loop, daemon=True)
        self.flush_thread.name = "AudioFlushThread"
        self.flush_thread.start()

    def _stop_transcription(self) -> None:
        if self.worker:
            self.worker.shutdown(timeout=self.drain_timeout)

    def _open_stream(self):
        """Open and start the input stream, or release everything and raise CaptureDeviceError."""
        instance = None
        stream = None
        try:
            instance = pyaudio.PyAudio()
            if self.device_index is None:
                device_info = instance.get_default_input_device_info()
            else:
                device_info = instance.get_device_info_by_index(self.device_index)
            native_rate = int(device_info["defaultSampleRate"])
            stream = instance.open(
                format=pyaudio.paFloat32,
                channels=1,
                rate=native_rate,
                input=True,
                input_device_index=self.device_index,
                frames_per_buffer=self.frames_per_buffer,
                stream_callback=self._on_audio,
                start=False,
            )
            # Callbacks that arrive before start() finishes are dropped by ingest().
            stream.start_stream()
        except (OSError, ValueError) as e:
            if stream is not None:
                try:
                    stream.close()
                except OSError as close_error:
                    logger.warning(f"Error closing audio stream: {close_error}")
            if instance is not None:
                instance.terminate()
            logger.error(f"Could not open capture device: {e}")
            raise CaptureDeviceError(f"Microphone unavailable: {e}") from e
        logger.info(f"Audio stream opened on '{device_info.get('name', 'default')}' at {native_rate}Hz")
        return instance, stream, native_rate

    def _on_audio(self, in_data, frame_count, time_info, status_flags):
        """PyAudio callback, runs on the audio thread."""
        if status_flags:
            logger.debug(f"PyAudio status flags: {status_flags}")
        self.ingest(np.frombuffer(in_data, dtype=np.float32), self.native_sample_rate)
        return None, pyaudio.paContinue

    def ingest(self, samples: np.ndarray, sample_rate: int) -> None:
        """Resample a captured block and add it to the accumulation buffer."""
        if not self._accepting:
            return
        self.callbacks_received += 1
        block = resample(samples, sample_rate, self.target_sample_rate)
        self.silence_gate.observe(block)
        self.buffer.append(block)

    def _flush_loop(self) -> None:
        while not self.stop_event.wait(self.flush_interval):
            try:
                self.flush()
            except Exception as e:
                logger.error(f"Flush failed: {e}", exc_info=True)

    def flush(self) -> Optional[int]:
        """Send everything buffered so far. Returns the task sequence number, if any."""
        samples = self.buffer.swap()
        if samples.size == 0:
            return None
        if self.silence_gate.is_silent(samples):
            self.chunks_skipped_silent += 1
            logger.debug(f"Skipping silent chunk ({samples.size} samples)")
            return None
        if self.worker is None:
            logger.warning("Flush with no transcription worker, dropping chunk")
            return None

        packet = encode_packet(samples, self.target_sample_rate)
        self.chunks_flushed += 1
        return self.worker.submit(packet)

    def _on_pipeline_event(self, event: PipelineEvent) -> None:
        self.publish(event)
        if isinstance(event, ErrorEvent) and event.fatal:
            # Runs on a worker thread; stop() drains that worker, so hand off.
            threading.Thread(target=self.stop, name="AudioStopThread", daemon=True).start()

    def stop(self) -> None:
        """Stop capture without losing buffered speech.

        Order: refuse new callback audio, cancel the flush timer, flush what is
        left, release the device, wait for in-flight requests, then report
        disconnect.
        """
        with self._lifecycle_lock:
            if not self.is_capturing:
                logger.debug("No capture in progress")
                return

            logger.info("Stopping audio capture")
            self._accepting = False
            self.stop_event.set()
            if self.flush_thread and self.flush_thread is not threading.current_thread():
                self.flush_thread.join(timeout=2.0)
                if self.flush_thread.is_alive():
                    logger.warning("Flush thread did not stop cleanly")

            self.flush()
            self._release_device()
            self._stop_transcription()
            self.is_capturing = False
            logger.info(f"Capture stopped. Flushed {self.chunks_flushed} chunks, "
                        f"skipped {self.chunks_skipped_silent} silent")
        self.publish(DisconnectedEvent())

    def _release_device(self) -> None:
        if self.stream is not None:
            try:
                self.stream.stop_stream()
                self.stream.close()
            except OSError as e:
                logger.warning(f"Error closing audio stream: {e}")
            self.stream = None
        if self.pyaudio_instance is not None:
            self.pyaudio_instance.terminate()
            self.pyaudio_instance = None

    def get_capture_stats(self) -> CaptureStats:
        duration = 0.0
        if self.start_time:
            duration = (datetime.now() - self.start_time).total_seconds()
        return CaptureStats(
            is_capturing=self.is_capturing,
            duration_seconds=duration,
            native_sample_rate=self.native_sample_rate,
            target_sample_rate=self.target_sample_rate,
            callbacks_received=self.callbacks_received,
            chunks_flushed=self.chunks_flushed,
            chunks_skipped_silent=self.chunks_skipped_silent,
            buffered_samples=len(self.buffer),
        )


class StreamingCaptureEngine(AudioCaptureEngine):
    """Capture engine for streaming backends such as LiveTranscriptionClient.

    Every resampled block goes to the backend as it arrives. There is no
    accumulation buffer and no flush timer; the backend segments speech.
    """

    def __init__(
        self,
        client,
        publish: Callable[[PipelineEvent], None],
        target_sample_rate: int = TARGET_SAMPLE_RATE,
        frames_per_buffer: int = 4096,
        device_index: Optional[int] = None,
        drain_timeout: float = 5.0,
    ):
        super().__init__(
            client,
            publish,
            target_sample_rate=target_sample_rate,
            frames_per_buffer=frames_per_buffer,
            device_index=device_index,
            pre_roll=False,
            drain_timeout=drain_timeout,
        )

    def _start_transcription(self) -> None:
        self.client.start(self._on_pipeline_event)

    def _start_flushing(self) -> None:
        pass

    def _stop_transcription(self) -> None:
        self.client.stop(timeout=self.drain_timeout)

    def ingest(self, samples: np.ndarray, sample_rate: int) -> None:
        if not self._accepting:
            return
        self.callbacks_received += 1
        block = resample(samples, sample_rate, self.target_sample_rate)
        if self.client.send_audio(block):
            self.chunks_flushed += 1
