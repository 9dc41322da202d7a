"""Streaming transcription over a Gemini Live session."""

import asyncio
import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from ..audio.wav_encoder import float_to_pcm16
from ..errors import AuthenticationError, TranscriptionError
from ..models.events import ErrorEvent, PipelineEvent, ReadyEvent, TranscriptEvent
from ..models.transcript import Sender, TranscriptEntry, new_entry

logger = logging.getLogger(__name__)

DEFAULT_LIVE_MODEL = "gemini-2.5-flash-native-audio-preview-09-2025"
DEFAULT_VOICE = "Kore"
LIVE_SAMPLE_RATE = 16000
TURN_DEBOUNCE_SECONDS = 2.0


def transcriber_instruction(language: Optional[str] = None) -> str:
    """System instruction for the live model, pinned to ``language`` when given."""
    if language:
        return (
            "You are a professional live transcriber. Transcribe the audio input and nothing else. "
            f"Only ever output text in {language}. If the speaker uses another language, translate "
            f"it into {language} right away and do not repeat the original wording. "
            "Do not converse with the user and do not answer questions; output only the transcription."
        )
    return ("You are a professional live transcriber. Transcribe the input audio accurately. "
            "Do not converse. Keep output brief and precise.")


class TurnGrouper:
    """Groups transcription fragments into turns, separately per sender.

    A fragment joins the sender's current turn unless nothing arrived for
    ``debounce_seconds``; then it starts a new turn whose id is the
    fragment's own entry id.
    """

    def __init__(self, debounce_seconds: float = TURN_DEBOUNCE_SECONDS,
                 clock: Callable[[], float] = time.monotonic):
        self.debounce_seconds = debounce_seconds
        self.clock = clock
        self._turns: Dict[Sender, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    def turn_for(self, sender: Sender, entry_id: str) -> str:
        now = self.clock()
        with self._lock:
            current = self._turns.get(sender)
            if current is None or now - current[1] > self.debounce_seconds:
                turn_id = entry_id
            else:
                turn_id = current[0]
            self._turns[sender] = (turn_id, now)
        return turn_id

    def end_turn(self, sender: Sender) -> None:
        with self._lock:
            self._turns.pop(sender, None)

    def reset(self) -> None:
        with self._lock:
            self._turns.clear()


class LiveTranscriptionClient:
    """Streams 16 kHz PCM into a Gemini Live session and reports what it hears.

    The session runs on a dedicated thread with its own event loop.
    ``send_audio`` may be called from the PyAudio callback thread; blocks are
    queued onto the session loop and sent in order. Input transcription comes
    back as partial ``speaker`` entries and the model's own output
    transcription as partial ``remote-model`` entries, both grouped into
    turns. Any session failure is fatal for the capture run.
    """

    def __init__(self,
                 api_key: Optional[str] = None,
                 model: str = DEFAULT_LIVE_MODEL,
                 language: Optional[str] = None,
                 turn_debounce: float = TURN_DEBOUNCE_SECONDS,
                 voice_name: str = DEFAULT_VOICE,
                 sample_rate: int = LIVE_SAMPLE_RATE,
                 client=None):
        """Initialize live transcription client.

        Args:
            api_key: Gemini API key; required unless ``client`` is given
            model: Live model name
            language: Output language to enforce, or None to transcribe as spoken
            turn_debounce: Seconds of quiet that end a turn
            voice_name: Prebuilt voice for the model's audio replies
            sample_rate: Rate of the PCM handed to ``send_audio``
            client: Pre-built ``genai.Client``
        """
        if client is None:
            if not api_key:
                raise ValueError("Live transcription needs an API key: set transcription.live.api_key "
                                 "or SPEAKRELAY_LIVE_API_KEY")
            client = genai.Client(api_key=api_key)
        self.client = client
        self.model = model
        self.language = language
        self.voice_name = voice_name
        self.sample_rate = sample_rate
        self.grouper = TurnGrouper(turn_debounce)

        self.has_transcribed = False
        self._ready_lock = threading.Lock()
        self._sequence = 0
        self.chunks_sent = 0

        self._on_event: Optional[Callable[[PipelineEvent], None]] = None
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._audio: Optional[asyncio.Queue] = None
        self._loop_lock = threading.Lock()
        self._stopping = threading.Event()
        logger.info(f"LiveTranscriptionClient initialized for {model} (language={language or 'as spoken'})")

    @property
    def mime_type(self) -> str:
        return f"audio/pcm;rate={self.sample_rate}"

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def build_config(self) -> types.LiveConnectConfig:
        return types.LiveConnectConfig(
            response_modalities=[types.Modality.AUDIO],
            input_audio_transcription=types.AudioTranscriptionConfig(),
            output_audio_transcription=types.AudioTranscriptionConfig(),
            speech_config=types.SpeechConfig(
                voice_config=types.VoiceConfig(
                    prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=self.voice_name),
                ),
            ),
            system_instruction=transcriber_instruction(self.language),
        )

    def reset_ready(self) -> None:
        with self._ready_lock:
            self.has_transcribed = False

    def _mark_ready(self) -> bool:
        with self._ready_lock:
            if self.has_transcribed:
                return False
            self.has_transcribed = True
            return True

    # Session lifecycle

    def start(self, on_event: Callable[[PipelineEvent], None], timeout: float = 5.0) -> None:
        """Open the live session in the background; events go to ``on_event``."""
        if self.is_running:
            logger.warning("Live session already running")
            return
        self._on_event = on_event
        self._stopping.clear()
        self._sequence = 0
        self.chunks_sent = 0
        self.grouper.reset()
        self.reset_ready()

        loop_ready = threading.Event()
        self._thread = threading.Thread(target=self._run, args=(loop_ready,), daemon=True)
        self._thread.name = "LiveTranscriptionThread"
        self._thread.start()
        if not loop_ready.wait(timeout):
            logger.warning("Live session loop did not come up in time")

    def _run(self, loop_ready: threading.Event) -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        try:
            with self._loop_lock:
                self._loop = loop
                self._audio = asyncio.Queue()
            loop_ready.set()
            loop.run_until_complete(self._session())
        finally:
            with self._loop_lock:
                self._loop = None
                self._audio = None
            loop.close()

    async def _session(self) -> None:
        try:
            async with self.client.aio.live.connect(model=self.model, config=self.build_config()) as session:
                logger.info(f"Live session open on {self.model}")
                pump = asyncio.ensure_future(self._pump_audio(session))
                receiver = asyncio.ensure_future(self._receive(session))
                done, pending = await asyncio.wait({pump, receiver}, return_when=asyncio.FIRST_COMPLETED)
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
                for task in done:
                    task.result()
                if receiver in done and not self._stopping.is_set():
                    raise TranscriptionError("Live session closed by the server")
        except genai_errors.APIError as e:
            self._fail(_classify_api_error(e))
        except TranscriptionError as e:
            self._fail(e)
        except Exception as e:
            if not self._stopping.is_set():
                logger.error(f"Live session failed: {e!r}", exc_info=True)
            self._fail(TranscriptionError(f"Live session failed: {e!r}"))
        else:
            logger.info(f"Live session closed after {self.chunks_sent} audio blocks")

    async def _pump_audio(self, session) -> None:
        while True:
            pcm = await self._audio.get()
            if pcm is None:
                return
            await session.send_realtime_input(audio=types.Blob(data=pcm, mime_type=self.mime_type))
            self.chunks_sent += 1

    async def _receive(self, session) -> None:
        # receive() ends at every turn boundary; an empty pass means the stream is gone.
        while True:
            received = 0
            async for message in session.receive():
                received += 1
                for event in self.handle_message(message):
                    self._emit(event)
            if received == 0:
                return

    def _fail(self, error: TranscriptionError) -> None:
        if self._stopping.is_set():
            logger.debug(f"Ignoring live session error during shutdown: {error}")
            return
        logger.error(f"Live transcription stopped: {error}")
        self._emit(ErrorEvent(error=error, fatal=True))

    def _emit(self, event: PipelineEvent) -> None:
        if self._on_event is None:
            return
        try:
            self._on_event(event)
        except Exception as e:
            logger.error(f"Listener failed on {event.kind} event: {e}", exc_info=True)

    def send_audio(self, samples: np.ndarray) -> bool:
        """Queue float samples at ``sample_rate`` for the session. False if no session is running."""
        pcm = float_to_pcm16(samples).tobytes()
        with self._loop_lock:
            if self._loop is None or self._stopping.is_set():
                return False
            self._loop.call_soon_threadsafe(self._audio.put_nowait, pcm)
        return True

    def stop(self, timeout: float = 5.0) -> None:
        """Send what is queued, close the session and wait for the thread."""
        if self._thread is None:
            return
        self._stopping.set()
        with self._loop_lock:
            if self._loop is not None:
                self._loop.call_soon_threadsafe(self._audio.put_nowait, None)
        if self._thread is not threading.current_thread():
            self._thread.join(timeout)
            if self._thread.is_alive():
                logger.warning("Live session thread did not stop cleanly")
        self._thread = None

    # Message handling

    def handle_message(self, message: types.LiveServerMessage) -> List[PipelineEvent]:
        """Turn one server message into pipeline events."""
        content = message.server_content
        if content is None:
            return []

        events: List[PipelineEvent] = []
        if content.input_transcription and content.input_transcription.text:
            events.extend(self._fragment(Sender.SPEAKER, content.input_transcription.text))
        if content.output_transcription and content.output_transcription.text:
            events.extend(self._fragment(Sender.REMOTE_MODEL, content.output_transcription.text))
        if content.turn_complete:
            self.grouper.end_turn(Sender.REMOTE_MODEL)
        return events

    def _fragment(self, sender: Sender, text: str) -> List[PipelineEvent]:
        if not text.strip():
            return []
        entry = self._partial_entry(sender, text)
        events: List[PipelineEvent] = []
        if self._mark_ready():
            logger.info("First live transcription received, backend is ready")
            events.append(ReadyEvent())
        events.append(TranscriptEvent(entry=entry, sequence_number=self._sequence))
        self._sequence += 1
        return events

    def _partial_entry(self, sender: Sender, text: str) -> TranscriptEntry:
        entry = new_entry(text, sender=sender, is_partial=True)
        turn_id = self.grouper.turn_for(sender, entry.id)
        return entry.model_copy(update={"turn_id": turn_id})


def _classify_api_error(error: genai_errors.APIError) -> TranscriptionError:
    status = getattr(error, "code", None)
    if status in (401, 403):
        return AuthenticationError(f"Live API rejected credentials: {error}", status=status)
    return TranscriptionError(f"Live API error: {error}", status=status)
