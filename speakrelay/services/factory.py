"""Builds pipeline and relay components from configuration."""

import logging
from typing import Callable

from ..audio.capture import AudioCaptureEngine, StreamingCaptureEngine
from ..audio.silence import AdaptiveSilenceGate, FixedThresholdGate, SilenceGate, DEFAULT_SILENCE_THRESHOLD
from ..config import SpeakRelayConfig
from ..models.events import PipelineEvent
from ..session.channel import SessionChannel
from ..session.log_channel import LogSessionChannel
from ..session.peer_channel import PeerSessionChannel
from ..storage.message_log import FileMessageLog
from ..transcription.client import TranscriptionClient
from ..transcription.live import DEFAULT_LIVE_MODEL, LiveTranscriptionClient, TURN_DEBOUNCE_SECONDS

logger = logging.getLogger(__name__)


def create_silence_gate(config: SpeakRelayConfig) -> SilenceGate:
    policy = config.get('audio.silence.policy', 'fixed')
    threshold = config.get('audio.silence.threshold', DEFAULT_SILENCE_THRESHOLD)
    if policy == 'fixed':
        return FixedThresholdGate(threshold)
    if policy == 'adaptive':
        return AdaptiveSilenceGate(
            sample_rate=config.get('audio.target_sample_rate', 16000),
            calibration_seconds=config.get('audio.silence.calibration_seconds', 1.0),
            margin=config.get('audio.silence.margin', 1.3),
            fallback_threshold=threshold,
        )
    raise ValueError(f"Unknown silence policy: {policy!r} (expected 'fixed' or 'adaptive')")


def create_channel(config: SpeakRelayConfig, session_id: str) -> SessionChannel:
    """Pick the relay backend named by ``relay.backend``."""
    backend = config.get('relay.backend', 'log')
    logger.info(f"Using '{backend}' relay backend")
    if backend == 'log':
        log = FileMessageLog(config.get_data_directory(),
                             poll_interval=config.get('relay.log.poll_interval_seconds', 0.2))
        return LogSessionChannel(session_id, log)
    if backend == 'peer':
        return PeerSessionChannel(
            session_id,
            remote_host=config.get('relay.peer.remote_host', '127.0.0.1'),
            bind_host=config.get('relay.peer.bind_host', '0.0.0.0'),
            port=config.get('relay.peer.port'),
            retry_delay=config.get('relay.peer.retry_delay_seconds', 2.0),
        )
    raise ValueError(f"Unknown relay backend: {backend!r} (expected 'log' or 'peer')")


def create_capture_engine(config: SpeakRelayConfig,
                          publish: Callable[[PipelineEvent], None]) -> AudioCaptureEngine:
    """Build the capture engine and its backend client for ``transcription.backend``.

    ``http`` posts WAV chunks to a Whisper-style endpoint; ``live`` streams
    PCM into a Gemini Live session.
    """
    backend = config.get('transcription.backend', 'http')
    logger.info(f"Using '{backend}' transcription backend")
    if backend == 'http':
        client = TranscriptionClient(
            config.get_endpoint_url(),
            token=config.get('transcription.token'),
            timeout_seconds=config.get('transcription.timeout_seconds', 30.0),
        )
        return AudioCaptureEngine(
            client=client,
            publish=publish,
            silence_gate=create_silence_gate(config),
            target_sample_rate=config.get('audio.target_sample_rate', 16000),
            flush_interval=config.get('audio.flush_interval_seconds', 3.0),
            frames_per_buffer=config.get('audio.frames_per_buffer', 4096),
            device_index=config.get('audio.device_index'),
            pre_roll=config.get('transcription.pre_roll', True),
            max_concurrent_requests=config.get('transcription.max_concurrent_requests', 2),
        )
    if backend == 'live':
        client = LiveTranscriptionClient(
            api_key=config.get_live_api_key(),
            model=config.get('transcription.live.model', DEFAULT_LIVE_MODEL),
            language=config.get('transcription.live.language'),
            turn_debounce=config.get('transcription.live.turn_debounce_seconds', TURN_DEBOUNCE_SECONDS),
        )
        return StreamingCaptureEngine(
            client=client,
            publish=publish,
            frames_per_buffer=config.get('audio.frames_per_buffer', 4096),
            device_index=config.get('audio.device_index'),
        )
    raise ValueError(f"Unknown transcription backend: {backend!r} (expected 'http' or 'live')")
