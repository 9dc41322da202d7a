"""HTTP transcription client for Whisper-style inference endpoints."""

import asyncio
import json
import logging
import threading
from typing import Any, List, Optional

import aiohttp
import numpy as np

from ..audio.wav_encoder import encode_packet
from ..errors import AuthenticationError, TranscriptionError, WarmupError
from ..models.audio import EncodedAudioPacket
from ..models.events import ErrorEvent, PipelineEvent, ReadyEvent, TranscriptEvent, WarmupEvent
from ..models.transcript import Sender, TranscriptEntry, new_entry

logger = logging.getLogger(__name__)

PRE_ROLL_SECONDS = 0.1


class TranscriptionClient:
    """Posts WAV packets to an inference endpoint and classifies the replies."""

    def __init__(self, endpoint_url: str, token: Optional[str] = None, timeout_seconds: float = 30.0):
        """Initialize transcription client.

        Args:
            endpoint_url: URL that accepts a raw ``audio/wav`` POST body
            token: Optional bearer token
            timeout_seconds: Total timeout per request
        """
        if not endpoint_url:
            raise ValueError("Transcription endpoint URL is required")
        self.endpoint_url = endpoint_url
        self.token = token
        self.timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self.has_transcribed = False
        self._ready_lock = threading.Lock()
        logger.info(f"TranscriptionClient initialized for {endpoint_url} "
                    f"(auth={'bearer' if token else 'none'})")

    def _headers(self) -> dict:
        headers = {"Content-Type": "audio/wav"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def transcribe(self, packet: EncodedAudioPacket) -> List[PipelineEvent]:
        """Send one packet and turn the reply into pipeline events.

        Returns:
            ``[ErrorEvent(fatal)]`` on 401/403, ``[WarmupEvent]`` while the model
            loads, ``[]`` for transient failures and blank text, otherwise
            ``[ReadyEvent]`` (first success only) followed by ``[TranscriptEvent]``.
        """
        try:
            entry = await self._post(packet)
        except AuthenticationError as e:
            logger.error(f"Transcription backend rejected credentials: {e}")
            return [ErrorEvent(error=e, fatal=True)]
        except WarmupError as e:
            logger.warning(f"Transcription model is warming up: {e}")
            return [WarmupEvent()]
        except TranscriptionError as e:
            logger.warning(f"Transcription failed for packet {packet.sequence_number}, dropping it: {e}")
            return []

        if entry is None:
            return []

        events: List[PipelineEvent] = []
        if self._mark_ready():
            logger.info("First transcription received, backend is ready")
            events.append(ReadyEvent())
        events.append(TranscriptEvent(entry=entry, sequence_number=packet.sequence_number or 0))
        return events

    async def pre_roll(self, sample_rate: int = 16000) -> List[PipelineEvent]:
        """Post a short silent packet to wake the endpoint; any failure means warm-up."""
        silence = np.zeros(int(sample_rate * PRE_ROLL_SECONDS), dtype=np.float32)
        packet = encode_packet(silence, sample_rate, sequence_number=0)
        try:
            entry = await self._post(packet)
        except TranscriptionError as e:
            logger.info(f"Pre-roll did not succeed, treating as warm-up: {e}")
            return [WarmupEvent()]
        if entry is None:
            return []
        events: List[PipelineEvent] = [ReadyEvent()] if self._mark_ready() else []
        return events + [TranscriptEvent(entry=entry, sequence_number=0)]

    def reset_ready(self) -> None:
        """Re-arm the one-shot ready notification for a new capture run."""
        with self._ready_lock:
            self.has_transcribed = False

    def _mark_ready(self) -> bool:
        """True exactly once: for the first non-empty transcription."""
        with self._ready_lock:
            if self.has_transcribed:
                return False
            self.has_transcribed = True
            return True

    async def _post(self, packet: EncodedAudioPacket) -> Optional[TranscriptEntry]:
        logger.debug(f"POST {len(packet.data)} bytes ({packet.duration_seconds:.2f}s) "
                     f"to {self.endpoint_url}")
        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(self.endpoint_url, headers=self._headers(), data=packet.data) as response:
                    body = await response.text()
                    status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TranscriptionError(f"Request to transcription backend failed: {e!r}") from e

        if status in (401, 403):
            raise AuthenticationError(f"Authentication failed: HTTP {status}", status=status)
        if not 200 <= status < 300:
            error_message = _error_message(body)
            if error_message and "loading" in error_message:
                raise WarmupError(error_message, status=status)
            raise TranscriptionError(f"Backend error: HTTP {status} {error_message or body[:200]}",
                                     status=status)

        try:
            result = json.loads(body)
        except ValueError as e:
            raise TranscriptionError(f"Backend returned invalid JSON: {body[:200]!r}", status=status) from e

        text = _extract_text(result)
        if text is None:
            raise TranscriptionError(f"Unrecognised response shape: {body[:200]!r}", status=status)

        text = text.strip()
        if not text:
            logger.debug("Backend returned blank text")
            return None
        return new_entry(text, sender=Sender.SPEAKER)


def _error_message(body: str) -> Optional[str]:
    try:
        parsed = json.loads(body)
    except ValueError:
        return None
    if isinstance(parsed, dict) and isinstance(parsed.get("error"), str):
        return parsed["error"]
    return None


def _extract_text(result: Any) -> Optional[str]:
    """Accept ``{"text": ...}`` or ``[{"text": ...}, ...]``."""
    if isinstance(result, dict) and isinstance(result.get("text"), str):
        return result["text"]
    if isinstance(result, list) and result and isinstance(result[0], dict) \
            and isinstance(result[0].get("text"), str):
        return result[0]["text"]
    return None
