"""Event models for the pub/sub capture pipeline and relay sessions."""

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, ClassVar, Dict

from .transcript import TranscriptEntry
from ..errors import SpeakRelayError


class PipelineEvent:
    """Base for everything the capture/transcription pipeline reports."""
    kind: ClassVar[str] = "event"


@dataclass
class ConnectedEvent(PipelineEvent):
    """Microphone stream is open; backend not confirmed yet."""
    kind: ClassVar[str] = "connected"
    sample_rate: int = 16000
    timestamp: float = field(default_factory=time.time)


@dataclass
class WarmupEvent(PipelineEvent):
    """Backend model is cold-starting."""
    kind: ClassVar[str] = "warmup"
    timestamp: float = field(default_factory=time.time)


@dataclass
class ReadyEvent(PipelineEvent):
    """First non-empty transcription came back."""
    kind: ClassVar[str] = "ready"
    timestamp: float = field(default_factory=time.time)


@dataclass
class TranscriptEvent(PipelineEvent):
    """A new transcript entry."""
    kind: ClassVar[str] = "transcript"
    entry: TranscriptEntry = None
    sequence_number: int = -1


@dataclass
class ErrorEvent(PipelineEvent):
    """A typed failure; fatal errors stop capture."""
    kind: ClassVar[str] = "error"
    error: SpeakRelayError = None
    fatal: bool = False
    timestamp: float = field(default_factory=time.time)


@dataclass
class DisconnectedEvent(PipelineEvent):
    """Capture fully torn down."""
    kind: ClassVar[str] = "disconnected"
    timestamp: float = field(default_factory=time.time)


@dataclass
class SessionEvent:
    """Session lifecycle event."""
    event_type: str  # "join_requested", "guest_approved", "state_changed", ...
    session_id: str
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: Dict[str, Any] = field(default_factory=dict)
