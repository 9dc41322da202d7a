"""Data models for the SpeakRelay application."""

from .audio import AudioChunk, EncodedAudioPacket, CaptureStats
from .transcript import TranscriptEntry, Sender, new_entry
from .session import Session, Guest, GuestStatus, GuestState, Role
from .events import (
    PipelineEvent,
    ConnectedEvent,
    WarmupEvent,
    ReadyEvent,
    TranscriptEvent,
    ErrorEvent,
    DisconnectedEvent,
    SessionEvent,
)
from .messages import (
    SignalingMessage,
    JoinRequest,
    JoinApproved,
    JoinRejected,
    TranscriptUpdate,
    TranscriptClear,
    SessionEnded,
    decode_message,
    encode_message,
)

__all__ = [
    "AudioChunk",
    "EncodedAudioPacket",
    "CaptureStats",
    "TranscriptEntry",
    "Sender",
    "new_entry",
    "Session",
    "Guest",
    "GuestStatus",
    "GuestState",
    "Role",
    # Pipeline events
    "PipelineEvent",
    "ConnectedEvent",
    "WarmupEvent",
    "ReadyEvent",
    "TranscriptEvent",
    "ErrorEvent",
    "DisconnectedEvent",
    "SessionEvent",
    # Relay messages
    "SignalingMessage",
    "JoinRequest",
    "JoinApproved",
    "JoinRejected",
    "TranscriptUpdate",
    "TranscriptClear",
    "SessionEnded",
    "decode_message",
    "encode_message",
]
