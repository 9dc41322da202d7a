"""Transcription module for SpeakRelay."""

from .client import TranscriptionClient
from .consumers import TranscriptionWorker, TranscriptionTask, ReorderBuffer
from .live import LiveTranscriptionClient, TurnGrouper
from .publisher import PipelineEventPublisher

__all__ = [
    "TranscriptionClient",
    "LiveTranscriptionClient",
    "TurnGrouper",
    "TranscriptionWorker",
    "TranscriptionTask",
    "ReorderBuffer",
    "PipelineEventPublisher",
]
