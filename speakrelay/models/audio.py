"""Audio-related data models."""

from dataclasses import dataclass
from typing import Optional

import numpy as np

WAV_HEADER_BYTES = 44


@dataclass
class AudioChunk:
    """A block of float samples as delivered by the capture callback."""
    samples: np.ndarray
    sample_rate: int

    @property
    def duration_seconds(self) -> float:
        return len(self.samples) / self.sample_rate if self.sample_rate else 0.0


@dataclass
class EncodedAudioPacket:
    """A WAV container ready to be posted to the transcription backend."""
    data: bytes
    sample_rate: int
    sample_count: int
    sequence_number: Optional[int] = None

    @property
    def payload_length(self) -> int:
        return len(self.data) - WAV_HEADER_BYTES

    @property
    def duration_seconds(self) -> float:
        return self.sample_count / self.sample_rate if self.sample_rate else 0.0


@dataclass
class CaptureStats:
    """Audio capture statistics."""
    is_capturing: bool
    duration_seconds: float
    native_sample_rate: Optional[int]
    target_sample_rate: int
    callbacks_received: int
    chunks_flushed: int
    chunks_skipped_silent: int
    buffered_samples: int
