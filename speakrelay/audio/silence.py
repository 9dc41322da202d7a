"""Silence detection used to skip backend calls for near-silent chunks."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

logger = logging.getLogger(__name__)

# Tuned empirically against Whisper-style endpoints
DEFAULT_SILENCE_THRESHOLD = 0.008


def mean_absolute_amplitude(samples) -> float:
    """Energy estimate: average of |sample| over the block (0.0 for an empty block)."""
    block = np.asarray(samples, dtype=np.float32)
    if block.size == 0:
        return 0.0
    return float(np.mean(np.abs(block)))


def _check_threshold(threshold: float) -> float:
    if not 0.0 < threshold < 1.0:
        raise ValueError(f"Silence threshold must be in (0, 1), got {threshold}")
    return threshold


class SilenceGate(ABC):
    """Predicate deciding whether a block is quiet enough to drop."""

    @abstractmethod
    def is_silent(self, samples) -> bool:
        pass

    def observe(self, samples) -> None:
        """Feed live audio as it is captured. Fixed policies ignore it."""

    def reset(self) -> None:
        """Forget anything learned; called when capture (re)starts."""


class FixedThresholdGate(SilenceGate):
    """Silent when mean absolute amplitude is below a fixed threshold."""

    def __init__(self, threshold: float = DEFAULT_SILENCE_THRESHOLD):
        self.threshold = _check_threshold(threshold)

    def is_silent(self, samples) -> bool:
        return mean_absolute_amplitude(samples) < self.threshold


class AdaptiveSilenceGate(SilenceGate):
    """Learns the room's noise floor from the first second of audio after activation.

    Until calibration completes the fallback threshold is used. Once enough
    samples have been observed the threshold becomes the average energy of the
    observed blocks scaled by ``margin``, clamped to a sane range so that
    digital silence is still silent and full-scale audio never is.
    """

    def __init__(self,
                 sample_rate: int = 16000,
                 calibration_seconds: float = 1.0,
                 margin: float = 1.3,
                 fallback_threshold: float = DEFAULT_SILENCE_THRESHOLD,
                 min_threshold: float = 1e-4,
                 max_threshold: float = 0.5):
        self.sample_rate = sample_rate
        self.calibration_samples = int(sample_rate * calibration_seconds)
        self.margin = margin
        self.fallback_threshold = _check_threshold(fallback_threshold)
        self.min_threshold = _check_threshold(min_threshold)
        self.max_threshold = _check_threshold(max_threshold)

        self.learned_threshold: Optional[float] = None
        self._energy_sum = 0.0
        self._blocks_observed = 0
        self._samples_observed = 0

    @property
    def is_calibrated(self) -> bool:
        return self.learned_threshold is not None

    @property
    def threshold(self) -> float:
        if self.learned_threshold is None:
            return self.fallback_threshold
        return self.learned_threshold

    def observe(self, samples) -> None:
        if self.is_calibrated:
            return
        block = np.asarray(samples, dtype=np.float32)
        if block.size == 0:
            return
        self._energy_sum += mean_absolute_amplitude(block)
        self._blocks_observed += 1
        self._samples_observed += block.size

        if self._samples_observed >= self.calibration_samples:
            average = self._energy_sum / self._blocks_observed
            self.learned_threshold = float(np.clip(average * self.margin,
                                                   self.min_threshold, self.max_threshold))
            logger.info(f"Silence threshold calibrated: {self.learned_threshold:.5f} "
                        f"(noise floor {average:.5f} over {self._blocks_observed} blocks)")

    def is_silent(self, samples) -> bool:
        return mean_absolute_amplitude(samples) < self.threshold

    def reset(self) -> None:
        self.learned_threshold = None
        self._energy_sum = 0.0
        self._blocks_observed = 0
        self._samples_observed = 0
