"""Stateless linear-interpolation resampler."""

import numpy as np

TARGET_SAMPLE_RATE = 16000


def output_length(sample_count: int, input_rate: int, target_rate: int) -> int:
    """ceil(sample_count * target_rate / input_rate) without float rounding."""
    return -(-sample_count * target_rate // input_rate)


def resample(samples, input_rate: int, target_rate: int = TARGET_SAMPLE_RATE) -> np.ndarray:
    """Resample a block of float samples to ``target_rate``.

    Each output sample ``i`` is interpolated between the input samples that
    surround the fractional index ``i * input_rate / target_rate``. When that
    index falls on the last input sample its right neighbour is the sample
    itself, so nothing is extrapolated. No state is kept between calls.

    Args:
        samples: 1-D sequence of float samples
        input_rate: Sample rate of ``samples`` in Hz
        target_rate: Desired sample rate in Hz

    Returns:
        float32 array of length ceil(len(samples) * target_rate / input_rate)
    """
    if input_rate <= 0 or target_rate <= 0:
        raise ValueError(f"Sample rates must be positive (got {input_rate} -> {target_rate})")

    source = np.asarray(samples, dtype=np.float32)
    if input_rate == target_rate:
        return source.copy()

    count = len(source)
    if count == 0:
        return np.zeros(0, dtype=np.float32)

    ratio = input_rate / target_rate
    positions = np.arange(output_length(count, input_rate, target_rate), dtype=np.float64) * ratio
    left = np.minimum(np.floor(positions).astype(np.int64), count - 1)
    right = np.minimum(left + 1, count - 1)
    frac = positions - left

    wide = source.astype(np.float64)
    out = wide[left] * (1.0 - frac) + wide[right] * frac
    return out.astype(np.float32)
