"""Unit tests for silence gating."""

import numpy as np
import pytest

from speakrelay.audio.silence import (
    DEFAULT_SILENCE_THRESHOLD,
    AdaptiveSilenceGate,
    FixedThresholdGate,
    mean_absolute_amplitude,
)


@pytest.mark.unit
class TestMeanAbsoluteAmplitude:

    def test_empty_block_is_zero(self):
        assert mean_absolute_amplitude([]) == 0.0

    def test_uses_absolute_values(self):
        assert mean_absolute_amplitude([0.5, -0.5, 0.0, 0.0]) == pytest.approx(0.25)


@pytest.mark.unit
class TestFixedThresholdGate:

    def test_default_threshold(self):
        assert FixedThresholdGate().threshold == DEFAULT_SILENCE_THRESHOLD

    def test_silence_is_silent(self, audio_test_data):
        gate = FixedThresholdGate()

        assert gate.is_silent(audio_test_data("silence", duration_seconds=0.5))

    def test_speech_level_audio_is_not_silent(self, audio_test_data):
        gate = FixedThresholdGate()

        assert not gate.is_silent(audio_test_data("sine", duration_seconds=0.5, amplitude=0.5))

    def test_boundary_is_not_silent(self):
        gate = FixedThresholdGate(0.25)

        # exactly at the threshold is speech
        assert not gate.is_silent([0.25, -0.25])
        assert gate.is_silent([0.24, -0.24])

    @pytest.mark.parametrize("threshold", [0.0, 1.0, -0.1, 2.0])
    def test_rejects_threshold_outside_open_unit_interval(self, threshold):
        with pytest.raises(ValueError):
            FixedThresholdGate(threshold)

    def test_observe_and_reset_are_no_ops(self):
        gate = FixedThresholdGate(0.1)
        gate.observe(np.ones(100, dtype=np.float32))
        gate.reset()

        assert gate.threshold == 0.1


@pytest.mark.unit
class TestAdaptiveSilenceGate:

    def _feed(self, gate, level, blocks, block_size=1000):
        for _ in range(blocks):
            gate.observe(np.full(block_size, level, dtype=np.float32))

    def test_uses_fallback_until_calibrated(self):
        gate = AdaptiveSilenceGate(sample_rate=16000, calibration_seconds=1.0, fallback_threshold=0.05)

        self._feed(gate, 0.01, blocks=15)

        assert not gate.is_calibrated
        assert gate.threshold == 0.05
        assert gate.is_silent(np.full(100, 0.04, dtype=np.float32))

    def test_learns_noise_floor_with_margin(self):
        gate = AdaptiveSilenceGate(sample_rate=16000, calibration_seconds=1.0, margin=1.3)

        self._feed(gate, 0.01, blocks=16)

        assert gate.is_calibrated
        assert gate.threshold == pytest.approx(0.013, rel=1e-4)
        assert gate.is_silent(np.full(100, 0.012, dtype=np.float32))
        assert not gate.is_silent(np.full(100, 0.02, dtype=np.float32))

    def test_stops_learning_after_calibration(self):
        gate = AdaptiveSilenceGate(sample_rate=1000, calibration_seconds=1.0, margin=1.0)
        self._feed(gate, 0.01, blocks=1)
        learned = gate.threshold

        self._feed(gate, 0.4, blocks=5)

        assert gate.threshold == learned

    def test_digital_silence_clamps_to_minimum(self):
        gate = AdaptiveSilenceGate(sample_rate=1000, calibration_seconds=1.0, min_threshold=1e-4)

        self._feed(gate, 0.0, blocks=1)

        assert gate.threshold == pytest.approx(1e-4)
        assert gate.is_silent(np.zeros(10, dtype=np.float32))

    def test_loud_room_clamps_to_maximum(self):
        gate = AdaptiveSilenceGate(sample_rate=1000, calibration_seconds=1.0, max_threshold=0.5)

        self._feed(gate, 0.9, blocks=1)

        assert gate.threshold == pytest.approx(0.5)

    def test_reset_forgets_calibration(self):
        gate = AdaptiveSilenceGate(sample_rate=1000, calibration_seconds=1.0)
        self._feed(gate, 0.01, blocks=1)
        assert gate.is_calibrated

        gate.reset()

        assert not gate.is_calibrated
        assert gate.threshold == DEFAULT_SILENCE_THRESHOLD

    def test_empty_blocks_are_ignored(self):
        gate = AdaptiveSilenceGate(sample_rate=1000, calibration_seconds=1.0)

        gate.observe(np.zeros(0, dtype=np.float32))
        self._feed(gate, 0.02, blocks=1)

        assert gate.threshold == pytest.approx(0.026, rel=1e-4)


@pytest.mark.unit
@pytest.mark.parametrize("gate", [
    FixedThresholdGate(0.999),
    FixedThresholdGate(1e-6),
    AdaptiveSilenceGate(fallback_threshold=0.999),
])
def test_extremes_hold_for_any_threshold(gate):
    assert gate.is_silent(np.zeros(512, dtype=np.float32))
    assert not gate.is_silent(np.ones(512, dtype=np.float32))
    assert not gate.is_silent(-np.ones(512, dtype=np.float32))
