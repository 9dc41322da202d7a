"""Audio capture and processing module."""

from .capture import AudioCaptureEngine, StreamingCaptureEngine
from .buffer import AccumulationBuffer
from .resampler import resample, TARGET_SAMPLE_RATE
from .silence import SilenceGate, FixedThresholdGate, AdaptiveSilenceGate, mean_absolute_amplitude
from .wav_encoder import encode_wav, encode_packet, parse_wav_header

__all__ = [
    'AudioCaptureEngine',
    'StreamingCaptureEngine',
    'AccumulationBuffer',
    'resample',
    'TARGET_SAMPLE_RATE',
    'SilenceGate',
    'FixedThresholdGate',
    'AdaptiveSilenceGate',
    'mean_absolute_amplitude',
    'encode_wav',
    'encode_packet',
    'parse_wav_header',
]
