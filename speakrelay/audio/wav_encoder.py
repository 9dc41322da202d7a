"""Byte-exact mono 16-bit PCM WAV encoding."""

import struct
from typing import Dict, Optional

import numpy as np

from ..models.audio import EncodedAudioPacket, WAV_HEADER_BYTES

_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")
_PCM_FORMAT = 1
_CHANNELS = 1
_BITS_PER_SAMPLE = 16
_BLOCK_ALIGN = _CHANNELS * _BITS_PER_SAMPLE // 8


def float_to_pcm16(samples) -> np.ndarray:
    """Clamp to [-1, 1] and scale: negatives by 32768, the rest by 32767, truncating toward zero."""
    block = np.clip(np.asarray(samples, dtype=np.float64), -1.0, 1.0)
    scaled = np.where(block < 0, block * 0x8000, block * 0x7FFF)
    return np.trunc(scaled).astype("<i2")


def build_header(sample_count: int, sample_rate: int) -> bytes:
    data_length = sample_count * _BLOCK_ALIGN
    return _HEADER.pack(
        b"RIFF",
        36 + data_length,
        b"WAVE",
        b"fmt ",
        16,
        _PCM_FORMAT,
        _CHANNELS,
        sample_rate,
        sample_rate * _BLOCK_ALIGN,
        _BLOCK_ALIGN,
        _BITS_PER_SAMPLE,
        b"data",
        data_length,
    )


def encode_wav(samples, sample_rate: int) -> bytes:
    """Encode float samples in [-1, 1] into a 44-byte-header WAV container."""
    pcm = float_to_pcm16(samples)
    return build_header(len(pcm), sample_rate) + pcm.tobytes()


def encode_packet(samples, sample_rate: int, sequence_number: Optional[int] = None) -> EncodedAudioPacket:
    block = np.asarray(samples, dtype=np.float32)
    return EncodedAudioPacket(
        data=encode_wav(block, sample_rate),
        sample_rate=sample_rate,
        sample_count=len(block),
        sequence_number=sequence_number,
    )


def parse_wav_header(data: bytes) -> Dict[str, int]:
    """Read back the fields written by :func:`build_header`."""
    if len(data) < WAV_HEADER_BYTES:
        raise ValueError(f"WAV data too short for header: {len(data)} bytes")
    (riff, riff_size, wave, fmt, fmt_size, audio_format, channels, sample_rate,
     byte_rate, block_align, bits, data_tag, data_length) = _HEADER.unpack_from(data)
    if riff != b"RIFF" or wave != b"WAVE" or fmt != b"fmt " or data_tag != b"data":
        raise ValueError("Not a canonical RIFF/WAVE header")
    return {
        "riff_size": riff_size,
        "fmt_size": fmt_size,
        "audio_format": audio_format,
        "channels": channels,
        "sample_rate": sample_rate,
        "byte_rate": byte_rate,
        "block_align": block_align,
        "bits_per_sample": bits,
        "data_length": data_length,
    }
