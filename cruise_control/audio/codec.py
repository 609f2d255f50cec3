"""
PCM16 codec for the Gemini Live wire format.

Captured audio is float samples in [-1, 1]; the remote model speaks little-endian
signed 16-bit PCM wrapped in base64. Conversion is deterministic and lossy by
quantization only.
"""

import base64
import binascii

import numpy as np

from cruise_control.config.constants import PCM16_SCALE
from cruise_control.errors import DecodeError

_PCM16_LE = np.dtype("<i2")
_PCM16_MIN = -PCM16_SCALE
_PCM16_MAX = PCM16_SCALE - 1


def float_to_pcm16(samples) -> bytes:
    """
    Convert float samples to little-endian PCM16 bytes.

    Each sample is scaled by 32768 and clamped to the int16 range, so 1.0 maps to
    32767 and -1.0 to -32768.
    """
    scaled = np.asarray(samples, dtype=np.float64) * PCM16_SCALE
    np.clip(scaled, _PCM16_MIN, _PCM16_MAX, out=scaled)
    return scaled.astype(_PCM16_LE).tobytes()


def pcm16_to_float(raw: bytes) -> np.ndarray:
    """
    Convert little-endian PCM16 bytes to float32 samples.

    A trailing odd byte (a partial sample) is dropped rather than rejected.
    """
    usable = len(raw) - (len(raw) % 2)
    pcm = np.frombuffer(raw, dtype=_PCM16_LE, count=usable // 2)
    return pcm.astype(np.float32) / PCM16_SCALE


def encode(samples) -> str:
    """Encode float samples as base64 PCM16, ready for a realtime input message."""
    return base64.b64encode(float_to_pcm16(samples)).decode("ascii")


def decode(payload) -> np.ndarray:
    """
    Decode a base64 PCM16 payload into float32 samples.

    Raises:
        DecodeError: if the payload is not valid base64
    """
    try:
        raw = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise DecodeError(f"Invalid base64 audio payload: {e}") from e
    return pcm16_to_float(raw)


def duration_seconds(sample_count: int, sample_rate: int) -> float:
    return sample_count / float(sample_rate)
