"""
Audio frame codec.

Converts between PCM16 sample buffers and the wire representation
(base64 text of little-endian PCM16 bytes), and computes the presence /
amplitude hints attached to captured audio.

Properties:
- Lossless: decode(encode(x)) == x, bit-exact
- Pure: no shared state, safe to call concurrently on independent buffers
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass

import numpy as np

from audio.pcm import PCMInput, as_int16, int16_to_pcm16le, pcm16le_to_int16
from constants import PCM16_FULL_SCALE, SIGNIFICANT_AUDIO_THRESHOLD


class MalformedAudio(ValueError):
    """
    Raised when an encoded audio blob cannot be decoded.

    The blob is not valid base64, or decodes to an odd number of bytes
    (a truncated PCM16 sample). The frame must be dropped.
    """


@dataclass(frozen=True)
class AudioLevels:
    """Presence flag and normalized peak amplitude of one buffer."""
    has_significant_audio: bool
    peak_amplitude: float


# -------------------------
# Wire transcoding
# -------------------------

def encode(samples: PCMInput) -> str:
    """
    Encode PCM16 samples as base64 text.

    Raw bytes are passed through untouched (assumed PCM16LE already);
    arrays and int sequences are serialized little-endian.
    """
    if isinstance(samples, (bytes, bytearray, memoryview)):
        raw = bytes(samples)
    else:
        raw = int16_to_pcm16le(as_int16(samples))
    return base64.b64encode(raw).decode("ascii")


def decode_bytes(blob: str | bytes) -> bytes:
    """
    Decode base64 text to raw PCM16LE bytes.

    Raises:
        MalformedAudio if the blob is not valid base64 or has a dangling byte.
    """
    try:
        raw = base64.b64decode(blob, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedAudio(f"invalid base64 audio: {e}") from e

    if len(raw) % 2 != 0:
        raise MalformedAudio(f"odd PCM16 byte length {len(raw)}")

    return raw


def decode(blob: str | bytes) -> np.ndarray:
    """Decode base64 text to an int16 sample array."""
    return pcm16le_to_int16(decode_bytes(blob))


# -------------------------
# Level metadata
# -------------------------

def analyze(
    samples: PCMInput,
    *,
    threshold: float = SIGNIFICANT_AUDIO_THRESHOLD,
) -> AudioLevels:
    """
    Compute presence flag and peak amplitude.

    amplitude(sample) = |sample| / 32768

    - has_significant_audio: any amplitude strictly above threshold
    - peak_amplitude: max amplitude, clamped to [0, 1]

    Empty buffers report (False, 0.0).
    """
    arr = as_int16(samples)
    if arr.size == 0:
        return AudioLevels(has_significant_audio=False, peak_amplitude=0.0)

    # int32 so abs(-32768) does not wrap
    peak_abs = int(np.max(np.abs(arr.astype(np.int32))))
    peak = min(1.0, peak_abs / PCM16_FULL_SCALE)

    return AudioLevels(
        has_significant_audio=peak > threshold,
        peak_amplitude=peak,
    )
