"""PCM conversion utilities."""
from __future__ import annotations

from typing import Sequence, Union

import numpy as np

PCMInput = Union[bytes, bytearray, memoryview, np.ndarray, Sequence[int]]

_INT16_MIN = -32768
_INT16_MAX = 32767


def pcm16le_to_int16(pcm_bytes: bytes | bytearray | memoryview) -> np.ndarray:
    """
    Convert PCM16 little-endian mono bytes to a native int16 array.

    No resampling. No channel mixing. The result owns its memory.
    """
    if len(pcm_bytes) % 2 != 0:
        # Truncated sample; drop the dangling byte.
        pcm_bytes = bytes(pcm_bytes)[: len(pcm_bytes) - 1]

    return np.frombuffer(pcm_bytes, dtype="<i2").astype(np.int16)


def int16_to_pcm16le(samples: np.ndarray) -> bytes:
    """Serialize an int16 array as PCM16 little-endian bytes."""
    return samples.astype("<i2", copy=False).tobytes()


def as_int16(samples: PCMInput) -> np.ndarray:
    """
    Normalize any supported sample container to a 1-D int16 array.

    Accepts raw PCM16LE bytes, an integer numpy array, or a sequence of
    Python ints.

    Raises:
        ValueError if an integer is outside the signed 16-bit range.
    """
    if isinstance(samples, (bytes, bytearray, memoryview)):
        return pcm16le_to_int16(samples)

    arr = np.asarray(samples)
    if arr.size == 0:
        return np.zeros(0, dtype=np.int16)
    if arr.dtype == np.int16:
        return arr.reshape(-1)
    if not np.issubdtype(arr.dtype, np.integer):
        raise ValueError(f"PCM samples must be integers, got dtype {arr.dtype}")
    if int(arr.min()) < _INT16_MIN or int(arr.max()) > _INT16_MAX:
        raise ValueError("PCM sample outside signed 16-bit range")
    return arr.astype(np.int16).reshape(-1)
