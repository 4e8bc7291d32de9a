"""
Audio frame primitives.

Pure data containers only.
No queues, no timing logic.
"""

from __future__ import annotations
from dataclasses import dataclass

from constants import AUDIO_CHANNELS, AUDIO_SAMPLE_WIDTH_BYTES


@dataclass(frozen=True)
class AudioFrame:
    """
    Canonical audio frame used by both audio pipelines.

    sequence_num:
        Monotonic per-pipeline sequence number, starting at 1.
        Used for ordering checks and debugging only.

    pcm_bytes:
        Raw PCM16 little-endian mono audio bytes.

    sample_rate_hz:
        16 kHz for captured frames, 24 kHz for synthesized frames.

    ts_ms:
        Wall-clock timestamp (milliseconds) when the frame was captured
        or received. Observability only.

    has_significant_audio / peak_amplitude:
        Presence hint and normalized peak in [0, 1]. Only computed
        for captured frames; advisory for the remote side.
    """
    sequence_num: int
    pcm_bytes: bytes
    sample_rate_hz: int
    ts_ms: int
    has_significant_audio: bool = False
    peak_amplitude: float = 0.0

    @property
    def num_samples(self) -> int:
        """Number of whole PCM samples in the frame."""
        return len(self.pcm_bytes) // (AUDIO_SAMPLE_WIDTH_BYTES * AUDIO_CHANNELS)

    @property
    def duration_s(self) -> float:
        """Playback duration of the frame in seconds."""
        if self.sample_rate_hz <= 0:
            return 0.0
        return self.num_samples / self.sample_rate_hz
