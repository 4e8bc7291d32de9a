"""
Bounded audio frame queues with canonical depth measurement.

Requirements:
- Depth measured in seconds of audio (not frame count); frames may vary in size
- Explicit drop behavior
- Drop reasons distinguishable (overflow vs stale)
- Optionally drop OLDEST frames to keep live audio fresh
- Deterministic, synchronous behavior
"""

from __future__ import annotations
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Deque, Optional

from audio.frames import AudioFrame


class DropReason(str, Enum):
    """
    Reason an audio frame was dropped.
    """
    OVERFLOW = "overflow"
    STALE = "stale"


@dataclass
class DropCounters:
    """
    Drop counters for observability.
    """
    overflow: int = 0
    stale: int = 0


class AudioFrameQueue:
    """
    Bounded FIFO queue for AudioFrame objects.

    Drop rules:
    - drop_oldest=True: evict OLDEST frames until the new frame fits, then enqueue
    - else: drop NEW frame if enqueue would exceed max_depth_s
    - A single frame longer than max_depth_s is always an overflow drop
    """

    def __init__(self, *, max_depth_s: float) -> None:
        if max_depth_s <= 0:
            raise ValueError("max_depth_s must be > 0")

        self._max_depth_s: float = max_depth_s
        self._frames: Deque[AudioFrame] = deque()
        self._depth_s: float = 0.0
        self.drops: DropCounters = DropCounters()

    # -------------------------
    # Core queue operations
    # -------------------------

    def enqueue(self, frame: AudioFrame, *, drop_oldest: bool = False) -> bool:
        """
        Enqueue an AudioFrame.

        Returns:
            True if enqueued
            False if dropped
        """
        if frame.duration_s > self._max_depth_s:
            self.drops.overflow += 1
            return False

        if drop_oldest:
            while self._frames and self._depth_s + frame.duration_s > self._max_depth_s:
                self._pop_left()
                self.drops.stale += 1

        if self._depth_s + frame.duration_s > self._max_depth_s:
            self.drops.overflow += 1
            return False

        self._frames.append(frame)
        self._depth_s += frame.duration_s
        return True

    def dequeue(self) -> Optional[AudioFrame]:
        """
        Dequeue the oldest AudioFrame.

        Returns None if queue is empty.
        """
        if not self._frames:
            return None
        return self._pop_left()

    def peek(self) -> Optional[AudioFrame]:
        """
        View the oldest frame without removing it.
        """
        return self._frames[0] if self._frames else None

    def clear(self) -> None:
        """
        Drop all queued frames without counting them as drops.

        Used during teardown / stop.
        """
        self._frames.clear()
        self._depth_s = 0.0

    def _pop_left(self) -> AudioFrame:
        frame = self._frames.popleft()
        self._depth_s = max(0.0, self._depth_s - frame.duration_s) if self._frames else 0.0
        return frame

    # -------------------------
    # Introspection helpers
    # -------------------------

    def __len__(self) -> int:
        return len(self._frames)

    def is_empty(self) -> bool:
        """Check if the queue is empty."""
        return not self._frames

    def depth_seconds(self) -> float:
        """
        Canonical queue depth in seconds.

        depth_s = sum(frame.duration_s)
        """
        return self._depth_s

    def total_drops(self) -> int:
        """
        Total frames dropped for any reason.
        """
        return self.drops.overflow + self.drops.stale

    def snapshot(self) -> dict[str, float | int]:
        """
        Lightweight snapshot for logging / metrics.
        """
        return {
            "frames": len(self._frames),
            "depth_s": self.depth_seconds(),
            "dropped_overflow": self.drops.overflow,
            "dropped_stale": self.drops.stale,
            "dropped_total": self.total_drops(),
        }
