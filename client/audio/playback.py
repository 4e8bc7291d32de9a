"""
Inbound audio pipeline (server -> speaker).

Decodes audio_response chunks and plays them strictly in arrival order.

Invariants:
- One driver task; a frame is taken from the head only after the
  previous frame's play() has returned (never concurrent, never reordered)
- Empty queue means idle playback; no silence is synthesized
- After clear(), nothing queued before it is played
"""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any

from audio.codec import MalformedAudio, decode_bytes
from audio.frames import AudioFrame
from audio.queues import AudioFrameQueue
from constants import PLAYBACK_AUDIO_Q_MAX_S, PLAYBACK_SAMPLE_RATE_HZ
from observability.logger import log_event


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class AudioSink(ABC):
    """
    Abstract playback device.

    play() returns only once the frame has been handed to the device in
    full. Implementations must not block the event loop.
    """

    @abstractmethod
    async def play(self, frame: AudioFrame) -> None:
        raise NotImplementedError

    async def aclose(self) -> None:
        """Release the device. Default: nothing to release."""
        return None


class NullSink(AudioSink):
    """Discards audio. Used when running without devices."""

    async def play(self, frame: AudioFrame) -> None:
        return None


class PlaybackPipeline:
    """Bounded FIFO of decoded frames plus a serial playback driver."""

    def __init__(
        self,
        *,
        sink: AudioSink,
        session_id: str | None = None,
        max_depth_s: float = PLAYBACK_AUDIO_Q_MAX_S,
    ) -> None:
        self._sink = sink
        self._session_id = session_id
        self._queue = AudioFrameQueue(max_depth_s=max_depth_s)

        self._open = False
        self._generation = 0
        self._seq = 0

        self._wakeup = asyncio.Event()
        self._driver: asyncio.Task[None] | None = None

        self.frames_played = 0
        self.malformed_dropped = 0
        self.stale_dropped = 0
        self.sink_errors = 0

    # ------------------------------------------------------------------
    # Gate
    # ------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self, generation: int) -> None:
        """Start accepting audio for a session. Requires a running loop."""
        self._queue.clear()
        self._generation = generation
        self._seq = 0
        self._open = True
        if self._driver is None or self._driver.done():
            self._driver = asyncio.create_task(self._drive())

    def close(self) -> None:
        """Stop accepting new audio. Queued frames are left as they are."""
        self._open = False

    def clear(self) -> None:
        """Discard every queued frame. A frame already playing finishes."""
        self._queue.clear()

    # ------------------------------------------------------------------
    # Inbound entry point
    # ------------------------------------------------------------------

    def accept(self, audio_data: str, *, generation: int) -> bool:
        """
        Decode one encoded chunk and append it to the tail.

        Returns True if the frame was queued.
        """
        if not self._open or generation != self._generation:
            self.stale_dropped += 1
            return False

        try:
            pcm = decode_bytes(audio_data)
        except MalformedAudio as e:
            self.malformed_dropped += 1
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "PLAYBACK_AUDIO_MALFORMED",
                "session_id": self._session_id,
                "generation": generation,
                "error": str(e),
            })
            return False

        if not pcm:
            return False

        self._seq += 1
        frame = AudioFrame(
            sequence_num=self._seq,
            pcm_bytes=pcm,
            sample_rate_hz=PLAYBACK_SAMPLE_RATE_HZ,
            ts_ms=_now_ms(),
        )

        if not self._queue.enqueue(frame):
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "PLAYBACK_QUEUE_OVERFLOW",
                "session_id": self._session_id,
                "generation": generation,
                "seq_num": frame.sequence_num,
                "queue_depth_s": self._queue.depth_seconds(),
            })
            return False

        self._wakeup.set()
        return True

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    async def _drive(self) -> None:
        while True:
            frame = self._queue.dequeue()
            if frame is None:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue

            try:
                await self._sink.play(frame)
            except asyncio.CancelledError:
                raise
            except Exception as e:  # pylint: disable=broad-exception-caught
                # One bad frame never stops playback
                self.sink_errors += 1
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "PLAYBACK_SINK_ERROR",
                    "session_id": self._session_id,
                    "seq_num": frame.sequence_num,
                    "error": str(e),
                    "error_type": type(e).__name__,
                })
            else:
                self.frames_played += 1

    # ------------------------------------------------------------------
    # Introspection / shutdown
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        return {
            **self._queue.snapshot(),
            "open": self._open,
            "generation": self._generation,
            "frames_played": self.frames_played,
            "malformed_dropped": self.malformed_dropped,
            "stale_dropped": self.stale_dropped,
            "sink_errors": self.sink_errors,
        }

    async def aclose(self) -> None:
        self.close()
        self.clear()
        if self._driver is not None and not self._driver.done():
            self._driver.cancel()
            await asyncio.gather(self._driver, return_exceptions=True)
        self._driver = None
        await self._sink.aclose()
