"""
Outbound audio pipeline (mic -> server).

Turns captured PCM16 chunks into audio_data messages, only while the
session is ACTIVE.

Design:
- submit() is synchronous and never blocks the capture source
- Frames wait in a bounded queue; under pressure the OLDEST are dropped
  so what reaches the server stays close to live
- A single sender task drains the queue; each send is bounded by a timeout
  and a frame that cannot be sent in time is dropped, not retried
- Closed pipelines drop submissions silently (start/stop races are normal)
"""

from __future__ import annotations

import asyncio
import time
from typing import Any

from adapters.transport.base import ChannelError, MessageChannel
from audio.codec import analyze, encode
from audio.frames import AudioFrame
from audio.queues import AudioFrameQueue
from constants import (
    CAPTURE_SAMPLE_RATE_HZ,
    OUTBOUND_AUDIO_Q_MAX_S,
    OUTBOUND_SEND_TIMEOUT_MS,
)
from observability.logger import log_event
from protocol.messages import AUDIO_DATA, build_audio_data


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class OutboundAudioPipeline:
    """Capture-side gate, bounded queue and sender task."""

    def __init__(
        self,
        *,
        channel: MessageChannel,
        session_id: str | None = None,
        max_depth_s: float = OUTBOUND_AUDIO_Q_MAX_S,
        send_timeout_ms: int = OUTBOUND_SEND_TIMEOUT_MS,
    ) -> None:
        self._channel = channel
        self._session_id = session_id
        self._send_timeout_s = send_timeout_ms / 1000.0

        self._queue = AudioFrameQueue(max_depth_s=max_depth_s)
        self._open = False
        self._generation = 0
        self._seq = 0

        self._wakeup = asyncio.Event()
        self._sender: asyncio.Task[None] | None = None

        self.frames_sent = 0
        self.send_timeouts = 0
        self.send_failures = 0

    # ------------------------------------------------------------------
    # Gate
    # ------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def generation(self) -> int:
        return self._generation

    def open(self, generation: int) -> None:
        """Start accepting capture for a session. Requires a running loop."""
        self._queue.clear()
        self._generation = generation
        self._seq = 0
        self._open = True
        if self._sender is None or self._sender.done():
            self._sender = asyncio.create_task(self._send_loop())

    def close(self) -> None:
        """Stop accepting capture and discard queued-but-unsent frames."""
        self._open = False
        self._queue.clear()

    # ------------------------------------------------------------------
    # Capture entry point
    # ------------------------------------------------------------------

    def submit(self, pcm_bytes: bytes) -> bool:
        """
        Offer one captured PCM16LE chunk.

        Returns True if the frame was queued for sending.
        """
        if not self._open or not pcm_bytes:
            return False

        levels = analyze(pcm_bytes)
        self._seq += 1
        frame = AudioFrame(
            sequence_num=self._seq,
            pcm_bytes=bytes(pcm_bytes),
            sample_rate_hz=CAPTURE_SAMPLE_RATE_HZ,
            ts_ms=_now_ms(),
            has_significant_audio=levels.has_significant_audio,
            peak_amplitude=levels.peak_amplitude,
        )

        queued = self._queue.enqueue(frame, drop_oldest=True)
        if queued:
            self._wakeup.set()
        return queued

    # ------------------------------------------------------------------
    # Sender
    # ------------------------------------------------------------------

    async def _send_loop(self) -> None:
        while True:
            frame = self._queue.dequeue()
            if frame is None:
                self._wakeup.clear()
                await self._wakeup.wait()
                continue
            await self._send_frame(frame)

    async def _send_frame(self, frame: AudioFrame) -> None:
        payload = build_audio_data(
            audio_data=encode(frame.pcm_bytes),
            has_audio=frame.has_significant_audio,
            max_amplitude=frame.peak_amplitude,
        )
        try:
            await asyncio.wait_for(
                self._channel.send(AUDIO_DATA, payload),
                timeout=self._send_timeout_s,
            )
        except asyncio.TimeoutError:
            self.send_timeouts += 1
            self._log_drop(frame, "send_timeout")
        except ChannelError as e:
            self.send_failures += 1
            self._log_drop(frame, "send_failed", error=str(e))
        else:
            self.frames_sent += 1

    def _log_drop(self, frame: AudioFrame, reason: str, **extra: Any) -> None:
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "OUTBOUND_AUDIO_DROPPED",
            "session_id": self._session_id,
            "generation": self._generation,
            "seq_num": frame.sequence_num,
            "reason": reason,
            **extra,
        })

    # ------------------------------------------------------------------
    # Introspection / shutdown
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        return {
            **self._queue.snapshot(),
            "open": self._open,
            "generation": self._generation,
            "frames_sent": self.frames_sent,
            "send_timeouts": self.send_timeouts,
            "send_failures": self.send_failures,
        }

    async def aclose(self) -> None:
        self.close()
        if self._sender is not None and not self._sender.done():
            self._sender.cancel()
            await asyncio.gather(self._sender, return_exceptions=True)
        self._sender = None
