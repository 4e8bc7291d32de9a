"""
Local audio devices (sounddevice / PortAudio).

- MicrophoneSource: raw int16 capture at 16 kHz; the PortAudio callback
  thread hands each block to the event loop thread-safely
- SpeakerSink: raw int16 output at 24 kHz; blocking writes run in the
  default executor so playback never stalls the loop
"""

from __future__ import annotations

import asyncio
import time
from typing import Any, Callable

import sounddevice as sd

from audio.frames import AudioFrame
from audio.playback import AudioSink
from constants import (
    AUDIO_CHANNELS,
    CAPTURE_BLOCK_FRAMES,
    CAPTURE_SAMPLE_RATE_HZ,
    PLAYBACK_SAMPLE_RATE_HZ,
)
from observability.logger import log_event

_DTYPE = "int16"


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


class MicrophoneSource:
    """Callback-driven capture; on_chunk runs on the loop thread."""

    def __init__(
        self,
        *,
        on_chunk: Callable[[bytes], Any],
        device: int | None = None,
        blocksize: int = CAPTURE_BLOCK_FRAMES,
    ) -> None:
        self._on_chunk = on_chunk
        self._device = device
        self._blocksize = blocksize
        self._stream: sd.RawInputStream | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def running(self) -> bool:
        return self._stream is not None

    def start(self) -> None:
        """Open and start the input stream. Must be called on the loop thread."""
        if self._stream is not None:
            return
        self._loop = asyncio.get_running_loop()

        def _callback(indata: Any, frames: int, time_info: Any, status: sd.CallbackFlags) -> None:
            if status:
                log_event({
                    "ts_ms": _now_ms(),
                    "event_type": "MIC_STATUS",
                    "status": str(status),
                })
            loop = self._loop
            if loop is not None and not loop.is_closed():
                # Copy: the buffer is reused by PortAudio after return
                loop.call_soon_threadsafe(self._on_chunk, bytes(indata))

        stream = sd.RawInputStream(
            samplerate=CAPTURE_SAMPLE_RATE_HZ,
            channels=AUDIO_CHANNELS,
            dtype=_DTYPE,
            blocksize=self._blocksize,
            device=self._device,
            callback=_callback,
        )
        stream.start()
        self._stream = stream
        log_event({
            "ts_ms": _now_ms(),
            "event_type": "MIC_STARTED",
            "device": self._device,
            "sample_rate_hz": CAPTURE_SAMPLE_RATE_HZ,
        })

    def stop(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()
        log_event({"ts_ms": _now_ms(), "event_type": "MIC_STOPPED"})


class SpeakerSink(AudioSink):
    """PortAudio output stream, opened lazily on the first frame."""

    def __init__(self, *, device: int | None = None) -> None:
        self._device = device
        self._stream: sd.RawOutputStream | None = None

    def _ensure_stream(self) -> sd.RawOutputStream:
        if self._stream is None:
            stream = sd.RawOutputStream(
                samplerate=PLAYBACK_SAMPLE_RATE_HZ,
                channels=AUDIO_CHANNELS,
                dtype=_DTYPE,
                device=self._device,
            )
            stream.start()
            self._stream = stream
        return self._stream

    async def play(self, frame: AudioFrame) -> None:
        stream = self._ensure_stream()
        loop = asyncio.get_running_loop()
        # RawOutputStream.write blocks until the device has room
        underflowed = await loop.run_in_executor(None, stream.write, frame.pcm_bytes)
        if underflowed:
            log_event({
                "ts_ms": _now_ms(),
                "event_type": "SPEAKER_UNDERFLOW",
                "seq_num": frame.sequence_num,
            })

    async def aclose(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()
