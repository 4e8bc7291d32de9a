# pylint: disable=missing-module-docstring,missing-function-docstring

import time

import pytest

from audio.frames import AudioFrame
from audio.queues import AudioFrameQueue

# 250 samples at 1 kHz: exactly representable depth arithmetic
FRAME_S = 0.25


def make_frame(seq: int, samples: int = 250) -> AudioFrame:
    return AudioFrame(
        sequence_num=seq,
        pcm_bytes=b"\x00\x00" * samples,
        sample_rate_hz=1000,
        ts_ms=int(time.time() * 1000),
    )


# ---------------------------------------------------------------------
# depth_seconds math
# ---------------------------------------------------------------------

def test_depth_seconds_exact():
    q = AudioFrameQueue(max_depth_s=1.0)

    q.enqueue(make_frame(1))
    q.enqueue(make_frame(2))
    q.enqueue(make_frame(3))

    assert q.depth_seconds() == 3 * FRAME_S
    assert len(q) == 3


def test_depth_tracks_variable_frame_sizes():
    q = AudioFrameQueue(max_depth_s=1.0)

    q.enqueue(make_frame(1, samples=500))
    q.enqueue(make_frame(2, samples=125))

    assert q.depth_seconds() == 0.625
    q.dequeue()
    assert q.depth_seconds() == 0.125


def test_non_positive_bound_rejected():
    with pytest.raises(ValueError):
        AudioFrameQueue(max_depth_s=0)


# ---------------------------------------------------------------------
# Overflow behavior
# ---------------------------------------------------------------------

def test_overflow_drops_newest():
    max_depth = 2 * FRAME_S
    q = AudioFrameQueue(max_depth_s=max_depth)

    assert q.enqueue(make_frame(1)) is True
    assert q.enqueue(make_frame(2)) is True

    # Would exceed max_depth_s
    assert q.enqueue(make_frame(3)) is False

    assert q.drops.overflow == 1
    assert q.total_drops() == 1
    assert q.depth_seconds() == max_depth

    head = q.peek()
    assert head is not None
    assert head.sequence_num == 1


def test_frame_longer_than_bound_is_overflow_even_when_dropping_oldest():
    q = AudioFrameQueue(max_depth_s=FRAME_S)
    q.enqueue(make_frame(1))

    assert q.enqueue(make_frame(2, samples=500), drop_oldest=True) is False

    assert q.drops.overflow == 1
    assert q.drops.stale == 0
    assert len(q) == 1


# ---------------------------------------------------------------------
# drop_oldest behavior
# ---------------------------------------------------------------------

def test_drop_oldest_evicts_head():
    q = AudioFrameQueue(max_depth_s=3 * FRAME_S)

    q.enqueue(make_frame(1))
    q.enqueue(make_frame(2))
    q.enqueue(make_frame(3))

    assert q.enqueue(make_frame(4), drop_oldest=True) is True

    assert q.drops.stale == 1
    assert q.total_drops() == 1

    head = q.peek()
    assert head is not None
    assert head.sequence_num == 2
    assert q.depth_seconds() == 3 * FRAME_S


def test_stale_and_overflow_accounted_separately():
    q = AudioFrameQueue(max_depth_s=2 * FRAME_S)

    q.enqueue(make_frame(1))
    q.enqueue(make_frame(2))

    # Overflow
    q.enqueue(make_frame(3))
    # Oldest evicted
    q.enqueue(make_frame(4), drop_oldest=True)

    assert q.drops.overflow == 1
    assert q.drops.stale == 1
    assert q.total_drops() == 2

    snap = q.snapshot()
    assert snap["dropped_overflow"] == 1
    assert snap["dropped_stale"] == 1
    assert snap["frames"] == 2


# ---------------------------------------------------------------------
# clear / dequeue
# ---------------------------------------------------------------------

def test_clear_is_not_counted_as_drop():
    q = AudioFrameQueue(max_depth_s=1.0)
    q.enqueue(make_frame(1))
    q.enqueue(make_frame(2))

    q.clear()

    assert q.is_empty()
    assert q.depth_seconds() == 0.0
    assert q.total_drops() == 0
    assert q.dequeue() is None


def test_dequeue_is_fifo():
    q = AudioFrameQueue(max_depth_s=1.0)
    for seq in (1, 2, 3):
        q.enqueue(make_frame(seq))

    out = [q.dequeue().sequence_num for _ in range(3)]

    assert out == [1, 2, 3]
