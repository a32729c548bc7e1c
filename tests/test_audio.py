"""Tests for live audio framing and silence-gated chunking."""

from __future__ import annotations

import pytest
from fakes import FRAME_BYTES

from callcoach.audio.chunker import AudioChunker
from callcoach.audio.receiver import AudioReceiver

SPEECH = b"\x01" * FRAME_BYTES
QUIET = b"\x00" * FRAME_BYTES


def _chunker(chunks: list) -> AudioChunker:
    # 100 ms minimum chunk, 40 ms carry-over, 60 ms of silence closes a chunk
    return AudioChunker(
        on_chunk=lambda data, start: chunks.append((len(data) // FRAME_BYTES, start)),
        is_speech=lambda frame: frame == SPEECH,
        chunk_duration_ms=100,
        overlap_ms=40,
        silence_commit_ms=60,
    )


def test_receiver_yields_whole_frames_and_keeps_remainder() -> None:
    receiver = AudioReceiver(frame_bytes=4)

    assert list(receiver.frames(b"abcdef")) == [b"abcd"]
    assert receiver.pending == 2
    assert list(receiver.frames(b"ghijklmno")) == [b"efgh", b"ijkl"]
    assert receiver.pending == 3

    receiver.reset()
    assert receiver.pending == 0


def test_chunker_cuts_after_silence_with_carry_over() -> None:
    chunks: list = []
    chunker = _chunker(chunks)

    for frame in [QUIET] * 5 + [SPEECH] * 4 + [QUIET] * 3:
        chunker.push(frame)

    # two leading quiet frames are kept as carry-over: frames 3..11
    assert chunks == [(9, pytest.approx(0.06))]

    for frame in [SPEECH] * 2:
        chunker.push(frame)
    data, start = chunker.flush()
    assert data == b"".join([QUIET] * 2 + [SPEECH] * 2)
    assert start == pytest.approx(0.2)
    assert chunker.flush() is None


def test_chunker_waits_for_minimum_length() -> None:
    chunks: list = []
    chunker = _chunker(chunks)

    for frame in [SPEECH] + [QUIET] * 3:
        chunker.push(frame)

    assert chunks == []


def test_chunker_drops_pure_silence_on_flush() -> None:
    chunker = _chunker([])
    for _ in range(10):
        chunker.push(QUIET)

    assert chunker.flush() is None
