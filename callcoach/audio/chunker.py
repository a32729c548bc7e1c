"""
AudioChunker: silence-gated chunks for ASR (alternative to RollingBuffer).

Each pushed 20 ms frame is classified by webrtcvad. A chunk is cut once it holds at least
CHUNK_DURATION_MS with speech in it and silence has lasted SILENCE_COMMIT_MS. The last
OVERLAP_MS is carried into the next chunk so a word on the boundary is heard twice
rather than not at all; the commit horizon drops the duplicate.
"""
from __future__ import annotations

from typing import Callable

import webrtcvad

from callcoach.config import get_settings

ChunkCallback = Callable[[bytes, float], None]
SpeechDetector = Callable[[bytes], bool]


def webrtc_detector(aggressiveness: int | None = None) -> SpeechDetector:
    """webrtcvad accepts 10/20/30 ms frames of 16 kHz PCM; anything else counts as silence."""
    settings = get_settings()
    level = settings.VAD_AGGRESSIVENESS if aggressiveness is None else aggressiveness
    vad = webrtcvad.Vad(min(3, max(0, level)))
    frame_bytes, rate = settings.FRAME_BYTES, settings.SAMPLE_RATE

    def is_speech(frame: bytes) -> bool:
        return len(frame) == frame_bytes and vad.is_speech(frame, rate)

    return is_speech


class AudioChunker:
    def __init__(
        self,
        on_chunk: ChunkCallback,
        is_speech: SpeechDetector | None = None,
        chunk_duration_ms: int | None = None,
        overlap_ms: int | None = None,
        silence_commit_ms: int | None = None,
    ) -> None:
        s = get_settings()
        frame_ms = s.FRAME_MS
        self._frame_sec = frame_ms / 1000.0
        self._on_chunk = on_chunk
        self._is_speech = is_speech or webrtc_detector()
        self._min_frames = max(1, (chunk_duration_ms or s.CHUNK_DURATION_MS) // frame_ms)
        self._carry = (s.OVERLAP_MS if overlap_ms is None else overlap_ms) // frame_ms
        self._quiet_needed = max(1, (silence_commit_ms or s.SILENCE_COMMIT_MS) // frame_ms)

        self._frames: list[bytes] = []
        self._first_index = 0  # session frame index of self._frames[0]
        self._quiet = 0
        self._voiced = False

    def _start_sec(self) -> float:
        return self._first_index * self._frame_sec

    def _keep_tail(self, n: int) -> None:
        drop = max(0, len(self._frames) - n)
        self._first_index += drop
        del self._frames[:drop]

    def push(self, frame: bytes) -> None:
        self._frames.append(frame)
        if self._is_speech(frame):
            self._voiced, self._quiet = True, 0
        else:
            self._quiet += 1

        if not self._voiced:
            # leading silence: hold only the carry-over tail
            self._keep_tail(self._carry)
        elif len(self._frames) >= self._min_frames and self._quiet >= self._quiet_needed:
            self._on_chunk(b"".join(self._frames), self._start_sec())
            self._voiced, self._quiet = False, 0
            self._keep_tail(self._carry)

    def flush(self) -> tuple[bytes, float] | None:
        """On stop: what is left, as one chunk, if it contains speech."""
        chunk = (b"".join(self._frames), self._start_sec()) if self._frames and self._voiced else None
        self._first_index += len(self._frames)
        self._frames = []
        self._voiced, self._quiet = False, 0
        return chunk
