"""
RollingBuffer: time-based audio window for real-time STT (no silence gating).

We keep a fixed window (e.g. 5s) of the most recent audio and hand it to ASR every
STEP seconds once the window is full. Consecutive windows overlap; the transcription
source commits segments by timestamp so the overlap never yields duplicate events.
"""
from __future__ import annotations

from collections import deque
from typing import Callable

from callcoach.config import get_settings

# (chunk_bytes, chunk_start_sec)
ChunkCallback = Callable[[bytes, float], None]


class RollingBuffer:
    """
    Maintains a rolling window of PCM frames. Emits (chunk_bytes, chunk_start_sec)
    every step_sec when the window is full.
    """

    def __init__(
        self,
        on_chunk: ChunkCallback,
        frame_bytes: int | None = None,
        window_sec: float | None = None,
        step_sec: float | None = None,
        min_chunk_sec: float | None = None,
    ) -> None:
        settings = get_settings()
        self._frame_bytes = frame_bytes or settings.FRAME_BYTES
        self._frame_sec = settings.FRAME_MS / 1000.0
        frames_per_sec = int(1.0 / self._frame_sec)
        window_sec = window_sec if window_sec is not None else settings.STT_WINDOW_SECONDS
        step_sec = step_sec if step_sec is not None else settings.STT_STEP_SECONDS
        min_chunk_sec = min_chunk_sec if min_chunk_sec is not None else settings.STT_MIN_CHUNK_SECONDS
        self._on_chunk = on_chunk

        self._window_frames = max(1, int(frames_per_sec * window_sec))
        self._step_frames = max(1, int(frames_per_sec * step_sec))
        self._min_frames = max(1, int(frames_per_sec * min_chunk_sec))

        self._buffer: deque[bytes] = deque(maxlen=self._window_frames)
        self._total_frames = 0
        self._last_emit_frame = -1

    def push(self, frame: bytes) -> None:
        """Append one frame. May trigger on_chunk when the step interval is reached."""
        self._buffer.append(frame)
        self._total_frames += 1

        if len(self._buffer) < max(self._min_frames, self._window_frames):
            return
        if self._last_emit_frame >= 0 and (self._total_frames - self._last_emit_frame) < self._step_frames:
            return

        chunk = b"".join(self._buffer)
        chunk_start_sec = (self._total_frames - self._window_frames) * self._frame_sec
        self._last_emit_frame = self._total_frames
        self._on_chunk(chunk, chunk_start_sec)

    def flush(self) -> tuple[bytes, float] | None:
        """On stop: return the remaining window if >= min_frames. Already committed segments are skipped downstream."""
        if len(self._buffer) < self._min_frames:
            return None
        chunk = b"".join(self._buffer)
        chunk_start_sec = (self._total_frames - len(self._buffer)) * self._frame_sec
        self._last_emit_frame = self._total_frames
        return (chunk, chunk_start_sec)

    @property
    def elapsed_sec(self) -> float:
        return self._total_frames * self._frame_sec
