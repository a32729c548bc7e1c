"""
AudioReceiver: cuts the live PCM byte stream into fixed 20 ms frames.

WebSocket messages arrive with arbitrary sizes; windowing and VAD both need whole frames.
Bytes that do not complete a frame wait for the next message.
"""
from __future__ import annotations

from typing import Iterator

from callcoach.config import get_settings


class AudioReceiver:
    def __init__(self, frame_bytes: int | None = None) -> None:
        self._frame_bytes = frame_bytes or get_settings().FRAME_BYTES
        self._pending = bytearray()

    @property
    def pending(self) -> int:
        """Bytes of an incomplete frame still waiting."""
        return len(self._pending)

    def frames(self, data: bytes) -> Iterator[bytes]:
        """Add data and yield every frame it completes."""
        self._pending += data
        size = self._frame_bytes
        whole = len(self._pending) - len(self._pending) % size
        for offset in range(0, whole, size):
            yield bytes(self._pending[offset:offset + size])
        del self._pending[:whole]

    def reset(self) -> None:
        self._pending = bytearray()
