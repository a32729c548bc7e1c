"""
AudioRecorder: per-session capture of the PCM stream into one audio artifact (WAV/MP3).

- In-memory buffer only; the file is written ONCE on finalize() (session stop).
- WAV: one open, header once, all frames, close once. MP3: write WAV first, then convert.
- discard() drops the buffer without writing (session reset).
- finalize() is blocking; run it in an executor.
"""
from __future__ import annotations

import logging
import os
import time
import uuid
import wave
from typing import Optional

from callcoach.config import get_settings

logger = logging.getLogger(__name__)


def _write_wav_sync(pcm_bytes: bytes, out_path: str, sample_rate: int, sample_width: int, channels: int) -> None:
    os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
    with wave.open(out_path, "wb") as wav:
        wav.setnchannels(channels)
        wav.setsampwidth(sample_width)
        wav.setframerate(sample_rate)
        wav.writeframes(pcm_bytes)


def _wav_to_mp3_sync(wav_path: str, mp3_path: str, bitrate: str) -> None:
    from pydub import AudioSegment

    segment = AudioSegment.from_wav(wav_path)
    segment.export(mp3_path, format="mp3", bitrate=bitrate)


class AudioRecorder:
    def __init__(self, session_id: str | None = None, record_dir: str | None = None) -> None:
        settings = get_settings()
        self._session_id = session_id or uuid.uuid4().hex[:12]
        self._buffer = bytearray()
        self._sample_rate = settings.SAMPLE_RATE
        self._sample_width = settings.SAMPLE_WIDTH
        self._channels = settings.CHANNELS
        self._record_dir = record_dir or settings.RECORD_DIR
        self._format = settings.RECORD_FORMAT
        self._bitrate = settings.RECORD_BITRATE
        self._finalized = False
        self._dropped_chunks = 0

    def append(self, data: bytes) -> None:
        if self._finalized:
            return
        if not data or len(data) % self._sample_width != 0:
            self._dropped_chunks += 1
            logger.debug("Recording: dropped malformed chunk (%d bytes)", len(data))
            return
        self._buffer.extend(data)

    @property
    def duration_sec(self) -> float:
        return len(self._buffer) / float(self._sample_rate * self._sample_width * self._channels)

    def finalize(self) -> Optional[str]:
        """Write the artifact once. Returns its path, or None when nothing was captured."""
        if self._finalized:
            return None
        self._finalized = True
        if not self._buffer:
            if self._dropped_chunks:
                logger.debug("Recording: no data to write (all chunks dropped: %d)", self._dropped_chunks)
            return None
        base = f"session_{self._session_id}_{int(time.time())}"
        wav_path = os.path.join(self._record_dir, f"{base}.wav")
        _write_wav_sync(bytes(self._buffer), wav_path, self._sample_rate, self._sample_width, self._channels)
        self._buffer = bytearray()

        if self._format == "mp3":
            mp3_path = os.path.join(self._record_dir, f"{base}.mp3")
            _wav_to_mp3_sync(wav_path, mp3_path, self._bitrate)
            try:
                os.remove(wav_path)
            except OSError:
                logger.warning("Recording: could not remove intermediate %s", wav_path)
            return mp3_path
        return wav_path

    def discard(self) -> None:
        self._finalized = True
        self._buffer = bytearray()
