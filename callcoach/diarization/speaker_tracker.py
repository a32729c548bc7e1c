"""
Speaker tracking for diarization-only transcription.

- Assigns raw provider speaker ids (guest-1, guest-2, ...) by gap-based alternation.
- One tracker per session; state lives on the instance, not in module globals.
- Raw ids are mapped to display labels (Speaker A, Speaker B) by SpeakerRegistry.

Limitations (MUST be kept in sync with product behavior):
- Overlapping speech may be partially lost on single-channel input; we do not separate audio.
- Rapid question/answer exchanges are often attributed to one speaker; the correction pass
  after recording splits and reassigns them.
- Accuracy depends on mic quality and distance.
"""
from __future__ import annotations

import logging

from callcoach.config import get_settings

logger = logging.getLogger(__name__)

RAW_SPEAKER_PREFIX = "guest-"
UNKNOWN_SPEAKER = "unknown"


def raw_speaker_id(index: int) -> str:
    return f"{RAW_SPEAKER_PREFIX}{index + 1}"


class SpeakerTracker:
    """
    Assigns a raw speaker id to each committed segment.
    A gap of at least gap_sec since the previous segment switches to the next speaker.
    """

    def __init__(
        self,
        enabled: bool | None = None,
        gap_sec: float | None = None,
        max_speakers: int | None = None,
    ) -> None:
        settings = get_settings()
        self._enabled = enabled if enabled is not None else settings.DIARIZATION_ENABLED
        self._gap_sec = gap_sec if gap_sec is not None else settings.DIARIZATION_SPEAKER_GAP_SEC
        self._max_speakers = max(1, max_speakers or settings.DIARIZATION_MAX_SPEAKERS)
        self._last_index = 0
        self._last_end = 0.0

    def assign(self, start_time: float, end_time: float) -> str:
        """Return the raw speaker id for a segment spanning [start_time, end_time]."""
        if not self._enabled:
            return UNKNOWN_SPEAKER
        gap = start_time - self._last_end
        if gap >= self._gap_sec and self._last_end > 0:
            self._last_index = (self._last_index + 1) % self._max_speakers
        self._last_end = max(self._last_end, end_time)
        return raw_speaker_id(self._last_index)

    def reset(self) -> None:
        self._last_index = 0
        self._last_end = 0.0
