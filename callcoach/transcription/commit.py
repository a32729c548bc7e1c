"""
SegmentCommitter: turns overlapping ASR windows into non-duplicated TranscriptEvents.

Rolling windows overlap (e.g. 5s window, 1s step), so Whisper sees the same speech several
times. Only timestamps decide uniqueness: a segment ending at or before the committed
horizon is skipped. A segment is committed once it starts before (window_end - commit_delay),
or when the stream is being flushed. Text already committed is trimmed by overlap matching
against the accumulated transcript, because segment boundaries differ between windows.
"""
from __future__ import annotations

import logging
import re

from callcoach.asr.base import ASRResult
from callcoach.diarization.speaker_tracker import SpeakerTracker
from callcoach.transcript.models import TranscriptEvent

logger = logging.getLogger(__name__)

# Min overlap length (chars) so tiny fragments like " the " are not matched across segments
_MIN_OVERLAP_CHARS = 12
# Committed lines compared against when trimming overlap
_RECENT_LINES = 3
# Absorbs timestamp jitter between overlapping windows
_COMMIT_EPSILON = 0.05


def normalize_commit_text(text: str) -> str:
    """Collapse whitespace and repeated punctuation."""
    if not text:
        return ""
    text = re.sub(r"\s+", " ", text.strip())
    text = re.sub(r"([.!?,;:])\1+", r"\1", text)
    return text.strip()


def _normalize_for_overlap(s: str) -> str:
    s = re.sub(r"[.,;:!?]", " ", s.lower())
    return re.sub(r"\s+", " ", s).strip()


def new_text_only(committed: list[str], candidate: str) -> str | None:
    """
    Return the part of candidate not already at the end of the recently committed text,
    or None when candidate repeats it entirely. Short candidates are only compared by
    word-aligned overlap so a legitimately repeated "Yes." is kept.
    """
    new = normalize_commit_text(candidate)
    new_norm = _normalize_for_overlap(new)
    if not new_norm:
        return None
    recent = _normalize_for_overlap(" ".join(committed[-_RECENT_LINES:]))
    if not recent:
        return new
    if len(new_norm) >= _MIN_OVERLAP_CHARS and new_norm in recent:
        return None

    new_words = new.split()
    norm_words = new_norm.split()
    for n in range(len(norm_words) - 1, 0, -1):
        prefix = " ".join(norm_words[:n])
        if len(prefix) < _MIN_OVERLAP_CHARS:
            break
        if recent.endswith(prefix):
            return normalize_commit_text(" ".join(new_words[n:])) or None
    return new


class SegmentCommitter:
    """One per source. Holds the committed horizon and the committed text."""

    def __init__(self, tracker: SpeakerTracker, commit_delay: float) -> None:
        self._tracker = tracker
        self._commit_delay = commit_delay
        self._committed_until = 0.0
        self._committed_text: list[str] = []

    def commit(
        self,
        result: ASRResult,
        chunk_start: float,
        chunk_duration: float,
        flushing: bool = False,
    ) -> list[TranscriptEvent]:
        events: list[TranscriptEvent] = []
        horizon = chunk_start + chunk_duration - self._commit_delay

        if not result.segments:
            # Engine without timings: the whole chunk is one utterance
            text = new_text_only(self._committed_text, result.text)
            chunk_end = chunk_start + chunk_duration
            if text and chunk_end > self._committed_until + _COMMIT_EPSILON:
                events.append(self._emit(text, max(chunk_start, self._committed_until), chunk_end))
            return events

        for seg in result.segments:
            start = chunk_start + seg.start
            end = chunk_start + seg.end
            if end <= self._committed_until + _COMMIT_EPSILON:
                continue
            if not (end <= horizon or start < horizon or flushing):
                continue
            raw = normalize_commit_text(seg.text)
            if not raw:
                continue
            text = new_text_only(self._committed_text, raw)
            self._committed_until = max(self._committed_until, end)
            if text is None:
                continue
            events.append(self._emit(text, start, end))
        return events

    def _emit(self, text: str, start: float, end: float) -> TranscriptEvent:
        self._committed_text.append(text)
        self._committed_until = max(self._committed_until, end)
        speaker = self._tracker.assign(start, end)
        return TranscriptEvent(speaker_id=speaker, text=text, start=max(0.0, start), end=max(start, end))

    @property
    def committed_until(self) -> float:
        return self._committed_until
