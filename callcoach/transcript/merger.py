"""
SegmentMerger: reconciles transcript events with asynchronous annotations.

Two append-only logs (events, annotations) are kept; the live transcript is a projection
recomputed on every arrival. A late annotation therefore attaches retroactively to a segment
that was already displayed unannotated.

Matching: an annotation belongs to the event whose start is within tolerance of the
annotation timestamp; if several annotations qualify, the nearest wins. Ties go to the
earlier timestamp, then to the text, so the result does not depend on arrival order.
"""
from __future__ import annotations

import logging
from collections import deque
from typing import Callable, Iterable, Optional, Sequence

from callcoach.config import get_settings
from callcoach.transcript.models import AnnotationResult, CombinedSegment, TranscriptEvent

logger = logging.getLogger(__name__)

# Resolves a raw provider speaker id to its display label.
SpeakerResolver = Callable[[str], str]


def _nearest_annotation(
    event: TranscriptEvent,
    annotations: Sequence[AnnotationResult],
    tolerance: float,
) -> Optional[AnnotationResult]:
    best: Optional[AnnotationResult] = None
    best_key: tuple | None = None
    for ann in annotations:
        diff = abs(ann.timestamp - event.start)
        if diff > tolerance:
            continue
        key = (diff, ann.timestamp, ann.text)
        if best_key is None or key < best_key:
            best, best_key = ann, key
    return best


def merge_segments(
    events: Iterable[TranscriptEvent],
    annotations: Sequence[AnnotationResult],
    tolerance: float = 2.0,
    resolve_speaker: SpeakerResolver | None = None,
) -> list[CombinedSegment]:
    """
    Pure merge of both logs into CombinedSegments, stably ordered by start.
    An annotation matches when |timestamp - start| <= tolerance (the bound is inclusive).
    Events without a matching annotation keep emotion/sentiment as None.
    """
    combined: list[CombinedSegment] = []
    for event in events:
        match = _nearest_annotation(event, annotations, tolerance)
        speaker = resolve_speaker(event.speaker_id) if resolve_speaker else event.speaker_id
        combined.append(
            CombinedSegment(
                speaker=speaker or "Unknown",
                text=event.text,
                start=event.start,
                end=event.end,
                emotion=match.emotion if match else None,
                sentiment=match.sentiment if match else None,
            )
        )
    combined.sort(key=lambda s: s.start)
    return combined


def render_transcript(segments: Iterable[CombinedSegment]) -> str:
    """Live view: one "[speaker] text (emotion)" line per segment."""
    return "\n".join(seg.display_line() for seg in segments)


class FeedbackFeed:
    """Most-recent-N coaching remarks, newest first. Independent of the segment merge."""

    def __init__(self, size: int | None = None) -> None:
        settings = get_settings()
        self._items: deque[str] = deque(maxlen=size or settings.FEEDBACK_FEED_SIZE)

    def push(self, feedback: str | None) -> bool:
        text = (feedback or "").strip()
        if not text:
            return False
        self._items.appendleft(text)
        return True

    def items(self) -> list[str]:
        return list(self._items)

    def clear(self) -> None:
        self._items.clear()


class SegmentMerger:
    """
    Holds the event and annotation logs for one session and re-runs the merge on every
    arrival. After freeze() further annotations are ignored (late results after stop).
    """

    def __init__(
        self,
        tolerance: float | None = None,
        resolve_speaker: SpeakerResolver | None = None,
    ) -> None:
        settings = get_settings()
        self._tolerance = tolerance if tolerance is not None else settings.MERGE_TOLERANCE_SEC
        self._resolve_speaker = resolve_speaker
        self._events: list[TranscriptEvent] = []
        self._annotations: list[AnnotationResult] = []
        self._segments: list[CombinedSegment] = []
        self._frozen = False

    def add_event(self, event: TranscriptEvent) -> list[CombinedSegment]:
        self._events.append(event)
        return self._remerge()

    def add_annotation(self, annotation: AnnotationResult) -> bool:
        """Append annotation and re-merge. Returns False when the merger is frozen."""
        if self._frozen:
            logger.debug("Dropping late annotation at %.2fs (merger frozen)", annotation.timestamp)
            return False
        self._annotations.append(annotation)
        self._remerge()
        return True

    def _remerge(self) -> list[CombinedSegment]:
        self._segments = merge_segments(
            self._events, self._annotations, self._tolerance, self._resolve_speaker
        )
        return self._segments

    def freeze(self) -> list[CombinedSegment]:
        """Final merge; later annotations are not applied."""
        self._frozen = True
        return self._remerge()

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def segments(self) -> list[CombinedSegment]:
        """Copy of the current projection; callers may mutate it freely."""
        return [CombinedSegment(**s.to_dict()) for s in self._segments]

    @property
    def transcript(self) -> str:
        return render_transcript(self._segments)

    @property
    def events(self) -> list[TranscriptEvent]:
        return list(self._events)

    @property
    def annotations(self) -> list[AnnotationResult]:
        return list(self._annotations)

    def clear(self) -> None:
        self._events.clear()
        self._annotations.clear()
        self._segments = []
        self._frozen = False
