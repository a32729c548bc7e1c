"""Transcript handling: segment records, dual-source merge and live projection."""
from .merger import FeedbackFeed, SegmentMerger, merge_segments, render_transcript
from .models import AnnotationResult, CombinedSegment, TranscriptEvent, Unparseable

__all__ = [
    "AnnotationResult",
    "CombinedSegment",
    "FeedbackFeed",
    "SegmentMerger",
    "TranscriptEvent",
    "Unparseable",
    "merge_segments",
    "render_transcript",
]
