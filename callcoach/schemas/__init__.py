"""Pydantic schemas for provider payloads, stored analyses and API responses."""
from callcoach.schemas.analysis import (
    AnalysisRecord,
    AnalysisSummary,
    SegmentModel,
    SentimentPoint,
    SessionMetrics,
    SpeakerEntry,
    StoredAnalysis,
)
from callcoach.schemas.annotation import (
    AnnotationPayload,
    FullAnalysis,
    SegmentSplit,
    SpeakerCorrections,
    SpeakerReassignment,
    SplitPart,
)
from callcoach.schemas.session import SessionError, SessionSnapshot, UploadResponse

__all__ = [
    "AnalysisRecord",
    "AnalysisSummary",
    "AnnotationPayload",
    "FullAnalysis",
    "SegmentModel",
    "SegmentSplit",
    "SentimentPoint",
    "SessionError",
    "SessionMetrics",
    "SessionSnapshot",
    "SpeakerCorrections",
    "SpeakerEntry",
    "SpeakerReassignment",
    "SplitPart",
    "StoredAnalysis",
    "UploadResponse",
]
