"""
Failure taxonomy for the conversation pipeline.

Fatal failures end the current phase and return the session to IDLE.
Recoverable failures are logged and the pipeline continues with degraded output.
"""
from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    ACQUISITION = "acquisition_failure"
    TRANSCRIPTION = "transcription_failure"
    ANNOTATION = "annotation_failure"
    FULL_ANALYSIS = "full_analysis_failure"
    CORRECTION = "correction_failure"
    PERSISTENCE = "persistence_failure"
    INVALID_TRANSITION = "invalid_transition"


class CallCoachError(Exception):
    """Base error. kind identifies the taxonomy entry; fatal decides whether the session aborts."""

    kind: ErrorKind
    fatal: bool = True

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind.value, "message": self.message}


class AcquisitionFailure(CallCoachError):
    """Audio source could not be opened (no engine, unreadable file)."""

    kind = ErrorKind.ACQUISITION


class TranscriptionFailure(CallCoachError):
    """Provider-side cancellation with an error mid-session."""

    kind = ErrorKind.TRANSCRIPTION


class AnnotationFailure(CallCoachError):
    kind = ErrorKind.ANNOTATION
    fatal = False


class FullAnalysisFailure(CallCoachError):
    kind = ErrorKind.FULL_ANALYSIS
    fatal = False


class CorrectionFailure(CallCoachError):
    kind = ErrorKind.CORRECTION
    fatal = False


class PersistenceFailure(CallCoachError):
    """Record could not be stored; the session does not reach DONE."""

    kind = ErrorKind.PERSISTENCE


class InvalidTransition(CallCoachError):
    kind = ErrorKind.INVALID_TRANSITION
