"""Schemas for the session endpoints."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from callcoach.schemas.analysis import AnalysisSummary, SegmentModel


class SessionError(BaseModel):
    kind: str
    message: str


class SessionSnapshot(BaseModel):
    session_id: str
    state: str
    mode: str = Field("live", description="live | upload")
    transcript: str = ""
    segments: list[SegmentModel] = Field(default_factory=list)
    feedback: list[str] = Field(default_factory=list)
    current_speaker: Optional[str] = None
    progress: float = 0.0
    error: Optional[SessionError] = None
    record_id: Optional[str] = None


class UploadResponse(BaseModel):
    session_id: str
    state: str
    analysis: Optional[AnalysisSummary] = None
    error: Optional[SessionError] = None
