"""Pydantic schemas for finished analyses: metrics, sentiment series and the persisted record."""
from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from callcoach.transcript.models import CombinedSegment


class SegmentModel(BaseModel):
    """Serialized CombinedSegment."""

    speaker: str
    text: str
    start: float = Field(..., ge=0)
    end: float = Field(..., ge=0)
    emotion: Optional[str] = None
    sentiment: Optional[str] = None

    @classmethod
    def from_segment(cls, seg: CombinedSegment) -> "SegmentModel":
        return cls(**seg.to_dict())


class SessionMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    talk_to_listen_ratio: str = "50:50"
    sentiment_score_avg: int = Field(50, ge=0, le=100)
    engagement_score: int = Field(50, ge=0, le=100)
    words_per_minute: float = 0.0
    question_count: int = 0
    filler_words: dict[str, int] = Field(default_factory=dict)
    filler_word_count: int = 0
    keywords: dict[str, int] = Field(default_factory=dict)
    speaker_talk_time: dict[str, float] = Field(default_factory=dict)


class SentimentPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    time: str  # m:ss
    sentiment: int = Field(..., ge=0, le=100)


class SpeakerEntry(BaseModel):
    raw_id: str
    label: str


class AnalysisRecord(BaseModel):
    """Everything stored for one finished conversation. id and created_at are added by the store."""

    model_config = ConfigDict(frozen=True)

    title: str
    audio_ref: Optional[str] = None
    source: Literal["live", "upload"] = "live"
    uploaded_file_name: Optional[str] = None
    segments: list[SegmentModel] = Field(default_factory=list)
    transcript: list[str] = Field(default_factory=list, description='"[speaker] text" per segment')
    metrics: SessionMetrics = Field(default_factory=SessionMetrics)
    sentiment_graph: list[SentimentPoint] = Field(default_factory=list)
    coaching_card: list[str] = Field(default_factory=list, description="STRENGTH: / OPPORTUNITY: lines")
    strengths: list[str] = Field(default_factory=list)
    opportunities: list[str] = Field(default_factory=list)
    competitors: list[str] = Field(default_factory=list)
    keywords: dict[str, int] = Field(default_factory=dict)
    questions: list[str] = Field(default_factory=list)
    coaching_tips: list[str] = Field(default_factory=list)
    overall_summary: str = ""
    analysis_placeholder: bool = False
    speakers: list[SpeakerEntry] = Field(default_factory=list)
    duration: str = "0:00"
    user_id: str = "local"


class StoredAnalysis(AnalysisRecord):
    id: str
    created_at: datetime


class AnalysisSummary(BaseModel):
    """Row of the analyses listing."""

    id: str
    title: str
    date: datetime
    duration: str
    source: Literal["live", "upload"]
    sentiment: int
    engagement: int

    @classmethod
    def from_stored(cls, stored: StoredAnalysis) -> "AnalysisSummary":
        return cls(
            id=stored.id,
            title=stored.title,
            date=stored.created_at,
            duration=stored.duration,
            source=stored.source,
            sentiment=stored.metrics.sentiment_score_avg,
            engagement=stored.metrics.engagement_score,
        )
