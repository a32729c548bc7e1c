"""
Schemas for language-analysis provider responses.

Model output is free-form text; after JSON extraction it is validated against these models
before anything typed is constructed. Keys are accepted in snake_case or the camelCase the
model sometimes produces.
"""
from __future__ import annotations

from typing import Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def _clean_str_list(value):
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    return [str(v).strip() for v in value if str(v).strip()]


class AnnotationPayload(BaseModel):
    """Per-fragment annotation: {"text", "emotion", "sentiment", "feedback"}."""

    text: str = ""
    emotion: str = Field(..., min_length=1, description="e.g. joy, confidence, calm, anger, nervousness")
    sentiment: Literal["positive", "neutral", "negative"]
    feedback: Optional[str] = Field(None, description="Short coaching remark for the live feed")

    @field_validator("emotion", "sentiment", mode="before")
    @classmethod
    def _lower(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("feedback", mode="before")
    @classmethod
    def _blank_feedback(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class FullAnalysis(BaseModel):
    """Whole-conversation coaching analysis, requested once after recording."""

    model_config = ConfigDict(populate_by_name=True)

    overall_summary: str = Field(
        "",
        validation_alias=AliasChoices("overall_summary", "overallSummary", "overallAnalysis"),
    )
    strengths: list[str] = Field(default_factory=list)
    opportunities: list[str] = Field(default_factory=list)
    competitors: list[str] = Field(default_factory=list)
    coaching_tips: list[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("coaching_tips", "coachingTips"),
    )
    placeholder: bool = Field(False, description="True when substituted after a provider failure")

    @field_validator("strengths", "opportunities", "competitors", "coaching_tips", mode="before")
    @classmethod
    def _clean_lists(cls, v):
        return _clean_str_list(v)


class SpeakerReassignment(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    index: int = Field(..., ge=0)
    new_speaker: str = Field(..., min_length=1, validation_alias=AliasChoices("new_speaker", "newSpeaker"))

    @field_validator("new_speaker", mode="before")
    @classmethod
    def _strip(cls, v):
        # before min_length, so a blank label fails validation
        return v.strip() if isinstance(v, str) else v


class SplitPart(BaseModel):
    speaker: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1)

    @field_validator("speaker", "text", mode="before")
    @classmethod
    def _strip(cls, v):
        return v.strip() if isinstance(v, str) else v


class SegmentSplit(BaseModel):
    index: int = Field(..., ge=0)
    parts: list[SplitPart] = Field(default_factory=list)


class SpeakerCorrections(BaseModel):
    """Result of the post-recording speaker review."""

    corrections: list[SpeakerReassignment] = Field(default_factory=list)
    splits: list[SegmentSplit] = Field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.corrections and not self.splits
