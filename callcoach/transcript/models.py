"""
Segment records shared by the transcription source, merger and correction pass.

- TranscriptEvent: one recognized utterance from the transcription source. Immutable.
- AnnotationResult: emotion / sentiment / coaching feedback for one text fragment.
  timestamp is when the source fragment started, not when annotation completed.
- Unparseable: the annotation provider answered but the answer could not be used.
- CombinedSegment: one per TranscriptEvent, optionally enriched by a matching annotation.

Times are seconds, session-relative; end >= start >= 0.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Union

Sentiment = Literal["positive", "neutral", "negative"]

SENTIMENT_VALUES: tuple[str, ...] = ("positive", "neutral", "negative")


@dataclass(frozen=True)
class TranscriptEvent:
    """
    One speaker-tagged utterance as emitted by the transcription source.

    speaker_id: raw provider speaker id (e.g. "Guest-1"); mapped to a display label by SpeakerRegistry.
    """

    speaker_id: str
    text: str
    start: float
    end: float

    def __post_init__(self) -> None:
        if self.start < 0:
            object.__setattr__(self, "start", 0.0)
        if self.end < self.start:
            object.__setattr__(self, "end", self.start)


@dataclass(frozen=True)
class AnnotationResult:
    text: str
    emotion: str
    sentiment: Sentiment
    timestamp: float
    feedback: Optional[str] = None


@dataclass(frozen=True)
class Unparseable:
    """Provider response that failed JSON parsing or field validation."""

    reason: str
    raw: str = ""


AnnotationOutcome = Union[AnnotationResult, Unparseable]


@dataclass
class CombinedSegment:
    speaker: str
    text: str
    start: float
    end: float
    emotion: Optional[str] = None
    sentiment: Optional[str] = None

    @property
    def duration(self) -> float:
        return max(0.0, self.end - self.start)

    def display_line(self) -> str:
        """Live transcript line: [speaker] text (emotion)."""
        line = f"[{self.speaker}] {self.text}"
        if self.emotion:
            line += f" ({self.emotion})"
        return line

    def to_dict(self) -> dict:
        return {
            "speaker": self.speaker,
            "text": self.text,
            "emotion": self.emotion,
            "sentiment": self.sentiment,
            "start": self.start,
            "end": self.end,
        }

