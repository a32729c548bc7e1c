"""
ASR engine boundary used by the transcription sources.

An engine turns one window of float32 mono audio into text with chunk-relative segment
timings. Engines raise on provider failure; the source records that as CANCELED_ERROR and
the session surfaces it as TranscriptionFailure.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    import numpy as np


@dataclass
class SegmentTimestamp:
    """Seconds relative to the start of the transcribed chunk."""

    start: float
    end: float
    text: str


@dataclass
class ASRResult:
    text: str
    confidence: float
    # None when the engine returns no timings; the committer then treats the chunk as one utterance
    segments: Optional[list[SegmentTimestamp]] = None
    is_final: bool = True


class ASREngine(ABC):
    @abstractmethod
    async def transcribe(self, audio: "np.ndarray", is_final: bool) -> ASRResult:
        """
        audio: float32 mono in [-1, 1] at sample_rate.
        is_final=False asks for a fast partial decode; engines without the distinction ignore it.
        Must not block the event loop.
        """
        ...

    @property
    @abstractmethod
    def sample_rate(self) -> int:
        ...

    @property
    def ready(self) -> bool:
        """False when the engine cannot transcribe (model not loaded, credentials missing)."""
        return True
