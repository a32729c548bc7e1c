"""
Build the AnalysisRecord for a finished conversation and hand it to the store.

persist_analysis retries exactly once; the store guarantees a failed attempt leaves nothing
behind, so the retry cannot produce a partial record.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Iterable, Optional, Sequence

from callcoach.errors import PersistenceFailure
from callcoach.metrics.aggregator import format_timestamp
from callcoach.persistence.store import AnalysisStore
from callcoach.schemas.analysis import (
    AnalysisRecord,
    SegmentModel,
    SentimentPoint,
    SessionMetrics,
    SpeakerEntry,
    StoredAnalysis,
)
from callcoach.schemas.annotation import FullAnalysis
from callcoach.transcript.models import CombinedSegment

logger = logging.getLogger(__name__)

COACHING_CARD_LIMIT = 3
COACHING_CARD_FALLBACK = "STRENGTH: Call completed successfully"
PLACEHOLDER_SUMMARY = "Analysis unavailable: the coaching analysis could not be generated for this call."


def placeholder_analysis(reason: str | None = None) -> FullAnalysis:
    """Substituted when the full analysis call fails; the record is still saved."""
    summary = PLACEHOLDER_SUMMARY
    if reason:
        summary = f"{PLACEHOLDER_SUMMARY} ({reason})"
    return FullAnalysis(overall_summary=summary, placeholder=True)


def coaching_summary(analysis: FullAnalysis) -> list[str]:
    cards = [f"STRENGTH: {s}" for s in analysis.strengths[:COACHING_CARD_LIMIT]]
    cards += [f"OPPORTUNITY: {o}" for o in analysis.opportunities[:COACHING_CARD_LIMIT]]
    return cards or [COACHING_CARD_FALLBACK]


def build_title(now: datetime, uploaded: bool = False) -> str:
    """e.g. "Sales Call - Oct 18, 2026 at 02:30 PM (Uploaded)"."""
    date_str = f"{now.strftime('%b')} {now.day}, {now.year}"
    title = f"Sales Call - {date_str} at {now.strftime('%I:%M %p')}"
    return f"{title} (Uploaded)" if uploaded else title


def session_duration(segments: Sequence[CombinedSegment]) -> str:
    if not segments:
        return "0:00"
    return format_timestamp(max(s.end for s in segments))


def build_analysis_record(
    segments: Sequence[CombinedSegment],
    metrics: SessionMetrics,
    sentiment_graph: Sequence[SentimentPoint],
    analysis: FullAnalysis,
    questions: Sequence[str],
    speakers: Iterable[tuple[str, str]],
    user_id: str,
    uploaded_file_name: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AnalysisRecord:
    uploaded = uploaded_file_name is not None
    return AnalysisRecord(
        title=build_title(now or datetime.now(), uploaded=uploaded),
        source="upload" if uploaded else "live",
        uploaded_file_name=uploaded_file_name,
        segments=[SegmentModel.from_segment(s) for s in segments],
        transcript=[f"[{s.speaker}] {s.text}" for s in segments],
        metrics=metrics,
        sentiment_graph=list(sentiment_graph),
        coaching_card=coaching_summary(analysis),
        strengths=analysis.strengths,
        opportunities=analysis.opportunities,
        competitors=analysis.competitors,
        keywords=dict(metrics.keywords),
        questions=list(questions),
        coaching_tips=analysis.coaching_tips,
        overall_summary=analysis.overall_summary,
        analysis_placeholder=analysis.placeholder,
        speakers=[SpeakerEntry(raw_id=raw, label=label) for raw, label in speakers],
        duration=session_duration(segments),
        user_id=user_id,
    )


async def persist_analysis(
    store: AnalysisStore,
    record: AnalysisRecord,
    audio_path: Optional[str] = None,
) -> StoredAnalysis:
    """store.save in the default executor; one retry. Raises PersistenceFailure."""
    loop = asyncio.get_running_loop()
    last_error: Optional[PersistenceFailure] = None
    for attempt in (1, 2):
        try:
            return await loop.run_in_executor(None, store.save, record, audio_path)
        except PersistenceFailure as e:
            last_error = e
            logger.warning("Persistence attempt %d failed: %s", attempt, e.message)
        except OSError as e:
            last_error = PersistenceFailure(f"{type(e).__name__}: {e}")
            logger.warning("Persistence attempt %d failed: %s", attempt, e)
    assert last_error is not None
    raise last_error
