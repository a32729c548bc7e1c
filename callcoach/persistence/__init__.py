"""Persistence handoff: analysis record construction and storage."""
from .handoff import (
    build_analysis_record,
    build_title,
    coaching_summary,
    persist_analysis,
    placeholder_analysis,
    session_duration,
)
from .store import AnalysisStore, LocalAnalysisStore, NoOpAnalysisStore, create_analysis_store

__all__ = [
    "AnalysisStore",
    "LocalAnalysisStore",
    "NoOpAnalysisStore",
    "build_analysis_record",
    "build_title",
    "coaching_summary",
    "create_analysis_store",
    "persist_analysis",
    "placeholder_analysis",
    "session_duration",
]
