"""Transcription source adapters: live capture and file replay as async event streams."""
from .commit import SegmentCommitter, new_text_only, normalize_commit_text
from .source import (
    FileReplaySource,
    LiveTranscriptionSource,
    ReplayProgress,
    SourceSignal,
    TranscriptionSource,
)

__all__ = [
    "FileReplaySource",
    "LiveTranscriptionSource",
    "ReplayProgress",
    "SegmentCommitter",
    "SourceSignal",
    "TranscriptionSource",
    "new_text_only",
    "normalize_commit_text",
]
