"""
SessionContext: everything one recording owns.

Built when the session enters RECORDING and dropped at reset, so no registry, buffer or
pending task outlives its session.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional

from callcoach.audio.recorder import AudioRecorder
from callcoach.diarization.registry import SpeakerRegistry
from callcoach.diarization.speaker_tracker import SpeakerTracker
from callcoach.session.progress import ProgressTracker
from callcoach.transcript.merger import FeedbackFeed, SegmentMerger


@dataclass
class SessionContext:
    session_id: str
    user_id: str
    generation: int
    registry: SpeakerRegistry
    tracker: SpeakerTracker
    merger: SegmentMerger
    feed: FeedbackFeed
    progress: ProgressTracker
    recorder: Optional[AudioRecorder] = None
    current_speaker: Optional[str] = None
    annotation_tasks: set[asyncio.Task] = field(default_factory=set)

    @classmethod
    def create(
        cls,
        session_id: str,
        user_id: str,
        generation: int,
        record_audio: bool = True,
    ) -> "SessionContext":
        registry = SpeakerRegistry()
        return cls(
            session_id=session_id,
            user_id=user_id,
            generation=generation,
            registry=registry,
            tracker=SpeakerTracker(),
            merger=SegmentMerger(resolve_speaker=registry.resolve),
            feed=FeedbackFeed(),
            progress=ProgressTracker(),
            recorder=AudioRecorder(session_id=session_id) if record_audio else None,
        )

    def track(self, task: asyncio.Task) -> None:
        self.annotation_tasks.add(task)
        task.add_done_callback(self.annotation_tasks.discard)

    def pending_annotations(self) -> set[asyncio.Task]:
        return {t for t in self.annotation_tasks if not t.done()}

    def release(self) -> None:
        """Drop buffers and captured audio; pending tasks must already be cancelled."""
        if self.recorder is not None:
            self.recorder.discard()
        self.registry.clear()
        self.tracker.reset()
        self.merger.clear()
        self.feed.clear()
        self.current_speaker = None
        self.annotation_tasks.clear()
