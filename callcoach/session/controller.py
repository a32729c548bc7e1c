"""
ConversationSession: one recording from start to stored analysis.

Live mode:   start() -> feed(pcm)... -> stop() -> [correction, metrics, analysis, persistence] -> DONE
File mode:   process_upload(path) runs the same pipeline to completion in one call.

Transcript events are consumed from the source's async iterator by an ingest task; every event
is added to the merger at once and fires one annotate() task that the ingest loop never awaits.
Stop waits STOP_GRACE_SEC for trailing annotations, cancels the rest and freezes the merger
before the correction pass, so correction and metrics never see a changing segment list.

Each start/reset bumps a generation counter; work that finishes for an older generation
(late annotations, a pipeline interrupted by reset) is dropped.
"""
from __future__ import annotations

import asyncio
import logging
import os
import uuid
from typing import Callable, Optional

from callcoach.annotation.client import AnnotationClient
from callcoach.asr.base import ASREngine
from callcoach.config import Settings, get_settings
from callcoach.correction.speakers import run_speaker_correction
from callcoach.errors import CallCoachError, FullAnalysisFailure, InvalidTransition, PersistenceFailure
from callcoach.metrics.aggregator import compute_metrics, extract_questions, sentiment_series
from callcoach.persistence.handoff import build_analysis_record, persist_analysis, placeholder_analysis
from callcoach.persistence.store import AnalysisStore
from callcoach.schemas.analysis import SegmentModel, StoredAnalysis
from callcoach.schemas.session import SessionError, SessionSnapshot
from callcoach.session.context import SessionContext
from callcoach.session.state import SessionState, SessionStateMachine
from callcoach.transcript.models import TranscriptEvent
from callcoach.transcription.source import (
    FileReplaySource,
    LiveTranscriptionSource,
    ReplayProgress,
    TranscriptionSource,
)

logger = logging.getLogger(__name__)

# (message type, payload): "state" | "transcript" | "feedback" | "progress" | "error"
SessionListener = Callable[[str, dict], None]


class ConversationSession:
    def __init__(
        self,
        engine: ASREngine,
        client: AnnotationClient,
        store: AnalysisStore,
        user_id: str | None = None,
        settings: Settings | None = None,
        session_id: str | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self.session_id = session_id or uuid.uuid4().hex[:12]
        self._engine = engine
        self._client = client
        self._store = store
        self._user_id = user_id or self._settings.DEFAULT_USER_ID
        self._grace_sec = self._settings.STOP_GRACE_SEC
        self._machine = SessionStateMachine()
        self._machine.add_listener(self._on_transition)
        self._listeners: list[SessionListener] = []
        self._generation = 0
        self._ctx: Optional[SessionContext] = None
        self._source: Optional[TranscriptionSource] = None
        self._ingest_task: Optional[asyncio.Task] = None
        self._mode = "live"
        self._upload_path: Optional[str] = None
        self._upload_name: Optional[str] = None
        self._stored: Optional[StoredAnalysis] = None

    # --- observation ---

    @property
    def state(self) -> SessionState:
        return self._machine.state

    @property
    def last_error(self) -> Optional[CallCoachError]:
        return self._machine.last_error

    @property
    def stored(self) -> Optional[StoredAnalysis]:
        return self._stored

    @property
    def context(self) -> Optional[SessionContext]:
        return self._ctx

    @property
    def progress(self) -> float:
        return self._ctx.progress.value if self._ctx else 0.0

    def add_listener(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: SessionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _emit(self, kind: str, payload: dict) -> None:
        for listener in list(self._listeners):
            try:
                listener(kind, payload)
            except Exception:
                logger.exception("Session listener failed on %s", kind)

    def _on_transition(self, old: SessionState, new: SessionState) -> None:
        self._emit("state", {"state": new.value, "previous": old.value})

    def _emit_transcript(self) -> None:
        if self._ctx is None:
            return
        merger = self._ctx.merger
        self._emit(
            "transcript",
            {
                "transcript": merger.transcript,
                "segments": [s.to_dict() for s in merger.segments],
                "current_speaker": self._ctx.current_speaker,
            },
        )

    def snapshot(self) -> SessionSnapshot:
        ctx = self._ctx
        error = self._machine.last_error
        return SessionSnapshot(
            session_id=self.session_id,
            state=self.state.value,
            mode=self._mode,
            transcript=ctx.merger.transcript if ctx else "",
            segments=[SegmentModel.from_segment(s) for s in ctx.merger.segments] if ctx else [],
            feedback=ctx.feed.items() if ctx else [],
            current_speaker=ctx.current_speaker if ctx else None,
            progress=ctx.progress.value if ctx else 0.0,
            error=SessionError(**error.to_dict()) if error else None,
            record_id=self._stored.id if self._stored and self.state is SessionState.DONE else None,
        )

    # --- lifecycle ---

    def _begin(self, mode: str, record_audio: bool) -> int:
        self._machine.transition(SessionState.RECORDING)
        self._generation += 1
        self._mode = mode
        self._stored = None
        self._ctx = SessionContext.create(
            self.session_id, self._user_id, self._generation, record_audio=record_audio
        )
        return self._generation

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self._ctx is not None

    async def start(self) -> None:
        """IDLE -> RECORDING with a live source. Raises AcquisitionFailure (session back to IDLE)."""
        generation = self._begin("live", record_audio=True)
        source = LiveTranscriptionSource(self._engine, self._ctx.tracker)
        try:
            await source.start()
        except CallCoachError as e:
            await self._abort(e)
            raise
        self._source = source
        self._ingest_task = asyncio.create_task(self._ingest(source, generation))

    def feed(self, data: bytes) -> None:
        """Raw PCM from the client; ignored unless recording live."""
        if self.state is not SessionState.RECORDING or self._ctx is None:
            return
        if not isinstance(self._source, LiveTranscriptionSource):
            return
        if self._ctx.recorder is not None:
            self._ctx.recorder.append(data)
        self._source.feed(data)

    async def _ingest(self, source: TranscriptionSource, generation: int) -> None:
        try:
            async for item in source.events():
                if not self._is_current(generation):
                    return
                if isinstance(item, ReplayProgress):
                    value = self._ctx.progress.phase("transcription", item.percent / 100.0)
                    self._emit("progress", {"progress": value})
                    continue
                self._on_event(item, generation)
        except CallCoachError as e:
            if self._is_current(generation):
                await self._abort(e)

    def _on_event(self, event: TranscriptEvent, generation: int) -> None:
        ctx = self._ctx
        ctx.current_speaker = ctx.registry.resolve(event.speaker_id)
        ctx.merger.add_event(event)
        self._emit_transcript()
        ctx.track(asyncio.create_task(self._annotate(event, generation)))

    async def _annotate(self, event: TranscriptEvent, generation: int) -> None:
        result = await self._client.annotate(event.text, event.start)
        if result is None or not self._is_current(generation):
            return
        ctx = self._ctx
        if not ctx.merger.add_annotation(result):
            return
        if ctx.feed.push(result.feedback):
            self._emit("feedback", {"feedback": ctx.feed.items()})
        self._emit_transcript()

    async def _drain_source(self) -> None:
        if self._source is not None:
            await self._source.stop()
        if self._ingest_task is not None:
            await asyncio.wait({self._ingest_task})

    async def stop(self, review: bool = False) -> None:
        """
        RECORDING -> ANALYZING (or TRANSCRIBING with review=True; analyze() continues).
        Flushes the source first so the tail of the recording is transcribed.
        """
        if self.state is not SessionState.RECORDING:
            raise InvalidTransition(f"Cannot stop a session in state {self.state.value}")
        generation = self._generation
        await self._drain_source()
        if not self._is_current(generation) or self.state is not SessionState.RECORDING:
            return
        if review:
            self._machine.transition(SessionState.TRANSCRIBING)
            return
        self._machine.transition(SessionState.ANALYZING)
        await self._finalize(generation)

    async def analyze(self) -> None:
        """TRANSCRIBING -> ANALYZING after the review step."""
        self._machine.transition(SessionState.ANALYZING)
        await self._finalize(self._generation)

    async def process_upload(self, path: str, file_name: str | None = None) -> Optional[StoredAnalysis]:
        """
        File mode, driven to completion: decode, replay, analyze, persist.
        Returns the stored analysis; re-raises the fatal error when the session failed,
        returns None when the session was reset meanwhile.
        """
        generation = self._begin("upload", record_audio=False)
        self._upload_path = path
        self._upload_name = file_name or os.path.basename(path)
        source = FileReplaySource(path, self._engine, self._ctx.tracker)
        try:
            await source.start()
        except CallCoachError as e:
            await self._abort(e)
            raise
        self._source = source
        self._ingest_task = asyncio.create_task(self._ingest(source, generation))
        await self._drain_source()
        if self._is_current(generation) and self.state is SessionState.RECORDING:
            self._machine.transition(SessionState.ANALYZING)
            await self._finalize(generation)
        if self.state is SessionState.IDLE and self._machine.last_error is not None:
            raise self._machine.last_error
        return self._stored if self._is_current(generation) else None

    async def _settle_annotations(self, ctx: SessionContext) -> None:
        """Wait at most the grace period for in-flight annotations, cancel the rest, freeze."""
        pending = ctx.pending_annotations()
        if pending:
            _, still_pending = await asyncio.wait(pending, timeout=self._grace_sec)
            for task in still_pending:
                task.cancel()
            if still_pending:
                logger.info("Canceled %d annotation(s) still in flight after stop", len(still_pending))
                await asyncio.gather(*still_pending, return_exceptions=True)
        ctx.merger.freeze()

    async def _finalize(self, generation: int) -> None:
        """Run the post-recording pipeline; every failure ends in IDLE with last_error set."""
        try:
            await self._analyze_and_persist(generation)
        except CallCoachError as e:
            if self._is_current(generation):
                await self._abort(e)
        except Exception as e:
            logger.exception("Unexpected error while finishing session %s", self.session_id)
            if self._is_current(generation):
                await self._abort(PersistenceFailure(f"Could not finish the analysis: {type(e).__name__}: {e}"))

    async def _analyze_and_persist(self, generation: int) -> None:
        ctx = self._ctx
        ctx.progress.phase("transcription")
        await self._settle_annotations(ctx)
        if not self._is_current(generation):
            return
        self._emit("progress", {"progress": ctx.progress.phase("annotation")})

        segments = await run_speaker_correction(ctx.merger.segments, self._client)
        if not self._is_current(generation):
            return
        self._emit("progress", {"progress": ctx.progress.phase("correction")})

        metrics = compute_metrics(segments)
        series = sentiment_series(segments)
        questions = extract_questions(segments)
        try:
            analysis = await self._client.analyze_full(segments)
        except FullAnalysisFailure as e:
            logger.warning("Full analysis failed, saving placeholder summary: %s", e.message)
            analysis = placeholder_analysis()
        if not self._is_current(generation):
            return
        self._emit("progress", {"progress": ctx.progress.phase("analysis")})

        audio_path = await self._audio_artifact(ctx)
        record = build_analysis_record(
            segments,
            metrics,
            series,
            analysis,
            questions,
            ctx.registry.entries(),
            user_id=ctx.user_id,
            uploaded_file_name=self._upload_name if self._mode == "upload" else None,
        )
        stored = await persist_analysis(self._store, record, audio_path)
        if not self._is_current(generation):
            return
        self._stored = stored
        self._emit("progress", {"progress": ctx.progress.phase("persistence")})
        self._machine.transition(SessionState.DONE)

    async def _audio_artifact(self, ctx: SessionContext) -> Optional[str]:
        if self._mode == "upload":
            return self._upload_path
        if ctx.recorder is None:
            return None
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, ctx.recorder.finalize)
        except OSError as e:
            raise PersistenceFailure(f"Could not write recording: {e}") from e

    async def _teardown(self) -> None:
        """Cancel tasks, release the source and the session context."""
        current = asyncio.current_task()
        if self._ingest_task is not None and self._ingest_task is not current and not self._ingest_task.done():
            self._ingest_task.cancel()
            await asyncio.gather(self._ingest_task, return_exceptions=True)
        self._ingest_task = None
        if self._source is not None:
            await self._source.close()
            self._source = None
        ctx = self._ctx
        self._ctx = None
        if ctx is not None:
            pending = ctx.pending_annotations()
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            ctx.release()

    async def _abort(self, error: CallCoachError) -> None:
        logger.error("Session %s failed (%s): %s", self.session_id, error.kind.value, error.message)
        self._generation += 1
        await self._teardown()
        self._machine.fail(error)
        self._emit("error", error.to_dict())

    async def reset(self) -> None:
        """Any state -> IDLE; discards everything buffered for this session."""
        self._generation += 1
        await self._teardown()
        self._stored = None
        self._upload_path = None
        self._upload_name = None
        self._machine.reset()
