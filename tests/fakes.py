"""Scripted engines, sources and clients shared by the test modules."""
import asyncio
import json
from typing import Callable, Optional, Sequence

import httpx

from callcoach.asr.base import ASREngine, ASRResult, SegmentTimestamp
from callcoach.config import Settings
from callcoach.errors import CorrectionFailure, FullAnalysisFailure
from callcoach.schemas.annotation import FullAnalysis, SpeakerCorrections
from callcoach.transcript.models import AnnotationResult, CombinedSegment, TranscriptEvent
from callcoach.transcription.source import ReplayProgress, TranscriptionSource

FRAME_BYTES = 640  # 20 ms of 16 kHz 16-bit mono


def pcm_silence(seconds: float) -> bytes:
    frames = int(round(seconds * 50))
    return b"\x00" * (FRAME_BYTES * frames)


def segment(
    speaker: str,
    text: str,
    start: float,
    end: float,
    sentiment: Optional[str] = None,
    emotion: Optional[str] = None,
) -> CombinedSegment:
    return CombinedSegment(speaker=speaker, text=text, start=start, end=end, emotion=emotion, sentiment=sentiment)


def event(speaker_id: str, text: str, start: float, end: float) -> TranscriptEvent:
    return TranscriptEvent(speaker_id=speaker_id, text=text, start=start, end=end)


class ScriptedEngine(ASREngine):
    """Returns the scripted results in call order, then empty results."""

    def __init__(
        self,
        results: Sequence[ASRResult] | Callable[[int], ASRResult] = (),
        fail: bool = False,
        ready: bool = True,
    ) -> None:
        self._results = results if callable(results) else list(results)
        self._fail = fail
        self._ready = ready
        self.calls = 0

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def sample_rate(self) -> int:
        return 16000

    async def transcribe(self, audio, is_final: bool) -> ASRResult:
        self.calls += 1
        if self._fail:
            raise RuntimeError("provider unavailable")
        if callable(self._results):
            return self._results(self.calls)
        if self._results:
            return self._results.pop(0)
        return ASRResult(text="", confidence=0.0, segments=[])


def asr(*segments: tuple[float, float, str]) -> ASRResult:
    segs = [SegmentTimestamp(start=s, end=e, text=t) for s, e, t in segments]
    return ASRResult(text=" ".join(t for _, _, t in segments), confidence=1.0, segments=segs)


def scripted_source(
    events: Sequence[TranscriptEvent],
    fail: Optional[str] = None,
    progress: Sequence[float] = (),
) -> type:
    """A TranscriptionSource class that replays fixed events (and optional progress) on start."""

    class ScriptedSource(TranscriptionSource):
        def __init__(self, *args) -> None:
            # live: (engine, tracker); replay: (path, engine, tracker)
            if not isinstance(args[0], ASREngine):
                args = args[1:]
            super().__init__(*args[:2])

        async def start(self) -> None:
            self._check_engine()
            self._started = True
            steps = list(progress)
            for i, ev in enumerate(events):
                self._queue.put_nowait(ev)
                if i < len(steps):
                    self._queue.put_nowait(ReplayProgress(steps[i]))

        def feed(self, data: bytes) -> None:
            pass

        async def stop(self) -> None:
            self._finish(fail)

        async def close(self) -> None:
            self._finish()

    return ScriptedSource


class FakeAnnotationClient:
    """Stands in for AnnotationClient; behavior is configured per test."""

    def __init__(
        self,
        annotate_delay: float = 0.0,
        annotate_result: Callable[[str, float], Optional[AnnotationResult]] | None = None,
        analysis: Optional[FullAnalysis] = None,
        corrections: Optional[SpeakerCorrections] = None,
        fail_analysis: bool = False,
        fail_correction: bool = False,
    ) -> None:
        self.annotate_delay = annotate_delay
        self.annotate_result = annotate_result or default_annotation
        self.analysis = analysis or FullAnalysis(
            overall_summary="Solid discovery call.",
            strengths=["Clear opening", "Good questions"],
            opportunities=["Confirm budget earlier"],
            competitors=[],
            coaching_tips=["Summarize next steps"],
        )
        self.corrections = corrections or SpeakerCorrections()
        self.fail_analysis = fail_analysis
        self.fail_correction = fail_correction
        self.annotate_calls: list[tuple[str, float]] = []
        self.configured = True

    async def annotate(self, fragment: str, timestamp: float) -> Optional[AnnotationResult]:
        self.annotate_calls.append((fragment, timestamp))
        if self.annotate_delay:
            await asyncio.sleep(self.annotate_delay)
        return self.annotate_result(fragment, timestamp)

    async def analyze_full(self, segments) -> FullAnalysis:
        if self.fail_analysis:
            raise FullAnalysisFailure("model timed out")
        return self.analysis

    async def correct_speakers(self, segments) -> SpeakerCorrections:
        if self.fail_correction:
            raise CorrectionFailure("model timed out")
        return self.corrections


def default_annotation(fragment: str, timestamp: float) -> AnnotationResult:
    return AnnotationResult(
        text=fragment,
        emotion="calm",
        sentiment="positive",
        timestamp=timestamp,
        feedback=f"Nice pacing at {timestamp:.0f}s",
    )


def cf_settings(**overrides) -> Settings:
    values = {"CLOUDFLARE_ACCOUNT_ID": "acct", "CLOUDFLARE_API_TOKEN": "token"}
    values.update(overrides)
    return Settings(**values)


def workers_ai_transport(
    handler: Callable[[httpx.Request], httpx.Response] | Sequence[str],
) -> httpx.MockTransport:
    """MockTransport answering with the Workers AI envelope; a list of strings is served in order."""
    if callable(handler):
        return httpx.MockTransport(handler)
    answers = list(handler)

    def serve(request: httpx.Request) -> httpx.Response:
        return workers_ai_response(answers.pop(0))

    return httpx.MockTransport(serve)


def workers_ai_response(text: str) -> httpx.Response:
    return httpx.Response(200, json={"result": {"response": text}, "success": True, "errors": []})


def request_messages(request: httpx.Request) -> list[dict]:
    return json.loads(request.content)["messages"]
