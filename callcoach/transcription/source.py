"""
Transcription sources: ASR + diarization exposed as an async stream of TranscriptEvents.

- LiveTranscriptionSource: PCM frames are fed in by the caller (WebSocket) while recording.
- FileReplaySource: an uploaded file is decoded and replayed; ReplayProgress items (0-100)
  are interleaved with events.

Both push into one asyncio.Queue consumed through events(). An ASR failure is recorded as a
CANCELED_ERROR signal and re-raised from events() as TranscriptionFailure; the consumer
decides whether to abort. Normal end of stream closes the iterator.
"""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Optional, Union

from callcoach.asr.base import ASREngine, ASRResult
from callcoach.asr.local_whisper import pcm_bytes_to_float32
from callcoach.audio import AudioChunker, AudioReceiver, RollingBuffer, decode_to_pcm
from callcoach.config import get_settings
from callcoach.diarization.speaker_tracker import SpeakerTracker
from callcoach.errors import AcquisitionFailure, TranscriptionFailure
from callcoach.transcript.models import TranscriptEvent
from callcoach.transcription.commit import SegmentCommitter

logger = logging.getLogger(__name__)


class SourceSignal(str, Enum):
    STARTED = "started"
    STOPPED = "stopped"
    CANCELED_COMPLETED = "canceled_completed"
    CANCELED_ERROR = "canceled_error"


@dataclass(frozen=True)
class ReplayProgress:
    percent: float


SourceItem = Union[TranscriptEvent, ReplayProgress]


class _EndOfStream:
    pass


@dataclass
class _Failure:
    reason: str


_END = _EndOfStream()


class TranscriptionSource(ABC):
    """start() -> events() -> stop(). stop() flushes buffered audio before resolving."""

    def __init__(self, engine: ASREngine, tracker: SpeakerTracker | None = None) -> None:
        self._engine = engine
        self._tracker = tracker or SpeakerTracker()
        self._queue: asyncio.Queue = asyncio.Queue()
        self._signals: list[tuple[SourceSignal, Optional[str]]] = []
        self._started = False
        self._finished = False

    def _signal(self, signal: SourceSignal, reason: str | None = None) -> None:
        self._signals.append((signal, reason))
        if signal is SourceSignal.CANCELED_ERROR:
            logger.error("Transcription canceled with error: %s", reason)
        else:
            logger.info("Transcription %s", signal.value)

    @property
    def signals(self) -> list[tuple[SourceSignal, Optional[str]]]:
        return list(self._signals)

    def _check_engine(self) -> None:
        if not self._engine.ready:
            raise AcquisitionFailure(f"ASR engine {type(self._engine).__name__} is not available")

    def _finish(self, failure: str | None = None) -> None:
        """Close the event stream once; a failure reason is re-raised by events()."""
        if self._finished:
            return
        self._finished = True
        if failure is not None:
            self._signal(SourceSignal.CANCELED_ERROR, failure)
            self._queue.put_nowait(_Failure(failure))
        self._queue.put_nowait(_END)

    async def events(self) -> AsyncIterator[SourceItem]:
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            if isinstance(item, _Failure):
                raise TranscriptionFailure(item.reason)
            yield item

    async def _transcribe(self, chunk: bytes) -> ASRResult:
        audio = pcm_bytes_to_float32(chunk)
        return await self._engine.transcribe(audio, is_final=True)

    @abstractmethod
    async def start(self) -> None:
        ...

    @abstractmethod
    async def stop(self) -> None:
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release without flushing (session reset)."""
        ...


class LiveTranscriptionSource(TranscriptionSource):
    """
    Live capture: feed() raw PCM as it arrives. Audio is windowed by RollingBuffer
    (default) or by the silence-gated AudioChunker, transcribed by a consumer task and committed
    by timestamp.
    """

    def __init__(
        self,
        engine: ASREngine,
        tracker: SpeakerTracker | None = None,
        use_rolling: bool | None = None,
    ) -> None:
        super().__init__(engine, tracker)
        settings = get_settings()
        self._use_rolling = use_rolling if use_rolling is not None else settings.STT_USE_ROLLING_BUFFER
        self._bytes_per_sec = settings.SAMPLE_RATE * settings.SAMPLE_WIDTH * settings.CHANNELS
        self._committer = SegmentCommitter(self._tracker, settings.STT_COMMIT_AGE_SECONDS)
        self._receiver = AudioReceiver()
        self._chunk_queue: asyncio.Queue[tuple[bytes, float, bool] | None] = asyncio.Queue()
        self._consumer_task: asyncio.Task | None = None
        self._rolling: RollingBuffer | None = None
        self._chunker: AudioChunker | None = None
        self._stopping = False

    def _on_chunk(self, chunk: bytes, chunk_start_sec: float) -> None:
        self._chunk_queue.put_nowait((chunk, chunk_start_sec, False))

    async def start(self) -> None:
        if self._started:
            return
        self._check_engine()
        if self._use_rolling:
            self._rolling = RollingBuffer(on_chunk=self._on_chunk)
        else:
            self._chunker = AudioChunker(on_chunk=self._on_chunk)
        self._started = True
        self._consumer_task = asyncio.create_task(self._asr_consumer())
        self._signal(SourceSignal.STARTED)

    def feed(self, data: bytes) -> None:
        """Accept raw PCM bytes from the capture device. Ignored once stopping."""
        if not self._started or self._stopping:
            return
        window = self._rolling or self._chunker
        for frame in self._receiver.frames(data):
            window.push(frame)

    async def _asr_consumer(self) -> None:
        while True:
            item = await self._chunk_queue.get()
            if item is None:
                break
            chunk, chunk_start, flushing = item
            if not chunk:
                continue
            try:
                result = await self._transcribe(chunk)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._finish(failure=f"{type(e).__name__}: {e}")
                return
            duration = len(chunk) / self._bytes_per_sec
            for event in self._committer.commit(result, chunk_start, duration, flushing=flushing):
                self._queue.put_nowait(event)

    async def stop(self) -> None:
        """Flush the partial window, drain the ASR queue, then close the event stream."""
        if self._stopping:
            return
        self._stopping = True
        if not self._started:
            self._finish()
            return
        flushed = None
        if self._rolling is not None:
            flushed = self._rolling.flush()
        elif self._chunker is not None:
            flushed = self._chunker.flush()
        if flushed:
            self._chunk_queue.put_nowait((flushed[0], flushed[1], True))
        self._chunk_queue.put_nowait(None)
        if self._consumer_task is not None:
            await self._consumer_task
        self._signal(SourceSignal.STOPPED)
        self._finish()

    async def close(self) -> None:
        self._stopping = True
        if self._consumer_task is not None and not self._consumer_task.done():
            self._consumer_task.cancel()
            try:
                await self._consumer_task
            except asyncio.CancelledError:
                pass
        self._receiver.reset()
        self._finish()


class FileReplaySource(TranscriptionSource):
    """
    Replays an uploaded file through the same window/commit path. Progress is the share of
    audio frames processed; the stream ends with CANCELED_COMPLETED (normal end of file).
    """

    def __init__(
        self,
        path: str,
        engine: ASREngine,
        tracker: SpeakerTracker | None = None,
        window_sec: float | None = None,
        step_sec: float | None = None,
    ) -> None:
        super().__init__(engine, tracker)
        settings = get_settings()
        self._path = path
        self._window_sec = window_sec if window_sec is not None else settings.REPLAY_WINDOW_SECONDS
        self._step_sec = step_sec if step_sec is not None else settings.REPLAY_STEP_SECONDS
        self._frame_bytes = settings.FRAME_BYTES
        self._bytes_per_sec = settings.SAMPLE_RATE * settings.SAMPLE_WIDTH * settings.CHANNELS
        self._committer = SegmentCommitter(self._tracker, settings.STT_COMMIT_AGE_SECONDS)
        self._task: asyncio.Task | None = None
        self._pcm: bytes = b""

    @property
    def pcm(self) -> bytes:
        """Decoded PCM of the file (available after start)."""
        return self._pcm

    async def start(self) -> None:
        if self._started:
            return
        self._check_engine()
        loop = asyncio.get_running_loop()
        self._pcm = await loop.run_in_executor(None, decode_to_pcm, self._path)
        self._started = True
        self._signal(SourceSignal.STARTED)
        self._task = asyncio.create_task(self._replay())

    async def _process(self, chunk: bytes, chunk_start: float, flushing: bool) -> None:
        result = await self._transcribe(chunk)
        duration = len(chunk) / self._bytes_per_sec
        for event in self._committer.commit(result, chunk_start, duration, flushing=flushing):
            self._queue.put_nowait(event)

    async def _replay(self) -> None:
        pending: list[tuple[bytes, float]] = []
        buffer = RollingBuffer(
            on_chunk=lambda chunk, start: pending.append((chunk, start)),
            window_sec=self._window_sec,
            step_sec=self._step_sec,
        )
        total_frames = max(1, len(self._pcm) // self._frame_bytes)
        last_percent = 0.0
        try:
            for i in range(total_frames):
                frame = self._pcm[i * self._frame_bytes:(i + 1) * self._frame_bytes]
                if len(frame) < self._frame_bytes:
                    break
                buffer.push(frame)
                while pending:
                    chunk, start = pending.pop(0)
                    await self._process(chunk, start, flushing=False)
                    percent = round(100.0 * (i + 1) / total_frames, 1)
                    if percent > last_percent:
                        last_percent = percent
                        self._queue.put_nowait(ReplayProgress(percent))
            flushed = buffer.flush()
            if flushed:
                await self._process(flushed[0], flushed[1], flushing=True)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._finish(failure=f"{type(e).__name__}: {e}")
            return
        self._queue.put_nowait(ReplayProgress(100.0))
        self._signal(SourceSignal.CANCELED_COMPLETED)
        self._finish()

    async def stop(self) -> None:
        """Wait for the replay to finish (file mode ends by itself)."""
        if self._task is not None and not self._task.done():
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._signal(SourceSignal.STOPPED)
        self._finish()

    async def close(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._finish()
