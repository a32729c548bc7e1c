"""
LocalWhisperEngine: faster-whisper on this machine (ASR_BACKEND=local).

The WhisperModel is heavy; main.py loads it once and every session's engine shares it.
Decoding runs in the default executor. Partial decodes use the small beam and no previous-text
conditioning; final decodes use the large beam.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Iterable

import numpy as np

from callcoach.asr.base import ASREngine, ASRResult, SegmentTimestamp
from callcoach.config import Settings, get_settings

logger = logging.getLogger(__name__)

# faster_whisper.WhisperModel; imported lazily so the cloudflare backend does not need it
WhisperModelT = Any


def pcm_bytes_to_float32(pcm_bytes: bytes) -> np.ndarray:
    """PCM 16-bit mono -> float32 [-1.0, 1.0]."""
    return np.frombuffer(pcm_bytes, dtype=np.int16).astype(np.float32) / 32768.0


def load_whisper_model(settings: Settings | None = None) -> WhisperModelT:
    settings = settings or get_settings()
    try:
        from faster_whisper import WhisperModel
    except ImportError as err:
        raise ImportError("ASR_BACKEND=local needs faster-whisper: pip install faster-whisper") from err
    logger.info(
        "Loading Whisper model %s (%s, %s)",
        settings.LOCAL_WHISPER_MODEL,
        settings.LOCAL_WHISPER_DEVICE,
        settings.LOCAL_WHISPER_COMPUTE_TYPE,
    )
    return WhisperModel(
        settings.LOCAL_WHISPER_MODEL,
        device=settings.LOCAL_WHISPER_DEVICE,
        compute_type=settings.LOCAL_WHISPER_COMPUTE_TYPE,
    )


def segments_to_result(segments: Iterable[Any], is_final: bool) -> ASRResult:
    """faster-whisper Segment objects (start, end, text) -> ASRResult."""
    timed = [
        SegmentTimestamp(start=float(seg.start), end=float(seg.end), text=seg.text.strip())
        for seg in segments
        if (seg.text or "").strip()
    ]
    text = " ".join(s.text for s in timed)
    return ASRResult(
        text=text,
        confidence=1.0 if text else 0.0,
        segments=timed or None,
        is_final=is_final,
    )


class LocalWhisperEngine(ASREngine):
    def __init__(self, model: WhisperModelT | None = None, settings: Settings | None = None) -> None:
        self._model = model
        self._settings = settings or get_settings()

    @property
    def ready(self) -> bool:
        return self._model is not None

    @property
    def sample_rate(self) -> int:
        return self._settings.SAMPLE_RATE

    def _decode(self, audio: np.ndarray, is_final: bool) -> ASRResult:
        if self._model is None:
            raise RuntimeError("Whisper model not loaded")
        s = self._settings
        segments, _info = self._model.transcribe(
            audio,
            language=s.STT_LANGUAGE or None,
            beam_size=s.LOCAL_WHISPER_BEAM_SIZE_FINAL if is_final else s.LOCAL_WHISPER_BEAM_SIZE_PARTIAL,
            vad_filter=True,
            vad_parameters={"min_silence_duration_ms": 300, "speech_pad_ms": 100},
            condition_on_previous_text=is_final,
        )
        # segments is a lazy generator; decoding happens while it is consumed
        return segments_to_result(segments, is_final)

    async def transcribe(self, audio: np.ndarray, is_final: bool) -> ASRResult:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._decode, audio, is_final)
