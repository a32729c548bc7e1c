"""
CloudflareWhisperEngine: Whisper over Cloudflare Workers AI (ASR_BACKEND=cloudflare).

The model answers with the full chunk text and, usually, per-word timings:
  {"result": {"text": "...", "words": [{"word": "Hi", "start": 0.0, "end": 0.4}, ...]}}
Words are grouped into utterance segments (sentence end or a pause of ASR_SEGMENT_PAUSE_SEC)
so the commit horizon works per utterance instead of per chunk.
"""
from __future__ import annotations

import logging
from typing import Any, Sequence

import httpx
import numpy as np

from callcoach.asr.base import ASREngine, ASRResult, SegmentTimestamp
from callcoach.config import Settings, get_settings

logger = logging.getLogger(__name__)

_API_BASE = "https://api.cloudflare.com/client/v4"
_SENTENCE_END = (".", "?", "!")


def float32_to_pcm_bytes(audio: np.ndarray) -> bytes:
    """float32 [-1, 1] -> PCM 16-bit mono."""
    samples = np.clip(audio * 32767.0, -32768, 32767).astype(np.int16)
    return samples.tobytes()


def group_words(words: Sequence[dict[str, Any]], pause_sec: float) -> list[SegmentTimestamp]:
    """Timed words -> chunk-relative segments, split on sentence punctuation or long pauses."""
    segments: list[SegmentTimestamp] = []
    current: list[str] = []
    seg_start = seg_end = 0.0
    for w in words:
        token = str(w.get("word", "")).strip()
        if not token or "start" not in w or "end" not in w:
            continue
        start, end = float(w["start"]), float(w["end"])
        if current and start - seg_end >= pause_sec:
            segments.append(SegmentTimestamp(start=seg_start, end=seg_end, text=" ".join(current)))
            current = []
        if not current:
            seg_start = start
        current.append(token)
        seg_end = end
        if token.endswith(_SENTENCE_END):
            segments.append(SegmentTimestamp(start=seg_start, end=seg_end, text=" ".join(current)))
            current = []
    if current:
        segments.append(SegmentTimestamp(start=seg_start, end=seg_end, text=" ".join(current)))
    return segments


def parse_whisper_response(data: Any, pause_sec: float) -> ASRResult:
    result = data.get("result", data) if isinstance(data, dict) else data
    if isinstance(result, str):
        text, words = result, []
    elif isinstance(result, dict):
        text = result.get("text") or result.get("transcript") or ""
        words = result.get("words") or []
    else:
        text, words = "", []
    text = text.strip()
    segments = group_words(words, pause_sec) if text else []
    return ASRResult(
        text=text,
        confidence=1.0 if text else 0.0,
        segments=segments or None,
        is_final=True,
    )


class CloudflareWhisperEngine(ASREngine):
    """One POST per chunk; partial and final decodes are the same request."""

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport

    @property
    def ready(self) -> bool:
        s = self._settings
        return bool(s.CLOUDFLARE_ACCOUNT_ID.strip() and s.CLOUDFLARE_API_TOKEN.strip())

    @property
    def sample_rate(self) -> int:
        return self._settings.SAMPLE_RATE

    def _url(self) -> str:
        return f"{_API_BASE}/accounts/{self._settings.CLOUDFLARE_ACCOUNT_ID.strip()}/ai/run/{self._settings.ASR_CF_MODEL}"

    async def transcribe(self, audio: np.ndarray, is_final: bool) -> ASRResult:
        """Raises httpx.HTTPError on provider failure."""
        headers = {"Authorization": f"Bearer {self._settings.CLOUDFLARE_API_TOKEN.strip()}"}
        body = {"audio": list(float32_to_pcm_bytes(audio))}
        async with httpx.AsyncClient(timeout=self._settings.ASR_TIMEOUT_SEC, transport=self._transport) as client:
            resp = await client.post(self._url(), headers=headers, json=body)
            resp.raise_for_status()
            data = resp.json()
        result = parse_whisper_response(data, self._settings.ASR_SEGMENT_PAUSE_SEC)
        logger.debug("Workers AI Whisper: %d chars, %d segment(s)", len(result.text), len(result.segments or []))
        return result
