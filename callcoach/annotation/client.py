"""
Language annotation over Cloudflare Workers AI (text generation).

Three calls, all POST .../ai/run/{model} with chat messages:
- annotate(fragment, timestamp): emotion / sentiment / coaching feedback for one fragment.
  Returns None instead of raising: a missing annotation only means the segment stays plain.
- analyze_full(segments): one coaching analysis of the whole conversation after recording.
- correct_speakers(segments): speaker review of the numbered transcript.

Workers AI returns { "result": { "response": "..." } } or a direct { "response": "..." }.
"""
from __future__ import annotations

import json
import logging
from typing import Optional, Sequence

import httpx
from pydantic import ValidationError

from callcoach.annotation.parsing import (
    ResponseFormatError,
    parse_annotation,
    parse_corrections,
    parse_full_analysis,
)
from callcoach.config import Settings, get_settings
from callcoach.errors import AnnotationFailure, CorrectionFailure, FullAnalysisFailure
from callcoach.schemas.annotation import FullAnalysis, SpeakerCorrections
from callcoach.transcript.models import AnnotationResult, CombinedSegment, Unparseable

logger = logging.getLogger(__name__)

_API_BASE = "https://api.cloudflare.com/client/v4"

_ANNOTATE_PROMPT = """You are a real-time sales call coach. You receive one short fragment of a live sales conversation.

Analyze the fragment and provide:
1. The fragment text (unchanged)
2. Detected emotion: one of joy, confidence, calm, anger, sadness, nervousness, enthusiasm, boredom
3. Sentiment: positive, neutral or negative
4. Brief coaching feedback for the salesperson (one sentence), or null when nothing is worth saying

Respond in JSON only: {"text":"...","emotion":"...","sentiment":"...","feedback":"..."}
No markdown or extra text."""

_FULL_ANALYSIS_PROMPT = """You are an experienced sales coach reviewing a complete sales conversation transcript.

Evaluate overall sentiment, emotional shifts, question quality, objection handling and the talk-to-listen balance. Then return:
- overall_summary (string): a short paragraph on how the call went
- strengths (array of strings): what went well
- opportunities (array of strings): missed opportunities and areas for improvement
- competitors (array of strings): competitor names or products mentioned, empty if none
- coaching_tips (array of strings): specific, actionable recommendations

Never invent facts that are not in the transcript.
Respond in JSON only, a single object with exactly these keys. No markdown or extra text."""

_CORRECTION_PROMPT = """You review speaker attribution in a two-party sales conversation transcript. Speaker labels come from automatic diarization and may be wrong: a turn may be attributed to the wrong speaker, or one line may contain both speakers.

Each input line is: index. [speaker] text

Roles: "{initiator}" (the seller, pitches and asks discovery questions) and "{responder}" (the buyer, describes needs, asks about price).

Return a single JSON object:
{{"corrections": [{{"index": 0, "new_speaker": "{initiator}"}}],
 "splits": [{{"index": 3, "parts": [{{"speaker": "{initiator}", "text": "..."}}, {{"speaker": "{responder}", "text": "..."}}]}}]}}

Rules:
- Use the original indices.
- Only list lines that need a change; empty arrays when everything is correct.
- Split parts must keep the original words in order.
- Respond in JSON only, no markdown or extra text."""


def _numbered_transcript(segments: Sequence[CombinedSegment]) -> str:
    return "\n".join(f"{i}. [{s.speaker}] {s.text}" for i, s in enumerate(segments))


def _response_content(data) -> str:
    result = data.get("result", data) if isinstance(data, dict) else data
    if isinstance(result, dict):
        content = result.get("response", "") or ""
    elif isinstance(result, str):
        content = result
    else:
        content = ""
    if not isinstance(content, str):
        # some models hand back already-decoded JSON
        content = json.dumps(content)
    return content.strip()


class AnnotationClient:
    """
    Workers AI client. transport is injectable so tests can use httpx.MockTransport;
    in production the default HTTP transport is used.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._transport = transport

    @property
    def configured(self) -> bool:
        s = self._settings
        return bool(s.CLOUDFLARE_ACCOUNT_ID.strip() and s.CLOUDFLARE_API_TOKEN.strip())

    def _url(self) -> str:
        account_id = self._settings.CLOUDFLARE_ACCOUNT_ID.strip()
        return f"{_API_BASE}/accounts/{account_id}/ai/run/{self._settings.ANNOTATION_CF_MODEL}"

    async def _run_model(
        self,
        system_prompt: str,
        user_content: str,
        max_tokens: int,
        timeout: float,
        temperature: float = 0.2,
    ) -> str:
        """
        One chat completion. Raises ValueError when credentials are missing,
        httpx.HTTPError on transport/status errors, ResponseFormatError on an empty answer.
        """
        if not self.configured:
            raise ValueError("CLOUDFLARE_ACCOUNT_ID and CLOUDFLARE_API_TOKEN are required for annotation")
        payload = {
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        headers = {
            "Authorization": f"Bearer {self._settings.CLOUDFLARE_API_TOKEN.strip()}",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
            resp = await client.post(self._url(), json=payload, headers=headers)
            resp.raise_for_status()
            data = resp.json()
        content = _response_content(data)
        if not content:
            raise ResponseFormatError("Cloudflare Workers AI returned empty response")
        return content

    async def annotate(self, fragment: str, timestamp: float) -> Optional[AnnotationResult]:
        fragment = (fragment or "").strip()
        if len(fragment) < self._settings.ANNOTATION_MIN_CHARS:
            return None
        try:
            raw = await self._run_model(
                _ANNOTATE_PROMPT,
                fragment,
                max_tokens=self._settings.ANNOTATION_MAX_TOKENS,
                timeout=self._settings.ANNOTATION_TIMEOUT_SEC,
            )
        except (httpx.HTTPError, ValueError) as e:
            failure = AnnotationFailure(f"{type(e).__name__}: {e}")
            logger.warning("Annotation failed at %.2fs: %s", timestamp, failure.message)
            return None
        outcome = parse_annotation(raw, timestamp, fragment)
        if isinstance(outcome, Unparseable):
            logger.warning("Annotation response unparseable at %.2fs: %s", timestamp, outcome.reason)
            return None
        return outcome

    async def analyze_full(self, segments: Sequence[CombinedSegment]) -> FullAnalysis:
        """Raises FullAnalysisFailure on any provider or parse failure."""
        if not segments:
            raise FullAnalysisFailure("Empty transcript, nothing to analyze")
        user_content = "Sales conversation transcript:\n" + _numbered_transcript(segments)
        try:
            raw = await self._run_model(
                _FULL_ANALYSIS_PROMPT,
                user_content,
                max_tokens=self._settings.FULL_ANALYSIS_MAX_TOKENS,
                timeout=self._settings.FULL_ANALYSIS_TIMEOUT_SEC,
                temperature=0.4,
            )
            return parse_full_analysis(raw)
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            raise FullAnalysisFailure(f"{type(e).__name__}: {e}") from e

    async def correct_speakers(self, segments: Sequence[CombinedSegment]) -> SpeakerCorrections:
        """Raises CorrectionFailure on any provider or parse failure."""
        if not segments:
            return SpeakerCorrections()
        prompt = _CORRECTION_PROMPT.format(
            initiator=self._settings.CORRECTION_INITIATOR_ROLE,
            responder=self._settings.CORRECTION_RESPONDER_ROLE,
        )
        try:
            raw = await self._run_model(
                prompt,
                _numbered_transcript(segments),
                max_tokens=self._settings.CORRECTION_MAX_TOKENS,
                timeout=self._settings.CORRECTION_TIMEOUT_SEC,
                temperature=0.0,
            )
            return parse_corrections(raw)
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            raise CorrectionFailure(f"{type(e).__name__}: {e}") from e
