"""
Parse language-model output into typed results.

Workers AI returns free text that usually, but not always, is bare JSON: the model may wrap
it in ``` / ```json fences or add a sentence before/after. We strip fences, cut out the
outermost JSON object/array, json.loads it and validate with pydantic.
"""
from __future__ import annotations

import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from callcoach.schemas.annotation import AnnotationPayload, FullAnalysis, SpeakerCorrections
from callcoach.transcript.models import AnnotationOutcome, AnnotationResult, Unparseable

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```\s*$")


class ResponseFormatError(ValueError):
    """Model output could not be turned into the expected JSON shape."""


def strip_json_fences(raw: str) -> str:
    raw = (raw or "").strip()
    if raw.startswith("```"):
        raw = _FENCE_OPEN.sub("", raw)
        raw = _FENCE_CLOSE.sub("", raw)
    return raw.strip()


def _outermost_json(raw: str) -> str:
    """Slice from the first '{' or '[' to the matching last '}' or ']'."""
    starts = [i for i in (raw.find("{"), raw.find("[")) if i >= 0]
    if not starts:
        return raw
    start = min(starts)
    closer = "}" if raw[start] == "{" else "]"
    end = raw.rfind(closer)
    if end < start:
        return raw[start:]
    return raw[start:end + 1]


def extract_json(raw: str) -> Any:
    """Return the decoded JSON value; raises ResponseFormatError."""
    text = strip_json_fences(raw)
    if not text:
        raise ResponseFormatError("empty response")
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass
    try:
        return json.loads(_outermost_json(text))
    except json.JSONDecodeError as e:
        raise ResponseFormatError(f"invalid JSON: {e}") from e


def parse_annotation(raw: str, timestamp: float, fragment: str = "") -> AnnotationOutcome:
    """
    Annotation JSON -> AnnotationResult, or Unparseable when the JSON is broken or a
    required field (emotion, sentiment) is missing/invalid. Never raises.
    """
    try:
        data = extract_json(raw)
    except ResponseFormatError as e:
        return Unparseable(reason=str(e), raw=raw or "")
    if isinstance(data, list) and data and isinstance(data[0], dict):
        data = data[0]
    if not isinstance(data, dict):
        return Unparseable(reason="expected a JSON object", raw=raw or "")
    try:
        payload = AnnotationPayload.model_validate(data)
    except ValidationError as e:
        return Unparseable(reason=f"validation: {e.error_count()} error(s)", raw=raw or "")
    return AnnotationResult(
        text=payload.text.strip() or fragment,
        emotion=payload.emotion,
        sentiment=payload.sentiment,
        timestamp=timestamp,
        feedback=payload.feedback.strip() if payload.feedback else None,
    )


def parse_full_analysis(raw: str) -> FullAnalysis:
    """Raises ResponseFormatError or pydantic ValidationError."""
    data = extract_json(raw)
    if not isinstance(data, dict):
        raise ResponseFormatError("expected a JSON object")
    return FullAnalysis.model_validate(data)


def parse_corrections(raw: str) -> SpeakerCorrections:
    """
    Accepts {"corrections": [...], "splits": [...]}; a bare list is read as corrections.
    Raises ResponseFormatError or pydantic ValidationError.
    """
    data = extract_json(raw)
    if isinstance(data, list):
        data = {"corrections": data}
    if not isinstance(data, dict):
        raise ResponseFormatError("expected a JSON object")
    return SpeakerCorrections.model_validate(data)
