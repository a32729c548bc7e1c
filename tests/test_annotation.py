"""Tests for the Workers AI annotation client and response parsing."""

from __future__ import annotations

import json
import logging

import httpx
import pytest
from fakes import cf_settings, request_messages, segment, workers_ai_response, workers_ai_transport

from callcoach.annotation.client import AnnotationClient
from callcoach.annotation.parsing import (
    ResponseFormatError,
    extract_json,
    parse_annotation,
    parse_corrections,
    strip_json_fences,
)
from callcoach.errors import CorrectionFailure, FullAnalysisFailure
from callcoach.transcript.models import AnnotationResult, Unparseable

FRAGMENT = "We can offer a discount if you sign this quarter."

SEGMENTS = [
    segment("Speaker A", "Hi, how can I help you today?", 0.0, 2.0),
    segment("Speaker A", "I need pricing for twenty seats.", 2.0, 4.0),
]


class _Recorder:
    """MockTransport handler that records requests and replays one response."""

    def __init__(self, response: httpx.Response) -> None:
        self.response = response
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.response


async def test_annotate_parses_fenced_json() -> None:
    raw = '```json\n{"text": "%s", "emotion": "Confidence", "sentiment": "Positive", "feedback": "Good urgency."}\n```' % FRAGMENT
    client = AnnotationClient(settings=cf_settings(), transport=workers_ai_transport([raw]))

    result = await client.annotate(FRAGMENT, timestamp=12.5)

    assert result == AnnotationResult(
        text=FRAGMENT,
        emotion="confidence",
        sentiment="positive",
        timestamp=12.5,
        feedback="Good urgency.",
    )


async def test_annotate_sends_fragment_with_credentials() -> None:
    recorder = _Recorder(workers_ai_response('{"emotion": "calm", "sentiment": "neutral"}'))
    client = AnnotationClient(settings=cf_settings(), transport=httpx.MockTransport(recorder))

    await client.annotate(FRAGMENT, timestamp=1.0)

    request = recorder.requests[0]
    assert request.method == "POST"
    assert request.url.path.startswith("/client/v4/accounts/acct/ai/run/")
    assert request.headers["Authorization"] == "Bearer token"
    messages = request_messages(request)
    assert [m["role"] for m in messages] == ["system", "user"]
    assert messages[1]["content"] == FRAGMENT


async def test_annotate_malformed_json_returns_none(caplog: pytest.LogCaptureFixture) -> None:
    client = AnnotationClient(settings=cf_settings(), transport=workers_ai_transport(["{emotion: calm"]))

    with caplog.at_level(logging.WARNING, logger="callcoach.annotation.client"):
        result = await client.annotate(FRAGMENT, timestamp=3.0)

    assert result is None
    assert "unparseable" in caplog.text


async def test_annotate_missing_required_field_returns_none() -> None:
    client = AnnotationClient(settings=cf_settings(), transport=workers_ai_transport(['{"emotion": "calm"}']))

    assert await client.annotate(FRAGMENT, timestamp=3.0) is None


async def test_annotate_skips_short_fragments_without_request() -> None:
    recorder = _Recorder(workers_ai_response('{"emotion": "calm", "sentiment": "neutral"}'))
    client = AnnotationClient(settings=cf_settings(), transport=httpx.MockTransport(recorder))

    assert await client.annotate("Okay.", timestamp=0.0) is None
    assert recorder.requests == []


async def test_annotate_http_error_returns_none() -> None:
    recorder = _Recorder(httpx.Response(500, json={"success": False}))
    client = AnnotationClient(settings=cf_settings(), transport=httpx.MockTransport(recorder))

    assert await client.annotate(FRAGMENT, timestamp=0.0) is None
    assert len(recorder.requests) == 1


async def test_annotate_without_credentials_returns_none() -> None:
    client = AnnotationClient(transport=workers_ai_transport(['{"emotion": "calm", "sentiment": "neutral"}']))

    assert not client.configured
    assert await client.annotate(FRAGMENT, timestamp=0.0) is None


async def test_annotate_accepts_direct_response_envelope() -> None:
    recorder = _Recorder(httpx.Response(200, json={"response": '{"emotion": "joy", "sentiment": "positive"}'}))
    client = AnnotationClient(settings=cf_settings(), transport=httpx.MockTransport(recorder))

    result = await client.annotate(FRAGMENT, timestamp=4.0)

    assert result is not None
    assert result.emotion == "joy"
    assert result.feedback is None


async def test_analyze_full_accepts_camel_case_keys() -> None:
    raw = json.dumps(
        {
            "overallSummary": "Friendly call with a clear next step.",
            "strengths": ["Built rapport", "  "],
            "opportunities": "Ask about budget",
            "competitors": [],
            "coachingTips": ["Confirm decision makers"],
        }
    )
    client = AnnotationClient(settings=cf_settings(), transport=workers_ai_transport([raw]))

    analysis = await client.analyze_full(SEGMENTS)

    assert analysis.overall_summary == "Friendly call with a clear next step."
    assert analysis.strengths == ["Built rapport"]
    assert analysis.opportunities == ["Ask about budget"]
    assert analysis.coaching_tips == ["Confirm decision makers"]
    assert not analysis.placeholder


async def test_analyze_full_sends_numbered_transcript() -> None:
    recorder = _Recorder(workers_ai_response('{"overall_summary": "ok"}'))
    client = AnnotationClient(settings=cf_settings(), transport=httpx.MockTransport(recorder))

    await client.analyze_full(SEGMENTS)

    user_content = request_messages(recorder.requests[0])[1]["content"]
    assert "0. [Speaker A] Hi, how can I help you today?" in user_content
    assert "1. [Speaker A] I need pricing for twenty seats." in user_content


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(503, json={"success": False}),
        workers_ai_response("The call went well overall."),
        workers_ai_response(""),
    ],
)
async def test_analyze_full_failures_raise(response: httpx.Response) -> None:
    client = AnnotationClient(settings=cf_settings(), transport=httpx.MockTransport(lambda request: response))

    with pytest.raises(FullAnalysisFailure):
        await client.analyze_full(SEGMENTS)


async def test_analyze_full_empty_transcript_raises() -> None:
    client = AnnotationClient(settings=cf_settings(), transport=workers_ai_transport([]))

    with pytest.raises(FullAnalysisFailure, match="Empty transcript"):
        await client.analyze_full([])


async def test_correct_speakers_parses_reassignments_and_splits() -> None:
    raw = json.dumps(
        {
            "corrections": [{"index": 0, "newSpeaker": "Salesperson"}],
            "splits": [
                {
                    "index": 1,
                    "parts": [
                        {"speaker": "Customer", "text": "I need pricing"},
                        {"speaker": "Salesperson", "text": "for twenty seats."},
                    ],
                }
            ],
        }
    )
    client = AnnotationClient(settings=cf_settings(), transport=workers_ai_transport([raw]))

    corrections = await client.correct_speakers(SEGMENTS)

    assert [(c.index, c.new_speaker) for c in corrections.corrections] == [(0, "Salesperson")]
    assert [p.speaker for p in corrections.splits[0].parts] == ["Customer", "Salesperson"]


async def test_correct_speakers_prompt_names_both_roles() -> None:
    recorder = _Recorder(workers_ai_response('{"corrections": [], "splits": []}'))
    client = AnnotationClient(settings=cf_settings(), transport=httpx.MockTransport(recorder))

    corrections = await client.correct_speakers(SEGMENTS)

    system_prompt = request_messages(recorder.requests[0])[0]["content"]
    assert '"Salesperson"' in system_prompt
    assert '"Customer"' in system_prompt
    assert corrections.empty


async def test_correct_speakers_invalid_payload_raises() -> None:
    client = AnnotationClient(
        settings=cf_settings(),
        transport=workers_ai_transport(['{"corrections": [{"index": -1, "new_speaker": "Customer"}]}']),
    )

    with pytest.raises(CorrectionFailure):
        await client.correct_speakers(SEGMENTS)


async def test_correct_speakers_without_segments_skips_request() -> None:
    recorder = _Recorder(workers_ai_response("{}"))
    client = AnnotationClient(settings=cf_settings(), transport=httpx.MockTransport(recorder))

    assert (await client.correct_speakers([])).empty
    assert recorder.requests == []


def test_parse_annotation_finds_object_inside_prose() -> None:
    raw = 'Sure! {"emotion": "calm", "sentiment": "neutral", "feedback": "  "} Hope this helps.'

    result = parse_annotation(raw, timestamp=8.0, fragment="Let me check my calendar.")

    assert isinstance(result, AnnotationResult)
    assert result.text == "Let me check my calendar."
    assert result.feedback is None


def test_parse_annotation_rejects_unknown_sentiment() -> None:
    result = parse_annotation('{"emotion": "calm", "sentiment": "mixed"}', timestamp=0.0)

    assert isinstance(result, Unparseable)


def test_parse_corrections_reads_bare_list_as_reassignments() -> None:
    corrections = parse_corrections('[{"index": 2, "new_speaker": "Customer"}]')

    assert corrections.corrections[0].index == 2
    assert corrections.splits == []


def test_strip_json_fences() -> None:
    assert strip_json_fences('```\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_json_fences('```JSON {"a": 1}```') == '{"a": 1}'


def test_extract_json_empty_raises() -> None:
    with pytest.raises(ResponseFormatError):
        extract_json("   ")
