"""Tests for the ASR engines and the session audio recorder."""

from __future__ import annotations

import wave
from pathlib import Path
from types import SimpleNamespace

import httpx
import numpy as np
import pytest
from fakes import cf_settings, pcm_silence

from callcoach.asr.cloudflare import CloudflareWhisperEngine, group_words, parse_whisper_response
from callcoach.asr.local_whisper import LocalWhisperEngine, pcm_bytes_to_float32, segments_to_result
from callcoach.audio.recorder import AudioRecorder

WORDS = [
    {"word": "Hi,", "start": 0.0, "end": 0.3},
    {"word": "thanks", "start": 0.35, "end": 0.6},
    {"word": "for", "start": 0.6, "end": 0.7},
    {"word": "calling.", "start": 0.7, "end": 1.1},
    {"word": "So", "start": 1.3, "end": 1.4},
    {"word": "pricing", "start": 2.6, "end": 3.0},
    {"word": "first?", "start": 3.0, "end": 3.4},
]


def test_group_words_splits_on_sentence_end_and_pause() -> None:
    segments = group_words(WORDS, pause_sec=0.8)

    assert [(s.start, s.end, s.text) for s in segments] == [
        (0.0, 1.1, "Hi, thanks for calling."),
        (1.3, 1.4, "So"),
        (2.6, 3.4, "pricing first?"),
    ]


def test_parse_whisper_response_without_words_has_no_segments() -> None:
    result = parse_whisper_response({"result": {"text": " Hello there. "}}, pause_sec=0.8)

    assert result.text == "Hello there."
    assert result.segments is None
    assert result.confidence == 1.0


async def test_cloudflare_engine_posts_pcm_and_parses_words() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, json={"result": {"text": "Hi, thanks for calling.", "words": WORDS[:4]}})

    engine = CloudflareWhisperEngine(settings=cf_settings(), transport=httpx.MockTransport(handler))

    result = await engine.transcribe(np.zeros(160, dtype=np.float32), is_final=True)

    assert result.text == "Hi, thanks for calling."
    assert [s.text for s in result.segments] == ["Hi, thanks for calling."]
    assert requests[0].url.path.startswith("/client/v4/accounts/acct/ai/run/")
    assert requests[0].url.path.endswith("/openai/whisper")
    assert requests[0].headers["Authorization"] == "Bearer token"


async def test_cloudflare_engine_raises_on_provider_error() -> None:
    engine = CloudflareWhisperEngine(
        settings=cf_settings(),
        transport=httpx.MockTransport(lambda request: httpx.Response(502)),
    )

    with pytest.raises(httpx.HTTPStatusError):
        await engine.transcribe(np.zeros(160, dtype=np.float32), is_final=True)


def test_engine_readiness() -> None:
    assert CloudflareWhisperEngine(settings=cf_settings()).ready
    assert not CloudflareWhisperEngine().ready
    assert not LocalWhisperEngine(model=None).ready


def test_segments_to_result_skips_blank_segments() -> None:
    segments = [
        SimpleNamespace(start=0.0, end=1.0, text=" Good morning. "),
        SimpleNamespace(start=1.0, end=1.5, text="  "),
        SimpleNamespace(start=1.5, end=2.5, text="Shall we start?"),
    ]

    result = segments_to_result(segments, is_final=False)

    assert result.text == "Good morning. Shall we start?"
    assert len(result.segments) == 2
    assert not result.is_final


def test_pcm_bytes_to_float32_range() -> None:
    audio = pcm_bytes_to_float32(np.array([-32768, 0, 16384], dtype=np.int16).tobytes())

    assert audio.dtype == np.float32
    assert audio.tolist() == [-1.0, 0.0, 0.5]


def test_recorder_writes_wav_once(tmp_path: Path) -> None:
    recorder = AudioRecorder(session_id="abc", record_dir=str(tmp_path))
    recorder.append(pcm_silence(0.5))
    recorder.append(b"\x00")  # odd length, dropped

    path = recorder.finalize()

    assert path is not None
    with wave.open(path, "rb") as wav:
        assert wav.getframerate() == 16000
        assert wav.getnframes() == 8000
    assert recorder.finalize() is None


def test_recorder_discard_writes_nothing(tmp_path: Path) -> None:
    recorder = AudioRecorder(session_id="abc", record_dir=str(tmp_path))
    recorder.append(pcm_silence(0.5))
    recorder.discard()

    assert recorder.finalize() is None
    assert list(tmp_path.iterdir()) == []
