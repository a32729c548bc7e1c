"""Tests for analysis records and the analysis stores."""

from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path
from typing import Optional

import pytest
from fakes import segment

from callcoach.errors import PersistenceFailure
from callcoach.metrics.aggregator import compute_metrics, sentiment_series
from callcoach.persistence.handoff import (
    COACHING_CARD_FALLBACK,
    build_analysis_record,
    build_title,
    coaching_summary,
    persist_analysis,
    placeholder_analysis,
)
from callcoach.persistence.store import AnalysisStore, LocalAnalysisStore, NoOpAnalysisStore
from callcoach.schemas.analysis import AnalysisRecord, StoredAnalysis
from callcoach.schemas.annotation import FullAnalysis


def _record(user_id: str = "rep-1", uploaded_file_name: Optional[str] = None) -> AnalysisRecord:
    segments = [
        segment("Salesperson", "Thanks for joining. What are you using today?", 0.0, 4.0, sentiment="positive"),
        segment("Customer", "A spreadsheet, mostly.", 4.0, 65.0, sentiment="neutral"),
    ]
    analysis = FullAnalysis(
        overall_summary="Good discovery.",
        strengths=["Open question", "Warm opening", "Active listening", "Clear agenda"],
        opportunities=["Quantify pain"],
    )
    return build_analysis_record(
        segments,
        compute_metrics(segments),
        sentiment_series(segments),
        analysis,
        ["What are you using today?"],
        [("guest-1", "Speaker A"), ("guest-2", "Speaker B")],
        user_id=user_id,
        uploaded_file_name=uploaded_file_name,
        now=datetime(2026, 10, 18, 14, 30),
    )


@pytest.fixture
def store(tmp_path: Path) -> LocalAnalysisStore:
    return LocalAnalysisStore(analyses_dir=str(tmp_path / "analyses"), recordings_dir=str(tmp_path / "recordings"))


def test_build_analysis_record_fields() -> None:
    record = _record(uploaded_file_name="call.mp3")

    assert record.title == "Sales Call - Oct 18, 2026 at 02:30 PM (Uploaded)"
    assert record.source == "upload"
    assert record.duration == "1:05"
    assert record.transcript[1] == "[Customer] A spreadsheet, mostly."
    assert record.coaching_card == [
        "STRENGTH: Open question",
        "STRENGTH: Warm opening",
        "STRENGTH: Active listening",
        "OPPORTUNITY: Quantify pain",
    ]
    assert [(s.raw_id, s.label) for s in record.speakers] == [("guest-1", "Speaker A"), ("guest-2", "Speaker B")]
    assert record.keywords == record.metrics.keywords


def test_live_title_has_no_upload_suffix() -> None:
    assert build_title(datetime(2026, 1, 5, 9, 5)) == "Sales Call - Jan 5, 2026 at 09:05 AM"


def test_placeholder_analysis_keeps_card_fallback() -> None:
    analysis = placeholder_analysis("timeout")

    assert analysis.placeholder
    assert "timeout" in analysis.overall_summary
    assert coaching_summary(analysis) == [COACHING_CARD_FALLBACK]


def test_local_store_round_trip(store: LocalAnalysisStore, tmp_path: Path) -> None:
    audio = tmp_path / "session.wav"
    audio.write_bytes(b"RIFF0000")

    stored = store.save(_record(), str(audio))

    assert store.get(stored.id) == stored
    assert stored.audio_ref is not None
    assert Path(stored.audio_ref).parent == tmp_path / "recordings" / "rep-1"
    assert Path(stored.audio_ref).name.endswith("_session.wav")
    assert Path(stored.audio_ref).read_bytes() == b"RIFF0000"
    assert [p.name for p in (tmp_path / "analyses").iterdir()] == [f"{stored.id}.json"]


def test_local_store_lists_newest_first_with_user_filter(store: LocalAnalysisStore) -> None:
    first = store.save(_record(user_id="rep-1"))
    second = store.save(_record(user_id="rep-2"))
    third = store.save(_record(user_id="rep-1"))

    listing = store.list_analyses()
    created = [s.created_at for s in listing]
    assert created == sorted(created, reverse=True)
    assert {s.id for s in listing} == {first.id, second.id, third.id}
    assert {s.id for s in store.list_analyses("rep-1")} == {first.id, third.id}


def test_failed_record_write_removes_copied_audio(
    store: LocalAnalysisStore, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    audio = tmp_path / "session.wav"
    audio.write_bytes(b"RIFF0000")

    def broken_write(stored: StoredAnalysis) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(store, "_write_record", broken_write)

    with pytest.raises(PersistenceFailure, match="disk full"):
        store.save(_record(), str(audio))

    assert os.listdir(tmp_path / "recordings" / "rep-1") == []
    assert store.list_analyses() == []


def test_missing_audio_is_persistence_failure(store: LocalAnalysisStore, tmp_path: Path) -> None:
    with pytest.raises(PersistenceFailure):
        store.save(_record(), str(tmp_path / "gone.wav"))


def test_get_rejects_paths(store: LocalAnalysisStore) -> None:
    assert store.get(os.path.join("..", "secrets")) is None
    assert store.get(".hidden") is None
    assert store.get("unknown") is None


def test_noop_store_assigns_id_without_writing(tmp_path: Path) -> None:
    store = NoOpAnalysisStore()

    stored = store.save(_record())

    assert stored.id
    assert store.list_analyses() == []
    assert not (tmp_path / "analyses").exists()


class _FlakyStore(AnalysisStore):
    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.attempts = 0

    def save(self, record: AnalysisRecord, audio_path: Optional[str] = None) -> StoredAnalysis:
        self.attempts += 1
        if self.attempts <= self.failures:
            raise PersistenceFailure("bucket unavailable")
        return NoOpAnalysisStore().save(record, audio_path)

    def get(self, analysis_id: str) -> Optional[StoredAnalysis]:
        return None

    def list_analyses(self, user_id: Optional[str] = None) -> list[StoredAnalysis]:
        return []


async def test_persist_retries_once() -> None:
    store = _FlakyStore(failures=1)

    stored = await persist_analysis(store, _record())

    assert store.attempts == 2
    assert stored.title.startswith("Sales Call")


async def test_persist_gives_up_after_second_failure() -> None:
    store = _FlakyStore(failures=5)

    with pytest.raises(PersistenceFailure, match="bucket unavailable"):
        await persist_analysis(store, _record())
    assert store.attempts == 2
