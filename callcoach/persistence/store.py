"""
AnalysisStore: one write per finished conversation.

A save is two steps: copy the audio artifact into the user's recordings directory, then write
the record JSON. The record is written to a temp file and os.replace()d into place, so a reader
never sees a half-written record; if the record write fails the copied audio is removed again,
leaving nothing behind. A retry after a failure is therefore safe (it may create a second
record, never a partial one).
"""
from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError

from callcoach.config import get_settings
from callcoach.errors import PersistenceFailure
from callcoach.schemas.analysis import AnalysisRecord, StoredAnalysis

logger = logging.getLogger(__name__)


def generate_analysis_id() -> str:
    return uuid.uuid4().hex[:12]


class AnalysisStore(ABC):
    @abstractmethod
    def save(self, record: AnalysisRecord, audio_path: Optional[str] = None) -> StoredAnalysis:
        """Store record (+ audio). Raises PersistenceFailure; never leaves a partial write."""
        ...

    @abstractmethod
    def get(self, analysis_id: str) -> Optional[StoredAnalysis]:
        ...

    @abstractmethod
    def list_analyses(self, user_id: Optional[str] = None) -> list[StoredAnalysis]:
        """Newest first."""
        ...


class NoOpAnalysisStore(AnalysisStore):
    """When PERSISTENCE_ENABLED=false. Assigns id/timestamp, writes nothing."""

    def save(self, record: AnalysisRecord, audio_path: Optional[str] = None) -> StoredAnalysis:
        return StoredAnalysis(
            **record.model_dump(),
            id=generate_analysis_id(),
            created_at=datetime.now(timezone.utc),
        )

    def get(self, analysis_id: str) -> Optional[StoredAnalysis]:
        return None

    def list_analyses(self, user_id: Optional[str] = None) -> list[StoredAnalysis]:
        return []


class LocalAnalysisStore(AnalysisStore):
    """
    Files on local disk:
      {recordings_dir}/{user_id}/{timestamp_ms}_{file name}   audio artifact
      {analyses_dir}/{id}.json                                 record
    """

    def __init__(self, analyses_dir: Optional[str] = None, recordings_dir: Optional[str] = None) -> None:
        settings = get_settings()
        self._analyses_dir = analyses_dir or settings.ANALYSES_DIR
        self._recordings_dir = recordings_dir or settings.RECORDINGS_DIR

    def _record_path(self, analysis_id: str) -> str:
        return os.path.join(self._analyses_dir, f"{analysis_id}.json")

    def _store_audio(self, audio_path: str, user_id: str, created_at: datetime) -> str:
        user_dir = os.path.join(self._recordings_dir, user_id)
        os.makedirs(user_dir, exist_ok=True)
        name = f"{int(created_at.timestamp() * 1000)}_{os.path.basename(audio_path)}"
        dest = os.path.join(user_dir, name)
        shutil.copyfile(audio_path, dest)
        return dest

    def _write_record(self, stored: StoredAnalysis) -> None:
        os.makedirs(self._analyses_dir, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(prefix=f".{stored.id}.", suffix=".tmp", dir=self._analyses_dir)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(stored.model_dump_json(indent=2))
            os.replace(tmp_path, self._record_path(stored.id))
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def save(self, record: AnalysisRecord, audio_path: Optional[str] = None) -> StoredAnalysis:
        created_at = datetime.now(timezone.utc)
        analysis_id = generate_analysis_id()
        audio_ref = record.audio_ref
        stored_audio: Optional[str] = None
        if audio_path:
            try:
                stored_audio = self._store_audio(audio_path, record.user_id, created_at)
            except OSError as e:
                raise PersistenceFailure(f"Audio upload failed: {e}") from e
            audio_ref = stored_audio
        stored = StoredAnalysis(
            **record.model_dump(exclude={"audio_ref"}),
            audio_ref=audio_ref,
            id=analysis_id,
            created_at=created_at,
        )
        try:
            self._write_record(stored)
        except OSError as e:
            if stored_audio and os.path.exists(stored_audio):
                os.remove(stored_audio)
            raise PersistenceFailure(f"Record write failed: {e}") from e
        logger.info("Stored analysis %s (%s)", analysis_id, record.title)
        return stored

    def get(self, analysis_id: str) -> Optional[StoredAnalysis]:
        if not analysis_id or os.sep in analysis_id or analysis_id.startswith("."):
            return None
        path = self._record_path(analysis_id)
        if not os.path.isfile(path):
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return StoredAnalysis.model_validate(json.load(f))
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            logger.warning("Could not load analysis %s: %s", path, e)
            return None

    def list_analyses(self, user_id: Optional[str] = None) -> list[StoredAnalysis]:
        if not os.path.isdir(self._analyses_dir):
            return []
        records: list[StoredAnalysis] = []
        for name in os.listdir(self._analyses_dir):
            if not name.endswith(".json") or name.startswith("."):
                continue
            stored = self.get(name[: -len(".json")])
            if stored is None:
                continue
            if user_id is not None and stored.user_id != user_id:
                continue
            records.append(stored)
        records.sort(key=lambda r: r.created_at, reverse=True)
        return records


def create_analysis_store() -> AnalysisStore:
    """LocalAnalysisStore when PERSISTENCE_ENABLED is true; else no-op."""
    if not get_settings().PERSISTENCE_ENABLED:
        return NoOpAnalysisStore()
    return LocalAnalysisStore()
