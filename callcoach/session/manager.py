"""
SessionManager: at most one active ConversationSession per process.

Starting a new session while another is active force-resets the previous one, so capture
resources and speaker registries are never shared between sessions.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional

from callcoach.annotation.client import AnnotationClient
from callcoach.asr.base import ASREngine
from callcoach.persistence.store import AnalysisStore
from callcoach.schemas.analysis import StoredAnalysis
from callcoach.session.controller import ConversationSession
from callcoach.session.state import SessionState

logger = logging.getLogger(__name__)


class SessionManager:
    def __init__(
        self,
        engine_factory: Callable[[], ASREngine],
        client: AnnotationClient,
        store: AnalysisStore,
    ) -> None:
        self._engine_factory = engine_factory
        self._client = client
        self._store = store
        self._current: Optional[ConversationSession] = None

    @property
    def current(self) -> Optional[ConversationSession]:
        return self._current

    @property
    def store(self) -> AnalysisStore:
        return self._store

    async def new_session(self, user_id: str | None = None) -> ConversationSession:
        previous = self._current
        if previous is not None and previous.state is not SessionState.IDLE:
            logger.info("Force-resetting session %s (%s) for a new one", previous.session_id, previous.state.value)
            await previous.reset()
        session = ConversationSession(
            engine=self._engine_factory(),
            client=self._client,
            store=self._store,
            user_id=user_id,
        )
        self._current = session
        return session

    async def start_live(self, user_id: str | None = None) -> ConversationSession:
        """New live session in RECORDING. Raises AcquisitionFailure."""
        session = await self.new_session(user_id)
        await session.start()
        return session

    async def process_upload(
        self,
        path: str,
        file_name: str | None = None,
        user_id: str | None = None,
    ) -> tuple[ConversationSession, Optional[StoredAnalysis]]:
        session = await self.new_session(user_id)
        stored = await session.process_upload(path, file_name)
        return session, stored

    async def reset_current(self) -> Optional[ConversationSession]:
        if self._current is not None:
            await self._current.reset()
        return self._current

    async def shutdown(self) -> None:
        if self._current is not None and self._current.state is not SessionState.IDLE:
            await self._current.reset()
        self._current = None
