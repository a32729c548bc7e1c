"""
Session lifecycle: IDLE -> RECORDING -> (TRANSCRIBING) -> ANALYZING -> DONE.

TRANSCRIBING is the optional review step between recording and analysis. Every state may
return to IDLE (reset or fatal failure); any other move raises InvalidTransition.
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional

from callcoach.errors import CallCoachError, InvalidTransition

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    TRANSCRIBING = "transcribing"
    ANALYZING = "analyzing"
    DONE = "done"


ALLOWED_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.RECORDING}),
    SessionState.RECORDING: frozenset({SessionState.TRANSCRIBING, SessionState.ANALYZING}),
    SessionState.TRANSCRIBING: frozenset({SessionState.ANALYZING}),
    SessionState.ANALYZING: frozenset({SessionState.DONE}),
    SessionState.DONE: frozenset(),
}

# (old_state, new_state)
TransitionListener = Callable[[SessionState, SessionState], None]


class SessionStateMachine:
    def __init__(self) -> None:
        self._state = SessionState.IDLE
        self._last_error: Optional[CallCoachError] = None
        self._listeners: list[TransitionListener] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def last_error(self) -> Optional[CallCoachError]:
        return self._last_error

    def add_listener(self, listener: TransitionListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: TransitionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def can_transition(self, target: SessionState) -> bool:
        return target is SessionState.IDLE or target in ALLOWED_TRANSITIONS[self._state]

    def transition(self, target: SessionState, error: CallCoachError | None = None) -> None:
        if not self.can_transition(target):
            raise InvalidTransition(f"Cannot move from {self._state.value} to {target.value}")
        old = self._state
        self._state = target
        if error is not None:
            self._last_error = error
        elif target is SessionState.RECORDING:
            self._last_error = None
        logger.info("Session state %s -> %s", old.value, target.value)
        for listener in list(self._listeners):
            try:
                listener(old, target)
            except Exception:
                logger.exception("State listener failed on %s -> %s", old.value, target.value)

    def fail(self, error: CallCoachError) -> None:
        """Fatal failure: back to IDLE with the error kept for the caller."""
        self.transition(SessionState.IDLE, error=error)

    def reset(self) -> None:
        """Explicit reset clears the last error."""
        self._last_error = None
        self.transition(SessionState.IDLE)
