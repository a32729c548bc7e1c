"""Session lifecycle: state machine, per-session context, controller and manager."""
from .context import SessionContext
from .controller import ConversationSession
from .manager import SessionManager
from .progress import ProgressTracker
from .state import ALLOWED_TRANSITIONS, SessionState, SessionStateMachine

__all__ = [
    "ALLOWED_TRANSITIONS",
    "ConversationSession",
    "ProgressTracker",
    "SessionContext",
    "SessionManager",
    "SessionState",
    "SessionStateMachine",
]
