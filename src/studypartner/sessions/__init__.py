"""Tutor sessions - models, store, and lifecycle manager."""

from .errors import (
    InvalidRatingError,
    InvalidTransitionError,
    SessionConflictError,
    SessionError,
    SessionNotFoundError,
)
from .lifecycle import SessionLifecycleManager
from .models import (
    # Enums
    SessionStatus,
    SkillLevel,
    StudySessionStatus,
    TurnRole,
    # Records
    ConversationTurn,
    SessionCreate,
    StudySession,
    TutorSession,
    WelcomeBackCue,
    # Transition table
    ALLOWED_TRANSITIONS,
    OPEN_STATUSES,
    # Utilities
    gen_id,
)
from .notifications import LoggingNotifier, SessionNotifier
from .store import SessionStore

__all__ = [
    # Store and manager
    "SessionStore",
    "SessionLifecycleManager",
    "SessionNotifier",
    "LoggingNotifier",
    # Errors
    "SessionError",
    "SessionNotFoundError",
    "InvalidTransitionError",
    "InvalidRatingError",
    "SessionConflictError",
    # Enums
    "SessionStatus",
    "SkillLevel",
    "StudySessionStatus",
    "TurnRole",
    # Records
    "ConversationTurn",
    "SessionCreate",
    "StudySession",
    "TutorSession",
    "WelcomeBackCue",
    "ALLOWED_TRANSITIONS",
    "OPEN_STATUSES",
    "gen_id",
]
