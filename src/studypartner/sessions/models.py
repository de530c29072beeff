"""Pydantic models for AI study-partner sessions.

Records:
- TutorSession: one AI partner session owned by a single user
- StudySession: generic study record mirrored for cross-feature reporting
- ConversationTurn: one chat message inside a tutor session

Status transitions are declared in ``ALLOWED_TRANSITIONS`` so that every
lifecycle operation is checked against a single exhaustive table.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
import uuid

from pydantic import BaseModel, Field

from studypartner.core.clock import utc_now


def gen_id() -> str:
    """Generate a unique ID."""
    return str(uuid.uuid4())


# =============================================================================
# Enums
# =============================================================================


class SessionStatus(str, Enum):
    """Lifecycle state of a tutor session."""

    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"  # Ended by the user
    EXPIRED = "expired"  # Ended by the staleness sweep

    @property
    def is_open(self) -> bool:
        """Open sessions count against the one-session-per-user limit."""
        return self in OPEN_STATUSES

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self]

    def can_transition_to(self, target: "SessionStatus") -> bool:
        return target in ALLOWED_TRANSITIONS[self]


ALLOWED_TRANSITIONS: dict[SessionStatus, frozenset[SessionStatus]] = {
    SessionStatus.ACTIVE: frozenset(
        {SessionStatus.PAUSED, SessionStatus.COMPLETED, SessionStatus.EXPIRED}
    ),
    SessionStatus.PAUSED: frozenset({SessionStatus.ACTIVE, SessionStatus.COMPLETED}),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.EXPIRED: frozenset(),
}

OPEN_STATUSES: frozenset[SessionStatus] = frozenset(
    {SessionStatus.ACTIVE, SessionStatus.PAUSED}
)


class StudySessionStatus(str, Enum):
    """Status of the generic study-session record.

    The generic record has no paused state; it stays active until the
    tutor session reaches a terminal state.
    """

    ACTIVE = "active"
    COMPLETED = "completed"


class TurnRole(str, Enum):
    """Who produced a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"


class SkillLevel(str, Enum):
    """Self-reported skill level for the session subject."""

    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    EXPERT = "expert"


# =============================================================================
# Session Models
# =============================================================================


class TutorSession(BaseModel):
    """A single AI study-partner session."""

    id: str = Field(default_factory=gen_id)
    user_id: str
    status: SessionStatus = SessionStatus.ACTIVE
    subject: Optional[str] = None
    skill_level: Optional[SkillLevel] = None
    study_goal: Optional[str] = None
    persona_id: Optional[str] = None
    # Opaque filter bag from partner search, stored and returned verbatim
    search_criteria: Optional[dict[str, Any]] = None
    started_at: datetime = Field(default_factory=utc_now)
    ended_at: Optional[datetime] = None
    total_duration_seconds: Optional[int] = None  # Set once ended
    message_count: int = 0
    linked_study_session_id: Optional[str] = None
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    feedback: Optional[str] = None
    deleted_by_user_at: Optional[datetime] = None
    deleted_by_admin_at: Optional[datetime] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_by_user_at is not None or self.deleted_by_admin_at is not None

    def elapsed_seconds(self, now: datetime) -> float:
        """Seconds between session start and ``now`` (never negative)."""
        return max(0.0, (now - self.started_at).total_seconds())


class StudySession(BaseModel):
    """Generic study-session record linked to a tutor session."""

    id: str = Field(default_factory=gen_id)
    user_id: str
    subject: Optional[str] = None
    status: StudySessionStatus = StudySessionStatus.ACTIVE
    started_at: datetime = Field(default_factory=utc_now)
    ended_at: Optional[datetime] = None
    duration_minutes: Optional[int] = None


class ConversationTurn(BaseModel):
    """One message in a tutor session, in chronological order."""

    id: str = Field(default_factory=gen_id)
    session_id: str
    role: TurnRole
    content: str
    created_at: datetime = Field(default_factory=utc_now)


class SessionCreate(BaseModel):
    """Parameters for starting a new tutor session."""

    subject: Optional[str] = None
    skill_level: Optional[SkillLevel] = None
    study_goal: Optional[str] = None
    persona_id: Optional[str] = None
    search_criteria: Optional[dict[str, Any]] = None
    create_study_session: bool = True


class WelcomeBackCue(BaseModel):
    """Context handed to the response layer when a paused session resumes."""

    session_id: str
    subject: Optional[str] = None
    recent_topics: list[str] = Field(default_factory=list)
