"""Pydantic schemas for API request/response models."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from studypartner.dialogue.intent import IntentVerdict
from studypartner.dialogue.proactive import Suggestion
from studypartner.sessions.models import SessionStatus, SkillLevel, WelcomeBackCue


# Session schemas
class SessionResponse(BaseModel):
    """Tutor session response."""

    id: str
    user_id: str
    status: SessionStatus
    subject: Optional[str] = None
    skill_level: Optional[SkillLevel] = None
    study_goal: Optional[str] = None
    persona_id: Optional[str] = None
    search_criteria: Optional[dict[str, Any]] = None
    started_at: datetime
    ended_at: Optional[datetime] = None
    total_duration_seconds: Optional[int] = None
    message_count: int = 0
    linked_study_session_id: Optional[str] = None
    rating: Optional[int] = None
    feedback: Optional[str] = None

    model_config = {"from_attributes": True}


class SessionListResponse(BaseModel):
    """A page of the caller's sessions, most recent first."""

    sessions: list[SessionResponse] = Field(default_factory=list)


class CurrentSessionResponse(BaseModel):
    """The caller's open session, if any."""

    session: Optional[SessionResponse] = None


class ResumeResponse(BaseModel):
    """Resumed session plus context for the welcome-back message."""

    session: SessionResponse
    welcome_back: WelcomeBackCue


class EndSessionRequest(BaseModel):
    """Request to end a session."""

    rating: Optional[int] = Field(default=None, ge=1, le=5)
    feedback: Optional[str] = None


class CompleteAllResponse(BaseModel):
    """Result of ending every open session."""

    sessions_ended: int


# Proactive schemas
class ProactiveRequest(BaseModel):
    """Client-held suppression bookkeeping sent with each poll."""

    last_proactive_ask_index: Optional[int] = None
    ai_messages_since_ask: int = Field(default=0, ge=0)


class ProactiveResponse(Suggestion):
    """Proactive suggestion for the polled session."""


# Message / intent schemas
class MessageRequest(BaseModel):
    """A user message sent in an active session."""

    content: str = Field(..., min_length=1)


class IntentRequest(BaseModel):
    """Message to classify without recording it."""

    message: str


class IntentResponse(IntentVerdict):
    """Intent verdict plus the guard directive for the response layer."""

    directive: Optional[str] = None


class MessageResponse(BaseModel):
    """Recorded turn and its intent analysis."""

    turn_id: str
    session_id: str
    message_count: int
    intent: IntentResponse
