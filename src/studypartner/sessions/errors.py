"""Errors raised by the session lifecycle manager.

All of them are recoverable and user facing; the API layer maps them to
4xx responses.
"""

from typing import Optional

from .models import SessionStatus


class SessionError(Exception):
    """Base class for session lifecycle errors."""


class SessionNotFoundError(SessionError):
    """Session does not exist, is soft-deleted, or belongs to another user."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class InvalidTransitionError(SessionError):
    """The session's current status does not allow the requested transition."""

    def __init__(
        self,
        session_id: str,
        current: SessionStatus,
        target: SessionStatus,
    ):
        super().__init__(
            f"Cannot move session {session_id} from {current.value} to {target.value}"
        )
        self.session_id = session_id
        self.current = current
        self.target = target


class SessionConflictError(SessionError):
    """The user already has an active or paused session."""

    def __init__(self, user_id: str, existing_session_id: Optional[str]):
        super().__init__(
            f"User {user_id} already has an open session: {existing_session_id}"
        )
        self.user_id = user_id
        self.existing_session_id = existing_session_id


class InvalidRatingError(SessionError):
    """A session rating outside the 1-5 scale."""

    def __init__(self, session_id: str, rating: int):
        super().__init__(f"Invalid rating for session {session_id}: {rating} (expected 1-5)")
        self.session_id = session_id
        self.rating = rating
