"""Session-start notifications.

Delivery itself belongs to the surrounding application; the lifecycle
manager only fires a signal and never waits for or depends on the outcome.
"""

import logging
from typing import Protocol

from .models import TutorSession

logger = logging.getLogger(__name__)


class SessionNotifier(Protocol):
    """Receives a signal whenever a tutor session starts."""

    def session_started(self, session: TutorSession) -> None: ...


class LoggingNotifier:
    """Default notifier that records session starts in the application log."""

    def session_started(self, session: TutorSession) -> None:
        logger.info(
            f"AI partner session started: {session.id} "
            f"(user={session.user_id}, subject={session.subject or '-'})"
        )


def notify_session_started(notifier: SessionNotifier, session: TutorSession) -> None:
    """Fire-and-forget wrapper: notifier failures are logged and dropped."""
    try:
        notifier.session_started(session)
    except Exception as e:
        logger.warning(f"Session start notification failed for {session.id}: {e}")
