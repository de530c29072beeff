"""Session Lifecycle Manager.

Owns the tutor-session state machine and is the only component that
mutates persisted session state:

    (none) ──create──▶ ACTIVE ──pause──▶ PAUSED
                         ▲  │◀──resume───┘  │
                         │  ├──complete─────┴──▶ COMPLETED
                         │  └──sweep───────────▶ EXPIRED

Every transition is checked against ``ALLOWED_TRANSITIONS`` and written as
a conditional update on the stored status, so a stale read can never win
a race against a concurrent request.
"""

import logging
from datetime import timedelta
from typing import Any, Optional

from studypartner.core.clock import Clock, utc_now
from studypartner.core.config import Settings, get_settings

from .errors import (
    InvalidRatingError,
    InvalidTransitionError,
    SessionConflictError,
    SessionNotFoundError,
)
from .models import (
    ALLOWED_TRANSITIONS,
    ConversationTurn,
    SessionStatus,
    SkillLevel,
    StudySession,
    TurnRole,
    TutorSession,
    WelcomeBackCue,
)
from .notifications import LoggingNotifier, SessionNotifier, notify_session_started
from .store import SessionStore

logger = logging.getLogger(__name__)

WELCOME_BACK_TOPIC_CHARS = 50
WELCOME_BACK_TOPIC_COUNT = 2
MIN_RATING = 1
MAX_RATING = 5


def _sources_for(target: SessionStatus) -> set[SessionStatus]:
    """All statuses from which ``target`` may be reached."""
    return {status for status, targets in ALLOWED_TRANSITIONS.items() if target in targets}


class SessionLifecycleManager:
    """Create, pause, resume, complete and expire AI partner sessions.

    Example:
        manager = SessionLifecycleManager(SessionStore("./data/partner.db"))
        session = manager.create_session(user_id, subject="Algebra")
        manager.pause(session.id, user_id)
        session, cue = manager.resume(session.id, user_id)
        manager.complete(session.id, user_id, rating=5)
    """

    def __init__(
        self,
        store: SessionStore,
        clock: Clock = utc_now,
        notifier: Optional[SessionNotifier] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.clock = clock
        self.notifier = notifier or LoggingNotifier()
        self.settings = settings or get_settings()

    # =========================================================================
    # Queries
    # =========================================================================

    def get_session(self, session_id: str, user_id: str) -> TutorSession:
        """Get a session owned by ``user_id``.

        Raises:
            SessionNotFoundError: If missing, soft-deleted, or owned by someone else
        """
        session = self.store.get_session(session_id)
        if session is None or session.user_id != user_id:
            raise SessionNotFoundError(session_id)
        return session

    def require_active(self, session_id: str, user_id: str) -> TutorSession:
        """Get a session and confirm it can accept a new turn.

        Raises:
            SessionNotFoundError: If the caller cannot see the session
            InvalidTransitionError: If the session is not ACTIVE
        """
        session = self.get_session(session_id, user_id)
        if session.status != SessionStatus.ACTIVE:
            raise InvalidTransitionError(session_id, session.status, SessionStatus.ACTIVE)
        return session

    def get_active_or_paused(self, user_id: str) -> Optional[TutorSession]:
        """Get the user's open session for dashboard widgets, if any."""
        return self.store.find_open_session(user_id)

    def list_sessions(
        self,
        user_id: str,
        status: Optional[SessionStatus] = None,
        limit: int = 20,
    ) -> list[TutorSession]:
        """Get the user's sessions, most recent first."""
        return self.store.list_sessions(user_id, status=status, limit=limit)

    # =========================================================================
    # Transitions
    # =========================================================================

    def create_session(
        self,
        user_id: str,
        subject: Optional[str] = None,
        skill_level: Optional[SkillLevel] = None,
        study_goal: Optional[str] = None,
        persona_id: Optional[str] = None,
        search_criteria: Optional[dict[str, Any]] = None,
        create_study_session: bool = True,
    ) -> TutorSession:
        """Start a new ACTIVE session for a user.

        Raises:
            SessionConflictError: If the user already has an active or paused
                session; carries ``existing_session_id`` so callers can offer resume.
        """
        now = self.clock()
        session = TutorSession(
            user_id=user_id,
            subject=subject,
            skill_level=skill_level,
            study_goal=study_goal,
            persona_id=persona_id,
            search_criteria=search_criteria,
            started_at=now,
        )
        study_session = (
            StudySession(user_id=user_id, subject=subject, started_at=now)
            if create_study_session
            else None
        )

        try:
            created = self.store.create_session_exclusive(session, study_session)
        except SessionConflictError as e:
            logger.warning(
                f"Session create rejected for user {user_id}: "
                f"open session {e.existing_session_id} exists"
            )
            raise

        logger.info(f"Session {created.id} created for user {user_id}")
        notify_session_started(self.notifier, created)
        return created

    def pause(self, session_id: str, user_id: str) -> TutorSession:
        """Pause an ACTIVE session (e.g. the user hid the widget).

        Raises:
            SessionNotFoundError: If the caller cannot see the session
            InvalidTransitionError: If the stored status is not ACTIVE
        """
        return self._transition(session_id, user_id, SessionStatus.PAUSED)

    def resume(self, session_id: str, user_id: str) -> tuple[TutorSession, WelcomeBackCue]:
        """Resume a PAUSED session.

        Returns:
            The updated session and a welcome-back cue for the response layer.

        Raises:
            SessionNotFoundError: If the caller cannot see the session
            InvalidTransitionError: If the stored status is not PAUSED
        """
        session = self._transition(session_id, user_id, SessionStatus.ACTIVE)
        return session, self._welcome_back_cue(session)

    def complete(
        self,
        session_id: str,
        user_id: str,
        rating: Optional[int] = None,
        feedback: Optional[str] = None,
    ) -> TutorSession:
        """End an ACTIVE or PAUSED session and finalize its duration.

        A session that already reached a terminal state (for example, expired
        by the sweep a moment earlier) is returned unchanged; a rating or
        feedback sent with that call is not recorded.

        Raises:
            SessionNotFoundError: If the caller cannot see the session
            InvalidRatingError: If ``rating`` is outside 1-5
        """
        if rating is not None and not MIN_RATING <= rating <= MAX_RATING:
            raise InvalidRatingError(session_id, rating)

        session = self.get_session(session_id, user_id)
        if session.status.is_terminal:
            if rating is not None or feedback is not None:
                logger.info(
                    f"Session {session_id} already {session.status.value}, "
                    "ignoring rating/feedback"
                )
            else:
                logger.info(f"Session {session_id} already {session.status.value}, nothing to complete")
            return session

        ended_at = self.clock()
        duration = int(session.elapsed_seconds(ended_at))
        changed = self.store.update_status(
            session_id,
            expected=_sources_for(SessionStatus.COMPLETED),
            target=SessionStatus.COMPLETED,
            ended_at=ended_at,
            total_duration_seconds=duration,
            rating=rating,
            feedback=feedback,
        )
        if changed:
            logger.info(f"Session {session_id} completed after {duration}s")
        else:
            logger.info(f"Session {session_id} was ended concurrently")
        return self.get_session(session_id, user_id)

    def complete_all(self, user_id: str) -> int:
        """End every open session of a user, e.g. when they opt out of the feature.

        All sessions share one ``ended_at``; per-session durations are left for
        the reporting job. Calling it again is harmless and returns 0.

        Returns:
            Number of sessions ended.
        """
        ended = self.store.complete_all_open(user_id, self.clock())
        logger.info(f"Ended {ended} open session(s) for user {user_id}")
        return ended

    def expire_stale(self) -> list[str]:
        """Expire ACTIVE sessions that are old and have gone quiet.

        A session expires when it started more than ``stale_session_minutes``
        ago and its newest turn (or its start, if it has none) is older than
        ``stale_idle_minutes``. Uses the same conditional update as
        ``complete``; sessions ended in the meantime are skipped.

        Returns:
            IDs of the sessions this sweep expired.
        """
        now = self.clock()
        started_cutoff = now - timedelta(minutes=self.settings.stale_session_minutes)
        idle_cutoff = now - timedelta(minutes=self.settings.stale_idle_minutes)

        expired = []
        for session in self.store.list_active_started_before(started_cutoff):
            last_activity = self.store.get_last_turn_at(session.id) or session.started_at
            if last_activity >= idle_cutoff:
                continue
            changed = self.store.update_status(
                session.id,
                expected=_sources_for(SessionStatus.EXPIRED),
                target=SessionStatus.EXPIRED,
                ended_at=now,
                total_duration_seconds=int(session.elapsed_seconds(now)),
            )
            if changed:
                expired.append(session.id)

        if expired:
            logger.info(f"Expired {len(expired)} stale session(s)")
        return expired

    def record_turn(
        self,
        session_id: str,
        user_id: str,
        role: TurnRole,
        content: str,
    ) -> ConversationTurn:
        """Append a turn to an ACTIVE session and bump its message count.

        Raises:
            SessionNotFoundError: If the caller cannot see the session
            InvalidTransitionError: If the session is not ACTIVE
        """
        self.require_active(session_id, user_id)
        turn = ConversationTurn(
            session_id=session_id,
            role=role,
            content=content,
            created_at=self.clock(),
        )
        stored = self.store.append_turn(turn)
        if stored is None:
            # Paused, ended or deleted between the check and the write
            current = self.get_session(session_id, user_id)
            raise InvalidTransitionError(session_id, current.status, SessionStatus.ACTIVE)
        return stored

    def _transition(
        self, session_id: str, user_id: str, target: SessionStatus
    ) -> TutorSession:
        """Apply a non-terminal transition conditioned on the stored status."""
        session = self.get_session(session_id, user_id)
        if not session.status.can_transition_to(target):
            raise InvalidTransitionError(session_id, session.status, target)

        changed = self.store.update_status(
            session_id,
            expected=_sources_for(target),
            target=target,
        )
        if not changed:
            # Another request moved the session after our read
            current = self.get_session(session_id, user_id)
            raise InvalidTransitionError(session_id, current.status, target)

        logger.info(f"Session {session_id}: {session.status.value} -> {target.value}")
        return self.get_session(session_id, user_id)

    def _welcome_back_cue(self, session: TutorSession) -> WelcomeBackCue:
        recent = self.store.get_recent_turns(session.id, limit=5)
        topics = [
            turn.content[:WELCOME_BACK_TOPIC_CHARS]
            for turn in reversed(recent)
            if turn.role == TurnRole.USER
        ][:WELCOME_BACK_TOPIC_COUNT]
        return WelcomeBackCue(
            session_id=session.id,
            subject=session.subject,
            recent_topics=topics,
        )
