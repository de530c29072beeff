"""Proactive Suggestion Engine.

Decides, on each client poll, whether the assistant should speak first.
The conversational phase is re-derived from session age and the recent
turn window every time and never persisted:

- STUCK: repeated confusion, a run of low-effort replies, or an assistant
  question left unanswered for too long
- START: the session has barely any messages yet
- WRAP_UP: the session has run past the long-session threshold
- PROGRESS_CHECK: shortly after each periodic check-in mark, at most once
  per interval
- NONE: nothing to do

Phases are checked in that priority order and the first match wins. The
engine is advisory: any failure yields "no suggestion" instead of an error.
"""

import logging
from datetime import datetime
from enum import Enum
from typing import Optional, Sequence

from pydantic import BaseModel

from studypartner.core.clock import Clock, utc_now
from studypartner.core.config import Settings, get_settings
from studypartner.sessions.models import (
    ConversationTurn,
    SessionStatus,
    TurnRole,
    TutorSession,
)
from studypartner.sessions.store import SessionStore

from .signals import detect_turn_signals

logger = logging.getLogger(__name__)

CONFUSED_TURNS_FOR_STUCK = 2
LOW_EFFORT_STREAK_FOR_STUCK = 3


class Phase(str, Enum):
    """Conversational phase as seen by the suggestion engine."""

    NONE = "none"
    START = "start"
    STUCK = "stuck"
    PROGRESS_CHECK = "progress_check"
    WRAP_UP = "wrap_up"


class Suggestion(BaseModel):
    """Whether (and why) the assistant should interject unprompted."""

    type: Phase = Phase.NONE
    should_ask: bool = False
    reason: Optional[str] = None


class ProactiveSuggestionEngine:
    """Read-only evaluator for proactive prompts.

    Holds no mutable state, so one instance can serve concurrent polls.
    Suppression bookkeeping (``last_proactive_ask_index`` and
    ``ai_messages_since_ask``) is supplied by the caller on every poll.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        clock: Clock = utc_now,
    ):
        self.settings = settings or get_settings()
        self.clock = clock

    def evaluate(
        self,
        session: TutorSession,
        recent_turns: Sequence[ConversationTurn],
        last_proactive_ask_index: Optional[int] = None,
        ai_messages_since_ask: int = 0,
    ) -> Suggestion:
        """Decide whether to push a proactive prompt for this snapshot.

        Args:
            session: The tutor session being polled
            recent_turns: Most recent turns, oldest first
            last_proactive_ask_index: Position in the turn stream of the last
                proactive ask, or None if the engine has not asked yet
            ai_messages_since_ask: Assistant turns emitted since that ask

        Returns:
            Suggestion; ``Suggestion()`` (none, False) on any internal failure
        """
        try:
            return self._evaluate(
                session, recent_turns, last_proactive_ask_index, ai_messages_since_ask
            )
        except Exception as e:
            logger.warning(
                f"Proactive evaluation failed for session {getattr(session, 'id', '?')}: {e}"
            )
            return Suggestion()

    def evaluate_stored(
        self,
        store: SessionStore,
        session: TutorSession,
        last_proactive_ask_index: Optional[int] = None,
        ai_messages_since_ask: int = 0,
    ) -> Suggestion:
        """Evaluate a persisted session, reading its recent turns from the store."""
        if session.status != SessionStatus.ACTIVE:
            return Suggestion()
        try:
            turns = store.get_recent_turns(session.id, limit=self.settings.recent_turn_window)
        except Exception as e:
            logger.warning(f"Could not read turns for session {session.id}: {e}")
            return Suggestion()
        return self.evaluate(session, turns, last_proactive_ask_index, ai_messages_since_ask)

    def _evaluate(
        self,
        session: TutorSession,
        recent_turns: Sequence[ConversationTurn],
        last_proactive_ask_index: Optional[int],
        ai_messages_since_ask: int,
    ) -> Suggestion:
        if session.status != SessionStatus.ACTIVE:
            return Suggestion()

        settings = self.settings
        has_asked = last_proactive_ask_index is not None and last_proactive_ask_index >= 0
        if has_asked and ai_messages_since_ask < settings.min_ai_messages_between_asks:
            return Suggestion(reason="spacing")

        turns = list(recent_turns)[-settings.recent_turn_window:]
        now = self.clock()
        elapsed_minutes = session.elapsed_seconds(now) / 60

        stuck_reason = self._stuck_reason(
            session, turns, last_proactive_ask_index if has_asked else None, now
        )
        if stuck_reason:
            return Suggestion(type=Phase.STUCK, should_ask=True, reason=stuck_reason)

        if session.message_count <= settings.start_message_threshold:
            return Suggestion(type=Phase.START, should_ask=True, reason="new_session")

        if elapsed_minutes >= settings.wrap_up_minutes:
            return Suggestion(type=Phase.WRAP_UP, should_ask=True, reason="long_session")

        interval = settings.progress_check_minutes
        if (
            elapsed_minutes >= interval
            and elapsed_minutes % interval < settings.progress_check_window_minutes
        ):
            if has_asked and self._asked_this_check_in(
                session, turns, last_proactive_ask_index, elapsed_minutes
            ):
                return Suggestion()
            return Suggestion(type=Phase.PROGRESS_CHECK, should_ask=True, reason="check_in_due")

        return Suggestion()

    def _asked_this_check_in(
        self,
        session: TutorSession,
        turns: list[ConversationTurn],
        last_ask_index: int,
        elapsed_minutes: float,
    ) -> bool:
        """Whether the last proactive ask falls in the current check-in interval.

        An ask older than the turn window belongs to an earlier interval; one
        past the newest stored turn was made just now.
        """
        position = last_ask_index - max(0, session.message_count - len(turns))
        if position < 0:
            return False
        if position < len(turns):
            asked_minutes = session.elapsed_seconds(turns[position].created_at) / 60
        else:
            asked_minutes = elapsed_minutes
        interval = self.settings.progress_check_minutes
        return asked_minutes // interval == elapsed_minutes // interval

    def _stuck_reason(
        self,
        session: TutorSession,
        turns: list[ConversationTurn],
        last_ask_index: Optional[int],
        now: datetime,
    ) -> Optional[str]:
        """Name of the stuck signal that fired, or None."""
        if not turns:
            return None

        # Turns before the last ask were already acted on
        offset = max(0, session.message_count - len(turns))
        fresh = [
            turn
            for position, turn in enumerate(turns, start=offset)
            if last_ask_index is None or position > last_ask_index
        ]
        user_signals = [
            detect_turn_signals(turn.content) for turn in fresh if turn.role == TurnRole.USER
        ]

        if sum(s.is_confused for s in user_signals) >= CONFUSED_TURNS_FOR_STUCK:
            return "confusion"

        streak = 0
        for signals in reversed(user_signals):
            if not signals.is_low_effort:
                break
            streak += 1
        if streak >= LOW_EFFORT_STREAK_FOR_STUCK:
            return "short_replies"

        last = turns[-1]
        if last.role == TurnRole.ASSISTANT and last.content.rstrip().endswith("?"):
            waited_minutes = (now - last.created_at).total_seconds() / 60
            if waited_minutes >= self.settings.idle_gap_minutes:
                return "unanswered_question"

        return None
