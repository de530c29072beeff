"""SQLite store for AI study-partner sessions.

Provides persistent storage for tutor sessions, their linked study-session
records, and conversation turns. Status changes are conditional updates
keyed on the stored status, so concurrent requests cannot both win.
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Iterator, Optional

from .errors import SessionConflictError
from .models import (
    OPEN_STATUSES,
    ConversationTurn,
    SessionStatus,
    SkillLevel,
    StudySession,
    StudySessionStatus,
    TurnRole,
    TutorSession,
)


# =============================================================================
# Schema Definition
# =============================================================================

SCHEMA = """
-- Generic study sessions (shared with other study features)
CREATE TABLE IF NOT EXISTS study_sessions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    subject TEXT,
    status TEXT NOT NULL DEFAULT 'active',
    started_at TEXT NOT NULL,
    ended_at TEXT,
    duration_minutes INTEGER
);

-- AI partner sessions
CREATE TABLE IF NOT EXISTS tutor_sessions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'active',
    subject TEXT,
    skill_level TEXT,
    study_goal TEXT,
    persona_id TEXT,
    search_criteria JSON,
    started_at TEXT NOT NULL,
    ended_at TEXT,
    total_duration_seconds INTEGER,
    message_count INTEGER NOT NULL DEFAULT 0,
    linked_study_session_id TEXT,
    rating INTEGER,
    feedback TEXT,
    deleted_by_user_at TEXT,
    deleted_by_admin_at TEXT,
    FOREIGN KEY (linked_study_session_id) REFERENCES study_sessions(id)
);

-- Conversation turns
CREATE TABLE IF NOT EXISTS conversation_turns (
    id TEXT PRIMARY KEY,
    session_id TEXT NOT NULL,
    role TEXT NOT NULL,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY (session_id) REFERENCES tutor_sessions(id)
);

-- At most one open, visible session per user
CREATE UNIQUE INDEX IF NOT EXISTS uq_tutor_sessions_open_user
    ON tutor_sessions(user_id)
    WHERE status IN ('active', 'paused')
      AND deleted_by_user_at IS NULL
      AND deleted_by_admin_at IS NULL;

-- Indexes
CREATE INDEX IF NOT EXISTS idx_tutor_sessions_user ON tutor_sessions(user_id, started_at);
CREATE INDEX IF NOT EXISTS idx_tutor_sessions_status ON tutor_sessions(status, started_at);
CREATE INDEX IF NOT EXISTS idx_turns_session ON conversation_turns(session_id, created_at);
"""

_VISIBLE = "deleted_by_user_at IS NULL AND deleted_by_admin_at IS NULL"


# =============================================================================
# Serialization Helpers
# =============================================================================


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    """Format a datetime as fixed-width UTC ISO text so SQL ordering is chronological."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse a datetime string from SQLite."""
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _deserialize_json(value: Optional[str]) -> Optional[dict]:
    """Deserialize a JSON string from SQLite."""
    if value is None:
        return None
    return json.loads(value)


def _placeholders(values: Iterable) -> str:
    return ", ".join("?" for _ in values)


# =============================================================================
# SessionStore Class
# =============================================================================


class SessionStore:
    """SQLite-based storage for tutor sessions and conversation turns."""

    def __init__(self, db_path: str | Path = ":memory:", timeout: float = 5.0):
        """Initialize the store.

        Args:
            db_path: Path to SQLite database file, or ":memory:" for in-memory.
            timeout: Seconds to wait for a competing writer's lock.
        """
        self.db_path = str(db_path)
        self.timeout = timeout
        self._is_memory = self.db_path == ":memory:"
        self._persistent_conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

        # For in-memory DBs, create persistent connection immediately
        if self._is_memory:
            self._persistent_conn = self._connect()

        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        # isolation_level=None: every statement autocommits unless an
        # explicit BEGIN is issued by transaction()
        conn = sqlite3.connect(
            self.db_path,
            timeout=self.timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Initialize database with schema."""
        with self.connection() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        """Get a database connection with proper cleanup.

        For in-memory databases, returns the persistent connection under a lock.
        For file-based databases, creates a new connection each time.
        """
        if self._is_memory:
            with self._lock:
                yield self._persistent_conn
        else:
            conn = self._connect()
            try:
                yield conn
            finally:
                conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run statements in a write transaction that holds the database lock.

        ``BEGIN IMMEDIATE`` takes the write lock up front, so a read followed
        by a write inside the block cannot interleave with another writer.
        """
        with self.connection() as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    # =========================================================================
    # Tutor Session Operations
    # =========================================================================

    def create_session_exclusive(
        self,
        session: TutorSession,
        study_session: Optional[StudySession] = None,
    ) -> TutorSession:
        """Insert a session unless the user already has an open one.

        The existence check and inserts run in one transaction; the partial
        unique index catches anything that slips past it.

        Raises:
            SessionConflictError: If the user already has an active or paused session
        """
        if study_session is not None:
            session.linked_study_session_id = study_session.id

        try:
            with self.transaction() as conn:
                existing = self._find_open_session_id(conn, session.user_id)
                if existing is not None:
                    raise SessionConflictError(session.user_id, existing)
                if study_session is not None:
                    self._insert_study_session(conn, study_session)
                self._insert_session(conn, session)
        except sqlite3.IntegrityError:
            with self.connection() as conn:
                existing = self._find_open_session_id(conn, session.user_id)
            raise SessionConflictError(session.user_id, existing)
        return session

    def _insert_session(self, conn: sqlite3.Connection, session: TutorSession) -> None:
        conn.execute(
            """
            INSERT INTO tutor_sessions (
                id, user_id, status, subject, skill_level, study_goal,
                persona_id, search_criteria, started_at, ended_at,
                total_duration_seconds, message_count, linked_study_session_id,
                rating, feedback, deleted_by_user_at, deleted_by_admin_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                session.id,
                session.user_id,
                session.status.value,
                session.subject,
                session.skill_level.value if session.skill_level else None,
                session.study_goal,
                session.persona_id,
                json.dumps(session.search_criteria)
                if session.search_criteria is not None
                else None,
                _format_datetime(session.started_at),
                _format_datetime(session.ended_at),
                session.total_duration_seconds,
                session.message_count,
                session.linked_study_session_id,
                session.rating,
                session.feedback,
                _format_datetime(session.deleted_by_user_at),
                _format_datetime(session.deleted_by_admin_at),
            ),
        )

    def _find_open_session_id(
        self, conn: sqlite3.Connection, user_id: str
    ) -> Optional[str]:
        row = conn.execute(
            f"""
            SELECT id FROM tutor_sessions
            WHERE user_id = ? AND status IN ('active', 'paused') AND {_VISIBLE}
            ORDER BY started_at DESC LIMIT 1
            """,
            (user_id,),
        ).fetchone()
        return row["id"] if row else None

    def get_session(
        self, session_id: str, include_deleted: bool = False
    ) -> Optional[TutorSession]:
        """Get a session by ID. Soft-deleted sessions are hidden unless asked for."""
        query = "SELECT * FROM tutor_sessions WHERE id = ?"
        if not include_deleted:
            query += f" AND {_VISIBLE}"
        with self.connection() as conn:
            row = conn.execute(query, (session_id,)).fetchone()
            if row is None:
                return None
            return self._row_to_session(row)

    def find_open_session(self, user_id: str) -> Optional[TutorSession]:
        """Get the user's active or paused session, if any."""
        with self.connection() as conn:
            row = conn.execute(
                f"""
                SELECT * FROM tutor_sessions
                WHERE user_id = ? AND status IN ('active', 'paused') AND {_VISIBLE}
                ORDER BY started_at DESC LIMIT 1
                """,
                (user_id,),
            ).fetchone()
            if row is None:
                return None
            return self._row_to_session(row)

    def count_open_sessions(self, user_id: str) -> int:
        """Count the user's visible active or paused sessions."""
        with self.connection() as conn:
            row = conn.execute(
                f"""
                SELECT COUNT(*) AS n FROM tutor_sessions
                WHERE user_id = ? AND status IN ('active', 'paused') AND {_VISIBLE}
                """,
                (user_id,),
            ).fetchone()
            return row["n"]

    def list_sessions(
        self,
        user_id: str,
        status: Optional[SessionStatus] = None,
        limit: Optional[int] = None,
    ) -> list[TutorSession]:
        """Get a user's visible sessions, most recent first."""
        query = f"SELECT * FROM tutor_sessions WHERE user_id = ? AND {_VISIBLE}"
        params: list = [user_id]
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        query += " ORDER BY started_at DESC"
        if limit:
            query += " LIMIT ?"
            params.append(limit)
        with self.connection() as conn:
            rows = conn.execute(query, params).fetchall()
            return [self._row_to_session(row) for row in rows]

    def list_active_started_before(self, cutoff: datetime) -> list[TutorSession]:
        """Get visible ACTIVE sessions that started before ``cutoff``."""
        with self.connection() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM tutor_sessions
                WHERE status = 'active' AND started_at < ? AND {_VISIBLE}
                ORDER BY started_at
                """,
                (_format_datetime(cutoff),),
            ).fetchall()
            return [self._row_to_session(row) for row in rows]

    def update_status(
        self,
        session_id: str,
        expected: Iterable[SessionStatus],
        target: SessionStatus,
        ended_at: Optional[datetime] = None,
        total_duration_seconds: Optional[int] = None,
        rating: Optional[int] = None,
        feedback: Optional[str] = None,
    ) -> bool:
        """Move a session to ``target`` only if its stored status is in ``expected``.

        When the target is terminal, the linked study session is closed in the
        same transaction.

        Returns:
            True if this call performed the transition, False if the stored
            status had already moved on (or the session is missing/deleted).
        """
        expected_values = [status.value for status in expected]
        with self.transaction() as conn:
            cursor = conn.execute(
                f"""
                UPDATE tutor_sessions SET
                    status = ?,
                    ended_at = COALESCE(?, ended_at),
                    total_duration_seconds = COALESCE(?, total_duration_seconds),
                    rating = COALESCE(?, rating),
                    feedback = COALESCE(?, feedback)
                WHERE id = ? AND {_VISIBLE}
                  AND status IN ({_placeholders(expected_values)})
                """,
                (
                    target.value,
                    _format_datetime(ended_at),
                    total_duration_seconds,
                    rating,
                    feedback,
                    session_id,
                    *expected_values,
                ),
            )
            if cursor.rowcount != 1:
                return False

            if target.is_terminal:
                duration_minutes = (
                    round(total_duration_seconds / 60)
                    if total_duration_seconds is not None
                    else None
                )
                conn.execute(
                    """
                    UPDATE study_sessions SET
                        status = ?,
                        ended_at = ?,
                        duration_minutes = ?
                    WHERE status = 'active' AND id = (
                        SELECT linked_study_session_id FROM tutor_sessions WHERE id = ?
                    )
                    """,
                    (
                        StudySessionStatus.COMPLETED.value,
                        _format_datetime(ended_at),
                        duration_minutes,
                        session_id,
                    ),
                )
        return True

    def complete_all_open(self, user_id: str, ended_at: datetime) -> int:
        """Complete every visible open session of a user with one shared ``ended_at``.

        Durations are left unset for a reporting job to reconcile.

        Returns:
            Number of tutor sessions that were ended by this call.
        """
        open_values = [status.value for status in OPEN_STATUSES]
        ended = _format_datetime(ended_at)
        with self.transaction() as conn:
            rows = conn.execute(
                f"""
                SELECT id, linked_study_session_id FROM tutor_sessions
                WHERE user_id = ? AND {_VISIBLE}
                  AND status IN ({_placeholders(open_values)})
                """,
                (user_id, *open_values),
            ).fetchall()
            if not rows:
                return 0

            session_ids = [row["id"] for row in rows]
            study_ids = [
                row["linked_study_session_id"]
                for row in rows
                if row["linked_study_session_id"]
            ]
            cursor = conn.execute(
                f"""
                UPDATE tutor_sessions SET status = ?, ended_at = ?
                WHERE id IN ({_placeholders(session_ids)})
                  AND status IN ({_placeholders(open_values)})
                """,
                (SessionStatus.COMPLETED.value, ended, *session_ids, *open_values),
            )
            if study_ids:
                conn.execute(
                    f"""
                    UPDATE study_sessions SET status = ?, ended_at = ?
                    WHERE status = 'active' AND id IN ({_placeholders(study_ids)})
                    """,
                    (StudySessionStatus.COMPLETED.value, ended, *study_ids),
                )
            return cursor.rowcount

    def soft_delete(
        self, session_id: str, deleted_at: datetime, by_admin: bool = False
    ) -> bool:
        """Hide a session from its normal lifecycle while keeping the row for audit."""
        column = "deleted_by_admin_at" if by_admin else "deleted_by_user_at"
        with self.connection() as conn:
            cursor = conn.execute(
                f"UPDATE tutor_sessions SET {column} = ? WHERE id = ? AND {column} IS NULL",
                (_format_datetime(deleted_at), session_id),
            )
            return cursor.rowcount == 1

    def _row_to_session(self, row: sqlite3.Row) -> TutorSession:
        """Convert a database row to a TutorSession model."""
        return TutorSession(
            id=row["id"],
            user_id=row["user_id"],
            status=SessionStatus(row["status"]),
            subject=row["subject"],
            skill_level=SkillLevel(row["skill_level"]) if row["skill_level"] else None,
            study_goal=row["study_goal"],
            persona_id=row["persona_id"],
            search_criteria=_deserialize_json(row["search_criteria"]),
            started_at=_parse_datetime(row["started_at"]),
            ended_at=_parse_datetime(row["ended_at"]),
            total_duration_seconds=row["total_duration_seconds"],
            message_count=row["message_count"],
            linked_study_session_id=row["linked_study_session_id"],
            rating=row["rating"],
            feedback=row["feedback"],
            deleted_by_user_at=_parse_datetime(row["deleted_by_user_at"]),
            deleted_by_admin_at=_parse_datetime(row["deleted_by_admin_at"]),
        )

    # =========================================================================
    # Study Session Operations
    # =========================================================================

    def _insert_study_session(
        self, conn: sqlite3.Connection, study_session: StudySession
    ) -> None:
        conn.execute(
            """
            INSERT INTO study_sessions (
                id, user_id, subject, status, started_at, ended_at, duration_minutes
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                study_session.id,
                study_session.user_id,
                study_session.subject,
                study_session.status.value,
                _format_datetime(study_session.started_at),
                _format_datetime(study_session.ended_at),
                study_session.duration_minutes,
            ),
        )

    def get_study_session(self, study_session_id: str) -> Optional[StudySession]:
        """Get a generic study session by ID."""
        with self.connection() as conn:
            row = conn.execute(
                "SELECT * FROM study_sessions WHERE id = ?", (study_session_id,)
            ).fetchone()
            if row is None:
                return None
            return StudySession(
                id=row["id"],
                user_id=row["user_id"],
                subject=row["subject"],
                status=StudySessionStatus(row["status"]),
                started_at=_parse_datetime(row["started_at"]),
                ended_at=_parse_datetime(row["ended_at"]),
                duration_minutes=row["duration_minutes"],
            )

    # =========================================================================
    # Conversation Turn Operations
    # =========================================================================

    def append_turn(self, turn: ConversationTurn) -> Optional[ConversationTurn]:
        """Store a turn and bump the session's message counter atomically.

        The counter bump is conditioned on the session still being ACTIVE and
        visible, and the turn is only inserted when that bump lands.

        Returns:
            The stored turn, or None if the session is no longer ACTIVE
        """
        with self.transaction() as conn:
            cursor = conn.execute(
                f"""
                UPDATE tutor_sessions SET message_count = message_count + 1
                WHERE id = ? AND status = 'active' AND {_VISIBLE}
                """,
                (turn.session_id,),
            )
            if cursor.rowcount != 1:
                return None

            conn.execute(
                """
                INSERT INTO conversation_turns (id, session_id, role, content, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    turn.id,
                    turn.session_id,
                    turn.role.value,
                    turn.content,
                    _format_datetime(turn.created_at),
                ),
            )
        return turn

    def get_recent_turns(self, session_id: str, limit: int = 20) -> list[ConversationTurn]:
        """Get the most recent turns for a session in chronological order."""
        with self.connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM conversation_turns
                WHERE session_id = ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
                """,
                (session_id, limit),
            ).fetchall()
        return [self._row_to_turn(row) for row in reversed(rows)]

    def get_last_turn_at(self, session_id: str) -> Optional[datetime]:
        """Timestamp of the newest turn in a session, if any."""
        with self.connection() as conn:
            row = conn.execute(
                "SELECT MAX(created_at) AS last FROM conversation_turns WHERE session_id = ?",
                (session_id,),
            ).fetchone()
            return _parse_datetime(row["last"])

    def _row_to_turn(self, row: sqlite3.Row) -> ConversationTurn:
        """Convert a database row to a ConversationTurn model."""
        return ConversationTurn(
            id=row["id"],
            session_id=row["session_id"],
            role=TurnRole(row["role"]),
            content=row["content"],
            created_at=_parse_datetime(row["created_at"]),
        )
