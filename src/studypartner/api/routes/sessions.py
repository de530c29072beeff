"""AI partner session API routes."""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from studypartner.dialogue.intent import classify_intent, guard_directive
from studypartner.sessions.errors import (
    InvalidRatingError,
    InvalidTransitionError,
    SessionConflictError,
    SessionError,
    SessionNotFoundError,
)
from studypartner.sessions.models import SessionCreate, SessionStatus, TurnRole, TutorSession

from ..deps import Engine, Manager, User
from ..schemas import (
    CompleteAllResponse,
    CurrentSessionResponse,
    EndSessionRequest,
    IntentResponse,
    MessageRequest,
    MessageResponse,
    ProactiveRequest,
    ProactiveResponse,
    ResumeResponse,
    SessionListResponse,
    SessionResponse,
)

router = APIRouter(prefix="/api/partner/sessions", tags=["sessions"])


def _session_to_response(session: TutorSession) -> SessionResponse:
    """Convert TutorSession model to response schema."""
    return SessionResponse.model_validate(session.model_dump())


def _http_error(error: SessionError) -> HTTPException:
    """Map a lifecycle error to the matching HTTP error."""
    if isinstance(error, SessionNotFoundError):
        return HTTPException(status_code=404, detail="Session not found")
    if isinstance(error, SessionConflictError):
        return HTTPException(
            status_code=409,
            detail={
                "message": "An AI partner session is already in progress",
                "existing_session_id": error.existing_session_id,
            },
        )
    if isinstance(error, InvalidTransitionError):
        return HTTPException(
            status_code=409,
            detail={
                "message": str(error),
                "current_status": error.current.value,
                "target_status": error.target.value,
            },
        )
    if isinstance(error, InvalidRatingError):
        return HTTPException(status_code=422, detail=str(error))
    return HTTPException(status_code=400, detail=str(error))


@router.post("", response_model=SessionResponse, status_code=201)
def create_session(
    data: SessionCreate,
    user: User,
    manager: Manager,
) -> SessionResponse:
    """Start a new AI partner session."""
    try:
        session = manager.create_session(
            user.user_id,
            subject=data.subject,
            skill_level=data.skill_level,
            study_goal=data.study_goal,
            persona_id=data.persona_id,
            search_criteria=data.search_criteria,
            create_study_session=data.create_study_session,
        )
    except SessionError as e:
        raise _http_error(e)
    return _session_to_response(session)


@router.get("", response_model=SessionListResponse)
def list_sessions(
    user: User,
    manager: Manager,
    status: Optional[SessionStatus] = None,
    limit: int = Query(default=20, ge=1, le=100),
) -> SessionListResponse:
    """List the caller's sessions, most recent first."""
    sessions = manager.list_sessions(user.user_id, status=status, limit=limit)
    return SessionListResponse(sessions=[_session_to_response(s) for s in sessions])


@router.get("/current", response_model=CurrentSessionResponse)
def get_current_session(user: User, manager: Manager) -> CurrentSessionResponse:
    """Get the caller's active or paused session, if any."""
    session = manager.get_active_or_paused(user.user_id)
    return CurrentSessionResponse(
        session=_session_to_response(session) if session else None
    )


@router.post("/end-all", response_model=CompleteAllResponse)
def end_all_sessions(user: User, manager: Manager) -> CompleteAllResponse:
    """End every open session of the caller."""
    return CompleteAllResponse(sessions_ended=manager.complete_all(user.user_id))


@router.get("/{session_id}", response_model=SessionResponse)
def get_session(session_id: str, user: User, manager: Manager) -> SessionResponse:
    """Get a session by ID."""
    try:
        session = manager.get_session(session_id, user.user_id)
    except SessionError as e:
        raise _http_error(e)
    return _session_to_response(session)


@router.post("/{session_id}/pause", response_model=SessionResponse)
def pause_session(session_id: str, user: User, manager: Manager) -> SessionResponse:
    """Pause an active session."""
    try:
        session = manager.pause(session_id, user.user_id)
    except SessionError as e:
        raise _http_error(e)
    return _session_to_response(session)


@router.post("/{session_id}/resume", response_model=ResumeResponse)
def resume_session(session_id: str, user: User, manager: Manager) -> ResumeResponse:
    """Resume a paused session."""
    try:
        session, cue = manager.resume(session_id, user.user_id)
    except SessionError as e:
        raise _http_error(e)
    return ResumeResponse(session=_session_to_response(session), welcome_back=cue)


@router.post("/{session_id}/end", response_model=SessionResponse)
def end_session(
    session_id: str,
    user: User,
    manager: Manager,
    data: Optional[EndSessionRequest] = None,
) -> SessionResponse:
    """End a session, optionally with a rating and feedback.

    Ending a session that is already completed or expired returns it as is;
    a rating or feedback sent with that request is not recorded.
    """
    data = data or EndSessionRequest()
    try:
        session = manager.complete(
            session_id, user.user_id, rating=data.rating, feedback=data.feedback
        )
    except SessionError as e:
        raise _http_error(e)
    return _session_to_response(session)


@router.post("/{session_id}/proactive", response_model=ProactiveResponse)
def poll_proactive(
    session_id: str,
    user: User,
    manager: Manager,
    engine: Engine,
    data: Optional[ProactiveRequest] = None,
) -> ProactiveResponse:
    """Ask whether the assistant should speak first right now."""
    data = data or ProactiveRequest()
    try:
        session = manager.get_session(session_id, user.user_id)
    except SessionError as e:
        raise _http_error(e)

    suggestion = engine.evaluate_stored(
        manager.store,
        session,
        last_proactive_ask_index=data.last_proactive_ask_index,
        ai_messages_since_ask=data.ai_messages_since_ask,
    )
    return ProactiveResponse(**suggestion.model_dump())


@router.post("/{session_id}/messages", response_model=MessageResponse)
def post_message(
    session_id: str,
    data: MessageRequest,
    user: User,
    manager: Manager,
) -> MessageResponse:
    """Record a user message and return its intent analysis.

    The response layer uses ``intent.directive`` (when present) to steer the
    reply away from handing over a direct answer.
    """
    try:
        turn = manager.record_turn(session_id, user.user_id, TurnRole.USER, data.content)
        session = manager.get_session(session_id, user.user_id)
    except SessionError as e:
        raise _http_error(e)

    verdict = classify_intent(data.content)
    return MessageResponse(
        turn_id=turn.id,
        session_id=session_id,
        message_count=session.message_count,
        intent=IntentResponse(**verdict.model_dump(), directive=guard_directive(verdict)),
    )
