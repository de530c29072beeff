"""API dependencies for dependency injection."""

from typing import Annotated, Generator

from fastapi import Depends

from studypartner.core.config import get_settings
from studypartner.dialogue.proactive import ProactiveSuggestionEngine
from studypartner.sessions.lifecycle import SessionLifecycleManager
from studypartner.sessions.store import SessionStore

from .auth import CurrentUser, get_current_user


def get_store() -> Generator[SessionStore, None, None]:
    """Get SessionStore instance for request."""
    settings = get_settings()
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    yield SessionStore(settings.db_path)


def get_manager(
    store: SessionStore = Depends(get_store),
) -> SessionLifecycleManager:
    """Get lifecycle manager bound to the request's store."""
    return SessionLifecycleManager(store)


def get_engine() -> ProactiveSuggestionEngine:
    """Get the proactive suggestion engine."""
    return ProactiveSuggestionEngine()


# Type aliases for cleaner route signatures
Store = Annotated[SessionStore, Depends(get_store)]
Manager = Annotated[SessionLifecycleManager, Depends(get_manager)]
Engine = Annotated[ProactiveSuggestionEngine, Depends(get_engine)]
User = Annotated[CurrentUser, Depends(get_current_user)]
