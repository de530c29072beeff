"""API routes."""

from .intent import router as intent_router
from .sessions import router as sessions_router

__all__ = [
    "intent_router",
    "sessions_router",
]
