"""Authentication utilities for the study-partner API.

Callers present the Supabase access token issued to the web app, either as
a Bearer header or in the Supabase auth cookie. Tokens are HS256 JWTs signed
with the project's JWT secret; ``sub`` is the user id.
"""

import logging
from dataclasses import dataclass

from fastapi import HTTPException, Request, status
from fastapi.security import HTTPBearer
from jose import JWTError, jwt

from studypartner.core.config import get_settings

logger = logging.getLogger(__name__)

SUPABASE_COOKIE_NAMES = [
    "sb-access-token",
    "__Secure-sb-access-token",
]


@dataclass
class CurrentUser:
    """Authenticated user context."""

    user_id: str
    email: str | None = None
    role: str = "authenticated"


def _auth_error(detail: str) -> HTTPException:
    """Create a 401 authentication error."""
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _get_session_cookie(cookies: dict[str, str]) -> str | None:
    """Extract the Supabase access token from cookies."""
    for name in SUPABASE_COOKIE_NAMES:
        if token := cookies.get(name):
            return token
    return None


class JWTBearer(HTTPBearer):
    """Custom JWT bearer that extracts and validates Supabase tokens."""

    def __init__(self, auto_error: bool = True):
        super().__init__(auto_error=auto_error)

    async def __call__(self, request: Request) -> CurrentUser | None:
        auth_header = request.headers.get("Authorization", "")

        if auth_header.startswith("Bearer "):
            return self._verify_token(auth_header[7:])

        token = _get_session_cookie(request.cookies)
        if token:
            return self._verify_token(token)

        if self.auto_error:
            raise _auth_error("Not authenticated")
        return None

    def _verify_token(self, token: str) -> CurrentUser:
        """Verify token signature and audience and extract user context."""
        settings = get_settings()
        if not settings.jwt_secret:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Authentication not configured",
            )

        try:
            payload = jwt.decode(
                token,
                settings.jwt_secret,
                algorithms=["HS256"],
                audience=settings.jwt_audience,
            )
        except JWTError as e:
            logger.error(f"JWT validation failed: {e}")
            raise _auth_error(f"Invalid token: {e}")

        if "sub" not in payload:
            raise _auth_error("Token missing user ID")

        return CurrentUser(
            user_id=payload["sub"],
            email=payload.get("email"),
            role=payload.get("role", "authenticated"),
        )


# Singleton instance for dependency injection
jwt_bearer = JWTBearer()


async def get_current_user(request: Request) -> CurrentUser:
    """Dependency that extracts current user from JWT."""
    return await jwt_bearer(request)
