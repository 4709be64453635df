"""
FILE: src/core/sessions.py
Session provider: resolves the authenticated principal from cookies or a
Bearer header, refreshing the token pair transparently when needed.
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID
import logging

from fastapi import Depends, Request, Response
from sqlmodel import Session

from src.auth.schemas import TokenResponse
from src.auth.services import rotate_refresh_token
from src.core.config import settings
from src.core.database import get_session
from src.core.errors import ErrorKind
from src.core.result import Err, Ok, Result
from src.core.security import decode_access_token
from src.shared.models import User

logger = logging.getLogger(__name__)

_STATE_KEY = "auth_session"


@dataclass(frozen=True)
class AuthSession:
    principal_id: UUID
    email: str
    access_token: str
    refresh_token: Optional[str] = None


def _bearer_token(request: Request) -> Optional[str]:
    authorization = request.headers.get("authorization")
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    return parts[1]


def _principal_for(token: str, session: Session) -> Optional[User]:
    payload = decode_access_token(token)
    if not payload:
        return None
    try:
        user_id = UUID(payload.get("sub", ""))
    except ValueError:
        return None
    user = session.get(User, user_id)
    if not user or not user.is_active:
        return None
    # Revocation: only the most recently issued access token is valid
    if user.api_token != token:
        return None
    return user


def _request_meta(request: Request) -> dict:
    return {
        "ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


def get_auth_session(
    request: Request,
    session: Session = Depends(get_session),
) -> Optional[AuthSession]:
    """
    Current session or None. Never raises for a missing or invalid
    session; resolved at most once per request.
    """
    if hasattr(request.state, _STATE_KEY):
        return getattr(request.state, _STATE_KEY)

    access_token = _bearer_token(request) or request.cookies.get(settings.ACCESS_TOKEN_COOKIE)
    refresh_token = request.cookies.get(settings.REFRESH_TOKEN_COOKIE)
    auth: Optional[AuthSession] = None

    if access_token:
        user = _principal_for(access_token, session)
        if user:
            auth = AuthSession(user.id, user.email, access_token, refresh_token)

    if auth is None and refresh_token:
        rotated = rotate_refresh_token(refresh_token, session, _request_meta(request))
        if rotated:
            user, tokens = rotated
            request.state.refreshed_tokens = tokens
            auth = AuthSession(user.id, user.email, tokens.access_token, tokens.refresh_token)

    setattr(request.state, _STATE_KEY, auth)
    return auth


def require_auth_session(auth: Optional[AuthSession]) -> Result[AuthSession]:
    if auth is None:
        return Err(ErrorKind.UNAUTHENTICATED)
    return Ok(auth)


# Cookies

def set_session_cookies(response: Response, tokens: TokenResponse) -> None:
    common = dict(
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite=settings.COOKIE_SAMESITE,
        path="/",
    )
    response.set_cookie(
        settings.ACCESS_TOKEN_COOKIE,
        tokens.access_token,
        max_age=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        **common,  # type: ignore
    )
    response.set_cookie(
        settings.REFRESH_TOKEN_COOKIE,
        tokens.refresh_token,
        max_age=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS * 86400,
        **common,  # type: ignore
    )


def clear_session_cookies(response: Response) -> None:
    response.delete_cookie(settings.ACCESS_TOKEN_COOKIE, path="/")
    response.delete_cookie(settings.REFRESH_TOKEN_COOKIE, path="/")


async def refresh_cookie_middleware(request: Request, call_next):
    """Write a transparently refreshed token pair onto the outgoing response."""
    response = await call_next(request)
    tokens = getattr(request.state, "refreshed_tokens", None)
    if tokens is not None:
        set_session_cookies(response, tokens)
    return response
