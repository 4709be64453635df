"""
FILE: src/auth/router.py
Authentication endpoints: login, logout, refresh, invitation signup, session tokens
"""

from fastapi import APIRouter, Depends, Request, Response, status
from typing import Optional
from sqlmodel import Session

from src.core.config import settings
from src.core.database import get_session
from src.core.dependencies import AccessContext, require_access
from src.core.errors import ApiError, ErrorKind
from src.core.sessions import clear_session_cookies, set_session_cookies
from src.shared.schemas import ResponseModel
from src.auth.schemas import (
    LoginRequest,
    RefreshTokenRequest,
    SessionTokens,
    SignupRequest,
)
from src.auth.services import AuthService
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


def _request_meta(request: Request) -> dict:
    return {
        "ip": request.client.host if request.client else None,
        "user_agent": request.headers.get("user-agent"),
    }


# Login

@router.post("/login", response_model=ResponseModel)
async def login(
    credentials: LoginRequest,
    request: Request,
    response: Response,
    _: AccessContext = Depends(require_access("auth.login")),
    session: Session = Depends(get_session),
):
    """
    Authenticate with email + password.
    Sets the session cookies and returns the token pair.
    """
    result = await AuthService.login(credentials, session, _request_meta(request))
    set_session_cookies(response, result.token)
    return ResponseModel(success=True, message="Login successful", data=result.model_dump(mode="json"))


# Logout

@router.post("/logout", response_model=ResponseModel)
async def logout(
    request: Request,
    response: Response,
    ctx: AccessContext = Depends(require_access("auth.logout")),
    session: Session = Depends(get_session),
):
    """Revoke access token and all refresh tokens."""
    await AuthService.logout(ctx.principal_id, session)
    # A pair rotated earlier in this request is revoked too
    request.state.refreshed_tokens = None
    clear_session_cookies(response)
    return ResponseModel(success=True, message="Logged out successfully")


# Refresh

@router.post("/refresh", response_model=ResponseModel)
async def refresh(
    request: Request,
    response: Response,
    req: Optional[RefreshTokenRequest] = None,
    _: AccessContext = Depends(require_access("auth.refresh")),
    session: Session = Depends(get_session),
):
    """Exchange a valid refresh token (body or cookie) for a new pair."""
    raw = (req.refresh_token if req else None) or request.cookies.get(settings.REFRESH_TOKEN_COOKIE)
    if not raw:
        raise ApiError(ErrorKind.UNAUTHENTICATED)
    tokens = await AuthService.refresh_tokens(raw, session, _request_meta(request))
    set_session_cookies(response, tokens)
    return ResponseModel(success=True, message="Tokens refreshed", data=tokens.model_dump())


# Signup

@router.post("/signup", response_model=ResponseModel, status_code=status.HTTP_201_CREATED)
async def signup(
    req: SignupRequest,
    _: AccessContext = Depends(require_access("auth.signup")),
    session: Session = Depends(get_session),
):
    """Create an account from an invitation token. Role and clinic come from the invitation."""
    user = await AuthService.signup(req, session)
    return ResponseModel(
        success=True,
        message="Account created. Please log in.",
        data=user.model_dump(mode="json"),
    )


# Session tokens

@router.get("/session", response_model=SessionTokens)
async def session_tokens(
    ctx: AccessContext = Depends(require_access("auth.session")),
):
    """Raw tokens of the current session."""
    return SessionTokens(
        access_token=ctx.auth.access_token,  # type: ignore
        refresh_token=ctx.auth.refresh_token,  # type: ignore
    )
