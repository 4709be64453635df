"""
FILE: src/auth/services.py
Authentication service: bcrypt+salt credentials, JWT pair issuing,
refresh rotation and invitation signup
"""

from datetime import timedelta
from typing import Dict, Optional, Tuple
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import and_
from sqlmodel import Session, select

from src.core.config import settings
from src.core.security import (
    create_access_token,
    create_refresh_token_jwt,
    decode_refresh_token,
    generate_salt,
    hash_password,
    hash_token,
    verify_password,
)
from src.shared.models import (
    InvitationStatus,
    Patient,
    Profile,
    RefreshToken,
    Role,
    StaffInvitation,
    User,
    utcnow,
)
from src.auth.schemas import (
    LoginRequest,
    LoginResponse,
    SignupRequest,
    TokenResponse,
    UserBasicInfo,
)
import logging

logger = logging.getLogger(__name__)


def _build_user_info(user: User, session: Session) -> UserBasicInfo:
    profile = session.get(Profile, user.id)
    return UserBasicInfo(
        id=user.id,
        email=user.email,
        full_name=profile.full_name if profile else None,
        role=profile.role if profile else None,
        tenant_id=profile.tenant_id if profile else None,
    )


def issue_token_pair(user: User, session: Session, request_meta: Dict) -> TokenResponse:
    """
    Mint an access + refresh pair and stage the refresh record.
    The caller commits.
    """
    access_token = create_access_token(user_id=user.id, email=user.email)
    raw_refresh = create_refresh_token_jwt(user_id=user.id)

    session.add(RefreshToken(
        user_id=user.id,
        token_hash=hash_token(raw_refresh),
        expires_at=utcnow() + timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS),
        ip_address=request_meta.get("ip"),
        user_agent=request_meta.get("user_agent"),
    ))

    # Only the latest access token is honoured
    user.api_token = access_token
    user.updated_at = utcnow()
    session.add(user)

    return TokenResponse(
        access_token=access_token,
        refresh_token=raw_refresh,
        expires_in=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


def rotate_refresh_token(
    raw_refresh_token: str, session: Session, request_meta: Dict
) -> Optional[Tuple[User, TokenResponse]]:
    """
    Revoke a valid refresh token and issue a new pair.
    Returns None when the token is invalid, expired, revoked, or its
    principal is gone or inactive.
    """
    user_id_str = decode_refresh_token(raw_refresh_token)
    if not user_id_str:
        return None

    now = utcnow()
    stored = session.exec(
        select(RefreshToken).where(
            and_(
                RefreshToken.token_hash == hash_token(raw_refresh_token),  # type: ignore
                RefreshToken.is_revoked == False,  # type: ignore
                RefreshToken.expires_at > now,  # type: ignore
            )
        )
    ).first()
    if not stored:
        return None

    try:
        user = session.get(User, UUID(user_id_str))
    except ValueError:
        return None
    if not user or not user.is_active or stored.user_id != user.id:
        return None

    stored.is_revoked = True
    stored.revoked_at = now
    session.add(stored)

    tokens = issue_token_pair(user, session, request_meta)
    session.commit()
    logger.info(f"Refresh token rotated for {user.email}")
    return user, tokens


class AuthService:
    """All authentication and token business logic."""

    # Login / Logout

    @staticmethod
    async def login(req: LoginRequest, session: Session, request_meta: Dict) -> LoginResponse:
        """Authenticate with email + password. Returns access + refresh tokens."""
        user = session.exec(select(User).where(User.email == req.email.lower().strip())).first()

        if not user or not verify_password(req.password, user.salt, user.password_hash):
            logger.warning(f"Failed login attempt: {req.email}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid credentials",
            )

        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Account is deactivated.",
            )

        tokens = issue_token_pair(user, session, request_meta)
        user.login_count = (user.login_count or 0) + 1
        user.last_login_at = utcnow()
        session.add(user)
        session.commit()
        session.refresh(user)

        logger.info(f"Login successful: {user.email}")

        return LoginResponse(token=tokens, user=_build_user_info(user, session))

    @staticmethod
    async def logout(user_id: UUID, session: Session) -> None:
        """Revoke access token and all refresh tokens."""
        user = session.get(User, user_id)
        if not user:
            return
        user.api_token = None
        user.updated_at = utcnow()
        session.add(user)

        refresh_tokens = session.exec(
            select(RefreshToken).where(
                and_(
                    RefreshToken.user_id == user.id,  # type: ignore
                    RefreshToken.is_revoked == False,  # type: ignore
                )
            )
        ).all()
        for rt in refresh_tokens:
            rt.is_revoked = True
            rt.revoked_at = utcnow()
            session.add(rt)

        session.commit()
        logger.info(f"User logged out: {user.email}")

    @staticmethod
    async def refresh_tokens(
        raw_refresh_token: str, session: Session, request_meta: Dict
    ) -> TokenResponse:
        """Rotate refresh token and issue new access token."""
        rotated = rotate_refresh_token(raw_refresh_token, session, request_meta)
        if rotated is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Refresh token expired or revoked",
            )
        return rotated[1]

    # Invitation signup

    @staticmethod
    async def signup(req: SignupRequest, session: Session) -> UserBasicInfo:
        """
        Create a principal and its profile from a pending invitation.
        The profile takes the invitation's tenant and role; a patient
        invitation also creates the linked patient record.
        """
        invitation = session.exec(
            select(StaffInvitation).where(
                and_(
                    StaffInvitation.token == hash_token(req.token),  # type: ignore
                    StaffInvitation.status == InvitationStatus.PENDING,  # type: ignore
                )
            )
        ).first()

        if not invitation:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid invitation token")

        if invitation.expires_at <= utcnow():
            invitation.status = InvitationStatus.EXPIRED
            invitation.updated_at = utcnow()
            session.add(invitation)
            session.commit()
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invitation has expired")

        email = invitation.email.lower()
        if session.exec(select(User).where(User.email == email)).first():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email already registered")

        salt = generate_salt()
        user = User(
            email=email,
            password_hash=hash_password(req.password, salt),
            salt=salt,
            is_active=True,
        )
        session.add(user)
        session.flush()  # get user.id

        profile = Profile(
            id=user.id,
            tenant_id=invitation.tenant_id,
            email=email,
            full_name=req.full_name,
            phone_number=req.phone_number,
            role=invitation.role,
        )
        session.add(profile)
        session.flush()

        if invitation.role == Role.PATIENT:
            session.add(Patient(
                tenant_id=invitation.tenant_id,
                profile_id=profile.id,
                full_name=req.full_name,
                phone_number=req.phone_number,
            ))

        invitation.status = InvitationStatus.ACCEPTED
        invitation.updated_at = utcnow()
        session.add(invitation)
        session.commit()
        session.refresh(user)

        logger.info(f"Signup completed: {email} as {invitation.role.value} in tenant {invitation.tenant_id}")
        return _build_user_info(user, session)
