"""
FILE: src/users/services.py
Profile and staff management, tenant-scoped through the BackendSession
"""

from datetime import timedelta
from typing import List, Tuple
from uuid import UUID

from sqlalchemy import func
from sqlmodel import select

from src.core.backend import BackendSession
from src.core.config import settings
from src.core.errors import ApiError, ErrorKind
from src.core.security import generate_invitation_token, hash_token
from src.shared.models import (
    InvitationStatus,
    Profile,
    Role,
    StaffInvitation,
    User,
    utcnow,
)
from src.users.schemas import InvitationCreate
import logging

logger = logging.getLogger(__name__)


class ProfileService:
    """Profiles within the caller's clinic."""

    @staticmethod
    async def list_profiles(
        db: BackendSession, skip: int = 0, limit: int = 20
    ) -> Tuple[List[Profile], int]:
        query = db.select(Profile).where(Profile.deleted_at == None)  # type: ignore  # noqa: E711
        total = db.session.exec(select(func.count()).select_from(query.subquery())).one()
        items = db.session.exec(query.order_by(Profile.full_name).offset(skip).limit(limit)).all()
        return list(items), total

    @staticmethod
    async def update_role(
        profile_id: UUID, role: Role, db: BackendSession, acting_profile_id: UUID
    ) -> Profile:
        if profile_id == acting_profile_id:
            raise ApiError(ErrorKind.VALIDATION_ERROR, "You cannot change your own role")

        profile = db.get(Profile, profile_id)
        if profile is None or profile.deleted_at is not None:
            raise ApiError(ErrorKind.NOT_FOUND, "Profile not found")

        old_role = profile.role
        profile.role = role
        profile.updated_at = utcnow()
        db.add(profile)
        db.session.commit()
        db.session.refresh(profile)

        logger.info(f"Role changed for {profile.id}: {old_role.value} -> {role.value} by {acting_profile_id}")
        return profile


class InvitationService:

    @staticmethod
    async def create_invitation(
        req: InvitationCreate, db: BackendSession, invited_by: UUID
    ) -> Tuple[StaffInvitation, str]:
        """
        Create a pending invitation. Returns (invitation, raw_token); only the
        token hash is stored. Earlier pending invitations for the email expire.
        """
        email = req.email.lower()
        if db.session.exec(select(User).where(User.email == email)).first():
            raise ApiError(ErrorKind.VALIDATION_ERROR, "Email already registered")

        pending = db.session.exec(
            db.select(StaffInvitation).where(
                StaffInvitation.email == email,
                StaffInvitation.status == InvitationStatus.PENDING,
            )
        ).all()
        for old in pending:
            old.status = InvitationStatus.EXPIRED
            old.updated_at = utcnow()
            db.add(old)

        raw_token = generate_invitation_token()
        invitation = StaffInvitation(
            email=email,
            role=req.role,
            token=hash_token(raw_token),
            expires_at=utcnow() + timedelta(hours=settings.INVITATION_EXPIRE_HOURS),
            invited_by=invited_by,
        )
        db.add(invitation)
        db.session.commit()
        db.session.refresh(invitation)

        logger.info(f"Invitation created for {email} as {req.role.value} in tenant {db.tenant_id}")
        return invitation, raw_token
