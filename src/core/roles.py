"""
FILE: src/core/roles.py
Role resolver: principal id -> role, read from the profiles table on every call.
"""

from typing import Optional
from uuid import UUID

from sqlmodel import Session, select

from src.core.errors import ErrorKind
from src.core.result import Err, Ok, Result
from src.shared.models import Profile, Role


def lookup_profile(principal_id: UUID, session: Session) -> Optional[Profile]:
    """Single profile query. No caching: role changes apply on the next request."""
    return session.exec(
        select(Profile)
        .where(
            Profile.id == principal_id,
            Profile.deleted_at == None,  # type: ignore  # noqa: E711
        )
        # overwrite an identity-map copy loaded earlier in the same session
        .execution_options(populate_existing=True)
    ).first()


def resolve_profile(principal_id: UUID, session: Session) -> Result[Profile]:
    profile = lookup_profile(principal_id, session)
    if profile is None:
        return Err(ErrorKind.PROFILE_NOT_FOUND)
    return Ok(profile)


def resolve_role(principal_id: UUID, session: Session) -> Result[Role]:
    return resolve_profile(principal_id, session).map(lambda p: p.role)
