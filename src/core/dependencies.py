"""
FILE: src/core/dependencies.py
FastAPI dependencies: the access pipeline
session -> role -> authorize -> tenant binding, driven by POLICIES
"""

from dataclasses import dataclass
from typing import Optional
from uuid import UUID

from fastapi import Depends

from src.core.backend import BackendSession, get_backend
from src.core.errors import ApiError, ErrorKind
from src.core.guard import AccessPolicy, Decision, PolicyKind, authorize, get_policy
from src.core.result import Err, Ok, Result
from src.core.roles import resolve_profile
from src.core.sessions import AuthSession, get_auth_session, require_auth_session
from src.shared.models import Profile, Role
import logging

logger = logging.getLogger(__name__)


@dataclass
class AccessContext:
    """What a handler gets once the pipeline has passed."""
    db: BackendSession
    auth: Optional[AuthSession] = None
    profile: Optional[Profile] = None

    @property
    def principal_id(self) -> UUID:
        if self.auth is None:
            raise ApiError(ErrorKind.UNAUTHENTICATED)
        return self.auth.principal_id

    @property
    def role(self) -> Optional[Role]:
        return self.profile.role if self.profile else None

    @property
    def tenant_id(self) -> UUID:
        return self.db.require_tenant()


def check_access(
    policy_name: str,
    policy: AccessPolicy,
    auth: Optional[AuthSession],
    db: BackendSession,
) -> Result[AccessContext]:
    """Run the pipeline for one policy. Returns Err instead of raising."""
    if policy.kind == PolicyKind.PUBLIC:
        return Ok(AccessContext(db=db, auth=auth))

    session_result = require_auth_session(auth)
    if isinstance(session_result, Err):
        logger.info(f"No session for policy {policy_name}")
        return session_result
    auth = session_result.value

    if policy.kind == PolicyKind.AUTHENTICATED:
        return Ok(AccessContext(db=db, auth=auth))

    profile_result = resolve_profile(auth.principal_id, db.session)
    if isinstance(profile_result, Err):
        logger.warning(f"Access denied ({policy_name}): no profile for {auth.email}")
        return profile_result
    profile = profile_result.value

    if authorize(profile.role, policy.roles) == Decision.DENIED:
        logger.warning(
            f"Access denied ({policy_name}): {auth.email} has role {profile.role.value}"
        )
        return Err(ErrorKind.FORBIDDEN)

    bound = db.set_tenant_context(profile.tenant_id)
    if isinstance(bound, Err):
        return bound

    return Ok(AccessContext(db=db, auth=auth, profile=profile))


def require_access(policy_name: str):
    """
    Dependency factory for API routes. Raises ApiError on any failure.

    Usage:
        @router.get("/reports/top-selling")
        def top_selling(ctx: AccessContext = Depends(require_access("pharmacy.reports"))):
    """
    policy = get_policy(policy_name)

    if policy.kind == PolicyKind.PUBLIC:
        # Public routes never resolve (or refresh) a session
        def public_dependency(db: BackendSession = Depends(get_backend)) -> AccessContext:
            return AccessContext(db=db)

        return public_dependency

    def dependency(
        auth: Optional[AuthSession] = Depends(get_auth_session),
        db: BackendSession = Depends(get_backend),
    ) -> AccessContext:
        return check_access(policy_name, policy, auth, db).unwrap()

    return dependency


def page_access(policy_name: str):
    """Dependency factory for pages: hands the Result to the page to render."""
    policy = get_policy(policy_name)

    def dependency(
        auth: Optional[AuthSession] = Depends(get_auth_session),
        db: BackendSession = Depends(get_backend),
    ) -> Result[AccessContext]:
        return check_access(policy_name, policy, auth, db)

    return dependency


# Pagination

def pagination_params(page: int = 1, page_size: int = 20) -> dict:
    """
    Standard pagination parameters.
    Returns {skip, limit, page, page_size}.
    """
    if page < 1:
        raise ApiError(ErrorKind.VALIDATION_ERROR, "page must be >= 1")
    if page_size < 1 or page_size > 200:
        raise ApiError(ErrorKind.VALIDATION_ERROR, "page_size must be between 1 and 200")
    skip = (page - 1) * page_size
    return {"skip": skip, "limit": page_size, "page": page, "page_size": page_size}
