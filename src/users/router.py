"""
FILE: src/users/router.py
Profiles and staff invitations, tenant-isolated & paginated
"""

from fastapi import APIRouter, Depends, status
from uuid import UUID

from src.core.config import settings
from src.core.dependencies import AccessContext, pagination_params, require_access
from src.email.schemas import StaffInvitationEmailData
from src.email.service import EmailService
from src.shared.models import Tenant
from src.shared.schemas import PaginatedResponse, ResponseModel
from src.users.schemas import InvitationCreate, InvitationOut, ProfileOut, UpdateRoleRequest
from src.users.services import InvitationService, ProfileService
import logging

logger = logging.getLogger(__name__)

router = APIRouter()

# Profiles

profiles_router = APIRouter(prefix="/profiles", tags=["Profiles"])


@profiles_router.get("/me", response_model=ProfileOut)
async def get_my_profile(
    ctx: AccessContext = Depends(require_access("profiles.me")),
):
    """Return the caller's own profile, read fresh from the database."""
    return ProfileOut.model_validate(ctx.profile)


@profiles_router.get("", response_model=PaginatedResponse[ProfileOut])
async def list_profiles(
    ctx: AccessContext = Depends(require_access("profiles.list")),
    pagination: dict = Depends(pagination_params),
):
    """List all profiles within the current clinic."""
    profiles, total = await ProfileService.list_profiles(
        ctx.db, skip=pagination["skip"], limit=pagination["limit"]
    )
    return PaginatedResponse.build(
        items=[ProfileOut.model_validate(p) for p in profiles],
        total=total,
        page=pagination["page"],
        page_size=pagination["page_size"],
    )


@profiles_router.patch("/{profile_id}/role", response_model=ProfileOut)
async def update_role(
    profile_id: UUID,
    req: UpdateRoleRequest,
    ctx: AccessContext = Depends(require_access("profiles.update_role")),
):
    """Change a profile's role. Takes effect on that user's next request."""
    profile = await ProfileService.update_role(profile_id, req.role, ctx.db, ctx.principal_id)
    return ProfileOut.model_validate(profile)


# Invitations

invitations_router = APIRouter(prefix="/invitations", tags=["Invitations"])


@invitations_router.post("", response_model=ResponseModel, status_code=status.HTTP_201_CREATED)
async def create_invitation(
    req: InvitationCreate,
    ctx: AccessContext = Depends(require_access("invitations.create")),
):
    """Invite a staff member or patient by email. Admin only."""
    invitation, raw_token = await InvitationService.create_invitation(req, ctx.db, ctx.principal_id)

    tenant = ctx.db.session.get(Tenant, ctx.tenant_id)
    email_resp = await EmailService.send_staff_invitation_email(StaffInvitationEmailData(
        email=invitation.email,
        role=invitation.role.value,
        invitation_token=raw_token,
        expires_at=invitation.expires_at,
        clinic_name=tenant.name if tenant else None,
        invited_by=ctx.profile.full_name if ctx.profile else None,
    ))
    if not email_resp.success:
        logger.error(f"Failed to send invitation email to {invitation.email}: {email_resp.error}")

    data = InvitationOut.model_validate(invitation).model_dump(mode="json")
    if settings.ENVIRONMENT == "development":
        data["invitation_token"] = raw_token

    return ResponseModel(
        success=True,
        message="Invitation created" + ("" if email_resp.success else "; email delivery failed"),
        data=data,
    )


router.include_router(profiles_router)
router.include_router(invitations_router)
