"""
FILE: src/users/schemas.py
Profile and staff invitation schemas
"""

from pydantic import BaseModel, EmailStr, Field
from typing import Optional
from uuid import UUID
from datetime import datetime

from src.shared.models import InvitationStatus, Role


class ProfileOut(BaseModel):
    id: UUID
    tenant_id: UUID
    email: Optional[str]
    full_name: str
    phone_number: Optional[str]
    role: Role
    created_at: Optional[datetime]

    model_config = {"from_attributes": True}


class UpdateRoleRequest(BaseModel):
    role: Role


class InvitationCreate(BaseModel):
    email: EmailStr
    role: Role = Field(..., description="Role granted on signup")


class InvitationOut(BaseModel):
    id: UUID
    email: str
    role: Role
    status: InvitationStatus
    expires_at: datetime

    model_config = {"from_attributes": True}
