"""
FILE: src/email/schemas.py
Email data schemas
"""

from pydantic import BaseModel, EmailStr
from typing import Optional
from datetime import datetime


class StaffInvitationEmailData(BaseModel):
    """Invitation to join a clinic with a given role."""
    email: EmailStr
    role: str
    invitation_token: str
    expires_at: datetime
    clinic_name: Optional[str] = None
    invited_by: Optional[str] = None


class EmailResponse(BaseModel):
    success: bool
    message: str
    email_id: Optional[str] = None
    error: Optional[str] = None
