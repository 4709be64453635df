"""
FILE: src/auth/schemas.py
Auth request and response schemas
"""

from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional
from uuid import UUID

from src.shared.models import Role


# Requests

class LoginRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)


class SignupRequest(BaseModel):
    """Accept a staff/patient invitation and create the account."""
    token: str = Field(..., min_length=1, description="Invitation token from the email")
    full_name: str = Field(..., min_length=1, max_length=255)
    phone_number: Optional[str] = Field(default=None, max_length=20)
    password: str = Field(..., min_length=8)
    confirm_password: str = Field(..., min_length=1)

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, v, info):
        if "password" in info.data and v != info.data["password"]:
            raise ValueError("Passwords do not match")
        return v


class RefreshTokenRequest(BaseModel):
    # Falls back to the refresh_token cookie when omitted
    refresh_token: Optional[str] = None


# Responses

class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int  # seconds


class SessionTokens(BaseModel):
    """Raw tokens of the current session, for clients calling the API directly."""
    access_token: str
    refresh_token: Optional[str] = None


class UserBasicInfo(BaseModel):
    id: UUID
    email: str
    full_name: Optional[str] = None
    role: Optional[Role] = None
    tenant_id: Optional[UUID] = None


class LoginResponse(BaseModel):
    token: TokenResponse
    user: UserBasicInfo
