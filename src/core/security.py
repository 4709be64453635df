"""
FILE: src/core/security.py
Security utilities: bcrypt hashing with salt, JWT session tokens
"""

import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional
from uuid import UUID

from jose import JWTError, jwt
from passlib.context import CryptContext

from src.core.config import settings

pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.BCRYPT_ROUNDS,
)


# Password Hashing

def generate_salt() -> str:
    """Generate a cryptographically secure random salt (hex string)."""
    # 32 hex chars; bcrypt only reads the first 72 bytes of salt + password
    return secrets.token_hex(16)


def hash_password(plain_password: str, salt: str) -> str:
    """
    Hash password using bcrypt after salting.
    The salt is prepended so two users sharing a password get different hashes.
    """
    salted = f"{salt}{plain_password}"
    return pwd_context.hash(salted)


def verify_password(plain_password: str, salt: str, hashed_password: str) -> bool:
    """Verify a plain password against its stored salt + bcrypt hash."""
    salted = f"{salt}{plain_password}"
    return pwd_context.verify(salted, hashed_password)


# Opaque tokens

def generate_invitation_token() -> str:
    """URL-safe random token for staff invitations."""
    return secrets.token_urlsafe(32)


def hash_token(raw: str) -> str:
    """sha256 of a raw token, used for refresh-token storage."""
    return hashlib.sha256(raw.encode()).hexdigest()


# JWT

def create_access_token(
    *,
    user_id: UUID,
    email: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    The token identifies the principal only. Roles are never embedded:
    they are re-read from the profile row on every request.
    """
    now = datetime.now(timezone.utc)
    expire = now + (
        expires_delta
        if expires_delta is not None
        else timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload: Dict = {
        "sub": str(user_id),
        "email": email,
        "type": "access",
        "jti": secrets.token_hex(8),
        "iss": settings.JWT_ISSUER,
        "aud": settings.JWT_AUDIENCE,
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_refresh_token_jwt(
    *,
    user_id: UUID,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a minimal JWT for refresh (subject + expiry only)."""
    now = datetime.now(timezone.utc)
    expire = now + (
        expires_delta
        if expires_delta is not None
        else timedelta(days=settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS)
    )
    payload = {
        "sub": str(user_id),
        "type": "refresh",
        "jti": secrets.token_hex(8),
        "iss": settings.JWT_ISSUER,
        "aud": settings.JWT_AUDIENCE,
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def _decode(token: str) -> Optional[Dict]:
    try:
        return jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
        )
    except JWTError:
        return None


def decode_access_token(token: str) -> Optional[Dict]:
    """
    Decode and validate a JWT access token.
    Returns the payload dict or None if invalid/expired.
    """
    payload = _decode(token)
    if not payload or payload.get("type") != "access":
        return None
    return payload


def decode_refresh_token(token: str) -> Optional[str]:
    """
    Decode and validate a JWT refresh token.
    Returns the user_id (sub) or None if invalid.
    """
    payload = _decode(token)
    if not payload or payload.get("type") != "refresh":
        return None
    return payload.get("sub")
