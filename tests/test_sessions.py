"""
FILE: tests/test_sessions.py
Session provider and role resolver.

Covers:
  get_auth_session      cookies, Bearer header, revocation, transparent refresh
  resolve_role          one lookup per call, no caching, ProfileNotFound
  GET /api/v1/auth/session
"""

import pytest
from datetime import timedelta
from uuid import uuid4

from fastapi.testclient import TestClient
from sqlalchemy import update
from sqlmodel import Session, select

from src.core.config import settings
from src.core.errors import ErrorKind
from src.core.result import Err, Ok
from src.core.roles import resolve_role
from src.core.security import create_access_token
from src.core.sessions import require_auth_session
from src.shared.models import Profile, RefreshToken, Role, User, utcnow


@pytest.mark.sessions
class TestSessionEndpoint:
    """GET /api/v1/auth/session"""

    def test_returns_tokens_from_cookies(
        self, client: TestClient, pharmacist_token: str, valid_refresh_token
    ):
        raw_refresh, _ = valid_refresh_token
        client.cookies.set(settings.ACCESS_TOKEN_COOKIE, pharmacist_token)
        client.cookies.set(settings.REFRESH_TOKEN_COOKIE, raw_refresh)
        response = client.get("/api/v1/auth/session")
        assert response.status_code == 200
        assert response.json() == {"access_token": pharmacist_token, "refresh_token": raw_refresh}

    def test_bearer_header(self, client: TestClient, admin_headers: dict, admin_token: str):
        response = client.get("/api/v1/auth/session", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["access_token"] == admin_token
        assert response.json()["refresh_token"] is None

    def test_no_session_is_401(self, client: TestClient):
        response = client.get("/api/v1/auth/session")
        assert response.status_code == 401
        assert response.json() == {"error": "Unauthenticated"}

    def test_profile_not_needed(self, client: TestClient, no_profile_headers: dict):
        """Identity-only policy: a principal without a profile still gets its tokens."""
        response = client.get("/api/v1/auth/session", headers=no_profile_headers)
        assert response.status_code == 200

    def test_garbage_token(self, client: TestClient):
        response = client.get("/api/v1/auth/session", headers={"Authorization": "Bearer not.a.jwt"})
        assert response.status_code == 401

    def test_malformed_header(self, client: TestClient, admin_token: str):
        response = client.get("/api/v1/auth/session", headers={"Authorization": f"Token {admin_token}"})
        assert response.status_code == 401

    def test_revoked_token(self, client: TestClient, session: Session, admin_user: dict, admin_headers: dict):
        """A token that is no longer the stored api_token is rejected."""
        user = session.get(User, admin_user["user"].id)
        user.api_token = None
        session.add(user)
        session.commit()
        response = client.get("/api/v1/auth/session", headers=admin_headers)
        assert response.status_code == 401

    def test_expired_token(self, client: TestClient, session: Session, admin_user: dict):
        user = session.get(User, admin_user["user"].id)
        token = create_access_token(user_id=user.id, email=user.email, expires_delta=timedelta(seconds=-10))
        user.api_token = token
        session.add(user)
        session.commit()
        response = client.get("/api/v1/auth/session", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_inactive_user(self, client: TestClient, session: Session, admin_user: dict, admin_headers: dict):
        user = session.get(User, admin_user["user"].id)
        user.is_active = False
        session.add(user)
        session.commit()
        response = client.get("/api/v1/auth/session", headers=admin_headers)
        assert response.status_code == 401


@pytest.mark.sessions
class TestTransparentRefresh:

    def test_expired_access_with_valid_refresh_cookie(
        self, client: TestClient, session: Session, pharmacist_user: dict, valid_refresh_token
    ):
        raw_refresh, record = valid_refresh_token
        client.cookies.set(settings.ACCESS_TOKEN_COOKIE, "expired-or-garbage")
        client.cookies.set(settings.REFRESH_TOKEN_COOKIE, raw_refresh)

        response = client.get("/api/v1/auth/session")
        assert response.status_code == 200
        data = response.json()
        assert data["refresh_token"] != raw_refresh

        # New pair written back as cookies
        assert response.cookies.get(settings.ACCESS_TOKEN_COOKIE) == data["access_token"]
        assert response.cookies.get(settings.REFRESH_TOKEN_COOKIE) == data["refresh_token"]

        # Old refresh token rotated out
        session.refresh(record)
        assert record.is_revoked is True

    def test_refreshed_session_passes_role_checks(
        self, client: TestClient, pharmacist_user: dict, valid_refresh_token, medications
    ):
        raw_refresh, _ = valid_refresh_token
        client.cookies.set(settings.REFRESH_TOKEN_COOKIE, raw_refresh)
        response = client.get("/api/v1/pharmacy/reports/top-selling")
        assert response.status_code == 200

    def test_revoked_refresh_cookie(self, client: TestClient, session: Session, valid_refresh_token):
        raw_refresh, record = valid_refresh_token
        record.is_revoked = True
        record.revoked_at = utcnow()
        session.add(record)
        session.commit()
        client.cookies.set(settings.REFRESH_TOKEN_COOKIE, raw_refresh)
        response = client.get("/api/v1/auth/session")
        assert response.status_code == 401

    def test_refresh_cookie_used_once(self, client: TestClient, session: Session, valid_refresh_token):
        raw_refresh, _ = valid_refresh_token
        client.cookies.set(settings.REFRESH_TOKEN_COOKIE, raw_refresh)
        assert client.get("/api/v1/auth/session").status_code == 200

        client.cookies.clear()
        client.cookies.set(settings.REFRESH_TOKEN_COOKIE, raw_refresh)
        assert client.get("/api/v1/auth/session").status_code == 401

    def test_no_refresh_records_created_without_cookie(self, client: TestClient, session: Session):
        client.get("/api/v1/auth/session")
        assert session.exec(select(RefreshToken)).all() == []


@pytest.mark.unit
@pytest.mark.rbac
class TestResolveRole:

    def test_resolves_role(self, session: Session, doctor_user: dict):
        assert resolve_role(doctor_user["user"].id, session) == Ok(Role.DOCTOR)

    def test_missing_profile(self, session: Session, no_profile_user: dict):
        result = resolve_role(no_profile_user["user"].id, session)
        assert isinstance(result, Err)
        assert result.kind == ErrorKind.PROFILE_NOT_FOUND

    def test_unknown_principal(self, session: Session):
        assert resolve_role(uuid4(), session) == Err(ErrorKind.PROFILE_NOT_FOUND)

    def test_role_change_visible_on_next_call(self, session: Session, pharmacist_user: dict):
        user_id = pharmacist_user["user"].id
        assert resolve_role(user_id, session) == Ok(Role.PHARMACIST)

        profile = session.get(Profile, user_id)
        profile.role = Role.ADMIN
        session.add(profile)
        session.commit()

        assert resolve_role(user_id, session) == Ok(Role.ADMIN)

    def test_rereads_row_loaded_earlier_in_same_session(self, session: Session, pharmacist_user: dict):
        """A change written behind the ORM is seen without expiring the session."""
        user_id = pharmacist_user["user"].id
        assert resolve_role(user_id, session) == Ok(Role.PHARMACIST)

        session.connection().execute(
            update(Profile).where(Profile.id == user_id).values(role=Role.ADMIN)  # type: ignore
        )

        assert resolve_role(user_id, session) == Ok(Role.ADMIN)

    def test_soft_deleted_profile_not_found(self, session: Session, doctor_user: dict):
        profile = session.get(Profile, doctor_user["user"].id)
        profile.deleted_at = utcnow()
        session.add(profile)
        session.commit()
        assert isinstance(resolve_role(doctor_user["user"].id, session), Err)

    def test_require_auth_session(self):
        assert require_auth_session(None) == Err(ErrorKind.UNAUTHENTICATED)
