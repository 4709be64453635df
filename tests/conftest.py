"""
FILE: tests/conftest.py
Shared pytest fixtures and configuration for the clinic & pharmacy API.

Fixture hierarchy:
    engine → backend → session → client
    demo_tenant
        └→ admin_user → admin_token → admin_headers
        └→ doctor_user → doctor_token → doctor_headers
        └→ pharmacist_user → pharmacist_token → pharmacist_headers
        └→ patient_user (+ patient record) → patient_token → patient_headers
        └→ medications, sales, service, appointment
    no_profile_user → no_profile_headers   (valid session, no profile row)
    second_tenant → other_admin_user → other_admin_headers → other_medication
    valid_refresh_token
"""
import sys
import os

# Cheap hashing for the whole run; must be set before the app is imported
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("ENVIRONMENT", "development")

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

import pytest
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Tuple

from fastapi.testclient import TestClient
from sqlmodel import Session, create_engine
from sqlmodel.pool import StaticPool

from main import app
from src.core.config import settings
from src.core.database import Backend, get_session
from src.core.security import (
    create_access_token,
    create_refresh_token_jwt,
    generate_salt,
    hash_password,
    hash_token,
)
from src.shared.models import (
    Appointment,
    Medication,
    Patient,
    Profile,
    RefreshToken,
    Role,
    Sale,
    SaleItem,
    Service,
    Tenant,
    User,
    utcnow,
)


# ============================================================================
# DATABASE FIXTURES
# ============================================================================

@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine shared by every connection of one test."""
    return create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture(name="backend")
def backend_fixture(engine):
    """Backend adopting the test engine; creates the schema."""
    backend = Backend(settings, engine=engine)
    backend.start()
    yield backend


@pytest.fixture(name="session")
def session_fixture(backend: Backend):
    """Function-scoped session; rolls back after each test."""
    with backend.session() as session:
        yield session
        session.rollback()


@pytest.fixture(name="client")
def client_fixture(backend: Backend, session: Session):
    """TestClient with the DB session dependency overridden."""
    def get_session_override():
        return session

    app.state.backend = backend
    app.dependency_overrides[get_session] = get_session_override
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
    app.state.backend = None


# ============================================================================
# TENANT FIXTURES
# ============================================================================

@pytest.fixture(name="demo_tenant")
def demo_tenant_fixture(session: Session) -> Tenant:
    """Primary clinic used by most tests."""
    tenant = Tenant(name="Demo Clinic", slug="demo-clinic", email="info@democlinic.com")
    session.add(tenant)
    session.commit()
    session.refresh(tenant)
    return tenant


@pytest.fixture(name="second_tenant")
def second_tenant_fixture(session: Session) -> Tenant:
    """A second, independent clinic for isolation tests."""
    tenant = Tenant(name="Other Clinic", slug="other-clinic")
    session.add(tenant)
    session.commit()
    session.refresh(tenant)
    return tenant


# ============================================================================
# INTERNAL HELPERS
# ============================================================================

def _create_user(
    session: Session,
    email: str,
    password: str = "Password123!",
    is_active: bool = True,
) -> Tuple[User, str]:
    """Build and flush a User with bcrypt+salt hashed password. Returns (user, plain_password)."""
    salt = generate_salt()
    user = User(
        email=email,
        password_hash=hash_password(password, salt),
        salt=salt,
        is_active=is_active,
        login_count=0,
    )
    session.add(user)
    session.flush()
    return user, password


def _create_profile(
    session: Session,
    user: User,
    tenant: Tenant,
    role: Role,
    full_name: str,
) -> Profile:
    profile = Profile(
        id=user.id,
        tenant_id=tenant.id,
        email=user.email,
        full_name=full_name,
        role=role,
    )
    session.add(profile)
    session.flush()
    return profile


def _create_token(session: Session, user: User) -> str:
    """Create a JWT access token, persist it in user.api_token, return the raw token."""
    access_token = create_access_token(user_id=user.id, email=user.email)
    user.api_token = access_token
    session.add(user)
    session.commit()
    return access_token


def _staff(session: Session, tenant: Tenant, email: str, role: Role, full_name: str) -> dict:
    user, password = _create_user(session, email)
    profile = _create_profile(session, user, tenant, role, full_name)
    session.commit()
    session.refresh(user)
    return {"user": user, "password": password, "profile": profile, "tenant": tenant}


# ============================================================================
# USER FIXTURES
# ============================================================================

@pytest.fixture(name="admin_user")
def admin_user_fixture(session: Session, demo_tenant: Tenant) -> dict:
    return _staff(session, demo_tenant, "admin@democlinic.com", Role.ADMIN, "Clinic Admin")


@pytest.fixture(name="doctor_user")
def doctor_user_fixture(session: Session, demo_tenant: Tenant) -> dict:
    return _staff(session, demo_tenant, "doctor@democlinic.com", Role.DOCTOR, "Dr. Amina Otieno")


@pytest.fixture(name="pharmacist_user")
def pharmacist_user_fixture(session: Session, demo_tenant: Tenant) -> dict:
    return _staff(session, demo_tenant, "pharmacist@democlinic.com", Role.PHARMACIST, "Peter Kamau")


@pytest.fixture(name="patient_user")
def patient_user_fixture(session: Session, demo_tenant: Tenant) -> dict:
    """Patient login with its linked patient record."""
    data = _staff(session, demo_tenant, "patient@democlinic.com", Role.PATIENT, "Grace Wanjiru")
    patient = Patient(
        tenant_id=demo_tenant.id,
        profile_id=data["user"].id,
        full_name="Grace Wanjiru",
        phone_number="0712345678",
    )
    session.add(patient)
    session.commit()
    session.refresh(patient)
    data["patient"] = patient
    return data


@pytest.fixture(name="no_profile_user")
def no_profile_user_fixture(session: Session) -> dict:
    """Authenticated principal with no profile row."""
    user, password = _create_user(session, "orphan@democlinic.com")
    session.commit()
    session.refresh(user)
    return {"user": user, "password": password}


@pytest.fixture(name="other_admin_user")
def other_admin_user_fixture(session: Session, second_tenant: Tenant) -> dict:
    """Admin of the second clinic."""
    return _staff(session, second_tenant, "admin@otherclinic.com", Role.ADMIN, "Other Admin")


# ============================================================================
# TOKEN & HEADER FIXTURES
# ============================================================================

@pytest.fixture(name="admin_token")
def admin_token_fixture(session: Session, admin_user: dict) -> str:
    return _create_token(session, admin_user["user"])


@pytest.fixture(name="doctor_token")
def doctor_token_fixture(session: Session, doctor_user: dict) -> str:
    return _create_token(session, doctor_user["user"])


@pytest.fixture(name="pharmacist_token")
def pharmacist_token_fixture(session: Session, pharmacist_user: dict) -> str:
    return _create_token(session, pharmacist_user["user"])


@pytest.fixture(name="patient_token")
def patient_token_fixture(session: Session, patient_user: dict) -> str:
    return _create_token(session, patient_user["user"])


@pytest.fixture(name="admin_headers")
def admin_headers_fixture(admin_token: str) -> dict:
    return {"Authorization": f"Bearer {admin_token}"}


@pytest.fixture(name="doctor_headers")
def doctor_headers_fixture(doctor_token: str) -> dict:
    return {"Authorization": f"Bearer {doctor_token}"}


@pytest.fixture(name="pharmacist_headers")
def pharmacist_headers_fixture(pharmacist_token: str) -> dict:
    return {"Authorization": f"Bearer {pharmacist_token}"}


@pytest.fixture(name="patient_headers")
def patient_headers_fixture(patient_token: str) -> dict:
    return {"Authorization": f"Bearer {patient_token}"}


@pytest.fixture(name="no_profile_headers")
def no_profile_headers_fixture(session: Session, no_profile_user: dict) -> dict:
    return {"Authorization": f"Bearer {_create_token(session, no_profile_user['user'])}"}


@pytest.fixture(name="other_admin_headers")
def other_admin_headers_fixture(session: Session, other_admin_user: dict) -> dict:
    return {"Authorization": f"Bearer {_create_token(session, other_admin_user['user'])}"}


@pytest.fixture(name="role_headers")
def role_headers_fixture(
    admin_headers: dict,
    doctor_headers: dict,
    pharmacist_headers: dict,
    patient_headers: dict,
) -> Dict[Role, dict]:
    """Headers for one user of every role in demo_tenant."""
    return {
        Role.ADMIN: admin_headers,
        Role.DOCTOR: doctor_headers,
        Role.PHARMACIST: pharmacist_headers,
        Role.PATIENT: patient_headers,
    }


# ============================================================================
# CLINIC & PHARMACY DATA FIXTURES
# ============================================================================

@pytest.fixture(name="medications")
def medications_fixture(session: Session, demo_tenant: Tenant) -> List[Medication]:
    """Three medications; Metformin is below its reorder level."""
    meds = [
        Medication(tenant_id=demo_tenant.id, name="Amoxicillin", dosage_form="Capsule", strength="500mg",
                   unit_price=Decimal("20.00"), cost_price=Decimal("12.00"), stock_quantity=200),
        Medication(tenant_id=demo_tenant.id, name="Paracetamol", dosage_form="Tablet", strength="500mg",
                   unit_price=Decimal("5.00"), cost_price=Decimal("2.50"), stock_quantity=500),
        Medication(tenant_id=demo_tenant.id, name="Metformin", dosage_form="Tablet", strength="850mg",
                   unit_price=Decimal("15.00"), cost_price=Decimal("9.00"), stock_quantity=8,
                   reorder_level=10),
    ]
    for med in meds:
        session.add(med)
    session.commit()
    for med in meds:
        session.refresh(med)
    return meds


def _record_sale(session: Session, tenant: Tenant, items: List[Tuple[Medication, int]]) -> Sale:
    sale = Sale(tenant_id=tenant.id)
    session.add(sale)
    session.flush()
    total = Decimal("0")
    for med, quantity in items:
        line = Decimal(med.unit_price) * quantity
        total += line
        session.add(SaleItem(
            tenant_id=tenant.id,
            sale_id=sale.id,
            medication_id=med.id,
            quantity=quantity,
            unit_price=med.unit_price,
            total_price=line,
        ))
    sale.total_amount = total
    session.add(sale)
    session.commit()
    session.refresh(sale)
    return sale


@pytest.fixture(name="sales")
def sales_fixture(session: Session, demo_tenant: Tenant, medications: List[Medication]) -> List[Sale]:
    """Paracetamol 30 units, Amoxicillin 12 units, Metformin 0."""
    amoxicillin, paracetamol, _ = medications
    return [
        _record_sale(session, demo_tenant, [(paracetamol, 20), (amoxicillin, 10)]),
        _record_sale(session, demo_tenant, [(paracetamol, 10), (amoxicillin, 2)]),
    ]


@pytest.fixture(name="other_medication")
def other_medication_fixture(session: Session, second_tenant: Tenant) -> Medication:
    """Medication of the second clinic, sold heavily."""
    med = Medication(tenant_id=second_tenant.id, name="Ibuprofen",
                     unit_price=Decimal("10.00"), cost_price=Decimal("6.00"), stock_quantity=50)
    session.add(med)
    session.commit()
    session.refresh(med)
    _record_sale(session, second_tenant, [(med, 99)])
    return med


@pytest.fixture(name="service")
def service_fixture(session: Session, demo_tenant: Tenant) -> Service:
    service = Service(tenant_id=demo_tenant.id, name="General consultation",
                      price=Decimal("1500.00"), duration=30)
    session.add(service)
    session.commit()
    session.refresh(service)
    return service


@pytest.fixture(name="appointment")
def appointment_fixture(
    session: Session, demo_tenant: Tenant, patient_user: dict, doctor_user: dict, service: Service
) -> Appointment:
    """Appointment of patient_user with doctor_user."""
    appointment = Appointment(
        tenant_id=demo_tenant.id,
        patient_id=patient_user["patient"].id,
        doctor_id=doctor_user["user"].id,
        service_id=service.id,
        scheduled_date=date(2026, 3, 14),
        scheduled_time="09:30",
    )
    session.add(appointment)
    session.commit()
    session.refresh(appointment)
    return appointment


# ============================================================================
# REFRESH TOKEN FIXTURE
# ============================================================================

@pytest.fixture(name="valid_refresh_token")
def valid_refresh_token_fixture(
    session: Session,
    pharmacist_user: dict,
) -> Tuple[str, RefreshToken]:
    """A valid (unexpired, not revoked) refresh token JWT for pharmacist_user."""
    raw_jwt = create_refresh_token_jwt(user_id=pharmacist_user["user"].id)
    record = RefreshToken(
        user_id=pharmacist_user["user"].id,
        token_hash=hash_token(raw_jwt),
        expires_at=utcnow() + timedelta(days=7),
        is_revoked=False,
        ip_address="127.0.0.1",
        user_agent="pytest",
    )
    session.add(record)
    session.commit()
    return raw_jwt, record


# ============================================================================
# EMAIL SERVICE FIXTURE
# ============================================================================

@pytest.fixture(name="mock_email_settings")
def mock_email_settings_fixture():
    """Disable outbound email. Restores original values after each test."""
    from src.email.config import email_settings

    original_send = email_settings.SEND_EMAILS
    original_key = email_settings.RESEND_API_KEY

    email_settings.SEND_EMAILS = False
    email_settings.RESEND_API_KEY = "re_test_key_no_real_sending"

    yield email_settings

    email_settings.SEND_EMAILS = original_send
    email_settings.RESEND_API_KEY = original_key


# ============================================================================
# SETUP / TEARDOWN
# ============================================================================

@pytest.fixture(autouse=True)
def reset_database(session: Session):
    """Rollback any uncommitted changes after each test (safety net)."""
    yield
    session.rollback()


# ============================================================================
# PYTEST MARKERS
# ============================================================================

def pytest_configure(config):
    """Register all custom test markers."""
    # Module-level markers
    config.addinivalue_line("markers", "auth: Authentication and token tests")
    config.addinivalue_line("markers", "sessions: Session provider tests")
    config.addinivalue_line("markers", "rbac: Role-based access control tests")
    config.addinivalue_line("markers", "pharmacy: Pharmacy endpoint tests")
    config.addinivalue_line("markers", "clinic: Patients, appointments and receipts")
    config.addinivalue_line("markers", "pages: Server-rendered page tests")
    config.addinivalue_line("markers", "users: Profile and invitation tests")
    config.addinivalue_line("markers", "email: Email service tests")

    # Cross-cutting markers
    config.addinivalue_line("markers", "tenant_isolation: Cross-tenant data isolation tests")
    config.addinivalue_line("markers", "security: Security and edge-case tests")
    config.addinivalue_line("markers", "unit: Unit tests (no HTTP client)")
    config.addinivalue_line("markers", "integration: Full HTTP stack integration tests")
