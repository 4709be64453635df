"""
FILE: src/shared/models.py
SQLModel ORM models: clinic & pharmacy multi-tenant domain
Every business table carries tenant_id; the backend session scopes queries by it.
"""

from sqlmodel import SQLModel, Field, Relationship, Column, JSON
from typing import Any, Dict, List, Optional
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import UUID, uuid4
import enum


# Enums

class Role(str, enum.Enum):
    ADMIN = "admin"
    DOCTOR = "doctor"
    PHARMACIST = "pharmacist"
    PATIENT = "patient"


class InvitationStatus(str, enum.Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    MPESA = "mpesa"
    BANK = "bank"


# Base mixins

def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TimestampMixin(SQLModel):
    created_at: Optional[datetime] = Field(default_factory=utcnow, nullable=True)
    updated_at: Optional[datetime] = Field(default=None, nullable=True)


# Tenants

class Tenant(TimestampMixin, table=True):
    """A clinic (the top-level tenant)."""
    __tablename__ = "tenants"  # type: ignore

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    name: str = Field(..., max_length=255, index=True)
    slug: str = Field(..., max_length=100, unique=True, index=True)
    email: Optional[str] = Field(default=None, max_length=255)
    phone: Optional[str] = Field(default=None, max_length=20)
    is_active: bool = Field(default=True)

    profiles: List["Profile"] = Relationship(back_populates="tenant")


# Principals (auth subsystem)

class User(TimestampMixin, table=True):
    """
    Authenticated identity. Owned by the auth package; application code
    reads it but never mutates it.
    """
    __tablename__ = "users"  # type: ignore

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    email: str = Field(..., max_length=255, unique=True, index=True)

    # Salted bcrypt hash
    password_hash: str = Field(...)
    salt: str = Field(...)

    is_active: bool = Field(default=True)

    # Auth tracking
    api_token: Optional[str] = Field(default=None)  # current access token (revocation)
    login_count: int = Field(default=0)
    last_login_at: Optional[datetime] = Field(default=None)

    profile: Optional["Profile"] = Relationship(back_populates="user")


class RefreshToken(TimestampMixin, table=True):
    __tablename__ = "refresh_tokens"  # type: ignore

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(..., foreign_key="users.id", index=True)
    token_hash: str = Field(..., index=True)   # sha256 of the raw token
    expires_at: datetime = Field(...)
    is_revoked: bool = Field(default=False)
    revoked_at: Optional[datetime] = Field(default=None)
    ip_address: Optional[str] = Field(default=None, max_length=45)
    user_agent: Optional[str] = Field(default=None, max_length=500)


# Profiles

class Profile(TimestampMixin, table=True):
    """
    One-to-one extension of a User holding the role. Never hard-deleted;
    deleted_at marks the end of its lifecycle.
    """
    __tablename__ = "profiles"  # type: ignore

    id: UUID = Field(..., foreign_key="users.id", primary_key=True)
    tenant_id: UUID = Field(..., foreign_key="tenants.id", index=True)
    email: Optional[str] = Field(default=None, max_length=255)
    full_name: str = Field(..., max_length=255)
    phone_number: Optional[str] = Field(default=None, max_length=20)
    role: Role = Field(default=Role.PATIENT)
    deleted_at: Optional[datetime] = Field(default=None)

    user: Optional[User] = Relationship(back_populates="profile")
    tenant: Optional[Tenant] = Relationship(back_populates="profiles")


class StaffInvitation(TimestampMixin, table=True):
    __tablename__ = "staff_invitations"  # type: ignore

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID = Field(..., foreign_key="tenants.id", index=True)
    email: str = Field(..., max_length=255, index=True)
    role: Role = Field(...)
    token: str = Field(..., index=True)
    status: InvitationStatus = Field(default=InvitationStatus.PENDING)
    expires_at: datetime = Field(...)
    invited_by: Optional[UUID] = Field(default=None, foreign_key="profiles.id")


# Clinic

class Patient(TimestampMixin, table=True):
    __tablename__ = "patients"  # type: ignore

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID = Field(..., foreign_key="tenants.id", index=True)
    # Set when the patient also has a login
    profile_id: Optional[UUID] = Field(default=None, foreign_key="profiles.id", index=True)
    full_name: str = Field(..., max_length=255, index=True)
    phone_number: Optional[str] = Field(default=None, max_length=20)
    date_of_birth: Optional[date] = Field(default=None)
    gender: Optional[str] = Field(default=None, max_length=20)
    is_guest: bool = Field(default=False)


class Service(TimestampMixin, table=True):
    __tablename__ = "services"  # type: ignore

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID = Field(..., foreign_key="tenants.id", index=True)
    name: str = Field(..., max_length=255)
    price: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    duration: int = Field(default=30)  # minutes


class Appointment(TimestampMixin, table=True):
    __tablename__ = "appointments"  # type: ignore

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID = Field(..., foreign_key="tenants.id", index=True)
    patient_id: UUID = Field(..., foreign_key="patients.id", index=True)
    doctor_id: Optional[UUID] = Field(default=None, foreign_key="profiles.id")
    service_id: Optional[UUID] = Field(default=None, foreign_key="services.id")
    scheduled_date: date = Field(...)
    scheduled_time: str = Field(..., max_length=10)  # HH:MM
    status: AppointmentStatus = Field(default=AppointmentStatus.PENDING)
    notes: Optional[str] = Field(default=None)
    payment_status: PaymentStatus = Field(default=PaymentStatus.UNPAID)
    created_by: Optional[UUID] = Field(default=None, foreign_key="profiles.id")


class Receipt(TimestampMixin, table=True):
    __tablename__ = "receipts"  # type: ignore

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID = Field(..., foreign_key="tenants.id", index=True)
    appointment_id: UUID = Field(..., foreign_key="appointments.id", index=True)
    sale_id: Optional[UUID] = Field(default=None, foreign_key="sales.id")
    appointment_cost: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    medication_cost: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    receipt_text: str = Field(...)
    created_by: Optional[UUID] = Field(default=None, foreign_key="profiles.id")


# Pharmacy

class Medication(TimestampMixin, table=True):
    __tablename__ = "medications"  # type: ignore

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID = Field(..., foreign_key="tenants.id", index=True)
    name: str = Field(..., max_length=255, index=True)
    dosage_form: Optional[str] = Field(default=None, max_length=100)
    strength: Optional[str] = Field(default=None, max_length=100)
    category: Optional[str] = Field(default=None, max_length=100)
    unit_price: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    cost_price: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    stock_quantity: int = Field(default=0)
    reorder_level: int = Field(default=10)


class Sale(TimestampMixin, table=True):
    __tablename__ = "sales"  # type: ignore

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID = Field(..., foreign_key="tenants.id", index=True)
    patient_id: Optional[UUID] = Field(default=None, foreign_key="patients.id")
    total_amount: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    payment_method: PaymentMethod = Field(default=PaymentMethod.CASH)
    payment_status: PaymentStatus = Field(default=PaymentStatus.PAID)
    created_by: Optional[UUID] = Field(default=None, foreign_key="profiles.id")

    items: List["SaleItem"] = Relationship(back_populates="sale")


class SaleItem(TimestampMixin, table=True):
    __tablename__ = "sale_items"  # type: ignore

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID = Field(..., foreign_key="tenants.id", index=True)
    sale_id: UUID = Field(..., foreign_key="sales.id", index=True)
    medication_id: UUID = Field(..., foreign_key="medications.id", index=True)
    quantity: int = Field(...)
    unit_price: Decimal = Field(..., max_digits=12, decimal_places=2)
    total_price: Decimal = Field(..., max_digits=12, decimal_places=2)

    sale: Optional[Sale] = Relationship(back_populates="items")


class StockMovement(TimestampMixin, table=True):
    __tablename__ = "stock_movements"  # type: ignore

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID = Field(..., foreign_key="tenants.id", index=True)
    medication_id: UUID = Field(..., foreign_key="medications.id", index=True)
    quantity: int = Field(...)  # positive for restock, negative for sales
    reason: Optional[str] = Field(default=None, max_length=255)
    created_by: Optional[UUID] = Field(default=None, foreign_key="users.id")


class AuditLog(SQLModel, table=True):
    __tablename__ = "audit_logs"  # type: ignore

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    tenant_id: UUID = Field(..., foreign_key="tenants.id", index=True)
    action: str = Field(..., max_length=20)  # INSERT | UPDATE | DELETE
    table_name: str = Field(..., max_length=100, index=True)
    record_id: str = Field(..., max_length=100)
    old_data: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    new_data: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON))
    created_by: Optional[UUID] = Field(default=None, foreign_key="users.id")
    created_at: datetime = Field(default_factory=utcnow, index=True)
