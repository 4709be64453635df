"""
FILE: src/clinic/schemas.py
Clinic request and response schemas: patients and appointments
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional
from uuid import UUID
from datetime import date, datetime
import re

from src.shared.models import AppointmentStatus, PaymentStatus

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class PatientCreate(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=255)
    phone_number: Optional[str] = Field(default=None, max_length=20)
    date_of_birth: Optional[date] = None
    gender: Optional[str] = Field(default=None, pattern="^(Male|Female|Other)$")
    is_guest: bool = False


class PatientResponse(BaseModel):
    id: UUID
    full_name: str
    phone_number: Optional[str]
    date_of_birth: Optional[date]
    gender: Optional[str]
    is_guest: bool
    profile_id: Optional[UUID]

    model_config = {"from_attributes": True}


class AppointmentCreate(BaseModel):
    # Patients booking for themselves leave this empty
    patient_id: Optional[UUID] = None
    doctor_id: Optional[UUID] = None
    service_id: Optional[UUID] = None
    scheduled_date: date
    scheduled_time: str = Field(..., description="HH:MM, 24h")
    notes: Optional[str] = Field(default=None, max_length=1000)

    @field_validator("scheduled_time")
    @classmethod
    def valid_time(cls, v: str) -> str:
        if not _TIME_RE.match(v):
            raise ValueError("Time must be HH:MM")
        return v


class AppointmentResponse(BaseModel):
    id: UUID
    patient_id: UUID
    doctor_id: Optional[UUID]
    service_id: Optional[UUID]
    scheduled_date: date
    scheduled_time: str
    status: AppointmentStatus
    payment_status: PaymentStatus
    notes: Optional[str]
    created_at: Optional[datetime]

    model_config = {"from_attributes": True}
