"""
FILE: src/pharmacy/schemas.py
Pharmacy request and response schemas
"""

from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from uuid import UUID
from datetime import datetime
from decimal import Decimal
import enum

from src.shared.models import PaymentMethod


class ReportPeriod(str, enum.Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


# Requests

class RestockRequest(BaseModel):
    medication_id: UUID
    quantity: int = Field(..., gt=0, description="Units added to stock")
    reason: Optional[str] = Field(default=None, max_length=255)


class MedicationCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    dosage_form: Optional[str] = Field(default=None, max_length=100)
    strength: Optional[str] = Field(default=None, max_length=100)
    category: Optional[str] = Field(default=None, max_length=100)
    unit_price: Decimal = Field(..., ge=0)
    cost_price: Decimal = Field(default=Decimal("0"), ge=0)
    stock_quantity: int = Field(default=0, ge=0)
    reorder_level: int = Field(default=10, ge=0)

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name cannot be blank")
        return v


class SaleItemIn(BaseModel):
    medication_id: UUID
    quantity: int = Field(..., gt=0)


class SaleCreate(BaseModel):
    items: List[SaleItemIn] = Field(..., min_length=1)
    patient_id: Optional[UUID] = None
    payment_method: PaymentMethod = PaymentMethod.CASH


# Responses

class MedicationResponse(BaseModel):
    id: UUID
    name: str
    dosage_form: Optional[str]
    strength: Optional[str]
    category: Optional[str]
    unit_price: Decimal
    cost_price: Decimal
    stock_quantity: int
    reorder_level: int
    created_at: Optional[datetime]

    model_config = {"from_attributes": True}


class AuditLogResponse(BaseModel):
    id: UUID
    action: str
    table_name: str
    record_id: str
    old_data: Optional[dict]
    new_data: Optional[dict]
    created_by: Optional[UUID]
    created_at: datetime

    model_config = {"from_attributes": True}
