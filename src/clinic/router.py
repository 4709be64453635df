"""
FILE: src/clinic/router.py
Clinic endpoints: patients, appointments, receipts
"""

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import PlainTextResponse
from typing import List, Optional
from uuid import UUID

from src.core.dependencies import AccessContext, pagination_params, require_access
from src.clinic.schemas import (
    AppointmentCreate,
    AppointmentResponse,
    PatientCreate,
    PatientResponse,
)
from src.clinic.services import AppointmentService, PatientService, ReceiptService

router = APIRouter(tags=["Clinic"])


# Patients

@router.get("/patients", response_model=List[PatientResponse])
async def list_patients(
    search: Optional[str] = Query(default=None, max_length=100),
    ctx: AccessContext = Depends(require_access("clinic.patients")),
    pagination: dict = Depends(pagination_params),
):
    patients = await PatientService.list_patients(
        ctx.db, search=search, skip=pagination["skip"], limit=pagination["limit"]
    )
    return [PatientResponse.model_validate(p) for p in patients]


@router.post("/patients", response_model=PatientResponse, status_code=status.HTTP_201_CREATED)
async def create_patient(
    req: PatientCreate,
    ctx: AccessContext = Depends(require_access("clinic.patients")),
):
    patient = await PatientService.create_patient(req, ctx.db)
    return PatientResponse.model_validate(patient)


# Appointments

@router.get("/appointments", response_model=List[AppointmentResponse])
async def list_appointments(
    ctx: AccessContext = Depends(require_access("clinic.appointments")),
    pagination: dict = Depends(pagination_params),
):
    appointments = await AppointmentService.list_appointments(
        ctx.db, ctx.profile, skip=pagination["skip"], limit=pagination["limit"]  # type: ignore
    )
    return [AppointmentResponse.model_validate(a) for a in appointments]


@router.post(
    "/appointments",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
)
async def book_appointment(
    req: AppointmentCreate,
    ctx: AccessContext = Depends(require_access("clinic.appointments")),
):
    appointment = await AppointmentService.book(req, ctx.db, ctx.profile)  # type: ignore
    return AppointmentResponse.model_validate(appointment)


# Receipts

@router.get("/receipt", response_class=PlainTextResponse)
async def receipt(
    appointment_id: UUID = Query(..., alias="appointmentId"),
    sale_id: Optional[UUID] = Query(default=None, alias="saleId"),
    ctx: AccessContext = Depends(require_access("clinic.receipt")),
):
    """Plain-text payment receipt for an appointment, optionally with a pharmacy sale."""
    text = await ReceiptService.generate(appointment_id, ctx.db, ctx.profile, sale_id=sale_id)  # type: ignore
    return PlainTextResponse(text)
