"""
FILE: src/clinic/services.py
Clinic business logic: patients, appointments and receipts
"""

from decimal import Decimal
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import or_
from sqlmodel import select

from src.core.backend import BackendSession
from src.core.config import settings
from src.core.errors import ApiError, ErrorKind
from src.clinic.schemas import AppointmentCreate, PatientCreate
from src.shared.models import (
    Appointment,
    Medication,
    Patient,
    Profile,
    Receipt,
    Role,
    Sale,
    SaleItem,
    Service,
    utcnow,
)
import logging

logger = logging.getLogger(__name__)


def format_money(amount: Decimal) -> str:
    return f"{settings.CURRENCY} {Decimal(amount or 0):,.2f}"


class PatientService:

    @staticmethod
    async def list_patients(
        db: BackendSession, search: Optional[str] = None, skip: int = 0, limit: int = 20
    ) -> List[Patient]:
        query = db.select(Patient)
        if search:
            pattern = f"%{search.strip()}%"
            query = query.where(or_(
                Patient.full_name.ilike(pattern),  # type: ignore
                Patient.phone_number.ilike(pattern),  # type: ignore
            ))
        return list(db.session.exec(query.order_by(Patient.full_name).offset(skip).limit(limit)).all())

    @staticmethod
    async def create_patient(req: PatientCreate, db: BackendSession) -> Patient:
        patient = Patient(**req.model_dump())
        db.add(patient)
        db.session.commit()
        db.session.refresh(patient)
        logger.info(f"Patient created: {patient.id} in tenant {db.tenant_id}")
        return patient

    @staticmethod
    def patient_for_profile(profile_id: UUID, db: BackendSession) -> Optional[Patient]:
        return db.session.exec(db.select(Patient).where(Patient.profile_id == profile_id)).first()


class AppointmentService:

    @staticmethod
    async def list_appointments(
        db: BackendSession, profile: Profile, skip: int = 0, limit: int = 20
    ) -> List[Appointment]:
        """Patients only see their own appointments; staff see the clinic's."""
        query = db.select(Appointment)
        if profile.role == Role.PATIENT:
            patient = PatientService.patient_for_profile(profile.id, db)
            if patient is None:
                return []
            query = query.where(Appointment.patient_id == patient.id)
        elif profile.role == Role.DOCTOR:
            query = query.where(or_(
                Appointment.doctor_id == profile.id,  # type: ignore
                Appointment.doctor_id == None,  # type: ignore  # noqa: E711
            ))
        query = query.order_by(Appointment.scheduled_date, Appointment.scheduled_time)
        return list(db.session.exec(query.offset(skip).limit(limit)).all())

    @staticmethod
    async def book(req: AppointmentCreate, db: BackendSession, profile: Profile) -> Appointment:
        if profile.role == Role.PATIENT:
            patient = PatientService.patient_for_profile(profile.id, db)
            if patient is None:
                raise ApiError(ErrorKind.NOT_FOUND, "No patient record for this account")
            if req.patient_id and req.patient_id != patient.id:
                raise ApiError(ErrorKind.FORBIDDEN)
        else:
            if not req.patient_id:
                raise ApiError(ErrorKind.VALIDATION_ERROR, "patient_id: Field required")
            patient = db.get(Patient, req.patient_id)
            if patient is None:
                raise ApiError(ErrorKind.NOT_FOUND, "Patient not found")

        if req.service_id and db.get(Service, req.service_id) is None:
            raise ApiError(ErrorKind.NOT_FOUND, "Service not found")

        if req.doctor_id:
            doctor = db.get(Profile, req.doctor_id)
            if doctor is None or doctor.role != Role.DOCTOR:
                raise ApiError(ErrorKind.NOT_FOUND, "Doctor not found")

        appointment = Appointment(
            patient_id=patient.id,
            doctor_id=req.doctor_id,
            service_id=req.service_id,
            scheduled_date=req.scheduled_date,
            scheduled_time=req.scheduled_time,
            notes=req.notes,
            created_by=profile.id,
        )
        db.add(appointment)
        db.session.commit()
        db.session.refresh(appointment)
        logger.info(f"Appointment booked: {appointment.id} for patient {patient.id}")
        return appointment


class ReceiptService:

    @staticmethod
    def _medication_lines(sale: Sale, db: BackendSession) -> Tuple[List[str], Decimal]:
        lines: List[str] = []
        total = Decimal("0")
        items = db.session.exec(db.select(SaleItem).where(SaleItem.sale_id == sale.id)).all()
        for item in items:
            medication = db.get(Medication, item.medication_id)
            name = medication.name if medication else "Unknown"
            lines.append(f"  {name} x{item.quantity}: {format_money(item.total_price)}")
            total += Decimal(item.total_price)
        return lines, total

    @staticmethod
    def _sale_matches(sale: Sale, appointment: Appointment, profile: Profile) -> bool:
        """A sale may only join the receipt of the patient it was sold to."""
        if sale.patient_id is None:
            # walk-in sales are staff-only
            return profile.role != Role.PATIENT
        return sale.patient_id == appointment.patient_id

    @staticmethod
    async def generate(
        appointment_id: UUID,
        db: BackendSession,
        profile: Profile,
        sale_id: Optional[UUID] = None,
    ) -> str:
        """Build the plain-text receipt for an appointment and store it."""
        appointment = db.get(Appointment, appointment_id)
        if appointment is None:
            raise ApiError(ErrorKind.NOT_FOUND, "Appointment not found")

        patient = db.get(Patient, appointment.patient_id)
        if profile.role == Role.PATIENT and (patient is None or patient.profile_id != profile.id):
            # Other patients' appointments are indistinguishable from missing ones
            raise ApiError(ErrorKind.NOT_FOUND, "Appointment not found")

        service = db.get(Service, appointment.service_id) if appointment.service_id else None
        appointment_cost = Decimal(service.price) if service else Decimal("0")

        medication_lines: List[str] = []
        medication_cost = Decimal("0")
        if sale_id:
            sale = db.get(Sale, sale_id)
            if sale is None or not ReceiptService._sale_matches(sale, appointment, profile):
                raise ApiError(ErrorKind.NOT_FOUND, "Sale not found")
            medication_lines, medication_cost = ReceiptService._medication_lines(sale, db)

        issued_at = utcnow()
        lines = [
            "--- Payment Receipt ---",
            f"Appointment ID: {appointment.id}",
            f"Patient: {patient.full_name if patient else 'Unknown'}",
            f"Service: {service.name if service else 'N/A'}",
            f"Date: {appointment.scheduled_date.isoformat()} at {appointment.scheduled_time}",
            f"Appointment Cost: {format_money(appointment_cost)}",
        ]
        if medication_lines:
            lines.append("Medication:")
            lines.extend(medication_lines)
        else:
            lines.append("Medication: N/A")
        lines += [
            f"Medication Cost: {format_money(medication_cost)}",
            f"Total: {format_money(appointment_cost + medication_cost)}",
            f"Issued on: {issued_at.strftime('%Y-%m-%d %H:%M')} UTC",
            "-----------------------",
        ]
        receipt_text = "\n".join(lines) + "\n"

        db.add(Receipt(
            appointment_id=appointment.id,
            sale_id=sale_id,
            appointment_cost=appointment_cost,
            medication_cost=medication_cost,
            receipt_text=receipt_text,
            created_by=profile.id,
        ))
        db.session.commit()
        logger.info(f"Receipt issued for appointment {appointment.id}")
        return receipt_text
