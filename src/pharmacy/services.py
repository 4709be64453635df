"""
FILE: src/pharmacy/services.py
Pharmacy business logic: inventory, sales, reports and audit trail.
All reads and writes go through the tenant-bound BackendSession.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func
from sqlmodel import select

from src.core.backend import BackendSession
from src.core.result import Result
from src.pharmacy import procedures  # noqa: F401  registers the pharmacy procedures
from src.pharmacy.schemas import MedicationCreate, ReportPeriod, RestockRequest, SaleCreate
from src.shared.models import AuditLog, Medication, Sale, utcnow
import logging

logger = logging.getLogger(__name__)

PERIOD_WINDOWS: Dict[ReportPeriod, timedelta] = {
    ReportPeriod.DAILY: timedelta(days=1),
    ReportPeriod.WEEKLY: timedelta(days=7),
    ReportPeriod.MONTHLY: timedelta(days=30),
}


def period_start(period: Optional[ReportPeriod]) -> Optional[datetime]:
    """Start of a trailing reporting window; None means all time."""
    return utcnow() - PERIOD_WINDOWS[period] if period else None


class MedicationService:

    @staticmethod
    async def list_medications(
        db: BackendSession,
        skip: int = 0,
        limit: int = 20,
        low_stock: bool = False,
    ) -> Tuple[List[Medication], int]:
        """Returns (items, total_count), ordered by name."""
        query = db.select(Medication)
        if low_stock:
            query = query.where(Medication.stock_quantity <= Medication.reorder_level)

        total = db.session.exec(select(func.count()).select_from(query.subquery())).one()
        items = db.session.exec(query.order_by(Medication.name).offset(skip).limit(limit)).all()
        return list(items), total

    @staticmethod
    async def create_medication(
        req: MedicationCreate, db: BackendSession, user_id: UUID
    ) -> Medication:
        medication = Medication(**req.model_dump())
        db.add(medication)
        db.session.flush()
        db.add(AuditLog(
            action="INSERT",
            table_name="medications",
            record_id=str(medication.id),
            new_data={"name": medication.name, "stock_quantity": medication.stock_quantity},
            created_by=user_id,
        ))
        db.session.commit()
        db.session.refresh(medication)
        logger.info(f"Medication created: {medication.name} in tenant {db.tenant_id}")
        return medication

    @staticmethod
    async def restock(req: RestockRequest, db: BackendSession, user_id: UUID) -> Result[None]:
        result = db.rpc(
            "restock_medication",
            p_medication_id=req.medication_id,
            p_quantity=req.quantity,
            p_reason=req.reason,
            p_user_id=user_id,
        )
        logger.info(f"Restock {req.medication_id} +{req.quantity} by {user_id}: {type(result).__name__}")
        return result


class SaleService:

    @staticmethod
    async def list_sales(db: BackendSession, skip: int = 0, limit: int = 20) -> List[Sale]:
        return list(db.session.exec(
            db.select(Sale).order_by(Sale.created_at.desc()).offset(skip).limit(limit)  # type: ignore
        ).all())

    @staticmethod
    async def create_sale(req: SaleCreate, db: BackendSession, user_id: UUID) -> Result[Any]:
        return db.rpc(
            "create_sale",
            p_items=[item.model_dump() for item in req.items],
            p_patient_id=req.patient_id,
            p_payment_method=req.payment_method,
            p_user_id=user_id,
        )


class ReportService:

    @staticmethod
    async def top_selling(db: BackendSession) -> Result[Any]:
        return db.rpc("get_top_selling_medications")

    @staticmethod
    async def profit_and_reorders(db: BackendSession) -> Result[Any]:
        return db.rpc("calculate_profit_and_reorders")

    @staticmethod
    async def stock_movements(
        db: BackendSession,
        medication_id: Optional[UUID] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Result[Any]:
        return db.rpc(
            "get_stock_movements",
            p_medication_id=medication_id,
            p_start_date=start_date,
            p_end_date=end_date,
        )

    @staticmethod
    async def sales(db: BackendSession, period: Optional[ReportPeriod] = None) -> Result[Any]:
        return db.rpc("get_sales_report", p_since=period_start(period))

    @staticmethod
    async def revenue(db: BackendSession, period: Optional[ReportPeriod] = None) -> Result[Any]:
        return db.rpc("get_revenue", p_since=period_start(period))

    @staticmethod
    async def audit_logs(
        db: BackendSession, table_name: Optional[str] = None, limit: int = 100
    ) -> List[AuditLog]:
        query = db.select(AuditLog)
        if table_name:
            query = query.where(AuditLog.table_name == table_name)
        return list(db.session.exec(
            query.order_by(AuditLog.created_at.desc()).limit(limit)  # type: ignore
        ).all())
