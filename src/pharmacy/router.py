"""
FILE: src/pharmacy/router.py
Pharmacy endpoints: inventory, restock, sales, reports, audit logs
"""

from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional
from uuid import UUID
from datetime import datetime

from src.core.dependencies import AccessContext, pagination_params, require_access
from src.pharmacy.schemas import (
    AuditLogResponse,
    MedicationCreate,
    MedicationResponse,
    ReportPeriod,
    RestockRequest,
    SaleCreate,
)
from src.pharmacy.services import MedicationService, ReportService, SaleService
from src.shared.schemas import MessageResponse, PaginatedResponse
import logging

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/pharmacy", tags=["Pharmacy"])


# Medications

@router.get("/medications", response_model=PaginatedResponse[MedicationResponse])
async def list_medications(
    low_stock: bool = False,
    ctx: AccessContext = Depends(require_access("pharmacy.medications")),
    pagination: dict = Depends(pagination_params),
):
    items, total = await MedicationService.list_medications(
        ctx.db, skip=pagination["skip"], limit=pagination["limit"], low_stock=low_stock
    )
    return PaginatedResponse.build(
        items=[MedicationResponse.model_validate(m) for m in items],
        total=total,
        page=pagination["page"],
        page_size=pagination["page_size"],
    )


@router.post(
    "/medications",
    response_model=MedicationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_medication(
    req: MedicationCreate,
    ctx: AccessContext = Depends(require_access("pharmacy.medications")),
):
    medication = await MedicationService.create_medication(req, ctx.db, ctx.principal_id)
    return MedicationResponse.model_validate(medication)


# Restock

@router.post("/restock", response_model=MessageResponse)
async def restock(
    req: RestockRequest,
    ctx: AccessContext = Depends(require_access("pharmacy.restock")),
):
    """Add stock to a medication. Quantity must be a positive integer."""
    (await MedicationService.restock(req, ctx.db, ctx.principal_id)).unwrap()
    return MessageResponse(message="Stock updated")


# Sales

@router.get("/sales")
async def list_sales(
    ctx: AccessContext = Depends(require_access("pharmacy.sales")),
    pagination: dict = Depends(pagination_params),
):
    sales = await SaleService.list_sales(ctx.db, skip=pagination["skip"], limit=pagination["limit"])
    return [
        {
            "id": str(s.id),
            "patient_id": str(s.patient_id) if s.patient_id else None,
            "total_amount": float(s.total_amount),
            "payment_method": s.payment_method.value,
            "payment_status": s.payment_status.value,
            "created_at": s.created_at.isoformat() if s.created_at else None,
        }
        for s in sales
    ]


@router.post("/sales", status_code=status.HTTP_201_CREATED)
async def create_sale(
    req: SaleCreate,
    ctx: AccessContext = Depends(require_access("pharmacy.sales")),
):
    return (await SaleService.create_sale(req, ctx.db, ctx.principal_id)).unwrap()


# Reports

@router.get("/reports/top-selling")
async def top_selling(
    ctx: AccessContext = Depends(require_access("pharmacy.reports")),
):
    """Top medications by units sold within the caller's clinic."""
    return (await ReportService.top_selling(ctx.db)).unwrap()


@router.get("/reports/profit-reorders")
async def profit_reorders(
    ctx: AccessContext = Depends(require_access("pharmacy.reports")),
):
    return (await ReportService.profit_and_reorders(ctx.db)).unwrap()


@router.get("/reports/stock-movement")
async def stock_movement(
    medication_id: Optional[UUID] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    ctx: AccessContext = Depends(require_access("pharmacy.reports")),
):
    return (await ReportService.stock_movements(
        ctx.db, medication_id=medication_id, start_date=start_date, end_date=end_date
    )).unwrap()


@router.get("/reports/sales")
async def sales_report(
    period: Optional[ReportPeriod] = None,
    ctx: AccessContext = Depends(require_access("pharmacy.reports")),
):
    """Sales with their line items, newest first. period: daily, weekly or monthly."""
    return (await ReportService.sales(ctx.db, period)).unwrap()


@router.get("/reports/revenue")
async def revenue_report(
    period: Optional[ReportPeriod] = None,
    ctx: AccessContext = Depends(require_access("pharmacy.reports")),
):
    return (await ReportService.revenue(ctx.db, period)).unwrap()


# Audit logs

@router.get("/audit-logs", response_model=List[AuditLogResponse])
async def audit_logs(
    table_name: Optional[str] = Query(default=None, max_length=100),
    ctx: AccessContext = Depends(require_access("pharmacy.audit_logs")),
):
    logs = await ReportService.audit_logs(ctx.db, table_name=table_name)
    return [AuditLogResponse.model_validate(log) for log in logs]
