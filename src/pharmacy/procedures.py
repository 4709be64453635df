"""
FILE: src/pharmacy/procedures.py
Pharmacy backend procedures. Reached only through BackendSession.rpc,
which runs each one in a single transaction.
"""

from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlmodel import select

from src.core.backend import BackendSession, ProcedureError, procedure
from src.core.errors import ErrorKind
from src.shared.models import (
    AuditLog,
    Medication,
    Patient,
    PaymentMethod,
    Profile,
    Receipt,
    Sale,
    SaleItem,
    StockMovement,
    utcnow,
)

TOP_SELLING_LIMIT = 10


def _money(value: Any) -> float:
    return float(Decimal(value or 0).quantize(Decimal("0.01")))


def _naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    # timestamps are stored as naive UTC
    if value is not None and value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _audit(
    db: BackendSession,
    action: str,
    table_name: str,
    record_id: Any,
    old_data: Optional[Dict] = None,
    new_data: Optional[Dict] = None,
    user_id: Optional[UUID] = None,
) -> None:
    db.add(AuditLog(
        action=action,
        table_name=table_name,
        record_id=str(record_id),
        old_data=old_data,
        new_data=new_data,
        created_by=user_id,
    ))


@procedure("restock_medication")
def restock_medication(
    db: BackendSession,
    p_medication_id: UUID,
    p_quantity: int,
    p_reason: Optional[str] = None,
    p_user_id: Optional[UUID] = None,
) -> None:
    if p_quantity is None or p_quantity <= 0:
        raise ProcedureError("Quantity must be greater than zero", ErrorKind.VALIDATION_ERROR)

    medication = db.get(Medication, p_medication_id)
    if medication is None:
        raise ProcedureError("Medication not found", ErrorKind.NOT_FOUND)

    old_quantity = medication.stock_quantity
    medication.stock_quantity = old_quantity + p_quantity
    medication.updated_at = utcnow()
    db.add(medication)

    db.add(StockMovement(
        medication_id=medication.id,
        quantity=p_quantity,
        reason=p_reason or "Restock",
        created_by=p_user_id,
    ))
    _audit(
        db, "UPDATE", "medications", medication.id,
        old_data={"stock_quantity": old_quantity},
        new_data={"stock_quantity": medication.stock_quantity, "reason": p_reason},
        user_id=p_user_id,
    )


@procedure("get_top_selling_medications")
def get_top_selling_medications(db: BackendSession, p_limit: int = TOP_SELLING_LIMIT) -> List[Dict]:
    tenant_id = db.require_tenant()
    total = func.sum(SaleItem.quantity)
    rows = db.session.exec(
        select(SaleItem.medication_id, Medication.name, total)  # type: ignore
        .join(Medication, Medication.id == SaleItem.medication_id)  # type: ignore
        .where(SaleItem.tenant_id == tenant_id)
        .group_by(SaleItem.medication_id, Medication.name)  # type: ignore
        .order_by(total.desc(), Medication.name)
        .limit(p_limit)
    ).all()
    return [
        {"medication_id": str(med_id), "medication_name": name, "total_quantity": int(qty or 0)}
        for med_id, name, qty in rows
    ]


@procedure("calculate_profit_and_reorders")
def calculate_profit_and_reorders(db: BackendSession) -> List[Dict]:
    """
    Per medication: revenue, cost of goods sold at the current cost price,
    margin as a percentage of revenue, and whether stock is at or below
    the reorder level.
    """
    tenant_id = db.require_tenant()
    sold = dict(
        (med_id, (qty, revenue))
        for med_id, qty, revenue in db.session.exec(
            select(  # type: ignore
                SaleItem.medication_id,
                func.sum(SaleItem.quantity),
                func.sum(SaleItem.total_price),
            )
            .where(SaleItem.tenant_id == tenant_id)
            .group_by(SaleItem.medication_id)  # type: ignore
        ).all()
    )

    report = []
    for medication in db.session.exec(db.select(Medication).order_by(Medication.name)).all():
        quantity, revenue = sold.get(medication.id, (0, 0))
        total_sales = Decimal(revenue or 0)
        total_cost = Decimal(quantity or 0) * Decimal(medication.cost_price or 0)
        margin = (
            (total_sales - total_cost) / total_sales * 100 if total_sales > 0 else Decimal("0")
        )
        report.append({
            "medication_id": str(medication.id),
            "name": medication.name,
            "total_sales": _money(total_sales),
            "total_cost": _money(total_cost),
            "profit_margin": _money(margin),
            "reorder_suggested": medication.stock_quantity <= medication.reorder_level,
        })
    return report


@procedure("create_sale")
def create_sale(
    db: BackendSession,
    p_items: List[Dict],
    p_patient_id: Optional[UUID] = None,
    p_payment_method: PaymentMethod = PaymentMethod.CASH,
    p_user_id: Optional[UUID] = None,
) -> Dict:
    """Record a sale and deduct stock. All items succeed or none do."""
    if not p_items:
        raise ProcedureError("A sale needs at least one item", ErrorKind.VALIDATION_ERROR)
    if p_patient_id is not None and db.get(Patient, p_patient_id) is None:
        raise ProcedureError("Patient not found", ErrorKind.NOT_FOUND)

    sale = Sale(
        patient_id=p_patient_id,
        payment_method=p_payment_method,
        created_by=p_user_id,
    )
    db.add(sale)
    db.session.flush()

    total = Decimal("0")
    for item in p_items:
        quantity = int(item["quantity"])
        if quantity <= 0:
            raise ProcedureError("Quantity must be greater than zero", ErrorKind.VALIDATION_ERROR)

        medication = db.get(Medication, item["medication_id"])
        if medication is None:
            raise ProcedureError("Medication not found", ErrorKind.NOT_FOUND)
        if medication.stock_quantity < quantity:
            raise ProcedureError(f"Insufficient stock for {medication.name}", ErrorKind.VALIDATION_ERROR)

        line_total = Decimal(medication.unit_price) * quantity
        total += line_total
        db.add(SaleItem(
            sale_id=sale.id,
            medication_id=medication.id,
            quantity=quantity,
            unit_price=medication.unit_price,
            total_price=line_total,
        ))

        medication.stock_quantity -= quantity
        medication.updated_at = utcnow()
        db.add(medication)
        db.add(StockMovement(
            medication_id=medication.id,
            quantity=-quantity,
            reason=f"Direct sale #{sale.id}",
            created_by=p_user_id,
        ))

    sale.total_amount = total
    db.add(sale)
    _audit(
        db, "INSERT", "sales", sale.id,
        new_data={"total_amount": str(total), "items": len(p_items)},
        user_id=p_user_id,
    )
    db.session.flush()

    return {
        "id": str(sale.id),
        "patient_id": str(p_patient_id) if p_patient_id else None,
        "total_amount": _money(total),
        "payment_method": sale.payment_method.value,
        "payment_status": sale.payment_status.value,
        "created_at": sale.created_at.isoformat() if sale.created_at else None,
    }


@procedure("get_stock_movements")
def get_stock_movements(
    db: BackendSession,
    p_medication_id: Optional[UUID] = None,
    p_start_date: Optional[datetime] = None,
    p_end_date: Optional[datetime] = None,
) -> List[Dict]:
    """Stock changes, newest first, optionally narrowed to one medication and a date range."""
    tenant_id = db.require_tenant()
    query = (
        select(StockMovement, Medication.name, Profile.full_name)  # type: ignore
        .join(Medication, Medication.id == StockMovement.medication_id)  # type: ignore
        .outerjoin(Profile, Profile.id == StockMovement.created_by)  # type: ignore
        .where(StockMovement.tenant_id == tenant_id)
    )
    if p_medication_id:
        query = query.where(StockMovement.medication_id == p_medication_id)
    if p_start_date:
        query = query.where(StockMovement.created_at >= _naive_utc(p_start_date))  # type: ignore
    if p_end_date:
        query = query.where(StockMovement.created_at <= _naive_utc(p_end_date))  # type: ignore

    rows = db.session.exec(query.order_by(StockMovement.created_at.desc())).all()  # type: ignore
    return [
        {
            "id": str(movement.id),
            "medication_id": str(movement.medication_id),
            "medication_name": medication_name,
            "quantity": movement.quantity,
            "reason": movement.reason,
            "created_by": full_name,
            "created_at": _iso(movement.created_at),
        }
        for movement, medication_name, full_name in rows
    ]


@procedure("get_sales_report")
def get_sales_report(db: BackendSession, p_since: Optional[datetime] = None) -> List[Dict]:
    tenant_id = db.require_tenant()
    query = (
        select(Sale, Patient.full_name)  # type: ignore
        .outerjoin(Patient, Patient.id == Sale.patient_id)  # type: ignore
        .where(Sale.tenant_id == tenant_id)
    )
    if p_since:
        query = query.where(Sale.created_at >= _naive_utc(p_since))  # type: ignore
    sales = db.session.exec(query.order_by(Sale.created_at.desc())).all()  # type: ignore
    if not sales:
        return []

    items = defaultdict(list)
    for item, medication_name in db.session.exec(
        select(SaleItem, Medication.name)  # type: ignore
        .join(Medication, Medication.id == SaleItem.medication_id)  # type: ignore
        .where(SaleItem.sale_id.in_([sale.id for sale, _ in sales]))  # type: ignore
        .order_by(Medication.name)
    ).all():
        items[item.sale_id].append({
            "medication_name": medication_name,
            "quantity": item.quantity,
            "unit_price": _money(item.unit_price),
            "total_price": _money(item.total_price),
        })

    return [
        {
            "id": str(sale.id),
            "patient_name": patient_name,
            "total_amount": _money(sale.total_amount),
            "payment_method": sale.payment_method.value,
            "created_at": _iso(sale.created_at),
            "items": items[sale.id],
        }
        for sale, patient_name in sales
    ]


@procedure("get_revenue")
def get_revenue(db: BackendSession, p_since: Optional[datetime] = None) -> Dict:
    """Revenue from issued receipts: appointment plus medication cost."""
    query = db.select(Receipt)
    if p_since:
        query = query.where(Receipt.created_at >= _naive_utc(p_since))  # type: ignore
    receipts = db.session.exec(query.order_by(Receipt.created_at.desc())).all()  # type: ignore

    total = Decimal("0")
    rows = []
    for receipt in receipts:
        cost = Decimal(receipt.appointment_cost or 0) + Decimal(receipt.medication_cost or 0)
        total += cost
        rows.append({
            "id": str(receipt.id),
            "appointment_id": str(receipt.appointment_id),
            "sale_id": str(receipt.sale_id) if receipt.sale_id else None,
            "total_cost": _money(cost),
            "created_at": _iso(receipt.created_at),
        })
    return {"total_revenue": _money(total), "receipts": rows}
