"""
FILE: src/pages/router.py
Server-rendered pages. Access comes from the same policy table as the API;
denial renders a visible state instead of an error body.
"""

from decimal import Decimal
from functools import wraps
from typing import Optional

from fastapi import APIRouter, Depends, Form, status
from fastapi.responses import HTMLResponse, RedirectResponse
from pydantic import ValidationError

from src.core.dependencies import AccessContext, page_access
from src.core.errors import ApiError, ErrorKind, public_message
from src.core.result import Err, Result
from src.core.roles import resolve_role
from src.clinic.services import PatientService, format_money
from src.pages import templates
from src.pharmacy.schemas import MedicationCreate
from src.pharmacy.services import MedicationService, ReportService
from src.shared.models import Role
from src.users.services import ProfileService
import logging

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Pages"], include_in_schema=False)


def denied(result: Err) -> HTMLResponse:
    if result.kind == ErrorKind.UNAUTHENTICATED:
        return HTMLResponse(templates.login_required(), status_code=status.HTTP_401_UNAUTHORIZED)
    if result.kind in (ErrorKind.FORBIDDEN, ErrorKind.PROFILE_NOT_FOUND):
        return HTMLResponse(templates.access_denied(), status_code=status.HTTP_403_FORBIDDEN)
    return HTMLResponse(
        templates.error_page(public_message(result.kind, result.message)),
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def page_boundary(page):
    """Render faults inside a page as an inline error instead of propagating."""
    @wraps(page)
    async def wrapper(*args, **kwargs):
        try:
            return await page(*args, **kwargs)
        except ApiError as e:
            logger.warning(f"Page {page.__name__} failed: {e.kind.value} {e.message}")
            return HTMLResponse(
                templates.error_page(public_message(e.kind, e.message)),
                status_code=e.status_code,
            )
        except Exception:
            logger.exception(f"Page {page.__name__} crashed")
            return HTMLResponse(
                templates.error_page(),
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )
    return wrapper


# Patients

@router.get("/patients", response_class=HTMLResponse)
@page_boundary
async def patients_page(
    search: Optional[str] = None,
    access: Result[AccessContext] = Depends(page_access("page.patients")),
):
    if isinstance(access, Err):
        return denied(access)
    patients = await PatientService.list_patients(access.value.db, search=search, limit=200)
    body = templates.table(
        ["Name", "Phone", "Date of birth", "Gender"],
        [(p.full_name, p.phone_number, p.date_of_birth, p.gender) for p in patients],
        empty="No patients yet.",
    )
    return HTMLResponse(templates.layout("Patients", body))


# Pharmacy inventory

@router.get("/pharmacy/inventory", response_class=HTMLResponse)
@page_boundary
async def inventory_page(
    access: Result[AccessContext] = Depends(page_access("page.inventory")),
):
    if isinstance(access, Err):
        return denied(access)
    medications, total = await MedicationService.list_medications(access.value.db, limit=200)
    body = (
        f'<p>{total} medications. <a href="/pharmacy/inventory/add">Add medication</a></p>'
        + templates.table(
            ["Name", "Form", "Strength", "Category", "Unit price", "Stock", "Reorder level"],
            [
                (
                    m.name, m.dosage_form, m.strength, m.category,
                    format_money(m.unit_price), m.stock_quantity, m.reorder_level,
                )
                for m in medications
            ],
            empty="No medications yet.",
        )
    )
    return HTMLResponse(templates.layout("Inventory", body))


@router.get("/pharmacy/inventory/add", response_class=HTMLResponse)
@page_boundary
async def add_medication_page(
    access: Result[AccessContext] = Depends(page_access("page.inventory_add")),
):
    if isinstance(access, Err):
        return denied(access)
    return HTMLResponse(templates.layout("Add medication", templates.medication_form()))


@router.post("/pharmacy/inventory/add", response_class=HTMLResponse)
@page_boundary
async def add_medication_submit(
    name: Optional[str] = Form(None),
    dosage_form: Optional[str] = Form(None),
    strength: Optional[str] = Form(None),
    category: Optional[str] = Form(None),
    unit_price: Optional[str] = Form(None),
    cost_price: Optional[str] = Form(None),
    stock_quantity: Optional[str] = Form(None),
    reorder_level: Optional[str] = Form(None),
    access: Result[AccessContext] = Depends(page_access("page.inventory_add")),
):
    if isinstance(access, Err):
        return denied(access)
    ctx = access.value

    values = {
        "name": name,
        "dosage_form": dosage_form,
        "strength": strength,
        "category": category,
        "unit_price": unit_price,
        "cost_price": cost_price,
        "stock_quantity": stock_quantity,
        "reorder_level": reorder_level,
    }
    try:
        req = MedicationCreate(**{k: v for k, v in values.items() if v not in (None, "")})
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first.get("loc", ()))
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
        return HTMLResponse(
            templates.layout("Add medication", templates.medication_form(values, error=message)),
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    await MedicationService.create_medication(req, ctx.db, ctx.principal_id)
    return RedirectResponse("/pharmacy/inventory", status_code=status.HTTP_303_SEE_OTHER)


# Pharmacy reports

@router.get("/pharmacy/reports", response_class=HTMLResponse)
@page_boundary
async def reports_page(
    access: Result[AccessContext] = Depends(page_access("page.reports")),
):
    if isinstance(access, Err):
        return denied(access)
    db = access.value.db

    top = (await ReportService.top_selling(db)).unwrap()
    profit = (await ReportService.profit_and_reorders(db)).unwrap()

    body = "<h2>Top-selling medications</h2>" + templates.table(
        ["Medication", "Units sold"],
        [(row["medication_name"], row["total_quantity"]) for row in top],
        empty="No sales recorded.",
    )
    body += "<h2>Profit &amp; reorders</h2>" + templates.table(
        ["Medication", "Sales", "Cost", "Margin %", "Reorder"],
        [
            (
                row["name"],
                format_money(Decimal(str(row["total_sales"]))),
                format_money(Decimal(str(row["total_cost"]))),
                row["profit_margin"],
                "Yes" if row["reorder_suggested"] else "No",
            )
            for row in profit
        ],
        empty="No medications.",
    )
    return HTMLResponse(templates.layout("Pharmacy reports", body))


# User management

@router.get("/settings/users", response_class=HTMLResponse)
@page_boundary
async def user_settings_page(
    access: Result[AccessContext] = Depends(page_access("page.user_settings")),
):
    if isinstance(access, Err):
        return denied(access)
    ctx = access.value

    profiles, _ = await ProfileService.list_profiles(ctx.db, limit=200)

    # Re-check against the live profile row right before rendering
    live_role = resolve_role(ctx.principal_id, ctx.db.session)
    if isinstance(live_role, Err):
        return denied(live_role)
    if live_role.value != Role.ADMIN:
        logger.warning(f"User settings denied on re-check: {ctx.principal_id} is {live_role.value.value}")
        return denied(Err(ErrorKind.FORBIDDEN))

    body = templates.table(
        ["Name", "Email", "Phone", "Role"],
        [(p.full_name, p.email, p.phone_number, p.role.value) for p in profiles],
        empty="No users.",
    )
    return HTMLResponse(templates.layout("Users", body))
