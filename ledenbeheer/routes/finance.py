from datetime import date
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from ..config import TEMPLATES_DIR
from ..db import get_db
from ..errors import ValidationFailed
from ..models import (
    BudgetItem,
    BudgetSectionEnum,
    ExpenseTypeEnum,
    IncomeTypeEnum,
    InventoryItem,
)
from ..services.budget import (
    BUDGET_CATEGORIES,
    INVENTORY_TYPES,
    budget_overview,
    create_inventory_item,
    delete_budget_item,
    delete_inventory_item,
    list_inventory,
    save_budget,
    update_budget_item,
    update_inventory_item,
)
from ..services.ledger import (
    create_expense,
    create_income,
    list_expenses,
    list_income,
    summarize_year,
)
from ..services.money import parse_decimal
from ..session_context import require_admin

router = APIRouter(dependencies=[Depends(require_admin)])
templates = Jinja2Templates(directory=TEMPLATES_DIR)
logger = logging.getLogger(__name__)


@router.get("/finance", response_class=HTMLResponse)
def finance_summary(
    request: Request, year: int | None = None, db: Session = Depends(get_db)
) -> HTMLResponse:
    summary = summarize_year(db, year or date.today().year)
    return templates.TemplateResponse(
        request, "finance/summary.html", {"summary": summary}
    )


@router.get("/finance/income", response_class=HTMLResponse)
def income_list(
    request: Request, year: int | None = None, db: Session = Depends(get_db)
) -> HTMLResponse:
    return _render_income(request, db, year, [], {})


@router.post("/finance/income", response_class=HTMLResponse)
async def income_create(
    request: Request, db: Session = Depends(get_db)
) -> HTMLResponse:
    form = await request.form()
    values = {key: str(value).strip() for key, value in form.items()}
    try:
        create_income(
            db,
            description=values.get("description", ""),
            amount=parse_decimal(values.get("amount", "")),
            income_date=_parse_date(values.get("date", "")),
            income_type=values.get("type") or IncomeTypeEnum.OTHER.value,
            notes=values.get("notes") or None,
        )
    except ValidationFailed as exc:
        db.rollback()
        return _render_income(request, db, None, exc.messages, values, 400)
    return RedirectResponse(url="/finance/income", status_code=303)


@router.get("/finance/expenses", response_class=HTMLResponse)
def expenses_list(
    request: Request, year: int | None = None, db: Session = Depends(get_db)
) -> HTMLResponse:
    return _render_expenses(request, db, year, [], {})


@router.post("/finance/expenses", response_class=HTMLResponse)
async def expenses_create(
    request: Request, db: Session = Depends(get_db)
) -> HTMLResponse:
    form = await request.form()
    values = {key: str(value).strip() for key, value in form.items()}
    try:
        create_expense(
            db,
            description=values.get("description", ""),
            amount=parse_decimal(values.get("amount", "")),
            expense_date=_parse_date(values.get("date", "")),
            expense_type=values.get("type") or ExpenseTypeEnum.OTHER.value,
            category=values.get("category") or None,
            vat_rate=parse_decimal(values.get("vat_rate", "")),
            receipt_url=values.get("receipt_url") or None,
            notes=values.get("notes") or None,
        )
    except ValidationFailed as exc:
        db.rollback()
        return _render_expenses(request, db, None, exc.messages, values, 400)
    return RedirectResponse(url="/finance/expenses", status_code=303)


@router.get("/finance/budget", response_class=HTMLResponse)
def budget_page(
    request: Request, year: int | None = None, db: Session = Depends(get_db)
) -> HTMLResponse:
    return _render_budget(request, db, year or date.today().year, [])


@router.post("/finance/budget", response_class=HTMLResponse)
async def budget_save(
    request: Request, db: Session = Depends(get_db)
) -> HTMLResponse:
    form = await request.form()
    year = _parse_year(str(form.get("year", "")))
    amounts = {
        section: {
            category: parse_decimal(str(form.get(f"{section.value}_{category}", "")))
            for category in categories
        }
        for section, categories in BUDGET_CATEGORIES.items()
    }
    try:
        save_budget(
            db,
            year,
            amounts[BudgetSectionEnum.INCOME],
            amounts[BudgetSectionEnum.EXPENSES],
        )
    except ValidationFailed as exc:
        db.rollback()
        return _render_budget(request, db, year, exc.messages, 400)
    return RedirectResponse(url=f"/finance/budget?year={year}", status_code=303)


@router.post("/finance/budget/{item_id}", response_class=HTMLResponse)
async def budget_update_item(
    item_id: int, request: Request, db: Session = Depends(get_db)
) -> HTMLResponse:
    item = db.get(BudgetItem, item_id)
    if item is None:
        return RedirectResponse(url="/finance/budget", status_code=303)
    form = await request.form()
    values = {key: str(value).strip() for key, value in form.items()}
    try:
        update_budget_item(
            db,
            item,
            budgeted_amount=parse_decimal(values.get("budgeted_amount", "")),
            realized_amount=parse_decimal(values.get("realized_amount", "")),
            notes=values.get("notes") or None,
        )
    except ValidationFailed as exc:
        db.rollback()
        return _render_budget(request, db, item.fiscal_year, exc.messages, 400)
    return RedirectResponse(url=f"/finance/budget?year={item.fiscal_year}", status_code=303)


@router.post("/finance/budget/{item_id}/delete")
def budget_delete_item(item_id: int, db: Session = Depends(get_db)) -> RedirectResponse:
    item = db.get(BudgetItem, item_id)
    if item is None:
        return RedirectResponse(url="/finance/budget", status_code=303)
    year = item.fiscal_year
    delete_budget_item(db, item)
    return RedirectResponse(url=f"/finance/budget?year={year}", status_code=303)


@router.get("/finance/inventory", response_class=HTMLResponse)
def inventory_page(
    request: Request, year: int | None = None, db: Session = Depends(get_db)
) -> HTMLResponse:
    return _render_inventory(request, db, year or date.today().year, [], {})


@router.post("/finance/inventory", response_class=HTMLResponse)
async def inventory_create(
    request: Request, db: Session = Depends(get_db)
) -> HTMLResponse:
    form = await request.form()
    values = {key: str(value).strip() for key, value in form.items()}
    year = _parse_year(values.get("year", ""))
    try:
        create_inventory_item(
            db,
            fiscal_year=year,
            category=values.get("category", ""),
            item_type=values.get("type", ""),
            description=values.get("description") or None,
            amount=parse_decimal(values.get("amount", "")),
            notes=values.get("notes") or None,
        )
    except ValidationFailed as exc:
        db.rollback()
        return _render_inventory(request, db, year, exc.messages, values, 400)
    return RedirectResponse(url=f"/finance/inventory?year={year}", status_code=303)


@router.post("/finance/inventory/{item_id}", response_class=HTMLResponse)
async def inventory_update_item(
    item_id: int, request: Request, db: Session = Depends(get_db)
) -> HTMLResponse:
    item = db.get(InventoryItem, item_id)
    if item is None:
        return RedirectResponse(url="/finance/inventory", status_code=303)
    form = await request.form()
    values = {key: str(value).strip() for key, value in form.items()}
    try:
        update_inventory_item(
            db,
            item,
            description=values.get("description") or None,
            amount=parse_decimal(values.get("amount", "")),
            notes=values.get("notes") or None,
        )
    except ValidationFailed as exc:
        db.rollback()
        return _render_inventory(request, db, item.fiscal_year, exc.messages, values, 400)
    return RedirectResponse(url=f"/finance/inventory?year={item.fiscal_year}", status_code=303)


@router.post("/finance/inventory/{item_id}/delete")
def inventory_delete_item(item_id: int, db: Session = Depends(get_db)) -> RedirectResponse:
    item = db.get(InventoryItem, item_id)
    if item is None:
        return RedirectResponse(url="/finance/inventory", status_code=303)
    year = item.fiscal_year
    delete_inventory_item(db, item)
    return RedirectResponse(url=f"/finance/inventory?year={year}", status_code=303)


def _render_income(request, db, year, errors, form, status_code=200) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "finance/income.html",
        {
            "rows": list_income(db, year),
            "types": list(IncomeTypeEnum),
            "year": year,
            "errors": errors,
            "form": form,
        },
        status_code=status_code,
    )


def _render_expenses(request, db, year, errors, form, status_code=200) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "finance/expenses.html",
        {
            "rows": list_expenses(db, year),
            "types": list(ExpenseTypeEnum),
            "year": year,
            "errors": errors,
            "form": form,
        },
        status_code=status_code,
    )


def _parse_date(value: str) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def _render_budget(request, db, year, errors, status_code=200) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "finance/budget.html",
        {
            "overview": budget_overview(db, year),
            "categories": BUDGET_CATEGORIES,
            "inventory_types": INVENTORY_TYPES,
            "errors": errors,
        },
        status_code=status_code,
    )


def _render_inventory(request, db, year, errors, form, status_code=200) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "finance/inventory.html",
        {
            "year": year,
            "rows": list_inventory(db, year),
            "inventory_types": INVENTORY_TYPES,
            "errors": errors,
            "form": form,
        },
        status_code=status_code,
    )


def _parse_year(value: str) -> int:
    value = value.strip()
    return int(value) if value.isdigit() else date.today().year
