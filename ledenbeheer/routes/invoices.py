from datetime import date, timedelta
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates
from sqlalchemy.orm import Session

from ..config import TEMPLATES_DIR
from ..db import get_db
from ..errors import MailerError, ValidationFailed
from ..schemas import InvoiceCreate, InvoiceItemIn, InvoiceUpdate
from ..services.invoicing import (
    QUARTER_MONTHS,
    create_invoice,
    delete_invoice,
    list_invoices,
    load_invoice_view,
    mark_invoice_paid,
    mark_overdue_invoices,
    send_invoice,
    update_invoice,
    vat_overview,
    vat_overview_csv,
)
from ..services.mailer import Mailer, get_mailer
from ..services.members import list_companies, list_members
from ..services.money import parse_decimal
from ..session_context import require_admin

router = APIRouter(dependencies=[Depends(require_admin)])
templates = Jinja2Templates(directory=TEMPLATES_DIR)
logger = logging.getLogger(__name__)

DEFAULT_PAYMENT_DAYS = 30


@router.get("/invoices", response_class=HTMLResponse)
def invoices_list(
    request: Request,
    q: str | None = None,
    db: Session = Depends(get_db),
) -> HTMLResponse:
    mark_overdue_invoices(db, date.today())
    return templates.TemplateResponse(
        request, "invoices/list.html", {"rows": list_invoices(db, q), "q": q or ""}
    )


@router.get("/invoices/new", response_class=HTMLResponse)
def invoices_new(request: Request, db: Session = Depends(get_db)) -> HTMLResponse:
    today = date.today()
    form = {
        "member_id": "",
        "company_id": "",
        "description": "",
        "invoice_date": today.isoformat(),
        "due_date": (today + timedelta(days=DEFAULT_PAYMENT_DAYS)).isoformat(),
        "notes": "",
        "items": [{"description": "", "quantity": "1", "unit_price": "", "vat_rate": "21"}],
    }
    return _render_form(request, db, None, form, [])


@router.post("/invoices/new", response_class=HTMLResponse)
async def invoices_create(
    request: Request, db: Session = Depends(get_db)
) -> HTMLResponse:
    form = await request.form()
    payload = _parse_invoice_form(form)
    if payload["errors"]:
        return _render_form(request, db, None, payload["form"], payload["errors"], 400)

    try:
        invoice = create_invoice(db, payload["create"])
    except ValidationFailed as exc:
        db.rollback()
        return _render_form(request, db, None, payload["form"], exc.messages, 400)
    except Exception:
        db.rollback()
        logger.exception("Invoice creation failed")
        return _render_form(
            request, db, None, payload["form"], ["Er ging iets mis"], 500
        )
    return RedirectResponse(url=f"/invoices/{invoice.id}", status_code=303)


@router.get("/invoices/vat", response_class=HTMLResponse)
def invoices_vat(
    request: Request,
    year: int | None = None,
    period: str = "year",
    db: Session = Depends(get_db),
) -> HTMLResponse:
    overview = vat_overview(db, year or date.today().year, period)
    return templates.TemplateResponse(
        request,
        "invoices/vat.html",
        {"overview": overview, "periods": ["year", *QUARTER_MONTHS]},
    )


@router.get("/invoices/vat.csv")
def invoices_vat_csv(
    year: int | None = None,
    period: str = "year",
    db: Session = Depends(get_db),
) -> Response:
    overview = vat_overview(db, year or date.today().year, period)
    names = {view.invoice.id: view.recipient_name for view in list_invoices(db)}
    filename = f"btw-overzicht-{overview.year}-{overview.period}.csv"
    return Response(
        content=vat_overview_csv(overview, names),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.get("/invoices/{invoice_id}", response_class=HTMLResponse)
def invoices_detail(
    invoice_id: int, request: Request, db: Session = Depends(get_db)
) -> HTMLResponse:
    view = load_invoice_view(db, invoice_id)
    if view is None:
        return _not_found(request, invoice_id)
    return templates.TemplateResponse(
        request, "invoices/detail.html", {"view": view, "errors": []}
    )


@router.get("/invoices/{invoice_id}/edit", response_class=HTMLResponse)
def invoices_edit(
    invoice_id: int, request: Request, db: Session = Depends(get_db)
) -> HTMLResponse:
    view = load_invoice_view(db, invoice_id)
    if view is None:
        return _not_found(request, invoice_id)
    invoice = view.invoice
    form = {
        "member_id": str(invoice.member_id or ""),
        "company_id": str(invoice.company_id or ""),
        "description": invoice.description,
        "invoice_date": invoice.invoice_date.isoformat(),
        "due_date": invoice.due_date.isoformat(),
        "notes": invoice.notes or "",
        "items": [
            {
                "description": item.description,
                "quantity": f"{item.quantity.normalize():f}",
                "unit_price": f"{item.unit_price:.2f}",
                "vat_rate": f"{item.vat_rate.normalize():f}",
            }
            for item in view.items
        ],
    }
    return _render_form(request, db, invoice, form, [])


@router.post("/invoices/{invoice_id}/edit", response_class=HTMLResponse)
async def invoices_update(
    invoice_id: int, request: Request, db: Session = Depends(get_db)
) -> HTMLResponse:
    view = load_invoice_view(db, invoice_id)
    if view is None:
        return _not_found(request, invoice_id)

    form = await request.form()
    payload = _parse_invoice_form(form)
    if payload["errors"]:
        return _render_form(
            request, db, view.invoice, payload["form"], payload["errors"], 400
        )

    data = payload["create"]
    try:
        update_invoice(
            db,
            view.invoice,
            InvoiceUpdate(
                member_id=data.member_id,
                company_id=data.company_id,
                description=data.description,
                invoice_date=data.invoice_date,
                due_date=data.due_date,
                notes=data.notes,
            ),
            items=data.items,
        )
    except ValidationFailed as exc:
        db.rollback()
        return _render_form(
            request, db, view.invoice, payload["form"], exc.messages, 400
        )
    return RedirectResponse(url=f"/invoices/{invoice_id}", status_code=303)


@router.post("/invoices/{invoice_id}/paid")
async def invoices_mark_paid(
    invoice_id: int, request: Request, db: Session = Depends(get_db)
) -> Response:
    view = load_invoice_view(db, invoice_id)
    if view is None:
        return _not_found(request, invoice_id)
    form = await request.form()
    mark_invoice_paid(db, view.invoice, parse_decimal(str(form.get("paid_amount", ""))))
    return RedirectResponse(url=f"/invoices/{invoice_id}", status_code=303)


@router.post("/invoices/{invoice_id}/send", response_class=HTMLResponse)
def invoices_send(
    invoice_id: int,
    request: Request,
    reminder: bool = False,
    db: Session = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
) -> HTMLResponse:
    view = load_invoice_view(db, invoice_id)
    if view is None:
        return _not_found(request, invoice_id)
    try:
        send_invoice(db, view, mailer, reminder=reminder)
    except (ValidationFailed, MailerError) as exc:
        db.rollback()
        messages = exc.messages if isinstance(exc, ValidationFailed) else [
            "Versturen van de factuur is mislukt."
        ]
        logger.warning("Sending invoice %s failed: %s", invoice_id, exc)
        return templates.TemplateResponse(
            request,
            "invoices/detail.html",
            {"view": load_invoice_view(db, invoice_id), "errors": messages},
            status_code=400,
        )
    return RedirectResponse(url=f"/invoices/{invoice_id}", status_code=303)


@router.post("/invoices/{invoice_id}/delete")
def invoices_delete(invoice_id: int, db: Session = Depends(get_db)) -> RedirectResponse:
    view = load_invoice_view(db, invoice_id)
    if view is not None:
        delete_invoice(db, view.invoice)
    return RedirectResponse(url="/invoices", status_code=303)


def _render_form(
    request: Request,
    db: Session,
    invoice,
    form: dict,
    errors: list[str],
    status_code: int = 200,
) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "invoices/form.html",
        {
            "invoice": invoice,
            "form": form,
            "errors": errors,
            "members": list_members(db),
            "companies": list_companies(db),
        },
        status_code=status_code,
    )


def _not_found(request: Request, invoice_id: int) -> HTMLResponse:
    return templates.TemplateResponse(
        request,
        "not_found.html",
        {"what": "Factuur", "object_id": invoice_id},
        status_code=404,
    )


def _parse_invoice_form(form) -> dict:
    def value(key: str) -> str:
        return str(form.get(key, "")).strip()

    errors: list[str] = []
    invoice_date = _parse_date(value("invoice_date"))
    due_date = _parse_date(value("due_date"))
    if not invoice_date:
        errors.append("Factuurdatum is verplicht.")
    if not due_date:
        errors.append("Vervaldatum is verplicht.")
    if not value("description"):
        errors.append("Omschrijving is verplicht.")

    member_id = _parse_int(value("member_id"))
    company_id = _parse_int(value("company_id"))
    if not member_id and not company_id:
        errors.append("Kies een lid of een bedrijf.")

    rows = zip(
        form.getlist("item_description"),
        form.getlist("item_quantity"),
        form.getlist("item_unit_price"),
        form.getlist("item_vat_rate"),
    )
    items: list[InvoiceItemIn] = []
    form_items: list[dict] = []
    for position, (description, quantity, unit_price, vat_rate) in enumerate(rows, start=1):
        raw = {
            "description": str(description).strip(),
            "quantity": str(quantity).strip(),
            "unit_price": str(unit_price).strip(),
            "vat_rate": str(vat_rate).strip(),
        }
        if not any(raw.values()):
            continue
        form_items.append(raw)
        parsed_quantity = parse_decimal(raw["quantity"] or "1")
        parsed_price = parse_decimal(raw["unit_price"])
        parsed_rate = parse_decimal(raw["vat_rate"] or "21")
        if parsed_quantity is None or parsed_price is None or parsed_rate is None:
            errors.append(f"Regel {position}: ongeldig getal.")
            continue
        items.append(
            InvoiceItemIn(
                description=raw["description"],
                quantity=parsed_quantity,
                unit_price=parsed_price,
                vat_rate=parsed_rate,
            )
        )

    form_values = {
        "member_id": value("member_id"),
        "company_id": value("company_id"),
        "description": value("description"),
        "invoice_date": value("invoice_date"),
        "due_date": value("due_date"),
        "notes": value("notes"),
        "items": form_items,
    }
    create = None
    if not errors:
        create = InvoiceCreate(
            member_id=member_id,
            company_id=company_id,
            description=value("description"),
            invoice_date=invoice_date,
            due_date=due_date,
            notes=value("notes") or None,
            items=items,
        )
    return {"errors": errors, "form": form_values, "create": create}


def _parse_int(value: str) -> int | None:
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _parse_date(value: str) -> date | None:
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None
