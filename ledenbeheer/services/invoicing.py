"""Invoice numbering, totals and lifecycle."""

import csv
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
import io
import logging
from typing import Iterable

from sqlalchemy import delete, select, text, update
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import ValidationFailed
from ..models import (
    Company,
    Invoice,
    InvoiceItem,
    InvoiceStatusEnum,
    Member,
)
from ..models.base import utcnow
from ..schemas import InvoiceCreate, InvoiceItemIn, InvoiceTotals, InvoiceUpdate
from .mailer import Mailer, render_email
from .money import money, rounded_rate, to_decimal

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")
QUARTER_MONTHS = {
    "Q1": (1, 3),
    "Q2": (4, 6),
    "Q3": (7, 9),
    "Q4": (10, 12),
}


@dataclass
class InvoiceView:
    invoice: Invoice
    items: list[InvoiceItem]
    member: Member | None = None
    company: Company | None = None

    @property
    def recipient_name(self) -> str:
        if self.member:
            return self.member.full_name
        if self.company:
            return self.company.name
        return ""

    @property
    def recipient_email(self) -> str | None:
        if self.member:
            return self.member.email
        if self.company:
            return self.company.email
        return None


@dataclass
class VatBucket:
    subtotal: Decimal = Decimal("0.00")
    vat: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")

    def add(self, invoice: Invoice) -> None:
        self.subtotal += to_decimal(invoice.subtotal)
        self.vat += to_decimal(invoice.vat_amount)
        self.total += to_decimal(invoice.total)


@dataclass
class VatOverview:
    year: int
    period: str
    invoices: list[Invoice] = field(default_factory=list)
    by_rate: dict[int, VatBucket] = field(default_factory=dict)
    totals: VatBucket = field(default_factory=VatBucket)


def generate_invoice_number(db: Session, year: int) -> tuple[str, int, int]:
    """Allocate the next invoice number for ``year``.

    The increment happens in a single UPDATE on the per-year counter row, so
    concurrent transactions serialise on that row instead of racing on a
    read-then-write.
    """
    now = utcnow()
    db.execute(
        text(
            "INSERT INTO invoice_sequences (year, last_number, updated_at) "
            "VALUES (:year, 0, :updated_at) ON CONFLICT (year) DO NOTHING"
        ),
        {"year": year, "updated_at": now},
    )
    db.execute(
        text(
            "UPDATE invoice_sequences "
            "SET last_number = last_number + 1, updated_at = :updated_at "
            "WHERE year = :year"
        ),
        {"year": year, "updated_at": now},
    )
    sequence = db.execute(
        text("SELECT last_number FROM invoice_sequences WHERE year = :year"),
        {"year": year},
    ).scalar_one()
    return f"{year}-{sequence}", year, sequence


def line_total(item: InvoiceItemIn) -> Decimal:
    gross = (
        to_decimal(item.quantity)
        * to_decimal(item.unit_price)
        * (1 + to_decimal(item.vat_rate) / HUNDRED)
    )
    return money(gross)


def compute_totals(items: Iterable[InvoiceItemIn]) -> InvoiceTotals:
    subtotal = Decimal("0")
    vat_amount = Decimal("0")
    for item in items:
        net = to_decimal(item.quantity) * to_decimal(item.unit_price)
        subtotal += net
        vat_amount += net * to_decimal(item.vat_rate) / HUNDRED

    if subtotal > 0:
        avg_rate = vat_amount / subtotal * HUNDRED
    else:
        avg_rate = Decimal(settings.default_vat_rate)

    rounded_subtotal = money(subtotal)
    rounded_vat = money(vat_amount)
    return InvoiceTotals(
        subtotal=rounded_subtotal,
        vat_amount=rounded_vat,
        total=rounded_subtotal + rounded_vat,
        vat_rate=money(avg_rate),
    )


def _apply_totals(invoice: Invoice, totals: InvoiceTotals) -> None:
    invoice.subtotal = totals.subtotal
    invoice.vat_amount = totals.vat_amount
    invoice.total = totals.total
    invoice.vat_rate = totals.vat_rate


def _insert_items(db: Session, invoice_id: int, items: list[InvoiceItemIn]) -> None:
    for index, item in enumerate(items):
        db.add(
            InvoiceItem(
                invoice_id=invoice_id,
                description=item.description,
                quantity=to_decimal(item.quantity),
                unit_price=money(item.unit_price),
                vat_rate=to_decimal(item.vat_rate),
                total=line_total(item),
                sort_order=index,
            )
        )


def _validate(data: InvoiceCreate) -> None:
    errors: list[str] = []
    if not data.description.strip():
        errors.append("Omschrijving is verplicht.")
    if data.due_date < data.invoice_date:
        errors.append("Vervaldatum ligt voor de factuurdatum.")
    for position, item in enumerate(data.items, start=1):
        if not item.description.strip():
            errors.append(f"Regel {position}: omschrijving is verplicht.")
        if item.quantity <= 0:
            errors.append(f"Regel {position}: aantal moet groter zijn dan 0.")
    if errors:
        raise ValidationFailed(errors)


def create_invoice(db: Session, data: InvoiceCreate) -> Invoice:
    _validate(data)
    number, year, sequence = generate_invoice_number(db, data.invoice_date.year)
    totals = compute_totals(data.items)
    invoice = Invoice(
        invoice_number=number,
        invoice_year=year,
        invoice_sequence=sequence,
        member_id=data.member_id,
        company_id=data.company_id,
        description=data.description.strip(),
        invoice_date=data.invoice_date,
        due_date=data.due_date,
        notes=data.notes or None,
        status=InvoiceStatusEnum.DRAFT.value,
        paid_amount=Decimal("0.00"),
        reminder_count=0,
    )
    _apply_totals(invoice, totals)
    db.add(invoice)
    db.flush()
    _insert_items(db, invoice.id, data.items)
    db.commit()
    db.refresh(invoice)
    logger.info("Created invoice %s (total %s)", invoice.invoice_number, invoice.total)
    return invoice


def update_invoice(
    db: Session,
    invoice: Invoice,
    data: InvoiceUpdate,
    items: list[InvoiceItemIn] | None = None,
) -> Invoice:
    for key, value in data.model_dump(exclude_unset=True).items():
        setattr(invoice, key, value)
    if invoice.due_date < invoice.invoice_date:
        raise ValidationFailed("Vervaldatum ligt voor de factuurdatum.")

    if items is not None:
        _apply_totals(invoice, compute_totals(items))
        db.execute(delete(InvoiceItem).where(InvoiceItem.invoice_id == invoice.id))
        _insert_items(db, invoice.id, items)

    invoice.updated_at = utcnow()
    db.commit()
    db.refresh(invoice)
    return invoice


def mark_invoice_paid(
    db: Session, invoice: Invoice, paid_amount: Decimal | None = None
) -> Invoice:
    invoice.status = InvoiceStatusEnum.PAID.value
    invoice.paid_amount = money(paid_amount if paid_amount is not None else invoice.total)
    invoice.paid_at = utcnow()
    db.commit()
    return invoice


def delete_invoice(db: Session, invoice: Invoice) -> None:
    db.execute(delete(InvoiceItem).where(InvoiceItem.invoice_id == invoice.id))
    db.delete(invoice)
    db.commit()


def list_invoices(db: Session, q: str | None = None) -> list[InvoiceView]:
    query = select(Invoice).order_by(Invoice.invoice_date.desc(), Invoice.id.desc())
    if q:
        query = query.where(
            Invoice.invoice_number.ilike(f"%{q}%") | Invoice.description.ilike(f"%{q}%")
        )
    invoices = db.execute(query).scalars().all()
    members = _members_by_id(db, {inv.member_id for inv in invoices if inv.member_id})
    companies = _companies_by_id(
        db, {inv.company_id for inv in invoices if inv.company_id}
    )
    return [
        InvoiceView(
            invoice=inv,
            items=[],
            member=members.get(inv.member_id),
            company=companies.get(inv.company_id),
        )
        for inv in invoices
    ]


def load_invoice_view(db: Session, invoice_id: int) -> InvoiceView | None:
    invoice = db.get(Invoice, invoice_id)
    if invoice is None:
        return None
    items = (
        db.execute(
            select(InvoiceItem)
            .where(InvoiceItem.invoice_id == invoice.id)
            .order_by(InvoiceItem.sort_order)
        )
        .scalars()
        .all()
    )
    member = db.get(Member, invoice.member_id) if invoice.member_id else None
    company = db.get(Company, invoice.company_id) if invoice.company_id else None
    return InvoiceView(invoice=invoice, items=list(items), member=member, company=company)


def _members_by_id(db: Session, ids: set[int]) -> dict[int, Member]:
    if not ids:
        return {}
    rows = db.execute(select(Member).where(Member.id.in_(ids))).scalars()
    return {row.id: row for row in rows}


def _companies_by_id(db: Session, ids: set[int]) -> dict[int, Company]:
    if not ids:
        return {}
    rows = db.execute(select(Company).where(Company.id.in_(ids))).scalars()
    return {row.id: row for row in rows}


def reminder_subject(invoice_number: str, reminder_number: int) -> str:
    if reminder_number == 1:
        return f"Betalingsherinnering: Factuur {invoice_number}"
    return f"{reminder_number}e herinnering: Factuur {invoice_number}"


def send_invoice(
    db: Session, view: InvoiceView, mailer: Mailer, reminder: bool = False
) -> Invoice:
    invoice = view.invoice
    recipient = view.recipient_email
    if not recipient:
        raise ValidationFailed("Klant heeft geen e-mailadres.")

    reminder_number = invoice.reminder_count + 1 if reminder else 0
    if reminder:
        subject = reminder_subject(invoice.invoice_number, reminder_number)
    else:
        subject = f"Factuur {invoice.invoice_number}"

    html = render_email(
        "email/invoice.html",
        {
            "view": view,
            "invoice": invoice,
            "items": view.items,
            "reminder_number": reminder_number,
        },
    )
    mailer.send(to=recipient, subject=subject, html=html)

    now = utcnow()
    if reminder:
        invoice.reminder_count = reminder_number
        invoice.last_reminder_at = now
    else:
        invoice.sent_at = now
        if _status_value(invoice.status) == InvoiceStatusEnum.DRAFT.value:
            invoice.status = InvoiceStatusEnum.SENT.value
    db.commit()
    logger.info("Sent %s for invoice %s", "reminder" if reminder else "invoice", invoice.invoice_number)
    return invoice


def mark_overdue_invoices(db: Session, today: date) -> int:
    result = db.execute(
        update(Invoice)
        .where(
            Invoice.status == InvoiceStatusEnum.SENT.value,
            Invoice.due_date < today,
        )
        .values(status=InvoiceStatusEnum.OVERDUE.value, updated_at=utcnow())
    )
    db.commit()
    return result.rowcount or 0


def vat_overview(db: Session, year: int, period: str = "year") -> VatOverview:
    start_month, end_month = QUARTER_MONTHS.get(period, (1, 12))
    start = date(year, start_month, 1)
    end = date(year + 1, 1, 1) if end_month == 12 else date(year, end_month + 1, 1)
    invoices = (
        db.execute(
            select(Invoice)
            .where(
                Invoice.status != InvoiceStatusEnum.DRAFT.value,
                Invoice.invoice_date >= start,
                Invoice.invoice_date < end,
            )
            .order_by(Invoice.invoice_date, Invoice.invoice_sequence)
        )
        .scalars()
        .all()
    )
    overview = VatOverview(year=year, period=period if period in QUARTER_MONTHS else "year")
    for invoice in invoices:
        rate = rounded_rate(invoice.vat_rate)
        overview.by_rate.setdefault(rate, VatBucket()).add(invoice)
        overview.totals.add(invoice)
        overview.invoices.append(invoice)
    return overview


def vat_overview_csv(overview: VatOverview, names: dict[int, str]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=";", lineterminator="\n")
    writer.writerow(
        ["Factuurnummer", "Datum", "Klant", "Subtotaal", "BTW %", "BTW bedrag", "Totaal"]
    )
    for invoice in overview.invoices:
        writer.writerow(
            [
                invoice.invoice_number,
                invoice.invoice_date.isoformat(),
                names.get(invoice.id, ""),
                f"{money(invoice.subtotal):.2f}",
                rounded_rate(invoice.vat_rate),
                f"{money(invoice.vat_amount):.2f}",
                f"{money(invoice.total):.2f}",
            ]
        )
    return buffer.getvalue()


def _status_value(value) -> str:
    if value is None:
        return ""
    return value.value if hasattr(value, "value") else str(value)
