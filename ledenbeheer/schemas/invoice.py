from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field


class InvoiceItemIn(BaseModel):
    description: str
    quantity: Decimal = Decimal("1")
    unit_price: Decimal
    vat_rate: Decimal = Decimal("21")


class InvoiceCreate(BaseModel):
    member_id: int | None = None
    company_id: int | None = None
    description: str
    invoice_date: date
    due_date: date
    notes: str | None = None
    items: list[InvoiceItemIn] = Field(default_factory=list)


class InvoiceUpdate(BaseModel):
    member_id: int | None = None
    company_id: int | None = None
    description: str | None = None
    invoice_date: date | None = None
    due_date: date | None = None
    notes: str | None = None


class InvoiceTotals(BaseModel):
    subtotal: Decimal
    vat_amount: Decimal
    total: Decimal
    vat_rate: Decimal
