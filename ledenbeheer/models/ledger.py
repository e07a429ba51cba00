import datetime as dt
from decimal import Decimal
from enum import Enum

import sqlalchemy as sa
from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, enum_type, utcnow


class IncomeTypeEnum(str, Enum):
    MEMBERSHIP = "membership"
    DONATION = "donation"
    OTHER = "other"


class ExpenseTypeEnum(str, Enum):
    INVOICE = "invoice"
    EXPENSE_CLAIM = "expense_claim"
    OTHER = "other"


class Income(Base):
    __tablename__ = "income"
    __table_args__ = (
        sa.UniqueConstraint("source_type", "source_id", name="uq_income_source"),
        sa.Index("ix_income_date", "date"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    type: Mapped[IncomeTypeEnum] = mapped_column(
        enum_type(IncomeTypeEnum),
        nullable=False,
    )
    member_id: Mapped[int | None] = mapped_column(ForeignKey("members.id"))
    company_id: Mapped[int | None] = mapped_column(ForeignKey("companies.id"))
    notes: Mapped[str | None] = mapped_column(Text)
    source_type: Mapped[str | None] = mapped_column(String(32))
    source_id: Mapped[int | None] = mapped_column(Integer)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )


class Expense(Base):
    __tablename__ = "expenses"
    __table_args__ = (sa.Index("ix_expenses_date", "date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    type: Mapped[ExpenseTypeEnum] = mapped_column(
        enum_type(ExpenseTypeEnum),
        nullable=False,
    )
    category: Mapped[str | None] = mapped_column(String(100))
    vat_rate: Mapped[Decimal | None] = mapped_column(Numeric(5, 2))
    member_id: Mapped[int | None] = mapped_column(ForeignKey("members.id"))
    company_id: Mapped[int | None] = mapped_column(ForeignKey("companies.id"))
    receipt_url: Mapped[str | None] = mapped_column(String(500))
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[dt.datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[dt.datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )
