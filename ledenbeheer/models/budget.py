from datetime import datetime
from decimal import Decimal
from enum import Enum

import sqlalchemy as sa
from sqlalchemy import DateTime, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, enum_type, utcnow


class BudgetSectionEnum(str, Enum):
    INCOME = "income"
    EXPENSES = "expenses"
    ASSETS = "assets"
    LIABILITIES = "liabilities"


class InventoryCategoryEnum(str, Enum):
    ASSETS = "bezittingen"
    DEBTS = "schulden"
    RIGHTS = "rechten"
    COMMITMENTS = "verplichtingen"


class BudgetItem(Base):
    __tablename__ = "budget"
    __table_args__ = (sa.Index("ix_budget_fiscal_year", "fiscal_year"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    section: Mapped[BudgetSectionEnum] = mapped_column(
        enum_type(BudgetSectionEnum), nullable=False
    )
    category: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    budgeted_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00")
    )
    realized_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00")
    )
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )


class InventoryItem(Base):
    __tablename__ = "annual_report_inventory"
    __table_args__ = (sa.Index("ix_inventory_fiscal_year", "fiscal_year"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    fiscal_year: Mapped[int] = mapped_column(Integer, nullable=False)
    category: Mapped[InventoryCategoryEnum] = mapped_column(
        enum_type(InventoryCategoryEnum), nullable=False
    )
    type: Mapped[str] = mapped_column(String(64), nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal("0.00")
    )
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )
