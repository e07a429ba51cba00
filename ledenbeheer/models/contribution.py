from datetime import datetime
from decimal import Decimal
from enum import Enum

import sqlalchemy as sa
from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, enum_type, utcnow


class PaymentStatusEnum(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


class Contribution(Base):
    __tablename__ = "contributions"
    __table_args__ = (
        sa.UniqueConstraint(
            "member_id", "contribution_year", name="uq_contributions_member_year"
        ),
        sa.Index("ix_contributions_year", "contribution_year"),
        sa.Index("ix_contributions_mollie_payment_id", "mollie_payment_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    member_id: Mapped[int] = mapped_column(ForeignKey("members.id"), nullable=False)
    contribution_year: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    status: Mapped[PaymentStatusEnum] = mapped_column(
        enum_type(PaymentStatusEnum),
        nullable=False,
        default=PaymentStatusEnum.PENDING,
    )
    mollie_payment_id: Mapped[str | None] = mapped_column(String(64))
    paid_at: Mapped[datetime | None] = mapped_column(DateTime)
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )
