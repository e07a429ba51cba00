from datetime import datetime
from decimal import Decimal

import sqlalchemy as sa
from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, enum_type, utcnow
from .contribution import PaymentStatusEnum


class Donation(Base):
    __tablename__ = "donations"
    __table_args__ = (
        sa.Index("ix_donations_mollie_payment_id", "mollie_payment_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    member_id: Mapped[int | None] = mapped_column(ForeignKey("members.id"))
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    description: Mapped[str | None] = mapped_column(String(255))
    status: Mapped[PaymentStatusEnum] = mapped_column(
        enum_type(PaymentStatusEnum),
        nullable=False,
        default=PaymentStatusEnum.PENDING,
    )
    mollie_payment_id: Mapped[str | None] = mapped_column(String(64))
    mollie_status: Mapped[str | None] = mapped_column(String(32))
    paid_at: Mapped[datetime | None] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )
