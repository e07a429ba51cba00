from datetime import date, datetime
from enum import Enum

import sqlalchemy as sa
from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, enum_type, utcnow


class SegmentEnum(str, Enum):
    BOARD_MEMBER = "board_member"
    ACTIVE_MEMBER = "active_member"
    AMBASSADOR = "ambassador"
    DONOR = "donor"
    COUNCIL_MEMBER = "council_member"


SEGMENT_LABELS = {
    SegmentEnum.BOARD_MEMBER: "Bestuurslid",
    SegmentEnum.ACTIVE_MEMBER: "Actief lid",
    SegmentEnum.AMBASSADOR: "Ambassadeur",
    SegmentEnum.DONOR: "Donateur",
    SegmentEnum.COUNCIL_MEMBER: "Raadslid",
}


class Member(Base):
    __tablename__ = "members"
    __table_args__ = (
        Index("ix_members_last_name", "last_name"),
        Index("ix_members_company_id", "company_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    company_id: Mapped[int | None] = mapped_column(ForeignKey("companies.id"))
    auth_user_id: Mapped[str | None] = mapped_column(String(64), unique=True)
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))
    phone: Mapped[str | None] = mapped_column(String(50))
    mobile: Mapped[str | None] = mapped_column(String(50))
    address: Mapped[str | None] = mapped_column(String(255))
    postal_code: Mapped[str | None] = mapped_column(String(20))
    city: Mapped[str | None] = mapped_column(String(100))
    country: Mapped[str | None] = mapped_column(String(100))
    personal_url: Mapped[str | None] = mapped_column(String(255))
    bank_account: Mapped[str | None] = mapped_column(String(50))
    notes: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    receives_mail: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    member_since: Mapped[date | None] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow
    )

    segments: Mapped[list["MemberSegment"]] = relationship(
        "MemberSegment", cascade="all, delete-orphan", lazy="selectin"
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    @property
    def segment_values(self) -> set[SegmentEnum]:
        return {SegmentEnum(row.segment) for row in self.segments}


class MemberSegment(Base):
    __tablename__ = "member_segments"
    __table_args__ = (
        sa.UniqueConstraint("member_id", "segment", name="uq_member_segments"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    member_id: Mapped[int] = mapped_column(
        ForeignKey("members.id", ondelete="CASCADE"), nullable=False
    )
    segment: Mapped[SegmentEnum] = mapped_column(
        enum_type(SegmentEnum),
        nullable=False,
    )
