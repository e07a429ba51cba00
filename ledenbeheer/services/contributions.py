from dataclasses import dataclass
from decimal import Decimal
import logging

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import (
    DuplicateRecordError,
    MailerError,
    ValidationFailed,
    translate_integrity_error,
)
from ..models import Contribution, IncomeTypeEnum, Member, PaymentStatusEnum
from ..models.base import utcnow
from .ledger import SOURCE_CONTRIBUTION, record_income_once
from .mailer import Mailer, render_email
from .mailing import MailingResult
from .money import money

logger = logging.getLogger(__name__)


@dataclass
class ContributionRow:
    contribution: Contribution
    member: Member | None


def create_contribution(
    db: Session,
    *,
    member_id: int,
    year: int,
    amount: Decimal | None,
    notes: str | None = None,
) -> Contribution:
    if amount is None or amount <= 0:
        raise ValidationFailed("Bedrag moet groter zijn dan 0.")
    contribution = Contribution(
        member_id=member_id,
        contribution_year=year,
        amount=money(amount),
        status=PaymentStatusEnum.PENDING.value,
        notes=notes,
    )
    db.add(contribution)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        translated = translate_integrity_error(exc)
        if translated is exc:
            raise
        raise translated from exc
    return contribution


def create_contributions_for_year(db: Session, year: int, amount: Decimal) -> int:
    """Create a pending contribution for every active member without one."""
    existing = set(
        db.execute(
            select(Contribution.member_id).where(Contribution.contribution_year == year)
        ).scalars()
    )
    members = db.execute(
        select(Member).where(Member.is_active.is_(True)).order_by(Member.id)
    ).scalars()
    created = 0
    for member in members:
        if member.id in existing:
            continue
        try:
            create_contribution(db, member_id=member.id, year=year, amount=amount)
        except DuplicateRecordError:
            continue
        created += 1
    logger.info("Created %s contributions for %s", created, year)
    return created


def list_contributions(db: Session, year: int | None = None) -> list[ContributionRow]:
    query = select(Contribution).order_by(
        Contribution.contribution_year.desc(), Contribution.id
    )
    if year:
        query = query.where(Contribution.contribution_year == year)
    contributions = db.execute(query).scalars().all()
    member_ids = {row.member_id for row in contributions}
    members = {}
    if member_ids:
        members = {
            row.id: row
            for row in db.execute(select(Member).where(Member.id.in_(member_ids))).scalars()
        }
    return [ContributionRow(row, members.get(row.member_id)) for row in contributions]


def list_member_contributions(db: Session, member_id: int) -> list[Contribution]:
    return list(
        db.execute(
            select(Contribution)
            .where(Contribution.member_id == member_id)
            .order_by(Contribution.contribution_year.desc())
        ).scalars()
    )


def record_contribution_income(
    db: Session, contribution: Contribution, notes: str | None = None
):
    paid_at = contribution.paid_at or utcnow()
    return record_income_once(
        db,
        source_type=SOURCE_CONTRIBUTION,
        source_id=contribution.id,
        description=f"Lidgeld {contribution.contribution_year}",
        amount=contribution.amount,
        income_date=paid_at.date(),
        income_type=IncomeTypeEnum.MEMBERSHIP,
        member_id=contribution.member_id,
        notes=notes,
    )


def mark_contribution_paid(db: Session, contribution: Contribution) -> Contribution:
    """Admin override: record a payment received outside the provider."""
    if contribution.status != PaymentStatusEnum.PAID:
        contribution.status = PaymentStatusEnum.PAID.value
        contribution.paid_at = utcnow()
        db.commit()
    record_contribution_income(db, contribution, notes="Handmatig gemarkeerd als betaald")
    return contribution


def delete_contribution(db: Session, contribution: Contribution) -> None:
    db.delete(contribution)
    db.commit()


def send_contribution_invites(db: Session, mailer: Mailer, year: int) -> MailingResult:
    """Invite every member with an open contribution for ``year`` to pay online."""
    if not mailer.is_configured():
        raise MailerError("E-mailservice is niet geconfigureerd.")
    rows = db.execute(
        select(Contribution, Member)
        .join(Member, Member.id == Contribution.member_id)
        .where(
            Contribution.contribution_year == year,
            Contribution.status == PaymentStatusEnum.PENDING,
        )
        .order_by(Member.last_name, Member.first_name)
    ).all()
    if not rows:
        raise ValidationFailed("Geen openstaande lidgelden gevonden")

    subject = f"Uitnodiging Lidgeld {year} - {settings.organization_name}"
    portal_url = f"{settings.public_base_url.rstrip('/')}/portal"
    result = MailingResult()
    for contribution, member in rows:
        if not member.email:
            continue
        result.recipients += 1
        html = render_email(
            "email/contribution_invite.html",
            {
                "member": member,
                "contribution": contribution,
                "portal_url": portal_url,
                "organization_name": settings.organization_name,
            },
        )
        try:
            mailer.send(member.email, subject, html)
        except MailerError as exc:
            result.failed += 1
            result.failures.append(member.email)
            logger.error("Invite for contribution %s failed: %s", contribution.id, exc)
            continue
        result.sent += 1

    logger.info(
        "Contribution invites for %s: %s sent, %s failed", year, result.sent, result.failed
    )
    return result
