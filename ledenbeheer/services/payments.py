"""Payment initiation and webhook reconciliation for donations and contributions.

Webhook bodies only carry a payment id and are not authenticated, so the
payment is always re-fetched from the provider before any local change.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
import logging
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import AccessDenied, PaymentProviderError, ValidationFailed
from ..models import (
    Contribution,
    Donation,
    IncomeTypeEnum,
    Member,
    PaymentStatusEnum,
)
from ..models.base import utcnow
from ..schemas import ProviderPayment
from .contributions import record_contribution_income
from .ledger import SOURCE_DONATION, record_income_once
from .money import money
from .payment_provider import PaymentProvider

logger = logging.getLogger(__name__)

MIN_DONATION_AMOUNT = Decimal("1")

PROVIDER_STATUS_MAP = {
    "paid": PaymentStatusEnum.PAID,
    "failed": PaymentStatusEnum.FAILED,
    "canceled": PaymentStatusEnum.FAILED,
    "expired": PaymentStatusEnum.FAILED,
    "pending": PaymentStatusEnum.PENDING,
    "open": PaymentStatusEnum.PENDING,
}
TERMINAL_STATUSES = {PaymentStatusEnum.PAID.value, PaymentStatusEnum.FAILED.value}


@dataclass
class ReconcileResult:
    record_id: int
    status: str
    changed: bool
    income_id: int | None = None


def map_provider_status(provider_status: str | None) -> PaymentStatusEnum:
    return PROVIDER_STATUS_MAP.get((provider_status or "").lower(), PaymentStatusEnum.PENDING)


def _status_value(value) -> str:
    if value is None:
        return ""
    return value.value if hasattr(value, "value") else str(value)


def _metadata_id(metadata: dict[str, Any], key: str) -> int | None:
    raw = metadata.get(key)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return None


def _naive_utc(value: datetime | None) -> datetime:
    if value is None:
        return utcnow()
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _find_record(db: Session, model, metadata_key: str, payment: ProviderPayment):
    record_id = _metadata_id(payment.metadata, metadata_key)
    if record_id is not None:
        return db.get(model, record_id)
    return db.execute(
        select(model).where(model.mollie_payment_id == payment.id)
    ).scalar_one_or_none()


def _is_stale(record, payment: ProviderPayment) -> bool:
    # A newer payment attempt replaced this one; ignore its callbacks.
    return bool(record.mollie_payment_id) and record.mollie_payment_id != payment.id


def record_donation_income(db: Session, donation: Donation, amount: Decimal | None = None):
    paid_at = donation.paid_at or utcnow()
    return record_income_once(
        db,
        source_type=SOURCE_DONATION,
        source_id=donation.id,
        description="Donatie via Mollie",
        amount=amount if amount and amount > 0 else donation.amount,
        income_date=paid_at.date(),
        income_type=IncomeTypeEnum.DONATION,
        member_id=donation.member_id,
        notes=f"Donatie ID: {donation.id}",
    )


def reconcile_donation(
    db: Session, provider: PaymentProvider, payment_id: str
) -> ReconcileResult | None:
    payment = provider.get_payment(payment_id)
    donation = _find_record(db, Donation, "donation_id", payment)
    if donation is None:
        logger.warning("No donation found for payment %s", payment_id)
        return None
    if _is_stale(donation, payment):
        logger.warning(
            "Ignoring payment %s for donation %s (current payment %s)",
            payment.id,
            donation.id,
            donation.mollie_payment_id,
        )
        return ReconcileResult(donation.id, _status_value(donation.status), False)

    current = _status_value(donation.status)
    target = map_provider_status(payment.status)
    logger.info(
        "Donation %s: provider status %s -> %s (was %s)",
        donation.id,
        payment.status,
        target.value,
        current,
    )

    changed = False
    if current not in TERMINAL_STATUSES:
        donation.mollie_status = payment.status
        donation.mollie_payment_id = donation.mollie_payment_id or payment.id
        if target != PaymentStatusEnum.PENDING:
            donation.status = target.value
            changed = True
            if target == PaymentStatusEnum.PAID:
                donation.paid_at = _naive_utc(payment.paid_at)
        donation.updated_at = utcnow()
        db.commit()

    income_id = None
    if _status_value(donation.status) == PaymentStatusEnum.PAID.value:
        income = record_donation_income(db, donation, payment.amount)
        income_id = income.id if income else None
    return ReconcileResult(donation.id, _status_value(donation.status), changed, income_id)


def reconcile_contribution(
    db: Session, provider: PaymentProvider, payment_id: str
) -> ReconcileResult | None:
    payment = provider.get_payment(payment_id)
    contribution = _find_record(db, Contribution, "contribution_id", payment)
    if contribution is None:
        logger.warning("No contribution found for payment %s", payment_id)
        return None
    if _is_stale(contribution, payment):
        logger.warning(
            "Ignoring payment %s for contribution %s (current payment %s)",
            payment.id,
            contribution.id,
            contribution.mollie_payment_id,
        )
        return ReconcileResult(contribution.id, _status_value(contribution.status), False)

    current = _status_value(contribution.status)
    target = map_provider_status(payment.status)
    logger.info(
        "Contribution %s: provider status %s -> %s (was %s)",
        contribution.id,
        payment.status,
        target.value,
        current,
    )

    changed = False
    if current not in TERMINAL_STATUSES and target != PaymentStatusEnum.PENDING:
        contribution.status = target.value
        contribution.mollie_payment_id = contribution.mollie_payment_id or payment.id
        if target == PaymentStatusEnum.PAID:
            contribution.paid_at = _naive_utc(payment.paid_at)
        contribution.updated_at = utcnow()
        db.commit()
        changed = True

    income_id = None
    if _status_value(contribution.status) == PaymentStatusEnum.PAID.value:
        income = record_contribution_income(
            db, contribution, notes=f"Mollie betaling: {payment.id}"
        )
        income_id = income.id if income else None
    return ReconcileResult(
        contribution.id, _status_value(contribution.status), changed, income_id
    )


def start_donation_payment(
    db: Session,
    provider: PaymentProvider,
    *,
    member: Member | None,
    amount: Decimal | None,
    description: str | None,
    redirect_base: str,
) -> tuple[Donation, str | None]:
    if amount is None or amount < MIN_DONATION_AMOUNT:
        raise ValidationFailed("Bedrag moet minimaal €1 zijn")

    donation = Donation(
        member_id=member.id if member else None,
        amount=money(amount),
        currency="EUR",
        description=description or "Donatie",
        status=PaymentStatusEnum.PENDING.value,
    )
    db.add(donation)
    db.commit()

    label = f"Donatie - {member.full_name}" if member else "Donatie"
    metadata: dict[str, Any] = {"donation_id": str(donation.id)}
    if member:
        metadata["member_id"] = str(member.id)
    try:
        payment = provider.create_payment(
            amount=donation.amount,
            description=label,
            redirect_url=f"{redirect_base.rstrip('/')}/donate/success?donation_id={donation.id}",
            webhook_url=f"{settings.public_base_url.rstrip('/')}/webhooks/mollie",
            metadata=metadata,
        )
    except PaymentProviderError:
        logger.exception("Payment creation failed for donation %s", donation.id)
        db.delete(donation)
        db.commit()
        raise

    donation.mollie_payment_id = payment.id
    donation.mollie_status = payment.status
    db.commit()
    logger.info("Created payment %s for donation %s", payment.id, donation.id)
    return donation, payment.checkout_url


def start_contribution_payment(
    db: Session,
    provider: PaymentProvider,
    *,
    contribution: Contribution,
    member_id: int | None,
    redirect_base: str,
) -> str | None:
    if member_id is None or contribution.member_id != member_id:
        raise AccessDenied("Ongeautoriseerd")
    status = _status_value(contribution.status)
    if status == PaymentStatusEnum.PAID.value:
        raise ValidationFailed("Contributie is al betaald")
    if status == PaymentStatusEnum.FAILED.value:
        raise ValidationFailed(
            "Deze betaling is mislukt. Neem contact op met de administratie."
        )

    member = db.get(Member, contribution.member_id)
    name = member.full_name if member else ""
    payment = provider.create_payment(
        amount=contribution.amount,
        description=f"Contributie {contribution.contribution_year} - {name}".strip(),
        redirect_url=f"{redirect_base.rstrip('/')}/portal?contribution=success",
        webhook_url=f"{settings.public_base_url.rstrip('/')}/webhooks/contributions",
        metadata={
            "contribution_id": str(contribution.id),
            "member_id": str(contribution.member_id),
            "year": contribution.contribution_year,
        },
    )
    contribution.mollie_payment_id = payment.id
    db.commit()
    logger.info(
        "Created payment %s for contribution %s", payment.id, contribution.id
    )
    return payment.checkout_url
