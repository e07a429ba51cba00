from datetime import date, datetime
from decimal import Decimal
from unittest.mock import patch

import pytest

from ledenbeheer.errors import AccessDenied, PaymentProviderError, ValidationFailed
from ledenbeheer.models import Contribution, Donation, Income, PaymentStatusEnum
from ledenbeheer.services.contributions import create_contribution
from ledenbeheer.services.payments import (
    map_provider_status,
    reconcile_contribution,
    reconcile_donation,
    start_contribution_payment,
    start_donation_payment,
)


def _status_value(value):
    return value.value if hasattr(value, "value") else str(value)


def _start_donation(db_session, provider, member=None, amount="10.00"):
    donation, _ = start_donation_payment(
        db_session,
        provider,
        member=member,
        amount=Decimal(amount),
        description="Steun",
        redirect_base="https://leden.example",
    )
    return donation


@pytest.mark.parametrize(
    "provider_status, expected",
    [
        ("paid", PaymentStatusEnum.PAID),
        ("failed", PaymentStatusEnum.FAILED),
        ("canceled", PaymentStatusEnum.FAILED),
        ("expired", PaymentStatusEnum.FAILED),
        ("open", PaymentStatusEnum.PENDING),
        ("pending", PaymentStatusEnum.PENDING),
        ("authorized", PaymentStatusEnum.PENDING),
    ],
)
def test_provider_status_mapping(provider_status, expected):
    assert map_provider_status(provider_status) == expected


def test_expired_donation_fails_without_income(db_session, provider):
    donation = _start_donation(db_session, provider)
    provider.set_status(donation.mollie_payment_id, "expired")

    result = reconcile_donation(db_session, provider, donation.mollie_payment_id)

    db_session.refresh(donation)
    assert result.changed is True
    assert _status_value(donation.status) == "failed"
    assert donation.mollie_status == "expired"
    assert db_session.query(Income).count() == 0


def test_open_donation_stays_pending(db_session, provider):
    donation = _start_donation(db_session, provider)

    result = reconcile_donation(db_session, provider, donation.mollie_payment_id)

    db_session.refresh(donation)
    assert result.changed is False
    assert _status_value(donation.status) == "pending"
    assert donation.mollie_status == "open"


def test_paid_donation_records_income_once(db_session, provider, member, paid_at):
    donation = _start_donation(db_session, provider, member=member, amount="15.00")
    provider.set_status(donation.mollie_payment_id, "paid", paid_at)

    first = reconcile_donation(db_session, provider, donation.mollie_payment_id)
    second = reconcile_donation(db_session, provider, donation.mollie_payment_id)

    db_session.refresh(donation)
    assert _status_value(donation.status) == "paid"
    assert donation.paid_at == datetime(2026, 3, 14, 9, 30)
    assert first.income_id is not None
    assert second.income_id is None
    incomes = db_session.query(Income).all()
    assert len(incomes) == 1
    income = incomes[0]
    assert income.amount == Decimal("15.00")
    assert income.date == date(2026, 3, 14)
    assert _status_value(income.type) == "donation"
    assert income.member_id == member.id
    assert income.notes == f"Donatie ID: {donation.id}"
    assert income.description == "Donatie via Mollie"


def test_concurrent_delivery_is_rejected_by_unique_index(db_session, provider, paid_at):
    donation = _start_donation(db_session, provider)
    provider.set_status(donation.mollie_payment_id, "paid", paid_at)
    reconcile_donation(db_session, provider, donation.mollie_payment_id)

    # Second delivery that passed the existence check before the first commit.
    with patch(
        "ledenbeheer.services.ledger.find_income_for_source", return_value=None
    ):
        result = reconcile_donation(db_session, provider, donation.mollie_payment_id)

    assert result.income_id is None
    assert db_session.query(Income).count() == 1


def test_terminal_donation_is_not_moved(db_session, provider, paid_at):
    donation = _start_donation(db_session, provider)
    provider.set_status(donation.mollie_payment_id, "paid", paid_at)
    reconcile_donation(db_session, provider, donation.mollie_payment_id)
    provider.set_status(donation.mollie_payment_id, "failed")

    result = reconcile_donation(db_session, provider, donation.mollie_payment_id)

    db_session.refresh(donation)
    assert result.changed is False
    assert _status_value(donation.status) == "paid"
    assert db_session.query(Income).count() == 1


def test_unknown_record_returns_none(db_session, provider):
    provider.add_payment("tr_orphan", "paid", "5.00", {"donation_id": "999"})

    assert reconcile_donation(db_session, provider, "tr_orphan") is None


def test_donation_found_by_payment_id_without_metadata(db_session, provider, paid_at):
    donation = _start_donation(db_session, provider)
    payment_id = donation.mollie_payment_id
    provider.add_payment(payment_id, "paid", "10.00", {}, paid_at)

    result = reconcile_donation(db_session, provider, payment_id)

    assert result.record_id == donation.id
    assert result.status == "paid"


def test_start_donation_requires_minimum_amount(db_session, provider):
    with pytest.raises(ValidationFailed) as excinfo:
        _start_donation(db_session, provider, amount="0.50")

    assert excinfo.value.messages == ["Bedrag moet minimaal €1 zijn"]
    assert db_session.query(Donation).count() == 0
    assert provider.created == []


def test_start_donation_stores_payment_reference(db_session, provider, member):
    donation = _start_donation(db_session, provider, member=member)

    assert donation.mollie_payment_id == "tr_test1"
    assert donation.mollie_status == "open"
    created = provider.created[0]
    assert created["webhook_url"].endswith("/webhooks/mollie")
    assert created["redirect_url"] == (
        f"https://leden.example/donate/success?donation_id={donation.id}"
    )
    assert created["metadata"] == {
        "donation_id": str(donation.id),
        "member_id": str(member.id),
    }
    assert created["description"] == "Donatie - Jan Janssen"


def test_start_donation_removes_row_when_provider_fails(db_session, provider):
    provider.fail_create = True

    with pytest.raises(PaymentProviderError):
        _start_donation(db_session, provider)

    assert db_session.query(Donation).count() == 0


def test_paid_contribution_records_membership_income(db_session, provider, member, paid_at):
    contribution = create_contribution(
        db_session, member_id=member.id, year=2026, amount=Decimal("25")
    )
    start_contribution_payment(
        db_session,
        provider,
        contribution=contribution,
        member_id=member.id,
        redirect_base="https://leden.example",
    )
    provider.set_status(contribution.mollie_payment_id, "paid", paid_at)

    result = reconcile_contribution(db_session, provider, contribution.mollie_payment_id)

    db_session.refresh(contribution)
    assert result.changed is True
    assert _status_value(contribution.status) == "paid"
    income = db_session.query(Income).one()
    assert income.description == "Lidgeld 2026"
    assert income.amount == Decimal("25.00")
    assert _status_value(income.type) == "membership"
    assert income.notes == f"Mollie betaling: {contribution.mollie_payment_id}"
    assert provider.created[0]["description"] == "Contributie 2026 - Jan Janssen"
    assert provider.created[0]["webhook_url"].endswith("/webhooks/contributions")


def test_stale_contribution_payment_is_ignored(db_session, provider, member):
    contribution = create_contribution(
        db_session, member_id=member.id, year=2026, amount=Decimal("25")
    )
    for _ in range(2):
        start_contribution_payment(
            db_session,
            provider,
            contribution=contribution,
            member_id=member.id,
            redirect_base="https://leden.example",
        )
    provider.set_status("tr_test1", "expired")

    result = reconcile_contribution(db_session, provider, "tr_test1")

    db_session.refresh(contribution)
    assert result.changed is False
    assert contribution.mollie_payment_id == "tr_test2"
    assert _status_value(contribution.status) == "pending"


def test_contribution_payment_requires_owner(db_session, provider, member):
    contribution = create_contribution(
        db_session, member_id=member.id, year=2026, amount=Decimal("25")
    )

    with pytest.raises(AccessDenied):
        start_contribution_payment(
            db_session,
            provider,
            contribution=contribution,
            member_id=member.id + 1,
            redirect_base="https://leden.example",
        )
    assert provider.created == []


def test_paid_contribution_cannot_be_paid_again(db_session, provider, member):
    contribution = Contribution(
        member_id=member.id,
        contribution_year=2026,
        amount=Decimal("25"),
        status=PaymentStatusEnum.PAID.value,
    )
    db_session.add(contribution)
    db_session.commit()

    with pytest.raises(ValidationFailed):
        start_contribution_payment(
            db_session,
            provider,
            contribution=contribution,
            member_id=member.id,
            redirect_base="https://leden.example",
        )


def _failed_contribution(db_session, member, payment_id="tr_old"):
    contribution = Contribution(
        member_id=member.id,
        contribution_year=2026,
        amount=Decimal("25"),
        status=PaymentStatusEnum.FAILED.value,
        mollie_payment_id=payment_id,
    )
    db_session.add(contribution)
    db_session.commit()
    return contribution


def test_terminal_contribution_is_not_moved(db_session, provider, member, paid_at):
    contribution = _failed_contribution(db_session, member)
    provider.add_payment(
        "tr_old", "paid", "25.00", {"contribution_id": str(contribution.id)}, paid_at
    )

    result = reconcile_contribution(db_session, provider, "tr_old")

    db_session.refresh(contribution)
    assert result.changed is False
    assert _status_value(contribution.status) == "failed"
    assert db_session.query(Income).count() == 0


def test_failed_contribution_cannot_be_restarted(db_session, provider, member):
    contribution = _failed_contribution(db_session, member)

    with pytest.raises(ValidationFailed):
        start_contribution_payment(
            db_session,
            provider,
            contribution=contribution,
            member_id=member.id,
            redirect_base="https://leden.example",
        )

    db_session.refresh(contribution)
    assert _status_value(contribution.status) == "failed"
    assert contribution.mollie_payment_id == "tr_old"
    assert provider.created == []
