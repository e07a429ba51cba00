from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
import logging

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import ValidationFailed, is_unique_violation
from ..models import Expense, ExpenseTypeEnum, Income, IncomeTypeEnum
from .money import money

logger = logging.getLogger(__name__)

SOURCE_CONTRIBUTION = "contribution"
SOURCE_DONATION = "donation"


@dataclass
class LedgerSummary:
    year: int
    income_total: Decimal = Decimal("0.00")
    expense_total: Decimal = Decimal("0.00")
    income_by_type: dict[str, Decimal] = field(default_factory=dict)

    @property
    def balance(self) -> Decimal:
        return self.income_total - self.expense_total


def find_income_for_source(
    db: Session, source_type: str, source_id: int
) -> Income | None:
    return db.execute(
        select(Income).where(
            Income.source_type == source_type, Income.source_id == source_id
        )
    ).scalar_one_or_none()


def record_income_once(
    db: Session,
    *,
    source_type: str,
    source_id: int,
    description: str,
    amount: Decimal,
    income_date: date,
    income_type: IncomeTypeEnum,
    member_id: int | None = None,
    notes: str | None = None,
) -> Income | None:
    """Insert the income row derived from a paid contribution or donation.

    Returns None when a row for the same source already exists. The
    existence check covers sequential duplicate webhooks; the unique index on
    (source_type, source_id) rejects the insert of a racing second delivery.
    The caller must have committed its own changes first, since a rejected
    insert rolls the session back.
    """
    if find_income_for_source(db, source_type, source_id) is not None:
        logger.info("Income already recorded for %s %s", source_type, source_id)
        return None

    income = Income(
        description=description,
        amount=money(amount),
        date=income_date,
        type=income_type.value,
        member_id=member_id,
        notes=notes,
        source_type=source_type,
        source_id=source_id,
    )
    db.add(income)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        if not is_unique_violation(exc):
            raise
        logger.warning(
            "Concurrent income insert for %s %s rejected", source_type, source_id
        )
        return None
    logger.info("Recorded income %s for %s %s", income.id, source_type, source_id)
    return income


def create_income(
    db: Session,
    *,
    description: str,
    amount: Decimal | None,
    income_date: date | None,
    income_type: str,
    member_id: int | None = None,
    company_id: int | None = None,
    notes: str | None = None,
) -> Income:
    errors = _validate_entry(description, amount, income_date)
    if income_type not in {item.value for item in IncomeTypeEnum}:
        errors.append("Ongeldig type.")
    if errors:
        raise ValidationFailed(errors)
    income = Income(
        description=description,
        amount=money(amount),
        date=income_date,
        type=income_type,
        member_id=member_id,
        company_id=company_id,
        notes=notes,
    )
    db.add(income)
    db.commit()
    return income


def create_expense(
    db: Session,
    *,
    description: str,
    amount: Decimal | None,
    expense_date: date | None,
    expense_type: str,
    category: str | None = None,
    vat_rate: Decimal | None = None,
    member_id: int | None = None,
    company_id: int | None = None,
    receipt_url: str | None = None,
    notes: str | None = None,
) -> Expense:
    errors = _validate_entry(description, amount, expense_date)
    if expense_type not in {item.value for item in ExpenseTypeEnum}:
        errors.append("Ongeldig type.")
    if errors:
        raise ValidationFailed(errors)
    expense = Expense(
        description=description,
        amount=money(amount),
        date=expense_date,
        type=expense_type,
        category=category,
        vat_rate=vat_rate,
        member_id=member_id,
        company_id=company_id,
        receipt_url=receipt_url,
        notes=notes,
    )
    db.add(expense)
    db.commit()
    return expense


def _validate_entry(
    description: str, amount: Decimal | None, entry_date: date | None
) -> list[str]:
    errors: list[str] = []
    if not description:
        errors.append("Omschrijving is verplicht.")
    if amount is None or amount <= 0:
        errors.append("Bedrag moet groter zijn dan 0.")
    if entry_date is None:
        errors.append("Datum is verplicht.")
    return errors


def list_income(db: Session, year: int | None = None) -> list[Income]:
    query = select(Income).order_by(Income.date.desc(), Income.id.desc())
    if year:
        query = query.where(Income.date >= date(year, 1, 1), Income.date < date(year + 1, 1, 1))
    return list(db.execute(query).scalars())


def list_expenses(db: Session, year: int | None = None) -> list[Expense]:
    query = select(Expense).order_by(Expense.date.desc(), Expense.id.desc())
    if year:
        query = query.where(
            Expense.date >= date(year, 1, 1), Expense.date < date(year + 1, 1, 1)
        )
    return list(db.execute(query).scalars())


def summarize_year(db: Session, year: int) -> LedgerSummary:
    start, end = date(year, 1, 1), date(year + 1, 1, 1)
    summary = LedgerSummary(year=year)
    for income_type, total in db.execute(
        select(Income.type, func.sum(Income.amount))
        .where(Income.date >= start, Income.date < end)
        .group_by(Income.type)
    ).all():
        key = income_type.value if hasattr(income_type, "value") else str(income_type)
        summary.income_by_type[key] = money(total)
        summary.income_total += money(total)
    expense_total = db.execute(
        select(func.sum(Expense.amount)).where(Expense.date >= start, Expense.date < end)
    ).scalar()
    summary.expense_total = money(expense_total)
    return summary
