"""Yearly budget and the annual-report inventory of assets, debts, rights and commitments."""

from dataclasses import dataclass, field
from decimal import Decimal
import logging

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ..errors import ValidationFailed
from ..models import BudgetItem, BudgetSectionEnum, InventoryCategoryEnum, InventoryItem
from ..models.base import utcnow
from .money import money

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

BUDGET_CATEGORIES = {
    BudgetSectionEnum.INCOME: {
        "lidgeld": "Lidgeld",
        "schenkingen": "Schenkingen en Legaten",
        "subsidies": "Subsidies",
        "andere_ontvangsten": "Andere ontvangsten",
    },
    BudgetSectionEnum.EXPENSES: {
        "goederen_diensten": "Goederen en diensten",
        "bezoldigingen": "Bezoldigingen",
        "diensten_diverse": "Diensten en diverse goederen",
        "andere_uitgaven": "Andere uitgaven",
    },
}

INVENTORY_TYPES = {
    InventoryCategoryEnum.ASSETS: {
        "onroerende_goederen_eigen": "Onroerende goederen behorend tot de vereniging in volle eigendom",
        "onroerende_goederen_andere": "Andere onroerende goederen",
        "machines_eigen": "Machines behorend tot de vereniging in volle eigendom",
        "machines_andere": "Andere machines",
        "roerende_goederen_eigen": (
            "Roerende goederen en rollend materieel behorend tot de vereniging in volle eigendom"
        ),
        "roerende_goederen_andere": "Andere roerende goederen",
        "stocks": "Stocks",
        "schuldvorderingen": "Schuldvorderingen",
        "geldbeleggingen": "Geldbeleggingen",
        "liquiditeiten": "Liquiditeiten",
        "andere_activa": "Andere activa",
    },
    InventoryCategoryEnum.DEBTS: {
        "financiele_schulden": "Financiële schulden",
        "schulden_leveranciers": "Schulden ten aanzien van leveranciers",
        "schulden_leden": "Schulden ten aanzien van leden",
        "fiscale_schulden": "Fiscale, salariële en sociale schulden",
        "andere_schulden": "Andere schulden",
    },
    InventoryCategoryEnum.RIGHTS: {
        "beloofde_subsidies": "Beloofde subsidies",
        "beloofde_schenkingen": "Beloofde schenkingen",
        "andere_rechten": "Andere rechten",
    },
    InventoryCategoryEnum.COMMITMENTS: {
        "hypotheken": "Hypotheken en hypotheekbeloften",
        "gegeven_waarborgen": "Gegeven waarborgen",
        "andere_verbintenissen": "Andere verbintenissen",
    },
}


@dataclass
class BudgetOverview:
    year: int
    income: list[BudgetItem] = field(default_factory=list)
    expenses: list[BudgetItem] = field(default_factory=list)
    inventory_totals: dict[str, Decimal] = field(default_factory=dict)
    inventory_by_type: dict[str, dict[str, Decimal]] = field(default_factory=dict)

    @property
    def total_income(self) -> Decimal:
        return money(sum((item.budgeted_amount for item in self.income), ZERO))

    @property
    def total_expenses(self) -> Decimal:
        return money(sum((item.budgeted_amount for item in self.expenses), ZERO))

    @property
    def result(self) -> Decimal:
        return self.total_income - self.total_expenses

    def amount_for(self, section: BudgetSectionEnum, category: str) -> Decimal:
        items = self.income if section == BudgetSectionEnum.INCOME else self.expenses
        for item in items:
            if item.category == category:
                return item.budgeted_amount
        return ZERO


def _value(item) -> str:
    return item.value if hasattr(item, "value") else str(item)


def list_budget(db: Session, year: int) -> list[BudgetItem]:
    return list(
        db.execute(
            select(BudgetItem)
            .where(BudgetItem.fiscal_year == year)
            .order_by(BudgetItem.section, BudgetItem.category)
        ).scalars()
    )


def save_budget(
    db: Session,
    year: int,
    income: dict[str, Decimal | None],
    expenses: dict[str, Decimal | None],
) -> list[BudgetItem]:
    """Replace the income and expense lines of ``year``; zero amounts are dropped."""
    sections = {BudgetSectionEnum.INCOME: income, BudgetSectionEnum.EXPENSES: expenses}
    errors: list[str] = []
    for section, amounts in sections.items():
        for category, amount in amounts.items():
            if category not in BUDGET_CATEGORIES[section]:
                errors.append(f"Onbekende categorie: {category}")
            elif amount is not None and amount < 0:
                label = BUDGET_CATEGORIES[section][category]
                errors.append(f"Bedrag voor {label} mag niet negatief zijn.")
    if errors:
        raise ValidationFailed(errors)

    db.execute(
        delete(BudgetItem).where(
            BudgetItem.fiscal_year == year,
            BudgetItem.section.in_(
                [BudgetSectionEnum.INCOME.value, BudgetSectionEnum.EXPENSES.value]
            ),
        )
    )
    items = [
        BudgetItem(
            fiscal_year=year,
            section=section.value,
            category=category,
            description=BUDGET_CATEGORIES[section][category],
            budgeted_amount=money(amount),
            realized_amount=ZERO,
        )
        for section, amounts in sections.items()
        for category, amount in amounts.items()
        if amount and amount > 0
    ]
    db.add_all(items)
    db.commit()
    logger.info("Saved budget %s with %s lines", year, len(items))
    return items


def update_budget_item(
    db: Session,
    item: BudgetItem,
    *,
    budgeted_amount: Decimal | None,
    realized_amount: Decimal | None = None,
    notes: str | None = None,
) -> BudgetItem:
    if budgeted_amount is None or budgeted_amount < 0:
        raise ValidationFailed("Begroot bedrag mag niet negatief zijn.")
    item.budgeted_amount = money(budgeted_amount)
    item.realized_amount = money(realized_amount)
    item.notes = notes
    item.updated_at = utcnow()
    db.commit()
    return item


def delete_budget_item(db: Session, item: BudgetItem) -> None:
    db.delete(item)
    db.commit()


def list_inventory(db: Session, year: int) -> list[InventoryItem]:
    return list(
        db.execute(
            select(InventoryItem)
            .where(InventoryItem.fiscal_year == year)
            .order_by(InventoryItem.category, InventoryItem.type)
        ).scalars()
    )


def _validate_inventory(category: str, item_type: str, amount: Decimal | None) -> list[str]:
    errors: list[str] = []
    try:
        types = INVENTORY_TYPES[InventoryCategoryEnum(category)]
    except ValueError:
        errors.append("Ongeldige categorie.")
        types = {}
    if types and item_type not in types:
        errors.append("Ongeldig type voor deze categorie.")
    if amount is None or amount < 0:
        errors.append("Bedrag mag niet negatief zijn.")
    return errors


def create_inventory_item(
    db: Session,
    *,
    fiscal_year: int,
    category: str,
    item_type: str,
    description: str | None,
    amount: Decimal | None,
    notes: str | None = None,
) -> InventoryItem:
    errors = _validate_inventory(category, item_type, amount)
    if errors:
        raise ValidationFailed(errors)
    label = INVENTORY_TYPES[InventoryCategoryEnum(category)][item_type]
    item = InventoryItem(
        fiscal_year=fiscal_year,
        category=category,
        type=item_type,
        description=description or label,
        amount=money(amount),
        notes=notes,
    )
    db.add(item)
    db.commit()
    return item


def update_inventory_item(
    db: Session,
    item: InventoryItem,
    *,
    description: str | None,
    amount: Decimal | None,
    notes: str | None = None,
) -> InventoryItem:
    errors = _validate_inventory(_value(item.category), item.type, amount)
    if errors:
        raise ValidationFailed(errors)
    if description:
        item.description = description
    item.amount = money(amount)
    item.notes = notes
    item.updated_at = utcnow()
    db.commit()
    return item


def delete_inventory_item(db: Session, item: InventoryItem) -> None:
    db.delete(item)
    db.commit()


def inventory_totals(
    items: list[InventoryItem],
) -> tuple[dict[str, Decimal], dict[str, dict[str, Decimal]]]:
    totals = {category.value: ZERO for category in InventoryCategoryEnum}
    by_type: dict[str, dict[str, Decimal]] = {category.value: {} for category in InventoryCategoryEnum}
    for item in items:
        category = _value(item.category)
        totals[category] += money(item.amount)
        by_type[category][item.type] = by_type[category].get(item.type, ZERO) + money(item.amount)
    return totals, by_type


def budget_overview(db: Session, year: int) -> BudgetOverview:
    items = list_budget(db, year)
    totals, by_type = inventory_totals(list_inventory(db, year))
    return BudgetOverview(
        year=year,
        income=[item for item in items if _value(item.section) == BudgetSectionEnum.INCOME.value],
        expenses=[
            item for item in items if _value(item.section) == BudgetSectionEnum.EXPENSES.value
        ],
        inventory_totals=totals,
        inventory_by_type=by_type,
    )
