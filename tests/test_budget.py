from decimal import Decimal

import pytest

from ledenbeheer.errors import ValidationFailed
from ledenbeheer.models import BudgetItem, BudgetSectionEnum, InventoryItem
from ledenbeheer.services.budget import (
    budget_overview,
    create_inventory_item,
    list_budget,
    save_budget,
    update_budget_item,
    update_inventory_item,
)


def test_save_budget_replaces_lines_and_drops_zero_amounts(db_session):
    save_budget(
        db_session,
        2026,
        {"lidgeld": Decimal("1500"), "subsidies": Decimal("250")},
        {"goederen_diensten": Decimal("800")},
    )

    save_budget(
        db_session,
        2026,
        {"lidgeld": Decimal("1600"), "subsidies": Decimal("0")},
        {"goederen_diensten": None},
    )

    items = list_budget(db_session, 2026)
    assert [(item.category, item.budgeted_amount) for item in items] == [
        ("lidgeld", Decimal("1600.00"))
    ]
    assert items[0].description == "Lidgeld"


def test_save_budget_keeps_other_years(db_session):
    save_budget(db_session, 2025, {"lidgeld": Decimal("1000")}, {})
    save_budget(db_session, 2026, {"lidgeld": Decimal("1200")}, {})

    assert len(list_budget(db_session, 2025)) == 1


def test_save_budget_rejects_unknown_category_and_negative_amount(db_session):
    with pytest.raises(ValidationFailed) as excinfo:
        save_budget(
            db_session,
            2026,
            {"loterij": Decimal("10")},
            {"bezoldigingen": Decimal("-5")},
        )

    assert excinfo.value.messages == [
        "Onbekende categorie: loterij",
        "Bedrag voor Bezoldigingen mag niet negatief zijn.",
    ]
    assert db_session.query(BudgetItem).count() == 0


def test_budget_overview_result(db_session):
    save_budget(
        db_session,
        2026,
        {"lidgeld": Decimal("1500"), "schenkingen": Decimal("200")},
        {"goederen_diensten": Decimal("900.50")},
    )

    overview = budget_overview(db_session, 2026)

    assert overview.total_income == Decimal("1700.00")
    assert overview.total_expenses == Decimal("900.50")
    assert overview.result == Decimal("799.50")
    assert overview.amount_for(BudgetSectionEnum.INCOME, "schenkingen") == Decimal("200.00")
    assert overview.amount_for(BudgetSectionEnum.EXPENSES, "bezoldigingen") == Decimal("0.00")


def test_update_budget_item_rejects_negative_amount(db_session):
    item = save_budget(db_session, 2026, {"lidgeld": Decimal("100")}, {})[0]

    with pytest.raises(ValidationFailed):
        update_budget_item(db_session, item, budgeted_amount=Decimal("-1"))

    update_budget_item(
        db_session, item, budgeted_amount=Decimal("120"), realized_amount=Decimal("95.5")
    )
    assert item.realized_amount == Decimal("95.50")


def test_inventory_type_must_match_category(db_session):
    with pytest.raises(ValidationFailed) as excinfo:
        create_inventory_item(
            db_session,
            fiscal_year=2026,
            category="schulden",
            item_type="liquiditeiten",
            description=None,
            amount=Decimal("10"),
        )

    assert excinfo.value.messages == ["Ongeldig type voor deze categorie."]


def test_inventory_defaults_description_and_totals(db_session):
    cash = create_inventory_item(
        db_session,
        fiscal_year=2026,
        category="bezittingen",
        item_type="liquiditeiten",
        description=None,
        amount=Decimal("1250.40"),
    )
    create_inventory_item(
        db_session,
        fiscal_year=2026,
        category="bezittingen",
        item_type="liquiditeiten",
        description="Spaarrekening",
        amount=Decimal("3000"),
    )
    create_inventory_item(
        db_session,
        fiscal_year=2026,
        category="schulden",
        item_type="schulden_leveranciers",
        description=None,
        amount=Decimal("75"),
    )

    assert cash.description == "Liquiditeiten"
    overview = budget_overview(db_session, 2026)
    assert overview.inventory_totals["bezittingen"] == Decimal("4250.40")
    assert overview.inventory_totals["schulden"] == Decimal("75.00")
    assert overview.inventory_totals["rechten"] == Decimal("0.00")
    assert overview.inventory_by_type["bezittingen"] == {"liquiditeiten": Decimal("4250.40")}


def test_update_inventory_item(db_session):
    item = create_inventory_item(
        db_session,
        fiscal_year=2026,
        category="rechten",
        item_type="beloofde_subsidies",
        description=None,
        amount=Decimal("500"),
    )

    update_inventory_item(db_session, item, description="Gemeente", amount=Decimal("650"))

    assert item.description == "Gemeente"
    assert item.amount == Decimal("650.00")
    with pytest.raises(ValidationFailed):
        update_inventory_item(db_session, item, description=None, amount=None)


def test_budget_page_saves_lines(client, db_session):
    response = client.post(
        "/finance/budget",
        data={"year": "2026", "income_lidgeld": "1500,00", "expenses_andere_uitgaven": "40"},
        follow_redirects=False,
    )

    assert response.status_code == 303
    assert response.headers["location"] == "/finance/budget?year=2026"
    page = client.get("/finance/budget?year=2026")
    assert page.status_code == 200
    assert "Andere uitgaven" in page.text
    amounts = {item.category: item.budgeted_amount for item in list_budget(db_session, 2026)}
    assert amounts == {"lidgeld": Decimal("1500.00"), "andere_uitgaven": Decimal("40.00")}


def test_budget_page_rejects_negative_amount(client):
    response = client.post("/finance/budget", data={"year": "2026", "income_subsidies": "-10"})

    assert response.status_code == 400
    assert "Bedrag voor Subsidies mag niet negatief zijn." in response.text


def test_inventory_page_adds_and_deletes_item(client, db_session):
    response = client.post(
        "/finance/inventory",
        data={"year": "2026", "category": "bezittingen", "type": "stocks", "amount": "120,00"},
        follow_redirects=False,
    )

    assert response.status_code == 303
    item = db_session.query(InventoryItem).one()
    assert item.description == "Stocks"

    client.post(f"/finance/inventory/{item.id}/delete")
    db_session.expire_all()
    assert db_session.query(InventoryItem).count() == 0


def test_budget_pages_are_admin_only(app_client):
    assert app_client.get("/finance/budget").status_code == 401
    assert app_client.get("/finance/inventory").status_code == 401


def test_inventory_page_updates_item(client, db_session):
    item = create_inventory_item(
        db_session,
        fiscal_year=2026,
        category="schulden",
        item_type="andere_schulden",
        description=None,
        amount=Decimal("30"),
    )

    response = client.post(
        f"/finance/inventory/{item.id}",
        data={"description": "Voorschot drukker", "amount": "45,50", "notes": ""},
        follow_redirects=False,
    )

    assert response.status_code == 303
    db_session.expire_all()
    assert item.description == "Voorschot drukker"
    assert item.amount == Decimal("45.50")
