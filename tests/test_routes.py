from decimal import Decimal

import pytest

from ledenbeheer.models import Contribution, Donation, Invoice, Member, Tag
from ledenbeheer.services.contributions import create_contribution

MEMBER_USER = "member-1"


@pytest.fixture()
def member_client(app_client, member):
    app_client.headers.update({"X-Auth-User": MEMBER_USER})
    return app_client


def _invoice_form(member_id):
    return {
        "member_id": str(member_id),
        "description": "Zaalhuur februari",
        "invoice_date": "2026-02-01",
        "due_date": "2026-03-01",
        "item_description": ["Zaalhuur", "Boek"],
        "item_quantity": ["2", "1"],
        "item_unit_price": ["10,00", "5"],
        "item_vat_rate": ["21", "6"],
    }


def test_health(app_client):
    response = app_client.get("/health")

    assert response.status_code == 200


@pytest.mark.parametrize("path", ["/members", "/invoices", "/contributions", "/finance", "/mailing"])
def test_admin_pages_require_login(app_client, path):
    assert app_client.get(path).status_code == 401


@pytest.mark.parametrize("path", ["/members", "/invoices", "/contributions", "/finance", "/mailing"])
def test_admin_pages_reject_members(member_client, path):
    assert member_client.get(path).status_code == 403


def test_portal_requires_linked_member(app_client):
    assert app_client.get("/portal").status_code == 401
    app_client.headers.update({"X-Auth-User": "stranger"})
    response = app_client.get("/portal")

    assert response.status_code == 403


def test_create_member_with_tags_and_segments(client, db_session):
    response = client.post(
        "/members/new",
        data={
            "first_name": "Els",
            "last_name": "Peeters",
            "email": "els@voorbeeld.be",
            "tags": "Vrijwilliger, Sponsor",
            "segments": ["donor", "onbekend"],
            "is_active": "on",
        },
        follow_redirects=False,
    )

    assert response.status_code == 303
    member = db_session.query(Member).filter_by(last_name="Peeters").one()
    assert response.headers["location"] == f"/members/{member.id}"
    assert member.country == "België"
    assert member.receives_mail is False
    assert {segment.value for segment in member.segment_values} == {"donor"}
    assert sorted(tag.name for tag in db_session.query(Tag)) == ["Sponsor", "Vrijwilliger"]


def test_create_member_shows_validation_errors(client, db_session):
    response = client.post("/members/new", data={"first_name": "Els"})

    assert response.status_code == 400
    assert "Achternaam is verplicht." in response.text
    assert db_session.query(Member).count() == 0


def test_member_list_search(client, member):
    response = client.get("/members", params={"q": "janss"})

    assert response.status_code == 200
    assert "Janssen" in response.text


def test_unknown_member_is_404(client):
    assert client.get("/members/999").status_code == 404


def test_link_account_already_in_use(client, db_session, member):
    other = Member(first_name="Els", last_name="Peeters")
    db_session.add(other)
    db_session.commit()

    response = client.post(
        f"/members/{other.id}/account", data={"auth_user_id": MEMBER_USER}
    )

    assert response.status_code == 400
    assert "Er bestaat al een account voor dit e-mailadres" in response.text


def test_export_and_import_members(client, db_session, member):
    export = client.get("/members/export.csv")

    assert export.status_code == 200
    assert export.headers["content-type"].startswith("text/csv")
    assert export.content.startswith("\ufeff".encode("utf-8"))
    assert "Jan,Janssen,jan@voorbeeld.be" in export.text

    upload = "Voornaam;Achternaam;Bedrijf\nEls;Peeters;Acme BV\n;Leeg;\n"
    response = client.post(
        "/members/import",
        files={"file": ("leden.csv", upload.encode("utf-8"), "text/csv")},
    )

    assert response.status_code == 200
    assert "Rij 3: Voornaam en achternaam zijn verplicht" in response.text
    assert db_session.query(Member).filter_by(last_name="Peeters").count() == 1


def test_import_without_rows_is_rejected(client):
    response = client.post(
        "/members/import",
        files={"file": ("leden.csv", b"Voornaam,Achternaam\n", "text/csv")},
    )

    assert response.status_code == 400
    assert "CSV bestand is leeg of bevat alleen headers" in response.text


def test_create_send_and_export_invoice(client, db_session, member, mailer):
    response = client.post("/invoices/new", data=_invoice_form(member.id), follow_redirects=False)

    assert response.status_code == 303
    invoice = db_session.query(Invoice).one()
    assert invoice.invoice_number == "2026-1"
    assert invoice.total == Decimal("29.50")

    sent = client.post(f"/invoices/{invoice.id}/send", follow_redirects=False)
    assert sent.status_code == 303
    assert mailer.sent[0]["subject"] == "Factuur 2026-1"

    csv_response = client.get("/invoices/vat.csv", params={"year": 2026})
    assert csv_response.status_code == 200
    assert "2026-1;2026-02-01;Jan Janssen;25.00;18;4.50;29.50" in csv_response.text


def test_invoice_requires_recipient(client, db_session):
    form = _invoice_form(member_id="")

    response = client.post("/invoices/new", data=form)

    assert response.status_code == 400
    assert "Kies een lid of een bedrijf." in response.text
    assert db_session.query(Invoice).count() == 0


def test_duplicate_contribution_shows_message(client, db_session, member):
    form = {"member_id": str(member.id), "year": "2026", "amount": "25"}
    first = client.post("/contributions", data=form, follow_redirects=False)
    second = client.post("/contributions", data=form)

    assert first.status_code == 303
    assert second.status_code == 400
    assert "Lidgeld voor dit jaar bestaat al voor dit lid" in second.text
    assert db_session.query(Contribution).count() == 1


def test_member_pays_own_contribution(member_client, db_session, member, provider):
    contribution = create_contribution(
        db_session, member_id=member.id, year=2026, amount=Decimal("25")
    )

    response = member_client.post(
        f"/portal/contributions/{contribution.id}/pay", follow_redirects=False
    )

    assert response.status_code == 303
    assert response.headers["location"] == "https://pay.example/tr_test1"
    assert provider.created[0]["redirect_url"].endswith("/portal?contribution=success")


def test_member_cannot_pay_foreign_contribution(member_client, db_session, member, provider):
    other = Member(first_name="Els", last_name="Peeters")
    db_session.add(other)
    db_session.commit()
    contribution = create_contribution(
        db_session, member_id=other.id, year=2026, amount=Decimal("25")
    )

    response = member_client.post(f"/portal/contributions/{contribution.id}/pay")

    assert response.status_code == 403
    assert provider.created == []


def test_anonymous_donation_redirects_to_checkout(app_client, db_session, provider):
    response = app_client.post(
        "/donate", data={"amount": "12,50", "description": "Steun"}, follow_redirects=False
    )

    assert response.status_code == 303
    assert response.headers["location"] == "https://pay.example/tr_test1"
    donation = db_session.query(Donation).one()
    assert donation.amount == Decimal("12.50")
    assert donation.member_id is None

    success = app_client.get("/donate/success", params={"donation_id": donation.id})
    assert success.status_code == 200


def test_donation_below_minimum_is_rejected(app_client, db_session):
    response = app_client.post("/donate", data={"amount": "0,50"})

    assert response.status_code == 400
    assert "Bedrag moet minimaal €1 zijn" in response.text
    assert db_session.query(Donation).count() == 0
