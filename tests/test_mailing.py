import pytest

from ledenbeheer.errors import MailerError, ValidationFailed
from ledenbeheer.models import Member, SegmentEnum
from ledenbeheer.services.mailing import (
    render_placeholders,
    select_recipients,
    send_mailing,
    unsubscribe_token,
    verify_unsubscribe_token,
)
from ledenbeheer.services.members import create_member, get_or_create_tag, set_member_tags


@pytest.fixture()
def members(db_session, member):
    els = create_member(
        db_session,
        {"first_name": "Els", "last_name": "Peeters", "email": "els@voorbeeld.be"},
        segments=[SegmentEnum.BOARD_MEMBER],
    )
    db_session.add_all(
        [
            Member(first_name="Geen", last_name="Mail", email="geen@voorbeeld.be", receives_mail=False),
            Member(first_name="Oud", last_name="Lid", email="oud@voorbeeld.be", is_active=False),
            Member(first_name="Zonder", last_name="Adres", email=None),
        ]
    )
    db_session.commit()
    set_member_tags(db_session, els, ["Vrijwilliger"])
    return {"jan": member, "els": els}


def test_recipients_exclude_opted_out_inactive_and_without_email(db_session, members):
    names = [m.first_name for m in select_recipients(db_session)]

    assert names == ["Jan", "Els"]


def test_recipients_filter_by_tag_segment_and_ids(db_session, members):
    tag = get_or_create_tag(db_session, "vrijwilliger")

    assert [m.first_name for m in select_recipients(db_session, tag_ids=[tag.id])] == ["Els"]
    assert [
        m.first_name
        for m in select_recipients(db_session, segments=[SegmentEnum.BOARD_MEMBER])
    ] == ["Els"]
    assert [
        m.first_name
        for m in select_recipients(db_session, member_ids=[members["jan"].id])
    ] == ["Jan"]


def test_placeholders_are_case_insensitive(member):
    text = "Beste {{voornaam}} {{ ACHTERNAAM }}, {{Naam}} / {{ onbekend }}"

    assert render_placeholders(text, member) == (
        "Beste Jan Janssen, Jan Janssen / {{ onbekend }}"
    )


def test_unsubscribe_token_is_bound_to_member():
    token = unsubscribe_token(7)

    assert verify_unsubscribe_token(7, token)
    assert not verify_unsubscribe_token(8, token)
    assert not verify_unsubscribe_token(7, "")


def test_send_mailing_personalises_and_adds_footer(db_session, members, mailer):
    recipients = select_recipients(db_session)

    result = send_mailing(
        db_session,
        mailer,
        "Nieuws voor {{voornaam}}",
        "<html><body><p>Dag {{voornaam}}</p></body></html>",
        recipients,
    )

    assert (result.recipients, result.sent, result.failed) == (2, 2, 0)
    first = mailer.sent[0]
    assert first["to"] == "jan@voorbeeld.be"
    assert first["subject"] == "Nieuws voor Jan"
    assert "<p>Dag Jan</p>" in first["html"]
    assert "/unsubscribe?id=" in first["html"]
    assert first["html"].index("Schrijf je hier uit") < first["html"].index("</body>")


def test_send_mailing_counts_failures(db_session, members, mailer):
    mailer.fail_for.add("jan@voorbeeld.be")

    result = send_mailing(db_session, mailer, "Hallo", "<p>Tekst</p>", select_recipients(db_session))

    assert result.sent == 1
    assert result.failed == 1
    assert result.failures == ["jan@voorbeeld.be"]


def test_send_mailing_requires_subject_and_body(db_session, members, mailer):
    with pytest.raises(ValidationFailed):
        send_mailing(db_session, mailer, " ", "<p>x</p>", select_recipients(db_session))


def test_send_mailing_requires_configured_mailer(db_session, members, mailer):
    mailer.configured = False

    with pytest.raises(MailerError):
        send_mailing(
            db_session,
            mailer,
            "Hallo",
            "<p>x</p>",
            select_recipients(db_session),
        )


def test_unsubscribe_link_turns_off_mail(app_client, db_session, member):
    response = app_client.get(
        "/unsubscribe", params={"id": member.id, "token": unsubscribe_token(member.id)}
    )

    assert response.status_code == 200
    db_session.refresh(member)
    assert member.receives_mail is False


def test_unsubscribe_with_bad_token_is_rejected(app_client, db_session, member):
    response = app_client.get("/unsubscribe", params={"id": member.id, "token": "nope"})

    assert response.status_code == 400
    db_session.refresh(member)
    assert member.receives_mail is True


def test_mailing_route_reports_missing_recipients(client):
    response = client.post("/mailing", data={"subject": "Hallo", "html": "<p>x</p>"})

    assert response.status_code == 400
    assert "Geen ontvangers gevonden." in response.text


def test_mailing_route_sends(client, member, mailer):
    response = client.post(
        "/mailing",
        data={"subject": "Hallo", "html": "<p>x</p>", "member_ids": [str(member.id)]},
    )

    assert response.status_code == 200
    assert [mail["to"] for mail in mailer.sent] == ["jan@voorbeeld.be"]
