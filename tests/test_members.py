import pytest

from ledenbeheer.errors import DuplicateRecordError, ValidationFailed
from ledenbeheer.models import Member, MemberTag, SegmentEnum, Tag
from ledenbeheer.seed import SEED_TAGS, grant_admin, seed_tags
from ledenbeheer.services.members import (
    create_company,
    create_member,
    delete_member,
    find_company_by_name,
    link_member_account,
    list_members,
    member_tags,
    set_member_tags,
    update_member,
)


def _create(db_session, **data):
    values = {"first_name": "Els", "last_name": "Peeters"}
    values.update(data)
    return create_member(db_session, values)


def test_create_member_validates(db_session):
    with pytest.raises(ValidationFailed) as excinfo:
        create_member(db_session, {"first_name": "", "last_name": "", "email": "geen-mail"})

    assert excinfo.value.messages == [
        "Voornaam is verplicht.",
        "Achternaam is verplicht.",
        "Ongeldig e-mailadres.",
    ]


def test_update_member_replaces_segments(db_session):
    member = create_member(
        db_session,
        {"first_name": "Els", "last_name": "Peeters"},
        segments=[SegmentEnum.DONOR, SegmentEnum.AMBASSADOR],
    )

    update_member(
        db_session,
        member,
        {"first_name": "Els", "last_name": "Peeters-Maes"},
        segments=[SegmentEnum.DONOR, SegmentEnum.BOARD_MEMBER],
    )

    db_session.refresh(member)
    assert member.last_name == "Peeters-Maes"
    assert member.segment_values == {SegmentEnum.DONOR, SegmentEnum.BOARD_MEMBER}


def test_set_member_tags_reuses_existing_tags(db_session):
    member = _create(db_session)
    set_member_tags(db_session, member, ["Vrijwilliger", "Sponsor"])

    tags = set_member_tags(db_session, member, ["vrijwilliger", "Nieuwsbrief", " "])

    assert [tag.name for tag in tags] == ["Nieuwsbrief", "Vrijwilliger"]
    assert [tag.name for tag in member_tags(db_session, member.id)] == [
        "Nieuwsbrief",
        "Vrijwilliger",
    ]
    assert db_session.query(Tag).count() == 3


def test_list_members_filters(db_session):
    els = _create(db_session, city="Gent")
    _create(db_session, first_name="Piet", last_name="Pieters", is_active=False)
    set_member_tags(db_session, els, ["Sponsor"])
    sponsor = db_session.query(Tag).filter_by(name="Sponsor").one()

    assert [m.first_name for m in list_members(db_session, q="gent")] == ["Els"]
    assert [m.first_name for m in list_members(db_session, tag_id=sponsor.id)] == ["Els"]
    assert [m.first_name for m in list_members(db_session, active_only=True)] == ["Els"]


def test_delete_member_removes_tag_links(db_session):
    member = _create(db_session)
    set_member_tags(db_session, member, ["Sponsor"])

    delete_member(db_session, member)

    assert db_session.query(Member).count() == 0
    assert db_session.query(MemberTag).count() == 0
    assert db_session.query(Tag).count() == 1


def test_link_account_rejects_duplicate(db_session, member):
    other = _create(db_session)

    with pytest.raises(DuplicateRecordError) as excinfo:
        link_member_account(db_session, other, member.auth_user_id)

    assert excinfo.value.message == "Er bestaat al een account voor dit e-mailadres"


def test_company_lookup_is_case_insensitive(db_session):
    company = create_company(db_session, {"name": " Acme BV "})

    assert company.name == "Acme BV"
    assert company.country == "België"
    assert find_company_by_name(db_session, "acme bv").id == company.id
    with pytest.raises(ValidationFailed):
        create_company(db_session, {"name": ""})


def test_seed_is_idempotent(db_session):
    assert seed_tags(db_session) == len(SEED_TAGS)
    assert seed_tags(db_session) == 0
    assert grant_admin(db_session, "admin-1") is True
    assert grant_admin(db_session, "admin-1") is False
