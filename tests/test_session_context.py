from ledenbeheer.models import RoleEnum
from ledenbeheer.services.members import link_member_account
from ledenbeheer.session_context import ANONYMOUS, load_session_context


def test_missing_user_is_anonymous(db_session):
    context = load_session_context(db_session, None)

    assert context is ANONYMOUS
    assert not context.is_authenticated
    assert not context.is_admin


def test_admin_roles_and_member_link(db_session, admin_role, member):
    admin = load_session_context(db_session, "admin-1")
    linked = load_session_context(db_session, "member-1")

    assert admin.roles == frozenset({RoleEnum.ADMIN})
    assert admin.member_id is None
    assert linked.member_id == member.id
    assert not linked.is_admin


def test_refresh_picks_up_new_member_link(db_session, admin_role, member):
    context = load_session_context(db_session, "admin-1")
    link_member_account(db_session, member, "admin-1")

    refreshed = context.refresh(db_session)

    assert context.member_id is None
    assert refreshed.member_id == member.id
    assert refreshed.is_admin
