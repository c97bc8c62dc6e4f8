"""Unit tests for organization and membership management"""

from datetime import datetime, timedelta

import pytest
from warden.database.models import Invitation, Membership, Organization
from warden.errors import Forbidden, InvalidInput, InvalidState, NotFound, SlugTaken
from warden.security.permissions import Role
from warden.services.auth_service import AuthService
from warden.services.organization_service import OrganizationService

PASSWORD = "TestPassword123!"


@pytest.fixture
def org(db, user):
    return OrganizationService.create_organization(db, user.id, "Acme Inc", "acme")


@pytest.fixture
def admin(db, org, make_user):
    admin = make_user("admin@example.com")
    db.add(Membership(organization_id=org.id, user_id=admin.id, role="admin"))
    db.commit()
    return admin


@pytest.fixture
def member(db, org, make_user):
    member = make_user("member@example.com")
    db.add(Membership(organization_id=org.id, user_id=member.id, role="member"))
    db.commit()
    return member


def _session_for(db, user):
    tokens = AuthService.sign_in_with_credentials(db, user.email, PASSWORD)
    return AuthService.get_current_session(db, tokens["access_token"])[1]


@pytest.mark.unit
def test_create_organization_makes_creator_owner(db, user, org):
    assert org.slug == "acme"
    assert OrganizationService.resolve_role(db, org.id, user.id) == Role.OWNER
    assert db.query(Membership).filter(Membership.organization_id == org.id).count() == 1


@pytest.mark.unit
def test_duplicate_slug_is_rejected_without_side_effects(db, user, org, make_user):
    other = make_user("other@example.com")

    with pytest.raises(SlugTaken):
        OrganizationService.create_organization(db, other.id, "Other", "acme")

    assert db.query(Organization).count() == 1
    assert OrganizationService.list_user_organizations(db, other.id) == []


@pytest.mark.unit
@pytest.mark.parametrize("slug", ["", "Acme", "acme inc", "acme_inc", "acmé"])
def test_malformed_slug_is_invalid_input(db, user, slug):
    with pytest.raises(InvalidInput):
        OrganizationService.create_organization(db, user.id, "Acme", slug)


@pytest.mark.unit
def test_blank_name_is_invalid_input(db, user):
    with pytest.raises(InvalidInput):
        OrganizationService.create_organization(db, user.id, "   ", "acme")


@pytest.mark.unit
def test_check_slug(db, org):
    assert OrganizationService.check_slug(db, "acme") is False
    assert OrganizationService.check_slug(db, "Bad Slug") is False
    assert OrganizationService.check_slug(db, "acme-2") is True


@pytest.mark.unit
def test_list_user_organizations_includes_role(db, user, org, member):
    assert OrganizationService.list_user_organizations(db, user.id)[0]["role"] == "owner"
    assert OrganizationService.list_user_organizations(db, member.id)[0]["role"] == "member"


@pytest.mark.unit
def test_full_organization_requires_membership(db, org, make_user):
    outsider = make_user("outsider@example.com")
    with pytest.raises(Forbidden):
        OrganizationService.get_full_organization(db, org.id, outsider.id)


@pytest.mark.unit
def test_full_organization(db, user, org, member):
    full = OrganizationService.get_full_organization(db, org.id, member.id)

    assert full["role"] == "member"
    assert {m["email"] for m in full["members"]} == {user.email, member.email}
    assert full["invitations"] == []


@pytest.mark.unit
def test_full_organization_hides_stale_invitations(db, user, org):
    db.add_all([
        Invitation(organization_id=org.id, email="fresh@example.com", inviter_id=user.id,
                   expires_at=datetime.utcnow() + timedelta(days=1)),
        Invitation(organization_id=org.id, email="stale@example.com", inviter_id=user.id,
                   expires_at=datetime.utcnow() - timedelta(minutes=1)),
    ])
    db.commit()

    full = OrganizationService.get_full_organization(db, org.id, user.id)

    assert [i["email"] for i in full["invitations"]] == ["fresh@example.com"]


@pytest.mark.unit
def test_admin_can_update_member_cannot(db, org, admin, member):
    updated = OrganizationService.update_organization(db, org.id, admin.id, name="Acme Labs", slug="acme-labs")
    assert updated.name == "Acme Labs"
    assert updated.slug == "acme-labs"

    with pytest.raises(Forbidden):
        OrganizationService.update_organization(db, org.id, member.id, name="Hijacked")


@pytest.mark.unit
def test_update_to_taken_slug(db, user, org):
    OrganizationService.create_organization(db, user.id, "Second", "second")
    with pytest.raises(SlugTaken):
        OrganizationService.update_organization(db, org.id, user.id, slug="second")


@pytest.mark.unit
def test_admin_removes_member(db, org, admin, member):
    result = OrganizationService.remove_member(db, org.id, admin.id, member.id)

    assert result == {"removed": True, "user_id": member.id}
    assert OrganizationService.get_membership(db, org.id, member.id) is None


@pytest.mark.unit
def test_removing_non_member_is_noop(db, org, admin, member):
    OrganizationService.remove_member(db, org.id, admin.id, member.id)
    assert OrganizationService.remove_member(db, org.id, admin.id, member.id)["removed"] is False


@pytest.mark.unit
def test_member_cannot_remove_others(db, org, admin, member):
    with pytest.raises(Forbidden):
        OrganizationService.remove_member(db, org.id, member.id, admin.id)
    assert OrganizationService.get_membership(db, org.id, admin.id) is not None


@pytest.mark.unit
def test_owner_cannot_be_removed_by_anyone(db, user, org, admin):
    with pytest.raises(Forbidden):
        OrganizationService.remove_member(db, org.id, admin.id, user.id)
    with pytest.raises(Forbidden):
        OrganizationService.remove_member(db, org.id, user.id, user.id)
    assert OrganizationService.resolve_role(db, org.id, user.id) == Role.OWNER


@pytest.mark.unit
@pytest.mark.parametrize("leaver", ["admin", "member"])
def test_admin_and_member_can_leave(request, db, org, leaver):
    person = request.getfixturevalue(leaver)
    assert OrganizationService.remove_member(db, org.id, person.id, person.id)["removed"] is True


@pytest.mark.unit
def test_role_is_resolved_fresh_on_every_call(db, user, org, admin, member):
    OrganizationService.update_member_role(db, org.id, user.id, admin.id, "member")

    # Demoted admin loses removal rights immediately
    with pytest.raises(Forbidden):
        OrganizationService.remove_member(db, org.id, admin.id, member.id)


@pytest.mark.unit
def test_update_member_role_rules(db, user, org, admin, member):
    assert OrganizationService.update_member_role(db, org.id, user.id, member.id, "admin").role == "admin"

    with pytest.raises(Forbidden):
        OrganizationService.update_member_role(db, org.id, admin.id, member.id, "member")
    with pytest.raises(InvalidInput):
        OrganizationService.update_member_role(db, org.id, user.id, member.id, "owner")
    with pytest.raises(InvalidInput):
        OrganizationService.update_member_role(db, org.id, user.id, member.id, "superuser")
    with pytest.raises(InvalidState):
        OrganizationService.update_member_role(db, org.id, user.id, user.id, "member")
    with pytest.raises(NotFound):
        OrganizationService.update_member_role(db, org.id, user.id, "missing-user", "member")


@pytest.mark.unit
def test_only_owner_deletes(db, user, org, admin):
    session = _session_for(db, user)
    OrganizationService.set_active_organization(db, session, user.id, org.id)

    with pytest.raises(Forbidden):
        OrganizationService.delete_organization(db, org.id, admin.id)

    OrganizationService.delete_organization(db, org.id, user.id)
    db.refresh(session)
    assert OrganizationService.get_organization(db, org.id) is None
    assert db.query(Membership).count() == 0
    assert session.active_organization_id is None


@pytest.mark.unit
def test_active_organization(db, user, org, make_user):
    session = _session_for(db, user)
    assert OrganizationService.get_active_organization(db, session, user.id) is None

    OrganizationService.set_active_organization(db, session, user.id, org.id)
    active = OrganizationService.get_active_organization(db, session, user.id)
    assert active["id"] == org.id
    assert active["role"] == "owner"

    OrganizationService.set_active_organization(db, session, user.id, None)
    assert OrganizationService.get_active_organization(db, session, user.id) is None

    outsider = make_user("outsider@example.com")
    with pytest.raises(Forbidden):
        OrganizationService.set_active_organization(db, _session_for(db, outsider), outsider.id, org.id)


@pytest.mark.unit
def test_active_organization_cleared_after_removal(db, org, admin, member):
    session = _session_for(db, member)
    OrganizationService.set_active_organization(db, session, member.id, org.id)

    OrganizationService.remove_member(db, org.id, admin.id, member.id)
    db.refresh(session)

    assert session.active_organization_id is None
    assert OrganizationService.get_active_organization(db, session, member.id) is None
