"""Unit tests for organization invitations"""

from datetime import datetime, timedelta

import pytest
from warden.database.models import Invitation, Membership
from warden.errors import (
    DuplicateInvitation,
    EmailNotVerified,
    Forbidden,
    InvalidInput,
    InvalidState,
    NotFound,
)
from warden.services.invitation_service import InvitationService
from warden.services.organization_service import OrganizationService


@pytest.fixture
def org(db, user):
    return OrganizationService.create_organization(db, user.id, "Acme Inc", "acme")


@pytest.fixture
def invitee(make_user):
    return make_user("invitee@example.com", verified=True)


@pytest.fixture
def invitation(db, org, user):
    invitation, _ = InvitationService.invite_member(db, org.id, user, "Invitee@Example.com", "admin")
    return invitation


@pytest.mark.unit
def test_invite_member(db, org, user, invitation):
    assert invitation.email == "invitee@example.com"
    assert invitation.role == "admin"
    assert invitation.status == "pending"
    assert invitation.inviter_id == user.id
    assert invitation.expires_at > datetime.utcnow() + timedelta(days=6)


@pytest.mark.unit
def test_member_cannot_invite(db, org, make_user):
    member = make_user("member@example.com")
    db.add(Membership(organization_id=org.id, user_id=member.id, role="member"))
    db.commit()

    with pytest.raises(Forbidden):
        InvitationService.invite_member(db, org.id, member, "friend@example.com", "member")
    assert db.query(Invitation).count() == 0


@pytest.mark.unit
def test_outsider_cannot_invite(db, org, make_user):
    outsider = make_user("outsider@example.com")
    with pytest.raises(Forbidden):
        InvitationService.invite_member(db, org.id, outsider, "friend@example.com", "member")


@pytest.mark.unit
@pytest.mark.parametrize("role", ["owner", "root"])
def test_invite_rejects_ungrantable_roles(db, org, user, role):
    with pytest.raises(InvalidInput):
        InvitationService.invite_member(db, org.id, user, "friend@example.com", role)


@pytest.mark.unit
def test_duplicate_pending_invitation(db, org, user, invitation):
    with pytest.raises(DuplicateInvitation):
        InvitationService.invite_member(db, org.id, user, "invitee@example.com", "member")
    assert db.query(Invitation).count() == 1


@pytest.mark.unit
def test_expired_invitation_can_be_reissued(db, org, user, invitation):
    invitation.expires_at = datetime.utcnow() - timedelta(minutes=1)
    db.commit()

    fresh, _ = InvitationService.invite_member(db, org.id, user, "invitee@example.com", "member")

    db.refresh(invitation)
    assert invitation.status == "expired"
    assert fresh.status == "pending"


@pytest.mark.unit
def test_inviting_existing_member_is_invalid_state(db, org, user):
    with pytest.raises(InvalidState):
        InvitationService.invite_member(db, org.id, user, user.email, "member")


@pytest.mark.unit
def test_cancel_twice_changes_nothing_second_time(db, org, user, invitation):
    first = InvitationService.cancel_invitation(db, invitation.id, user.id)
    second = InvitationService.cancel_invitation(db, invitation.id, user.id)

    assert first["changed"] is True
    assert first["invitation"]["status"] == "revoked"
    assert second["changed"] is False
    assert second["invitation"]["status"] == "revoked"


@pytest.mark.unit
def test_cancel_requires_permission(db, org, invitation, invitee):
    with pytest.raises(Forbidden):
        InvitationService.cancel_invitation(db, invitation.id, invitee.id)


@pytest.mark.unit
def test_cannot_cancel_accepted_invitation(db, org, user, invitation, invitee):
    InvitationService.accept_invitation(db, invitation.id, invitee)
    with pytest.raises(InvalidState):
        InvitationService.cancel_invitation(db, invitation.id, user.id)


@pytest.mark.unit
def test_outsider_cancel_leaves_stale_invitation_untouched(db, invitation, make_user):
    outsider = make_user("outsider@example.com")
    invitation.expires_at = datetime.utcnow() - timedelta(minutes=1)
    db.commit()

    with pytest.raises(Forbidden):
        InvitationService.cancel_invitation(db, invitation.id, outsider.id)

    db.refresh(invitation)
    assert invitation.status == "pending"


@pytest.mark.unit
def test_unknown_invitation(db, user):
    with pytest.raises(NotFound):
        InvitationService.cancel_invitation(db, "missing", user.id)


@pytest.mark.unit
def test_accept_creates_membership_with_invited_role(db, org, invitation, invitee):
    membership = InvitationService.accept_invitation(db, invitation.id, invitee)

    assert membership.role == "admin"
    assert membership.organization_id == org.id
    db.refresh(invitation)
    assert invitation.status == "accepted"


@pytest.mark.unit
def test_unverified_address_cannot_claim_invitation(db, org, invitation, make_user):
    squatter = make_user("invitee@example.com")

    assert InvitationService.list_user_invitations(db, squatter) == []
    with pytest.raises(EmailNotVerified):
        InvitationService.accept_invitation(db, invitation.id, squatter)
    with pytest.raises(EmailNotVerified):
        InvitationService.reject_invitation(db, invitation.id, squatter)

    db.refresh(invitation)
    db.refresh(squatter)
    assert invitation.status == "pending"
    assert squatter.email_verified is False
    assert OrganizationService.get_membership(db, org.id, squatter.id) is None


@pytest.mark.unit
def test_accept_requires_matching_email(db, invitation, make_user):
    stranger = make_user("stranger@example.com")
    with pytest.raises(Forbidden):
        InvitationService.accept_invitation(db, invitation.id, stranger)


@pytest.mark.unit
def test_cannot_accept_revoked_or_expired(db, user, invitation, invitee):
    InvitationService.cancel_invitation(db, invitation.id, user.id)
    with pytest.raises(InvalidState):
        InvitationService.accept_invitation(db, invitation.id, invitee)


@pytest.mark.unit
def test_expired_invitation_cannot_be_accepted(db, invitation, invitee):
    invitation.expires_at = datetime.utcnow() - timedelta(seconds=1)
    db.commit()

    with pytest.raises(InvalidState):
        InvitationService.accept_invitation(db, invitation.id, invitee)
    db.refresh(invitation)
    assert invitation.status == "expired"


@pytest.mark.unit
def test_reject_invitation(db, invitation, invitee):
    rejected = InvitationService.reject_invitation(db, invitation.id, invitee)
    assert rejected.status == "revoked"
    with pytest.raises(InvalidState):
        InvitationService.accept_invitation(db, invitation.id, invitee)


@pytest.mark.unit
def test_list_invitations(db, org, user, invitation, invitee):
    assert [i.id for i in InvitationService.list_invitations(db, org.id, user.id)] == [invitation.id]
    assert InvitationService.list_invitations(db, org.id, user.id, status="accepted") == []
    assert [i.id for i in InvitationService.list_user_invitations(db, invitee)] == [invitation.id]

    with pytest.raises(Forbidden):
        InvitationService.list_invitations(db, org.id, invitee.id)
