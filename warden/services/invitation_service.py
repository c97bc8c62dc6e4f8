"""Invitation service for adding members to organizations via email"""

from typing import Optional, List, Dict, Any, Tuple
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from datetime import datetime, timedelta
import structlog

from warden.database.models import Invitation, Membership, Organization, User
from warden.errors import (
    DuplicateInvitation,
    EmailNotVerified,
    Forbidden,
    InvalidInput,
    InvalidState,
    NotFound,
)
from warden.security.permissions import Action, Role, ASSIGNABLE_ROLES
from warden.services.auth_service import normalize_email
from warden.services.organization_service import OrganizationService
from warden.config import settings

logger = structlog.get_logger()


def _parse_invitable_role(role: str) -> Role:
    try:
        parsed = Role.parse(role)
    except ValueError as e:
        raise InvalidInput(str(e))
    if parsed not in ASSIGNABLE_ROLES:
        raise InvalidInput("Invitations can only grant the admin or member role")
    return parsed


class InvitationService:
    """Service for managing organization invitations"""

    @staticmethod
    def _expire_if_stale(db: Session, invitation: Invitation) -> Invitation:
        if invitation.status == "pending" and invitation.expires_at <= datetime.utcnow():
            invitation.status = "expired"
            db.commit()
        return invitation

    @staticmethod
    def get_invitation(db: Session, invitation_id: str) -> Invitation:
        invitation = db.query(Invitation).filter(Invitation.id == invitation_id).first()
        if not invitation:
            raise NotFound("Invitation not found")
        return invitation

    @staticmethod
    def invite_member(
        db: Session,
        organization_id: str,
        inviter: User,
        email: str,
        role: str,
    ) -> Tuple[Invitation, Organization]:
        """
        Invite an email address to an organization.

        Args:
            db: Database session
            organization_id: Organization to invite into
            inviter: Signed-in user sending the invitation
            email: Address of the invitee
            role: Role granted on acceptance (admin or member)

        Returns:
            Tuple of (Invitation, Organization) so the caller can send the email

        Raises:
            Forbidden: Caller's current role does not allow inviting
            DuplicateInvitation: A pending invitation already exists for the email
            InvalidState: The address already belongs to a member
        """
        OrganizationService.authorize(db, organization_id, inviter.id, Action.INVITE)
        invited_role = _parse_invitable_role(role)
        email = normalize_email(email)

        organization = OrganizationService.get_organization(db, organization_id)
        if not organization:
            raise NotFound("Organization not found")

        already_member = db.query(Membership).join(User).filter(
            Membership.organization_id == organization_id,
            User.email == email,
        ).first()
        if already_member:
            raise InvalidState("User is already a member of this organization")

        existing = db.query(Invitation).filter(
            Invitation.organization_id == organization_id,
            Invitation.email == email,
            Invitation.status == "pending",
        ).with_for_update().first()
        if existing:
            if existing.expires_at > datetime.utcnow():
                raise DuplicateInvitation()
            existing.status = "expired"
            db.flush()

        invitation = Invitation(
            organization_id=organization_id,
            email=email,
            role=invited_role.value,
            inviter_id=inviter.id,
            status="pending",
            expires_at=datetime.utcnow() + timedelta(days=settings.INVITATION_EXPIRE_DAYS),
        )
        db.add(invitation)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise DuplicateInvitation()
        db.refresh(invitation)

        logger.info(
            "invitation_created",
            invitation_id=invitation.id,
            organization_id=organization_id,
            inviter_id=inviter.id,
            role=invited_role.value,
        )
        return invitation, organization

    @staticmethod
    def cancel_invitation(db: Session, invitation_id: str, caller_id: str) -> Dict[str, Any]:
        """
        Revoke a pending invitation.

        Cancelling an invitation that is already revoked changes nothing and
        is not an error. Accepted or expired invitations cannot be cancelled.
        """
        invitation = InvitationService.get_invitation(db, invitation_id)
        OrganizationService.authorize(db, invitation.organization_id, caller_id, Action.CANCEL_INVITE)
        InvitationService._expire_if_stale(db, invitation)

        if invitation.status == "revoked":
            return {"invitation": invitation.to_dict(), "changed": False}
        if invitation.status != "pending":
            raise InvalidState(f"Cannot cancel an invitation that is {invitation.status}")

        invitation.status = "revoked"
        db.commit()
        db.refresh(invitation)

        logger.info("invitation_revoked", invitation_id=invitation.id, revoked_by=caller_id)
        return {"invitation": invitation.to_dict(), "changed": True}

    @staticmethod
    def list_invitations(
        db: Session,
        organization_id: str,
        caller_id: str,
        status: Optional[str] = None,
    ) -> List[Invitation]:
        """List invitations of an organization, newest first"""
        OrganizationService.resolve_role(db, organization_id, caller_id)

        query = db.query(Invitation).filter(Invitation.organization_id == organization_id)
        if status:
            query = query.filter(Invitation.status == status)
        invitations = query.order_by(Invitation.created_at.desc()).all()
        return [InvitationService._expire_if_stale(db, inv) for inv in invitations]

    @staticmethod
    def list_user_invitations(db: Session, user: User) -> List[Invitation]:
        """Pending invitations addressed to the user's verified email"""
        if not user.email_verified:
            return []
        invitations = db.query(Invitation).filter(
            Invitation.email == normalize_email(user.email),
            Invitation.status == "pending",
        ).order_by(Invitation.created_at.desc()).all()
        return [inv for inv in invitations if InvitationService._expire_if_stale(db, inv).is_valid()]

    @staticmethod
    def _get_for_invitee(db: Session, invitation_id: str, user: User) -> Invitation:
        invitation = InvitationService.get_invitation(db, invitation_id)
        if invitation.email != normalize_email(user.email):
            raise Forbidden("This invitation was sent to a different email address")
        if not user.email_verified:
            raise EmailNotVerified("Verify your email address to respond to this invitation")
        InvitationService._expire_if_stale(db, invitation)
        if not invitation.is_valid():
            raise InvalidState(f"Invitation is {invitation.status}")
        return invitation

    @staticmethod
    def accept_invitation(db: Session, invitation_id: str, user: User) -> Membership:
        """Join the organization with the invited role"""
        invitation = InvitationService._get_for_invitee(db, invitation_id, user)

        membership = OrganizationService.get_membership(db, invitation.organization_id, user.id)
        if membership is None:
            membership = Membership(
                organization_id=invitation.organization_id,
                user_id=user.id,
                role=invitation.role,
            )
            db.add(membership)

        invitation.status = "accepted"
        db.commit()
        db.refresh(membership)

        logger.info(
            "invitation_accepted",
            invitation_id=invitation.id,
            organization_id=invitation.organization_id,
            user_id=user.id,
        )
        return membership

    @staticmethod
    def reject_invitation(db: Session, invitation_id: str, user: User) -> Invitation:
        """Decline an invitation; it can no longer be accepted"""
        invitation = InvitationService._get_for_invitee(db, invitation_id, user)
        invitation.status = "revoked"
        db.commit()
        db.refresh(invitation)
        logger.info("invitation_rejected", invitation_id=invitation.id, user_id=user.id)
        return invitation
