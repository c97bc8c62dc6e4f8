"""Organization and membership service

Every mutating operation resolves the caller's role from the memberships
table inside the call. Roles carried by clients or cached on a session are
never trusted.
"""

import re
from datetime import datetime
from typing import Optional, List, Dict, Any
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
import structlog
from warden.database.models import Organization, Membership, Invitation, Session as SessionModel
from warden.errors import Forbidden, InvalidInput, InvalidState, NotFound, SlugTaken
from warden.security.permissions import Action, Role, can, ASSIGNABLE_ROLES

logger = structlog.get_logger()

SLUG_PATTERN = re.compile(r"^[a-z0-9-]+$")


def validate_slug(slug: str) -> str:
    if not slug or not SLUG_PATTERN.match(slug):
        raise InvalidInput("Slug may only contain lowercase letters, digits and hyphens")
    return slug


class OrganizationService:
    """Organization management service"""

    @staticmethod
    def get_membership(db: Session, organization_id: str, user_id: str) -> Optional[Membership]:
        return db.query(Membership).filter(
            Membership.organization_id == organization_id,
            Membership.user_id == user_id,
        ).first()

    @staticmethod
    def resolve_role(db: Session, organization_id: str, user_id: str) -> Role:
        """Current role of the user in the organization; Forbidden if not a member"""
        membership = OrganizationService.get_membership(db, organization_id, user_id)
        if not membership:
            raise Forbidden("You are not a member of this organization")
        return Role.parse(membership.role)

    @staticmethod
    def authorize(db: Session, organization_id: str, user_id: str, action: Action) -> Role:
        """Resolve the caller's role and check it against the permission table"""
        role = OrganizationService.resolve_role(db, organization_id, user_id)
        if not can(role, action):
            logger.info(
                "authorization_denied",
                user_id=user_id,
                organization_id=organization_id,
                role=role.value,
                action=action.value,
            )
            raise Forbidden()
        return role

    @staticmethod
    def create_organization(
        db: Session,
        user_id: str,
        name: str,
        slug: str,
        logo: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Organization:
        """Create an organization with the creator as its only owner"""
        name = (name or "").strip()
        if not name:
            raise InvalidInput("Organization name is required")
        validate_slug(slug)

        if db.query(Organization).filter(Organization.slug == slug).first():
            raise SlugTaken()

        organization = Organization(
            name=name,
            slug=slug,
            logo=logo,
            org_metadata=metadata or {},
        )
        db.add(organization)
        try:
            db.flush()
            db.add(Membership(
                organization_id=organization.id,
                user_id=user_id,
                role=Role.OWNER.value,
            ))
            db.commit()
        except IntegrityError:
            db.rollback()
            raise SlugTaken()

        db.refresh(organization)
        logger.info("organization_created", organization_id=organization.id, owner_id=user_id)
        return organization

    @staticmethod
    def get_organization(db: Session, organization_id: str) -> Optional[Organization]:
        """Get an organization by ID"""
        return db.query(Organization).filter(Organization.id == organization_id).first()

    @staticmethod
    def get_organization_by_slug(db: Session, slug: str) -> Optional[Organization]:
        """Get an organization by slug"""
        return db.query(Organization).filter(Organization.slug == slug).first()

    @staticmethod
    def check_slug(db: Session, slug: str) -> bool:
        """True if the slug is well-formed and free"""
        try:
            validate_slug(slug)
        except InvalidInput:
            return False
        return OrganizationService.get_organization_by_slug(db, slug) is None

    @staticmethod
    def list_user_organizations(db: Session, user_id: str) -> List[Dict[str, Any]]:
        """List all organizations a user belongs to with the user's role"""
        memberships = db.query(Membership).filter(Membership.user_id == user_id).all()
        return [
            {**m.organization.to_dict(), "role": m.role}
            for m in memberships
            if m.organization
        ]

    @staticmethod
    def get_full_organization(db: Session, organization_id: str, user_id: str) -> Dict[str, Any]:
        """Organization with members, pending invitations and the caller's role"""
        role = OrganizationService.resolve_role(db, organization_id, user_id)
        organization = OrganizationService.get_organization(db, organization_id)
        if not organization:
            raise NotFound("Organization not found")

        invitations = db.query(Invitation).filter(
            Invitation.organization_id == organization_id,
            Invitation.status == "pending",
            Invitation.expires_at > datetime.utcnow(),
        ).order_by(Invitation.created_at.desc()).all()

        return {
            **organization.to_dict(),
            "role": role.value,
            "members": OrganizationService.list_members(db, organization_id, user_id),
            "invitations": [inv.to_dict() for inv in invitations],
        }

    @staticmethod
    def update_organization(
        db: Session,
        organization_id: str,
        user_id: str,
        name: Optional[str] = None,
        slug: Optional[str] = None,
        logo: Optional[str] = None,
    ) -> Organization:
        """Update organization details; owners and admins only"""
        role = OrganizationService.resolve_role(db, organization_id, user_id)
        if role not in (Role.OWNER, Role.ADMIN):
            raise Forbidden()

        organization = OrganizationService.get_organization(db, organization_id)
        if not organization:
            raise NotFound("Organization not found")

        if name is not None:
            if not name.strip():
                raise InvalidInput("Organization name is required")
            organization.name = name.strip()
        if slug is not None and slug != organization.slug:
            validate_slug(slug)
            if OrganizationService.get_organization_by_slug(db, slug):
                raise SlugTaken()
            organization.slug = slug
        if logo is not None:
            organization.logo = logo or None

        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise SlugTaken()
        db.refresh(organization)
        return organization

    @staticmethod
    def delete_organization(db: Session, organization_id: str, user_id: str) -> None:
        """Delete an organization with its memberships and invitations"""
        OrganizationService.authorize(db, organization_id, user_id, Action.DELETE_ORG)
        organization = OrganizationService.get_organization(db, organization_id)
        if not organization:
            raise NotFound("Organization not found")

        db.query(SessionModel).filter(
            SessionModel.active_organization_id == organization_id
        ).update({"active_organization_id": None})
        db.delete(organization)
        db.commit()
        logger.info("organization_deleted", organization_id=organization_id, user_id=user_id)

    @staticmethod
    def list_members(db: Session, organization_id: str, user_id: str) -> List[Dict[str, Any]]:
        """List all members of an organization with their roles"""
        OrganizationService.resolve_role(db, organization_id, user_id)
        memberships = db.query(Membership).filter(
            Membership.organization_id == organization_id
        ).order_by(Membership.created_at).all()
        return [m.to_dict() for m in memberships]

    @staticmethod
    def remove_member(
        db: Session,
        organization_id: str,
        caller_id: str,
        target_user_id: str,
    ) -> Dict[str, Any]:
        """
        Remove a member, or leave when the target is the caller.

        Owners can never be removed. Removing someone who is no longer a
        member is a no-op.
        """
        caller_role = OrganizationService.resolve_role(db, organization_id, caller_id)
        target = OrganizationService.get_membership(db, organization_id, target_user_id)

        if target is None:
            return {"removed": False, "user_id": target_user_id}

        if Role.parse(target.role) == Role.OWNER:
            raise Forbidden("The organization owner cannot be removed")

        action = Action.LEAVE if target_user_id == caller_id else Action.REMOVE_MEMBER
        if not can(caller_role, action):
            logger.info(
                "authorization_denied",
                user_id=caller_id,
                organization_id=organization_id,
                role=caller_role.value,
                action=action.value,
            )
            raise Forbidden()

        db.delete(target)
        db.query(SessionModel).filter(
            SessionModel.user_id == target_user_id,
            SessionModel.active_organization_id == organization_id,
        ).update({"active_organization_id": None})
        db.commit()

        logger.info(
            "member_removed",
            organization_id=organization_id,
            user_id=target_user_id,
            removed_by=caller_id,
        )
        return {"removed": True, "user_id": target_user_id}

    @staticmethod
    def update_member_role(
        db: Session,
        organization_id: str,
        caller_id: str,
        target_user_id: str,
        role: str,
    ) -> Membership:
        """Change a member's role between admin and member"""
        OrganizationService.authorize(db, organization_id, caller_id, Action.CHANGE_ROLE)

        try:
            new_role = Role.parse(role)
        except ValueError as e:
            raise InvalidInput(str(e))
        if new_role not in ASSIGNABLE_ROLES:
            raise InvalidInput("Role must be admin or member")

        target = OrganizationService.get_membership(db, organization_id, target_user_id)
        if target is None:
            raise NotFound("Member not found")
        if Role.parse(target.role) == Role.OWNER:
            raise InvalidState("The owner's role cannot be changed")

        target.role = new_role.value
        db.commit()
        db.refresh(target)
        logger.info(
            "member_role_changed",
            organization_id=organization_id,
            user_id=target_user_id,
            role=new_role.value,
        )
        return target

    @staticmethod
    def set_active_organization(
        db: Session,
        session: SessionModel,
        user_id: str,
        organization_id: Optional[str],
    ) -> Optional[Organization]:
        """Select the organization the session acts as; None means personal"""
        if organization_id is None:
            session.active_organization_id = None
            db.commit()
            return None

        OrganizationService.resolve_role(db, organization_id, user_id)
        organization = OrganizationService.get_organization(db, organization_id)
        if not organization:
            raise NotFound("Organization not found")

        session.active_organization_id = organization_id
        db.commit()
        return organization

    @staticmethod
    def get_active_organization(db: Session, session: SessionModel, user_id: str) -> Optional[Dict[str, Any]]:
        """Active organization with a freshly resolved role, or None"""
        organization_id = session.active_organization_id
        if not organization_id:
            return None

        membership = OrganizationService.get_membership(db, organization_id, user_id)
        if not membership or not membership.organization:
            # Membership disappeared since the switch
            session.active_organization_id = None
            db.commit()
            return None

        return {**membership.organization.to_dict(), "role": membership.role}
