"""Organization routes"""

from fastapi import APIRouter, Depends, status, BackgroundTasks
from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy.orm import Session
from typing import Optional, Dict, Any
from warden.database.database import get_db
from warden.services.organization_service import OrganizationService, SLUG_PATTERN
from warden.services.invitation_service import InvitationService
from warden.services.notification_service import notification_service
from warden.middleware.auth_middleware import AuthContext, require_auth
from warden.middleware.rate_limiting import rate_limit

router = APIRouter()

RATE_LIMIT_CREATE = rate_limit("organizations:create", limit=5, window=60)
RATE_LIMIT_INVITE = rate_limit("invitations:create", limit=10, window=60)


def validate_slug_format(value: str) -> str:
    value = value.strip()
    if not SLUG_PATTERN.match(value):
        raise ValueError("Slug may only contain lowercase letters, digits and hyphens")
    return value


class OrganizationCreate(BaseModel):
    name: str
    slug: str
    logo: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    @field_validator('slug')
    @classmethod
    def validate_slug(cls, v: str) -> str:
        return validate_slug_format(v)


class OrganizationUpdate(BaseModel):
    name: Optional[str] = None
    slug: Optional[str] = None
    logo: Optional[str] = None

    @field_validator('slug')
    @classmethod
    def validate_slug(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            return validate_slug_format(v)
        return v


class SetActiveOrganizationRequest(BaseModel):
    organization_id: Optional[str] = None


class UpdateMemberRoleRequest(BaseModel):
    role: str


class InviteMemberRequest(BaseModel):
    email: EmailStr
    role: str = "member"


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_organization(
    org_data: OrganizationCreate,
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_CREATE)
):
    """Create an organization owned by the caller"""
    organization = OrganizationService.create_organization(
        db,
        auth_context.user.id,
        org_data.name,
        org_data.slug,
        logo=org_data.logo,
        metadata=org_data.metadata,
    )
    return {**organization.to_dict(), "role": "owner"}


@router.get("")
async def list_organizations(
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    return OrganizationService.list_user_organizations(db, auth_context.user.id)


@router.get("/check-slug")
async def check_slug(
    slug: str,
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    return {"slug": slug, "available": OrganizationService.check_slug(db, slug)}


@router.get("/active")
async def get_active_organization(
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    return {
        "organization": OrganizationService.get_active_organization(
            db, auth_context.session, auth_context.user.id
        )
    }


@router.post("/active")
async def set_active_organization(
    request: SetActiveOrganizationRequest,
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    """Switch the organization the current session acts as; null for personal"""
    OrganizationService.set_active_organization(
        db,
        auth_context.session,
        auth_context.user.id,
        request.organization_id,
    )
    return {
        "organization": OrganizationService.get_active_organization(
            db, auth_context.session, auth_context.user.id
        )
    }


@router.get("/{organization_id}")
async def get_organization(
    organization_id: str,
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    """Organization with members, pending invitations and the caller's role"""
    return OrganizationService.get_full_organization(db, organization_id, auth_context.user.id)


@router.patch("/{organization_id}")
async def update_organization(
    organization_id: str,
    org_data: OrganizationUpdate,
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    organization = OrganizationService.update_organization(
        db,
        organization_id,
        auth_context.user.id,
        name=org_data.name,
        slug=org_data.slug,
        logo=org_data.logo,
    )
    return organization.to_dict()


@router.delete("/{organization_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_organization(
    organization_id: str,
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    OrganizationService.delete_organization(db, organization_id, auth_context.user.id)


@router.get("/{organization_id}/members")
async def list_members(
    organization_id: str,
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    return OrganizationService.list_members(db, organization_id, auth_context.user.id)


@router.delete("/{organization_id}/members/{user_id}")
async def remove_member(
    organization_id: str,
    user_id: str,
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    """Remove a member; removing yourself leaves the organization"""
    return OrganizationService.remove_member(db, organization_id, auth_context.user.id, user_id)


@router.post("/{organization_id}/leave")
async def leave_organization(
    organization_id: str,
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    return OrganizationService.remove_member(
        db, organization_id, auth_context.user.id, auth_context.user.id
    )


@router.patch("/{organization_id}/members/{user_id}")
async def update_member_role(
    organization_id: str,
    user_id: str,
    request: UpdateMemberRoleRequest,
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    membership = OrganizationService.update_member_role(
        db, organization_id, auth_context.user.id, user_id, request.role
    )
    return membership.to_dict()


@router.post("/{organization_id}/invitations", status_code=status.HTTP_201_CREATED)
async def invite_member(
    organization_id: str,
    request: InviteMemberRequest,
    background_tasks: BackgroundTasks,
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_INVITE)
):
    """Invite an email address to the organization"""
    invitation, organization = InvitationService.invite_member(
        db,
        organization_id,
        auth_context.user,
        request.email,
        request.role,
    )

    background_tasks.add_task(
        notification_service.send_invitation_email,
        invitation.email,
        organization.name,
        auth_context.user.email,
        invitation.role,
        invitation.id,
    )
    return invitation.to_dict()


@router.get("/{organization_id}/invitations")
async def list_invitations(
    organization_id: str,
    status_filter: Optional[str] = None,
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    invitations = InvitationService.list_invitations(
        db, organization_id, auth_context.user.id, status=status_filter
    )
    return [inv.to_dict() for inv in invitations]
