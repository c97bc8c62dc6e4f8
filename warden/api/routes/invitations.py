"""Invitation routes for the invitee and for cancellation"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from warden.database.database import get_db
from warden.services.invitation_service import InvitationService
from warden.services.organization_service import OrganizationService
from warden.middleware.auth_middleware import AuthContext, require_auth
from warden.middleware.rate_limiting import rate_limit

router = APIRouter()

RATE_LIMIT_ACCEPT = rate_limit("invitations:accept", limit=5, window=60)


@router.get("")
async def list_my_invitations(
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    """Pending invitations addressed to the signed-in user"""
    return [inv.to_dict() for inv in InvitationService.list_user_invitations(db, auth_context.user)]


@router.post("/{invitation_id}/accept")
async def accept_invitation(
    invitation_id: str,
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_ACCEPT)
):
    """Join the organization and make it the session's active organization"""
    membership = InvitationService.accept_invitation(db, invitation_id, auth_context.user)
    OrganizationService.set_active_organization(
        db,
        auth_context.session,
        auth_context.user.id,
        membership.organization_id,
    )
    return membership.to_dict()


@router.post("/{invitation_id}/reject")
async def reject_invitation(
    invitation_id: str,
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    return InvitationService.reject_invitation(db, invitation_id, auth_context.user).to_dict()


@router.post("/{invitation_id}/cancel")
async def cancel_invitation(
    invitation_id: str,
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    """Revoke a pending invitation; cancelling twice is not an error"""
    return InvitationService.cancel_invitation(db, invitation_id, auth_context.user.id)
