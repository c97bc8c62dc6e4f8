"""Session management routes"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from warden.database.database import get_db
from warden.services.auth_service import AuthService
from warden.middleware.auth_middleware import AuthContext, require_auth

router = APIRouter()


@router.get("")
async def list_sessions(
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    """Active sessions of the signed-in user; the current one is flagged"""
    sessions = AuthService.list_sessions(db, auth_context.user.id)
    return [s.to_dict(current_session_id=auth_context.session_id) for s in sessions]


@router.delete("/{session_id}")
async def revoke_session(
    session_id: str,
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    """
    Revoke one session.

    Revoking the current session signs the caller out; the response then
    carries ``signed_out`` and the sign-in path to redirect to.
    """
    return AuthService.revoke_session(
        db,
        auth_context.user.id,
        session_id,
        current_session_id=auth_context.session_id,
    )


@router.post("/revoke-others")
async def revoke_other_sessions(
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    revoked = AuthService.revoke_other_sessions(db, auth_context.user.id, auth_context.session_id)
    return {"revoked": revoked}
