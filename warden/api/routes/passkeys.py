"""Passkey routes"""

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel
from sqlalchemy.orm import Session
from typing import Optional, Dict, Any
from warden.database.database import get_db
from warden.services.passkey_service import PasskeyService
from warden.middleware.auth_middleware import AuthContext, require_auth, get_client_info
from warden.middleware.rate_limiting import rate_limit

router = APIRouter()

RATE_LIMIT_PASSKEY = rate_limit("auth:passkey", limit=10, window=60)


class RegisterPasskeyRequest(BaseModel):
    challenge: str
    credential: Dict[str, Any]
    name: Optional[str] = None


class PasskeySignInRequest(BaseModel):
    challenge: str
    credential: Dict[str, Any]
    remember_me: bool = True


@router.post("/register/options")
async def registration_options(
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_PASSKEY)
):
    """Challenge for adding a passkey to the signed-in account"""
    return PasskeyService.create_challenge(db, auth_context.user)


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register_passkey(
    request: RegisterPasskeyRequest,
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_PASSKEY)
):
    passkey = PasskeyService.register_passkey(
        db,
        auth_context.user,
        request.challenge,
        request.credential,
        name=request.name,
    )
    return passkey.to_dict()


@router.post("/sign-in/options")
async def sign_in_options(
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_PASSKEY)
):
    """Challenge for signing in with a passkey"""
    return PasskeyService.create_challenge(db)


@router.post("/sign-in")
async def sign_in_with_passkey(
    request: PasskeySignInRequest,
    raw_request: Request,
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_PASSKEY)
):
    return PasskeyService.sign_in_with_passkey(
        db,
        request.challenge,
        request.credential,
        remember_me=request.remember_me,
        **get_client_info(raw_request),
    )


@router.get("")
async def list_passkeys(
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    return [p.to_dict() for p in PasskeyService.list_passkeys(db, auth_context.user.id)]


@router.delete("/{passkey_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_passkey(
    passkey_id: str,
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    PasskeyService.delete_passkey(db, auth_context.user.id, passkey_id)
