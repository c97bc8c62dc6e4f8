"""Social sign-in routes"""

from fastapi import APIRouter, Depends, Request, BackgroundTasks
from pydantic import BaseModel
from sqlalchemy.orm import Session
from typing import Optional
from warden.database.database import get_db
from warden.services.social_auth_service import SocialAuthService
from warden.services.oauth import OAuthProviderFactory
from warden.services.notification_service import notification_service
from warden.middleware.auth_middleware import get_client_info
from warden.middleware.rate_limiting import rate_limit

router = APIRouter()

RATE_LIMIT_SOCIAL = rate_limit("auth:social", limit=10, window=60)


class SocialSignInRequest(BaseModel):
    provider: str
    callback_url: Optional[str] = None


@router.get("/providers")
async def list_providers():
    """Names of the providers available for sign-in"""
    return {"providers": OAuthProviderFactory.list_providers()}


@router.post("")
async def sign_in_with_social(
    request: SocialSignInRequest,
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_SOCIAL)
):
    """Start a provider sign-in; the client redirects to the returned URL"""
    return SocialAuthService(db).sign_in_with_social(request.provider, request.callback_url)


@router.get("/callback")
async def social_callback(
    code: str,
    state: str,
    raw_request: Request,
    background_tasks: BackgroundTasks,
    provider: Optional[str] = None,
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_SOCIAL)
):
    """Provider redirect target"""
    result = await SocialAuthService(db).complete_social_sign_in(
        code,
        state,
        provider_name=provider,
        **get_client_info(raw_request),
    )
    if result.get("is_new_user") and result.get("user"):
        background_tasks.add_task(
            notification_service.send_welcome_email,
            result["user"]["email"],
            result["user"]["name"],
        )
    return result
