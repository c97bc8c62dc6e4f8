"""Authentication routes"""

import re
from fastapi import APIRouter, Depends, status, Request, BackgroundTasks
from pydantic import BaseModel, EmailStr, field_validator
from sqlalchemy.orm import Session
from typing import Optional
from warden.config import settings
from warden.database.database import get_db
from warden.services.auth_service import AuthService
from warden.services.organization_service import OrganizationService
from warden.services.notification_service import notification_service
from warden.middleware.auth_middleware import AuthContext, require_auth, get_client_info
from warden.middleware.rate_limiting import rate_limit, enforce_rate_limit

router = APIRouter()

# Rate limit configurations (requests per minute)
RATE_LIMIT_SIGN_UP = rate_limit("auth:sign_up", limit=3, window=60)
RATE_LIMIT_SIGN_OUT = rate_limit("auth:sign_out", limit=10, window=60)
RATE_LIMIT_REFRESH = rate_limit("auth:refresh", limit=10, window=60)
RATE_LIMIT_VERIFY = rate_limit("auth:verify", limit=5, window=60)
RATE_LIMIT_RESEND = rate_limit("auth:resend", limit=3, window=60)
RATE_LIMIT_FORGOT = rate_limit("auth:forgot", limit=3, window=60)
RATE_LIMIT_RESET = rate_limit("auth:reset", limit=5, window=60)
RATE_LIMIT_ME = rate_limit("auth:me", limit=30, window=60)
RATE_LIMIT_PROFILE = rate_limit("auth:profile", limit=10, window=60)
RATE_LIMIT_PASSWORD = rate_limit("auth:password", limit=5, window=60)
SIGN_IN_RATE_LIMIT = 10
SIGN_IN_RATE_LIMIT_WINDOW_SECONDS = 60

PASSWORD_RESET_MESSAGE = "If an account with this email exists, a password reset link has been sent"
VERIFICATION_MESSAGE = "If the email exists and is unverified, a verification link has been sent"

# Name validation pattern: letters, accented chars, apostrophes, hyphens, spaces
NAME_PATTERN = re.compile(r"^[\w\s'\-À-ɏ]+$")


def validate_person_name(value: str) -> str:
    value = value.strip()
    if len(value) < 1:
        raise ValueError("Name is required")
    if len(value) > 100:
        raise ValueError("Name must be at most 100 characters")
    if not NAME_PATTERN.match(value):
        raise ValueError("Name contains invalid characters")
    return value


class SignUpRequest(BaseModel):
    email: EmailStr
    password: str
    name: str
    image: Optional[str] = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: str) -> str:
        return validate_person_name(v)


class SignInRequest(BaseModel):
    email: EmailStr
    password: str
    remember_me: bool = True


class RefreshRequest(BaseModel):
    refresh_token: str


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str
    new_password: str


class SendVerificationRequest(BaseModel):
    email: EmailStr


class VerifyEmailRequest(BaseModel):
    token: str


class UpdateProfileRequest(BaseModel):
    name: Optional[str] = None
    image: Optional[str] = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            return validate_person_name(v)
        return v


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str
    revoke_other_sessions: bool = False


class DeleteAccountRequest(BaseModel):
    password: Optional[str] = None


@router.post("/sign-up", status_code=status.HTTP_201_CREATED)
async def sign_up(
    request: SignUpRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_SIGN_UP)
):
    """Register a new user"""
    user = AuthService.sign_up(db, request.email, request.password, request.name, request.image)
    verification_url = AuthService.create_email_verification(db, user)

    background_tasks.add_task(notification_service.send_welcome_email, user.email, user.name)
    background_tasks.add_task(
        notification_service.send_email_verification,
        user.email,
        verification_url,
        settings.EMAIL_VERIFICATION_EXPIRE_MINUTES,
    )

    return {
        "user": user.to_dict(),
        "message": "Please check your email to verify your address",
    }


@router.post("/sign-in")
async def sign_in(
    request: SignInRequest,
    raw_request: Request,
    db: Session = Depends(get_db),
):
    """Sign in with email and password"""
    await enforce_rate_limit(
        request=raw_request,
        key="auth:sign_in",
        limit=SIGN_IN_RATE_LIMIT,
        window=SIGN_IN_RATE_LIMIT_WINDOW_SECONDS,
        identifier=request.email.lower(),
    )

    return AuthService.sign_in_with_credentials(
        db,
        request.email,
        request.password,
        remember_me=request.remember_me,
        **get_client_info(raw_request),
    )


@router.post("/sign-out")
async def sign_out(
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_SIGN_OUT)
):
    """Sign out of the current session"""
    AuthService.sign_out(db, auth_context.session_id)
    return {"message": "Signed out successfully", "redirect_to": settings.SIGN_IN_PATH}


@router.post("/refresh")
async def refresh_token(
    request: RefreshRequest,
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_REFRESH)
):
    """Refresh access token"""
    return AuthService.refresh_access_token(db, request.refresh_token)


@router.get("/me")
async def get_current_user_info(
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_ME)
):
    """Current user, session and active organization"""
    return {
        "user": auth_context.user.to_dict(),
        "session": auth_context.session.to_dict(current_session_id=auth_context.session_id),
        "active_organization": OrganizationService.get_active_organization(
            db, auth_context.session, auth_context.user.id
        ),
    }


@router.patch("/profile")
async def update_profile(
    request: UpdateProfileRequest,
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_PROFILE)
):
    """Update name and avatar"""
    user = AuthService.update_profile(db, auth_context.user, name=request.name, image=request.image)
    return user.to_dict()


@router.post("/change-password")
async def change_password(
    request: ChangePasswordRequest,
    background_tasks: BackgroundTasks,
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_PASSWORD)
):
    """Change password, optionally signing out every other session"""
    revoked = AuthService.change_password(
        db,
        auth_context.user,
        request.current_password,
        request.new_password,
        revoke_other_sessions=request.revoke_other_sessions,
        current_session_id=auth_context.session_id,
    )
    background_tasks.add_task(notification_service.send_password_changed_email, auth_context.user.email)
    return {"message": "Password changed successfully", "sessions_revoked": revoked}


@router.post("/delete-account")
async def delete_account(
    request: DeleteAccountRequest,
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_PASSWORD)
):
    """Delete the signed-in account"""
    AuthService.delete_account(db, auth_context.user, request.password)
    return {"message": "Account deleted", "redirect_to": settings.SIGN_IN_PATH}


@router.post("/forgot-password")
async def forgot_password(
    request: ForgotPasswordRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_FORGOT)
):
    """Request a password reset link"""
    # Same response whether or not the account exists
    reset = AuthService.request_password_reset(db, request.email)
    if reset:
        email, url = reset
        background_tasks.add_task(
            notification_service.send_password_reset_email,
            email,
            url,
            settings.PASSWORD_RESET_EXPIRE_MINUTES,
        )
    return {"message": PASSWORD_RESET_MESSAGE}


@router.post("/reset-password")
async def reset_password(
    request: ResetPasswordRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_RESET)
):
    """Reset password with an emailed token"""
    user = AuthService.reset_password(db, request.token, request.new_password)
    background_tasks.add_task(notification_service.send_password_changed_email, user.email)
    return {"message": "Password reset successfully", "redirect_to": settings.SIGN_IN_PATH}


@router.post("/send-verification-email")
async def send_verification_email(
    request: SendVerificationRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_RESEND)
):
    """Send a new verification link"""
    pending = AuthService.send_verification_email(db, request.email)
    if pending:
        email, url = pending
        background_tasks.add_task(
            notification_service.send_email_verification,
            email,
            url,
            settings.EMAIL_VERIFICATION_EXPIRE_MINUTES,
        )
    return {"message": VERIFICATION_MESSAGE}


@router.post("/verify-email")
async def verify_email(
    request: VerifyEmailRequest,
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_VERIFY)
):
    """Verify email address with an emailed token"""
    user = AuthService.verify_email(db, request.token)
    return {"message": "Email verified successfully", "user": user.to_dict()}
