"""Two-factor authentication routes"""

from fastapi import APIRouter, Depends, BackgroundTasks
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session
from warden.database.database import get_db
from warden.services.two_fa_service import TwoFAService
from warden.services.notification_service import notification_service
from warden.middleware.auth_middleware import AuthContext, require_auth
from warden.middleware.rate_limiting import rate_limit

router = APIRouter()

RATE_LIMIT_2FA = rate_limit("auth:2fa", limit=5, window=60)
RATE_LIMIT_2FA_VERIFY = rate_limit("auth:2fa_verify", limit=10, window=60)
RATE_LIMIT_OTP_SEND = rate_limit("auth:otp_send", limit=3, window=60)


class PasswordRequest(BaseModel):
    password: str


class CodeRequest(BaseModel):
    code: str

    @field_validator('code')
    @classmethod
    def strip_code(cls, v: str) -> str:
        return v.strip()


class ChallengeRequest(BaseModel):
    challenge_token: str


class ChallengeCodeRequest(ChallengeRequest):
    code: str

    @field_validator('code')
    @classmethod
    def strip_code(cls, v: str) -> str:
        return v.strip()


@router.get("/status")
async def get_status(auth_context: AuthContext = Depends(require_auth)):
    return TwoFAService.get_state(auth_context.user)


@router.post("/enable")
async def begin_enrollment(
    request: PasswordRequest,
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_2FA)
):
    """Start TOTP enrollment; returns the provisioning URI and QR code"""
    return TwoFAService.begin_enrollment(db, auth_context.user, request.password)


@router.post("/confirm")
async def confirm_enrollment(
    request: CodeRequest,
    background_tasks: BackgroundTasks,
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_2FA)
):
    """Confirm enrollment with a code from the authenticator app"""
    result = TwoFAService.confirm_enrollment(db, auth_context.user, request.code)
    background_tasks.add_task(notification_service.send_2fa_enabled_email, auth_context.user.email)
    return result


@router.post("/cancel")
async def cancel_enrollment(
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    return TwoFAService.cancel_enrollment(db, auth_context.user)


@router.post("/disable")
async def disable(
    request: PasswordRequest,
    background_tasks: BackgroundTasks,
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_2FA)
):
    """Disable 2FA with the account password"""
    result = TwoFAService.disable(db, auth_context.user, request.password)
    background_tasks.add_task(notification_service.send_2fa_disabled_email, auth_context.user.email)
    return result


@router.post("/backup-codes")
async def regenerate_backup_codes(
    request: PasswordRequest,
    auth_context: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_2FA)
):
    """Replace all backup codes"""
    return {"backup_codes": TwoFAService.regenerate_backup_codes(db, auth_context.user, request.password)}


@router.post("/verify-totp")
async def verify_totp(
    request: ChallengeCodeRequest,
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_2FA_VERIFY)
):
    """Complete a challenged sign-in with an authenticator code"""
    return TwoFAService.verify_totp(db, request.challenge_token, request.code)


@router.post("/verify-backup-code")
async def verify_backup_code(
    request: ChallengeCodeRequest,
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_2FA_VERIFY)
):
    """Complete a challenged sign-in with a backup code"""
    return TwoFAService.verify_backup_code(db, request.challenge_token, request.code)


@router.post("/send-otp")
async def send_otp(
    request: ChallengeRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_OTP_SEND)
):
    """Email a one-time code for a challenged sign-in"""
    otp = TwoFAService.request_otp(db, request.challenge_token)
    background_tasks.add_task(
        notification_service.send_two_factor_otp,
        otp["email"],
        otp["code"],
        otp["expires_minutes"],
    )
    return {"message": "Verification code sent", "expires_minutes": otp["expires_minutes"]}


@router.post("/verify-otp")
async def verify_otp(
    request: ChallengeCodeRequest,
    db: Session = Depends(get_db),
    _rate_limit: None = Depends(RATE_LIMIT_2FA_VERIFY)
):
    """Complete a challenged sign-in with an emailed code"""
    return TwoFAService.verify_otp(db, request.challenge_token, request.code)
