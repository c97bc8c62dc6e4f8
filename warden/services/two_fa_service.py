"""
Two-Factor Authentication service.

TOTP enrollment is a small state machine held on the user row:

    DISABLED --begin_enrollment(password)--> AWAITING_OTP_CONFIRMATION
    AWAITING_OTP_CONFIRMATION --confirm_enrollment(valid code)--> ENABLED
    AWAITING_OTP_CONFIRMATION --confirm_enrollment(bad code)--> (unchanged)
    AWAITING_OTP_CONFIRMATION --cancel_enrollment / begin_enrollment--> discard secret
    ENABLED --disable(password)--> DISABLED

The pending secret is stored encrypted and is only ever returned inside the
provisioning URI of the call that created it.
"""

from typing import Dict, Any
from sqlalchemy.orm import Session
import structlog
from warden.config import settings
from warden.database.models import User
from warden.errors import InvalidCredentials, InvalidOtp, InvalidState
from warden.security.password import verify_password
from warden.security.encryption import encrypt_data, decrypt_data
from warden.security.two_fa import (
    TwoFactorState,
    generate_2fa_secret,
    get_2fa_uri,
    generate_qr_code,
    verify_2fa_code,
    generate_backup_codes,
    hash_backup_code,
)
from warden.services.auth_service import AuthService
from warden.services.otp_service import OTPService, TWO_FACTOR_OTP

logger = structlog.get_logger()


class TwoFAService:
    """2FA service"""

    @staticmethod
    def get_state(user: User) -> Dict[str, Any]:
        return {"state": user.two_fa_state.value, "two_fa_enabled": bool(user.two_fa_enabled)}

    @staticmethod
    def begin_enrollment(db: Session, user: User, password: str) -> Dict[str, Any]:
        """Check the password and issue a fresh pending secret"""
        if user.two_fa_state == TwoFactorState.ENABLED:
            raise InvalidState("Two-factor authentication is already enabled")
        if not verify_password(password, user.password_hash):
            raise InvalidCredentials("Invalid password")

        if user.two_fa_state == TwoFactorState.AWAITING_OTP_CONFIRMATION:
            logger.info("two_factor_enrollment_restarted", user_id=user.id)

        secret = generate_2fa_secret()
        uri = get_2fa_uri(secret, user.email, settings.TWO_FA_ISSUER)
        user.two_fa_pending_secret = encrypt_data(secret)
        db.commit()

        logger.info("two_factor_enrollment_started", user_id=user.id)
        return {
            "state": TwoFactorState.AWAITING_OTP_CONFIRMATION.value,
            "totp_uri": uri,
            "qr_code": generate_qr_code(uri),
        }

    @staticmethod
    def confirm_enrollment(db: Session, user: User, code: str) -> Dict[str, Any]:
        """Enable 2FA if the code matches the pending secret"""
        if user.two_fa_state != TwoFactorState.AWAITING_OTP_CONFIRMATION:
            raise InvalidState("No two-factor enrollment is in progress")

        secret = decrypt_data(user.two_fa_pending_secret)
        if not verify_2fa_code(secret, code):
            # Pending secret is kept so the user can retry with the next code
            raise InvalidOtp("Invalid verification code")

        backup_codes = generate_backup_codes(settings.BACKUP_CODE_COUNT)
        user.two_fa_secret = encrypt_data(secret)
        user.two_fa_pending_secret = None
        user.two_fa_enabled = True
        user.two_fa_backup_codes = [hash_backup_code(c) for c in backup_codes]
        db.commit()
        db.refresh(user)

        logger.info("two_factor_enabled", user_id=user.id)
        return {
            "state": TwoFactorState.ENABLED.value,
            "backup_codes": backup_codes,
        }

    @staticmethod
    def cancel_enrollment(db: Session, user: User) -> Dict[str, Any]:
        """Abandon an enrollment; the pending secret is discarded"""
        if user.two_fa_state == TwoFactorState.AWAITING_OTP_CONFIRMATION:
            user.two_fa_pending_secret = None
            db.commit()
            logger.info("two_factor_enrollment_cancelled", user_id=user.id)
        return TwoFAService.get_state(user)

    @staticmethod
    def disable(db: Session, user: User, password: str) -> Dict[str, Any]:
        """Disable 2FA for a user; only the password is required"""
        if user.two_fa_state != TwoFactorState.ENABLED:
            raise InvalidState("Two-factor authentication is not enabled")
        if not verify_password(password, user.password_hash):
            raise InvalidCredentials("Invalid password")

        user.two_fa_enabled = False
        user.two_fa_secret = None
        user.two_fa_pending_secret = None
        user.two_fa_backup_codes = []
        db.commit()

        logger.info("two_factor_disabled", user_id=user.id)
        return {"state": TwoFactorState.DISABLED.value}

    @staticmethod
    def regenerate_backup_codes(db: Session, user: User, password: str) -> list[str]:
        if user.two_fa_state != TwoFactorState.ENABLED:
            raise InvalidState("Two-factor authentication is not enabled")
        if not verify_password(password, user.password_hash):
            raise InvalidCredentials("Invalid password")

        backup_codes = generate_backup_codes(settings.BACKUP_CODE_COUNT)
        user.two_fa_backup_codes = [hash_backup_code(c) for c in backup_codes]
        db.commit()
        return backup_codes

    @staticmethod
    def verify_totp(db: Session, challenge_token: str, code: str) -> Dict[str, Any]:
        """Complete a challenged sign-in with a TOTP code"""
        user, _ = AuthService.resolve_challenge(db, challenge_token)
        if not user.two_fa_enabled or not user.two_fa_secret:
            raise InvalidState("Two-factor authentication is not enabled")

        if not verify_2fa_code(decrypt_data(user.two_fa_secret), code):
            logger.info("two_factor_failed", user_id=user.id, method="totp")
            raise InvalidOtp("Invalid two-factor code")

        return AuthService.complete_two_factor(db, challenge_token)

    @staticmethod
    def verify_backup_code(db: Session, challenge_token: str, code: str) -> Dict[str, Any]:
        """Complete a challenged sign-in with a single-use backup code"""
        user, _ = AuthService.resolve_challenge(db, challenge_token)
        hashed = hash_backup_code(code)
        remaining = list(user.two_fa_backup_codes or [])
        if hashed not in remaining:
            logger.info("two_factor_failed", user_id=user.id, method="backup_code")
            raise InvalidOtp("Invalid backup code")

        remaining.remove(hashed)
        user.two_fa_backup_codes = remaining
        db.commit()
        return AuthService.complete_two_factor(db, challenge_token)

    @staticmethod
    def request_otp(db: Session, challenge_token: str) -> Dict[str, Any]:
        """Create an email OTP for a challenged sign-in; returns email + code to send"""
        user, _ = AuthService.resolve_challenge(db, challenge_token)
        OTPService.invalidate_user_codes(db, user.id, TWO_FACTOR_OTP)
        code = OTPService.create_code(
            db,
            TWO_FACTOR_OTP,
            settings.OTP_EXPIRE_MINUTES,
            user_id=user.id,
        )
        return {"email": user.email, "code": code, "expires_minutes": settings.OTP_EXPIRE_MINUTES}

    @staticmethod
    def verify_otp(db: Session, challenge_token: str, code: str) -> Dict[str, Any]:
        """Complete a challenged sign-in with an emailed code"""
        user, _ = AuthService.resolve_challenge(db, challenge_token)
        if not OTPService.consume_code(db, code, TWO_FACTOR_OTP, user_id=user.id):
            logger.info("two_factor_failed", user_id=user.id, method="otp")
            raise InvalidOtp("Invalid or expired verification code")

        return AuthService.complete_two_factor(db, challenge_token)
