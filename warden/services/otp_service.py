"""One-time codes for email OTP, verification links, reset links and challenges"""

from typing import Optional, Dict, Any
from sqlalchemy.orm import Session
from datetime import datetime, timedelta
import secrets
import hashlib
from warden.database.models import OneTimeCode

# Purposes
EMAIL_VERIFICATION = "email_verification"
PASSWORD_RESET = "password_reset"
TWO_FACTOR_OTP = "two_factor_otp"
PASSKEY_CHALLENGE = "passkey_challenge"
OAUTH_STATE = "oauth_state"


def generate_otp_code() -> str:
    """Generate a 6-digit OTP code"""
    return f"{secrets.randbelow(1000000):06d}"


def generate_link_token() -> str:
    """Generate an unguessable token for emailed links"""
    return secrets.token_urlsafe(32)


def hash_otp_code(code: str) -> str:
    """Hash an OTP code for storage"""
    return hashlib.sha256(code.encode()).hexdigest()


class OTPService:
    """One-time code service"""

    @staticmethod
    def create_code(
        db: Session,
        purpose: str,
        expires_minutes: int,
        user_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
        numeric: bool = True,
    ) -> str:
        """Create a code and return it in plain text; only its hash is stored"""
        code = generate_otp_code() if numeric else generate_link_token()

        otp = OneTimeCode(
            user_id=user_id,
            code_hash=hash_otp_code(code),
            purpose=purpose,
            payload=payload or {},
            expires_at=datetime.utcnow() + timedelta(minutes=expires_minutes),
        )
        db.add(otp)
        db.commit()

        return code

    @staticmethod
    def consume_code(
        db: Session,
        code: str,
        purpose: str,
        user_id: Optional[str] = None,
    ) -> Optional[OneTimeCode]:
        """Mark a valid code as used and return it, or None if it is not usable"""
        if not code:
            return None

        query = db.query(OneTimeCode).filter(
            OneTimeCode.code_hash == hash_otp_code(code),
            OneTimeCode.purpose == purpose,
            OneTimeCode.expires_at > datetime.utcnow(),
            OneTimeCode.used_at.is_(None),
        )
        if user_id is not None:
            query = query.filter(OneTimeCode.user_id == user_id)

        otp = query.first()
        if not otp:
            return None

        otp.used_at = datetime.utcnow()
        db.commit()

        return otp

    @staticmethod
    def invalidate_user_codes(db: Session, user_id: str, purpose: str) -> None:
        """Invalidate all unused codes for a user and purpose"""
        db.query(OneTimeCode).filter(
            OneTimeCode.user_id == user_id,
            OneTimeCode.purpose == purpose,
            OneTimeCode.used_at.is_(None),
        ).update({"used_at": datetime.utcnow()})
        db.commit()
