"""Passkey registration and sign-in"""

from typing import Optional, Dict, Any, List
from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
import structlog

from warden.config import settings
from warden.database.models import User, PasskeyCredential
from warden.errors import NotFound, PasskeyAuthFailed
from warden.services.auth_service import AuthService
from warden.services.otp_service import OTPService, PASSKEY_CHALLENGE
from warden.services.passkey import PasskeyVerifierFactory, PasskeyVerificationError

logger = structlog.get_logger()

REGISTRATION = "registration"
AUTHENTICATION = "authentication"


class PasskeyService:
    """Passkey service"""

    @staticmethod
    def create_challenge(db: Session, user: Optional[User] = None) -> Dict[str, Any]:
        """
        Issue a single-use WebAuthn challenge.

        With a user the challenge is bound to registering a new passkey for
        that user; without one it can only be used to sign in.
        """
        ceremony = REGISTRATION if user else AUTHENTICATION
        challenge = OTPService.create_code(
            db,
            PASSKEY_CHALLENGE,
            settings.PASSKEY_CHALLENGE_EXPIRE_MINUTES,
            user_id=user.id if user else None,
            payload={"ceremony": ceremony},
            numeric=False,
        )

        options: Dict[str, Any] = {
            "challenge": challenge,
            "rp_id": settings.PASSKEY_RP_ID,
            "timeout": settings.PASSKEY_CHALLENGE_EXPIRE_MINUTES * 60 * 1000,
            "ceremony": ceremony,
        }
        if user:
            options["user"] = {"id": user.id, "name": user.email, "display_name": user.name}
            options["exclude_credentials"] = [p.credential_id for p in user.passkeys]
        return options

    @staticmethod
    def _consume_challenge(db: Session, challenge: str, ceremony: str, user_id: Optional[str] = None) -> None:
        stored = OTPService.consume_code(db, challenge, PASSKEY_CHALLENGE, user_id=user_id)
        if not stored or (stored.payload or {}).get("ceremony") != ceremony:
            raise PasskeyAuthFailed()

    @staticmethod
    def register_passkey(
        db: Session,
        user: User,
        challenge: str,
        credential: Dict[str, Any],
        name: Optional[str] = None,
    ) -> PasskeyCredential:
        """Verify an attestation and store the new credential"""
        PasskeyService._consume_challenge(db, challenge, REGISTRATION, user_id=user.id)

        verifier = PasskeyVerifierFactory.create()
        try:
            result = verifier.verify_registration(challenge, credential)
        except (PasskeyVerificationError, KeyError, TypeError, ValueError) as e:
            logger.info("passkey_registration_failed", user_id=user.id, error=type(e).__name__)
            raise PasskeyAuthFailed("Passkey registration failed")

        passkey = PasskeyCredential(
            user_id=user.id,
            credential_id=result.credential_id,
            public_key=result.public_key,
            sign_count=result.sign_count,
            name=(name or "Passkey")[:100],
        )
        db.add(passkey)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise PasskeyAuthFailed("Passkey is already registered")
        db.refresh(passkey)

        logger.info("passkey_registered", user_id=user.id, passkey_id=passkey.id)
        return passkey

    @staticmethod
    def sign_in_with_passkey(
        db: Session,
        challenge: str,
        credential: Dict[str, Any],
        remember_me: bool = True,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Verify an assertion and open a session for the credential's owner"""
        PasskeyService._consume_challenge(db, challenge, AUTHENTICATION)

        credential_id = str((credential or {}).get("id", ""))
        passkey = db.query(PasskeyCredential).filter(
            PasskeyCredential.credential_id == credential_id
        ).first()
        if not passkey:
            logger.info("passkey_sign_in_failed", reason="unknown_credential")
            raise PasskeyAuthFailed()

        verifier = PasskeyVerifierFactory.create()
        try:
            result = verifier.verify_authentication(
                challenge,
                credential,
                passkey.public_key,
                passkey.sign_count,
            )
        except (PasskeyVerificationError, KeyError, TypeError, ValueError) as e:
            logger.info("passkey_sign_in_failed", user_id=passkey.user_id, error=type(e).__name__)
            raise PasskeyAuthFailed()

        passkey.sign_count = result.new_sign_count
        db.commit()

        return AuthService.start_session(
            db,
            passkey.user,
            remember_me=remember_me,
            user_agent=user_agent,
            ip_address=ip_address,
            strong_factor=True,
        )

    @staticmethod
    def list_passkeys(db: Session, user_id: str) -> List[PasskeyCredential]:
        return db.query(PasskeyCredential).filter(
            PasskeyCredential.user_id == user_id
        ).order_by(PasskeyCredential.created_at).all()

    @staticmethod
    def delete_passkey(db: Session, user_id: str, passkey_id: str) -> None:
        passkey = db.query(PasskeyCredential).filter(
            PasskeyCredential.id == passkey_id,
            PasskeyCredential.user_id == user_id,
        ).first()
        if not passkey:
            raise NotFound("Passkey not found")

        db.delete(passkey)
        db.commit()
        logger.info("passkey_deleted", user_id=user_id, passkey_id=passkey_id)
