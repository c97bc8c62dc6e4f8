"""Authentication service"""

from typing import Optional, Dict, Any, Tuple
from sqlalchemy.orm import Session
from sqlalchemy import and_
from datetime import datetime, timedelta
import hashlib
import secrets
import structlog
from warden.database.models import User, Membership, Session as SessionModel
from warden.security.password import hash_password, verify_password, validate_password
from warden.security.jwt import (
    ACCESS,
    REFRESH,
    TWO_FA_CHALLENGE,
    create_access_token,
    create_refresh_token,
    create_challenge_token,
    decode_token,
)
from warden.services.otp_service import OTPService, EMAIL_VERIFICATION, PASSWORD_RESET
from warden.errors import (
    InvalidCredentials,
    EmailNotVerified,
    InvalidInput,
    InvalidOrExpiredToken,
    InvalidState,
)
from warden.config import settings

logger = structlog.get_logger()

TWO_FACTOR_METHODS = ["totp", "otp", "backup_code"]


def generate_session_token() -> str:
    """Generate a session token"""
    return secrets.token_urlsafe(32)


def hash_token(token: str) -> str:
    """Hash a token for storage"""
    return hashlib.sha256(token.encode()).hexdigest()


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    """Authentication service"""

    @staticmethod
    def _get_active_session(db: Session, user_id: str, session_token: str) -> Optional[SessionModel]:
        """Get active, non-expired session by user + session token."""
        return db.query(SessionModel).filter(
            and_(
                SessionModel.user_id == user_id,
                SessionModel.token_hash == hash_token(session_token),
                SessionModel.expires_at > datetime.utcnow(),
            )
        ).first()

    @staticmethod
    def _session_lifetime(remember_me: bool) -> timedelta:
        if remember_me:
            return timedelta(days=settings.REMEMBER_ME_EXPIRE_DAYS)
        return timedelta(hours=settings.SESSION_EXPIRE_HOURS)

    @staticmethod
    def _issue_tokens(user: User, session: SessionModel, session_token: str) -> Dict[str, Any]:
        token_data = {
            "sub": user.id,
            "email": user.email,
            "sid": session_token,
        }
        refresh_lifetime = max(session.expires_at - datetime.utcnow(), timedelta(seconds=1))
        return {
            "access_token": create_access_token(token_data),
            "refresh_token": create_refresh_token(token_data, expires_delta=refresh_lifetime),
            "token_type": "bearer",
            "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            "two_factor_required": False,
            "session": session.to_dict(current_session_id=session.id),
            "user": user.to_dict(),
        }

    @staticmethod
    def start_session(
        db: Session,
        user: User,
        remember_me: bool = True,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
        strong_factor: bool = False,
    ) -> Dict[str, Any]:
        """
        Create a session for an already authenticated first factor.

        If the user has two-factor enabled the session is created unverified
        and only a challenge token is returned. ``strong_factor`` marks a
        passkey sign-in, which needs no second factor.
        """
        challenge_required = bool(user.two_fa_enabled) and not strong_factor
        session_token = generate_session_token()
        session = SessionModel(
            user_id=user.id,
            token_hash=hash_token(session_token),
            user_agent=(user_agent or "")[:512] or None,
            ip_address=ip_address,
            persistent=remember_me,
            two_factor_verified=not challenge_required,
            expires_at=datetime.utcnow() + AuthService._session_lifetime(remember_me),
        )
        db.add(session)
        db.commit()
        db.refresh(session)

        if challenge_required:
            logger.info("two_factor_challenge_issued", user_id=user.id, session_id=session.id)
            return {
                "two_factor_required": True,
                "challenge_token": create_challenge_token({"sub": user.id, "sid": session_token}),
                "methods": TWO_FACTOR_METHODS,
            }

        logger.info("session_created", user_id=user.id, session_id=session.id, persistent=remember_me)
        return AuthService._issue_tokens(user, session, session_token)

    @staticmethod
    def sign_up(
        db: Session,
        email: str,
        password: str,
        name: str,
        image: Optional[str] = None,
    ) -> User:
        """Register a new user"""
        try:
            validate_password(password)
        except ValueError as e:
            raise InvalidInput(str(e))

        email = normalize_email(email)
        existing_user = db.query(User).filter(User.email == email).first()
        if existing_user:
            # Avoid disclosing account existence.
            raise InvalidInput("Registration could not be completed")

        user = User(
            email=email,
            name=name,
            image=image,
            password_hash=hash_password(password),
            email_verified=False,
        )
        db.add(user)
        db.commit()
        db.refresh(user)

        logger.info("user_registered", user_id=user.id)
        return user

    @staticmethod
    def sign_in_with_credentials(
        db: Session,
        email: str,
        password: str,
        remember_me: bool = True,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Authenticate with email and password"""
        user = db.query(User).filter(User.email == normalize_email(email)).first()
        if not user or not verify_password(password, user.password_hash):
            logger.info("sign_in_failed", reason="invalid_credentials")
            raise InvalidCredentials()

        if settings.REQUIRE_EMAIL_VERIFICATION and not user.email_verified:
            raise EmailNotVerified("Email not verified. Please check your email for the verification link.")

        return AuthService.start_session(db, user, remember_me, user_agent, ip_address)

    @staticmethod
    def resolve_challenge(db: Session, challenge_token: str) -> Tuple[User, SessionModel]:
        """Find the pending session behind a two-factor challenge token"""
        payload = decode_token(challenge_token, expected_type=TWO_FA_CHALLENGE)
        if not payload or not payload.get("sub") or not payload.get("sid"):
            raise InvalidOrExpiredToken("Invalid or expired two-factor challenge")

        user = db.query(User).filter(User.id == payload["sub"]).first()
        if not user:
            raise InvalidOrExpiredToken("Invalid or expired two-factor challenge")

        session = AuthService._get_active_session(db, user.id, payload["sid"])
        if not session or session.two_factor_verified:
            raise InvalidOrExpiredToken("Invalid or expired two-factor challenge")

        return user, session

    @staticmethod
    def complete_two_factor(db: Session, challenge_token: str) -> Dict[str, Any]:
        """Mark the challenged session as fully authenticated and issue tokens"""
        payload = decode_token(challenge_token, expected_type=TWO_FA_CHALLENGE)
        user, session = AuthService.resolve_challenge(db, challenge_token)
        session.two_factor_verified = True
        db.commit()
        db.refresh(session)
        logger.info("session_created", user_id=user.id, session_id=session.id, two_factor=True)
        return AuthService._issue_tokens(user, session, payload["sid"])

    @staticmethod
    def sign_out(db: Session, session_id: Optional[str]) -> None:
        """Delete a session; signing out twice is not an error"""
        if not session_id:
            return
        deleted = db.query(SessionModel).filter(SessionModel.id == session_id).delete()
        db.commit()
        if deleted:
            logger.info("session_revoked", session_id=session_id, reason="sign_out")

    @staticmethod
    def invalidate_all_user_sessions(db: Session, user_id: str) -> int:
        """Invalidate all sessions for a user (e.g., on password change)"""
        result = db.query(SessionModel).filter(
            SessionModel.user_id == user_id
        ).delete()
        db.commit()
        return result

    @staticmethod
    def list_sessions(db: Session, user_id: str) -> list[SessionModel]:
        """List fully authenticated, unexpired sessions of a user"""
        return db.query(SessionModel).filter(
            SessionModel.user_id == user_id,
            SessionModel.expires_at > datetime.utcnow(),
            SessionModel.two_factor_verified.is_(True),
        ).order_by(SessionModel.created_at.desc()).all()

    @staticmethod
    def revoke_session(
        db: Session,
        user_id: str,
        session_id: str,
        current_session_id: Optional[str],
    ) -> Dict[str, Any]:
        """
        Revoke one of the caller's sessions.

        ``signed_out`` is True when the caller revoked the session it is
        using, in which case the client must drop its tokens immediately.
        """
        deleted = db.query(SessionModel).filter(
            SessionModel.id == session_id,
            SessionModel.user_id == user_id,
        ).delete()
        db.commit()

        if deleted:
            logger.info("session_revoked", user_id=user_id, session_id=session_id)

        signed_out = session_id == current_session_id
        return {
            "revoked": bool(deleted),
            "signed_out": signed_out,
            "redirect_to": settings.SIGN_IN_PATH if signed_out else None,
        }

    @staticmethod
    def revoke_other_sessions(db: Session, user_id: str, current_session_id: str) -> int:
        """Revoke every session of the user except the current one"""
        result = db.query(SessionModel).filter(
            SessionModel.user_id == user_id,
            SessionModel.id != current_session_id,
        ).delete()
        db.commit()
        return result

    @staticmethod
    def request_password_reset(db: Session, email: str) -> Optional[Tuple[str, str]]:
        """
        Create a reset link for the account, if there is one.

        Returns (email, url) so the caller can send it, or None. Callers must
        respond identically in both cases.
        """
        user = db.query(User).filter(User.email == normalize_email(email)).first()
        if not user:
            return None

        OTPService.invalidate_user_codes(db, user.id, PASSWORD_RESET)
        token = OTPService.create_code(
            db,
            PASSWORD_RESET,
            settings.PASSWORD_RESET_EXPIRE_MINUTES,
            user_id=user.id,
            numeric=False,
        )
        return user.email, f"{settings.FRONTEND_URL}/reset-password?token={token}"

    @staticmethod
    def reset_password(db: Session, token: str, new_password: str) -> User:
        """Set a new password with a reset token and sign out everywhere"""
        try:
            validate_password(new_password)
        except ValueError as e:
            raise InvalidInput(str(e))

        code = OTPService.consume_code(db, token, PASSWORD_RESET)
        if not code or not code.user:
            raise InvalidOrExpiredToken("Invalid or expired reset token")

        user = code.user
        user.password_hash = hash_password(new_password)
        # The reset link went to the address
        user.email_verified = True
        db.commit()

        sessions_invalidated = AuthService.invalidate_all_user_sessions(db, user.id)
        OTPService.invalidate_user_codes(db, user.id, PASSWORD_RESET)
        logger.info("password_reset", user_id=user.id, sessions_invalidated=sessions_invalidated)
        return user

    @staticmethod
    def create_email_verification(db: Session, user: User) -> str:
        """Create a verification link for the user's email"""
        OTPService.invalidate_user_codes(db, user.id, EMAIL_VERIFICATION)
        token = OTPService.create_code(
            db,
            EMAIL_VERIFICATION,
            settings.EMAIL_VERIFICATION_EXPIRE_MINUTES,
            user_id=user.id,
            numeric=False,
        )
        return f"{settings.FRONTEND_URL}/verify-email?token={token}"

    @staticmethod
    def send_verification_email(db: Session, email: str) -> Optional[Tuple[str, str]]:
        """Return (email, url) for an unverified account, otherwise None"""
        user = db.query(User).filter(User.email == normalize_email(email)).first()
        if not user or user.email_verified:
            return None
        return user.email, AuthService.create_email_verification(db, user)

    @staticmethod
    def verify_email(db: Session, token: str) -> User:
        """Mark the email behind a verification token as verified"""
        code = OTPService.consume_code(db, token, EMAIL_VERIFICATION)
        if not code or not code.user:
            raise InvalidOrExpiredToken("Invalid or expired verification token")

        user = code.user
        user.email_verified = True
        db.commit()
        OTPService.invalidate_user_codes(db, user.id, EMAIL_VERIFICATION)
        logger.info("email_verified", user_id=user.id)
        return user

    @staticmethod
    def change_password(
        db: Session,
        user: User,
        current_password: str,
        new_password: str,
        revoke_other_sessions: bool = False,
        current_session_id: Optional[str] = None,
    ) -> int:
        """Change password; returns the number of other sessions revoked"""
        if not verify_password(current_password, user.password_hash):
            raise InvalidCredentials("Invalid password")
        try:
            validate_password(new_password)
        except ValueError as e:
            raise InvalidInput(str(e))

        user.password_hash = hash_password(new_password)
        db.commit()

        revoked = 0
        if revoke_other_sessions and current_session_id:
            revoked = AuthService.revoke_other_sessions(db, user.id, current_session_id)
        logger.info("password_changed", user_id=user.id, sessions_revoked=revoked)
        return revoked

    @staticmethod
    def update_profile(
        db: Session,
        user: User,
        name: Optional[str] = None,
        image: Optional[str] = None,
    ) -> User:
        if name is not None:
            user.name = name
        if image is not None:
            user.image = image or None
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def delete_account(db: Session, user: User, password: Optional[str] = None) -> None:
        """Delete the account and everything hanging off it"""
        if user.password_hash and not verify_password(password or "", user.password_hash):
            raise InvalidCredentials("Invalid password")

        owned = db.query(Membership).filter(
            Membership.user_id == user.id,
            Membership.role == "owner",
        ).count()
        if owned:
            raise InvalidState("Delete the organizations you own before deleting your account")

        user_id = user.id
        db.delete(user)
        db.commit()
        logger.info("account_deleted", user_id=user_id)

    @staticmethod
    def refresh_access_token(db: Session, refresh_token: str) -> Dict[str, Any]:
        """Refresh an access token using a refresh token"""
        payload = decode_token(refresh_token, expected_type=REFRESH)
        if not payload:
            raise InvalidOrExpiredToken("Invalid refresh token")

        user_id = payload.get("sub")
        session_token = payload.get("sid")
        if not user_id or not session_token:
            raise InvalidOrExpiredToken("Invalid refresh token")

        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise InvalidOrExpiredToken("Invalid refresh token")

        session = AuthService._get_active_session(db, user.id, session_token)
        if not session or not session.two_factor_verified:
            raise InvalidOrExpiredToken("Invalid refresh token")

        token_data = {
            "sub": user.id,
            "email": user.email,
            "sid": session_token,
        }
        return {
            "access_token": create_access_token(token_data),
            "token_type": "bearer",
            "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        }

    @staticmethod
    def get_current_session(db: Session, token: str) -> Optional[Tuple[User, SessionModel]]:
        """Resolve an access token to its user and live, fully authenticated session"""
        payload = decode_token(token, expected_type=ACCESS)
        if not payload:
            return None

        user_id = payload.get("sub")
        session_token = payload.get("sid")
        if not user_id or not session_token:
            return None

        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            return None

        session = AuthService._get_active_session(db, user.id, session_token)
        if not session or not session.two_factor_verified:
            return None

        return user, session
