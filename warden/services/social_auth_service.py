"""Social sign-in service - orchestrates the provider redirect flow"""

from typing import Optional, Dict, Any, Tuple
from sqlalchemy.orm import Session
import structlog

from warden.config import settings
from warden.database.models import User, SocialAccount
from warden.errors import (
    InvalidCredentials,
    InvalidInput,
    InvalidOrExpiredToken,
    InvalidState,
    NetworkOrServiceError,
)
from warden.services.auth_service import AuthService, normalize_email
from warden.services.otp_service import OTPService, OAUTH_STATE
from warden.services.oauth import OAuthProviderFactory, OAuthError
from warden.services.oauth.provider_interface import OAuthUserInfo, ProviderUnavailableError

logger = structlog.get_logger()


def _safe_callback_url(callback_url: Optional[str]) -> str:
    """Only allow redirects back into the frontend"""
    if not callback_url:
        return settings.FRONTEND_URL
    if callback_url.startswith("/") and not callback_url.startswith("//"):
        return f"{settings.FRONTEND_URL.rstrip('/')}{callback_url}"
    if callback_url == settings.FRONTEND_URL or callback_url.startswith(settings.FRONTEND_URL.rstrip("/") + "/"):
        return callback_url
    raise InvalidInput("Callback URL must point to the application")


class SocialAuthService:
    """
    Sign-in through an external identity provider.

    The flow is split in two requests: ``sign_in_with_social`` returns the
    provider URL and stores a single-use state; ``complete_social_sign_in``
    consumes the state on the callback, reads the identity and opens a
    session for the matching local account.
    """

    def __init__(self, db: Session):
        self.db = db

    def sign_in_with_social(self, provider_name: str, callback_url: Optional[str] = None) -> Dict[str, Any]:
        if not OAuthProviderFactory.is_registered(provider_name):
            raise InvalidInput(f"Unsupported sign-in provider: {provider_name}")

        callback_url = _safe_callback_url(callback_url)
        provider = OAuthProviderFactory.create_configured(provider_name)
        state = OTPService.create_code(
            self.db,
            OAUTH_STATE,
            settings.OAUTH_STATE_EXPIRE_MINUTES,
            payload={"provider": provider_name, "callback_url": callback_url},
            numeric=False,
        )

        return {"url": provider.get_authorization_url(state), "redirect": True}

    async def complete_social_sign_in(
        self,
        code: str,
        state: str,
        provider_name: Optional[str] = None,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Finish the redirect flow.

        The provider is taken from the stored state; when ``provider_name``
        is given it must match.

        Returns the session result of ``AuthService.start_session`` plus
        ``callback_url`` and ``is_new_user``.

        Raises:
            InvalidOrExpiredToken: Unknown, used or expired state
            InvalidCredentials: The provider rejected the code
            NetworkOrServiceError: The provider could not be reached
        """
        stored = OTPService.consume_code(self.db, state, OAUTH_STATE)
        stored_provider = (stored.payload or {}).get("provider") if stored else None
        if not stored_provider or (provider_name and stored_provider != provider_name):
            raise InvalidOrExpiredToken("Invalid or expired sign-in state")
        provider_name = stored_provider

        if not OAuthProviderFactory.is_registered(provider_name):
            raise InvalidInput(f"Unsupported sign-in provider: {provider_name}")
        provider = OAuthProviderFactory.create_configured(provider_name)

        try:
            tokens = await provider.exchange_code_for_tokens(code)
            user_info = await provider.get_user_info(tokens.access_token)
        except ProviderUnavailableError as e:
            logger.warning("social_sign_in_unavailable", provider=e.provider, details=e.details)
            raise NetworkOrServiceError()
        except OAuthError as e:
            logger.info("social_sign_in_failed", provider=e.provider, details=e.details)
            raise InvalidCredentials("Social sign-in failed")

        user, is_new_user = self._find_or_create_user(provider_name, user_info)
        result = AuthService.start_session(
            self.db,
            user,
            remember_me=True,
            user_agent=user_agent,
            ip_address=ip_address,
        )
        logger.info("social_sign_in", provider=provider_name, user_id=user.id, new_user=is_new_user)
        return {
            **result,
            "callback_url": stored.payload.get("callback_url", settings.FRONTEND_URL),
            "is_new_user": is_new_user,
        }

    def _find_or_create_user(self, provider_name: str, user_info: OAuthUserInfo) -> Tuple[User, bool]:
        """Return (user, created) for a provider identity"""
        account = self.db.query(SocialAccount).filter(
            SocialAccount.provider == provider_name,
            SocialAccount.provider_user_id == user_info.provider_user_id,
        ).first()
        if account:
            return account.user, False

        email = normalize_email(user_info.email)
        user = self.db.query(User).filter(User.email == email).first()

        if user:
            # Linking by email is only safe when the provider vouches for it
            if not user_info.email_verified:
                raise InvalidState("An account with this email already exists")
            # Whoever registered an unverified address may not own it
            if not user.email_verified:
                raise InvalidState("Reset your password to claim this account before signing in with this provider")
            created = False
        else:
            user = User(
                email=email,
                name=user_info.name or "",
                image=user_info.avatar_url,
                password_hash=None,
                email_verified=user_info.email_verified,
            )
            self.db.add(user)
            self.db.flush()
            created = True

        self.db.add(SocialAccount(
            user_id=user.id,
            provider=provider_name,
            provider_user_id=user_info.provider_user_id,
        ))
        self.db.commit()
        self.db.refresh(user)
        return user, created
