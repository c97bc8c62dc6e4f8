"""Social sign-in provider interface"""

from abc import ABC, abstractmethod
from typing import Dict, Any, Optional
from dataclasses import dataclass


@dataclass
class OAuthUserInfo:
    """Identity returned by a provider after a successful sign-in"""
    provider_user_id: str
    email: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    email_verified: bool = False
    raw_data: Optional[Dict[str, Any]] = None


@dataclass
class OAuthTokens:
    access_token: str
    refresh_token: Optional[str] = None
    expires_in: Optional[int] = None
    token_type: str = "Bearer"


class OAuthProviderInterface(ABC):
    """
    Contract for an external identity provider.

    A provider only speaks to its identity service: it builds the consent
    URL, exchanges the returned code and reads the profile. Linking the
    identity to a local account is done by the social sign-in service.
    """

    def __init__(self, provider_name: str, client_id: str, client_secret: str,
                 redirect_uri: str, scopes: list[str]):
        self.provider_name = provider_name
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = scopes

    @abstractmethod
    def get_authorization_url(self, state: str) -> str:
        """
        Build the URL the browser is redirected to.

        Args:
            state: Single-use CSRF token echoed back on the callback

        Returns:
            Authorization URL
        """

    @abstractmethod
    async def exchange_code_for_tokens(self, code: str) -> OAuthTokens:
        """
        Exchange the callback code for provider tokens.

        Raises:
            TokenExchangeError: If the provider rejects the code
        """

    @abstractmethod
    async def get_user_info(self, access_token: str) -> OAuthUserInfo:
        """
        Fetch the signed-in identity.

        Raises:
            UserInfoError: If the profile cannot be read
        """


class OAuthError(Exception):
    """Base exception for provider failures"""

    def __init__(self, message: str, provider: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.provider = provider
        self.details = details or {}


class TokenExchangeError(OAuthError):
    """The provider rejected the authorization code"""


class UserInfoError(OAuthError):
    """The provider profile could not be read"""


class ProviderUnavailableError(OAuthError):
    """The provider could not be reached"""
