"""Mock sign-in provider for tests and local development"""

import uuid
from typing import Dict, Any, Optional
from urllib.parse import urlencode
from .provider_interface import (
    OAuthProviderInterface,
    OAuthUserInfo,
    OAuthTokens,
    TokenExchangeError,
    UserInfoError,
)


class MockOAuthProvider(OAuthProviderInterface):
    """
    Simulates a provider without network calls.

    Tests mint an authorization code with ``create_mock_code`` and hand it to
    the callback as if the provider had redirected back.
    """

    _mock_codes: Dict[str, Dict[str, Any]] = {}
    _mock_tokens: Dict[str, Dict[str, Any]] = {}

    def __init__(self, provider_name: str = "mock", client_id: str = "mock_client_id",
                 client_secret: str = "mock_secret",
                 redirect_uri: str = "http://localhost:8000/api/v1/auth/social/callback",
                 scopes: Optional[list[str]] = None):
        super().__init__(provider_name, client_id, client_secret, redirect_uri, scopes or ["email", "profile"])

    def get_authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "state": state,
        }
        return f"https://mock-oauth-provider.example.com/authorize?{urlencode(params)}"

    async def exchange_code_for_tokens(self, code: str) -> OAuthTokens:
        if code not in self._mock_codes:
            raise TokenExchangeError(
                "Invalid authorization code",
                provider=self.provider_name,
            )

        # Codes are single use
        user_data = self._mock_codes.pop(code)
        access_token = f"mock_access_token_{uuid.uuid4().hex[:16]}"
        self._mock_tokens[access_token] = user_data

        return OAuthTokens(access_token=access_token, expires_in=3600)

    async def get_user_info(self, access_token: str) -> OAuthUserInfo:
        if access_token not in self._mock_tokens:
            raise UserInfoError(
                "Invalid or expired access token",
                provider=self.provider_name,
            )

        user_data = self._mock_tokens[access_token]
        return OAuthUserInfo(
            provider_user_id=user_data["user_id"],
            email=user_data["email"],
            name=user_data.get("name"),
            avatar_url=user_data.get("avatar_url"),
            email_verified=user_data.get("email_verified", True),
            raw_data=user_data,
        )

    @classmethod
    def create_mock_code(cls, user_id: str, email: str, name: Optional[str] = None,
                         avatar_url: Optional[str] = None, email_verified: bool = True) -> str:
        """Mint an authorization code for the given identity"""
        code = f"mock_auth_code_{uuid.uuid4().hex[:16]}"
        cls._mock_codes[code] = {
            "user_id": user_id,
            "email": email,
            "name": name,
            "avatar_url": avatar_url,
            "email_verified": email_verified,
        }
        return code

    @classmethod
    def clear_mock_data(cls):
        cls._mock_codes.clear()
        cls._mock_tokens.clear()
