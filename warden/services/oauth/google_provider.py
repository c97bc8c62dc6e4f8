"""Google sign-in provider"""

import httpx
from typing import Optional, Dict, Any
from urllib.parse import urlencode
from .provider_interface import (
    OAuthProviderInterface,
    OAuthUserInfo,
    OAuthTokens,
    TokenExchangeError,
    UserInfoError,
    ProviderUnavailableError,
)


class GoogleOAuthProvider(OAuthProviderInterface):
    """
    Google OAuth 2.0 authorization code flow.

    References:
    - https://developers.google.com/identity/protocols/oauth2/web-server
    """

    AUTHORIZATION_URL = "https://accounts.google.com/o/oauth2/v2/auth"
    TOKEN_URL = "https://oauth2.googleapis.com/token"
    USER_INFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

    DEFAULT_SCOPES = [
        "openid",
        "https://www.googleapis.com/auth/userinfo.email",
        "https://www.googleapis.com/auth/userinfo.profile",
    ]

    TIMEOUT_SECONDS = 10.0

    def __init__(self, client_id: str, client_secret: str, redirect_uri: str,
                 scopes: Optional[list[str]] = None):
        super().__init__(
            provider_name="google",
            client_id=client_id,
            client_secret=client_secret,
            redirect_uri=redirect_uri,
            scopes=scopes or self.DEFAULT_SCOPES,
        )

    def get_authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "state": state,
            "prompt": "select_account",
        }
        return f"{self.AUTHORIZATION_URL}?{urlencode(params)}"

    def _error_details(self, response: httpx.Response) -> Dict[str, Any]:
        try:
            body = response.json() if response.text else {}
        except ValueError:
            body = {}
        return {
            "status_code": response.status_code,
            "error": body.get("error"),
            "error_description": body.get("error_description"),
        }

    async def exchange_code_for_tokens(self, code: str) -> OAuthTokens:
        data = {
            "code": code,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": self.redirect_uri,
            "grant_type": "authorization_code",
        }

        try:
            async with httpx.AsyncClient(timeout=self.TIMEOUT_SECONDS) as client:
                response = await client.post(self.TOKEN_URL, data=data)
                response.raise_for_status()
                token_data = response.json()
        except httpx.HTTPStatusError as e:
            raise TokenExchangeError(
                f"Failed to exchange code for tokens: {e.response.status_code}",
                provider=self.provider_name,
                details=self._error_details(e.response),
            )
        except httpx.HTTPError as e:
            raise ProviderUnavailableError(
                "Google token endpoint unreachable",
                provider=self.provider_name,
                details={"error": type(e).__name__},
            )

        return OAuthTokens(
            access_token=token_data["access_token"],
            refresh_token=token_data.get("refresh_token"),
            expires_in=token_data.get("expires_in"),
            token_type=token_data.get("token_type", "Bearer"),
        )

    async def get_user_info(self, access_token: str) -> OAuthUserInfo:
        headers = {"Authorization": f"Bearer {access_token}"}

        try:
            async with httpx.AsyncClient(timeout=self.TIMEOUT_SECONDS) as client:
                response = await client.get(self.USER_INFO_URL, headers=headers)
                response.raise_for_status()
                user_data = response.json()
        except httpx.HTTPStatusError as e:
            raise UserInfoError(
                f"Failed to fetch user info: {e.response.status_code}",
                provider=self.provider_name,
                details=self._error_details(e.response),
            )
        except httpx.HTTPError as e:
            raise ProviderUnavailableError(
                "Google userinfo endpoint unreachable",
                provider=self.provider_name,
                details={"error": type(e).__name__},
            )

        return OAuthUserInfo(
            provider_user_id=user_data["id"],
            email=user_data["email"],
            name=user_data.get("name"),
            avatar_url=user_data.get("picture"),
            email_verified=user_data.get("verified_email", False),
            raw_data=user_data,
        )
