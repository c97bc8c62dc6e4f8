"""Registry of social sign-in providers"""

from typing import Dict, Type, Any
from warden.config import settings
from .provider_interface import OAuthProviderInterface


class OAuthProviderFactory:
    """
    Registry mapping provider names to provider classes.

    Usage:
        OAuthProviderFactory.register("google", GoogleOAuthProvider)
        provider = OAuthProviderFactory.create("google", client_id="...", ...)
    """

    _providers: Dict[str, Type[OAuthProviderInterface]] = {}

    @classmethod
    def register(cls, provider_name: str, provider_class: Type[OAuthProviderInterface]):
        """
        Register a provider class.

        Raises:
            ValueError: If the name is taken or the class does not implement
                OAuthProviderInterface
        """
        if not issubclass(provider_class, OAuthProviderInterface):
            raise ValueError(
                f"Provider class {provider_class.__name__} must implement OAuthProviderInterface"
            )
        if provider_name in cls._providers:
            raise ValueError(f"Provider '{provider_name}' is already registered")

        cls._providers[provider_name] = provider_class

    @classmethod
    def create(cls, provider_name: str, **kwargs) -> OAuthProviderInterface:
        """
        Instantiate a registered provider.

        Raises:
            ValueError: If the provider is not registered
        """
        if provider_name not in cls._providers:
            available = ", ".join(cls._providers.keys())
            raise ValueError(
                f"Provider '{provider_name}' not found. "
                f"Available providers: {available or 'none'}"
            )
        return cls._providers[provider_name](**kwargs)

    @classmethod
    def create_configured(cls, provider_name: str) -> OAuthProviderInterface:
        """Instantiate a provider with the credentials from settings"""
        return cls.create(provider_name, **provider_settings(provider_name))

    @classmethod
    def is_registered(cls, provider_name: str) -> bool:
        return provider_name in cls._providers

    @classmethod
    def list_providers(cls) -> list[str]:
        return list(cls._providers.keys())

    @classmethod
    def clear_registry(cls):
        cls._providers.clear()


def provider_settings(provider_name: str) -> Dict[str, Any]:
    """Constructor arguments for a provider, taken from settings"""
    if provider_name == "google":
        return {
            "client_id": settings.GOOGLE_CLIENT_ID,
            "client_secret": settings.GOOGLE_CLIENT_SECRET,
            "redirect_uri": settings.OAUTH_REDIRECT_URI,
        }
    return {"redirect_uri": settings.OAUTH_REDIRECT_URI}


def register_default_providers():
    """
    Register the built-in providers.

    Google is only registered when its client ID is configured. The mock
    provider is available outside production.
    """
    from .google_provider import GoogleOAuthProvider
    from .mock_provider import MockOAuthProvider

    if settings.GOOGLE_CLIENT_ID and not OAuthProviderFactory.is_registered("google"):
        OAuthProviderFactory.register("google", GoogleOAuthProvider)
    if settings.APP_ENV != "production" and not OAuthProviderFactory.is_registered("mock"):
        OAuthProviderFactory.register("mock", MockOAuthProvider)
