"""Social sign-in providers package"""

from .provider_interface import OAuthProviderInterface, OAuthError
from .provider_factory import OAuthProviderFactory, register_default_providers

__all__ = [
    "OAuthProviderInterface",
    "OAuthError",
    "OAuthProviderFactory",
    "register_default_providers",
]
