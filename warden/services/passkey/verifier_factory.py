"""Registry of passkey verifiers"""

from typing import Dict, Type
from warden.config import settings
from .verifier_interface import PasskeyVerifier


class PasskeyVerifierFactory:
    """Maps verifier names (the PASSKEY_VERIFIER setting) to classes"""

    _verifiers: Dict[str, Type[PasskeyVerifier]] = {}

    @classmethod
    def register(cls, name: str, verifier_class: Type[PasskeyVerifier]):
        if not issubclass(verifier_class, PasskeyVerifier):
            raise ValueError(
                f"Verifier class {verifier_class.__name__} must implement PasskeyVerifier"
            )
        if name in cls._verifiers:
            raise ValueError(f"Verifier '{name}' is already registered")
        cls._verifiers[name] = verifier_class

    @classmethod
    def create(cls, name: str = None) -> PasskeyVerifier:
        """Instantiate the named verifier, defaulting to the configured one"""
        name = name or settings.PASSKEY_VERIFIER
        if name not in cls._verifiers:
            available = ", ".join(cls._verifiers.keys())
            raise ValueError(
                f"Verifier '{name}' not found. Available verifiers: {available or 'none'}"
            )
        return cls._verifiers[name](rp_id=settings.PASSKEY_RP_ID, origin=settings.FRONTEND_URL)

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name in cls._verifiers

    @classmethod
    def clear_registry(cls):
        cls._verifiers.clear()


def register_default_verifiers():
    """
    Register the built-in verifiers.

    The WebAuthn verifier is always available. The mock verifier is only
    registered outside production.
    """
    from .mock_verifier import MockPasskeyVerifier
    from .webauthn_verifier import WebAuthnVerifier

    if not PasskeyVerifierFactory.is_registered("webauthn"):
        PasskeyVerifierFactory.register("webauthn", WebAuthnVerifier)
    if settings.APP_ENV != "production" and not PasskeyVerifierFactory.is_registered("mock"):
        PasskeyVerifierFactory.register("mock", MockPasskeyVerifier)
