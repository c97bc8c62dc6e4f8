"""Passkey verifiers package"""

from .verifier_interface import PasskeyVerifier, PasskeyVerificationError
from .verifier_factory import PasskeyVerifierFactory, register_default_verifiers

__all__ = [
    "PasskeyVerifier",
    "PasskeyVerificationError",
    "PasskeyVerifierFactory",
    "register_default_verifiers",
]
