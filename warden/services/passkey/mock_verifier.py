"""Deterministic passkey verifier for tests and local development"""

import hashlib
import hmac
from typing import Dict, Any
from .verifier_interface import (
    PasskeyVerifier,
    RegistrationResult,
    AuthenticationResult,
    PasskeyVerificationError,
)


class MockPasskeyVerifier(PasskeyVerifier):
    """
    Stands in for an authenticator.

    Registration credentials look like ``{"id", "publicKey", "challenge"}``.
    Assertions look like ``{"id", "challenge", "signature", "signCount"}``
    where the signature is ``MockPasskeyVerifier.sign(challenge, public_key)``.
    """

    @staticmethod
    def sign(challenge: str, public_key: str) -> str:
        return hmac.new(public_key.encode(), challenge.encode(), hashlib.sha256).hexdigest()

    def _check_challenge(self, challenge: str, credential: Dict[str, Any]):
        if not hmac.compare_digest(str(credential.get("challenge", "")), challenge):
            raise PasskeyVerificationError("Challenge mismatch")

    def verify_registration(self, challenge: str, credential: Dict[str, Any]) -> RegistrationResult:
        self._check_challenge(challenge, credential)
        if not credential.get("id") or not credential.get("publicKey"):
            raise PasskeyVerificationError("Malformed attestation")
        return RegistrationResult(
            credential_id=str(credential["id"]),
            public_key=str(credential["publicKey"]),
            sign_count=int(credential.get("signCount", 0)),
        )

    def verify_authentication(
        self,
        challenge: str,
        credential: Dict[str, Any],
        public_key: str,
        sign_count: int,
    ) -> AuthenticationResult:
        self._check_challenge(challenge, credential)

        expected = self.sign(challenge, public_key)
        if not hmac.compare_digest(str(credential.get("signature", "")), expected):
            raise PasskeyVerificationError("Invalid signature")

        new_sign_count = int(credential.get("signCount", sign_count + 1))
        # A counter that does not move forward indicates a cloned authenticator
        if sign_count and new_sign_count <= sign_count:
            raise PasskeyVerificationError("Sign count did not increase")

        return AuthenticationResult(credential_id=str(credential["id"]), new_sign_count=new_sign_count)
