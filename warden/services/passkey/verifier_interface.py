"""Passkey (WebAuthn) verifier interface"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Any, Optional


@dataclass
class RegistrationResult:
    """Credential data extracted from a verified attestation"""
    credential_id: str
    public_key: str
    sign_count: int = 0


@dataclass
class AuthenticationResult:
    """Outcome of a verified assertion"""
    credential_id: str
    new_sign_count: int


class PasskeyVerifier(ABC):
    """
    Performs the cryptographic part of a WebAuthn ceremony.

    Implementations receive the server-issued challenge and the credential
    JSON posted by the browser, and raise PasskeyVerificationError on any
    mismatch. Storage of credentials is not their concern.
    """

    def __init__(self, rp_id: str, origin: Optional[str] = None):
        self.rp_id = rp_id
        self.origin = origin

    @abstractmethod
    def verify_registration(self, challenge: str, credential: Dict[str, Any]) -> RegistrationResult:
        """
        Verify an attestation produced by navigator.credentials.create().

        Raises:
            PasskeyVerificationError: If the attestation does not verify
        """

    @abstractmethod
    def verify_authentication(
        self,
        challenge: str,
        credential: Dict[str, Any],
        public_key: str,
        sign_count: int,
    ) -> AuthenticationResult:
        """
        Verify an assertion produced by navigator.credentials.get().

        Raises:
            PasskeyVerificationError: If the assertion does not verify
        """


class PasskeyVerificationError(Exception):
    """Raised when a WebAuthn ceremony fails verification"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}
