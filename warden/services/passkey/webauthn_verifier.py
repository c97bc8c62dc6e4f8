"""WebAuthn verifier backed by py_webauthn"""

from typing import Dict, Any
import structlog
from webauthn import (
    base64url_to_bytes,
    verify_authentication_response,
    verify_registration_response,
)
from webauthn.helpers import bytes_to_base64url
from webauthn.helpers.exceptions import WebAuthnException
from .verifier_interface import (
    PasskeyVerifier,
    RegistrationResult,
    AuthenticationResult,
    PasskeyVerificationError,
)

logger = structlog.get_logger()


class WebAuthnVerifier(PasskeyVerifier):
    """
    Verifies real authenticator output.

    Challenges are base64url strings; the browser decodes them to bytes
    before calling navigator.credentials. Credential IDs and COSE public
    keys are stored base64url encoded.
    """

    def verify_registration(self, challenge: str, credential: Dict[str, Any]) -> RegistrationResult:
        try:
            verification = verify_registration_response(
                credential=credential,
                expected_challenge=base64url_to_bytes(challenge),
                expected_rp_id=self.rp_id,
                expected_origin=self.origin,
            )
        except (WebAuthnException, ValueError, KeyError, TypeError) as e:
            logger.info("passkey_attestation_rejected", reason=str(e))
            raise PasskeyVerificationError("Attestation did not verify", {"reason": str(e)})

        return RegistrationResult(
            credential_id=bytes_to_base64url(verification.credential_id),
            public_key=bytes_to_base64url(verification.credential_public_key),
            sign_count=verification.sign_count,
        )

    def verify_authentication(
        self,
        challenge: str,
        credential: Dict[str, Any],
        public_key: str,
        sign_count: int,
    ) -> AuthenticationResult:
        try:
            verification = verify_authentication_response(
                credential=credential,
                expected_challenge=base64url_to_bytes(challenge),
                expected_rp_id=self.rp_id,
                expected_origin=self.origin,
                credential_public_key=base64url_to_bytes(public_key),
                credential_current_sign_count=sign_count,
            )
        except (WebAuthnException, ValueError, KeyError, TypeError) as e:
            logger.info("passkey_assertion_rejected", reason=str(e))
            raise PasskeyVerificationError("Assertion did not verify", {"reason": str(e)})

        return AuthenticationResult(
            credential_id=bytes_to_base64url(verification.credential_id),
            new_sign_count=verification.new_sign_count,
        )
