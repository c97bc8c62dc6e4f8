"""Domain errors raised by Warden services.

Services raise these; the API layer renders them as
``{"error": {"code": ..., "message": ...}}`` with the matching status code.
"""

from typing import Any, Dict, Optional


class AuthError(Exception):
    """Base class for all policy errors"""

    code = "auth_error"
    status_code = 400
    default_message = "Request could not be completed"

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return {"error": body}


class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    status_code = 401
    default_message = "Invalid email or password"


class AuthenticationRequired(AuthError):
    code = "authentication_required"
    status_code = 401
    default_message = "Authentication required"


class EmailNotVerified(AuthError):
    code = "email_not_verified"
    status_code = 403
    default_message = "Email not verified"


class Forbidden(AuthError):
    code = "forbidden"
    status_code = 403
    default_message = "You are not allowed to perform this action"


class NotFound(AuthError):
    code = "not_found"
    status_code = 404
    default_message = "Not found"


class InvalidState(AuthError):
    code = "invalid_state"
    status_code = 409
    default_message = "Operation is not allowed in the current state"


class InvalidOrExpiredToken(AuthError):
    code = "invalid_or_expired_token"
    status_code = 400
    default_message = "Invalid or expired token"


class InvalidOtp(AuthError):
    code = "invalid_otp"
    status_code = 400
    default_message = "Invalid verification code"


class InvalidInput(AuthError):
    code = "invalid_input"
    status_code = 400
    default_message = "Invalid input"


class SlugTaken(AuthError):
    code = "slug_taken"
    status_code = 409
    default_message = "Organization slug is already taken"


class DuplicateInvitation(AuthError):
    code = "duplicate_invitation"
    status_code = 409
    default_message = "An invitation has already been sent to this email"


class PasskeyAuthFailed(AuthError):
    code = "passkey_auth_failed"
    status_code = 401
    default_message = "Passkey authentication failed"


class NetworkOrServiceError(AuthError):
    """Upstream dependency failure; the message never carries internal detail"""

    code = "service_unavailable"
    status_code = 503
    default_message = "Service temporarily unavailable, please try again"
