"""Unit tests for the two-factor enrollment state machine and sign-in completion"""

from urllib.parse import urlparse, parse_qs

import pyotp
import pytest
from warden.errors import InvalidCredentials, InvalidOtp, InvalidOrExpiredToken, InvalidState
from warden.security.two_fa import TwoFactorState
from warden.services.auth_service import AuthService
from warden.services.two_fa_service import TwoFAService

PASSWORD = "TestPassword123!"


def _secret_from_uri(uri: str) -> str:
    return parse_qs(urlparse(uri).query)["secret"][0]


def _wrong_code(secret: str) -> str:
    for candidate in ("000000", "111111", "222222", "333333"):
        if not pyotp.TOTP(secret).verify(candidate, valid_window=1):
            return candidate
    raise AssertionError("could not find an invalid code")


def _enable(db, user) -> tuple[str, list[str]]:
    started = TwoFAService.begin_enrollment(db, user, PASSWORD)
    secret = _secret_from_uri(started["totp_uri"])
    confirmed = TwoFAService.confirm_enrollment(db, user, pyotp.TOTP(secret).now())
    return secret, confirmed["backup_codes"]


@pytest.mark.unit
def test_begin_enrollment_requires_password(db, user):
    with pytest.raises(InvalidCredentials):
        TwoFAService.begin_enrollment(db, user, "WrongPassword1!")
    assert user.two_fa_state == TwoFactorState.DISABLED


@pytest.mark.unit
def test_begin_enrollment_returns_uri_and_awaits_confirmation(db, user):
    result = TwoFAService.begin_enrollment(db, user, PASSWORD)

    assert result["state"] == "awaiting_otp_confirmation"
    assert result["totp_uri"].startswith("otpauth://totp/")
    assert result["qr_code"].startswith("data:image/png;base64,")
    assert user.two_fa_state == TwoFactorState.AWAITING_OTP_CONFIRMATION
    # The secret is only stored encrypted
    assert _secret_from_uri(result["totp_uri"]) not in user.two_fa_pending_secret


@pytest.mark.unit
def test_wrong_code_keeps_pending_secret_then_correct_code_enables(db, user):
    started = TwoFAService.begin_enrollment(db, user, PASSWORD)
    secret = _secret_from_uri(started["totp_uri"])
    pending = user.two_fa_pending_secret

    with pytest.raises(InvalidOtp):
        TwoFAService.confirm_enrollment(db, user, _wrong_code(secret))

    assert user.two_fa_state == TwoFactorState.AWAITING_OTP_CONFIRMATION
    assert user.two_fa_pending_secret == pending

    result = TwoFAService.confirm_enrollment(db, user, pyotp.TOTP(secret).now())
    assert result["state"] == "enabled"
    assert len(result["backup_codes"]) == 10
    assert user.two_fa_state == TwoFactorState.ENABLED
    assert user.two_fa_pending_secret is None


@pytest.mark.unit
def test_confirm_without_enrollment_is_invalid_state(db, user):
    with pytest.raises(InvalidState):
        TwoFAService.confirm_enrollment(db, user, "123456")


@pytest.mark.unit
def test_restart_enrollment_discards_previous_secret(db, user):
    first = _secret_from_uri(TwoFAService.begin_enrollment(db, user, PASSWORD)["totp_uri"])
    second = _secret_from_uri(TwoFAService.begin_enrollment(db, user, PASSWORD)["totp_uri"])
    assert first != second

    # Only the second secret can confirm
    result = TwoFAService.confirm_enrollment(db, user, pyotp.TOTP(second).now())
    assert result["state"] == "enabled"


@pytest.mark.unit
def test_cancel_enrollment(db, user):
    TwoFAService.begin_enrollment(db, user, PASSWORD)
    assert TwoFAService.cancel_enrollment(db, user)["state"] == "disabled"
    assert user.two_fa_pending_secret is None


@pytest.mark.unit
def test_begin_enrollment_when_enabled_is_invalid_state(db, user):
    _enable(db, user)
    with pytest.raises(InvalidState):
        TwoFAService.begin_enrollment(db, user, PASSWORD)


@pytest.mark.unit
def test_disable_requires_only_password(db, user):
    _enable(db, user)

    with pytest.raises(InvalidCredentials):
        TwoFAService.disable(db, user, "WrongPassword1!")
    assert user.two_fa_state == TwoFactorState.ENABLED

    assert TwoFAService.disable(db, user, PASSWORD)["state"] == "disabled"
    assert user.two_fa_secret is None
    assert user.two_fa_backup_codes == []


@pytest.mark.unit
def test_sign_in_with_two_factor_returns_challenge(db, user):
    _enable(db, user)

    result = AuthService.sign_in_with_credentials(db, user.email, PASSWORD)

    assert result["two_factor_required"] is True
    assert "access_token" not in result
    assert set(result["methods"]) == {"totp", "otp", "backup_code"}


@pytest.mark.unit
def test_challenge_token_is_not_an_access_token(db, user):
    _enable(db, user)
    result = AuthService.sign_in_with_credentials(db, user.email, PASSWORD)

    assert AuthService.get_current_session(db, result["challenge_token"]) is None
    assert AuthService.list_sessions(db, user.id) == []


@pytest.mark.unit
def test_verify_totp_completes_sign_in(db, user):
    secret, _ = _enable(db, user)
    challenge = AuthService.sign_in_with_credentials(db, user.email, PASSWORD)["challenge_token"]

    with pytest.raises(InvalidOtp):
        TwoFAService.verify_totp(db, challenge, _wrong_code(secret))

    result = TwoFAService.verify_totp(db, challenge, pyotp.TOTP(secret).now())
    assert result["access_token"]
    assert AuthService.get_current_session(db, result["access_token"]) is not None

    # The challenge cannot be replayed once the session is verified
    with pytest.raises(InvalidOrExpiredToken):
        TwoFAService.verify_totp(db, challenge, pyotp.TOTP(secret).now())


@pytest.mark.unit
def test_backup_codes_are_single_use(db, user):
    _, backup_codes = _enable(db, user)

    challenge = AuthService.sign_in_with_credentials(db, user.email, PASSWORD)["challenge_token"]
    assert TwoFAService.verify_backup_code(db, challenge, backup_codes[0])["access_token"]

    challenge = AuthService.sign_in_with_credentials(db, user.email, PASSWORD)["challenge_token"]
    with pytest.raises(InvalidOtp):
        TwoFAService.verify_backup_code(db, challenge, backup_codes[0])
    assert len(user.two_fa_backup_codes) == 9


@pytest.mark.unit
def test_email_otp_completes_sign_in(db, user):
    _enable(db, user)
    challenge = AuthService.sign_in_with_credentials(db, user.email, PASSWORD)["challenge_token"]

    otp = TwoFAService.request_otp(db, challenge)
    assert otp["email"] == user.email
    assert len(otp["code"]) == 6

    with pytest.raises(InvalidOtp):
        TwoFAService.verify_otp(db, challenge, "not-it")

    assert TwoFAService.verify_otp(db, challenge, otp["code"])["access_token"]


@pytest.mark.unit
def test_requesting_new_otp_invalidates_previous(db, user):
    _enable(db, user)
    challenge = AuthService.sign_in_with_credentials(db, user.email, PASSWORD)["challenge_token"]

    first = TwoFAService.request_otp(db, challenge)["code"]
    second = TwoFAService.request_otp(db, challenge)["code"]

    if first != second:
        with pytest.raises(InvalidOtp):
            TwoFAService.verify_otp(db, challenge, first)
    assert TwoFAService.verify_otp(db, challenge, second)["access_token"]


@pytest.mark.unit
def test_regenerate_backup_codes(db, user):
    _, old_codes = _enable(db, user)
    new_codes = TwoFAService.regenerate_backup_codes(db, user, PASSWORD)

    assert set(new_codes).isdisjoint(old_codes)
    challenge = AuthService.sign_in_with_credentials(db, user.email, PASSWORD)["challenge_token"]
    with pytest.raises(InvalidOtp):
        TwoFAService.verify_backup_code(db, challenge, old_codes[0])
