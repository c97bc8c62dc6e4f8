"""Two-Factor Authentication utilities"""

import base64
import hashlib
import io
import re
import secrets
from enum import Enum

import pyotp
import qrcode

TOTP_CODE_PATTERN = re.compile(r"^\d{6}$")


class TwoFactorState(str, Enum):
    """Persisted TOTP enrollment states.

    Leaving DISABLED or ENABLED requires the account password; that step is
    checked on the transition itself and never stored.
    """

    DISABLED = "disabled"
    AWAITING_OTP_CONFIRMATION = "awaiting_otp_confirmation"
    ENABLED = "enabled"


def generate_2fa_secret() -> str:
    """Generate a new TOTP secret"""
    return pyotp.random_base32()


def get_2fa_uri(secret: str, email: str, issuer: str) -> str:
    """Get the provisioning URI for QR code generation"""
    return pyotp.TOTP(secret).provisioning_uri(name=email, issuer_name=issuer)


def generate_qr_code(uri: str) -> str:
    """Generate a QR code image as a data URI"""
    qr = qrcode.QRCode(version=1, box_size=10, border=5)
    qr.add_data(uri)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = io.BytesIO()
    img.save(buffer)
    img_str = base64.b64encode(buffer.getvalue()).decode()
    return f"data:image/png;base64,{img_str}"


def is_well_formed_code(code: str) -> bool:
    return bool(code) and bool(TOTP_CODE_PATTERN.match(code))


def verify_2fa_code(secret: str, code: str) -> bool:
    """Verify a 6-digit TOTP code, allowing one step of clock drift"""
    if not is_well_formed_code(code):
        return False
    return pyotp.TOTP(secret).verify(code, valid_window=1)


def generate_backup_codes(count: int = 10) -> list[str]:
    """Generate backup codes for 2FA"""
    codes = []
    for _ in range(count):
        code = secrets.token_hex(4).upper()
        codes.append(f"{code[:4]}-{code[4:]}")
    return codes


def hash_backup_code(code: str) -> str:
    normalized = code.strip().upper().replace(" ", "")
    return hashlib.sha256(normalized.encode()).hexdigest()
