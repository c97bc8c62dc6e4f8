"""Encryption for secrets stored at rest (TOTP secrets)"""

from functools import lru_cache
from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
import base64
from warden.config import settings


@lru_cache(maxsize=4)
def _derive_key(secret: str) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=b"warden_salt",
        iterations=100000,
    )
    return base64.urlsafe_b64encode(kdf.derive(secret.encode()))


def get_encryption_key() -> bytes:
    """Derive the Fernet key from settings"""
    return _derive_key(settings.ENCRYPTION_KEY)


def encrypt_data(data: str) -> str:
    """Encrypt sensitive data"""
    return Fernet(get_encryption_key()).encrypt(data.encode()).decode()


def decrypt_data(encrypted_data: str) -> str:
    """Decrypt sensitive data; raises ValueError if it was tampered with"""
    try:
        return Fernet(get_encryption_key()).decrypt(encrypted_data.encode()).decode()
    except InvalidToken as e:
        raise ValueError("Encrypted value could not be decrypted") from e
