"""Password hashing and strength validation"""

import bcrypt

MIN_PASSWORD_LENGTH = 8
# bcrypt only looks at the first 72 bytes
MAX_PASSWORD_BYTES = 72


def validate_password(password: str) -> None:
    """Raise ValueError if the password does not meet requirements"""
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")
    if len(password.encode()) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    if password.strip() == "":
        raise ValueError("Password must not be blank")


def hash_password(password: str) -> str:
    """Hash a password with a per-password salt"""
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, password_hash: str | None) -> bool:
    """Verify a password against a hash"""
    if not password_hash:
        return False
    encoded = password.encode()
    if len(encoded) > MAX_PASSWORD_BYTES:
        return False
    try:
        return bcrypt.checkpw(encoded, password_hash.encode())
    except ValueError:
        return False
