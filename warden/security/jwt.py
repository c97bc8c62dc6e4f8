"""JWT helpers for access, refresh and two-factor challenge tokens"""

from datetime import datetime, timedelta
from typing import Optional, Dict, Any
import jwt
from warden.config import settings

ACCESS = "access"
REFRESH = "refresh"
TWO_FA_CHALLENGE = "2fa_challenge"


def _encode(data: dict, token_type: str, expires_delta: timedelta) -> str:
    to_encode = data.copy()
    now = datetime.utcnow()
    to_encode.update({
        "type": token_type,
        "exp": now + expires_delta,
        "iat": now,
    })
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a short-lived access token"""
    return _encode(
        data,
        ACCESS,
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
    )


def create_refresh_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a refresh token; it never outlives its session"""
    return _encode(
        data,
        REFRESH,
        expires_delta or timedelta(days=settings.REMEMBER_ME_EXPIRE_DAYS),
    )


def create_challenge_token(data: dict) -> str:
    """Create a token that only allows completing the second sign-in factor"""
    return _encode(
        data,
        TWO_FA_CHALLENGE,
        timedelta(minutes=settings.TWO_FA_CHALLENGE_EXPIRE_MINUTES),
    )


def decode_token(token: str, expected_type: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Decode and verify a token, returning None when it is invalid"""
    try:
        payload = jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None
    if expected_type and payload.get("type") != expected_type:
        return None
    return payload
