"""Configuration settings for Warden"""

from pydantic_settings import BaseSettings
from typing import List
import os


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_ENV: str = "production"
    LOG_LEVEL: str = "INFO"
    PORT: int = int(os.getenv("PORT", "8000"))
    SECRET_KEY: str
    JWT_SECRET_KEY: str
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    TWO_FA_CHALLENGE_EXPIRE_MINUTES: int = 10

    # Session lifetimes
    # Without "remember me" the session only lives for the browser session
    SESSION_EXPIRE_HOURS: int = 24
    REMEMBER_ME_EXPIRE_DAYS: int = 30

    # Sign-in policy
    REQUIRE_EMAIL_VERIFICATION: bool = False
    EMAIL_VERIFICATION_EXPIRE_MINUTES: int = 60
    PASSWORD_RESET_EXPIRE_MINUTES: int = 60
    OTP_EXPIRE_MINUTES: int = 5
    PASSKEY_CHALLENGE_EXPIRE_MINUTES: int = 5
    INVITATION_EXPIRE_DAYS: int = 7

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./warden.db")

    # Redis
    REDIS_URL: str = os.getenv("REDIS_URL", "redis://redis:6379/0")

    # Encryption
    ENCRYPTION_KEY: str

    # Two-factor
    TWO_FA_ISSUER: str = "Warden"
    BACKUP_CODE_COUNT: int = 10

    # Email
    EMAIL_API_URL: str = "https://api.resend.com/emails"
    EMAIL_API_KEY: str = ""
    EMAIL_FROM: str = os.getenv("EMAIL_FROM", "noreply@warden.local")
    EMAIL_FROM_NAME: str = "Warden"
    EMAIL_TIMEOUT_SECONDS: float = 10.0

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000"

    # Frontend links used in emails and redirects
    FRONTEND_URL: str = "http://localhost:3000"
    SIGN_IN_PATH: str = "/login"

    # OAuth Configuration
    OAUTH_REDIRECT_URI: str = "http://localhost:8000/api/v1/auth/social/callback"
    OAUTH_STATE_EXPIRE_MINUTES: int = 10
    GOOGLE_CLIENT_ID: str = ""
    GOOGLE_CLIENT_SECRET: str = ""

    # Passkeys
    PASSKEY_VERIFIER: str = "webauthn"
    PASSKEY_RP_ID: str = "localhost"

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string"""
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",")]

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
