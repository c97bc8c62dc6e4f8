"""Pytest configuration and fixtures"""

import os

# Settings are read at import time
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret-key")
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key")
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("PASSKEY_VERIFIER", "mock")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Disable rate limiting BEFORE importing app (which calls init_redis on startup)
from warden.middleware import rate_limiting
rate_limiting.init_redis = lambda: None
rate_limiting.redis_client = None

from warden.database.database import Base, get_db
from warden.database import models  # noqa: F401
from warden.main import app
from warden.services.notification_service import notification_service
from warden.services.oauth import register_default_providers
from warden.services.oauth.mock_provider import MockOAuthProvider
from warden.services.passkey import register_default_verifiers
from warden.services.auth_service import AuthService
from mocks import email_service

TEST_PASSWORD = "TestPassword123!"

test_engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

register_default_providers()
register_default_verifiers()


@pytest.fixture(scope="function")
def db():
    """Fresh schema per test"""
    Base.metadata.create_all(bind=test_engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def client(db):
    """Create a test client with database session."""
    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def outbox(monkeypatch):
    """Capture outgoing email instead of calling the email API"""
    email_service.clear_sent_emails()
    monkeypatch.setattr(notification_service, "send_email", email_service.send_email)
    yield email_service
    email_service.clear_sent_emails()


@pytest.fixture(autouse=True)
def clear_mock_provider():
    MockOAuthProvider.clear_mock_data()
    yield
    MockOAuthProvider.clear_mock_data()


@pytest.fixture
def make_user(db):
    """Factory creating a registered user"""
    def _make_user(email: str, password: str = TEST_PASSWORD, name: str = "Test User", verified: bool = False):
        user = AuthService.sign_up(db, email, password, name)
        if verified:
            user.email_verified = True
            db.commit()
        return user
    return _make_user


@pytest.fixture
def user(make_user):
    return make_user("owner@example.com", name="Owner")


@pytest.fixture
def sign_in(client):
    """Sign in through the API and return bearer headers"""
    def _sign_in(email: str, password: str = TEST_PASSWORD) -> dict:
        response = client.post(
            "/api/v1/auth/sign-in",
            json={"email": email, "password": password},
        )
        assert response.status_code == 200, response.json()
        return {"Authorization": f"Bearer {response.json()['access_token']}"}
    return _sign_in


@pytest.fixture
def auth_headers(client, user, sign_in):
    return sign_in(user.email)
