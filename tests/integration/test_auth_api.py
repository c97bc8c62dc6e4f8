"""Integration tests for authentication API"""

import pytest
from fastapi import status

PASSWORD = "TestPassword123!"


def _token_from(email_body: str) -> str:
    return email_body.split("token=", 1)[1].split('"', 1)[0]


@pytest.mark.integration
def test_health(client):
    response = client.get("/health")
    assert response.json() == {"status": "healthy", "service": "warden"}


@pytest.mark.integration
def test_sign_up_sends_welcome_and_verification(client, outbox):
    response = client.post(
        "/api/v1/auth/sign-up",
        json={"email": "new@example.com", "password": PASSWORD, "name": "New User"},
    )

    assert response.status_code == status.HTTP_201_CREATED
    assert response.json()["user"]["email"] == "new@example.com"
    assert response.json()["user"]["email_verified"] is False
    assert outbox.get_latest_email(to="new@example.com", email_type="welcome")
    assert outbox.get_latest_email(to="new@example.com", email_type="verify_email")


@pytest.mark.integration
def test_sign_up_validation_error_envelope(client):
    response = client.post(
        "/api/v1/auth/sign-up",
        json={"email": "not-an-email", "password": PASSWORD, "name": "<script>"},
    )

    assert response.status_code == 422
    error = response.json()["error"]
    assert error["code"] == "validation_error"
    assert {tuple(d["loc"]) for d in error["details"]} >= {("body", "email"), ("body", "name")}
    # Submitted values are not echoed
    assert "<script>" not in response.text


@pytest.mark.integration
def test_duplicate_sign_up(client, user):
    response = client.post(
        "/api/v1/auth/sign-up",
        json={"email": user.email, "password": PASSWORD, "name": "Again"},
    )

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["error"]["code"] == "invalid_input"


@pytest.mark.integration
def test_sign_in_and_me(client, user, sign_in):
    headers = sign_in(user.email)

    response = client.get("/api/v1/auth/me", headers=headers)

    assert response.status_code == 200
    data = response.json()
    assert data["user"]["email"] == user.email
    assert data["session"]["current"] is True
    assert data["active_organization"] is None


@pytest.mark.integration
def test_sign_in_failure_envelope(client, user):
    response = client.post("/api/v1/auth/sign-in", json={"email": user.email, "password": "WrongPassword1!"})

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json() == {
        "error": {"code": "invalid_credentials", "message": "Invalid email or password"}
    }


@pytest.mark.integration
def test_me_requires_authentication(client):
    response = client.get("/api/v1/auth/me")

    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["error"]["code"] == "authentication_required"


@pytest.mark.integration
def test_sign_out_invalidates_token(client, auth_headers):
    response = client.post("/api/v1/auth/sign-out", headers=auth_headers)
    assert response.json()["redirect_to"] == "/login"

    assert client.get("/api/v1/auth/me", headers=auth_headers).status_code == 401


@pytest.mark.integration
def test_refresh(client, user):
    tokens = client.post("/api/v1/auth/sign-in", json={"email": user.email, "password": PASSWORD}).json()

    response = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 200
    assert response.json()["access_token"]

    response = client.post("/api/v1/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_or_expired_token"


@pytest.mark.integration
def test_forgot_password_response_does_not_disclose_accounts(client, user, outbox):
    known = client.post("/api/v1/auth/forgot-password", json={"email": user.email})
    unknown = client.post("/api/v1/auth/forgot-password", json={"email": "ghost@example.com"})

    assert known.status_code == unknown.status_code == 200
    assert known.json() == unknown.json()
    assert outbox.get_latest_email(to=user.email, email_type="reset_password")
    assert outbox.get_latest_email(to="ghost@example.com") is None


@pytest.mark.integration
def test_reset_password_through_email_link(client, user, outbox, sign_in):
    old_headers = sign_in(user.email)
    client.post("/api/v1/auth/forgot-password", json={"email": user.email})
    token = _token_from(outbox.get_latest_email(to=user.email, email_type="reset_password")["body"])

    response = client.post(
        "/api/v1/auth/reset-password",
        json={"token": token, "new_password": "ResetPassword1!"},
    )

    assert response.status_code == 200
    assert client.get("/api/v1/auth/me", headers=old_headers).status_code == 401
    assert outbox.get_latest_email(to=user.email, email_type="password_changed")
    sign_in(user.email, "ResetPassword1!")


@pytest.mark.integration
def test_verify_email_through_email_link(client, outbox, sign_in):
    client.post(
        "/api/v1/auth/sign-up",
        json={"email": "verify@example.com", "password": PASSWORD, "name": "Verify Me"},
    )
    token = _token_from(outbox.get_latest_email(to="verify@example.com", email_type="verify_email")["body"])

    response = client.post("/api/v1/auth/verify-email", json={"token": token})

    assert response.status_code == 200
    assert response.json()["user"]["email_verified"] is True
    again = client.post("/api/v1/auth/send-verification-email", json={"email": "verify@example.com"})
    assert again.status_code == 200
    assert len(outbox.get_sent_emails("verify_email")) == 1


@pytest.mark.integration
def test_profile_and_change_password(client, user, auth_headers, sign_in):
    response = client.patch("/api/v1/auth/profile", headers=auth_headers, json={"name": "Renamed"})
    assert response.json()["name"] == "Renamed"

    response = client.post(
        "/api/v1/auth/change-password",
        headers=auth_headers,
        json={"current_password": PASSWORD, "new_password": "ChangedPassword1!"},
    )
    assert response.status_code == 200
    sign_in(user.email, "ChangedPassword1!")


@pytest.mark.integration
def test_delete_account(client, user, auth_headers):
    response = client.post("/api/v1/auth/delete-account", headers=auth_headers, json={"password": PASSWORD})

    assert response.status_code == 200
    assert client.get("/api/v1/auth/me", headers=auth_headers).status_code == 401


@pytest.mark.integration
def test_sessions_list_and_revoke_current(client, user, sign_in):
    headers = sign_in(user.email)
    sign_in(user.email)

    sessions = client.get("/api/v1/sessions", headers=headers).json()
    assert len(sessions) == 2
    current = next(s for s in sessions if s["current"])

    response = client.delete(f"/api/v1/sessions/{current['id']}", headers=headers)

    assert response.json() == {"revoked": True, "signed_out": True, "redirect_to": "/login"}
    assert client.get("/api/v1/sessions", headers=headers).status_code == 401


@pytest.mark.integration
def test_revoke_other_sessions(client, user, sign_in):
    headers = sign_in(user.email)
    other = sign_in(user.email)

    assert client.post("/api/v1/sessions/revoke-others", headers=headers).json() == {"revoked": 1}
    assert client.get("/api/v1/auth/me", headers=headers).status_code == 200
    assert client.get("/api/v1/auth/me", headers=other).status_code == 401
