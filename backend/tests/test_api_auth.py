from __future__ import annotations

from conftest import PASSWORD, bearer

from app.core.config import settings

REGISTER_PAYLOAD = {
    "first_name": "  Jane ",
    "last_name": "Smith",
    "email": "Jane.Smith@Example.com",
    "password": PASSWORD,
    "phone": "+1234567891",
    "date_of_birth": "1990-03-22",
    "address": {"city": "Los Angeles", "country": "USA"},
}


def _login(client, email: str, password: str = PASSWORD):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})


class TestRegister:
    def test_register_returns_tokens(self, client, outbox) -> None:
        resp = client.post("/api/v1/auth/register", json=REGISTER_PAYLOAD)
        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "success"
        assert body["message"] == "User registered successfully"

        data = body["data"]
        assert data["token"]
        assert data["refresh_token"]
        assert data["expires_in"] == settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60
        assert data["user"]["email"] == "jane.smith@example.com"
        assert data["user"]["first_name"] == "Jane"
        assert data["user"]["full_name"] == "Jane Smith"
        assert data["user"]["role"] == "user"
        assert "hashed_password" not in data["user"]
        assert [mail["template"] for mail in outbox] == ["welcome"]

    def test_duplicate_email(self, client, outbox) -> None:
        client.post("/api/v1/auth/register", json=REGISTER_PAYLOAD)
        resp = client.post("/api/v1/auth/register", json={**REGISTER_PAYLOAD, "email": "jane.smith@example.com"})
        assert resp.status_code == 400
        assert resp.json()["message"] == "User already exists with this email"

    def test_weak_password_reports_field(self, client) -> None:
        resp = client.post("/api/v1/auth/register", json={**REGISTER_PAYLOAD, "password": "password"})
        assert resp.status_code == 400
        body = resp.json()
        assert body["status"] == "error"
        assert body["message"] == "Validation failed"
        assert any(error["field"] == "password" for error in body["errors"])

    def test_birth_date_must_be_past(self, client) -> None:
        resp = client.post("/api/v1/auth/register", json={**REGISTER_PAYLOAD, "date_of_birth": "2999-01-01"})
        assert resp.status_code == 400
        errors = resp.json()["errors"]
        assert errors[0]["field"] == "date_of_birth"
        assert errors[0]["message"] == "Date of birth must be in the past"


class TestLogin:
    def test_login_success(self, client, holder) -> None:
        resp = _login(client, holder["email"].upper())
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["user"]["id"] == holder["id"]
        assert data["user"]["last_login_at"] is not None

        me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {data['token']}"})
        assert me.json()["data"]["user"]["email"] == holder["email"]

    def test_unknown_email(self, client) -> None:
        resp = _login(client, "nobody@example.com")
        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid email or password"

    def test_lockout_after_repeated_failures(self, client, holder) -> None:
        for _ in range(settings.MAX_LOGIN_ATTEMPTS):
            assert _login(client, holder["email"], "Wrong123!").status_code == 401

        locked = _login(client, holder["email"])
        assert locked.status_code == 423
        assert "locked" in locked.json()["message"]

    def test_success_resets_failed_attempts(self, client, holder) -> None:
        for _ in range(settings.MAX_LOGIN_ATTEMPTS - 1):
            _login(client, holder["email"], "Wrong123!")
        assert _login(client, holder["email"]).status_code == 200
        for _ in range(settings.MAX_LOGIN_ATTEMPTS - 1):
            _login(client, holder["email"], "Wrong123!")
        assert _login(client, holder["email"]).status_code == 200

    def test_deactivated_account(self, client, admin, holder) -> None:
        client.patch(f"/api/v1/users/{holder['id']}/deactivate", headers=bearer(admin))
        resp = _login(client, holder["email"])
        assert resp.status_code == 401
        assert resp.json()["message"] == "Account is deactivated. Please contact support."


class TestTokens:
    def test_me_requires_token(self, client) -> None:
        resp = client.get("/api/v1/auth/me")
        assert resp.status_code == 401
        assert resp.json() == {"status": "error", "message": "Access denied. No token provided."}

    def test_invalid_token(self, client) -> None:
        resp = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer garbage"})
        assert resp.status_code == 401
        assert resp.json()["message"] == "Invalid or expired token"

    def test_deactivated_user_token_rejected(self, client, admin, holder) -> None:
        client.patch(f"/api/v1/users/{holder['id']}/deactivate", headers=bearer(admin))
        resp = client.get("/api/v1/auth/me", headers=bearer(holder))
        assert resp.status_code == 401
        assert resp.json()["message"] == "Account is deactivated"

    def test_refresh(self, client, holder) -> None:
        refresh_token = _login(client, holder["email"]).json()["data"]["refresh_token"]
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": refresh_token})
        assert resp.status_code == 200
        new_token = resp.json()["data"]["token"]
        assert client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {new_token}"}).status_code == 200

    def test_access_token_cannot_refresh(self, client, holder) -> None:
        resp = client.post("/api/v1/auth/refresh", json={"refresh_token": holder["token"]})
        assert resp.status_code == 401

    def test_logout(self, client, holder) -> None:
        resp = client.post("/api/v1/auth/logout", headers=bearer(holder))
        assert resp.status_code == 200
        assert resp.json()["message"] == "Logged out successfully"


class TestPasswordReset:
    def test_forgot_and_reset(self, client, holder, outbox, monkeypatch) -> None:
        monkeypatch.setattr(settings, "APP_ENV", "development")
        resp = client.post("/api/v1/auth/forgot-password", json={"email": holder["email"]})
        assert resp.status_code == 200
        raw_token = resp.json()["data"]["reset_token"]
        assert outbox[-1]["template"] == "password_reset"
        assert outbox[-1]["context"]["reset_token"] == raw_token

        reset = client.post("/api/v1/auth/reset-password", json={"token": raw_token, "password": "NewPass456!"})
        assert reset.status_code == 200
        assert reset.json()["data"]["token"]

        assert _login(client, holder["email"]).status_code == 401
        assert _login(client, holder["email"], "NewPass456!").status_code == 200

        # Token is single use
        again = client.post("/api/v1/auth/reset-password", json={"token": raw_token, "password": "Other789!"})
        assert again.status_code == 400
        assert again.json()["message"] == "Invalid or expired reset token"

    def test_token_hidden_outside_development(self, client, holder, outbox) -> None:
        resp = client.post("/api/v1/auth/forgot-password", json={"email": holder["email"]})
        assert resp.status_code == 200
        assert resp.json()["data"] is None

    def test_forgot_unknown_email(self, client) -> None:
        resp = client.post("/api/v1/auth/forgot-password", json={"email": "ghost@example.com"})
        assert resp.status_code == 404

    def test_reset_with_bogus_token(self, client) -> None:
        resp = client.post("/api/v1/auth/reset-password", json={"token": "nope", "password": "NewPass456!"})
        assert resp.status_code == 400
