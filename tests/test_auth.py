"""Tests for authentication endpoints and flows."""

from datetime import datetime, timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from dreik.database import get_db
from dreik.errors import Forbidden
from dreik.models.request import KIND_EMAIL_CONFIRMATION, KIND_PASSWORD_RESET, Request
from dreik.models.user import User
from dreik.rate_limit import limiter
from dreik.services.password import Sha256Hasher
from dreik.stores.request import RequestStore


def _expire(db_session: Session, token: str) -> None:
    request = db_session.query(Request).filter(Request.token == token).one()
    request.expires_at = datetime.utcnow() - timedelta(seconds=1)
    db_session.commit()


class TestRegistration:
    """Tests for user registration."""

    def test_register_success(self, client: TestClient, app: FastAPI, mailer):
        """Register a new account and receive a confirmation email."""
        response = client.post(
            "/api/auth/account",
            json={"email": "New@Mail.com", "name": "New User", "password": "password123"},
        )
        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "new@mail.com"
        assert data["name"] == "New User"
        assert data["is_confirmed"] is False
        assert data["is_private"] is False
        assert data["avatar_url"] == ""
        assert data["created_at"].endswith("Z")
        assert "password" not in data and "password_hash" not in data

        app.state.mail_queue.join()
        kind, recipient, token = mailer.last("confirmation")
        assert recipient == "new@mail.com"
        assert len(token) == 64

    def test_register_stores_hashed_password(self, client: TestClient, db_session: Session, register):
        """Only the digest of the password is stored."""
        register("hash@mail.com", password="secret")
        user = db_session.query(User).filter(User.email == "hash@mail.com").one()
        assert user.password_hash != "secret"
        assert user.password_hash == Sha256Hasher().hash("secret")

    def test_register_creates_confirmation_request(self, client: TestClient, db_session: Session, register):
        """Registration stores the confirmation token on the user and as a request."""
        register("req@mail.com")
        user = db_session.query(User).filter(User.email == "req@mail.com").one()
        request = db_session.query(Request).filter(Request.token == user.confirmation_token).one()
        assert request.kind == KIND_EMAIL_CONFIRMATION
        assert request.email == "req@mail.com"
        assert request.is_used is False

    def test_register_duplicate_email(self, client: TestClient, test_user: dict):
        """Reject duplicate email registration."""
        response = client.post(
            "/api/auth/account",
            json={"email": "test@mail.com", "name": "Another User", "password": "password123"},
        )
        assert response.status_code == 409
        assert response.json() == {"message": "user already exists"}

    def test_register_duplicate_email_different_case(self, client: TestClient, test_user: dict):
        response = client.post(
            "/api/auth/account",
            json={"email": "TEST@mail.com", "name": "Another User", "password": "password123"},
        )
        assert response.status_code == 409

    def test_register_invalid_email(self, client: TestClient):
        """Reject malformed email addresses."""
        response = client.post(
            "/api/auth/account",
            json={"email": "not-an-email", "name": "User", "password": "password123"},
        )
        assert response.status_code == 400
        assert response.json() == {"message": "invalid email format"}

    def test_register_with_username(self, client: TestClient):
        response = client.post(
            "/api/auth/account",
            json={"email": "runner@mail.com", "username": "runner_42", "name": "Runner", "password": "pw"},
        )
        assert response.status_code == 201
        assert response.json()["username"] == "runner_42"

    def test_register_derives_username_from_email(self, client: TestClient, test_user: dict, register):
        """Without a username the email's local part is used, suffixed when taken."""
        assert test_user["username"] == "test"
        assert register("test@other.com")["username"] == "test1"
        assert register("Jane.Doe+fit@mail.com")["username"] == "jane.doefit"

    def test_register_duplicate_username(self, client: TestClient, test_user: dict):
        response = client.post(
            "/api/auth/account",
            json={"email": "fresh@mail.com", "username": "test", "name": "Fresh", "password": "pw"},
        )
        assert response.status_code == 409
        assert response.json() == {"message": "user already exists"}

    def test_register_invalid_username(self, client: TestClient):
        for username in ("has space", "at@sign", "x" * 65):
            response = client.post(
                "/api/auth/account",
                json={"email": "u@mail.com", "username": username, "name": "U", "password": "pw"},
            )
            assert response.status_code == 400
            assert response.json() == {"message": "invalid username format"}

    def test_register_missing_field(self, client: TestClient):
        response = client.post("/api/auth/account", json={"email": "a@mail.com", "password": "x"})
        assert response.status_code == 400
        assert response.json() == {"message": "invalid request body"}

    def test_register_malformed_json(self, client: TestClient):
        response = client.post(
            "/api/auth/account",
            content=b"{not json",
            headers={"Content-Type": "application/json"},
        )
        assert response.status_code == 400
        assert response.json() == {"message": "invalid request body"}


class TestLogin:
    """Tests for session creation."""

    def test_login_success(self, client: TestClient, test_user: dict, app: FastAPI):
        """Login with valid credentials returns a token for the user."""
        response = client.post("/api/auth/session", json={"email": "test@mail.com", "password": "password123"})
        assert response.status_code == 200
        token = response.json()["token"]
        assert app.state.token_manager.verify(token) == test_user["id"]

    def test_login_case_insensitive(self, client: TestClient, test_user: dict):
        """Login works regardless of email case."""
        response = client.post("/api/auth/session", json={"email": "TEST@MAIL.COM", "password": "password123"})
        assert response.status_code == 200

    def test_login_with_username(self, client: TestClient, test_user: dict, app: FastAPI):
        response = client.post("/api/auth/session", json={"login": "test", "password": "password123"})
        assert response.status_code == 200
        assert app.state.token_manager.verify(response.json()["token"]) == test_user["id"]

    def test_login_field_accepts_email(self, client: TestClient, test_user: dict):
        response = client.post("/api/auth/session", json={"login": "Test@Mail.com", "password": "password123"})
        assert response.status_code == 200

    def test_login_unknown_username(self, client: TestClient, test_user: dict):
        response = client.post("/api/auth/session", json={"login": "nobody", "password": "password123"})
        assert response.status_code == 401
        assert response.json() == {"message": "user not found"}

    def test_login_without_identifier(self, client: TestClient):
        response = client.post("/api/auth/session", json={"password": "password123"})
        assert response.status_code == 400
        assert response.json() == {"message": "invalid request body"}

    def test_login_wrong_password(self, client: TestClient, test_user: dict):
        response = client.post("/api/auth/session", json={"email": "test@mail.com", "password": "wrong"})
        assert response.status_code == 401
        assert response.json() == {"message": "user not found"}

    def test_login_unknown_email(self, client: TestClient):
        """Unknown email fails the same way as a wrong password."""
        response = client.post("/api/auth/session", json={"email": "nobody@mail.com", "password": "password123"})
        assert response.status_code == 401
        assert response.json() == {"message": "user not found"}

    def test_login_unconfirmed_when_confirmation_required(
        self, client: TestClient, test_user: dict, app: FastAPI, settings, mailer, monkeypatch
    ):
        """Unconfirmed accounts get a fresh confirmation email instead of a token."""
        monkeypatch.setattr(settings, "REQUIRE_EMAIL_CONFIRMATION", True)
        first_token = mailer.last("confirmation")[2]

        response = client.post("/api/auth/session", json={"email": "test@mail.com", "password": "password123"})
        assert response.status_code == 403
        assert response.json() == {"message": "email confirmation needed"}

        app.state.mail_queue.join()
        new_token = mailer.last("confirmation")[2]
        assert new_token != first_token

    def test_login_confirmed_when_confirmation_required(
        self, client: TestClient, test_user: dict, app: FastAPI, settings, mailer, monkeypatch
    ):
        monkeypatch.setattr(settings, "REQUIRE_EMAIL_CONFIRMATION", True)
        token = mailer.last("confirmation")[2]
        assert client.post("/api/auth/account/confirm", json={"token": token}).status_code == 200

        response = client.post("/api/auth/session", json={"email": "test@mail.com", "password": "password123"})
        assert response.status_code == 200


class TestAuthorizationHeader:
    """Tests for bearer token checks on protected routes."""

    def test_missing_header(self, client: TestClient):
        response = client.get("/api/account")
        assert response.status_code == 401
        assert response.json() == {"message": "empty authorization header"}

    def test_wrong_scheme(self, client: TestClient, test_user: dict):
        response = client.get("/api/account", headers={"Authorization": f"Token {test_user['token']}"})
        assert response.status_code == 401
        assert response.json() == {"message": "invalid authorization token type"}

    def test_too_many_parts(self, client: TestClient, test_user: dict):
        response = client.get("/api/account", headers={"Authorization": f"Bearer {test_user['token']} extra"})
        assert response.status_code == 401
        assert response.json() == {"message": "empty authorization header"}

    def test_garbage_token(self, client: TestClient):
        response = client.get("/api/account", headers={"Authorization": "Bearer not.a.token"})
        assert response.status_code == 401
        assert response.json() == {"message": "invalid authorization token"}

    def test_token_signed_with_other_secret(self, client: TestClient, test_user: dict):
        from dreik.services.jwt import TokenManager

        forged = TokenManager("another-secret").issue(test_user["id"])
        response = client.get("/api/account", headers={"Authorization": f"Bearer {forged}"})
        assert response.status_code == 401


class TestEmailConfirmation:
    """Tests for confirming an account with the emailed token."""

    def test_confirm_account(self, client: TestClient, test_user: dict, auth_headers: dict, mailer):
        token = mailer.last("confirmation")[2]

        response = client.post("/api/auth/account/confirm", json={"token": token})
        assert response.status_code == 200
        assert response.json() == {"message": "account confirmed"}

        account = client.get("/api/account", headers=auth_headers).json()
        assert account["is_confirmed"] is True

    def test_confirm_twice(self, client: TestClient, test_user: dict, mailer):
        token = mailer.last("confirmation")[2]
        client.post("/api/auth/account/confirm", json={"token": token})

        response = client.post("/api/auth/account/confirm", json={"token": token})
        assert response.status_code == 403
        assert response.json() == {"message": "this confirmation token has been used"}

    def test_confirm_unknown_token(self, client: TestClient):
        response = client.post("/api/auth/account/confirm", json={"token": "x" * 64})
        assert response.status_code == 404
        assert response.json() == {"message": "confirmation request not found"}

    def test_confirm_expired_token(self, client: TestClient, test_user: dict, mailer, db_session: Session):
        token = mailer.last("confirmation")[2]
        _expire(db_session, token)

        response = client.post("/api/auth/account/confirm", json={"token": token})
        assert response.status_code == 403
        assert response.json() == {"message": "confirmation token expired"}

    def test_reset_token_cannot_confirm(self, client: TestClient, test_user: dict, app: FastAPI, mailer):
        """Tokens are bound to their purpose."""
        client.post("/api/auth/password/reset", json={"email": "test@mail.com"})
        app.state.mail_queue.join()
        recovery_token = mailer.last("recovery")[2]

        response = client.post("/api/auth/account/confirm", json={"token": recovery_token})
        assert response.status_code == 404


class TestPasswordReset:
    """Tests for the password recovery flow."""

    def _request_reset(self, client: TestClient, app: FastAPI, mailer) -> str:
        response = client.post("/api/auth/password/reset", json={"email": "test@mail.com"})
        assert response.status_code == 200
        assert response.json() == {"message": "recovery link sent"}
        app.state.mail_queue.join()
        return mailer.last("recovery")[2]

    def test_request_reset_unknown_email(self, client: TestClient):
        response = client.post("/api/auth/password/reset", json={"email": "nobody@mail.com"})
        assert response.status_code == 404
        assert response.json() == {"message": "user not found"}

    def test_request_reset_creates_request(
        self, client: TestClient, test_user: dict, app: FastAPI, mailer, db_session: Session
    ):
        token = self._request_reset(client, app, mailer)
        request = db_session.query(Request).filter(Request.token == token).one()
        assert request.kind == KIND_PASSWORD_RESET
        assert request.email == "test@mail.com"
        assert request.expires_at - request.created_at <= timedelta(minutes=5, seconds=1)

    def test_full_reset_flow(self, client: TestClient, test_user: dict, app: FastAPI, mailer):
        """Request, check, and use a recovery link, then log in with the new password."""
        token = self._request_reset(client, app, mailer)

        check = client.get(f"/api/auth/password/reset/{token}")
        assert check.status_code == 200
        assert check.json() == {"valid": True}

        response = client.patch("/api/auth/password", json={"token": token, "password": "newpassword"})
        assert response.status_code == 200
        assert response.json() == {"message": "password updated"}

        old = client.post("/api/auth/session", json={"email": "test@mail.com", "password": "password123"})
        assert old.status_code == 401
        new = client.post("/api/auth/session", json={"email": "test@mail.com", "password": "newpassword"})
        assert new.status_code == 200

    def test_token_is_single_use(self, client: TestClient, test_user: dict, app: FastAPI, mailer):
        token = self._request_reset(client, app, mailer)
        client.patch("/api/auth/password", json={"token": token, "password": "first"})

        response = client.patch("/api/auth/password", json={"token": token, "password": "second"})
        assert response.status_code == 403
        assert response.json() == {"message": "this recovery token has been used"}

        check = client.get(f"/api/auth/password/reset/{token}")
        assert check.status_code == 404

    def test_expired_token(self, client: TestClient, test_user: dict, app: FastAPI, mailer, db_session: Session):
        token = self._request_reset(client, app, mailer)
        _expire(db_session, token)

        response = client.patch("/api/auth/password", json={"token": token, "password": "newpassword"})
        assert response.status_code == 403
        assert response.json() == {"message": "recovery token expired"}

    def test_unknown_token(self, client: TestClient):
        response = client.patch("/api/auth/password", json={"token": "y" * 64, "password": "newpassword"})
        assert response.status_code == 404
        assert response.json() == {"message": "password reset request not found"}

        check = client.get(f"/api/auth/password/reset/{'y' * 64}")
        assert check.status_code == 404

    def test_account_password_alias(self, client: TestClient, test_user: dict, app: FastAPI, mailer, login):
        """The recovery link can also be redeemed under /api/account/password."""
        token = self._request_reset(client, app, mailer)

        response = client.patch("/api/account/password", json={"token": token, "password": "aliaspass"})
        assert response.status_code == 200
        login("test@mail.com", "aliaspass")

    def test_previous_tokens_stay_valid(self, client: TestClient, test_user: dict, app: FastAPI, mailer):
        """Each reset request is independent until used or expired."""
        first = self._request_reset(client, app, mailer)
        second = self._request_reset(client, app, mailer)
        assert first != second

        assert client.patch("/api/auth/password", json={"token": first, "password": "a"}).status_code == 200
        assert client.patch("/api/auth/password", json={"token": second, "password": "b"}).status_code == 200


def test_end_to_end_account_flow(client: TestClient, app: FastAPI, mailer, db_session: Session):
    """Register, reject a duplicate, log in, and refuse an expired recovery token."""
    body = {"email": "a@b.com", "name": "A", "password": "pw"}
    created = client.post("/api/auth/account", json=body)
    assert created.status_code == 201
    assert {"id", "email", "name"} <= created.json().keys()
    assert "password" not in created.json()

    assert client.post("/api/auth/account", json=body).status_code == 409

    session = client.post("/api/auth/session", json={"email": "a@b.com", "password": "pw"})
    assert session.status_code == 200
    assert session.json()["token"]

    client.post("/api/auth/password/reset", json={"email": "a@b.com"})
    app.state.mail_queue.join()
    token = mailer.last("recovery")[2]
    _expire(db_session, token)

    response = client.patch("/api/account/password", json={"token": token, "password": "new"})
    assert response.status_code == 403
    assert response.json() == {"message": "recovery token expired"}


class TestRequestConsumption:
    """Single-use and all-or-nothing guarantees when consuming a token."""

    def _reset_token(self, app: FastAPI, session_factory, email: str) -> str:
        auth = app.state.auth_service
        db = session_factory()
        try:
            auth.register(db, email, "Someone", "password123")
            return auth.request_password_reset(db, email).token
        finally:
            db.close()

    def test_concurrent_consumers_use_token_once(self, app: FastAPI, session_factory):
        """Two transactions that both saw the token as pending cannot both consume it."""
        auth = app.state.auth_service
        token = self._reset_token(app, session_factory, "race@mail.com")

        first, second = session_factory(), session_factory()
        try:
            stale = second.query(Request).filter(Request.token == token).one()
            assert stale.is_used is False

            auth.update_password(first, token, "first-password")
            with pytest.raises(Forbidden) as exc_info:
                auth.update_password(second, token, "second-password")
            assert exc_info.value.message == "this recovery token has been used"
        finally:
            first.close()
            second.close()

        check = session_factory()
        try:
            user = check.query(User).filter(User.email == "race@mail.com").one()
            assert auth.hasher.verify("first-password", user.password_hash)
        finally:
            check.close()

    def test_failed_consume_keeps_request_pending(self, app: FastAPI, session_factory, monkeypatch):
        """If marking the token used fails, the password change is rolled back too."""
        token = self._reset_token(app, session_factory, "atomic@mail.com")

        def closing_db():
            db = session_factory()
            try:
                yield db
            finally:
                db.close()

        def failing_mark_used(self, token):
            raise RuntimeError("storage unavailable")

        app.dependency_overrides[get_db] = closing_db
        limiter.enabled = False
        try:
            with TestClient(app, raise_server_exceptions=False) as client:
                monkeypatch.setattr(RequestStore, "mark_used", failing_mark_used)
                failed = client.patch("/api/auth/password", json={"token": token, "password": "new-password"})
                monkeypatch.undo()

                old_login = client.post(
                    "/api/auth/session", json={"email": "atomic@mail.com", "password": "password123"}
                )
                pending = client.get(f"/api/auth/password/reset/{token}")
                db = session_factory()
                try:
                    assert db.query(Request).filter(Request.token == token).one().is_used is False
                finally:
                    db.close()
                retry = client.patch("/api/auth/password", json={"token": token, "password": "new-password"})
        finally:
            limiter.enabled = True
            app.dependency_overrides.clear()

        assert failed.status_code == 500
        assert failed.json() == {"message": "internal server error"}
        assert old_login.status_code == 200
        assert pending.status_code == 200
        assert retry.status_code == 200
