"""
Tests for login, token refresh, logout and token extraction.
"""

from datetime import timedelta

from jose import jwt

from portal_backend.auth.tokens import (
    REFRESH_TOKEN,
    SESSION_TOKEN,
    create_access_token,
    create_refresh_token,
    decode_token,
)
from portal_backend.model.activity import ActivityLog
from portal_backend.permissions.auth import INVALID_TOKEN_MESSAGE
from portal_backend.settings import settings
from portal_backend.utils import utc_now

TEST_PASSWORD = "password123"


def login(client, login_name, password=TEST_PASSWORD):
    return client.post("/auth/login", json={"login": login_name, "password": password})


class TestLogin:

    def test_login_by_email(self, client, regular_user):
        response = login(client, "ALICE@example.com")

        assert response.status_code == 200
        body = response.json()
        assert body["token_type"] == "bearer"
        assert body["expires_in"] == 3600
        assert decode_token(body["access_token"])["sub"] == regular_user.id
        assert decode_token(body["refresh_token"])["type"] == REFRESH_TOKEN

    def test_login_by_user_name(self, client, regular_user):
        response = login(client, "alice")
        assert response.status_code == 200

    def test_wrong_password(self, client, db, regular_user):
        response = login(client, "alice@example.com", "wrong-password")

        assert response.status_code == 401
        assert response.json()["detail"] == "Invalid credentials"
        entry = db.query(ActivityLog).filter(ActivityLog.action == "login_failed").one()
        assert entry.level == "WARNING"
        assert entry.user_id == regular_user.id

    def test_unknown_user(self, client):
        response = login(client, "ghost@example.com")
        assert response.status_code == 401

    def test_inactive_account(self, client, make_user):
        make_user("pending@example.com", status="PENDING")

        response = login(client, "pending@example.com")

        assert response.status_code == 403
        assert response.json()["detail"] == "Account is not active"

    def test_successful_login_is_recorded(self, client, db, regular_user):
        login(client, "alice@example.com")

        db.refresh(regular_user)
        assert regular_user.last_sign_in_at is not None
        assert db.query(ActivityLog).filter(ActivityLog.action == "login", ActivityLog.user_id == regular_user.id).count() == 1


class TestTokens:

    def test_missing_token(self, client):
        response = client.get("/users/me")

        assert response.status_code == 401
        assert response.json()["detail"] == INVALID_TOKEN_MESSAGE

    def test_garbage_token(self, client):
        response = client.get("/users/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    def test_session_token_header(self, client, regular_user):
        token = create_access_token(regular_user.id)
        response = client.get("/users/me", headers={"X-Session-Token": token})

        assert response.status_code == 200
        assert response.json()["email"] == "alice@example.com"

    def test_query_parameter(self, client, regular_user):
        token = create_access_token(regular_user.id)
        response = client.get("/users/me", params={"access_token": token})
        assert response.status_code == 200

    def test_session_token_with_embedded_user(self, client, regular_user):
        token = jwt.encode(
            {
                "type": SESSION_TOKEN,
                "user": {"id": regular_user.id, "email": regular_user.email},
                "exp": int((utc_now() + timedelta(minutes=5)).timestamp()),
            },
            settings.JWT_SECRET_KEY,
            algorithm=settings.JWT_ALGORITHM,
        )
        response = client.get("/users/me", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 200
        assert response.json()["id"] == regular_user.id

    def test_refresh_token_is_not_an_access_token(self, client, regular_user):
        token = create_refresh_token(regular_user.id)
        response = client.get("/users/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_suspended_user(self, client, db, regular_user, auth_headers):
        headers = auth_headers(regular_user)
        regular_user.status = "SUSPENDED"
        db.commit()

        response = client.get("/users/me", headers=headers)
        assert response.status_code == 403

    def test_inactive_user(self, client, db, regular_user, auth_headers):
        headers = auth_headers(regular_user)
        regular_user.status = "INACTIVE"
        db.commit()

        response = client.get("/users/me", headers=headers)

        assert response.status_code == 403
        assert response.json()["detail"] == "Account is not active"

    def test_token_info(self, client, admin_user, auth_headers):
        response = client.get("/auth/token-info", headers=auth_headers(admin_user))

        assert response.status_code == 200
        body = response.json()
        assert body["user_id"] == admin_user.id
        assert body["token_type"] == "access"
        assert body["groups"] == ["admin"]
        assert body["is_admin"] is True
        assert body["is_superuser"] is False
        assert "view_users" in body["permissions"]


class TestRefreshAndLogout:

    def test_refresh(self, client, regular_user):
        refresh_token = login(client, "alice@example.com").json()["refresh_token"]

        response = client.post("/auth/refresh", json={"refresh_token": refresh_token})

        assert response.status_code == 200
        body = response.json()
        assert body["refresh_token"] == refresh_token
        assert decode_token(body["access_token"])["sub"] == regular_user.id

    def test_refresh_rejects_access_token(self, client, regular_user):
        response = client.post("/auth/refresh", json={"refresh_token": create_access_token(regular_user.id)})
        assert response.status_code == 401

    def test_refresh_rejects_suspended_user(self, client, db, regular_user):
        refresh_token = create_refresh_token(regular_user.id)
        regular_user.status = "SUSPENDED"
        db.commit()

        response = client.post("/auth/refresh", json={"refresh_token": refresh_token})
        assert response.status_code == 401

    def test_logout_revokes_token(self, client, regular_user):
        token = login(client, "alice@example.com").json()["access_token"]
        headers = {"Authorization": f"Bearer {token}"}
        assert client.get("/users/me", headers=headers).status_code == 200

        response = client.post("/auth/logout", headers=headers)

        assert response.status_code == 204
        assert client.get("/users/me", headers=headers).status_code == 401

    def test_refresh_rejects_inactive_user(self, client, db, regular_user):
        refresh_token = create_refresh_token(regular_user.id)
        regular_user.status = "INACTIVE"
        db.commit()

        response = client.post("/auth/refresh", json={"refresh_token": refresh_token})
        assert response.status_code == 401


class TestChangePassword:

    def change(self, client, headers, **fields):
        return client.post("/auth/change-password", json=fields, headers=headers)

    def test_change_own_password(self, client, db, regular_user, auth_headers):
        response = self.change(
            client, auth_headers(regular_user),
            old_password=TEST_PASSWORD, password="new-password-1", confirm_password="new-password-1",
        )

        assert response.status_code == 204
        assert login(client, "alice@example.com").status_code == 401
        assert login(client, "alice@example.com", "new-password-1").status_code == 200
        assert db.query(ActivityLog).filter(ActivityLog.action == "change_password").count() == 1

    def test_mismatch(self, client, regular_user, auth_headers):
        response = self.change(
            client, auth_headers(regular_user),
            old_password=TEST_PASSWORD, password="new-password-1", confirm_password="new-password-2",
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Passwords do not match"

    def test_wrong_current_password(self, client, regular_user, auth_headers):
        response = self.change(
            client, auth_headers(regular_user),
            old_password="not-my-password", password="new-password-1", confirm_password="new-password-1",
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "Current password is incorrect"
        assert login(client, "alice@example.com").status_code == 200

    def test_current_password_required(self, client, regular_user, auth_headers):
        response = self.change(
            client, auth_headers(regular_user), password="new-password-1", confirm_password="new-password-1",
        )
        assert response.status_code == 400

    def test_user_cannot_change_someone_else(self, client, regular_user, other_user, auth_headers):
        response = self.change(
            client, auth_headers(regular_user),
            user_id=other_user.id, password="new-password-1", confirm_password="new-password-1",
        )

        assert response.status_code == 403
        assert login(client, "bob@example.com").status_code == 200

    def test_admin_resets_password(self, client, admin_user, regular_user, auth_headers):
        response = self.change(
            client, auth_headers(admin_user),
            user_id=regular_user.id, password="new-password-1", confirm_password="new-password-1",
        )

        assert response.status_code == 204
        assert login(client, "alice@example.com", "new-password-1").status_code == 200

    def test_admin_cannot_reset_protected_account(self, client, admin_user, superuser, auth_headers):
        response = self.change(
            client, auth_headers(admin_user),
            user_id=superuser.id, password="new-password-1", confirm_password="new-password-1",
        )
        assert response.status_code == 403
