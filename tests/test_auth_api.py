from datetime import timedelta

from conftest import API, PASSWORD, auth_headers
from database import utcnow
from models.cart import Cart
from models.log import Log
from models.users import RefreshToken, User
from utils.tokenJWT import create_access_token, create_reset_token


def _register(client, **overrides):
    payload = {
        "email": "New.User@Example.com",
        "password": "Secret123",
        "first_name": "New",
        "last_name": "User",
    }
    payload.update(overrides)
    return client.post(f"{API}/auth/register", json=payload)


def _login(client, email="user@example.com", password=PASSWORD, headers=None):
    return client.post(f"{API}/auth/login", json={"email": email, "password": password}, headers=headers)


class TestRegister:
    def test_register_returns_user_and_token(self, client, db):
        response = _register(client)
        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["data"]["user"]["email"] == "new.user@example.com"
        assert body["data"]["user"]["role"] == "USER"
        assert body["data"]["token"]
        assert "password_hash" not in body["data"]["user"]

        user = db.query(User).filter(User.email == "new.user@example.com").one()
        assert user.preferences is not None
        assert user.preferences.currency == "USD"

    def test_duplicate_email_conflicts(self, client, user):
        response = _register(client, email="USER@example.com")
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "EMAIL_EXISTS"

    def test_weak_password_is_rejected(self, client):
        response = _register(client, password="alllowercase1")
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "VALIDATION_ERROR"
        assert body["error"]["details"][0]["field"] == "password"

    def test_short_password_is_rejected(self, client):
        assert _register(client, password="Ab1").status_code == 400

    def test_invalid_email_is_rejected(self, client):
        assert _register(client, email="not-an-email").status_code == 400


class TestLogin:
    def test_login_sets_refresh_cookie(self, client, user, db):
        response = _login(client)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["user"]["id"] == user.id
        assert data["token"]
        assert data["expires_at"]
        assert "refresh_token" in response.cookies
        assert db.query(RefreshToken).filter(RefreshToken.user_id == user.id).count() == 1

    def test_wrong_password_is_unauthorized(self, client, user, db):
        response = _login(client, password="Wrong12345")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "AUTHENTICATION_ERROR"
        assert db.query(Log).filter(Log.action == "LOGIN", Log.status == "FAIL").count() == 1

    def test_unknown_email_is_unauthorized(self, client):
        assert _login(client, email="ghost@example.com").status_code == 401

    def test_deactivated_account_is_locked(self, client, make_user):
        make_user(email="locked@example.com", is_active=False)
        response = _login(client, email="locked@example.com")
        assert response.status_code == 423
        assert response.json()["error"]["code"] == "ACCOUNT_LOCKED"

    def test_login_merges_guest_cart(self, client, user, make_product, db):
        product = make_product(stock=5)
        headers = {"X-Session-ID": "guest-123"}
        client.post(f"{API}/cart/items", json={"product_id": product.id, "quantity": 2}, headers=headers)

        assert _login(client, headers=headers).status_code == 200

        db.expire_all()
        cart = db.query(Cart).filter(Cart.user_id == user.id).one()
        assert [(i.product_id, i.quantity) for i in cart.items] == [(product.id, 2)]
        assert db.query(Cart).filter(Cart.session_id == "guest-123").count() == 0


class TestTokens:
    def test_validate_returns_user(self, client, user, user_headers):
        response = client.get(f"{API}/auth/validate", headers=user_headers)
        assert response.status_code == 200
        assert response.json()["data"]["is_valid"] is True
        assert response.json()["data"]["user"]["email"] == user.email

    def test_validate_without_token(self, client):
        assert client.get(f"{API}/auth/validate").status_code == 401

    def test_garbage_token_is_rejected(self, client):
        response = client.get(f"{API}/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid token"

    def test_expired_token_is_rejected(self, client, user):
        token = create_access_token(user, expires_delta=timedelta(seconds=-1))
        response = client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Token expired"

    def test_reset_token_cannot_authenticate(self, client, user):
        token = create_reset_token(user.id)
        response = client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_refresh_uses_cookie(self, client, user):
        _login(client)
        response = client.post(f"{API}/auth/refresh")
        assert response.status_code == 200
        token = response.json()["data"]["token"]
        me = client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.json()["data"]["id"] == user.id

    def test_refresh_accepts_body_token(self, client, user, db):
        _login(client)
        stored = db.query(RefreshToken).filter(RefreshToken.user_id == user.id).one()
        client.cookies.clear()
        response = client.post(f"{API}/auth/refresh", json={"refresh_token": stored.token})
        assert response.status_code == 200

    def test_refresh_with_unknown_token(self, client):
        response = client.post(f"{API}/auth/refresh", json={"refresh_token": "nope"})
        assert response.status_code == 401

    def test_refresh_with_expired_token(self, client, user, db):
        _login(client)
        stored = db.query(RefreshToken).filter(RefreshToken.user_id == user.id).one()
        stored.expires_at = utcnow() - timedelta(days=1)
        db.commit()

        response = client.post(f"{API}/auth/refresh")
        assert response.status_code == 401
        assert response.json()["error"]["message"] == "Invalid or expired refresh token"

    def test_refresh_for_deactivated_user_is_locked(self, client, user, db):
        _login(client)
        db.expire_all()
        db.query(User).filter(User.id == user.id).update({User.is_active: False})
        db.commit()
        assert client.post(f"{API}/auth/refresh").status_code == 423

    def test_logout_revokes_refresh_token(self, client, user, db):
        _login(client)
        response = client.post(f"{API}/auth/logout")
        assert response.status_code == 200
        assert db.query(RefreshToken).count() == 0
        client.cookies.clear()
        assert client.post(f"{API}/auth/refresh").status_code == 401

    def test_logout_all_revokes_every_session(self, client, user, user_headers, db):
        _login(client)
        _login(client)
        assert db.query(RefreshToken).count() == 2
        response = client.post(f"{API}/auth/logout-all", headers=user_headers)
        assert response.status_code == 200
        assert db.query(RefreshToken).count() == 0


class TestPasswords:
    def test_forgot_password_does_not_leak_accounts(self, client, user):
        known = client.post(f"{API}/auth/forgot-password", json={"email": user.email})
        unknown = client.post(f"{API}/auth/forgot-password", json={"email": "ghost@example.com"})
        assert known.status_code == unknown.status_code == 200
        assert known.json()["message"] == unknown.json()["message"]

    def test_reset_password_changes_password_and_revokes_sessions(self, client, user, db):
        _login(client)
        token = create_reset_token(user.id)
        response = client.post(f"{API}/auth/reset-password", json={"token": token, "new_password": "Brandnew123"})
        assert response.status_code == 200
        assert db.query(RefreshToken).count() == 0
        assert _login(client, password="Brandnew123").status_code == 200
        assert _login(client).status_code == 401

    def test_reset_with_expired_token(self, client, user):
        token = create_reset_token(user.id, expires_delta=timedelta(seconds=-1))
        response = client.post(f"{API}/auth/reset-password", json={"token": token, "new_password": "Brandnew123"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "TOKEN_EXPIRED"

    def test_reset_with_access_token_is_invalid(self, client, user):
        token = create_access_token(user)
        response = client.post(f"{API}/auth/reset-password", json={"token": token, "new_password": "Brandnew123"})
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_TOKEN"

    def test_change_password(self, client, user, user_headers):
        response = client.post(
            f"{API}/auth/change-password",
            json={"current_password": PASSWORD, "new_password": "Changed123"},
            headers=user_headers,
        )
        assert response.status_code == 200
        assert _login(client, password="Changed123").status_code == 200

    def test_change_password_requires_current_password(self, client, user, user_headers):
        response = client.post(
            f"{API}/auth/change-password",
            json={"current_password": "Wrong12345", "new_password": "Changed123"},
            headers=user_headers,
        )
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_CURRENT_PASSWORD"


def test_me_requires_authentication(client):
    response = client.get(f"{API}/auth/me")
    assert response.status_code == 401
    assert response.json() == {
        "success": False,
        "error": {"code": "AUTHENTICATION_ERROR", "message": "Authentication required"},
    }


def test_me_rejects_deactivated_user(client, make_user):
    locked = make_user(email="gone@example.com", is_active=False)
    response = client.get(f"{API}/auth/me", headers=auth_headers(locked))
    assert response.status_code == 401
