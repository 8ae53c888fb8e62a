"""
Authentication and account tests.

Verifies:
- Register / login return a usable bearer token
- Only managers may create manager accounts
- Password strength and password change rules
- Account administration guards (self-demotion, users with audit history)
"""

import jwt
import pytest

from inventory_api.errors import ConflictError
from inventory_api.models import User
from inventory_api.services import auth_service, stock_service, token_service

from conftest import TEST_PASSWORD, auth_headers


class TestRegisterAndLogin:

    def test_register_returns_token(self, client, db_session):
        resp = client.post("/api/auth/register", json={
            "username": "new_clerk",
            "email": "Clerk@Shop.Example",
            "password": "Shelving99",
        })
        assert resp.status_code == 201
        body = resp.json
        assert body["data"]["user"]["role"] == "staff"
        assert body["data"]["user"]["email"] == "clerk@shop.example"
        assert body["token"] == body["data"]["token"]
        assert "password_hash" not in body["data"]["user"]

        profile = client.get("/api/auth/profile", headers=auth_headers(body["token"]))
        assert profile.status_code == 200
        assert profile.json["data"]["username"] == "new_clerk"

    def test_anonymous_cannot_register_manager(self, client, db_session):
        resp = client.post("/api/auth/register", json={
            "username": "sneaky",
            "email": "sneaky@shop.example",
            "password": "Shelving99",
            "role": "manager",
        })
        assert resp.status_code == 403
        assert db_session.query(User).count() == 0

    def test_manager_can_register_manager(self, client, manager_headers, db_session):
        resp = client.post("/api/auth/register", headers=manager_headers, json={
            "username": "second_boss",
            "email": "boss2@shop.example",
            "password": "Shelving99",
            "role": "manager",
        })
        assert resp.status_code == 201
        assert resp.json["data"]["user"]["role"] == "manager"

    def test_duplicate_email(self, client, staff_user):
        resp = client.post("/api/auth/register", json={
            "username": "another",
            "email": staff_user.email,
            "password": "Shelving99",
        })
        assert resp.status_code == 409
        assert resp.json["message"] == "Email already exists"

    @pytest.mark.parametrize(
        "password,message",
        [
            ("short1", "at least 8 characters"),
            ("onlyletters", "at least one digit"),
            ("1234567890", "at least one letter"),
            ("Password1", "too common"),
        ],
    )
    def test_weak_passwords_rejected(self, client, db_session, password, message):
        resp = client.post("/api/auth/register", json={
            "username": "weakling",
            "email": "weak@shop.example",
            "password": password,
        })
        assert resp.status_code == 400
        assert message in resp.json["message"]

    def test_login_wrong_password(self, client, staff_user):
        resp = client.post("/api/auth/login", json={"email": staff_user.email, "password": "WrongPass1"})
        assert resp.status_code == 401
        assert resp.json["message"] == "Invalid email or password"

    def test_login_unknown_email_same_message(self, client, db_session):
        resp = client.post("/api/auth/login", json={"email": "ghost@shop.example", "password": "WrongPass1"})
        assert resp.status_code == 401
        assert resp.json["message"] == "Invalid email or password"

    def test_login_rejects_non_string_password(self, client, staff_user):
        resp = client.post("/api/auth/login", json={"email": staff_user.email, "password": 12345678})
        assert resp.status_code == 400
        assert resp.json["message"] == "Email and password must be strings"

    def test_token_claims(self, app, client, staff_user):
        resp = client.post("/api/auth/login", json={"email": staff_user.email, "password": TEST_PASSWORD})
        claims = jwt.decode(
            resp.json["token"],
            app.config["JWT_SECRET"],
            algorithms=["HS256"],
            audience=app.config["JWT_AUDIENCE"],
        )
        assert claims["user_id"] == staff_user.id
        assert claims["role"] == "staff"
        assert claims["iss"] == app.config["JWT_ISSUER"]

    def test_expired_token_rejected(self, app, client, staff_user):
        app.config["JWT_EXPIRES_HOURS"] = -1
        try:
            token = token_service.generate_token(staff_user)
        finally:
            app.config["JWT_EXPIRES_HOURS"] = 24
        resp = client.get("/api/auth/me", headers=auth_headers(token))
        assert resp.status_code == 401
        assert resp.json["message"] == "Token has expired"


class TestProfileAndPassword:

    def test_me_includes_token_info(self, client, staff_headers):
        resp = client.get("/api/auth/me", headers=staff_headers)
        info = resp.json["data"]["token_info"]
        assert info["expires_at"] > info["issued_at"]

    def test_change_password(self, client, staff_headers, staff_user):
        resp = client.put("/api/auth/password", headers=staff_headers, json={
            "current_password": TEST_PASSWORD,
            "new_password": "Restocked77",
        })
        assert resp.status_code == 200

        old = client.post("/api/auth/login", json={"email": staff_user.email, "password": TEST_PASSWORD})
        new = client.post("/api/auth/login", json={"email": staff_user.email, "password": "Restocked77"})
        assert old.status_code == 401
        assert new.status_code == 200

    def test_change_password_requires_current(self, client, staff_headers):
        resp = client.put("/api/auth/password", headers=staff_headers, json={
            "current_password": "NotMine123",
            "new_password": "Restocked77",
        })
        assert resp.status_code == 401

    def test_change_password_rejects_non_string(self, client, staff_headers):
        resp = client.put("/api/auth/password", headers=staff_headers, json={
            "current_password": TEST_PASSWORD,
            "new_password": ["Restocked77"],
        })
        assert resp.status_code == 400

    def test_update_profile_username_taken(self, client, staff_headers, manager_user):
        resp = client.put("/api/auth/profile", headers=staff_headers, json={"username": manager_user.username})
        assert resp.status_code == 409


class TestAccountAdministration:

    def test_manager_cannot_demote_self(self, client, manager_headers, manager_user):
        resp = client.put(
            f"/api/auth/users/{manager_user.id}/role",
            json={"role": "staff"},
            headers=manager_headers,
        )
        assert resp.status_code == 400

    def test_delete_user_without_history(self, client, manager_headers, staff_user, db_session):
        staff_id = staff_user.id
        resp = client.delete(f"/api/auth/users/{staff_id}", headers=manager_headers)
        assert resp.status_code == 200
        assert db_session.get(User, staff_id) is None

    def test_user_with_audit_history_cannot_be_deleted(self, db_session, make_product, manager_user, staff_user):
        product = make_product()
        stock_service.adjust_stock(product_id=product.id, new_quantity=1, user_id=staff_user.id, reason="Recount")
        with pytest.raises(ConflictError):
            auth_service.delete_user(actor=manager_user, user_id=staff_user.id)

    def test_user_stats(self, client, manager_headers, staff_user):
        resp = client.get("/api/auth/stats", headers=manager_headers)
        stats = resp.json["data"]
        assert stats["total_users"] == 2
        assert stats["roles_distribution"]["staff"]["percentage"] == 50.0
