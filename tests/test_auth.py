"""Tests for the auth blueprint — login, logout, first admin, invite acceptance.

Covers:
- Login with valid credentials (user + CSRF token returned)
- Login with invalid credentials / missing fields
- Login with deactivated account
- /me and logout
- First-admin bootstrap closes once an admin exists
- Invite acceptance: valid, used, expired, unknown, short password
"""

import json
from datetime import datetime, timedelta, timezone

from werkzeug.security import check_password_hash

from fireops.extensions import db
from fireops.models.invite import StaffInvite
from fireops.models.user import User


class TestLogin:
    """POST /api/auth/login"""

    def test_login_success(self, client, seed_data):
        resp = client.post("/api/auth/login", json={
            "email": "Admin@FireOps.local",
            "password": "admin123",
        })
        assert resp.status_code == 200
        data = json.loads(resp.data)["data"]
        assert data["user"]["role"] == "admin"
        assert data["csrf_token"]
        assert "password_hash" not in data["user"]

        user = db.session.get(User, seed_data["admin_id"])
        assert user.last_login is not None

    def test_wrong_password(self, client, seed_data):
        resp = client.post("/api/auth/login", json={
            "email": "admin@fireops.local",
            "password": "wrong",
        })
        assert resp.status_code == 401
        assert json.loads(resp.data)["error"] == "Invalid email or password"

    def test_unknown_email(self, client, seed_data):
        resp = client.post("/api/auth/login", json={
            "email": "nobody@fireops.local",
            "password": "admin123",
        })
        assert resp.status_code == 401
        assert json.loads(resp.data)["error"] == "Invalid email or password"

    def test_missing_fields(self, client, seed_data):
        resp = client.post("/api/auth/login", json={"email": "admin@fireops.local"})
        assert resp.status_code == 400
        assert json.loads(resp.data)["error"] == "Email and password are required"

    def test_deactivated_account(self, client, seed_data):
        user = db.session.get(User, seed_data["tech_id"])
        user.is_active = False
        db.session.commit()

        resp = client.post("/api/auth/login", json={
            "email": "tech@fireops.local",
            "password": "tech1234",
        })
        assert resp.status_code == 403
        assert json.loads(resp.data)["error"] == "Your account has been deactivated"


class TestSession:

    def test_me_requires_login(self, client, seed_data):
        resp = client.get("/api/auth/me")
        assert resp.status_code == 401

    def test_me(self, client, seed_data, login):
        login("technician")
        resp = client.get("/api/auth/me")
        assert resp.status_code == 200
        data = json.loads(resp.data)["data"]
        assert data["user"]["id"] == seed_data["tech_id"]
        assert data["user"]["team_id"] == seed_data["team_id"]

    def test_logout(self, client, seed_data, login):
        login("manager")
        resp = client.post("/api/auth/logout")
        assert resp.status_code == 200
        assert client.get("/api/auth/me").status_code == 401


class TestSetupAdmin:
    """POST /api/auth/setup-admin"""

    def test_first_admin(self, client, app):
        resp = client.post("/api/auth/setup-admin", json={
            "email": "owner@fireops.local",
            "password": "longenough",
            "full_name": "Owner",
        })
        assert resp.status_code == 201
        user = User.query.filter_by(email="owner@fireops.local").one()
        assert user.role == "admin"
        assert check_password_hash(user.password_hash, "longenough")

    def test_closed_once_admin_exists(self, client, seed_data):
        resp = client.post("/api/auth/setup-admin", json={
            "email": "second@fireops.local",
            "password": "longenough",
            "full_name": "Second",
        })
        assert resp.status_code == 403
        assert json.loads(resp.data)["error"] == "Admin already exists"

    def test_short_password(self, client, app):
        resp = client.post("/api/auth/setup-admin", json={
            "email": "owner@fireops.local",
            "password": "short",
            "full_name": "Owner",
        })
        assert resp.status_code == 400
        assert User.query.count() == 0


class TestAcceptInvite:
    """POST /api/auth/accept-invite"""

    def _invite(self, seed_data, **extra):
        user = User(
            email="new@fireops.local",
            password_hash="!",
            full_name="New Hire",
            role="technician",
            is_active=False,
        )
        db.session.add(user)
        db.session.flush()
        fields = {
            "user_id": user.id,
            "token": "invite-token-123",
            "expires_at": datetime.now(timezone.utc) + timedelta(days=7),
            "invited_by": seed_data["admin_id"],
        }
        fields.update(extra)
        invite = StaffInvite(**fields)
        db.session.add(invite)
        db.session.commit()
        return user, invite

    def test_accept_activates_user(self, client, seed_data):
        user, invite = self._invite(seed_data)
        resp = client.post("/api/auth/accept-invite", json={
            "token": "invite-token-123",
            "password": "brand-new-pass",
        })
        assert resp.status_code == 200
        assert user.is_active is True
        assert invite.used_at is not None

        resp = client.post("/api/auth/login", json={
            "email": "new@fireops.local",
            "password": "brand-new-pass",
        })
        assert resp.status_code == 200

    def test_used_invite(self, client, seed_data):
        self._invite(seed_data, used_at=datetime.now(timezone.utc))
        resp = client.post("/api/auth/accept-invite", json={
            "token": "invite-token-123",
            "password": "brand-new-pass",
        })
        assert resp.status_code == 400
        assert json.loads(resp.data)["error"] == "This invite link has already been used."

    def test_expired_invite(self, client, seed_data):
        self._invite(seed_data, expires_at=datetime.now(timezone.utc) - timedelta(hours=1))
        resp = client.post("/api/auth/accept-invite", json={
            "token": "invite-token-123",
            "password": "brand-new-pass",
        })
        assert json.loads(resp.data)["error"] == "This invite link has expired."

    def test_unknown_token(self, client, seed_data):
        resp = client.post("/api/auth/accept-invite", json={
            "token": "bogus",
            "password": "brand-new-pass",
        })
        assert json.loads(resp.data)["error"] == "Invalid invite link."

    def test_no_token(self, client, seed_data):
        resp = client.post("/api/auth/accept-invite", json={"password": "brand-new-pass"})
        assert json.loads(resp.data)["error"] == "No invite token provided."

    def test_short_password(self, client, seed_data):
        user, _ = self._invite(seed_data)
        resp = client.post("/api/auth/accept-invite", json={
            "token": "invite-token-123",
            "password": "short",
        })
        assert resp.status_code == 400
        assert user.is_active is False
