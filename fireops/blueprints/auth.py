"""Auth blueprint — /api/auth/*

Session login for staff (Flask-Login cookie, 7 days) plus the
first-admin bootstrap and invite acceptance.

Route Map:
  POST /api/auth/login          — Email + password login
  POST /api/auth/logout         — End the session
  GET  /api/auth/me             — Current user + CSRF token
  POST /api/auth/setup-admin    — Create the first admin (only while none exists)
  POST /api/auth/accept-invite  — Set password from a staff invite token
"""

import logging
from datetime import datetime, timezone

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf
from werkzeug.security import check_password_hash, generate_password_hash

from fireops.errors import (
    AccessDenied,
    AlreadyExists,
    AuthenticationRequired,
    ValidationFailed,
)
from fireops.extensions import csrf, db, limiter
from fireops.models.user import User
from fireops.services import invite_service
from fireops.validation import is_valid_email, normalize_email, sanitize

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


# ──────────────────────────────────────────────
# POST /api/auth/login
# ──────────────────────────────────────────────

@auth_bp.route("/login", methods=["POST"])
@csrf.exempt
@limiter.limit("15 per minute")
def login():
    """Standard email + password login.

    The response carries the CSRF token the client sends back as
    X-CSRFToken on state-changing calls.
    """
    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))
    password = data.get("password") or ""

    if not email or not password:
        raise ValidationFailed("Email and password are required")

    user = User.query.filter_by(email=email).first()

    if user is None or not check_password_hash(user.password_hash, password):
        logger.info(f"Failed login for {email}")
        raise AuthenticationRequired("Invalid email or password")

    if not user.is_active:
        raise AccessDenied("Your account has been deactivated")

    user.last_login = datetime.now(timezone.utc)
    db.session.commit()
    login_user(user, remember=True)

    return jsonify({
        "success": True,
        "data": {"user": user.to_dict(), "csrf_token": generate_csrf()},
    })


# ──────────────────────────────────────────────
# POST /api/auth/logout
# ──────────────────────────────────────────────

@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True, "message": "Logged out"})


# ──────────────────────────────────────────────
# GET /api/auth/me
# ──────────────────────────────────────────────

@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify({
        "success": True,
        "data": {"user": current_user.to_dict(), "csrf_token": generate_csrf()},
    })


# ──────────────────────────────────────────────
# POST /api/auth/setup-admin
# ──────────────────────────────────────────────

@auth_bp.route("/setup-admin", methods=["POST"])
@csrf.exempt
@limiter.limit("5 per minute")
def setup_admin():
    """Bootstrap the first admin account. Closed once any admin exists."""
    if User.query.filter_by(role="admin").first():
        raise AccessDenied("Admin already exists")

    data = request.get_json(silent=True) or {}
    email = normalize_email(data.get("email"))
    password = data.get("password") or ""
    full_name = sanitize(data.get("full_name"))

    if not email or not password or not full_name:
        raise ValidationFailed("email, password and full_name are required")
    if not is_valid_email(email):
        raise ValidationFailed("Invalid email address")
    if len(password) < invite_service.MIN_PASSWORD_LENGTH:
        raise ValidationFailed(
            f"Password must be at least {invite_service.MIN_PASSWORD_LENGTH} characters."
        )
    if User.query.filter_by(email=email).first():
        raise AlreadyExists("A user with this email already exists")

    user = User(
        email=email,
        password_hash=generate_password_hash(password),
        full_name=full_name,
        role="admin",
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    logger.info(f"Initial admin created: {email}")

    return jsonify({"success": True, "data": user.to_dict()}), 201


# ──────────────────────────────────────────────
# POST /api/auth/accept-invite
# ──────────────────────────────────────────────

@auth_bp.route("/accept-invite", methods=["POST"])
@csrf.exempt
@limiter.limit("10 per minute")
def accept_invite():
    data = request.get_json(silent=True) or {}
    user = invite_service.accept_invite(data.get("token"), data.get("password"))
    db.session.commit()
    logger.info(f"Staff invite accepted by {user.email}")

    return jsonify({
        "success": True,
        "message": "Account activated. You can now log in.",
        "data": user.to_dict(),
    })
