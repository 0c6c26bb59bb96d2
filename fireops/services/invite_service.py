"""Invite service — staff invitations.

Handles the full lifecycle of staff invite tokens:
- invite_staff: create an inactive user + one-time token, queue the email
- validate_token: check if a token exists, is not expired, and is not used
- accept_invite: set the password, activate the user, consume the token
"""

import secrets
from datetime import datetime, timedelta, timezone

from flask import current_app
from werkzeug.security import generate_password_hash

from fireops.errors import AlreadyExists, NotFound, ValidationFailed
from fireops.extensions import db
from fireops.models.invite import StaffInvite
from fireops.models.user import Team, User
from fireops.services import notification_service
from fireops.validation import is_valid_email, normalize_email, sanitize

INVITE_EXPIRES_DAYS = 7
MIN_PASSWORD_LENGTH = 8


def invite_url(invite):
    return f"{current_app.config['APP_BASE_URL']}/accept-invite?token={invite.token}"


def invite_staff(data, invited_by=None):
    """Create an inactive staff user and an invite token for them.

    Returns:
        tuple: (user, invite)
    """
    email = normalize_email(data.get("email"))
    full_name = sanitize(data.get("full_name"))
    role = data.get("role")

    if not email or not full_name or not role:
        raise ValidationFailed("email, full_name and role are required")
    if not is_valid_email(email):
        raise ValidationFailed("Invalid email address")
    if role not in User.ROLES:
        raise ValidationFailed(f"Invalid role. Must be one of: {', '.join(User.ROLES)}")

    team_id = data.get("team_id") or None
    if team_id and db.session.get(Team, team_id) is None:
        raise NotFound("Team not found")

    if User.query.filter_by(email=email).first():
        raise AlreadyExists("A user with this email already exists")

    user = User(
        email=email,
        # Unusable until the invite is accepted.
        password_hash=generate_password_hash(secrets.token_urlsafe(32)),
        full_name=full_name,
        phone=sanitize(data.get("phone")) or None,
        role=role,
        team_id=team_id,
        is_active=False,
    )
    db.session.add(user)
    db.session.flush()

    invite = StaffInvite(
        user_id=user.id,
        token=secrets.token_urlsafe(48),  # produces a 64-char base64 string
        expires_at=datetime.now(timezone.utc) + timedelta(days=INVITE_EXPIRES_DAYS),
        invited_by=invited_by,
    )
    db.session.add(invite)
    db.session.flush()

    notification_service.notify_staff_invite(user, invite_url(invite))
    return user, invite


def validate_token(token):
    """Look up an invite token and check if it's usable.

    Returns:
        tuple: (invite, error_message)
            - If valid: (StaffInvite, None)
            - If invalid: (None, "reason string")
    """
    if not token:
        return None, "No invite token provided."

    invite = StaffInvite.query.filter_by(token=token).first()

    if invite is None:
        return None, "Invalid invite link."

    if invite.is_used:
        return None, "This invite link has already been used."

    if invite.is_expired:
        return None, "This invite link has expired."

    return invite, None


def accept_invite(token, password):
    """Set the invited user's password and activate the account.

    Returns the activated User. Does not commit.
    """
    invite, error = validate_token(token)
    if error:
        raise ValidationFailed(error)
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters."
        )

    user = invite.user
    user.password_hash = generate_password_hash(password)
    user.is_active = True
    invite.used_at = datetime.now(timezone.utc)
    db.session.flush()
    return user
