"""Staff invite model.

Admins invite staff by email. The invited user is created inactive with
an unusable password; visiting the invite link lets them set a password.
Tokens are one-time-use with a 7-day expiration.
"""

import uuid
from datetime import datetime, timezone

from fireops.extensions import db


class StaffInvite(db.Model):
    __tablename__ = "staff_invites"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    token = db.Column(
        db.String(64), unique=True, nullable=False
    )  # cryptographically random
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    used_at = db.Column(
        db.DateTime(timezone=True), nullable=True
    )  # set when the password is chosen
    invited_by = db.Column(db.String(36), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    user = db.relationship("User")

    @property
    def is_expired(self):
        """Check if the invite has expired."""
        now = datetime.now(timezone.utc)
        expires = self.expires_at
        # SQLite returns naive datetimes; Postgres returns aware ones.
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return now > expires

    @property
    def is_used(self):
        return self.used_at is not None

    def __repr__(self):
        return f"<StaffInvite token={self.token[:8]}... user={self.user_id}>"
