"""Outbox email model.

Notifications are written here in the same transaction as the change
that triggered them, then delivered by `flask send-outbox`. A failed
send stays pending (attempts + last_error) until OUTBOX_MAX_ATTEMPTS.
"""

import uuid

from fireops.extensions import db


class OutboxEmail(db.Model):
    __tablename__ = "outbox_emails"

    STATUSES = ["pending", "sent", "failed"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    to_address = db.Column(db.String(1000), nullable=False)  # comma-separated
    subject = db.Column(db.String(500), nullable=False)
    template = db.Column(db.String(255), nullable=False)  # e.g. "emails/quote.html"
    context = db.Column(db.JSON, default=dict)
    reply_to = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="pending")
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text, nullable=True)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def __repr__(self):
        return f"<OutboxEmail {self.template} -> {self.to_address} ({self.status})>"
