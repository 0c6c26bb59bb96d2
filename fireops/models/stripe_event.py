"""Stripe event model (idempotency table).

Both webhook endpoints record every verified event by its Stripe event ID.
Before processing, the handler checks this table; a known event_id returns
200 immediately so Stripe retries never apply a payment twice.
"""

import uuid

from fireops.extensions import db


class StripeEvent(db.Model):
    __tablename__ = "stripe_events"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    stripe_event_id = db.Column(
        db.String(255), unique=True, nullable=False
    )  # e.g. "evt_1Abc..."
    event_type = db.Column(
        db.String(255), nullable=False
    )  # e.g. "charge.refunded"
    endpoint = db.Column(
        db.String(30), nullable=False, default="payments"
    )  # payments | invoices
    processed_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def __repr__(self):
        return f"<StripeEvent {self.stripe_event_id} ({self.event_type})>"
