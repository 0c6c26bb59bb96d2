"""Payment model.

Payments are the only writer of Invoice.amount_paid. Checkout-session
payments start "pending" and are settled by the Stripe webhook; manual
payments (cash, check, ...) are recorded as "completed".
"""

import uuid

from fireops.extensions import db
from fireops.money import money_float


class Payment(db.Model):
    __tablename__ = "payments"

    # -- Valid statuses --
    STATUSES = [
        "pending",
        "completed",
        "succeeded",
        "failed",
        "refunded",
        "partially_refunded",
    ]
    METHODS = ["cash", "check", "card", "ach", "wire", "stripe", "other"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    invoice_id = db.Column(
        db.String(36), db.ForeignKey("invoices.id"), nullable=True
    )
    customer_id = db.Column(
        db.String(36), db.ForeignKey("customers.id"), nullable=True
    )
    quote_id = db.Column(db.String(36), db.ForeignKey("quotes.id"), nullable=True)
    customer_link_id = db.Column(
        db.String(36), db.ForeignKey("customer_links.id"), nullable=True
    )
    quote_acceptance_id = db.Column(
        db.String(36), db.ForeignKey("quote_acceptances.id"), nullable=True
    )
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    payment_method = db.Column(db.String(20), nullable=False, default="cash")
    payment_type = db.Column(db.String(20), nullable=True)  # deposit | full
    status = db.Column(db.String(20), nullable=False, default="completed")
    reference_number = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    payment_date = db.Column(db.Date, nullable=True)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_name = db.Column(db.String(255), nullable=True)
    stripe_checkout_session_id = db.Column(
        db.String(255), unique=True, nullable=True
    )
    stripe_payment_intent_id = db.Column(db.String(255), nullable=True, index=True)
    receipt_url = db.Column(db.String(1000), nullable=True)
    failure_reason = db.Column(db.Text, nullable=True)
    refund_amount = db.Column(db.Numeric(12, 2), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    recorded_by = db.Column(db.String(36), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    invoice = db.relationship("Invoice", back_populates="payments")
    customer = db.relationship("Customer")
    quote = db.relationship("Quote")

    def to_dict(self):
        return {
            "id": self.id,
            "invoice_id": self.invoice_id,
            "invoice": {
                "invoice_number": self.invoice.invoice_number,
                "total": money_float(self.invoice.total),
                "status": self.invoice.status,
            } if self.invoice else None,
            "customer_id": self.customer_id,
            "quote_id": self.quote_id,
            "amount": money_float(self.amount),
            "payment_method": self.payment_method,
            "payment_type": self.payment_type,
            "status": self.status,
            "reference_number": self.reference_number,
            "notes": self.notes,
            "payment_date": self.payment_date.isoformat() if self.payment_date else None,
            "receipt_url": self.receipt_url,
            "failure_reason": self.failure_reason,
            "refund_amount": money_float(self.refund_amount),
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Payment {self.amount} ({self.status})>"
