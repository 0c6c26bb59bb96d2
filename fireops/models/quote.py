"""Quote and quote-acceptance models.

Customer and site are embedded snapshots (JSON), not foreign keys: a quote
keeps the details it was priced against even if the customer record later
changes. ``totals`` is derived from ``line_items`` server-side and never
taken from client input.
"""

import uuid

from fireops.extensions import db
from fireops.money import money_float


class Quote(db.Model):
    __tablename__ = "quotes"

    # -- Valid statuses --
    STATUSES = ["draft", "sent", "viewed", "accepted", "paid", "rejected"]
    CONVERTIBLE_STATUSES = ["accepted", "paid"]
    ACCEPTABLE_STATUSES = ["sent", "viewed"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    quote_number = db.Column(db.String(30), unique=True, nullable=False)  # QT-2026-001
    quote_type = db.Column(db.String(50), nullable=False)
    template_name = db.Column(db.String(255), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="draft")
    customer = db.Column(db.JSON, nullable=False, default=dict)
    site = db.Column(db.JSON, nullable=False, default=dict)
    line_items = db.Column(db.JSON, nullable=False, default=list)
    totals = db.Column(db.JSON, nullable=False, default=dict)
    terms = db.Column(db.JSON, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    deposit_amount = db.Column(db.Numeric(12, 2), nullable=True)
    deposit_paid = db.Column(db.Boolean, default=False)
    payment_status = db.Column(
        db.String(20), nullable=True
    )  # None | deposit_paid | paid | refunded
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    viewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    accepted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    accepted_by = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.String(36), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    acceptances = db.relationship(
        "QuoteAcceptance", back_populates="quote", lazy="dynamic"
    )

    @property
    def customer_email(self):
        email = (self.customer or {}).get("email")
        return email.lower().strip() if email else None

    def to_dict(self):
        return {
            "id": self.id,
            "quote_number": self.quote_number,
            "quote_type": self.quote_type,
            "template_name": self.template_name,
            "status": self.status,
            "customer": self.customer or {},
            "site": self.site or {},
            "line_items": self.line_items or [],
            "totals": self.totals or {},
            "terms": self.terms,
            "notes": self.notes,
            "deposit_amount": money_float(self.deposit_amount),
            "deposit_paid": bool(self.deposit_paid),
            "payment_status": self.payment_status,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "accepted_at": self.accepted_at.isoformat() if self.accepted_at else None,
            "accepted_by": self.accepted_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Quote {self.quote_number} ({self.status})>"


class QuoteAcceptance(db.Model):
    __tablename__ = "quote_acceptances"

    PAYMENT_OPTIONS = ["pay_later", "pay_deposit", "pay_full"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    quote_id = db.Column(
        db.String(36), db.ForeignKey("quotes.id"), nullable=False
    )
    customer_link_id = db.Column(
        db.String(36), db.ForeignKey("customer_links.id"), nullable=True
    )
    accepted_by_name = db.Column(db.String(255), nullable=False)
    accepted_by_email = db.Column(db.String(255), nullable=False)
    accepted_by_ip = db.Column(db.String(100), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)
    signature_type = db.Column(db.String(20), default="typed")
    signature_data = db.Column(db.Text, nullable=True)
    terms_accepted = db.Column(db.Boolean, default=True)
    payment_option = db.Column(db.String(20), default="pay_later")
    deposit_amount = db.Column(db.Numeric(12, 2), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    quote = db.relationship("Quote", back_populates="acceptances")

    def to_dict(self):
        return {
            "id": self.id,
            "quote_id": self.quote_id,
            "accepted_by_name": self.accepted_by_name,
            "accepted_by_email": self.accepted_by_email,
            "payment_option": self.payment_option,
            "deposit_amount": money_float(self.deposit_amount),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<QuoteAcceptance quote={self.quote_id} by={self.accepted_by_email}>"
