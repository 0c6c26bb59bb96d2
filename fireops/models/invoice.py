"""Invoice and invoice line item models.

invoices.status moves to partial/paid only through recorded payments
(or the Stripe invoice.paid webhook). ``version`` is SQLAlchemy's
optimistic-lock column: every UPDATE checks and bumps it, so a stale
concurrent writer fails with StaleDataError instead of overwriting.
"""

import uuid

from fireops.extensions import db
from fireops.money import money_float


class Invoice(db.Model):
    __tablename__ = "invoices"

    # -- Valid statuses --
    STATUSES = ["draft", "sent", "partial", "paid", "payment_failed", "refunded"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    invoice_number = db.Column(db.String(30), unique=True, nullable=False)  # INV-2026-0001
    customer_id = db.Column(
        db.String(36), db.ForeignKey("customers.id"), nullable=False
    )
    job_id = db.Column(
        db.String(36), db.ForeignKey("jobs.id"), unique=True, nullable=True
    )  # at most one invoice per job
    quote_id = db.Column(db.String(36), db.ForeignKey("quotes.id"), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="draft")
    subtotal = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    tax_rate = db.Column(db.Numeric(6, 4), nullable=False, default=0)
    tax_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    amount_paid = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    due_date = db.Column(db.Date, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    stripe_invoice_id = db.Column(db.String(255), nullable=True)
    stripe_hosted_url = db.Column(db.String(1000), nullable=True)
    stripe_pdf_url = db.Column(db.String(1000), nullable=True)
    created_by = db.Column(db.String(36), nullable=True)
    version = db.Column(db.Integer, nullable=False)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version}

    # --- Relationships ---
    customer = db.relationship("Customer", back_populates="invoices")
    job = db.relationship("Job")
    items = db.relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.sort_order",
    )
    payments = db.relationship("Payment", back_populates="invoice", lazy="dynamic")

    @property
    def balance_due(self):
        return (self.total or 0) - (self.amount_paid or 0)

    def to_dict(self, include_items=True):
        data = {
            "id": self.id,
            "invoice_number": self.invoice_number,
            "customer_id": self.customer_id,
            "customer": {
                "name": self.customer.name,
                "email": self.customer.email,
            } if self.customer else None,
            "job_id": self.job_id,
            "quote_id": self.quote_id,
            "status": self.status,
            "subtotal": money_float(self.subtotal),
            "tax_rate": float(self.tax_rate) if self.tax_rate is not None else None,
            "tax_amount": money_float(self.tax_amount),
            "total": money_float(self.total),
            "amount_paid": money_float(self.amount_paid),
            "balance_due": money_float(self.balance_due),
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "notes": self.notes,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "stripe_invoice_id": self.stripe_invoice_id,
            "stripe_hosted_url": self.stripe_hosted_url,
            "stripe_pdf_url": self.stripe_pdf_url,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data

    def __repr__(self):
        return f"<Invoice {self.invoice_number} ({self.status})>"


class InvoiceItem(db.Model):
    __tablename__ = "invoice_items"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    invoice_id = db.Column(
        db.String(36),
        db.ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
    )
    description = db.Column(db.String(1000), nullable=False)
    quantity = db.Column(db.Numeric(10, 2), nullable=False, default=1)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    sort_order = db.Column(db.Integer, nullable=False, default=0)

    invoice = db.relationship("Invoice", back_populates="items")

    def to_dict(self):
        return {
            "id": self.id,
            "description": self.description,
            "quantity": float(self.quantity),
            "unit_price": money_float(self.unit_price),
            "total": money_float(self.total),
            "sort_order": self.sort_order,
        }

    def __repr__(self):
        return f"<InvoiceItem {self.description[:30]}>"
