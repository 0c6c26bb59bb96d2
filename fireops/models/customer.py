"""Customer and customer-link models.

- Customer: email is the unique business key (upsert-by-email).
- CustomerLink: opaque token granting a non-authenticated customer
  time-boxed, optionally use-limited access to a quote, job or portal.
- CustomerLinkAccess: access log for each link (view, approve, ...).
"""

import uuid
from datetime import datetime, timezone

from fireops.extensions import db


class Customer(db.Model):
    __tablename__ = "customers"

    STATUSES = ["active", "inactive"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False)  # lowercased
    phone = db.Column(db.String(50), nullable=True)
    company = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(500), nullable=True)
    city = db.Column(db.String(100), nullable=True)
    state = db.Column(db.String(50), nullable=True)
    zip = db.Column(db.String(20), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="active")
    stripe_customer_id = db.Column(db.String(255), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    # --- Relationships ---
    invoices = db.relationship("Invoice", back_populates="customer", lazy="dynamic")

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "company": self.company,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "zip": self.zip,
            "notes": self.notes,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Customer {self.email}>"


class CustomerLink(db.Model):
    __tablename__ = "customer_links"

    LINK_TYPES = ["quote_approval", "job_status", "portal_access"]
    STATUSES = ["active", "expired", "revoked", "used"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    token = db.Column(
        db.String(64), unique=True, nullable=False
    )  # secrets.token_urlsafe(32) -> 43 chars
    link_type = db.Column(db.String(30), nullable=False, default="quote_approval")
    customer_id = db.Column(
        db.String(36), db.ForeignKey("customers.id"), nullable=True
    )
    customer_email = db.Column(db.String(255), nullable=False)
    customer_name = db.Column(db.String(255), nullable=True)
    quote_id = db.Column(db.String(36), db.ForeignKey("quotes.id"), nullable=True)
    job_id = db.Column(db.String(36), db.ForeignKey("jobs.id"), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="active")
    expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    max_uses = db.Column(db.Integer, nullable=True)
    use_count = db.Column(db.Integer, nullable=False, default=0)
    last_accessed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_by = db.Column(db.String(36), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    customer = db.relationship("Customer")
    quote = db.relationship("Quote")
    job = db.relationship("Job")
    accesses = db.relationship(
        "CustomerLinkAccess",
        back_populates="link",
        cascade="all, delete-orphan",
        lazy="dynamic",
    )

    @property
    def is_expired(self):
        if self.expires_at is None:
            return False
        expires = self.expires_at
        # SQLite returns naive datetimes; Postgres returns aware ones.
        if expires.tzinfo is None:
            expires = expires.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc) > expires

    @property
    def is_exhausted(self):
        return self.max_uses is not None and (self.use_count or 0) >= self.max_uses

    def to_dict(self, base_url=None):
        data = {
            "id": self.id,
            "token": self.token,
            "link_type": self.link_type,
            "customer_id": self.customer_id,
            "customer_email": self.customer_email,
            "customer_name": self.customer_name,
            "quote_id": self.quote_id,
            "job_id": self.job_id,
            "status": self.status,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "max_uses": self.max_uses,
            "use_count": self.use_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if base_url:
            data["url"] = f"{base_url}/c/{self.token}"
        return data

    def __repr__(self):
        return f"<CustomerLink {self.link_type} token={self.token[:8]}...>"


class CustomerLinkAccess(db.Model):
    __tablename__ = "customer_link_access_log"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    customer_link_id = db.Column(
        db.String(36),
        db.ForeignKey("customer_links.id", ondelete="CASCADE"),
        nullable=False,
    )
    action = db.Column(db.String(30), nullable=False)  # view | approve
    ip_address = db.Column(db.String(100), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    link = db.relationship("CustomerLink", back_populates="accesses")

    def __repr__(self):
        return f"<CustomerLinkAccess {self.action}>"
