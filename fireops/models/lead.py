"""Lead model.

Unqualified prospective customers captured from the public contact form
(or created by staff). A lead is promoted to a Customer by the
grant-access action, which marks it "won".
"""

import uuid

from fireops.extensions import db


class Lead(db.Model):
    __tablename__ = "leads"

    # -- Valid statuses --
    STATUSES = ["new", "contacted", "qualified", "proposal", "won", "lost"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(50), nullable=True)
    message = db.Column(db.Text, nullable=True)
    service_type = db.Column(db.String(100), nullable=True)
    preferred_contact = db.Column(db.String(20), default="email")  # email | phone | text
    source = db.Column(db.String(50), default="website")
    status = db.Column(db.String(20), nullable=False, default="new")
    notes = db.Column(db.Text, nullable=True)
    customer_id = db.Column(
        db.String(36), db.ForeignKey("customers.id"), nullable=True
    )  # set when access is granted
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "message": self.message,
            "service_type": self.service_type,
            "preferred_contact": self.preferred_contact,
            "source": self.source,
            "status": self.status,
            "notes": self.notes,
            "customer_id": self.customer_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Lead {self.email} ({self.status})>"
