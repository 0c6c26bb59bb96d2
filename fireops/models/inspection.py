"""Inspection and deficiency models.

Deficiencies found during an inspection can be rolled into a repair quote.
A deficiency is linked to at most one quote (``quote_id``).
"""

import uuid

from fireops.extensions import db
from fireops.money import money_float


class Inspection(db.Model):
    __tablename__ = "inspections"

    STATUSES = ["scheduled", "in_progress", "completed", "cancelled"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    inspection_type = db.Column(db.String(50), nullable=False, default="annual")
    status = db.Column(db.String(20), nullable=False, default="scheduled")
    customer_id = db.Column(
        db.String(36), db.ForeignKey("customers.id"), nullable=True
    )
    customer_name = db.Column(db.String(255), nullable=False)
    contact_email = db.Column(db.String(255), nullable=True)
    contact_phone = db.Column(db.String(50), nullable=True)
    site_address = db.Column(db.String(500), nullable=False)
    site_city = db.Column(db.String(100), nullable=True)
    site_state = db.Column(db.String(50), nullable=True)
    site_zip = db.Column(db.String(20), nullable=True)
    inspector_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
    scheduled_date = db.Column(db.Date, nullable=True)
    actual_start_time = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_end_time = db.Column(db.DateTime(timezone=True), nullable=True)
    passed = db.Column(db.Boolean, nullable=True)
    pass_with_deficiencies = db.Column(db.Boolean, nullable=True)
    checklist_results = db.Column(db.JSON, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    fire_marshal_notes = db.Column(db.Text, nullable=True)
    internal_notes = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    deficiencies = db.relationship(
        "Deficiency",
        back_populates="inspection",
        cascade="all, delete-orphan",
        order_by="Deficiency.created_at",
    )

    def to_dict(self, include_deficiencies=False):
        data = {
            "id": self.id,
            "inspection_type": self.inspection_type,
            "status": self.status,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "contact_email": self.contact_email,
            "contact_phone": self.contact_phone,
            "site_address": self.site_address,
            "site_city": self.site_city,
            "site_state": self.site_state,
            "site_zip": self.site_zip,
            "inspector_id": self.inspector_id,
            "scheduled_date": self.scheduled_date.isoformat() if self.scheduled_date else None,
            "actual_start_time": (
                self.actual_start_time.isoformat() if self.actual_start_time else None
            ),
            "actual_end_time": self.actual_end_time.isoformat() if self.actual_end_time else None,
            "passed": self.passed,
            "pass_with_deficiencies": self.pass_with_deficiencies,
            "checklist_results": self.checklist_results,
            "notes": self.notes,
            "fire_marshal_notes": self.fire_marshal_notes,
            "internal_notes": self.internal_notes,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_deficiencies:
            data["deficiencies"] = [d.to_dict() for d in self.deficiencies]
        return data

    def __repr__(self):
        return f"<Inspection {self.customer_name} ({self.status})>"


class Deficiency(db.Model):
    __tablename__ = "deficiencies"

    SEVERITIES = ["critical", "major", "minor"]
    STATUSES = ["open", "quoted", "resolved"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    inspection_id = db.Column(
        db.String(36),
        db.ForeignKey("inspections.id", ondelete="CASCADE"),
        nullable=False,
    )
    category = db.Column(db.String(50), nullable=False)  # e.g. "smoke_detector"
    description = db.Column(db.Text, nullable=False)
    severity = db.Column(db.String(20), nullable=False)
    location = db.Column(db.String(255), nullable=True)
    recommended_action = db.Column(db.Text, nullable=True)
    estimated_cost_low = db.Column(db.Numeric(12, 2), nullable=True)
    estimated_cost_high = db.Column(db.Numeric(12, 2), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="open")
    quote_id = db.Column(db.String(36), db.ForeignKey("quotes.id"), nullable=True)
    created_by = db.Column(db.String(36), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    # --- Relationships ---
    inspection = db.relationship("Inspection", back_populates="deficiencies")
    quote = db.relationship("Quote")

    def to_dict(self):
        return {
            "id": self.id,
            "inspection_id": self.inspection_id,
            "category": self.category,
            "description": self.description,
            "severity": self.severity,
            "location": self.location,
            "recommended_action": self.recommended_action,
            "estimated_cost_low": money_float(self.estimated_cost_low),
            "estimated_cost_high": money_float(self.estimated_cost_high),
            "status": self.status,
            "quote_id": self.quote_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Deficiency {self.category} ({self.severity})>"
