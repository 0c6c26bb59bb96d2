"""Job models.

- Job: a scheduled unit of field work, optionally converted from a quote.
  Carries customer/site snapshot columns and a free-text scope summary
  ("<N>x description" per line) that invoice generation parses back.
- JobAssignment: user <-> job, with a role and acknowledgement timestamp.
- JobNote: visibility-scoped notes (internal | tech | customer).
- JobPhoto: photo URLs attached to the job (upload handled elsewhere).
- JobChecklist / ChecklistTemplate: task lists with per-item status.
- JobEvent: append-only activity log.
"""

import uuid
from datetime import datetime, timezone

from fireops.extensions import db
from fireops.money import money_float


def _iso(value):
    return value.isoformat() if value else None


class Job(db.Model):
    __tablename__ = "jobs"

    # -- Valid statuses --
    STATUSES = [
        "pending",
        "scheduled",
        "approved",
        "in_progress",
        "completed",
        "cancelled",
        "invoiced",
    ]
    PRIORITIES = ["low", "normal", "high", "urgent"]

    # Fields technicians/inspectors may change through a plain PATCH.
    FIELD_EDITABLE = {
        "status",
        "notes",
        "completion_notes",
        "actual_start_time",
        "actual_end_time",
        "completed_at",
    }
    # Fields office roles may change through a plain PATCH.
    OFFICE_EDITABLE = FIELD_EDITABLE | {
        "job_type",
        "priority",
        "description",
        "scope_summary",
        "customer_name",
        "customer_email",
        "customer_phone",
        "contact_name",
        "site_address",
        "site_city",
        "site_state",
        "site_zip",
        "scheduled_date",
        "scheduled_time_start",
        "scheduled_time_end",
        "team_id",
        "total_amount",
        "customer_signature_url",
    }

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    job_number = db.Column(db.String(30), unique=True, nullable=False)  # JOB-2026-0001
    quote_id = db.Column(
        db.String(36), db.ForeignKey("quotes.id"), unique=True, nullable=True
    )  # at most one job per quote
    customer_id = db.Column(
        db.String(36), db.ForeignKey("customers.id"), nullable=True
    )
    customer_name = db.Column(db.String(255), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(50), nullable=True)
    contact_name = db.Column(db.String(255), nullable=True)
    site_address = db.Column(db.String(500), nullable=False)
    site_city = db.Column(db.String(100), nullable=True)
    site_state = db.Column(db.String(50), nullable=True)
    site_zip = db.Column(db.String(20), nullable=True)
    job_type = db.Column(db.String(50), nullable=False)
    priority = db.Column(db.String(20), nullable=False, default="normal")
    status = db.Column(db.String(20), nullable=False, default="pending")
    description = db.Column(db.Text, nullable=True)
    scope_summary = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    total_amount = db.Column(db.Numeric(12, 2), nullable=True)
    team_id = db.Column(db.String(36), db.ForeignKey("teams.id"), nullable=True)
    scheduled_date = db.Column(db.Date, nullable=True)
    scheduled_time_start = db.Column(db.String(10), nullable=True)  # "08:00"
    scheduled_time_end = db.Column(db.String(10), nullable=True)
    actual_start_time = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_end_time = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completion_notes = db.Column(db.Text, nullable=True)
    customer_signature_url = db.Column(db.String(1000), nullable=True)
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
    quote = db.relationship("Quote")
    assignments = db.relationship(
        "JobAssignment",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="JobAssignment.assigned_at",
    )
    job_notes = db.relationship(
        "JobNote",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="JobNote.created_at",
    )
    photos = db.relationship(
        "JobPhoto",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="JobPhoto.created_at",
    )
    checklists = db.relationship(
        "JobChecklist",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="JobChecklist.created_at",
    )
    events = db.relationship(
        "JobEvent",
        back_populates="job",
        cascade="all, delete-orphan",
        lazy="dynamic",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "job_number": self.job_number,
            "quote_id": self.quote_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "contact_name": self.contact_name,
            "site_address": self.site_address,
            "site_city": self.site_city,
            "site_state": self.site_state,
            "site_zip": self.site_zip,
            "job_type": self.job_type,
            "priority": self.priority,
            "status": self.status,
            "description": self.description,
            "scope_summary": self.scope_summary,
            "notes": self.notes,
            "total_amount": money_float(self.total_amount),
            "team_id": self.team_id,
            "scheduled_date": _iso(self.scheduled_date),
            "scheduled_time_start": self.scheduled_time_start,
            "scheduled_time_end": self.scheduled_time_end,
            "actual_start_time": _iso(self.actual_start_time),
            "actual_end_time": _iso(self.actual_end_time),
            "completed_at": _iso(self.completed_at),
            "completion_notes": self.completion_notes,
            "customer_signature_url": self.customer_signature_url,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<Job {self.job_number} ({self.status})>"


class JobAssignment(db.Model):
    __tablename__ = "job_assignments"
    __table_args__ = (
        db.UniqueConstraint("job_id", "user_id", name="uq_job_assignment_user"),
    )

    ROLES = ["lead", "technician", "inspector", "helper"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    job_id = db.Column(
        db.String(36), db.ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id"), nullable=False
    )
    role = db.Column(db.String(30), nullable=False, default="technician")
    assigned_by = db.Column(db.String(36), nullable=True)
    assigned_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )
    acknowledged_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # --- Relationships ---
    job = db.relationship("Job", back_populates="assignments")
    user = db.relationship("User", back_populates="assignments")

    def to_dict(self):
        return {
            "id": self.id,
            "job_id": self.job_id,
            "user_id": self.user_id,
            "user": {
                "full_name": self.user.full_name,
                "email": self.user.email,
                "role": self.user.role,
            } if self.user else None,
            "role": self.role,
            "assigned_at": _iso(self.assigned_at),
            "acknowledged_at": _iso(self.acknowledged_at),
        }

    def __repr__(self):
        return f"<JobAssignment job={self.job_id} user={self.user_id}>"


class JobNote(db.Model):
    __tablename__ = "job_notes"

    VISIBILITIES = ["internal", "tech", "customer"]
    FIELD_VISIBLE = ["tech", "customer"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    job_id = db.Column(
        db.String(36), db.ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False
    )
    author_id = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
    content = db.Column(db.Text, nullable=False)
    visibility = db.Column(db.String(20), nullable=False, default="internal")
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    job = db.relationship("Job", back_populates="job_notes")
    author = db.relationship("User")

    def to_dict(self):
        return {
            "id": self.id,
            "job_id": self.job_id,
            "author_id": self.author_id,
            "author_name": self.author.full_name if self.author else None,
            "content": self.content,
            "visibility": self.visibility,
            "created_at": _iso(self.created_at),
        }


class JobPhoto(db.Model):
    __tablename__ = "job_photos"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    job_id = db.Column(
        db.String(36), db.ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False
    )
    url = db.Column(db.String(1000), nullable=False)
    caption = db.Column(db.String(500), nullable=True)
    photo_type = db.Column(db.String(30), default="general")  # before | after | general
    uploaded_by = db.Column(db.String(36), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    job = db.relationship("Job", back_populates="photos")

    def to_dict(self):
        return {
            "id": self.id,
            "url": self.url,
            "caption": self.caption,
            "photo_type": self.photo_type,
            "uploaded_by": self.uploaded_by,
            "created_at": _iso(self.created_at),
        }


class ChecklistTemplate(db.Model):
    __tablename__ = "checklist_templates"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name = db.Column(db.String(255), nullable=False)
    job_type = db.Column(db.String(50), nullable=True)
    items = db.Column(db.JSON, nullable=False, default=list)  # [{label}, ...]
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    def __repr__(self):
        return f"<ChecklistTemplate {self.name}>"


class JobChecklist(db.Model):
    __tablename__ = "job_checklists"

    ITEM_STATUSES = ["pending", "pass", "fail", "na"]

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    job_id = db.Column(
        db.String(36), db.ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False
    )
    template_id = db.Column(
        db.String(36), db.ForeignKey("checklist_templates.id"), nullable=True
    )
    name = db.Column(db.String(255), nullable=False)
    items = db.Column(
        db.JSON, nullable=False, default=list
    )  # [{id, label, status, notes}, ...]
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    completed_by = db.Column(db.String(36), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    job = db.relationship("Job", back_populates="checklists")

    def to_dict(self):
        return {
            "id": self.id,
            "job_id": self.job_id,
            "template_id": self.template_id,
            "name": self.name,
            "items": self.items or [],
            "completed_at": _iso(self.completed_at),
            "completed_by": self.completed_by,
            "created_at": _iso(self.created_at),
        }


class JobEvent(db.Model):
    __tablename__ = "job_events"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    job_id = db.Column(
        db.String(36), db.ForeignKey("jobs.id", ondelete="CASCADE"), nullable=False
    )
    event_type = db.Column(db.String(50), nullable=False)  # e.g. "converted_from_quote"
    payload = db.Column(db.JSON, default=dict)
    actor_user_id = db.Column(db.String(36), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        server_default=db.func.now(),
    )  # python-side default keeps sub-second ordering

    job = db.relationship("Job", back_populates="events")

    def to_dict(self):
        return {
            "id": self.id,
            "job_id": self.job_id,
            "event_type": self.event_type,
            "payload": self.payload or {},
            "actor_user_id": self.actor_user_id,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<JobEvent {self.event_type}>"
