"""Job service — quote conversion, job lifecycle, and job sub-resources.

convert_quote_to_job() enforces at-most-once conversion twice over: a
query check (friendly 400 naming the existing job) plus the unique
constraint on jobs.quote_id for requests that race past the check.

Every significant change appends a JobEvent.

Functions flush but do NOT commit — the caller commits.
"""

import logging
import uuid
from datetime import datetime, timezone

from flask import current_app

from fireops.errors import AccessDenied, NotFound, StateConflict, ValidationFailed
from fireops.extensions import db
from fireops.models.job import (
    ChecklistTemplate,
    Job,
    JobAssignment,
    JobChecklist,
    JobEvent,
    JobNote,
    JobPhoto,
)
from fireops.models.quote import Quote
from fireops.models.user import User
from fireops.money import round_money
from fireops.services import customer_service, sequence_service
from fireops.validation import parse_date, parse_datetime, require_fields, sanitize

logger = logging.getLogger(__name__)

DATETIME_FIELDS = {"actual_start_time", "actual_end_time", "completed_at"}
NOTE_PREVIEW_LENGTH = 100


def log_event(job, event_type, payload=None, actor_id=None):
    event = JobEvent(
        job_id=job.id,
        event_type=event_type,
        payload=payload or {},
        actor_user_id=actor_id,
    )
    db.session.add(event)
    db.session.flush()
    return event


def build_scope_summary(line_items):
    """Flatten quote line items to "<qty>x <desc>" lines (qty > 1 only)."""
    lines = []
    for item in line_items or []:
        description = item.get("description") or item.get("name") or ""
        if not description:
            continue
        quantity = item.get("quantity") or 1
        if float(quantity) > 1:
            qty = int(quantity) if float(quantity).is_integer() else quantity
            lines.append(f"{qty}x {description}")
        else:
            lines.append(description)
    return "\n".join(lines)


# ──────────────────────────────────────────────
# Quote → Job
# ──────────────────────────────────────────────

def convert_quote_to_job(quote_id, options, actor_id=None):
    """Convert an accepted/paid quote into a job.

    Args:
        quote_id: Quote UUID.
        options: dict with job_type, priority, scheduled_date,
            scheduled_time_start, scheduled_time_end, team_id,
            assigned_users ([{user_id, role}]).

    Returns:
        The created Job.
    """
    quote = (
        Quote.query.filter_by(id=quote_id).with_for_update().first()
    )
    if quote is None:
        raise NotFound("Quote not found")

    if quote.status not in Quote.CONVERTIBLE_STATUSES:
        raise StateConflict("Quote must be accepted or paid to convert to job")

    existing = Job.query.filter_by(quote_id=quote.id).first()
    if existing:
        raise StateConflict(f"Quote already converted to job {existing.job_number}")

    assigned_users = options.get("assigned_users") or []
    if not isinstance(assigned_users, list):
        raise ValidationFailed("assigned_users must be a list")
    _check_users([a.get("user_id") for a in assigned_users if isinstance(a, dict)])

    customer = quote.customer or {}
    site = quote.site or {}
    scheduled_date = parse_date(options.get("scheduled_date"), "scheduled_date")

    existing_customer = customer_service.find_by_email(customer.get("email"))

    job = Job(
        job_number=sequence_service.next_number("JOB"),
        quote_id=quote.id,
        customer_id=existing_customer.id if existing_customer else None,
        customer_name=customer.get("name") or customer.get("company") or "Unknown",
        customer_email=customer.get("email"),
        customer_phone=customer.get("phone"),
        contact_name=customer.get("name"),
        site_address=site.get("address") or customer.get("address") or "",
        site_city=site.get("city") or customer.get("city"),
        site_state=site.get("state") or current_app.config.get("DEFAULT_SITE_STATE"),
        site_zip=site.get("zip") or customer.get("zip"),
        job_type=options.get("job_type") or "installation",
        priority=_priority(options.get("priority")),
        status="scheduled" if scheduled_date else "approved",
        description=quote.template_name or f"Converted from Quote {quote.quote_number}",
        scope_summary=build_scope_summary(quote.line_items),
        total_amount=round_money((quote.totals or {}).get("total") or 0),
        team_id=options.get("team_id"),
        scheduled_date=scheduled_date,
        scheduled_time_start=options.get("scheduled_time_start"),
        scheduled_time_end=options.get("scheduled_time_end"),
        created_by=actor_id,
    )
    db.session.add(job)
    db.session.flush()

    for entry in assigned_users:
        if not isinstance(entry, dict) or not entry.get("user_id"):
            continue
        db.session.add(JobAssignment(
            job_id=job.id,
            user_id=entry["user_id"],
            role=entry.get("role") or "technician",
            assigned_by=actor_id,
        ))

    log_event(job, "converted_from_quote", {
        "quote_id": quote.id,
        "quote_number": quote.quote_number,
        "total_amount": float(job.total_amount),
    }, actor_id)
    log_event(job, "created", {"source": "quote_conversion"}, actor_id)

    logger.info(f"Quote {quote.quote_number} converted to job {job.job_number}")
    return job


# ──────────────────────────────────────────────
# Job CRUD
# ──────────────────────────────────────────────

def create_job(data, actor_id=None):
    require_fields(
        data, "customer_name", "site_address", "job_type",
        message="customer_name, site_address and job_type are required",
    )
    scheduled_date = parse_date(data.get("scheduled_date"), "scheduled_date")

    job = Job(
        job_number=sequence_service.next_number("JOB"),
        customer_id=data.get("customer_id"),
        customer_name=sanitize(data["customer_name"]),
        customer_email=(data.get("customer_email") or "").strip().lower() or None,
        customer_phone=data.get("customer_phone"),
        contact_name=sanitize(data.get("contact_name")) or None,
        site_address=sanitize(data["site_address"]),
        site_city=data.get("site_city"),
        site_state=data.get("site_state") or current_app.config.get("DEFAULT_SITE_STATE"),
        site_zip=data.get("site_zip"),
        job_type=data["job_type"],
        priority=_priority(data.get("priority")),
        status="scheduled" if scheduled_date else "pending",
        description=sanitize(data.get("description")) or None,
        scope_summary=sanitize(data.get("scope_summary")) or None,
        notes=sanitize(data.get("notes")) or None,
        total_amount=_amount(data.get("total_amount")),
        team_id=data.get("team_id"),
        scheduled_date=scheduled_date,
        scheduled_time_start=data.get("scheduled_time_start"),
        scheduled_time_end=data.get("scheduled_time_end"),
        created_by=actor_id,
    )
    db.session.add(job)
    db.session.flush()
    log_event(job, "created", {"source": "manual"}, actor_id)
    return job


def visible_jobs_query(user):
    """Jobs the user may list: managers see their team, field roles their assignments."""
    query = Job.query
    if user.role == "manager" and user.team_id:
        query = query.filter(Job.team_id == user.team_id)
    elif user.role in ("technician", "inspector"):
        query = query.join(JobAssignment, JobAssignment.job_id == Job.id).filter(
            JobAssignment.user_id == user.id
        )
    return query


def update_job_fields(job, data, user):
    """Plain PATCH. Field roles are limited to Job.FIELD_EDITABLE."""
    allowed = Job.FIELD_EDITABLE if user.role in ("technician", "inspector") else Job.OFFICE_EDITABLE
    forbidden = sorted(set(data) - allowed)
    if forbidden:
        if user.role in ("technician", "inspector"):
            raise AccessDenied(f"Not allowed to update: {', '.join(forbidden)}")
        raise ValidationFailed(f"Unknown or read-only fields: {', '.join(forbidden)}")

    old_status = job.status
    for field, value in data.items():
        if field == "status" and value not in Job.STATUSES:
            raise ValidationFailed(f"Invalid status. Must be one of: {', '.join(Job.STATUSES)}")
        if field == "priority":
            value = _priority(value)
        elif field in DATETIME_FIELDS:
            value = parse_datetime(value, field)
        elif field == "scheduled_date":
            value = parse_date(value, field)
        elif field == "total_amount":
            value = _amount(value)
        elif isinstance(value, str):
            value = sanitize(value)
        setattr(job, field, value)

    db.session.flush()
    if job.status != old_status:
        log_event(job, "status_changed", {"from": old_status, "to": job.status}, user.id)
    return job


def start_job(job, user):
    old_status = job.status
    job.status = "in_progress"
    job.actual_start_time = datetime.now(timezone.utc)
    db.session.flush()
    log_event(job, "status_changed", {"from": old_status, "to": "in_progress"}, user.id)
    return job


def complete_job(job, user, completion_notes=None, customer_signature_url=None):
    now = datetime.now(timezone.utc)
    old_status = job.status
    job.status = "completed"
    job.actual_end_time = now
    job.completed_at = now
    if completion_notes is not None:
        job.completion_notes = sanitize(completion_notes)
    if customer_signature_url is not None:
        job.customer_signature_url = customer_signature_url
    db.session.flush()
    log_event(job, "status_changed", {"from": old_status, "to": "completed"}, user.id)
    return job


def acknowledge_assignment(job, user):
    assignment = JobAssignment.query.filter_by(job_id=job.id, user_id=user.id).first()
    if assignment is None:
        raise AccessDenied("Not assigned to this job")
    assignment.acknowledged_at = datetime.now(timezone.utc)
    db.session.flush()
    log_event(job, "assignment_acknowledged", {"user_id": user.id}, user.id)
    return assignment


def add_photo(job, data, user):
    require_fields(data, "url", message="Photo url is required")
    photo = JobPhoto(
        job_id=job.id,
        url=data["url"],
        caption=sanitize(data.get("caption")) or None,
        photo_type=data.get("photo_type") or "general",
        uploaded_by=user.id,
    )
    db.session.add(photo)
    db.session.flush()
    log_event(job, "photo_added", {"photo_id": photo.id}, user.id)
    return photo


# ──────────────────────────────────────────────
# Assignments
# ──────────────────────────────────────────────

def assign_user(job, user_id, role=None, actor_id=None):
    if not user_id:
        raise ValidationFailed("user_id is required")
    _check_users([user_id])
    if JobAssignment.query.filter_by(job_id=job.id, user_id=user_id).first():
        raise ValidationFailed("User is already assigned to this job")

    assignment = JobAssignment(
        job_id=job.id,
        user_id=user_id,
        role=role or "technician",
        assigned_by=actor_id,
    )
    db.session.add(assignment)
    db.session.flush()
    log_event(job, "assignment_added", {"user_id": user_id, "role": assignment.role}, actor_id)
    return assignment


def remove_assignment(job, assignment_id, actor_id=None):
    assignment = JobAssignment.query.filter_by(id=assignment_id, job_id=job.id).first()
    if assignment is None:
        raise NotFound("Assignment not found")
    user_id = assignment.user_id
    db.session.delete(assignment)
    db.session.flush()
    log_event(job, "assignment_removed", {"user_id": user_id}, actor_id)


# ──────────────────────────────────────────────
# Notes
# ──────────────────────────────────────────────

def visible_notes(job, user):
    notes = JobNote.query.filter_by(job_id=job.id)
    if user.role in ("technician", "inspector"):
        notes = notes.filter(JobNote.visibility.in_(JobNote.FIELD_VISIBLE))
    return notes.order_by(JobNote.created_at.desc()).all()


def add_note(job, content, visibility, user):
    content = sanitize(content)
    if not content:
        raise ValidationFailed("Note content is required")
    visibility = visibility or "internal"
    if visibility not in JobNote.VISIBILITIES:
        raise ValidationFailed(
            f"Invalid visibility. Must be one of: {', '.join(JobNote.VISIBILITIES)}"
        )
    # Field staff can't write office-only notes; theirs are shared with techs.
    if user.role in ("technician", "inspector") and visibility == "internal":
        visibility = "tech"

    note = JobNote(job_id=job.id, author_id=user.id, content=content, visibility=visibility)
    db.session.add(note)
    db.session.flush()
    log_event(job, "note_added", {
        "note_id": note.id,
        "visibility": visibility,
        "preview": content[:NOTE_PREVIEW_LENGTH],
    }, user.id)
    return note


# ──────────────────────────────────────────────
# Events
# ──────────────────────────────────────────────

def list_events(job, limit=50):
    return (
        JobEvent.query
        .filter_by(job_id=job.id)
        .order_by(JobEvent.created_at.desc())
        .limit(limit)
        .all()
    )


# ──────────────────────────────────────────────
# Checklists
# ──────────────────────────────────────────────

def _checklist_items(raw_items):
    items = []
    for raw in raw_items or []:
        label = raw.get("label") if isinstance(raw, dict) else raw
        label = sanitize(label)
        if not label:
            continue
        items.append({
            "id": (raw.get("id") if isinstance(raw, dict) else None) or str(uuid.uuid4()),
            "label": label,
            "status": "pending",
            "notes": None,
        })
    return items


def create_checklist(job, data, actor_id=None):
    """Create a checklist from a template (template_id) or a custom list (name, items)."""
    template_id = data.get("template_id")
    if template_id:
        template = db.session.get(ChecklistTemplate, template_id)
        if template is None or not template.is_active:
            raise NotFound("Checklist template not found")
        name = data.get("name") or template.name
        items = _checklist_items(template.items)
    else:
        name = sanitize(data.get("name"))
        items = _checklist_items(data.get("items"))
        if not name or not items:
            raise ValidationFailed("name and items are required for a custom checklist")

    checklist = JobChecklist(job_id=job.id, template_id=template_id, name=name, items=items)
    db.session.add(checklist)
    db.session.flush()
    log_event(job, "checklist_added", {"checklist_id": checklist.id, "name": name}, actor_id)
    return checklist


def update_checklist(job, checklist_id, items, user):
    """Replace item statuses; stamp completion once nothing is pending."""
    checklist = JobChecklist.query.filter_by(id=checklist_id, job_id=job.id).first()
    if checklist is None:
        raise NotFound("Checklist not found")
    if not isinstance(items, list):
        raise ValidationFailed("items must be a list")

    for item in items:
        if not isinstance(item, dict):
            raise ValidationFailed("Each checklist item must be an object")
        status = item.get("status", "pending")
        if status not in JobChecklist.ITEM_STATUSES:
            raise ValidationFailed(
                f"Invalid item status. Must be one of: {', '.join(JobChecklist.ITEM_STATUSES)}"
            )
        if item.get("notes") is not None:
            item["notes"] = sanitize(item["notes"])

    was_complete = checklist.completed_at is not None
    checklist.items = items
    if items and all(i.get("status", "pending") != "pending" for i in items):
        if not was_complete:
            checklist.completed_at = datetime.now(timezone.utc)
            checklist.completed_by = user.id
            db.session.flush()
            log_event(job, "checklist_completed", {
                "checklist_id": checklist.id,
                "name": checklist.name,
            }, user.id)
    else:
        checklist.completed_at = None
        checklist.completed_by = None
    db.session.flush()
    return checklist


# ──────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────

def _check_users(user_ids):
    for user_id in user_ids:
        if user_id and db.session.get(User, user_id) is None:
            raise ValidationFailed(f"User {user_id} not found")


def _priority(value):
    value = value or "normal"
    if value not in Job.PRIORITIES:
        raise ValidationFailed(f"Invalid priority. Must be one of: {', '.join(Job.PRIORITIES)}")
    return value


def _amount(value):
    if value in (None, ""):
        return None
    try:
        return round_money(value)
    except ValueError:
        raise ValidationFailed("Invalid total_amount")
