"""Jobs blueprint — /api/jobs/*

Job-scoped routes use role_required(..., assigned_job=True): the job is
loaded into g.job and technicians/inspectors must be assigned to it.

Route Map:
  GET    /api/jobs                                   — List (staff; scoped by role)
  POST   /api/jobs                                   — Create (office)
  GET    /api/jobs/<job_id>                          — Detail with sub-resources
  PATCH  /api/jobs/<job_id>                          — Field update or action
  DELETE /api/jobs/<job_id>                          — Delete (admin)
  GET    /api/jobs/<job_id>/assignments              — List assignments
  POST   /api/jobs/<job_id>/assignments              — Assign a user (office)
  DELETE /api/jobs/<job_id>/assignments/<aid>        — Remove assignment (office)
  GET    /api/jobs/<job_id>/notes                    — List notes (visibility-scoped)
  POST   /api/jobs/<job_id>/notes                    — Add a note
  GET    /api/jobs/<job_id>/events                   — Activity log, newest first
  POST   /api/jobs/<job_id>/events                   — Append an event
  GET    /api/jobs/<job_id>/checklists               — List checklists
  POST   /api/jobs/<job_id>/checklists               — Add checklist (office)
  PATCH  /api/jobs/<job_id>/checklists/<cid>         — Update item statuses
  POST   /api/jobs/<job_id>/create-invoice           — Job → invoice (office)
"""

import logging

from flask import Blueprint, g, jsonify, request
from flask_login import current_user

from fireops.decorators import ADMIN, OFFICE, STAFF, is_field_role, role_required
from fireops.errors import AccessDenied, ValidationFailed
from fireops.extensions import db
from fireops.models.job import Job
from fireops.services import invoice_service, job_service
from fireops.validation import parse_date, require_fields

logger = logging.getLogger(__name__)

jobs_bp = Blueprint("jobs", __name__, url_prefix="/api/jobs")

EVENT_LIMIT = 50
OFFICE_ACTIONS = {"assign_user", "remove_assignment"}


def _job_detail(job, user):
    data = job.to_dict()
    data["assignments"] = [a.to_dict() for a in job.assignments]
    data["notes"] = [n.to_dict() for n in job_service.visible_notes(job, user)]
    data["photos"] = [p.to_dict() for p in job.photos]
    data["checklists"] = [c.to_dict() for c in job.checklists]
    data["events"] = [e.to_dict() for e in job_service.list_events(job, EVENT_LIMIT)]
    return data


# ─── Jobs ────────────────────────────────────────────────────────

@jobs_bp.route("", methods=["GET"])
@role_required(*STAFF)
def list_jobs():
    query = job_service.visible_jobs_query(current_user)

    if request.args.get("status"):
        query = query.filter(Job.status == request.args["status"])
    if request.args.get("job_type"):
        query = query.filter(Job.job_type == request.args["job_type"])
    if request.args.get("team_id"):
        query = query.filter(Job.team_id == request.args["team_id"])
    date_from = parse_date(request.args.get("date_from"), "date_from")
    if date_from:
        query = query.filter(Job.scheduled_date >= date_from)
    date_to = parse_date(request.args.get("date_to"), "date_to")
    if date_to:
        query = query.filter(Job.scheduled_date <= date_to)

    jobs = query.order_by(Job.scheduled_date.asc(), Job.created_at.desc()).all()
    return jsonify({"success": True, "data": [job.to_dict() for job in jobs]})


@jobs_bp.route("", methods=["POST"])
@role_required(*OFFICE)
def create_job():
    data = request.get_json(silent=True) or {}
    if current_user.role == "manager" and current_user.team_id:
        data.setdefault("team_id", current_user.team_id)
    job = job_service.create_job(data, actor_id=current_user.id)
    db.session.commit()
    return jsonify({"success": True, "data": job.to_dict()}), 201


@jobs_bp.route("/<job_id>", methods=["GET"])
@role_required(*STAFF, assigned_job=True)
def get_job(job_id):
    return jsonify({"success": True, "data": _job_detail(g.job, current_user)})


@jobs_bp.route("/<job_id>", methods=["PATCH"])
@role_required(*STAFF, assigned_job=True)
def update_job(job_id):
    """Apply an ``action`` or, without one, a plain field update."""
    job = g.job
    data = request.get_json(silent=True) or {}
    action = data.pop("action", None)

    if action in OFFICE_ACTIONS and is_field_role(current_user):
        raise AccessDenied("Insufficient permissions")

    if action == "add_photo":
        job_service.add_photo(job, data, current_user)
    elif action == "add_note":
        job_service.add_note(job, data.get("content"), data.get("visibility"), current_user)
    elif action == "assign_user":
        job_service.assign_user(job, data.get("user_id"), data.get("role"), current_user.id)
    elif action == "remove_assignment":
        job_service.remove_assignment(job, data.get("assignment_id"), current_user.id)
    elif action == "acknowledge":
        job_service.acknowledge_assignment(job, current_user)
    elif action == "start":
        job_service.start_job(job, current_user)
    elif action == "complete":
        job_service.complete_job(
            job,
            current_user,
            completion_notes=data.get("completion_notes"),
            customer_signature_url=data.get("customer_signature_url"),
        )
    elif action is None:
        if not data:
            raise ValidationFailed("No fields to update")
        job_service.update_job_fields(job, data, current_user)
    else:
        raise ValidationFailed(f"Unknown action: {action}")

    db.session.commit()
    return jsonify({"success": True, "data": _job_detail(job, current_user)})


@jobs_bp.route("/<job_id>", methods=["DELETE"])
@role_required(*ADMIN, assigned_job=True)
def delete_job(job_id):
    job = g.job
    job_number = job.job_number
    db.session.delete(job)
    db.session.commit()
    logger.info(f"Job {job_number} deleted by {current_user.email}")
    return jsonify({"success": True, "message": f"Job {job_number} deleted"})


# ─── Assignments ─────────────────────────────────────────────────

@jobs_bp.route("/<job_id>/assignments", methods=["GET"])
@role_required(*STAFF, assigned_job=True)
def list_assignments(job_id):
    return jsonify({"success": True, "data": [a.to_dict() for a in g.job.assignments]})


@jobs_bp.route("/<job_id>/assignments", methods=["POST"])
@role_required(*OFFICE, assigned_job=True)
def add_assignment(job_id):
    data = request.get_json(silent=True) or {}
    assignment = job_service.assign_user(
        g.job, data.get("user_id"), data.get("role"), actor_id=current_user.id
    )
    db.session.commit()
    return jsonify({"success": True, "data": assignment.to_dict()}), 201


@jobs_bp.route("/<job_id>/assignments/<assignment_id>", methods=["DELETE"])
@role_required(*OFFICE, assigned_job=True)
def delete_assignment(job_id, assignment_id):
    job_service.remove_assignment(g.job, assignment_id, actor_id=current_user.id)
    db.session.commit()
    return jsonify({"success": True, "message": "Assignment removed"})


# ─── Notes ───────────────────────────────────────────────────────

@jobs_bp.route("/<job_id>/notes", methods=["GET"])
@role_required(*STAFF, assigned_job=True)
def list_notes(job_id):
    notes = job_service.visible_notes(g.job, current_user)
    return jsonify({"success": True, "data": [n.to_dict() for n in notes]})


@jobs_bp.route("/<job_id>/notes", methods=["POST"])
@role_required(*STAFF, assigned_job=True)
def add_note(job_id):
    data = request.get_json(silent=True) or {}
    note = job_service.add_note(g.job, data.get("content"), data.get("visibility"), current_user)
    db.session.commit()
    return jsonify({"success": True, "data": note.to_dict()}), 201


# ─── Events ──────────────────────────────────────────────────────

@jobs_bp.route("/<job_id>/events", methods=["GET"])
@role_required(*STAFF, assigned_job=True)
def list_events(job_id):
    limit = request.args.get("limit", EVENT_LIMIT, type=int)
    events = job_service.list_events(g.job, limit=max(1, min(limit, 500)))
    return jsonify({"success": True, "data": [e.to_dict() for e in events]})


@jobs_bp.route("/<job_id>/events", methods=["POST"])
@role_required(*STAFF, assigned_job=True)
def add_event(job_id):
    data = request.get_json(silent=True) or {}
    require_fields(data, "event_type", message="event_type is required")
    payload = data.get("payload") or {}
    if not isinstance(payload, dict):
        raise ValidationFailed("payload must be an object")

    event = job_service.log_event(g.job, data["event_type"], payload, current_user.id)
    db.session.commit()
    return jsonify({"success": True, "data": event.to_dict()}), 201


# ─── Checklists ──────────────────────────────────────────────────

@jobs_bp.route("/<job_id>/checklists", methods=["GET"])
@role_required(*STAFF, assigned_job=True)
def list_checklists(job_id):
    return jsonify({"success": True, "data": [c.to_dict() for c in g.job.checklists]})


@jobs_bp.route("/<job_id>/checklists", methods=["POST"])
@role_required(*OFFICE, assigned_job=True)
def add_checklist(job_id):
    checklist = job_service.create_checklist(
        g.job, request.get_json(silent=True) or {}, actor_id=current_user.id
    )
    db.session.commit()
    return jsonify({"success": True, "data": checklist.to_dict()}), 201


@jobs_bp.route("/<job_id>/checklists/<checklist_id>", methods=["PATCH"])
@role_required(*STAFF, assigned_job=True)
def update_checklist(job_id, checklist_id):
    data = request.get_json(silent=True) or {}
    checklist = job_service.update_checklist(g.job, checklist_id, data.get("items"), current_user)
    db.session.commit()
    return jsonify({"success": True, "data": checklist.to_dict()})


# ─── Invoice ─────────────────────────────────────────────────────

@jobs_bp.route("/<job_id>/create-invoice", methods=["POST"])
@role_required(*OFFICE)
def create_invoice(job_id):
    invoice = invoice_service.create_invoice_from_job(job_id, actor_id=current_user.id)
    db.session.commit()
    return jsonify({
        "success": True,
        "data": invoice.to_dict(),
        "message": f"Invoice {invoice.invoice_number} created",
    }), 201
