"""Quotes blueprint — /api/quotes/*

All routes require an office role (admin or manager); delete is admin-only.

Route Map:
  GET    /api/quotes                        — List (status, quote_type, search)
  POST   /api/quotes                        — Create draft, totals computed server-side
  POST   /api/quotes/ai-suggest             — LLM scope / device / narrative helper
  GET    /api/quotes/<id>                   — Detail
  PUT    /api/quotes/<id>                   — Replace editable fields
  POST   /api/quotes/<id>?action=duplicate  — Copy as new draft
  DELETE /api/quotes/<id>                   — Delete draft/rejected (admin)
  POST   /api/quotes/<id>/send              — Mint approval link + email
  POST   /api/quotes/<id>/convert-to-job    — Accepted/paid quote → job
"""

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user

from fireops.decorators import ADMIN, OFFICE, role_required
from fireops.errors import NotFound, ValidationFailed
from fireops.extensions import db
from fireops.models.quote import Quote
from fireops.services import ai_service, job_service, quote_service

quotes_bp = Blueprint("quotes", __name__, url_prefix="/api/quotes")


def _get_quote(quote_id):
    quote = db.session.get(Quote, quote_id)
    if quote is None:
        raise NotFound("Quote not found")
    return quote


@quotes_bp.route("", methods=["GET"])
@role_required(*OFFICE)
def list_quotes():
    query = Quote.query
    if request.args.get("status"):
        query = query.filter_by(status=request.args["status"])
    if request.args.get("quote_type"):
        query = query.filter_by(quote_type=request.args["quote_type"])

    search = (request.args.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            db.or_(
                Quote.quote_number.ilike(pattern),
                Quote.customer["name"].as_string().ilike(pattern),
            )
        )

    quotes = query.order_by(Quote.created_at.desc()).all()
    return jsonify({"success": True, "data": [q.to_dict() for q in quotes]})


@quotes_bp.route("", methods=["POST"])
@role_required(*OFFICE)
def create_quote():
    data = request.get_json(silent=True) or {}
    quote = quote_service.create_quote(data, created_by=current_user.id)
    db.session.commit()
    return jsonify({"success": True, "data": quote.to_dict()}), 201


@quotes_bp.route("/ai-suggest", methods=["POST"])
@role_required(*OFFICE)
def ai_suggest():
    data = request.get_json(silent=True) or {}
    if not data.get("action"):
        raise ValidationFailed("action is required")

    result = ai_service.suggest(
        data["action"],
        quote_type=data.get("quote_type"),
        site=data.get("site"),
        existing_items=data.get("existing_items"),
    )
    return jsonify({"success": True, "data": result})


@quotes_bp.route("/<quote_id>", methods=["GET"])
@role_required(*OFFICE)
def get_quote(quote_id):
    return jsonify({"success": True, "data": _get_quote(quote_id).to_dict()})


@quotes_bp.route("/<quote_id>", methods=["PUT"])
@role_required(*OFFICE)
def update_quote(quote_id):
    quote = _get_quote(quote_id)
    quote_service.update_quote(quote, request.get_json(silent=True) or {})
    db.session.commit()
    return jsonify({"success": True, "data": quote.to_dict()})


@quotes_bp.route("/<quote_id>", methods=["POST"])
@role_required(*OFFICE)
def quote_action(quote_id):
    """POST /api/quotes/<id>?action=duplicate"""
    quote = _get_quote(quote_id)
    action = request.args.get("action")
    if action != "duplicate":
        raise ValidationFailed("Invalid action")

    copy = quote_service.duplicate_quote(quote, created_by=current_user.id)
    db.session.commit()
    return jsonify({
        "success": True,
        "data": copy.to_dict(),
        "message": f"Quote duplicated as {copy.quote_number}",
    }), 201


@quotes_bp.route("/<quote_id>", methods=["DELETE"])
@role_required(*ADMIN)
def delete_quote(quote_id):
    quote = _get_quote(quote_id)
    quote_service.delete_quote(quote)
    db.session.commit()
    return jsonify({"success": True, "message": "Quote deleted"})


@quotes_bp.route("/<quote_id>/send", methods=["POST"])
@role_required(*OFFICE)
def send_quote(quote_id):
    quote = _get_quote(quote_id)
    link = quote_service.send_quote(quote, sent_by=current_user.id)
    db.session.commit()
    return jsonify({
        "success": True,
        "data": {
            "quote": quote.to_dict(),
            "link": link.to_dict(base_url=current_app.config["APP_BASE_URL"]),
        },
        "message": f"Quote {quote.quote_number} sent",
    })


@quotes_bp.route("/<quote_id>/convert-to-job", methods=["POST"])
@role_required(*OFFICE)
def convert_to_job(quote_id):
    options = request.get_json(silent=True) or {}
    if current_user.role == "manager" and current_user.team_id:
        options.setdefault("team_id", current_user.team_id)
    job = job_service.convert_quote_to_job(quote_id, options, actor_id=current_user.id)
    db.session.commit()
    return jsonify({
        "success": True,
        "data": {"job": job.to_dict()},
        "message": f"Job {job.job_number} created from quote",
    }), 201
