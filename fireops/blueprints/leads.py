"""Leads blueprint — /api/leads/*

Public lead capture plus office-side triage and access grants.
POST /api/leads is public, CSRF-exempt and rate-limited.

Route Map:
  POST  /api/leads                       — Public form submission
  GET   /api/leads                       — List leads (office)
  PATCH /api/leads/<id>                  — Update status / notes (office)
  POST  /api/leads/<id>/grant-access     — Lead → Customer + portal link (office)
"""

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user

from fireops.decorators import OFFICE, role_required
from fireops.errors import NotFound
from fireops.extensions import csrf, db, limiter
from fireops.models.lead import Lead
from fireops.services import customer_link_service, lead_service

leads_bp = Blueprint("leads", __name__, url_prefix="/api/leads")


@leads_bp.route("", methods=["POST"])
@csrf.exempt
@limiter.limit("10 per minute")
def create_lead():
    data = request.get_json(silent=True) or {}
    lead = lead_service.create_lead(data)
    db.session.commit()
    return jsonify({"success": True, "data": lead.to_dict()}), 200


@leads_bp.route("", methods=["GET"])
@role_required(*OFFICE)
def list_leads():
    query = Lead.query
    if request.args.get("status"):
        query = query.filter_by(status=request.args["status"])
    if request.args.get("source"):
        query = query.filter_by(source=request.args["source"])
    leads = query.order_by(Lead.created_at.desc()).all()
    return jsonify({"success": True, "data": [lead.to_dict() for lead in leads]})


@leads_bp.route("/<lead_id>", methods=["PATCH"])
@role_required(*OFFICE)
def update_lead(lead_id):
    lead = db.session.get(Lead, lead_id)
    if lead is None:
        raise NotFound("Lead not found")

    lead_service.update_lead(lead, request.get_json(silent=True) or {})
    db.session.commit()
    return jsonify({"success": True, "data": lead.to_dict()})


@leads_bp.route("/<lead_id>/grant-access", methods=["POST"])
@role_required(*OFFICE)
def grant_access(lead_id):
    customer, link = lead_service.grant_access(lead_id, granted_by=current_user.id)
    db.session.commit()

    return jsonify({
        "success": True,
        "data": {
            "customer": customer.to_dict(),
            "portal_url": customer_link_service.link_url(link),
            "link": link.to_dict(base_url=current_app.config["APP_BASE_URL"]),
        },
        "message": f"Access granted to {customer.email}",
    })
