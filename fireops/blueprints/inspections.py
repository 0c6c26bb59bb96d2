"""Inspections blueprint — /api/inspections/* and /api/deficiencies/*

Route Map:
  GET    /api/inspections                       — List (status, inspector_id)
  POST   /api/inspections                       — Create
  GET    /api/inspections/<id>                  — Detail with deficiencies
  PATCH  /api/inspections/<id>                  — Field update or action (start, complete, cancel)
  DELETE /api/inspections/<id>                  — Delete (office)
  GET    /api/inspections/<id>/deficiencies     — List deficiencies
  POST   /api/inspections/<id>/deficiencies     — Record a deficiency
  GET    /api/deficiencies/<id>                 — Detail
  PATCH  /api/deficiencies/<id>                 — Edit or resolve
  DELETE /api/deficiencies/<id>                 — Delete (not while on a quote)
  POST   /api/deficiencies/generate-quote       — Deficiencies → repair quote (office)
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user

from fireops.decorators import OFFICE, STAFF, role_required
from fireops.errors import NotFound, ValidationFailed
from fireops.extensions import db
from fireops.models.inspection import Deficiency, Inspection
from fireops.services import deficiency_service

inspections_bp = Blueprint("inspections", __name__, url_prefix="/api")


def _get_inspection(inspection_id):
    inspection = db.session.get(Inspection, inspection_id)
    if inspection is None:
        raise NotFound("Inspection not found")
    return inspection


def _get_deficiency(deficiency_id):
    deficiency = db.session.get(Deficiency, deficiency_id)
    if deficiency is None:
        raise NotFound("Deficiency not found")
    return deficiency


# ─── Inspections ─────────────────────────────────────────────────

@inspections_bp.route("/inspections", methods=["GET"])
@role_required(*STAFF)
def list_inspections():
    query = Inspection.query
    if request.args.get("status"):
        query = query.filter_by(status=request.args["status"])
    if request.args.get("inspector_id"):
        query = query.filter_by(inspector_id=request.args["inspector_id"])

    inspections = query.order_by(Inspection.created_at.desc()).all()
    return jsonify({"success": True, "data": [i.to_dict() for i in inspections]})


@inspections_bp.route("/inspections", methods=["POST"])
@role_required(*STAFF)
def create_inspection():
    data = request.get_json(silent=True) or {}
    inspection = deficiency_service.create_inspection(data, inspector_id=current_user.id)
    db.session.commit()
    return jsonify({"success": True, "data": inspection.to_dict()}), 201


@inspections_bp.route("/inspections/<inspection_id>", methods=["GET"])
@role_required(*STAFF)
def get_inspection(inspection_id):
    inspection = _get_inspection(inspection_id)
    return jsonify({
        "success": True,
        "data": inspection.to_dict(include_deficiencies=True),
    })


@inspections_bp.route("/inspections/<inspection_id>", methods=["PATCH"])
@role_required(*STAFF)
def update_inspection(inspection_id):
    """Apply an ``action`` or, without one, a plain field update."""
    inspection = _get_inspection(inspection_id)
    data = request.get_json(silent=True) or {}
    action = data.pop("action", None)

    if action == "start":
        deficiency_service.start_inspection(inspection)
    elif action == "complete":
        deficiency_service.complete_inspection(inspection, data)
    elif action == "cancel":
        deficiency_service.cancel_inspection(
            inspection, data.get("internal_notes") or data.get("reason")
        )
    elif action is None:
        if not data:
            raise ValidationFailed("No fields to update")
        deficiency_service.update_inspection(inspection, data)
    else:
        raise ValidationFailed(f"Unknown action: {action}")

    db.session.commit()
    return jsonify({"success": True, "data": inspection.to_dict()})


@inspections_bp.route("/inspections/<inspection_id>", methods=["DELETE"])
@role_required(*OFFICE)
def delete_inspection(inspection_id):
    inspection = _get_inspection(inspection_id)
    deficiency_service.delete_inspection(inspection)
    db.session.commit()
    return jsonify({"success": True})


# ─── Deficiencies ────────────────────────────────────────────────

@inspections_bp.route("/inspections/<inspection_id>/deficiencies", methods=["GET"])
@role_required(*STAFF)
def list_deficiencies(inspection_id):
    inspection = _get_inspection(inspection_id)
    return jsonify({
        "success": True,
        "data": [d.to_dict() for d in inspection.deficiencies],
    })


@inspections_bp.route("/inspections/<inspection_id>/deficiencies", methods=["POST"])
@role_required(*STAFF)
def add_deficiency(inspection_id):
    inspection = _get_inspection(inspection_id)
    deficiency = deficiency_service.add_deficiency(
        inspection, request.get_json(silent=True) or {}, created_by=current_user.id
    )
    db.session.commit()
    return jsonify({"success": True, "data": deficiency.to_dict()}), 201


@inspections_bp.route("/deficiencies/<deficiency_id>", methods=["GET"])
@role_required(*STAFF)
def get_deficiency(deficiency_id):
    return jsonify({"success": True, "data": _get_deficiency(deficiency_id).to_dict()})


@inspections_bp.route("/deficiencies/<deficiency_id>", methods=["PATCH"])
@role_required(*STAFF)
def update_deficiency(deficiency_id):
    deficiency = _get_deficiency(deficiency_id)
    data = request.get_json(silent=True) or {}
    if not data:
        raise ValidationFailed("No fields to update")
    deficiency_service.update_deficiency(deficiency, data)
    db.session.commit()
    return jsonify({"success": True, "data": deficiency.to_dict()})


@inspections_bp.route("/deficiencies/<deficiency_id>", methods=["DELETE"])
@role_required(*STAFF)
def delete_deficiency(deficiency_id):
    deficiency = _get_deficiency(deficiency_id)
    deficiency_service.delete_deficiency(deficiency)
    db.session.commit()
    return jsonify({"success": True})


@inspections_bp.route("/deficiencies/generate-quote", methods=["POST"])
@role_required(*OFFICE)
def generate_quote():
    data = request.get_json(silent=True) or {}
    quote, count = deficiency_service.generate_quote(
        data.get("inspection_id"),
        data.get("deficiency_ids"),
        created_by=current_user.id,
    )
    db.session.commit()
    return jsonify({
        "success": True,
        "data": quote.to_dict(),
        "message": f"Quote generated with {count} line items from deficiencies",
    }), 201
