"""Customer links blueprint — /api/customer-links/*

Staff manage links; customers open them without logging in. The public
routes are CSRF-exempt and rate-limited; the token itself is the
credential.

Route Map:
  GET    /api/customer-links                  — List links (office)
  POST   /api/customer-links                  — Create link (office)
  GET    /api/customer-links/<token>          — Public: view quote/job
  DELETE /api/customer-links/<token>          — Revoke (office)
  POST   /api/customer-links/<token>/accept   — Public: accept quote (+ checkout)
"""

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user

from fireops.decorators import OFFICE, role_required
from fireops.errors import AccessDenied, NotFound, ValidationFailed
from fireops.extensions import csrf, db, limiter
from fireops.models.customer import CustomerLink
from fireops.services import customer_link_service, customer_service

customer_links_bp = Blueprint(
    "customer_links", __name__, url_prefix="/api/customer-links"
)


def _client_ip():
    forwarded = request.headers.get("X-Forwarded-For", "")
    return forwarded.split(",")[0].strip() or request.remote_addr


def _validated_link(token):
    """validate_link(), keeping the expired-status flip even on failure."""
    try:
        return customer_link_service.validate_link(token)
    except AccessDenied:
        db.session.commit()
        raise


# ─── Staff ───────────────────────────────────────────────────────

@customer_links_bp.route("", methods=["GET"])
@role_required(*OFFICE)
def list_links():
    query = CustomerLink.query
    for field in ("quote_id", "job_id", "status"):
        if request.args.get(field):
            query = query.filter(getattr(CustomerLink, field) == request.args[field])
    links = query.order_by(CustomerLink.created_at.desc()).all()

    base_url = current_app.config["APP_BASE_URL"]
    return jsonify({"success": True, "data": [l.to_dict(base_url=base_url) for l in links]})


@customer_links_bp.route("", methods=["POST"])
@role_required(*OFFICE)
def create_link():
    data = request.get_json(silent=True) or {}
    if not data.get("quote_id") and not data.get("job_id"):
        raise ValidationFailed("quote_id or job_id is required")

    link = customer_link_service.generate_link(
        customer_email=data.get("customer_email"),
        link_type=data.get("link_type") or "quote_approval",
        customer=customer_service.find_by_email(data.get("customer_email")),
        customer_name=data.get("customer_name"),
        quote_id=data.get("quote_id"),
        job_id=data.get("job_id"),
        expires_days=data.get("expires_in_days", 30),
        max_uses=data.get("max_uses"),
        created_by=current_user.id,
    )
    db.session.commit()
    return jsonify({
        "success": True,
        "data": link.to_dict(base_url=current_app.config["APP_BASE_URL"]),
    }), 201


@customer_links_bp.route("/<token>", methods=["DELETE"])
@role_required(*OFFICE)
def revoke_link(token):
    link = CustomerLink.query.filter_by(token=token).first()
    if link is None:
        raise NotFound("Link not found")
    customer_link_service.revoke_link(link)
    db.session.commit()
    return jsonify({"success": True, "message": "Link revoked"})


# ─── Public ──────────────────────────────────────────────────────

@customer_links_bp.route("/<token>", methods=["GET"])
@csrf.exempt
@limiter.limit("60 per minute")
def view_link(token):
    link = _validated_link(token)
    data = customer_link_service.public_view(
        link, _client_ip(), request.headers.get("User-Agent")
    )
    db.session.commit()
    return jsonify({"success": True, "data": data})


@customer_links_bp.route("/<token>/accept", methods=["POST"])
@csrf.exempt
@limiter.limit("10 per minute")
def accept_quote(token):
    link = _validated_link(token)
    result = customer_link_service.accept_quote(
        link,
        request.get_json(silent=True) or {},
        _client_ip(),
        request.headers.get("User-Agent"),
    )
    db.session.commit()

    body = {
        "success": True,
        "message": result["message"],
        "acceptance_id": result["acceptance"].id,
    }
    if result["checkout_url"]:
        body["checkout_url"] = result["checkout_url"]
    return jsonify(body)
