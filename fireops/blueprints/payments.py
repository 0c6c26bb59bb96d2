"""Payments blueprint — /api/payments/*

Route Map:
  GET  /api/payments           — List (status, customer_id, invoice_id)
  POST /api/payments           — Record a manual payment (office)
  GET  /api/payments/verify    — Public: confirm a checkout session was paid
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user

from fireops.decorators import OFFICE, role_required
from fireops.extensions import db, limiter
from fireops.services import payment_service, stripe_service

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


@payments_bp.route("", methods=["GET"])
@role_required(*OFFICE)
def list_payments():
    payments = payment_service.list_payments(
        status=request.args.get("status"),
        customer_id=request.args.get("customer_id"),
        invoice_id=request.args.get("invoice_id"),
    )
    return jsonify({"success": True, "data": [p.to_dict() for p in payments]})


@payments_bp.route("", methods=["POST"])
@role_required(*OFFICE)
def record_payment():
    payment, invoice = payment_service.record_payment(
        request.get_json(silent=True) or {}, recorded_by=current_user.id
    )
    db.session.commit()
    return jsonify({
        "success": True,
        "data": payment.to_dict(),
        "invoice": invoice.to_dict(include_items=False),
    }), 201


@payments_bp.route("/verify", methods=["GET"])
@limiter.limit("30 per minute")
def verify_payment():
    """Payment-success page lookup. Public: the session id is the secret."""
    result = stripe_service.verify_checkout_session(request.args.get("session_id"))
    return jsonify({"success": True, "data": result})
