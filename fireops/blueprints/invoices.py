"""Invoices blueprint — /api/invoices/*

Route Map:
  GET    /api/invoices              — List (status, customer_id, job_id, search)
  POST   /api/invoices              — Create draft from items
  GET    /api/invoices/<id>         — Detail with items + payments
  PATCH  /api/invoices/<id>         — Update items / due date / notes / draft→sent
  DELETE /api/invoices/<id>         — Delete draft (admin)
  POST   /api/invoices/<id>/send    — Send via Stripe hosted invoice + email
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user

from fireops.decorators import ADMIN, OFFICE, role_required
from fireops.errors import NotFound
from fireops.extensions import db
from fireops.models.invoice import Invoice
from fireops.services import invoice_service, notification_service, stripe_service

logger = logging.getLogger(__name__)

invoices_bp = Blueprint("invoices", __name__, url_prefix="/api/invoices")


def _get_invoice(invoice_id):
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFound("Invoice not found")
    return invoice


def _invoice_detail(invoice):
    data = invoice.to_dict()
    data["payments"] = [p.to_dict() for p in invoice.payments]
    return data


@invoices_bp.route("", methods=["GET"])
@role_required(*OFFICE)
def list_invoices():
    query = Invoice.query
    for field in ("status", "customer_id", "job_id"):
        if request.args.get(field):
            query = query.filter(getattr(Invoice, field) == request.args[field])

    search = (request.args.get("search") or "").strip()
    if search:
        query = query.filter(Invoice.invoice_number.ilike(f"%{search}%"))

    invoices = query.order_by(Invoice.created_at.desc()).all()
    return jsonify({
        "success": True,
        "data": [i.to_dict(include_items=False) for i in invoices],
    })


@invoices_bp.route("", methods=["POST"])
@role_required(*OFFICE)
def create_invoice():
    invoice = invoice_service.create_invoice(
        request.get_json(silent=True) or {}, actor_id=current_user.id
    )
    db.session.commit()
    return jsonify({"success": True, "data": invoice.to_dict()}), 201


@invoices_bp.route("/<invoice_id>", methods=["GET"])
@role_required(*OFFICE)
def get_invoice(invoice_id):
    return jsonify({"success": True, "data": _invoice_detail(_get_invoice(invoice_id))})


@invoices_bp.route("/<invoice_id>", methods=["PATCH"])
@role_required(*OFFICE)
def update_invoice(invoice_id):
    invoice = _get_invoice(invoice_id)
    invoice_service.update_invoice(invoice, request.get_json(silent=True) or {})
    db.session.commit()
    return jsonify({"success": True, "data": _invoice_detail(invoice)})


@invoices_bp.route("/<invoice_id>", methods=["DELETE"])
@role_required(*ADMIN)
def delete_invoice(invoice_id):
    invoice = _get_invoice(invoice_id)
    number = invoice.invoice_number
    invoice_service.delete_invoice(invoice)
    db.session.commit()
    logger.info(f"Invoice {number} deleted by {current_user.email}")
    return jsonify({"success": True, "message": f"Invoice {number} deleted"})


@invoices_bp.route("/<invoice_id>/send", methods=["POST"])
@role_required(*OFFICE)
def send_invoice(invoice_id):
    invoice = _get_invoice(invoice_id)

    stripe_invoice = stripe_service.send_invoice(invoice)
    invoice_service.mark_sent(invoice, stripe_invoice)
    notification_service.notify_invoice_sent(invoice, invoice.stripe_hosted_url)
    db.session.commit()

    return jsonify({
        "success": True,
        "message": "Invoice sent successfully",
        "data": {
            "stripe_invoice_id": invoice.stripe_invoice_id,
            "hosted_url": invoice.stripe_hosted_url,
            "pdf_url": invoice.stripe_pdf_url,
        },
    })
