"""Customers blueprint — /api/customers/*

Route Map:
  GET    /api/customers         — List (search, status)
  POST   /api/customers         — Create
  GET    /api/customers/<id>    — Detail with quote/job/invoice counts
  PATCH  /api/customers/<id>    — Update editable fields
  DELETE /api/customers/<id>    — Delete (admin)
"""

import logging

from flask import Blueprint, jsonify, request

from fireops.decorators import ADMIN, OFFICE, role_required
from fireops.errors import NotFound, StateConflict
from fireops.extensions import db
from fireops.models.customer import Customer
from fireops.models.invoice import Invoice
from fireops.models.job import Job
from fireops.models.quote import Quote
from fireops.services import customer_service

logger = logging.getLogger(__name__)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


def _get_customer(customer_id):
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFound("Customer not found")
    return customer


@customers_bp.route("", methods=["GET"])
@role_required(*OFFICE)
def list_customers():
    query = Customer.query
    search = (request.args.get("search") or "").strip()
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            db.or_(
                Customer.name.ilike(pattern),
                Customer.email.ilike(pattern),
                Customer.company.ilike(pattern),
            )
        )
    if request.args.get("status"):
        query = query.filter_by(status=request.args["status"])

    customers = query.order_by(Customer.name.asc()).all()
    return jsonify({"success": True, "data": [c.to_dict() for c in customers]})


@customers_bp.route("", methods=["POST"])
@role_required(*OFFICE)
def create_customer():
    customer = customer_service.create_customer(request.get_json(silent=True) or {})
    db.session.commit()
    return jsonify({"success": True, "data": customer.to_dict()}), 201


@customers_bp.route("/<customer_id>", methods=["GET"])
@role_required(*OFFICE)
def get_customer(customer_id):
    customer = _get_customer(customer_id)

    quote_count = Quote.query.filter(
        db.func.lower(Quote.customer["email"].as_string()) == customer.email
    ).count()
    job_count = Job.query.filter(
        db.or_(
            Job.customer_id == customer.id,
            db.func.lower(Job.customer_email) == customer.email,
        )
    ).count()
    invoice_count = Invoice.query.filter_by(customer_id=customer.id).count()

    data = customer.to_dict()
    data["counts"] = {
        "quotes": quote_count,
        "jobs": job_count,
        "invoices": invoice_count,
    }
    return jsonify({"success": True, "data": data})


@customers_bp.route("/<customer_id>", methods=["PATCH"])
@role_required(*OFFICE)
def update_customer(customer_id):
    customer = _get_customer(customer_id)
    customer_service.update_customer(customer, request.get_json(silent=True) or {})
    db.session.commit()
    return jsonify({"success": True, "data": customer.to_dict()})


@customers_bp.route("/<customer_id>", methods=["DELETE"])
@role_required(*ADMIN)
def delete_customer(customer_id):
    customer = _get_customer(customer_id)
    if Invoice.query.filter_by(customer_id=customer.id).count():
        raise StateConflict("Customer has invoices and cannot be deleted")

    db.session.delete(customer)
    db.session.commit()
    logger.info(f"Customer {customer_id} deleted")
    return jsonify({"success": True, "message": "Customer deleted"})
