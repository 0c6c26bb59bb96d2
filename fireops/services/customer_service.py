"""Customer service — lookup and upsert by email.

Email is the customer's business key. Lookups are case-insensitive and
emails are stored lowercased. The database unique constraint on
customers.email is the final guard against duplicates.

Functions flush but do NOT commit — the caller commits.
"""

import logging

from flask import current_app

from fireops.errors import StateConflict, ValidationFailed
from fireops.extensions import db
from fireops.models.customer import Customer
from fireops.validation import is_valid_email, normalize_email, sanitize

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = [
    "name",
    "email",
    "phone",
    "company",
    "address",
    "city",
    "state",
    "zip",
    "status",
    "notes",
]


def find_by_email(email):
    email = normalize_email(email)
    if not email:
        return None
    return Customer.query.filter(db.func.lower(Customer.email) == email).first()


def get_or_create_customer(email, name, **fields):
    """Return (customer, created) for ``email``, creating an active customer if absent.

    Existing customers are not overwritten; only blank contact fields are
    filled in from ``fields``.
    """
    email = normalize_email(email)
    if not is_valid_email(email):
        raise ValidationFailed("A valid customer email is required")

    customer = find_by_email(email)
    if customer:
        for key, value in fields.items():
            if value and not getattr(customer, key, None):
                setattr(customer, key, value)
        db.session.flush()
        return customer, False

    customer = Customer(
        email=email,
        name=name or email,
        status="active",
        **{k: v for k, v in fields.items() if v is not None},
    )
    db.session.add(customer)
    db.session.flush()
    logger.info(f"Created customer {customer.id} for {email}")
    return customer, True


def upsert_from_snapshot(snapshot):
    """Upsert a customer from a quote's embedded customer snapshot.

    Updates name/phone/company/address of an existing customer in place.
    Best-effort: runs in a SAVEPOINT and never raises — a failure rolls
    back only the upsert and is logged.
    """
    email = None
    try:
        snapshot = snapshot or {}
        email = normalize_email(snapshot.get("email"))
        if not email:
            return None

        with db.session.begin_nested():
            customer = find_by_email(email)
            values = {
                "name": snapshot.get("name") or snapshot.get("company"),
                "phone": snapshot.get("phone"),
                "company": snapshot.get("company"),
                "address": snapshot.get("address"),
                "city": snapshot.get("city"),
                "state": snapshot.get("state"),
                "zip": snapshot.get("zip"),
            }
            if customer is None:
                customer = Customer(email=email, status="active")
                db.session.add(customer)
            for key, value in values.items():
                if value:
                    setattr(customer, key, sanitize(value))
            if not customer.name:
                customer.name = email
        return customer
    except Exception as e:
        logger.error(f"Customer upsert failed for {email}: {e}")
        return None


def create_customer(data):
    name = sanitize(data.get("name"))
    email = normalize_email(data.get("email"))
    if not name or not email:
        raise ValidationFailed("Name and email are required")
    if not is_valid_email(email):
        raise ValidationFailed("Invalid email address")
    if find_by_email(email):
        raise ValidationFailed("A customer with this email already exists")

    customer = Customer(name=name, email=email, status="active")
    _apply_fields(customer, data, skip=("name", "email"))
    if not customer.state:
        customer.state = current_app.config.get("DEFAULT_SITE_STATE")
    db.session.add(customer)
    db.session.flush()
    return customer


def update_customer(customer, data):
    if "email" in data:
        email = normalize_email(data.get("email"))
        if not is_valid_email(email):
            raise ValidationFailed("Invalid email address")
        other = find_by_email(email)
        if other and other.id != customer.id:
            raise StateConflict("Another customer already uses this email")
        customer.email = email
    if "status" in data and data["status"] not in Customer.STATUSES:
        raise ValidationFailed(
            f"Invalid status. Must be one of: {', '.join(Customer.STATUSES)}"
        )
    _apply_fields(customer, data, skip=("email",))
    db.session.flush()
    return customer


def _apply_fields(customer, data, skip=()):
    for field in EDITABLE_FIELDS:
        if field in skip or field not in data:
            continue
        value = data[field]
        setattr(customer, field, sanitize(value) if isinstance(value, str) else value)
