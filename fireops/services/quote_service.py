"""Quote service — line items, totals, numbering, duplicate, send.

Totals are always recomputed server-side from the line items:

    normal item     amount = round(qty * unit_price, 2)      (low = high = amount)
    allowance item  low    = round(qty * allowance_low, 2)
                    high   = round(qty * allowance_high, 2)  (amount = high)

    subtotal = sum(amount)       subtotal_low/high = sum(low)/sum(high)
    tax      = round(subtotal * tax_rate, 2)
    total    = round(subtotal + tax, 2)        (same for total_low/high)

Functions flush but do NOT commit — the caller commits.
"""

import logging
from datetime import datetime, timezone

from flask import current_app

from fireops.errors import StateConflict, ValidationFailed
from fireops.extensions import db
from fireops.models.quote import Quote
from fireops.money import ZERO, money_float, round_money, to_decimal
from fireops.services import (
    customer_link_service,
    customer_service,
    notification_service,
    sequence_service,
)
from fireops.validation import require_fields, sanitize

logger = logging.getLogger(__name__)

# Keys clients may not set directly on PUT.
PROTECTED_FIELDS = {"id", "quote_number", "created_at", "totals", "created_by"}
EDITABLE_FIELDS = [
    "quote_type",
    "template_name",
    "customer",
    "site",
    "terms",
    "notes",
    "deposit_amount",
]


def default_tax_rate():
    return to_decimal(current_app.config.get("DEFAULT_TAX_RATE", "0.0825"))


def _number(value, field, index):
    try:
        return to_decimal(value)
    except ValueError:
        raise ValidationFailed(f"Line item {index + 1}: invalid {field}")


def normalize_line_items(line_items):
    """Validate client line items and return clean dicts with per-item amounts."""
    if not isinstance(line_items, list) or not line_items:
        raise ValidationFailed("line_items must be a non-empty list")

    normalized = []
    for index, raw in enumerate(line_items):
        if not isinstance(raw, dict):
            raise ValidationFailed(f"Line item {index + 1}: must be an object")

        name = sanitize(raw.get("name")) or ""
        description = sanitize(raw.get("description")) or ""
        if not name and not description:
            raise ValidationFailed(f"Line item {index + 1}: name or description is required")

        quantity = _number(raw.get("quantity", 1), "quantity", index)
        unit_price = _number(raw.get("unit_price"), "unit_price", index)
        allowance_low = _number(raw.get("allowance_low"), "allowance_low", index)
        allowance_high = _number(raw.get("allowance_high"), "allowance_high", index)
        if quantity < 0 or unit_price < 0 or allowance_low < 0 or allowance_high < 0:
            raise ValidationFailed(f"Line item {index + 1}: amounts cannot be negative")

        is_allowance = bool(raw.get("is_allowance"))
        if is_allowance and allowance_low > allowance_high:
            raise ValidationFailed(
                f"Line item {index + 1}: allowance_low cannot exceed allowance_high"
            )

        if is_allowance:
            low = round_money(quantity * allowance_low)
            high = round_money(quantity * allowance_high)
            amount = high
        else:
            amount = low = high = round_money(quantity * unit_price)

        normalized.append({
            "id": raw.get("id") or f"item-{index + 1}",
            "category": sanitize(raw.get("category")) or None,
            "name": name,
            "description": description,
            "unit": raw.get("unit") or "ea",
            "quantity": float(quantity),
            "unit_price": money_float(unit_price),
            "allowance_low": money_float(allowance_low),
            "allowance_high": money_float(allowance_high),
            "is_allowance": is_allowance,
            "taxable": raw.get("taxable", True) is not False,
            "amount": money_float(amount),
            "amount_low": money_float(low),
            "amount_high": money_float(high),
        })
    return normalized


def calculate_totals(line_items, tax_rate=None):
    """Compute the totals dict for normalized line items."""
    try:
        rate = default_tax_rate() if tax_rate in (None, "") else to_decimal(tax_rate)
    except ValueError:
        raise ValidationFailed("Invalid tax_rate")
    if rate < 0 or rate >= 1:
        raise ValidationFailed("tax_rate must be between 0 and 1")

    subtotal = subtotal_low = subtotal_high = ZERO
    for item in line_items:
        subtotal = round_money(subtotal + to_decimal(item["amount"]))
        subtotal_low = round_money(subtotal_low + to_decimal(item["amount_low"]))
        subtotal_high = round_money(subtotal_high + to_decimal(item["amount_high"]))

    tax = round_money(subtotal * rate)
    tax_low = round_money(subtotal_low * rate)
    tax_high = round_money(subtotal_high * rate)

    return {
        "subtotal": money_float(subtotal),
        "subtotal_low": money_float(subtotal_low),
        "subtotal_high": money_float(subtotal_high),
        "labor_total": 0.0,
        "materials_total": money_float(subtotal),
        "tax_rate": float(rate),
        "tax": money_float(tax),
        "total": money_float(round_money(subtotal + tax)),
        "total_low": money_float(round_money(subtotal_low + tax_low)),
        "total_high": money_float(round_money(subtotal_high + tax_high)),
    }


def create_quote(data, created_by=None):
    """Create a draft quote. Required: quote_type, customer, site, line_items."""
    require_fields(data, "quote_type", "customer", "site", "line_items")
    if not isinstance(data["customer"], dict) or not isinstance(data["site"], dict):
        raise ValidationFailed("customer and site must be objects")

    status = data.get("status") or "draft"
    if status not in Quote.STATUSES:
        raise ValidationFailed(f"Invalid status. Must be one of: {', '.join(Quote.STATUSES)}")

    line_items = normalize_line_items(data["line_items"])
    totals = calculate_totals(line_items, data.get("tax_rate"))
    deposit_amount = _deposit(data.get("deposit_amount"))
    quote = Quote(
        quote_number=sequence_service.next_number("QT"),
        quote_type=sanitize(data["quote_type"]),
        template_name=sanitize(data.get("template_name")) or None,
        status=status,
        customer=data["customer"],
        site=data["site"],
        line_items=line_items,
        totals=totals,
        terms=data.get("terms"),
        notes=sanitize(data.get("notes")) or None,
        deposit_amount=deposit_amount,
        created_by=created_by,
    )
    db.session.add(quote)
    db.session.flush()

    customer_service.upsert_from_snapshot(quote.customer)
    logger.info(f"Quote {quote.quote_number} created")
    return quote


def update_quote(quote, data):
    """Replace editable fields and recompute totals."""
    for field in ("customer", "site"):
        if field in data and not isinstance(data[field], dict):
            raise ValidationFailed("customer and site must be objects")

    if "status" in data:
        if data["status"] not in Quote.STATUSES:
            raise ValidationFailed(
                f"Invalid status. Must be one of: {', '.join(Quote.STATUSES)}"
            )
        quote.status = data["status"]

    for field in EDITABLE_FIELDS:
        if field not in data or field in PROTECTED_FIELDS:
            continue
        value = data[field]
        if field == "deposit_amount":
            value = _deposit(value)
        elif field in ("quote_type", "template_name", "notes"):
            value = sanitize(value)
        setattr(quote, field, value)

    if "line_items" in data or "tax_rate" in data:
        line_items = (
            normalize_line_items(data["line_items"])
            if "line_items" in data
            else quote.line_items
        )
        rate = data.get("tax_rate", (quote.totals or {}).get("tax_rate"))
        quote.line_items = line_items
        quote.totals = calculate_totals(line_items, rate)

    db.session.flush()
    customer_service.upsert_from_snapshot(quote.customer)
    return quote


def duplicate_quote(quote, created_by=None):
    """Copy a quote as a new draft with a fresh number."""
    copy = Quote(
        quote_number=sequence_service.next_number("QT"),
        quote_type=quote.quote_type,
        template_name=f"{quote.template_name} (Copy)" if quote.template_name else None,
        status="draft",
        customer=dict(quote.customer or {}),
        site=dict(quote.site or {}),
        line_items=[dict(item) for item in (quote.line_items or [])],
        totals=dict(quote.totals or {}),
        terms=quote.terms,
        notes=quote.notes,
        deposit_amount=quote.deposit_amount,
        created_by=created_by,
    )
    db.session.add(copy)
    db.session.flush()
    logger.info(f"Quote {quote.quote_number} duplicated as {copy.quote_number}")
    return copy


def delete_quote(quote):
    if quote.status not in ("draft", "rejected"):
        raise StateConflict("Only draft or rejected quotes can be deleted")
    db.session.delete(quote)
    db.session.flush()


def send_quote(quote, sent_by=None):
    """Mint a quote_approval link, mark the quote sent and queue the email."""
    if quote.status not in ("draft", "sent", "viewed"):
        raise StateConflict(f"Quote is already {quote.status}")
    if not quote.customer_email:
        raise ValidationFailed("Quote has no customer email")

    customer = customer_service.find_by_email(quote.customer_email)
    link = customer_link_service.generate_link(
        customer_email=quote.customer_email,
        link_type="quote_approval",
        customer=customer,
        customer_name=(quote.customer or {}).get("name"),
        quote_id=quote.id,
        created_by=sent_by,
    )
    quote.status = "sent"
    quote.sent_at = datetime.now(timezone.utc)
    db.session.flush()

    url = customer_link_service.link_url(link)
    notification_service.notify_quote_sent(quote, url)
    return link


def _deposit(value):
    if value in (None, ""):
        return None
    try:
        amount = round_money(value)
    except ValueError:
        raise ValidationFailed("Invalid deposit_amount")
    if amount < 0:
        raise ValidationFailed("deposit_amount cannot be negative")
    return amount
