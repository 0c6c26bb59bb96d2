"""Inspection/deficiency service — recording findings and rolling them into a repair quote.

Functions flush but do NOT commit — the caller commits.
"""

import logging
from datetime import datetime, timezone

from fireops.errors import NotFound, StateConflict, ValidationFailed
from fireops.extensions import db
from fireops.models.inspection import Deficiency, Inspection
from fireops.models.quote import Quote
from fireops.models.user import User
from fireops.money import money_float, to_decimal
from fireops.services import customer_service, quote_service, sequence_service
from fireops.validation import parse_date, require_fields, sanitize

logger = logging.getLogger(__name__)

DEFICIENCY_TAX_RATE = "0.0825"

# deficiency.category -> quote line item category
CATEGORY_MAP = {
    "emergency_lighting": "Emergency Lighting",
    "duct_smoke": "Smoke Detection",
    "fire_lane": "Fire Lane",
    "panel_trouble": "Fire Alarm Panel",
    "monitoring": "Monitoring",
    "smoke_detector": "Smoke Detection",
    "heat_detector": "Heat Detection",
    "pull_station": "Pull Stations",
    "horn_strobe": "Notification Devices",
    "sprinkler_head": "Sprinkler System",
    "valve": "Valves",
    "signage": "Signage",
    "documentation": "Documentation",
    "other": "Miscellaneous",
}

REPAIR_TERMS = {
    "payment_terms": "Net 30",
    "warranty": "1 Year Parts & Labor",
    "valid_days": 30,
    "assumptions": [
        "Pricing based on inspection findings",
        "Access to all areas required during normal business hours",
        "Existing wiring and infrastructure in serviceable condition",
    ],
    "disclaimers": [
        "Quote valid for 30 days",
        "Additional deficiencies may require separate quote",
        "Final pricing may vary based on site conditions",
    ],
}


# ──────────────────────────────────────────────
# Inspections & deficiencies
# ──────────────────────────────────────────────

def create_inspection(data, inspector_id=None):
    require_fields(
        data, "customer_name", "site_address",
        message="customer_name and site_address are required",
    )
    status = data.get("status") or "scheduled"
    if status not in Inspection.STATUSES:
        raise ValidationFailed(
            f"Invalid status. Must be one of: {', '.join(Inspection.STATUSES)}"
        )

    contact_email = data.get("contact_email")
    customer = customer_service.find_by_email(contact_email) if contact_email else None

    inspection = Inspection(
        inspection_type=data.get("inspection_type") or "annual",
        status=status,
        customer_id=customer.id if customer else None,
        customer_name=sanitize(data["customer_name"]),
        contact_email=contact_email.strip().lower() if contact_email else None,
        contact_phone=sanitize(data.get("contact_phone")) or None,
        site_address=sanitize(data["site_address"]),
        site_city=sanitize(data.get("site_city")) or None,
        site_state=sanitize(data.get("site_state")) or None,
        site_zip=sanitize(data.get("site_zip")) or None,
        inspector_id=data.get("inspector_id") or inspector_id,
        scheduled_date=parse_date(data.get("scheduled_date"), "scheduled_date"),
        notes=sanitize(data.get("notes")) or None,
    )
    db.session.add(inspection)
    db.session.flush()
    return inspection


def add_deficiency(inspection, data, created_by=None):
    require_fields(
        data, "category", "description", "severity",
        message="category, description and severity are required",
    )
    if data["severity"] not in Deficiency.SEVERITIES:
        raise ValidationFailed(
            f"Invalid severity. Must be one of: {', '.join(Deficiency.SEVERITIES)}"
        )
    try:
        low = to_decimal(data.get("estimated_cost_low"), default=None)
        high = to_decimal(data.get("estimated_cost_high"), default=None)
    except ValueError:
        raise ValidationFailed("Invalid estimated cost")
    if low is not None and high is not None and low > high:
        raise ValidationFailed("estimated_cost_low cannot exceed estimated_cost_high")

    deficiency = Deficiency(
        inspection_id=inspection.id,
        category=data["category"],
        description=sanitize(data["description"]),
        severity=data["severity"],
        location=sanitize(data.get("location")) or None,
        recommended_action=sanitize(data.get("recommended_action")) or None,
        estimated_cost_low=low,
        estimated_cost_high=high,
        status="open",
        created_by=created_by,
    )
    db.session.add(deficiency)
    db.session.flush()
    return deficiency


INSPECTION_EDITABLE = {
    "inspection_type",
    "customer_name",
    "contact_email",
    "contact_phone",
    "site_address",
    "site_city",
    "site_state",
    "site_zip",
    "inspector_id",
    "scheduled_date",
    "notes",
    "fire_marshal_notes",
    "internal_notes",
}
DEFICIENCY_EDITABLE = {
    "category",
    "description",
    "severity",
    "location",
    "recommended_action",
    "estimated_cost_low",
    "estimated_cost_high",
    "status",
}


def update_inspection(inspection, data):
    """Plain PATCH. Status only moves through start/complete/cancel."""
    if "status" in data:
        raise ValidationFailed("Use the start, complete or cancel action to change status")
    unknown = sorted(set(data) - INSPECTION_EDITABLE)
    if unknown:
        raise ValidationFailed(f"Unknown or read-only fields: {', '.join(unknown)}")
    for field in ("customer_name", "site_address"):
        if field in data and not sanitize(data[field]):
            raise ValidationFailed(f"{field} cannot be empty")
    if data.get("inspector_id") and db.session.get(User, data["inspector_id"]) is None:
        raise NotFound("Inspector not found")

    for field, value in data.items():
        if field == "scheduled_date":
            value = parse_date(value, field)
        elif field == "contact_email":
            value = value.strip().lower() if isinstance(value, str) and value.strip() else None
        elif isinstance(value, str):
            value = sanitize(value)
        setattr(inspection, field, value)

    db.session.flush()
    return inspection


def start_inspection(inspection):
    if inspection.status != "scheduled":
        raise StateConflict(f"Cannot start an inspection that is {inspection.status}")
    inspection.status = "in_progress"
    inspection.actual_start_time = datetime.now(timezone.utc)
    db.session.flush()
    logger.info(f"Inspection {inspection.id} started")
    return inspection


def complete_inspection(inspection, data):
    """Record the outcome. A scheduled inspection can be completed in one step."""
    if inspection.status not in ("scheduled", "in_progress"):
        raise StateConflict(f"Cannot complete an inspection that is {inspection.status}")

    now = datetime.now(timezone.utc)
    inspection.status = "completed"
    if inspection.actual_start_time is None:
        inspection.actual_start_time = now
    inspection.actual_end_time = now
    if "passed" in data:
        inspection.passed = bool(data["passed"])
    if "pass_with_deficiencies" in data:
        inspection.pass_with_deficiencies = bool(data["pass_with_deficiencies"])
    if data.get("checklist_results") is not None:
        inspection.checklist_results = data["checklist_results"]
    if data.get("notes") is not None:
        inspection.notes = sanitize(data["notes"])
    if data.get("fire_marshal_notes") is not None:
        inspection.fire_marshal_notes = sanitize(data["fire_marshal_notes"])
    db.session.flush()
    logger.info(f"Inspection {inspection.id} completed (passed={inspection.passed})")
    return inspection


def cancel_inspection(inspection, reason=None):
    if inspection.status in ("completed", "cancelled"):
        raise StateConflict(f"Cannot cancel an inspection that is {inspection.status}")
    inspection.status = "cancelled"
    if reason:
        inspection.internal_notes = sanitize(reason)
    db.session.flush()
    logger.info(f"Inspection {inspection.id} cancelled")
    return inspection


def delete_inspection(inspection):
    if any(d.quote_id for d in inspection.deficiencies):
        raise StateConflict("Cannot delete an inspection with quoted deficiencies")
    db.session.delete(inspection)
    db.session.flush()


def update_deficiency(deficiency, data):
    unknown = sorted(set(data) - DEFICIENCY_EDITABLE)
    if unknown:
        raise ValidationFailed(f"Unknown or read-only fields: {', '.join(unknown)}")
    if "severity" in data and data["severity"] not in Deficiency.SEVERITIES:
        raise ValidationFailed(
            f"Invalid severity. Must be one of: {', '.join(Deficiency.SEVERITIES)}"
        )
    if "status" in data:
        # "quoted" is set only by quote generation
        if data["status"] not in ("open", "resolved"):
            raise ValidationFailed("Invalid status. Must be one of: open, resolved")
        if data["status"] == "open" and deficiency.quote_id:
            raise StateConflict("Deficiency is already on a quote")
    for field in ("category", "description"):
        if field in data and not sanitize(data[field]):
            raise ValidationFailed(f"{field} cannot be empty")

    try:
        low = to_decimal(data.get("estimated_cost_low", deficiency.estimated_cost_low), default=None)
        high = to_decimal(data.get("estimated_cost_high", deficiency.estimated_cost_high), default=None)
    except ValueError:
        raise ValidationFailed("Invalid estimated cost")
    if low is not None and high is not None and low > high:
        raise ValidationFailed("estimated_cost_low cannot exceed estimated_cost_high")

    for field, value in data.items():
        if field == "estimated_cost_low":
            value = low
        elif field == "estimated_cost_high":
            value = high
        elif isinstance(value, str) and field not in ("severity", "status"):
            value = sanitize(value)
        setattr(deficiency, field, value)

    db.session.flush()
    return deficiency


def delete_deficiency(deficiency):
    if deficiency.quote_id:
        raise StateConflict("Cannot delete a deficiency that is on a quote")
    db.session.delete(deficiency)
    db.session.flush()


# ──────────────────────────────────────────────
# Deficiency → Quote
# ──────────────────────────────────────────────

def _repair_name(category):
    return f"{category.replace('_', ' ').title()} Repair"


def build_line_item(deficiency, index):
    low = deficiency.estimated_cost_low or 0
    high = deficiency.estimated_cost_high or 0
    description = deficiency.description
    if deficiency.recommended_action:
        description += f"\n\nRecommended: {deficiency.recommended_action}"

    return {
        "id": f"def-{index + 1}",
        "category": CATEGORY_MAP.get(deficiency.category, "Miscellaneous"),
        "name": _repair_name(deficiency.category),
        "description": description,
        "unit": "ea",
        "quantity": 1,
        "unit_price": money_float(high or low),
        "allowance_low": money_float(low),
        "allowance_high": money_float(high),
        "is_allowance": bool(low and high and low != high),
        "taxable": True,
    }


def generate_quote(inspection_id, deficiency_ids, created_by=None):
    """Create a draft deficiency_repair quote from an inspection's findings.

    Each deficiency may back one quote only; requested rows are locked and
    any that already carry a quote_id fail the whole call.

    Returns:
        tuple: (quote, deficiency_count)
    """
    if not inspection_id:
        raise ValidationFailed("inspection_id is required")
    if not isinstance(deficiency_ids, list) or not deficiency_ids:
        raise ValidationFailed("deficiency_ids array is required")

    inspection = db.session.get(Inspection, inspection_id)
    if inspection is None:
        raise NotFound("Inspection not found")

    found = (
        Deficiency.query
        .filter(
            Deficiency.id.in_(deficiency_ids),
            Deficiency.inspection_id == inspection.id,
        )
        .with_for_update()
        .all()
    )
    if not found:
        raise ValidationFailed("No valid deficiencies found")

    for deficiency in found:
        if deficiency.quote_id:
            existing = db.session.get(Quote, deficiency.quote_id)
            number = existing.quote_number if existing else deficiency.quote_id
            raise StateConflict(f"Deficiency is already on quote {number}")

    # Keep the caller's ordering for line items.
    by_id = {d.id: d for d in found}
    deficiencies = [by_id[d_id] for d_id in dict.fromkeys(deficiency_ids) if d_id in by_id]

    raw_items = [build_line_item(d, i) for i, d in enumerate(deficiencies)]
    line_items = quote_service.normalize_line_items(raw_items)

    quote = Quote(
        quote_number=sequence_service.next_number("QT"),
        quote_type="deficiency_repair",
        template_name="Deficiency Repair Quote",
        status="draft",
        customer={
            "name": inspection.customer_name,
            "phone": inspection.contact_phone or "",
            "email": inspection.contact_email,
            "address": inspection.site_address,
            "city": inspection.site_city,
            "state": inspection.site_state,
            "zip": inspection.site_zip,
        },
        site={
            "address": inspection.site_address,
            "city": inspection.site_city or "",
            "state": inspection.site_state,
            "zip": inspection.site_zip,
        },
        line_items=line_items,
        totals=quote_service.calculate_totals(line_items, DEFICIENCY_TAX_RATE),
        terms=REPAIR_TERMS,
        created_by=created_by,
    )
    db.session.add(quote)
    db.session.flush()

    for deficiency in deficiencies:
        deficiency.quote_id = quote.id
    db.session.flush()

    if quote.customer_email:
        customer_service.upsert_from_snapshot(quote.customer)

    logger.info(
        f"Quote {quote.quote_number} generated from {len(deficiencies)} "
        f"deficiencies on inspection {inspection.id}"
    )
    return quote, len(deficiencies)
