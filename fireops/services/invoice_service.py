"""Invoice service — job→invoice generation, invoice CRUD and totals.

Scope-summary parsing (job → invoice):

    "2x Smoke Detector\\nPull Station", total 300
      per_item = 300 / 2 lines = 150 (unrounded)
      -> Smoke Detector  qty 2  unit_price round(150 / 2, 2) = 75
      -> Pull Station    qty 1  unit_price 150

The share is per line, not per unit, so the quantity-prefixed line is
not an even three-way split (100 / 100) of the total.

Money is rounded to cents after every multiplication and summation:
item total = round(qty * unit_price, 2); subtotal = sum of item totals;
tax = round(subtotal * rate, 2); total = round(subtotal + tax, 2).

Functions flush but do NOT commit — the caller commits.
"""

import logging
import re
from datetime import date, datetime, timedelta, timezone

from flask import current_app

from fireops.errors import NotFound, StateConflict, ValidationFailed
from fireops.extensions import db
from fireops.models.customer import Customer
from fireops.models.invoice import Invoice, InvoiceItem
from fireops.models.job import Job
from fireops.money import ZERO, round_money, to_decimal
from fireops.services import customer_service, sequence_service
from fireops.services.job_service import log_event
from fireops.validation import parse_date, require_fields, sanitize

logger = logging.getLogger(__name__)

SCOPE_LINE_RE = re.compile(r"^(\d+)x\s+(.+)$")

# Keys ignored on PATCH.
PROTECTED_FIELDS = {
    "id",
    "invoice_number",
    "created_at",
    "amount_paid",
    "customer",
    "payments",
    "paid_at",
    "version",
}


def default_tax_rate():
    return to_decimal(current_app.config.get("DEFAULT_TAX_RATE", "0.0825"))


def parse_scope_summary(scope_summary, total_amount):
    """Split a job's scope summary into invoice line items.

    Returns a list of {description, quantity, unit_price} dicts, or an
    empty list when the summary has no non-blank lines.
    """
    lines = [line.strip() for line in (scope_summary or "").split("\n") if line.strip()]
    if not lines:
        return []

    per_item = to_decimal(total_amount) / len(lines)
    items = []
    for line in lines:
        match = SCOPE_LINE_RE.match(line)
        if match:
            quantity = int(match.group(1))
            description = match.group(2).strip()
            unit_price = round_money(per_item / quantity) if quantity else round_money(per_item)
        else:
            quantity = 1
            description = line
            unit_price = round_money(per_item)
        items.append({
            "description": description,
            "quantity": quantity,
            "unit_price": unit_price,
        })
    return items


def build_items(raw_items):
    """Validate client items -> list of InvoiceItem (unsaved) with rounded totals."""
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationFailed("items must be a non-empty list")

    items = []
    for index, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationFailed(f"Item {index + 1}: must be an object")
        description = sanitize(raw.get("description"))
        if not description:
            raise ValidationFailed(f"Item {index + 1}: description is required")
        try:
            quantity = to_decimal(raw.get("quantity", 1))
            unit_price = round_money(raw.get("unit_price", 0))
        except ValueError:
            raise ValidationFailed(f"Item {index + 1}: invalid quantity or unit_price")
        if quantity <= 0 or unit_price < 0:
            raise ValidationFailed(f"Item {index + 1}: quantity must be positive")

        items.append(InvoiceItem(
            description=description,
            quantity=quantity,
            unit_price=unit_price,
            total=round_money(quantity * unit_price),
            sort_order=index,
        ))
    return items


def apply_totals(invoice, tax_rate=None):
    """Recompute subtotal/tax/total from the invoice's items."""
    try:
        rate = to_decimal(tax_rate) if tax_rate not in (None, "") else (
            to_decimal(invoice.tax_rate) if invoice.tax_rate is not None else default_tax_rate()
        )
    except ValueError:
        raise ValidationFailed("Invalid tax_rate")
    if rate < 0 or rate >= 1:
        raise ValidationFailed("tax_rate must be between 0 and 1")

    subtotal = ZERO
    for item in invoice.items:
        subtotal = round_money(subtotal + to_decimal(item.total))

    invoice.tax_rate = rate
    invoice.subtotal = subtotal
    invoice.tax_amount = round_money(subtotal * rate)
    invoice.total = round_money(subtotal + invoice.tax_amount)
    return invoice


# ──────────────────────────────────────────────
# Job → Invoice
# ──────────────────────────────────────────────

def create_invoice_from_job(job_id, actor_id=None):
    job = Job.query.filter_by(id=job_id).with_for_update().first()
    if job is None:
        raise NotFound("Job not found")

    existing = Invoice.query.filter_by(job_id=job.id).first()
    if existing:
        raise StateConflict(f"Invoice {existing.invoice_number} already exists for this job")

    if not job.customer_email:
        raise ValidationFailed("Job has no customer email; cannot create invoice")

    customer, _ = customer_service.get_or_create_customer(
        job.customer_email,
        job.customer_name,
        phone=job.customer_phone,
        address=job.site_address,
        city=job.site_city,
        state=job.site_state or current_app.config.get("DEFAULT_SITE_STATE"),
        zip=job.site_zip,
    )
    if job.customer_id is None:
        job.customer_id = customer.id

    total_amount = to_decimal(job.total_amount)
    parsed = parse_scope_summary(job.scope_summary, total_amount)
    if not parsed:
        parsed = [{
            "description": job.description or f"Job {job.job_number} - {job.job_type}",
            "quantity": 1,
            "unit_price": round_money(total_amount),
        }]

    invoice = Invoice(
        invoice_number=sequence_service.next_number("INV"),
        customer_id=customer.id,
        job_id=job.id,
        quote_id=job.quote_id,
        status="draft",
        due_date=date.today() + timedelta(days=current_app.config.get("INVOICE_DUE_DAYS", 30)),
        notes=f"Generated from Job {job.job_number}",
        created_by=actor_id,
    )
    for index, entry in enumerate(parsed):
        quantity = to_decimal(entry["quantity"])
        unit_price = round_money(entry["unit_price"])
        invoice.items.append(InvoiceItem(
            description=entry["description"],
            quantity=quantity,
            unit_price=unit_price,
            total=round_money(quantity * unit_price),
            sort_order=index,
        ))
    apply_totals(invoice, default_tax_rate())
    db.session.add(invoice)
    db.session.flush()

    job.status = "invoiced"
    log_event(job, "invoiced", {
        "invoice_id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "total": float(invoice.total),
    }, actor_id)

    logger.info(f"Invoice {invoice.invoice_number} created from job {job.job_number}")
    return invoice


# ──────────────────────────────────────────────
# Invoice CRUD
# ──────────────────────────────────────────────

def create_invoice(data, actor_id=None):
    require_fields(data, "customer_id", "items", message="customer_id and items are required")
    customer = db.session.get(Customer, data["customer_id"])
    if customer is None:
        raise NotFound("Customer not found")

    invoice = Invoice(
        customer_id=customer.id,
        job_id=data.get("job_id"),
        quote_id=data.get("quote_id"),
        status="draft",
        due_date=parse_date(data.get("due_date"), "due_date")
        or date.today() + timedelta(days=current_app.config.get("INVOICE_DUE_DAYS", 30)),
        notes=sanitize(data.get("notes")) or None,
        created_by=actor_id,
    )
    invoice.items = build_items(data["items"])
    apply_totals(invoice, data.get("tax_rate"))
    invoice.invoice_number = sequence_service.next_number("INV")
    db.session.add(invoice)
    db.session.flush()
    return invoice


def update_invoice(invoice, data):
    data = {k: v for k, v in data.items() if k not in PROTECTED_FIELDS}

    if "status" in data and data["status"] != invoice.status:
        # Payments drive partial/paid; the only manual transition is draft -> sent.
        if not (invoice.status == "draft" and data["status"] == "sent"):
            raise StateConflict(
                f"Cannot change invoice status from {invoice.status} to {data['status']}"
            )
        invoice.status = "sent"

    if invoice.status in ("paid", "refunded") and ("items" in data or "tax_rate" in data):
        raise StateConflict(f"Cannot edit items on a {invoice.status} invoice")

    if "items" in data:
        invoice.items = build_items(data["items"])
    if "items" in data or "tax_rate" in data:
        apply_totals(invoice, data.get("tax_rate"))
    if "due_date" in data:
        invoice.due_date = parse_date(data["due_date"], "due_date")
    if "notes" in data:
        invoice.notes = sanitize(data["notes"])

    db.session.flush()
    return invoice


def delete_invoice(invoice):
    if invoice.status != "draft":
        raise StateConflict("Only draft invoices can be deleted. Void the invoice instead.")
    db.session.delete(invoice)
    db.session.flush()


def mark_sent(invoice, stripe_invoice=None):
    invoice.status = "sent" if invoice.status in ("draft", "sent", "payment_failed") else invoice.status
    invoice.sent_at = datetime.now(timezone.utc)
    if stripe_invoice is not None:
        invoice.stripe_invoice_id = stripe_invoice.get("id")
        invoice.stripe_hosted_url = stripe_invoice.get("hosted_invoice_url")
        invoice.stripe_pdf_url = stripe_invoice.get("invoice_pdf")
    db.session.flush()
    return invoice
