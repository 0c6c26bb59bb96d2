"""Payment service — manual payment recording and invoice reconciliation.

record_payment() is the only manual writer of Invoice.amount_paid. The
invoice row is locked (SELECT ... FOR UPDATE) for the read-modify-write,
and Invoice.version makes a stale concurrent UPDATE fail instead of
double-applying.
"""

import logging
from datetime import datetime, timezone

from fireops.errors import NotFound, StateConflict, ValidationFailed
from fireops.extensions import db
from fireops.models.customer import Customer
from fireops.models.invoice import Invoice
from fireops.models.payment import Payment
from fireops.money import round_money, to_decimal
from fireops.validation import parse_date, require_fields, sanitize

logger = logging.getLogger(__name__)


def apply_payment(invoice, amount):
    """Add ``amount`` to the invoice and derive partial/paid. Caller holds the lock."""
    invoice.amount_paid = round_money(to_decimal(invoice.amount_paid) + amount)
    if invoice.amount_paid >= to_decimal(invoice.total):
        invoice.status = "paid"
        invoice.paid_at = datetime.now(timezone.utc)
    else:
        invoice.status = "partial"
    return invoice


def record_payment(data, recorded_by=None):
    """Record a manual payment against an invoice.

    Required: invoice_id, customer_id, amount (> 0).
    Optional: payment_method (default "cash"), reference_number, notes,
    payment_date.

    Returns:
        tuple: (payment, invoice)
    """
    require_fields(
        data, "invoice_id", "customer_id", "amount",
        message="invoice_id, customer_id and amount are required",
    )
    try:
        amount = round_money(data["amount"])
    except ValueError:
        raise ValidationFailed("Invalid amount")
    if amount <= 0:
        raise ValidationFailed("Amount must be greater than zero")

    method = data.get("payment_method") or "cash"
    if method not in Payment.METHODS:
        raise ValidationFailed(
            f"Invalid payment_method. Must be one of: {', '.join(Payment.METHODS)}"
        )

    invoice = (
        Invoice.query
        .filter_by(id=data["invoice_id"])
        .with_for_update()
        .first()
    )
    if invoice is None:
        raise NotFound("Invoice not found")
    if db.session.get(Customer, data["customer_id"]) is None:
        raise NotFound("Customer not found")
    if invoice.status in ("paid", "refunded"):
        raise StateConflict(f"Invoice {invoice.invoice_number} is already {invoice.status}")

    payment = Payment(
        invoice_id=invoice.id,
        customer_id=data["customer_id"],
        amount=amount,
        payment_method=method,
        status="completed",
        reference_number=sanitize(data.get("reference_number")) or None,
        notes=sanitize(data.get("notes")) or None,
        payment_date=parse_date(data.get("payment_date"), "payment_date"),
        paid_at=datetime.now(timezone.utc),
        recorded_by=recorded_by,
    )
    db.session.add(payment)

    apply_payment(invoice, amount)
    db.session.flush()

    logger.info(
        f"Payment {amount} recorded on {invoice.invoice_number} "
        f"(paid {invoice.amount_paid}/{invoice.total}, status={invoice.status})"
    )
    return payment, invoice


def list_payments(status=None, customer_id=None, invoice_id=None):
    query = Payment.query
    if status:
        query = query.filter_by(status=status)
    if customer_id:
        query = query.filter_by(customer_id=customer_id)
    if invoice_id:
        query = query.filter_by(invoice_id=invoice_id)
    return query.order_by(Payment.created_at.desc()).all()
