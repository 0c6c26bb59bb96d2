"""Stripe service — all Stripe API calls and webhook handling.

Responsible for:
- Sending invoices through Stripe (customer, items, finalize, send)
- Creating Checkout Sessions for quote deposits / full payments
- Verifying completed checkout sessions for the payment-success page
- Handling incoming webhooks with signature verification
- Dispatching to event-specific handlers
- Idempotency via stripe_events table

Two webhook endpoints share this module:
- "payments": /api/webhooks/stripe (checkout + payment intents + refunds)
- "invoices": /api/stripe/webhook (hosted invoice paid / failed)
"""

import logging
from datetime import datetime, timezone

import stripe
from flask import current_app

from fireops.errors import NotFound, StateConflict, UpstreamFailure, ValidationFailed
from fireops.extensions import db
from fireops.models.invoice import Invoice
from fireops.models.payment import Payment
from fireops.models.quote import Quote
from fireops.models.stripe_event import StripeEvent
from fireops.money import from_cents, money_float, to_cents

logger = logging.getLogger(__name__)


def _configure():
    stripe.api_key = current_app.config["STRIPE_SECRET_KEY"]


# ──────────────────────────────────────────────
# Invoices
# ──────────────────────────────────────────────

def get_or_create_stripe_customer(customer):
    """Return the Stripe customer id for a local Customer.

    Reuses the stored id, else the first Stripe customer with the same
    email, else creates one. The id is stored on the Customer row.
    """
    if customer.stripe_customer_id:
        return customer.stripe_customer_id

    existing = stripe.Customer.list(email=customer.email, limit=1)
    if existing.data:
        stripe_customer_id = existing.data[0].id
    else:
        created = stripe.Customer.create(
            email=customer.email,
            name=customer.name or customer.company or "Customer",
            phone=customer.phone or None,
            metadata={"customer_id": customer.id},
        )
        stripe_customer_id = created.id

    customer.stripe_customer_id = stripe_customer_id
    db.session.flush()
    return stripe_customer_id


def send_invoice(invoice):
    """Create, finalize and send a Stripe-hosted invoice for ``invoice``.

    Returns the finalized Stripe invoice (hosted_invoice_url, invoice_pdf).
    Raises UpstreamFailure on Stripe API errors.
    """
    customer = invoice.customer
    if customer is None or not customer.email:
        raise ValidationFailed("Customer email is required to send invoice")
    if invoice.status in ("paid", "refunded"):
        raise StateConflict(f"Invoice {invoice.invoice_number} is already {invoice.status}")
    if not invoice.items:
        raise ValidationFailed("Invoice has no line items")

    _configure()
    days_until_due = current_app.config.get("INVOICE_DUE_DAYS", 30)
    if invoice.due_date:
        days_until_due = max((invoice.due_date - datetime.now(timezone.utc).date()).days, 0)

    try:
        stripe_customer_id = get_or_create_stripe_customer(customer)

        stripe_invoice = stripe.Invoice.create(
            customer=stripe_customer_id,
            collection_method="send_invoice",
            days_until_due=days_until_due,
            pending_invoice_items_behavior="exclude",
            metadata={
                "invoice_db_id": invoice.id,
                "invoice_number": invoice.invoice_number,
            },
        )

        for item in invoice.items:
            stripe.InvoiceItem.create(
                customer=stripe_customer_id,
                invoice=stripe_invoice.id,
                description=item.description,
                amount=to_cents(item.total),
                currency="usd",
            )
        if invoice.tax_amount:
            stripe.InvoiceItem.create(
                customer=stripe_customer_id,
                invoice=stripe_invoice.id,
                description=f"Sales tax ({float(invoice.tax_rate) * 100:.2f}%)",
                amount=to_cents(invoice.tax_amount),
                currency="usd",
            )

        finalized = stripe.Invoice.finalize_invoice(stripe_invoice.id)
        stripe.Invoice.send_invoice(stripe_invoice.id)
    except stripe.StripeError as e:
        logger.error(f"Stripe error sending invoice {invoice.invoice_number}: {e}")
        raise UpstreamFailure("Failed to send invoice")

    logger.info(f"Invoice {invoice.invoice_number} sent via Stripe ({finalized.id})")
    return finalized


# ──────────────────────────────────────────────
# Checkout Sessions (quote payments)
# ──────────────────────────────────────────────

def create_quote_checkout_session(quote, link, acceptance, amount, payment_type,
                                  customer_email):
    """Create a one-off Checkout Session for a quote deposit or full payment.

    Returns the Stripe session. Raises stripe.StripeError on API failures.
    """
    _configure()
    app_base_url = current_app.config["APP_BASE_URL"]
    company = current_app.config.get("COMPANY_NAME", "")

    return stripe.checkout.Session.create(
        mode="payment",
        payment_method_types=["card"],
        line_items=[
            {
                "price_data": {
                    "currency": "usd",
                    "product_data": {
                        "name": f"{company} - {quote.quote_number}".strip(" -"),
                        "description": (
                            "Deposit payment" if payment_type == "deposit" else "Full payment"
                        ),
                    },
                    "unit_amount": to_cents(amount),
                },
                "quantity": 1,
            }
        ],
        success_url=(
            f"{app_base_url}/c/{link.token}/payment-success"
            f"?session_id={{CHECKOUT_SESSION_ID}}"
        ),
        cancel_url=f"{app_base_url}/c/{link.token}",
        customer_email=customer_email,
        metadata={
            "quote_id": quote.id,
            "quote_number": quote.quote_number,
            "customer_link_id": link.id,
            "acceptance_id": acceptance.id,
            "payment_type": payment_type,
        },
    )


def verify_checkout_session(session_id):
    """Summarize a paid checkout session for the payment-success page.

    Returns dict: {amount, payment_type, receipt_url, quote_number}.
    """
    if not session_id:
        raise ValidationFailed("Session ID is required")

    _configure()
    try:
        session = stripe.checkout.Session.retrieve(session_id, expand=["payment_intent"])
    except stripe.InvalidRequestError:
        raise NotFound("Session not found")
    except stripe.StripeError as e:
        logger.error(f"Stripe error verifying session {session_id}: {e}")
        raise UpstreamFailure("Failed to verify payment")

    if session.get("payment_status") != "paid":
        raise ValidationFailed("Payment not completed")

    payment = Payment.query.filter_by(stripe_checkout_session_id=session_id).first()
    if payment:
        return {
            "amount": money_float(payment.amount),
            "payment_type": payment.payment_type,
            "receipt_url": payment.receipt_url,
            "quote_number": payment.quote.quote_number if payment.quote else None,
        }

    # No local record (e.g. created outside the app): fall back to Stripe's view.
    metadata = session.get("metadata") or {}
    return {
        "amount": money_float(from_cents(session.get("amount_total"))),
        "payment_type": metadata.get("payment_type") or "full",
        "receipt_url": _receipt_url_from_intent(session.get("payment_intent")),
        "quote_number": metadata.get("quote_number"),
    }


def _receipt_url_from_intent(payment_intent):
    if not payment_intent or isinstance(payment_intent, str):
        return None
    charge_id = payment_intent.get("latest_charge")
    if not charge_id:
        return None
    if not isinstance(charge_id, str):
        return charge_id.get("receipt_url")
    try:
        return stripe.Charge.retrieve(charge_id).get("receipt_url")
    except stripe.StripeError as e:
        logger.warning(f"Could not fetch receipt for charge {charge_id}: {e}")
        return None


# ──────────────────────────────────────────────
# Webhook Handling
# ──────────────────────────────────────────────

def _webhook_secret(endpoint):
    if endpoint == "invoices":
        return (
            current_app.config.get("STRIPE_INVOICE_WEBHOOK_SECRET")
            or current_app.config["STRIPE_WEBHOOK_SECRET"]
        )
    return current_app.config["STRIPE_WEBHOOK_SECRET"]


def verify_webhook_signature(payload, sig_header, endpoint="payments"):
    """Verify Stripe webhook signature and construct the event.

    Returns the verified Stripe event object.
    Raises stripe.SignatureVerificationError on invalid signature.
    """
    return stripe.Webhook.construct_event(payload, sig_header, _webhook_secret(endpoint))


def handle_webhook_event(event, endpoint="payments"):
    """Process a verified Stripe webhook event.

    Idempotency: checks stripe_events table before processing.
    If the event was already processed, returns immediately.

    Returns (success: bool, message: str).
    """
    event_id = event["id"]
    event_type = event["type"]

    # --- Idempotency check ---
    existing = StripeEvent.query.filter_by(
        stripe_event_id=event_id
    ).first()
    if existing:
        logger.info(f"Duplicate webhook event {event_id}, skipping")
        return True, "already_processed"

    # --- Route to handler ---
    handler = HANDLERS.get(endpoint, {}).get(event_type)
    if handler:
        try:
            handler(event)
        except Exception as e:
            logger.error(f"Error handling {event_type}: {e}", exc_info=True)
            db.session.rollback()
            return False, str(e)
    else:
        logger.info(f"Unhandled {endpoint} webhook event type: {event_type}")

    # --- Record event for idempotency ---
    stripe_event = StripeEvent(
        stripe_event_id=event_id,
        event_type=event_type,
        endpoint=endpoint,
    )
    db.session.add(stripe_event)
    db.session.commit()

    return True, "processed"


# ──────────────────────────────────────────────
# Event handlers: payments endpoint
# ──────────────────────────────────────────────

def _handle_checkout_completed(event):
    """Handle checkout.session.completed.

    Settles the pending payment created at quote acceptance, then marks
    the quote deposit-paid or paid.
    """
    session = event["data"]["object"]
    metadata = session.get("metadata") or {}
    now = datetime.now(timezone.utc)

    payment = Payment.query.filter_by(
        stripe_checkout_session_id=session.get("id")
    ).first()
    if payment:
        payment.status = "succeeded"
        payment.stripe_payment_intent_id = session.get("payment_intent")
        payment.paid_at = now
    else:
        logger.warning(f"checkout.session.completed: no payment for session {session.get('id')}")

    quote_id = metadata.get("quote_id")
    if not quote_id:
        db.session.flush()
        return

    quote = db.session.get(Quote, quote_id)
    if quote is None:
        logger.warning(f"checkout.session.completed: quote {quote_id} not found")
        db.session.flush()
        return

    if metadata.get("payment_type") == "deposit":
        quote.deposit_paid = True
        quote.payment_status = "deposit_paid"
    else:
        quote.status = "paid"
        quote.payment_status = "paid"
    db.session.flush()
    logger.info(f"Quote {quote.quote_number} payment received ({metadata.get('payment_type')})")


def _handle_payment_intent_succeeded(event):
    """Handle payment_intent.succeeded — stamp the receipt URL."""
    intent = event["data"]["object"]
    intent_id = intent.get("id")

    payment = Payment.query.filter_by(stripe_payment_intent_id=intent_id).first()
    if payment is None:
        logger.info(f"payment_intent.succeeded: no payment for {intent_id}")
        return

    _configure()
    charges = stripe.Charge.list(payment_intent=intent_id, limit=1)
    if charges.data:
        payment.receipt_url = charges.data[0].get("receipt_url")
    payment.status = "succeeded"
    if payment.paid_at is None:
        payment.paid_at = datetime.now(timezone.utc)
    db.session.flush()


def _handle_payment_intent_failed(event):
    """Handle payment_intent.payment_failed."""
    intent = event["data"]["object"]
    intent_id = intent.get("id")

    payment = Payment.query.filter_by(stripe_payment_intent_id=intent_id).first()
    if payment is None:
        logger.info(f"payment_intent.payment_failed: no payment for {intent_id}")
        return

    last_error = intent.get("last_payment_error") or {}
    payment.status = "failed"
    payment.failure_reason = last_error.get("message") or "Payment failed"
    db.session.flush()


def _handle_charge_refunded(event):
    """Handle charge.refunded.

    Full refunds mark the payment refunded (and its quote or invoice);
    partial refunds record the refunded amount only.
    """
    charge = event["data"]["object"]
    intent_id = charge.get("payment_intent")

    payment = Payment.query.filter_by(stripe_payment_intent_id=intent_id).first()
    if payment is None:
        logger.info(f"charge.refunded: no payment for intent {intent_id}")
        return

    is_full_refund = bool(charge.get("refunded"))
    payment.status = "refunded" if is_full_refund else "partially_refunded"
    payment.refund_amount = from_cents(charge.get("amount_refunded"))

    if is_full_refund:
        if payment.quote is not None:
            payment.quote.payment_status = "refunded"
        if payment.invoice is not None:
            payment.invoice.status = "refunded"
    db.session.flush()


# ──────────────────────────────────────────────
# Event handlers: invoices endpoint
# ──────────────────────────────────────────────

def _invoice_from_event(event):
    stripe_invoice = event["data"]["object"]
    invoice_db_id = (stripe_invoice.get("metadata") or {}).get("invoice_db_id")
    if not invoice_db_id:
        logger.info(f"{event['type']}: no invoice_db_id on {stripe_invoice.get('id')}")
        return None

    invoice = (
        Invoice.query
        .filter_by(id=invoice_db_id)
        .with_for_update()
        .first()
    )
    if invoice is None:
        logger.warning(f"{event['type']}: invoice {invoice_db_id} not found")
    return invoice


def _handle_invoice_paid(event):
    invoice = _invoice_from_event(event)
    if invoice is None:
        return
    invoice.status = "paid"
    invoice.amount_paid = invoice.total
    invoice.paid_at = datetime.now(timezone.utc)
    db.session.flush()
    logger.info(f"Invoice {invoice.invoice_number} paid via Stripe")


def _handle_invoice_payment_failed(event):
    invoice = _invoice_from_event(event)
    if invoice is None:
        return
    invoice.status = "payment_failed"
    db.session.flush()


HANDLERS = {
    "payments": {
        "checkout.session.completed": _handle_checkout_completed,
        "payment_intent.succeeded": _handle_payment_intent_succeeded,
        "payment_intent.payment_failed": _handle_payment_intent_failed,
        "charge.refunded": _handle_charge_refunded,
    },
    "invoices": {
        "invoice.paid": _handle_invoice_paid,
        "invoice.payment_failed": _handle_invoice_payment_failed,
    },
}
