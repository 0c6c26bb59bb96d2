"""Customer link service — token generation, validation, access logging.

Handles the full lifecycle of customer link tokens:
- generate: mint a 43-char URL-safe token tied to a quote, job or portal
- validate: check the link exists, is active, unexpired and under max_uses
- record_access: append to the access log and bump use_count
- revoke: mark a link revoked
- public_view / accept_quote: the customer-facing quote and job pages

Functions flush but do NOT commit — the caller commits.
"""

import logging
import secrets
from datetime import datetime, timedelta, timezone

import stripe
from flask import current_app

from fireops.errors import AccessDenied, NotFound, StateConflict, ValidationFailed
from fireops.extensions import db
from fireops.models.customer import CustomerLink, CustomerLinkAccess
from fireops.models.payment import Payment
from fireops.models.quote import Quote, QuoteAcceptance
from fireops.money import money_float, round_money, to_decimal
from fireops.services import stripe_service
from fireops.validation import is_valid_email, normalize_email, sanitize

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32  # token_urlsafe(32) -> 43 characters


def generate_token():
    return secrets.token_urlsafe(TOKEN_BYTES)


def link_url(link):
    return f"{current_app.config['APP_BASE_URL']}/c/{link.token}"


def generate_link(customer_email, link_type="quote_approval", customer=None,
                  customer_name=None, quote_id=None, job_id=None,
                  expires_days=30, max_uses=None, created_by=None):
    """Create a new active customer link.

    Args:
        customer_email: Email the link is issued to (required).
        link_type: One of CustomerLink.LINK_TYPES.
        customer: Optional Customer row to attach.
        quote_id / job_id: Resource the link grants access to.
        expires_days: Days until expiry; None for no expiry.
        max_uses: Optional cap on the number of accesses.

    Returns:
        CustomerLink: the newly created link row
    """
    customer_email = normalize_email(customer_email)
    if not customer_email:
        raise ValidationFailed("customer_email is required")
    if link_type not in CustomerLink.LINK_TYPES:
        raise ValidationFailed(
            f"Invalid link_type. Must be one of: {', '.join(CustomerLink.LINK_TYPES)}"
        )
    if max_uses is not None:
        try:
            max_uses = int(max_uses)
        except (TypeError, ValueError):
            raise ValidationFailed("max_uses must be a whole number")
        if max_uses < 1:
            raise ValidationFailed("max_uses must be at least 1")

    expires_at = None
    if expires_days is not None:
        try:
            expires_at = datetime.now(timezone.utc) + timedelta(days=int(expires_days))
        except (TypeError, ValueError):
            raise ValidationFailed("expires_in_days must be a whole number")

    link = CustomerLink(
        token=generate_token(),
        link_type=link_type,
        customer_id=customer.id if customer else None,
        customer_email=customer_email,
        customer_name=customer_name or (customer.name if customer else None),
        quote_id=quote_id,
        job_id=job_id,
        status="active",
        expires_at=expires_at,
        max_uses=max_uses,
        created_by=created_by,
    )
    db.session.add(link)
    db.session.flush()
    return link


def validate_link(token):
    """Look up a link token and check it is usable.

    Returns the CustomerLink. Raises NotFound for unknown tokens and
    AccessDenied for revoked, expired, used or exhausted links. An
    expired link is flipped to status "expired" (caller commits).
    """
    link = CustomerLink.query.filter_by(token=token).first() if token else None
    if link is None:
        raise NotFound("Invalid link")

    if link.status != "active":
        raise AccessDenied("This link is no longer active")

    if link.is_expired:
        link.status = "expired"
        db.session.flush()
        raise AccessDenied("This link has expired")

    if link.is_exhausted:
        raise AccessDenied("This link has reached its usage limit")

    return link


def record_access(link, action, ip_address=None, user_agent=None):
    """Log an access and bump the link's usage counters."""
    db.session.add(CustomerLinkAccess(
        customer_link_id=link.id,
        action=action,
        ip_address=(ip_address or "")[:100] or None,
        user_agent=(user_agent or "")[:500] or None,
    ))
    if action == "view":
        link.use_count = (link.use_count or 0) + 1
    link.last_accessed_at = datetime.now(timezone.utc)
    db.session.flush()


def revoke_link(link):
    link.status = "revoked"
    db.session.flush()
    logger.info(f"Customer link {link.id} revoked")


# ──────────────────────────────────────────────
# Customer-facing views
# ──────────────────────────────────────────────

def _public_quote(quote):
    """Quote fields a customer may see (no internal notes or audit fields)."""
    return {
        "id": quote.id,
        "quote_number": quote.quote_number,
        "quote_type": quote.quote_type,
        "template_name": quote.template_name,
        "status": quote.status,
        "customer": quote.customer or {},
        "site": quote.site or {},
        "line_items": quote.line_items or [],
        "totals": quote.totals or {},
        "terms": quote.terms,
        "deposit_amount": money_float(quote.deposit_amount),
        "deposit_paid": bool(quote.deposit_paid),
        "payment_status": quote.payment_status,
        "sent_at": quote.sent_at.isoformat() if quote.sent_at else None,
        "accepted_at": quote.accepted_at.isoformat() if quote.accepted_at else None,
    }


def _public_job(job):
    customer_notes = [
        note.to_dict() for note in job.job_notes if note.visibility == "customer"
    ]
    return {
        "id": job.id,
        "job_number": job.job_number,
        "job_type": job.job_type,
        "status": job.status,
        "description": job.description,
        "scope_summary": job.scope_summary,
        "site_address": job.site_address,
        "site_city": job.site_city,
        "site_state": job.site_state,
        "site_zip": job.site_zip,
        "scheduled_date": job.scheduled_date.isoformat() if job.scheduled_date else None,
        "scheduled_time_start": job.scheduled_time_start,
        "scheduled_time_end": job.scheduled_time_end,
        "completed_at": job.completed_at.isoformat() if job.completed_at else None,
        "notes": customer_notes,
    }


def public_view(link, ip_address=None, user_agent=None):
    """Record a view and return the customer-safe payload for a link.

    A quote still in "sent" is marked "viewed" on first open.
    """
    record_access(link, "view", ip_address, user_agent)

    data = {"link": link.to_dict(), "quote": None, "job": None}
    if link.quote is not None:
        quote = link.quote
        if quote.status == "sent":
            quote.status = "viewed"
            quote.viewed_at = datetime.now(timezone.utc)
        data["quote"] = _public_quote(quote)
    if link.job is not None:
        data["job"] = _public_job(link.job)

    db.session.flush()
    return data


def accept_quote(link, data, ip_address=None, user_agent=None):
    """Accept the link's quote with a typed signature.

    For pay_deposit / pay_full with a positive amount, a Stripe Checkout
    Session is created together with a pending Payment. A Stripe failure
    does not undo the acceptance; the result simply has no checkout_url.

    Returns:
        dict: {acceptance, checkout_url, message}
    """
    signature_name = sanitize(data.get("signature_name"))
    signature_email = normalize_email(data.get("signature_email"))
    payment_option = data.get("payment_option") or "pay_later"

    if not signature_name or not signature_email:
        raise ValidationFailed("Name and email are required")
    if not is_valid_email(signature_email):
        raise ValidationFailed("Invalid email address")
    if payment_option not in QuoteAcceptance.PAYMENT_OPTIONS:
        raise ValidationFailed(
            f"Invalid payment_option. Must be one of: "
            f"{', '.join(QuoteAcceptance.PAYMENT_OPTIONS)}"
        )

    quote = (
        Quote.query.filter_by(id=link.quote_id).with_for_update().first()
        if link.quote_id else None
    )
    if quote is None:
        raise NotFound("Quote not found")
    if quote.status not in Quote.ACCEPTABLE_STATUSES:
        raise StateConflict("This quote has already been processed")

    total = to_decimal((quote.totals or {}).get("total"))
    deposit = to_decimal(quote.deposit_amount)
    amount = round_money(deposit if payment_option == "pay_deposit" else total)
    payment_type = "deposit" if payment_option == "pay_deposit" else "full"

    acceptance = QuoteAcceptance(
        quote_id=quote.id,
        customer_link_id=link.id,
        accepted_by_name=signature_name,
        accepted_by_email=signature_email,
        accepted_by_ip=(ip_address or "")[:100] or None,
        user_agent=(user_agent or "")[:500] or None,
        signature_type="typed",
        signature_data=signature_name,
        terms_accepted=True,
        payment_option=payment_option,
        deposit_amount=deposit if payment_option == "pay_deposit" else None,
    )
    db.session.add(acceptance)

    quote.status = "accepted"
    quote.accepted_at = datetime.now(timezone.utc)
    quote.accepted_by = signature_name
    db.session.flush()

    record_access(link, "approve", ip_address, user_agent)

    result = {
        "acceptance": acceptance,
        "checkout_url": None,
        "message": "Quote approved successfully",
    }
    if payment_option == "pay_later" or amount <= 0:
        return result

    try:
        session = stripe_service.create_quote_checkout_session(
            quote, link, acceptance, amount, payment_type, signature_email
        )
    except stripe.StripeError as e:
        logger.error(f"Checkout session failed for quote {quote.quote_number}: {e}")
        result["message"] = "Quote approved. Payment processing unavailable."
        return result

    db.session.add(Payment(
        quote_id=quote.id,
        customer_id=link.customer_id,
        customer_link_id=link.id,
        quote_acceptance_id=acceptance.id,
        stripe_checkout_session_id=session.id,
        amount=amount,
        payment_method="stripe",
        payment_type=payment_type,
        status="pending",
        customer_email=signature_email,
        customer_name=signature_name,
    ))
    db.session.flush()

    result["checkout_url"] = session.url
    result["message"] = "Quote approved"
    return result
