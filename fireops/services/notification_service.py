"""Notification service — transactional outbox for emails.

enqueue_email() adds an OutboxEmail row to the current session; it is
committed together with the change that triggered it. process_outbox()
is run by `flask send-outbox` (cron) and delivers pending rows with
independent retry.

The named helpers below build the subject/context for each notification
the workflow sends.
"""

import logging
from datetime import datetime, timezone
from functools import wraps

import click
from flask import current_app

from fireops.extensions import db
from fireops.models.outbox import OutboxEmail
from fireops.services.email_service import send_email_sync

logger = logging.getLogger(__name__)


def enqueue_email(to, subject, template, context=None, reply_to=None):
    """Queue an email for delivery. Flushes but does NOT commit."""
    if isinstance(to, (list, tuple)):
        to = ", ".join(to)
    message = OutboxEmail(
        to_address=to,
        subject=subject,
        template=template,
        context=context or {},
        reply_to=reply_to,
        status="pending",
    )
    db.session.add(message)
    db.session.flush()
    logger.info(f"Queued email {template} to {to}")
    return message


def process_outbox(limit=50):
    """Deliver pending outbox emails.

    Each row is committed individually so one bad address doesn't hold
    back the rest. Returns (sent, failed) counts for this run.
    """
    max_attempts = current_app.config.get("OUTBOX_MAX_ATTEMPTS", 5)
    pending = (
        OutboxEmail.query
        .filter_by(status="pending")
        .order_by(OutboxEmail.created_at.asc())
        .limit(limit)
        .all()
    )

    sent = failed = 0
    for message in pending:
        try:
            send_email_sync(
                to=message.to_address,
                subject=message.subject,
                template=message.template,
                context=message.context,
                reply_to=message.reply_to,
            )
        except Exception as e:
            message.attempts = (message.attempts or 0) + 1
            message.last_error = str(e)[:2000]
            if message.attempts >= max_attempts:
                message.status = "failed"
            logger.error(
                f"Outbox email {message.id} to {message.to_address} failed "
                f"(attempt {message.attempts}/{max_attempts}): {e}"
            )
            failed += 1
        else:
            message.attempts = (message.attempts or 0) + 1
            message.status = "sent"
            message.sent_at = datetime.now(timezone.utc)
            sent += 1
        db.session.commit()

    click.echo(f"Outbox: {sent} sent, {failed} failed, {len(pending)} processed.")
    return sent, failed


# ──────────────────────────────────────────────
# Workflow notifications
# ──────────────────────────────────────────────

def _best_effort(f):
    """Queue inside a SAVEPOINT; a failure is logged and never fails the caller."""

    @wraps(f)
    def wrapper(*args, **kwargs):
        try:
            with db.session.begin_nested():
                return f(*args, **kwargs)
        except Exception as e:
            logger.error(f"Failed to queue {f.__name__}: {e}")
            return None

    return wrapper


@_best_effort
def notify_new_lead(lead):
    """Office notification + customer confirmation for a new lead."""
    admin_to = current_app.config.get("MAIL_ADMIN_TO")
    if admin_to:
        enqueue_email(
            to=admin_to,
            subject=f"New lead: {lead.name}",
            template="emails/lead_notification.html",
            context={
                "name": lead.name,
                "email": lead.email,
                "phone": lead.phone,
                "message": lead.message,
                "source": lead.source,
                "service_type": lead.service_type,
            },
            reply_to=lead.email,
        )
    enqueue_email(
        to=lead.email,
        subject="We received your request",
        template="emails/customer_confirmation.html",
        context={"name": lead.name},
    )


@_best_effort
def notify_access_granted(customer, portal_url):
    enqueue_email(
        to=customer.email,
        subject="Your customer portal access",
        template="emails/access_granted.html",
        context={"name": customer.name, "portal_url": portal_url},
    )


@_best_effort
def notify_quote_sent(quote, link_url):
    customer = quote.customer or {}
    enqueue_email(
        to=quote.customer_email,
        subject=f"Your quote {quote.quote_number}",
        template="emails/quote.html",
        context={
            "name": customer.get("name") or "",
            "quote_number": quote.quote_number,
            "total": (quote.totals or {}).get("total"),
            "link_url": link_url,
        },
    )


@_best_effort
def notify_invoice_sent(invoice, hosted_url=None):
    enqueue_email(
        to=invoice.customer.email,
        subject=f"Invoice {invoice.invoice_number}",
        template="emails/invoice.html",
        context={
            "name": invoice.customer.name,
            "invoice_number": invoice.invoice_number,
            "total": float(invoice.total),
            "due_date": invoice.due_date.isoformat() if invoice.due_date else None,
            "pay_url": hosted_url,
        },
    )


@_best_effort
def notify_staff_invite(user, invite_url):
    enqueue_email(
        to=user.email,
        subject="You've been invited to the team",
        template="emails/staff_invite.html",
        context={
            "name": user.full_name,
            "role": user.role,
            "invite_url": invite_url,
        },
    )
