"""Lead service — public lead capture and access grants.

A lead is promoted by grant_access(): find-or-create the Customer by
email, mint a long-lived portal_access CustomerLink, mark the lead "won"
and queue the access-granted email.

Functions flush but do NOT commit — the caller commits.
"""

import logging
import re

from fireops.errors import NotFound, ValidationFailed
from fireops.extensions import db
from fireops.models.lead import Lead
from fireops.services import customer_link_service, customer_service, notification_service
from fireops.validation import is_valid_email, normalize_email, sanitize

logger = logging.getLogger(__name__)

PORTAL_LINK_DAYS = 365
COMPANY_RE = re.compile(r"Company:\s*(.+)", re.IGNORECASE)


def create_lead(data):
    """Create a lead from a public form submission.

    Required: name, email. Optional: phone, message, service_type,
    preferred_contact (default "email"), source (default "website").
    """
    name = sanitize(data.get("name"))
    email = normalize_email(data.get("email"))

    if not name or not email:
        raise ValidationFailed("Name and email are required")
    if not is_valid_email(email):
        raise ValidationFailed("Invalid email address")

    lead = Lead(
        name=name,
        email=email,
        phone=sanitize(data.get("phone")) or None,
        message=sanitize(data.get("message")) or None,
        service_type=sanitize(data.get("service_type")) or None,
        preferred_contact=data.get("preferred_contact") or "email",
        source=data.get("source") or "website",
        status="new",
    )
    db.session.add(lead)
    db.session.flush()

    notification_service.notify_new_lead(lead)
    logger.info(f"Lead {lead.id} captured from {lead.source}")
    return lead


def update_lead(lead, data):
    if "status" in data:
        if data["status"] not in Lead.STATUSES:
            raise ValidationFailed(
                f"Invalid status. Must be one of: {', '.join(Lead.STATUSES)}"
            )
        lead.status = data["status"]
    if "notes" in data:
        lead.notes = sanitize(data["notes"])
    db.session.flush()
    return lead


def parse_company(message):
    """Pull "Company: X" out of a lead's free-text message."""
    if not message:
        return None
    match = COMPANY_RE.search(message)
    if not match:
        return None
    return match.group(1).splitlines()[0].strip() or None


def grant_access(lead_id, granted_by=None):
    """Promote a lead to a customer with portal access.

    Returns:
        tuple: (customer, link)
    """
    lead = db.session.get(Lead, lead_id)
    if lead is None:
        raise NotFound("Lead not found")

    customer, created = customer_service.get_or_create_customer(
        lead.email,
        lead.name,
        phone=lead.phone,
        company=parse_company(lead.message),
    )

    link = customer_link_service.generate_link(
        customer_email=customer.email,
        link_type="portal_access",
        customer=customer,
        expires_days=PORTAL_LINK_DAYS,
        created_by=granted_by,
    )

    lead.status = "won"
    lead.customer_id = customer.id
    db.session.flush()

    portal_url = customer_link_service.link_url(link)
    notification_service.notify_access_granted(customer, portal_url)

    logger.info(
        f"Access granted for lead {lead.id} -> customer {customer.id} "
        f"({'created' if created else 'existing'})"
    )
    return customer, link
