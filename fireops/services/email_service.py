"""
Email delivery over SMTP.

Renders a Jinja2 HTML template and sends it through the configured SMTP
server. Request handlers do not call this directly: they enqueue an
OutboxEmail (see notification_service) and `flask send-outbox` delivers
it here, so a slow or failing mail server never blocks or fails a request.

Usage:
    from fireops.services.email_service import send_email_sync

    send_email_sync(
        to="user@example.com",
        subject="Hello",
        template="emails/access_granted.html",
        context={"name": "Jane"},
    )
"""

import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from flask import current_app, render_template

logger = logging.getLogger(__name__)


class EmailNotConfigured(RuntimeError):
    pass


def _build_message(app, to, subject, html_body, reply_to=None):
    from_name = app.config.get("MAIL_FROM_NAME", "Chatman Security & Fire")
    from_email = app.config.get("MAIL_FROM_ADDRESS") or app.config.get("MAIL_USERNAME", "")

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{from_name} <{from_email}>"
    msg["To"] = to if isinstance(to, str) else ", ".join(to)

    if reply_to:
        msg["Reply-To"] = reply_to

    msg.attach(MIMEText(html_body, "html"))
    return msg


def _send_smtp(app, msg):
    """Send a message via SMTP. Raises on any failure."""
    host = app.config.get("MAIL_SMTP_HOST", "smtp.gmail.com")
    port = app.config.get("MAIL_SMTP_PORT", 587)
    username = app.config.get("MAIL_USERNAME")
    password = app.config.get("MAIL_PASSWORD")

    if not username or not password:
        raise EmailNotConfigured("MAIL_USERNAME or MAIL_PASSWORD not configured")

    with smtplib.SMTP(host, port, timeout=30) as server:
        server.ehlo()
        server.starttls()
        server.ehlo()
        server.login(username, password)
        server.send_message(msg)
    logger.info(f"Email sent to {msg['To']} — {msg['Subject']}")


def send_email_sync(to, subject, template, context=None, reply_to=None):
    """
    Render and send a templated HTML email, blocking until sent.

    Args:
        to:        Recipient email address (str or list).
        subject:   Email subject line.
        template:  Path to Jinja2 HTML template (relative to templates/).
        context:   Dict of variables to pass to the template.
        reply_to:  Optional reply-to address.

    Raises:
        EmailNotConfigured, smtplib.SMTPException, OSError
    """
    app = current_app._get_current_object()
    context = dict(context or {})
    context.setdefault("company_name", app.config.get("COMPANY_NAME"))

    html_body = render_template(template, **context)
    msg = _build_message(app, to, subject, html_body, reply_to=reply_to)
    _send_smtp(app, msg)
