"""Input helpers shared by services and blueprints."""

import re
from datetime import date, datetime, timezone

import bleach

from fireops.errors import ValidationFailed

# Simple email regex — not exhaustive, just sanity-check
EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def sanitize(text):
    """Strip all HTML tags from user input."""
    if text is None:
        return text
    return bleach.clean(str(text), tags=[], strip=True).strip()


def normalize_email(email):
    return (email or "").strip().lower()


def is_valid_email(email):
    return bool(email) and EMAIL_RE.match(email) is not None


def require_fields(data, *fields, message=None):
    """Raise ValidationFailed naming the first missing field."""
    missing = [f for f in fields if data.get(f) in (None, "", [], {})]
    if missing:
        raise ValidationFailed(
            message or f"Missing required fields: {', '.join(missing)}"
        )


def parse_date(value, field="date"):
    """ISO date (or datetime) string -> date. None/"" -> None."""
    if value in (None, ""):
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        raise ValidationFailed(f"Invalid {field}: {value}")


def parse_datetime(value, field="datetime"):
    """ISO datetime string -> aware datetime (UTC when no offset)."""
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            raise ValidationFailed(f"Invalid {field}: {value}")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
