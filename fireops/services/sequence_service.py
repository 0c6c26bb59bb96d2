"""Sequence service — year-scoped document numbers.

    JOB-2026-0001   jobs
    QT-2026-001     quotes
    INV-2026-0001   invoices

next_number() locks the (name, year) counter row with SELECT ... FOR UPDATE
and increments it in the caller's transaction, so two concurrent requests
can never receive the same number. The first allocation in a year seeds
the counter from the highest existing number with that prefix.

Functions flush but do NOT commit — the caller commits.
"""

import logging
import re
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError

from fireops.extensions import db
from fireops.models.sequence import NumberSequence

logger = logging.getLogger(__name__)

# name -> zero-pad width
FORMATS = {
    "JOB": 4,
    "QT": 3,
    "INV": 4,
}


def format_number(name, year, value):
    return f"{name}-{year}-{value:0{FORMATS[name]}d}"


def _existing_max(name, year):
    """Highest sequence value already used for this prefix and year."""
    from fireops.models.invoice import Invoice
    from fireops.models.job import Job
    from fireops.models.quote import Quote

    column = {
        "JOB": Job.job_number,
        "QT": Quote.quote_number,
        "INV": Invoice.invoice_number,
    }[name]

    prefix = f"{name}-{year}-"
    pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")
    highest = 0
    for (number,) in db.session.query(column).filter(column.like(f"{prefix}%")):
        match = pattern.match(number or "")
        if match:
            highest = max(highest, int(match.group(1)))
    return highest


def _locked_counter(name, year):
    return (
        NumberSequence.query
        .filter_by(name=name, year=year)
        .with_for_update()
        .first()
    )


def next_number(name, year=None):
    """Allocate the next number for ``name`` in ``year`` (default: current)."""
    if name not in FORMATS:
        raise ValueError(f"Unknown sequence '{name}'")
    year = year or datetime.now(timezone.utc).year

    counter = _locked_counter(name, year)
    if counter is None:
        seed = _existing_max(name, year)
        try:
            with db.session.begin_nested():
                counter = NumberSequence(name=name, year=year, last_value=seed)
                db.session.add(counter)
        except IntegrityError:
            # Another request created the row first; lock theirs.
            counter = _locked_counter(name, year)
        else:
            logger.info(f"Started {name} sequence for {year} at {seed}")

    counter.last_value += 1
    db.session.flush()
    return format_number(name, year, counter.last_value)
