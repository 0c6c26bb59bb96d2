"""Per-year document number counters.

One row per (name, year), e.g. ("JOB", 2026). Allocation locks the row
and increments ``last_value`` inside the caller's transaction.
"""

import uuid

from fireops.extensions import db


class NumberSequence(db.Model):
    __tablename__ = "number_sequences"
    __table_args__ = (
        db.UniqueConstraint("name", "year", name="uq_number_sequence_name_year"),
    )

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name = db.Column(db.String(20), nullable=False)  # JOB | QT | INV
    year = db.Column(db.Integer, nullable=False)
    last_value = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self):
        return f"<NumberSequence {self.name}-{self.year}={self.last_value}>"
