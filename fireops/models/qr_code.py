"""QR code redirect models.

Printed QR codes point at /api/qr/<slug>; the destination can change
without reprinting. Each scan is logged.
"""

import uuid

from fireops.extensions import db


class QrCode(db.Model):
    __tablename__ = "qr_codes"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    slug = db.Column(db.String(100), unique=True, nullable=False)
    name = db.Column(db.String(255), nullable=True)
    destination_url = db.Column(db.String(1000), nullable=False)
    is_active = db.Column(db.Boolean, default=True)
    scan_count = db.Column(db.Integer, nullable=False, default=0)
    created_by = db.Column(db.String(36), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    scans = db.relationship(
        "QrScan", back_populates="qr_code", cascade="all, delete-orphan", lazy="dynamic"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "slug": self.slug,
            "name": self.name,
            "destination_url": self.destination_url,
            "is_active": self.is_active,
            "scan_count": self.scan_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<QrCode {self.slug}>"


class QrScan(db.Model):
    __tablename__ = "qr_scans"

    id = db.Column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    qr_code_id = db.Column(
        db.String(36), db.ForeignKey("qr_codes.id", ondelete="CASCADE"), nullable=False
    )
    user_agent = db.Column(db.String(500), nullable=True)
    referer = db.Column(db.String(1000), nullable=True)
    ip_address = db.Column(db.String(100), nullable=True)
    scanned_at = db.Column(
        db.DateTime(timezone=True), server_default=db.func.now()
    )

    qr_code = db.relationship("QrCode", back_populates="scans")

    def __repr__(self):
        return f"<QrScan {self.qr_code_id}>"
