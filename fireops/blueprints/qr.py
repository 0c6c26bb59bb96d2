"""QR blueprint — printed QR code redirects.

Route Map:
  GET  /api/qr/<slug>     — Public: 307 to the code's destination
  GET  /api/qr-codes      — List codes (office)
  POST /api/qr-codes      — Create a code (office)
"""

import logging
import re

from flask import Blueprint, jsonify, redirect, request
from flask_login import current_user
from sqlalchemy.exc import SQLAlchemyError

from fireops.decorators import OFFICE, role_required
from fireops.errors import AlreadyExists, ValidationFailed
from fireops.extensions import db, limiter
from fireops.models.qr_code import QrCode, QrScan
from fireops.validation import sanitize

logger = logging.getLogger(__name__)

qr_bp = Blueprint("qr", __name__, url_prefix="/api")

SLUG_RE = re.compile(r"^[a-z0-9][a-z0-9-]*$")


@qr_bp.route("/qr/<slug>", methods=["GET"])
@limiter.limit("120 per minute")
def scan(slug):
    """Redirect to the destination and log the scan.

    Unknown or inactive codes redirect to the site root. A failed scan
    insert only rolls back its savepoint; the redirect still happens.
    """
    qr_code = QrCode.query.filter_by(slug=slug, is_active=True).first()
    if qr_code is None:
        return redirect("/", code=307)

    destination = qr_code.destination_url
    try:
        with db.session.begin_nested():
            db.session.add(QrScan(
                qr_code_id=qr_code.id,
                user_agent=(request.headers.get("User-Agent") or "")[:500] or None,
                referer=(request.headers.get("Referer") or "")[:1000] or None,
                ip_address=(request.remote_addr or "")[:100] or None,
            ))
            qr_code.scan_count = (qr_code.scan_count or 0) + 1
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error(f"Failed to record scan for QR code {slug}: {e}")

    return redirect(destination, code=307)


@qr_bp.route("/qr-codes", methods=["GET"])
@role_required(*OFFICE)
def list_codes():
    codes = QrCode.query.order_by(QrCode.created_at.desc()).all()
    return jsonify({"success": True, "data": [c.to_dict() for c in codes]})


@qr_bp.route("/qr-codes", methods=["POST"])
@role_required(*OFFICE)
def create_code():
    data = request.get_json(silent=True) or {}
    slug = (data.get("slug") or "").strip().lower()
    destination_url = (data.get("destination_url") or "").strip()

    if not slug or not destination_url:
        raise ValidationFailed("slug and destination_url are required")
    if not SLUG_RE.match(slug):
        raise ValidationFailed("slug may only contain lowercase letters, digits and hyphens")
    if not destination_url.startswith(("http://", "https://", "/")):
        raise ValidationFailed("destination_url must be an http(s) URL or a site path")
    if QrCode.query.filter_by(slug=slug).first():
        raise AlreadyExists("A QR code with this slug already exists")

    qr_code = QrCode(
        slug=slug,
        name=sanitize(data.get("name")) or None,
        destination_url=destination_url,
        is_active=bool(data.get("is_active", True)),
        created_by=current_user.id,
    )
    db.session.add(qr_code)
    db.session.commit()
    logger.info(f"QR code {slug} created by {current_user.email}")
    return jsonify({"success": True, "data": qr_code.to_dict()}), 201
