"""Tests for QR code redirects.

Covers:
- Scans redirect (307) to the destination and are counted and logged
- Unknown and inactive codes fall back to the site root
- Creating codes: slug/destination validation, duplicate slugs, office only
"""

import json

from fireops.extensions import db
from fireops.models.qr_code import QrCode, QrScan


def _code(slug="truck-decal", destination="https://example.test/book", **extra):
    qr_code = QrCode(slug=slug, destination_url=destination, **extra)
    db.session.add(qr_code)
    db.session.commit()
    return qr_code


class TestScan:
    """GET /api/qr/<slug>"""

    def test_redirects_and_counts(self, client, app):
        qr_code = _code()
        resp = client.get("/api/qr/truck-decal", headers={
            "User-Agent": "iPhone Camera",
            "Referer": "https://t.co/x",
        })
        assert resp.status_code == 307
        assert resp.headers["Location"] == "https://example.test/book"
        assert qr_code.scan_count == 1

        scan = QrScan.query.one()
        assert scan.qr_code_id == qr_code.id
        assert scan.user_agent == "iPhone Camera"
        assert scan.referer == "https://t.co/x"

    def test_each_scan_counted(self, client, app):
        qr_code = _code()
        for _ in range(3):
            client.get("/api/qr/truck-decal")
        assert qr_code.scan_count == 3
        assert QrScan.query.count() == 3

    def test_unknown_slug_goes_home(self, client, app):
        resp = client.get("/api/qr/nothing-here")
        assert resp.status_code == 307
        assert resp.headers["Location"] == "/"

    def test_inactive_code_goes_home(self, client, app):
        _code(is_active=False)
        resp = client.get("/api/qr/truck-decal")
        assert resp.headers["Location"] == "/"
        assert QrScan.query.count() == 0


class TestCreateCode:
    """POST /api/qr-codes"""

    def test_create(self, client, seed_data, login):
        login("manager")
        resp = client.post("/api/qr-codes", json={
            "slug": "Yard-Sign-2026",
            "name": "Yard sign",
            "destination_url": "/services/inspections",
        })
        assert resp.status_code == 201
        data = json.loads(resp.data)["data"]
        assert data["slug"] == "yard-sign-2026"
        assert data["scan_count"] == 0
        assert data["is_active"] is True

    def test_bad_slug(self, client, seed_data, login):
        login("admin")
        resp = client.post("/api/qr-codes", json={
            "slug": "-bad slug!",
            "destination_url": "https://example.test",
        })
        assert resp.status_code == 400

    def test_bad_destination(self, client, seed_data, login):
        login("admin")
        resp = client.post("/api/qr-codes", json={
            "slug": "promo",
            "destination_url": "javascript:alert(1)",
        })
        assert resp.status_code == 400
        assert QrCode.query.count() == 0

    def test_duplicate_slug(self, client, seed_data, login):
        _code(slug="promo")
        login("admin")
        resp = client.post("/api/qr-codes", json={
            "slug": "promo",
            "destination_url": "https://example.test",
        })
        assert resp.status_code == 409

    def test_list(self, client, seed_data, login):
        _code()
        login("admin")
        resp = client.get("/api/qr-codes")
        assert [c["slug"] for c in json.loads(resp.data)["data"]] == ["truck-decal"]

    def test_field_staff_forbidden(self, client, seed_data, login):
        login("technician")
        resp = client.post("/api/qr-codes", json={
            "slug": "promo",
            "destination_url": "https://example.test",
        })
        assert resp.status_code == 403
