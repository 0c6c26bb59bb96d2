"""Tests for manual payment recording and checkout verification.

Covers:
- Partial then full payment moves the invoice sent -> partial -> paid
- paid_at stamped only when fully paid
- Validation (missing fields, non-positive amounts, unknown method)
- Paid invoices reject further payments
- GET /api/payments/verify summarizes a paid checkout session
"""

import json
from decimal import Decimal
from unittest.mock import MagicMock, patch

from fireops.extensions import db
from fireops.models.invoice import Invoice
from fireops.models.payment import Payment

from conftest import YEAR


def _invoice_id(client, seed_data):
    resp = client.post(f"/api/jobs/{seed_data['job_id']}/create-invoice")
    return json.loads(resp.data)["data"]["id"]


def _pay(client, seed_data, invoice_id, amount, **extra):
    payload = {
        "invoice_id": invoice_id,
        "customer_id": seed_data["customer_id"],
        "amount": amount,
    }
    payload.update(extra)
    return client.post("/api/payments", json=payload)


class TestRecordPayment:
    """POST /api/payments"""

    def test_partial_then_full(self, client, seed_data, login):
        login("admin")
        invoice_id = _invoice_id(client, seed_data)

        resp = _pay(client, seed_data, invoice_id, 100, payment_method="check",
                    reference_number="1042")
        assert resp.status_code == 201
        data = json.loads(resp.data)
        assert data["invoice"]["status"] == "partial"
        assert data["invoice"]["amount_paid"] == 100.0
        assert data["invoice"]["balance_due"] == 224.75
        assert data["invoice"]["paid_at"] is None

        resp = _pay(client, seed_data, invoice_id, "224.75")
        assert resp.status_code == 201
        invoice = db.session.get(Invoice, invoice_id)
        assert invoice.status == "paid"
        assert invoice.amount_paid == Decimal("324.75")
        assert invoice.paid_at is not None
        assert Payment.query.filter_by(invoice_id=invoice_id).count() == 2

    def test_overpayment_marks_paid(self, client, seed_data, login):
        login("admin")
        invoice_id = _invoice_id(client, seed_data)
        _pay(client, seed_data, invoice_id, 400)
        assert db.session.get(Invoice, invoice_id).status == "paid"

    def test_paid_invoice_rejects_more(self, client, seed_data, login):
        login("admin")
        invoice_id = _invoice_id(client, seed_data)
        _pay(client, seed_data, invoice_id, "324.75")

        resp = _pay(client, seed_data, invoice_id, 1)
        assert resp.status_code == 400
        assert Payment.query.count() == 1

    def test_zero_amount_rejected(self, client, seed_data, login):
        login("admin")
        invoice_id = _invoice_id(client, seed_data)
        resp = _pay(client, seed_data, invoice_id, 0)
        assert resp.status_code == 400

    def test_negative_amount_rejected(self, client, seed_data, login):
        login("admin")
        invoice_id = _invoice_id(client, seed_data)
        resp = _pay(client, seed_data, invoice_id, -10)
        assert resp.status_code == 400
        assert json.loads(resp.data)["error"] == "Amount must be greater than zero"

    def test_missing_fields(self, client, seed_data, login):
        login("admin")
        resp = client.post("/api/payments", json={"amount": 10})
        assert resp.status_code == 400
        assert json.loads(resp.data)["error"] == (
            "invoice_id, customer_id and amount are required"
        )

    def test_unknown_method(self, client, seed_data, login):
        login("admin")
        invoice_id = _invoice_id(client, seed_data)
        resp = _pay(client, seed_data, invoice_id, 10, payment_method="barter")
        assert resp.status_code == 400

    def test_unknown_invoice(self, client, seed_data, login):
        login("admin")
        resp = _pay(client, seed_data, "missing", 10)
        assert resp.status_code == 404

    def test_technician_cannot_record(self, client, seed_data, login):
        login("technician")
        resp = _pay(client, seed_data, "whatever", 10)
        assert resp.status_code == 403

    def test_list_filters_by_invoice(self, client, seed_data, login):
        login("admin")
        invoice_id = _invoice_id(client, seed_data)
        _pay(client, seed_data, invoice_id, 50)

        resp = client.get(f"/api/payments?invoice_id={invoice_id}")
        data = json.loads(resp.data)["data"]
        assert len(data) == 1
        assert data[0]["amount"] == 50.0


class TestVerifyPayment:
    """GET /api/payments/verify?session_id=..."""

    def _paid_session(self, metadata=None):
        session = MagicMock()
        session.get.side_effect = {
            "payment_status": "paid",
            "amount_total": 10000,
            "metadata": metadata or {},
            "payment_intent": None,
        }.get
        return session

    @patch("fireops.services.stripe_service.stripe.checkout.Session.retrieve")
    def test_verify_with_local_payment(self, mock_retrieve, client, seed_data):
        db.session.add(Payment(
            quote_id=seed_data["draft_quote_id"],
            amount=Decimal("100.00"),
            payment_method="stripe",
            payment_type="deposit",
            status="succeeded",
            stripe_checkout_session_id="cs_test_local",
            receipt_url="https://pay.stripe.com/receipts/abc",
        ))
        db.session.commit()
        mock_retrieve.return_value = self._paid_session()

        resp = client.get("/api/payments/verify?session_id=cs_test_local")
        assert resp.status_code == 200
        data = json.loads(resp.data)["data"]
        assert data == {
            "amount": 100.0,
            "payment_type": "deposit",
            "receipt_url": "https://pay.stripe.com/receipts/abc",
            "quote_number": f"QT-{YEAR}-001",
        }

    @patch("fireops.services.stripe_service.stripe.checkout.Session.retrieve")
    def test_verify_falls_back_to_stripe(self, mock_retrieve, client, seed_data):
        mock_retrieve.return_value = self._paid_session(
            {"payment_type": "full", "quote_number": "QT-2026-777"}
        )

        resp = client.get("/api/payments/verify?session_id=cs_test_remote")
        data = json.loads(resp.data)["data"]
        assert data["amount"] == 100.0
        assert data["payment_type"] == "full"
        assert data["quote_number"] == "QT-2026-777"
        assert data["receipt_url"] is None

    @patch("fireops.services.stripe_service.stripe.checkout.Session.retrieve")
    def test_unpaid_session(self, mock_retrieve, client, seed_data):
        session = MagicMock()
        session.get.side_effect = {"payment_status": "unpaid"}.get
        mock_retrieve.return_value = session

        resp = client.get("/api/payments/verify?session_id=cs_test_unpaid")
        assert resp.status_code == 400
        assert json.loads(resp.data)["error"] == "Payment not completed"

    def test_missing_session_id(self, client, seed_data):
        resp = client.get("/api/payments/verify")
        assert resp.status_code == 400
