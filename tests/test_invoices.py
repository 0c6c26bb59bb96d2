"""Tests for invoices: scope parsing, job -> invoice, CRUD rules and sending.

Covers:
- Scope-summary parsing into line items
- Creating an invoice from a job (items, tax, due date, job invoiced)
- At most one invoice per job
- Manual status changes limited to draft -> sent
- Sending through Stripe (mocked) and queuing the email
"""

import json
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

import stripe

from fireops.extensions import db
from fireops.models.invoice import Invoice
from fireops.models.job import Job, JobEvent
from fireops.models.outbox import OutboxEmail
from fireops.services.invoice_service import parse_scope_summary

from conftest import YEAR


class TestParseScopeSummary:

    def test_quantity_prefix_splits_share(self, app):
        # 300 is shared per line (150 each), then divided by the line quantity
        items = parse_scope_summary("2x Smoke Detector\nPull Station", Decimal("300"))
        assert items == [
            {"description": "Smoke Detector", "quantity": 2, "unit_price": Decimal("75.00")},
            {"description": "Pull Station", "quantity": 1, "unit_price": Decimal("150.00")},
        ]

    def test_blank_lines_ignored(self, app):
        items = parse_scope_summary("\n  Panel Upgrade  \n\n", Decimal("999.99"))
        assert items == [
            {"description": "Panel Upgrade", "quantity": 1, "unit_price": Decimal("999.99")},
        ]

    def test_uneven_split_rounds_half_up(self, app):
        items = parse_scope_summary("A\nB\nC", Decimal("100"))
        assert [i["unit_price"] for i in items] == [Decimal("33.33")] * 3

    def test_empty_summary(self, app):
        assert parse_scope_summary("", Decimal("100")) == []
        assert parse_scope_summary(None, Decimal("100")) == []


class TestCreateInvoiceFromJob:
    """POST /api/jobs/<id>/create-invoice"""

    def test_creates_itemized_draft(self, client, seed_data, login):
        login("admin")
        resp = client.post(f"/api/jobs/{seed_data['job_id']}/create-invoice")
        assert resp.status_code == 201
        data = json.loads(resp.data)["data"]

        assert data["invoice_number"] == f"INV-{YEAR}-0001"
        assert data["status"] == "draft"
        assert data["customer_id"] == seed_data["customer_id"]
        assert [(i["description"], i["quantity"], i["unit_price"], i["total"]) for i in data["items"]] == [
            ("Smoke Detector", 2.0, 75.0, 150.0),
            ("Pull Station", 1.0, 150.0, 150.0),
        ]
        assert data["subtotal"] == 300.0
        assert data["tax_rate"] == 0.0825
        assert data["tax_amount"] == 24.75
        assert data["total"] == 324.75
        assert data["balance_due"] == 324.75
        assert data["due_date"] == (date.today() + timedelta(days=30)).isoformat()

    def test_job_marked_invoiced(self, client, seed_data, login):
        login("admin")
        client.post(f"/api/jobs/{seed_data['job_id']}/create-invoice")
        job = db.session.get(Job, seed_data["job_id"])
        assert job.status == "invoiced"
        assert JobEvent.query.filter_by(job_id=job.id, event_type="invoiced").count() == 1

    def test_second_invoice_rejected(self, client, seed_data, login):
        login("admin")
        client.post(f"/api/jobs/{seed_data['job_id']}/create-invoice")
        resp = client.post(f"/api/jobs/{seed_data['job_id']}/create-invoice")
        assert resp.status_code == 400
        assert json.loads(resp.data)["error"] == (
            f"Invoice INV-{YEAR}-0001 already exists for this job"
        )
        assert Invoice.query.count() == 1

    def test_job_without_email_rejected(self, client, seed_data, login):
        job = db.session.get(Job, seed_data["job_id"])
        job.customer_email = None
        db.session.commit()

        login("admin")
        resp = client.post(f"/api/jobs/{seed_data['job_id']}/create-invoice")
        assert resp.status_code == 400
        assert Invoice.query.count() == 0

    def test_job_without_scope_gets_single_line(self, client, seed_data, login):
        job = db.session.get(Job, seed_data["job_id"])
        job.scope_summary = None
        job.description = "Annual inspection"
        db.session.commit()

        login("admin")
        resp = client.post(f"/api/jobs/{seed_data['job_id']}/create-invoice")
        items = json.loads(resp.data)["data"]["items"]
        assert len(items) == 1
        assert items[0]["description"] == "Annual inspection"
        assert items[0]["total"] == 300.0

    def test_technician_cannot_invoice(self, client, seed_data, login):
        login("technician")
        resp = client.post(f"/api/jobs/{seed_data['job_id']}/create-invoice")
        assert resp.status_code == 403


class TestInvoiceCrud:

    def _create(self, client, seed_data, **extra):
        payload = {
            "customer_id": seed_data["customer_id"],
            "items": [{"description": "Service call", "quantity": 1, "unit_price": 125}],
        }
        payload.update(extra)
        return client.post("/api/invoices", json=payload)

    def test_create_manual_invoice(self, client, seed_data, login):
        login("admin")
        resp = self._create(client, seed_data, tax_rate=0)
        assert resp.status_code == 201
        data = json.loads(resp.data)["data"]
        assert data["total"] == 125.0

    def test_non_numeric_tax_rate_is_400(self, client, seed_data, login):
        login("admin")
        resp = self._create(client, seed_data, tax_rate="abc")
        assert resp.status_code == 400
        assert json.loads(resp.data)["error"] == "Invalid tax_rate"
        assert Invoice.query.count() == 0

    def test_update_non_numeric_tax_rate_is_400(self, client, seed_data, login):
        login("admin")
        invoice_id = json.loads(self._create(client, seed_data, tax_rate=0).data)["data"]["id"]
        resp = client.patch(f"/api/invoices/{invoice_id}", json={"tax_rate": "abc"})
        assert resp.status_code == 400
        assert json.loads(resp.data)["error"] == "Invalid tax_rate"

    def test_draft_to_sent_allowed(self, client, seed_data, login):
        login("admin")
        invoice_id = json.loads(self._create(client, seed_data).data)["data"]["id"]
        resp = client.patch(f"/api/invoices/{invoice_id}", json={"status": "sent"})
        assert resp.status_code == 200
        assert json.loads(resp.data)["data"]["status"] == "sent"

    def test_manual_paid_rejected(self, client, seed_data, login):
        login("admin")
        invoice_id = json.loads(self._create(client, seed_data).data)["data"]["id"]
        resp = client.patch(f"/api/invoices/{invoice_id}", json={"status": "paid"})
        assert resp.status_code == 400
        assert db.session.get(Invoice, invoice_id).status == "draft"

    def test_amount_paid_is_protected(self, client, seed_data, login):
        login("admin")
        invoice_id = json.loads(self._create(client, seed_data).data)["data"]["id"]
        client.patch(f"/api/invoices/{invoice_id}", json={"amount_paid": 9999, "notes": "hi"})
        invoice = db.session.get(Invoice, invoice_id)
        assert invoice.amount_paid == Decimal("0.00")
        assert invoice.notes == "hi"

    def test_delete_only_drafts(self, client, seed_data, login):
        login("admin")
        invoice_id = json.loads(self._create(client, seed_data).data)["data"]["id"]
        client.patch(f"/api/invoices/{invoice_id}", json={"status": "sent"})

        resp = client.delete(f"/api/invoices/{invoice_id}")
        assert resp.status_code == 400
        assert db.session.get(Invoice, invoice_id) is not None

    def test_delete_draft(self, client, seed_data, login):
        login("admin")
        invoice_id = json.loads(self._create(client, seed_data).data)["data"]["id"]
        resp = client.delete(f"/api/invoices/{invoice_id}")
        assert resp.status_code == 200
        assert db.session.get(Invoice, invoice_id) is None


class TestSendInvoice:
    """POST /api/invoices/<id>/send"""

    def _invoice_id(self, client, seed_data):
        resp = client.post(f"/api/jobs/{seed_data['job_id']}/create-invoice")
        return json.loads(resp.data)["data"]["id"]

    @patch("fireops.services.stripe_service.stripe.Invoice.send_invoice")
    @patch("fireops.services.stripe_service.stripe.Invoice.finalize_invoice")
    @patch("fireops.services.stripe_service.stripe.InvoiceItem.create")
    @patch("fireops.services.stripe_service.stripe.Invoice.create")
    @patch("fireops.services.stripe_service.stripe.Customer.create")
    @patch("fireops.services.stripe_service.stripe.Customer.list")
    def test_send_via_stripe(self, mock_cust_list, mock_cust_create, mock_inv_create,
                             mock_item_create, mock_finalize, mock_send,
                             client, seed_data, login):
        mock_cust_list.return_value = MagicMock(data=[])
        mock_cust_create.return_value = MagicMock(id="cus_test_123")
        mock_inv_create.return_value = MagicMock(id="in_test_123")
        finalized = MagicMock(id="in_test_123")
        finalized.get.side_effect = {
            "id": "in_test_123",
            "hosted_invoice_url": "https://invoice.stripe.com/i/test",
            "invoice_pdf": "https://invoice.stripe.com/i/test/pdf",
        }.get
        mock_finalize.return_value = finalized

        login("admin")
        invoice_id = self._invoice_id(client, seed_data)
        resp = client.post(f"/api/invoices/{invoice_id}/send")
        assert resp.status_code == 200
        data = json.loads(resp.data)["data"]
        assert data["stripe_invoice_id"] == "in_test_123"
        assert data["hosted_url"] == "https://invoice.stripe.com/i/test"

        # Two items plus the tax line, in cents.
        amounts = [c.kwargs["amount"] for c in mock_item_create.call_args_list]
        assert amounts == [15000, 15000, 2475]
        mock_send.assert_called_once_with("in_test_123")

        invoice = db.session.get(Invoice, invoice_id)
        assert invoice.status == "sent"
        assert invoice.sent_at is not None
        assert invoice.customer.stripe_customer_id == "cus_test_123"

        email = OutboxEmail.query.filter_by(template="emails/invoice.html").one()
        assert email.context["pay_url"] == "https://invoice.stripe.com/i/test"

    @patch("fireops.services.stripe_service.stripe.Customer.list")
    def test_stripe_failure_returns_500(self, mock_cust_list, client, seed_data, login):
        mock_cust_list.side_effect = stripe.APIConnectionError("network down")

        login("admin")
        invoice_id = self._invoice_id(client, seed_data)
        resp = client.post(f"/api/invoices/{invoice_id}/send")
        assert resp.status_code == 500
        assert json.loads(resp.data)["error"] == "Failed to send invoice"
        assert db.session.get(Invoice, invoice_id).status == "draft"
