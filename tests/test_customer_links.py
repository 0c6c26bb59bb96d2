"""Tests for customer links: staff management and the public quote pages.

Covers:
- Creating, listing and revoking links (office only)
- Public view logs access, counts uses and marks a sent quote viewed
- Expired, revoked, exhausted and unknown tokens
- Accepting a quote: pay later, deposit checkout (mocked Stripe),
  Stripe failure, double acceptance
"""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import stripe

from fireops.extensions import db
from fireops.models.customer import CustomerLink, CustomerLinkAccess
from fireops.models.payment import Payment
from fireops.models.quote import Quote, QuoteAcceptance


def _link(seed_data, quote_status="sent", **overrides):
    quote = db.session.get(Quote, seed_data["draft_quote_id"])
    quote.status = quote_status
    fields = {
        "token": "tok_" + "a" * 39,
        "link_type": "quote_approval",
        "customer_id": seed_data["customer_id"],
        "customer_email": "billing@acme.test",
        "quote_id": quote.id,
        "status": "active",
        "expires_at": datetime.now(timezone.utc) + timedelta(days=30),
    }
    fields.update(overrides)
    link = CustomerLink(**fields)
    db.session.add(link)
    db.session.commit()
    return link


ACCEPT_BODY = {
    "signature_name": "Pat Property",
    "signature_email": "pat@acme.test",
    "terms_accepted": True,
}


class TestManageLinks:

    def test_create_link(self, client, seed_data, login):
        login("manager")
        resp = client.post("/api/customer-links", json={
            "quote_id": seed_data["draft_quote_id"],
            "customer_email": "Billing@Acme.test",
        })
        assert resp.status_code == 201
        data = json.loads(resp.data)["data"]
        assert len(data["token"]) == 43
        assert data["customer_id"] == seed_data["customer_id"]
        assert data["customer_email"] == "billing@acme.test"
        assert data["url"].endswith(f"/c/{data['token']}")

    def test_create_requires_target(self, client, seed_data, login):
        login("admin")
        resp = client.post("/api/customer-links", json={"customer_email": "a@b.co"})
        assert resp.status_code == 400

    def test_create_rejects_bad_max_uses(self, client, seed_data, login):
        login("admin")
        resp = client.post("/api/customer-links", json={
            "job_id": seed_data["job_id"],
            "customer_email": "billing@acme.test",
            "link_type": "job_status",
            "max_uses": 0,
        })
        assert resp.status_code == 400

    def test_list_filters_by_quote(self, client, seed_data, login):
        _link(seed_data)
        login("admin")
        resp = client.get(f"/api/customer-links?quote_id={seed_data['draft_quote_id']}")
        assert len(json.loads(resp.data)["data"]) == 1

    def test_revoke(self, client, seed_data, login):
        link = _link(seed_data)
        login("admin")
        resp = client.delete(f"/api/customer-links/{link.token}")
        assert resp.status_code == 200
        assert link.status == "revoked"

    def test_technician_cannot_manage(self, client, seed_data, login):
        login("technician")
        resp = client.get("/api/customer-links")
        assert resp.status_code == 403


class TestPublicView:
    """GET /api/customer-links/<token> (no login)"""

    def test_view_marks_quote_viewed(self, client, seed_data):
        link = _link(seed_data)
        resp = client.get(
            f"/api/customer-links/{link.token}",
            headers={"User-Agent": "pytest", "X-Forwarded-For": "203.0.113.9, 10.0.0.1"},
        )
        assert resp.status_code == 200
        data = json.loads(resp.data)["data"]
        assert data["quote"]["status"] == "viewed"
        assert data["quote"]["totals"]["total"] == 324.75
        assert "notes" not in data["quote"]

        assert link.use_count == 1
        access = CustomerLinkAccess.query.filter_by(customer_link_id=link.id).one()
        assert access.action == "view"
        assert access.ip_address == "203.0.113.9"
        assert access.user_agent == "pytest"

    def test_accepted_quote_stays_accepted(self, client, seed_data):
        link = _link(seed_data, quote_status="accepted")
        resp = client.get(f"/api/customer-links/{link.token}")
        assert json.loads(resp.data)["data"]["quote"]["status"] == "accepted"

    def test_unknown_token_404(self, client, seed_data):
        resp = client.get("/api/customer-links/not-a-real-token")
        assert resp.status_code == 404
        assert json.loads(resp.data)["error"] == "Invalid link"

    def test_expired_link_403_and_flagged(self, client, seed_data):
        link = _link(seed_data, expires_at=datetime.now(timezone.utc) - timedelta(minutes=1))
        resp = client.get(f"/api/customer-links/{link.token}")
        assert resp.status_code == 403
        assert json.loads(resp.data)["error"] == "This link has expired"
        assert link.status == "expired"

    def test_revoked_link_403(self, client, seed_data):
        link = _link(seed_data, status="revoked")
        resp = client.get(f"/api/customer-links/{link.token}")
        assert resp.status_code == 403
        assert CustomerLinkAccess.query.count() == 0

    def test_usage_limit(self, client, seed_data):
        link = _link(seed_data, max_uses=1)
        assert client.get(f"/api/customer-links/{link.token}").status_code == 200
        resp = client.get(f"/api/customer-links/{link.token}")
        assert resp.status_code == 403
        assert json.loads(resp.data)["error"] == "This link has reached its usage limit"

    def test_job_link_shows_customer_notes_only(self, client, seed_data):
        from fireops.models.job import JobNote

        db.session.add_all([
            JobNote(job_id=seed_data["job_id"], content="Internal margin", visibility="internal"),
            JobNote(job_id=seed_data["job_id"], content="Crew arrives 8am", visibility="customer"),
        ])
        db.session.commit()
        link = _link(seed_data, token="tok_" + "j" * 39, quote_id=None,
                     job_id=seed_data["job_id"], link_type="job_status")

        resp = client.get(f"/api/customer-links/{link.token}")
        job = json.loads(resp.data)["data"]["job"]
        assert [n["content"] for n in job["notes"]] == ["Crew arrives 8am"]


class TestAcceptQuote:
    """POST /api/customer-links/<token>/accept"""

    def test_pay_later(self, client, seed_data):
        link = _link(seed_data)
        resp = client.post(f"/api/customer-links/{link.token}/accept",
                           json=dict(ACCEPT_BODY, payment_option="pay_later"))
        assert resp.status_code == 200
        data = json.loads(resp.data)
        assert data["message"] == "Quote approved successfully"
        assert "checkout_url" not in data

        quote = db.session.get(Quote, seed_data["draft_quote_id"])
        assert quote.status == "accepted"
        assert quote.accepted_by == "Pat Property"

        acceptance = db.session.get(QuoteAcceptance, data["acceptance_id"])
        assert acceptance.accepted_by_email == "pat@acme.test"
        assert acceptance.payment_option == "pay_later"
        assert Payment.query.count() == 0

    @patch("fireops.services.stripe_service.stripe.checkout.Session.create")
    def test_pay_deposit_creates_checkout(self, mock_create, client, seed_data):
        mock_create.return_value = MagicMock(
            id="cs_test_deposit", url="https://checkout.stripe.com/c/pay/cs_test_deposit"
        )
        link = _link(seed_data)

        resp = client.post(f"/api/customer-links/{link.token}/accept",
                           json=dict(ACCEPT_BODY, payment_option="pay_deposit"))
        assert resp.status_code == 200
        data = json.loads(resp.data)
        assert data["checkout_url"] == "https://checkout.stripe.com/c/pay/cs_test_deposit"

        kwargs = mock_create.call_args.kwargs
        assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 10000
        assert kwargs["metadata"]["payment_type"] == "deposit"
        assert kwargs["metadata"]["quote_id"] == seed_data["draft_quote_id"]

        payment = Payment.query.filter_by(stripe_checkout_session_id="cs_test_deposit").one()
        assert payment.status == "pending"
        assert payment.payment_type == "deposit"
        assert float(payment.amount) == 100.0

    @patch("fireops.services.stripe_service.stripe.checkout.Session.create")
    def test_pay_full_charges_quote_total(self, mock_create, client, seed_data):
        mock_create.return_value = MagicMock(id="cs_test_full", url="https://checkout.stripe.com/x")
        link = _link(seed_data)

        client.post(f"/api/customer-links/{link.token}/accept",
                    json=dict(ACCEPT_BODY, payment_option="pay_full"))
        kwargs = mock_create.call_args.kwargs
        assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 32475

    @patch("fireops.services.stripe_service.stripe.checkout.Session.create")
    def test_stripe_failure_keeps_acceptance(self, mock_create, client, seed_data):
        mock_create.side_effect = stripe.APIConnectionError("network down")
        link = _link(seed_data)

        resp = client.post(f"/api/customer-links/{link.token}/accept",
                           json=dict(ACCEPT_BODY, payment_option="pay_full"))
        assert resp.status_code == 200
        data = json.loads(resp.data)
        assert data["message"] == "Quote approved. Payment processing unavailable."
        assert "checkout_url" not in data
        assert db.session.get(Quote, seed_data["draft_quote_id"]).status == "accepted"

    def test_second_acceptance_rejected(self, client, seed_data):
        link = _link(seed_data)
        client.post(f"/api/customer-links/{link.token}/accept", json=ACCEPT_BODY)

        resp = client.post(f"/api/customer-links/{link.token}/accept", json=ACCEPT_BODY)
        assert resp.status_code == 400
        assert json.loads(resp.data)["error"] == "This quote has already been processed"
        assert QuoteAcceptance.query.count() == 1

    def test_signature_required(self, client, seed_data):
        link = _link(seed_data)
        resp = client.post(f"/api/customer-links/{link.token}/accept",
                           json={"signature_name": "Pat"})
        assert resp.status_code == 400
        assert db.session.get(Quote, seed_data["draft_quote_id"]).status == "sent"

    def test_expired_link_cannot_accept(self, client, seed_data):
        link = _link(seed_data, expires_at=datetime.now(timezone.utc) - timedelta(days=1))
        resp = client.post(f"/api/customer-links/{link.token}/accept", json=ACCEPT_BODY)
        assert resp.status_code == 403
