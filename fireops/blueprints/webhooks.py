"""Webhooks blueprint — Stripe event ingestion.

Receives Stripe webhook events. CSRF-exempt.
Raw body is required for signature verification.

Route Map:
  POST /api/webhooks/stripe   — Checkout, payment intent and refund events
  POST /api/stripe/webhook    — Hosted invoice events (invoice.paid / payment_failed)
"""

import logging

from flask import Blueprint, request, jsonify

from fireops.services.stripe_service import verify_webhook_signature, handle_webhook_event

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/api")


def _process(endpoint):
    """Verify + process one webhook delivery.

    1. Get raw body (required for signature verification)
    2. Verify signature with the endpoint's signing secret
    3. Pass to handle_webhook_event (idempotent via stripe_events table)
    4. Return 200 to acknowledge receipt
    """
    payload = request.get_data(as_text=True)
    sig_header = request.headers.get("Stripe-Signature")

    if not sig_header:
        logger.warning(f"Webhook ({endpoint}) received without Stripe-Signature header")
        return jsonify({"success": False, "error": "Missing signature"}), 400

    # --- Verify signature ---
    try:
        event = verify_webhook_signature(payload, sig_header, endpoint)
    except Exception as e:
        logger.warning(f"Webhook ({endpoint}) signature verification failed: {e}")
        return jsonify({"success": False, "error": "Invalid signature"}), 400

    # --- Process event (idempotent) ---
    success, message = handle_webhook_event(event, endpoint)

    if success:
        return jsonify({"success": True, "received": True, "status": message}), 200
    else:
        logger.error(f"Webhook ({endpoint}) processing failed: {message}")
        return jsonify({"success": False, "error": "Webhook handler failed"}), 500


@webhooks_bp.route("/webhooks/stripe", methods=["POST"])
def stripe_payments_webhook():
    return _process("payments")


@webhooks_bp.route("/stripe/webhook", methods=["POST"])
def stripe_invoices_webhook():
    return _process("invoices")
