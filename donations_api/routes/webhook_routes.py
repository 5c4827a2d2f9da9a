from flask import Blueprint, request, jsonify

from donations_api.container import current_services
from donations_api.services.webhook_service import process_stripe_event

webhooks_bp = Blueprint("webhooks", __name__)


@webhooks_bp.post("/api/webhooks/stripe")
def stripe_webhook():
    # raw body; the signature covers the exact bytes
    status, resp = process_stripe_event(
        current_services(),
        payload=request.get_data(),
        sig_header=request.headers.get("Stripe-Signature"),
    )
    return jsonify(resp), status
