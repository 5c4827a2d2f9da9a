import json
import logging
from typing import Any, Dict, Tuple

import stripe

from donations_api import metrics
from donations_api.errors import AttributionNotFound, GatewayDeclined, ValidationError
from donations_api.services import donation_service
from donations_api.services.gateway import (
    intent_from_dict,
    invoice_from_dict,
    refund_from_charge,
)

logger = logging.getLogger(__name__)


class BadWebhook(Exception):
    """Signature or payload could not be trusted. Maps to HTTP 400."""


def _extract_event(services, payload: bytes, sig_header: str | None) -> Dict[str, Any]:
    """
    Return the event as a plain dict.

    - Normally the Stripe signature is verified against STRIPE_WEBHOOK_SECRET.
    - With DEV_STRIPE_NO_VERIFY=1 the JSON payload is parsed as-is.
    """
    if not services.settings.dev_stripe_no_verify:
        if not services.settings.stripe_webhook_secret:
            raise BadWebhook("STRIPE_WEBHOOK_SECRET is not configured")
        try:
            return services.gateway.construct_event(payload, sig_header)
        except (stripe.SignatureVerificationError, ValueError) as e:
            raise BadWebhook(f"signature verification failed: {e}") from e

    try:
        raw = json.loads(payload.decode("utf-8") or "{}")
    except (UnicodeDecodeError, ValueError) as e:
        raise BadWebhook("invalid JSON payload") from e
    if not isinstance(raw, dict) or "type" not in raw:
        raise BadWebhook("payload is not a Stripe event")
    return raw


def _on_intent_succeeded(services, obj):
    intent = intent_from_dict(obj)
    if intent.invoice_id:
        # the invoice event records subscription payments
        return {"ok": True, "skipped": "invoice payment"}
    try:
        result = donation_service.confirm_donation(
            services, intent.intent_id, verified_intent=intent, source="webhook"
        )
    except GatewayDeclined:
        return {"ok": True, "skipped": "not succeeded"}
    return {
        "ok": True,
        "donation_id": str(result.donation.get("id")),
        "duplicate": not result.created,
    }


def _on_intent_failed(services, obj):
    row = donation_service.mark_failed(services, obj["id"])
    return {"ok": True, "updated": row is not None}


def _on_invoice_paid(services, obj):
    result = donation_service.record_recurring_payment(services, invoice_from_dict(obj))
    if result is None:
        return {"ok": True, "skipped": "no subscription context"}
    return {
        "ok": True,
        "donation_id": str(result.donation.get("id")),
        "duplicate": not result.created,
    }


def _on_invoice_failed(services, obj):
    logger.warning(
        "invoice payment failed invoice=%s subscription=%s",
        obj.get("id"),
        obj.get("subscription"),
    )
    return {"ok": True}


def _on_subscription_deleted(services, obj):
    rows = donation_service.cancel_subscription_donations(services, obj["id"])
    return {"ok": True, "canceled": len(rows)}


def _on_charge_refunded(services, obj):
    refund = refund_from_charge(obj)
    if not refund.intent_id:
        return {"ok": True, "skipped": "no payment intent"}
    row = donation_service.mark_refunded(services, refund.intent_id, refund.amount)
    return {"ok": True, "updated": row is not None}


HANDLERS = {
    "payment_intent.succeeded": _on_intent_succeeded,
    "payment_intent.payment_failed": _on_intent_failed,
    "invoice.payment_succeeded": _on_invoice_paid,
    "invoice.paid": _on_invoice_paid,
    "invoice.payment_failed": _on_invoice_failed,
    "customer.subscription.deleted": _on_subscription_deleted,
    "charge.refunded": _on_charge_refunded,
}


def process_stripe_event(
    services, payload: bytes, sig_header: str | None
) -> Tuple[int, Dict[str, Any]]:
    """
    Handle selected Stripe events. Redelivery is harmless: donations are
    keyed by intent/invoice id and status moves are forward-only.
    """
    try:
        event = _extract_event(services, payload, sig_header)
    except BadWebhook as e:
        logger.warning("webhook rejected: %s", e)
        metrics.WEBHOOK_EVENTS.labels(event_type="unknown", outcome="rejected").inc()
        return 400, {"error": "bad signature or payload"}

    ev_type = event.get("type") or "unknown"
    obj = (event.get("data") or {}).get("object") or {}
    handler = HANDLERS.get(ev_type)
    if handler is None:
        logger.info("webhook %s ignored (%s)", event.get("id"), ev_type)
        metrics.WEBHOOK_EVENTS.labels(event_type=ev_type, outcome="ignored").inc()
        return 200, {"ignored": ev_type}

    logger.info("webhook %s %s object=%s", event.get("id"), ev_type, obj.get("id"))
    try:
        body = handler(services, obj)
    except (ValidationError, AttributionNotFound) as e:
        # permanent; a retry from Stripe would fail the same way
        logger.error("webhook %s %s unprocessable: %s", event.get("id"), ev_type, e)
        metrics.WEBHOOK_EVENTS.labels(event_type=ev_type, outcome="unprocessable").inc()
        return 200, {"ok": False, "error": e.code, "message": e.message}
    metrics.WEBHOOK_EVENTS.labels(event_type=ev_type, outcome="processed").inc()
    return 200, body
