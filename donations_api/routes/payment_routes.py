from flask import Blueprint, jsonify, request

from donations_api.container import current_services
from donations_api.schemas.payment import RefundRequest
from donations_api.services import donation_service
from donations_api.utils.authz import require_admin

payments_bp = Blueprint("payments", __name__)


@payments_bp.post("/api/payments/refund")
@require_admin
def refund():
    body = RefundRequest.model_validate(request.get_json(force=True, silent=True) or {})
    donation, refund_info = donation_service.refund_donation(
        current_services(), body.payment_intent_id, body.amount, body.reason
    )
    return jsonify(
        {
            "refund_id": refund_info.refund_id,
            "refund_status": refund_info.status,
            "amount": refund_info.amount,
            "donation_id": str((donation or {}).get("id")),
            "payment_status": (donation or {}).get("payment_status"),
        }
    )


@payments_bp.post("/api/payments/subscriptions/<subscription_id>/cancel")
@require_admin
def cancel_subscription(subscription_id):
    rows = donation_service.cancel_subscription(current_services(), subscription_id)
    return jsonify({"subscription_id": subscription_id, "canceled_donations": len(rows)})


@payments_bp.get("/api/payments/methods/<customer_id>")
@require_admin
def payment_methods(customer_id):
    methods = current_services().gateway.list_payment_methods(customer_id)
    out = []
    for pm in methods:
        card = pm.get("card") or {}
        out.append(
            {
                "id": pm.get("id"),
                "brand": card.get("brand"),
                "last4": card.get("last4"),
                "exp_month": card.get("exp_month"),
                "exp_year": card.get("exp_year"),
            }
        )
    return jsonify({"payment_methods": out})
