from flask import Blueprint, jsonify, request

from donations_api.container import current_services
from donations_api.errors import DonationNotFound
from donations_api.models.status import PaymentStatus
from donations_api.schemas.donation import (
    AnalyticsQuery,
    ConfirmDonationRequest,
    CreateIntentRequest,
    DonationQuery,
)
from donations_api.services import analytics_service, donation_service
from donations_api.utils.authz import require_admin
from donations_api.utils.masking import display_name, mask_email
from donations_api.utils.rate_limit import donation_rate_limit

donations_bp = Blueprint("donations", __name__)

_DONOR_FIELDS = ("donor_first_name", "donor_last_name", "donor_email", "donor_phone", "donor_address")
_PRIVATE_FIELDS = ("stripe_customer_id", "net_amount", "transaction_fee")


def _public(d: dict) -> dict:
    out = {k: v for k, v in d.items() if k not in _DONOR_FIELDS + _PRIVATE_FIELDS}
    anonymous = bool(d.get("is_anonymous"))
    out["donor_name"] = display_name(
        d.get("donor_first_name"), d.get("donor_last_name"), anonymous
    )
    out["donor_email"] = None if anonymous else mask_email(d.get("donor_email"))
    return out


@donations_bp.post("/api/donations/intent")
@donation_rate_limit("donation-intent")
def create_intent():
    body = CreateIntentRequest.model_validate(request.get_json(force=True, silent=True) or {})
    resp = donation_service.create_intent(
        current_services(), body.to_input(), body.amount, body.currency
    )
    return jsonify(resp), 200


@donations_bp.post("/api/donations/confirm")
def confirm():
    body = ConfirmDonationRequest.model_validate(request.get_json(force=True, silent=True) or {})
    result = donation_service.confirm_donation(
        current_services(), body.payment_intent_id, body.to_input()
    )
    d = result.donation
    return (
        jsonify(
            {
                "donation_id": str(d.get("id")),
                "payment_status": d.get("payment_status"),
                "amount": d.get("amount"),
                "currency": d.get("currency"),
                "created": result.created,
            }
        ),
        201 if result.created else 200,
    )


@donations_bp.get("/api/donations/recent")
def recent():
    limit = min(max(request.args.get("limit", 10, type=int), 1), 50)
    rows = current_services().store.list_donations(
        status=PaymentStatus.SUCCEEDED.value,
        campaign_id=request.args.get("campaign_id"),
        ministry=request.args.get("ministry"),
        limit=limit,
    )
    return jsonify({"donations": analytics_service.public_recent(rows, limit)})


@donations_bp.get("/api/donations/<donation_id>")
def get_donation(donation_id):
    d = current_services().store.get_donation(donation_id)
    if d is None:
        raise DonationNotFound(f"donation {donation_id} not found")
    return jsonify(_public(d))


@donations_bp.get("/api/donations")
@require_admin
def list_donations():
    q = DonationQuery.model_validate(request.args.to_dict())
    store = current_services().store
    filters = q.filters()
    rows = store.list_donations(limit=q.limit, offset=(q.page - 1) * q.limit, **filters)
    total = store.count_donations(**filters)
    return jsonify(
        {
            "donations": rows,
            "pagination": {
                "page": q.page,
                "limit": q.limit,
                "total": total,
                "pages": (total + q.limit - 1) // q.limit,
            },
        }
    )


def _succeeded_rows(q: AnalyticsQuery):
    return current_services().store.list_donations(
        status=PaymentStatus.SUCCEEDED.value,
        campaign_id=q.campaign_id,
        ministry=q.ministry,
        start=q.start_date,
        end=q.end_date,
    )


@donations_bp.get("/api/donations/analytics/summary")
@require_admin
def analytics_summary():
    q = AnalyticsQuery.model_validate(request.args.to_dict())
    store = current_services().store
    rows = _succeeded_rows(q)
    titles = {}
    for cid in {str(d["campaign_id"]) for d in rows if d.get("campaign_id")}:
        camp = store.get_campaign(cid)
        if camp:
            titles[cid] = camp["title"]
    return jsonify(
        {
            "summary": analytics_service.summarize(rows),
            "trends": analytics_service.daily_trends(rows, limit=q.days),
            "breakdown": analytics_service.breakdown_by_attribution(rows, titles),
        }
    )


@donations_bp.get("/api/donations/top-donors")
@require_admin
def top_donors():
    q = AnalyticsQuery.model_validate(request.args.to_dict())
    rows = _succeeded_rows(q)
    return jsonify({"donors": analytics_service.top_donors(rows, q.limit)})
