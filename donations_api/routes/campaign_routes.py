from flask import Blueprint, jsonify, request

from donations_api.container import current_services
from donations_api.schemas.payment import CampaignQuery
from donations_api.services import campaign_service

campaigns_bp = Blueprint("campaigns", __name__)


@campaigns_bp.get("/api/campaigns")
def list_campaigns():
    q = CampaignQuery.model_validate(request.args.to_dict())
    return jsonify(
        campaign_service.get_campaigns(
            current_services(),
            status=q.status,
            category=q.category,
            page=q.page,
            limit=q.limit,
        )
    )


@campaigns_bp.get("/api/campaigns/featured")
def featured():
    limit = min(max(request.args.get("limit", 6, type=int), 1), 20)
    return jsonify({"campaigns": campaign_service.get_featured(current_services(), limit)})


@campaigns_bp.get("/api/campaigns/id/<campaign_id>")
def get_by_id(campaign_id):
    return jsonify(campaign_service.get_by_id(current_services(), campaign_id))


@campaigns_bp.get("/api/campaigns/<campaign_id>/progress")
def campaign_progress(campaign_id):
    return jsonify(campaign_service.get_progress(current_services(), campaign_id))


@campaigns_bp.get("/api/campaigns/<slug>")
def get_by_slug(slug):
    return jsonify(campaign_service.get_by_slug(current_services(), slug))
