from donations_api.errors import AttributionNotFound
from donations_api.models.status import PaymentStatus
from donations_api.services.analytics_service import campaign_progress
from donations_api.utils.cache import get_json, progress_key, set_json


def get_campaigns(services, *, status=None, category=None, page=1, limit=10):
    rows, total = services.store.list_campaigns(
        status=status, category=category, limit=limit, offset=(page - 1) * limit
    )
    return {
        "campaigns": rows,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": (total + limit - 1) // limit if limit else 0,
        },
    }


def get_featured(services, limit=6):
    return services.store.featured_campaigns(limit)


def get_by_slug(services, slug):
    camp = services.store.get_campaign_by_slug(slug)
    if camp is None:
        raise AttributionNotFound(f"campaign {slug!r} not found")
    return camp


def get_by_id(services, campaign_id):
    camp = services.store.get_campaign(campaign_id)
    if camp is None:
        raise AttributionNotFound(f"campaign {campaign_id} not found")
    return camp


def get_progress(services, campaign_id):
    """Progress with the five latest public gifts. Cached for 30s per campaign."""
    key = progress_key(campaign_id)
    cached = get_json(services.cache, key)
    if cached:
        return cached
    camp = get_by_id(services, campaign_id)
    recent = services.store.list_donations(
        campaign_id=campaign_id, status=PaymentStatus.SUCCEEDED.value, limit=5
    )
    resp = campaign_progress(camp, recent)
    set_json(services.cache, key, resp)
    return resp
