from flask import Blueprint, Response
from prometheus_client import REGISTRY, generate_latest, CONTENT_TYPE_LATEST

from donations_api.utils.authz import require_admin

admin_bp = Blueprint("admin", __name__)


@admin_bp.get("/admin/metrics")
@require_admin
def metrics():
    """Prometheus metrics endpoint. Requires an admin JWT."""
    return Response(
        generate_latest(REGISTRY),
        mimetype=CONTENT_TYPE_LATEST,
    )
