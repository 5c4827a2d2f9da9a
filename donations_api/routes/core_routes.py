import logging
from datetime import datetime, timezone

from flask import Blueprint, jsonify

from donations_api.container import current_services
from donations_api.errors import DonationsError

logger = logging.getLogger(__name__)

core = Blueprint("core", __name__)


@core.get("/")
def root():
    return jsonify({"service": "donations-api", "ok": True})


@core.get("/api")
def api_index():
    return jsonify(
        {
            "endpoints": {
                "donations": [
                    "/api/donations/intent (POST)",
                    "/api/donations/confirm (POST)",
                    "/api/donations/recent",
                    "/api/donations/<id>",
                ],
                "campaigns": ["/api/campaigns", "/api/campaigns/featured"],
                "webhooks": ["/api/webhooks/stripe (POST)"],
                "health": ["/api/health", "/api/health/ping"],
            }
        }
    )


@core.get("/api/health/ping")
def ping():
    return jsonify({"ok": True, "time": datetime.now(timezone.utc).isoformat()})


@core.get("/api/health")
def health():
    """Database, Stripe and email checks. 503 only when the database is down."""
    services = current_services()
    checks = {}

    try:
        checks["database"] = {"ok": bool(services.store.ping())}
    except DonationsError as e:
        logger.error("health: database check failed: %s", e)
        checks["database"] = {"ok": False, "error": e.message}

    try:
        checks["stripe"] = {"ok": bool(services.gateway.ping())}
    except DonationsError as e:
        logger.warning("health: stripe check failed: %s", e)
        checks["stripe"] = {"ok": False, "error": e.message}

    ok, detail = services.notifier.test_connection()
    checks["email"] = {"ok": ok, "detail": detail}

    healthy = all(c["ok"] for c in checks.values())
    status = "healthy" if healthy else "degraded"
    code = 200
    if not checks["database"]["ok"]:
        status, code = "unhealthy", 503
    return jsonify({"status": status, "checks": checks}), code
