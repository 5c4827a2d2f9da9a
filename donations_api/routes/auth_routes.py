import hmac
import logging

from flask import Blueprint, request, jsonify
from flask_jwt_extended import create_access_token

from donations_api.container import current_services
from donations_api.utils.authz import ADMIN_ROLE

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__)


@auth_bp.post("/api/auth/token")
def admin_token():
    """Exchange the X-Admin-Key header for a short-lived admin JWT."""
    expected = current_services().settings.admin_api_key
    supplied = request.headers.get("X-Admin-Key") or ""
    if not expected or not hmac.compare_digest(supplied, expected):
        logger.warning("admin token refused from %s", request.remote_addr)
        return jsonify({"error": "unauthorized"}), 401
    token = create_access_token(identity="admin", additional_claims={"role": ADMIN_ROLE})
    return jsonify({"access_token": token}), 200
