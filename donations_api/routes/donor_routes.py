from flask import Blueprint, jsonify, request

from donations_api.container import current_services
from donations_api.schemas.payment import PreferencesRequest
from donations_api.services import donor_service
from donations_api.utils.authz import require_admin

donors_bp = Blueprint("donors", __name__)


@donors_bp.get("/api/donors/segments")
@require_admin
def segments():
    return jsonify(donor_service.segments(current_services()))


@donors_bp.get("/api/donors/<email>")
@require_admin
def get_donor(email):
    return jsonify(donor_service.get_donor_profile(current_services(), email))


@donors_bp.patch("/api/donors/<email>/preferences")
@require_admin
def update_preferences(email):
    body = PreferencesRequest.model_validate(request.get_json(force=True, silent=True) or {})
    donor = donor_service.update_preferences(current_services(), email, body.changes())
    return jsonify({"email": donor["email"], "communication_preferences": donor["communication_preferences"]})
