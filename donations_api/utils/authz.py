from functools import wraps
from flask import jsonify
from flask_jwt_extended import verify_jwt_in_request, get_jwt

ADMIN_ROLE = "admin"


def require_admin(fn):
    """Bearer JWT whose `role` claim is admin (see POST /api/auth/token)."""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        verify_jwt_in_request()
        role = get_jwt().get("role")
        if role != ADMIN_ROLE:
            return (
                jsonify({"error": "forbidden", "required": ADMIN_ROLE, "have": role}),
                403,
            )
        return fn(*args, **kwargs)

    return wrapper
