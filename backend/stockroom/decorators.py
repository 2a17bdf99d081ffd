# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import ValidationError
from .services import actor_service


def require_actor(f):
    """
    Resolve the acting staff member and establish tenant context.

    The gateway in front of the API authenticates the user and forwards the
    staff id in the X-Staff-Id header.

    MULTI-TENANT: Sets g.actor, the ActorContext (business_id, branch_id,
    staff_id, role) passed to every service call.

    SECURITY: Returns 401 if the header is missing or malformed, or the staff
    member (or their business) is unknown or deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get("X-Staff-Id", "").strip()
        if not raw:
            return jsonify({"error": "Authentication required"}), 401
        try:
            staff_id = int(raw)
        except ValueError:
            return jsonify({"error": "Invalid staff id"}), 401

        try:
            g.actor = actor_service.load_actor_context(staff_id)
        except actor_service.StaffNotFoundError:
            return jsonify({"error": "Unknown or inactive staff member"}), 401

        return f(*args, **kwargs)

    return decorated_function


def json_body() -> dict:
    """Request JSON as a dict; empty or non-object bodies become {}."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def optional_int_arg(name: str) -> int | None:
    value = request.args.get(name)
    if value in (None, ""):
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")
