# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import ValidationError
from .roles import ALL_ROLES


def require_actor(f):
    """
    Require an actor context on the request.

    Sets the following Flask g attributes:
    - g.actor: username from the X-Actor header (audit stamping)
    - g.role: role from the X-Actor-Role header, one of ALL_ROLES

    Returns 401 if X-Actor is missing and 400 for an unknown role. The
    headers are set by an upstream gateway; nothing here authenticates.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor = (request.headers.get("X-Actor") or "").strip()
        if not actor:
            return jsonify({"error": "ACTOR_REQUIRED", "message": "X-Actor header is required"}), 401

        role = (request.headers.get("X-Actor-Role") or "").strip() or None
        if role is not None and role not in ALL_ROLES:
            return jsonify({
                "error": "VALIDATION_ERROR",
                "message": f"Unknown role {role!r}",
                "allowed": list(ALL_ROLES),
            }), 400

        g.actor = actor
        g.role = role
        return f(*args, **kwargs)

    return decorated_function


def json_body() -> dict:
    """Request JSON as a dict; empty or non-object bodies become {}."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def require_fields(data: dict, *fields: str) -> None:
    missing = [name for name in fields if data.get(name) is None]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}", missing=missing)
