# backend/distro/routes/schemes.py
"""
Promotional scheme API routes.
"""
from flask import Blueprint, request, jsonify, g

from distro.decorators import require_actor, json_body, require_fields
from distro.errors import ValidationError
from distro.services import scheme_service
from distro.time_utils import parse_iso_date, today


schemes_bp = Blueprint("schemes", __name__, url_prefix="/api/schemes")


@schemes_bp.route("", methods=["GET"])
def list_schemes():
    """
    List schemes.

    Query params:
        scope: GLOBAL | STORE | DISTRIBUTOR (optional)
        store_id, distributor_id (optional)
    """
    schemes = scheme_service.list_schemes(
        scope=request.args.get("scope"),
        store_id=request.args.get("store_id", type=int),
        distributor_id=request.args.get("distributor_id", type=int),
    )
    return jsonify([scheme.to_dict() for scheme in schemes]), 200


@schemes_bp.route("/active", methods=["GET"])
def list_active_schemes():
    try:
        as_of = parse_iso_date(request.args.get("date")) or today()
    except ValueError as e:
        raise ValidationError(f"Invalid date: {request.args.get('date')!r}") from e
    return jsonify([scheme.to_dict() for scheme in scheme_service.active_schemes(as_of)]), 200


@schemes_bp.route("", methods=["POST"])
@require_actor
def create_scheme():
    """
    Create a scheme (Plant Admin).

    Request body:
    {
        "description": str,
        "buy_sku_id": int, "buy_quantity": int,
        "get_sku_id": int, "get_quantity": int,
        "start_date": "YYYY-MM-DD", "end_date": "YYYY-MM-DD",
        "scope": "GLOBAL" | "STORE" | "DISTRIBUTOR",
        "store_id": int (STORE scope), "distributor_id": int (DISTRIBUTOR scope)
    }
    """
    scheme = scheme_service.add_scheme(json_body(), g.role)
    return jsonify(scheme.to_dict()), 201


@schemes_bp.route("/<int:scheme_id>", methods=["GET"])
def get_scheme(scheme_id: int):
    return jsonify(scheme_service.get_scheme(scheme_id).to_dict()), 200


@schemes_bp.route("/<int:scheme_id>", methods=["PUT"])
@require_actor
def update_scheme(scheme_id: int):
    scheme = scheme_service.update_scheme(scheme_id, json_body(), g.role)
    return jsonify(scheme.to_dict()), 200


@schemes_bp.route("/<int:scheme_id>", methods=["DELETE"])
@require_actor
def delete_scheme(scheme_id: int):
    scheme_service.delete_scheme(scheme_id, g.role)
    return "", 204


@schemes_bp.route("/<int:scheme_id>/stop", methods=["POST"])
@require_actor
def stop_scheme(scheme_id: int):
    scheme = scheme_service.stop_scheme(scheme_id, g.actor, g.role)
    return jsonify(scheme.to_dict()), 200


@schemes_bp.route("/<int:scheme_id>/reactivate", methods=["POST"])
@require_actor
def reactivate_scheme(scheme_id: int):
    """
    Reactivate with a new end date.

    Request body:
    {
        "end_date": "YYYY-MM-DD"
    }
    """
    data = json_body()
    require_fields(data, "end_date")
    scheme = scheme_service.reactivate_scheme(scheme_id, data["end_date"], g.actor, g.role)
    return jsonify(scheme.to_dict()), 200
