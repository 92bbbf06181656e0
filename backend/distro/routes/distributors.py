# backend/distro/routes/distributors.py
"""
Distributor and store master-data API routes.
"""
from flask import Blueprint, request, jsonify, g

from distro.decorators import require_actor, json_body
from distro.services import distributor_service, wallet_service


distributors_bp = Blueprint("distributors", __name__, url_prefix="/api")


@distributors_bp.route("/distributors", methods=["GET"])
def list_distributors():
    distributors = distributor_service.list_distributors(store_id=request.args.get("store_id", type=int))
    return jsonify([d.to_dict() for d in distributors]), 200


@distributors_bp.route("/distributors/<int:distributor_id>", methods=["GET"])
def get_distributor(distributor_id: int):
    return jsonify(wallet_service.get_distributor(distributor_id).to_dict()), 200


@distributors_bp.route("/distributors", methods=["POST"])
@require_actor
def onboard_distributor():
    """
    Onboard a distributor.

    Request body:
    {
        "name": str,
        "phone": str, "state": str, "area": str, "gstin": str,
        "billing_address": str, "asm_name": str, "executive_name": str,
        "credit_limit_cents": int,
        "has_special_schemes": bool,
        "price_tier_id": int | null,
        "store_id": int | null,
        "initial_scheme": {...} (optional; used when has_special_schemes)
    }

    Returns:
        201: Distributor created with an empty wallet
        400: Invalid request
    """
    data = json_body()
    initial_scheme = data.pop("initial_scheme", None)
    distributor = distributor_service.add_distributor(data, g.actor, initial_scheme=initial_scheme)
    return jsonify(distributor.to_dict()), 201


@distributors_bp.route("/distributors/<int:distributor_id>", methods=["PUT"])
@require_actor
def update_distributor(distributor_id: int):
    distributor = distributor_service.update_distributor(distributor_id, json_body(), g.role)
    return jsonify(distributor.to_dict()), 200


@distributors_bp.route("/stores", methods=["GET"])
def list_stores():
    return jsonify([store.to_dict() for store in distributor_service.list_stores()]), 200


@distributors_bp.route("/stores/<int:store_id>", methods=["GET"])
def get_store(store_id: int):
    return jsonify(wallet_service.get_store(store_id).to_dict()), 200


@distributors_bp.route("/stores", methods=["POST"])
@require_actor
def create_store():
    store = distributor_service.add_store(json_body(), g.role)
    return jsonify(store.to_dict()), 201


@distributors_bp.route("/stores/<int:store_id>", methods=["PUT"])
@require_actor
def update_store(store_id: int):
    store = distributor_service.update_store(store_id, json_body(), g.role)
    return jsonify(store.to_dict()), 200


@distributors_bp.route("/stores/<int:store_id>", methods=["DELETE"])
@require_actor
def delete_store(store_id: int):
    distributor_service.delete_store(store_id, g.role)
    return "", 204
