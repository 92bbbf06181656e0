# backend/distro/routes/returns.py
"""
Distributor return API routes.
"""
from flask import Blueprint, request, jsonify, g

from distro.decorators import require_actor, json_body, require_fields
from distro.services import return_service


returns_bp = Blueprint("returns", __name__, url_prefix="/api/returns")


@returns_bp.route("", methods=["GET"])
def list_returns():
    """
    Query params:
        status: PENDING | CONFIRMED (optional)
        distributor_id: int (optional)
    """
    returns = return_service.list_returns(
        status=request.args.get("status"),
        distributor_id=request.args.get("distributor_id", type=int),
    )
    return jsonify([r.to_dict() for r in returns]), 200


@returns_bp.route("", methods=["POST"])
@require_actor
def initiate_return():
    """
    Initiate a return against an order.

    Request body:
    {
        "order_id": int,
        "items": [{"sku_id": int, "quantity": int}, ...],
        "remarks": str (optional)
    }

    Returns:
        201: Return created (PENDING)
        409: Quantity exceeds returnable balance
    """
    data = json_body()
    require_fields(data, "order_id", "items")
    order_return = return_service.initiate_return(
        data["order_id"], data["items"], g.actor, remarks=data.get("remarks")
    )
    return jsonify(order_return.to_dict()), 201


@returns_bp.route("/<int:return_id>", methods=["GET"])
def get_return(return_id: int):
    return jsonify(return_service.get_return(return_id).to_dict()), 200


@returns_bp.route("/<int:return_id>/confirm", methods=["POST"])
@require_actor
def confirm_return(return_id: int):
    """
    Returns:
        200: Return confirmed, stock restored, wallet credited
        409: Already processed
    """
    order_return = return_service.confirm_return(return_id, g.actor)
    return jsonify(order_return.to_dict()), 200
