# backend/distro/routes/orders.py
"""
Order API routes: placement, edits, delivery, deletion and invoices.
"""
from flask import Blueprint, request, jsonify, g

from distro.decorators import require_actor, json_body, require_fields
from distro.services import order_service


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _order_payload(order) -> dict:
    payload = order.to_dict()
    payload["items"] = [item.to_dict() for item in order.items]
    return payload


@orders_bp.route("", methods=["GET"])
def list_orders():
    """
    List orders, newest first.

    Query params:
        distributor_id: int (optional)
        status: Pending | Delivered (optional)
    """
    orders = order_service.list_orders(
        distributor_id=request.args.get("distributor_id", type=int),
        status=request.args.get("status"),
    )
    return jsonify([order.to_dict() for order in orders]), 200


@orders_bp.route("", methods=["POST"])
@require_actor
def place_order():
    """
    Place an order.

    Request body:
    {
        "distributor_id": int,
        "items": [{"sku_id": int, "quantity": int}, ...]
    }

    Returns:
        201: Order placed (Pending), stock reserved, wallet debited
        400: Invalid basket
        404: Distributor or SKU not found
        409: Insufficient funds or stock (nothing written)
    """
    data = json_body()
    require_fields(data, "distributor_id", "items")
    order = order_service.place_order(data["distributor_id"], data["items"], g.actor)
    return jsonify(_order_payload(order)), 201


@orders_bp.route("/<int:order_id>", methods=["GET"])
def get_order(order_id: int):
    return jsonify(_order_payload(order_service.get_order(order_id))), 200


@orders_bp.route("/<int:order_id>/items", methods=["GET"])
def list_order_items(order_id: int):
    return jsonify([item.to_dict() for item in order_service.list_order_items(order_id)]), 200


@orders_bp.route("/<int:order_id>/items", methods=["PUT"])
@require_actor
def update_order_items(order_id: int):
    """
    Replace a Pending order's basket.

    Request body:
    {
        "items": [{"sku_id": int, "quantity": int}, ...]
    }
    """
    data = json_body()
    require_fields(data, "items")
    order = order_service.update_order_items(order_id, data["items"], g.actor)
    return jsonify(_order_payload(order)), 200


@orders_bp.route("/<int:order_id>/status", methods=["POST"])
@require_actor
def update_order_status(order_id: int):
    """
    Request body:
    {
        "status": "Delivered"
    }
    """
    data = json_body()
    require_fields(data, "status")
    order = order_service.update_order_status(order_id, data["status"], g.actor)
    return jsonify(order.to_dict()), 200


@orders_bp.route("/<int:order_id>", methods=["DELETE"])
@require_actor
def delete_order(order_id: int):
    """
    Delete an order and refund its total.

    Request body (optional):
    {
        "remarks": str
    }
    """
    order_service.delete_order(order_id, json_body().get("remarks"), g.actor)
    return "", 204


@orders_bp.route("/<int:order_id>/invoice", methods=["GET"])
def get_invoice(order_id: int):
    return jsonify(order_service.get_invoice_data(order_id)), 200
