# backend/distro/routes/transfers.py
"""
Plant -> store dispatch API routes.
"""
from flask import Blueprint, request, jsonify, g

from distro.decorators import require_actor, json_body, require_fields
from distro.services import transfer_service


transfers_bp = Blueprint("transfers", __name__, url_prefix="/api/transfers")


@transfers_bp.route("", methods=["GET"])
def list_transfers():
    transfers = transfer_service.list_transfers(
        store_id=request.args.get("store_id", type=int),
        status=request.args.get("status"),
    )
    return jsonify([t.to_dict() for t in transfers]), 200


@transfers_bp.route("", methods=["POST"])
@require_actor
def create_transfer():
    """
    Create a dispatch from the plant.

    Request body:
    {
        "store_id": int,
        "items": [{"sku_id": int, "quantity": int}, ...]
    }

    Returns:
        201: Dispatch created (Pending), plant stock reserved
        409: Insufficient plant stock
    """
    data = json_body()
    require_fields(data, "store_id", "items")
    transfer = transfer_service.create_transfer(data["store_id"], data["items"], g.actor)
    return jsonify(transfer.to_dict()), 201


@transfers_bp.route("/<int:transfer_id>", methods=["GET"])
def get_transfer(transfer_id: int):
    return jsonify(transfer_service.get_transfer(transfer_id).to_dict()), 200


@transfers_bp.route("/<int:transfer_id>/items", methods=["GET"])
def list_transfer_items(transfer_id: int):
    return jsonify([item.to_dict() for item in transfer_service.list_transfer_items(transfer_id)]), 200


@transfers_bp.route("/<int:transfer_id>/status", methods=["POST"])
@require_actor
def update_transfer_status(transfer_id: int):
    """
    Request body:
    {
        "status": "Delivered"
    }
    """
    data = json_body()
    require_fields(data, "status")
    transfer = transfer_service.update_transfer_status(transfer_id, data["status"], g.actor)
    return jsonify(transfer.to_dict()), 200


@transfers_bp.route("/<int:transfer_id>/dispatch-note", methods=["GET"])
def get_dispatch_note(transfer_id: int):
    return jsonify(transfer_service.get_dispatch_note_data(transfer_id)), 200
