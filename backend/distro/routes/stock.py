# backend/distro/routes/stock.py
"""
Stock API routes: levels, ledger, production and reconciliation.
"""
from flask import Blueprint, request, jsonify, g

from distro.decorators import require_actor, json_body, require_fields
from distro.services import stock_service


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


@stock_bp.route("/<location_id>", methods=["GET"])
def list_stock(location_id: str):
    """Stock rows at a location ("plant" or "store-<id>")."""
    return jsonify([item.to_dict() for item in stock_service.list_stock(location_id)]), 200


@stock_bp.route("/<location_id>/ledger", methods=["GET"])
def list_stock_ledger(location_id: str):
    entries = stock_service.list_stock_ledger(location_id, sku_id=request.args.get("sku_id", type=int))
    return jsonify([entry.to_dict() for entry in entries]), 200


@stock_bp.route("/production", methods=["POST"])
@require_actor
def add_production():
    """
    Record plant production.

    Request body:
    {
        "items": [{"sku_id": int, "quantity": int}, ...]
    }
    """
    data = json_body()
    require_fields(data, "items")
    entries = stock_service.add_plant_production(data["items"], g.actor)
    return jsonify([entry.to_dict() for entry in entries]), 201


@stock_bp.route("/reconcile", methods=["GET"])
def reconcile():
    drift = stock_service.reconcile_stock(request.args.get("location_id"))
    return jsonify({"ok": not drift, "drift": drift}), 200
