# backend/distro/routes/catalog.py
"""
Catalog API routes: SKUs and price tiers.
"""
from flask import Blueprint, jsonify, g

from distro.decorators import require_actor, json_body
from distro.services import catalog_service


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


@catalog_bp.route("/skus", methods=["GET"])
def list_skus():
    return jsonify([sku.to_dict() for sku in catalog_service.list_skus()]), 200


@catalog_bp.route("/skus/<int:sku_id>", methods=["GET"])
def get_sku(sku_id: int):
    return jsonify(catalog_service.get_sku(sku_id).to_dict()), 200


@catalog_bp.route("/skus", methods=["POST"])
@require_actor
def create_sku():
    """
    Create a SKU (Plant Admin).

    Request body:
    {
        "name": str,
        "price_cents": int,
        "tax_rate_bps": int (optional, default 0),
        "hsn_code": str (optional)
    }

    Returns:
        201: SKU created (with an empty plant stock row)
        400: Invalid request
        403: Forbidden
    """
    sku = catalog_service.add_sku(json_body(), g.role)
    return jsonify(sku.to_dict()), 201


@catalog_bp.route("/skus/<int:sku_id>", methods=["PUT"])
@require_actor
def update_sku(sku_id: int):
    sku = catalog_service.update_sku(sku_id, json_body(), g.role)
    return jsonify(sku.to_dict()), 200


@catalog_bp.route("/price-tiers", methods=["GET"])
def list_price_tiers():
    return jsonify([tier.to_dict() for tier in catalog_service.list_price_tiers()]), 200


@catalog_bp.route("/price-tiers", methods=["POST"])
@require_actor
def create_price_tier():
    tier = catalog_service.add_price_tier(json_body(), g.role)
    return jsonify(tier.to_dict()), 201


@catalog_bp.route("/price-tiers/<int:tier_id>", methods=["PUT"])
@require_actor
def update_price_tier(tier_id: int):
    tier = catalog_service.update_price_tier(tier_id, json_body(), g.role)
    return jsonify(tier.to_dict()), 200


@catalog_bp.route("/price-tiers/<int:tier_id>", methods=["DELETE"])
@require_actor
def delete_price_tier(tier_id: int):
    """Delete a tier; distributors on it fall back to base prices."""
    catalog_service.delete_price_tier(tier_id, g.role)
    return "", 204


@catalog_bp.route("/price-tiers/<int:tier_id>/items", methods=["GET"])
def list_price_tier_items(tier_id: int):
    catalog_service.get_price_tier(tier_id)
    items = catalog_service.list_price_tier_items(tier_id)
    return jsonify([item.to_dict() for item in items]), 200


@catalog_bp.route("/price-tiers/<int:tier_id>/items", methods=["PUT"])
@require_actor
def set_price_tier_items(tier_id: int):
    """
    Replace a tier's overrides.

    Request body:
    {
        "items": [{"sku_id": int, "price_cents": int}, ...]
    }
    """
    items = catalog_service.set_price_tier_items(tier_id, json_body().get("items") or [], g.role)
    return jsonify([item.to_dict() for item in items]), 200
