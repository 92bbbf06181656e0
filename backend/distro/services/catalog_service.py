# Overview: Service-layer operations for the catalog; SKUs, price tiers and unit price resolution.

from __future__ import annotations

import logging

from flask import current_app

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import SKU, PriceTier, PriceTierItem, Distributor, StockItem
from ..roles import require_plant_admin

logger = logging.getLogger(__name__)

SKU_FIELDS = ("name", "price_cents", "tax_rate_bps", "hsn_code")


def get_sku(sku_id: int) -> SKU:
    sku = db.session.get(SKU, sku_id)
    if sku is None:
        raise NotFound("SKU", sku_id)
    return sku


def list_skus() -> list[SKU]:
    return db.session.query(SKU).order_by(SKU.id).all()


def tier_prices(tier_id: int | None) -> dict[int, int]:
    """sku_id -> override price for a tier (empty for no tier)."""
    if tier_id is None:
        return {}
    rows = db.session.query(PriceTierItem).filter_by(tier_id=tier_id).all()
    return {row.sku_id: row.price_cents for row in rows}


def resolve_unit_price(distributor: Distributor, sku_id: int) -> int:
    """
    Unit price in cents for a distributor.

    The distributor's tier override wins; otherwise the SKU base price.
    Read-only.
    """
    sku = get_sku(sku_id)
    if distributor.price_tier_id is not None:
        override = (
            db.session.query(PriceTierItem.price_cents)
            .filter_by(tier_id=distributor.price_tier_id, sku_id=sku_id)
            .scalar()
        )
        if override is not None:
            return override
    return sku.price_cents


def _validate_sku_fields(data: dict) -> None:
    if "name" in data and not (data["name"] or "").strip():
        raise ValidationError("SKU name is required")
    if "price_cents" in data and (not isinstance(data["price_cents"], int) or data["price_cents"] < 0):
        raise ValidationError("price_cents must be a non-negative integer")
    if "tax_rate_bps" in data and (not isinstance(data["tax_rate_bps"], int) or data["tax_rate_bps"] < 0):
        raise ValidationError("tax_rate_bps must be a non-negative integer")


def add_sku(data: dict, role: str) -> SKU:
    """Create a SKU and an empty plant stock row for it."""
    require_plant_admin(role, "add SKUs")
    missing = [f for f in ("name", "price_cents") if f not in data]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")
    _validate_sku_fields(data)

    sku = SKU(
        name=data["name"].strip(),
        price_cents=data["price_cents"],
        tax_rate_bps=data.get("tax_rate_bps", 0),
        hsn_code=data.get("hsn_code", ""),
    )
    db.session.add(sku)
    db.session.flush()

    db.session.add(
        StockItem(
            location_id=current_app.config["PLANT_LOCATION_ID"],
            sku_id=sku.id,
            quantity=0,
            reserved=0,
        )
    )
    db.session.commit()
    logger.info("SKU %s created: %s", sku.id, sku.name)
    return sku


def update_sku(sku_id: int, data: dict, role: str) -> SKU:
    require_plant_admin(role, "edit SKUs")
    sku = get_sku(sku_id)
    _validate_sku_fields(data)
    for key in SKU_FIELDS:
        if key in data:
            setattr(sku, key, data[key])
    db.session.commit()
    return sku


# =============================================================================
# PRICE TIERS
# =============================================================================

def get_price_tier(tier_id: int) -> PriceTier:
    tier = db.session.get(PriceTier, tier_id)
    if tier is None:
        raise NotFound("PriceTier", tier_id)
    return tier


def list_price_tiers() -> list[PriceTier]:
    return db.session.query(PriceTier).order_by(PriceTier.name).all()


def add_price_tier(data: dict, role: str) -> PriceTier:
    require_plant_admin(role, "manage price tiers")
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Price tier name is required")
    tier = PriceTier(name=name, description=data.get("description"))
    db.session.add(tier)
    db.session.commit()
    return tier


def update_price_tier(tier_id: int, data: dict, role: str) -> PriceTier:
    require_plant_admin(role, "manage price tiers")
    tier = get_price_tier(tier_id)
    if "name" in data:
        if not (data["name"] or "").strip():
            raise ValidationError("Price tier name is required")
        tier.name = data["name"].strip()
    if "description" in data:
        tier.description = data["description"]
    db.session.commit()
    return tier


def delete_price_tier(tier_id: int, role: str) -> None:
    """Delete a tier, its overrides, and unassign it from distributors."""
    require_plant_admin(role, "manage price tiers")
    tier = get_price_tier(tier_id)
    db.session.query(Distributor).filter_by(price_tier_id=tier_id).update(
        {Distributor.price_tier_id: None}, synchronize_session=False
    )
    db.session.delete(tier)
    db.session.commit()
    logger.info("Price tier %s deleted", tier_id)


def list_price_tier_items(tier_id: int | None = None) -> list[PriceTierItem]:
    q = db.session.query(PriceTierItem)
    if tier_id is not None:
        q = q.filter_by(tier_id=tier_id)
    return q.order_by(PriceTierItem.tier_id, PriceTierItem.sku_id).all()


def set_price_tier_items(tier_id: int, items: list[dict], role: str) -> list[PriceTierItem]:
    """Replace a tier's override set wholesale."""
    require_plant_admin(role, "manage price tiers")
    tier = get_price_tier(tier_id)

    prices: dict[int, int] = {}
    for item in items:
        try:
            sku_id = int(item["sku_id"])
            price_cents = item["price_cents"]
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid price tier item: {item!r}") from e
        if not isinstance(price_cents, int) or price_cents < 0:
            raise ValidationError(f"price_cents must be a non-negative integer for SKU {sku_id}")
        get_sku(sku_id)
        prices[sku_id] = price_cents

    tier.items.clear()
    db.session.flush()
    for sku_id, price_cents in prices.items():
        tier.items.append(PriceTierItem(sku_id=sku_id, price_cents=price_cents))
    db.session.commit()
    return list(tier.items)
