from __future__ import annotations

from ..extensions import db
from distro.time_utils import to_utc_z, utcnow


class SKU(db.Model):
    """
    Sellable stock-keeping unit.

    Prices are authoritative in cents; tax is stored in basis points
    (18% GST = 1800) so that line totals can be computed exactly.
    hsn_code is the tax classification code printed on invoices.
    """
    __tablename__ = "skus"
    __table_args__ = (
        db.Index("ix_skus_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False)
    tax_rate_bps = db.Column(db.Integer, nullable=False, default=0)
    hsn_code = db.Column(db.String(32), nullable=False, default="")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<SKU id={self.id} name={self.name!r} price_cents={self.price_cents}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "price_cents": self.price_cents,
            "tax_rate_bps": self.tax_rate_bps,
            "hsn_code": self.hsn_code,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PriceTier(db.Model):
    """Named distributor price group. Overrides live in PriceTierItem."""
    __tablename__ = "price_tiers"
    __table_args__ = (
        db.UniqueConstraint("name", name="uq_price_tiers_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    items = db.relationship(
        "PriceTierItem",
        backref="tier",
        lazy=True,
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "created_at": to_utc_z(self.created_at),
        }


class PriceTierItem(db.Model):
    """(tier, SKU) -> unit price override."""
    __tablename__ = "price_tier_items"
    __table_args__ = (
        db.UniqueConstraint("tier_id", "sku_id", name="uq_price_tier_items_tier_sku"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tier_id = db.Column(db.Integer, db.ForeignKey("price_tiers.id"), nullable=False, index=True)
    sku_id = db.Column(db.Integer, db.ForeignKey("skus.id"), nullable=False, index=True)
    price_cents = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "tier_id": self.tier_id,
            "sku_id": self.sku_id,
            "price_cents": self.price_cents,
        }
