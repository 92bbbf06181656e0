from __future__ import annotations

from ..extensions import db
from distro.time_utils import to_utc_z, utcnow


# Stock movement types
MOVEMENT_PRODUCTION = "PRODUCTION"
MOVEMENT_TRANSFER_OUT = "TRANSFER_OUT"
MOVEMENT_TRANSFER_IN = "TRANSFER_IN"
MOVEMENT_SALE = "SALE"
MOVEMENT_RETURN = "RETURN"
MOVEMENT_RESERVED = "RESERVED"
MOVEMENT_UNRESERVED = "UNRESERVED"

# Transfer status constants
TRANSFER_STATUS_PENDING = "Pending"
TRANSFER_STATUS_DELIVERED = "Delivered"


class StockItem(db.Model):
    """
    Per-location stock row.

    quantity is physical on-hand; reserved is earmarked for pending orders
    and dispatches. Both are caches of the StockLedgerEntry log for the
    same (location_id, sku_id).

    INVARIANT: 0 <= reserved <= quantity after every committed operation.
    Only available = quantity - reserved may be offered to new commitments.
    """
    __tablename__ = "stock_items"
    __table_args__ = (
        db.UniqueConstraint("location_id", "sku_id", name="uq_stock_items_location_sku"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    location_id = db.Column(db.String(32), nullable=False, index=True)
    sku_id = db.Column(db.Integer, db.ForeignKey("skus.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    reserved = db.Column(db.Integer, nullable=False, default=0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    sku = db.relationship("SKU")

    @property
    def available(self) -> int:
        return self.quantity - self.reserved

    def __repr__(self) -> str:
        return (
            f"<StockItem location={self.location_id} sku_id={self.sku_id} "
            f"quantity={self.quantity} reserved={self.reserved}>"
        )

    def to_dict(self) -> dict:
        return {
            "location_id": self.location_id,
            "sku_id": self.sku_id,
            "sku_name": self.sku.name if self.sku else None,
            "quantity": self.quantity,
            "reserved": self.reserved,
            "available": self.available,
            "updated_at": to_utc_z(self.updated_at),
        }


class StockLedgerEntry(db.Model):
    """
    Append-only stock movement log.

    quantity_change moves physical stock; reserved_change moves the
    reservation. Pure reservation entries (RESERVED/UNRESERVED) carry
    quantity_change = 0. Replaying both columns from zero reproduces the
    StockItem caches.

    Rows are never updated or deleted. order_id/transfer_id/return_id are
    plain references so the trail survives document deletion.
    """
    __tablename__ = "stock_ledger_entries"
    __table_args__ = (
        db.Index("ix_stock_ledger_location_sku_occurred", "location_id", "sku_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    location_id = db.Column(db.String(32), nullable=False, index=True)
    sku_id = db.Column(db.Integer, db.ForeignKey("skus.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False, index=True)
    quantity_change = db.Column(db.Integer, nullable=False, default=0)
    reserved_change = db.Column(db.Integer, nullable=False, default=0)
    balance_after = db.Column(db.Integer, nullable=False)
    reserved_after = db.Column(db.Integer, nullable=False)

    actor = db.Column(db.String(120), nullable=False)
    notes = db.Column(db.String(255), nullable=True)

    order_id = db.Column(db.Integer, nullable=True, index=True)
    transfer_id = db.Column(db.Integer, nullable=True, index=True)
    return_id = db.Column(db.Integer, nullable=True, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "occurred_at": to_utc_z(self.occurred_at),
            "location_id": self.location_id,
            "sku_id": self.sku_id,
            "movement_type": self.movement_type,
            "quantity_change": self.quantity_change,
            "reserved_change": self.reserved_change,
            "balance_after": self.balance_after,
            "reserved_after": self.reserved_after,
            "actor": self.actor,
            "notes": self.notes,
            "order_id": self.order_id,
            "transfer_id": self.transfer_id,
            "return_id": self.return_id,
        }


class StockTransfer(db.Model):
    """
    Plant -> store dispatch.

    LIFECYCLE:
    1. Pending: plant stock reserved for every line
    2. Delivered: plant quantity and reservation deducted, destination
       quantity credited (paired TRANSFER_OUT / TRANSFER_IN entries)
    """
    __tablename__ = "stock_transfers"
    __table_args__ = (
        db.Index("ix_stock_transfers_store_status", "destination_store_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    source_location_id = db.Column(db.String(32), nullable=False)
    destination_store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False)

    status = db.Column(db.String(16), nullable=False, default=TRANSFER_STATUS_PENDING, index=True)
    total_value_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    initiated_by = db.Column(db.String(120), nullable=False)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_by = db.Column(db.String(120), nullable=True)

    destination_store = db.relationship("Store")
    items = db.relationship(
        "StockTransferItem",
        backref="transfer",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="StockTransferItem.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "source_location_id": self.source_location_id,
            "destination_store_id": self.destination_store_id,
            "destination_store_name": self.destination_store.name if self.destination_store else None,
            "status": self.status,
            "total_value_cents": self.total_value_cents,
            "created_at": to_utc_z(self.created_at),
            "initiated_by": self.initiated_by,
            "delivered_at": to_utc_z(self.delivered_at) if self.delivered_at else None,
            "delivered_by": self.delivered_by,
        }


class StockTransferItem(db.Model):
    __tablename__ = "stock_transfer_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transfer_id = db.Column(db.Integer, db.ForeignKey("stock_transfers.id"), nullable=False, index=True)
    sku_id = db.Column(db.Integer, db.ForeignKey("skus.id"), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    # Base price of the SKU at time of dispatch
    unit_price_cents = db.Column(db.Integer, nullable=False)
    is_freebie = db.Column(db.Boolean, nullable=False, default=False)

    sku = db.relationship("SKU")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transfer_id": self.transfer_id,
            "sku_id": self.sku_id,
            "sku_name": self.sku.name if self.sku else None,
            "hsn_code": self.sku.hsn_code if self.sku else None,
            "tax_rate_bps": self.sku.tax_rate_bps if self.sku else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "is_freebie": self.is_freebie,
        }
