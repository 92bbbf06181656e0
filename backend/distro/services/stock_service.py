# Overview: Service-layer operations for the stock ledger; reservations, movements and replay.

from __future__ import annotations

import logging
from datetime import datetime

from flask import current_app

from ..errors import InsufficientStock, LedgerInvariantError, ValidationError
from ..extensions import db
from ..models import StockItem, StockLedgerEntry, Distributor
from ..models.accounts import store_location_id
from ..models.stock import (
    MOVEMENT_PRODUCTION,
    MOVEMENT_RESERVED,
    MOVEMENT_UNRESERVED,
    MOVEMENT_SALE,
)
from ..time_utils import utcnow
from .concurrency import atomic, engine_locks, lock_for_update, stock_lock_key
"""
Stock Ledger Invariants (authoritative)

- StockItem(location_id, sku_id) caches quantity (physical) and reserved.
- Every change to either cache appends exactly one StockLedgerEntry carrying
  quantity_change and reserved_change; entries are never updated or deleted.
- Replaying quantity_change / reserved_change from zero reproduces both caches.
- 0 <= reserved <= quantity after every write; a violation raises
  LedgerInvariantError before the unit of work can commit.
- available = quantity - reserved is the only quantity offered to new
  commitments. A missing row has nothing available.

The primitives in this module do not lock or commit. Engine operations call
them while holding the stock locks for every (location, sku) they touch.
"""

logger = logging.getLogger(__name__)


def plant_location_id() -> str:
    return current_app.config["PLANT_LOCATION_ID"]


def resolve_location_id(distributor: Distributor) -> str:
    """Orders ship from the distributor's store, else the central plant."""
    if distributor.store_id is not None:
        return store_location_id(distributor.store_id)
    return plant_location_id()


def stock_keys(location_id: str, sku_ids) -> list[tuple]:
    return [stock_lock_key(location_id, sku_id) for sku_id in sku_ids]


def get_stock_item(location_id: str, sku_id: int, *, lock: bool = False) -> StockItem | None:
    q = db.session.query(StockItem).filter_by(location_id=location_id, sku_id=sku_id)
    if lock:
        q = lock_for_update(q)
    return q.first()


def _get_or_create_stock_item(location_id: str, sku_id: int) -> StockItem:
    item = get_stock_item(location_id, sku_id, lock=True)
    if item is None:
        item = StockItem(location_id=location_id, sku_id=sku_id, quantity=0, reserved=0)
        db.session.add(item)
        db.session.flush()
    return item


def available_quantity(location_id: str, sku_id: int) -> int:
    item = get_stock_item(location_id, sku_id)
    return item.available if item is not None else 0


def check_available(location_id: str, requirements: dict[int, int]) -> None:
    """Raise InsufficientStock for the first SKU whose need exceeds availability."""
    for sku_id, required in requirements.items():
        if required <= 0:
            continue
        item = get_stock_item(location_id, sku_id, lock=True)
        available = item.available if item is not None else 0
        if item is None or available < required:
            raise InsufficientStock(sku_id, location_id, required, available)


def _check_invariant(item: StockItem) -> None:
    if not (0 <= item.reserved <= item.quantity):
        raise LedgerInvariantError(
            f"Stock invariant violated at {item.location_id} for SKU {item.sku_id}: "
            f"quantity={item.quantity}, reserved={item.reserved}",
            location_id=item.location_id,
            sku_id=item.sku_id,
            quantity=item.quantity,
            reserved=item.reserved,
        )


def _append_entry(
    item: StockItem,
    *,
    movement_type: str,
    quantity_change: int,
    reserved_change: int,
    actor: str,
    notes: str | None = None,
    occurred_at: datetime | None = None,
    order_id: int | None = None,
    transfer_id: int | None = None,
    return_id: int | None = None,
) -> StockLedgerEntry:
    item.quantity += quantity_change
    item.reserved += reserved_change
    _check_invariant(item)

    entry = StockLedgerEntry(
        occurred_at=occurred_at or utcnow(),
        location_id=item.location_id,
        sku_id=item.sku_id,
        movement_type=movement_type,
        quantity_change=quantity_change,
        reserved_change=reserved_change,
        balance_after=item.quantity,
        reserved_after=item.reserved,
        actor=actor,
        notes=notes,
        order_id=order_id,
        transfer_id=transfer_id,
        return_id=return_id,
    )
    db.session.add(entry)
    return entry


def reserve(location_id: str, sku_id: int, quantity: int, *, actor: str, **refs) -> StockLedgerEntry:
    """Earmark available stock. Caller must have checked availability."""
    item = get_stock_item(location_id, sku_id, lock=True)
    if item is None or item.available < quantity:
        raise InsufficientStock(sku_id, location_id, quantity, item.available if item else 0)
    return _append_entry(
        item,
        movement_type=MOVEMENT_RESERVED,
        quantity_change=0,
        reserved_change=quantity,
        actor=actor,
        **refs,
    )


def unreserve(location_id: str, sku_id: int, quantity: int, *, actor: str, **refs) -> StockLedgerEntry | None:
    """Release a reservation, clamped so reserved never drops below zero."""
    item = get_stock_item(location_id, sku_id, lock=True)
    if item is None:
        logger.warning("No stock row at %s for SKU %s; nothing to unreserve", location_id, sku_id)
        return None
    released = min(quantity, item.reserved)
    return _append_entry(
        item,
        movement_type=MOVEMENT_UNRESERVED,
        quantity_change=0,
        reserved_change=-released,
        actor=actor,
        **refs,
    )


def consume_reserved(
    location_id: str,
    sku_id: int,
    quantity: int,
    *,
    actor: str,
    movement_type: str = MOVEMENT_SALE,
    **refs,
) -> StockLedgerEntry:
    """Turn a reservation into a physical deduction (delivery)."""
    item = get_stock_item(location_id, sku_id, lock=True)
    if item is None:
        raise LedgerInvariantError(
            f"No stock row at {location_id} for SKU {sku_id} to deduct from",
            location_id=location_id,
            sku_id=sku_id,
        )
    released = min(quantity, item.reserved)
    return _append_entry(
        item,
        movement_type=movement_type,
        quantity_change=-quantity,
        reserved_change=-released,
        actor=actor,
        **refs,
    )


def receive(
    location_id: str,
    sku_id: int,
    quantity: int,
    *,
    actor: str,
    movement_type: str,
    **refs,
) -> StockLedgerEntry:
    """Add physical stock (production, return, inbound transfer)."""
    if quantity <= 0:
        raise ValidationError("Quantity must be positive")
    item = _get_or_create_stock_item(location_id, sku_id)
    return _append_entry(
        item,
        movement_type=movement_type,
        quantity_change=quantity,
        reserved_change=0,
        actor=actor,
        **refs,
    )


# =============================================================================
# ENGINE OPERATIONS
# =============================================================================

def add_plant_production(items: list[dict], actor: str) -> list[StockLedgerEntry]:
    """Record daily production into plant stock."""
    from .catalog_service import get_sku

    quantities: dict[int, int] = {}
    for item in items:
        try:
            sku_id = int(item["sku_id"])
            quantity = item["quantity"]
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(f"Invalid production line: {item!r}") from e
        if not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(f"Quantity for SKU {sku_id} must be a positive integer")
        quantities[sku_id] = quantities.get(sku_id, 0) + quantity
    if not quantities:
        raise ValidationError("No production lines given")

    location_id = plant_location_id()

    def _op():
        entries = []
        for sku_id, quantity in quantities.items():
            get_sku(sku_id)
            entries.append(
                receive(
                    location_id,
                    sku_id,
                    quantity,
                    actor=actor,
                    movement_type=MOVEMENT_PRODUCTION,
                    notes="Daily Production",
                )
            )
        return entries

    with engine_locks(*stock_keys(location_id, quantities)):
        entries = atomic(_op)
    logger.info("Plant production recorded by %s: %s", actor, quantities)
    return entries


# =============================================================================
# QUERIES & REPLAY
# =============================================================================

def list_stock(location_id: str) -> list[StockItem]:
    return (
        db.session.query(StockItem)
        .filter_by(location_id=location_id)
        .order_by(StockItem.sku_id)
        .all()
    )


def list_stock_ledger(location_id: str, sku_id: int | None = None) -> list[StockLedgerEntry]:
    q = db.session.query(StockLedgerEntry).filter_by(location_id=location_id)
    if sku_id is not None:
        q = q.filter_by(sku_id=sku_id)
    return q.order_by(StockLedgerEntry.occurred_at, StockLedgerEntry.id).all()


def replay_stock(location_id: str) -> dict[int, tuple[int, int]]:
    """sku_id -> (quantity, reserved) rebuilt from the ledger alone."""
    totals: dict[int, list[int]] = {}
    for entry in list_stock_ledger(location_id):
        row = totals.setdefault(entry.sku_id, [0, 0])
        row[0] += entry.quantity_change
        row[1] += entry.reserved_change
    return {sku_id: (q, r) for sku_id, (q, r) in totals.items()}


def reconcile_stock(location_id: str | None = None) -> list[dict]:
    """Report every stock row whose cache disagrees with its ledger replay."""
    if location_id is None:
        locations = [row[0] for row in db.session.query(StockItem.location_id).distinct().all()]
    else:
        locations = [location_id]

    drift = []
    for loc in locations:
        replayed = replay_stock(loc)
        for item in list_stock(loc):
            expected = replayed.get(item.sku_id, (0, 0))
            if (item.quantity, item.reserved) != expected:
                drift.append({
                    "location_id": loc,
                    "sku_id": item.sku_id,
                    "cached_quantity": item.quantity,
                    "cached_reserved": item.reserved,
                    "replayed_quantity": expected[0],
                    "replayed_reserved": expected[1],
                })
    return drift
