# backend/distro/services/transfer_service.py
"""
Plant -> store dispatch service.

WHY: Stores are replenished from the central plant. A dispatch reserves
plant stock while in transit and moves it on delivery, with a ledger entry
at each end.

LIFECYCLE:
1. Pending: plant stock reserved per line (RESERVED entries)
2. Delivered: plant quantity and reservation deducted (TRANSFER_OUT),
   destination quantity credited (TRANSFER_IN); both entries share one
   timestamp. Delivering again is a no-op.

Lines are valued at the SKU base price, without tax.
"""
from __future__ import annotations

import logging

from ..errors import InvalidState, NotFound, ValidationError
from ..extensions import db
from ..models import StockTransfer, StockTransferItem
from ..models.accounts import store_location_id
from ..models.stock import (
    MOVEMENT_TRANSFER_IN,
    MOVEMENT_TRANSFER_OUT,
    TRANSFER_STATUS_DELIVERED,
    TRANSFER_STATUS_PENDING,
)
from ..time_utils import utcnow
from . import stock_service
from .catalog_service import get_sku
from .concurrency import atomic, engine_locks, lock_for_update
from .order_service import normalize_basket
from .wallet_service import get_store

logger = logging.getLogger(__name__)

TRANSFER_STATUSES = (TRANSFER_STATUS_PENDING, TRANSFER_STATUS_DELIVERED)


def get_transfer(transfer_id: int, *, lock: bool = False) -> StockTransfer:
    q = db.session.query(StockTransfer).filter_by(id=transfer_id)
    if lock:
        q = lock_for_update(q)
    transfer = q.first()
    if transfer is None:
        raise NotFound("StockTransfer", transfer_id)
    return transfer


def list_transfers(store_id: int | None = None, status: str | None = None) -> list[StockTransfer]:
    q = db.session.query(StockTransfer)
    if store_id is not None:
        q = q.filter_by(destination_store_id=store_id)
    if status is not None:
        q = q.filter_by(status=status)
    return q.order_by(StockTransfer.created_at.desc(), StockTransfer.id.desc()).all()


def list_transfer_items(transfer_id: int) -> list[StockTransferItem]:
    return list(get_transfer(transfer_id).items)


def create_transfer(store_id: int, items, actor: str) -> StockTransfer:
    """
    Create a Pending dispatch to a store.

    Raises:
        InsufficientStock: plant availability below a requested quantity
    """
    quantities = normalize_basket(items)
    get_store(store_id)
    source = stock_service.plant_location_id()

    def _op():
        stock_service.check_available(source, quantities)

        transfer = StockTransfer(
            source_location_id=source,
            destination_store_id=store_id,
            status=TRANSFER_STATUS_PENDING,
            created_at=utcnow(),
            initiated_by=actor,
        )
        total = 0
        for sku_id in sorted(quantities):
            sku = get_sku(sku_id)
            transfer.items.append(
                StockTransferItem(
                    sku_id=sku_id,
                    quantity=quantities[sku_id],
                    unit_price_cents=sku.price_cents,
                    is_freebie=False,
                )
            )
            total += quantities[sku_id] * sku.price_cents
        transfer.total_value_cents = total
        db.session.add(transfer)
        db.session.flush()

        for item in transfer.items:
            stock_service.reserve(
                source,
                item.sku_id,
                item.quantity,
                actor=actor,
                transfer_id=transfer.id,
                notes=f"Reserved {item.quantity} for dispatch {transfer.id}",
            )
        return transfer

    with engine_locks(*stock_service.stock_keys(source, quantities)):
        transfer = atomic(_op)

    logger.info("Dispatch %s created for store %s by %s", transfer.id, store_id, actor)
    return transfer


def update_transfer_status(transfer_id: int, status: str, actor: str) -> StockTransfer:
    """Only Pending -> Delivered is a real transition; same status is a no-op."""
    if status not in TRANSFER_STATUSES:
        raise ValidationError(f"Invalid transfer status {status!r}", allowed=list(TRANSFER_STATUSES))
    transfer = get_transfer(transfer_id)
    if transfer.status == status:
        return transfer
    if status != TRANSFER_STATUS_DELIVERED:
        raise InvalidState(
            f"Cannot move dispatch {transfer_id} from {transfer.status} to {status}",
            transfer_id=transfer_id,
            status=transfer.status,
        )
    return mark_delivered(transfer_id, actor)


def mark_delivered(transfer_id: int, actor: str) -> StockTransfer:
    transfer = get_transfer(transfer_id)
    source = transfer.source_location_id
    destination = store_location_id(transfer.destination_store_id)
    sku_ids = {item.sku_id for item in transfer.items}
    keys = stock_service.stock_keys(source, sku_ids) + stock_service.stock_keys(destination, sku_ids)

    def _op():
        transfer = get_transfer(transfer_id, lock=True)
        if transfer.status == TRANSFER_STATUS_DELIVERED:
            return transfer, False

        now = utcnow()
        transfer.status = TRANSFER_STATUS_DELIVERED
        transfer.delivered_at = now
        transfer.delivered_by = actor
        for item in transfer.items:
            stock_service.consume_reserved(
                source,
                item.sku_id,
                item.quantity,
                actor=actor,
                movement_type=MOVEMENT_TRANSFER_OUT,
                occurred_at=now,
                transfer_id=transfer.id,
                notes=f"Dispatch {transfer.id} to store {transfer.destination_store_id}",
            )
            stock_service.receive(
                destination,
                item.sku_id,
                item.quantity,
                actor=actor,
                movement_type=MOVEMENT_TRANSFER_IN,
                occurred_at=now,
                transfer_id=transfer.id,
                notes=f"Received from dispatch {transfer.id}",
            )
        return transfer, True

    with engine_locks(*keys):
        transfer, changed = atomic(_op)

    if changed:
        logger.info("Dispatch %s delivered to store %s by %s", transfer_id, transfer.destination_store_id, actor)
    return transfer


def get_dispatch_note_data(transfer_id: int) -> dict:
    """Transfer, destination store and enriched lines for dispatch notes."""
    transfer = get_transfer(transfer_id)
    return {
        "transfer": transfer.to_dict(),
        "store": transfer.destination_store.to_dict(),
        "items": [item.to_dict() for item in transfer.items],
    }
