# Overview: Service-layer operations for distributor returns; credit calculation and confirmation.

"""
Return Processing

LIFECYCLE:
1. initiate_return (PENDING): validates quantities against the order's
   returnable balance and snapshots the credit. Nothing moves yet.
2. confirm_return (CONFIRMED): bumps returned_quantity on the order lines,
   puts the stock back at the order's location as RETURN entries and
   credits the wallet with a RETURN_CREDIT row. One-way.

Freebie lines are never returnable. Returned stock goes to physical
quantity only; it was never reserved.

Credit per line mirrors order pricing:
credit = round_half_up(sum(qty * unit_price * (10000 + tax_bps)) / 10000)
"""

from __future__ import annotations

import logging

from ..errors import AlreadyProcessed, ExceedsReturnable, NotFound, ValidationError
from ..extensions import db
from ..models import Order, OrderItem, OrderReturn, OrderReturnItem
from ..models.orders import RETURN_STATUS_CONFIRMED, RETURN_STATUS_PENDING
from ..models.stock import MOVEMENT_RETURN
from ..models.wallet import TX_RETURN_CREDIT
from ..time_utils import utcnow
from . import stock_service
from .concurrency import atomic, engine_locks, lock_for_update
from .order_service import compute_total_cents, get_order, normalize_basket
from .wallet_service import append_transaction, distributor_wallet_key, get_distributor

logger = logging.getLogger(__name__)

RETURN_STATUSES = (RETURN_STATUS_PENDING, RETURN_STATUS_CONFIRMED)


def _returnable_line(order: Order, sku_id: int) -> OrderItem:
    for item in order.items:
        if item.sku_id == sku_id and not item.is_freebie:
            return item
    raise ValidationError(
        f"SKU {sku_id} is not a returnable item of order {order.id}",
        order_id=order.id,
        sku_id=sku_id,
    )


def _check_returnable(order: Order, quantities: dict[int, int]) -> dict[int, OrderItem]:
    lines = {}
    for sku_id, quantity in quantities.items():
        line = _returnable_line(order, sku_id)
        if quantity > line.returnable_quantity:
            raise ExceedsReturnable(sku_id, quantity, line.returnable_quantity)
        lines[sku_id] = line
    return lines


def get_return(return_id: int, *, lock: bool = False) -> OrderReturn:
    q = db.session.query(OrderReturn).filter_by(id=return_id)
    if lock:
        q = lock_for_update(q)
    order_return = q.first()
    if order_return is None:
        raise NotFound("OrderReturn", return_id)
    return order_return


def list_returns(status: str | None = None, distributor_id: int | None = None) -> list[OrderReturn]:
    if status is not None and status not in RETURN_STATUSES:
        raise ValidationError(f"Invalid return status {status!r}", allowed=list(RETURN_STATUSES))
    q = db.session.query(OrderReturn)
    if status is not None:
        q = q.filter_by(status=status)
    if distributor_id is not None:
        q = q.filter_by(distributor_id=distributor_id)
    return q.order_by(OrderReturn.initiated_at.desc(), OrderReturn.id.desc()).all()


def initiate_return(order_id: int, items, actor: str, remarks: str | None = None) -> OrderReturn:
    """Create a PENDING return and snapshot its credit; no stock or wallet effect."""
    quantities = normalize_basket(items)
    order = get_order(order_id)

    with engine_locks(distributor_wallet_key(order.distributor_id)):
        def _op():
            order = get_order(order_id, lock=True)
            lines = _check_returnable(order, quantities)

            order_return = OrderReturn(
                order_id=order.id,
                distributor_id=order.distributor_id,
                status=RETURN_STATUS_PENDING,
                remarks=remarks,
                initiated_by=actor,
                initiated_at=utcnow(),
                credit_amount_cents=0,
            )
            for sku_id in sorted(quantities):
                line = lines[sku_id]
                order_return.items.append(
                    OrderReturnItem(
                        sku_id=sku_id,
                        quantity=quantities[sku_id],
                        unit_price_cents=line.unit_price_cents,
                        tax_rate_bps=line.tax_rate_bps,
                    )
                )
            order_return.credit_amount_cents = compute_total_cents(order_return.items)
            db.session.add(order_return)
            return order_return

        try:
            order_return = atomic(_op)
        except ExceedsReturnable as e:
            logger.warning("Return against order %s rejected: %s", order_id, e.message)
            raise

    logger.info(
        "Return %s initiated on order %s by %s: credit %s cents",
        order_return.id, order_id, actor, order_return.credit_amount_cents,
    )
    return order_return


def confirm_return(return_id: int, actor: str) -> OrderReturn:
    """
    Apply a PENDING return: restock, credit wallet, mark CONFIRMED.

    A return that is not PENDING raises AlreadyProcessed and changes nothing.
    """
    order_return = get_return(return_id)
    distributor_id = order_return.distributor_id

    with engine_locks(distributor_wallet_key(distributor_id)):
        order_return = get_return(return_id, lock=True)
        if order_return.status != RETURN_STATUS_PENDING:
            raise AlreadyProcessed(
                f"Return {return_id} already processed",
                return_id=return_id,
                status=order_return.status,
            )
        order = get_order(order_return.order_id)
        location_id = order.location_id
        sku_ids = [item.sku_id for item in order_return.items]

        def _op():
            order_return = get_return(return_id, lock=True)
            order = get_order(order_return.order_id, lock=True)
            quantities = {item.sku_id: item.quantity for item in order_return.items}
            lines = _check_returnable(order, quantities)
            now = utcnow()

            for item in order_return.items:
                lines[item.sku_id].returned_quantity += item.quantity
                stock_service.receive(
                    location_id,
                    item.sku_id,
                    item.quantity,
                    actor=actor,
                    movement_type=MOVEMENT_RETURN,
                    occurred_at=now,
                    order_id=order.id,
                    return_id=order_return.id,
                    notes=f"Return {order_return.id} from Order {order.id}",
                )

            distributor = get_distributor(distributor_id, lock=True)
            append_transaction(
                distributor,
                type=TX_RETURN_CREDIT,
                amount_cents=order_return.credit_amount_cents,
                initiated_by=actor,
                occurred_at=now,
                order_id=order.id,
                remarks=f"Credit for return {order_return.id}",
            )

            order_return.status = RETURN_STATUS_CONFIRMED
            order_return.confirmed_by = actor
            order_return.confirmed_at = now
            return order_return

        with engine_locks(*stock_service.stock_keys(location_id, sku_ids)):
            try:
                order_return = atomic(_op)
            except ExceedsReturnable as e:
                logger.warning("Confirmation of return %s rejected: %s", return_id, e.message)
                raise

    logger.info(
        "Return %s confirmed by %s: credited %s cents to distributor %s",
        return_id, actor, order_return.credit_amount_cents, distributor_id,
    )
    return order_return
