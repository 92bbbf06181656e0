# Overview: Service-layer operations for distributor orders; pricing, placement, edits, delivery and deletion.

"""
Order Engine

WHY: An order touches two ledgers at once. Stock must be reserved and the
wallet debited together, or not at all.

LIFECYCLE:
1. place_order: Pending, stock reserved at the order's location, wallet debited
2. update_order_items (Pending only): reservations adjusted by per-SKU delta,
   the original ORDER_PAYMENT amount rewritten and the account replayed
3. update_order_status -> Delivered: reservations consumed as SALE entries
4. delete_order: Pending reservations released; full total refunded via a
   new ORDER_REFUND row. A Delivered order's stock is NOT restored, and an
   order with a confirmed return cannot be deleted.

LOCKING:
Every operation holds the distributor's wallet lock, then the stock locks of
every (location, sku) it touches, for validation + mutation + commit.

PRICING:
total_amount_cents = round_half_up(sum(qty * unit_price * (10000 + tax_bps)) / 10000)
over paid lines; freebie lines are priced at 0.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..errors import (
    InsufficientFunds,
    InsufficientStock,
    InvalidState,
    LedgerInvariantError,
    NotFound,
    ValidationError,
)
from ..extensions import db
from ..models import Order, OrderItem, OrderReturn
from ..models.notifications import NOTIFY_ORDER_FAILED, NOTIFY_ORDER_PLACED
from ..models.orders import (
    ORDER_STATUSES,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_PENDING,
    RETURN_STATUS_CONFIRMED,
    RETURN_STATUS_PENDING,
)
from ..models.wallet import TX_ORDER_PAYMENT, TX_ORDER_REFUND
from ..time_utils import today, utcnow
from . import stock_service
from .catalog_service import get_sku, resolve_unit_price
from .concurrency import atomic, engine_locks, lock_for_update
from .notification_service import notify
from .scheme_service import compute_freebies
from .wallet_service import (
    append_transaction,
    distributor_wallet_key,
    edit_transaction_amount,
    find_order_payment,
    get_distributor,
)

logger = logging.getLogger(__name__)


# =============================================================================
# PRICING
# =============================================================================

@dataclass
class PricedLine:
    sku_id: int
    quantity: int
    unit_price_cents: int
    tax_rate_bps: int
    is_freebie: bool = False


@dataclass
class PricedBasket:
    lines: list[PricedLine] = field(default_factory=list)

    @property
    def paid_lines(self) -> list[PricedLine]:
        return [line for line in self.lines if not line.is_freebie]

    @property
    def subtotal_cents(self) -> int:
        return sum(line.quantity * line.unit_price_cents for line in self.paid_lines)

    @property
    def total_cents(self) -> int:
        return compute_total_cents(self.paid_lines)

    def quantities_by_sku(self) -> dict[int, int]:
        """Paid + freebie quantity per SKU; what must be reserved."""
        totals: dict[int, int] = {}
        for line in self.lines:
            totals[line.sku_id] = totals.get(line.sku_id, 0) + line.quantity
        return totals


def compute_total_cents(lines) -> int:
    """
    Tax-inclusive total of priced lines in cents.

    Each line is taxed at its own rate; the sum is rounded half-up once.
    """
    numerator = sum(
        line.quantity * line.unit_price_cents * (10000 + line.tax_rate_bps)
        for line in lines
    )
    return (numerator + 5000) // 10000


def normalize_basket(basket) -> dict[int, int]:
    """
    Collapse a requested basket into sku_id -> quantity.

    Accepts a list of {"sku_id", "quantity"} dicts or a mapping. Duplicate
    SKUs are merged, zero quantities dropped, negatives rejected.
    """
    if isinstance(basket, dict):
        pairs = list(basket.items())
    else:
        pairs = []
        for line in basket or []:
            try:
                pairs.append((line["sku_id"], line["quantity"]))
            except (KeyError, TypeError) as e:
                raise ValidationError(f"Invalid basket line: {line!r}") from e

    quantities: dict[int, int] = {}
    for sku_id, quantity in pairs:
        if isinstance(quantity, bool) or not isinstance(quantity, int):
            raise ValidationError(f"Quantity for SKU {sku_id} must be an integer")
        if quantity < 0:
            raise ValidationError(f"Quantity for SKU {sku_id} cannot be negative")
        if quantity == 0:
            continue
        try:
            sku_id = int(sku_id)
        except (TypeError, ValueError) as e:
            raise ValidationError(f"Invalid SKU id {sku_id!r}") from e
        quantities[sku_id] = quantities.get(sku_id, 0) + quantity

    if not quantities:
        raise ValidationError("At least one item with a positive quantity is required")
    return quantities


def price_basket(distributor, quantities: dict[int, int], as_of) -> PricedBasket:
    """Paid lines at the distributor's unit price, then scheme freebies at 0."""
    priced = PricedBasket()
    for sku_id in sorted(quantities):
        sku = get_sku(sku_id)
        priced.lines.append(
            PricedLine(
                sku_id=sku_id,
                quantity=quantities[sku_id],
                unit_price_cents=resolve_unit_price(distributor, sku_id),
                tax_rate_bps=sku.tax_rate_bps,
            )
        )

    freebies = compute_freebies(distributor, quantities, as_of)
    for sku_id in sorted(freebies):
        sku = get_sku(sku_id)
        priced.lines.append(
            PricedLine(
                sku_id=sku_id,
                quantity=freebies[sku_id],
                unit_price_cents=0,
                tax_rate_bps=sku.tax_rate_bps,
                is_freebie=True,
            )
        )
    return priced


def _check_funds(distributor, required_cents: int, credit_back_cents: int = 0) -> None:
    available = distributor.wallet_balance_cents + distributor.credit_limit_cents + credit_back_cents
    if required_cents > available:
        raise InsufficientFunds(required_cents, available)


def _order_items(priced: PricedBasket) -> list[OrderItem]:
    return [
        OrderItem(
            sku_id=line.sku_id,
            quantity=line.quantity,
            unit_price_cents=line.unit_price_cents,
            tax_rate_bps=line.tax_rate_bps,
            is_freebie=line.is_freebie,
            returned_quantity=0,
        )
        for line in priced.lines
    ]


# =============================================================================
# QUERIES
# =============================================================================

def get_order(order_id: int, *, lock: bool = False) -> Order:
    q = db.session.query(Order).filter_by(id=order_id)
    if lock:
        q = lock_for_update(q)
    order = q.first()
    if order is None:
        raise NotFound("Order", order_id)
    return order


def list_orders(distributor_id: int | None = None, status: str | None = None) -> list[Order]:
    q = db.session.query(Order)
    if distributor_id is not None:
        q = q.filter_by(distributor_id=distributor_id)
    if status is not None:
        q = q.filter_by(status=status)
    return q.order_by(Order.order_date.desc(), Order.id.desc()).all()


def list_order_items(order_id: int) -> list[OrderItem]:
    get_order(order_id)
    return db.session.query(OrderItem).filter_by(order_id=order_id).order_by(OrderItem.id).all()


def get_invoice_data(order_id: int) -> dict:
    """Order, billing distributor and enriched lines for invoice rendering."""
    order = get_order(order_id)
    items = list_order_items(order_id)
    paid = [item for item in items if not item.is_freebie]
    subtotal = sum(item.quantity * item.unit_price_cents for item in paid)
    return {
        "order": order.to_dict(),
        "distributor": order.distributor.to_dict(),
        "items": [item.to_dict() for item in items],
        "subtotal_cents": subtotal,
        "tax_cents": order.total_amount_cents - subtotal,
        "total_amount_cents": order.total_amount_cents,
    }


# =============================================================================
# PLACEMENT
# =============================================================================

def place_order(distributor_id: int, basket, actor: str) -> Order:
    """
    Price, validate and commit a new Pending order.

    Raises InsufficientFunds / InsufficientStock with nothing written; both
    publish an ORDER_FAILED notification after rollback.
    """
    quantities = normalize_basket(basket)

    with engine_locks(distributor_wallet_key(distributor_id)):
        distributor = get_distributor(distributor_id, lock=True)
        location_id = stock_service.resolve_location_id(distributor)
        priced = price_basket(distributor, quantities, today())
        required = priced.quantities_by_sku()

        def _op():
            distributor = get_distributor(distributor_id, lock=True)
            _check_funds(distributor, priced.total_cents)
            stock_service.check_available(location_id, required)

            order = Order(
                distributor_id=distributor.id,
                location_id=location_id,
                order_date=utcnow(),
                total_amount_cents=priced.total_cents,
                status=ORDER_STATUS_PENDING,
                placed_by=actor,
            )
            order.items = _order_items(priced)
            db.session.add(order)
            db.session.flush()

            for line in priced.lines:
                stock_service.reserve(
                    location_id,
                    line.sku_id,
                    line.quantity,
                    actor=actor,
                    order_id=order.id,
                    notes=f"Reserved {line.quantity} for Order {order.id}",
                )
            append_transaction(
                distributor,
                type=TX_ORDER_PAYMENT,
                amount_cents=-priced.total_cents,
                initiated_by=actor,
                order_id=order.id,
                remarks=f"Payment for Order {order.id}",
            )
            return order

        try:
            with engine_locks(*stock_service.stock_keys(location_id, required)):
                order = atomic(_op)
        except InsufficientFunds as e:
            logger.warning("Order rejected for distributor %s: %s", distributor_id, e.message)
            notify(NOTIFY_ORDER_FAILED, f"Order failed for {distributor.name} due to insufficient funds.")
            raise
        except InsufficientStock as e:
            logger.warning("Order rejected for distributor %s: %s", distributor_id, e.message)
            sku_name = get_sku(e.sku_id).name
            notify(NOTIFY_ORDER_FAILED, f"Order failed for {distributor.name} due to low stock for {sku_name}.")
            raise

        logger.info(
            "Order %s placed for distributor %s by %s: %s cents",
            order.id, distributor_id, actor, order.total_amount_cents,
        )
        notify(NOTIFY_ORDER_PLACED, f"New order {order.id} placed for {distributor.name}.")
    return order


# =============================================================================
# EDIT
# =============================================================================

def update_order_items(order_id: int, basket, actor: str) -> Order:
    """
    Replace a Pending order's basket.

    Reservations move by the per-SKU delta (paid + freebie). Funds are
    checked as if the old debit were credited back first. The original
    ORDER_PAYMENT row is rewritten and the account replayed; the order keeps
    its original date.
    """
    quantities = normalize_basket(basket)
    distributor_id = get_order(order_id).distributor_id

    with engine_locks(distributor_wallet_key(distributor_id)):
        order = get_order(order_id, lock=True)
        if order.status != ORDER_STATUS_PENDING:
            raise InvalidState(
                f"Cannot edit order {order_id} in status {order.status}",
                order_id=order_id,
                status=order.status,
            )
        has_returns = db.session.query(OrderReturn.id).filter_by(order_id=order_id).first()
        if has_returns is not None:
            raise InvalidState(
                f"Cannot edit order {order_id}; returns have been raised against it",
                order_id=order_id,
            )

        distributor = get_distributor(distributor_id, lock=True)
        location_id = order.location_id
        priced = price_basket(distributor, quantities, today())

        old_quantities: dict[int, int] = {}
        for item in order.items:
            old_quantities[item.sku_id] = old_quantities.get(item.sku_id, 0) + item.quantity
        new_quantities = priced.quantities_by_sku()
        deltas = {
            sku_id: new_quantities.get(sku_id, 0) - old_quantities.get(sku_id, 0)
            for sku_id in set(old_quantities) | set(new_quantities)
        }

        def _op():
            order = get_order(order_id, lock=True)
            distributor = get_distributor(distributor_id, lock=True)
            old_total = order.total_amount_cents
            new_total = priced.total_cents

            _check_funds(distributor, new_total, credit_back_cents=old_total)
            stock_service.check_available(
                location_id, {sku_id: delta for sku_id, delta in deltas.items() if delta > 0}
            )

            for sku_id in sorted(deltas):
                delta = deltas[sku_id]
                if delta > 0:
                    stock_service.reserve(
                        location_id, sku_id, delta, actor=actor, order_id=order_id,
                        notes=f"Reserved {delta} on Order {order_id} edit",
                    )
                elif delta < 0:
                    stock_service.unreserve(
                        location_id, sku_id, -delta, actor=actor, order_id=order_id,
                        notes=f"Un-reserved {-delta} on Order {order_id} edit",
                    )

            order.items.clear()
            db.session.flush()
            order.items.extend(_order_items(priced))
            order.total_amount_cents = new_total

            payment = find_order_payment(order_id)
            if payment is None:
                raise LedgerInvariantError(
                    f"Order {order_id} has no payment transaction to edit",
                    order_id=order_id,
                )
            edit_transaction_amount(payment, distributor, -new_total)
            return order

        try:
            with engine_locks(*stock_service.stock_keys(location_id, deltas)):
                order = atomic(_op)
        except (InsufficientFunds, InsufficientStock) as e:
            logger.warning("Edit of order %s rejected: %s", order_id, e.message)
            raise

    logger.info("Order %s edited by %s: total now %s cents", order_id, actor, order.total_amount_cents)
    return order


# =============================================================================
# STATUS & DELETION
# =============================================================================

def update_order_status(order_id: int, status: str, actor: str) -> Order:
    """
    Move an order to a new status.

    Same status is a no-op. Pending -> Delivered consumes every line's
    reservation as a SALE. Delivered orders cannot go back to Pending.
    """
    if status not in ORDER_STATUSES:
        raise ValidationError(f"Invalid order status {status!r}", allowed=list(ORDER_STATUSES))
    distributor_id = get_order(order_id).distributor_id

    with engine_locks(distributor_wallet_key(distributor_id)):
        order = get_order(order_id, lock=True)
        if order.status == status:
            return order
        if status != ORDER_STATUS_DELIVERED:
            raise InvalidState(
                f"Cannot move order {order_id} from {order.status} to {status}",
                order_id=order_id,
                status=order.status,
            )

        location_id = order.location_id
        sku_ids = {item.sku_id for item in order.items}

        def _op():
            order = get_order(order_id, lock=True)
            now = utcnow()
            order.status = ORDER_STATUS_DELIVERED
            order.delivered_at = now
            order.delivered_by = actor
            for item in order.items:
                stock_service.consume_reserved(
                    location_id,
                    item.sku_id,
                    item.quantity,
                    actor=actor,
                    order_id=order_id,
                    occurred_at=now,
                    notes=f"Order {order_id} delivered",
                )
            return order

        with engine_locks(*stock_service.stock_keys(location_id, sku_ids)):
            order = atomic(_op)

    logger.info("Order %s delivered by %s", order_id, actor)
    return order


def delete_order(order_id: int, remarks: str | None, actor: str) -> None:
    """
    Delete an order and refund its full total.

    Pending orders release their reservations first. Delivered orders only
    refund money; consumed stock stays consumed. Pending returns against
    the order are discarded. An order with a confirmed return cannot be
    deleted, since part of its total has already been credited back.
    """
    distributor_id = get_order(order_id).distributor_id

    with engine_locks(distributor_wallet_key(distributor_id)):
        order = get_order(order_id, lock=True)
        confirmed_return = (
            db.session.query(OrderReturn.id)
            .filter_by(order_id=order_id, status=RETURN_STATUS_CONFIRMED)
            .first()
        )
        if confirmed_return is not None:
            raise InvalidState(
                f"Cannot delete order {order_id}; a return against it has been confirmed",
                order_id=order_id,
            )
        location_id = order.location_id
        was_pending = order.status == ORDER_STATUS_PENDING
        sku_ids = {item.sku_id for item in order.items} if was_pending else set()

        def _op():
            order = get_order(order_id, lock=True)
            distributor = get_distributor(distributor_id, lock=True)
            if was_pending:
                for item in order.items:
                    stock_service.unreserve(
                        location_id,
                        item.sku_id,
                        item.quantity,
                        actor=actor,
                        order_id=order_id,
                        notes=f"Un-reserved {item.quantity} from deleted Order {order_id}",
                    )

            append_transaction(
                distributor,
                type=TX_ORDER_REFUND,
                amount_cents=order.total_amount_cents,
                initiated_by=actor,
                order_id=order_id,
                remarks=f"Order deleted. Reason: {remarks or ''}".strip(),
            )

            pending_returns = (
                db.session.query(OrderReturn)
                .filter_by(order_id=order_id, status=RETURN_STATUS_PENDING)
                .all()
            )
            for order_return in pending_returns:
                db.session.delete(order_return)
            db.session.delete(order)

        with engine_locks(*stock_service.stock_keys(location_id, sku_ids)):
            atomic(_op)

    logger.info("Order %s deleted by %s (was %s)", order_id, actor, "Pending" if was_pending else "Delivered")
