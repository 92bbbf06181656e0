# Overview: Promotional scheme evaluation (buy-X-get-Y freebies) and scheme administration.

"""
Scheme Evaluation (authoritative)

For a distributor, a set of paid quantities and a date:
1. Keep schemes active on the date (start <= date <= end, not stopped).
2. Applicable = global
              + store-scoped schemes for the distributor's assigned store
              + distributor-scoped schemes for the distributor, only when it
                is flagged has_special_schemes
   deduplicated by scheme id.
3. Group by buy SKU. For each purchased SKU, walk its schemes by
   buy_quantity descending; each scheme consumes floor(remaining / buy)
   blocks and leaves remaining % buy for the next smaller threshold.
4. Only reward SKUs with a non-zero total are returned.

A scheme whose buy and get SKU are the same is an ordinary scheme.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime

from ..errors import NotFound, ValidationError
from ..extensions import db
from ..models import Scheme, Distributor, Store
from ..models.notifications import NOTIFY_NEW_SCHEME
from ..models.schemes import (
    SCHEME_SCOPES,
    SCHEME_SCOPE_GLOBAL,
    SCHEME_SCOPE_STORE,
    SCHEME_SCOPE_DISTRIBUTOR,
)
from ..roles import require_plant_admin
from ..time_utils import parse_iso_date, today, utcnow
from .catalog_service import get_sku
from .notification_service import notify

logger = logging.getLogger(__name__)


# =============================================================================
# EVALUATION
# =============================================================================

def active_schemes(as_of: date) -> list[Scheme]:
    return (
        db.session.query(Scheme)
        .filter(
            Scheme.start_date <= as_of,
            Scheme.end_date >= as_of,
            Scheme.stopped_at.is_(None),
        )
        .order_by(Scheme.id)
        .all()
    )


def applicable_schemes(distributor: Distributor, as_of: date) -> list[Scheme]:
    """Union of every active scheme whose scope covers the distributor."""
    applicable: dict[int, Scheme] = {}
    for scheme in active_schemes(as_of):
        if scheme.scope == SCHEME_SCOPE_GLOBAL:
            applicable[scheme.id] = scheme
        if (
            scheme.scope == SCHEME_SCOPE_STORE
            and distributor.store_id is not None
            and scheme.store_id == distributor.store_id
        ):
            applicable[scheme.id] = scheme
        if (
            scheme.scope == SCHEME_SCOPE_DISTRIBUTOR
            and distributor.has_special_schemes
            and scheme.distributor_id == distributor.id
        ):
            applicable[scheme.id] = scheme
    return list(applicable.values())


def evaluate_freebies(schemes, purchased_quantities: dict[int, int]) -> dict[int, int]:
    """
    Greedy largest-threshold-first freebie computation.

    Pure function over scheme-like objects (buy_sku_id, buy_quantity,
    get_sku_id, get_quantity).
    """
    by_buy_sku = defaultdict(list)
    for scheme in schemes:
        by_buy_sku[scheme.buy_sku_id].append(scheme)

    freebies: dict[int, int] = defaultdict(int)
    for sku_id, quantity in purchased_quantities.items():
        if quantity <= 0:
            continue
        candidates = sorted(by_buy_sku.get(sku_id, []), key=lambda s: s.buy_quantity, reverse=True)
        remaining = quantity
        for scheme in candidates:
            if remaining >= scheme.buy_quantity:
                times_applied = remaining // scheme.buy_quantity
                freebies[scheme.get_sku_id] += times_applied * scheme.get_quantity
                remaining %= scheme.buy_quantity

    return {sku_id: qty for sku_id, qty in freebies.items() if qty > 0}


def compute_freebies(distributor: Distributor, purchased_quantities: dict[int, int], as_of: date) -> dict[int, int]:
    return evaluate_freebies(applicable_schemes(distributor, as_of), purchased_quantities)


# =============================================================================
# ADMINISTRATION
# =============================================================================

def get_scheme(scheme_id: int) -> Scheme:
    scheme = db.session.get(Scheme, scheme_id)
    if scheme is None:
        raise NotFound("Scheme", scheme_id)
    return scheme


def list_schemes(
    *,
    scope: str | None = None,
    store_id: int | None = None,
    distributor_id: int | None = None,
) -> list[Scheme]:
    q = db.session.query(Scheme)
    if scope is not None:
        q = q.filter_by(scope=scope)
    if store_id is not None:
        q = q.filter_by(store_id=store_id)
    if distributor_id is not None:
        q = q.filter_by(distributor_id=distributor_id)
    return q.order_by(Scheme.start_date.desc(), Scheme.id.desc()).all()


def _as_date(value, field: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        parsed = parse_iso_date(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Invalid {field}: {value!r}") from e
    if parsed is None:
        raise ValidationError(f"{field} is required")
    return parsed


def _apply_scheme_fields(scheme: Scheme, data: dict) -> None:
    if "description" in data:
        scheme.description = (data["description"] or "").strip()
    for field in ("buy_sku_id", "get_sku_id"):
        if field in data:
            try:
                sku_id = int(data[field])
            except (TypeError, ValueError) as e:
                raise ValidationError(f"{field} must be a SKU id") from e
            setattr(scheme, field, get_sku(sku_id).id)
    for field in ("buy_quantity", "get_quantity"):
        if field in data:
            value = data[field]
            if not isinstance(value, int) or value <= 0:
                raise ValidationError(f"{field} must be a positive integer")
            setattr(scheme, field, value)
    if "start_date" in data:
        scheme.start_date = _as_date(data["start_date"], "start_date")
    if "end_date" in data:
        scheme.end_date = _as_date(data["end_date"], "end_date")
    if "scope" in data:
        scheme.scope = data["scope"]
    if "store_id" in data:
        scheme.store_id = data["store_id"]
    if "distributor_id" in data:
        scheme.distributor_id = data["distributor_id"]


def _validate_scheme(scheme: Scheme) -> None:
    if not scheme.description:
        raise ValidationError("Scheme description is required")
    for field in ("buy_sku_id", "buy_quantity", "get_sku_id", "get_quantity", "start_date", "end_date"):
        if getattr(scheme, field) is None:
            raise ValidationError(f"{field} is required")
    if scheme.end_date < scheme.start_date:
        raise ValidationError("end_date must not be before start_date")
    if scheme.scope not in SCHEME_SCOPES:
        raise ValidationError(f"Invalid scope {scheme.scope!r}")

    if scheme.scope == SCHEME_SCOPE_GLOBAL:
        scheme.store_id = None
        scheme.distributor_id = None
    elif scheme.scope == SCHEME_SCOPE_STORE:
        if scheme.store_id is None or db.session.get(Store, scheme.store_id) is None:
            raise ValidationError("Store-scoped scheme requires an existing store_id")
        scheme.distributor_id = None
    else:
        if scheme.distributor_id is None or db.session.get(Distributor, scheme.distributor_id) is None:
            raise ValidationError("Distributor-scoped scheme requires an existing distributor_id")
        scheme.store_id = None


def build_scheme(data: dict) -> Scheme:
    """Validated, unsaved Scheme from request data."""
    scheme = Scheme(scope=data.get("scope", SCHEME_SCOPE_GLOBAL))
    _apply_scheme_fields(scheme, data)
    _validate_scheme(scheme)
    return scheme


def add_scheme(data: dict, role: str) -> Scheme:
    require_plant_admin(role, "manage schemes")
    scheme = build_scheme(data)
    db.session.add(scheme)
    db.session.commit()
    logger.info("Scheme %s created (%s)", scheme.id, scheme.scope)
    return scheme


def update_scheme(scheme_id: int, data: dict, role: str) -> Scheme:
    require_plant_admin(role, "manage schemes")
    scheme = get_scheme(scheme_id)
    try:
        _apply_scheme_fields(scheme, data)
        _validate_scheme(scheme)
    except Exception:
        db.session.rollback()
        raise
    db.session.commit()
    return scheme


def delete_scheme(scheme_id: int, role: str) -> None:
    require_plant_admin(role, "manage schemes")
    scheme = get_scheme(scheme_id)
    db.session.delete(scheme)
    db.session.commit()


def stop_scheme(scheme_id: int, actor: str, role: str) -> Scheme:
    """
    Stop a scheme now: end_date becomes today and the stopper is stamped.

    A scheme that already ended naturally is left untouched.
    """
    require_plant_admin(role, "stop schemes")
    scheme = get_scheme(scheme_id)

    if scheme.end_date < today() and scheme.stopped_at is None:
        return scheme

    now = utcnow()
    scheme.end_date = now.date()
    scheme.stopped_by = actor
    scheme.stopped_at = now
    db.session.commit()
    logger.info("Scheme %s stopped by %s", scheme_id, actor)
    return scheme


def reactivate_scheme(scheme_id: int, new_end_date, actor: str, role: str) -> Scheme:
    """Give a scheme a new end date and clear its stop markers."""
    require_plant_admin(role, "reactivate schemes")
    scheme = get_scheme(scheme_id)
    end_date = _as_date(new_end_date, "end_date")
    if end_date < scheme.start_date:
        raise ValidationError("end_date must not be before start_date")

    scheme.end_date = end_date
    scheme.stopped_by = None
    scheme.stopped_at = None
    db.session.commit()
    logger.info("Scheme %s reactivated by %s until %s", scheme_id, actor, end_date)

    notify(NOTIFY_NEW_SCHEME, f'Scheme "{scheme.description}" has been reactivated by {actor}.')
    return scheme
