# Overview: Service-layer operations for distributor onboarding and store master data.

from __future__ import annotations

import logging

from ..errors import InvalidState, ValidationError
from ..extensions import db
from ..models import Distributor, PriceTier, Store
from ..models.notifications import NOTIFY_DISTRIBUTOR_ADDED
from ..models.schemes import SCHEME_SCOPE_DISTRIBUTOR
from ..roles import require_plant_admin
from ..time_utils import utcnow
from .concurrency import atomic, engine_locks
from .notification_service import notify
from .scheme_service import build_scheme
from .wallet_service import distributor_wallet_key, get_distributor, get_store

logger = logging.getLogger(__name__)

# wallet_balance_cents and date_added are never set from master data.
DISTRIBUTOR_FIELDS = (
    "name",
    "phone",
    "state",
    "area",
    "gstin",
    "billing_address",
    "asm_name",
    "executive_name",
    "credit_limit_cents",
    "has_special_schemes",
    "price_tier_id",
    "store_id",
)

STORE_FIELDS = (
    "name",
    "location",
    "address_line1",
    "address_line2",
    "email",
    "phone",
    "gstin",
)


def list_distributors(store_id: int | None = None) -> list[Distributor]:
    q = db.session.query(Distributor)
    if store_id is not None:
        q = q.filter_by(store_id=store_id)
    return q.order_by(Distributor.name, Distributor.id).all()


def _apply_distributor_fields(distributor: Distributor, data: dict) -> None:
    for key in DISTRIBUTOR_FIELDS:
        if key in data:
            setattr(distributor, key, data[key])

    if not (distributor.name or "").strip():
        raise ValidationError("Distributor name is required")
    distributor.name = distributor.name.strip()

    credit = distributor.credit_limit_cents
    if credit is None:
        distributor.credit_limit_cents = 0
    elif isinstance(credit, bool) or not isinstance(credit, int) or credit < 0:
        raise ValidationError("credit_limit_cents must be a non-negative integer")
    distributor.has_special_schemes = bool(distributor.has_special_schemes)

    if distributor.price_tier_id is not None and db.session.get(PriceTier, distributor.price_tier_id) is None:
        raise ValidationError(f"Price tier {distributor.price_tier_id} does not exist")
    if distributor.store_id is not None and db.session.get(Store, distributor.store_id) is None:
        raise ValidationError(f"Store {distributor.store_id} does not exist")


def add_distributor(data: dict, actor: str, initial_scheme: dict | None = None) -> Distributor:
    """
    Onboard a distributor with an empty wallet.

    An initial distributor-scoped scheme is created alongside when one is
    given and the distributor is flagged for special schemes.
    """
    distributor = Distributor(wallet_balance_cents=0, date_added=utcnow())
    try:
        _apply_distributor_fields(distributor, data)
        db.session.add(distributor)
        db.session.flush()

        scheme = None
        if initial_scheme and distributor.has_special_schemes:
            scheme = build_scheme({
                **initial_scheme,
                "scope": SCHEME_SCOPE_DISTRIBUTOR,
                "distributor_id": distributor.id,
            })
            db.session.add(scheme)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Distributor %s onboarded by %s", distributor.id, actor)
    if scheme is not None:
        logger.info("Initial scheme %s created for distributor %s", scheme.id, distributor.id)
    notify(NOTIFY_DISTRIBUTOR_ADDED, f'New distributor "{distributor.name}" onboarded.')
    return distributor


def update_distributor(distributor_id: int, data: dict, role: str) -> Distributor:
    """Edit master data; wallet balance and date added are preserved."""
    require_plant_admin(role, "edit distributor details")

    def _op():
        distributor = get_distributor(distributor_id, lock=True)
        _apply_distributor_fields(distributor, data)
        return distributor

    with engine_locks(distributor_wallet_key(distributor_id)):
        distributor = atomic(_op)
    logger.info("Distributor %s updated", distributor_id)
    return distributor


# =============================================================================
# STORES
# =============================================================================

def list_stores() -> list[Store]:
    return db.session.query(Store).order_by(Store.name).all()


def _apply_store_fields(store: Store, data: dict) -> None:
    for key in STORE_FIELDS:
        if key in data:
            setattr(store, key, data[key])
    if not (store.name or "").strip():
        raise ValidationError("Store name is required")
    store.name = store.name.strip()


def add_store(data: dict, role: str) -> Store:
    require_plant_admin(role, "manage stores")
    store = Store(wallet_balance_cents=0)
    _apply_store_fields(store, data)
    if db.session.query(Store.id).filter_by(name=store.name).first() is not None:
        raise ValidationError(f"Store {store.name!r} already exists")
    db.session.add(store)
    db.session.commit()
    logger.info("Store %s created: %s", store.id, store.name)
    return store


def update_store(store_id: int, data: dict, role: str) -> Store:
    require_plant_admin(role, "manage stores")
    store = get_store(store_id)
    try:
        _apply_store_fields(store, data)
    except Exception:
        db.session.rollback()
        raise
    db.session.commit()
    return store


def delete_store(store_id: int, role: str) -> None:
    """Refused while any distributor is assigned to the store."""
    require_plant_admin(role, "manage stores")
    store = get_store(store_id)
    in_use = db.session.query(Distributor.id).filter_by(store_id=store_id).first()
    if in_use is not None:
        raise InvalidState(
            "Cannot delete store as it is assigned to one or more distributors.",
            store_id=store_id,
        )
    db.session.delete(store)
    db.session.commit()
    logger.info("Store %s deleted", store_id)
