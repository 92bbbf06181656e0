# Overview: Typed error hierarchy raised by the order fulfillment and ledger engines.

"""
Every engine failure is raised as a subclass of DistroError.

Each class carries:
- code: machine-readable identifier, stable across message wording changes
- status: HTTP status the API layer maps it to
- structured fields (sku_id, required, available, ...) exposed via to_dict()

Validation always happens before any mutation, so a raised DistroError
means nothing was written.
"""

from __future__ import annotations


class DistroError(Exception):
    """Base class for all engine errors."""

    code = "ERROR"
    status = 400

    def __init__(self, message: str, **fields):
        super().__init__(message)
        self.message = message
        self.fields = fields

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, **self.fields}


class ValidationError(DistroError):
    code = "VALIDATION_ERROR"
    status = 400


class NotFound(DistroError):
    code = "NOT_FOUND"
    status = 404

    def __init__(self, entity: str, entity_id):
        super().__init__(f"{entity} {entity_id} not found", entity=entity, entity_id=entity_id)
        self.entity = entity
        self.entity_id = entity_id


class PermissionDenied(DistroError):
    code = "PERMISSION_DENIED"
    status = 403


class InvalidState(DistroError):
    code = "INVALID_STATE"
    status = 409


class AlreadyProcessed(InvalidState):
    code = "ALREADY_PROCESSED"


class InsufficientFunds(DistroError):
    code = "INSUFFICIENT_FUNDS"
    status = 409

    def __init__(self, required_cents: int, available_cents: int):
        super().__init__(
            f"Insufficient funds (wallet + credit limit). "
            f"Required: {required_cents}, available: {available_cents}",
            required_cents=required_cents,
            available_cents=available_cents,
        )
        self.required_cents = required_cents
        self.available_cents = available_cents


class InsufficientStock(DistroError):
    code = "INSUFFICIENT_STOCK"
    status = 409

    def __init__(self, sku_id: int, location_id: str, required: int, available: int):
        super().__init__(
            f"Insufficient stock for SKU {sku_id} at {location_id}. "
            f"Available: {available}, Required: {required}.",
            sku_id=sku_id,
            location_id=location_id,
            required=required,
            available=available,
        )
        self.sku_id = sku_id
        self.location_id = location_id
        self.required = required
        self.available = available


class ExceedsReturnable(DistroError):
    code = "EXCEEDS_RETURNABLE"
    status = 409

    def __init__(self, sku_id: int, requested: int, returnable: int):
        super().__init__(
            f"Cannot return {requested} of SKU {sku_id}; only {returnable} returnable.",
            sku_id=sku_id,
            requested=requested,
            returnable=returnable,
        )
        self.sku_id = sku_id
        self.requested = requested
        self.returnable = returnable


class LedgerInvariantError(DistroError):
    """A cached balance would leave its ledger-derived bounds."""

    code = "LEDGER_INVARIANT"
    status = 500


class LockTimeout(DistroError):
    code = "LOCK_TIMEOUT"
    status = 503
