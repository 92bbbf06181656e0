# backend/distro/routes/wallet.py
"""
Wallet API routes: recharges, transaction history and reconciliation.
"""
from flask import Blueprint, request, jsonify, g

from distro.decorators import require_actor, json_body, require_fields
from distro.services import wallet_service


wallet_bp = Blueprint("wallet", __name__, url_prefix="/api/wallet")


@wallet_bp.route("/transactions", methods=["GET"])
def list_transactions():
    """
    Query params:
        distributor_id: int (optional)
        store_id: int (optional)
    """
    transactions = wallet_service.list_transactions(
        distributor_id=request.args.get("distributor_id", type=int),
        store_id=request.args.get("store_id", type=int),
    )
    return jsonify([tx.to_dict() for tx in transactions]), 200


def _recharge_kwargs(data: dict) -> dict:
    return {
        "payment_method": data.get("payment_method"),
        "remarks": data.get("remarks"),
        "occurred_at": data.get("date"),
    }


@wallet_bp.route("/distributors/<int:distributor_id>/recharge", methods=["POST"])
@require_actor
def recharge_distributor(distributor_id: int):
    """
    Credit a distributor wallet.

    Request body:
    {
        "amount_cents": int,
        "payment_method": "Cash" | "UPI" | "Bank Transfer" | "Credit" (optional),
        "remarks": str (optional),
        "date": ISO-8601 datetime (optional; back-dating replays the ledger)
    }
    """
    data = json_body()
    require_fields(data, "amount_cents")
    tx = wallet_service.recharge_wallet(distributor_id, data["amount_cents"], g.actor, **_recharge_kwargs(data))
    return jsonify(tx.to_dict()), 201


@wallet_bp.route("/stores/<int:store_id>/recharge", methods=["POST"])
@require_actor
def recharge_store(store_id: int):
    data = json_body()
    require_fields(data, "amount_cents")
    tx = wallet_service.recharge_store_wallet(store_id, data["amount_cents"], g.actor, **_recharge_kwargs(data))
    return jsonify(tx.to_dict()), 201


@wallet_bp.route("/reconcile", methods=["GET"])
def reconcile():
    drift = wallet_service.reconcile_wallets()
    return jsonify({"ok": not drift, "drift": drift}), 200
