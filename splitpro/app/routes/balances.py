"""
routes/balances.py — Balance route handlers.

Read-only views of the caller's side of the ledger. Balances are signed from
the caller's point of view: positive means the counterpart owes the caller,
negative means the caller owes the counterpart.

Endpoints (base url_prefix=/api/v1/balances):
  GET /balances                   → 200  every active balance + totals
  GET /balances/:counterpart_id   → 200  one balance (0.00 when not friends)
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify

from splitpro.app.extensions import db
from splitpro.app.middleware.auth_middleware import require_auth
from splitpro.app.services import ledger_service

balances_bp = Blueprint("balances", __name__)


@balances_bp.route("", methods=["GET"])
@require_auth
def get_balances():
    """GET /balances — Every active balance of the caller, with totals."""
    result = ledger_service.get_user_balances(g.user_id, db.session)
    return jsonify({
        "data": {
            "user_id": result.user_id,
            "balances": [
                {"counterpart_id": counterpart_id, "balance": str(balance)}
                for counterpart_id, balance in result.balances.items()
            ],
            "total_owed": str(result.total_owed),
            "total_owed_to_you": str(result.total_owed_to_you),
            "net_balance": str(result.net_balance),
        },
        "warnings": [],
    }), 200


@balances_bp.route("/<int:counterpart_id>", methods=["GET"])
@require_auth
def get_balance(counterpart_id: int):
    """GET /balances/:counterpart_id — What counterpart owes the caller (0.00 if not friends)."""
    balance = ledger_service.get_balance(g.user_id, counterpart_id, db.session)
    return jsonify({
        "data": {
            "user_id": g.user_id,
            "counterpart_id": counterpart_id,
            "balance": str(balance),
        },
        "warnings": [],
    }), 200
