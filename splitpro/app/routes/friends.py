"""
routes/friends.py — Friendship route handlers.

A friendship is the pair of balance edges between two users. Opening one
starts both balances at 0.00; closing one soft-deletes both edges and keeps
whatever was outstanding on the inactive rows.

Endpoints (base url_prefix=/api/v1/friends):
  POST   /friends              → 201  open a friendship with {"user_id"}
  DELETE /friends/:friend_id   → 200  close it
"""

from __future__ import annotations

from flask import Blueprint, g, jsonify, request

from splitpro.app.extensions import db
from splitpro.app.middleware.auth_middleware import require_auth
from splitpro.app.schemas.friend_schema import OpenFriendshipSchema
from splitpro.app.services import ledger_service

friends_bp = Blueprint("friends", __name__)


@friends_bp.route("", methods=["POST"])
@require_auth
def open_friendship():
    """POST /friends — Open a friendship with {"user_id"}; both balances start at 0.00."""
    data = OpenFriendshipSchema().load(request.get_json(force=True, silent=True) or {})
    edge = ledger_service.open_edge_pair(
        user_id=g.user_id,
        friend_id=data["user_id"],
        session=db.session,
    )
    db.session.commit()
    return jsonify({
        "data": {
            "user_id": edge.owner_id,
            "friend_id": edge.counterpart_id,
            "balance": str(edge.balance),
        },
        "warnings": [],
    }), 201


@friends_bp.route("/<int:friend_id>", methods=["DELETE"])
@require_auth
def close_friendship(friend_id: int):
    """DELETE /friends/:friend_id — Close the friendship; outstanding balances stay as history."""
    ledger_service.close_edge_pair(
        user_id=g.user_id,
        friend_id=friend_id,
        session=db.session,
    )
    db.session.commit()
    return jsonify({
        "data": {
            "removed": True,
            "friend_id": friend_id,
        },
        "warnings": [],
    }), 200
