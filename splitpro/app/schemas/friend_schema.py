"""
schemas/friend_schema.py — Marshmallow schema for the friendship endpoint.

Only the request shape is checked here. Whether the user exists, is the
caller, or is already a friend needs the DB and is decided in
ledger_service.open_edge_pair().
"""

from __future__ import annotations

from marshmallow import Schema, fields, validate


class OpenFriendshipSchema(Schema):
    """POST /friends"""

    user_id = fields.Int(
        required=True,
        strict=True,  # reject floats like 1.0
        validate=validate.Range(
            min=1,
            error="user_id must be a positive integer.",
        ),
    )
