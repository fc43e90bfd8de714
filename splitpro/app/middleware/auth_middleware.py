"""
middleware/auth_middleware.py — Bearer token authentication.

Tokens are issued by the identity service in front of this API; this module
only verifies them. A valid token is an HS256 JWT whose `sub` claim is the
user id as a string.

@require_auth:
  1. Reads "Authorization: Bearer <token>"
  2. Verifies signature and expiry with PyJWT
  3. Puts the integer user id on flask.g.user_id

Authentication (401) lives here. Authorization (403: payer-only delete,
group membership, expense visibility) is decided by the services, which
receive the user id as a plain int and never see the token.

Error codes:
  TOKEN_MISSING  (401) — no Authorization header
  TOKEN_INVALID  (401) — malformed header, bad signature, bad `sub`
  TOKEN_EXPIRED  (401) — `exp` is in the past
"""

from __future__ import annotations

import functools
from typing import Callable

import jwt
from flask import current_app, g, request

from splitpro.app.errors import AppError, ErrorCode

_UNAUTHORIZED = 401


def require_auth(f: Callable) -> Callable:
    """Route decorator: rejects unauthenticated requests, sets g.user_id."""

    @functools.wraps(f)
    def decorated(*args, **kwargs):
        g.user_id = _authenticate_request()
        return f(*args, **kwargs)

    return decorated


def _bearer_token() -> str:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header:
        raise AppError(
            ErrorCode.TOKEN_MISSING,
            "Authentication required. Provide a Bearer token in the Authorization header.",
            _UNAUTHORIZED,
        )

    parts = auth_header.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "Authorization header must be in the format: Bearer <token>.",
            _UNAUTHORIZED,
        )
    return parts[1]


def _authenticate_request() -> int:
    """
    Returns the authenticated user id.

    Kept separate from the decorator so tests can call it inside a
    test_request_context without a view function.
    """
    raw_token = _bearer_token()

    try:
        payload = jwt.decode(
            raw_token,
            current_app.config["JWT_SECRET_KEY"],
            algorithms=[current_app.config.get("JWT_ALGORITHM", "HS256")],
        )
    except jwt.ExpiredSignatureError:
        raise AppError(
            ErrorCode.TOKEN_EXPIRED,
            "The access token has expired.",
            _UNAUTHORIZED,
        )
    except jwt.InvalidTokenError:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token is invalid or has been tampered with.",
            _UNAUTHORIZED,
        )

    try:
        user_id = int(payload["sub"])
    except (KeyError, TypeError, ValueError):
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token does not carry a valid 'sub' user id.",
            _UNAUTHORIZED,
        )
    if user_id < 1:
        raise AppError(
            ErrorCode.TOKEN_INVALID,
            "The access token does not carry a valid 'sub' user id.",
            _UNAUTHORIZED,
        )
    return user_id
