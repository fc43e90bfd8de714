"""
errors.py — AppError hierarchy and error code registry.

Every error returned by the SplitPro API uses a code defined here.
Do not raise strings or generic exceptions from service or route code.

Taxonomy:
  ValidationError    (422) — bad split composition, over-allocation, bad refs.
                             Reported to the caller, never retried.
  NotFoundError      (404) — unknown user / group / expense / friendship.
  AuthorizationError (403) — caller is not allowed to see or change the thing.
  ConflictError      (409) — the requested state already exists.
  ConsistencyFault   (500) — ledger symmetry broken or partial transfer
                             detected. A correctness bug or crash-recovery gap,
                             never the caller's fault; logged at CRITICAL and
                             hidden behind a generic response.

Request-shape errors (marshmallow) are 400 and authentication errors are 401;
those are raised as plain AppError with the matching status.

Error codes are a versioned contract. Messages are human-readable prose and
may be improved at any time.
"""

from __future__ import annotations


class AppError(Exception):

    http_status_default: int = 500

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int | None = None,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status if http_status is not None else self.http_status_default
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


class ValidationError(AppError):
    http_status_default = 422


class NotFoundError(AppError):
    http_status_default = 404


class AuthorizationError(AppError):
    http_status_default = 403


class ConflictError(AppError):
    http_status_default = 409


class ConsistencyFault(AppError):
    """
    Raised when the ledger finds itself in a state it must never reach.

    `context` carries the identifiers needed by repair tooling; it is logged,
    never sent to the client.
    """

    http_status_default = 500

    def __init__(self, message: str, **context) -> None:
        super().__init__(ErrorCode.LEDGER_INCONSISTENT, message)
        self.context = context

    def to_dict(self) -> dict:
        return {
            "error": {
                "code":    ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
# IMPORTANT: these are the string values sent in the API response.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_AMOUNT_PRECISION   = "INVALID_AMOUNT_PRECISION"
    INVALID_CATEGORY           = "INVALID_CATEGORY"
    INVALID_SPLIT_TYPE         = "INVALID_SPLIT_TYPE"
    INVALID_CURRENCY           = "INVALID_CURRENCY"

    # ── Business Rule Violations (422) ────────────────────────────────────
    NO_SPLITS                  = "NO_SPLITS"
    MISSING_SPLIT_VALUE        = "MISSING_SPLIT_VALUE"
    NEGATIVE_SPLIT_VALUE       = "NEGATIVE_SPLIT_VALUE"
    DUPLICATE_SPLIT_USER       = "DUPLICATE_SPLIT_USER"
    AMOUNT_EXCEEDS_TOTAL       = "AMOUNT_EXCEEDS_TOTAL"
    PERCENT_EXCEEDS_100        = "PERCENT_EXCEEDS_100"
    NON_POSITIVE_TOTAL         = "NON_POSITIVE_TOTAL"
    CURRENCY_MISMATCH          = "CURRENCY_MISMATCH"
    PAYER_NOT_MEMBER           = "PAYER_NOT_MEMBER"
    PARTICIPANT_NOT_FOUND      = "PARTICIPANT_NOT_FOUND"
    SELF_FRIENDSHIP            = "SELF_FRIENDSHIP"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    USER_NOT_FOUND             = "USER_NOT_FOUND"
    GROUP_NOT_FOUND            = "GROUP_NOT_FOUND"
    EXPENSE_NOT_FOUND          = "EXPENSE_NOT_FOUND"
    FRIENDSHIP_NOT_FOUND       = "FRIENDSHIP_NOT_FOUND"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    FRIENDSHIP_EXISTS          = "FRIENDSHIP_EXISTS"

    # ── Auth Errors ────────────────────────────────────────────────────────
    # 401 = we do not know who you are (unauthenticated)
    # 403 = we know who you are, but you are not allowed
    TOKEN_MISSING              = "TOKEN_MISSING"          # 401
    TOKEN_INVALID              = "TOKEN_INVALID"          # 401
    TOKEN_EXPIRED              = "TOKEN_EXPIRED"          # 401
    FORBIDDEN                  = "FORBIDDEN"              # 403

    # ── System Errors (500) ────────────────────────────────────────────────
    LEDGER_INCONSISTENT        = "LEDGER_INCONSISTENT"
    INTERNAL_ERROR             = "INTERNAL_ERROR"


# ── Warning Code Registry ──────────────────────────────────────────────────
#
# Warnings are returned alongside a 2xx response in the `warnings` array.
# They do not block the request.
# ──────────────────────────────────────────────────────────────────────────

class WarningCode:

    # sum(splits.amount_owed) != total_amount. Recorded as computed; the
    # rounding gap is never corrected.
    SPLITS_UNBALANCED = "SPLITS_UNBALANCED"
