"""
schemas/expense_schema.py — Marshmallow schemas for expense endpoints.

Validation responsibility:
  - This file (request shape, 400):
      - Field types, lengths, enum values
      - Decimal precision: totals and fixed amounts 2 dp, percentages 4 dp
      - Currency code shape
      - Non-empty-after-trim enforcement for description
  - services/split_calculator.py (split composition, 422):
      - NO_SPLITS, DUPLICATE_SPLIT_USER, MISSING_SPLIT_VALUE,
        NEGATIVE_SPLIT_VALUE, AMOUNT_EXCEEDS_TOTAL, PERCENT_EXCEEDS_100
  - services/expense_service.py (needs the DB, 404 / 422):
      - Payer / group / participant existence, payer membership

IMPORTANT: Inherits from marshmallow.Schema directly. There is no
flask-marshmallow integration in this project.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    post_load,
    validate,
    validates_schema,
)

from splitpro.app.errors import ErrorCode
from splitpro.app.models.expense import Category, SplitType
from splitpro.app.services.money import decimal_places

MAX_AMOUNT_PLACES = 2
MAX_PERCENT_PLACES = 4


# ── Shared validators ──────────────────────────────────────────────────────

def _validate_total_amount(value: Decimal) -> None:
    """
    Strictly positive, at most 2 decimal places. Extra precision is REJECTED
    with INVALID_AMOUNT_PRECISION, never rounded or truncated.
    """
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")
    if decimal_places(value) > MAX_AMOUNT_PLACES:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_non_empty_after_trim(value: str) -> None:
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


# ── Sub-schema: one entry in the `splits` array ───────────────────────────

class SplitInputSchema(Schema):
    """
    One participant's split instruction.

    split_value is the percentage for PERCENT and the fixed amount for AMOUNT.
    It is ignored for EQUAL. Missing or negative values are composition
    errors and are left to the split calculator.
    """

    user_id = fields.Int(
        required=True,
        strict=True,   # reject floats like 1.0
        validate=validate.Range(min=1, error="user_id must be a positive integer."),
    )

    split_type = fields.Enum(
        SplitType,
        load_default=SplitType.EQUAL,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_SPLIT_TYPE},
    )

    split_value = fields.Decimal(
        load_default=None,
        allow_none=True,
    )

    @validates_schema
    def validate_value_precision(self, data: dict, **kwargs) -> None:
        value = data.get("split_value")
        if value is None:
            return

        split_type = data.get("split_type")
        if split_type == SplitType.AMOUNT and decimal_places(value) > MAX_AMOUNT_PLACES:
            raise ValidationError({"split_value": [ErrorCode.INVALID_AMOUNT_PRECISION]})
        if split_type == SplitType.PERCENT and decimal_places(value) > MAX_PERCENT_PLACES:
            raise ValidationError(
                {"split_value": ["Percentages may have at most 4 decimal places."]}
            )

    @post_load
    def drop_equal_value(self, data: dict, **kwargs) -> dict:
        # EQUAL shares are derived, never supplied
        if data.get("split_type") == SplitType.EQUAL:
            data["split_value"] = None
        return data


# ── Create expense ─────────────────────────────────────────────────────────

class CreateExpenseSchema(Schema):
    """
    POST /expenses

    The payer is the authenticated caller and is not part of the payload.
    An empty `splits` list passes this schema and fails in the calculator
    with NO_SPLITS (422).
    """

    description = fields.Str(
        required=True,
        validate=[
            validate.Length(
                min=2,
                max=200,
                error="Description must be between 2 and 200 characters.",
            ),
            _validate_non_empty_after_trim,
        ],
    )

    total_amount = fields.Decimal(
        required=True,
        validate=_validate_total_amount,
    )

    # Absent means the configured default currency; filled in by the route.
    currency = fields.Str(
        load_default=None,
        validate=validate.Regexp(r"^[A-Za-z]{3}$", error=ErrorCode.INVALID_CURRENCY),
    )

    group_id = fields.Int(
        load_default=None,
        allow_none=True,
        strict=True,
        validate=validate.Range(min=1, error="group_id must be a positive integer."),
    )

    splits = fields.List(
        fields.Nested(SplitInputSchema),
        required=True,
    )

    category = fields.Enum(
        Category,
        load_default=Category.GENERAL,
        by_value=True,
        error_messages={"unknown": ErrorCode.INVALID_CATEGORY},
    )

    notes = fields.Str(
        load_default=None,
        allow_none=True,
        validate=validate.Length(max=500, error="Notes must be at most 500 characters."),
    )

    occurred_at = fields.DateTime(load_default=None, allow_none=True)

    @post_load
    def normalise(self, data: dict, **kwargs) -> dict:
        data["description"] = data["description"].strip()
        if data.get("currency"):
            data["currency"] = data["currency"].upper()
        return data


# ── Listing ────────────────────────────────────────────────────────────────

class PaginationSchema(Schema):
    """
    ?page=&per_page= query parameters. per_page is clamped to MAX_PAGE_SIZE
    by the route; None means DEFAULT_PAGE_SIZE.
    """

    page = fields.Int(
        load_default=1,
        validate=validate.Range(min=1, error="page must be a positive integer."),
    )

    per_page = fields.Int(
        load_default=None,
        validate=validate.Range(min=1, error="per_page must be a positive integer."),
    )
