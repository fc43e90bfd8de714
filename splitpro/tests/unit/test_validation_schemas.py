"""
tests/unit/test_validation_schemas.py — Unit tests for the marshmallow schemas.

What this file proves:
  - Every schema accepts valid input without raising
  - Request-shape rules (type, length, enum, decimal precision, currency
    shape) are enforced by the schemas
  - Split composition rules (NO_SPLITS, duplicates, over-allocation) are NOT
    checked here; they belong to the split calculator and are tested there
  - Error codes used as schema messages match errors.py constants

No database, no Flask application context: the schemas inherit from
marshmallow.Schema directly.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from marshmallow import ValidationError

from splitpro.app.errors import ErrorCode
from splitpro.app.models.expense import Category, SplitType
from splitpro.app.schemas.expense_schema import (
    CreateExpenseSchema,
    PaginationSchema,
    SplitInputSchema,
)
from splitpro.app.schemas.friend_schema import OpenFriendshipSchema


def _valid_expense(**overrides) -> dict:
    payload = {
        "description": "Dinner",
        "total_amount": "90.00",
        "splits": [
            {"user_id": 1, "split_type": "EQUAL"},
            {"user_id": 2, "split_type": "EQUAL"},
        ],
    }
    payload.update(overrides)
    return payload


# ═══════════════════════════════════════════════════════════════════════════
# SplitInputSchema
# ═══════════════════════════════════════════════════════════════════════════

class TestSplitInputSchema:

    def _load(self, data: dict):
        return SplitInputSchema().load(data)

    def test_percent_split(self):
        result = self._load({"user_id": 3, "split_type": "PERCENT", "split_value": "12.5"})
        assert result == {
            "user_id": 3,
            "split_type": SplitType.PERCENT,
            "split_value": Decimal("12.5"),
        }

    def test_split_type_defaults_to_equal(self):
        assert self._load({"user_id": 3})["split_type"] == SplitType.EQUAL

    def test_equal_split_value_is_dropped(self):
        result = self._load({"user_id": 3, "split_type": "EQUAL", "split_value": "40"})
        assert result["split_value"] is None

    def test_unknown_split_type(self):
        with pytest.raises(ValidationError) as exc_info:
            self._load({"user_id": 3, "split_type": "SHARES"})
        assert exc_info.value.messages["split_type"] == [ErrorCode.INVALID_SPLIT_TYPE]

    def test_amount_with_three_decimals_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            self._load({"user_id": 3, "split_type": "AMOUNT", "split_value": "10.005"})
        assert exc_info.value.messages["split_value"] == [ErrorCode.INVALID_AMOUNT_PRECISION]

    def test_percent_allows_four_decimals(self):
        result = self._load({"user_id": 3, "split_type": "PERCENT", "split_value": "33.3333"})
        assert result["split_value"] == Decimal("33.3333")

    def test_percent_with_five_decimals_is_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            self._load({"user_id": 3, "split_type": "PERCENT", "split_value": "33.33333"})
        assert "split_value" in exc_info.value.messages

    def test_negative_value_is_left_to_the_calculator(self):
        result = self._load({"user_id": 3, "split_type": "AMOUNT", "split_value": "-1.00"})
        assert result["split_value"] == Decimal("-1.00")

    @pytest.mark.parametrize("user_id", [0, -1, 1.0, "1"])
    def test_user_id_must_be_positive_integer(self, user_id):
        with pytest.raises(ValidationError) as exc_info:
            self._load({"user_id": user_id})
        assert "user_id" in exc_info.value.messages


# ═══════════════════════════════════════════════════════════════════════════
# CreateExpenseSchema
# ═══════════════════════════════════════════════════════════════════════════

class TestCreateExpenseSchema:

    def _load(self, data: dict):
        return CreateExpenseSchema().load(data)

    def test_valid_payload_with_defaults(self):
        result = self._load(_valid_expense())

        assert result["description"] == "Dinner"
        assert result["total_amount"] == Decimal("90.00")
        assert isinstance(result["total_amount"], Decimal)
        assert result["currency"] is None
        assert result["group_id"] is None
        assert result["category"] == Category.GENERAL
        assert result["notes"] is None
        assert result["occurred_at"] is None
        assert len(result["splits"]) == 2

    def test_full_payload(self):
        result = self._load(_valid_expense(
            description="  Groceries  ",
            currency="eur",
            group_id=4,
            category="SHOPPING",
            notes="weekly shop",
            occurred_at="2024-03-01T18:30:00+00:00",
        ))

        assert result["description"] == "Groceries"
        assert result["currency"] == "EUR"
        assert result["group_id"] == 4
        assert result["category"] == Category.SHOPPING
        assert result["occurred_at"].year == 2024

    @pytest.mark.parametrize("field", ["description", "total_amount", "splits"])
    def test_required_fields(self, field):
        payload = _valid_expense()
        del payload[field]
        with pytest.raises(ValidationError) as exc_info:
            self._load(payload)
        assert field in exc_info.value.messages

    @pytest.mark.parametrize("description", ["", "x", "   ", "d" * 201])
    def test_description_length_and_blank(self, description):
        with pytest.raises(ValidationError) as exc_info:
            self._load(_valid_expense(description=description))
        assert "description" in exc_info.value.messages

    @pytest.mark.parametrize("amount", ["0", "0.00", "-5.00"])
    def test_total_must_be_positive(self, amount):
        with pytest.raises(ValidationError) as exc_info:
            self._load(_valid_expense(total_amount=amount))
        assert "total_amount" in exc_info.value.messages

    def test_total_with_three_decimals_is_rejected_not_rounded(self):
        with pytest.raises(ValidationError) as exc_info:
            self._load(_valid_expense(total_amount="10.123"))
        assert exc_info.value.messages["total_amount"] == [ErrorCode.INVALID_AMOUNT_PRECISION]

    @pytest.mark.parametrize("currency", ["US", "USDX", "U5D", "12"])
    def test_malformed_currency(self, currency):
        with pytest.raises(ValidationError) as exc_info:
            self._load(_valid_expense(currency=currency))
        assert exc_info.value.messages["currency"] == [ErrorCode.INVALID_CURRENCY]

    def test_unknown_category(self):
        with pytest.raises(ValidationError) as exc_info:
            self._load(_valid_expense(category="GROCERIES"))
        assert exc_info.value.messages["category"] == [ErrorCode.INVALID_CATEGORY]

    def test_notes_max_length(self):
        with pytest.raises(ValidationError) as exc_info:
            self._load(_valid_expense(notes="n" * 501))
        assert "notes" in exc_info.value.messages

    def test_empty_splits_pass_the_schema(self):
        assert self._load(_valid_expense(splits=[]))["splits"] == []

    def test_duplicate_users_pass_the_schema(self):
        result = self._load(_valid_expense(splits=[{"user_id": 1}, {"user_id": 1}]))
        assert len(result["splits"]) == 2

    def test_nested_split_errors_are_keyed_by_index(self):
        with pytest.raises(ValidationError) as exc_info:
            self._load(_valid_expense(splits=[{"user_id": 1}, {"split_type": "EQUAL"}]))
        assert "user_id" in exc_info.value.messages["splits"][1]

    def test_payer_is_not_part_of_the_payload(self):
        with pytest.raises(ValidationError) as exc_info:
            self._load(_valid_expense(payer_id=2))
        assert "payer_id" in exc_info.value.messages


# ═══════════════════════════════════════════════════════════════════════════
# PaginationSchema / OpenFriendshipSchema
# ═══════════════════════════════════════════════════════════════════════════

class TestPaginationSchema:

    def test_defaults(self):
        assert PaginationSchema().load({}) == {"page": 1, "per_page": None}

    def test_query_strings_are_parsed(self):
        assert PaginationSchema().load({"page": "2", "per_page": "10"}) == {
            "page": 2,
            "per_page": 10,
        }

    @pytest.mark.parametrize("params", [{"page": "0"}, {"per_page": "0"}, {"page": "x"}])
    def test_invalid_values(self, params):
        with pytest.raises(ValidationError):
            PaginationSchema().load(params)


class TestOpenFriendshipSchema:

    def test_valid(self):
        assert OpenFriendshipSchema().load({"user_id": 5}) == {"user_id": 5}

    @pytest.mark.parametrize("payload", [{}, {"user_id": 0}, {"user_id": "5"}, {"user_id": 5.0}])
    def test_invalid(self, payload):
        with pytest.raises(ValidationError) as exc_info:
            OpenFriendshipSchema().load(payload)
        assert "user_id" in exc_info.value.messages
