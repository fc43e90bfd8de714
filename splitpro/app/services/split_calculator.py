"""
services/split_calculator.py — Turns a total and split instructions into owed amounts.

Pure functions over Decimal. No database, no Flask, no side effects.

Algorithm (order matters; it is a three-pass reduction over split type):

  1. AMOUNT  — each fixed amount is taken off `remaining` (starts at the
               total). A value larger than what is left fails.
  2. PERCENT — percentages must not add up to more than 100. Each share is
               round_half_up(total * pct / 100) against the ORIGINAL total.
               `remaining` is not reduced by this pass.
  3. EQUAL   — every EQUAL participant owes round_half_up(remaining / n).
               Leftover cents are not redistributed.

The result is not forced to add up to the total. 100.00 split three ways
EQUAL is 33.33 x 3 = 99.99 and SplitResult.is_balanced reports False; a
PERCENT + EQUAL mix over-allocates because EQUAL does not net PERCENT
shares. Both are recorded as computed. Changing the pass order changes
financial output, so it stays as it is.
"""

from __future__ import annotations

from collections.abc import Collection, Iterable
from dataclasses import dataclass
from decimal import Decimal

from splitpro.app.errors import ErrorCode, NotFoundError, ValidationError
from splitpro.app.models.expense import SplitType
from splitpro.app.services.money import (
    HUNDRED,
    ZERO,
    Money,
    decimal_places,
    divide_half_up,
    round_half_up,
)


@dataclass(frozen=True)
class SplitSpec:
    """One participant's split instruction as submitted by the caller."""

    participant_id: int
    split_type: SplitType
    value: Decimal | None = None


@dataclass(frozen=True)
class ComputedSplit:
    participant_id: int
    split_type: SplitType
    split_value: Decimal | None
    amount_owed: Decimal


@dataclass(frozen=True)
class SplitResult:
    total: Money
    splits: list[ComputedSplit]

    @property
    def total_owed(self) -> Decimal:
        return sum((s.amount_owed for s in self.splits), ZERO)

    @property
    def is_balanced(self) -> bool:
        return self.total_owed == self.total.amount


# ── Validation helpers ─────────────────────────────────────────────────────

def _validate_specs(
        total: Money,
        specs: list[SplitSpec],
        participants: Collection[int],
) -> None:
    if not total.is_positive():
        raise ValidationError(
            ErrorCode.NON_POSITIVE_TOTAL,
            f"Expense total must be greater than zero (got {total.amount}).",
            field="total_amount",
        )

    if not specs:
        raise ValidationError(
            ErrorCode.NO_SPLITS,
            "At least one split is required.",
            field="splits",
        )

    seen: set[int] = set()
    for spec in specs:
        if spec.participant_id in seen:
            raise ValidationError(
                ErrorCode.DUPLICATE_SPLIT_USER,
                f"User {spec.participant_id} appears more than once in the splits.",
                field="splits",
            )
        seen.add(spec.participant_id)

        if spec.participant_id not in participants:
            raise NotFoundError(
                ErrorCode.PARTICIPANT_NOT_FOUND,
                f"Split participant {spec.participant_id} is not a known user.",
                field="splits",
            )

        if spec.split_type == SplitType.EQUAL:
            continue

        if spec.value is None:
            raise ValidationError(
                ErrorCode.MISSING_SPLIT_VALUE,
                f"A {spec.split_type.value} split for user {spec.participant_id} "
                f"needs a split value.",
                field="splits",
            )
        if spec.value < 0:
            raise ValidationError(
                ErrorCode.NEGATIVE_SPLIT_VALUE,
                f"Split value for user {spec.participant_id} must not be negative.",
                field="splits",
            )
        if spec.split_type == SplitType.AMOUNT and decimal_places(spec.value) > 2:
            raise ValidationError(
                ErrorCode.INVALID_AMOUNT_PRECISION,
                f"Fixed amount for user {spec.participant_id} has more than 2 decimal places.",
                field="splits",
            )


def _by_type(specs: Iterable[SplitSpec], split_type: SplitType) -> list[SplitSpec]:
    return [s for s in specs if s.split_type == split_type]


# ── Passes ─────────────────────────────────────────────────────────────────

def _amount_pass(total: Decimal, specs: list[SplitSpec]) -> tuple[dict[int, Decimal], Decimal]:
    """Returns ({participant_id: owed}, remaining after fixed amounts)."""
    owed: dict[int, Decimal] = {}
    remaining = total
    for spec in _by_type(specs, SplitType.AMOUNT):
        if spec.value > remaining:
            raise ValidationError(
                ErrorCode.AMOUNT_EXCEEDS_TOTAL,
                f"Fixed amount splits exceed the expense total of {total}.",
                field="splits",
            )
        owed[spec.participant_id] = spec.value
        remaining -= spec.value
    return owed, remaining


def _percent_pass(total: Decimal, specs: list[SplitSpec]) -> dict[int, Decimal]:
    percent_specs = _by_type(specs, SplitType.PERCENT)
    total_percentage = sum((s.value for s in percent_specs), Decimal("0"))
    if total_percentage > HUNDRED:
        raise ValidationError(
            ErrorCode.PERCENT_EXCEEDS_100,
            f"Percentage splits add up to {total_percentage}%, more than 100%.",
            field="splits",
        )
    return {
        s.participant_id: round_half_up(total * s.value / HUNDRED)
        for s in percent_specs
    }


def _equal_pass(remaining: Decimal, specs: list[SplitSpec]) -> dict[int, Decimal]:
    equal_specs = _by_type(specs, SplitType.EQUAL)
    if not equal_specs:
        return {}
    share = divide_half_up(remaining, len(equal_specs))
    return {s.participant_id: share for s in equal_specs}


# ── Public API ─────────────────────────────────────────────────────────────

def compute_splits(
        total: Money,
        specs: list[SplitSpec],
        participants: Collection[int],
) -> SplitResult:
    """
    Computes what each participant owes for an expense of `total`.

    Args:
        total:        Expense total. Must be positive.
        specs:        Split instructions, one per participant.
        participants: IDs of the users the specs may reference.

    Returns:
        SplitResult with one ComputedSplit per spec, in input order.

    Raises:
        ValidationError — empty / malformed specs, AMOUNT over-allocation,
                          PERCENT over 100.
        NotFoundError   — a spec names a participant not in `participants`.
    """
    specs = list(specs)
    _validate_specs(total, specs, participants)

    fixed, remaining = _amount_pass(total.amount, specs)
    percents = _percent_pass(total.amount, specs)
    equals = _equal_pass(remaining, specs)

    owed = {**fixed, **percents, **equals}
    computed = [
        ComputedSplit(
            participant_id=spec.participant_id,
            split_type=spec.split_type,
            split_value=None if spec.split_type == SplitType.EQUAL else spec.value,
            amount_owed=round_half_up(owed[spec.participant_id]),
        )
        for spec in specs
    ]
    return SplitResult(total=total, splits=computed)
