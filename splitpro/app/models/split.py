"""
models/split.py — Split table definition.

Key design points:
  - `amount_owed` uses Numeric(12, 2), `split_value` Numeric(12, 4) — never Float.
  - `split_value` holds the caller's input: a percentage for PERCENT, a fixed
    amount for AMOUNT, NULL for EQUAL.
  - `position` keeps the order the splits were submitted in.
  - UNIQUE(expense_id, user_id): a participant appears once per expense.

sum(amount_owed) is NOT required to equal the expense total; see
Expense.is_balanced.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import CheckConstraint, Enum, ForeignKey, Integer, Numeric, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from splitpro.app.extensions import db
from splitpro.app.models.expense import SplitType, _enum_values


class Split(db.Model):
    __tablename__ = "splits"

    __table_args__ = (
        UniqueConstraint("expense_id", "user_id", name="uq_splits_expense_user"),
        CheckConstraint("amount_owed >= 0", name="ck_splits_amount_nonnegative"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    expense_id: Mapped[int] = mapped_column(
        ForeignKey("expenses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    user_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    position: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
    )

    split_type: Mapped[SplitType] = mapped_column(
        Enum(
            SplitType,
            name="split_type_enum",
            values_callable=_enum_values,
        ),
        nullable=False,
    )

    # Scale 4: percentages may carry more precision than cents.
    split_value: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 4),
        nullable=True,
    )

    amount_owed: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    expense: Mapped["Expense"] = relationship(  # noqa: F821
        "Expense",
        back_populates="splits",
    )

    user: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="splits",
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Split id={self.id} "
            f"expense_id={self.expense_id} "
            f"user_id={self.user_id} "
            f"{self.split_type.value} "
            f"amount_owed={self.amount_owed}>"
        )
