"""
models/expense.py — Expense table definition.

No business logic. No imports from services or routes.

Key design points:
  - `active` is the soft-delete marker; `deleted_at` records when it flipped.
    Rows are never physically removed by the API.
  - `total_amount` uses Numeric(12, 2) — never Float.
  - `group_id` is nullable: personal expenses between friends have no group.
  - Amount and splits are immutable once written; there is no edit path.
  - SplitType and Category are Python enums so they can be imported and used
    throughout the service layer without repeating string literals.
"""

from __future__ import annotations

import enum
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    func,
    text,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from splitpro.app.extensions import db


# ── Enum Definitions ───────────────────────────────────────────────────────

class SplitType(str, enum.Enum):
    EQUAL   = "EQUAL"     # share of what is left after fixed amounts
    PERCENT = "PERCENT"   # percentage of the full total
    AMOUNT  = "AMOUNT"    # fixed amount


class Category(str, enum.Enum):
    GENERAL        = "GENERAL"
    FOOD           = "FOOD"
    TRANSPORTATION = "TRANSPORTATION"
    ENTERTAINMENT  = "ENTERTAINMENT"
    SHOPPING       = "SHOPPING"
    UTILITIES      = "UTILITIES"
    RENT           = "RENT"
    TRAVEL         = "TRAVEL"
    OTHER          = "OTHER"

    @property
    def display_name(self) -> str:
        return _CATEGORY_DISPLAY_NAMES[self]


_CATEGORY_DISPLAY_NAMES = {
    Category.GENERAL:        "General",
    Category.FOOD:           "Food & Dining",
    Category.TRANSPORTATION: "Transportation",
    Category.ENTERTAINMENT:  "Entertainment",
    Category.SHOPPING:       "Shopping",
    Category.UTILITIES:      "Utilities",
    Category.RENT:           "Rent & Housing",
    Category.TRAVEL:         "Travel",
    Category.OTHER:          "Other",
}


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    """Ensure SQLAlchemy stores enum values, not names."""
    return [member.value for member in enum_cls]


# ── Model ──────────────────────────────────────────────────────────────────

class Expense(db.Model):
    __tablename__ = "expenses"

    __table_args__ = (
        CheckConstraint("total_amount > 0", name="ck_expenses_amount_positive"),
        CheckConstraint(
            "LENGTH(TRIM(description)) > 0",
            name="ck_expenses_description_nonempty",
        ),
        # Group listings only ever read active rows.
        Index(
            "idx_expenses_group_active",
            "group_id",
            postgresql_where=text("active"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    description: Mapped[str] = mapped_column(
        String(200),
        nullable=False,
    )

    # NUMERIC(12, 2). Never Float. More than 2 dp is rejected, not rounded.
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default="USD",
        server_default="USD",
    )

    payer_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    group_id: Mapped[int | None] = mapped_column(
        ForeignKey("groups.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )

    category: Mapped[Category] = mapped_column(
        Enum(
            Category,
            name="expense_category_enum",
            values_callable=_enum_values,
        ),
        nullable=False,
        default=Category.GENERAL,
        server_default=Category.GENERAL.value,
    )

    notes: Mapped[str | None] = mapped_column(
        Text,
        nullable=True,
    )

    # When the spending happened, as reported by the caller.
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=true(),
    )

    deleted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    group: Mapped["Group"] = relationship(  # noqa: F821
        "Group",
        back_populates="expenses",
    )

    payer: Mapped["User"] = relationship(  # noqa: F821
        "User",
        back_populates="expenses_paid",
        foreign_keys=[payer_id],
    )

    # Splits are owned by their expense and kept in input order.
    splits: Mapped[list["Split"]] = relationship(  # noqa: F821
        "Split",
        back_populates="expense",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Split.position",
    )

    # ── Convenience properties ─────────────────────────────────────────────
    # Read-only; they only inspect column values.

    @property
    def total_split_amount(self) -> Decimal:
        return sum((s.amount_owed for s in self.splits), Decimal("0.00"))

    @property
    def is_balanced(self) -> bool:
        """Informational: True when the owed amounts add up to the total exactly."""
        return self.total_split_amount == self.total_amount

    def involves(self, user_id: int) -> bool:
        """True if user_id paid for this expense or owes a share of it."""
        return self.payer_id == user_id or any(s.user_id == user_id for s in self.splits)

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<Expense id={self.id} "
            f"payer_id={self.payer_id} "
            f"total_amount={self.total_amount} {self.currency} "
            f"active={self.active}>"
        )
