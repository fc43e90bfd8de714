"""
models/balance_edge.py — BalanceEdge table definition.

One row per ordered (owner, counterpart) pair of friends.

`balance` reads "counterpart owes owner this amount"; negative means the owner
owes the counterpart. Rows come in pairs and the pair always satisfies

    balance(A, B) == -balance(B, A)

Only services/ledger_service.py writes to `balance`. Nothing else may.

Key design points:
  - Created in pairs at zero when a friendship is established.
  - Soft-deleted in pairs (`active` = false) when the friendship ends; the
    rows stay as history. At most one ACTIVE row per ordered pair (partial
    unique index), so a renewed friendship starts a fresh pair at zero.
  - `balance` uses Numeric(12, 2) — never Float.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    func,
    text,
    true,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from splitpro.app.extensions import db


class BalanceEdge(db.Model):
    __tablename__ = "balance_edges"

    __table_args__ = (
        CheckConstraint("owner_id <> counterpart_id", name="ck_balance_edges_distinct_users"),
        Index(
            "uq_balance_edges_active_pair",
            "owner_id",
            "counterpart_id",
            unique=True,
            postgresql_where=text("active"),
            sqlite_where=text("active = 1"),
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True)

    owner_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    counterpart_id: Mapped[int] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )

    balance: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        server_default="0",
    )

    active: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        server_default=true(),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    deactivated_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # ── Relationships ──────────────────────────────────────────────────────

    counterpart: Mapped["User"] = relationship(  # noqa: F821
        "User",
        foreign_keys=[counterpart_id],
    )

    def __repr__(self) -> str:  # pragma: no cover
        return (
            f"<BalanceEdge owner_id={self.owner_id} "
            f"counterpart_id={self.counterpart_id} "
            f"balance={self.balance} "
            f"active={self.active}>"
        )
