"""
repositories/friend_repository.py — Storage primitives for balance edges.

The ledger service is the only caller of lock_pair() and increment(). They
work on columns, not ORM entities, so a stale BalanceEdge object in the
session identity map can never be written back over an atomic increment.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import and_, or_, select, update
from sqlalchemy.orm import Session

from splitpro.app.models.balance_edge import BalanceEdge


def _pair_clause(user_a: int, user_b: int):
    return and_(
        BalanceEdge.active.is_(True),
        or_(
            and_(BalanceEdge.owner_id == user_a, BalanceEdge.counterpart_id == user_b),
            and_(BalanceEdge.owner_id == user_b, BalanceEdge.counterpart_id == user_a),
        ),
    )


class FriendRepository:

    def __init__(self, session: Session) -> None:
        self.session = session

    # ── Entity access ──────────────────────────────────────────────────────

    def find_edge(self, owner_id: int, counterpart_id: int) -> BalanceEdge | None:
        """Returns the active edge for the ordered pair, if any."""
        stmt = select(BalanceEdge).where(
            BalanceEdge.owner_id == owner_id,
            BalanceEdge.counterpart_id == counterpart_id,
            BalanceEdge.active.is_(True),
        ).execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def find_active_edges(self, owner_id: int) -> list[BalanceEdge]:
        stmt = (
            select(BalanceEdge)
            .where(
                BalanceEdge.owner_id == owner_id,
                BalanceEdge.active.is_(True),
            )
            .order_by(BalanceEdge.counterpart_id)
            .execution_options(populate_existing=True)
        )
        return list(self.session.execute(stmt).scalars().all())

    def save(self, edge: BalanceEdge) -> BalanceEdge:
        self.session.add(edge)
        self.session.flush()
        return edge

    # ── Ledger primitives ──────────────────────────────────────────────────

    def lock_pair(self, user_a: int, user_b: int) -> list[tuple[int, int]]:
        """
        Locks the active edges between two users and returns their
        (owner_id, counterpart_id) keys.

        Rows are locked in (owner_id, counterpart_id) order so two transfers
        on the same pair, in either direction, always queue in the same order
        and cannot deadlock each other. SQLite ignores FOR UPDATE; its
        database-wide write lock gives the same serialisation.
        """
        stmt = (
            select(BalanceEdge.owner_id, BalanceEdge.counterpart_id)
            .where(_pair_clause(user_a, user_b))
            .order_by(BalanceEdge.owner_id, BalanceEdge.counterpart_id)
            .with_for_update()
        )
        return [(row.owner_id, row.counterpart_id) for row in self.session.execute(stmt)]

    def increment(self, owner_id: int, counterpart_id: int, delta: Decimal) -> int:
        """
        balance += delta in a single UPDATE statement. Returns rows touched.
        """
        stmt = (
            update(BalanceEdge)
            .where(
                BalanceEdge.owner_id == owner_id,
                BalanceEdge.counterpart_id == counterpart_id,
                BalanceEdge.active.is_(True),
            )
            .values(balance=BalanceEdge.balance + delta)
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount

    def read_pair_balances(self, user_a: int, user_b: int) -> dict[tuple[int, int], Decimal]:
        """Fresh {(owner_id, counterpart_id): balance} for the active pair."""
        stmt = select(
            BalanceEdge.owner_id,
            BalanceEdge.counterpart_id,
            BalanceEdge.balance,
        ).where(_pair_clause(user_a, user_b))
        return {
            (row.owner_id, row.counterpart_id): row.balance
            for row in self.session.execute(stmt)
        }

    def read_balance(self, owner_id: int, counterpart_id: int) -> Decimal | None:
        stmt = select(BalanceEdge.balance).where(
            BalanceEdge.owner_id == owner_id,
            BalanceEdge.counterpart_id == counterpart_id,
            BalanceEdge.active.is_(True),
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def deactivate_pair(self, user_a: int, user_b: int) -> int:
        """Soft-deletes both directions. Returns rows touched."""
        stmt = (
            update(BalanceEdge)
            .where(_pair_clause(user_a, user_b))
            .values(active=False, deactivated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return self.session.execute(stmt).rowcount
