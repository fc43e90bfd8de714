"""
repositories/expense_repository.py — Storage and queries for expenses.

Every listing query filters `active = true`. Soft-deleted expenses are only
reachable through find_by_id(), and the lifecycle treats them as absent.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.attributes import set_committed_value

from splitpro.app.models.expense import Expense
from splitpro.app.models.split import Split


@dataclass(frozen=True)
class ExpensePage:
    items: list[Expense]
    page: int
    per_page: int
    total: int

    @property
    def pages(self) -> int:
        if self.per_page <= 0:
            return 0
        return (self.total + self.per_page - 1) // self.per_page


class ExpenseRepository:

    def __init__(self, session: Session) -> None:
        self.session = session

    def save(self, expense: Expense) -> Expense:
        """Adds the expense (and its splits) and flushes so it gets an id."""
        self.session.add(expense)
        self.session.flush()
        return expense

    def find_by_id(self, expense_id: int) -> Expense | None:
        """Returns the expense whether active or deleted."""
        return self.session.get(Expense, expense_id)

    def mark_deleted(self, expense: Expense, deleted_at: datetime) -> bool:
        """
        Flips an active expense to deleted in one conditional UPDATE.

        Returns False when the row was no longer active: another transaction
        deleted it first, whatever the in-memory copy still says. On success
        the loaded instance is updated without marking it dirty.
        """
        stmt = (
            update(Expense)
            .where(Expense.id == expense.id, Expense.active.is_(True))
            .values(active=False, deleted_at=deleted_at)
            .execution_options(synchronize_session=False)
        )
        if self.session.execute(stmt).rowcount != 1:
            return False
        set_committed_value(expense, "active", False)
        set_committed_value(expense, "deleted_at", deleted_at)
        return True

    def find_by_user_involvement(
            self,
            user_id: int,
            page: int = 1,
            per_page: int = 20,
    ) -> ExpensePage:
        """Active expenses the user paid for or has a split in, newest first."""
        involved = or_(
            Expense.payer_id == user_id,
            Expense.id.in_(select(Split.expense_id).where(Split.user_id == user_id)),
        )
        count_stmt = (
            select(func.count(Expense.id))
            .where(Expense.active.is_(True), involved)
        )
        total = self.session.execute(count_stmt).scalar_one()

        stmt = (
            select(Expense)
            .where(Expense.active.is_(True), involved)
            .options(selectinload(Expense.splits))
            .order_by(Expense.created_at.desc(), Expense.id.desc())
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        items = list(self.session.execute(stmt).scalars().all())
        return ExpensePage(items=items, page=page, per_page=per_page, total=total)

    def find_by_group_id(self, group_id: int) -> list[Expense]:
        stmt = (
            select(Expense)
            .where(
                Expense.group_id == group_id,
                Expense.active.is_(True),
            )
            .options(selectinload(Expense.splits))
            .order_by(Expense.created_at.desc(), Expense.id.desc())
        )
        return list(self.session.execute(stmt).scalars().all())

    def count_by_group_id(self, group_id: int) -> int:
        stmt = select(func.count(Expense.id)).where(
            Expense.group_id == group_id,
            Expense.active.is_(True),
        )
        return self.session.execute(stmt).scalar_one()

    def total_amount_by_group_id(self, group_id: int) -> Decimal:
        stmt = select(func.coalesce(func.sum(Expense.total_amount), 0)).where(
            Expense.group_id == group_id,
            Expense.active.is_(True),
        )
        return Decimal(str(self.session.execute(stmt).scalar_one())).quantize(Decimal("0.01"))
