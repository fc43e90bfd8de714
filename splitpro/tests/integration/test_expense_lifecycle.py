"""
tests/integration/test_expense_lifecycle.py — create / delete against the ledger.

Rules verified:
  - Creating an expense moves balance(payer, participant) by exactly the
    computed amount owed; the payer's own split moves nothing
  - Deleting it restores every balance to its pre-creation value exactly
  - Deleted and unknown expenses are NotFound, not a silent no-op
  - Participants without a friendship are recorded but their balance stays 0
  - A ledger fault midway leaves neither the expense nor any balance behind
  - Of two interleaved deletes of one expense, only one reverses the ledger
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from splitpro.app.errors import AuthorizationError, NotFoundError
from splitpro.app.models.balance_edge import BalanceEdge
from splitpro.app.models.expense import Category, Expense, SplitType
from splitpro.app.services import expense_service, ledger_service

from .conftest import (
    auth_headers,
    balance_of,
    equal_splits,
    make_friends,
    make_user,
    post_expense,
)


def _data(splits: list[dict], total: str = "90.00", **extra) -> dict:
    data = {
        "description": "Dinner",
        "total_amount": Decimal(total),
        "currency": "USD",
        "group_id": None,
        "splits": splits,
        "category": Category.FOOD,
        "notes": None,
        "occurred_at": None,
    }
    data.update(extra)
    return data


def _split(user_id: int, split_type: SplitType = SplitType.EQUAL, value: str | None = None) -> dict:
    return {
        "user_id": user_id,
        "split_type": split_type,
        "split_value": Decimal(value) if value is not None else None,
    }


@pytest.fixture
def trio(app):
    """payer P with friends X and Y, plus some prior history between them."""
    p = make_user(app, "payer")
    x = make_user(app, "xavier")
    y = make_user(app, "yasmin")
    make_friends(app, p, x)
    make_friends(app, p, y)
    return p, x, y


class TestCreateThenDelete:

    def test_delete_restores_balances_exactly(self, app, session, trio):
        p, x, y = trio
        prior = expense_service.create_expense(
            y, _data([_split(p), _split(y)], total="17.35"), session,
        )
        before = {
            (p, x): ledger_service.get_balance(p, x, session),
            (p, y): ledger_service.get_balance(p, y, session),
        }
        assert before[(p, y)] == Decimal("-8.68")
        assert prior.is_balanced is False

        expense = expense_service.create_expense(
            p,
            _data([
                _split(x, SplitType.AMOUNT, "12.34"),
                _split(y, SplitType.PERCENT, "33.3333"),
                _split(p),
            ], total="100.00"),
            session,
        )
        x_owes = expense.splits[0].amount_owed
        y_owes = expense.splits[1].amount_owed
        assert (x_owes, y_owes) == (Decimal("12.34"), Decimal("33.33"))
        assert ledger_service.get_balance(p, x, session) == before[(p, x)] + x_owes
        assert ledger_service.get_balance(p, y, session) == before[(p, y)] + y_owes
        assert ledger_service.get_balance(x, p, session) == -(before[(p, x)] + x_owes)

        expense_service.delete_expense(expense.id, p, session)

        assert ledger_service.get_balance(p, x, session) == before[(p, x)]
        assert ledger_service.get_balance(p, y, session) == before[(p, y)]
        assert ledger_service.get_balance(y, p, session) == -before[(p, y)]

    def test_payer_split_moves_nothing(self, app, session, trio):
        p, x, _ = trio

        expense_service.create_expense(p, _data([_split(p)], total="40.00"), session)

        assert ledger_service.get_balance(p, x, session) == Decimal("0.00")

    def test_delete_twice_is_not_found(self, app, session, trio):
        p, x, _ = trio
        expense = expense_service.create_expense(p, _data([_split(p), _split(x)]), session)
        expense_service.delete_expense(expense.id, p, session)

        with pytest.raises(NotFoundError):
            expense_service.delete_expense(expense.id, p, session)
        assert ledger_service.get_balance(p, x, session) == Decimal("0.00")

    def test_delete_unknown_is_not_found(self, app, session, trio):
        with pytest.raises(NotFoundError):
            expense_service.delete_expense(999_999, trio[0], session)

    def test_deleted_expense_is_hidden_from_details_and_listings(self, app, session, trio):
        p, x, _ = trio
        expense = expense_service.create_expense(p, _data([_split(x)]), session)
        expense_service.delete_expense(expense.id, p, session)

        with pytest.raises(NotFoundError):
            expense_service.get_expense_details(expense.id, p, session)
        assert expense_service.get_user_expenses(x, session).total == 0

    def test_outsider_cannot_read_details(self, app, session, trio):
        p, x, _ = trio
        outsider = make_user(app, "olga")
        expense = expense_service.create_expense(p, _data([_split(x)]), session)

        with pytest.raises(AuthorizationError):
            expense_service.get_expense_details(expense.id, outsider, session)

    def test_participant_without_friendship_is_recorded_but_owes_nothing(self, app, session, trio):
        p, x, _ = trio
        stranger = make_user(app, "stan")

        expense = expense_service.create_expense(
            p, _data([_split(x), _split(stranger)], total="50.00"), session,
        )

        assert [s.user_id for s in expense.splits] == [x, stranger]
        assert ledger_service.get_balance(p, x, session) == Decimal("25.00")
        assert ledger_service.get_balance(p, stranger, session) == Decimal("0.00")


class TestAtomicity:

    def test_fault_on_second_participant_rolls_back_everything(self, app, client, trio):
        p, x, y = trio
        # Break the p<->y pair: only one direction stays active.
        with app.app_context():
            from splitpro.app.extensions import db

            edge = db.session.execute(
                select(BalanceEdge).where(
                    BalanceEdge.owner_id == y,
                    BalanceEdge.counterpart_id == p,
                )
            ).scalar_one()
            edge.active = False
            db.session.commit()

        resp = post_expense(client, app, p, "90.00", equal_splits(x, y, p))

        assert resp.status_code == 500
        assert resp.get_json()["error"]["code"] == "INTERNAL_ERROR"
        assert balance_of(app, p, x) == Decimal("0.00")
        with app.app_context():
            from splitpro.app.extensions import db

            assert db.session.execute(select(func.count(Expense.id))).scalar_one() == 0

        # The x pair is still usable once the request was rolled back.
        ok = post_expense(client, app, p, "10.00", equal_splits(x))
        assert ok.status_code == 201, ok.get_json()
        assert balance_of(app, p, x) == Decimal("10.00")
        assert client.get("/api/v1/balances", headers=auth_headers(app, x)).status_code == 200


class TestConcurrentDelete:

    def test_interleaved_deletes_reverse_the_ledger_once(self, file_app, file_engine):
        p = make_user(file_app, "payer")
        x = make_user(file_app, "xavier")
        make_friends(file_app, p, x)
        with Session(file_engine) as setup:
            expense_id = expense_service.create_expense(
                p, _data([_split(p), _split(x)], total="90.00"), setup,
            ).id
            setup.commit()
        assert balance_of(file_app, p, x) == Decimal("45.00")

        first = Session(file_engine, expire_on_commit=False)
        second = Session(file_engine)
        try:
            # `first` reads the expense as active, then lets go of the database.
            stale = first.get(Expense, expense_id)
            assert stale.active is True and len(stale.splits) == 2
            first.commit()

            expense_service.delete_expense(expense_id, p, second)
            second.commit()

            with pytest.raises(NotFoundError):
                expense_service.delete_expense(expense_id, p, first)
            first.rollback()
        finally:
            first.close()
            second.close()

        assert balance_of(file_app, p, x) == Decimal("0.00")
        assert balance_of(file_app, x, p) == Decimal("0.00")
        with Session(file_engine) as check:
            assert check.get(Expense, expense_id).active is False
