"""
services/expense_service.py — Expense lifecycle.

States:  Pending ──create──▶ Active ──delete──▶ Deleted (terminal)
There is no edit transition: amount and splits are immutable once Active.

Create (one transaction, committed by the route):
  1. Payer must exist                               NotFoundError      (404)
  2. Group, if given, must exist                    NotFoundError      (404)
     and the payer must be an active member         ValidationError    (422)
  3. Every split participant must exist             ValidationError    (422)
  4. Split Calculator (errors propagate unchanged)  ValidationError    (422)
  5. Persist Expense + Splits (flush)
  6. apply_transfer(payer, participant, owed) for every non-payer split

Delete (one transaction, committed by the route):
  1. Expense must exist and be active               NotFoundError      (404)
  2. Caller must be the payer                       AuthorizationError (403)
  3. Claim: UPDATE ... SET active = false WHERE active; 0 rows  NotFoundError (404)
  4. reverse_transfer() for every non-payer split, using the stored amounts

Reads are gated: a single expense is visible only to its payer and
participants; a group listing only to active group members.

If step 6 (or delete step 4) fails partway, the exception propagates and the
request's session is rolled back, so no partial ledger state is committed.

Layer rules:
  - No Flask imports. No current_app, request, g, or HTTP knowledge.
  - Receives plain ints and dicts; returns ORM objects or raises AppError.
  - Commits are the route's responsibility — only flush here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from splitpro.app.errors import AuthorizationError, ErrorCode, NotFoundError, ValidationError
from splitpro.app.models.expense import Category, Expense
from splitpro.app.models.group import Group
from splitpro.app.models.split import Split
from splitpro.app.models.user import User
from splitpro.app.repositories.expense_repository import ExpensePage, ExpenseRepository
from splitpro.app.repositories.group_repository import GroupRepository
from splitpro.app.repositories.user_repository import UserRepository
from splitpro.app.services import ledger_service
from splitpro.app.services.ledger_service import LedgerSettings
from splitpro.app.services.money import Money
from splitpro.app.services.split_calculator import SplitResult, SplitSpec, compute_splits

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GroupExpenses:
    group: Group
    expenses: list[Expense]
    count: int
    total_amount: Decimal


# ── Private helpers ────────────────────────────────────────────────────────

def _get_payer_or_404(payer_id: int, session: Session) -> User:
    payer = UserRepository(session).find_by_id(payer_id)
    if payer is None:
        raise NotFoundError(
            ErrorCode.USER_NOT_FOUND,
            f"Payer {payer_id} does not exist.",
        )
    return payer


def _get_group_or_404(group_id: int, session: Session) -> Group:
    group = GroupRepository(session).find_by_id(group_id)
    if group is None:
        raise NotFoundError(
            ErrorCode.GROUP_NOT_FOUND,
            f"Group {group_id} does not exist.",
            field="group_id",
        )
    return group


def _get_active_expense_or_404(expense_id: int, session: Session) -> Expense:
    """Deleted expenses are reported exactly like missing ones."""
    expense = ExpenseRepository(session).find_by_id(expense_id)
    if expense is None or not expense.active:
        raise NotFoundError(
            ErrorCode.EXPENSE_NOT_FOUND,
            f"Expense {expense_id} does not exist.",
        )
    return expense


def _validate_payer_is_member(payer_id: int, group: Group) -> None:
    if not group.is_member(payer_id):
        raise ValidationError(
            ErrorCode.PAYER_NOT_MEMBER,
            f"User {payer_id} is not a member of group {group.id}.",
            field="group_id",
        )


def _resolve_participants(split_data: list[dict], session: Session) -> dict[int, User]:
    participant_ids = [s["user_id"] for s in split_data]
    participants = UserRepository(session).find_all_by_id(participant_ids)
    missing = sorted(set(participant_ids) - participants.keys())
    if missing:
        raise ValidationError(
            ErrorCode.PARTICIPANT_NOT_FOUND,
            f"Some participants were not found: {', '.join(str(m) for m in missing)}.",
            field="splits",
        )
    return participants


def _to_specs(split_data: list[dict]) -> list[SplitSpec]:
    return [
        SplitSpec(
            participant_id=s["user_id"],
            split_type=s["split_type"],
            value=s.get("split_value"),
        )
        for s in split_data
    ]


def _build_expense(payer_id: int, group: Group | None, data: dict, result: SplitResult) -> Expense:
    expense = Expense(
        description=data["description"],
        total_amount=result.total.amount,
        currency=result.total.currency,
        payer_id=payer_id,
        group_id=group.id if group is not None else None,
        category=data.get("category") or Category.GENERAL,
        notes=data.get("notes"),
        occurred_at=data.get("occurred_at") or datetime.now(timezone.utc),
        active=True,
    )
    expense.splits = [
        Split(
            user_id=computed.participant_id,
            position=position,
            split_type=computed.split_type,
            split_value=computed.split_value,
            amount_owed=computed.amount_owed,
        )
        for position, computed in enumerate(result.splits)
    ]
    return expense


def _require_involvement(expense: Expense, user_id: int) -> None:
    if not expense.involves(user_id):
        raise AuthorizationError(
            ErrorCode.FORBIDDEN,
            "You are not involved in this expense.",
        )


# ── Public service functions ───────────────────────────────────────────────

def create_expense(
        payer_id: int,
        data: dict,
        session: Session,
        settings: LedgerSettings | None = None,
) -> Expense:
    """
    Records a new expense paid by `payer_id` and moves the ledger.

    Args:
        payer_id: The authenticated user who paid.
        data:     Validated dict from CreateExpenseSchema.
        settings: Ledger retry / verification settings.

    Returns:
        The new Expense with its splits. `expense.is_balanced` may be False;
        that is reported, not corrected.
    """
    _get_payer_or_404(payer_id, session)

    group = None
    if data.get("group_id") is not None:
        group = _get_group_or_404(data["group_id"], session)
        _validate_payer_is_member(payer_id, group)

    split_data: list[dict] = data.get("splits") or []
    participants = _resolve_participants(split_data, session)

    total = Money(data["total_amount"], data.get("currency") or "USD")
    result = compute_splits(total, _to_specs(split_data), participants.keys())

    expense = ExpenseRepository(session).save(_build_expense(payer_id, group, data, result))

    for split in expense.splits:
        if split.user_id == payer_id:
            continue
        ledger_service.apply_transfer(
            creditor_id=payer_id,
            debtor_id=split.user_id,
            amount=split.amount_owed,
            session=session,
            settings=settings,
        )

    if not result.is_balanced:
        logger.info(
            "Expense %s is unbalanced: splits total %s of %s",
            expense.id, result.total_owed, result.total,
        )
    logger.info(
        "Expense %s created by user %s: %s with %d splits",
        expense.id, payer_id, result.total, len(expense.splits),
    )
    return expense


def delete_expense(
        expense_id: int,
        caller_id: int,
        session: Session,
        settings: LedgerSettings | None = None,
) -> Expense:
    """
    Soft-deletes an expense and reverses its ledger effect.

    The expense is claimed with a conditional UPDATE before any balance
    moves, so of two concurrent deletes exactly one reverses the ledger and
    the other sees NotFound.

    Raises:
        NotFoundError      — expense missing or already deleted.
        AuthorizationError — caller is not the payer.
    """
    expense = _get_active_expense_or_404(expense_id, session)

    if expense.payer_id != caller_id:
        raise AuthorizationError(
            ErrorCode.FORBIDDEN,
            "Only the payer can delete an expense.",
        )

    if not ExpenseRepository(session).mark_deleted(expense, datetime.now(timezone.utc)):
        raise NotFoundError(
            ErrorCode.EXPENSE_NOT_FOUND,
            f"Expense {expense_id} does not exist.",
        )

    for split in expense.splits:
        if split.user_id == expense.payer_id:
            continue
        ledger_service.reverse_transfer(
            creditor_id=expense.payer_id,
            debtor_id=split.user_id,
            amount=split.amount_owed,
            session=session,
            settings=settings,
        )
    session.flush()

    logger.info("Expense %s deleted by user %s", expense_id, caller_id)
    return expense


def get_expense_details(
        expense_id: int,
        caller_id: int,
        session: Session,
) -> Expense:
    """Returns an active expense the caller paid for or participates in."""
    expense = _get_active_expense_or_404(expense_id, session)
    _require_involvement(expense, caller_id)
    return expense


def get_user_expenses(
        user_id: int,
        session: Session,
        page: int = 1,
        per_page: int = 20,
) -> ExpensePage:
    """Active expenses the user is involved in, newest first."""
    return ExpenseRepository(session).find_by_user_involvement(user_id, page, per_page)


def get_group_expenses(
        group_id: int,
        caller_id: int,
        session: Session,
) -> GroupExpenses:
    """
    Active expenses of a group, newest first, with count and total.

    Raises:
        NotFoundError      — group missing or inactive.
        AuthorizationError — caller is not an active member.
    """
    group = _get_group_or_404(group_id, session)
    if not group.is_member(caller_id):
        raise AuthorizationError(
            ErrorCode.FORBIDDEN,
            f"You are not a member of group {group_id}.",
        )

    repo = ExpenseRepository(session)
    return GroupExpenses(
        group=group,
        expenses=repo.find_by_group_id(group_id),
        count=repo.count_by_group_id(group_id),
        total_amount=repo.total_amount_by_group_id(group_id),
    )
