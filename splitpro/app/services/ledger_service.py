"""
services/ledger_service.py — The pairwise balance ledger.

This file is the SINGLE writer of BalanceEdge.balance. Any change to how
balances move must be made here.

Model:
  balance(owner, counterpart) = what counterpart owes owner.
  Symmetry invariant: balance(A, B) == -balance(B, A) for every active pair.

apply_transfer(creditor, debtor, amount):
  balance(creditor, debtor) += amount
  balance(debtor, creditor) -= amount
The inverse is the same call with -amount; it restores the previous balances
exactly because both directions move by the same stored Decimal.

Atomicity and ordering for one pair:
  1. SAVEPOINT.
  2. Lock both active rows in sorted (owner_id, counterpart_id) order.
  3. Two atomic increments (UPDATE ... SET balance = balance + :delta).
  4. Optionally re-read the pair and check symmetry.
  5. RELEASE, or ROLLBACK TO SAVEPOINT on any error.
Transient storage errors (deadlock, serialization failure, lock timeout) are
retried a bounded number of times; everything else propagates.

No friendship (no active edge in either direction) means the transfer is a
no-op: an expense never creates a balance. One direction present without the
other is a ConsistencyFault.

Layer rules:
  - No Flask imports. Receives ids, Decimals, and a SQLAlchemy Session.
  - Flushes only; the request boundary commits.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from splitpro.app.errors import (
    ConflictError,
    ConsistencyFault,
    ErrorCode,
    NotFoundError,
    ValidationError,
)
from splitpro.app.models.balance_edge import BalanceEdge
from splitpro.app.repositories.friend_repository import FriendRepository
from splitpro.app.repositories.user_repository import UserRepository
from splitpro.app.services.money import ZERO

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_BACKOFF_SECONDS = 0.05


@dataclass(frozen=True)
class LedgerSettings:
    max_retries: int = DEFAULT_MAX_RETRIES
    retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS
    verify_symmetry: bool = True

    @classmethod
    def from_config(cls, config) -> "LedgerSettings":
        """Builds settings from a Flask config mapping (or any dict)."""
        return cls(
            max_retries=config.get("LEDGER_MAX_RETRIES", DEFAULT_MAX_RETRIES),
            retry_backoff_seconds=config.get(
                "LEDGER_RETRY_BACKOFF_SECONDS", DEFAULT_RETRY_BACKOFF_SECONDS
            ),
            verify_symmetry=config.get("LEDGER_VERIFY_SYMMETRY", True),
        )


@dataclass
class UserBalances:
    user_id: int
    balances: dict[int, Decimal] = field(default_factory=dict)
    total_owed: Decimal = ZERO          # what the user owes others
    total_owed_to_you: Decimal = ZERO   # what others owe the user

    @property
    def net_balance(self) -> Decimal:
        return self.total_owed_to_you - self.total_owed


# ── Transfers ──────────────────────────────────────────────────────────────

def _apply_pair(
        repo: FriendRepository,
        creditor_id: int,
        debtor_id: int,
        amount: Decimal,
        verify_symmetry: bool,
) -> bool:
    locked = repo.lock_pair(creditor_id, debtor_id)

    if not locked:
        logger.debug(
            "No friendship between %s and %s; transfer of %s skipped",
            creditor_id, debtor_id, amount,
        )
        return False

    if len(locked) != 2:
        raise ConsistencyFault(
            f"Only one direction of the balance pair ({creditor_id}, {debtor_id}) is active.",
            creditor_id=creditor_id,
            debtor_id=debtor_id,
            edges=locked,
        )

    forward = repo.increment(creditor_id, debtor_id, amount)
    reverse = repo.increment(debtor_id, creditor_id, -amount)
    if forward != 1 or reverse != 1:
        raise ConsistencyFault(
            f"Partial transfer on pair ({creditor_id}, {debtor_id}): "
            f"updated {forward} forward and {reverse} reverse rows.",
            creditor_id=creditor_id,
            debtor_id=debtor_id,
            amount=str(amount),
        )

    if verify_symmetry:
        _check_symmetry(repo, creditor_id, debtor_id)
    return True


def _check_symmetry(repo: FriendRepository, user_a: int, user_b: int) -> None:
    balances = repo.read_pair_balances(user_a, user_b)
    forward = balances.get((user_a, user_b))
    reverse = balances.get((user_b, user_a))
    if forward is None or reverse is None or forward != -reverse:
        raise ConsistencyFault(
            f"Balance pair ({user_a}, {user_b}) is not symmetric: "
            f"{forward} vs {reverse}.",
            user_a=user_a,
            user_b=user_b,
            forward=str(forward),
            reverse=str(reverse),
        )


def apply_transfer(
        creditor_id: int,
        debtor_id: int,
        amount: Decimal,
        session: Session,
        settings: LedgerSettings | None = None,
) -> bool:
    """
    Records that debtor owes creditor `amount` more (negative `amount` undoes it).

    Returns:
        True if the pair was updated, False if the two users have no active
        friendship (nothing is written).

    Raises:
        ValidationError  — creditor and debtor are the same user.
        ConsistencyFault — one-sided pair, partial update, or asymmetric result.
        OperationalError — storage kept failing after the configured retries.
    """
    settings = settings or LedgerSettings()
    if creditor_id == debtor_id:
        raise ValidationError(
            ErrorCode.SELF_FRIENDSHIP,
            "A user cannot owe themselves.",
        )

    amount = Decimal(amount)
    repo = FriendRepository(session)
    attempt = 0
    while True:
        try:
            with session.begin_nested():
                return _apply_pair(repo, creditor_id, debtor_id, amount, settings.verify_symmetry)
        except OperationalError as exc:
            attempt += 1
            if attempt > settings.max_retries:
                logger.error(
                    "Ledger transfer %s -> %s (%s) failed after %d attempts: %s",
                    debtor_id, creditor_id, amount, attempt, exc,
                )
                raise
            logger.warning(
                "Ledger transfer %s -> %s (%s) hit a transient error, retry %d/%d: %s",
                debtor_id, creditor_id, amount, attempt, settings.max_retries, exc,
            )
            if settings.retry_backoff_seconds:
                time.sleep(settings.retry_backoff_seconds * attempt)


def reverse_transfer(
        creditor_id: int,
        debtor_id: int,
        amount: Decimal,
        session: Session,
        settings: LedgerSettings | None = None,
) -> bool:
    """Exact inverse of apply_transfer() with the same arguments."""
    return apply_transfer(creditor_id, debtor_id, -Decimal(amount), session, settings)


# ── Reads ──────────────────────────────────────────────────────────────────

def get_balance(owner_id: int, counterpart_id: int, session: Session) -> Decimal:
    """What counterpart owes owner; 0.00 when they are not friends."""
    balance = FriendRepository(session).read_balance(owner_id, counterpart_id)
    # + ZERO folds a negative zero into 0.00
    return ZERO if balance is None else balance + ZERO


def get_user_balances(user_id: int, session: Session) -> UserBalances:
    """Every active balance the user holds, with owed / owed-to-you totals."""
    result = UserBalances(user_id=user_id)
    for edge in FriendRepository(session).find_active_edges(user_id):
        balance = edge.balance + ZERO
        result.balances[edge.counterpart_id] = balance
        if balance > 0:
            result.total_owed_to_you += balance
        elif balance < 0:
            result.total_owed += -balance
    return result


def verify_pair(user_a: int, user_b: int, session: Session) -> None:
    """
    Raises ConsistencyFault if the active pair between two users is one-sided
    or asymmetric. Users with no friendship pass.
    """
    repo = FriendRepository(session)
    balances = repo.read_pair_balances(user_a, user_b)
    if not balances:
        return
    _check_symmetry(repo, user_a, user_b)


# ── Edge pair lifecycle ────────────────────────────────────────────────────

def open_edge_pair(user_id: int, friend_id: int, session: Session) -> BalanceEdge:
    """
    Establishes a friendship: creates both directed edges at 0.00.

    Returns the caller's edge (owner = user_id).

    Raises:
        ValidationError — user_id == friend_id.
        NotFoundError   — either user does not exist.
        ConflictError   — the pair is already active.
    """
    if user_id == friend_id:
        raise ValidationError(
            ErrorCode.SELF_FRIENDSHIP,
            "You cannot add yourself as a friend.",
            field="user_id",
        )

    users = UserRepository(session)
    for uid in (user_id, friend_id):
        if not users.exists_by_id(uid):
            raise NotFoundError(
                ErrorCode.USER_NOT_FOUND,
                f"User {uid} does not exist.",
                field="user_id" if uid == friend_id else None,
            )

    repo = FriendRepository(session)
    if repo.lock_pair(user_id, friend_id):
        raise ConflictError(
            ErrorCode.FRIENDSHIP_EXISTS,
            f"User {friend_id} is already your friend.",
            field="user_id",
        )

    edge = BalanceEdge(owner_id=user_id, counterpart_id=friend_id, balance=ZERO)
    # No rows to lock yet: a concurrent open of the same pair surfaces as a
    # violation of the active-pair unique index.
    try:
        with session.begin_nested():
            repo.save(edge)
            repo.save(BalanceEdge(owner_id=friend_id, counterpart_id=user_id, balance=ZERO))
    except IntegrityError as exc:
        logger.info("Concurrent open of pair (%s, %s) lost: %s", user_id, friend_id, exc.orig)
        raise ConflictError(
            ErrorCode.FRIENDSHIP_EXISTS,
            f"User {friend_id} is already your friend.",
            field="user_id",
        ) from exc

    logger.info("Friendship opened between %s and %s", user_id, friend_id)
    return edge


def close_edge_pair(user_id: int, friend_id: int, session: Session) -> None:
    """
    Ends a friendship: soft-deletes both directions. Outstanding balances stay
    on the inactive rows.

    Raises:
        NotFoundError — there is no active pair.
    """
    repo = FriendRepository(session)
    if not repo.lock_pair(user_id, friend_id):
        raise NotFoundError(
            ErrorCode.FRIENDSHIP_NOT_FOUND,
            f"User {friend_id} is not your friend.",
        )
    closed = repo.deactivate_pair(user_id, friend_id)
    logger.info("Friendship closed between %s and %s (%d edges)", user_id, friend_id, closed)
