"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - The app is created once per session using create_app("testing"), which
    points at in-memory SQLite unless TEST_DATABASE_URL says otherwise.
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.
  - Users and groups are owned by other services, so helpers insert them
    directly instead of going through the API.

In-memory SQLite hands every session the same connection. Helpers therefore
open their own short app context and commit before returning; a test must not
hold the `session` fixture open while it drives the HTTP client.

Tests that race two transactions use `file_app` / `file_engine` instead: a
fresh file-backed SQLite database per test, with independent Sessions.

Helper functions (not fixtures):
  - make_user(app, ...)          → user id
  - make_group(app, ...)         → group id
  - make_friends(app, a, b)      → opens the balance pair between a and b
  - auth_headers(app, user_id)   → {"Authorization": "Bearer <jwt>"}
  - post_expense(client, ...)    → HTTP response
  - balance_of(app, owner, cp)   → Decimal
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import jwt
import pytest
from sqlalchemy import text

from splitpro.app import create_app
from splitpro.app.extensions import db as _db


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """Creates the Flask application in 'testing' mode once for the session."""
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """Deletes all rows after every test, children before parents."""
    yield

    with app.app_context():
        _db.session.rollback()
        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM splits"))
            conn.execute(text("DELETE FROM expenses"))
            conn.execute(text("DELETE FROM balance_edges"))
            conn.execute(text("DELETE FROM memberships"))
            conn.execute(text("DELETE FROM groups"))
            conn.execute(text("DELETE FROM users"))
            conn.commit()


@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


@pytest.fixture
def session(app):
    """A db.session inside an app context, for calling services directly."""
    with app.app_context():
        yield _db.session
        _db.session.rollback()


@pytest.fixture
def file_app(tmp_path):
    """
    A second app on a file-backed SQLite database, for tests that need real
    concurrent connections (in-memory SQLite shares a single one).
    """
    flask_app = create_app("testing", overrides={
        "SQLALCHEMY_DATABASE_URI": f"sqlite:///{tmp_path / 'ledger.db'}",
        "SQLALCHEMY_ENGINE_OPTIONS": {
            "connect_args": {"check_same_thread": False, "timeout": 30},
        },
    })

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.session.remove()
        _db.engine.dispose()


@pytest.fixture
def file_engine(file_app):
    """The file_app engine; open independent sessions with Session(file_engine)."""
    with file_app.app_context():
        return _db.engine


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def make_user(app, name: str = "alice", email: str | None = None) -> int:
    from splitpro.app.models.user import User

    with app.app_context():
        user = User(name=name, email=email or f"{name}@test.com")
        _db.session.add(user)
        _db.session.commit()
        return user.id


def make_group(app, created_by: int, member_ids: list[int], name: str = "Trip") -> int:
    """Creates an active group; `created_by` is always a member."""
    from splitpro.app.models.group import Group
    from splitpro.app.models.membership import Membership

    with app.app_context():
        group = Group(name=name, created_by=created_by, active=True)
        _db.session.add(group)
        _db.session.flush()
        for uid in dict.fromkeys([created_by, *member_ids]):
            _db.session.add(Membership(user_id=uid, group_id=group.id, active=True))
        _db.session.commit()
        return group.id


def make_friends(app, user_a: int, user_b: int) -> None:
    from splitpro.app.services import ledger_service

    with app.app_context():
        ledger_service.open_edge_pair(user_a, user_b, _db.session)
        _db.session.commit()


def balance_of(app, owner_id: int, counterpart_id: int) -> Decimal:
    from splitpro.app.services import ledger_service

    with app.app_context():
        return ledger_service.get_balance(owner_id, counterpart_id, _db.session)


def make_token(app, user_id, expires_in: timedelta = timedelta(hours=1), secret: str | None = None) -> str:
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {"sub": str(user_id), "iat": now, "exp": now + expires_in},
        secret or app.config["JWT_SECRET_KEY"],
        algorithm="HS256",
    )


def auth_headers(app, user_id: int) -> dict:
    """Returns the Authorization header dict for use in test requests."""
    return {"Authorization": f"Bearer {make_token(app, user_id)}"}


def equal_splits(*user_ids: int) -> list[dict]:
    return [{"user_id": uid, "split_type": "EQUAL"} for uid in user_ids]


def post_expense(
    client,
    app,
    payer_id: int,
    total_amount: str,
    splits: list[dict],
    description: str = "Test Expense",
    **extra,
):
    """Creates an expense paid by `payer_id` and returns the HTTP response."""
    payload: dict = {
        "description": description,
        "total_amount": total_amount,
        "splits": splits,
        **extra,
    }
    return client.post(
        "/api/v1/expenses",
        json=payload,
        headers=auth_headers(app, payer_id),
    )
