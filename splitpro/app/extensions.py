"""
extensions.py — Flask extension singletons.

Initialises SQLAlchemy as a module-level object so it can be imported
anywhere without creating circular dependencies.

Pattern:
    1. Create the extension object here (no app attached yet).
    2. Call init_app(app) inside the app factory in app/__init__.py.
    3. Import `db` from here wherever needed.

    from splitpro.app.extensions import db

Do not pass the app object directly to SQLAlchemy() at import time — that
would prevent running tests with a separate test app instance.
"""

from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.engine import Engine
from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def enable_sqlite_savepoints(engine: Engine) -> None:
    """
    Makes SAVEPOINT usable on pysqlite.

    The driver delays BEGIN until the first DML statement, so a SAVEPOINT
    issued before any write opens (and its RELEASE commits) the outer
    transaction. Taking over BEGIN ourselves restores normal nesting; the
    balance ledger relies on savepoints for its per-pair retry.

    BEGIN IMMEDIATE takes the database write lock up front, so concurrent
    transactions queue on the busy timeout instead of deadlocking when two
    readers both try to upgrade to a writer.
    """
    if engine.dialect.name != "sqlite":
        return

    @event.listens_for(engine, "connect")
    def _disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")
