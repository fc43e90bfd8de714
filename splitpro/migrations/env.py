"""
splitpro/migrations/env.py — Alembic environment.

Uses the same configuration classes as the app: DATABASE_URL, or
TEST_DATABASE_URL when TEST_RUN is set. `.env` files are loaded by
splitpro.config on import.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from splitpro.app.extensions import db
from splitpro.app.models import balance_edge, expense, group, membership, split, user  # noqa: F401
from splitpro.config import DevelopmentConfig, TestingConfig

target_metadata = db.metadata

if os.getenv("TEST_RUN"):
    db_url = TestingConfig.SQLALCHEMY_DATABASE_URI
else:
    db_url = DevelopmentConfig.SQLALCHEMY_DATABASE_URI

config = context.config
config.set_main_option("sqlalchemy.url", db_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def run_migrations_offline() -> None:
    context.configure(
        url=db_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
