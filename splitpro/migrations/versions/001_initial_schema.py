"""Initial schema: users, groups, memberships, expenses, splits, balance_edges.

Revision: 001_initial_schema
Created:  2026-10-19

Append-only: once applied anywhere, this file is not edited. Schema changes
go into a new revision.

Creation order:
  1. PostgreSQL enum types (split_type_enum, expense_category_enum)
  2. Tables in FK dependency order (users → groups → memberships → expenses
     → splits, balance_edges)
  3. Indexes, including the two partial indexes

ON DELETE policies:
  splits.expense_id   → CASCADE   (splits owned by expense)
  everything else     → RESTRICT
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001_initial_schema"
down_revision: str | None = None
branch_labels: tuple | None = None
depends_on: tuple | None = None


_SPLIT_TYPE = postgresql.ENUM(
    "EQUAL", "PERCENT", "AMOUNT",
    name="split_type_enum",
    create_type=False,
)

_CATEGORY = postgresql.ENUM(
    "GENERAL",
    "FOOD",
    "TRANSPORTATION",
    "ENTERTAINMENT",
    "SHOPPING",
    "UTILITIES",
    "RENT",
    "TRAVEL",
    "OTHER",
    name="expense_category_enum",
    create_type=False,
)


def _created_at(name: str = "created_at") -> sa.Column:
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        nullable=False,
        server_default=sa.text("NOW()"),
    )


def upgrade() -> None:
    """Apply the full initial schema."""

    # ── Step 1: enum types ─────────────────────────────────────────────────
    op.execute("CREATE TYPE split_type_enum AS ENUM ('EQUAL', 'PERCENT', 'AMOUNT')")
    op.execute("""
        CREATE TYPE expense_category_enum AS ENUM (
            'GENERAL',
            'FOOD',
            'TRANSPORTATION',
            'ENTERTAINMENT',
            'SHOPPING',
            'UTILITIES',
            'RENT',
            'TRAVEL',
            'OTHER'
        )
    """)

    # ── Step 2: users ──────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_users_name_nonempty"),
        sa.CheckConstraint("email LIKE '%@%'", name="ck_users_email_format"),
    )

    # ── Step 3: groups ─────────────────────────────────────────────────────
    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column(
            "created_by",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_groups_creator"),
            nullable=False,
        ),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("TRUE")),
        _created_at(),
        sa.PrimaryKeyConstraint("id", name="pk_groups"),
        sa.CheckConstraint("LENGTH(TRIM(name)) > 0", name="ck_groups_name_nonempty"),
    )

    # ── Step 4: memberships ────────────────────────────────────────────────
    op.create_table(
        "memberships",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_memberships_user"),
            nullable=False,
        ),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_memberships_group"),
            nullable=False,
        ),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("TRUE")),
        _created_at("joined_at"),
        sa.PrimaryKeyConstraint("id", name="pk_memberships"),
        sa.UniqueConstraint("user_id", "group_id", name="uq_memberships_user_group"),
    )

    # ── Step 5: expenses ───────────────────────────────────────────────────
    # group_id is nullable: expenses between friends need no group.
    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(200), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="USD"),
        sa.Column(
            "payer_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_expenses_payer"),
            nullable=False,
        ),
        sa.Column(
            "group_id",
            sa.Integer(),
            sa.ForeignKey("groups.id", ondelete="RESTRICT", name="fk_expenses_group"),
            nullable=True,
        ),
        sa.Column("category", _CATEGORY, nullable=False, server_default="GENERAL"),
        sa.Column("notes", sa.Text(), nullable=True),
        _created_at("occurred_at"),
        _created_at(),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("TRUE")),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_expenses"),
        sa.CheckConstraint("total_amount > 0", name="ck_expenses_amount_positive"),
        sa.CheckConstraint(
            "LENGTH(TRIM(description)) > 0",
            name="ck_expenses_description_nonempty",
        ),
    )

    # ── Step 6: splits ─────────────────────────────────────────────────────
    op.create_table(
        "splits",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "expense_id",
            sa.Integer(),
            sa.ForeignKey("expenses.id", ondelete="CASCADE", name="fk_splits_expense"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_splits_user"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("split_type", _SPLIT_TYPE, nullable=False),
        sa.Column("split_value", sa.Numeric(12, 4), nullable=True),
        sa.Column("amount_owed", sa.Numeric(12, 2), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_splits"),
        sa.UniqueConstraint("expense_id", "user_id", name="uq_splits_expense_user"),
        sa.CheckConstraint("amount_owed >= 0", name="ck_splits_amount_nonnegative"),
    )

    # ── Step 7: balance_edges ──────────────────────────────────────────────
    # Two rows per friendship, balance(A, B) == -balance(B, A).
    op.create_table(
        "balance_edges",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column(
            "owner_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_balance_edges_owner"),
            nullable=False,
        ),
        sa.Column(
            "counterpart_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="RESTRICT", name="fk_balance_edges_counterpart"),
            nullable=False,
        ),
        sa.Column("balance", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.text("TRUE")),
        _created_at(),
        sa.Column("deactivated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_balance_edges"),
        sa.CheckConstraint(
            "owner_id <> counterpart_id",
            name="ck_balance_edges_distinct_users",
        ),
    )

    # ── Step 8: indexes ────────────────────────────────────────────────────
    op.create_index("ix_memberships_user_id", "memberships", ["user_id"])
    op.create_index("ix_memberships_group_id", "memberships", ["group_id"])
    op.create_index("ix_expenses_payer_id", "expenses", ["payer_id"])
    op.create_index("ix_expenses_group_id", "expenses", ["group_id"])
    op.create_index(
        "idx_expenses_group_active",
        "expenses",
        ["group_id"],
        postgresql_where=sa.text("active"),
    )
    op.create_index("ix_splits_expense_id", "splits", ["expense_id"])
    op.create_index("ix_splits_user_id", "splits", ["user_id"])
    op.create_index("ix_balance_edges_owner_id", "balance_edges", ["owner_id"])
    # At most one active row per ordered pair; closed pairs stay as history.
    op.create_index(
        "uq_balance_edges_active_pair",
        "balance_edges",
        ["owner_id", "counterpart_id"],
        unique=True,
        postgresql_where=sa.text("active"),
    )


def downgrade() -> None:
    """Drop everything created in upgrade(), in reverse dependency order."""
    op.drop_index("uq_balance_edges_active_pair", table_name="balance_edges")
    op.drop_index("ix_balance_edges_owner_id",    table_name="balance_edges")
    op.drop_index("ix_splits_user_id",            table_name="splits")
    op.drop_index("ix_splits_expense_id",         table_name="splits")
    op.drop_index("idx_expenses_group_active",    table_name="expenses")
    op.drop_index("ix_expenses_group_id",         table_name="expenses")
    op.drop_index("ix_expenses_payer_id",         table_name="expenses")
    op.drop_index("ix_memberships_group_id",      table_name="memberships")
    op.drop_index("ix_memberships_user_id",       table_name="memberships")

    op.drop_table("balance_edges")
    op.drop_table("splits")
    op.drop_table("expenses")
    op.drop_table("memberships")
    op.drop_table("groups")
    op.drop_table("users")

    op.execute("DROP TYPE IF EXISTS expense_category_enum")
    op.execute("DROP TYPE IF EXISTS split_type_enum")
