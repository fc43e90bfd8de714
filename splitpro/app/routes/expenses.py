"""
routes/expenses.py — Expense route handlers.

Registered at url_prefix=/api/v1 (not /api/v1/expenses) because this blueprint
owns BOTH the caller-scoped paths (/expenses, /expenses/:id) and the
group-scoped listing (/groups/:id/expenses).

Layer rules:
  - Parse, validate, call ONE service, commit, return envelope.
  - No business logic. No DB queries. No bare SQL.
  - _serialize_expense() is a pure data-shape helper, not business logic.

Endpoints:
  POST   /expenses                → 201  create expense (payer = caller)
  GET    /expenses                → 200  caller's active expenses, paged
  GET    /expenses/:id            → 200  expense + splits
  DELETE /expenses/:id            → 200  soft-delete, ledger reversed
  GET    /groups/:id/expenses     → 200  group's active expenses + summary
"""

from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify, request

from splitpro.app.errors import WarningCode
from splitpro.app.extensions import db
from splitpro.app.middleware.auth_middleware import require_auth
from splitpro.app.models.expense import Expense
from splitpro.app.schemas.expense_schema import CreateExpenseSchema, PaginationSchema
from splitpro.app.services import expense_service
from splitpro.app.services.ledger_service import LedgerSettings

expenses_bp = Blueprint("expenses", __name__)


# ── Serialization helper ───────────────────────────────────────────────────
# Pure data-shaping. Amounts are strings.

def _isoformat(value):
    return value.isoformat() if value is not None else None


def _serialize_expense(expense: Expense) -> dict:
    """Converts an Expense ORM object to a plain dict for JSON output."""
    return {
        "id": expense.id,
        "description": expense.description,
        "total_amount": str(expense.total_amount),
        "currency": expense.currency,
        "payer_id": expense.payer_id,
        "group_id": expense.group_id,
        "category": expense.category.value,
        "category_label": expense.category.display_name,
        "notes": expense.notes,
        "occurred_at": _isoformat(expense.occurred_at),
        "created_at": _isoformat(expense.created_at),
        "deleted_at": _isoformat(expense.deleted_at),
        "total_split_amount": str(expense.total_split_amount),
        "is_balanced": expense.is_balanced,
        "splits": [
            {
                "user_id": s.user_id,
                "position": s.position,
                "split_type": s.split_type.value,
                "split_value": str(s.split_value) if s.split_value is not None else None,
                "amount_owed": str(s.amount_owed),
            }
            for s in expense.splits
        ],
    }


def _balance_warnings(expense: Expense) -> list[dict]:
    if expense.is_balanced:
        return []
    return [{
        "code": WarningCode.SPLITS_UNBALANCED,
        "message": (
            f"Splits add up to {expense.total_split_amount} "
            f"of {expense.total_amount} {expense.currency}."
        ),
    }]


def _ledger_settings() -> LedgerSettings:
    return LedgerSettings.from_config(current_app.config)


# ── Caller-scoped expense routes ───────────────────────────────────────────

@expenses_bp.route("/expenses", methods=["POST"])
@require_auth
def create_expense():
    """POST /expenses — Record a new expense paid by the caller."""
    data = CreateExpenseSchema().load(request.get_json(force=True, silent=True) or {})
    if data.get("currency") is None:
        data["currency"] = current_app.config.get("DEFAULT_CURRENCY", "USD")

    expense = expense_service.create_expense(
        payer_id=g.user_id,
        data=data,
        session=db.session,
        settings=_ledger_settings(),
    )
    db.session.commit()
    return jsonify({
        "data": _serialize_expense(expense),
        "warnings": _balance_warnings(expense),
    }), 201


@expenses_bp.route("/expenses", methods=["GET"])
@require_auth
def list_expenses():
    """GET /expenses?page=&per_page= — Active expenses the caller is part of."""
    params = PaginationSchema().load(request.args)
    per_page = min(
        params["per_page"] or current_app.config["DEFAULT_PAGE_SIZE"],
        current_app.config["MAX_PAGE_SIZE"],
    )
    page = expense_service.get_user_expenses(
        user_id=g.user_id,
        session=db.session,
        page=params["page"],
        per_page=per_page,
    )
    return jsonify({
        "data": {
            "items": [_serialize_expense(e) for e in page.items],
            "page": page.page,
            "per_page": page.per_page,
            "total": page.total,
            "pages": page.pages,
        },
        "warnings": [],
    }), 200


@expenses_bp.route("/expenses/<int:expense_id>", methods=["GET"])
@require_auth
def get_expense(expense_id: int):
    """GET /expenses/:id — Expense detail including splits."""
    expense = expense_service.get_expense_details(
        expense_id=expense_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({
        "data": _serialize_expense(expense),
        "warnings": _balance_warnings(expense),
    }), 200


@expenses_bp.route("/expenses/<int:expense_id>", methods=["DELETE"])
@require_auth
def delete_expense(expense_id: int):
    """
    DELETE /expenses/:id — Soft-delete. The row and its splits stay for
    audit; every balance the expense moved is moved back.
    """
    expense_service.delete_expense(
        expense_id=expense_id,
        caller_id=g.user_id,
        session=db.session,
        settings=_ledger_settings(),
    )
    db.session.commit()
    return jsonify({
        "data": {
            "deleted": True,
            "expense_id": expense_id,
        },
        "warnings": [],
    }), 200


# ── Group-scoped listing ───────────────────────────────────────────────────

@expenses_bp.route("/groups/<int:group_id>/expenses", methods=["GET"])
@require_auth
def list_group_expenses(group_id: int):
    """GET /groups/:id/expenses — Active expenses of a group the caller belongs to."""
    result = expense_service.get_group_expenses(
        group_id=group_id,
        caller_id=g.user_id,
        session=db.session,
    )
    return jsonify({
        "data": {
            "group_id": result.group.id,
            "group_name": result.group.name,
            "expense_count": result.count,
            "total_amount": str(result.total_amount),
            "expenses": [_serialize_expense(e) for e in result.expenses],
        },
        "warnings": [],
    }), 200
