"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time, so tests can build as many
         isolated app instances as they need.

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Route the package loggers through Flask's handler at LOG_LEVEL
  3. Initialise SQLAlchemy and register every model with its metadata
  4. Register all route blueprints under /api/v1
  5. Register global error handlers; every error rolls the session back
  6. Register a custom JSON provider to serialise Decimal as string
"""

from __future__ import annotations

import logging
import traceback
from decimal import Decimal

from flask import Flask, jsonify, request
from flask.logging import default_handler
from flask.json.provider import DefaultJSONProvider
from marshmallow import ValidationError as SchemaValidationError
from werkzeug.exceptions import HTTPException

from splitpro.config import config_by_name, validate_production_config


# ── Custom JSON provider ───────────────────────────────────────────────────
# Monetary amounts leave the API as strings so no client parses them into
# binary floats.

class DecimalJSONProvider(DefaultJSONProvider):
    """Serialises Decimal as str: Decimal("10.50") → "10.50"."""

    def default(self, o):
        if isinstance(o, Decimal):
            return str(o)
        return super().default(o)


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development", overrides: dict | None = None) -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Resolved via config_by_name in config.py.
        overrides:   Config keys applied on top of the class, before any
                     extension reads them (e.g. a per-test database URL).
    """
    app = Flask(__name__)
    app.json_provider_class = DecimalJSONProvider
    app.json = DecimalJSONProvider(app)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)
    if overrides:
        app.config.update(overrides)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    _configure_logging(app)

    # ── Extensions ─────────────────────────────────────────────────────────
    # Import here (not at module top) to avoid circular imports.
    from splitpro.app.extensions import db, enable_sqlite_savepoints
    db.init_app(app)

    # ── Model registration ─────────────────────────────────────────────────
    # Importing the modules populates db.metadata; names are unused.
    with app.app_context():
        from splitpro.app.models import (  # noqa: F401
            balance_edge,
            expense,
            group,
            membership,
            split,
            user,
        )
        # Must run before the engine hands out its first connection.
        enable_sqlite_savepoints(db.engine)

    _register_blueprints(app)
    _register_error_handlers(app)
    _register_cors(app)

    return app


def _configure_logging(app: Flask) -> None:
    """
    Sends every `splitpro.*` logger through Flask's default handler, so
    service and ledger logs land next to the request logs.
    """
    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO

    package_logger = logging.getLogger("splitpro")
    package_logger.setLevel(level)
    if default_handler not in package_logger.handlers:
        package_logger.addHandler(default_handler)
    app.logger.setLevel(level)


def _register_blueprints(app: Flask) -> None:
    """
    Registers all route blueprints under the /api/v1 prefix.

    The url_prefix is set here so individual route files only specify
    the path relative to their resource.
    """
    from splitpro.app.routes.balances import balances_bp
    from splitpro.app.routes.expenses import expenses_bp
    from splitpro.app.routes.friends import friends_bp

    # expenses_bp owns both /expenses/... and /groups/<id>/expenses.
    app.register_blueprint(expenses_bp, url_prefix="/api/v1")
    app.register_blueprint(balances_bp, url_prefix="/api/v1/balances")
    app.register_blueprint(friends_bp,  url_prefix="/api/v1/friends")


def _first_schema_error(messages, field: str | None = None) -> tuple[str | None, str]:
    """
    Walks marshmallow's nested messages down to the first leaf.

    {"splits": {0: {"split_type": ["INVALID_SPLIT_TYPE"]}}}
        → ("splits.0.split_type", "INVALID_SPLIT_TYPE")
    """
    if isinstance(messages, dict):
        for key, nested in messages.items():
            if key == "_schema":
                return _first_schema_error(nested, field)
            path = f"{field}.{key}" if field is not None else str(key)
            return _first_schema_error(nested, path)
        return field, "Invalid input."
    if isinstance(messages, list):
        if not messages:
            return field, "Invalid input."
        return _first_schema_error(messages[0], field)
    return field, str(messages)


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      ConsistencyFault      → logged at CRITICAL with its context; generic 500
      AppError              → structured JSON error envelope, its own status
      SchemaValidationError → marshmallow errors as MISSING_FIELD /
                              INVALID_FIELD / registered code (400)
      Exception             → generic INTERNAL_ERROR (500), traceback logged

    Stack traces never leave the server. Every handler rolls back the
    request's session so no partial write is committed by a later request.
    """
    from splitpro.app.errors import AppError, ConsistencyFault, ErrorCode
    from splitpro.app.extensions import db

    known_codes = set(vars(ErrorCode).values())

    @app.errorhandler(ConsistencyFault)
    def handle_consistency_fault(error: ConsistencyFault):
        db.session.rollback()
        app.logger.critical(
            "Ledger consistency fault on %s %s: %s | context=%r",
            request.method, request.path, error.message, error.context,
        )
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """Routes never catch AppError; they let it propagate here."""
        db.session.rollback()
        return jsonify(error.to_dict()), error.http_status

    @app.errorhandler(SchemaValidationError)
    def handle_validation_error(error: SchemaValidationError):
        """
        One error, not many: only the first field's first message is
        reported. A message that is itself a registered code becomes the
        code.
        """
        db.session.rollback()
        field, raw_message = _first_schema_error(error.messages)

        if raw_message in known_codes:
            code = raw_message
            message = _code_to_message(code)
        elif raw_message.startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD
            message = raw_message
        else:
            code = ErrorCode.INVALID_FIELD
            message = raw_message

        body = {"error": {"code": code, "message": message}}
        if field is not None:
            body["error"]["field"] = field
        return jsonify(body), 400

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        db.session.rollback()
        if isinstance(error, HTTPException):
            # Unknown route, wrong method: keep Werkzeug's status.
            return jsonify({
                "error": {
                    "code": error.name.upper().replace(" ", "_"),
                    "message": error.description,
                }
            }), error.code
        app.logger.error(
            "Unhandled exception: %s\n%s",
            str(error),
            traceback.format_exc(),
        )
        return jsonify({
            "error": {
                "code": ErrorCode.INTERNAL_ERROR,
                "message": "An unexpected error occurred. Please try again later.",
            }
        }), 500


def _register_cors(app: Flask) -> None:
    """
    Adds CORS headers when DEBUG or TESTING is on, so a frontend served from
    another local port can call the API with Authorization headers.
    """

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allow_all = bool(app.config.get("DEBUG") or app.config.get("TESTING"))

        if allow_all:
            response.headers["Access-Control-Allow-Origin"] = origin if origin else "*"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Methods"] = "GET, POST, DELETE, OPTIONS"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"

        return response


def _code_to_message(code: str) -> str:
    """Default message for a schema error whose message IS the code."""
    _messages = {
        "INVALID_AMOUNT_PRECISION": "Amounts may have at most 2 decimal places.",
        "INVALID_CATEGORY": "The category value is not valid.",
        "INVALID_SPLIT_TYPE": "split_type must be one of EQUAL, PERCENT, AMOUNT.",
        "INVALID_CURRENCY": "currency must be a three-letter currency code.",
    }
    return _messages.get(code, "Invalid input.")
