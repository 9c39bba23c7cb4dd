"""
app/__init__.py — Flask application factory.

Pattern: create_app(config_name) creates and returns a configured Flask app.
         Nothing is initialised at import time — this enables:
           - Multiple isolated test app instances
           - Clean separation between app creation and app startup
           - Alembic to import the models without starting the server

Responsibilities:
  1. Load configuration from config_by_name[config_name]
  2. Configure logging (LOG_LEVEL)
  3. Initialise extensions (SQLAlchemy, Marshmallow) via init_app()
  4. Build the process-wide TokenIssuer and PasswordHasher (security.init_app)
  5. Register the user blueprint under /api/v1/user
  6. Register global error handlers (AppError → JSON, Exception → 500)

Note on model imports:
  Model modules are imported inside create_app() so that SQLAlchemy's
  metadata is populated before db.create_all() or Alembic inspects it.
"""

from __future__ import annotations

import traceback

from flask import Flask, jsonify
from marshmallow import ValidationError

from taskapp.config import config_by_name, validate_production_config


# ── Application factory ────────────────────────────────────────────────────

def create_app(config_name: str = "development") -> Flask:
    """
    Creates and returns a configured Flask application instance.

    Args:
        config_name: One of "development", "testing", "production".
                     Resolved via config_by_name in config.py.
                     Defaults to "development".

    Returns:
        A fully configured Flask app ready to serve requests.
    """
    app = Flask(__name__)

    # ── Configuration ──────────────────────────────────────────────────────
    config_class = config_by_name.get(config_name, config_by_name["development"])
    app.config.from_object(config_class)

    if config_name == "production":
        validate_production_config(app)  # raises ValueError if misconfigured

    # Module loggers live under "taskapp.app" and propagate to app.logger.
    app.logger.setLevel(app.config.get("LOG_LEVEL", "INFO"))

    # ── Extensions ─────────────────────────────────────────────────────────
    # Import here (not at module top) to avoid circular imports.
    from taskapp.app import security
    from taskapp.app.extensions import db, ma
    db.init_app(app)
    ma.init_app(app)
    security.init_app(app)

    # ── Model registration ─────────────────────────────────────────────────
    with app.app_context():
        from taskapp.app.models import refresh_token, user  # noqa: F401

    # ── Blueprints ─────────────────────────────────────────────────────────
    _register_blueprints(app)

    # ── Error handlers ─────────────────────────────────────────────────────
    _register_error_handlers(app)

    return app


def _register_blueprints(app: Flask) -> None:
    from taskapp.app.routes.users import user_bp

    app.register_blueprint(user_bp, url_prefix="/api/v1/user")


def _register_error_handlers(app: Flask) -> None:
    """
    Registers global error handlers.

    Handlers:
      AppError        → structured JSON error envelope with the correct HTTP
                        status; clear_cookies=True also deletes both auth
                        cookies
      ValidationError → marshmallow schema errors (400), every failing field
                        listed under "fields"
      Exception       → generic INTERNAL_ERROR (500); traceback logged only

    Stack traces never leave the server.
    """
    from taskapp.app.errors import AppError, ErrorCode
    from taskapp.app.security.cookies import clear_auth_cookies

    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        """
        Converts an AppError raised anywhere in the request lifecycle
        (middleware, service, route) into the standard error envelope.
        """
        response = jsonify(error.to_dict())
        if error.clear_cookies:
            clear_auth_cookies(response)
        return response, error.http_status

    @app.errorhandler(ValidationError)
    def handle_validation_error(error: ValidationError):
        """
        Converts marshmallow ValidationError into the standard error envelope.

        marshmallow collects every failing field, e.g.
            {"email": ["Not a valid email address."], "password": [...]}
        The first field/message pair becomes "field"/"message"; all of them
        are returned under "fields" so the client can flag each input.
        """
        messages = error.messages if isinstance(error.messages, dict) else {
            "_schema": error.messages,
        }

        fields: dict[str, str] = {}
        for field_name, field_errors in messages.items():
            if isinstance(field_errors, list):
                fields[field_name] = str(field_errors[0]) if field_errors else "Invalid value."
            else:
                fields[field_name] = str(field_errors)

        first_field, first_message = next(
            iter(fields.items()), ("_schema", "Invalid input.")
        )
        if first_message.startswith("Missing data for required field"):
            code = ErrorCode.MISSING_FIELD
        else:
            code = ErrorCode.VALIDATION_FAILED

        response_body = {
            "error": {
                "code": code,
                "message": first_message,
                "fields": fields,
            }
        }
        if first_field != "_schema":
            response_body["error"]["field"] = first_field

        return jsonify(response_body), 400

    @app.errorhandler(Exception)
    def handle_unexpected_error(error: Exception):
        """
        Catches all unhandled exceptions and returns a generic 500 response.

        Werkzeug HTTP exceptions (404 for unknown routes, 405, ...) keep their
        own status. Everything else is logged with its traceback.
        """
        from werkzeug.exceptions import HTTPException

        if isinstance(error, HTTPException):
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

