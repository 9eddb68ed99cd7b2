"""
Application factory for the AssetSO asset inventory and stock-opname API.

Usage::

    from app import create_app
    app = create_app()           # Uses FLASK_ENV to pick config.
    app = create_app("testing")  # Explicit config for tests.
"""

import logging
import os

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from .config import config_by_name
from .exceptions import ServiceError
from .extensions import db, login_manager, migrate


def create_app(config_name: str | None = None) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        config_name: One of 'development', 'testing', or 'production'.
                     Defaults to the FLASK_ENV environment variable,
                     falling back to 'development'.

    Returns:
        A fully configured Flask application instance.
    """
    # Resolve the configuration class.
    if config_name is None:
        config_name = os.environ.get("FLASK_ENV", "development")
    config_class = config_by_name.get(config_name)
    if config_class is None:
        raise ValueError(
            f"Unknown config '{config_name}'. "
            f"Valid options: {list(config_by_name.keys())}"
        )

    app = Flask(__name__)
    app.config.from_object(config_class)
    app.json.sort_keys = app.config.get("JSON_SORT_KEYS", False)

    # Refuse to run production with insecure defaults.
    if config_name == "production":
        config_class.validate_production_secrets(app.config)

    # -- Initialize extensions ---------------------------------------------
    _register_extensions(app)

    # -- Register blueprints -----------------------------------------------
    _register_blueprints(app)

    # -- Register error handlers -------------------------------------------
    _register_error_handlers(app)

    # -- Register custom CLI commands --------------------------------------
    _register_cli_commands(app)

    # -- Configure logging -------------------------------------------------
    _configure_logging(app)

    return app


def _register_extensions(app: Flask) -> None:
    """Bind all Flask extensions to the application instance."""
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    # Imported here to avoid circular imports with models.
    from .models.user import User  # pylint: disable=import-outside-toplevel
    from .services import auth_service  # pylint: disable=import-outside-toplevel

    @login_manager.user_loader
    def load_user(user_id: str):
        """Load a user by primary key for Flask-Login."""
        return db.session.get(User, user_id)

    @login_manager.request_loader
    def load_user_from_request(req):
        """Resolve the current user from an ``Authorization: Bearer`` token."""
        header = req.headers.get("Authorization", "")
        if not header.lower().startswith("bearer "):
            return None
        return auth_service.user_from_token(header[7:].strip())

    @login_manager.unauthorized_handler
    def unauthorized():
        """Respond with JSON instead of redirecting to a login page."""
        return jsonify({"error": "Authentication required"}), 401


def _register_blueprints(app: Flask) -> None:
    """
    Import and register each blueprint with its URL prefix.

    Blueprints are imported inside this function to avoid circular
    imports; models and services can safely import ``db`` from
    extensions at module level.
    """
    # pylint: disable=import-outside-toplevel

    # Main blueprint: health check and dashboard.
    from .blueprints.main import bp as main_bp

    app.register_blueprint(main_bp)

    # Authentication: login, logout, current user.
    from .blueprints.auth import bp as auth_bp

    app.register_blueprint(auth_bp, url_prefix="/api/auth")

    # Assets: CRUD, numbering, CSV/Excel import and export.
    from .blueprints.assets import bp as assets_bp

    app.register_blueprint(assets_bp, url_prefix="/api/assets")

    # Lookups: sites, categories, departments.
    from .blueprints.lookups import bp as lookups_bp

    app.register_blueprint(lookups_bp, url_prefix="/api")

    # Employees (PICs).
    from .blueprints.employees import bp as employees_bp

    app.register_blueprint(employees_bp, url_prefix="/api/employees")

    # Stock-opname sessions, scanning and entries.
    from .blueprints.so_sessions import bp as so_sessions_bp

    app.register_blueprint(so_sessions_bp, url_prefix="/api/so-sessions")

    # Check-out / check-in records.
    from .blueprints.check_outs import bp as check_outs_bp

    app.register_blueprint(check_outs_bp, url_prefix="/api/check-outs")

    # Backup export and restore.
    from .blueprints.backup import bp as backup_bp

    app.register_blueprint(backup_bp, url_prefix="/api/backup")

    # Admin: user management, session administration, audit logs.
    from .blueprints.admin import bp as admin_bp

    app.register_blueprint(admin_bp, url_prefix="/api/admin")


def _register_error_handlers(app: Flask) -> None:
    """Register JSON error responses for service and HTTP errors."""

    @app.errorhandler(ServiceError)
    def service_error(error: ServiceError):
        """Translate service-layer exceptions to their HTTP status."""
        if error.status_code >= 500:
            db.session.rollback()
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def http_error(error: HTTPException):
        """Render werkzeug HTTP errors (401, 403, 404, 405, 413) as JSON."""
        return jsonify({"error": error.description or error.name}), error.code

    @app.errorhandler(500)
    def internal_error(error):  # pylint: disable=unused-argument
        """Handle 500 Internal Server Error."""
        db.session.rollback()
        return jsonify({"error": "Internal server error"}), 500


def _register_cli_commands(app: Flask) -> None:
    """Register custom Flask CLI commands (e.g., flask db-check)."""
    from .cli import register_commands  # pylint: disable=import-outside-toplevel

    register_commands(app)


def _configure_logging(app: Flask) -> None:
    """Set the root log level from ``LOG_LEVEL``."""
    log_level = app.config.get("LOG_LEVEL", "INFO")
    logging.basicConfig(level=getattr(logging, log_level.upper(), logging.INFO))

    # Quiet down noisy libraries in development.
    if app.debug:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
