"""
Application configuration classes.

Each class represents a deployment environment. The factory function
``create_app`` in ``app/__init__.py`` selects the appropriate config
based on the FLASK_ENV environment variable.

Secrets, connection strings and the remote table-store credentials are
read from environment variables so they never appear in source control.
"""

import logging
import os

from sqlalchemy.pool import StaticPool

# Module-level logger for startup warnings emitted by config classes.
_logger = logging.getLogger(__name__)

# =========================================================================
# Sentinels for detecting unset secrets in production.
# =========================================================================
_DEFAULT_SECRET_KEY = "dev-secret-change-me"
_DEFAULT_JWT_SECRET = "your-secret-key-change-in-production"


class BaseConfig:
    """
    Shared configuration values inherited by all environments.
    """

    # -- Flask core --------------------------------------------------------
    SECRET_KEY: str = os.environ.get("SECRET_KEY", _DEFAULT_SECRET_KEY)
    JSON_SORT_KEYS: bool = False

    # -- SQLAlchemy --------------------------------------------------------
    # Developers point at their own instance via the DATABASE_URL variable.
    SQLALCHEMY_DATABASE_URI: str = os.environ.get(
        "DATABASE_URL", "sqlite:///assetso-dev.db"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS: bool = False

    # Echo SQL statements to the log for debugging (override per env).
    SQLALCHEMY_ECHO: bool = False

    # -- Bearer token authentication ---------------------------------------
    JWT_SECRET: str = os.environ.get("JWT_SECRET", _DEFAULT_JWT_SECRET)
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRES_DAYS: int = int(os.environ.get("JWT_EXPIRES_DAYS", "7"))

    # Account guaranteed to exist (and be an active admin) on login.
    DEFAULT_ADMIN_EMAIL: str = os.environ.get(
        "DEFAULT_ADMIN_EMAIL", "admin@assetso.com"
    )
    DEFAULT_ADMIN_NAME: str = os.environ.get("DEFAULT_ADMIN_NAME", "Administrator")
    DEFAULT_ADMIN_PASSWORD: str = os.environ.get("DEFAULT_ADMIN_PASSWORD", "admin123")

    # -- Remote table store (PostgREST-style API) --------------------------
    TABLE_STORE_URL: str = os.environ.get("TABLE_STORE_URL", "")
    TABLE_STORE_SERVICE_KEY: str = os.environ.get("TABLE_STORE_SERVICE_KEY", "")
    TABLE_STORE_TIMEOUT: float = float(os.environ.get("TABLE_STORE_TIMEOUT", "30"))

    # -- Backup import / export --------------------------------------------
    # "sql" or "remote"; the other configured engine is the fallback.
    BACKUP_PREFERRED_ENGINE: str = os.environ.get("BACKUP_PREFERRED_ENGINE", "sql")
    BACKUP_INSERT_BATCH_SIZE: int = int(
        os.environ.get("BACKUP_INSERT_BATCH_SIZE", "200")
    )
    BACKUP_MAX_UPLOAD_BYTES: int = int(
        os.environ.get("BACKUP_MAX_UPLOAD_BYTES", str(200 * 1024 * 1024))
    )
    # Seconds; the WSGI server's request timeout should be at least this.
    BACKUP_MAX_DURATION: int = int(os.environ.get("BACKUP_MAX_DURATION", "300"))
    APP_VERSION: str = os.environ.get("APP_VERSION", "1.4.0")

    # Uploaded asset images live here (served under /uploads/<name>).
    UPLOAD_FOLDER: str = os.environ.get(
        "UPLOAD_FOLDER",
        os.path.join(os.path.abspath(os.getcwd()), "uploads"),
    )

    # Flask rejects request bodies above this size with HTTP 413.
    MAX_CONTENT_LENGTH: int = BACKUP_MAX_UPLOAD_BYTES + 1024 * 1024

    # -- Asset numbering ---------------------------------------------------
    ASSET_NUMBER_PREFIX: str = os.environ.get("ASSET_NUMBER_PREFIX", "FA")

    # -- Logging -----------------------------------------------------------
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "INFO")

    # =====================================================================
    # Production validation helpers
    # =====================================================================

    @classmethod
    def validate_production_secrets(cls, app_config: dict) -> None:
        """
        Verify that all required secrets are set for production.

        Called by ``create_app()`` when ``config_name == 'production'``.
        Raises ``RuntimeError`` for hard requirements and logs warnings
        for soft requirements.

        Args:
            app_config: The ``app.config`` dict after loading the
                        config class.

        Raises:
            RuntimeError: If any critical secret is missing or still
                          set to its insecure default value.
        """
        errors: list[str] = []

        if app_config.get("SECRET_KEY") == _DEFAULT_SECRET_KEY:
            errors.append(
                "SECRET_KEY is still the insecure default. "
                "Generate one with: python -c "
                '"import secrets; print(secrets.token_hex(32))"'
            )

        if app_config.get("JWT_SECRET") == _DEFAULT_JWT_SECRET:
            errors.append(
                "JWT_SECRET is still the insecure default. Bearer tokens "
                "signed with it can be forged by anyone."
            )

        # A half-configured table store would make backup fallback fail
        # with a confusing HTTP error instead of being skipped.
        has_url = bool(app_config.get("TABLE_STORE_URL"))
        has_key = bool(app_config.get("TABLE_STORE_SERVICE_KEY"))
        if has_url != has_key:
            errors.append(
                "TABLE_STORE_URL and TABLE_STORE_SERVICE_KEY must be set "
                "together (or both left empty)."
            )

        if errors:
            combined = "\n  - ".join(errors)
            raise RuntimeError(f"Production configuration errors:\n  - {combined}")

        if app_config.get("DEFAULT_ADMIN_PASSWORD") == "admin123":
            _logger.warning(
                "DEFAULT_ADMIN_PASSWORD is the built-in default. Change it "
                "or disable the account after first login."
            )

        if app_config.get("LOG_LEVEL", "").upper() == "DEBUG":
            _logger.warning(
                "LOG_LEVEL=DEBUG is not recommended in production; SQL "
                "statements and request payloads may appear in logs."
            )


class DevelopmentConfig(BaseConfig):
    """Development environment: verbose logging, SQL echo enabled."""

    DEBUG: bool = True
    SQLALCHEMY_ECHO: bool = True
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "DEBUG")


class TestingConfig(BaseConfig):
    """
    Testing environment: in-memory SQLite shared by every connection.

    The schema is created and dropped around each test by the
    ``db_session`` fixture.
    """

    TESTING: bool = True

    SQLALCHEMY_DATABASE_URI: str = os.environ.get("TEST_DATABASE_URL", "sqlite://")
    SQLALCHEMY_ENGINE_OPTIONS: dict = {
        "connect_args": {"check_same_thread": False},
        "poolclass": StaticPool,
    }
    LOG_LEVEL: str = "DEBUG"

    JWT_SECRET: str = "testing-jwt-secret"
    TABLE_STORE_URL: str = ""
    TABLE_STORE_SERVICE_KEY: str = ""
    BACKUP_PREFERRED_ENGINE: str = "sql"


class ProductionConfig(BaseConfig):
    """
    Production environment: strict settings, no debug output.

    All secrets must be set via environment variables. The application
    factory calls ``validate_production_secrets()`` at startup and will
    refuse to launch if critical values are missing.
    """

    DEBUG: bool = False
    SQLALCHEMY_ECHO: bool = False
    LOG_LEVEL: str = os.environ.get("LOG_LEVEL", "WARNING")


# Lookup dict used by the application factory.
config_by_name: dict[str, type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}
