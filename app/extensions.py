"""
Flask extension instances.

Extensions are created here without binding to an application so that
the application factory can call ``init_app()`` on each one during
``create_app()``.  This avoids circular imports and follows the
standard Flask extension pattern.
"""

import sqlite3

from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_login import LoginManager
from sqlalchemy import event
from sqlalchemy.engine import Engine

# -- Database ORM ----------------------------------------------------------
# The ``db`` instance is imported by models and services throughout the app.
db = SQLAlchemy()


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record):
    """Turn on foreign key enforcement for every new SQLite connection."""
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


# -- Schema migrations (Alembic via Flask-Migrate) -------------------------
migrate = Migrate()

# -- Bearer-token authentication -------------------------------------------
# The API is stateless: users are loaded per request from the
# ``Authorization`` header by the request loader registered in
# ``create_app()``, never from a session cookie.
login_manager = LoginManager()
login_manager.session_protection = None
