"""
Stock-opname blueprint: sessions, scanning and staged entries.
"""

from flask import Blueprint

bp = Blueprint("so_sessions", __name__)

# Import routes after blueprint creation to avoid circular imports.
from app.blueprints.so_sessions import routes  # noqa: E402, F401
