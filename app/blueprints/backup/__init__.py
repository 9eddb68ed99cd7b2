"""
Backup blueprint: archive export, restore and data cleanup.
"""

from flask import Blueprint

bp = Blueprint("backup", __name__)

# Import routes after blueprint creation to avoid circular imports.
from app.blueprints.backup import routes  # noqa: E402, F401
