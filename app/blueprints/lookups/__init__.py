"""
Lookups blueprint: sites, categories and departments.
"""

from flask import Blueprint

bp = Blueprint("lookups", __name__)

# Import routes after blueprint creation to avoid circular imports.
from app.blueprints.lookups import routes  # noqa: E402, F401
