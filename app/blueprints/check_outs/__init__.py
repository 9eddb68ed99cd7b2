"""
Check-outs blueprint: handing assets out and taking them back.
"""

from flask import Blueprint

bp = Blueprint("check_outs", __name__)

# Import routes after blueprint creation to avoid circular imports.
from app.blueprints.check_outs import routes  # noqa: E402, F401
