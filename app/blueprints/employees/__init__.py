"""
Employees blueprint: employee (PIC) records and CSV import.
"""

from flask import Blueprint

bp = Blueprint("employees", __name__)

# Import routes after blueprint creation to avoid circular imports.
from app.blueprints.employees import routes  # noqa: E402, F401
