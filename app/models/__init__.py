"""
Model package: imports all models so Alembic and SQLAlchemy can
discover them automatically when ``flask db`` commands are run.

Each model file groups related tables:
  - lookup.py       -> sites, categories, departments
  - employee.py     -> employees
  - user.py         -> users
  - asset.py        -> assets, asset_checkouts, asset_custom_fields,
                       asset_custom_values, asset_events
  - stock_opname.py -> so_sessions, so_asset_entries
  - audit.py        -> logs, backups
"""

# -- Lookups ---------------------------------------------------------------
from app.models.lookup import Category, Department, Site  # noqa: F401

# -- People ----------------------------------------------------------------
from app.models.employee import Employee  # noqa: F401
from app.models.user import User  # noqa: F401

# -- Assets ----------------------------------------------------------------
from app.models.asset import (  # noqa: F401
    Asset,
    AssetCheckout,
    AssetCustomField,
    AssetCustomValue,
    AssetEvent,
)

# -- Stock opname ----------------------------------------------------------
from app.models.stock_opname import SOAssetEntry, SOSession  # noqa: F401

# -- Audit & backups -------------------------------------------------------
from app.models.audit import AuditLog, BackupRecord  # noqa: F401
