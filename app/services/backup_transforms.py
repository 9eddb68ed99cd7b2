"""
Row transforms for backup restore.

Backups come from several generations of the application, so a dumped
row may use snake_case (``no_asset``), camelCase (``noAsset``) or
lower-cased (``isactive``) keys, and its values may be loosely typed
(numbers as strings, booleans as ``"yes"``).  Each table's transform is
derived from the table's SQLAlchemy columns and produces a dict with
exactly one key per column, ready for insertion.

Coercion rules per column type:
    - strings:  objects are JSON-encoded, other scalars stringified;
                a missing required string raises.
    - numbers:  numeric strings accepted, non-finite values are missing;
                a missing required number uses the column's scalar
                default or raises.
    - booleans: ``true/1/yes/y/on`` and ``false/0/no/n/off``; a missing
                required boolean is False.
    - datetimes: ISO strings; a missing required timestamp is now.
"""

import json
import logging
import math
from datetime import date, datetime, timezone
from typing import Any, Callable

from sqlalchemy import Boolean, Date, DateTime, Float, Integer, Numeric

from app.exceptions import ValidationError
from app.extensions import db
from app.models.mixins import utcnow

logger = logging.getLogger(__name__)

DEFAULT_RESTORE_ORDER = (
    "sites",
    "categories",
    "departments",
    "employees",
    "users",
    "assets",
    "asset_checkouts",
    "asset_custom_fields",
    "asset_custom_values",
    "so_sessions",
    "so_asset_entries",
    "asset_events",
    "logs",
    "backups",
)

# Values used when an older dump has no value for a required column.
_FALLBACKS: dict[tuple[str, str], Any] = {
    ("sites", "country"): "Indonesia",
    ("employees", "is_active"): True,
    ("assets", "status"): "Active",
    ("so_asset_entries", "status"): "Scanned",
    ("logs", "level"): "INFO",
    ("backups", "status"): "completed",
}

_TRUE_WORDS = ("true", "1", "yes", "y", "on")
_FALSE_WORDS = ("false", "0", "no", "n", "off")


class TransformError(ValidationError):
    """A dumped row cannot be converted for its table."""


# -- Value coercers --------------------------------------------------------


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.capitalize() for part in rest)


def candidate_keys(column_name: str) -> tuple[str, ...]:
    """Keys a dumped row may use for ``column_name``, in priority order."""
    camel = _camel(column_name)
    keys = [column_name, camel, column_name.replace("_", "")]
    return tuple(dict.fromkeys(keys))


def get_value(row: dict, keys) -> Any:
    """First present, non-None value among ``keys`` (None when absent)."""
    for key in keys:
        if key in row and row[key] is not None:
            return row[key]
    return None


def to_string(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def to_number(value, integer: bool = False):
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        try:
            number = float(str(value).strip())
        except ValueError:
            return None
    if not math.isfinite(number):
        return None
    return int(number) if integer else number


def to_bool(value) -> bool | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_WORDS:
            return True
        if text in _FALSE_WORDS:
            return False
    return None


def to_datetime(value) -> datetime | None:
    """Naive UTC datetime from an ISO string, epoch millis or datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


# -- Table transforms ------------------------------------------------------


def _column_kind(column) -> str:
    column_type = column.type
    if isinstance(column_type, Boolean):
        return "boolean"
    if isinstance(column_type, (DateTime, Date)):
        return "datetime"
    if isinstance(column_type, Integer):
        return "integer"
    if isinstance(column_type, (Float, Numeric)):
        return "number"
    return "string"


def _scalar_default(column):
    default = column.default
    if default is not None and getattr(default, "is_scalar", False):
        return default.arg
    return None


def _coerce_column(table: str, column, row: dict) -> Any:
    kind = _column_kind(column)
    keys = candidate_keys(column.name)
    raw = get_value(row, keys)
    required = not column.nullable

    if kind == "string":
        value = to_string(raw)
        if value in (None, "") and required:
            fallback = _FALLBACKS.get((table, column.name))
            if fallback is not None:
                return fallback
            raise TransformError(
                f'Missing required string "{keys[0]}" in table "{table}"'
            )
        return value

    if kind in ("integer", "number"):
        value = to_number(raw, integer=kind == "integer")
        if value is None and required:
            fallback = _FALLBACKS.get((table, column.name), _scalar_default(column))
            if fallback is not None:
                return fallback
            raise TransformError(
                f'Missing required numeric field "{keys[0]}" in table "{table}"'
            )
        return value

    if kind == "boolean":
        value = to_bool(raw)
        if value is None and required:
            return _FALLBACKS.get((table, column.name), False)
        return value

    value = to_datetime(raw)
    if value is None and required:
        return utcnow()
    return value


def build_transform(table_name: str) -> Callable[[dict], dict] | None:
    """
    Return the row transform for ``table_name``, or None when the
    schema has no such table.
    """
    table = db.metadata.tables.get(table_name)
    if table is None:
        return None
    columns = list(table.columns)

    def transform(row: dict) -> dict:
        if not isinstance(row, dict):
            raise TransformError(f'Invalid row in table "{table_name}"')
        return {column.name: _coerce_column(table_name, column, row) for column in columns}

    return transform


def transform_rows(table_name: str, rows) -> list[dict]:
    """
    Transform every dict in ``rows``; non-dict items are dropped.

    Raises:
        TransformError: A row is missing a required value.
    """
    transform = build_transform(table_name)
    if transform is None:
        return []
    records = [row for row in (rows or []) if isinstance(row, dict)]
    return [transform(row) for row in records]


# -- Restore order ---------------------------------------------------------


def resolve_restore_order(metadata_order, dump: dict) -> list[str]:
    """
    Merge the archive's declared order, the default order and the dump's
    own keys, keeping the first occurrence of each table name.

    Non-string and blank names are ignored.
    """
    merged: list[str] = []
    seen: set[str] = set()

    def push(name) -> None:
        if not isinstance(name, str):
            return
        name = name.strip()
        if not name or name in seen:
            return
        merged.append(name)
        seen.add(name)

    if isinstance(metadata_order, list):
        for name in metadata_order:
            push(name)
    for name in DEFAULT_RESTORE_ORDER:
        push(name)
    for name in (dump or {}).keys():
        push(name)
    return merged
