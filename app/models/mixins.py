"""
Column helpers shared by every model.

Primary keys are UUID4 strings so that rows keep their identity across
a backup export and restore.  Timestamps are stored as naive UTC.
"""

import uuid
from datetime import date, datetime, timezone


def generate_id() -> str:
    """Return a new random primary key."""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Current UTC time without tzinfo, matching what the database returns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def iso(value: date | datetime | None) -> str | None:
    """Serialize a date or datetime for JSON responses."""
    if value is None:
        return None
    return value.isoformat()
