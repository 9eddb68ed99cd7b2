"""
Audit service: records data changes and queries the audit trail.

Every CREATE, UPDATE and DELETE operation in the application passes
through this service so that a complete audit trail is maintained in
the ``logs`` table.  ``log_change`` is the primary entry point, called
by other services before they commit.
"""

import json
import logging
from datetime import datetime
from typing import Any

from flask import request
from sqlalchemy import desc

from app.extensions import db
from app.models.audit import AuditLog

logger = logging.getLogger(__name__)


# -- Write audit entries ---------------------------------------------------

def log_change(
    user_id: str | None,
    action_type: str,
    entity_type: str,
    entity_id: str | None,
    previous_value: dict[str, Any] | None = None,
    new_value: dict[str, Any] | None = None,
    level: str = "INFO",
) -> AuditLog:
    """
    Record a data change in the audit log.

    Args:
        user_id:        ID of the user who made the change, or None for
                        system actions (e.g., CLI restore).
        action_type:    One of CREATE, UPDATE, DELETE, LOGIN, LOGOUT,
                        COMPLETE, CANCEL, RESTORE, EXPORT.
        entity_type:    Entity name (e.g., 'asset', 'so_session').
        entity_id:      Primary key of the affected record.
        previous_value: Dict of the record state before the change.
        new_value:      Dict of the record state after the change.
        level:          Log level stored with the entry.

    Returns:
        The newly created AuditLog record (flushed, not committed).
    """
    # Capture request metadata when available (inside a request context).
    ip_address = None
    user_agent = None
    try:
        ip_address = request.headers.get("X-Forwarded-For", request.remote_addr)
        user_agent = str(request.user_agent)[:500]
    except RuntimeError:
        # Outside of a request context (e.g., CLI).
        pass

    data: dict[str, Any] = {
        "action": action_type,
        "entity": entity_type,
        "entityId": entity_id,
    }
    if previous_value:
        data["previous"] = previous_value
    if new_value:
        data["new"] = new_value

    entry = AuditLog(
        level=level,
        message=f"{action_type} {entity_type}:{entity_id}"[:500],
        data=json.dumps(data, default=str),
        user_id=user_id,
        ip_address=(ip_address or "")[:45] or None,
        user_agent=user_agent,
    )
    db.session.add(entry)
    db.session.flush()

    logger.info(
        "Audit: %s %s:%s by user %s",
        action_type,
        entity_type,
        entity_id,
        user_id,
    )
    return entry


def log_login(user_id: str) -> AuditLog:
    """Record a successful user login."""
    return log_change(
        user_id=user_id,
        action_type="LOGIN",
        entity_type="user",
        entity_id=user_id,
    )


def log_logout(user_id: str) -> AuditLog:
    """Record a user logout."""
    return log_change(
        user_id=user_id,
        action_type="LOGOUT",
        entity_type="user",
        entity_id=user_id,
    )


# -- Query audit logs ------------------------------------------------------

def get_audit_logs(
    page: int = 1,
    per_page: int = 50,
    user_id: str | None = None,
    level: str | None = None,
    search: str | None = None,
    start_date: datetime | None = None,
    end_date: datetime | None = None,
):
    """
    Query audit logs with optional filters and pagination.

    Returns:
        A SQLAlchemy pagination object with ``.items``, ``.pages``,
        ``.total``, etc.
    """
    query = AuditLog.query.order_by(desc(AuditLog.created_at))

    if user_id:
        query = query.filter(AuditLog.user_id == user_id)
    if level:
        query = query.filter(AuditLog.level == level.upper())
    if search:
        query = query.filter(AuditLog.message.ilike(f"%{search}%"))
    if start_date:
        query = query.filter(AuditLog.created_at >= start_date)
    if end_date:
        query = query.filter(AuditLog.created_at <= end_date)

    return query.paginate(page=page, per_page=per_page, error_out=False)
