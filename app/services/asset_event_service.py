"""
Asset event service: the per-asset history of check-outs, check-ins
and stock-opname updates.

Events are written by the check-out and SO services in the same
transaction as the change they describe; callers commit.
"""

import json
import logging
from datetime import datetime
from typing import Any

from app.extensions import db
from app.models.asset import (
    EVENT_CHECK_IN,
    EVENT_CHECK_OUT,
    EVENT_SO_UPDATE,
    AssetCheckout,
    AssetEvent,
)
from app.models.mixins import iso

logger = logging.getLogger(__name__)

# Entry attributes compared when an SO entry is edited.
SO_COMPARED_FIELDS = (
    ("tempName", "temp_name"),
    ("tempStatus", "temp_status"),
    ("tempSerialNo", "temp_serial_no"),
    ("tempPic", "temp_pic"),
    ("tempBrand", "temp_brand"),
    ("tempModel", "temp_model"),
    ("tempCost", "temp_cost"),
    ("tempNotes", "temp_notes"),
    ("tempSiteId", "temp_site_id"),
    ("tempCategoryId", "temp_category_id"),
    ("tempDepartmentId", "temp_department_id"),
    ("isIdentified", "is_identified"),
)


def record_event(
    asset_id: str,
    event_type: str,
    actor: str | None = None,
    checkout_id: str | None = None,
    so_session_id: str | None = None,
    so_asset_entry_id: str | None = None,
    payload: dict[str, Any] | None = None,
) -> AssetEvent:
    """Add an event to the session (flushed, not committed)."""
    event = AssetEvent(
        asset_id=asset_id,
        type=event_type,
        actor=actor,
        checkout_id=checkout_id,
        so_session_id=so_session_id,
        so_asset_entry_id=so_asset_entry_id,
        payload=json.dumps(payload, default=str) if payload else None,
    )
    db.session.add(event)
    db.session.flush()
    logger.debug("Asset event %s for asset %s", event_type, asset_id)
    return event


def snapshot_entry(entry) -> dict[str, Any]:
    """Capture the comparable fields of an SO entry before editing it."""
    return {key: getattr(entry, attr) for key, attr in SO_COMPARED_FIELDS}


def build_so_changes(before: dict[str, Any], after: dict[str, Any]) -> list[dict]:
    """
    List the fields that differ between two entry snapshots.

    A value going from None to anything, or from anything to None,
    counts as a change.
    """
    changes = []
    for key, _attr in SO_COMPARED_FIELDS:
        old, new = before.get(key), after.get(key)
        if old is None and new is None:
            continue
        if old is None or new is None or _normalize(old) != _normalize(new):
            changes.append({"field": key, "before": old, "after": new})
    return changes


def _normalize(value):
    if isinstance(value, datetime):
        return value.isoformat()
    return value


# -- History ---------------------------------------------------------------


def _summary(event_type: str, payload: dict | None) -> str:
    payload = payload if isinstance(payload, dict) else {}
    if event_type == EVENT_CHECK_OUT:
        name = (payload.get("assignTo") or {}).get("name") or "unknown PIC"
        return f"Checked out to {name}"
    if event_type == EVENT_CHECK_IN:
        name = payload.get("receivedBy") or "unknown PIC"
        if isinstance(name, dict):
            name = name.get("name") or "unknown PIC"
        return f"Checked in by {name}"
    if event_type == EVENT_SO_UPDATE:
        count = len(payload.get("changes") or [])
        return f"SO update ({count} changes)" if count else "SO update"
    return event_type


def get_history(asset_id: str, event_type: str | None = None, limit: int = 50) -> list[dict]:
    """
    Merge recorded events and check-out records into one timeline.

    Check-out rows only contribute entries that have no matching event
    (records created before events existed, or restored from backups).
    Newest first, at most ``limit`` items.
    """
    events = (
        AssetEvent.query.filter_by(asset_id=asset_id)
        .order_by(AssetEvent.created_at.desc())
        .limit(limit * 2)
        .all()
    )
    if event_type:
        events = [e for e in events if e.type == event_type]

    covered = {(e.type, e.checkout_id) for e in events if e.checkout_id}
    items: list[dict] = []
    for event in events:
        payload = event.payload_data
        items.append(
            {
                "id": event.id,
                "type": event.type,
                "timestamp": event.created_at,
                "summary": _summary(event.type, payload),
                "details": payload,
                "source": "event",
            }
        )

    checkouts = (
        AssetCheckout.query.filter_by(asset_id=asset_id)
        .order_by(AssetCheckout.checkout_date.desc())
        .limit(limit * 2)
        .all()
    )
    for checkout in checkouts:
        assign_name = checkout.assign_to.name if checkout.assign_to else "unknown PIC"
        if (EVENT_CHECK_OUT, checkout.id) not in covered and event_type in (
            None,
            EVENT_CHECK_OUT,
        ):
            items.append(
                {
                    "id": f"{checkout.id}-out",
                    "type": EVENT_CHECK_OUT,
                    "timestamp": checkout.checkout_date,
                    "summary": f"Checked out to {assign_name}",
                    "details": {
                        "dueDate": iso(checkout.due_date),
                        "notes": checkout.notes,
                        "status": checkout.status,
                    },
                    "source": "checkout",
                }
            )
        if (
            checkout.returned_at
            and (EVENT_CHECK_IN, checkout.id) not in covered
            and event_type in (None, EVENT_CHECK_IN)
        ):
            received = checkout.received_by.name if checkout.received_by else "unknown PIC"
            items.append(
                {
                    "id": f"{checkout.id}-in",
                    "type": EVENT_CHECK_IN,
                    "timestamp": checkout.returned_at,
                    "summary": f"Checked in by {received}",
                    "details": {
                        "notes": checkout.return_notes,
                        "status": checkout.status,
                    },
                    "source": "checkout",
                }
            )

    items.sort(key=lambda item: item["timestamp"] or datetime.min, reverse=True)
    for item in items:
        if isinstance(item["timestamp"], datetime):
            item["timestamp"] = item["timestamp"].isoformat()
    return items[:limit]
