"""
Stock-opname session service.

Lifecycle: a session is created Active, collects scanned entries and
ends either Completed (identified entries' temp values are written back
to their assets) or Cancelled (entries are discarded, assets untouched).
Only Active sessions accept scans and entry edits.
"""

import logging

from sqlalchemy import func, or_

from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.extensions import db
from app.models.asset import EVENT_SO_UPDATE, Asset
from app.models.mixins import utcnow
from app.models.stock_opname import (
    ENTRY_SCANNED,
    SESSION_ACTIVE,
    SESSION_CANCELLED,
    SESSION_COMPLETED,
    TEMP_FIELD_MAP,
    SOAssetEntry,
    SOSession,
)
from app.services import asset_event_service, asset_service, audit_service
from app.services.validation import (
    optional_text,
    parse_bool,
    parse_datetime,
    parse_float,
    require_text,
)

logger = logging.getLogger(__name__)

MAX_NOTES_LENGTH = 5000

# Request key -> entry attribute for plain text temp fields.  Both the
# ``temp*`` key and the bare asset key are accepted; ``temp*`` wins.
_TEXT_ENTRY_FIELDS = (
    ("tempName", "name", "temp_name"),
    ("tempStatus", "status", "temp_status"),
    ("tempNoAsset", "noAsset", "temp_no_asset"),
    ("tempSerialNo", "serialNo", "temp_serial_no"),
    ("tempPic", "pic", "temp_pic"),
    ("tempBrand", "brand", "temp_brand"),
    ("tempModel", "model", "temp_model"),
    ("tempNotes", "notes", "temp_notes"),
    ("tempImageUrl", "imageUrl", "temp_image_url"),
)

# Request keys -> (entry attribute, asset_service reference kind).
_ID_ENTRY_FIELDS = (
    ("tempSiteId", "siteId", "temp_site_id", "sites"),
    ("tempCategoryId", "categoryId", "temp_category_id", "categories"),
    ("tempDepartmentId", "departmentId", "temp_department_id", "departments"),
    ("tempPicId", "picId", "temp_pic_id", "employee"),
)


def _pick(data: dict, primary: str, secondary: str):
    """Return ``(present, value)`` preferring the primary key."""
    if primary in data:
        return True, data[primary]
    if secondary in data:
        return True, data[secondary]
    return False, None


# -- Lookups ---------------------------------------------------------------


def get_session(session_id: str) -> SOSession | None:
    return db.session.get(SOSession, session_id)


def _get_session_or_404(session_id: str) -> SOSession:
    session = get_session(session_id)
    if session is None:
        raise NotFoundError("SO Session not found")
    return session


def _require_active(session: SOSession) -> None:
    if not session.is_active:
        raise ConflictError("SO Session is not active")


def list_sessions(status: str | None = None) -> list[dict]:
    """
    Return every session, newest first, with a live entry count.

    ``totalAssets`` reports the current size of the asset register
    rather than the count captured at creation.
    """
    query = SOSession.query.order_by(SOSession.created_at.desc())
    if status and status != "all":
        query = query.filter(SOSession.status == status)
    sessions = query.all()

    entry_counts = dict(
        db.session.query(SOAssetEntry.so_session_id, func.count(SOAssetEntry.id))
        .group_by(SOAssetEntry.so_session_id)
        .all()
    )
    total_assets = db.session.query(func.count(Asset.id)).scalar() or 0

    result = []
    for session in sessions:
        data = session.to_dict()
        data["totalAssets"] = total_assets
        data["entryCount"] = entry_counts.get(session.id, 0)
        result.append(data)
    return result


def get_session_with_stats(session_id: str) -> dict:
    """Return the session plus scanned/verified counts and completion rate."""
    session = _get_session_or_404(session_id)
    scanned = session.entries.count()
    verified = session.entries.filter(SOAssetEntry.is_identified.is_(True)).count()
    total = session.total_assets or 0
    completion = round(scanned / total * 100, 2) if total else 0.0

    data = session.to_dict()
    data["stats"] = {
        "scanned": scanned,
        "verified": verified,
        "unscanned": max(total - scanned, 0),
        "completionRate": completion,
    }
    return data


# -- Session lifecycle -----------------------------------------------------


def create_session(data: dict, user_id: str | None = None) -> SOSession:
    """
    Start a new Active session.

    Args:
        data: ``name``, ``year``, ``startDate``, ``endDate`` (all
              required) and optional ``description``.

    Raises:
        ValidationError: Missing fields, bad year or end before start.
    """
    name = optional_text(data.get("name"))
    year = data.get("year")
    start_text = data.get("startDate")
    end_text = data.get("endDate")
    if not name or year in (None, "") or not start_text or not end_text:
        raise ValidationError("Name, year, start date, and end date are required")
    if len(name) > 200:
        raise ValidationError("Name is too long (max 200 characters)")

    try:
        year = int(year)
    except (TypeError, ValueError) as exc:
        raise ValidationError("Year must be a number") from exc

    plan_start = parse_datetime(start_text, "startDate")
    plan_end = parse_datetime(end_text, "endDate")
    if plan_end < plan_start:
        raise ValidationError("End date must be after start date")

    total_assets = db.session.query(func.count(Asset.id)).scalar() or 0
    session = SOSession(
        name=name,
        year=year,
        description=optional_text(data.get("description")),
        plan_start=plan_start,
        plan_end=plan_end,
        status=SESSION_ACTIVE,
        total_assets=total_assets,
        scanned_assets=0,
        verified_assets=0,
        started_at=utcnow(),
    )
    db.session.add(session)
    db.session.flush()

    audit_service.log_change(
        user_id=user_id,
        action_type="CREATE",
        entity_type="so_session",
        entity_id=session.id,
        new_value={"name": name, "year": year, "totalAssets": total_assets},
    )
    db.session.commit()

    logger.info("Created SO session %s (%d assets)", name, total_assets)
    return session


def update_session(session_id: str, data: dict, user_id: str | None = None) -> SOSession:
    """Update a session's name, year, description or plan dates."""
    session = _get_session_or_404(session_id)
    previous = session.to_dict()

    if "name" in data:
        session.name = require_text(data.get("name"), "Name", max_length=200)
    if "year" in data:
        try:
            session.year = int(data.get("year"))
        except (TypeError, ValueError) as exc:
            raise ValidationError("Year must be a number") from exc
    if "description" in data:
        session.description = optional_text(data.get("description"))
    if "startDate" in data:
        session.plan_start = parse_datetime(data.get("startDate"), "startDate")
    if "endDate" in data:
        session.plan_end = parse_datetime(data.get("endDate"), "endDate")
    if session.plan_start and session.plan_end and session.plan_end < session.plan_start:
        raise ValidationError("End date must be after start date")

    audit_service.log_change(
        user_id=user_id,
        action_type="UPDATE",
        entity_type="so_session",
        entity_id=session.id,
        previous_value=previous,
        new_value=session.to_dict(),
    )
    db.session.commit()
    return session


def get_notes(session_id: str) -> str:
    return _get_session_or_404(session_id).notes or ""


def update_notes(session_id: str, notes, user_id: str | None = None) -> str:
    """Replace the session's free-text notes (truncated to 5000 characters)."""
    session = _get_session_or_404(session_id)
    text = notes if isinstance(notes, str) else ""
    session.notes = text[:MAX_NOTES_LENGTH]
    audit_service.log_change(
        user_id=user_id,
        action_type="UPDATE",
        entity_type="so_session",
        entity_id=session.id,
        new_value={"notes": session.notes},
    )
    db.session.commit()
    return session.notes


def _check_write_back(entries: list[SOAssetEntry]) -> None:
    """
    Refuse a completion that would break the asset register.

    Staged numbers must still be free and unique across the session, and
    staged ids must still point at existing rows; both can change after
    the entry was edited.
    """
    claimed: dict[str, str] = {}
    for entry in entries:
        if entry.asset is None:
            continue
        number = entry.temp_no_asset
        if number:
            try:
                _check_number_free(number, entry.asset_id)
            except ConflictError as exc:
                raise ConflictError(
                    f"Cannot complete session: {exc.message}"
                ) from exc
            if claimed.setdefault(number, entry.asset_id) != entry.asset_id:
                raise ConflictError(
                    f'Cannot complete session: asset number "{number}" is '
                    "staged for more than one asset"
                )
        for primary, _secondary, attr, kind in _ID_ENTRY_FIELDS:
            try:
                asset_service.validate_field(primary, kind, getattr(entry, attr))
            except ValidationError as exc:
                raise ConflictError(
                    f"Cannot complete session: {exc.message}"
                ) from exc


def complete_session(session_id: str, completion_notes=None,
                     user_id: str | None = None) -> dict:
    """
    Complete an Active session and write identified entries back.

    For each identified entry, every temp value that is set replaces the
    asset's value.  Cost is copied whenever it is not None, so a zero
    cost is written too.  Unidentified entries leave their asset alone.

    Returns:
        ``{"session": ..., "updatedAssets": int}``.

    Raises:
        NotFoundError: Unknown session.
        ConflictError: Session is not Active, or a staged number or id
                       would leave the asset register inconsistent.
    """
    session = _get_session_or_404(session_id)
    _require_active(session)

    identified = session.entries.filter(SOAssetEntry.is_identified.is_(True)).all()
    _check_write_back(identified)

    updated = 0
    for entry in identified:
        asset = entry.asset
        if asset is None:
            continue
        changed = False
        for temp_attr, asset_attr in TEMP_FIELD_MAP.items():
            value = getattr(entry, temp_attr)
            if temp_attr == "temp_cost":
                if value is None:
                    continue
            elif not value:
                continue
            if getattr(asset, asset_attr) != value:
                setattr(asset, asset_attr, value)
                changed = True
        if changed:
            updated += 1

    session.status = SESSION_COMPLETED
    session.completed_at = utcnow()
    session.verified_assets = len(identified)
    session.completion_notes = optional_text(completion_notes)

    audit_service.log_change(
        user_id=user_id,
        action_type="COMPLETE",
        entity_type="so_session",
        entity_id=session.id,
        new_value={"identified": len(identified), "updatedAssets": updated},
    )
    db.session.commit()

    logger.info(
        "Completed SO session %s: %d identified, %d assets updated",
        session.name,
        len(identified),
        updated,
    )
    return {"session": session.to_dict(), "updatedAssets": updated}


def cancel_session(session_id: str, user_id: str | None = None) -> dict:
    """
    Cancel an Active session, discarding all of its entries.

    Raises:
        NotFoundError: Unknown session.
        ConflictError: Session is not Active.
    """
    session = _get_session_or_404(session_id)
    _require_active(session)

    discarded = SOAssetEntry.query.filter_by(so_session_id=session.id).delete(
        synchronize_session=False
    )
    session.status = SESSION_CANCELLED
    session.completed_at = utcnow()

    audit_service.log_change(
        user_id=user_id,
        action_type="CANCEL",
        entity_type="so_session",
        entity_id=session.id,
        new_value={"discardedEntries": discarded},
    )
    db.session.commit()

    logger.info("Cancelled SO session %s (%d entries discarded)", session.name, discarded)
    return {"session": session.to_dict(), "discardedEntries": discarded}


def delete_session(session_id: str, user_id: str | None = None) -> None:
    """
    Delete a finished session and its entries.

    Raises:
        ConflictError: The session is still Active.
    """
    session = _get_session_or_404(session_id)
    if session.is_active:
        raise ConflictError("Cannot delete an active session; cancel it first")

    snapshot = session.to_dict()
    db.session.delete(session)
    audit_service.log_change(
        user_id=user_id,
        action_type="DELETE",
        entity_type="so_session",
        entity_id=session_id,
        previous_value=snapshot,
    )
    db.session.commit()
    logger.info("Deleted SO session %s", snapshot["name"])


def admin_action(session_id: str, data: dict, user_id: str | None = None) -> dict:
    """Dispatch an admin ``action`` of cancel, complete or update."""
    action = (data.get("action") or "update").strip().lower()
    if action == "cancel":
        return cancel_session(session_id, user_id=user_id)
    if action == "complete":
        return complete_session(
            session_id, data.get("completionNotes"), user_id=user_id
        )
    if action == "update":
        fields = {k: v for k, v in data.items() if k != "action"}
        return {"session": update_session(session_id, fields, user_id=user_id).to_dict()}
    raise ValidationError(f"Unknown action '{action}'")


# -- Scanning --------------------------------------------------------------


def scan_asset(session_id: str, asset_id: str | None = None,
               no_asset: str | None = None, actor=None) -> dict:
    """
    Record an asset as seen in the session.

    The new entry's temp fields start as a copy of the asset.  Scanning
    an asset already in the session returns the existing entry with
    ``success`` False.

    Raises:
        ValidationError: Neither ``asset_id`` nor ``no_asset`` given.
        NotFoundError:   Unknown session or asset.
        ConflictError:   Session is not Active.
    """
    asset_id = optional_text(asset_id)
    no_asset = optional_text(no_asset)
    if not asset_id and not no_asset:
        raise ValidationError("Asset ID or asset number is required")

    session = _get_session_or_404(session_id)
    _require_active(session)

    if asset_id:
        asset = db.session.get(Asset, asset_id)
    else:
        asset = Asset.query.filter_by(no_asset=no_asset).first()
    if asset is None:
        raise NotFoundError("Asset not found")

    existing = SOAssetEntry.query.filter_by(
        so_session_id=session.id, asset_id=asset.id
    ).first()
    if existing is not None:
        return {
            "success": False,
            "message": "Asset already scanned in this session",
            "entry": existing.to_dict(),
        }

    entry = SOAssetEntry(
        so_session_id=session.id,
        asset_id=asset.id,
        status=ENTRY_SCANNED,
        scanned_at=utcnow(),
        is_identified=True,
        temp_name=asset.name,
        temp_status=asset.status,
        temp_serial_no=asset.serial_no,
        temp_pic=asset.pic_employee.name if asset.pic_employee else asset.pic,
        temp_pic_id=asset.pic_id,
        temp_brand=asset.brand,
        temp_model=asset.model,
        temp_cost=asset.cost,
        temp_purchase_date=asset.purchase_date,
        temp_image_url=asset.image_url,
        temp_site_id=asset.site_id,
        temp_category_id=asset.category_id,
        temp_department_id=asset.department_id,
    )
    db.session.add(entry)
    session.scanned_assets = (session.scanned_assets or 0) + 1
    db.session.commit()

    logger.info(
        "Scanned asset %s in session %s by %s",
        asset.no_asset,
        session.name,
        getattr(actor, "email", None),
    )
    return {
        "success": True,
        "message": "Asset scanned successfully",
        "asset": asset.to_dict(),
        "entry": entry.to_dict(include_asset=False),
    }


# -- Entries ---------------------------------------------------------------


def get_entries(session_id: str, page: int = 1, per_page: int = 10,
                status: str | None = None, search: str | None = None):
    """
    Return a page of the session's entries, most recently scanned first.

    ``search`` matches the staged name, brand and model and the asset's
    number, name and serial.
    """
    session = _get_session_or_404(session_id)
    query = SOAssetEntry.query.filter(SOAssetEntry.so_session_id == session.id)
    if status and status != "all":
        query = query.filter(SOAssetEntry.status == status)
    if search and search.strip():
        term = f"%{search.strip()}%"
        query = query.join(Asset, SOAssetEntry.asset_id == Asset.id).filter(
            or_(
                SOAssetEntry.temp_name.ilike(term),
                SOAssetEntry.temp_brand.ilike(term),
                SOAssetEntry.temp_model.ilike(term),
                Asset.no_asset.ilike(term),
                Asset.name.ilike(term),
                Asset.serial_no.ilike(term),
            )
        )
    query = query.order_by(SOAssetEntry.scanned_at.desc())
    pagination = query.paginate(page=page, per_page=per_page, error_out=False)
    return session, pagination


def _get_entry_or_404(session: SOSession, entry_id: str) -> SOAssetEntry:
    entry = db.session.get(SOAssetEntry, entry_id)
    if entry is None:
        raise NotFoundError("Entry not found")
    if entry.so_session_id != session.id:
        raise ValidationError("Entry does not belong to this session")
    return entry


def get_entry(session_id: str, entry_id: str) -> tuple[SOSession, SOAssetEntry]:
    session = _get_session_or_404(session_id)
    return session, _get_entry_or_404(session, entry_id)


def _check_number_free(no_asset: str, asset_id: str | None) -> None:
    other = asset_service.get_asset_by_number(no_asset)
    if other is not None and other.id != asset_id:
        raise ConflictError(f'Asset number "{no_asset}" already exists')


def update_entry(session_id: str, entry_id: str, data: dict, actor=None) -> SOAssetEntry:
    """
    Stage edits on an entry.

    Keys absent from ``data`` are left alone; null or blank values clear
    the field.  ``isIdentified`` becomes True unless given.  Clearing
    ``isCrucial`` also clears ``crucialNotes``.  Any change to the
    compared fields is recorded as an SO_UPDATE asset event.

    Raises:
        NotFoundError:   Unknown session or entry.
        ConflictError:   Session is not Active, or the staged asset number
                         belongs to another asset.
        ValidationError: Entry belongs to another session, an unknown
                         status, or an id that references nothing.
    """
    session = _get_session_or_404(session_id)
    _require_active(session)
    entry = _get_entry_or_404(session, entry_id)
    before = asset_event_service.snapshot_entry(entry)

    # Validated in full before the entry is touched.
    staged = {}
    for primary, secondary, attr in _TEXT_ENTRY_FIELDS:
        present, value = _pick(data, primary, secondary)
        if present:
            staged[attr] = optional_text(value)
    for primary, secondary, attr, kind in _ID_ENTRY_FIELDS:
        present, value = _pick(data, primary, secondary)
        if present:
            staged[attr] = asset_service.validate_field(primary, kind, value)
    if staged.get("temp_status"):
        asset_service.validate_field("tempStatus", "status", staged["temp_status"])
    if staged.get("temp_no_asset"):
        _check_number_free(staged["temp_no_asset"], entry.asset_id)
    for attr, value in staged.items():
        setattr(entry, attr, value)

    present, value = _pick(data, "tempCost", "cost")
    if present:
        try:
            entry.temp_cost = parse_float(value, "cost")
        except ValidationError:
            entry.temp_cost = None

    present, value = _pick(data, "tempPurchaseDate", "purchaseDate")
    if present:
        try:
            entry.temp_purchase_date = parse_datetime(value, "purchaseDate")
        except ValidationError:
            entry.temp_purchase_date = None

    entry.is_identified = parse_bool(data.get("isIdentified"), default=True)

    if "isCrucial" in data:
        entry.is_crucial = bool(parse_bool(data.get("isCrucial"), default=False))
        if not entry.is_crucial:
            entry.crucial_notes = None
    if "crucialNotes" in data:
        notes = data.get("crucialNotes")
        entry.crucial_notes = notes.strip() or None if isinstance(notes, str) else None

    after = asset_event_service.snapshot_entry(entry)
    changes = asset_event_service.build_so_changes(before, after)
    if changes:
        asset_event_service.record_event(
            asset_id=entry.asset_id,
            event_type=EVENT_SO_UPDATE,
            actor=getattr(actor, "name", None),
            so_session_id=session.id,
            so_asset_entry_id=entry.id,
            payload={
                "sessionId": session.id,
                "sessionName": session.name,
                "changes": changes,
            },
        )
    db.session.commit()

    logger.debug("Updated SO entry %s (%d changes)", entry.id, len(changes))
    return entry


def get_unidentified_assets(session_id: str, page: int = 1, per_page: int = 10,
                            search: str | None = None):
    """Return a page of assets that have not been scanned in the session."""
    session = _get_session_or_404(session_id)
    scanned = db.session.query(SOAssetEntry.asset_id).filter(
        SOAssetEntry.so_session_id == session.id
    )
    query = Asset.query.filter(~Asset.id.in_(scanned))
    if search and search.strip():
        term = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Asset.no_asset.ilike(term),
                Asset.name.ilike(term),
                Asset.serial_no.ilike(term),
                Asset.pic.ilike(term),
            )
        )
    query = query.order_by(Asset.no_asset)
    return query.paginate(page=page, per_page=per_page, error_out=False)
