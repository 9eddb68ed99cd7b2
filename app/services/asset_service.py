"""
Asset service: the canonical asset register.

Covers listing with filters and search, CRUD, bulk operations, asset
number generation and the duplicate check used before imports.

Asset numbers have the shape ``FA001/III/02``:

  - ``FA``  configurable prefix (``ASSET_NUMBER_PREFIX``),
  - ``001`` the current asset count + 1, zero-padded to three digits,
  - ``III`` the Roman numeral of the category's 1-based position when
    categories are sorted by name (``I`` when no category is chosen),
  - ``02``  the 1-based position of the site when sites are sorted by
    name, zero-padded to two digits (``01`` when no site is chosen).
"""

import json
import logging

from flask import current_app
from sqlalchemy import func, or_

from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.extensions import db
from app.models.asset import ASSET_STATUSES, Asset
from app.models.employee import Employee
from app.models.lookup import Category, Department, Site
from app.services import audit_service, lookup_service
from app.services.validation import (
    optional_text,
    parse_datetime,
    parse_float,
    parse_loose_date,
    require_text,
)

logger = logging.getLogger(__name__)

_ROMAN_NUMERALS = (
    (1000, "M"),
    (900, "CM"),
    (500, "D"),
    (400, "CD"),
    (100, "C"),
    (90, "XC"),
    (50, "L"),
    (40, "XL"),
    (10, "X"),
    (9, "IX"),
    (5, "V"),
    (4, "IV"),
    (1, "I"),
)

# camelCase request key -> (model attribute, kind of value)
_ASSET_FIELDS = {
    "name": ("name", "text"),
    "noAsset": ("no_asset", "text"),
    "status": ("status", "status"),
    "serialNo": ("serial_no", "text"),
    "purchaseDate": ("purchase_date", "date"),
    "cost": ("cost", "number"),
    "brand": ("brand", "text"),
    "model": ("model", "text"),
    "pic": ("pic", "text"),
    "picId": ("pic_id", "employee"),
    "imageUrl": ("image_url", "text"),
    "notes": ("notes", "raw"),
    "siteId": ("site_id", "sites"),
    "categoryId": ("category_id", "categories"),
    "departmentId": ("department_id", "departments"),
}


# =========================================================================
# Asset numbering
# =========================================================================


def to_roman(value: int) -> str:
    """Roman numeral for ``value``; zero or negative gives ``I``."""
    if value <= 0:
        return "I"
    remainder = value
    parts = []
    for amount, numeral in _ROMAN_NUMERALS:
        while remainder >= amount:
            parts.append(numeral)
            remainder -= amount
    return "".join(parts) or "I"


def _position_by_name(model, lookup_id: str | None) -> int | None:
    """1-based position of ``lookup_id`` when the table is sorted by name."""
    if not lookup_id:
        return None
    ids = [row.id for row in model.query.order_by(model.name).with_entities(model.id)]
    try:
        return ids.index(lookup_id) + 1
    except ValueError:
        return None


def generate_asset_number(category_id: str | None = None, site_id: str | None = None) -> dict:
    """
    Compose the next free asset number for a category and site.

    The sequence starts at the asset count + 1 and advances while the
    composed number is already taken.

    Returns:
        ``{"assetNumber", "number", "categoryRoman", "siteNumber"}``.
    """
    prefix = current_app.config.get("ASSET_NUMBER_PREFIX", "FA")

    category_position = _position_by_name(Category, category_id)
    category_roman = to_roman(category_position) if category_position else "I"

    site_position = _position_by_name(Site, site_id)
    site_number = f"{site_position:02d}" if site_position else "01"

    sequence = db.session.query(func.count(Asset.id)).scalar() + 1
    while True:
        number = f"{prefix}{sequence:03d}/{category_roman}/{site_number}"
        if get_asset_by_number(number) is None:
            break
        sequence += 1

    return {
        "assetNumber": number,
        "number": number,
        "categoryRoman": category_roman,
        "siteNumber": site_number,
    }


# =========================================================================
# Queries
# =========================================================================


def get_statuses() -> list[str]:
    return list(ASSET_STATUSES)


def get_asset_by_id(asset_id: str) -> Asset | None:
    return db.session.get(Asset, asset_id)


def get_asset_by_number(no_asset: str) -> Asset | None:
    return Asset.query.filter_by(no_asset=no_asset.strip()).first()


def get_assets(
    page: int = 1,
    per_page: int = 10,
    filters: dict | None = None,
    search: str | None = None,
    sort: str = "dateCreated",
    order: str = "desc",
):
    """
    Return a paginated, filtered asset list.

    Args:
        filters: Exact-match filters: ``picId``, ``categoryId``,
                 ``siteId``, ``departmentId``, ``status`` and the lookup
                 names ``category``, ``site``, ``department``.
        search:  Case-insensitive substring match over the asset's
                 fields, its lookups' names and its PIC's details.
        sort:    ``name`` or ``dateCreated``.
        order:   ``asc`` or ``desc``.

    Returns:
        A SQLAlchemy pagination object.
    """
    filters = filters or {}
    query = (
        Asset.query.outerjoin(Site, Asset.site_id == Site.id)
        .outerjoin(Category, Asset.category_id == Category.id)
        .outerjoin(Department, Asset.department_id == Department.id)
        .outerjoin(Employee, Asset.pic_id == Employee.id)
    )

    if filters.get("picId"):
        query = query.filter(Asset.pic_id == filters["picId"])
    if filters.get("categoryId"):
        query = query.filter(Asset.category_id == filters["categoryId"])
    if filters.get("siteId"):
        query = query.filter(Asset.site_id == filters["siteId"])
    if filters.get("departmentId"):
        query = query.filter(Asset.department_id == filters["departmentId"])
    if filters.get("status"):
        query = query.filter(Asset.status == filters["status"])
    if filters.get("category"):
        query = query.filter(Category.name == filters["category"])
    if filters.get("site"):
        query = query.filter(Site.name == filters["site"])
    if filters.get("department"):
        query = query.filter(Department.name == filters["department"])

    if search and search.strip():
        term = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Asset.id.ilike(term),
                Asset.name.ilike(term),
                Asset.no_asset.ilike(term),
                Asset.status.ilike(term),
                Asset.serial_no.ilike(term),
                Asset.brand.ilike(term),
                Asset.model.ilike(term),
                Asset.pic.ilike(term),
                Asset.notes.ilike(term),
                Site.name.ilike(term),
                Category.name.ilike(term),
                Department.name.ilike(term),
                Employee.name.ilike(term),
                Employee.employee_id.ilike(term),
                Employee.email.ilike(term),
                Employee.department.ilike(term),
                Employee.position.ilike(term),
            )
        )

    sort_column = Asset.name if (sort or "").lower() == "name" else Asset.date_created
    if (order or "").lower() == "asc":
        query = query.order_by(sort_column.asc(), Asset.id)
    else:
        query = query.order_by(sort_column.desc(), Asset.id)

    return query.paginate(page=page, per_page=per_page, error_out=False)


def check_duplicates(numbers: list) -> list[str]:
    """Return the subset of ``numbers`` already used as asset numbers."""
    if not isinstance(numbers, list):
        raise ValidationError("Invalid request format")
    wanted = [n.strip() for n in numbers if isinstance(n, str) and n.strip()]
    if not wanted:
        return []
    rows = Asset.query.filter(Asset.no_asset.in_(wanted)).with_entities(Asset.no_asset)
    return [row.no_asset for row in rows]


# =========================================================================
# Mutations
# =========================================================================


def _coerce(key: str, kind: str, value):
    """Convert one request value to the column's Python value."""
    if kind == "text":
        return optional_text(value)
    if kind == "raw":
        if isinstance(value, (dict, list)):
            return json.dumps(value)
        return value if value != "" else None
    if kind == "number":
        return parse_float(value, key)
    if kind == "date":
        return parse_datetime(value, key)
    if kind == "status":
        status = optional_text(value)
        if status is not None and status not in ASSET_STATUSES:
            raise ValidationError(
                f"Invalid status '{status}'. Must be one of: "
                + ", ".join(ASSET_STATUSES)
            )
        return status
    if kind == "employee":
        employee_id = optional_text(value)
        if employee_id and db.session.get(Employee, employee_id) is None:
            raise ValidationError("PIC employee not found")
        return employee_id
    # Lookup references.
    lookup_id = optional_text(value)
    if lookup_id and lookup_service.get_by_id(kind, lookup_id) is None:
        raise ValidationError(f"{key} does not reference an existing record")
    return lookup_id


def validate_field(key: str, kind: str, value):
    """
    Validate one value the way asset writes do.

    ``kind`` is ``"status"``, ``"employee"`` or a lookup kind
    (``"sites"``, ``"categories"``, ``"departments"``).

    Raises:
        ValidationError: Unknown status or a dangling reference.
    """
    return _coerce(key, kind, value)


def _apply(asset: Asset, data: dict) -> dict:
    """Apply the recognised keys of ``data``; return the changed values."""
    changed = {}
    for key, (attr, kind) in _ASSET_FIELDS.items():
        if key not in data:
            continue
        value = _coerce(key, kind, data[key])
        if getattr(asset, attr) != value:
            changed[attr] = value
            setattr(asset, attr, value)

    # Keep the PIC display name in step with the linked employee.
    if "pic_id" in changed and asset.pic_id and not optional_text(data.get("pic")):
        employee = db.session.get(Employee, asset.pic_id)
        if employee is not None:
            asset.pic = employee.name
            changed["pic"] = employee.name
    return changed


def create_asset(data: dict, user_id: str | None = None) -> Asset:
    """
    Create an asset.

    When ``noAsset`` is omitted the next number for the given category
    and site is generated.

    Raises:
        ValidationError: Missing name or invalid values.
        ConflictError:   The asset number is already used.
    """
    require_text(data.get("name"), "Asset name", max_length=300)
    no_asset = optional_text(data.get("noAsset"))
    if no_asset is None:
        no_asset = generate_asset_number(
            data.get("categoryId"), data.get("siteId")
        )["assetNumber"]
    if get_asset_by_number(no_asset) is not None:
        raise ConflictError(f'Asset number "{no_asset}" already exists')

    asset = Asset(status="Active")
    _apply(asset, {**data, "noAsset": no_asset})
    if not asset.status:
        asset.status = "Active"
    db.session.add(asset)
    db.session.flush()

    audit_service.log_change(
        user_id=user_id,
        action_type="CREATE",
        entity_type="asset",
        entity_id=asset.id,
        new_value=asset.to_dict(include_relations=False),
    )
    db.session.commit()

    logger.info("Created asset %s (%s)", asset.no_asset, asset.name)
    return asset


def update_asset(asset_id: str, data: dict, user_id: str | None = None) -> Asset:
    """
    Apply a partial update to an asset.

    Raises:
        NotFoundError:   Unknown asset.
        ConflictError:   New asset number already used.
        ValidationError: Invalid values.
    """
    asset = get_asset_by_id(asset_id)
    if asset is None:
        raise NotFoundError("Asset not found")

    if "name" in data:
        require_text(data.get("name"), "Asset name", max_length=300)
    if "noAsset" in data:
        new_number = require_text(data.get("noAsset"), "Asset number", max_length=100)
        other = get_asset_by_number(new_number)
        if other is not None and other.id != asset.id:
            raise ConflictError(f'Asset number "{new_number}" already exists')
    if "status" in data and not optional_text(data.get("status")):
        raise ValidationError("Status cannot be empty")

    previous = asset.to_dict(include_relations=False)
    changed = _apply(asset, data)
    if changed:
        audit_service.log_change(
            user_id=user_id,
            action_type="UPDATE",
            entity_type="asset",
            entity_id=asset.id,
            previous_value={k: previous.get(_camel(k)) for k in changed},
            new_value={k: _jsonable(v) for k, v in changed.items()},
        )
    db.session.commit()
    return asset


def delete_asset(asset_id: str, user_id: str | None = None) -> None:
    """
    Delete an asset together with its check-outs, events, custom
    values and SO entries.

    Raises:
        NotFoundError: Unknown asset.
    """
    asset = get_asset_by_id(asset_id)
    if asset is None:
        raise NotFoundError("Asset not found")
    snapshot = asset.to_dict(include_relations=False)
    db.session.delete(asset)
    audit_service.log_change(
        user_id=user_id,
        action_type="DELETE",
        entity_type="asset",
        entity_id=asset_id,
        previous_value=snapshot,
    )
    db.session.commit()
    logger.info("Deleted asset %s", snapshot["noAsset"])


def bulk_delete(asset_ids: list, user_id: str | None = None) -> int:
    """Delete every listed asset that exists; return the number deleted."""
    if not isinstance(asset_ids, list) or not asset_ids:
        raise ValidationError("ids must be a non-empty list")
    assets = Asset.query.filter(Asset.id.in_([str(i) for i in asset_ids])).all()
    for asset in assets:
        db.session.delete(asset)
    audit_service.log_change(
        user_id=user_id,
        action_type="DELETE",
        entity_type="asset",
        entity_id=None,
        previous_value={"ids": [a.id for a in assets]},
    )
    db.session.commit()
    logger.info("Bulk deleted %d asset(s)", len(assets))
    return len(assets)


# =========================================================================
# Bulk create / import
# =========================================================================


def _clean(value) -> str | None:
    text = optional_text(value)
    return None if text == "?" else text


def build_imported_asset(row: dict, user_id: str | None = None) -> Asset:
    """
    Build (but do not add) an Asset from a loosely typed import row.

    ``row`` uses export keys (``noAsset``, ``serialNo``...).  Lookups
    may be given by id (``siteId``) or by name (``site``); names that
    do not exist yet are created.  ``?`` and blank values mean empty.
    Values are validated before any lookup is created.

    Raises:
        ValidationError: Missing name/number, an unknown status or an
                         unparseable value.
    """
    name = _clean(row.get("name"))
    no_asset = _clean(row.get("noAsset"))
    if not name or not no_asset:
        raise ValidationError(
            f'Missing required fields for asset "{row.get("noAsset") or "?"}"'
        )

    asset = Asset(
        name=name,
        no_asset=no_asset,
        status=_coerce("status", "status", _clean(row.get("status"))) or "Active",
        serial_no=_clean(row.get("serialNo")),
        brand=_clean(row.get("brand")),
        model=_clean(row.get("model")),
        pic=_clean(row.get("pic")),
        notes=_clean(row.get("notes")),
        image_url=_clean(row.get("imageUrl")),
    )

    cost_text = _clean(row.get("cost"))
    if cost_text is not None:
        try:
            asset.cost = parse_float(cost_text, "cost")
        except ValidationError as exc:
            raise ValidationError(
                f'Invalid cost "{cost_text}" (expected numeric value)'
            ) from exc
    asset.purchase_date = parse_loose_date(row.get("purchaseDate"), "date")

    for kind, id_key, name_key, attr in (
        ("sites", "siteId", "site", "site_id"),
        ("categories", "categoryId", "category", "category_id"),
        ("departments", "departmentId", "department", "department_id"),
    ):
        lookup_id = _clean(row.get(id_key))
        if lookup_id and lookup_service.get_by_id(kind, lookup_id) is not None:
            setattr(asset, attr, lookup_id)
            continue
        lookup_name = _clean(row.get(name_key))
        if lookup_name:
            setattr(
                asset, attr, lookup_service.get_or_create(kind, lookup_name, user_id).id
            )

    pic_id = _clean(row.get("picId"))
    if pic_id and db.session.get(Employee, pic_id) is not None:
        asset.pic_id = pic_id
    return asset


def import_assets(rows: list, user_id: str | None = None) -> dict:
    """
    Create assets from import rows, skipping numbers that already exist.

    Returns:
        ``{"imported": int, "skipped": int, "errors": [str]}``.
    """
    if not isinstance(rows, list):
        raise ValidationError("Invalid request format")

    imported = 0
    skipped = 0
    errors: list[str] = []
    seen: set[str] = set()

    for index, row in enumerate(rows, start=1):
        if not isinstance(row, dict):
            skipped += 1
            errors.append(f"Row {index}: invalid row")
            continue
        # Checked before building so skipped rows never create lookups.
        no_asset = _clean(row.get("noAsset"))
        if no_asset and (no_asset in seen or get_asset_by_number(no_asset)):
            skipped += 1
            errors.append(f"Asset number {no_asset} already exists")
            continue
        try:
            asset = build_imported_asset(row, user_id)
        except ValidationError as exc:
            skipped += 1
            errors.append(f"Row {index}: {exc.message}")
            continue
        db.session.add(asset)
        db.session.flush()
        seen.add(asset.no_asset)
        imported += 1

    audit_service.log_change(
        user_id=user_id,
        action_type="IMPORT",
        entity_type="asset",
        entity_id=None,
        new_value={"imported": imported, "skipped": skipped},
    )
    db.session.commit()

    logger.info("Asset import: %d imported, %d skipped", imported, skipped)
    return {"imported": imported, "skipped": skipped, "errors": errors}


def bulk_create(rows: list, user_id: str | None = None) -> dict:
    """
    Create many assets from the bulk-add form.

    Same row rules as the CSV import; the response uses the bulk-add
    vocabulary.

    Returns:
        ``{"successCount": int, "failedCount": int, "errors": [str]}``.
    """
    if not isinstance(rows, list) or not rows:
        raise ValidationError("Assets array is required")
    result = import_assets(rows, user_id=user_id)
    return {
        "successCount": result["imported"],
        "failedCount": result["skipped"],
        "errors": result["errors"],
    }


# -- helpers ---------------------------------------------------------------


def _camel(attr: str) -> str:
    head, *rest = attr.split("_")
    return head + "".join(part.capitalize() for part in rest)


def _jsonable(value):
    return value.isoformat() if hasattr(value, "isoformat") else value
