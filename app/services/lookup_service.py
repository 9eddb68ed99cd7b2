"""
Lookup service: sites, categories and departments.

The three lookup tables share one set of operations, keyed by the
resource name used in URLs (``sites``, ``categories``,
``departments``).  Lists are ordered by ``sort_order`` and then name;
new rows are appended at the end of the order.
"""

import logging

from sqlalchemy import func

from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.extensions import db
from app.models.asset import Asset, AssetCheckout
from app.models.lookup import Category, Department, Site
from app.services import audit_service
from app.services.validation import optional_text, require_text

logger = logging.getLogger(__name__)

LOOKUP_MODELS = {
    "sites": Site,
    "categories": Category,
    "departments": Department,
}

# Column on Asset that references each lookup.
_ASSET_COLUMNS = {
    "sites": Asset.site_id,
    "categories": Asset.category_id,
    "departments": Asset.department_id,
}

# Optional text attributes accepted on create/update, per lookup.
_EXTRA_FIELDS = {
    "sites": {
        "address": "address",
        "city": "city",
        "province": "province",
        "postalCode": "postal_code",
        "country": "country",
        "phone": "phone",
        "email": "email",
    },
    "categories": {"description": "description"},
    "departments": {"description": "description"},
}

_LABELS = {"sites": "Site", "categories": "Category", "departments": "Department"}


def _model(kind: str):
    model = LOOKUP_MODELS.get(kind)
    if model is None:
        raise NotFoundError(f"Unknown lookup '{kind}'")
    return model


def _get_or_404(kind: str, lookup_id: str):
    item = db.session.get(_model(kind), lookup_id)
    if item is None:
        raise NotFoundError(f"{_LABELS[kind]} not found")
    return item


# =========================================================================
# Queries
# =========================================================================


def get_all(kind: str) -> list:
    """Return every row of a lookup in display order."""
    model = _model(kind)
    return model.query.order_by(model.sort_order, model.name).all()


def get_by_id(kind: str, lookup_id: str):
    return db.session.get(_model(kind), lookup_id)


def find_by_name(kind: str, name: str):
    """Case-insensitive lookup by name."""
    model = _model(kind)
    return model.query.filter(func.lower(model.name) == name.strip().lower()).first()


def usage_count(kind: str, lookup_id: str) -> int:
    """Number of assets referencing the lookup row."""
    column = _ASSET_COLUMNS[kind]
    return db.session.query(func.count(Asset.id)).filter(column == lookup_id).scalar()


# =========================================================================
# Mutations
# =========================================================================


def _next_sort_order(model) -> int:
    current_max = db.session.query(func.max(model.sort_order)).scalar()
    return (current_max if current_max is not None else -1) + 1


def create(kind: str, data: dict, user_id: str | None = None, commit: bool = True):
    """
    Create a lookup row appended to the end of the display order.

    Raises:
        ValidationError: Name missing.
        ConflictError:   Name already used.
    """
    model = _model(kind)
    name = require_text(data.get("name"), "Name", max_length=200)
    if find_by_name(kind, name) is not None:
        raise ConflictError(f"{_LABELS[kind]} '{name}' already exists")

    item = model(name=name, sort_order=_next_sort_order(model))
    for key, attr in _EXTRA_FIELDS[kind].items():
        value = optional_text(data.get(key))
        if value is not None:
            setattr(item, attr, value)
    if kind == "sites" and not item.country:
        item.country = "Indonesia"

    db.session.add(item)
    db.session.flush()

    audit_service.log_change(
        user_id=user_id,
        action_type="CREATE",
        entity_type=_LABELS[kind].lower(),
        entity_id=item.id,
        new_value={"name": name},
    )
    if commit:
        db.session.commit()

    logger.info("Created %s: %s", _LABELS[kind].lower(), name)
    return item


def get_or_create(kind: str, name: str, user_id: str | None = None):
    """Return the row named ``name``, creating it (uncommitted) if missing."""
    existing = find_by_name(kind, name)
    if existing is not None:
        return existing
    return create(kind, {"name": name}, user_id=user_id, commit=False)


def update(kind: str, lookup_id: str, data: dict, user_id: str | None = None):
    """
    Update a lookup row's name and optional attributes.

    Raises:
        NotFoundError: Unknown id.
        ConflictError: Name collides with another row.
    """
    item = _get_or_404(kind, lookup_id)
    previous = item.to_dict()

    if "name" in data:
        name = require_text(data.get("name"), "Name", max_length=200)
        other = find_by_name(kind, name)
        if other is not None and other.id != item.id:
            raise ConflictError(f"{_LABELS[kind]} '{name}' already exists")
        item.name = name
    for key, attr in _EXTRA_FIELDS[kind].items():
        if key in data:
            setattr(item, attr, optional_text(data.get(key)))
    if kind == "sites" and not item.country:
        item.country = "Indonesia"

    audit_service.log_change(
        user_id=user_id,
        action_type="UPDATE",
        entity_type=_LABELS[kind].lower(),
        entity_id=item.id,
        previous_value=previous,
        new_value=item.to_dict(),
    )
    db.session.commit()
    return item


def delete(kind: str, lookup_id: str, user_id: str | None = None) -> None:
    """
    Delete a lookup row.

    Raises:
        NotFoundError: Unknown id.
        ConflictError: Assets (or, for departments, check-outs) still
                       reference the row.
    """
    item = _get_or_404(kind, lookup_id)
    in_use = usage_count(kind, lookup_id)
    if in_use:
        raise ConflictError(
            f"Cannot delete {_LABELS[kind].lower()}: it is being used by "
            f"{in_use} asset(s)"
        )
    if kind == "departments" and AssetCheckout.query.filter_by(department_id=lookup_id).count():
        raise ConflictError(
            "Cannot delete department: it appears on check-out records"
        )

    snapshot = item.to_dict()
    db.session.delete(item)
    audit_service.log_change(
        user_id=user_id,
        action_type="DELETE",
        entity_type=_LABELS[kind].lower(),
        entity_id=lookup_id,
        previous_value=snapshot,
    )
    db.session.commit()
    logger.info("Deleted %s: %s", _LABELS[kind].lower(), snapshot["name"])


# =========================================================================
# Ordering
# =========================================================================


def reorder(kind: str, ordered_ids: list, user_id: str | None = None) -> list:
    """
    Apply an explicit display order.

    Ids that do not exist are ignored; rows missing from
    ``ordered_ids`` keep their relative order after the listed ones.
    """
    if not isinstance(ordered_ids, list):
        raise ValidationError("orderedIds must be a list")

    rows = get_all(kind)
    by_id = {row.id: row for row in rows}
    seen: set = set()
    ordered = []
    for lookup_id in ordered_ids:
        row = by_id.get(lookup_id)
        if row is not None and lookup_id not in seen:
            ordered.append(row)
            seen.add(lookup_id)
    ordered.extend(row for row in rows if row.id not in seen)

    for position, row in enumerate(ordered):
        row.sort_order = position

    audit_service.log_change(
        user_id=user_id,
        action_type="UPDATE",
        entity_type=_LABELS[kind].lower(),
        entity_id=None,
        new_value={"order": [row.id for row in ordered]},
    )
    db.session.commit()
    return ordered


def move(kind: str, lookup_id: str, direction: str,
         user_id: str | None = None) -> list[str]:
    """
    Swap a row with its neighbour above (``up``) or below (``down``).

    Returns:
        The ids that swapped places, or an empty list at either end.
    """
    if not lookup_id or direction not in ("up", "down"):
        raise ValidationError("Invalid reorder payload")
    model = _model(kind)
    current = _get_or_404(kind, lookup_id)

    if direction == "up":
        neighbour = (
            model.query.filter(model.sort_order < current.sort_order)
            .order_by(model.sort_order.desc())
            .first()
        )
    else:
        neighbour = (
            model.query.filter(model.sort_order > current.sort_order)
            .order_by(model.sort_order.asc())
            .first()
        )
    if neighbour is None:
        return []

    current.sort_order, neighbour.sort_order = (
        neighbour.sort_order,
        current.sort_order,
    )
    db.session.commit()
    return [current.id, neighbour.id]
