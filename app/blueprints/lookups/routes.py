"""
Routes for the lookups blueprint.

One set of handlers serves ``/api/sites``, ``/api/categories`` and
``/api/departments``; the resource name selects the table.
"""

from flask import jsonify, request
from flask_login import current_user, login_required

from app.blueprints.lookups import bp
from app.decorators import permission_required
from app.exceptions import NotFoundError
from app.services import lookup_service

_KIND = "<any(sites, categories, departments):kind>"


@bp.route(f"/{_KIND}", methods=["GET"])
@login_required
@permission_required("lookup.view")
def list_lookups(kind):
    """All rows in display order, with how many assets use each."""
    items = []
    for row in lookup_service.get_all(kind):
        data = row.to_dict()
        data["assetCount"] = lookup_service.usage_count(kind, row.id)
        items.append(data)
    return jsonify({kind: items})


@bp.route(f"/{_KIND}/<lookup_id>", methods=["GET"])
@login_required
@permission_required("lookup.view")
def get_lookup(kind, lookup_id):
    item = lookup_service.get_by_id(kind, lookup_id)
    if item is None:
        raise NotFoundError("Not found")
    return jsonify({"item": item.to_dict()})


@bp.route(f"/{_KIND}", methods=["POST"])
@login_required
@permission_required("lookup.manage")
def create_lookup(kind):
    data = request.get_json(silent=True) or {}
    item = lookup_service.create(kind, data, user_id=current_user.id)
    return jsonify({"item": item.to_dict()}), 201


@bp.route(f"/{_KIND}/<lookup_id>", methods=["PUT"])
@login_required
@permission_required("lookup.manage")
def update_lookup(kind, lookup_id):
    data = request.get_json(silent=True) or {}
    item = lookup_service.update(kind, lookup_id, data, user_id=current_user.id)
    return jsonify({"item": item.to_dict()})


@bp.route(f"/{_KIND}/<lookup_id>", methods=["DELETE"])
@login_required
@permission_required("lookup.manage")
def delete_lookup(kind, lookup_id):
    lookup_service.delete(kind, lookup_id, user_id=current_user.id)
    return jsonify({"message": "Deleted successfully"})


@bp.route(f"/{_KIND}", methods=["PATCH"])
@login_required
@permission_required("lookup.manage")
def reorder_lookups(kind):
    """
    Change the display order.

    Body is either ``{"orderedIds": [...]}`` for a full order or
    ``{"id": ..., "direction": "up" | "down"}`` to swap one row with
    its neighbour.
    """
    data = request.get_json(silent=True) or {}
    if "orderedIds" in data:
        rows = lookup_service.reorder(kind, data.get("orderedIds"), user_id=current_user.id)
        return jsonify({kind: [row.to_dict() for row in rows]})
    swapped = lookup_service.move(
        kind, data.get("id"), data.get("direction"), user_id=current_user.id
    )
    return jsonify({"swapped": swapped, "moved": bool(swapped)})
