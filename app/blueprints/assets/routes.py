"""
Routes for the assets blueprint.

Viewing requires ``asset.view``; creating and editing ``asset.create``
/ ``asset.edit``; deletion and file import are admin-only.
"""

from flask import jsonify, request, send_file
from flask_login import current_user, login_required

from app.blueprints.assets import bp
from app.decorators import permission_required
from app.exceptions import NotFoundError, ValidationError
from app.models.asset import Asset
from app.services import (
    asset_event_service,
    asset_service,
    export_service,
    import_service,
)
from app.services.validation import pagination_meta, parse_int

_FILTER_KEYS = (
    "picId",
    "categoryId",
    "siteId",
    "departmentId",
    "status",
    "category",
    "site",
    "department",
)


def _get_or_404(asset_id: str) -> Asset:
    asset = asset_service.get_asset_by_id(asset_id)
    if asset is None:
        raise NotFoundError("Asset not found")
    return asset


# =========================================================================
# Listing and lookup
# =========================================================================


@bp.route("", methods=["GET"])
@login_required
@permission_required("asset.view")
def list_assets():
    """Paginated asset list with filters, search and sorting."""
    page = parse_int(request.args.get("page"), 1, minimum=1)
    limit = parse_int(request.args.get("limit"), 10, minimum=1, maximum=200)
    filters = {
        key: request.args.get(key)
        for key in _FILTER_KEYS
        if request.args.get(key) and request.args.get(key) != "all"
    }
    pagination = asset_service.get_assets(
        page=page,
        per_page=limit,
        filters=filters,
        search=request.args.get("search"),
        sort=request.args.get("sortBy", request.args.get("sort", "dateCreated")),
        order=request.args.get("sortOrder", request.args.get("order", "desc")),
    )
    return jsonify(
        {
            "assets": [asset.to_dict() for asset in pagination.items],
            "pagination": pagination_meta(pagination),
        }
    )


@bp.route("/statuses")
@login_required
@permission_required("asset.view")
def statuses():
    return jsonify({"statuses": asset_service.get_statuses()})


@bp.route("/generate-number")
@login_required
@permission_required("asset.view")
def generate_number():
    """Next free asset number for ``categoryId`` and ``siteId``."""
    return jsonify(
        asset_service.generate_asset_number(
            request.args.get("categoryId"), request.args.get("siteId")
        )
    )


@bp.route("/by-number")
@login_required
@permission_required("asset.view")
def by_number():
    no_asset = (request.args.get("noAsset") or "").strip()
    if not no_asset:
        raise ValidationError("noAsset is required")
    asset = asset_service.get_asset_by_number(no_asset)
    if asset is None:
        raise NotFoundError("Asset not found")
    return jsonify({"asset": asset.to_dict()})


@bp.route("/check-duplicates", methods=["POST"])
@login_required
@permission_required("asset.view")
def check_duplicates():
    """Report which of the posted asset numbers already exist."""
    data = request.get_json(silent=True) or {}
    numbers = data.get("noAssets", data.get("assetNumbers"))
    duplicates = asset_service.check_duplicates(numbers)
    return jsonify({"duplicates": duplicates, "hasDuplicates": bool(duplicates)})


@bp.route("/<asset_id>", methods=["GET"])
@login_required
@permission_required("asset.view")
def get_asset(asset_id):
    return jsonify({"asset": _get_or_404(asset_id).to_dict()})


@bp.route("/<asset_id>/history")
@login_required
@permission_required("asset.view")
def history(asset_id):
    """Timeline of check-outs, check-ins and SO updates for the asset."""
    _get_or_404(asset_id)
    limit = parse_int(request.args.get("limit"), 50, minimum=1, maximum=200)
    items = asset_event_service.get_history(
        asset_id, event_type=request.args.get("type") or None, limit=limit
    )
    return jsonify({"history": items})


# =========================================================================
# Mutations
# =========================================================================


@bp.route("", methods=["POST"])
@login_required
@permission_required("asset.create")
def create_asset():
    data = request.get_json(silent=True) or {}
    asset = asset_service.create_asset(data, user_id=current_user.id)
    return jsonify({"asset": asset.to_dict()}), 201


@bp.route("/bulk", methods=["POST"])
@login_required
@permission_required("asset.create")
def bulk_create():
    """Create many assets from the bulk-add form."""
    data = request.get_json(silent=True) or {}
    result = asset_service.bulk_create(data.get("assets"), user_id=current_user.id)
    return jsonify(result), 201 if result["successCount"] else 200


@bp.route("/<asset_id>", methods=["PUT", "PATCH"])
@login_required
@permission_required("asset.edit")
def update_asset(asset_id):
    data = request.get_json(silent=True) or {}
    asset = asset_service.update_asset(asset_id, data, user_id=current_user.id)
    return jsonify({"asset": asset.to_dict()})


@bp.route("/<asset_id>", methods=["DELETE"])
@login_required
@permission_required("asset.delete")
def delete_asset(asset_id):
    asset_service.delete_asset(asset_id, user_id=current_user.id)
    return jsonify({"message": "Asset deleted successfully"})


@bp.route("/bulk-delete", methods=["POST"])
@login_required
@permission_required("asset.delete")
def bulk_delete():
    data = request.get_json(silent=True) or {}
    deleted = asset_service.bulk_delete(data.get("ids"), user_id=current_user.id)
    return jsonify({"deleted": deleted})


# =========================================================================
# Import / export
# =========================================================================


@bp.route("/export")
@login_required
@permission_required("asset.view")
def export_assets():
    """Download every asset as CSV, or as Excel with ``?format=xlsx``."""
    assets = Asset.query.order_by(Asset.no_asset).all()
    if (request.args.get("format") or "").lower() == "xlsx":
        buffer = export_service.export_assets_excel(assets)
        return send_file(
            buffer,
            mimetype="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            as_attachment=True,
            download_name="assets.xlsx",
        )
    buffer = export_service.export_assets_csv(assets)
    return send_file(
        buffer,
        mimetype="text/csv",
        as_attachment=True,
        download_name="assets.csv",
    )


@bp.route("/import", methods=["POST"])
@login_required
@permission_required("asset.import")
def import_assets():
    """
    Import assets from a CSV upload (``file``) or JSON ``{"assets": [...]}``.

    Existing asset numbers are skipped and reported.
    """
    if "file" in request.files:
        rows = import_service.parse_asset_csv(
            import_service.read_text(request.files["file"])
        )
    else:
        data = request.get_json(silent=True) or {}
        rows = data.get("assets")
    result = asset_service.import_assets(rows, user_id=current_user.id)
    return jsonify(result)
