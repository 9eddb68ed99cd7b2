"""
Routes for the stock-opname blueprint.

Any role may view sessions and entries.  Scanning and editing entries
need ``so.scan`` / ``so.edit_entry``; creating, completing, cancelling
and deleting sessions are admin-only (``so.manage``).
"""

from flask import jsonify, request
from flask_login import current_user, login_required

from app.blueprints.so_sessions import bp
from app.decorators import permission_required
from app.services import so_session_service
from app.services.validation import pagination_meta, parse_int


def _page_args(default_limit: int = 10) -> tuple[int, int]:
    page = parse_int(request.args.get("page"), 1, minimum=1)
    limit = parse_int(request.args.get("limit"), default_limit, minimum=1, maximum=200)
    return page, limit


# =========================================================================
# Sessions
# =========================================================================


@bp.route("", methods=["GET"])
@login_required
@permission_required("so.view")
def list_sessions():
    sessions = so_session_service.list_sessions(status=request.args.get("status"))
    return jsonify({"sessions": sessions})


@bp.route("", methods=["POST"])
@login_required
@permission_required("so.manage")
def create_session():
    data = request.get_json(silent=True) or {}
    session = so_session_service.create_session(data, user_id=current_user.id)
    return jsonify({"session": session.to_dict()}), 201


@bp.route("/<session_id>", methods=["GET"])
@login_required
@permission_required("so.view")
def get_session(session_id):
    """Session with scanned/verified counts and completion rate."""
    return jsonify({"session": so_session_service.get_session_with_stats(session_id)})


@bp.route("/<session_id>", methods=["PUT"])
@login_required
@permission_required("so.manage")
def update_session(session_id):
    data = request.get_json(silent=True) or {}
    session = so_session_service.update_session(session_id, data, user_id=current_user.id)
    return jsonify({"session": session.to_dict()})


@bp.route("/<session_id>", methods=["DELETE"])
@login_required
@permission_required("so.manage")
def delete_session(session_id):
    so_session_service.delete_session(session_id, user_id=current_user.id)
    return jsonify({"message": "SO Session deleted"})


@bp.route("/<session_id>/complete", methods=["POST"])
@login_required
@permission_required("so.manage")
def complete_session(session_id):
    """Write identified entries back to their assets and close the session."""
    data = request.get_json(silent=True) or {}
    result = so_session_service.complete_session(
        session_id, data.get("completionNotes"), user_id=current_user.id
    )
    return jsonify({"message": "SO Session completed", **result})


@bp.route("/<session_id>/cancel", methods=["POST"])
@login_required
@permission_required("so.manage")
def cancel_session(session_id):
    """Discard every entry and close the session without touching assets."""
    result = so_session_service.cancel_session(session_id, user_id=current_user.id)
    return jsonify({"message": "SO Session cancelled", **result})


@bp.route("/<session_id>/notes", methods=["GET"])
@login_required
@permission_required("so.view")
def get_notes(session_id):
    return jsonify({"notes": so_session_service.get_notes(session_id)})


@bp.route("/<session_id>/notes", methods=["PUT"])
@login_required
@permission_required("so.edit_entry")
def update_notes(session_id):
    data = request.get_json(silent=True) or {}
    notes = data.get("notes") if isinstance(data.get("notes"), str) else data.get("description")
    saved = so_session_service.update_notes(session_id, notes, user_id=current_user.id)
    return jsonify({"notes": saved})


# =========================================================================
# Scanning and entries
# =========================================================================


@bp.route("/<session_id>/scan", methods=["POST"])
@login_required
@permission_required("so.scan")
def scan(session_id):
    """
    Record an asset (``assetId`` or ``noAsset``) as seen.

    A repeat scan answers 200 with ``success: false`` and the existing
    entry.
    """
    data = request.get_json(silent=True) or {}
    result = so_session_service.scan_asset(
        session_id,
        asset_id=data.get("assetId"),
        no_asset=data.get("noAsset"),
        actor=current_user,
    )
    return jsonify(result)


@bp.route("/<session_id>/entries", methods=["GET"])
@login_required
@permission_required("so.view")
def list_entries(session_id):
    page, limit = _page_args()
    session, pagination = so_session_service.get_entries(
        session_id,
        page=page,
        per_page=limit,
        status=request.args.get("status"),
        search=request.args.get("search"),
    )
    meta = pagination_meta(pagination)
    meta["hasNext"] = pagination.has_next
    meta["hasPrev"] = pagination.has_prev
    return jsonify(
        {
            "entries": [entry.to_dict() for entry in pagination.items],
            "pagination": meta,
            "session": session.to_dict(),
        }
    )


@bp.route("/<session_id>/entries/<entry_id>", methods=["GET"])
@login_required
@permission_required("so.view")
def get_entry(session_id, entry_id):
    session, entry = so_session_service.get_entry(session_id, entry_id)
    return jsonify({"entry": entry.to_dict(), "session": session.to_dict()})


@bp.route("/<session_id>/entries/<entry_id>", methods=["PUT"])
@login_required
@permission_required("so.edit_entry")
def update_entry(session_id, entry_id):
    data = request.get_json(silent=True) or {}
    entry = so_session_service.update_entry(session_id, entry_id, data, actor=current_user)
    return jsonify({"entry": entry.to_dict()})


@bp.route("/<session_id>/unidentified-assets", methods=["GET"])
@login_required
@permission_required("so.view")
def unidentified_assets(session_id):
    """Assets not yet scanned in the session."""
    page, limit = _page_args()
    pagination = so_session_service.get_unidentified_assets(
        session_id, page=page, per_page=limit, search=request.args.get("search")
    )
    return jsonify(
        {
            "assets": [asset.to_dict() for asset in pagination.items],
            "pagination": pagination_meta(pagination),
        }
    )
