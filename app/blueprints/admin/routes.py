"""
Routes for the admin blueprint: user management, SO session
administration and the audit log.

All routes require the ``ADMIN`` role.
"""

from flask import jsonify, request
from flask_login import current_user, login_required

from app.blueprints.admin import bp
from app.decorators import role_required
from app.exceptions import NotFoundError
from app.models.user import ROLE_ADMIN
from app.services import audit_service, so_session_service, user_service
from app.services.validation import pagination_meta, parse_datetime, parse_int


# =========================================================================
# User Management
# =========================================================================


@bp.route("/users", methods=["GET"])
@login_required
@role_required(ROLE_ADMIN)
def list_users():
    """Paginated users, newest first; ``search`` and ``role`` filter."""
    page = parse_int(request.args.get("page"), 1, minimum=1)
    limit = parse_int(request.args.get("limit"), 10, minimum=1, maximum=100)
    pagination = user_service.get_all_users(
        page=page,
        per_page=limit,
        search=request.args.get("search"),
        role=request.args.get("role"),
    )
    return jsonify(
        {
            "users": [user.to_dict() for user in pagination.items],
            "pagination": pagination_meta(pagination),
        }
    )


@bp.route("/users", methods=["POST"])
@login_required
@role_required(ROLE_ADMIN)
def create_user():
    data = request.get_json(silent=True) or {}
    user = user_service.create_user(
        email=data.get("email"),
        name=data.get("name"),
        password=data.get("password"),
        role=data.get("role"),
        created_by=current_user.id,
    )
    return jsonify({"user": user.to_dict()}), 201


@bp.route("/users/<user_id>", methods=["GET"])
@login_required
@role_required(ROLE_ADMIN)
def get_user(user_id):
    user = user_service.get_user_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return jsonify({"user": user.to_dict()})


@bp.route("/users/<user_id>", methods=["PUT"])
@login_required
@role_required(ROLE_ADMIN)
def update_user(user_id):
    data = request.get_json(silent=True) or {}
    user = user_service.update_user(user_id, data, changed_by=current_user.id)
    return jsonify({"user": user.to_dict()})


@bp.route("/users/<user_id>", methods=["DELETE"])
@login_required
@role_required(ROLE_ADMIN)
def delete_user(user_id):
    user_service.delete_user(user_id, deleted_by=current_user.id)
    return jsonify({"message": "User deleted successfully"})


# =========================================================================
# SO Session administration
# =========================================================================


@bp.route("/sessions", methods=["GET"])
@login_required
@role_required(ROLE_ADMIN)
def list_sessions():
    sessions = so_session_service.list_sessions(status=request.args.get("status"))
    return jsonify({"sessions": sessions})


@bp.route("/sessions/<session_id>", methods=["PUT"])
@login_required
@role_required(ROLE_ADMIN)
def session_action(session_id):
    """Apply ``action`` (cancel, complete or update) to a session."""
    data = request.get_json(silent=True) or {}
    result = so_session_service.admin_action(session_id, data, user_id=current_user.id)
    return jsonify(result)


@bp.route("/sessions/<session_id>", methods=["DELETE"])
@login_required
@role_required(ROLE_ADMIN)
def delete_session(session_id):
    so_session_service.delete_session(session_id, user_id=current_user.id)
    return jsonify({"message": "SO Session deleted"})


# =========================================================================
# Audit Log
# =========================================================================


@bp.route("/logs", methods=["GET"])
@login_required
@role_required(ROLE_ADMIN)
def audit_logs():
    """
    Paginated audit log with filters: ``userId``, ``level``, ``search``,
    ``startDate`` and ``endDate``.
    """
    page = parse_int(request.args.get("page"), 1, minimum=1)
    limit = parse_int(request.args.get("limit"), 50, minimum=1, maximum=200)
    pagination = audit_service.get_audit_logs(
        page=page,
        per_page=limit,
        user_id=request.args.get("userId") or None,
        level=request.args.get("level") or None,
        search=request.args.get("search") or None,
        start_date=parse_datetime(request.args.get("startDate"), "startDate"),
        end_date=parse_datetime(request.args.get("endDate"), "endDate"),
    )
    return jsonify(
        {
            "logs": [entry.to_dict() for entry in pagination.items],
            "pagination": pagination_meta(pagination),
        }
    )
