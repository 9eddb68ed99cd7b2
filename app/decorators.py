"""
Authorization decorators for route-level access control.

These decorators enforce role checks on blueprint routes.  They are
used in combination with Flask-Login's ``@login_required``:

    @bp.route('/api/admin/users', methods=['POST'])
    @login_required
    @role_required('ADMIN')
    def create_user():
        ...

    @bp.route('/api/so-sessions/<id>/scan', methods=['POST'])
    @login_required
    @permission_required('so.scan')
    def scan(id):
        ...
"""

import logging
from functools import wraps

from flask import jsonify, request
from flask_login import current_user

logger = logging.getLogger(__name__)


def _deny(message: str):
    return jsonify({"error": message}), 403


def role_required(*role_names: str):
    """
    Decorator that restricts access to users with one of the specified roles.

    Args:
        role_names: One or more role names (``ADMIN``, ``SO_ASSET_USER``,
                    ``VIEWER``).
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            if not current_user.is_authenticated:
                return jsonify({"error": "Authentication required"}), 401
            if current_user.role not in role_names:
                logger.warning(
                    "Access denied: user %s (%s) with role '%s' "
                    "attempted %s %s (requires one of: %s)",
                    current_user.id,
                    current_user.email,
                    current_user.role,
                    request.method,
                    request.path,
                    ", ".join(role_names),
                )
                return _deny("Insufficient permissions")
            return func(*args, **kwargs)

        return wrapper

    return decorator


def permission_required(permission_name: str):
    """
    Decorator that restricts access to users whose role grants
    the specified permission (see ``ROLE_PERMISSIONS``).

    Args:
        permission_name: Dotted permission string (e.g., 'asset.create').
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            if not current_user.is_authenticated:
                return jsonify({"error": "Authentication required"}), 401
            if not current_user.has_permission(permission_name):
                logger.warning(
                    "Access denied: user %s (%s) lacks permission '%s' for %s %s",
                    current_user.id,
                    current_user.email,
                    permission_name,
                    request.method,
                    request.path,
                )
                return _deny("Insufficient permissions")
            return func(*args, **kwargs)

        return wrapper

    return decorator
