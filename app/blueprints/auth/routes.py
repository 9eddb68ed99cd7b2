"""
Routes for the auth blueprint: login, logout and current user.

Login returns a signed bearer token.  Every other API route expects it
in the ``Authorization: Bearer <token>`` header; the application's
Flask-Login request loader turns it back into ``current_user``.
"""

from flask import jsonify, request
from flask_login import current_user, login_required

from app.blueprints.auth import bp
from app.services import auth_service


@bp.route("/login", methods=["POST"])
def login():
    """
    Exchange email and password for a bearer token.

    Returns 400 when either field is missing, 401 for bad credentials
    and 403 for an inactive account.
    """
    data = request.get_json(silent=True) or {}
    user, token = auth_service.login(data.get("email"), data.get("password"))
    return jsonify(
        {
            "message": "Login successful",
            "token": token,
            "user": user.to_dict(),
        }
    )


@bp.route("/me")
@login_required
def me():
    """Return the authenticated user."""
    return jsonify({"user": current_user.to_dict()})


@bp.route("/logout", methods=["POST"])
@login_required
def logout():
    """Record the logout; the client discards its token."""
    auth_service.logout(current_user)
    return jsonify({"message": "Logged out"})
