"""
Routes for the main blueprint: health check, dashboard and uploads.
"""

from flask import current_app, jsonify, send_from_directory
from flask_login import login_required
from sqlalchemy import text

from app.blueprints.main import bp
from app.decorators import permission_required
from app.extensions import db
from app.services import dashboard_service


@bp.route("/api/dashboard")
@login_required
@permission_required("asset.view")
def dashboard():
    """Summary figures: totals, breakdowns, active session, recent assets."""
    return jsonify(dashboard_service.get_summary())


@bp.route("/uploads/<path:filename>")
@login_required
def uploaded_file(filename):
    """Serve an uploaded asset image."""
    return send_from_directory(current_app.config["UPLOAD_FOLDER"], filename)


@bp.route("/health")
def health_check():
    """
    Health check endpoint for monitoring and load balancers.

    Returns 200 if the app is running and can reach the database.
    """
    try:
        db.session.execute(text("SELECT 1"))
        return {"status": "healthy", "database": "connected"}, 200
    except Exception as exc:  # pylint: disable=broad-except
        return {"status": "unhealthy", "database": str(exc)}, 503
