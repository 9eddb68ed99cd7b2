"""
Routes for the backup blueprint.  All routes are admin-only.
"""

from flask import jsonify, request, send_file
from flask_login import current_user, login_required

from app.blueprints.backup import bp
from app.decorators import permission_required
from app.services import backup_service


@bp.route("/export", methods=["GET"])
@login_required
@permission_required("backup.manage")
def export_backup():
    """Download a zip archive of the database and uploaded images."""
    buffer, archive_name = backup_service.export_backup(user_id=current_user.id)
    response = send_file(
        buffer,
        mimetype="application/zip",
        as_attachment=True,
        download_name=archive_name,
    )
    response.headers["Cache-Control"] = "no-store"
    return response


@bp.route("/import", methods=["POST"])
@login_required
@permission_required("backup.manage")
def import_backup():
    """
    Restore from an uploaded archive (form field ``file``).

    Responds 400 for a missing or non-zip upload, 413 above the size
    limit and 500 with each engine's error when every engine failed.
    """
    result = backup_service.import_backup(
        request.files.get("file"), user_id=current_user.id
    )
    return jsonify({"success": True, "message": "Backup restored", **result})


@bp.route("/history", methods=["GET"])
@login_required
@permission_required("backup.manage")
def history():
    return jsonify({"backups": [b.to_dict() for b in backup_service.get_history()]})


@bp.route("/clean", methods=["POST"])
@login_required
@permission_required("backup.manage")
def clean():
    """Delete operational data and non-admin users."""
    deleted = backup_service.clean_data(user_id=current_user.id)
    return jsonify({"success": True, "deleted": deleted})
