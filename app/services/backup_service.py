"""
Backup service: export the database to a zip archive, restore it from
one, and wipe operational data.

Archive layout::

    database.json   {table: [row, ...], ...}
    metadata.json   exportedAt, version, restoreOrder, tableCounts,
                    images.manifest, database checksum ...
    uploads/        asset images referenced by ``assets.image_url``

Restores try each configured engine in preference order and fall back
to the next one only when an engine fails as a whole.
"""

import hashlib
import io
import json
import logging
import os
import shutil
import tempfile
import zipfile
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import select

from app.exceptions import BackupRestoreError, UploadTooLargeError, ValidationError
from app.extensions import db
from app.models.asset import Asset
from app.models.audit import BackupRecord
from app.models.mixins import iso
from app.models.user import ROLE_ADMIN, User
from app.services import audit_service, auth_service, backup_transforms, table_store_client
from app.services.backup_engines import RemoteRestoreEngine, SqlRestoreEngine

logger = logging.getLogger(__name__)

DATABASE_FILE = "database.json"
METADATA_FILE = "metadata.json"
UPLOADS_DIR = "uploads"

# Tables wiped by clean_data(), children first.  Users are handled
# separately so admin accounts survive.
_CLEAN_ORDER = (
    "so_asset_entries",
    "so_sessions",
    "asset_events",
    "asset_checkouts",
    "asset_custom_values",
    "asset_custom_fields",
    "assets",
    "employees",
    "logs",
    "backups",
)


# =========================================================================
# Export
# =========================================================================


def _dump_table(table) -> list[dict]:
    rows = db.session.execute(table.select()).mappings().all()
    return [
        {key: iso(value) if isinstance(value, datetime) else value for key, value in row.items()}
        for row in rows
    ]


def _image_file_name(image_url: str | None) -> str | None:
    """File name of a locally stored upload (``/uploads/x.jpg`` -> ``x.jpg``)."""
    if not image_url or "://" in image_url:
        return None
    name = os.path.basename(image_url.split("?", 1)[0])
    return name or None


def build_export() -> tuple[io.BytesIO, str, dict]:
    """
    Build a backup archive in memory.

    Returns:
        ``(buffer, archive_name, metadata)``.
    """
    now = datetime.now(timezone.utc)
    stamp = now.isoformat().replace(":", "-").replace(".", "-").replace("+", "-")
    archive_name = f"assetso-backup-{stamp}.zip"

    tables = db.metadata.tables
    dump: dict[str, list[dict]] = {}
    table_counts: dict[str, int] = {}
    for name in backup_transforms.DEFAULT_RESTORE_ORDER:
        if name not in tables:
            continue
        rows = _dump_table(tables[name])
        dump[name] = rows
        table_counts[name] = len(rows)

    upload_folder = current_app.config["UPLOAD_FOLDER"]
    manifest = []
    for asset in Asset.query.filter(Asset.image_url.isnot(None)).all():
        file_name = _image_file_name(asset.image_url)
        if file_name and os.path.isfile(os.path.join(upload_folder, file_name)):
            manifest.append(
                {
                    "assetId": asset.id,
                    "fileName": file_name,
                    "relativePath": f"{UPLOADS_DIR}/{file_name}",
                }
            )

    database_json = json.dumps(dump, indent=2, default=str)
    metadata = {
        "name": archive_name[:-4],
        "exportedAt": now.isoformat(),
        "version": current_app.config.get("APP_VERSION"),
        "description": "AssetSO database backup",
        "restoreOrder": list(dump.keys()),
        "tableCounts": table_counts,
        "totalRecords": sum(table_counts.values()),
        "database": {
            "fileSizeBytes": len(database_json.encode("utf-8")),
            "checksumSha256": hashlib.sha256(database_json.encode("utf-8")).hexdigest(),
        },
        "images": {"count": len(manifest), "manifest": manifest},
    }

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        archive.writestr(DATABASE_FILE, database_json)
        archive.writestr(METADATA_FILE, json.dumps(metadata, indent=2))
        for image in manifest:
            archive.write(
                os.path.join(upload_folder, image["fileName"]), image["relativePath"]
            )
    buffer.seek(0)

    logger.info(
        "Built backup %s: %d records, %d images",
        archive_name,
        metadata["totalRecords"],
        len(manifest),
    )
    return buffer, archive_name, metadata


def export_backup(user_id: str | None = None) -> tuple[io.BytesIO, str]:
    """Build an archive and record it in the ``backups`` table."""
    buffer, archive_name, metadata = build_export()
    record = BackupRecord(
        name=archive_name,
        file_size=buffer.getbuffer().nbytes,
        status="completed",
        created_by=user_id,
    )
    db.session.add(record)
    audit_service.log_change(
        user_id=user_id,
        action_type="EXPORT",
        entity_type="backup",
        entity_id=None,
        new_value={"name": archive_name, "totalRecords": metadata["totalRecords"]},
    )
    db.session.commit()
    return buffer, archive_name


def get_history(limit: int = 50) -> list[BackupRecord]:
    return BackupRecord.query.order_by(BackupRecord.created_at.desc()).limit(limit).all()


# =========================================================================
# Import
# =========================================================================


def _engines() -> list:
    """Configured restore engines in preference order."""
    config = current_app.config
    engines: list = [SqlRestoreEngine()]
    if table_store_client.is_configured(config):
        remote = RemoteRestoreEngine(batch_size=config.get("BACKUP_INSERT_BATCH_SIZE", 200))
        if config.get("BACKUP_PREFERRED_ENGINE", "sql").lower() == "remote":
            engines.insert(0, remote)
        else:
            engines.append(remote)
    return engines


def restore_dump(dump: dict, metadata: dict, engines: list | None = None) -> dict:
    """
    Restore a parsed dump, falling back across engines.

    Returns:
        ``{"importedTables", "totalRestored", "engine", "engineErrors"}``.

    Raises:
        ValidationError:    ``dump`` is not a table mapping.
        BackupRestoreError: Every engine failed.
    """
    if not isinstance(dump, dict):
        raise ValidationError("database.json must contain an object of tables")
    metadata = metadata if isinstance(metadata, dict) else {}
    order = backup_transforms.resolve_restore_order(metadata.get("restoreOrder"), dump)
    engines = engines if engines is not None else _engines()

    errors: dict[str, str] = {}
    for engine in engines:
        try:
            imported = engine.restore(order, dump)
        except Exception as exc:
            message = getattr(exc, "message", None) or str(exc)
            logger.error("Backup restore with %s engine failed: %s", engine.name, message)
            errors[engine.name] = message
            continue

        logger.info(
            "Backup restored with %s engine: %d rows",
            engine.name,
            sum(imported.values()),
        )
        return {
            "importedTables": imported,
            "totalRestored": sum(imported.values()),
            "engine": engine.name,
            "engineErrors": [f"{name}: {msg}" for name, msg in errors.items()],
        }

    combined = "; ".join(f"{name}: {msg}" for name, msg in errors.items())
    raise BackupRestoreError(f"All restore engines failed: {combined}", engine_errors=errors)


def _find_working_dir(root: str) -> str:
    """Directory holding database.json: the root or one level below."""
    if os.path.isfile(os.path.join(root, DATABASE_FILE)):
        return root
    for entry in sorted(os.listdir(root)):
        candidate = os.path.join(root, entry)
        if os.path.isdir(candidate) and os.path.isfile(os.path.join(candidate, DATABASE_FILE)):
            return candidate
    raise ValidationError("Could not find database.json in extracted archive")


def _read_json(path: str):
    name = os.path.basename(path)
    if not os.path.isfile(path):
        raise ValidationError(f"Backup archive is missing {name}")
    try:
        with open(path, encoding="utf-8") as handle:
            return json.load(handle)
    except (OSError, ValueError) as exc:
        raise ValidationError(f"Invalid JSON file: {name}") from exc


def _safe_extract(archive: zipfile.ZipFile, destination: str) -> None:
    root = os.path.realpath(destination)
    for member in archive.infolist():
        target = os.path.realpath(os.path.join(root, member.filename))
        if target != root and not target.startswith(root + os.sep):
            raise ValidationError(f"Unsafe path in archive: {member.filename}")
    archive.extractall(root)


def restore_images(working_dir: str, metadata: dict) -> dict:
    """Copy manifest images from the extracted archive into UPLOAD_FOLDER."""
    manifest = ((metadata or {}).get("images") or {}).get("manifest") or []
    restored = failed = 0
    if not manifest:
        return {"restored": 0, "failed": 0}

    upload_folder = current_app.config["UPLOAD_FOLDER"]
    os.makedirs(upload_folder, exist_ok=True)
    for image in manifest:
        file_name = os.path.basename(str((image or {}).get("fileName") or ""))
        if not file_name:
            failed += 1
            continue
        relative = str(image.get("relativePath") or "")
        candidates = [
            os.path.join(working_dir, relative) if relative else None,
            os.path.join(working_dir, UPLOADS_DIR, file_name),
            os.path.join(working_dir, file_name),
        ]
        source = next((p for p in candidates if p and os.path.isfile(p)), None)
        if source is None:
            logger.warning("Backup image missing: %s", relative or file_name)
            failed += 1
            continue
        try:
            shutil.copyfile(source, os.path.join(upload_folder, file_name))
            restored += 1
        except OSError as exc:
            logger.error("Failed to restore image %s: %s", file_name, exc)
            failed += 1
    return {"restored": restored, "failed": failed}


def restore_archive(archive_path: str, user_id: str | None = None,
                    engines: list | None = None) -> dict:
    """
    Restore from a zip archive on disk.

    The archive is extracted to a temporary directory that is always
    removed afterwards.
    """
    temp_dir = tempfile.mkdtemp(prefix="assetso-restore-")
    try:
        try:
            with zipfile.ZipFile(archive_path) as archive:
                _safe_extract(archive, temp_dir)
        except zipfile.BadZipFile as exc:
            raise ValidationError("Uploaded file is not a valid zip archive") from exc

        working_dir = _find_working_dir(temp_dir)
        dump = _read_json(os.path.join(working_dir, DATABASE_FILE))
        metadata = _read_json(os.path.join(working_dir, METADATA_FILE))

        result = restore_dump(dump, metadata, engines=engines)
        images = restore_images(working_dir, metadata)

        meta = metadata if isinstance(metadata, dict) else {}
        result.update(
            {
                "imagesRestored": images["restored"],
                "imagesFailed": images["failed"],
                "metadata": {
                    "exportedAt": meta.get("exportedAt"),
                    "version": meta.get("version") or meta.get("appVersion"),
                    "description": meta.get("description") or meta.get("notes"),
                },
            }
        )

        audit_service.log_change(
            user_id=user_id if _user_exists(user_id) else None,
            action_type="RESTORE",
            entity_type="backup",
            entity_id=None,
            new_value={"engine": result["engine"], "totalRestored": result["totalRestored"]},
        )
        db.session.commit()
        return result
    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)


def import_backup(file_storage, user_id: str | None = None,
                  engines: list | None = None) -> dict:
    """
    Restore from an uploaded zip file (``file`` form field).

    Raises:
        ValidationError:     No file, or not a ``.zip``.
        UploadTooLargeError: Larger than ``BACKUP_MAX_UPLOAD_BYTES``.
        BackupRestoreError:  Every engine failed.
    """
    if file_storage is None or not file_storage.filename:
        raise ValidationError("No backup file uploaded")
    if not file_storage.filename.lower().endswith(".zip"):
        raise ValidationError("Backup file must be a .zip archive")

    limit = current_app.config["BACKUP_MAX_UPLOAD_BYTES"]
    handle, archive_path = tempfile.mkstemp(suffix=".zip", prefix="assetso-upload-")
    try:
        with os.fdopen(handle, "wb") as out:
            size = 0
            while True:
                chunk = file_storage.stream.read(1024 * 1024)
                if not chunk:
                    break
                size += len(chunk)
                if size > limit:
                    raise UploadTooLargeError(
                        f"Backup file exceeds the {limit // (1024 * 1024)} MB limit"
                    )
                out.write(chunk)
        logger.info("Restoring backup upload %s (%d bytes)", file_storage.filename, size)
        return restore_archive(archive_path, user_id=user_id, engines=engines)
    finally:
        if os.path.exists(archive_path):
            os.remove(archive_path)


def _user_exists(user_id: str | None) -> bool:
    return bool(user_id) and db.session.get(User, user_id) is not None


# =========================================================================
# Clean
# =========================================================================


def clean_data(user_id: str | None = None) -> dict[str, int]:
    """
    Delete all operational data and non-admin users in one transaction,
    then make sure the default admin exists.

    Returns:
        Deleted row counts per table.
    """
    tables = db.metadata.tables
    results: dict[str, int] = {}
    try:
        for name in _CLEAN_ORDER:
            results[name] = db.session.execute(tables[name].delete()).rowcount or 0
        users = tables["users"]
        non_admin_ids = select(users.c.id).where(users.c.role != ROLE_ADMIN)
        db.session.execute(
            users.update()
            .where(users.c.created_by.in_(non_admin_ids))
            .values(created_by=None)
        )
        results["users"] = (
            db.session.execute(users.delete().where(users.c.role != ROLE_ADMIN)).rowcount
            or 0
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    auth_service.ensure_default_admin()
    audit_service.log_change(
        user_id=user_id if _user_exists(user_id) else None,
        action_type="DELETE",
        entity_type="backup",
        entity_id=None,
        new_value={"cleaned": results},
        level="WARNING",
    )
    db.session.commit()
    logger.warning("Cleaned application data: %s", results)
    return results
