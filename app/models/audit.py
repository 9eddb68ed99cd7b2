"""
Audit trail and backup bookkeeping models.

``AuditLog`` records every data change, login and logout in the
``logs`` table.  ``BackupRecord`` records each backup archive the
application produced.
"""

import json

from app.extensions import db
from app.models.mixins import generate_id, iso, utcnow


class AuditLog(db.Model):
    """
    One audit entry.

    ``message`` is a short human-readable summary
    (``"UPDATE asset:<id>"``); ``data`` is a JSON document with the
    action, entity and the previous/new values:

      - CREATE: ``previous`` is absent, ``new`` has the full record.
      - UPDATE: both contain only the changed fields.
      - DELETE: ``previous`` has the full record, ``new`` is absent.
    """

    __tablename__ = "logs"

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    level = db.Column(db.String(20), nullable=False, default="INFO")
    message = db.Column(db.String(500), nullable=False)
    data = db.Column(db.Text, nullable=True)
    user_id = db.Column(db.String(36), nullable=True, index=True)
    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)
    created_at = db.Column(
        db.DateTime, nullable=False, default=utcnow, server_default=db.func.now()
    )
    updated_at = db.Column(
        db.DateTime,
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=db.func.now(),
    )

    def to_dict(self) -> dict:
        try:
            data = json.loads(self.data) if self.data else None
        except ValueError:
            data = self.data
        return {
            "id": self.id,
            "level": self.level,
            "message": self.message,
            "data": data,
            "userId": self.user_id,
            "ipAddress": self.ip_address,
            "userAgent": self.user_agent,
            "createdAt": iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<AuditLog {self.level} {self.message}>"


class BackupRecord(db.Model):
    """
    A backup archive produced by the export endpoint or CLI.

    ``status`` values: completed, failed.
    """

    __tablename__ = "backups"

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    name = db.Column(db.String(200), nullable=False)
    file_path = db.Column(db.String(500), nullable=True)
    file_size = db.Column(db.BigInteger, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="completed")
    created_by = db.Column(db.String(36), nullable=True)
    created_at = db.Column(
        db.DateTime, nullable=False, default=utcnow, server_default=db.func.now()
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "filePath": self.file_path,
            "fileSize": self.file_size,
            "status": self.status,
            "createdBy": self.created_by,
            "createdAt": iso(self.created_at),
        }

    def __repr__(self) -> str:
        return f"<BackupRecord {self.name} {self.status}>"
