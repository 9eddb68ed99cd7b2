"""
Application user model and the role/permission matrix.

Users authenticate with email and password and receive a bearer token.
Three fixed roles exist:

  - ``ADMIN``: everything, including users, lookups and backups.
  - ``SO_ASSET_USER``: create/edit assets, scan and edit SO entries,
    check assets out and in.
  - ``VIEWER``: read-only.

Routes check permissions (e.g., ``asset.create``), not role names, via
``@permission_required``.  The matrix below is the single place that
maps roles to permissions.
"""

from flask_login import UserMixin

from app.extensions import db
from app.models.mixins import generate_id, iso, utcnow

ROLE_ADMIN = "ADMIN"
ROLE_SO_ASSET_USER = "SO_ASSET_USER"
ROLE_VIEWER = "VIEWER"
ROLES = (ROLE_ADMIN, ROLE_SO_ASSET_USER, ROLE_VIEWER)

_ALL = frozenset(ROLES)
_EDITORS = frozenset((ROLE_ADMIN, ROLE_SO_ASSET_USER))
_ADMINS = frozenset((ROLE_ADMIN,))

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    "asset.view": _ALL,
    "asset.create": _EDITORS,
    "asset.edit": _EDITORS,
    "asset.delete": _ADMINS,
    "asset.import": _ADMINS,
    "so.view": _ALL,
    "so.scan": _EDITORS,
    "so.edit_entry": _EDITORS,
    "so.manage": _ADMINS,
    "checkout.view": _ALL,
    "checkout.manage": _EDITORS,
    "lookup.view": _ALL,
    "lookup.manage": _ADMINS,
    "employee.view": _ALL,
    "employee.manage": _ADMINS,
    "user.manage": _ADMINS,
    "backup.manage": _ADMINS,
}


class User(UserMixin, db.Model):
    """
    Application user.

    ``password`` holds a password hash, never plain text.  Hashes created
    by this application use werkzeug's format; bcrypt hashes carried in
    from restored backups are also accepted at login.

    Inherits from ``UserMixin`` to satisfy Flask-Login requirements.
    ``is_active`` is a real column here, so deactivated users are
    treated as anonymous by Flask-Login.
    """

    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    email = db.Column(db.String(200), unique=True, nullable=False)
    name = db.Column(db.String(200), nullable=False)
    password = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(30), nullable=False, default=ROLE_VIEWER)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_by = db.Column(db.String(36), db.ForeignKey("users.id"), nullable=True)
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

    # -- Relationships -----------------------------------------------------
    creator = db.relationship("User", remote_side=[id], foreign_keys=[created_by])

    # ---- Role checks -----------------------------------------------------

    def has_role(self, *role_names: str) -> bool:
        """Check if the user has any of the given role names."""
        return self.role in role_names

    def has_permission(self, permission_name: str) -> bool:
        """Check if the user's role grants a specific permission."""
        return self.role in ROLE_PERMISSIONS.get(permission_name, frozenset())

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "isActive": self.is_active,
            "createdBy": self.created_by,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<User {self.email} role={self.role}>"
