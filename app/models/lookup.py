"""
Lookup tables referenced by assets: sites, categories and departments.

All three are user-orderable lists.  ``sort_order`` drives display
order; names are unique within each table.  The asset numbering scheme
uses the *alphabetical* position of a category and site, not
``sort_order``.
"""

from app.extensions import db
from app.models.mixins import generate_id, iso, utcnow


class Site(db.Model):
    """Physical location where assets are kept."""

    __tablename__ = "sites"

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    name = db.Column(db.String(200), unique=True, nullable=False)
    address = db.Column(db.String(500), nullable=True)
    city = db.Column(db.String(100), nullable=True)
    province = db.Column(db.String(100), nullable=True)
    postal_code = db.Column(db.String(20), nullable=True)
    country = db.Column(db.String(100), nullable=False, default="Indonesia")
    phone = db.Column(db.String(50), nullable=True)
    email = db.Column(db.String(200), nullable=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
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
    assets = db.relationship("Asset", back_populates="site", lazy="dynamic")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "city": self.city,
            "province": self.province,
            "postalCode": self.postal_code,
            "country": self.country,
            "phone": self.phone,
            "email": self.email,
            "sortOrder": self.sort_order,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Site {self.name}>"


class Category(db.Model):
    """Asset category (e.g., "Laptop", "Furniture")."""

    __tablename__ = "categories"

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    name = db.Column(db.String(200), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
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
    assets = db.relationship("Asset", back_populates="category", lazy="dynamic")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "sortOrder": self.sort_order,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Category {self.name}>"


class Department(db.Model):
    """Organizational department owning assets."""

    __tablename__ = "departments"

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    name = db.Column(db.String(200), unique=True, nullable=False)
    description = db.Column(db.Text, nullable=True)
    sort_order = db.Column(db.Integer, nullable=False, default=0)
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
    assets = db.relationship("Asset", back_populates="department", lazy="dynamic")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "sortOrder": self.sort_order,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Department {self.name}>"
