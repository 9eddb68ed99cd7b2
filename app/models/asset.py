"""
Asset models: the canonical asset register and its satellites.

``Asset`` is the source of truth for every tracked item.  Check-out
records, custom field values and the event history hang off it and are
removed with it.  Stock-opname entries also reference assets but live
in ``stock_opname.py``.
"""

import json

from app.extensions import db
from app.models.mixins import generate_id, iso, utcnow

# Asset status values accepted by the API, in display order.
ASSET_STATUSES = (
    "Active",
    "Inactive",
    "Disposed",
    "Broken",
    "Lost/Missing",
    "Sell",
    "Unidentified",
)

CHECKOUT_OUT = "OUT"
CHECKOUT_RETURNED = "RETURNED"

EVENT_CHECK_OUT = "CHECK_OUT"
EVENT_CHECK_IN = "CHECK_IN"
EVENT_SO_UPDATE = "SO_UPDATE"


class Asset(db.Model):
    """
    A tracked fixed asset.

    ``no_asset`` is the human-facing asset number
    (``FA001/III/02``-style).  ``pic`` holds the PIC's display name as
    text and ``pic_id`` optionally links the Employee record; both are
    kept because imported data often has a name with no employee match.
    ``notes`` may carry a JSON document of additional fields and is
    stored verbatim.
    """

    __tablename__ = "assets"

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    no_asset = db.Column(db.String(100), unique=True, nullable=False, index=True)
    name = db.Column(db.String(300), nullable=False)
    status = db.Column(db.String(50), nullable=False, default="Active")
    serial_no = db.Column(db.String(200), nullable=True)
    purchase_date = db.Column(db.DateTime, nullable=True)
    cost = db.Column(db.Float, nullable=True)
    brand = db.Column(db.String(200), nullable=True)
    model = db.Column(db.String(200), nullable=True)
    site_id = db.Column(db.String(36), db.ForeignKey("sites.id"), nullable=True)
    category_id = db.Column(
        db.String(36), db.ForeignKey("categories.id"), nullable=True
    )
    department_id = db.Column(
        db.String(36), db.ForeignKey("departments.id"), nullable=True
    )
    pic_id = db.Column(db.String(36), db.ForeignKey("employees.id"), nullable=True)
    pic = db.Column(db.String(200), nullable=True)
    image_url = db.Column(db.String(500), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    date_created = db.Column(db.DateTime, nullable=False, default=utcnow)
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
    site = db.relationship("Site", back_populates="assets")
    category = db.relationship("Category", back_populates="assets")
    department = db.relationship("Department", back_populates="assets")
    pic_employee = db.relationship("Employee", back_populates="assets")
    checkouts = db.relationship(
        "AssetCheckout",
        back_populates="asset",
        cascade="all, delete-orphan",
        lazy="dynamic",
    )
    events = db.relationship(
        "AssetEvent",
        back_populates="asset",
        cascade="all, delete-orphan",
        lazy="dynamic",
    )
    custom_values = db.relationship(
        "AssetCustomValue",
        back_populates="asset",
        cascade="all, delete-orphan",
    )
    so_entries = db.relationship(
        "SOAssetEntry",
        back_populates="asset",
        cascade="all, delete-orphan",
        lazy="dynamic",
    )

    def to_dict(self, include_relations: bool = True) -> dict:
        data = {
            "id": self.id,
            "noAsset": self.no_asset,
            "name": self.name,
            "status": self.status,
            "serialNo": self.serial_no,
            "purchaseDate": iso(self.purchase_date),
            "cost": self.cost,
            "brand": self.brand,
            "model": self.model,
            "siteId": self.site_id,
            "categoryId": self.category_id,
            "departmentId": self.department_id,
            "picId": self.pic_id,
            "pic": self.pic,
            "imageUrl": self.image_url,
            "notes": self.notes,
            "dateCreated": iso(self.date_created),
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }
        if include_relations:
            data["site"] = _brief(self.site)
            data["category"] = _brief(self.category)
            data["department"] = _brief(self.department)
            data["employee"] = (
                {
                    "id": self.pic_employee.id,
                    "employeeId": self.pic_employee.employee_id,
                    "name": self.pic_employee.name,
                }
                if self.pic_employee
                else None
            )
        return data

    def __repr__(self) -> str:
        return f"<Asset {self.no_asset}>"


def _brief(lookup) -> dict | None:
    if lookup is None:
        return None
    return {"id": lookup.id, "name": lookup.name}


class AssetCheckout(db.Model):
    """
    An asset handed to an employee (``OUT``) and later returned
    (``RETURNED``).  Signatures are stored as data-URL text.
    """

    __tablename__ = "asset_checkouts"

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    asset_id = db.Column(
        db.String(36), db.ForeignKey("assets.id"), nullable=False, index=True
    )
    assign_to_id = db.Column(
        db.String(36), db.ForeignKey("employees.id"), nullable=False
    )
    department_id = db.Column(
        db.String(36), db.ForeignKey("departments.id"), nullable=True
    )
    checkout_date = db.Column(db.DateTime, nullable=False)
    due_date = db.Column(db.DateTime, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    signature_data = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default=CHECKOUT_OUT)
    returned_at = db.Column(db.DateTime, nullable=True)
    return_notes = db.Column(db.Text, nullable=True)
    received_by_id = db.Column(
        db.String(36), db.ForeignKey("employees.id"), nullable=True
    )
    return_signature_data = db.Column(db.Text, nullable=True)
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
    asset = db.relationship("Asset", back_populates="checkouts")
    assign_to = db.relationship("Employee", foreign_keys=[assign_to_id])
    received_by = db.relationship("Employee", foreign_keys=[received_by_id])
    department = db.relationship("Department")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "assetId": self.asset_id,
            "assignToId": self.assign_to_id,
            "departmentId": self.department_id,
            "checkoutDate": iso(self.checkout_date),
            "dueDate": iso(self.due_date),
            "notes": self.notes,
            "signatureData": self.signature_data,
            "status": self.status,
            "returnedAt": iso(self.returned_at),
            "returnNotes": self.return_notes,
            "receivedById": self.received_by_id,
            "returnSignatureData": self.return_signature_data,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
            "asset": (
                {
                    "id": self.asset.id,
                    "noAsset": self.asset.no_asset,
                    "name": self.asset.name,
                }
                if self.asset
                else None
            ),
            "assignTo": _employee_brief(self.assign_to),
            "receivedBy": _employee_brief(self.received_by),
            "department": _brief(self.department),
        }


def _employee_brief(employee) -> dict | None:
    if employee is None:
        return None
    return {
        "id": employee.id,
        "employeeId": employee.employee_id,
        "name": employee.name,
    }


class AssetCustomField(db.Model):
    """
    Admin-defined extra attribute for assets.

    ``field_type`` is one of text, number, date, boolean, select.
    ``options`` and ``show_condition`` hold JSON text.
    """

    __tablename__ = "asset_custom_fields"

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    name = db.Column(db.String(100), unique=True, nullable=False)
    label = db.Column(db.String(200), nullable=False)
    field_type = db.Column(db.String(30), nullable=False, default="text")
    required = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    show_condition = db.Column(db.Text, nullable=True)
    options = db.Column(db.Text, nullable=True)
    default_value = db.Column(db.String(500), nullable=True)
    description = db.Column(db.Text, nullable=True)
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
    values = db.relationship(
        "AssetCustomValue",
        back_populates="custom_field",
        cascade="all, delete-orphan",
    )


class AssetCustomValue(db.Model):
    """Value of one custom field for one asset; one typed column is set."""

    __tablename__ = "asset_custom_values"
    __table_args__ = (
        db.UniqueConstraint(
            "asset_id", "custom_field_id", name="uq_asset_custom_value"
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    asset_id = db.Column(db.String(36), db.ForeignKey("assets.id"), nullable=False)
    custom_field_id = db.Column(
        db.String(36), db.ForeignKey("asset_custom_fields.id"), nullable=False
    )
    string_value = db.Column(db.Text, nullable=True)
    number_value = db.Column(db.Float, nullable=True)
    date_value = db.Column(db.DateTime, nullable=True)
    boolean_value = db.Column(db.Boolean, nullable=True)
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
    asset = db.relationship("Asset", back_populates="custom_values")
    custom_field = db.relationship("AssetCustomField", back_populates="values")


class AssetEvent(db.Model):
    """
    Append-only history entry for an asset.

    ``type`` values: CHECK_OUT, CHECK_IN, SO_UPDATE.  ``payload`` is a
    JSON document whose shape depends on the type (for SO_UPDATE, the
    list of changed fields with before/after values).
    """

    __tablename__ = "asset_events"

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    asset_id = db.Column(
        db.String(36), db.ForeignKey("assets.id"), nullable=False, index=True
    )
    type = db.Column(db.String(30), nullable=False)
    actor = db.Column(db.String(200), nullable=True)
    checkout_id = db.Column(db.String(36), nullable=True)
    so_session_id = db.Column(db.String(36), nullable=True)
    so_asset_entry_id = db.Column(db.String(36), nullable=True)
    payload = db.Column(db.Text, nullable=True)
    created_at = db.Column(
        db.DateTime, nullable=False, default=utcnow, server_default=db.func.now()
    )

    # -- Relationships -----------------------------------------------------
    asset = db.relationship("Asset", back_populates="events")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "assetId": self.asset_id,
            "type": self.type,
            "actor": self.actor,
            "checkoutId": self.checkout_id,
            "soSessionId": self.so_session_id,
            "soAssetEntryId": self.so_asset_entry_id,
            "payload": self.payload_data,
            "createdAt": iso(self.created_at),
        }

    @property
    def payload_data(self):
        """Decoded payload; restored rows may hold plain text."""
        if not self.payload:
            return None
        try:
            return json.loads(self.payload)
        except ValueError:
            return self.payload

    def __repr__(self) -> str:
        return f"<AssetEvent {self.type} asset={self.asset_id}>"
