"""
Stock-opname (physical audit) models.

An ``SOSession`` is one audit campaign.  While it is Active, scanning an
asset creates an ``SOAssetEntry`` whose ``temp_*`` columns are seeded
from the asset and may be edited freely.  Those edits stay on the entry
until the session is completed, at which point the temp values of every
identified entry are written back to the asset.
"""

from app.extensions import db
from app.models.mixins import generate_id, iso, utcnow

SESSION_ACTIVE = "Active"
SESSION_COMPLETED = "Completed"
SESSION_CANCELLED = "Cancelled"
SESSION_STATUSES = (SESSION_ACTIVE, SESSION_COMPLETED, SESSION_CANCELLED)

ENTRY_SCANNED = "Scanned"

# Temp column -> Asset column, in the order they are written back.
TEMP_FIELD_MAP = {
    "temp_name": "name",
    "temp_status": "status",
    "temp_no_asset": "no_asset",
    "temp_serial_no": "serial_no",
    "temp_pic": "pic",
    "temp_pic_id": "pic_id",
    "temp_brand": "brand",
    "temp_model": "model",
    "temp_cost": "cost",
    "temp_purchase_date": "purchase_date",
    "temp_image_url": "image_url",
    "temp_site_id": "site_id",
    "temp_category_id": "category_id",
    "temp_department_id": "department_id",
}


class SOSession(db.Model):
    """
    A stock-opname campaign.

    ``status`` moves Active -> Completed or Active -> Cancelled and
    never changes afterwards.  ``total_assets`` is the asset count
    captured when the session was created.
    """

    __tablename__ = "so_sessions"

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    name = db.Column(db.String(200), nullable=False)
    year = db.Column(db.Integer, nullable=False)
    description = db.Column(db.Text, nullable=True)
    plan_start = db.Column(db.DateTime, nullable=True)
    plan_end = db.Column(db.DateTime, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default=SESSION_ACTIVE)
    total_assets = db.Column(db.Integer, nullable=False, default=0)
    scanned_assets = db.Column(db.Integer, nullable=False, default=0)
    verified_assets = db.Column(db.Integer, nullable=False, default=0)
    started_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    completed_at = db.Column(db.DateTime, nullable=True)
    completion_notes = db.Column(db.Text, nullable=True)
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
    entries = db.relationship(
        "SOAssetEntry",
        back_populates="session",
        cascade="all, delete-orphan",
        lazy="dynamic",
    )

    @property
    def is_active(self) -> bool:
        return self.status == SESSION_ACTIVE

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "year": self.year,
            "description": self.description,
            "planStart": iso(self.plan_start),
            "planEnd": iso(self.plan_end),
            "notes": self.notes,
            "status": self.status,
            "totalAssets": self.total_assets,
            "scannedAssets": self.scanned_assets,
            "verifiedAssets": self.verified_assets,
            "startedAt": iso(self.started_at),
            "completedAt": iso(self.completed_at),
            "completionNotes": self.completion_notes,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<SOSession {self.name} {self.status}>"


class SOAssetEntry(db.Model):
    """
    One scanned asset within a session, with its staged edits.

    ``is_identified`` marks entries whose temp values should be merged
    back on completion; unidentified entries only record the sighting.
    """

    __tablename__ = "so_asset_entries"
    __table_args__ = (
        db.UniqueConstraint(
            "so_session_id", "asset_id", name="uq_so_entry_session_asset"
        ),
    )

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    so_session_id = db.Column(
        db.String(36), db.ForeignKey("so_sessions.id"), nullable=False, index=True
    )
    asset_id = db.Column(
        db.String(36), db.ForeignKey("assets.id"), nullable=False, index=True
    )
    scanned_at = db.Column(db.DateTime, nullable=False, default=utcnow)
    status = db.Column(db.String(50), nullable=False, default=ENTRY_SCANNED)
    is_identified = db.Column(db.Boolean, nullable=False, default=True)
    is_crucial = db.Column(db.Boolean, nullable=False, default=False)
    crucial_notes = db.Column(db.Text, nullable=True)
    temp_name = db.Column(db.String(300), nullable=True)
    temp_status = db.Column(db.String(50), nullable=True)
    temp_no_asset = db.Column(db.String(100), nullable=True)
    temp_serial_no = db.Column(db.String(200), nullable=True)
    temp_pic = db.Column(db.String(200), nullable=True)
    temp_pic_id = db.Column(db.String(36), nullable=True)
    temp_notes = db.Column(db.Text, nullable=True)
    temp_brand = db.Column(db.String(200), nullable=True)
    temp_model = db.Column(db.String(200), nullable=True)
    temp_cost = db.Column(db.Float, nullable=True)
    temp_purchase_date = db.Column(db.DateTime, nullable=True)
    temp_image_url = db.Column(db.String(500), nullable=True)
    temp_site_id = db.Column(db.String(36), nullable=True)
    temp_category_id = db.Column(db.String(36), nullable=True)
    temp_department_id = db.Column(db.String(36), nullable=True)
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
    session = db.relationship("SOSession", back_populates="entries")
    asset = db.relationship("Asset", back_populates="so_entries")

    def to_dict(self, include_asset: bool = True) -> dict:
        data = {
            "id": self.id,
            "soSessionId": self.so_session_id,
            "assetId": self.asset_id,
            "scannedAt": iso(self.scanned_at),
            "status": self.status,
            "isIdentified": self.is_identified,
            "isCrucial": self.is_crucial,
            "crucialNotes": self.crucial_notes,
            "tempName": self.temp_name,
            "tempStatus": self.temp_status,
            "tempNoAsset": self.temp_no_asset,
            "tempSerialNo": self.temp_serial_no,
            "tempPic": self.temp_pic,
            "tempPicId": self.temp_pic_id,
            "tempNotes": self.temp_notes,
            "tempBrand": self.temp_brand,
            "tempModel": self.temp_model,
            "tempCost": self.temp_cost,
            "tempPurchaseDate": iso(self.temp_purchase_date),
            "tempImageUrl": self.temp_image_url,
            "tempSiteId": self.temp_site_id,
            "tempCategoryId": self.temp_category_id,
            "tempDepartmentId": self.temp_department_id,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }
        if include_asset and self.asset is not None:
            data["asset"] = self.asset.to_dict()
        return data

    def __repr__(self) -> str:
        return f"<SOAssetEntry session={self.so_session_id} asset={self.asset_id}>"
