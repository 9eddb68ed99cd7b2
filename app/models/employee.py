"""
Employee model: the people who can be a PIC (person in charge) of an
asset or the assignee of a check-out.
"""

from app.extensions import db
from app.models.mixins import generate_id, iso, utcnow


class Employee(db.Model):
    """
    Employee record.

    ``employee_id`` is the business identifier printed on badges and
    used by CSV imports; ``id`` is the internal primary key.
    ``department`` and ``position`` are free text, not lookups.
    """

    __tablename__ = "employees"

    id = db.Column(db.String(36), primary_key=True, default=generate_id)
    employee_id = db.Column(db.String(50), unique=True, nullable=False)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200), nullable=True)
    department = db.Column(db.String(200), nullable=True)
    position = db.Column(db.String(200), nullable=True)
    join_date = db.Column(db.DateTime, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
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
    assets = db.relationship("Asset", back_populates="pic_employee", lazy="dynamic")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "employeeId": self.employee_id,
            "name": self.name,
            "email": self.email,
            "department": self.department,
            "position": self.position,
            "joinDate": iso(self.join_date),
            "isActive": self.is_active,
            "createdAt": iso(self.created_at),
            "updatedAt": iso(self.updated_at),
        }

    def __repr__(self) -> str:
        return f"<Employee {self.employee_id} {self.name}>"
