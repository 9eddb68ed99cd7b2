"""
Employee service: CRUD and bulk import for employees (PICs).

Employees are referenced by assets (``pic_id``) and by check-out
records.  Deleting an employee unlinks them from their assets but keeps
the PIC name text on the asset.
"""

import logging

from sqlalchemy import func, or_

from app.exceptions import ConflictError, NotFoundError, ValidationError
from app.extensions import db
from app.models.asset import Asset, AssetCheckout
from app.models.employee import Employee
from app.services import audit_service
from app.services.validation import (
    EMAIL_RE,
    optional_text,
    parse_bool,
    parse_datetime,
    require_text,
)

logger = logging.getLogger(__name__)


# -- Queries ---------------------------------------------------------------


def get_employees(search: str | None = None, active: bool | None = None) -> list[Employee]:
    """Return employees ordered by name, optionally filtered."""
    query = Employee.query.order_by(Employee.name)
    if active is not None:
        query = query.filter(Employee.is_active == active)
    if search and search.strip():
        term = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Employee.name.ilike(term),
                Employee.employee_id.ilike(term),
                Employee.email.ilike(term),
                Employee.department.ilike(term),
                Employee.position.ilike(term),
            )
        )
    return query.all()


def get_employee_by_id(employee_pk: str) -> Employee | None:
    return db.session.get(Employee, employee_pk)


def get_employee_by_business_id(employee_id: str) -> Employee | None:
    return Employee.query.filter_by(employee_id=employee_id).first()


def find_by_name(name: str) -> Employee | None:
    """Case-insensitive exact match on the employee's name."""
    return Employee.query.filter(func.lower(Employee.name) == name.strip().lower()).first()


# -- Mutations -------------------------------------------------------------


def _apply_fields(employee: Employee, data: dict) -> None:
    if "name" in data:
        employee.name = require_text(data.get("name"), "Name", max_length=200)
    if "email" in data:
        email = optional_text(data.get("email"))
        if email and not EMAIL_RE.match(email):
            raise ValidationError(f'Invalid email format "{email}"')
        employee.email = email
    if "department" in data:
        employee.department = optional_text(data.get("department"))
    if "position" in data:
        employee.position = optional_text(data.get("position"))
    if "joinDate" in data:
        employee.join_date = parse_datetime(data.get("joinDate"), "joinDate")
    if "isActive" in data:
        employee.is_active = parse_bool(data.get("isActive"), default=True)


def create_employee(data: dict, user_id: str | None = None) -> Employee:
    """
    Create an employee.

    Raises:
        ValidationError: Missing employee id or name, bad email or date.
        ConflictError:   The employee id already exists.
    """
    employee_id = require_text(data.get("employeeId"), "Employee ID", max_length=50)
    require_text(data.get("name"), "Name", max_length=200)
    if get_employee_by_business_id(employee_id) is not None:
        raise ConflictError(f"Employee ID {employee_id} already exists")

    employee = Employee(employee_id=employee_id, is_active=True)
    _apply_fields(employee, data)
    db.session.add(employee)
    db.session.flush()

    audit_service.log_change(
        user_id=user_id,
        action_type="CREATE",
        entity_type="employee",
        entity_id=employee.id,
        new_value=employee.to_dict(),
    )
    db.session.commit()

    logger.info("Created employee %s (%s)", employee.employee_id, employee.name)
    return employee


def update_employee(employee_pk: str, data: dict, user_id: str | None = None) -> Employee:
    """
    Update an employee.

    Raises:
        NotFoundError: Unknown employee.
        ConflictError: The new employee id belongs to someone else.
    """
    employee = get_employee_by_id(employee_pk)
    if employee is None:
        raise NotFoundError("Employee not found")
    previous = employee.to_dict()

    if "employeeId" in data:
        new_id = require_text(data.get("employeeId"), "Employee ID", max_length=50)
        other = get_employee_by_business_id(new_id)
        if other is not None and other.id != employee.id:
            raise ConflictError(f"Employee ID {new_id} already exists")
        employee.employee_id = new_id
    _apply_fields(employee, data)

    audit_service.log_change(
        user_id=user_id,
        action_type="UPDATE",
        entity_type="employee",
        entity_id=employee.id,
        previous_value=previous,
        new_value=employee.to_dict(),
    )
    db.session.commit()
    return employee


def delete_employee(employee_pk: str, user_id: str | None = None) -> int:
    """
    Delete an employee and unlink them from their assets.

    Returns:
        The number of assets whose ``pic_id`` was cleared.

    Raises:
        NotFoundError: Unknown employee.
        ConflictError: The employee appears on check-out records.
    """
    employee = get_employee_by_id(employee_pk)
    if employee is None:
        raise NotFoundError("Employee not found")

    checkout_refs = AssetCheckout.query.filter(
        or_(
            AssetCheckout.assign_to_id == employee.id,
            AssetCheckout.received_by_id == employee.id,
        )
    ).count()
    if checkout_refs:
        raise ConflictError(
            "Cannot delete employee: they appear on check-out records"
        )

    unlinked = Asset.query.filter_by(pic_id=employee.id).update(
        {"pic_id": None}, synchronize_session="fetch"
    )
    snapshot = employee.to_dict()
    db.session.delete(employee)

    audit_service.log_change(
        user_id=user_id,
        action_type="DELETE",
        entity_type="employee",
        entity_id=employee_pk,
        previous_value=snapshot,
    )
    db.session.commit()

    logger.info(
        "Deleted employee %s, unlinked %d asset(s)", snapshot["employeeId"], unlinked
    )
    return unlinked


# -- Bulk import -----------------------------------------------------------


def import_employees(rows: list[dict], user_id: str | None = None) -> dict:
    """
    Create employees from imported rows, reporting per-row issues.

    Rows with problems are skipped; valid rows are created.  Each row
    may carry ``rowNumber`` (the line in the source file).

    Returns:
        ``{"imported": int, "skipped": int, "issues": [...],
        "errors": [...]}``.
    """
    if not isinstance(rows, list) or not rows:
        raise ValidationError("Invalid request payload")

    imported = 0
    issues: list[dict] = []
    first_seen: dict[str, int] = {}

    for index, row in enumerate(rows):
        row_number = row.get("rowNumber") or index + 1
        problems: list[str] = []

        employee_id = _clean(row.get("employeeId"))
        name = _clean(row.get("name"))
        email = _clean(row.get("email"))
        join_date_text = _clean(row.get("joinDate"))

        if not employee_id:
            problems.append("Missing EmployeeID")
        if not name:
            problems.append("Missing Name")
        if email and not EMAIL_RE.match(email):
            problems.append(f'Invalid email format "{email}"')

        join_date = None
        if join_date_text:
            try:
                join_date = parse_datetime(join_date_text, "JoinDate")
            except ValidationError:
                problems.append(
                    f'Invalid JoinDate "{join_date_text}" (expected YYYY-MM-DD)'
                )

        if problems:
            issues.append({"row": row_number, "reason": "; ".join(problems)})
            continue

        if employee_id in first_seen:
            issues.append(
                {
                    "row": row_number,
                    "reason": "Duplicate EmployeeID within request "
                    f"(also found on row {first_seen[employee_id]})",
                }
            )
            continue
        first_seen[employee_id] = row_number

        existing = get_employee_by_business_id(employee_id)
        if existing is not None:
            issues.append(
                {
                    "row": row_number,
                    "reason": "EmployeeID already exists "
                    f"(current owner: {existing.name})",
                }
            )
            continue

        db.session.add(
            Employee(
                employee_id=employee_id,
                name=name,
                email=email,
                department=_clean(row.get("department")),
                position=_clean(row.get("position")),
                join_date=join_date,
                is_active=True,
            )
        )
        imported += 1

    audit_service.log_change(
        user_id=user_id,
        action_type="IMPORT",
        entity_type="employee",
        entity_id=None,
        new_value={"imported": imported, "skipped": len(issues)},
    )
    db.session.commit()

    logger.info("Employee import: %d imported, %d skipped", imported, len(issues))
    return {
        "imported": imported,
        "skipped": len(issues),
        "issues": issues,
        "errors": [f"Row {i['row']}: {i['reason']}" for i in issues],
    }


def _clean(value) -> str | None:
    """Trimmed text; blank and ``?`` mean no value."""
    text = optional_text(value)
    if text == "?":
        return None
    return text
