"""
Tests for employee_service and the employee CSV reader.
"""

import pytest

from app.exceptions import ConflictError, ValidationError
from app.services import (
    asset_service,
    checkout_service,
    employee_service,
    import_service,
)


class TestCrud:
    def test_create_and_search(self, db_session):
        employee_service.create_employee(
            {"employeeId": "E-1", "name": "Agus", "department": "IT", "joinDate": "2020-02-01"}
        )
        employee_service.create_employee({"employeeId": "E-2", "name": "Bunga"})
        found = employee_service.get_employees(search="agu")
        assert [e.employee_id for e in found] == ["E-1"]
        assert found[0].join_date.year == 2020

    def test_find_by_name_is_exact(self, db_session):
        employee_service.create_employee({"employeeId": "E-1", "name": "Agus"})
        assert employee_service.find_by_name(" AGUS ").employee_id == "E-1"
        assert employee_service.find_by_name("A%") is None

    def test_duplicate_employee_id(self, db_session):
        employee_service.create_employee({"employeeId": "E-1", "name": "Agus"})
        with pytest.raises(ConflictError, match="E-1 already exists"):
            employee_service.create_employee({"employeeId": "E-1", "name": "Other"})

    def test_name_required(self, db_session):
        with pytest.raises(ValidationError):
            employee_service.create_employee({"employeeId": "E-1"})

    def test_delete_unlinks_assets(self, db_session):
        employee = employee_service.create_employee({"employeeId": "E-1", "name": "Agus"})
        asset = asset_service.create_asset({"name": "Phone", "picId": employee.id})

        assert employee_service.delete_employee(employee.id) == 1
        refreshed = asset_service.get_asset_by_id(asset.id)
        assert refreshed.pic_id is None
        assert refreshed.pic == "Agus"

    def test_delete_blocked_by_checkouts(self, db_session):
        employee = employee_service.create_employee({"employeeId": "E-1", "name": "Agus"})
        asset = asset_service.create_asset({"name": "Phone"})
        checkout_service.check_out(
            {"assetId": asset.id, "assignToId": employee.id, "checkoutDate": "2024-01-01"}
        )
        with pytest.raises(ConflictError, match="check-out records"):
            employee_service.delete_employee(employee.id)


class TestImport:
    def test_reports_issues_per_row(self, db_session):
        employee_service.create_employee({"employeeId": "E-9", "name": "Existing"})
        result = employee_service.import_employees(
            [
                {"employeeId": "E-1", "name": "Agus", "rowNumber": 2},
                {"employeeId": "E-1", "name": "Again", "rowNumber": 3},
                {"employeeId": "E-9", "name": "Clash", "rowNumber": 4},
                {"employeeId": "", "name": "", "rowNumber": 5},
                {"employeeId": "E-5", "name": "Bad", "email": "nope", "rowNumber": 6},
                {"employeeId": "E-6", "name": "Late", "joinDate": "soon", "rowNumber": 7},
            ]
        )
        assert result["imported"] == 1
        assert result["skipped"] == 5
        reasons = {issue["row"]: issue["reason"] for issue in result["issues"]}
        assert reasons[3] == "Duplicate EmployeeID within request (also found on row 2)"
        assert reasons[4] == "EmployeeID already exists (current owner: Existing)"
        assert reasons[5] == "Missing EmployeeID; Missing Name"
        assert reasons[6] == 'Invalid email format "nope"'
        assert reasons[7] == 'Invalid JoinDate "soon" (expected YYYY-MM-DD)'

    def test_empty_payload(self, db_session):
        with pytest.raises(ValidationError, match="Invalid request payload"):
            employee_service.import_employees([])


class TestEmployeeCsv:
    def test_header_row(self):
        rows = import_service.parse_employee_csv(
            "EmployeeID,Name,Email\nE-1,Agus,agus@example.com\n"
        )
        assert rows == [
            {"rowNumber": 2, "employeeId": "E-1", "name": "Agus", "email": "agus@example.com"}
        ]

    def test_positional_columns_without_header(self):
        rows = import_service.parse_employee_csv("E-1,Agus,,IT,Staff,2021-01-01\n")
        assert rows[0]["rowNumber"] == 1
        assert rows[0]["department"] == "IT"
        assert rows[0]["joinDate"] == "2021-01-01"

    def test_blank_lines_skipped(self):
        rows = import_service.parse_employee_csv("EmployeeID,Name\n\nE-1,Agus\n")
        assert [r["rowNumber"] for r in rows] == [3]

    def test_empty_file(self):
        with pytest.raises(ValidationError, match="CSV file is empty"):
            import_service.parse_employee_csv("")
