"""
Import service: turn uploaded CSV files into row dicts for the asset
and employee services.

Headers are matched case-insensitively.  The asset reader accepts both
the export header (``noAsset,name,...``) and the legacy spreadsheet
header (``NameOfAsset,NoAsset,...``); the employee reader accepts a
header row or, without one, positional columns in the order
``EmployeeID,Name,Email,Department,Position,JoinDate``.
"""

import csv
import io
import logging

from app.exceptions import ValidationError

logger = logging.getLogger(__name__)

# Lower-cased header -> row key used by asset_service.
ASSET_HEADER_MAP = {
    "noasset": "noAsset",
    "no_asset": "noAsset",
    "name": "name",
    "nameofasset": "name",
    "serialno": "serialNo",
    "serial_no": "serialNo",
    "cost": "cost",
    "status": "status",
    "pic": "pic",
    "picid": "picId",
    "notes": "notes",
    "brand": "brand",
    "model": "model",
    "categoryid": "categoryId",
    "category": "category",
    "siteid": "siteId",
    "site": "site",
    "departmentid": "departmentId",
    "department": "department",
    "purchasedate": "purchaseDate",
    "purchase_date": "purchaseDate",
    "imageurl": "imageUrl",
}

EMPLOYEE_FIELD_ORDER = ("employeeId", "name", "email", "department", "position", "joinDate")

EMPLOYEE_HEADER_MAP = {
    "employeeid": "employeeId",
    "employee_id": "employeeId",
    "name": "name",
    "email": "email",
    "department": "department",
    "position": "position",
    "joindate": "joinDate",
    "join_date": "joinDate",
}


def read_text(file_storage) -> str:
    """Decode an uploaded file as UTF-8, dropping a byte-order mark."""
    if file_storage is None or not getattr(file_storage, "filename", ""):
        raise ValidationError("No file uploaded")
    raw = file_storage.read()
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ValidationError("File must be UTF-8 encoded CSV") from exc


def _header_key(header: str | None, mapping: dict) -> str | None:
    if header is None:
        return None
    return mapping.get(header.strip().lower().replace(" ", ""))


def parse_asset_csv(text: str) -> list[dict]:
    """
    Parse asset CSV text into row dicts keyed like the export header.

    Unknown columns are dropped.  Blank lines are skipped.

    Raises:
        ValidationError: No header, or no recognisable asset columns.
    """
    reader = csv.reader(io.StringIO(text))
    try:
        headers = next(reader)
    except StopIteration as exc:
        raise ValidationError("CSV file is empty") from exc

    keys = [_header_key(h, ASSET_HEADER_MAP) for h in headers]
    if "noAsset" not in keys and "name" not in keys:
        raise ValidationError("CSV header does not contain asset columns")

    rows = []
    for values in reader:
        if not any(v.strip() for v in values):
            continue
        row = {}
        for key, value in zip(keys, values):
            if key is not None:
                row[key] = value.strip()
        rows.append(row)

    logger.debug("Parsed %d asset rows from CSV", len(rows))
    return rows


def parse_employee_csv(text: str) -> list[dict]:
    """
    Parse employee CSV text into row dicts carrying ``rowNumber``.

    When the first row names an ``EmployeeID`` column it is used as the
    header; otherwise columns are read positionally.
    """
    lines = list(csv.reader(io.StringIO(text)))
    if not lines:
        raise ValidationError("CSV file is empty")

    first = [_header_key(h, EMPLOYEE_HEADER_MAP) for h in lines[0]]
    if "employeeId" in first:
        keys, start = first, 1
    else:
        keys, start = list(EMPLOYEE_FIELD_ORDER), 0

    rows = []
    for number, values in enumerate(lines[start:], start=start + 1):
        if not any(v.strip() for v in values):
            continue
        row = {"rowNumber": number}
        for key, value in zip(keys, values):
            if key is not None:
                row[key] = value.strip()
        rows.append(row)
    return rows
