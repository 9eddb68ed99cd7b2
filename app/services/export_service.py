"""
Export service: generate CSV and Excel files from the asset register.

All export functions return a BytesIO buffer ready to be sent as
a Flask response with the appropriate content type.
"""

import csv
import io
import logging

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter

from app.models.asset import Asset

logger = logging.getLogger(__name__)

# Column order of the asset CSV; import accepts the same header.
ASSET_CSV_FIELDS = [
    "noAsset",
    "name",
    "serialNo",
    "cost",
    "status",
    "pic",
    "notes",
    "brand",
    "model",
    "categoryId",
    "siteId",
    "departmentId",
    "purchaseDate",
]

# Excel header styling constants.
_HEADER_FONT = Font(bold=True, color="FFFFFF")
_HEADER_FILL = PatternFill(start_color="2B579A", end_color="2B579A", fill_type="solid")
_HEADER_ALIGN = Alignment(horizontal="center", wrap_text=True)
_CURRENCY_FORMAT = '#,##0.00'
_DATE_FORMAT = "yyyy-mm-dd"

_EXCEL_HEADERS = [
    "Asset Number",
    "Name",
    "Serial No",
    "Cost",
    "Status",
    "PIC",
    "Notes",
    "Brand",
    "Model",
    "Category",
    "Site",
    "Department",
    "Purchase Date",
]


def _csv_row(asset: Asset) -> list:
    return [
        asset.no_asset,
        asset.name,
        asset.serial_no or "",
        "" if asset.cost is None else _format_number(asset.cost),
        asset.status,
        asset.pic or "",
        asset.notes or "",
        asset.brand or "",
        asset.model or "",
        asset.category_id or "",
        asset.site_id or "",
        asset.department_id or "",
        asset.purchase_date.date().isoformat() if asset.purchase_date else "",
    ]


# =========================================================================
# CSV Exports
# =========================================================================

def export_assets_csv(assets: list[Asset]) -> io.BytesIO:
    """
    Export assets to CSV using the import-compatible header.

    Args:
        assets: Assets to write, in output order.

    Returns:
        BytesIO buffer containing UTF-8 (with BOM) CSV data.
    """
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(ASSET_CSV_FIELDS)
    for asset in assets:
        writer.writerow(_csv_row(asset))

    # Convert to bytes for Flask response.
    buffer = io.BytesIO()
    buffer.write(output.getvalue().encode("utf-8-sig"))
    buffer.seek(0)
    logger.info("Exported %d assets to CSV", len(assets))
    return buffer


# =========================================================================
# Excel Exports
# =========================================================================

def export_assets_excel(assets: list[Asset]) -> io.BytesIO:
    """
    Export assets to an Excel workbook with lookup names resolved.

    Returns:
        BytesIO buffer containing the .xlsx data.
    """
    wb = Workbook()
    ws = wb.active
    ws.title = "Assets"
    _write_header_row(ws, _EXCEL_HEADERS)

    for row_idx, asset in enumerate(assets, start=2):
        ws.cell(row=row_idx, column=1, value=asset.no_asset)
        ws.cell(row=row_idx, column=2, value=asset.name)
        ws.cell(row=row_idx, column=3, value=asset.serial_no)
        if asset.cost is not None:
            ws.cell(row=row_idx, column=4, value=float(asset.cost)).number_format = _CURRENCY_FORMAT
        ws.cell(row=row_idx, column=5, value=asset.status)
        ws.cell(row=row_idx, column=6, value=asset.pic_employee.name if asset.pic_employee else asset.pic)
        ws.cell(row=row_idx, column=7, value=asset.notes)
        ws.cell(row=row_idx, column=8, value=asset.brand)
        ws.cell(row=row_idx, column=9, value=asset.model)
        ws.cell(row=row_idx, column=10, value=asset.category.name if asset.category else None)
        ws.cell(row=row_idx, column=11, value=asset.site.name if asset.site else None)
        ws.cell(row=row_idx, column=12, value=asset.department.name if asset.department else None)
        if asset.purchase_date:
            ws.cell(row=row_idx, column=13, value=asset.purchase_date).number_format = _DATE_FORMAT

    _auto_fit_columns(ws)

    buffer = io.BytesIO()
    wb.save(buffer)
    buffer.seek(0)
    logger.info("Exported %d assets to Excel", len(assets))
    return buffer


# =========================================================================
# Internal helpers
# =========================================================================

def _write_header_row(ws, headers: list[str]) -> None:
    """Write a styled header row to an Excel worksheet."""
    for col_idx, header in enumerate(headers, start=1):
        cell = ws.cell(row=1, column=col_idx, value=header)
        cell.font = _HEADER_FONT
        cell.fill = _HEADER_FILL
        cell.alignment = _HEADER_ALIGN


def _auto_fit_columns(ws) -> None:
    """Auto-fit column widths based on content (approximate)."""
    for col in ws.columns:
        max_length = 0
        col_letter = get_column_letter(col[0].column)
        for cell in col:
            if cell.value:
                max_length = max(max_length, len(str(cell.value)))
        ws.column_dimensions[col_letter].width = min(max_length + 4, 50)


def _format_number(value: float) -> str:
    """Whole numbers without a decimal part, others with two places."""
    if float(value).is_integer():
        return str(int(value))
    return f"{value:.2f}"
