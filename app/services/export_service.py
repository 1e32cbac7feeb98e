"""
Record export — yearly spreadsheet archive.

One workbook per record type with records created in the requested
calendar year, zipped into ``records_<year>.zip``. Rows are limited to the
caller's visibility scope.
"""

import io
import json
import logging
import zipfile

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from app.core.exceptions import NotFoundError, ValidationError
from app.models.record import RECORD_TYPE_LABELS, RecordStatus
from app.services import record_store
from app.services.visibility import scoped_filter

logger = logging.getLogger(__name__)

HEADER_FILL = PatternFill(start_color="0F3D5E", end_color="0F3D5E", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)
STATUS_FILLS = {
    RecordStatus.APPROVED: PatternFill(start_color="C6EFCE", end_color="C6EFCE", fill_type="solid"),
    RecordStatus.REJECTED: PatternFill(start_color="FFC7CE", end_color="FFC7CE", fill_type="solid"),
}

LEADING_COLUMNS = ["Data ID", "Company", "Department", "Module", "Created By", "Date of Creation"]
TRAILING_COLUMNS = [
    "Current Status", "Approved By", "Final Approved By",
    "Rejection Reason", "Last Edited By", "Comments",
]

MIN_YEAR = 1970
MAX_YEAR = 9998


def _apply_header_style(ws, row: int, col_count: int) -> None:
    """Apply dark-header styling to an Excel row (1-indexed)."""
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)


def _auto_width(ws) -> None:
    """Auto-size column widths based on content (capped at 60 chars)."""
    for col in ws.columns:
        max_len = 0
        col_letter = get_column_letter(col[0].column)
        for cell in col:
            if cell.value:
                max_len = max(max_len, min(len(str(cell.value)), 60))
        ws.column_dimensions[col_letter].width = max(max_len + 4, 12)


def _cell_value(value):
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    return json.dumps(value, default=str)


def _last_edited(stamp) -> str:
    if not stamp:
        return ""
    return f"{stamp.get('email', '')} {stamp.get('date', '')} {stamp.get('time', '')}".strip()


def build_workbook(records, record_type: str) -> bytes:
    """Workbook with one row per record and one column per distinct field name."""
    field_names = []
    for record in records:
        for entry in record.fields:
            if entry.name not in field_names:
                field_names.append(entry.name)

    wb = Workbook()
    ws = wb.active
    ws.title = RECORD_TYPE_LABELS[record_type][:31]

    headers = LEADING_COLUMNS + field_names + TRAILING_COLUMNS
    for col, header in enumerate(headers, 1):
        ws.cell(row=1, column=col, value=header)
    _apply_header_style(ws, 1, len(headers))
    ws.freeze_panes = "A2"

    status_col = len(LEADING_COLUMNS) + len(field_names) + 1
    for row_i, record in enumerate(records, 2):
        values = record.field_values()
        comment_count = sum(len(entry.comments) for entry in record.fields)
        row = [
            record.data_id,
            record.company,
            record.department,
            record.module,
            record.created_by,
            record.created_at.strftime("%d/%m/%Y") if record.created_at else "",
            *[_cell_value(values.get(name)) for name in field_names],
            record.current_status,
            record.approved_by or "",
            record.final_approved_by or "",
            record.rejection_reason or "",
            _last_edited(record.last_edited_by),
            comment_count,
        ]
        for col, value in enumerate(row, 1):
            ws.cell(row=row_i, column=col, value=value).border = THIN_BORDER
        fill = STATUS_FILLS.get(record.current_status)
        if fill is not None:
            ws.cell(row=row_i, column=status_col).fill = fill

    _auto_width(ws)

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    return buf.getvalue()


def export_records_archive(actor, year: int):
    """
    Zip archive of the actor's visible records created in ``year``.

    Returns:
        (BytesIO positioned at 0, filename)

    Raises:
        ValidationError: year out of range
        NotFoundError: no visible records in that year
    """
    if not isinstance(year, int) or not MIN_YEAR <= year <= MAX_YEAR:
        raise ValidationError(f"year must be between {MIN_YEAR} and {MAX_YEAR}")

    records = record_store.query_by_scope(scoped_filter(actor).for_year(year))
    if not records:
        raise NotFoundError("Records for year", year)

    by_type = {}
    for record in records:
        by_type.setdefault(record.record_type, []).append(record)

    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for record_type in RECORD_TYPE_LABELS:
            rows = by_type.get(record_type)
            if not rows:
                continue
            rows = sorted(rows, key=lambda r: r.id)
            zf.writestr(f"{record_type}_{year}.xlsx", build_workbook(rows, record_type))
    buf.seek(0)

    logger.info(
        "Exported %d record(s) for %s", len(records), year,
        extra={"actor_id": actor.id, "company": actor.company},
    )
    return buf, f"records_{year}.zip"
