from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone
from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

from app.exhibit.models import TransferRecord

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
SHEET_TITLE = "Report"
HEADERS = ("ID", "Type", "IP Address", "UTC Date", "Filename")
MIN_COLUMN_WIDTH = 10
MAX_COLUMN_WIDTH = 60
COLUMN_PADDING = 2
HEADER_ROW_HEIGHT = 20

HEADER_FONT = Font(bold=True, color="000000")
HEADER_FILL = PatternFill(fill_type="solid", start_color="D3D3D3", end_color="D3D3D3")
HEADER_ALIGNMENT = Alignment(horizontal="center", vertical="center")
_THIN = Side(style="thin")
CELL_BORDER = Border(top=_THIN, left=_THIN, bottom=_THIN, right=_THIN)


def format_utc(value: datetime | None) -> str:
    """MM/DD/YYYY HH:MM:SS, 24-hour, UTC. Naive values are already UTC."""
    if value is None:
        return ""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.strftime("%m/%d/%Y %H:%M:%S")


def report_row(record: TransferRecord) -> list:
    return [
        record.id,
        record.type,
        record.ip,
        format_utc(record.timestamp_utc),
        record.effective_file_name,
    ]


def column_width(values: Iterable[object]) -> int:
    longest = max((len(str(v)) for v in values if v not in (None, "")), default=0)
    return min(max(longest + COLUMN_PADDING, MIN_COLUMN_WIDTH), MAX_COLUMN_WIDTH)


def build_report_workbook(records: Iterable[TransferRecord]) -> Workbook:
    wb = Workbook()
    sheet = wb.active
    sheet.title = SHEET_TITLE

    sheet.append(list(HEADERS))
    for record in records:
        sheet.append(report_row(record))

    sheet.row_dimensions[1].height = HEADER_ROW_HEIGHT
    for col in range(1, len(HEADERS) + 1):
        cell = sheet.cell(row=1, column=col)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGNMENT

    # Borders only inside the report columns.
    for row in sheet.iter_rows(min_row=1, max_row=sheet.max_row, max_col=len(HEADERS)):
        for cell in row:
            cell.border = CELL_BORDER

    for col in range(1, len(HEADERS) + 1):
        values = [sheet.cell(row=r, column=col).value for r in range(1, sheet.max_row + 1)]
        sheet.column_dimensions[get_column_letter(col)].width = column_width(values)

    sheet.freeze_panes = "A2"
    return wb


def export_filename(now: datetime | None = None) -> str:
    """Report_<ISO timestamp>.xlsx with colons swapped out so it is filesystem-safe."""
    now = now or datetime.now(timezone.utc)
    stamp = now.strftime("%Y-%m-%dT%H:%M:%S").replace(":", "-")
    return f"Report_{stamp}.xlsx"


def render_report_xlsx(records: Iterable[TransferRecord]) -> BytesIO:
    output = BytesIO()
    build_report_workbook(records).save(output)
    output.seek(0)
    return output
