from datetime import datetime, timedelta, timezone

from app.exhibit.models import TransferRecord
from app.exhibit.modules.report.export import (
    HEADERS,
    build_report_workbook,
    column_width,
    export_filename,
    format_utc,
)


def _record(**kw):
    base = dict(
        id=1,
        type="DL",
        ip="10.1.1.1",
        timestamp_utc=datetime(2024, 1, 2, 3, 4, 5),
        file_name="evidence.zip",
        new_file_name=None,
        hash="h",
        is_report=True,
        is_highlighted=False,
    )
    base.update(kw)
    return TransferRecord(**base)


def test_empty_export_has_styled_header_only():
    sheet = build_report_workbook([]).active
    assert sheet.title == "Report"
    assert sheet.max_row == 1
    assert [c.value for c in sheet[1]] == list(HEADERS)
    for cell in sheet[1]:
        assert cell.font.bold
        assert cell.fill.fill_type == "solid"
        assert cell.fill.fgColor.rgb == "00D3D3D3"
        assert cell.alignment.horizontal == "center"
        assert cell.border.top.style == "thin"
    assert sheet.freeze_panes == "A2"


def test_rows_use_renamed_filename_when_present():
    sheet = build_report_workbook(
        [_record(), _record(id=2, new_file_name="Exhibit A.zip", ip=None)]
    ).active
    assert [c.value for c in sheet[2]] == [1, "DL", "10.1.1.1", "01/02/2024 03:04:05", "evidence.zip"]
    assert sheet.cell(row=3, column=5).value == "Exhibit A.zip"
    assert sheet.cell(row=3, column=3).border.left.style == "thin"


def test_column_widths_are_bounded():
    sheet = build_report_workbook([_record(file_name="x" * 200)]).active
    assert sheet.column_dimensions["A"].width == 10
    assert sheet.column_dimensions["E"].width == 60
    # "IP Address" is 10 characters, longer than the value below it.
    assert sheet.column_dimensions["C"].width == 12


def test_column_width_ignores_blanks():
    assert column_width(["", None, "abc"]) == 10
    assert column_width(["a" * 20]) == 22


def test_format_utc_converts_aware_values():
    eastern = timezone(timedelta(hours=-5))
    assert format_utc(datetime(2024, 1, 1, 22, 0, 0, tzinfo=eastern)) == "01/02/2024 03:00:00"
    assert format_utc(datetime(2024, 12, 31, 23, 59, 59)) == "12/31/2024 23:59:59"
    assert format_utc(None) == ""


def test_export_filename_is_filesystem_safe():
    name = export_filename(datetime(2024, 3, 9, 14, 5, 7))
    assert name == "Report_2024-03-09T14-05-07.xlsx"
    assert ":" not in export_filename()
