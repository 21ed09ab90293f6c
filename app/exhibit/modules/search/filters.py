from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time
from typing import Any, Mapping

from sqlalchemy import ColumnElement

from app.exhibit.errors import ValidationError
from app.exhibit.models import TransferRecord

START_OF_DAY = time(0, 0, 0)
# Stops short of the next midnight so the following day's first tick is excluded.
END_OF_DAY = time(23, 59, 59, 997000)

DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y")
DATETIME_FORMATS = (
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%dT%H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%dT%H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
)


@dataclass(frozen=True)
class SearchFilters:
    filename: str = ""
    start: datetime | None = None
    end: datetime | None = None

    @property
    def has_range(self) -> bool:
        return self.start is not None and self.end is not None

    def as_log_dict(self) -> dict[str, Any]:
        return {
            "filename": self.filename,
            "start": self.start.isoformat(sep=" ") if self.start else None,
            "end": self.end.isoformat(sep=" ") if self.end else None,
        }


def normalize_text(s: str | None) -> str:
    return (s or "").strip()


def parse_bound(raw: str | None, *, is_end: bool) -> datetime | None:
    """
    Parse one side of the time range.

    Date-only input is padded to the start or end of that day. Offsets are not
    accepted; every bound is read as UTC.
    """
    value = normalize_text(raw)
    if not value:
        return None
    if value.endswith("Z"):
        value = value[:-1]

    for fmt in DATETIME_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    for fmt in DATE_FORMATS:
        try:
            day = datetime.strptime(value, fmt).date()
        except ValueError:
            continue
        return datetime.combine(day, END_OF_DAY if is_end else START_OF_DAY)

    side = "end" if is_end else "start"
    raise ValidationError(f"Invalid {side} date: {raw!r}. Use YYYY-MM-DD or YYYY-MM-DD HH:MM:SS.")


def build_filters(filename: str | None, start_date: str | None, end_date: str | None) -> SearchFilters:
    """Validate raw search inputs and return normalized filters."""
    name = normalize_text(filename)
    has_start = bool(normalize_text(start_date))
    has_end = bool(normalize_text(end_date))

    if not name and not has_start and not has_end:
        raise ValidationError("Please enter either a filename or date range.")
    if has_start != has_end:
        raise ValidationError("Please enter both start and end dates.")

    start = parse_bound(start_date, is_end=False)
    end = parse_bound(end_date, is_end=True)
    if start is not None and end is not None and start > end:
        raise ValidationError("Start date must be before or equal to end date.")

    return SearchFilters(filename=name, start=start, end=end)


def parse_search_args(args: Mapping[str, str]) -> SearchFilters:
    # `caseNumber` is the field name older clients send.
    filename = args.get("filename")
    if filename is None:
        filename = args.get("caseNumber")
    return build_filters(filename, args.get("startDate"), args.get("endDate"))


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def filter_conditions(filters: SearchFilters) -> list[ColumnElement[bool]]:
    """Conditions ANDed onto the search query. Values are always bound parameters."""
    conditions: list[ColumnElement[bool]] = [TransferRecord.is_report == False]  # noqa: E712
    if filters.filename:
        like = f"%{_escape_like(filters.filename)}%"
        conditions.append(TransferRecord.file_name.ilike(like, escape="\\"))
    if filters.start is not None:
        conditions.append(TransferRecord.timestamp_utc >= filters.start)
    if filters.end is not None:
        conditions.append(TransferRecord.timestamp_utc <= filters.end)
    return conditions
