from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from app.exhibit.errors import NotFoundError, StoreQueryError, ValidationError
from app.exhibit.models import TransferRecord

if TYPE_CHECKING:
    from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

# Id is a BIGINT column.
MAX_RECORD_ID = 2**63 - 1


def normalize_new_file_name(raw: str | None) -> str:
    name = (raw or "").strip()
    if not name:
        raise ValidationError("Filename cannot be empty.")
    return name


def parse_record_id(raw: Any) -> int:
    """Accept ints and digit strings; bools and everything else are rejected."""
    if isinstance(raw, bool):
        raise ValidationError("ID must be an integer.")
    if isinstance(raw, int):
        record_id = raw
    else:
        text = str(raw or "").strip()
        if not text:
            raise ValidationError("ID is required.")
        try:
            record_id = int(text)
        except ValueError as e:
            raise ValidationError("ID must be an integer.") from e
    if record_id <= 0:
        raise ValidationError("ID must be a positive integer.")
    if record_id > MAX_RECORD_ID:
        raise ValidationError("ID is out of range.")
    return record_id


def _apply(s: "Session", record_id: int, values: dict[str, Any], *, action: str) -> None:
    """Run a single-row update and commit it; unknown ids leave the table untouched."""
    stmt = update(TransferRecord).where(TransferRecord.id == record_id).values(**values)
    try:
        result = s.execute(stmt)
        if result.rowcount == 0:
            s.rollback()
            raise NotFoundError(f"Record {record_id} not found.")
        s.commit()
    except SQLAlchemyError as e:
        logger.exception("Error during %s (id=%s)", action, record_id)
        s.rollback()
        raise StoreQueryError(f"Failed to {action}") from e
    logger.info("%s: id=%s values=%s", action, record_id, values)


def stage(s: "Session", record_id: int, new_file_name: str | None) -> None:
    """Rename a record and move it into the report set."""
    name = normalize_new_file_name(new_file_name)
    _apply(s, record_id, {"new_file_name": name, "is_report": True}, action="add to report")


def unstage(s: "Session", record_id: int) -> None:
    """Move a record back to search results. Any rename is kept."""
    _apply(s, record_id, {"is_report": False}, action="remove from report")


def rename_only(s: "Session", record_id: int, new_file_name: str | None) -> None:
    name = normalize_new_file_name(new_file_name)
    _apply(s, record_id, {"new_file_name": name}, action="update filename")


def list_report_records(s: "Session") -> list[TransferRecord]:
    stmt = (
        select(TransferRecord)
        .where(TransferRecord.is_report == True)  # noqa: E712
        .order_by(TransferRecord.timestamp_utc.asc(), TransferRecord.id.asc())
    )
    try:
        records = list(s.scalars(stmt).all())
    except SQLAlchemyError as e:
        logger.exception("Error getting report records")
        s.rollback()
        raise StoreQueryError("Failed to fetch report records") from e
    logger.info("Report records found: %d", len(records))
    return records
