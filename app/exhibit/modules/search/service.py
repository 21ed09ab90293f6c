from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from app.exhibit.errors import StoreQueryError, ValidationError
from app.exhibit.models import TransferRecord
from app.exhibit.modules.search.filters import SearchFilters, filter_conditions

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from sqlalchemy.sql import Select

logger = logging.getLogger(__name__)


def _ordered(stmt: "Select") -> "Select":
    return stmt.order_by(TransferRecord.timestamp_utc.asc(), TransferRecord.id.asc())


def _fetch(s: "Session", stmt: "Select", *, what: str) -> list[TransferRecord]:
    try:
        return list(s.scalars(stmt).all())
    except SQLAlchemyError as e:
        logger.exception("Error getting %s", what)
        s.rollback()
        raise StoreQueryError(f"Failed to fetch {what}") from e


def search_records(s: "Session", filters: SearchFilters) -> list[TransferRecord]:
    """Un-staged records matching `filters`, oldest first."""
    stmt = _ordered(select(TransferRecord).where(*filter_conditions(filters)))
    logger.info("Searching records: %s", filters.as_log_dict())
    records = _fetch(s, stmt, what="records")
    logger.info("Query result count: %d", len(records))
    return records


def get_transactions(s: "Session", filename: str) -> list[TransferRecord]:
    """Every record (staged or not) whose original filename equals `filename`."""
    if not filename:
        raise ValidationError("Filename is required.")
    stmt = _ordered(select(TransferRecord).where(TransferRecord.file_name == filename))
    records = _fetch(s, stmt, what="transactions")
    logger.info("Transactions for %r: %d", filename, len(records))
    return records


def get_transactions_by_ip(s: "Session", ip: str) -> list[TransferRecord]:
    if not ip:
        raise ValidationError("IP is required.")
    stmt = _ordered(select(TransferRecord).where(TransferRecord.ip == ip))
    records = _fetch(s, stmt, what="transactions by IP")
    logger.info("Transactions for IP %s: %d", ip, len(records))
    return records
