from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import BigInteger, Boolean, DateTime, Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# SQLite only auto-assigns INTEGER primary keys.
_RecordId = BigInteger().with_variant(Integer, "sqlite")


class TransferRecord(Base):
    """
    One row of the file-transfer log.

    Rows are written by an external ingestion process. This app only reads them
    and toggles `is_report` / `new_file_name`; it never inserts or deletes in
    production. Attribute names are snake_case, column names are the legacy
    PascalCase ones.
    """

    __tablename__ = "Exhibit2Report"

    id: Mapped[int] = mapped_column("Id", _RecordId, primary_key=True)
    device_id: Mapped[int | None] = mapped_column("DId", Integer, nullable=True)
    type: Mapped[str] = mapped_column("Type", String(16), nullable=False, default="")
    ip: Mapped[str] = mapped_column("IP", String(64), nullable=False, default="")
    timestamp_utc: Mapped[datetime] = mapped_column("UTC", DateTime(timezone=False), nullable=False)
    file_name: Mapped[str] = mapped_column("FileName", String(1024), nullable=False)
    new_file_name: Mapped[str | None] = mapped_column("NewFilename", String(1024), nullable=True)
    hash: Mapped[str] = mapped_column("Hash", String(256), nullable=False, default="")
    is_report: Mapped[bool] = mapped_column("IsReport", Boolean, nullable=False, default=False)
    is_highlighted: Mapped[bool] = mapped_column("IsYellow", Boolean, nullable=False, default=False)
    ip_type: Mapped[str | None] = mapped_column("IPType", String(32), nullable=True)

    @property
    def effective_file_name(self) -> str:
        return self.new_file_name or self.file_name

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "deviceId": self.device_id,
            "type": self.type,
            "ip": self.ip,
            "timestampUtc": self.timestamp_utc.isoformat() if self.timestamp_utc else None,
            "fileName": self.file_name,
            "newFileName": self.new_file_name,
            "effectiveFileName": self.effective_file_name,
            "hash": self.hash,
            "isReport": bool(self.is_report),
            "isHighlighted": bool(self.is_highlighted),
            "ipType": self.ip_type,
        }

    def __repr__(self) -> str:
        return f"<TransferRecord id={self.id} file={self.file_name!r} is_report={self.is_report}>"
