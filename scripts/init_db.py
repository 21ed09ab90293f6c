"""
Create the Exhibit2Report table in a local development database and
optionally load rows from a CSV export.

The production table is owned by the ingestion process; this script refuses
to run when ENV is production.

Usage:
    DATABASE_URL=sqlite:///exhibit.db python scripts/init_db.py [--csv rows.csv]

CSV columns (header row required): Id, DId, Type, IP, UTC, FileName,
NewFilename, Hash, IsReport, IsYellow, IPType. UTC is YYYY-MM-DD HH:MM:SS.
"""

from __future__ import annotations

import argparse
import csv
import os
import sys
from datetime import datetime
from pathlib import Path

from dotenv import load_dotenv
from sqlalchemy.engine import make_url
from sqlalchemy.orm import Session

# Ensure repo root is on sys.path when running as a script (Windows-friendly).
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.exhibit.db import ConnectionStrategy, create_store_engine  # noqa: E402
from app.exhibit.models import Base, TransferRecord  # noqa: E402

_TRUE = ("1", "true", "yes", "y")


def _opt_int(v: str | None) -> int | None:
    v = (v or "").strip()
    return int(v) if v else None


def _opt_str(v: str | None) -> str | None:
    v = (v or "").strip()
    return v or None


def row_to_record(row: dict[str, str]) -> TransferRecord:
    return TransferRecord(
        id=_opt_int(row.get("Id")),
        device_id=_opt_int(row.get("DId")),
        type=(row.get("Type") or "").strip(),
        ip=(row.get("IP") or "").strip(),
        timestamp_utc=datetime.fromisoformat((row.get("UTC") or "").strip()),
        file_name=(row.get("FileName") or "").strip(),
        new_file_name=_opt_str(row.get("NewFilename")),
        hash=(row.get("Hash") or "").strip(),
        is_report=(row.get("IsReport") or "").strip().lower() in _TRUE,
        is_highlighted=(row.get("IsYellow") or "").strip().lower() in _TRUE,
        ip_type=_opt_str(row.get("IPType")),
    )


def init_db(database_url: str, csv_path: Path | None = None) -> int:
    """Create the table and load `csv_path` if given. Returns the number of rows loaded."""
    engine = create_store_engine(ConnectionStrategy("script", make_url(database_url), 30))
    try:
        Base.metadata.create_all(bind=engine)
        if csv_path is None:
            return 0
        with csv_path.open(newline="", encoding="utf-8") as f:
            records = [row_to_record(row) for row in csv.DictReader(f)]
        with Session(engine) as s, s.begin():
            s.add_all(records)
        return len(records)
    finally:
        engine.dispose()


def main() -> None:
    parser = argparse.ArgumentParser(description="Create a development Exhibit2Report table.")
    parser.add_argument("--csv", type=Path, help="CSV file of rows to load")
    args = parser.parse_args()

    load_dotenv()
    env = (os.environ.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        print("Refusing to create tables with ENV=production.", flush=True)
        sys.exit(1)
    db_url = (os.environ.get("DATABASE_URL") or "").strip()
    if not db_url:
        print("DATABASE_URL is required.", flush=True)
        sys.exit(1)

    loaded = init_db(db_url, args.csv)
    print(f"Initialized database; loaded {loaded} rows.", flush=True)


if __name__ == "__main__":
    main()
