"""
Vintage (gen plan) resolution.

Handles:
- Reading Base-case uploads from the current and archive tables
- Upload-date parsing ("May  1 2018 10:30AM")
- Keeping only the latest upload of each title, newest first
- Picking one vintage by title, or the most recent one
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import pandas as pd

from config import BASE_CASE, UPLOAD_DATE_FORMATS, WHITESPACE_PATTERN
from core.errors import DateParseError, VintageNotFound
from core.sql_builder import vintages_query
from models import ForecastType, SourceTable, VintageRecord, VintageSource

log = logging.getLogger("cpr")

VINTAGE_COLUMNS = ["RecordID", "ForecastID", "UploadDate", "ForecastTitle", "MetaDataCase"]


def parse_upload_date(value: Any, title: Optional[str] = None) -> datetime:
    """
    Parse an UploadDate value.

    Accepts "Mon DD YYYY h:mmAM" with any run of whitespace between parts
    and an optional space before the AM/PM marker. Drivers that already
    return datetimes are passed through.

    Raises:
        DateParseError: If the value matches none of UPLOAD_DATE_FORMATS

    Examples:
        >>> parse_upload_date("May  1 2018 10:30AM")
        datetime.datetime(2018, 5, 1, 10, 30)
    """
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    if isinstance(value, datetime):
        return value
    if not isinstance(value, str):
        raise DateParseError(value, title)

    normalized = WHITESPACE_PATTERN.sub(" ", value.strip())
    for fmt in UPLOAD_DATE_FORMATS:
        try:
            return datetime.strptime(normalized, fmt)
        except ValueError:
            continue
    raise DateParseError(value, title)


def merge_vintages(current_rows: List[Dict[str, Any]], archive_rows: List[Dict[str, Any]]) -> List[VintageRecord]:
    """
    Combine current and archive uploads into one deduplicated list.

    For each ForecastTitle only the upload with the latest timestamp survives,
    regardless of which table it came from. When two uploads of a title share
    the latest timestamp, the first one read wins (current rows are read
    before archive rows). The result is ordered newest first.

    Args:
        current_rows: Rows from the current table (VINTAGE_COLUMNS)
        archive_rows: Rows from the archive table (VINTAGE_COLUMNS)

    Returns:
        List of VintageRecord, one per title, descending by upload time

    Raises:
        DateParseError: If any UploadDate cannot be parsed
    """
    frames = []
    for source, rows in ((SourceTable.CURRENT, current_rows), (SourceTable.ARCHIVE, archive_rows)):
        frame = pd.DataFrame(rows, columns=VINTAGE_COLUMNS)
        frame["Source"] = source
        frames.append(frame)

    combined = pd.concat(frames, ignore_index=True)
    if combined.empty:
        return []

    combined["DateTime"] = [
        parse_upload_date(value, title)
        for value, title in zip(combined["UploadDate"], combined["ForecastTitle"])
    ]

    # Stable sort so ties keep read order before deduplication
    latest = (
        combined.sort_values("DateTime", ascending=False, kind="mergesort")
        .drop_duplicates(subset="ForecastTitle", keep="first")
    )

    return [
        VintageRecord(
            title=str(row.ForecastTitle),
            upload_date=str(row.UploadDate),
            uploaded_at=pd.Timestamp(row.DateTime).to_pydatetime(),
            source=VintageSource(table=row.Source, record_id=int(row.RecordID)),
        )
        for row in latest.itertuples(index=False)
    ]


def resolve_vintages(conn, forecast: ForecastType) -> List[VintageRecord]:
    """Read both data tables for a forecast and return its deduplicated vintages."""
    params = {"metadata_case": BASE_CASE, "forecast_id": forecast.id}
    current_rows = conn.execute(vintages_query(SourceTable.CURRENT, conn.schema_prefix), params)
    archive_rows = conn.execute(vintages_query(SourceTable.ARCHIVE, conn.schema_prefix), params)

    vintages = merge_vintages(current_rows, archive_rows)
    log.info(
        f"📚 {forecast.name}: {len(current_rows)} current + {len(archive_rows)} archive uploads "
        f"-> {len(vintages)} vintages"
    )
    return vintages


def select_vintage(vintages: List[VintageRecord], forecast_name: str, title: Optional[str] = None) -> VintageRecord:
    """
    Pick one vintage by exact title, or the most recent when title is None.

    Raises:
        VintageNotFound: If no vintage matches (or none exist)
    """
    if title is None:
        if not vintages:
            raise VintageNotFound(forecast_name, None)
        return vintages[0]

    for vintage in vintages:
        if vintage.title == title:
            return vintage
    raise VintageNotFound(forecast_name, title)
