"""
realmstats.services.upload_service — Spreadsheet upload parsing
================================================================

Turns an uploaded kingdom export into canonical :class:`PlayerRow` records.

Filename convention::

    <kingdom>_<YYYYMMDD>_<HHMM>utc.xlsx      e.g. 671_20250810_2040utc.xlsx

The data worksheet is positional: row 1 is a header, column 1 is the
lordId and the remaining 38 columns follow
:data:`realmstats.constants.SPREADSHEET_COLUMNS`.

Nothing here touches the database.  Every rejection is a
:class:`~realmstats.errors.ValidationError` so the pipeline can fail fast
before any Upload record exists.
"""

from __future__ import annotations

import io
import logging
import re
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import pandas as pd

from realmstats.constants import (
    DEFAULT_MAX_UPLOAD_MB,
    FALLBACK_SHEET_INDEX,
    FALLBACK_SHEET_NAMES,
    SPREADSHEET_COLUMNS,
)
from realmstats.errors import ValidationError

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".xlsx"}
FILENAME_PATTERN = re.compile(r"(\d+)_(\d{8})_(\d{4})utc", re.IGNORECASE)


# ---------------------------------------------------------------------------
# Parsed shapes
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class FileInfo:
    kingdom: str
    timestamp: datetime
    filename: str


@dataclass(frozen=True, slots=True)
class PlayerRow:
    """One player's stat vector as read from the spreadsheet.

    ``stats`` holds every column except the lordId, keyed by the
    ``PlayerSnapshot`` column names.
    """

    lord_id: str
    stats: dict[str, Any] = field(default_factory=dict)

    @property
    def name(self) -> str:
        return self.stats.get("name") or ""

    @property
    def alliance_tag(self) -> str | None:
        return self.stats.get("alliance_tag")

    @property
    def alliance_id(self) -> str | None:
        return self.stats.get("alliance_id")

    @property
    def current_power(self) -> int:
        return self.stats.get("current_power", 0)


@dataclass(frozen=True, slots=True)
class ParsedUpload:
    file_info: FileInfo
    rows: list[PlayerRow]

    @property
    def row_count(self) -> int:
        return len(self.rows)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
def validate_upload(
    filename: str | None,
    content: bytes | None,
    max_bytes: int = DEFAULT_MAX_UPLOAD_MB * 1024 * 1024,
) -> None:
    """Reject missing, empty, oversized or non-xlsx uploads."""
    if not filename or content is None:
        raise ValidationError("No file provided")
    if not content:
        raise ValidationError("Uploaded file is empty", {"filename": filename})

    if len(content) > max_bytes:
        raise ValidationError(
            f"File too large: {len(content)} bytes (max {max_bytes // 1024 // 1024}MB)",
            {"filename": filename},
        )

    ext = Path(filename).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise ValidationError(
            f"File type not allowed: {ext!r}. "
            f"Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}",
            {"filename": filename},
        )


def parse_filename(filename: str) -> FileInfo:
    """Extract kingdom and UTC capture time from *filename*."""
    match = FILENAME_PATTERN.search(filename)
    if not match:
        raise ValidationError(
            "Invalid filename format. Expected: 671_YYYYMMDD_HHMMutc.xlsx",
            {"filename": filename},
        )

    kingdom, date_str, time_str = match.groups()
    try:
        timestamp = datetime.strptime(date_str + time_str, "%Y%m%d%H%M").replace(tzinfo=UTC)
    except ValueError as exc:
        raise ValidationError(
            f"Invalid date/time in filename: {date_str}_{time_str}",
            {"filename": filename},
        ) from exc

    return FileInfo(kingdom=kingdom, timestamp=timestamp, filename=filename)


# ---------------------------------------------------------------------------
# Cell helpers
# ---------------------------------------------------------------------------
def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float):
        if pd.isna(value):
            return ""
        if value.is_integer():
            return str(int(value))
    return str(value).strip()


def _cell_int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    text = _cell_text(value).replace(",", "")
    if not text:
        return 0
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return int(Decimal(text))
    except (InvalidOperation, ValueError, OverflowError):
        return 0


def _convert(kind: str, value: Any) -> Any:
    if kind == "text":
        return _cell_text(value) or None
    return _cell_int(value)


# ---------------------------------------------------------------------------
# Sheet → rows
# ---------------------------------------------------------------------------
def parse_frame(frame: pd.DataFrame) -> list[PlayerRow]:
    """Extract player rows from a header-less frame (row 0 is the header).

    Rows without a lordId are skipped.  A lordId seen twice keeps its first
    row; the duplicate is logged and dropped.
    """
    rows: list[PlayerRow] = []
    seen: set[str] = set()
    width = frame.shape[1]

    for position, values in enumerate(frame.itertuples(index=False, name=None)):
        if position == 0:
            continue

        lord_id = _cell_text(values[0]) if width else ""
        if not lord_id:
            continue
        if lord_id in seen:
            logger.warning("Duplicate lordId %s on sheet row %d skipped", lord_id, position + 1)
            continue
        seen.add(lord_id)

        stats: dict[str, Any] = {}
        for index, (name, kind) in enumerate(SPREADSHEET_COLUMNS[1:], start=1):
            stats[name] = _convert(kind, values[index] if index < width else None)
        stats["name"] = stats["name"] or ""
        rows.append(PlayerRow(lord_id=lord_id, stats=stats))

    return rows


def select_data_sheet(sheets: dict[str, pd.DataFrame], kingdom: str) -> pd.DataFrame:
    """Pick the roster sheet: kingdom name, then known names, then the third sheet."""
    for candidate in (kingdom, *FALLBACK_SHEET_NAMES):
        if candidate in sheets:
            return sheets[candidate]

    names = list(sheets)
    if len(names) > FALLBACK_SHEET_INDEX:
        return sheets[names[FALLBACK_SHEET_INDEX]]

    raise ValidationError(
        f"Cannot find data worksheet. Looked for: {kingdom}, "
        f"{', '.join(FALLBACK_SHEET_NAMES)}",
        {"available_sheets": names},
    )


def parse_workbook(
    filename: str,
    content: bytes,
    max_bytes: int = DEFAULT_MAX_UPLOAD_MB * 1024 * 1024,
) -> ParsedUpload:
    """Validate *content* and parse it into a :class:`ParsedUpload`.

    Raises
    ------
    ValidationError
        Bad filename, unreadable workbook, missing data sheet, or no rows.
    """
    validate_upload(filename, content, max_bytes)
    file_info = parse_filename(filename)
    logger.info("Parsing %s (kingdom %s, %d bytes)", filename, file_info.kingdom, len(content))

    try:
        sheets = pd.read_excel(
            io.BytesIO(content),
            sheet_name=None,
            header=None,
            dtype=object,
            engine="openpyxl",
        )
    except Exception as exc:
        raise ValidationError(
            f"Could not read spreadsheet: {exc}", {"filename": filename}
        ) from exc

    frame = select_data_sheet(sheets, file_info.kingdom)
    rows = parse_frame(frame)
    if not rows:
        raise ValidationError("No valid player data found in Excel file", {"filename": filename})

    logger.info("Extracted %d players from %s", len(rows), filename)
    return ParsedUpload(file_info=file_info, rows=rows)
