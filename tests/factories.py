"""
tests/factories.py — Spreadsheet rows, parsed uploads and JWTs for tests
=========================================================================
"""

from __future__ import annotations

import io
from datetime import UTC, datetime

import jwt
import pandas as pd

from realmstats.constants import SPREADSHEET_COLUMNS
from realmstats.services.upload_service import FileInfo, ParsedUpload, PlayerRow, parse_frame

# ---------------------------------------------------------------------------
# Spreadsheet builders
# ---------------------------------------------------------------------------
HEADER = [
    "Lord ID", "Name", "Division", "Alliance ID", "Alliance Tag", "Current Power",
    "Power", "Merits", "Units Killed", "Units Dead", "Units Healed",
    "T1 Kills", "T2 Kills", "T3 Kills", "T4 Kills", "T5 Kills",
    "Building Power", "Hero Power", "Legion Power", "Tech Power",
    "Victories", "Defeats", "City Sieges", "Scouted", "Helps Given",
    "Gold", "Gold Spent", "Wood", "Wood Spent", "Ore", "Ore Spent",
    "Mana", "Mana Spent", "Gems", "Gems Spent",
    "Resources Given", "Resources Given Count", "City Level", "Faction",
]
assert len(HEADER) == len(SPREADSHEET_COLUMNS)


def sheet_row(
    lord_id,
    name="Player",
    alliance_tag="ABC",
    power=20_000_000,
    *,
    alliance_id="9001",
    **overrides,
) -> list:
    """One raw spreadsheet row in column order; unspecified counters are 0."""
    values = {name_: 0 for name_, _ in SPREADSHEET_COLUMNS}
    values.update(
        lord_id=lord_id,
        name=name,
        division=1,
        alliance_id=alliance_id,
        alliance_tag=alliance_tag,
        current_power=power,
        power=power,
        city_level=25,
        faction="Wilderness",
    )
    values.update(overrides)
    return [values[name_] for name_, _ in SPREADSHEET_COLUMNS]


def sheet_frame(rows: list[list]) -> pd.DataFrame:
    """Header-less frame as ``pd.read_excel(header=None)`` returns it."""
    return pd.DataFrame([HEADER, *rows], dtype=object)


def workbook_bytes(rows: list[list], sheet_name: str = "671", extra_sheets=()) -> bytes:
    """Serialize rows into an .xlsx with the roster on *sheet_name*."""
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        for extra in extra_sheets:
            pd.DataFrame([["summary"]]).to_excel(
                writer, sheet_name=extra, header=False, index=False
            )
        pd.DataFrame([HEADER, *rows]).to_excel(
            writer, sheet_name=sheet_name, header=False, index=False
        )
    return buffer.getvalue()


def make_rows(specs) -> list[PlayerRow]:
    """``[(lord_id, name, alliance_tag, power), ...]`` → parsed rows."""
    return parse_frame(sheet_frame([sheet_row(*spec) for spec in specs]))


def make_upload(timestamp: datetime, specs, kingdom: str = "671") -> ParsedUpload:
    return upload_from_sheet(timestamp, [sheet_row(*spec) for spec in specs], kingdom)


def upload_from_sheet(timestamp: datetime, rows: list[list], kingdom: str = "671") -> ParsedUpload:
    """Parsed upload from raw ``sheet_row`` lists (for per-column overrides)."""
    filename = f"{kingdom}_{timestamp:%Y%m%d_%H%M}utc.xlsx"
    return ParsedUpload(
        file_info=FileInfo(kingdom=kingdom, timestamp=timestamp, filename=filename),
        rows=parse_frame(sheet_frame(rows)),
    )


def utc(year, month, day, hour=0, minute=0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------
def make_token(sub: str = "user-1", role: str = "VIEWER", **claims) -> str:
    from realmstats.api.deps import JWT_ALGORITHM, JWT_SECRET

    return jwt.encode(
        {"sub": sub, "username": "Fixture", "role": role, **claims},
        JWT_SECRET,
        algorithm=JWT_ALGORITHM,
    )


def make_admin_token(sub: str = "admin-1") -> str:
    return make_token(sub=sub, role="ADMIN")


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}
