"""
realmstats.constants — Shared Constants & Helpers
==================================================

Single source of truth for ingestion defaults, realm-status thresholds and
the spreadsheet column layout.  Import from here instead of duplicating in
services and routes.
"""

from __future__ import annotations

from datetime import UTC, datetime

# ---------------------------------------------------------------------------
# Ingestion defaults (overridable in config.yaml → ingestion)
# ---------------------------------------------------------------------------
DEFAULT_BATCH_SIZE = 20
DEFAULT_TX_MAX_WAIT_SECONDS = 10.0
DEFAULT_TX_TIMEOUT_SECONDS = 30.0
DEFAULT_MAX_UPLOAD_MB = 25

# ---------------------------------------------------------------------------
# Realm-status heuristic (overridable in config.yaml → realm_status)
# ---------------------------------------------------------------------------
DEFAULT_POWER_FLOOR = 10_000_000
DEFAULT_STALE_AFTER_DAYS = 7

# ---------------------------------------------------------------------------
# Spreadsheet layout: positional, lordId in column 1
# ---------------------------------------------------------------------------
FALLBACK_SHEET_NAMES: tuple[str, ...] = ("671", "Data")
FALLBACK_SHEET_INDEX = 2  # exports usually put the roster on the third sheet

# Field name → kind.  Order matters: it IS the column order.
#   "text"   : stripped string, empty → None
#   "int"    : small counter, unparseable → 0
#   "bigint" : large counter, unparseable → 0
SPREADSHEET_COLUMNS: tuple[tuple[str, str], ...] = (
    ("lord_id", "text"),
    ("name", "text"),
    ("division", "int"),
    ("alliance_id", "text"),
    ("alliance_tag", "text"),
    ("current_power", "bigint"),
    ("power", "bigint"),
    ("merits", "bigint"),
    ("units_killed", "bigint"),
    ("units_dead", "bigint"),
    ("units_healed", "bigint"),
    ("t1_kill_count", "bigint"),
    ("t2_kill_count", "bigint"),
    ("t3_kill_count", "bigint"),
    ("t4_kill_count", "bigint"),
    ("t5_kill_count", "bigint"),
    ("building_power", "bigint"),
    ("hero_power", "bigint"),
    ("legion_power", "bigint"),
    ("tech_power", "bigint"),
    ("victories", "int"),
    ("defeats", "int"),
    ("city_sieges", "int"),
    ("scouted", "int"),
    ("helps_given", "int"),
    ("gold", "bigint"),
    ("gold_spent", "bigint"),
    ("wood", "bigint"),
    ("wood_spent", "bigint"),
    ("ore", "bigint"),
    ("ore_spent", "bigint"),
    ("mana", "bigint"),
    ("mana_spent", "bigint"),
    ("gems", "bigint"),
    ("gems_spent", "bigint"),
    ("resources_given", "bigint"),
    ("resources_given_count", "int"),
    ("city_level", "int"),
    ("faction", "text"),
)

# Fields copied onto PlayerSnapshot rows (everything except the identity key)
STAT_FIELDS: tuple[str, ...] = tuple(
    name for name, _ in SPREADSHEET_COLUMNS if name != "lord_id"
)


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------
def utcnow() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes.

    SQLite hands back naive values even for ``DateTime(timezone=True)``
    columns; everything stored by this app is UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)
