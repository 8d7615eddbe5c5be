"""
realmstats.config — YAML Configuration Loader
==============================================

Reads ``config.yaml`` for infrastructure and ingestion tuning (batch size,
transaction bounds, realm-status thresholds).  Secrets and connection
strings (``DATABASE_URL``, ``JWT_SECRET``) stay in the environment.

Usage::

    from realmstats.config import load_config

    cfg = load_config()                  # reads ./config.yaml by default
    print(cfg.ingestion.batch_size)      # 20
    print(cfg.realm_status.power_floor)  # 10000000

Every section is optional; missing keys fall back to the defaults below so
a bare ``app_name`` line is a valid config file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from realmstats.constants import (
    DEFAULT_BATCH_SIZE,
    DEFAULT_MAX_UPLOAD_MB,
    DEFAULT_POWER_FLOOR,
    DEFAULT_STALE_AFTER_DAYS,
    DEFAULT_TX_MAX_WAIT_SECONDS,
    DEFAULT_TX_TIMEOUT_SECONDS,
)


# ---------------------------------------------------------------------------
# Typed settings objects
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class IngestionConfig:
    """Tuning for the upload → snapshot pipeline."""

    batch_size: int = DEFAULT_BATCH_SIZE
    transaction_max_wait_seconds: float = DEFAULT_TX_MAX_WAIT_SECONDS
    transaction_timeout_seconds: float = DEFAULT_TX_TIMEOUT_SECONDS
    max_upload_mb: int = DEFAULT_MAX_UPLOAD_MB

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


@dataclass(frozen=True, slots=True)
class RealmStatusConfig:
    """Thresholds for the left-realm heuristic."""

    power_floor: int = DEFAULT_POWER_FLOOR
    stale_after_days: int = DEFAULT_STALE_AFTER_DAYS


@dataclass(frozen=True, slots=True)
class RealmStatsConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    app_name: str = "RealmStats"
    default_kingdom: str = "671"

    # Dashboard
    dashboard_port: int = 8000

    ingestion: IngestionConfig = field(default_factory=IngestionConfig)
    realm_status: RealmStatusConfig = field(default_factory=RealmStatusConfig)


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def default_config_path() -> Path:
    """Config path from ``REALMSTATS_CONFIG``, else ``./config.yaml``."""
    return Path(os.getenv("REALMSTATS_CONFIG", "config.yaml"))


def load_config(path: str | Path | None = None) -> RealmStatsConfig:
    """Read *path* and return a :class:`RealmStatsConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.  Defaults to
        :func:`default_config_path`.

    Raises
    ------
    FileNotFoundError
        If an explicitly requested file doesn't exist.
    ValueError
        If a numeric setting is out of range.

    When *path* is omitted and the default file is absent, the built-in
    defaults are returned.
    """
    explicit = path is not None
    config_path = Path(path) if explicit else default_config_path()
    if not config_path.exists():
        if explicit:
            raise FileNotFoundError(
                f"Configuration file not found: {config_path.resolve()}\n"
                "Hint: copy config.yaml.example → config.yaml and edit it."
            )
        return RealmStatsConfig()

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    ingestion_raw = raw.get("ingestion") or {}
    realm_raw = raw.get("realm_status") or {}

    ingestion = IngestionConfig(
        batch_size=int(ingestion_raw.get("batch_size", DEFAULT_BATCH_SIZE)),
        transaction_max_wait_seconds=float(
            ingestion_raw.get("transaction_max_wait_seconds", DEFAULT_TX_MAX_WAIT_SECONDS)
        ),
        transaction_timeout_seconds=float(
            ingestion_raw.get("transaction_timeout_seconds", DEFAULT_TX_TIMEOUT_SECONDS)
        ),
        max_upload_mb=int(ingestion_raw.get("max_upload_mb", DEFAULT_MAX_UPLOAD_MB)),
    )
    if ingestion.batch_size < 1:
        raise ValueError(f"ingestion.batch_size must be >= 1, got {ingestion.batch_size}")

    realm_status = RealmStatusConfig(
        power_floor=int(realm_raw.get("power_floor", DEFAULT_POWER_FLOOR)),
        stale_after_days=int(realm_raw.get("stale_after_days", DEFAULT_STALE_AFTER_DAYS)),
    )

    return RealmStatsConfig(
        app_name=raw.get("app_name", "RealmStats"),
        default_kingdom=str(raw.get("default_kingdom", "671")),
        dashboard_port=int(raw.get("dashboard_port", 8000)),
        ingestion=ingestion,
        realm_status=realm_status,
    )
