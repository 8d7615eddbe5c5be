"""
tests/test_migrations.py — Alembic environment and initial schema
==================================================================
"""

from __future__ import annotations

from pathlib import Path

import pytest
from sqlalchemy import create_engine, inspect

from alembic import command
from alembic.config import Config

ROOT = Path(__file__).resolve().parents[1]

TABLES = {
    "players",
    "seasons",
    "uploads",
    "snapshots",
    "player_snapshots",
    "name_changes",
    "alliance_changes",
}


@pytest.fixture
def alembic_config(tmp_path, monkeypatch):
    db_path = tmp_path / "realmstats.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")
    cfg = Config()
    cfg.set_main_option("script_location", str(ROOT / "alembic"))
    return cfg, f"sqlite:///{db_path}"


class TestMigrations:
    def test_upgrade_creates_schema_from_database_url(self, alembic_config):
        cfg, url = alembic_config
        command.upgrade(cfg, "head")

        inspector = inspect(create_engine(url))
        assert TABLES <= set(inspector.get_table_names())
        player_indexes = {ix["name"] for ix in inspector.get_indexes("players")}
        assert {"ix_players_has_left_realm", "ix_players_last_seen_at"} <= player_indexes

    def test_downgrade_drops_schema(self, alembic_config):
        cfg, url = alembic_config
        command.upgrade(cfg, "head")
        command.downgrade(cfg, "base")

        assert not TABLES & set(inspect(create_engine(url)).get_table_names())
