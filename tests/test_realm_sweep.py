"""
tests/test_realm_sweep.py — Left-realm sweep over the player population
========================================================================
Seeds players through the ingestion pipeline, then runs the sweep at a
chosen evaluation time.
"""

from __future__ import annotations

from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from factories import make_upload, utc
from realmstats.constants import as_utc
from realmstats.database.models import Player
from realmstats.engine.realm import RealmRules
from realmstats.services import realm_status_service
from realmstats.services.ingestion_service import IngestionPipeline
from realmstats.services.player_registry import PlayerRegistry
from realmstats.services.realm_status_service import run_realm_sweep

T = utc(2025, 8, 1, 12)


def _ingest(engine, at, specs):
    return IngestionPipeline(engine).ingest_parsed(make_upload(at, specs), "admin-1")


def _player(engine, lord_id) -> Player:
    return PlayerRegistry(engine).get(lord_id)


# ===========================================================================
# Concrete scenarios
# ===========================================================================
class TestScenarios:
    def test_weak_stale_player_is_not_marked(self, db_engine):
        _ingest(db_engine, T, [("X", "Xavier", "ABC", 5_000_000)])
        player = _player(db_engine, "X")
        assert player.has_left_realm is False
        assert as_utc(player.last_seen_at) == T

        result = run_realm_sweep(db_engine, at=T + timedelta(days=8))

        assert result.marked_left == []
        assert _player(db_engine, "X").has_left_realm is False

    def test_strong_stale_player_is_marked(self, db_engine):
        _ingest(db_engine, T, [("Y", "Yara", "ABC", 50_000_000)])
        at = T + timedelta(days=8)

        result = run_realm_sweep(db_engine, at=at)

        assert [p.lord_id for p in result.marked_left] == ["Y"]
        assert result.marked_left[0].last_power == 50_000_000
        player = _player(db_engine, "Y")
        assert player.has_left_realm is True
        assert as_utc(player.left_realm_at) == at

    def test_flagged_weak_player_is_cleared(self, db_engine):
        _ingest(db_engine, T, [("Z", "Zed", "ABC", 2_000_000)])
        PlayerRegistry(db_engine).mark_left_realm("Z", T + timedelta(days=1))

        result = run_realm_sweep(db_engine, at=T + timedelta(days=2))

        assert [p.lord_id for p in result.cleared] == ["Z"]
        player = _player(db_engine, "Z")
        assert player.has_left_realm is False
        assert player.left_realm_at is None


# ===========================================================================
# Properties
# ===========================================================================
class TestSweepProperties:
    def _seed(self, engine):
        _ingest(engine, T, [
            ("A", "Active", "ABC", 40_000_000),
            ("B", "Stale strong", "ABC", 40_000_000),
            ("C", "Stale weak", "ABC", 1_000_000),
            ("D", "Flagged weak", "ABC", 3_000_000),
        ])
        _ingest(engine, T + timedelta(days=9), [("A", "Active", "ABC", 41_000_000)])
        PlayerRegistry(engine).mark_left_realm("D", T + timedelta(days=2))

    def test_second_run_changes_nothing(self, db_engine):
        self._seed(db_engine)
        at = T + timedelta(days=10)

        run_realm_sweep(db_engine, at=at)
        second = run_realm_sweep(db_engine, at=at)

        assert second.changed == 0

    def test_no_violations_remain_after_sweep(self, db_engine):
        self._seed(db_engine)
        at = T + timedelta(days=10)
        rules = RealmRules()
        run_realm_sweep(db_engine, at=at, rules=rules)

        with Session(db_engine) as session:
            players = {p.lord_id: p for p in session.scalars(select(Player))}
        assert players["A"].has_left_realm is False
        assert players["B"].has_left_realm is True
        assert players["C"].has_left_realm is False
        assert players["D"].has_left_realm is False

    def test_latest_snapshot_power_is_used(self, db_engine):
        _ingest(db_engine, T, [("P", "Grower", "ABC", 50_000_000)])
        _ingest(db_engine, T + timedelta(days=1), [("P", "Grower", "ABC", 4_000_000)])

        result = run_realm_sweep(db_engine, at=T + timedelta(days=20))

        assert result.marked_left == []

    def test_player_without_rows_is_ignored(self, db_engine):
        with Session(db_engine) as session:
            session.add(Player(lord_id="N", current_name="Nobody", last_seen_at=T))
            session.commit()

        result = run_realm_sweep(db_engine, at=T + timedelta(days=30))

        assert result.checked == 1
        assert result.changed == 0

    def test_report_shape(self, db_engine):
        _ingest(db_engine, T, [("Y", "Yara", "ABC", 50_000_000)])
        body = run_realm_sweep(db_engine, at=T + timedelta(days=8)).to_dict()

        assert body["should_have_been_marked"] == 1
        assert body["newly_marked_as_left"] == [
            {"lord_id": "Y", "name": "Yara", "last_power": 50_000_000}
        ]
        assert body["incorrectly_marked_count"] == 0
        assert body["corrected_to_active"] == []
        assert body["errors"] == []


# ===========================================================================
# Failure isolation
# ===========================================================================
class TestFailureIsolation:
    def test_one_failing_player_does_not_stop_the_sweep(self, db_engine, monkeypatch):
        _ingest(db_engine, T, [
            ("Y1", "First", "ABC", 50_000_000),
            ("Y2", "Second", "ABC", 60_000_000),
        ])
        real_flag_left = realm_status_service.flag_left

        def flaky_flag_left(player, at):
            if player.lord_id == "Y1":
                raise RuntimeError("simulated write failure")
            return real_flag_left(player, at)

        monkeypatch.setattr(realm_status_service, "flag_left", flaky_flag_left)

        result = run_realm_sweep(db_engine, at=T + timedelta(days=8))

        assert [p.lord_id for p in result.marked_left] == ["Y2"]
        assert result.errors == [{"lord_id": "Y1", "error": "simulated write failure"}]
        assert _player(db_engine, "Y1").has_left_realm is False
        assert _player(db_engine, "Y2").has_left_realm is True
