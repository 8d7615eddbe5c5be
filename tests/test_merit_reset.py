"""
tests/test_merit_reset.py — Season-start merit wipe heuristic
==============================================================
"""

from __future__ import annotations

from realmstats.engine.merits import MeritResetRules, compare_merits, is_merit_reset


def _merits(values: list[int]) -> dict[str, int]:
    return {f"L{i:02d}": value for i, value in enumerate(values)}


class TestCompareMerits:
    def test_counts_decreases_and_significant_drops(self):
        previous = _merits([1_000, 1_000, 500_000, 300])
        current = _merits([900, 400, 450_000, 300])

        drop = compare_merits(previous, current)

        assert drop.shared == 4
        assert drop.decreased == 3
        # 600 of 1,000 is over half; 50,000 of 500,000 is neither rule
        assert drop.significant == 1
        assert drop.total_drop == 100 + 600 + 50_000

    def test_only_shared_players_count(self):
        drop = compare_merits({"a": 10, "b": 10}, {"b": 0, "c": 0})
        assert drop.shared == 1
        assert drop.decreased == 1

    def test_absolute_drop_is_significant(self):
        drop = compare_merits({"a": 1_000_000}, {"a": 850_000})
        assert drop.significant == 1


class TestIsMeritReset:
    def test_widespread_wipe(self):
        assert is_merit_reset(_merits([200_000] * 12), _merits([1_000] * 12))

    def test_too_few_shared_players(self):
        assert not is_merit_reset(_merits([200_000] * 9), _merits([0] * 9))

    def test_small_dips_are_not_a_reset(self):
        assert not is_merit_reset(_merits([200_000] * 12), _merits([190_000] * 12))

    def test_thresholds_are_strict(self):
        # 7 of 10 players wiped is exactly 70%, not more
        previous = _merits([100_000] * 10)
        current = _merits([0] * 7 + [100_000] * 3)
        assert not is_merit_reset(previous, current)

        current = _merits([0] * 8 + [100_000] * 2)
        assert is_merit_reset(previous, current)

    def test_custom_rules(self):
        rules = MeritResetRules(min_shared_players=2)
        assert is_merit_reset(_merits([500, 500]), _merits([0, 0]), rules)
