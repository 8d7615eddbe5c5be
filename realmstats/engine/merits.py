"""
realmstats.engine.merits — Merit Reset Detection
=================================================

Merits reset to (near) zero when a new season starts.  A reset between two
consecutive snapshots shows up as most shared players losing merits, many
of them heavily.

A pair of snapshots is a reset when, over the players present in both:
  * more than 70% lost merits, and
  * more than 30% had a significant drop: more than half of their previous
    merits, or more than 100,000.

Pairs sharing fewer than 10 players are not judged.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

__all__ = ["MeritDrop", "MeritResetRules", "compare_merits", "is_merit_reset"]


@dataclass(frozen=True, slots=True)
class MeritResetRules:
    min_shared_players: int = 10
    decrease_share: float = 0.70
    significant_share: float = 0.30
    significant_fraction: float = 0.5
    significant_absolute: int = 100_000


@dataclass(frozen=True, slots=True)
class MeritDrop:
    shared: int
    decreased: int
    significant: int
    total_drop: int


def compare_merits(
    previous: Mapping[str, int],
    current: Mapping[str, int],
    rules: MeritResetRules = MeritResetRules(),
) -> MeritDrop:
    shared = [lord_id for lord_id in current if lord_id in previous]
    decreased = significant = total_drop = 0
    for lord_id in shared:
        before = previous[lord_id] or 0
        after = current[lord_id] or 0
        if after >= before:
            continue
        drop = before - after
        decreased += 1
        total_drop += drop
        if drop > before * rules.significant_fraction or drop > rules.significant_absolute:
            significant += 1
    return MeritDrop(
        shared=len(shared), decreased=decreased, significant=significant, total_drop=total_drop
    )


def is_merit_reset(
    previous: Mapping[str, int],
    current: Mapping[str, int],
    rules: MeritResetRules = MeritResetRules(),
) -> bool:
    """True when going from *previous* to *current* looks like a season reset."""
    drop = compare_merits(previous, current, rules)
    if drop.shared < rules.min_shared_players:
        return False
    return (
        drop.decreased / drop.shared > rules.decrease_share
        and drop.significant / drop.shared > rules.significant_share
    )
