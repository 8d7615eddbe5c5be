"""
realmstats.engine.realm — Left-Realm Classification Rules
==========================================================

Dual-condition heuristic combining recency and a power floor.

Rule A (mark as left)
    not flagged, last seen before ``at - stale_after``, last power >= floor.
Rule B (unmark mis-flagged)
    flagged, last power < floor.

Low-power accounts going stale are assumed to be inactive or merged rather
than gone, so only stale accounts at or above the floor are flagged.  Both
rules use the same floor in opposite directions; a player hovering right at
the floor can flip between runs.  That matches the observed behavior and is
kept as is (no buffer zone).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime, timedelta

from realmstats.constants import (
    DEFAULT_POWER_FLOOR,
    DEFAULT_STALE_AFTER_DAYS,
    as_utc,
)

__all__ = ["PlayerStanding", "RealmRules", "RealmVerdict", "classify"]


class RealmVerdict(enum.StrEnum):
    KEEP = "keep"
    MARK_LEFT = "mark_left"
    CLEAR_LEFT = "clear_left"


@dataclass(frozen=True, slots=True)
class RealmRules:
    power_floor: int = DEFAULT_POWER_FLOOR
    stale_after: timedelta = timedelta(days=DEFAULT_STALE_AFTER_DAYS)

    def cutoff(self, at: datetime) -> datetime:
        return as_utc(at) - self.stale_after


@dataclass(frozen=True, slots=True)
class PlayerStanding:
    """What the inferencer needs to know about one player."""

    lord_id: str
    has_left_realm: bool
    last_seen_at: datetime | None
    last_power: int | None  # None → no snapshot rows at all


def classify(standing: PlayerStanding, at: datetime, rules: RealmRules) -> RealmVerdict:
    """Return the transition (if any) the rules demand for *standing*."""
    if standing.last_power is None:
        return RealmVerdict.KEEP

    if standing.has_left_realm:
        if standing.last_power < rules.power_floor:
            return RealmVerdict.CLEAR_LEFT
        return RealmVerdict.KEEP

    last_seen = as_utc(standing.last_seen_at)
    if last_seen is None:
        return RealmVerdict.KEEP
    if last_seen < rules.cutoff(at) and standing.last_power >= rules.power_floor:
        return RealmVerdict.MARK_LEFT
    return RealmVerdict.KEEP
