"""
realmstats.engine.changes — Name / Alliance Change Detection
=============================================================

Pure comparison logic.  No DB I/O inside the engine.

The registry's current values are authoritative: an observation is compared
against what the ``players`` row says *now*, not against the previous
snapshot row, so the check is O(1) per player.

Rules:
  * Values are normalized first: whitespace stripped, empty string → None.
  * Comparison is exact string equality after normalization.
  * None ↔ value transitions ARE changes (joining / leaving an alliance).
  * None → None is NOT a change.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

__all__ = [
    "AllianceChangeDto",
    "ChangeSet",
    "NameChangeDto",
    "Observation",
    "detect_changes",
    "normalize",
]


def normalize(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


@dataclass(frozen=True, slots=True)
class Observation:
    """Name and alliance of a player as seen at one point in time."""

    name: str | None
    alliance_tag: str | None = None
    alliance_id: str | None = None

    def normalized(self) -> Observation:
        return Observation(
            name=normalize(self.name),
            alliance_tag=normalize(self.alliance_tag),
            alliance_id=normalize(self.alliance_id),
        )


@dataclass(frozen=True, slots=True)
class NameChangeDto:
    player_id: str
    old_name: str | None
    new_name: str | None
    detected_at: datetime


@dataclass(frozen=True, slots=True)
class AllianceChangeDto:
    player_id: str
    old_alliance: str | None
    old_alliance_id: str | None
    new_alliance: str | None
    new_alliance_id: str | None
    detected_at: datetime


@dataclass(frozen=True, slots=True)
class ChangeSet:
    """Zero or one event of each kind for a single observation."""

    name_change: NameChangeDto | None = None
    alliance_change: AllianceChangeDto | None = None

    @property
    def has_changes(self) -> bool:
        return self.name_change is not None or self.alliance_change is not None


def detect_changes(
    lord_id: str,
    known: Observation,
    observed: Observation,
    at: datetime,
) -> ChangeSet:
    """Compare *observed* against the registry's *known* values.

    Only the alliance **tag** decides whether an alliance change happened;
    the alliance id is carried along for the history record.
    """
    before = known.normalized()
    after = observed.normalized()

    name_change = None
    if before.name != after.name:
        name_change = NameChangeDto(
            player_id=lord_id,
            old_name=before.name,
            new_name=after.name,
            detected_at=at,
        )

    alliance_change = None
    if before.alliance_tag != after.alliance_tag:
        alliance_change = AllianceChangeDto(
            player_id=lord_id,
            old_alliance=before.alliance_tag,
            old_alliance_id=before.alliance_id,
            new_alliance=after.alliance_tag,
            new_alliance_id=after.alliance_id,
            detected_at=at,
        )

    return ChangeSet(name_change=name_change, alliance_change=alliance_change)
