"""
realmstats.services.player_registry — Current-state player records
===================================================================

Exactly one :class:`Player` per lordId.  The registry holds live state
(current name / alliance, last seen, left-realm flag); name and alliance
history live in their own append-only tables.

Per-row flow during ingestion (:meth:`PlayerRegistry.observe`):

    1. First appearance → create the player, no history events.
    2. Otherwise, if the observation is not older than ``last_seen_at``,
       run the change detector against the registry values, append history,
       then overwrite the current values.
    3. Advance ``last_seen_at`` (never backwards).

Left-realm flags only move through :func:`flag_left` / :func:`unflag_left`,
called by the realm sweep, the admin setters, or a player reappearing in a
snapshot newer than the one that flagged them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from realmstats.constants import as_utc
from realmstats.database.engine import get_session
from realmstats.database.models import AllianceChange, NameChange, Player
from realmstats.engine.changes import ChangeSet, Observation, detect_changes, normalize
from realmstats.errors import DatabaseError, NotFoundError
from realmstats.services.upload_service import PlayerRow

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Flag transitions
# ---------------------------------------------------------------------------
def flag_left(player: Player, at: datetime) -> bool:
    """Mark *player* as gone.  Returns False if already flagged."""
    if player.has_left_realm:
        return False
    player.has_left_realm = True
    player.left_realm_at = at
    return True


def unflag_left(player: Player) -> bool:
    """Clear the left-realm flag.  Returns False if it wasn't set."""
    if not player.has_left_realm and player.left_realm_at is None:
        return False
    player.has_left_realm = False
    player.left_realm_at = None
    return True


@dataclass(frozen=True, slots=True)
class Observed:
    """Outcome of feeding one spreadsheet row to the registry."""

    player: Player
    created: bool
    changes: ChangeSet
    returned: bool = False


class PlayerRegistry:
    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    # ------------------------------------------------------------------
    # Session-scoped operations (used inside ingestion batches)
    # ------------------------------------------------------------------
    def upsert(self, session: Session, row: PlayerRow, seen_at: datetime) -> tuple[Player, bool]:
        """Create the player on first sight, else only advance ``last_seen_at``.

        Name and alliance are left alone for existing players; that is
        :meth:`apply_observation`'s job.
        """
        player = session.get(Player, row.lord_id)
        if player is None:
            player = Player(
                lord_id=row.lord_id,
                current_name=normalize(row.name) or "",
                current_alliance_tag=normalize(row.alliance_tag),
                current_alliance_id=normalize(row.alliance_id),
                has_left_realm=False,
                last_seen_at=seen_at,
            )
            session.add(player)
            return player, True

        last_seen = as_utc(player.last_seen_at)
        if last_seen is None or last_seen < as_utc(seen_at):
            player.last_seen_at = seen_at
        return player, False

    def apply_observation(
        self,
        session: Session,
        player: Player,
        row: PlayerRow,
        at: datetime,
    ) -> ChangeSet:
        """Diff *row* against the registry, record history, update current values."""
        known = Observation(
            name=player.current_name,
            alliance_tag=player.current_alliance_tag,
            alliance_id=player.current_alliance_id,
        )
        observed = Observation(
            name=row.name,
            alliance_tag=row.alliance_tag,
            alliance_id=row.alliance_id,
        )
        changes = detect_changes(player.lord_id, known, observed, at)

        if changes.name_change is not None:
            dto = changes.name_change
            session.add(NameChange(
                player_id=dto.player_id,
                old_name=dto.old_name,
                new_name=dto.new_name,
                detected_at=dto.detected_at,
            ))
            logger.debug("Name change %s: %r → %r", dto.player_id, dto.old_name, dto.new_name)

        if changes.alliance_change is not None:
            dto = changes.alliance_change
            session.add(AllianceChange(
                player_id=dto.player_id,
                old_alliance=dto.old_alliance,
                old_alliance_id=dto.old_alliance_id,
                new_alliance=dto.new_alliance,
                new_alliance_id=dto.new_alliance_id,
                detected_at=dto.detected_at,
            ))
            logger.debug(
                "Alliance change %s: %r → %r", dto.player_id, dto.old_alliance, dto.new_alliance
            )

        player.current_name = normalize(row.name) or ""
        player.current_alliance_tag = normalize(row.alliance_tag)
        player.current_alliance_id = normalize(row.alliance_id)
        return changes

    def observe(self, session: Session, row: PlayerRow, seen_at: datetime) -> Observed:
        """Registry update for one ingested row (detect → update → last seen)."""
        player = session.get(Player, row.lord_id)
        if player is None:
            player, _ = self.upsert(session, row, seen_at)
            return Observed(player=player, created=True, changes=ChangeSet())

        last_seen = as_utc(player.last_seen_at)
        changes = ChangeSet()
        if last_seen is None or last_seen <= as_utc(seen_at):
            changes = self.apply_observation(session, player, row, seen_at)
        else:
            logger.debug(
                "Row for %s at %s predates last_seen_at %s, history unchanged",
                row.lord_id, seen_at.isoformat(), last_seen.isoformat(),
            )

        returned = False
        left_at = as_utc(player.left_realm_at)
        if player.has_left_realm and (left_at is None or left_at <= as_utc(seen_at)):
            returned = unflag_left(player)
            logger.info("Player %s is back in the realm (seen %s)", row.lord_id, seen_at.isoformat())

        self.upsert(session, row, seen_at)
        return Observed(player=player, created=False, changes=changes, returned=returned)

    # ------------------------------------------------------------------
    # Standalone operations
    # ------------------------------------------------------------------
    def get(self, lord_id: str) -> Player:
        try:
            with get_session(self._engine) as session:
                player = session.get(Player, lord_id)
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Failed to find player by lordId: {lord_id}", exc) from exc
        if player is None:
            raise NotFoundError("Player", lord_id)
        return player

    def mark_left_realm(self, lord_id: str, at: datetime) -> Player:
        """Idempotent: an already-flagged player keeps its original ``left_realm_at``."""
        return self._transition(lord_id, lambda player: flag_left(player, at))

    def clear_left_realm(self, lord_id: str) -> Player:
        return self._transition(lord_id, unflag_left)

    def _transition(self, lord_id: str, apply) -> Player:
        try:
            with get_session(self._engine) as session:
                player = session.get(Player, lord_id)
                if player is None:
                    raise NotFoundError("Player", lord_id)
                if apply(player):
                    logger.info(
                        "Player %s realm status → has_left_realm=%s", lord_id, player.has_left_realm
                    )
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Failed to update realm status for player: {lord_id}", exc) from exc
        return player
