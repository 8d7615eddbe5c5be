"""
realmstats.services.realm_status_service — Left-Realm Sweep
============================================================

Applies the rules in :mod:`realmstats.engine.realm` to the whole player
population.  Runs at the end of every ingestion and on demand as the admin
repair operation (``POST /api/admin/fix-left-realm``).

How it works:
    1. Rank each player's snapshot rows by snapshot timestamp and keep the
       newest one's ``current_power`` ("last recorded power").
    2. Load only candidates: flagged players (Rule B) and unflagged players
       whose ``last_seen_at`` is older than the cutoff (Rule A).  Both
       filters hit the ``players`` indexes.
    3. Classify each candidate and apply the transition inside its own
       SAVEPOINT.  One player failing is logged and reported; the sweep
       carries on.

The sweep is idempotent: a second run with no new data changes nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import Engine, and_, false, func, or_, select, true
from sqlalchemy.exc import SQLAlchemyError

from realmstats.config import RealmStatusConfig
from realmstats.constants import utcnow
from realmstats.database.engine import get_session
from realmstats.database.models import Player, PlayerSnapshot, Snapshot
from realmstats.engine.realm import PlayerStanding, RealmRules, RealmVerdict, classify
from realmstats.errors import DatabaseError
from realmstats.services.player_registry import flag_left, unflag_left

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AffectedPlayer:
    lord_id: str
    name: str
    last_power: int

    def to_dict(self) -> dict:
        return {"lord_id": self.lord_id, "name": self.name, "last_power": self.last_power}


@dataclass
class SweepResult:
    evaluated_at: datetime
    power_floor: int
    checked: int = 0
    marked_left: list[AffectedPlayer] = field(default_factory=list)
    cleared: list[AffectedPlayer] = field(default_factory=list)
    errors: list[dict] = field(default_factory=list)

    @property
    def changed(self) -> int:
        return len(self.marked_left) + len(self.cleared)

    def to_dict(self) -> dict:
        return {
            "evaluated_at": self.evaluated_at.isoformat(),
            "power_floor": self.power_floor,
            "checked": self.checked,
            "incorrectly_marked_count": len(self.cleared),
            "corrected_to_active": [p.to_dict() for p in self.cleared],
            "should_have_been_marked": len(self.marked_left),
            "newly_marked_as_left": [p.to_dict() for p in self.marked_left],
            "errors": self.errors,
        }


def rules_from_config(config: RealmStatusConfig | None = None) -> RealmRules:
    config = config or RealmStatusConfig()
    return RealmRules(
        power_floor=config.power_floor,
        stale_after=timedelta(days=config.stale_after_days),
    )


def _latest_power_subquery():
    """``(player_id, current_power)`` of each player's newest snapshot row."""
    ranked = (
        select(
            PlayerSnapshot.player_id.label("player_id"),
            PlayerSnapshot.current_power.label("current_power"),
            func.row_number()
            .over(
                partition_by=PlayerSnapshot.player_id,
                order_by=(Snapshot.timestamp.desc(), Snapshot.id.desc()),
            )
            .label("rn"),
        )
        .join(Snapshot, Snapshot.id == PlayerSnapshot.snapshot_id)
        .subquery()
    )
    return (
        select(ranked.c.player_id, ranked.c.current_power)
        .where(ranked.c.rn == 1)
        .subquery()
    )


def run_realm_sweep(
    engine: Engine,
    at: datetime | None = None,
    rules: RealmRules | None = None,
) -> SweepResult:
    """Evaluate Rule A and Rule B over every player.

    Parameters
    ----------
    at:
        Evaluation time.  Defaults to now (UTC).  Ingestion passes the
        snapshot timestamp.
    rules:
        Floor and staleness window; defaults to 10M / 7 days.
    """
    at = at or utcnow()
    rules = rules or RealmRules()
    cutoff = rules.cutoff(at)
    result = SweepResult(evaluated_at=at, power_floor=rules.power_floor)

    latest = _latest_power_subquery()
    stmt = (
        select(Player, latest.c.current_power)
        .outerjoin(latest, latest.c.player_id == Player.lord_id)
        .where(
            or_(
                Player.has_left_realm == true(),
                and_(
                    Player.has_left_realm == false(),
                    Player.last_seen_at.is_not(None),
                    Player.last_seen_at < cutoff,
                ),
            )
        )
        .order_by(Player.lord_id)
    )

    try:
        with get_session(engine) as session:
            candidates = session.execute(stmt).all()
            result.checked = len(candidates)

            for player, last_power in candidates:
                standing = PlayerStanding(
                    lord_id=player.lord_id,
                    has_left_realm=player.has_left_realm,
                    last_seen_at=player.last_seen_at,
                    last_power=last_power,
                )
                verdict = classify(standing, at, rules)
                if verdict is RealmVerdict.KEEP:
                    continue

                affected = AffectedPlayer(
                    lord_id=player.lord_id,
                    name=player.current_name,
                    last_power=int(last_power or 0),
                )
                try:
                    with session.begin_nested():
                        if verdict is RealmVerdict.MARK_LEFT:
                            flag_left(player, at)
                        else:
                            unflag_left(player)
                        session.flush()
                except Exception as exc:
                    logger.exception("Realm sweep: could not update player %s", player.lord_id)
                    result.errors.append({"lord_id": player.lord_id, "error": str(exc)})
                    continue

                if verdict is RealmVerdict.MARK_LEFT:
                    result.marked_left.append(affected)
                else:
                    result.cleared.append(affected)
    except SQLAlchemyError as exc:
        raise DatabaseError("Realm status sweep failed", exc) from exc

    logger.info(
        "Realm sweep at %s: checked %d, marked %d left, cleared %d, %d errors "
        "(floor=%d, cutoff=%s)",
        at.isoformat(), result.checked, len(result.marked_left), len(result.cleared),
        len(result.errors), rules.power_floor, cutoff.isoformat(),
    )
    return result
