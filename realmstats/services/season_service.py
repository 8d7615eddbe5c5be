"""
realmstats.services.season_service — Season management
=======================================================

Seasons are named competitive windows.  At most one is active; every new
snapshot is attached to the active season at creation time.

:func:`detect_merit_reset` looks for the merit wipe that marks the start of
a new season in the recent snapshots, so an admin knows when to create and
activate the next one.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import datetime

from sqlalchemy import Engine, func, select, true, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from realmstats.constants import as_utc, utcnow
from realmstats.database.engine import get_session
from realmstats.database.models import PlayerSnapshot, Season, Snapshot
from realmstats.engine.merits import MeritResetRules, is_merit_reset
from realmstats.errors import DatabaseError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

RESET_SCAN_SNAPSHOTS = 10
RESET_MIN_SNAPSHOTS = 3


def _season_dict(season: Season, snapshot_count: int | None = None) -> dict:
    data = {
        "id": season.id,
        "name": season.name,
        "start_date": season.start_date.isoformat() if season.start_date else None,
        "end_date": season.end_date.isoformat() if season.end_date else None,
        "is_active": season.is_active,
        "description": season.description,
    }
    if snapshot_count is not None:
        data["snapshot_count"] = snapshot_count
    return data


def get_active_season(session: Session) -> Season | None:
    return session.scalars(
        select(Season).where(Season.is_active == true()).order_by(Season.start_date.desc())
    ).first()


def list_seasons(engine: Engine) -> list[dict]:
    """All seasons, newest first, with snapshot counts."""
    counts = (
        select(Snapshot.season_id, func.count().label("snapshot_count"))
        .where(Snapshot.season_id.is_not(None))
        .group_by(Snapshot.season_id)
        .subquery()
    )
    stmt = (
        select(Season, func.coalesce(counts.c.snapshot_count, 0))
        .outerjoin(counts, counts.c.season_id == Season.id)
        .order_by(Season.start_date.desc())
    )
    try:
        with get_session(engine) as session:
            return [_season_dict(season, count) for season, count in session.execute(stmt).all()]
    except SQLAlchemyError as exc:
        raise DatabaseError("Failed to list seasons", exc) from exc


def create_season(
    engine: Engine,
    *,
    name: str,
    start_date: datetime,
    end_date: datetime | None = None,
    description: str | None = None,
) -> dict:
    """Create an inactive season.  Names are unique."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("Season name and start date are required")
    if end_date is not None and end_date < start_date:
        raise ValidationError("Season end date is before its start date")

    try:
        with get_session(engine) as session:
            if session.scalar(select(Season.id).where(Season.name == name)) is not None:
                raise ValidationError("Season name already exists", {"name": name})
            season = Season(
                name=name,
                start_date=start_date,
                end_date=end_date,
                description=description,
                is_active=False,
            )
            session.add(season)
            session.flush()
            logger.info("Season %r created (id=%d)", name, season.id)
            return _season_dict(season)
    except SQLAlchemyError as exc:
        raise DatabaseError(f"Failed to create season {name!r}", exc) from exc


def activate_season(engine: Engine, season_id: int) -> dict:
    """Make *season_id* the only active season."""
    try:
        with get_session(engine) as session:
            season = session.get(Season, season_id)
            if season is None:
                raise NotFoundError("Season", season_id)
            session.execute(
                update(Season).where(Season.id != season_id).values(is_active=False)
            )
            season.is_active = True
            logger.info("Season %r activated", season.name)
            return _season_dict(season)
    except SQLAlchemyError as exc:
        raise DatabaseError(f"Failed to activate season {season_id}", exc) from exc


def end_season(engine: Engine, season_id: int, end_date: datetime | None = None) -> dict:
    try:
        with get_session(engine) as session:
            season = session.get(Season, season_id)
            if season is None:
                raise NotFoundError("Season", season_id)
            season.end_date = end_date or utcnow()
            season.is_active = False
            logger.info("Season %r ended at %s", season.name, season.end_date.isoformat())
            return _season_dict(season)
    except SQLAlchemyError as exc:
        raise DatabaseError(f"Failed to end season {season_id}", exc) from exc


def assign_unlinked_snapshots(engine: Engine) -> dict:
    """Attach every snapshot without a season to the active season."""
    try:
        with get_session(engine) as session:
            active = get_active_season(session)
            if active is None:
                raise NotFoundError("Active season")
            result = session.execute(
                update(Snapshot)
                .where(Snapshot.season_id.is_(None))
                .values(season_id=active.id)
            )
            updated = result.rowcount or 0
            season_name = active.name
    except SQLAlchemyError as exc:
        raise DatabaseError("Failed to assign snapshots to the active season", exc) from exc

    logger.info("Assigned %d unlinked snapshots to season %r", updated, season_name)
    return {"season": season_name, "snapshots_updated": updated}


# ---------------------------------------------------------------------------
# Merit reset detection
# ---------------------------------------------------------------------------
def detect_merit_reset(engine: Engine, rules: MeritResetRules = MeritResetRules()) -> dict:
    """Scan the newest snapshots for a season-start merit wipe.

    Consecutive pairs are compared newest first; the first pair that looks
    like a reset wins and its newer snapshot is reported.
    """
    try:
        with get_session(engine) as session:
            snapshots = session.scalars(
                select(Snapshot)
                .order_by(Snapshot.timestamp.desc(), Snapshot.id.desc())
                .limit(RESET_SCAN_SNAPSHOTS)
            ).all()
            if len(snapshots) < RESET_MIN_SNAPSHOTS:
                return {
                    "reset_detected": False,
                    "message": "Not enough snapshots to analyze merit trends",
                }

            merits: dict[int, dict[str, int]] = defaultdict(dict)
            rows = session.execute(
                select(PlayerSnapshot.snapshot_id, PlayerSnapshot.player_id, PlayerSnapshot.merits)
                .where(PlayerSnapshot.snapshot_id.in_([s.id for s in snapshots]))
            ).all()
            for snapshot_id, lord_id, value in rows:
                merits[snapshot_id][lord_id] = value or 0

            season_count = session.scalar(select(func.count()).select_from(Season)) or 0
    except SQLAlchemyError as exc:
        raise DatabaseError("Failed to analyze merit trends", exc) from exc

    for current, previous in zip(snapshots, snapshots[1:]):
        if not is_merit_reset(merits[previous.id], merits[current.id], rules):
            continue

        reset_at = as_utc(current.timestamp)
        logger.info("Merit reset detected in snapshot %d (%s)", current.id, reset_at.isoformat())
        return {
            "reset_detected": True,
            "reset_date": reset_at.isoformat(),
            "reset_snapshot_id": current.id,
            "suggested_season_name": f"Season {season_count + 1} ({reset_at:%B %Y})",
            "message": f"Merit reset detected in snapshot from {reset_at:%Y-%m-%d}",
        }

    return {
        "reset_detected": False,
        "message": "No merit reset detected in recent snapshots",
    }
