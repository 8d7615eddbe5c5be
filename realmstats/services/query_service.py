"""
realmstats.services.query_service — Read-only dashboard queries
================================================================

Everything the dashboard and export collaborators read: the latest
snapshot, players in a snapshot, a player's full history, players who left
or joined the realm, name / alliance history and the upload log.  No writes.

Every query wraps SQLAlchemy failures in :class:`DatabaseError` so the API
answers with the service error envelope.
"""

from __future__ import annotations

import logging
import math
from datetime import timedelta

from sqlalchemy import Engine, String, cast, desc, false, func, or_, select, true
from sqlalchemy.exc import SQLAlchemyError

from realmstats.constants import STAT_FIELDS, as_utc, utcnow
from realmstats.database.engine import get_session
from realmstats.database.models import (
    AllianceChange,
    NameChange,
    Player,
    PlayerSnapshot,
    Snapshot,
    Upload,
)
from realmstats.errors import DatabaseError, NotFoundError, ValidationError
from realmstats.services.snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 50
SNAPSHOT_HISTORY_LIMIT = 100
JOIN_MODES = ("creation", "snapshot")


def _iso(value) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


def _snapshot_dict(snapshot: Snapshot) -> dict:
    return {
        "id": snapshot.id,
        "timestamp": _iso(snapshot.timestamp),
        "filename": snapshot.filename,
        "kingdom": snapshot.kingdom,
        "season_id": snapshot.season_id,
        "upload_id": snapshot.upload_id,
    }


def _row_dict(row: PlayerSnapshot) -> dict:
    data = {"lord_id": row.player_id, "snapshot_id": row.snapshot_id}
    data.update({name: getattr(row, name) for name in STAT_FIELDS})
    return data


def _player_dict(player: Player) -> dict:
    return {
        "lord_id": player.lord_id,
        "current_name": player.current_name,
        "current_alliance_tag": player.current_alliance_tag,
        "has_left_realm": player.has_left_realm,
        "last_seen_at": _iso(player.last_seen_at),
        "left_realm_at": _iso(player.left_realm_at),
    }


def _latest_rows_subquery():
    """Each player's newest snapshot row, ranked ``rn == 1``."""
    return (
        select(
            PlayerSnapshot.player_id.label("player_id"),
            PlayerSnapshot.alliance_tag.label("alliance_tag"),
            PlayerSnapshot.city_level.label("city_level"),
            PlayerSnapshot.current_power.label("current_power"),
            PlayerSnapshot.merits.label("merits"),
            Snapshot.timestamp.label("snapshot_date"),
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


def _latest_data(row) -> dict | None:
    if row.player_id is None:
        return None
    return {
        "alliance_tag": row.alliance_tag,
        "city_level": row.city_level,
        "current_power": row.current_power,
        "merits": row.merits,
        "snapshot_date": _iso(row.snapshot_date),
    }


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------
def latest_snapshot(engine: Engine, season_id: int | None = None) -> dict | None:
    snapshot = SnapshotStore(engine).find_latest(season_id)
    return _snapshot_dict(snapshot) if snapshot else None


def list_snapshots(engine: Engine, limit: int = 50) -> list[dict]:
    """Newest snapshots with player counts (the dashboard's snapshot picker)."""
    return SnapshotStore(engine).list_recent(limit=limit)


def players_in_snapshot(
    engine: Engine,
    snapshot_id: int | None = None,
    *,
    include_left_realm: bool = False,
    alliance: str | None = None,
) -> dict:
    """Rows of one snapshot (default: the latest), filtered.

    ``alliance`` matches the tag recorded in the snapshot row.
    """
    try:
        with get_session(engine) as session:
            if snapshot_id is None:
                snapshot = session.scalars(
                    select(Snapshot).order_by(Snapshot.timestamp.desc(), Snapshot.id.desc()).limit(1)
                ).first()
                if snapshot is None:
                    return {"snapshot": None, "players": []}
            else:
                snapshot = session.get(Snapshot, snapshot_id)
                if snapshot is None:
                    raise NotFoundError("Snapshot", snapshot_id)

            stmt = (
                select(PlayerSnapshot, Player.has_left_realm)
                .join(Player, Player.lord_id == PlayerSnapshot.player_id)
                .where(PlayerSnapshot.snapshot_id == snapshot.id)
                .order_by(PlayerSnapshot.current_power.desc())
            )
            if not include_left_realm:
                stmt = stmt.where(Player.has_left_realm == false())
            if alliance:
                stmt = stmt.where(PlayerSnapshot.alliance_tag == alliance)

            players = []
            for row, has_left in session.execute(stmt).all():
                data = _row_dict(row)
                data["has_left_realm"] = has_left
                players.append(data)

            return {"snapshot": _snapshot_dict(snapshot), "players": players}
    except SQLAlchemyError as exc:
        raise DatabaseError(f"Failed to load players for snapshot {snapshot_id}", exc) from exc


def snapshot_alliances(engine: Engine, snapshot_id: int) -> list[str]:
    """Distinct alliance tags present in one snapshot."""
    try:
        with get_session(engine) as session:
            return list(session.scalars(
                select(PlayerSnapshot.alliance_tag)
                .where(
                    PlayerSnapshot.snapshot_id == snapshot_id,
                    PlayerSnapshot.alliance_tag.is_not(None),
                )
                .distinct()
                .order_by(PlayerSnapshot.alliance_tag)
            ).all())
    except SQLAlchemyError as exc:
        raise DatabaseError(f"Failed to list alliances for snapshot {snapshot_id}", exc) from exc


# ---------------------------------------------------------------------------
# Players
# ---------------------------------------------------------------------------
def player_history(engine: Engine, lord_id: str) -> dict:
    """Registry record, name / alliance history and recent snapshot rows."""
    try:
        with get_session(engine) as session:
            player = session.get(Player, lord_id)
            if player is None:
                raise NotFoundError("Player", lord_id)

            names = session.scalars(
                select(NameChange)
                .where(NameChange.player_id == lord_id)
                .order_by(NameChange.detected_at.desc(), NameChange.id.desc())
                .limit(HISTORY_LIMIT)
            ).all()
            alliances = session.scalars(
                select(AllianceChange)
                .where(AllianceChange.player_id == lord_id)
                .order_by(AllianceChange.detected_at.desc(), AllianceChange.id.desc())
                .limit(HISTORY_LIMIT)
            ).all()
            rows = session.execute(
                select(PlayerSnapshot, Snapshot.timestamp)
                .join(Snapshot, Snapshot.id == PlayerSnapshot.snapshot_id)
                .where(PlayerSnapshot.player_id == lord_id)
                .order_by(Snapshot.timestamp.desc(), Snapshot.id.desc())
                .limit(SNAPSHOT_HISTORY_LIMIT)
            ).all()

            return {
                "player": _player_dict(player),
                "name_history": [
                    {
                        "old_name": c.old_name,
                        "new_name": c.new_name,
                        "detected_at": _iso(c.detected_at),
                    }
                    for c in names
                ],
                "alliance_history": [
                    {
                        "old_alliance": c.old_alliance,
                        "new_alliance": c.new_alliance,
                        "old_alliance_id": c.old_alliance_id,
                        "new_alliance_id": c.new_alliance_id,
                        "detected_at": _iso(c.detected_at),
                    }
                    for c in alliances
                ],
                "snapshots": [
                    {**_row_dict(row), "timestamp": _iso(ts)} for row, ts in rows
                ],
            }
    except SQLAlchemyError as exc:
        raise DatabaseError(f"Failed to find player with history: {lord_id}", exc) from exc


def left_realm_players(engine: Engine, days: int = 30, limit: int = 50) -> dict:
    """Players flagged as gone within the last *days*, newest departures first."""
    now = utcnow()
    since = now - timedelta(days=days)
    latest = _latest_rows_subquery()
    gone = (Player.has_left_realm == true(), Player.left_realm_at >= since)

    try:
        with get_session(engine) as session:
            total = session.scalar(
                select(func.count()).select_from(Player).where(*gone)
            ) or 0
            rows = session.execute(
                select(Player, latest)
                .outerjoin(latest, (latest.c.player_id == Player.lord_id) & (latest.c.rn == 1))
                .where(*gone)
                .order_by(desc(Player.left_realm_at))
                .limit(limit)
            ).all()
    except SQLAlchemyError as exc:
        raise DatabaseError("Failed to list players who left the realm", exc) from exc

    players = []
    for row in rows:
        player: Player = row[0]
        last_seen = as_utc(player.last_seen_at)
        left_at = as_utc(player.left_realm_at)
        players.append({
            **_player_dict(player),
            "days_gone": (now - last_seen).days if last_seen else None,
            "days_since_detected": (now - left_at).days if left_at else None,
            "last_known_data": _latest_data(row),
        })

    return {"players": players, "total": total, "days": days}


def joined_realm_players(
    engine: Engine,
    mode: str = "creation",
    from_snapshot: int | None = None,
    to_snapshot: int | None = None,
    days: int = 30,
    limit: int = 50,
) -> dict:
    """Players new to the realm, excluding any flagged as gone.

    ``creation`` lists registry records created within the last *days*.
    ``snapshot`` lists players present in *to_snapshot* but absent from
    *from_snapshot*, strongest first.
    """
    if mode not in JOIN_MODES:
        raise ValidationError(f"Unknown mode {mode!r}", {"valid_modes": list(JOIN_MODES)})
    if mode == "snapshot":
        return _joined_between_snapshots(engine, from_snapshot, to_snapshot, limit)
    return _joined_since(engine, days, limit)


def _joined_since(engine: Engine, days: int, limit: int) -> dict:
    now = utcnow()
    since = now - timedelta(days=days)
    latest = _latest_rows_subquery()
    joined = (Player.created_at >= since, Player.has_left_realm == false())

    try:
        with get_session(engine) as session:
            total = session.scalar(
                select(func.count()).select_from(Player).where(*joined)
            ) or 0
            rows = session.execute(
                select(Player, latest)
                .outerjoin(latest, (latest.c.player_id == Player.lord_id) & (latest.c.rn == 1))
                .where(*joined)
                .order_by(Player.created_at.desc(), Player.lord_id)
                .limit(limit)
            ).all()
    except SQLAlchemyError as exc:
        raise DatabaseError("Failed to list players who joined the realm", exc) from exc

    players = []
    for row in rows:
        player: Player = row[0]
        joined_at = as_utc(player.created_at)
        players.append({
            **_player_dict(player),
            "joined_at": _iso(joined_at),
            "days_since_joined": (now - joined_at).days if joined_at else None,
            "current_data": _latest_data(row),
        })

    return {"mode": "creation", "players": players, "total": total, "days": days}


def _joined_between_snapshots(
    engine: Engine,
    from_snapshot: int | None,
    to_snapshot: int | None,
    limit: int,
) -> dict:
    if from_snapshot is None or to_snapshot is None:
        raise ValidationError(
            "Both from_snapshot and to_snapshot are required for snapshot comparison mode"
        )

    try:
        with get_session(engine) as session:
            start = session.get(Snapshot, from_snapshot)
            if start is None:
                raise NotFoundError("Snapshot", from_snapshot)
            end = session.get(Snapshot, to_snapshot)
            if end is None:
                raise NotFoundError("Snapshot", to_snapshot)

            earlier = select(PlayerSnapshot.player_id).where(PlayerSnapshot.snapshot_id == start.id)
            new_rows = (
                select(PlayerSnapshot, Player.current_name)
                .join(Player, Player.lord_id == PlayerSnapshot.player_id)
                .where(
                    PlayerSnapshot.snapshot_id == end.id,
                    PlayerSnapshot.player_id.not_in(earlier),
                    Player.has_left_realm == false(),
                )
            )
            total = session.scalar(
                select(func.count()).select_from(new_rows.subquery())
            ) or 0
            rows = session.execute(
                new_rows
                .order_by(PlayerSnapshot.current_power.desc(), PlayerSnapshot.player_id)
                .limit(limit)
            ).all()
    except SQLAlchemyError as exc:
        raise DatabaseError(
            f"Failed to compare snapshots {from_snapshot} and {to_snapshot}", exc
        ) from exc

    span = as_utc(end.timestamp) - as_utc(start.timestamp)
    first_seen = _iso(end.timestamp)
    return {
        "mode": "snapshot",
        "from_snapshot": _snapshot_dict(start),
        "to_snapshot": _snapshot_dict(end),
        "players": [
            {
                "lord_id": row.player_id,
                "current_name": name,
                "first_seen_at": first_seen,
                "snapshot_data": _row_dict(row),
            }
            for row, name in rows
        ],
        "total": total,
        "days_between": math.ceil(span.total_seconds() / 86400),
    }


# ---------------------------------------------------------------------------
# History feeds
# ---------------------------------------------------------------------------
def name_changes(
    engine: Engine,
    days: int = 30,
    limit: int = 50,
    search: str | None = None,
) -> list[dict]:
    since = utcnow() - timedelta(days=days)
    stmt = (
        select(NameChange, Player.current_alliance_tag)
        .join(Player, Player.lord_id == NameChange.player_id)
        .where(NameChange.detected_at >= since)
        .order_by(NameChange.detected_at.desc(), NameChange.id.desc())
        .limit(limit)
    )
    if search:
        pattern = f"%{search.lower()}%"
        stmt = stmt.where(or_(
            func.lower(NameChange.old_name).like(pattern),
            func.lower(NameChange.new_name).like(pattern),
            func.lower(cast(NameChange.player_id, String)).like(pattern),
        ))

    try:
        with get_session(engine) as session:
            return [
                {
                    "lord_id": change.player_id,
                    "old_name": change.old_name,
                    "new_name": change.new_name,
                    "alliance_tag": alliance_tag,
                    "detected_at": _iso(change.detected_at),
                }
                for change, alliance_tag in session.execute(stmt).all()
            ]
    except SQLAlchemyError as exc:
        raise DatabaseError("Failed to list name changes", exc) from exc


def alliance_changes(
    engine: Engine,
    days: int = 30,
    limit: int = 50,
    alliance: str | None = None,
) -> list[dict]:
    """Alliance moves; *alliance* matches either side of the move."""
    since = utcnow() - timedelta(days=days)
    stmt = (
        select(AllianceChange, Player.current_name)
        .join(Player, Player.lord_id == AllianceChange.player_id)
        .where(AllianceChange.detected_at >= since)
        .order_by(AllianceChange.detected_at.desc(), AllianceChange.id.desc())
        .limit(limit)
    )
    if alliance:
        stmt = stmt.where(or_(
            AllianceChange.old_alliance == alliance,
            AllianceChange.new_alliance == alliance,
        ))

    try:
        with get_session(engine) as session:
            return [
                {
                    "lord_id": change.player_id,
                    "name": name,
                    "old_alliance": change.old_alliance,
                    "new_alliance": change.new_alliance,
                    "detected_at": _iso(change.detected_at),
                }
                for change, name in session.execute(stmt).all()
            ]
    except SQLAlchemyError as exc:
        raise DatabaseError("Failed to list alliance changes", exc) from exc


def recent_uploads(engine: Engine, limit: int = 50) -> list[dict]:
    try:
        with get_session(engine) as session:
            uploads = session.scalars(
                select(Upload).order_by(Upload.created_at.desc(), Upload.id.desc()).limit(limit)
            ).all()
            return [
                {
                    "id": upload.id,
                    "filename": upload.filename,
                    "uploaded_by": upload.uploaded_by,
                    "status": upload.status,
                    "rows_processed": upload.rows_processed,
                    "error": upload.error,
                    "created_at": _iso(upload.created_at),
                    "completed_at": _iso(upload.completed_at),
                    "snapshots": [_snapshot_dict(s) for s in upload.snapshots],
                }
                for upload in uploads
            ]
    except SQLAlchemyError as exc:
        raise DatabaseError("Failed to list uploads", exc) from exc
