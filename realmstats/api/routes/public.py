"""
realmstats.api.routes.public — Dashboard read endpoints (authenticated)
========================================================================
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import Engine

from realmstats.api.deps import get_current_user, get_engine
from realmstats.database.engine import run_db
from realmstats.services import query_service, season_service

router = APIRouter(tags=["public"], dependencies=[Depends(get_current_user)])


# ---------------------------------------------------------------------------
# Snapshots
# ---------------------------------------------------------------------------
@router.get("/snapshots")
async def list_snapshots(
    limit: int = Query(50, ge=1, le=500),
    engine: Engine = Depends(get_engine),
):
    return {"snapshots": await run_db(query_service.list_snapshots, engine, limit)}


@router.get("/snapshots/latest")
async def latest_snapshot(
    season_id: int | None = Query(None),
    engine: Engine = Depends(get_engine),
):
    return {"snapshot": await run_db(query_service.latest_snapshot, engine, season_id)}


# ---------------------------------------------------------------------------
# Players
# ---------------------------------------------------------------------------
@router.get("/players")
async def players(
    snapshot_id: int | None = Query(None),
    include_left_realm: bool = Query(False),
    alliance: str | None = Query(None),
    engine: Engine = Depends(get_engine),
):
    """Players of one snapshot (latest by default), strongest first."""
    return await run_db(
        query_service.players_in_snapshot,
        engine,
        snapshot_id,
        include_left_realm=include_left_realm,
        alliance=alliance,
    )


@router.get("/players/left-realm")
async def left_realm(
    days: int = Query(30, ge=1, le=365),
    limit: int = Query(50, ge=1, le=500),
    engine: Engine = Depends(get_engine),
):
    return await run_db(query_service.left_realm_players, engine, days, limit)


@router.get("/players/joined-realm")
async def joined_realm(
    mode: str = Query("creation"),
    from_snapshot: int | None = Query(None),
    to_snapshot: int | None = Query(None),
    days: int = Query(30, ge=1, le=365),
    limit: int = Query(50, ge=1, le=500),
    engine: Engine = Depends(get_engine),
):
    """New players, by registry creation date or between two snapshots."""
    return await run_db(
        query_service.joined_realm_players,
        engine,
        mode,
        from_snapshot,
        to_snapshot,
        days,
        limit,
    )


@router.get("/players/{lord_id}")
async def player_detail(
    lord_id: str,
    engine: Engine = Depends(get_engine),
):
    return await run_db(query_service.player_history, engine, lord_id)


# ---------------------------------------------------------------------------
# History feeds
# ---------------------------------------------------------------------------
@router.get("/name-changes")
async def name_changes(
    days: int = Query(30, ge=1, le=365),
    limit: int = Query(50, ge=1, le=500),
    search: str | None = Query(None),
    engine: Engine = Depends(get_engine),
):
    changes = await run_db(query_service.name_changes, engine, days, limit, search)
    return {"changes": changes, "total": len(changes)}


@router.get("/alliance-moves")
async def alliance_moves(
    days: int = Query(30, ge=1, le=365),
    limit: int = Query(50, ge=1, le=500),
    alliance: str | None = Query(None),
    engine: Engine = Depends(get_engine),
):
    moves = await run_db(query_service.alliance_changes, engine, days, limit, alliance)
    return {"moves": moves, "total": len(moves)}


@router.get("/uploads")
async def uploads(
    limit: int = Query(50, ge=1, le=500),
    engine: Engine = Depends(get_engine),
):
    return {"uploads": await run_db(query_service.recent_uploads, engine, limit)}


@router.get("/seasons")
async def seasons(engine: Engine = Depends(get_engine)):
    return {"seasons": await run_db(season_service.list_seasons, engine)}
