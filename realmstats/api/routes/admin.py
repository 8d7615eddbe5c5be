"""
realmstats.api.routes.admin — Admin repair, seasons and live logs (JWT‑protected)
==================================================================================
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy import Engine

from realmstats.api.deps import get_config, get_current_admin, get_engine
from realmstats.config import RealmStatsConfig
from realmstats.database.engine import run_db
from realmstats.services import season_service
from realmstats.services.log_buffer import (
    VALID_LEVELS,
    get_current_level,
    get_logs,
    set_capture_level,
)
from realmstats.services.realm_status_service import rules_from_config, run_realm_sweep

router = APIRouter(prefix="/admin", tags=["admin"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class SeasonCreate(BaseModel):
    name: str
    start_date: datetime
    end_date: datetime | None = None
    description: str | None = None


class SeasonEnd(BaseModel):
    end_date: datetime | None = None


class LogLevelUpdate(BaseModel):
    level: str


# ---------------------------------------------------------------------------
# Realm-status repair
# ---------------------------------------------------------------------------
@router.post("/fix-left-realm")
async def fix_left_realm(
    engine: Engine = Depends(get_engine),
    cfg: RealmStatsConfig = Depends(get_config),
    admin: dict = Depends(get_current_admin),
):
    """Re-run the left-realm rules over every player, evaluated at now (UTC)."""
    result = await run_db(
        run_realm_sweep, engine, rules=rules_from_config(cfg.realm_status)
    )
    return {
        "success": True,
        "message": (
            f"Fixed {len(result.cleared)} incorrectly marked players and "
            f"marked {len(result.marked_left)} players as left"
        ),
        "data": result.to_dict(),
    }


# ---------------------------------------------------------------------------
# Seasons
# ---------------------------------------------------------------------------
@router.get("/seasons")
async def list_seasons(
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    return {"seasons": await run_db(season_service.list_seasons, engine)}


@router.post("/seasons", status_code=201)
async def create_season(
    body: SeasonCreate,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    return await run_db(
        season_service.create_season,
        engine,
        name=body.name,
        start_date=body.start_date,
        end_date=body.end_date,
        description=body.description,
    )


@router.post("/seasons/assign-snapshots")
async def assign_snapshots(
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    """Attach every snapshot without a season to the active season."""
    return await run_db(season_service.assign_unlinked_snapshots, engine)


@router.post("/seasons/detect-reset")
async def detect_reset(
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    """Look for a season-start merit wipe in the latest snapshots."""
    return await run_db(season_service.detect_merit_reset, engine)


@router.post("/seasons/{season_id}/activate")
async def activate_season(
    season_id: int,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    return await run_db(season_service.activate_season, engine, season_id)


@router.post("/seasons/{season_id}/end")
async def end_season(
    season_id: int,
    body: SeasonEnd | None = None,
    engine: Engine = Depends(get_engine),
    admin: dict = Depends(get_current_admin),
):
    end_date = body.end_date if body else None
    return await run_db(season_service.end_season, engine, season_id, end_date)


# ---------------------------------------------------------------------------
# Live Logs
# ---------------------------------------------------------------------------
@router.get("/logs")
def get_live_logs(
    tail: int = Query(200, ge=1, le=2000),
    level: str | None = Query(None),
    logger_filter: str | None = Query(None, alias="logger"),
    admin: dict = Depends(get_current_admin),
):
    """Recent log entries from the in-memory ring buffer."""
    entries = get_logs(tail=tail, level=level, logger_filter=logger_filter)
    return {
        "entries": entries,
        "total": len(entries),
        "capture_level": get_current_level(),
        "valid_levels": list(VALID_LEVELS),
    }


@router.put("/logs/level")
def change_log_level(
    body: LogLevelUpdate,
    admin: dict = Depends(get_current_admin),
):
    level_name = body.level.upper()
    if level_name not in VALID_LEVELS:
        raise HTTPException(400, detail=f"Invalid level. Must be one of: {', '.join(VALID_LEVELS)}")
    return {"level": set_capture_level(level_name)}
