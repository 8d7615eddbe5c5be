"""
realmstats.api.routes.upload — Snapshot upload endpoint (admin)
================================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy import Engine

from realmstats.api.deps import get_config, get_current_admin, get_engine
from realmstats.config import RealmStatsConfig
from realmstats.database.engine import run_db
from realmstats.services.ingestion_service import IngestionPipeline

router = APIRouter(tags=["upload"])
logger = logging.getLogger(__name__)


@router.post("/upload")
async def upload_snapshot(
    file: UploadFile | None = File(None),
    engine: Engine = Depends(get_engine),
    cfg: RealmStatsConfig = Depends(get_config),
    admin: dict = Depends(get_current_admin),
):
    """Ingest one kingdom export (``<kingdom>_<YYYYMMDD>_<HHMM>utc.xlsx``)."""
    filename = file.filename if file is not None else None
    content = await file.read() if file is not None else None
    logger.info("Upload of %s requested by %s", filename, admin["sub"])

    pipeline = IngestionPipeline(engine, cfg)
    result = await run_db(pipeline.ingest, filename, content, str(admin["sub"]))
    return result.to_dict()
