"""
realmstats.services.ingestion_service — Upload → Snapshot pipeline
===================================================================

One call turns an uploaded export into a persisted snapshot:

    1. Validate and parse the workbook.  Rejections happen here, before
       any database write.
    2. Record an :class:`Upload` in PROCESSING (own transaction).
    3. Create the :class:`Snapshot`, attached to the active season.
    4. Persist player rows in bounded batches.  For each row the registry
       diffs the row against current state, appends name / alliance
       history and advances ``last_seen_at`` in the same batch transaction.
    5. Run the left-realm sweep with the snapshot timestamp as "now".
    6. Mark the Upload COMPLETED, or FAILED with the error and the number
       of rows committed before the failure.

Committed batches are never rolled back.  Retries are the caller's call.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from realmstats.config import RealmStatsConfig
from realmstats.constants import utcnow
from realmstats.database.engine import get_session
from realmstats.database.models import Upload, UploadStatus
from realmstats.errors import BatchPersistError, DatabaseError
from realmstats.services.player_registry import PlayerRegistry
from realmstats.services.realm_status_service import rules_from_config, run_realm_sweep
from realmstats.services.season_service import get_active_season
from realmstats.services.snapshot_store import SnapshotMetadata, SnapshotStore
from realmstats.services.upload_service import ParsedUpload, PlayerRow, parse_workbook

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class IngestionResult:
    snapshot_id: int
    timestamp: datetime
    kingdom: str
    upload_id: int
    rows_processed: int
    name_changes: int
    alliance_changes: int
    players_marked_as_left: int
    players_cleared: int
    duration_ms: int = 0

    @property
    def message(self) -> str:
        return f"Successfully processed {self.rows_processed} players"

    def to_dict(self) -> dict:
        """Response body for ``POST /api/upload``."""
        return {
            "success": True,
            "data": {
                "snapshot_id": self.snapshot_id,
                "timestamp": self.timestamp.isoformat(),
                "kingdom": self.kingdom,
                "rows_processed": self.rows_processed,
                "changes_detected": {
                    "name_changes": self.name_changes,
                    "alliance_changes": self.alliance_changes,
                },
                "players_marked_as_left": self.players_marked_as_left,
                "players_cleared": self.players_cleared,
            },
            "message": self.message,
            "metadata": {
                "upload_id": self.upload_id,
                "processing_duration_ms": self.duration_ms,
            },
        }


class _ChangeCounter:
    """Row hook that feeds the registry and tallies detected changes.

    Totals are only reported when every batch committed.
    """

    def __init__(self, registry: PlayerRegistry, seen_at: datetime) -> None:
        self._registry = registry
        self._seen_at = seen_at
        self.name_changes = 0
        self.alliance_changes = 0

    def __call__(self, session: Session, row: PlayerRow) -> None:
        observed = self._registry.observe(session, row, self._seen_at)
        if observed.changes.name_change is not None:
            self.name_changes += 1
        if observed.changes.alliance_change is not None:
            self.alliance_changes += 1


class IngestionPipeline:
    """Orchestrates parse → persist → diff → realm sweep for one upload."""

    def __init__(
        self,
        engine: Engine,
        config: RealmStatsConfig | None = None,
        *,
        store: SnapshotStore | None = None,
        registry: PlayerRegistry | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._engine = engine
        self._config = config or RealmStatsConfig()
        self._store = store or SnapshotStore(engine, self._config.ingestion)
        self._registry = registry or PlayerRegistry(engine)
        self._clock = clock

    def ingest(self, filename: str, content: bytes, uploaded_by: str) -> IngestionResult:
        """Parse *content* and ingest it.  Raises ``ValidationError`` before any write."""
        parsed = parse_workbook(filename, content, self._config.ingestion.max_upload_bytes)
        return self.ingest_parsed(parsed, uploaded_by)

    def ingest_parsed(self, parsed: ParsedUpload, uploaded_by: str) -> IngestionResult:
        started = self._clock()
        info = parsed.file_info
        upload_id = self._create_upload(info.filename, uploaded_by)
        logger.info(
            "Upload %d: ingesting %s (%d rows) for %s",
            upload_id, info.filename, parsed.row_count, uploaded_by,
        )

        rows_committed = 0
        try:
            with get_session(self._engine) as session:
                season = get_active_season(session)
                season_id = season.id if season else None

            snapshot = self._store.create_snapshot(
                SnapshotMetadata(
                    timestamp=info.timestamp,
                    filename=info.filename,
                    kingdom=info.kingdom,
                    season_id=season_id,
                    upload_id=upload_id,
                )
            )

            counter = _ChangeCounter(self._registry, info.timestamp)
            rows_committed = self._store.add_player_rows(snapshot.id, parsed.rows, on_row=counter)
            logger.info(
                "Upload %d: %d name changes, %d alliance changes",
                upload_id, counter.name_changes, counter.alliance_changes,
            )

            sweep = run_realm_sweep(
                self._engine,
                at=info.timestamp,
                rules=rules_from_config(self._config.realm_status),
            )
        except Exception as exc:
            if isinstance(exc, BatchPersistError):
                rows_committed = exc.rows_committed
            logger.exception("Upload %d failed after %d committed rows", upload_id, rows_committed)
            try:
                self._finish_upload(upload_id, UploadStatus.FAILED, rows_committed, error=str(exc))
            except DatabaseError:
                logger.exception("Upload %d: could not record failure status", upload_id)
            raise

        self._finish_upload(upload_id, UploadStatus.COMPLETED, rows_committed)
        duration_ms = int((self._clock() - started) * 1000)
        logger.info(
            "Upload %d completed: snapshot %d, %d rows, %d marked left, %d cleared (%d ms)",
            upload_id, snapshot.id, rows_committed,
            len(sweep.marked_left), len(sweep.cleared), duration_ms,
        )
        return IngestionResult(
            snapshot_id=snapshot.id,
            timestamp=info.timestamp,
            kingdom=info.kingdom,
            upload_id=upload_id,
            rows_processed=rows_committed,
            name_changes=counter.name_changes,
            alliance_changes=counter.alliance_changes,
            players_marked_as_left=len(sweep.marked_left),
            players_cleared=len(sweep.cleared),
            duration_ms=duration_ms,
        )

    # ------------------------------------------------------------------
    # Upload bookkeeping
    # ------------------------------------------------------------------
    def _create_upload(self, filename: str, uploaded_by: str) -> int:
        try:
            with get_session(self._engine) as session:
                upload = Upload(
                    filename=filename,
                    uploaded_by=uploaded_by,
                    status=UploadStatus.PROCESSING.value,
                )
                session.add(upload)
                session.flush()
                return upload.id
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Failed to record upload of {filename}", exc) from exc

    def _finish_upload(
        self,
        upload_id: int,
        status: UploadStatus,
        rows_processed: int,
        error: str | None = None,
    ) -> None:
        try:
            with get_session(self._engine) as session:
                upload = session.get(Upload, upload_id)
                upload.status = status.value
                upload.rows_processed = rows_processed
                upload.error = error
                upload.completed_at = utcnow()
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Failed to mark upload {upload_id} {status.value}", exc) from exc

