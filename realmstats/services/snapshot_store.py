"""
realmstats.services.snapshot_store — Snapshot persistence
==========================================================

Append-only storage for :class:`Snapshot` and :class:`PlayerSnapshot`.

**Row inserts are batched** so one large upload never holds a single
long-lived transaction:

    1. Rows are split into chunks of ``batch_size`` (default 20).
    2. Each chunk runs in its own transaction, bounded by a wait limit
       (pool timeout + PostgreSQL ``lock_timeout``) and an execution limit
       (PostgreSQL ``statement_timeout`` + a deadline checked before commit).
    3. A failing chunk rolls back alone.  Earlier chunks stay committed and
       the failure surfaces as :class:`BatchPersistError` with the number of
       rows already committed.

There is no multi-batch atomicity and no retry here; retries belong to the
caller.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Engine, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from realmstats.config import IngestionConfig
from realmstats.constants import as_utc
from realmstats.database.engine import apply_transaction_bounds, get_session
from realmstats.database.models import PlayerSnapshot, Snapshot
from realmstats.errors import BatchPersistError, DatabaseError, NotFoundError
from realmstats.services.upload_service import PlayerRow

logger = logging.getLogger(__name__)

RowHook = Callable[[Session, PlayerRow], None]


@dataclass(frozen=True, slots=True)
class SnapshotMetadata:
    timestamp: datetime
    filename: str
    kingdom: str
    season_id: int | None = None
    upload_id: int | None = None


class BatchTimeoutError(TimeoutError):
    """A batch ran past its execution bound before commit."""


def _chunks(rows: Sequence[PlayerRow], size: int) -> Iterator[Sequence[PlayerRow]]:
    for start in range(0, len(rows), size):
        yield rows[start:start + size]


class SnapshotStore:
    """Snapshot and PlayerSnapshot persistence bound to one engine."""

    def __init__(
        self,
        engine: Engine,
        ingestion: IngestionConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._engine = engine
        self._config = ingestion or IngestionConfig()
        self._clock = clock

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def create_snapshot(self, metadata: SnapshotMetadata) -> Snapshot:
        """Insert and return a new (detached) snapshot."""
        try:
            with get_session(self._engine) as session:
                snapshot = Snapshot(
                    timestamp=metadata.timestamp,
                    filename=metadata.filename,
                    kingdom=metadata.kingdom,
                    season_id=metadata.season_id,
                    upload_id=metadata.upload_id,
                )
                session.add(snapshot)
                session.flush()
                session.refresh(snapshot)
        except SQLAlchemyError as exc:
            raise DatabaseError("Failed to create snapshot", exc) from exc

        logger.info(
            "Snapshot %d created (kingdom=%s, ts=%s, season=%s)",
            snapshot.id, snapshot.kingdom, snapshot.timestamp.isoformat(), snapshot.season_id,
        )
        return snapshot

    def add_player_rows(
        self,
        snapshot_id: int,
        rows: Sequence[PlayerRow],
        on_row: RowHook | None = None,
    ) -> int:
        """Persist *rows* against *snapshot_id* in bounded batches.

        *on_row* runs inside each row's batch transaction, before the row is
        added, so registry updates commit (or roll back) together with the
        rows of the same batch.

        Returns the number of rows committed.
        """
        size = self._config.batch_size
        total_batches = (len(rows) + size - 1) // size
        committed = 0

        for number, batch in enumerate(_chunks(rows, size), start=1):
            started = self._clock()
            try:
                with Session(self._engine, expire_on_commit=False) as session:
                    with session.begin():
                        apply_transaction_bounds(
                            session,
                            max_wait_seconds=self._config.transaction_max_wait_seconds,
                            timeout_seconds=self._config.transaction_timeout_seconds,
                        )
                        for row in batch:
                            if on_row is not None:
                                on_row(session, row)
                            session.add(
                                PlayerSnapshot(
                                    snapshot_id=snapshot_id,
                                    player_id=row.lord_id,
                                    **row.stats,
                                )
                            )
                        session.flush()
                        elapsed = self._clock() - started
                        if elapsed > self._config.transaction_timeout_seconds:
                            raise BatchTimeoutError(
                                f"batch ran {elapsed:.1f}s "
                                f"(limit {self._config.transaction_timeout_seconds:.0f}s)"
                            )
            except Exception as exc:
                logger.error(
                    "Snapshot %d: batch %d/%d failed after %d committed rows: %s",
                    snapshot_id, number, total_batches, committed, exc,
                )
                raise BatchPersistError(
                    f"Failed to persist player rows (batch {number}/{total_batches})",
                    batch_number=number,
                    rows_committed=committed,
                    cause=exc,
                ) from exc

            committed += len(batch)
            logger.debug(
                "Snapshot %d: batch %d/%d committed (%d rows, %d total)",
                snapshot_id, number, total_batches, len(batch), committed,
            )

        logger.info("Snapshot %d: %d player rows in %d batches", snapshot_id, committed, total_batches)
        return committed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def find_latest(self, season_id: int | None = None) -> Snapshot | None:
        """Most recent snapshot, optionally limited to one season."""
        stmt = select(Snapshot).order_by(Snapshot.timestamp.desc(), Snapshot.id.desc()).limit(1)
        if season_id is not None:
            stmt = stmt.where(Snapshot.season_id == season_id)
        try:
            with get_session(self._engine) as session:
                return session.scalars(stmt).first()
        except SQLAlchemyError as exc:
            raise DatabaseError("Failed to find latest snapshot", exc) from exc

    def get(self, snapshot_id: int) -> Snapshot:
        try:
            with get_session(self._engine) as session:
                snapshot = session.get(Snapshot, snapshot_id)
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Failed to load snapshot {snapshot_id}", exc) from exc
        if snapshot is None:
            raise NotFoundError("Snapshot", snapshot_id)
        return snapshot

    def count_rows(self, snapshot_id: int) -> int:
        try:
            with get_session(self._engine) as session:
                return session.scalar(
                    select(func.count())
                    .select_from(PlayerSnapshot)
                    .where(PlayerSnapshot.snapshot_id == snapshot_id)
                ) or 0
        except SQLAlchemyError as exc:
            raise DatabaseError(f"Failed to count rows for snapshot {snapshot_id}", exc) from exc

    def list_recent(self, limit: int = 50) -> list[dict]:
        """Newest snapshots with their player counts."""
        counts = (
            select(PlayerSnapshot.snapshot_id, func.count().label("player_count"))
            .group_by(PlayerSnapshot.snapshot_id)
            .subquery()
        )
        stmt = (
            select(Snapshot, func.coalesce(counts.c.player_count, 0))
            .outerjoin(counts, counts.c.snapshot_id == Snapshot.id)
            .order_by(Snapshot.timestamp.desc(), Snapshot.id.desc())
            .limit(limit)
        )
        try:
            with get_session(self._engine) as session:
                result = session.execute(stmt).all()
        except SQLAlchemyError as exc:
            raise DatabaseError("Failed to list snapshots", exc) from exc

        return [
            {
                "id": snap.id,
                "timestamp": as_utc(snap.timestamp).isoformat(),
                "filename": snap.filename,
                "kingdom": snap.kingdom,
                "season_id": snap.season_id,
                "player_count": player_count,
                "display_name": f"{snap.filename} ({player_count} players)",
            }
            for snap, player_count in result
        ]
