"""
realmstats.database.models — SQLAlchemy 2.0 Data Models
========================================================

Tables:
- players            — Player registry: one current-state row per lordId
- seasons            — Named competitive windows; at most one active
- uploads            — One row per ingestion attempt (status machine)
- snapshots          — Immutable point-in-time captures, indexed by timestamp
- player_snapshots   — One player's stat vector inside one snapshot
- name_changes       — Append-only name history
- alliance_changes   — Append-only alliance history

The registry (``players``) holds live state; history tables are owned
separately so change detection never re-scans snapshot rows.
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all RealmStats ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class UploadStatus(enum.StrEnum):
    """Upload lifecycle: PROCESSING → COMPLETED | FAILED, exactly once."""
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# ---------------------------------------------------------------------------
# Players (the registry)
# ---------------------------------------------------------------------------
class Player(Base):
    __tablename__ = "players"

    lord_id: Mapped[str] = mapped_column(String(32), primary_key=True)
    current_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    current_alliance_tag: Mapped[str | None] = mapped_column(String(20), default=None)
    current_alliance_id: Mapped[str | None] = mapped_column(String(32), default=None)
    has_left_realm: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    last_seen_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    left_realm_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    snapshots: Mapped[list[PlayerSnapshot]] = relationship(back_populates="player")
    name_history: Mapped[list[NameChange]] = relationship(back_populates="player")
    alliance_history: Mapped[list[AllianceChange]] = relationship(back_populates="player")

    __table_args__ = (
        Index("ix_players_has_left_realm", "has_left_realm"),
        Index("ix_players_last_seen_at", "last_seen_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<Player lord_id={self.lord_id!r} name={self.current_name!r} "
            f"left={self.has_left_realm}>"
        )


# ---------------------------------------------------------------------------
# Seasons
# ---------------------------------------------------------------------------
class Season(Base):
    __tablename__ = "seasons"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    description: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    snapshots: Mapped[list[Snapshot]] = relationship(back_populates="season")

    def __repr__(self) -> str:
        return f"<Season id={self.id} name={self.name!r} active={self.is_active}>"


# ---------------------------------------------------------------------------
# Uploads: bookkeeping for each ingestion attempt
# ---------------------------------------------------------------------------
class Upload(Base):
    __tablename__ = "uploads"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    uploaded_by: Mapped[str] = mapped_column(String(100), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=UploadStatus.PROCESSING.value
    )
    rows_processed: Mapped[int | None] = mapped_column(Integer, default=None)
    error: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

    snapshots: Mapped[list[Snapshot]] = relationship(back_populates="upload")

    __table_args__ = (
        Index("ix_uploads_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Upload id={self.id} file={self.filename!r} status={self.status}>"


# ---------------------------------------------------------------------------
# Snapshots (immutable)
# ---------------------------------------------------------------------------
class Snapshot(Base):
    __tablename__ = "snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    kingdom: Mapped[str] = mapped_column(String(20), nullable=False)
    season_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("seasons.id", ondelete="SET NULL"), nullable=True
    )
    upload_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("uploads.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    season: Mapped[Season | None] = relationship(back_populates="snapshots")
    upload: Mapped[Upload | None] = relationship(back_populates="snapshots")
    players: Mapped[list[PlayerSnapshot]] = relationship(back_populates="snapshot")

    __table_args__ = (
        Index("ix_snapshots_timestamp", "timestamp"),
        Index("ix_snapshots_season_timestamp", "season_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<Snapshot id={self.id} kingdom={self.kingdom!r} ts={self.timestamp}>"


# ---------------------------------------------------------------------------
# PlayerSnapshot: one row per player per snapshot
# ---------------------------------------------------------------------------
class PlayerSnapshot(Base):
    __tablename__ = "player_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    snapshot_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("snapshots.id", ondelete="CASCADE"), nullable=False
    )
    player_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("players.lord_id", ondelete="CASCADE"), nullable=False
    )

    # Identity at capture time
    name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    division: Mapped[int] = mapped_column(Integer, default=0)
    alliance_id: Mapped[str | None] = mapped_column(String(32), default=None)
    alliance_tag: Mapped[str | None] = mapped_column(String(20), default=None)
    faction: Mapped[str | None] = mapped_column(String(50), default=None)
    city_level: Mapped[int] = mapped_column(Integer, default=0)

    # Power
    current_power: Mapped[int] = mapped_column(BigInteger, default=0)
    power: Mapped[int] = mapped_column(BigInteger, default=0)
    building_power: Mapped[int] = mapped_column(BigInteger, default=0)
    hero_power: Mapped[int] = mapped_column(BigInteger, default=0)
    legion_power: Mapped[int] = mapped_column(BigInteger, default=0)
    tech_power: Mapped[int] = mapped_column(BigInteger, default=0)

    # Combat
    merits: Mapped[int] = mapped_column(BigInteger, default=0)
    units_killed: Mapped[int] = mapped_column(BigInteger, default=0)
    units_dead: Mapped[int] = mapped_column(BigInteger, default=0)
    units_healed: Mapped[int] = mapped_column(BigInteger, default=0)
    t1_kill_count: Mapped[int] = mapped_column(BigInteger, default=0)
    t2_kill_count: Mapped[int] = mapped_column(BigInteger, default=0)
    t3_kill_count: Mapped[int] = mapped_column(BigInteger, default=0)
    t4_kill_count: Mapped[int] = mapped_column(BigInteger, default=0)
    t5_kill_count: Mapped[int] = mapped_column(BigInteger, default=0)
    victories: Mapped[int] = mapped_column(Integer, default=0)
    defeats: Mapped[int] = mapped_column(Integer, default=0)
    city_sieges: Mapped[int] = mapped_column(Integer, default=0)
    scouted: Mapped[int] = mapped_column(Integer, default=0)

    # Alliance activity
    helps_given: Mapped[int] = mapped_column(Integer, default=0)
    resources_given: Mapped[int] = mapped_column(BigInteger, default=0)
    resources_given_count: Mapped[int] = mapped_column(Integer, default=0)

    # Resources
    gold: Mapped[int] = mapped_column(BigInteger, default=0)
    gold_spent: Mapped[int] = mapped_column(BigInteger, default=0)
    wood: Mapped[int] = mapped_column(BigInteger, default=0)
    wood_spent: Mapped[int] = mapped_column(BigInteger, default=0)
    ore: Mapped[int] = mapped_column(BigInteger, default=0)
    ore_spent: Mapped[int] = mapped_column(BigInteger, default=0)
    mana: Mapped[int] = mapped_column(BigInteger, default=0)
    mana_spent: Mapped[int] = mapped_column(BigInteger, default=0)
    gems: Mapped[int] = mapped_column(BigInteger, default=0)
    gems_spent: Mapped[int] = mapped_column(BigInteger, default=0)

    snapshot: Mapped[Snapshot] = relationship(back_populates="players")
    player: Mapped[Player] = relationship(back_populates="snapshots")

    __table_args__ = (
        UniqueConstraint("snapshot_id", "player_id", name="uq_player_snapshots_snapshot_player"),
        Index("ix_player_snapshots_player", "player_id"),
        Index("ix_player_snapshots_alliance", "snapshot_id", "alliance_tag"),
    )

    def __repr__(self) -> str:
        return (
            f"<PlayerSnapshot snapshot={self.snapshot_id} player={self.player_id!r} "
            f"power={self.current_power}>"
        )


# ---------------------------------------------------------------------------
# History (append-only)
# ---------------------------------------------------------------------------
class NameChange(Base):
    __tablename__ = "name_changes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    player_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("players.lord_id", ondelete="CASCADE"), nullable=False
    )
    old_name: Mapped[str | None] = mapped_column(String(100), default=None)
    new_name: Mapped[str | None] = mapped_column(String(100), default=None)
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    player: Mapped[Player] = relationship(back_populates="name_history")

    __table_args__ = (
        Index("ix_name_changes_player_detected", "player_id", "detected_at"),
        Index("ix_name_changes_detected", "detected_at"),
    )

    def __repr__(self) -> str:
        return f"<NameChange player={self.player_id!r} {self.old_name!r}→{self.new_name!r}>"


class AllianceChange(Base):
    __tablename__ = "alliance_changes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    player_id: Mapped[str] = mapped_column(
        String(32), ForeignKey("players.lord_id", ondelete="CASCADE"), nullable=False
    )
    old_alliance: Mapped[str | None] = mapped_column(String(20), default=None)
    old_alliance_id: Mapped[str | None] = mapped_column(String(32), default=None)
    new_alliance: Mapped[str | None] = mapped_column(String(20), default=None)
    new_alliance_id: Mapped[str | None] = mapped_column(String(32), default=None)
    detected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    player: Mapped[Player] = relationship(back_populates="alliance_history")

    __table_args__ = (
        Index("ix_alliance_changes_player_detected", "player_id", "detected_at"),
        Index("ix_alliance_changes_detected", "detected_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<AllianceChange player={self.player_id!r} "
            f"{self.old_alliance!r}→{self.new_alliance!r}>"
        )
