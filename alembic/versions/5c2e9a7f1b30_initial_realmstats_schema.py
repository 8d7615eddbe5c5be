"""Initial RealmStats schema

Revision ID: 5c2e9a7f1b30
Revises:
Create Date: 2026-10-19 09:12:41.208113

"""
from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '5c2e9a7f1b30'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

_STAT_COLUMNS = (
    ("current_power", sa.BigInteger),
    ("power", sa.BigInteger),
    ("building_power", sa.BigInteger),
    ("hero_power", sa.BigInteger),
    ("legion_power", sa.BigInteger),
    ("tech_power", sa.BigInteger),
    ("merits", sa.BigInteger),
    ("units_killed", sa.BigInteger),
    ("units_dead", sa.BigInteger),
    ("units_healed", sa.BigInteger),
    ("t1_kill_count", sa.BigInteger),
    ("t2_kill_count", sa.BigInteger),
    ("t3_kill_count", sa.BigInteger),
    ("t4_kill_count", sa.BigInteger),
    ("t5_kill_count", sa.BigInteger),
    ("victories", sa.Integer),
    ("defeats", sa.Integer),
    ("city_sieges", sa.Integer),
    ("scouted", sa.Integer),
    ("helps_given", sa.Integer),
    ("resources_given", sa.BigInteger),
    ("resources_given_count", sa.Integer),
    ("gold", sa.BigInteger),
    ("gold_spent", sa.BigInteger),
    ("wood", sa.BigInteger),
    ("wood_spent", sa.BigInteger),
    ("ore", sa.BigInteger),
    ("ore_spent", sa.BigInteger),
    ("mana", sa.BigInteger),
    ("mana_spent", sa.BigInteger),
    ("gems", sa.BigInteger),
    ("gems_spent", sa.BigInteger),
)


def upgrade() -> None:
    """Create the registry, season, upload, snapshot and history tables."""

    # --- players ---
    op.create_table(
        "players",
        sa.Column("lord_id", sa.String(32), primary_key=True),
        sa.Column("current_name", sa.String(100), nullable=False, server_default=""),
        sa.Column("current_alliance_tag", sa.String(20), nullable=True),
        sa.Column("current_alliance_id", sa.String(32), nullable=True),
        sa.Column("has_left_realm", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("last_seen_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("left_realm_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_players_has_left_realm", "players", ["has_left_realm"])
    op.create_index("ix_players_last_seen_at", "players", ["last_seen_at"])

    # --- seasons ---
    op.create_table(
        "seasons",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False, unique=True),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # --- uploads ---
    op.create_table(
        "uploads",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("uploaded_by", sa.String(100), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="PROCESSING"),
        sa.Column("rows_processed", sa.Integer, nullable=True),
        sa.Column("error", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_uploads_created_at", "uploads", ["created_at"])

    # --- snapshots ---
    op.create_table(
        "snapshots",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("kingdom", sa.String(20), nullable=False),
        sa.Column(
            "season_id",
            sa.Integer,
            sa.ForeignKey("seasons.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "upload_id",
            sa.Integer,
            sa.ForeignKey("uploads.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_snapshots_timestamp", "snapshots", ["timestamp"])
    op.create_index("ix_snapshots_season_timestamp", "snapshots", ["season_id", "timestamp"])

    # --- player_snapshots ---
    op.create_table(
        "player_snapshots",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "snapshot_id",
            sa.Integer,
            sa.ForeignKey("snapshots.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "player_id",
            sa.String(32),
            sa.ForeignKey("players.lord_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(100), nullable=False, server_default=""),
        sa.Column("division", sa.Integer, nullable=True),
        sa.Column("alliance_id", sa.String(32), nullable=True),
        sa.Column("alliance_tag", sa.String(20), nullable=True),
        sa.Column("faction", sa.String(50), nullable=True),
        sa.Column("city_level", sa.Integer, nullable=True),
        *(sa.Column(name, type_, nullable=True) for name, type_ in _STAT_COLUMNS),
        sa.UniqueConstraint(
            "snapshot_id", "player_id", name="uq_player_snapshots_snapshot_player"
        ),
    )
    op.create_index("ix_player_snapshots_player", "player_snapshots", ["player_id"])
    op.create_index(
        "ix_player_snapshots_alliance", "player_snapshots", ["snapshot_id", "alliance_tag"]
    )

    # --- history ---
    op.create_table(
        "name_changes",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "player_id",
            sa.String(32),
            sa.ForeignKey("players.lord_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("old_name", sa.String(100), nullable=True),
        sa.Column("new_name", sa.String(100), nullable=True),
        sa.Column("detected_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_name_changes_player_detected", "name_changes", ["player_id", "detected_at"]
    )
    op.create_index("ix_name_changes_detected", "name_changes", ["detected_at"])

    op.create_table(
        "alliance_changes",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "player_id",
            sa.String(32),
            sa.ForeignKey("players.lord_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("old_alliance", sa.String(20), nullable=True),
        sa.Column("old_alliance_id", sa.String(32), nullable=True),
        sa.Column("new_alliance", sa.String(20), nullable=True),
        sa.Column("new_alliance_id", sa.String(32), nullable=True),
        sa.Column("detected_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_alliance_changes_player_detected", "alliance_changes", ["player_id", "detected_at"]
    )
    op.create_index("ix_alliance_changes_detected", "alliance_changes", ["detected_at"])


def downgrade() -> None:
    op.drop_table("alliance_changes")
    op.drop_table("name_changes")
    op.drop_table("player_snapshots")
    op.drop_table("snapshots")
    op.drop_table("uploads")
    op.drop_table("seasons")
    op.drop_table("players")
