"""Initial galaxyhub schema

Revision ID: 5c1e9a7d3b20
Revises:
Create Date: 2026-10-18 09:12:40.118305

"""
from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = '5c1e9a7d3b20'
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JSONMap = sa.JSON(none_as_null=True).with_variant(postgresql.JSONB(none_as_null=True), "postgresql")


def _timestamps(*, updated: bool = True) -> list[sa.Column]:
    cols = [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    ]
    if updated:
        cols.append(
            sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now())
        )
    return cols


def upgrade() -> None:
    """Create alliances, players, planets, reports, ledger, scores and users."""

    # --- alliances / players ---
    op.create_table(
        "alliances",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("tag", sa.String(20), nullable=False),
        *_timestamps(),
    )
    op.create_table(
        "players",
        sa.Column("id", sa.BigInteger, primary_key=True, autoincrement=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column(
            "alliance_id", sa.BigInteger,
            sa.ForeignKey("alliances.id", ondelete="SET NULL"), nullable=True,
        ),
        sa.Column("main_coordinates", sa.String(16), nullable=True),
        sa.Column("score_total", sa.BigInteger, nullable=True),
        sa.Column("score_total_rank", sa.Integer, nullable=True),
        sa.Column("score_fleet", sa.BigInteger, nullable=True),
        sa.Column("score_fleet_rank", sa.Integer, nullable=True),
        sa.Column("is_deleted", sa.Boolean, nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_players_alliance", "players", ["alliance_id"])

    # --- planets ---
    op.create_table(
        "planets",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("source_planet_id", sa.BigInteger, nullable=True),
        sa.Column("player_id", sa.BigInteger, sa.ForeignKey("players.id"), nullable=True),
        sa.Column("name", sa.String(100), nullable=True),
        sa.Column("coordinates", sa.String(16), nullable=False),
        sa.Column("galaxy", sa.Integer, nullable=False),
        sa.Column("system", sa.Integer, nullable=False),
        sa.Column("planet", sa.Integer, nullable=False),
        sa.Column("type", sa.String(10), nullable=False, server_default="PLANET"),
        sa.Column("buildings", JSONMap, nullable=True),
        sa.Column("fleet", JSONMap, nullable=True),
        sa.Column("defense", JSONMap, nullable=True),
        sa.Column("resources", JSONMap, nullable=True),
        sa.Column("production_rate", sa.BigInteger, nullable=True),
        sa.Column("fields_used", sa.Integer, nullable=True),
        sa.Column("fields_max", sa.Integer, nullable=True),
        sa.Column("temperature", sa.Integer, nullable=True),
        sa.Column("points", sa.BigInteger, nullable=True),
        sa.Column("metal_prod_h", sa.BigInteger, nullable=True),
        sa.Column("crystal_prod_h", sa.BigInteger, nullable=True),
        sa.Column("deut_prod_h", sa.BigInteger, nullable=True),
        sa.Column("energy_used", sa.BigInteger, nullable=True),
        sa.Column("energy_max", sa.BigInteger, nullable=True),
        sa.Column("status", sa.String(10), nullable=True, server_default="normal"),
        *_timestamps(),
        sa.UniqueConstraint("coordinates", "type", name="uq_planets_coordinates_type"),
    )
    op.create_index("ix_planets_player", "planets", ["player_id"])
    op.create_index("ix_planets_coords", "planets", ["galaxy", "system", "planet"])
    op.create_index("ix_planets_status", "planets", ["status"])
    op.create_index(
        "ix_planets_system_markers", "planets", ["galaxy", "system", "updated_at"],
        postgresql_where=sa.text("planet = 0"),
        sqlite_where=sa.text("planet = 0"),
    )

    # --- reports ---
    op.create_table(
        "spy_reports",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("external_id", sa.String(64), nullable=False, unique=True),
        sa.Column("coordinates", sa.String(16), nullable=False),
        sa.Column("galaxy", sa.Integer, nullable=False),
        sa.Column("system", sa.Integer, nullable=False),
        sa.Column("planet", sa.Integer, nullable=False),
        sa.Column("type", sa.String(10), nullable=False, server_default="PLANET"),
        sa.Column("resources", JSONMap, nullable=True),
        sa.Column("buildings", JSONMap, nullable=True),
        sa.Column("research", JSONMap, nullable=True),
        sa.Column("fleet", JSONMap, nullable=True),
        sa.Column("defense", JSONMap, nullable=True),
        sa.Column("reported_by", sa.BigInteger, sa.ForeignKey("players.id"), nullable=True),
        sa.Column("report_time", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index(
        "ix_spy_reports_coords", "spy_reports", ["galaxy", "system", "planet", "type"],
    )
    op.create_index("ix_spy_reports_created", "spy_reports", ["created_at"])

    op.create_table(
        "recycle_reports",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("external_id", sa.String(64), nullable=False, unique=True),
        sa.Column("coordinates", sa.String(16), nullable=False),
        sa.Column("galaxy", sa.Integer, nullable=False),
        sa.Column("system", sa.Integer, nullable=False),
        sa.Column("planet", sa.Integer, nullable=False),
        sa.Column("metal", sa.BigInteger, server_default="0"),
        sa.Column("crystal", sa.BigInteger, server_default="0"),
        sa.Column("metal_tf", sa.BigInteger, server_default="0"),
        sa.Column("crystal_tf", sa.BigInteger, server_default="0"),
        sa.Column("report_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reported_by", sa.BigInteger, sa.ForeignKey("players.id"), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index(
        "ix_recycle_reports_coords", "recycle_reports", ["galaxy", "system", "planet"],
    )

    op.create_table(
        "battle_reports",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("external_id", sa.String(64), nullable=False, unique=True),
        sa.Column("coordinates", sa.String(16), nullable=False),
        sa.Column("galaxy", sa.Integer, nullable=False),
        sa.Column("system", sa.Integer, nullable=False),
        sa.Column("planet", sa.Integer, nullable=False),
        sa.Column("type", sa.String(10), nullable=False, server_default="PLANET"),
        *[
            sa.Column(c, sa.BigInteger, server_default="0")
            for c in (
                "attacker_lost", "defender_lost", "metal", "crystal", "deuterium",
                "debris_metal", "debris_crystal",
            )
        ],
        sa.Column("report_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reported_by", sa.BigInteger, sa.ForeignKey("players.id"), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index(
        "ix_battle_reports_coords", "battle_reports", ["galaxy", "system", "planet"],
    )

    op.create_table(
        "expedition_reports",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("external_id", sa.String(64), nullable=False, unique=True),
        sa.Column("message", sa.String, nullable=True),
        sa.Column("type", sa.String(20), nullable=True),
        sa.Column("resources", JSONMap, nullable=True),
        sa.Column("fleet", JSONMap, nullable=True),
        sa.Column("report_time", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reported_by", sa.BigInteger, sa.ForeignKey("players.id"), nullable=True),
        *_timestamps(updated=False),
    )

    op.create_table(
        "hostile_spying",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("external_id", sa.String(64), nullable=False, unique=True),
        sa.Column("attacker_coordinates", sa.String(16), nullable=True),
        sa.Column("target_coordinates", sa.String(16), nullable=True),
        sa.Column("report_time", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(updated=False),
    )
    op.create_index("ix_hostile_spying_target", "hostile_spying", ["target_coordinates"])
    op.create_index("ix_hostile_spying_created", "hostile_spying", ["created_at"])

    # --- dedup ledger ---
    op.create_table(
        "messages",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("external_id", sa.String(64), nullable=False, unique=True),
        *_timestamps(updated=False),
    )

    # --- score series ---
    op.create_table(
        "player_scores",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("player_id", sa.BigInteger, sa.ForeignKey("players.id"), nullable=False),
        *[
            sa.Column(f"score_{c}", sa.BigInteger, server_default="0")
            for c in ("total", "economy", "research", "military", "defense")
        ],
        *[
            sa.Column(f"rank_{c}", sa.Integer, nullable=True)
            for c in ("total", "economy", "research", "military", "defense")
        ],
        sa.Column("recorded_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("player_id", "recorded_at", name="uq_player_scores_player_time"),
    )
    op.create_index("ix_player_scores_time", "player_scores", ["recorded_at"])

    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("api_key", sa.String(128), nullable=False, unique=True),
        sa.Column("player_id", sa.BigInteger, nullable=True),
        sa.Column("alliance_id", sa.BigInteger, sa.ForeignKey("alliances.id"), nullable=True),
        sa.Column("language", sa.String(8), nullable=False, server_default="de"),
        sa.Column("role", sa.String(10), nullable=False, server_default="user"),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_role", "users", ["role"])


def downgrade() -> None:
    """Drop every galaxyhub table."""
    op.drop_table("users")
    op.drop_table("player_scores")
    op.drop_table("messages")
    op.drop_table("hostile_spying")
    op.drop_table("expedition_reports")
    op.drop_table("battle_reports")
    op.drop_table("recycle_reports")
    op.drop_table("spy_reports")
    op.drop_index("ix_planets_system_markers", table_name="planets")
    op.drop_table("planets")
    op.drop_table("players")
    op.drop_table("alliances")
