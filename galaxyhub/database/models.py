"""
galaxyhub.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- alliances        — Alliance registry (external id PK, name fixed, tag mutable)
- players          — Players seen in scans / stats, soft-deletable
- planets          — Canonical planet + moon records, UNIQUE(coordinates, type)
- spy_reports      — Spy report store, UNIQUE(external_id)
- recycle_reports  — Recycle report store, UNIQUE(external_id)
- battle_reports   — Battle report store, UNIQUE(external_id)
- expedition_reports — Expedition outcomes, UNIQUE(external_id)
- hostile_spying   — Foreign espionage against our bodies, UNIQUE(external_id)
- messages         — Dedup ledger of every processed message id
- player_scores    — Append-only score snapshots, UNIQUE(player_id, recorded_at)
- users            — API-key holders (identity lookup only)
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from galaxyhub.constants import DEFAULT_LANGUAGE, PlanetStatus, PlanetType, UserRole

# Game-id keyed maps ({"202": 100, ...}).  JSONB on PostgreSQL, JSON elsewhere.
# None is stored as SQL NULL so "IS NOT NULL" filters mean "observed".
JSONMap = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all galaxyhub ORM models."""


# ---------------------------------------------------------------------------
# Alliances
# ---------------------------------------------------------------------------
class Alliance(Base):
    __tablename__ = "alliances"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    tag: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    players: Mapped[list[Player]] = relationship(back_populates="alliance")

    def __repr__(self) -> str:
        return f"<Alliance id={self.id} tag={self.tag!r}>"


# ---------------------------------------------------------------------------
# Players
# ---------------------------------------------------------------------------
class Player(Base):
    __tablename__ = "players"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    alliance_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("alliances.id", ondelete="SET NULL"), nullable=True
    )
    main_coordinates: Mapped[str | None] = mapped_column(String(16), default=None)
    score_total: Mapped[int | None] = mapped_column(BigInteger, default=None)
    score_total_rank: Mapped[int | None] = mapped_column(Integer, default=None)
    score_fleet: Mapped[int | None] = mapped_column(BigInteger, default=None)
    score_fleet_rank: Mapped[int | None] = mapped_column(Integer, default=None)
    is_deleted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    alliance: Mapped[Alliance | None] = relationship(back_populates="players")
    planets: Mapped[list[Planet]] = relationship(back_populates="owner")

    __table_args__ = (
        Index("ix_players_alliance", "alliance_id"),
    )

    def __repr__(self) -> str:
        return f"<Player id={self.id} name={self.name!r} alliance={self.alliance_id}>"


# ---------------------------------------------------------------------------
# Planets — canonical record per (coordinates, type)
# ---------------------------------------------------------------------------
class Planet(Base):
    """One planet or moon.

    Position 0 within a (galaxy, system) is a scan marker: its ``updated_at``
    records when the system was last fully scanned.  Rows are soft-deleted
    through ``status`` and never purged, so report history stays linked.
    """
    __tablename__ = "planets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_planet_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    player_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("players.id"), nullable=True
    )
    name: Mapped[str | None] = mapped_column(String(100), default=None)
    coordinates: Mapped[str] = mapped_column(String(16), nullable=False)
    galaxy: Mapped[int] = mapped_column(Integer, nullable=False)
    system: Mapped[int] = mapped_column(Integer, nullable=False)
    planet: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(
        String(10), nullable=False, default=PlanetType.PLANET.value
    )

    # Detailed observation (espionage / own buildings page)
    buildings: Mapped[dict | None] = mapped_column(JSONMap, default=None)
    fleet: Mapped[dict | None] = mapped_column(JSONMap, default=None)
    defense: Mapped[dict | None] = mapped_column(JSONMap, default=None)
    resources: Mapped[dict | None] = mapped_column(JSONMap, default=None)
    production_rate: Mapped[int | None] = mapped_column(BigInteger, default=None)

    # Empire page
    fields_used: Mapped[int | None] = mapped_column(Integer, default=None)
    fields_max: Mapped[int | None] = mapped_column(Integer, default=None)
    temperature: Mapped[int | None] = mapped_column(Integer, default=None)
    points: Mapped[int | None] = mapped_column(BigInteger, default=None)
    metal_prod_h: Mapped[int | None] = mapped_column(BigInteger, default=None)
    crystal_prod_h: Mapped[int | None] = mapped_column(BigInteger, default=None)
    deut_prod_h: Mapped[int | None] = mapped_column(BigInteger, default=None)
    energy_used: Mapped[int | None] = mapped_column(BigInteger, default=None)
    energy_max: Mapped[int | None] = mapped_column(BigInteger, default=None)

    status: Mapped[str | None] = mapped_column(
        String(10), nullable=True, default=PlanetStatus.NORMAL.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    owner: Mapped[Player | None] = relationship(back_populates="planets")

    __table_args__ = (
        UniqueConstraint("coordinates", "type", name="uq_planets_coordinates_type"),
        Index("ix_planets_player", "player_id"),
        Index("ix_planets_coords", "galaxy", "system", "planet"),
        Index("ix_planets_status", "status"),
        Index(
            "ix_planets_system_markers", "galaxy", "system", "updated_at",
            postgresql_where=text("planet = 0"),
            sqlite_where=text("planet = 0"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Planet {self.coordinates} {self.type} owner={self.player_id}>"


# ---------------------------------------------------------------------------
# SpyReport — keyed by the originating client's external id
# ---------------------------------------------------------------------------
class SpyReport(Base):
    __tablename__ = "spy_reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    coordinates: Mapped[str] = mapped_column(String(16), nullable=False)
    galaxy: Mapped[int] = mapped_column(Integer, nullable=False)
    system: Mapped[int] = mapped_column(Integer, nullable=False)
    planet: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(
        String(10), nullable=False, default=PlanetType.PLANET.value
    )
    resources: Mapped[dict | None] = mapped_column(JSONMap, default=None)
    buildings: Mapped[dict | None] = mapped_column(JSONMap, default=None)
    research: Mapped[dict | None] = mapped_column(JSONMap, default=None)
    fleet: Mapped[dict | None] = mapped_column(JSONMap, default=None)
    defense: Mapped[dict | None] = mapped_column(JSONMap, default=None)
    reported_by: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("players.id"), nullable=True
    )
    report_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_spy_reports_coords", "galaxy", "system", "planet", "type"),
        Index("ix_spy_reports_created", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<SpyReport ext={self.external_id!r} {self.coordinates} {self.type}>"


# ---------------------------------------------------------------------------
# RecycleReport — recoverable debris yield
# ---------------------------------------------------------------------------
class RecycleReport(Base):
    __tablename__ = "recycle_reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    coordinates: Mapped[str] = mapped_column(String(16), nullable=False)
    galaxy: Mapped[int] = mapped_column(Integer, nullable=False)
    system: Mapped[int] = mapped_column(Integer, nullable=False)
    planet: Mapped[int] = mapped_column(Integer, nullable=False)
    metal: Mapped[int] = mapped_column(BigInteger, default=0)
    crystal: Mapped[int] = mapped_column(BigInteger, default=0)
    metal_tf: Mapped[int] = mapped_column(BigInteger, default=0)
    crystal_tf: Mapped[int] = mapped_column(BigInteger, default=0)
    report_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    reported_by: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("players.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_recycle_reports_coords", "galaxy", "system", "planet"),
    )

    def __repr__(self) -> str:
        return f"<RecycleReport ext={self.external_id!r} {self.coordinates}>"


# ---------------------------------------------------------------------------
# BattleReport — losses, loot and debris of one fight
# ---------------------------------------------------------------------------
class BattleReport(Base):
    __tablename__ = "battle_reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    coordinates: Mapped[str] = mapped_column(String(16), nullable=False)
    galaxy: Mapped[int] = mapped_column(Integer, nullable=False)
    system: Mapped[int] = mapped_column(Integer, nullable=False)
    planet: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[str] = mapped_column(
        String(10), nullable=False, default=PlanetType.PLANET.value
    )
    attacker_lost: Mapped[int] = mapped_column(BigInteger, default=0)
    defender_lost: Mapped[int] = mapped_column(BigInteger, default=0)
    # Loot
    metal: Mapped[int] = mapped_column(BigInteger, default=0)
    crystal: Mapped[int] = mapped_column(BigInteger, default=0)
    deuterium: Mapped[int] = mapped_column(BigInteger, default=0)
    # Debris field
    debris_metal: Mapped[int] = mapped_column(BigInteger, default=0)
    debris_crystal: Mapped[int] = mapped_column(BigInteger, default=0)
    report_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    reported_by: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("players.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_battle_reports_coords", "galaxy", "system", "planet"),
    )

    def __repr__(self) -> str:
        return f"<BattleReport ext={self.external_id!r} {self.coordinates} {self.type}>"


# ---------------------------------------------------------------------------
# ExpeditionReport — what an expedition came back with
# ---------------------------------------------------------------------------
class ExpeditionReport(Base):
    """No coordinates: expeditions fly to deep space, not to a body."""
    __tablename__ = "expedition_reports"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    message: Mapped[str | None] = mapped_column(String, nullable=True)
    # Outcome kind: resources, fleet, combat, ...
    type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    resources: Mapped[dict | None] = mapped_column(JSONMap, default=None)
    fleet: Mapped[dict | None] = mapped_column(JSONMap, default=None)
    report_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    reported_by: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("players.id"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<ExpeditionReport ext={self.external_id!r} {self.type}>"


# ---------------------------------------------------------------------------
# HostileSpying — someone else spied on one of our bodies
# ---------------------------------------------------------------------------
class HostileSpying(Base):
    __tablename__ = "hostile_spying"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    attacker_coordinates: Mapped[str | None] = mapped_column(String(16), nullable=True)
    target_coordinates: Mapped[str | None] = mapped_column(String(16), nullable=True)
    report_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_hostile_spying_target", "target_coordinates"),
        Index("ix_hostile_spying_created", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<HostileSpying ext={self.external_id!r} "
            f"{self.attacker_coordinates} -> {self.target_coordinates}>"
        )


# ---------------------------------------------------------------------------
# Message — dedup ledger
# ---------------------------------------------------------------------------
class Message(Base):
    """Every message id a client has submitted, report or not."""
    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    external_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<Message ext={self.external_id!r}>"


# ---------------------------------------------------------------------------
# PlayerScore — append-only time series
# ---------------------------------------------------------------------------
class PlayerScore(Base):
    __tablename__ = "player_scores"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    player_id: Mapped[int] = mapped_column(
        BigInteger, ForeignKey("players.id"), nullable=False
    )
    score_total: Mapped[int] = mapped_column(BigInteger, default=0)
    score_economy: Mapped[int] = mapped_column(BigInteger, default=0)
    score_research: Mapped[int] = mapped_column(BigInteger, default=0)
    score_military: Mapped[int] = mapped_column(BigInteger, default=0)
    score_defense: Mapped[int] = mapped_column(BigInteger, default=0)
    rank_total: Mapped[int | None] = mapped_column(Integer, default=None)
    rank_economy: Mapped[int | None] = mapped_column(Integer, default=None)
    rank_research: Mapped[int | None] = mapped_column(Integer, default=None)
    rank_military: Mapped[int | None] = mapped_column(Integer, default=None)
    rank_defense: Mapped[int | None] = mapped_column(Integer, default=None)
    recorded_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        UniqueConstraint("player_id", "recorded_at", name="uq_player_scores_player_time"),
        Index("ix_player_scores_time", "recorded_at"),
    )

    def __repr__(self) -> str:
        return f"<PlayerScore player={self.player_id} at={self.recorded_at}>"


# ---------------------------------------------------------------------------
# User — API-key holder
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    api_key: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    # Not a foreign key: a user may bind to a player the hub hasn't seen yet.
    player_id: Mapped[int | None] = mapped_column(BigInteger, default=None)
    alliance_id: Mapped[int | None] = mapped_column(
        BigInteger, ForeignKey("alliances.id"), nullable=True
    )
    language: Mapped[str] = mapped_column(String(8), nullable=False, default=DEFAULT_LANGUAGE)
    role: Mapped[str] = mapped_column(String(10), nullable=False, default=UserRole.USER.value)
    last_activity_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_users_role", "role"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} role={self.role!r}>"
