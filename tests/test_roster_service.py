"""
tests/test_roster_service.py — Alliance & Player Registration Tests
====================================================================
"""

from __future__ import annotations

import pytest
from conftest import seed_alliance
from sqlalchemy.orm import Session

from galaxyhub.database.models import Alliance
from galaxyhub.errors import ConstraintViolation, NotFound
from galaxyhub.services import roster_service


class TestEnsureAlliance:

    def test_name_fixed_tag_follows_latest(self, db_engine):
        assert roster_service.ensure_alliance(db_engine, 7, "Night Watch", "NW")
        assert not roster_service.ensure_alliance(db_engine, 7, "Renamed", "NWX")

        with Session(db_engine) as session:
            alliance = session.get(Alliance, 7)
            assert (alliance.name, alliance.tag) == ("Night Watch", "NWX")

    def test_idempotent(self, db_engine):
        roster_service.ensure_alliance(db_engine, 7, "Night Watch", "NW")
        first = roster_service.get_alliance(db_engine, 7)
        roster_service.ensure_alliance(db_engine, 7, "Night Watch", "NW")
        assert roster_service.get_alliance(db_engine, 7) == first

    def test_unknown_alliance_lookup(self, db_engine):
        with pytest.raises(NotFound):
            roster_service.get_alliance(db_engine, 404)


class TestPlayers:

    def test_ensure_player_never_overwrites(self, db_engine):
        assert roster_service.ensure_player(db_engine, 1001, "Vega")
        assert not roster_service.ensure_player(db_engine, 1001, "Someone Else")
        assert roster_service.get_player(db_engine, 1001)["name"] == "Vega"

    def test_upsert_player_coalesces_scores(self, db_engine):
        seed_alliance(db_engine, 7)
        roster_service.upsert_player(
            db_engine, 1001, "Vega", alliance_id=7, main_coordinates="1:2:3",
            score_total=5000, score_total_rank=12, score_fleet=800, score_fleet_rank=40,
        )
        roster_service.upsert_player(db_engine, 1001, "Vega II", alliance_id=7)

        player = roster_service.get_player(db_engine, 1001)
        assert player["name"] == "Vega II"
        assert player["main_coordinates"] == "1:2:3"
        assert player["score_total"] == 5000
        assert player["score_fleet_rank"] == 40

    def test_leaving_alliance_is_recorded(self, db_engine):
        seed_alliance(db_engine, 7)
        roster_service.upsert_player(db_engine, 1001, "Vega", alliance_id=7)
        roster_service.upsert_player(db_engine, 1001, "Vega", alliance_id=None)
        assert roster_service.get_player(db_engine, 1001)["alliance_id"] is None

    def test_unknown_alliance_is_constraint_violation(self, db_engine):
        with pytest.raises(ConstraintViolation):
            roster_service.upsert_player(db_engine, 1001, "Vega", alliance_id=99)
        assert roster_service.get_player(db_engine, 1001) is None

    def test_mark_deleted(self, db_engine):
        roster_service.ensure_player(db_engine, 1001, "Vega")
        assert roster_service.mark_player_deleted(db_engine, 1001)
        assert roster_service.get_player(db_engine, 1001)["is_deleted"] is True
        assert roster_service.mark_player_deleted(db_engine, 404) is False
