"""
tests/test_planet_service.py — Planet Registry Tests
=====================================================
Galaxy-scan merges, detailed observations, empire pages, soft deletion and
whole-page galaxy scans including the system scan marker.

Uses an in-memory SQLite database via the shared conftest fixtures.
SQLite hands timestamps back without tzinfo, so the tests use naive UTC.
"""

from __future__ import annotations

from datetime import datetime

import pytest
from conftest import seed_player
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from galaxyhub.database.models import Alliance, Planet, Player
from galaxyhub.errors import ConstraintViolation, InvalidInput
from galaxyhub.services import hub_service, planet_service
from galaxyhub.services.planet_service import (
    DestroyedBody,
    EmpirePlanet,
    GalaxyScan,
    ScannedPlanet,
)

T1 = datetime(2026, 3, 1, 12, 0, 0)
T2 = datetime(2026, 3, 2, 12, 0, 0)


@pytest.fixture
def engine(db_engine):
    seed_player(db_engine, 1001, "Vega")
    seed_player(db_engine, 1002, "Rigel")
    return db_engine


def _state(engine, coords="1:2:3", type="PLANET") -> dict:
    row = planet_service.get_planet(engine, coords, type)
    row.pop("updated_at")
    return row


class TestScanMerge:

    def test_absent_creates_normal_row(self, engine):
        created = planet_service.upsert_planet_from_scan(
            engine, "Homeworld", 1001, "1:2:3", source_planet_id=33, observed_at=T1,
        )
        assert created
        planet = planet_service.get_planet(engine, "1:2:3")
        assert planet["name"] == "Homeworld"
        assert planet["player_id"] == 1001
        assert planet["source_planet_id"] == 33
        assert planet["status"] == "normal"
        assert (planet["galaxy"], planet["system"], planet["planet"]) == (1, 2, 3)
        assert planet["updated_at"] == T1

    def test_idempotent(self, engine):
        args = dict(name="Homeworld", player_id=1001, coordinates="1:2:3", source_planet_id=33)
        planet_service.upsert_planet_from_scan(engine, **args, observed_at=T1)
        first = _state(engine)
        assert planet_service.upsert_planet_from_scan(engine, **args, observed_at=T1) is False
        assert _state(engine) == first

    def test_owner_and_name_overwritten(self, engine):
        planet_service.upsert_planet_from_scan(engine, "Old", 1001, "1:2:3", observed_at=T1)
        planet_service.upsert_planet_from_scan(engine, "New", 1002, "1:2:3", observed_at=T2)
        planet = planet_service.get_planet(engine, "1:2:3")
        assert (planet["name"], planet["player_id"]) == ("New", 1002)
        assert planet["updated_at"] == T2

    def test_null_source_id_keeps_stored_value(self, engine):
        planet_service.upsert_planet_from_scan(engine, "P", 1001, "1:2:3", source_planet_id=33)
        planet_service.upsert_planet_from_scan(engine, "P", 1001, "1:2:3", source_planet_id=None)
        assert planet_service.get_planet(engine, "1:2:3")["source_planet_id"] == 33

    def test_non_null_source_id_overwrites(self, engine):
        planet_service.upsert_planet_from_scan(engine, "P", 1001, "1:2:3", source_planet_id=33)
        planet_service.upsert_planet_from_scan(engine, "P", 1001, "1:2:3", source_planet_id=44)
        assert planet_service.get_planet(engine, "1:2:3")["source_planet_id"] == 44

    def test_planet_and_moon_are_distinct(self, engine):
        planet_service.upsert_planet_from_scan(engine, "P", 1001, "1:2:3")
        planet_service.upsert_planet_from_scan(engine, "M", 1001, "1:2:3", type="MOON")
        assert planet_service.get_planet(engine, "1:2:3")["name"] == "P"
        assert planet_service.get_planet(engine, "1:2:3", "MOON")["name"] == "M"

    def test_triple_and_string_forms_hit_same_row(self, engine):
        planet_service.upsert_planet_from_scan(engine, "P", 1001, None, 1, 2, 3)
        assert planet_service.upsert_planet_from_scan(engine, "Q", 1001, "1:2:3", 1, 2, 3) is False
        with Session(engine) as session:
            assert session.scalar(select(func.count()).select_from(Planet)) == 1

    def test_malformed_coordinates_rejected(self, engine):
        with pytest.raises(InvalidInput):
            planet_service.upsert_planet_from_scan(engine, "P", 1001, "1:2")
        with pytest.raises(InvalidInput):
            planet_service.upsert_planet_from_scan(engine, "P", 1001, "1:2:3", type="STATION")

    def test_unknown_owner_is_constraint_violation(self, engine):
        with pytest.raises(ConstraintViolation):
            planet_service.upsert_planet_from_scan(engine, "P", 4242, "1:2:3")
        assert planet_service.get_planet(engine, "1:2:3") is None

    def test_unknown_owner_on_existing_row_leaves_it_untouched(self, engine):
        planet_service.upsert_planet_from_scan(engine, "P", 1001, "1:2:3")
        with pytest.raises(ConstraintViolation):
            planet_service.upsert_planet_from_scan(engine, "Q", 4242, "1:2:3")
        planet = planet_service.get_planet(engine, "1:2:3")
        assert (planet["name"], planet["player_id"]) == ("P", 1001)


class TestDetailedObservation:

    def test_scan_does_not_touch_detailed_fields(self, engine):
        planet_service.upsert_planet_from_scan(engine, "P", 1001, "1:2:3")
        planet_service.merge_detailed_observation(
            engine, "1:2:3",
            buildings={"1": 20}, fleet={"202": 5}, defense={"401": 10},
            resources={"metal": 1000}, production_rate=250,
        )
        planet_service.upsert_planet_from_scan(engine, "Renamed", 1002, "1:2:3")

        planet = planet_service.get_planet(engine, "1:2:3")
        assert planet["buildings"] == {"1": 20}
        assert planet["fleet"] == {"202": 5}
        assert planet["defense"] == {"401": 10}
        assert planet["resources"] == {"metal": 1000}
        assert planet["production_rate"] == 250

    def test_observation_does_not_touch_owner(self, engine):
        planet_service.upsert_planet_from_scan(engine, "P", 1001, "1:2:3", source_planet_id=9)
        planet_service.merge_detailed_observation(engine, "1:2:3", fleet={"202": 1})
        planet = planet_service.get_planet(engine, "1:2:3")
        assert (planet["name"], planet["player_id"], planet["source_planet_id"]) == ("P", 1001, 9)

    def test_partial_observation_keeps_other_details(self, engine):
        planet_service.merge_detailed_observation(
            engine, "1:2:3", buildings={"1": 20}, fleet={"202": 5},
        )
        planet_service.merge_detailed_observation(engine, "1:2:3", fleet={"202": 8})
        planet = planet_service.get_planet(engine, "1:2:3")
        assert planet["buildings"] == {"1": 20}
        assert planet["fleet"] == {"202": 8}

    def test_unknown_coordinate_creates_unclaimed_row(self, engine):
        assert planet_service.merge_detailed_observation(engine, "4:5:6", resources={"metal": 1})
        planet = planet_service.get_planet(engine, "4:5:6")
        assert planet["player_id"] is None
        assert planet["name"] is None
        assert planet["status"] == "normal"

    def test_unchanged_observation_keeps_timestamp(self, engine):
        planet_service.merge_detailed_observation(engine, "1:2:3", fleet={"202": 5}, observed_at=T1)
        planet_service.merge_detailed_observation(engine, "1:2:3", fleet={"202": 5}, observed_at=T2)
        assert planet_service.get_planet(engine, "1:2:3")["updated_at"] == T1


class TestEmpire:

    def test_empire_overwrites_and_revives(self, engine):
        planet_service.upsert_planet_from_scan(engine, "Scan name", 1002, "1:2:3")
        planet_service.mark_planet_deleted(engine, "1:2:3")

        empire = EmpirePlanet(
            player_id=1001, source_planet_id=77, name="Capital", coordinates="1:2:3",
            fields_used=120, fields_max=163, temperature=-20, points=5000,
            buildings={"1": 30}, fleet={"202": 12},
        )
        assert planet_service.upsert_planet_from_empire(engine, empire, observed_at=T2) is False

        planet = planet_service.get_planet(engine, "1:2:3")
        assert planet["status"] == "normal"
        assert (planet["name"], planet["player_id"]) == ("Capital", 1001)
        assert planet["source_planet_id"] == 77
        assert planet["points"] == 5000
        assert planet["buildings"] == {"1": 30}

    def test_empire_registers_unknown_owner(self, engine):
        empire = EmpirePlanet(player_id=3003, source_planet_id=1, name="New", coordinates="2:2:2")
        assert planet_service.upsert_planet_from_empire(engine, empire)
        with Session(engine) as session:
            assert session.get(Player, 3003) is not None


class TestSoftDelete:

    def test_deleted_row_kept_and_hidden_from_listings(self, engine):
        with Session(engine) as session:
            session.add(Alliance(id=7, name="Night Watch", tag="NW"))
            session.get(Player, 1001).alliance_id = 7
            session.commit()

        planet_service.upsert_planet_from_scan(engine, "Gone", 1001, "1:2:3")
        planet_service.upsert_planet_from_scan(engine, "Stays", 1001, "1:2:4")
        assert planet_service.mark_planet_deleted(engine, "1:2:3")

        assert planet_service.get_planet(engine, "1:2:3")["status"] == "deleted"
        listed = [p["coordinates"] for p in hub_service.get_galaxy_system(engine, 1, 2)]
        assert listed == ["1:2:4"]
        listed = [p["coordinates"] for p in hub_service.get_alliance_planets(engine, 7)]
        assert listed == ["1:2:4"]

    def test_unknown_body_returns_false(self, engine):
        assert planet_service.mark_planet_deleted(engine, "9:9:9") is False

    def test_scan_does_not_revive(self, engine):
        planet_service.upsert_planet_from_scan(engine, "P", 1001, "1:2:3")
        planet_service.mark_planet_deleted(engine, "1:2:3")
        planet_service.upsert_planet_from_scan(engine, "P", 1002, "1:2:3")
        planet = planet_service.get_planet(engine, "1:2:3")
        assert planet["status"] == "deleted"
        assert planet["player_id"] == 1002


class TestGalaxyScan:

    def test_full_page(self, engine):
        scan = GalaxyScan(
            galaxy=3, system=7,
            planets=[
                ScannedPlanet(
                    position=4, player_id=1001, player_name="Vega", planet_name="Home",
                    has_moon=True, moon_name="Moon", planet_id=40, moon_id=41,
                    alliance_id=9, alliance_tag="ORI", alliance_name="Orion",
                ),
                ScannedPlanet(position=5, player_id=5005, player_name="Newcomer",
                              planet_name="Fresh"),
                ScannedPlanet(position=6, player_id=None, planet_name="Debris"),
                ScannedPlanet(position=8, player_id=0, planet_name="Nobody"),
            ],
            destroyed=[DestroyedBody(position=9)],
        )
        planet_service.upsert_planet_from_scan(engine, "Doomed", 1002, "3:7:9")

        result = planet_service.apply_galaxy_scan(engine, scan, observed_at=T1)

        assert (result.created, result.skipped, result.deleted) == (3, 2, 1)
        assert result.marker == "SCANNED"
        assert planet_service.get_planet(engine, "3:7:4", "MOON")["source_planet_id"] == 41
        assert planet_service.get_planet(engine, "3:7:9")["status"] == "deleted"
        assert planet_service.get_planet(engine, "3:7:6") is None

        with Session(engine) as session:
            assert session.get(Player, 5005).name == "Newcomer"
            assert session.get(Player, 1001).alliance_id == 9
            assert session.get(Alliance, 9).tag == "ORI"

        marker = planet_service.get_planet(engine, "3:7:0")
        assert marker["player_id"] is None
        assert marker["name"] == "SCANNED"
        assert [p["planet"] for p in hub_service.get_galaxy_system(engine, 3, 7)] == [4, 4, 5]

    def test_empty_page_marks_system_empty(self, engine):
        result = planet_service.apply_galaxy_scan(engine, GalaxyScan(galaxy=2, system=5))
        assert result.marker == "EMPTY"
        assert planet_service.get_planet(engine, "2:5:0")["name"] == "EMPTY"

    def test_marker_tracks_latest_scan(self, engine):
        planet_service.apply_galaxy_scan(engine, GalaxyScan(galaxy=3, system=7), observed_at=T1)
        planet_service.apply_galaxy_scan(engine, GalaxyScan(galaxy=3, system=7), observed_at=T2)
        status = hub_service.get_galaxy_scan_status(engine)
        assert status == [{"galaxy": 3, "system": 7, "last_scan_at": T2}]
        assert hub_service.get_system_last_scan(engine, 3, 7) == T2

    def test_failed_page_writes_nothing(self, engine):
        scan = GalaxyScan(
            galaxy=3, system=7,
            planets=[ScannedPlanet(position=4, player_id=1001, planet_name="Home")],
            destroyed=[DestroyedBody(position=5, type="ASTEROID")],
        )
        with pytest.raises(InvalidInput):
            planet_service.apply_galaxy_scan(engine, scan)
        assert planet_service.get_planet(engine, "3:7:0") is None
        assert hub_service.get_galaxy_scan_status(engine) == []
