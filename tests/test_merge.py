"""
tests/test_merge.py — Atomic Upsert & Field Policy Tests
=========================================================
Field merge functions, ``apply_fields`` and the ``atomic_upsert`` paths
(create, merge, concurrent-duplicate fallback, dangling foreign key), and
real threads writing to one SQLite file.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from types import SimpleNamespace

import pytest
from conftest import seed_player
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from galaxyhub.database.engine import create_db_engine, init_db
from galaxyhub.database.models import Alliance, Planet, Player, SpyReport
from galaxyhub.engine import merge as merge_mod
from galaxyhub.engine.merge import (
    apply_fields,
    atomic_upsert,
    coalesce,
    keep_first,
    overwrite,
)
from galaxyhub.errors import ConstraintViolation
from galaxyhub.services import dedup_service, planet_service, report_service


class TestFieldPolicies:

    def test_overwrite_takes_none(self):
        assert overwrite(5, None) is None
        assert overwrite(5, 6) == 6

    def test_coalesce_keeps_existing_on_none(self):
        assert coalesce(5, None) == 5
        assert coalesce(5, 6) == 6
        assert coalesce(None, 0) == 0

    def test_keep_first_only_fills_gaps(self):
        assert keep_first(None, 6) == 6
        assert keep_first(5, 6) == 5

    def test_apply_fields_reports_changes_and_ignores_unlisted(self):
        row = SimpleNamespace(name="a", source=9, coords="1:1:1")
        changed = apply_fields(
            row,
            {"name": "b", "source": None, "coords": "2:2:2"},
            {"name": overwrite, "source": coalesce},
        )
        assert changed == ["name"]
        assert row.name == "b"
        assert row.source == 9
        assert row.coords == "1:1:1"

    def test_apply_fields_skips_absent_fields(self):
        row = SimpleNamespace(name="a")
        assert apply_fields(row, {}, {"name": overwrite}) == []
        assert row.name == "a"


class TestAtomicUpsert:

    def test_create_then_merge(self, db_engine):
        with Session(db_engine) as session:
            row, created = atomic_upsert(
                session, Alliance, {"id": 1},
                create=lambda: Alliance(id=1, name="One", tag="ONE"),
                merge=lambda a: setattr(a, "tag", "X"),
            )
            assert created
            row, created = atomic_upsert(
                session, Alliance, {"id": 1},
                create=lambda: Alliance(id=1, name="Other", tag="OTH"),
                merge=lambda a: setattr(a, "tag", "UNO"),
            )
            assert not created
            session.commit()

        with Session(db_engine) as session:
            alliance = session.get(Alliance, 1)
            assert (alliance.name, alliance.tag) == ("One", "UNO")

    def test_concurrent_insert_falls_back_to_merge(self, db_engine, monkeypatch):
        """Lookup misses, insert hits the unique key: the upsert merges."""
        with Session(db_engine) as session:
            session.add(Alliance(id=2, name="Two", tag="TWO"))
            session.commit()

        real_lookup = merge_mod._locked_lookup
        calls = {"n": 0}

        def stale_first_lookup(session, model, key):
            calls["n"] += 1
            if calls["n"] == 1:
                return None
            return real_lookup(session, model, key)

        monkeypatch.setattr(merge_mod, "_locked_lookup", stale_first_lookup)

        with Session(db_engine) as session:
            row, created = atomic_upsert(
                session, Alliance, {"id": 2},
                create=lambda: Alliance(id=2, name="Dup", tag="DUP"),
                merge=lambda a: setattr(a, "tag", "T2"),
            )
            session.commit()

        assert not created
        with Session(db_engine) as session:
            alliance = session.get(Alliance, 2)
            assert (alliance.name, alliance.tag) == ("Two", "T2")

    def test_dangling_foreign_key_is_constraint_violation(self, db_engine):
        with Session(db_engine) as session:
            with pytest.raises(ConstraintViolation):
                atomic_upsert(
                    session, Player, {"id": 5},
                    create=lambda: Player(id=5, name="Ghost", alliance_id=999),
                    merge=lambda p: None,
                )
            # The SAVEPOINT rolled back; the outer transaction is usable.
            assert session.scalars(select(Player)).all() == []


class TestConcurrentWriters:
    """Real threads racing on a file-backed SQLite database."""

    WORKERS = 8

    @pytest.fixture
    def file_engine(self, tmp_path):
        engine = create_db_engine(f"sqlite:///{tmp_path / 'hub.db'}")
        init_db(engine)
        seed_player(engine, 1001, "Vega")
        yield engine
        engine.dispose()

    def _race(self, work):
        barrier = threading.Barrier(self.WORKERS)

        def worker(i):
            barrier.wait()
            return work(i)

        with ThreadPoolExecutor(max_workers=self.WORKERS) as pool:
            futures = [pool.submit(worker, i) for i in range(self.WORKERS)]
            return [f.result() for f in futures]

    def test_same_planet_created_once(self, file_engine):
        created = self._race(
            lambda i: planet_service.upsert_planet_from_scan(file_engine, f"P{i}", 1001, "1:2:3")
        )
        assert created.count(True) == 1
        with Session(file_engine) as session:
            assert session.scalar(select(func.count()).select_from(Planet)) == 1
        names = {f"P{i}" for i in range(self.WORKERS)}
        assert planet_service.get_planet(file_engine, "1:2:3")["name"] in names

    def test_same_report_created_once(self, file_engine):
        created = self._race(
            lambda i: report_service.upsert_spy_report(
                file_engine, "r1", "1:2:3", resources={"metal": i},
            )
        )
        assert created.count(True) == 1
        assert dedup_service.check_duplicate_message_ids(file_engine, ["r1"]) == {"r1"}

    def test_different_keys_all_land(self, file_engine):
        planets = self._race(
            lambda i: planet_service.upsert_planet_from_scan(
                file_engine, f"P{i}", 1001, f"1:2:{i + 1}",
            )
        )
        reports = self._race(
            lambda i: report_service.upsert_spy_report(file_engine, f"r{i}", f"1:2:{i + 1}")
        )
        assert planets == [True] * self.WORKERS
        assert reports == [True] * self.WORKERS
        with Session(file_engine) as session:
            assert session.scalar(select(func.count()).select_from(Planet)) == self.WORKERS
            assert session.scalar(select(func.count()).select_from(SpyReport)) == self.WORKERS
