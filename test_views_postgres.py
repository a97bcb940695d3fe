"""Row-locking behaviour that only PostgreSQL exercises. Set TEST_DATABASE_URL to run."""
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy import func, select, text
from sqlalchemy.orm import Session

from config.settings import settings
from core.dedup import select_policy
from core.errors import NotFoundError, TransientError
from core.identity import UNKNOWN, VisitorIdentity
from core.views import ViewRecorder
from crud.views import EntityKind, _advisory_lock_id
from models.shop import Shop
from models.view import ProductView


def _race(engine, calls):
    barrier = threading.Barrier(len(calls))

    def worker(call):
        kind, entity_id, identity = call
        with Session(engine) as session:
            barrier.wait()
            return ViewRecorder(session).record_view(kind, entity_id, identity)

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        return list(pool.map(worker, calls))


@pytest.mark.parametrize(
    "identity",
    [
        VisitorIdentity(None, "203.0.113.7", "Mozilla/5.0"),
        VisitorIdentity(7, UNKNOWN, "Mozilla/5.0"),
        VisitorIdentity(None, UNKNOWN, "curl/8.0"),
    ],
    ids=["address", "user", "anonymous"],
)
def test_same_visitor_race_counts_once(pg_engine, identity):
    results = _race(pg_engine, [(EntityKind.PRODUCT, 42, identity)] * 50)

    assert sum(1 for r in results if r.is_new) == 1
    with Session(pg_engine) as db:
        assert ViewRecorder(db).get_view_count(EntityKind.PRODUCT, 42) == 1
        assert db.execute(select(func.count(ProductView.id))).scalar_one() == 1


def test_distinct_visitors_and_entities_all_count(pg_engine):
    calls = []
    for i in range(10):
        calls.append((EntityKind.SHOP, 9, VisitorIdentity(None, f"192.0.2.{i}", "x")))
        calls.append((EntityKind.SHOP, 10, VisitorIdentity(None, f"192.0.2.{i}", "x")))

    results = _race(pg_engine, calls)

    assert all(r.is_new for r in results)
    with Session(pg_engine) as db:
        recorder = ViewRecorder(db)
        assert recorder.get_view_count(EntityKind.SHOP, 9) == 10
        assert recorder.get_view_count(EntityKind.SHOP, 10) == 10


def test_lock_timeout_is_transient_and_other_visitors_proceed(pg_engine, monkeypatch):
    monkeypatch.setattr(settings, "DB_LOCK_TIMEOUT_MS", 200)
    blocked = VisitorIdentity(None, "203.0.113.7", "Mozilla/5.0")
    other = VisitorIdentity(None, "198.51.100.2", "Mozilla/5.0")

    with pg_engine.connect() as holder:
        holder.execute(
            text("SELECT pg_advisory_xact_lock(:key)"),
            {"key": _advisory_lock_id(EntityKind.SHOP, 9, select_policy(blocked))},
        )
        with Session(pg_engine) as db:
            recorder = ViewRecorder(db)
            with pytest.raises(TransientError):
                recorder.record_view(EntityKind.SHOP, 9, blocked)
            assert recorder.record_view(EntityKind.SHOP, 9, other).is_new
        holder.rollback()

    with Session(pg_engine) as db:
        assert ViewRecorder(db).record_view(EntityKind.SHOP, 9, blocked).is_new


def test_failed_recording_leaves_callers_flushed_work_uncommitted(pg_engine):
    with Session(pg_engine) as db:
        db.add(Shop(id=77, owner_id=3, name="Pop-up Stall"))
        db.flush()

        with pytest.raises(NotFoundError):
            ViewRecorder(db).record_view(EntityKind.PRODUCT, 999, VisitorIdentity(None, "192.0.2.1", "x"))
        db.rollback()

    with Session(pg_engine) as db:
        assert db.get(Shop, 77) is None
