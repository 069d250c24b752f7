"""
Concurrent writers against one resource.

Verifies:
- Two patches carrying the same expected version: exactly one commits,
  the other gets VersionConflictError.
- Retrying writers converge: N successful patches give version N + 1 and
  a gap-free, verifiable history.
- Writers on different resources do not block each other.

The in-memory tests run everywhere.  The PostgreSQL test uses two
ResourceStore instances (two lock tables) over one database, so only the
storage compare-and-set stands between the writers:

    DATABASE_URL=postgresql://... pytest tests/concurrency -m postgres
"""

import os
import threading
from concurrent.futures import ThreadPoolExecutor
from threading import Barrier

import pytest

from hypermedia_kernel.domain.clock import DeterministicClock
from hypermedia_kernel.exceptions import VersionConflictError
from hypermedia_kernel.services.resource_store import ResourceStore
from hypermedia_kernel.storage.sql import SqlAlchemyStorage


def _race_same_version(stores, resource_id, n_writers):
    """Every writer patches from version 1 at the same moment."""
    barrier = Barrier(n_writers, timeout=10)
    outcomes = []
    outcomes_lock = threading.Lock()

    def writer(i):
        store = stores[i % len(stores)]
        barrier.wait()
        try:
            store.apply_patch(resource_id, 1, {"reason": f"writer {i}"}, actor=f"w{i}")
            outcome = "ok"
        except VersionConflictError:
            outcome = "conflict"
        with outcomes_lock:
            outcomes.append(outcome)

    with ThreadPoolExecutor(max_workers=n_writers) as pool:
        list(pool.map(writer, range(n_writers)))
    return outcomes


class TestSameVersionRace:
    def test_two_writers_one_wins(self, store, leave_fields):
        leave = store.create("leave-request", leave_fields)
        outcomes = _race_same_version([store], leave.id, 2)

        assert sorted(outcomes) == ["conflict", "ok"]
        assert store.get(leave.id).version == 2
        assert len(store.list_history(leave.id)) == 2

    def test_many_writers_one_wins(self, store, leave_fields):
        leave = store.create("leave-request", leave_fields)
        outcomes = _race_same_version([store], leave.id, 10)

        assert outcomes.count("ok") == 1
        assert outcomes.count("conflict") == 9
        assert store.verify_history(leave.id) == 2

    def test_retrying_writers_converge(self, store, leave_fields):
        leave = store.create("leave-request", leave_fields)
        n_writers = 8
        barrier = Barrier(n_writers, timeout=10)

        def writer(i):
            barrier.wait()
            while True:
                current = store.get(leave.id)
                try:
                    store.apply_patch(leave.id, current.version, {"reason": f"writer {i}"})
                    return
                except VersionConflictError:
                    continue

        with ThreadPoolExecutor(max_workers=n_writers) as pool:
            list(pool.map(writer, range(n_writers)))

        assert store.get(leave.id).version == n_writers + 1
        events = list(store.list_history(leave.id))
        assert [e.seq for e in events] == list(range(1, n_writers + 2))
        assert store.verify_history(leave.id) == n_writers + 1


class TestIndependentResources:
    def test_different_ids_each_commit(self, store, leave_fields):
        leaves = [store.create("leave-request", leave_fields) for _ in range(6)]
        barrier = Barrier(len(leaves), timeout=10)

        def writer(leave):
            barrier.wait()
            return store.apply_patch(leave.id, 1, {"reason": "parallel"})

        with ThreadPoolExecutor(max_workers=len(leaves)) as pool:
            results = list(pool.map(writer, leaves))

        assert [r.version for r in results] == [2] * len(leaves)
        assert not barrier.broken


@pytest.mark.postgres
@pytest.mark.skipif(
    not os.environ.get("DATABASE_URL", "").startswith("postgresql"),
    reason="needs DATABASE_URL pointing at PostgreSQL",
)
class TestPostgresRace:
    def test_two_store_instances_one_wins(self, registry, sql_session_factory, leave_fields):
        stores = [
            ResourceStore(registry, SqlAlchemyStorage(sql_session_factory), DeterministicClock())
            for _ in range(2)
        ]
        leave = stores[0].create("leave-request", leave_fields)

        outcomes = _race_same_version(stores, leave.id, 4)

        assert outcomes.count("ok") == 1
        assert stores[1].get(leave.id).version == 2
        assert stores[1].verify_history(leave.id) == 2
