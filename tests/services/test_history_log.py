"""
Tests for HistoryLog (``hypermedia_kernel.services.history_log``).

Invariants tested:
- seq is 1-based and gap-free; each event chains to the previous hash.
- A HistoryView is bounded at creation, lazy and restartable.
- verify_chain detects any edited, removed or reordered event.
"""

from dataclasses import replace
from datetime import datetime, timezone
from uuid import uuid4

import pytest

from hypermedia_kernel.domain.resource import HistoryEventKind, PendingEvent
from hypermedia_kernel.exceptions import HistoryChainBrokenError
from hypermedia_kernel.services.history_log import HistoryLog
from hypermedia_kernel.storage.memory import InMemoryStorage

NOW = datetime(2025, 11, 1, 9, 0, tzinfo=timezone.utc)


def _pending(version: int, kind=HistoryEventKind.FIELDS_UPDATED, **changes) -> PendingEvent:
    return PendingEvent(
        kind=kind,
        actor="tester",
        occurred_at=NOW,
        version=version,
        operation_id=uuid4(),
        changes=changes,
    )


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def log(storage):
    return HistoryLog(storage)


class TestAppend:
    def test_genesis_event(self, log):
        resource_id = uuid4()
        event = log.append(resource_id, _pending(1, HistoryEventKind.CREATED))
        assert event.seq == 1
        assert event.is_genesis
        assert len(event.hash) == 64

    def test_chain(self, log):
        resource_id = uuid4()
        first = log.append(resource_id, _pending(1, HistoryEventKind.CREATED))
        second = log.append(resource_id, _pending(2, reason="x"))
        third = log.append(resource_id, _pending(3, reason="y"))
        assert [first.seq, second.seq, third.seq] == [1, 2, 3]
        assert second.prev_hash == first.hash
        assert third.prev_hash == second.hash

    def test_resources_have_independent_chains(self, log):
        a, b = uuid4(), uuid4()
        log.append(a, _pending(1))
        event_b = log.append(b, _pending(1))
        assert event_b.seq == 1
        assert event_b.prev_hash is None

    def test_same_unit_of_work(self, log, storage):
        resource_id = uuid4()
        with storage.unit_of_work() as uow:
            log.append(resource_id, _pending(1), uow)
            second = log.append(resource_id, _pending(1), uow)
            assert storage.last_seq(resource_id) == 0
        assert second.seq == 2
        assert storage.last_seq(resource_id) == 2


class TestHistoryView:
    def test_bounded_at_creation(self, log):
        resource_id = uuid4()
        log.append(resource_id, _pending(1))
        log.append(resource_id, _pending(2))
        view = log.list(resource_id)
        log.append(resource_id, _pending(3))

        assert len(view) == 2
        assert [e.seq for e in view] == [1, 2]
        assert len(log.list(resource_id)) == 3

    def test_restartable(self, log):
        resource_id = uuid4()
        for version in (1, 2, 3):
            log.append(resource_id, _pending(version))
        view = log.list(resource_id)
        assert list(view) == list(view)

    def test_empty(self, log):
        view = log.list(uuid4())
        assert len(view) == 0
        assert list(view) == []

    def test_prefix_stable(self, log):
        resource_id = uuid4()
        log.append(resource_id, _pending(1))
        before = list(log.list(resource_id))
        log.append(resource_id, _pending(2))
        after = list(log.list(resource_id))
        assert after[: len(before)] == before


class TestVerifyChain:
    def _three_events(self, log):
        resource_id = uuid4()
        log.append(resource_id, _pending(1, HistoryEventKind.CREATED))
        log.append(resource_id, _pending(2, reason="x"))
        log.append(resource_id, _pending(3, reason="y"))
        return resource_id

    def test_intact(self, log, captured_logs):
        resource_id = self._three_events(log)
        assert log.verify_chain(resource_id) == 3
        assert any(r["message"] == "history_chain_verified" for r in captured_logs())

    def test_edited_payload(self, log, storage, captured_logs):
        resource_id = self._three_events(log)
        events = storage._events[resource_id]
        events[1] = replace(events[1], changes={"reason": "forged"})

        with pytest.raises(HistoryChainBrokenError) as exc_info:
            log.verify_chain(resource_id)
        assert exc_info.value.seq == 2
        assert exc_info.value.code == "HISTORY_CHAIN_BROKEN"

        record = next(r for r in captured_logs() if r["message"] == "history_chain_broken")
        assert record["level"] == "CRITICAL"

    def test_removed_event(self, log, storage):
        resource_id = self._three_events(log)
        del storage._events[resource_id][1]
        with pytest.raises(HistoryChainBrokenError) as exc_info:
            log.verify_chain(resource_id)
        assert exc_info.value.seq == 2

    def test_rehashed_event_breaks_successor(self, log, storage):
        resource_id = self._three_events(log)
        events = storage._events[resource_id]
        events[1] = replace(events[1], hash="0" * 64)
        with pytest.raises(HistoryChainBrokenError):
            log.verify_chain(resource_id)
