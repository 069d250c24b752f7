"""
In-memory storage backend.

Process-local dictionaries guarded by one short-held lock.  Writes made
inside a unit of work are buffered and applied together on commit, after
re-checking every compare-and-set condition, so a failed operation leaves
no partial state behind.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from uuid import UUID

from hypermedia_kernel.domain.resource import HistoryEvent, Resource, Subresource
from hypermedia_kernel.exceptions import StorageUnavailableError, VersionConflictError
from hypermedia_kernel.logging_config import get_logger
from hypermedia_kernel.storage.base import StorageBackend, UnitOfWork

logger = get_logger("storage.memory")


class _MemoryUnitOfWork(UnitOfWork):
    def __init__(self, storage: "InMemoryStorage"):
        self._storage = storage
        self._inserts: dict[UUID, Resource] = {}
        self._updates: dict[UUID, tuple[Resource, int]] = {}
        self._expected: dict[UUID, int] = {}
        self._events: list[HistoryEvent] = []
        self._subresources: list[Subresource] = []

    def load_resource(self, resource_id: UUID) -> Resource | None:
        if resource_id in self._updates:
            return self._updates[resource_id][0]
        if resource_id in self._inserts:
            return self._inserts[resource_id]
        return self._storage.load_resource(resource_id)

    def insert_resource(self, resource: Resource) -> None:
        self._inserts[resource.id] = resource

    def update_resource(self, resource: Resource, expected_version: int) -> None:
        current = self.load_resource(resource.id)
        if current is None or current.version != expected_version:
            raise VersionConflictError(
                str(resource.id),
                expected_version,
                current.version if current is not None else None,
            )
        if resource.id in self._inserts:
            self._inserts[resource.id] = resource
        elif resource.id in self._updates:
            self._updates[resource.id] = (resource, self._updates[resource.id][1])
        else:
            self._updates[resource.id] = (resource, expected_version)

    def ensure_version(self, resource_id: UUID, expected_version: int) -> None:
        current = self.load_resource(resource_id)
        if current is None or current.version != expected_version:
            raise VersionConflictError(
                str(resource_id),
                expected_version,
                current.version if current is not None else None,
            )
        if resource_id not in self._inserts and resource_id not in self._updates:
            self._expected[resource_id] = expected_version

    def last_event(self, resource_id: UUID) -> HistoryEvent | None:
        for event in reversed(self._events):
            if event.resource_id == resource_id:
                return event
        return self._storage.last_committed_event(resource_id)

    def append_event(self, event: HistoryEvent) -> None:
        self._events.append(event)

    def count_subresources(self, parent_id: UUID, collection: str) -> int:
        pending = sum(
            1
            for s in self._subresources
            if s.parent_id == parent_id and s.collection == collection
        )
        return self._storage.count_committed_subresources(parent_id, collection) + pending

    def add_subresource(self, subresource: Subresource) -> None:
        self._subresources.append(subresource)

    def commit(self) -> None:
        self._storage._apply(self)


class InMemoryStorage(StorageBackend):
    """Dictionary-backed ``StorageBackend`` for tests, demos and single processes."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._resources: dict[UUID, Resource] = {}
        self._events: dict[UUID, list[HistoryEvent]] = {}
        self._subresources: dict[tuple[UUID, str], list[Subresource]] = {}

    @contextmanager
    def unit_of_work(self) -> Iterator[UnitOfWork]:
        uow = _MemoryUnitOfWork(self)
        yield uow
        uow.commit()

    def load_resource(self, resource_id: UUID) -> Resource | None:
        return self._resources.get(resource_id)

    def last_seq(self, resource_id: UUID) -> int:
        return len(self._events.get(resource_id, ()))

    def last_committed_event(self, resource_id: UUID) -> HistoryEvent | None:
        events = self._events.get(resource_id)
        return events[-1] if events else None

    def count_committed_subresources(self, parent_id: UUID, collection: str) -> int:
        return len(self._subresources.get((parent_id, collection), ()))

    def iter_events(
        self,
        resource_id: UUID,
        upto_seq: int | None = None,
    ) -> Iterator[HistoryEvent]:
        # Lists are append-only, so index-based iteration never sees reordering.
        events = self._events.get(resource_id, [])
        limit = len(events) if upto_seq is None else min(upto_seq, len(events))
        for i in range(limit):
            yield events[i]

    def iter_subresources(self, parent_id: UUID, collection: str) -> Iterator[Subresource]:
        items = self._subresources.get((parent_id, collection), [])
        for i in range(len(items)):
            yield items[i]

    def _apply(self, uow: _MemoryUnitOfWork) -> None:
        with self._lock:
            for resource_id in uow._inserts:
                if resource_id in self._resources:
                    raise StorageUnavailableError(
                        "insert_resource", f"duplicate resource id {resource_id}"
                    )
            expected_versions = dict(uow._expected)
            for resource_id, (_, expected) in uow._updates.items():
                expected_versions[resource_id] = expected
            for resource_id, expected in expected_versions.items():
                stored = self._resources.get(resource_id)
                if stored is None or stored.version != expected:
                    raise VersionConflictError(
                        str(resource_id),
                        expected,
                        stored.version if stored is not None else None,
                    )
            next_seq: dict[UUID, int] = {}
            for event in uow._events:
                expected_seq = next_seq.get(
                    event.resource_id, len(self._events.get(event.resource_id, ())) + 1
                )
                if event.seq != expected_seq:
                    raise VersionConflictError(str(event.resource_id), event.version)
                next_seq[event.resource_id] = expected_seq + 1

            self._resources.update(uow._inserts)
            for resource_id, (resource, _) in uow._updates.items():
                self._resources[resource_id] = resource
            for event in uow._events:
                self._events.setdefault(event.resource_id, []).append(event)
            for sub in uow._subresources:
                self._subresources.setdefault((sub.parent_id, sub.collection), []).append(sub)

        logger.debug(
            "unit_of_work_committed",
            extra={
                "inserted": len(uow._inserts),
                "updated": len(uow._updates),
                "events": len(uow._events),
                "subresources": len(uow._subresources),
            },
        )
