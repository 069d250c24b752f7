"""
Storage backend contract (``hypermedia_kernel.storage.base``).

Responsibility:
    Defines the pluggable persistence boundary behind the resource store
    and history log: a ``StorageBackend`` that hands out units of work
    and serves read-only queries.

Architecture position:
    Kernel > Storage.  Implementations live beside this module
    (``memory.py``, ``sql.py``).  Services depend only on this contract.

Invariants enforced:
    - A unit of work is atomic: every write inside it becomes visible
      together on clean exit, or none does on exception.
    - ``update_resource`` is compare-and-set on ``version``: it raises
      ``VersionConflictError`` when the stored version is not the
      expected one, even if another process wrote in between.
      ``ensure_version`` makes the same check without writing.
    - History events and sub-resources are insert-only.

Failure modes:
    - ``StorageUnavailableError`` for any backend failure.  Backends never
      retry writes.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import AbstractContextManager
from uuid import UUID

from hypermedia_kernel.domain.resource import HistoryEvent, Resource, Subresource


class UnitOfWork(ABC):
    """Transactional view of the backend for one store operation."""

    @abstractmethod
    def load_resource(self, resource_id: UUID) -> Resource | None:
        ...

    @abstractmethod
    def insert_resource(self, resource: Resource) -> None:
        ...

    @abstractmethod
    def update_resource(self, resource: Resource, expected_version: int) -> None:
        """Replace the stored resource if its version is ``expected_version``.

        Raises:
            VersionConflictError: stored version differs.
        """
        ...

    @abstractmethod
    def ensure_version(self, resource_id: UUID, expected_version: int) -> None:
        """Fail the unit of work unless the resource is still at ``expected_version``.

        For writes that depend on the resource without updating it.  The
        condition holds until commit.

        Raises:
            VersionConflictError: stored version differs.
        """
        ...

    @abstractmethod
    def last_event(self, resource_id: UUID) -> HistoryEvent | None:
        ...

    @abstractmethod
    def append_event(self, event: HistoryEvent) -> None:
        ...

    @abstractmethod
    def count_subresources(self, parent_id: UUID, collection: str) -> int:
        ...

    @abstractmethod
    def add_subresource(self, subresource: Subresource) -> None:
        ...


class StorageBackend(ABC):
    """Pluggable persistence for resources, history and sub-resources."""

    @abstractmethod
    def unit_of_work(self) -> AbstractContextManager[UnitOfWork]:
        """Open a unit of work; commits on clean exit, discards on error."""
        ...

    @abstractmethod
    def load_resource(self, resource_id: UUID) -> Resource | None:
        ...

    @abstractmethod
    def last_seq(self, resource_id: UUID) -> int:
        """Highest history ``seq`` for the resource (0 if none)."""
        ...

    @abstractmethod
    def iter_events(
        self,
        resource_id: UUID,
        upto_seq: int | None = None,
    ) -> Iterator[HistoryEvent]:
        """Yield history events in ``seq`` order, stopping after ``upto_seq``."""
        ...

    @abstractmethod
    def iter_subresources(self, parent_id: UUID, collection: str) -> Iterator[Subresource]:
        """Yield sub-resources of one collection in position order."""
        ...
