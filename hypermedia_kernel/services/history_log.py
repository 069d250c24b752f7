"""
HistoryLog -- per-resource, hash-chained, append-only event log.

Responsibility:
    Seals pending events (assigns the next ``seq`` and chains the hash to
    the previous event) and persists them through the storage backend.
    Serves ordered, lazy views of a resource's history and verifies the
    chain for tamper detection.

Architecture position:
    Kernel > Services.  Called by ``ResourceStore`` inside the store's
    unit of work so the event commits atomically with the resource version
    it describes.

Invariants enforced:
    - ``seq`` is 1-based and gap-free per resource.
    - ``hash = H(resource_id | seq | kind | version | payload_hash | prev_hash)``;
      the first event of a resource has ``prev_hash = None``.
    - Events are never edited or removed; a view captured at ``seq = n``
      yields exactly the first n events on every iteration.

Failure modes:
    - StorageUnavailableError: backend failure (not retried).
    - HistoryChainBrokenError: ``verify_chain`` found a mismatch.
"""

from collections.abc import Iterator
from uuid import UUID

from hypermedia_kernel.domain.resource import HistoryEvent, PendingEvent
from hypermedia_kernel.exceptions import HistoryChainBrokenError
from hypermedia_kernel.logging_config import get_logger
from hypermedia_kernel.storage.base import StorageBackend, UnitOfWork
from hypermedia_kernel.utils.hashing import hash_history_event, hash_payload

logger = get_logger("services.history_log")


class HistoryView:
    """
    Lazy, finite, restartable view over one resource's history.

    Bounded by the last ``seq`` that existed when the view was created;
    events appended afterwards are not included.  Every ``iter()`` re-reads
    from the backend in creation order.
    """

    def __init__(self, storage: StorageBackend, resource_id: UUID, upto_seq: int):
        self._storage = storage
        self.resource_id = resource_id
        self.upto_seq = upto_seq

    def __iter__(self) -> Iterator[HistoryEvent]:
        if self.upto_seq == 0:
            return iter(())
        return self._storage.iter_events(self.resource_id, upto_seq=self.upto_seq)

    def __len__(self) -> int:
        return self.upto_seq

    def __repr__(self) -> str:
        return f"<HistoryView {self.resource_id} upto_seq={self.upto_seq}>"


class HistoryLog:
    """
    Append-only history log.

    Contract:
        ``append`` must be called while the caller holds the resource's
        mutation lock (``ResourceStore`` does this); the storage layer's
        unique ``(resource_id, seq)`` rejects out-of-process races.
    """

    def __init__(self, storage: StorageBackend):
        self._storage = storage

    def append(
        self,
        resource_id: UUID,
        event: PendingEvent,
        unit_of_work: UnitOfWork | None = None,
    ) -> HistoryEvent:
        """Seal ``event`` and persist it; opens its own unit of work if none is given."""
        if unit_of_work is None:
            with self._storage.unit_of_work() as uow:
                return self._append(resource_id, event, uow)
        return self._append(resource_id, event, unit_of_work)

    def _append(
        self,
        resource_id: UUID,
        event: PendingEvent,
        uow: UnitOfWork,
    ) -> HistoryEvent:
        previous = uow.last_event(resource_id)
        seq = previous.seq + 1 if previous is not None else 1
        prev_hash = previous.hash if previous is not None else None

        sealed = HistoryEvent(
            resource_id=resource_id,
            seq=seq,
            kind=event.kind,
            actor=event.actor,
            occurred_at=event.occurred_at,
            version=event.version,
            operation_id=event.operation_id,
            from_state=event.from_state,
            to_state=event.to_state,
            changes=event.changes,
            subresource_id=event.subresource_id,
            prev_hash=prev_hash,
            hash=_chain_hash(resource_id, seq, event, prev_hash),
        )
        uow.append_event(sealed)

        logger.debug(
            "history_event_appended",
            extra={
                "seq": seq,
                "kind": event.kind.value,
                "version": event.version,
            },
        )
        return sealed

    def list(self, resource_id: UUID) -> HistoryView:
        """Return a view bounded by the resource's current last ``seq``."""
        return HistoryView(self._storage, resource_id, self._storage.last_seq(resource_id))

    def verify_chain(self, resource_id: UUID) -> int:
        """
        Recompute every hash of the resource's history.

        Returns:
            Number of events verified.

        Raises:
            HistoryChainBrokenError: at the first event whose ``seq``,
                ``prev_hash`` or ``hash`` does not match.
        """
        prev_hash: str | None = None
        count = 0
        for event in self._storage.iter_events(resource_id):
            count += 1
            if event.seq != count:
                self._broken(resource_id, count, str(count), str(event.seq))
            if event.prev_hash != prev_hash:
                self._broken(
                    resource_id, event.seq, prev_hash or "None", event.prev_hash or "None"
                )
            expected = _chain_hash(resource_id, event.seq, event.as_pending(), event.prev_hash)
            if event.hash != expected:
                self._broken(resource_id, event.seq, expected, event.hash)
            prev_hash = event.hash

        logger.info("history_chain_verified", extra={"events": count})
        return count

    @staticmethod
    def _broken(resource_id: UUID, seq: int, expected: str, actual: str) -> None:
        logger.critical(
            "history_chain_broken",
            extra={"seq": seq, "expected": expected, "actual": actual},
        )
        raise HistoryChainBrokenError(str(resource_id), seq, expected, actual)


def _chain_hash(
    resource_id: UUID,
    seq: int,
    event: PendingEvent,
    prev_hash: str | None,
) -> str:
    return hash_history_event(
        resource_id=str(resource_id),
        seq=seq,
        kind=event.kind.value,
        version=event.version,
        payload_hash=hash_payload(event.hash_payload()),
        prev_hash=prev_hash,
    )
