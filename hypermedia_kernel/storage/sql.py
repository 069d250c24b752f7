"""
SQLAlchemy storage backend (``hypermedia_kernel.storage.sql``).

Responsibility:
    Persist resources, history events and sub-resources through the ORM
    models in ``hypermedia_kernel.models``.  One session, one transaction
    per unit of work.

Invariants enforced:
    - Resource updates are ``UPDATE ... WHERE id = :id AND version =
      :expected``; zero matched rows means another writer won and is
      reported as ``VersionConflictError``.
    - History and sub-resource inserts are flushed immediately so a lost
      race on ``(resource_id, seq)`` or ``(parent_id, collection,
      position)`` surfaces as ``VersionConflictError`` too.
    - Any other ``SQLAlchemyError`` becomes ``StorageUnavailableError`` and
      the transaction is rolled back.  Nothing is retried.
    - Datetimes read back without tzinfo (SQLite) are treated as UTC.
"""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from hypermedia_kernel.db.immutability import register_immutability_listeners
from hypermedia_kernel.domain.resource import (
    HistoryEvent,
    HistoryEventKind,
    Resource,
    Subresource,
)
from hypermedia_kernel.exceptions import StorageUnavailableError, VersionConflictError
from hypermedia_kernel.logging_config import get_logger
from hypermedia_kernel.models.history_event import HistoryEventRecord
from hypermedia_kernel.models.resource import ResourceRecord
from hypermedia_kernel.models.subresource import SubresourceRecord
from hypermedia_kernel.storage.base import StorageBackend, UnitOfWork

logger = get_logger("storage.sql")

_PAGE_SIZE = 500


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _resource_from_record(record: ResourceRecord) -> Resource:
    return Resource(
        id=record.id,
        type_name=record.type_name,
        state=record.state,
        fields=dict(record.fields),
        version=record.version,
        created_at=_utc(record.created_at),
        updated_at=_utc(record.updated_at),
    )


def _event_from_record(record: HistoryEventRecord) -> HistoryEvent:
    return HistoryEvent(
        resource_id=record.resource_id,
        seq=record.seq,
        kind=HistoryEventKind(record.kind),
        actor=record.actor,
        occurred_at=_utc(record.occurred_at),
        version=record.version,
        operation_id=record.operation_id,
        from_state=record.from_state,
        to_state=record.to_state,
        changes=dict(record.changes),
        subresource_id=record.subresource_id,
        prev_hash=record.prev_hash,
        hash=record.hash,
    )


def _subresource_from_record(record: SubresourceRecord) -> Subresource:
    return Subresource(
        id=record.id,
        parent_id=record.parent_id,
        collection=record.collection,
        fields=dict(record.fields),
        position=record.position,
        created_at=_utc(record.created_at),
        created_by=record.created_by,
    )


class _SqlUnitOfWork(UnitOfWork):
    def __init__(self, session: Session):
        self._session = session

    def load_resource(self, resource_id: UUID) -> Resource | None:
        record = self._session.get(ResourceRecord, resource_id)
        return _resource_from_record(record) if record is not None else None

    def insert_resource(self, resource: Resource) -> None:
        self._session.add(
            ResourceRecord(
                id=resource.id,
                type_name=resource.type_name,
                state=resource.state,
                fields=resource.fields,
                version=resource.version,
                created_at=resource.created_at,
                updated_at=resource.updated_at,
            )
        )
        self._session.flush()

    def update_resource(self, resource: Resource, expected_version: int) -> None:
        result = self._session.execute(
            update(ResourceRecord)
            .where(
                ResourceRecord.id == resource.id,
                ResourceRecord.version == expected_version,
            )
            .values(
                state=resource.state,
                fields=resource.fields,
                version=resource.version,
                updated_at=resource.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return

        actual = self._session.scalar(
            select(ResourceRecord.version).where(ResourceRecord.id == resource.id)
        )
        raise VersionConflictError(str(resource.id), expected_version, actual)

    def ensure_version(self, resource_id: UUID, expected_version: int) -> None:
        # Row lock until commit; SQLite ignores FOR UPDATE and serializes writers anyway.
        actual = self._session.scalar(
            select(ResourceRecord.version)
            .where(ResourceRecord.id == resource_id)
            .with_for_update()
        )
        if actual != expected_version:
            raise VersionConflictError(str(resource_id), expected_version, actual)

    def last_event(self, resource_id: UUID) -> HistoryEvent | None:
        record = self._session.scalars(
            select(HistoryEventRecord)
            .where(HistoryEventRecord.resource_id == resource_id)
            .order_by(HistoryEventRecord.seq.desc())
            .limit(1)
        ).first()
        return _event_from_record(record) if record is not None else None

    def append_event(self, event: HistoryEvent) -> None:
        self._session.add(
            HistoryEventRecord(
                resource_id=event.resource_id,
                seq=event.seq,
                kind=event.kind.value,
                actor=event.actor,
                occurred_at=event.occurred_at,
                version=event.version,
                operation_id=event.operation_id,
                from_state=event.from_state,
                to_state=event.to_state,
                changes=event.changes,
                subresource_id=event.subresource_id,
                prev_hash=event.prev_hash,
                hash=event.hash,
            )
        )
        try:
            self._session.flush()
        except IntegrityError as exc:
            raise VersionConflictError(str(event.resource_id), event.version) from exc

    def count_subresources(self, parent_id: UUID, collection: str) -> int:
        return self._session.scalar(
            select(func.count())
            .select_from(SubresourceRecord)
            .where(
                SubresourceRecord.parent_id == parent_id,
                SubresourceRecord.collection == collection,
            )
        ) or 0

    def add_subresource(self, subresource: Subresource) -> None:
        self._session.add(
            SubresourceRecord(
                id=subresource.id,
                parent_id=subresource.parent_id,
                collection=subresource.collection,
                fields=subresource.fields,
                position=subresource.position,
                created_at=subresource.created_at,
                created_by=subresource.created_by,
            )
        )
        try:
            self._session.flush()
        except IntegrityError as exc:
            raise VersionConflictError(str(subresource.parent_id), None) from exc


class SqlAlchemyStorage(StorageBackend):
    """
    ``StorageBackend`` over a SQLAlchemy session factory.

    Args:
        session_factory: e.g. ``hypermedia_kernel.db.get_session_factory()``.
            Tables must already exist (``db.create_tables()``).
    """

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory
        register_immutability_listeners()

    @contextmanager
    def unit_of_work(self) -> Iterator[UnitOfWork]:
        session = self._session_factory()
        try:
            yield _SqlUnitOfWork(session)
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error(
                "storage_unavailable",
                extra={"operation": "unit_of_work", "error": str(exc)},
            )
            raise StorageUnavailableError("unit_of_work", str(exc)) from exc
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    @contextmanager
    def _read_session(self, operation: str) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as exc:
            logger.error(
                "storage_unavailable",
                extra={"operation": operation, "error": str(exc)},
            )
            raise StorageUnavailableError(operation, str(exc)) from exc
        finally:
            session.close()

    def load_resource(self, resource_id: UUID) -> Resource | None:
        with self._read_session("load_resource") as session:
            record = session.get(ResourceRecord, resource_id)
            return _resource_from_record(record) if record is not None else None

    def last_seq(self, resource_id: UUID) -> int:
        with self._read_session("last_seq") as session:
            return session.scalar(
                select(func.max(HistoryEventRecord.seq)).where(
                    HistoryEventRecord.resource_id == resource_id
                )
            ) or 0

    def iter_events(
        self,
        resource_id: UUID,
        upto_seq: int | None = None,
    ) -> Iterator[HistoryEvent]:
        after = 0
        while True:
            stmt = (
                select(HistoryEventRecord)
                .where(
                    HistoryEventRecord.resource_id == resource_id,
                    HistoryEventRecord.seq > after,
                )
                .order_by(HistoryEventRecord.seq)
                .limit(_PAGE_SIZE)
            )
            if upto_seq is not None:
                stmt = stmt.where(HistoryEventRecord.seq <= upto_seq)
            with self._read_session("iter_events") as session:
                page = [_event_from_record(r) for r in session.scalars(stmt)]
            yield from page
            if len(page) < _PAGE_SIZE:
                return
            after = page[-1].seq

    def iter_subresources(self, parent_id: UUID, collection: str) -> Iterator[Subresource]:
        after = 0
        while True:
            stmt = (
                select(SubresourceRecord)
                .where(
                    SubresourceRecord.parent_id == parent_id,
                    SubresourceRecord.collection == collection,
                    SubresourceRecord.position > after,
                )
                .order_by(SubresourceRecord.position)
                .limit(_PAGE_SIZE)
            )
            with self._read_session("iter_subresources") as session:
                page = [_subresource_from_record(r) for r in session.scalars(stmt)]
            yield from page
            if len(page) < _PAGE_SIZE:
                return
            after = page[-1].position
