"""
ResourceStore -- the single point of mutation for resources.

Responsibility:
    Creates resources, applies patches under optimistic concurrency,
    appends sub-resources (firing implicit transitions on the parent),
    and serves reads: snapshots, history views, collection contents and
    freshly resolved affordances.

Architecture position:
    Kernel > Services.  Orchestrates the pure domain (``StateMachineEngine``,
    ``AffordanceResolver``), the ``SubresourceCollectionManager`` and the
    ``HistoryLog`` over a pluggable ``StorageBackend``.

Invariants enforced:
    - Mutations of one resource id are serialized by ``KeyedLock``;
      different ids run in parallel.
    - ``version`` starts at 1 and grows by exactly 1 per committed mutation.
      The storage compare-and-set rejects writers that bypass the lock
      (other processes, other store instances).
    - The state only changes along declared transitions: explicit ones via
      ``apply_patch``, implicit ones via ``add_subresource``.
    - Each operation commits the resource version, its sub-resource and
      its history events in one unit of work, all sharing one
      ``operation_id``.
    - Nothing is retried.

Failure modes:
    - NotFoundError, InvalidFieldsError, IllegalTransitionError,
      UnknownCollectionError, VersionConflictError: caller errors, logged
      at WARNING and re-raised.
    - UnknownResourceTypeError: ``create`` with an unregistered type.
    - StorageUnavailableError: backend failure, logged at ERROR.

Audit relevance:
    Every committed mutation appends at least one hash-chained
    ``HistoryEvent``.  Implicit transitions are attributed to ``"system"``.
"""

from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from typing import Any
from uuid import UUID, uuid4

from hypermedia_kernel.domain.affordances import AffordanceResolver, AffordanceSet
from hypermedia_kernel.domain.clock import Clock, SystemClock
from hypermedia_kernel.domain.fields import FieldValidationError, validate_fields
from hypermedia_kernel.domain.registry import ResourceTypeRegistry
from hypermedia_kernel.domain.resource import (
    ANONYMOUS_ACTOR,
    SYSTEM_ACTOR,
    HistoryEventKind,
    PendingEvent,
    Resource,
    Subresource,
    SubresourceResult,
)
from hypermedia_kernel.domain.state_machine import Rejected, ResourceType, StateMachineEngine
from hypermedia_kernel.exceptions import (
    HypermediaKernelError,
    IllegalTransitionError,
    InvalidFieldsError,
    NotFoundError,
    StorageUnavailableError,
    VersionConflictError,
)
from hypermedia_kernel.logging_config import LogContext, get_logger
from hypermedia_kernel.services.collection_manager import SubresourceCollectionManager
from hypermedia_kernel.services.history_log import HistoryLog, HistoryView
from hypermedia_kernel.services.locks import KeyedLock
from hypermedia_kernel.storage.base import StorageBackend
from hypermedia_kernel.storage.memory import InMemoryStorage
from hypermedia_kernel.utils.hashing import to_json_compatible

logger = get_logger("services.resource_store")

_MISSING = object()


def _resource_uuid(resource_id: UUID | str) -> UUID:
    """Canonical id for locking and lookup; a malformed id names no resource."""
    if isinstance(resource_id, UUID):
        return resource_id
    try:
        return UUID(str(resource_id))
    except ValueError:
        raise NotFoundError(str(resource_id)) from None


class ResourceStore:
    """
    Resource Store service.

    Args:
        registry: Resource types this store serves.
        storage: Backend; defaults to a fresh ``InMemoryStorage``.
        clock: Time source; defaults to ``SystemClock``.
    """

    def __init__(
        self,
        registry: ResourceTypeRegistry,
        storage: StorageBackend | None = None,
        clock: Clock | None = None,
    ):
        self._registry = registry
        self._storage = storage if storage is not None else InMemoryStorage()
        self._clock = clock or SystemClock()
        self._engine = StateMachineEngine(registry)
        self._collections = SubresourceCollectionManager(self._engine)
        self._affordances = AffordanceResolver(registry)
        self._history = HistoryLog(self._storage)
        self._locks = KeyedLock()

    @property
    def registry(self) -> ResourceTypeRegistry:
        return self._registry

    @property
    def engine(self) -> StateMachineEngine:
        return self._engine

    @property
    def history(self) -> HistoryLog:
        return self._history

    # =========================================================================
    # Writes
    # =========================================================================

    def create(
        self,
        type_name: str,
        initial_fields: Mapping[str, Any] | None = None,
        *,
        actor: str = ANONYMOUS_ACTOR,
    ) -> Resource:
        """
        Create a resource in its type's initial state at version 1.

        A value for the state field is accepted only if it names the
        initial state.

        Raises:
            UnknownResourceTypeError: type not registered.
            InvalidFieldsError: fields violate the type's schema.
        """
        rt = self._registry.get(type_name)
        resource_id = uuid4()
        operation_id = uuid4()

        with self._operation(resource_id, rt.name, actor, operation_id, "create"):
            values = dict(initial_fields or {})
            state = values.pop(rt.state_field, rt.initial_state)
            errors = validate_fields(values, rt.field_schema)
            if state != rt.initial_state:
                errors.insert(
                    0,
                    FieldValidationError(
                        code="INVALID_INITIAL_STATE",
                        message=(
                            f"{rt.state_field} must be '{rt.initial_state}' "
                            f"on creation, got {state!r}"
                        ),
                        field=rt.state_field,
                    ),
                )
            if errors:
                raise InvalidFieldsError(rt.name, [e.as_dict() for e in errors])

            fields = to_json_compatible(values)
            fields[rt.state_field] = rt.initial_state
            now = self._clock.now()
            resource = Resource(
                id=resource_id,
                type_name=rt.name,
                state=rt.initial_state,
                fields=fields,
                version=1,
                created_at=now,
                updated_at=now,
            )

            with self._storage.unit_of_work() as uow:
                uow.insert_resource(resource)
                self._history.append(
                    resource_id,
                    PendingEvent(
                        kind=HistoryEventKind.CREATED,
                        actor=actor,
                        occurred_at=now,
                        version=1,
                        operation_id=operation_id,
                        to_state=rt.initial_state,
                        changes=fields,
                    ),
                    uow,
                )

            logger.info(
                "resource_created",
                extra={"state": resource.state, "version": resource.version},
            )
            return resource

    def apply_patch(
        self,
        resource_id: UUID,
        expected_version: int,
        changes: Mapping[str, Any],
        *,
        actor: str = ANONYMOUS_ACTOR,
    ) -> Resource:
        """
        Merge ``changes`` into the resource if ``expected_version`` is current.

        Changing the state field requests an explicit transition.  Values
        equal to the stored ones are ignored; if nothing differs the stored
        resource is returned unchanged (no new version, no event).

        Raises:
            NotFoundError: no such resource.
            VersionConflictError: ``expected_version`` is stale.
            InvalidFieldsError: empty patch, read-only field, or schema violation.
            IllegalTransitionError: undeclared edge, failing guard, or
                frozen field.
        """
        resource_id = _resource_uuid(resource_id)
        operation_id = uuid4()
        with self._locks.acquire(resource_id):
            current = self.get(resource_id)
            rt = self._registry.get(current.type_name)

            with self._operation(resource_id, rt.name, actor, operation_id, "apply_patch"):
                if current.version != expected_version:
                    raise VersionConflictError(
                        str(resource_id), expected_version, current.version
                    )

                field_changes = self._checked_field_changes(rt, changes)
                effective = {
                    name: value
                    for name, value in field_changes.items()
                    if current.fields.get(name, _MISSING) != value
                }
                requested_state = changes.get(rt.state_field, current.state)

                if not effective and requested_state == current.state:
                    logger.info("patch_noop", extra={"version": current.version})
                    return current

                change: dict[str, Any] = dict(effective)
                if requested_state != current.state:
                    change[rt.state_field] = requested_state

                decision = self._engine.validate(rt.name, current.state, change, current.fields)
                if isinstance(decision, Rejected):
                    raise IllegalTransitionError(
                        rt.name,
                        current.state,
                        decision.requested_state,
                        decision.reason.value,
                        decision.detail,
                    )

                new_fields = {**current.fields, **effective}
                new_fields[rt.state_field] = decision.next_state
                now = self._clock.now()
                updated = current.evolve(
                    fields=new_fields,
                    state=decision.next_state,
                    updated_at=now,
                )

                events: list[PendingEvent] = []
                if decision.changes_state:
                    events.append(
                        PendingEvent(
                            kind=HistoryEventKind.STATE_CHANGED,
                            actor=actor,
                            occurred_at=now,
                            version=updated.version,
                            operation_id=operation_id,
                            from_state=current.state,
                            to_state=updated.state,
                            changes={"transition": decision.transition.name},
                        )
                    )
                if effective:
                    events.append(
                        PendingEvent(
                            kind=HistoryEventKind.FIELDS_UPDATED,
                            actor=actor,
                            occurred_at=now,
                            version=updated.version,
                            operation_id=operation_id,
                            changes=effective,
                        )
                    )

                with self._storage.unit_of_work() as uow:
                    uow.update_resource(updated, expected_version)
                    for event in events:
                        self._history.append(resource_id, event, uow)

                logger.info(
                    "resource_patched",
                    extra={
                        "from_state": current.state,
                        "to_state": updated.state,
                        "version": updated.version,
                        "fields": sorted(effective),
                    },
                )
                return updated

    def add_subresource(
        self,
        parent_id: UUID,
        collection_name: str,
        payload: Mapping[str, Any],
        *,
        actor: str = ANONYMOUS_ACTOR,
    ) -> SubresourceResult:
        """
        Append an item to one of the parent's collections.

        If the append matches an implicit transition, the parent moves to
        the transition's target state in the same unit of work, with the
        state change attributed to ``"system"``.  Otherwise the parent's
        version is unchanged.

        Raises:
            NotFoundError: no such parent.
            UnknownCollectionError: collection not declared for the type.
            IllegalTransitionError: collection closed in the parent's state.
            InvalidFieldsError: payload violates the item schema.
        """
        parent_id = _resource_uuid(parent_id)
        operation_id = uuid4()
        with self._locks.acquire(parent_id):
            parent = self.get(parent_id)
            rt = self._registry.get(parent.type_name)

            with self._operation(parent_id, rt.name, actor, operation_id, "add_subresource"):
                collection = self._collections.collection_for(rt, collection_name)
                self._collections.ensure_open(rt, collection, parent.state)
                self._collections.validate_item(rt, collection, payload)

                now = self._clock.now()
                with self._storage.unit_of_work() as uow:
                    uow.ensure_version(parent_id, parent.version)
                    position = uow.count_subresources(parent_id, collection.name) + 1
                    subresource = self._collections.build_subresource(
                        parent, collection, payload, position, actor, now
                    )
                    uow.add_subresource(subresource)
                    self._history.append(
                        parent_id,
                        PendingEvent(
                            kind=HistoryEventKind.SUBRESOURCE_ADDED,
                            actor=actor,
                            occurred_at=now,
                            version=parent.version,
                            operation_id=operation_id,
                            changes={
                                "collection": collection.name,
                                "position": position,
                                "fields": subresource.fields,
                            },
                            subresource_id=subresource.id,
                        ),
                        uow,
                    )

                    transition = self._collections.evaluate_trigger(
                        rt, parent, collection, subresource.fields
                    )
                    result_parent = parent
                    if transition is not None:
                        fields = {**parent.fields, rt.state_field: transition.to_state}
                        result_parent = parent.evolve(
                            fields=fields,
                            state=transition.to_state,
                            updated_at=now,
                        )
                        uow.update_resource(result_parent, parent.version)
                        self._history.append(
                            parent_id,
                            PendingEvent(
                                kind=HistoryEventKind.STATE_CHANGED,
                                actor=SYSTEM_ACTOR,
                                occurred_at=now,
                                version=result_parent.version,
                                operation_id=operation_id,
                                from_state=parent.state,
                                to_state=transition.to_state,
                                changes={
                                    "transition": transition.name,
                                    "subresource_id": str(subresource.id),
                                },
                                subresource_id=subresource.id,
                            ),
                            uow,
                        )

                logger.info(
                    "subresource_added",
                    extra={
                        "collection": collection.name,
                        "position": position,
                        "subresource_id": str(subresource.id),
                        "triggered_transition": transition.name if transition else None,
                        "version": result_parent.version,
                    },
                )
                return SubresourceResult(
                    subresource=subresource,
                    parent=result_parent,
                    triggered_transition=transition.name if transition else None,
                )

    # =========================================================================
    # Reads
    # =========================================================================

    def get(self, resource_id: UUID | str) -> Resource:
        """
        Current snapshot of the resource.

        Accepts the id as a ``UUID`` or its string form.  Raises
        NotFoundError if no resource has that id, including ids that are
        not UUIDs at all.
        """
        resource_id = _resource_uuid(resource_id)
        resource = self._storage.load_resource(resource_id)
        if resource is None:
            raise NotFoundError(str(resource_id))
        return resource

    def list_history(self, resource_id: UUID) -> HistoryView:
        resource = self.get(resource_id)
        return self._history.list(resource.id)

    def list_subresources(
        self,
        parent_id: UUID,
        collection_name: str,
    ) -> tuple[Subresource, ...]:
        parent = self.get(parent_id)
        rt = self._registry.get(parent.type_name)
        collection = self._collections.collection_for(rt, collection_name)
        return tuple(self._storage.iter_subresources(parent.id, collection.name))

    def resolve_affordances(
        self,
        resource_id: UUID,
        capabilities: Iterable[str] = (),
    ) -> AffordanceSet:
        """Recompute the actions and links the caller may follow right now."""
        return self._affordances.resolve(self.get(resource_id), capabilities)

    def verify_history(self, resource_id: UUID) -> int:
        """Verify the resource's history hash chain; returns the event count."""
        resource = self.get(resource_id)
        return self._history.verify_chain(resource.id)

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _checked_field_changes(
        rt: ResourceType,
        changes: Mapping[str, Any],
    ) -> dict[str, Any]:
        if not changes:
            raise InvalidFieldsError(
                rt.name,
                [{"code": "EMPTY_PATCH", "field": None, "message": "Patch contains no changes"}],
            )

        field_changes = {k: v for k, v in changes.items() if k != rt.state_field}
        errors = [
            FieldValidationError(
                code="READ_ONLY_FIELD",
                message=f"Field {name} is read-only",
                field=name,
            )
            for name in field_changes
            if (spec := rt.field_schema.get(name)) is not None and spec.read_only
        ]
        errors.extend(validate_fields(field_changes, rt.field_schema, partial=True))
        if errors:
            raise InvalidFieldsError(rt.name, [e.as_dict() for e in errors])
        return to_json_compatible(field_changes)

    @contextmanager
    def _operation(
        self,
        resource_id: UUID,
        type_name: str,
        actor: str,
        operation_id: UUID,
        operation: str,
    ) -> Iterator[None]:
        with LogContext.bind(
            resource_id=str(resource_id),
            resource_type=type_name,
            actor=actor,
            operation_id=str(operation_id),
        ):
            try:
                yield
            except StorageUnavailableError:
                logger.error("operation_failed", extra={"operation": operation}, exc_info=True)
                raise
            except HypermediaKernelError as exc:
                logger.warning(
                    "operation_rejected",
                    extra={"operation": operation, "error_code": exc.code, "error": str(exc)},
                )
                raise
