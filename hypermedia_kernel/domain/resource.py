"""
Resource value objects (``hypermedia_kernel.domain.resource``).

Responsibility
--------------
Immutable snapshots of resources, sub-resources and history events as
they flow between the store, the storage backends and callers.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* Snapshots are frozen; a mutation produces a new ``Resource`` with
  ``version + 1`` (enforced by the store).
* ``Resource.state`` mirrors ``fields[state_field]``.
* History events are sealed with ``seq``/``hash`` exactly once.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

SYSTEM_ACTOR = "system"
ANONYMOUS_ACTOR = "anonymous"


@dataclass(frozen=True)
class Resource:
    """A versioned resource snapshot."""

    id: UUID
    type_name: str
    state: str
    fields: dict[str, Any]
    version: int
    created_at: datetime
    updated_at: datetime

    def get(self, name: str, default: Any = None) -> Any:
        return self.fields.get(name, default)

    def evolve(
        self,
        *,
        fields: dict[str, Any],
        state: str,
        updated_at: datetime,
    ) -> Resource:
        """Return the next version of this resource."""
        return replace(
            self,
            fields=fields,
            state=state,
            version=self.version + 1,
            updated_at=updated_at,
        )


@dataclass(frozen=True)
class Subresource:
    """An immutable child of a resource, appended to a named collection."""

    id: UUID
    parent_id: UUID
    collection: str
    fields: dict[str, Any]
    position: int
    created_at: datetime
    created_by: str


class HistoryEventKind(str, Enum):
    """Kinds of history events."""

    CREATED = "created"
    STATE_CHANGED = "state-change"
    FIELDS_UPDATED = "fields-updated"
    SUBRESOURCE_ADDED = "subresource-added"


@dataclass(frozen=True)
class PendingEvent:
    """A history event before the log assigns its sequence and hash."""

    kind: HistoryEventKind
    actor: str
    occurred_at: datetime
    version: int
    operation_id: UUID
    from_state: str | None = None
    to_state: str | None = None
    changes: dict[str, Any] = field(default_factory=dict)
    subresource_id: UUID | None = None

    def hash_payload(self) -> dict[str, Any]:
        """The payload covered by the chain hash."""
        return {
            "actor": self.actor,
            "occurred_at": self.occurred_at,
            "operation_id": self.operation_id,
            "from_state": self.from_state,
            "to_state": self.to_state,
            "changes": self.changes,
            "subresource_id": self.subresource_id,
        }


@dataclass(frozen=True)
class HistoryEvent:
    """An immutable, ordered audit record attached to one resource."""

    resource_id: UUID
    seq: int
    kind: HistoryEventKind
    actor: str
    occurred_at: datetime
    version: int
    operation_id: UUID
    from_state: str | None
    to_state: str | None
    changes: dict[str, Any]
    subresource_id: UUID | None
    prev_hash: str | None
    hash: str

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None

    def as_pending(self) -> PendingEvent:
        return PendingEvent(
            kind=self.kind,
            actor=self.actor,
            occurred_at=self.occurred_at,
            version=self.version,
            operation_id=self.operation_id,
            from_state=self.from_state,
            to_state=self.to_state,
            changes=self.changes,
            subresource_id=self.subresource_id,
        )


@dataclass(frozen=True)
class SubresourceResult:
    """Outcome of appending a sub-resource.

    ``parent`` is the parent as it stands after the operation;
    ``triggered_transition`` names the implicit transition that fired, if any.
    """

    subresource: Subresource
    parent: Resource
    triggered_transition: str | None = None

    @property
    def parent_changed(self) -> bool:
        return self.triggered_transition is not None
