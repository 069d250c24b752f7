"""
SubresourceCollectionManager -- rules for a resource's named collections.

Responsibility:
    Resolves collection declarations, checks that a collection accepts
    items in the parent's state, validates item payloads, builds the
    immutable ``Subresource`` and asks the state machine whether the append
    fires an implicit transition on the parent.

Architecture position:
    Kernel > Services.  Owns no storage; ``ResourceStore`` calls it while
    holding the parent's lock and persists what it returns.
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any
from uuid import uuid4

from hypermedia_kernel.domain.fields import validate_fields
from hypermedia_kernel.domain.resource import Resource, Subresource
from hypermedia_kernel.domain.state_machine import (
    CollectionSpec,
    RejectionReason,
    ResourceType,
    StateMachineEngine,
    Transition,
)
from hypermedia_kernel.exceptions import (
    IllegalTransitionError,
    InvalidFieldsError,
    UnknownCollectionError,
)
from hypermedia_kernel.utils.hashing import to_json_compatible


class SubresourceCollectionManager:
    def __init__(self, engine: StateMachineEngine):
        self._engine = engine

    def collection_for(self, resource_type: ResourceType, name: str) -> CollectionSpec:
        spec = resource_type.collection(name)
        if spec is None:
            raise UnknownCollectionError(resource_type.name, name)
        return spec

    def ensure_open(
        self,
        resource_type: ResourceType,
        collection: CollectionSpec,
        state: str,
    ) -> None:
        if not collection.is_open_in(state):
            raise IllegalTransitionError(
                resource_type.name,
                state,
                None,
                RejectionReason.COLLECTION_CLOSED.value,
                f"collection '{collection.name}' does not accept items in state '{state}'",
            )

    def validate_item(
        self,
        resource_type: ResourceType,
        collection: CollectionSpec,
        payload: Mapping[str, Any],
    ) -> None:
        errors = validate_fields(payload, collection.item_schema)
        if errors:
            raise InvalidFieldsError(
                f"{resource_type.name}/{collection.name}",
                [e.as_dict() for e in errors],
            )

    def build_subresource(
        self,
        parent: Resource,
        collection: CollectionSpec,
        payload: Mapping[str, Any],
        position: int,
        actor: str,
        now: datetime,
    ) -> Subresource:
        return Subresource(
            id=uuid4(),
            parent_id=parent.id,
            collection=collection.name,
            fields=to_json_compatible(dict(payload)),
            position=position,
            created_at=now,
            created_by=actor,
        )

    def evaluate_trigger(
        self,
        resource_type: ResourceType,
        parent: Resource,
        collection: CollectionSpec,
        payload: Mapping[str, Any],
    ) -> Transition | None:
        """The implicit transition this append fires on ``parent``, if any."""
        return self._engine.resolve_trigger(
            resource_type.name,
            parent.state,
            collection.name,
            payload,
            fields=parent.fields,
        )
