"""
Affordance resolution (``hypermedia_kernel.domain.affordances``).

Responsibility
--------------
Computes the set of currently legal next operations (actions) and
navigational links for a resource, given its state and the caller's
capabilities.  The result is structured data; turning it into HAL, Siren
or anything else is the encoder's job.

Architecture position
---------------------
**Kernel domain layer** -- pure function of (resource, type definition,
capabilities).  Never persisted, never mutates anything.

Invariants enforced
-------------------
* Determinism: ordering follows declaration order only; no clock, no
  randomness, no set iteration.  Identical inputs give equal results.
* Frozen fields never appear in an edit action's field list.
* An action is emitted only if the edge's guard passes on the current
  fields and the caller holds the edge's required capability.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID

from hypermedia_kernel.domain.fields import FieldSchema
from hypermedia_kernel.domain.registry import ResourceTypeRegistry
from hypermedia_kernel.domain.resource import Resource
from hypermedia_kernel.domain.state_machine import CollectionSpec, ResourceType, Transition

EDIT_ACTION = "edit"


class AffordanceMethod(str, Enum):
    """Method category of an action; the transport maps it to a verb."""

    CREATE = "create"
    PARTIAL_UPDATE = "partial-update"


@dataclass(frozen=True)
class AffordanceTarget:
    """What an action or link points at: the resource or one of its collections."""

    resource_type: str
    resource_id: UUID
    collection: str | None = None
    view: str | None = None

    @property
    def path(self) -> str:
        parts = [self.resource_type, str(self.resource_id)]
        if self.collection is not None:
            parts.append(self.collection)
        if self.view is not None:
            parts.append(self.view)
        return "/" + "/".join(parts)


@dataclass(frozen=True)
class AffordanceField:
    """One input field of an action; ``preset`` fixes its value."""

    name: str
    field_type: str = "any"
    required: bool = False
    preset: Any = None


@dataclass(frozen=True)
class Affordance:
    """An advertised, currently legal next operation."""

    name: str
    method: AffordanceMethod
    target: AffordanceTarget
    fields: tuple[AffordanceField, ...] = ()
    to_state: str | None = None
    title: str = ""

    @property
    def field_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields)


@dataclass(frozen=True)
class Link:
    """A navigational link (relation + target)."""

    rel: str
    target: AffordanceTarget


@dataclass(frozen=True)
class AffordanceSet:
    """All affordances for one resource version and caller."""

    resource_id: UUID
    version: int
    state: str
    actions: tuple[Affordance, ...]
    links: tuple[Link, ...]

    @property
    def action_names(self) -> tuple[str, ...]:
        return tuple(a.name for a in self.actions)

    def get(self, name: str) -> Affordance | None:
        for action in self.actions:
            if action.name == name:
                return action
        return None

    def __contains__(self, name: object) -> bool:
        return any(a.name == name for a in self.actions)

    def link(self, rel: str) -> Link | None:
        for link in self.links:
            if link.rel == rel:
                return link
        return None


class AffordanceResolver:
    """
    Computes ``AffordanceSet`` values.

    Order of actions: ``edit`` first (if any field is editable), then one
    action per transition leaving the current state in declaration order,
    then generic ``add-<collection>`` actions for open collections that no
    implicit transition covers.  Links: ``self``, ``history``, then one per
    collection in declaration order.
    """

    def __init__(self, registry: ResourceTypeRegistry):
        self._registry = registry

    def resolve(self, resource: Resource, capabilities: Iterable[str] = ()) -> AffordanceSet:
        rt = self._registry.get(resource.type_name)
        caps = frozenset(capabilities)
        self_target = AffordanceTarget(rt.name, resource.id)

        actions: list[Affordance] = []

        edit = self._edit_action(rt, resource, caps, self_target)
        if edit is not None:
            actions.append(edit)

        covered_collections: set[str] = set()
        for t in rt.transitions_from(resource.state):
            if not t.guard_passes(resource.fields):
                continue
            if t.is_implicit:
                spec = rt.collection(t.collection)  # type: ignore[arg-type]
                if spec is None or not spec.is_open_in(resource.state):
                    continue
                covered_collections.add(spec.name)
                if not _holds(caps, t.required_capability or spec.required_capability):
                    continue
                actions.append(self._collection_action(rt, resource, spec, t))
            else:
                if not _holds(caps, t.required_capability):
                    continue
                actions.append(self._transition_action(rt, t, self_target))

        for spec in rt.collections:
            if spec.name in covered_collections or not spec.is_open_in(resource.state):
                continue
            if not _holds(caps, spec.required_capability):
                continue
            actions.append(self._collection_action(rt, resource, spec, None))

        links = [
            Link(rel="self", target=self_target),
            Link(rel="history", target=AffordanceTarget(rt.name, resource.id, view="history")),
        ]
        links.extend(
            Link(rel=spec.name, target=AffordanceTarget(rt.name, resource.id, collection=spec.name))
            for spec in rt.collections
        )

        return AffordanceSet(
            resource_id=resource.id,
            version=resource.version,
            state=resource.state,
            actions=tuple(actions),
            links=tuple(links),
        )

    @staticmethod
    def _edit_action(
        rt: ResourceType,
        resource: Resource,
        caps: frozenset[str],
        target: AffordanceTarget,
    ) -> Affordance | None:
        if not _holds(caps, rt.edit_capability):
            return None
        editable = rt.editable_fields(resource.state)
        if not editable:
            return None
        return Affordance(
            name=EDIT_ACTION,
            method=AffordanceMethod.PARTIAL_UPDATE,
            target=target,
            fields=tuple(
                AffordanceField(name=spec.name, field_type=spec.field_type.value)
                for spec in editable
            ),
            title=f"Edit {rt.name}",
        )

    @staticmethod
    def _transition_action(
        rt: ResourceType,
        t: Transition,
        target: AffordanceTarget,
    ) -> Affordance:
        return Affordance(
            name=t.name,
            method=AffordanceMethod.PARTIAL_UPDATE,
            target=target,
            fields=(
                AffordanceField(
                    name=rt.state_field,
                    field_type="string",
                    required=True,
                    preset=t.to_state,
                ),
            ),
            to_state=t.to_state,
            title=t.description,
        )

    @staticmethod
    def _collection_action(
        rt: ResourceType,
        resource: Resource,
        spec: CollectionSpec,
        t: Transition | None,
    ) -> Affordance:
        return Affordance(
            name=t.name if t is not None else f"add-{spec.name}",
            method=AffordanceMethod.CREATE,
            target=AffordanceTarget(rt.name, resource.id, collection=spec.name),
            fields=_input_shape(spec.item_schema),
            to_state=t.to_state if t is not None else None,
            title=(t.description if t is not None else spec.description),
        )


def _holds(caps: frozenset[str], required: str | None) -> bool:
    return required is None or required in caps


def _input_shape(schema: FieldSchema) -> tuple[AffordanceField, ...]:
    return tuple(
        AffordanceField(
            name=spec.name,
            field_type=spec.field_type.value,
            required=spec.required,
        )
        for spec in schema.fields
        if not spec.read_only
    )
