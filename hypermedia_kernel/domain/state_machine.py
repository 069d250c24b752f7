"""
State machine definitions and engine (``hypermedia_kernel.domain.state_machine``).

Responsibility
--------------
Static, per-resource-type definition of states, explicit transitions
(requested by a client patch) and implicit transitions (fired by a
sub-resource append), plus the engine that answers "is this change legal
from this state".

Architecture position
---------------------
**Kernel domain layer** -- pure.  The engine reads definitions from a
``ResourceTypeRegistry``; it never touches storage.

Invariants enforced
-------------------
* ``ResourceType`` is frozen and validated at construction: every state
  referenced exists, every state is reachable from ``initial_state``,
  implicit transitions name a declared collection and a trigger condition.
* ``validate`` consults only declared explicit edges; nothing is
  improvised at request time.
* ``resolve_trigger`` fires at most one implicit transition; the first
  declared match wins.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

from hypermedia_kernel.domain.fields import FieldSchema, FieldSpec
from hypermedia_kernel.domain.guards import Guard
from hypermedia_kernel.exceptions import InvalidResourceTypeError
from hypermedia_kernel.logging_config import get_logger

if TYPE_CHECKING:
    from hypermedia_kernel.domain.registry import ResourceTypeRegistry

logger = get_logger("domain.state_machine")


class TriggerKind(str, Enum):
    """How a transition is fired."""

    EXPLICIT = "explicit"  # client patch of the state field
    IMPLICIT = "implicit"  # sub-resource append on a collection


@dataclass(frozen=True)
class Transition:
    """A declared edge in a resource type's state graph."""

    name: str
    from_state: str
    to_state: str
    trigger: TriggerKind = TriggerKind.EXPLICIT
    guard: Guard | None = None
    required_capability: str | None = None
    collection: str | None = None
    condition: Guard | None = None
    description: str = ""

    @property
    def is_implicit(self) -> bool:
        return self.trigger == TriggerKind.IMPLICIT

    def guard_passes(
        self,
        fields: Mapping[str, Any] | None,
        change: Mapping[str, Any] | None = None,
    ) -> bool:
        if self.guard is None:
            return True
        return self.guard.evaluate(fields=fields, change=change)


@dataclass(frozen=True)
class CollectionSpec:
    """A named sub-resource collection declared on a resource type.

    ``open_states`` of None means items may be appended in any state.
    """

    name: str
    item_schema: FieldSchema = FieldSchema(allow_extra=True)
    required_capability: str | None = None
    open_states: frozenset[str] | None = None
    description: str = ""

    def is_open_in(self, state: str) -> bool:
        return self.open_states is None or state in self.open_states


@dataclass(frozen=True)
class ResourceType:
    """
    A state machine definition for one kind of resource.

    Contract: frozen; validated on construction (raises
    ``InvalidResourceTypeError`` listing every problem found).
    ``locked_states`` freeze every non-state field; ``FieldSpec.frozen_in``
    freezes individual fields.
    """

    name: str
    states: tuple[str, ...]
    initial_state: str
    transitions: tuple[Transition, ...] = ()
    field_schema: FieldSchema = FieldSchema(allow_extra=True)
    collections: tuple[CollectionSpec, ...] = ()
    state_field: str = "status"
    locked_states: frozenset[str] = frozenset()
    edit_capability: str | None = None
    description: str = ""

    def __post_init__(self) -> None:
        problems = _structural_problems(self)
        if problems:
            raise InvalidResourceTypeError(self.name, problems)

    @property
    def terminal_states(self) -> tuple[str, ...]:
        sources = {t.from_state for t in self.transitions}
        return tuple(s for s in self.states if s not in sources)

    def collection(self, name: str) -> CollectionSpec | None:
        for spec in self.collections:
            if spec.name == name:
                return spec
        return None

    def transitions_from(self, state: str) -> tuple[Transition, ...]:
        return tuple(t for t in self.transitions if t.from_state == state)

    def is_field_frozen(self, field_name: str, state: str) -> bool:
        if state in self.locked_states:
            return True
        spec = self.field_schema.get(field_name)
        return spec is not None and spec.is_frozen_in(state)

    def editable_fields(self, state: str) -> tuple[FieldSpec, ...]:
        """Declared fields a client may still patch in ``state``."""
        return tuple(
            spec
            for spec in self.field_schema.fields
            if not spec.read_only and not self.is_field_frozen(spec.name, state)
        )


def _structural_problems(rt: ResourceType) -> list[str]:
    problems: list[str] = []
    states = set(rt.states)

    if not rt.states:
        problems.append("no states declared")
    if len(states) != len(rt.states):
        problems.append("duplicate state names")
    if rt.initial_state not in states:
        problems.append(f"initial state '{rt.initial_state}' is not a declared state")
    if rt.field_schema.get(rt.state_field) is not None:
        problems.append(
            f"state field '{rt.state_field}' is managed by the state machine "
            "and must not be declared as a regular field"
        )

    collection_names = [c.name for c in rt.collections]
    if len(set(collection_names)) != len(collection_names):
        problems.append("duplicate collection names")
    for spec in rt.collections:
        if spec.open_states is not None:
            for s in sorted(spec.open_states - states):
                problems.append(f"collection '{spec.name}' opens in unknown state '{s}'")

    seen_edges: set[tuple[str, str]] = set()
    for t in rt.transitions:
        label = f"transition '{t.name}'"
        if t.from_state not in states:
            problems.append(f"{label} leaves unknown state '{t.from_state}'")
        if t.to_state not in states:
            problems.append(f"{label} enters unknown state '{t.to_state}'")
        if (t.name, t.from_state) in seen_edges:
            problems.append(f"{label} declared twice from '{t.from_state}'")
        seen_edges.add((t.name, t.from_state))
        if t.is_implicit:
            if t.collection is None:
                problems.append(f"{label} is implicit but names no collection")
            elif t.collection not in collection_names:
                problems.append(f"{label} triggers on undeclared collection '{t.collection}'")
            if t.condition is None:
                problems.append(f"{label} is implicit but has no trigger condition")
        elif t.collection is not None or t.condition is not None:
            problems.append(f"{label} is explicit but declares a collection trigger")

    for s in sorted(rt.locked_states - states):
        problems.append(f"locked state '{s}' is not a declared state")
    for spec in rt.field_schema.fields:
        for s in sorted(spec.frozen_in - states):
            problems.append(f"field '{spec.name}' is frozen in unknown state '{s}'")

    if rt.initial_state in states:
        reachable = _reachable_states(rt.initial_state, rt.transitions)
        for s in rt.states:
            if s not in reachable:
                problems.append(f"state '{s}' is unreachable from '{rt.initial_state}'")

    return problems


def _reachable_states(initial: str, transitions: tuple[Transition, ...]) -> set[str]:
    seen = {initial}
    queue = deque([initial])
    while queue:
        current = queue.popleft()
        for t in transitions:
            if t.from_state == current and t.to_state not in seen:
                seen.add(t.to_state)
                queue.append(t.to_state)
    return seen


# =========================================================================
# Transition decisions
# =========================================================================


class RejectionReason(str, Enum):
    """Why a requested change was rejected."""

    NO_SUCH_TRANSITION = "NO_SUCH_TRANSITION"
    GUARD_FAILED = "GUARD_FAILED"
    FIELD_FROZEN = "FIELD_FROZEN"
    COLLECTION_CLOSED = "COLLECTION_CLOSED"


@dataclass(frozen=True)
class Allowed:
    """The change is legal; ``transition`` is None for field-only changes."""

    next_state: str
    transition: Transition | None = None

    @property
    def is_allowed(self) -> bool:
        return True

    @property
    def changes_state(self) -> bool:
        return self.transition is not None


@dataclass(frozen=True)
class Rejected:
    """The change is illegal from the current state."""

    reason: RejectionReason
    detail: str = ""
    requested_state: str | None = None

    @property
    def is_allowed(self) -> bool:
        return False


TransitionDecision = Allowed | Rejected


# =========================================================================
# Engine
# =========================================================================


class StateMachineEngine:
    """
    Sole authority on transition legality.

    Contract:
        Stateless apart from the registry it reads.  Never mutates a
        resource and never consults storage.
    """

    def __init__(self, registry: ResourceTypeRegistry):
        self._registry = registry

    @property
    def registry(self) -> ResourceTypeRegistry:
        return self._registry

    def validate(
        self,
        type_name: str,
        current_state: str,
        change: Mapping[str, Any],
        fields: Mapping[str, Any] | None = None,
    ) -> TransitionDecision:
        """
        Decide whether ``change`` may be applied in ``current_state``.

        ``fields`` are the resource's current values.  Guards see the values
        the resource would have after the change as ``fields``, and the
        change itself as ``change``, so one patch that edits fields and
        requests a transition is judged on its outcome.
        """
        rt = self._registry.get(type_name)
        proposed = {**(fields or {}), **change}

        for name in change:
            if name != rt.state_field and rt.is_field_frozen(name, current_state):
                return Rejected(
                    reason=RejectionReason.FIELD_FROZEN,
                    detail=f"field '{name}' is frozen in state '{current_state}'",
                )

        requested = change.get(rt.state_field, current_state)
        if requested == current_state:
            return Allowed(next_state=current_state)

        candidates = [
            t
            for t in rt.transitions_from(current_state)
            if t.to_state == requested and not t.is_implicit
        ]
        if not candidates:
            implicit_only = any(
                t.to_state == requested and t.is_implicit
                for t in rt.transitions_from(current_state)
            )
            detail = f"no edge {current_state} -> {requested}"
            if implicit_only:
                detail += " (reached only through a sub-resource trigger)"
            return Rejected(
                reason=RejectionReason.NO_SUCH_TRANSITION,
                detail=detail,
                requested_state=str(requested),
            )

        for t in candidates:
            if t.guard_passes(proposed, change):
                return Allowed(next_state=t.to_state, transition=t)

        failed = ", ".join(t.guard.name for t in candidates if t.guard is not None)
        return Rejected(
            reason=RejectionReason.GUARD_FAILED,
            detail=f"guard rejected the change: {failed}",
            requested_state=str(requested),
        )

    def resolve_trigger(
        self,
        type_name: str,
        current_state: str,
        collection_name: str,
        payload: Mapping[str, Any],
        fields: Mapping[str, Any] | None = None,
    ) -> Transition | None:
        """Return the first declared implicit transition matching the append."""
        rt = self._registry.get(type_name)
        for t in rt.transitions_from(current_state):
            if not t.is_implicit or t.collection != collection_name:
                continue
            if t.condition is not None and not t.condition.evaluate(
                fields=fields, payload=payload
            ):
                continue
            if not t.guard_passes(fields):
                continue
            logger.debug(
                "trigger_matched",
                extra={
                    "resource_type": type_name,
                    "collection": collection_name,
                    "transition": t.name,
                    "from_state": t.from_state,
                    "to_state": t.to_state,
                },
            )
            return t
        return None
