"""
Pure domain layer.

Resource snapshots, field schemas, guard expressions, state machine
definitions and affordance resolution, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Wall-clock time (``Clock`` is injected)

All domain objects are immutable and deterministic.
"""

from hypermedia_kernel.domain.affordances import (
    Affordance,
    AffordanceField,
    AffordanceMethod,
    AffordanceResolver,
    AffordanceSet,
    AffordanceTarget,
    Link,
)
from hypermedia_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from hypermedia_kernel.domain.expressions import (
    CompiledExpression,
    ExpressionProblem,
    compile_expression,
    validate_expression,
)
from hypermedia_kernel.domain.fields import (
    FieldSchema,
    FieldSpec,
    FieldType,
    FieldValidationError,
    validate_fields,
)
from hypermedia_kernel.domain.guards import Guard
from hypermedia_kernel.domain.registry import ResourceTypeRegistry
from hypermedia_kernel.domain.resource import (
    ANONYMOUS_ACTOR,
    SYSTEM_ACTOR,
    HistoryEvent,
    HistoryEventKind,
    PendingEvent,
    Resource,
    Subresource,
    SubresourceResult,
)
from hypermedia_kernel.domain.state_machine import (
    Allowed,
    CollectionSpec,
    Rejected,
    RejectionReason,
    ResourceType,
    StateMachineEngine,
    Transition,
    TransitionDecision,
    TriggerKind,
)

__all__ = [
    "ANONYMOUS_ACTOR",
    "Affordance",
    "AffordanceField",
    "AffordanceMethod",
    "AffordanceResolver",
    "AffordanceSet",
    "AffordanceTarget",
    "Allowed",
    "Clock",
    "CollectionSpec",
    "CompiledExpression",
    "DeterministicClock",
    "ExpressionProblem",
    "FieldSchema",
    "FieldSpec",
    "FieldType",
    "FieldValidationError",
    "Guard",
    "HistoryEvent",
    "HistoryEventKind",
    "Link",
    "PendingEvent",
    "Rejected",
    "RejectionReason",
    "Resource",
    "ResourceType",
    "ResourceTypeRegistry",
    "StateMachineEngine",
    "SYSTEM_ACTOR",
    "Subresource",
    "SubresourceResult",
    "SystemClock",
    "Transition",
    "TransitionDecision",
    "TriggerKind",
    "compile_expression",
    "validate_expression",
    "validate_fields",
]
