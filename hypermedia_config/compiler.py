"""
Configuration Compiler -- ResourceTypeDef -> kernel ResourceType.

The compiler validates the configuration set and produces frozen kernel
``ResourceType`` objects; those are the ONLY form in which resource types
reach ``ResourceTypeRegistry``.

Compilation checks:
  - The validator reports no errors
  - Guard and trigger expressions parse (restricted AST)
  - Field constraints are well formed (patterns compile, names unique)
  - The kernel accepts the resulting state graph (reachability etc.)
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from hypermedia_config.schema import (
    CollectionDef,
    FieldDef,
    ResourceConfigurationSet,
    ResourceTypeDef,
    TransitionDef,
)
from hypermedia_config.validator import validate_configuration, validate_resource_type
from hypermedia_kernel.domain.fields import FieldSchema, FieldSpec, FieldType
from hypermedia_kernel.domain.guards import Guard
from hypermedia_kernel.domain.registry import ResourceTypeRegistry
from hypermedia_kernel.domain.state_machine import (
    CollectionSpec,
    ResourceType,
    Transition,
    TriggerKind,
)
from hypermedia_kernel.exceptions import (
    HypermediaKernelError,
    InvalidExpressionError,
    InvalidResourceTypeError,
)


@dataclass(frozen=True)
class CompilationError:
    """An error found during compilation."""

    category: str  # e.g. "validation", "field", "expression", "graph"
    message: str
    type_name: str = ""
    severity: str = "error"  # "error" or "warning"


class CompilationFailedError(HypermediaKernelError):
    """Compilation produced errors that prevent building the resource types."""

    code: str = "COMPILATION_FAILED"

    def __init__(self, errors: list[CompilationError]):
        self.errors = errors
        messages = [f"  [{e.category}] {e.message}" for e in errors if e.severity == "error"]
        super().__init__(
            f"Compilation failed with {len(messages)} error(s):\n"
            + "\n".join(messages)
        )


@dataclass(frozen=True)
class CompiledConfiguration:
    """Compiled resource types plus the source checksum they came from."""

    resource_types: tuple[ResourceType, ...]
    checksum: str
    warnings: tuple[str, ...] = ()

    def to_registry(self) -> ResourceTypeRegistry:
        return ResourceTypeRegistry(self.resource_types)


# ---------------------------------------------------------------------------
# Compiler
# ---------------------------------------------------------------------------


def compile_configuration(config: ResourceConfigurationSet) -> CompiledConfiguration:
    """
    Compile every definition in ``config``.

    Raises:
        CompilationFailedError: if validation or compilation produced errors.
    """
    validation = validate_configuration(config)
    errors = [CompilationError("validation", msg) for msg in validation.errors]
    if errors:
        raise CompilationFailedError(errors)

    compiled: list[ResourceType] = []
    for definition in config.definitions:
        resource_type = _compile_one(definition, errors)
        if resource_type is not None:
            compiled.append(resource_type)

    if errors:
        raise CompilationFailedError(errors)

    return CompiledConfiguration(
        resource_types=tuple(compiled),
        checksum=config.checksum,
        warnings=tuple(validation.warnings),
    )


def compile_resource_type(definition: ResourceTypeDef) -> ResourceType:
    """
    Compile a single definition.

    Raises:
        CompilationFailedError: if validation or compilation produced errors.
    """
    validation = validate_resource_type(definition)
    errors = [CompilationError("validation", msg, definition.name) for msg in validation.errors]
    if errors:
        raise CompilationFailedError(errors)

    resource_type = _compile_one(definition, errors)
    if errors or resource_type is None:
        raise CompilationFailedError(errors)
    return resource_type


# ---------------------------------------------------------------------------
# Internal compilation steps
# ---------------------------------------------------------------------------


def _compile_one(
    definition: ResourceTypeDef,
    errors: list[CompilationError],
) -> ResourceType | None:
    n_errors = len(errors)

    field_schema = _compile_schema(
        definition.fields, definition.allow_extra_fields, definition.name, errors
    )
    collections = tuple(_compile_collection(c, definition.name, errors) for c in definition.collections)
    transitions = tuple(_compile_transition(t, definition.name, errors) for t in definition.transitions)

    if len(errors) > n_errors:
        return None

    try:
        return ResourceType(
            name=definition.name,
            states=definition.states,
            initial_state=definition.initial_state,
            transitions=transitions,  # type: ignore[arg-type]
            field_schema=field_schema,  # type: ignore[arg-type]
            collections=collections,  # type: ignore[arg-type]
            state_field=definition.state_field,
            locked_states=frozenset(definition.locked_states),
            edit_capability=definition.edit_capability,
            description=definition.description,
        )
    except InvalidResourceTypeError as exc:
        for problem in exc.problems:
            errors.append(CompilationError("graph", problem, definition.name))
        return None


def _compile_schema(
    fields: tuple[FieldDef, ...],
    allow_extra: bool,
    label: str,
    errors: list[CompilationError],
) -> FieldSchema | None:
    specs: list[FieldSpec] = []
    for f in fields:
        try:
            specs.append(_compile_field(f))
        except (ValueError, InvalidOperation, re.error) as exc:
            errors.append(CompilationError("field", f"{label}.{f.name}: {exc}", label))
    try:
        return FieldSchema(fields=tuple(specs), allow_extra=allow_extra)
    except ValueError as exc:
        errors.append(CompilationError("field", f"{label}: {exc}", label))
        return None


def _compile_field(f: FieldDef) -> FieldSpec:
    return FieldSpec(
        name=f.name,
        field_type=FieldType(f.field_type),
        required=f.required,
        nullable=f.nullable,
        description=f.description,
        min_value=_bound(f.min_value),
        max_value=_bound(f.max_value),
        min_length=f.min_length,
        max_length=f.max_length,
        pattern=f.pattern,
        allowed_values=frozenset(f.allowed_values) if f.allowed_values is not None else None,
        frozen_in=frozenset(f.frozen_in),
        read_only=f.read_only,
    )


def _bound(value: Any) -> Decimal | int | None:
    if value is None or isinstance(value, int):
        return value
    return Decimal(str(value))


def _compile_collection(
    c: CollectionDef,
    type_name: str,
    errors: list[CompilationError],
) -> CollectionSpec | None:
    schema = _compile_schema(c.item_fields, c.allow_extra, f"{type_name}/{c.name}", errors)
    if schema is None:
        return None
    return CollectionSpec(
        name=c.name,
        item_schema=schema,
        required_capability=c.required_capability,
        open_states=frozenset(c.open_states) if c.open_states is not None else None,
        description=c.description,
    )


def _compile_transition(
    t: TransitionDef,
    type_name: str,
    errors: list[CompilationError],
) -> Transition | None:
    try:
        guard = (
            Guard.from_expression(t.guard.name, t.guard.expression, t.guard.description)
            if t.guard is not None
            else None
        )
        condition = (
            Guard.from_expression(f"{t.name}-trigger", t.trigger.condition)
            if t.trigger is not None
            else None
        )
    except InvalidExpressionError as exc:
        errors.append(
            CompilationError("expression", f"{type_name}.{t.name}: {exc}", type_name)
        )
        return None

    return Transition(
        name=t.name,
        from_state=t.from_state,
        to_state=t.to_state,
        trigger=TriggerKind.IMPLICIT if t.trigger is not None else TriggerKind.EXPLICIT,
        guard=guard,
        required_capability=t.required_capability,
        collection=t.trigger.collection if t.trigger is not None else None,
        condition=condition,
        description=t.description,
    )
