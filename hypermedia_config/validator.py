"""
Configuration Validator (``hypermedia_config.validator``).

Responsibility
--------------
Validates a ``ResourceConfigurationSet`` at build time so authoring
mistakes are reported together, with file context, before the kernel's
own construction checks run.

Invariants enforced
-------------------
* Resource type names are unique across the set.
* Every guard and trigger condition passes the restricted expression
  validator (``hypermedia_kernel.domain.expressions``).
* Field types are known ``FieldType`` values.
* States named by transitions, locked states, frozen fields and
  collection open states are declared.
* Implicit transitions name a declared collection.

Failure modes
-------------
* Errors (``ConfigValidationResult.errors``)  -> the set MUST NOT be
  compiled.
* Warnings  -> the set compiles but should be reviewed.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field

from hypermedia_config.schema import FieldDef, ResourceConfigurationSet, ResourceTypeDef
from hypermedia_kernel.domain.expressions import validate_expression
from hypermedia_kernel.domain.fields import FieldType

_FIELD_TYPES = frozenset(t.value for t in FieldType)


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    Contract
    --------
    * ``is_valid`` returns ``True`` only when ``errors`` is empty.
    * Warnings do not block compilation but should be reviewed.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: ResourceConfigurationSet) -> ConfigValidationResult:
    """
    Validate a configuration set.

    Postconditions:
        - Returns a ``ConfigValidationResult`` with errors and warnings.
        - A configuration with errors MUST NOT be compiled.
    """
    result = ConfigValidationResult()

    _validate_type_uniqueness(config, result)
    for definition in config.definitions:
        validate_resource_type(definition, result)

    return result


def validate_resource_type(
    definition: ResourceTypeDef,
    result: ConfigValidationResult | None = None,
) -> ConfigValidationResult:
    """Validate a single definition (appending to ``result`` if given)."""
    result = result if result is not None else ConfigValidationResult()

    _validate_states(definition, result)
    _validate_fields(definition, definition.fields, f"Type '{definition.name}'", result)
    _validate_collections(definition, result)
    _validate_transitions(definition, result)
    _validate_trigger_overlap(definition, result)

    return result


def _validate_type_uniqueness(
    config: ResourceConfigurationSet, result: ConfigValidationResult
) -> None:
    for name, count in sorted(Counter(config.type_names).items()):
        if count > 1:
            result.add_error(f"Duplicate resource type: {name} appears {count} times")


def _validate_states(definition: ResourceTypeDef, result: ConfigValidationResult) -> None:
    states = set(definition.states)
    label = f"Type '{definition.name}'"

    if not definition.states:
        result.add_error(f"{label}: no states declared")
    for state, count in Counter(definition.states).items():
        if count > 1:
            result.add_error(f"{label}: state '{state}' declared {count} times")
    if definition.initial_state not in states:
        result.add_error(f"{label}: initial state '{definition.initial_state}' is not declared")
    for state in definition.locked_states:
        if state not in states:
            result.add_error(f"{label}: locked state '{state}' is not declared")

    sources = {t.from_state for t in definition.transitions}
    for state in definition.states:
        if state not in sources and state not in definition.locked_states:
            result.add_warning(
                f"{label}: terminal state '{state}' is not locked; "
                "its fields stay editable"
            )


def _validate_fields(
    definition: ResourceTypeDef,
    fields: tuple[FieldDef, ...],
    label: str,
    result: ConfigValidationResult,
) -> None:
    states = set(definition.states)
    for name, count in Counter(f.name for f in fields).items():
        if count > 1:
            result.add_error(f"{label}: field '{name}' declared {count} times")
    for f in fields:
        if f.field_type not in _FIELD_TYPES:
            result.add_error(
                f"{label}: field '{f.name}' has unknown type '{f.field_type}' "
                f"(expected one of {', '.join(sorted(_FIELD_TYPES))})"
            )
        if f.name == definition.state_field:
            result.add_error(
                f"{label}: field '{f.name}' is the state field and must not be declared"
            )
        for state in f.frozen_in:
            if state not in states:
                result.add_error(f"{label}: field '{f.name}' frozen in unknown state '{state}'")


def _validate_collections(definition: ResourceTypeDef, result: ConfigValidationResult) -> None:
    states = set(definition.states)
    for name, count in Counter(c.name for c in definition.collections).items():
        if count > 1:
            result.add_error(f"Type '{definition.name}': collection '{name}' declared {count} times")
    for collection in definition.collections:
        label = f"Type '{definition.name}' collection '{collection.name}'"
        for state in collection.open_states or ():
            if state not in states:
                result.add_error(f"{label}: opens in unknown state '{state}'")
        for name, count in Counter(f.name for f in collection.item_fields).items():
            if count > 1:
                result.add_error(f"{label}: item field '{name}' declared {count} times")
        for f in collection.item_fields:
            if f.field_type not in _FIELD_TYPES:
                result.add_error(f"{label}: item field '{f.name}' has unknown type '{f.field_type}'")


def _validate_transitions(definition: ResourceTypeDef, result: ConfigValidationResult) -> None:
    states = set(definition.states)
    collections = {c.name for c in definition.collections}

    for t in definition.transitions:
        label = f"Type '{definition.name}' transition '{t.name}'"
        if t.from_state not in states:
            result.add_error(f"{label}: unknown source state '{t.from_state}'")
        if t.to_state not in states:
            result.add_error(f"{label}: unknown target state '{t.to_state}'")

        if t.guard is not None:
            for problem in validate_expression(t.guard.expression):
                result.add_error(
                    f"{label} guard: {problem.message} (expression: {t.guard.expression})"
                )

        if t.trigger is not None:
            if t.trigger.collection not in collections:
                result.add_error(
                    f"{label}: trigger names undeclared collection '{t.trigger.collection}'"
                )
            for problem in validate_expression(t.trigger.condition):
                result.add_error(
                    f"{label} trigger: {problem.message} (expression: {t.trigger.condition})"
                )


def _validate_trigger_overlap(definition: ResourceTypeDef, result: ConfigValidationResult) -> None:
    """Implicit edges are tried in declaration order; an exact repeat can never fire."""
    first_by_key: dict[tuple[str, str, str], str] = {}
    for t in definition.transitions:
        if t.trigger is None:
            continue
        key = (t.from_state, t.trigger.collection, t.trigger.condition.strip())
        earlier = first_by_key.setdefault(key, t.name)
        if earlier != t.name:
            result.add_warning(
                f"Type '{definition.name}' transition '{t.name}': same trigger as "
                f"'{earlier}' from '{t.from_state}' on '{t.trigger.collection}'; "
                "it can never fire"
            )
