"""
Field schemas and pure field validation.

Provides immutable field definitions for resource types and sub-resource
collections, plus the validation functions the resource store runs on
every create, patch and sub-resource append.  This is part of the
functional core - no I/O, no ORM.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any
from uuid import UUID


class FieldType(str, Enum):
    """Supported field types in resource schemas."""

    STRING = "string"
    INTEGER = "integer"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATE = "date"  # ISO 8601 date (YYYY-MM-DD)
    DATETIME = "datetime"  # ISO 8601 datetime
    UUID = "uuid"
    OBJECT = "object"
    ARRAY = "array"
    ANY = "any"


@dataclass(frozen=True)
class FieldValidationError:
    """A single field validation error with a machine-readable code."""

    code: str
    message: str
    field: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {"code": self.code, "field": self.field, "message": self.message}


@dataclass(frozen=True)
class FieldSpec:
    """
    Schema definition for a single field.

    ``frozen_in`` names the states in which the field may no longer be
    changed.  ``read_only`` fields are set at creation and never patched.
    """

    name: str
    field_type: FieldType = FieldType.ANY
    required: bool = False
    nullable: bool = True
    description: str = ""
    min_value: Decimal | int | None = None
    max_value: Decimal | int | None = None
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None
    allowed_values: frozenset[str] | None = None
    frozen_in: frozenset[str] = frozenset()
    read_only: bool = False

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("field name is required")
        if self.pattern is not None:
            re.compile(self.pattern)

    def is_frozen_in(self, state: str) -> bool:
        return state in self.frozen_in


@dataclass(frozen=True)
class FieldSchema:
    """
    Ordered collection of field specs.

    ``allow_extra`` permits keys not declared in ``fields`` (their values
    are stored untyped).
    """

    fields: tuple[FieldSpec, ...] = ()
    allow_extra: bool = False

    def __post_init__(self) -> None:
        names = [f.name for f in self.fields]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate field names: {', '.join(duplicates)}")

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields)

    def get(self, name: str) -> FieldSpec | None:
        for spec in self.fields:
            if spec.name == name:
                return spec
        return None


def validate_fields(
    values: Mapping[str, Any],
    schema: FieldSchema,
    *,
    partial: bool = False,
) -> list[FieldValidationError]:
    """
    Validate ``values`` against ``schema``.

    With ``partial=True`` (patches) absent fields are not reported as
    missing; only the supplied keys are checked.
    """
    errors: list[FieldValidationError] = []

    if not schema.allow_extra:
        declared = set(schema.names)
        for key in sorted(values):
            if key not in declared:
                errors.append(
                    FieldValidationError(
                        code="UNKNOWN_FIELD",
                        message=f"Field not declared in schema: {key}",
                        field=key,
                    )
                )

    for spec in schema.fields:
        if spec.name not in values:
            if spec.required and not partial:
                errors.append(
                    FieldValidationError(
                        code="MISSING_REQUIRED_FIELD",
                        message=f"Required field missing: {spec.name}",
                        field=spec.name,
                    )
                )
            continue
        errors.extend(validate_field_value(values[spec.name], spec))

    return errors


def validate_field_value(value: Any, spec: FieldSpec) -> list[FieldValidationError]:
    """Validate one value: nullability, type, then constraints."""
    if value is None:
        if spec.required or not spec.nullable:
            return [
                FieldValidationError(
                    code="NULL_NOT_ALLOWED",
                    message=f"Field {spec.name} may not be null",
                    field=spec.name,
                )
            ]
        return []

    type_error = validate_field_type(value, spec.field_type, spec.name)
    if type_error is not None:
        return [type_error]
    return validate_field_constraints(value, spec)


# Each checker returns the error code for a bad value, or None.
# "INVALID_TYPE" is the generic mismatch; string forms of dates, datetimes
# and UUIDs that fail to parse get their own format codes.


def _check_decimal(value: Any) -> str | None:
    if isinstance(value, bool):
        return "INVALID_TYPE"
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return "INVALID_TYPE"
    return None if number.is_finite() else "INVALID_TYPE"


def _check_date(value: Any) -> str | None:
    if not isinstance(value, str):
        plain_date = isinstance(value, date) and not isinstance(value, datetime)
        return None if plain_date else "INVALID_TYPE"
    try:
        datetime.strptime(value, "%Y-%m-%d")
    except ValueError:
        return "INVALID_DATE_FORMAT"
    return None


def _check_datetime(value: Any) -> str | None:
    if not isinstance(value, str):
        return None if isinstance(value, datetime) else "INVALID_TYPE"
    try:
        # fromisoformat only accepts a trailing "Z" from 3.11 on
        datetime.fromisoformat(value[:-1] + "+00:00" if value.endswith("Z") else value)
    except ValueError:
        return "INVALID_DATETIME_FORMAT"
    return None


def _check_uuid(value: Any) -> str | None:
    if not isinstance(value, str):
        return None if isinstance(value, UUID) else "INVALID_TYPE"
    try:
        UUID(value)
    except ValueError:
        return "INVALID_UUID_FORMAT"
    return None


def _instance_of(*types: type, exclude: type | None = None):
    def check(value: Any) -> str | None:
        if isinstance(value, types) and not (exclude and isinstance(value, exclude)):
            return None
        return "INVALID_TYPE"

    return check


_TYPE_CHECKS = {
    FieldType.STRING: _instance_of(str),
    FieldType.INTEGER: _instance_of(int, exclude=bool),
    FieldType.DECIMAL: _check_decimal,
    FieldType.BOOLEAN: _instance_of(bool),
    FieldType.DATE: _check_date,
    FieldType.DATETIME: _check_datetime,
    FieldType.UUID: _check_uuid,
    FieldType.OBJECT: _instance_of(dict),
    FieldType.ARRAY: _instance_of(list),
}

_FORMAT_HINTS = {
    "INVALID_DATE_FORMAT": "expected YYYY-MM-DD",
    "INVALID_DATETIME_FORMAT": "expected ISO 8601",
    "INVALID_UUID_FORMAT": "expected a UUID",
}


def validate_field_type(
    value: Any,
    field_type: FieldType,
    path: str,
) -> FieldValidationError | None:
    """Check ``value`` against ``field_type``; ``ANY`` accepts everything."""
    check = _TYPE_CHECKS.get(field_type)
    code = check(value) if check is not None else None
    if code is None:
        return None
    if code in _FORMAT_HINTS:
        message = f"Bad {field_type.value} at {path}: {_FORMAT_HINTS[code]}"
    else:
        message = f"{path} must be {field_type.value}, not {type(value).__name__}"
    return FieldValidationError(code=code, message=message, field=path)


def validate_field_constraints(
    value: Any,
    spec: FieldSpec,
) -> list[FieldValidationError]:
    """Bounds, lengths, pattern and allowed values for an already well-typed value."""
    problems: list[tuple[str, str]] = []

    if spec.field_type in (FieldType.INTEGER, FieldType.DECIMAL):
        number = Decimal(str(value))
        if spec.min_value is not None and number < Decimal(str(spec.min_value)):
            problems.append(("VALUE_TOO_SMALL", f"{value} is below {spec.min_value}"))
        if spec.max_value is not None and number > Decimal(str(spec.max_value)):
            problems.append(("VALUE_TOO_LARGE", f"{value} is above {spec.max_value}"))

    if isinstance(value, str):
        length = len(value)
        if spec.min_length is not None and length < spec.min_length:
            problems.append(
                ("STRING_TOO_SHORT", f"{length} chars, at least {spec.min_length} needed")
            )
        if spec.max_length is not None and length > spec.max_length:
            problems.append(
                ("STRING_TOO_LONG", f"{length} chars, at most {spec.max_length} allowed")
            )
        if spec.pattern is not None and not re.match(spec.pattern, value):
            problems.append(("PATTERN_MISMATCH", f"does not match {spec.pattern!r}"))

    if spec.allowed_values is not None and value not in spec.allowed_values:
        allowed = ", ".join(sorted(spec.allowed_values))
        problems.append(("VALUE_NOT_ALLOWED", f"{value!r} is not one of: {allowed}"))

    return [
        FieldValidationError(code=code, message=f"{spec.name}: {detail}", field=spec.name)
        for code, detail in problems
    ]
