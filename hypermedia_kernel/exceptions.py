"""
Typed Exception Hierarchy for the Hypermedia Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The kernel sits underneath a transport layer (HTTP, message bus, CLI) that
must turn every failure into a protocol-level signal: 404, 409, 422 and so
on. Parsing message strings to do that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        store.apply_patch(resource_id, expected_version=2, changes=changes)
    except VersionConflictError as e:
        return conflict(code=e.code, current_version=e.actual_version)
    except IllegalTransitionError as e:
        return unprocessable(code=e.code, reason=e.reason)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    HypermediaKernelError (base)
    |
    +-- ResourceError
    |   +-- NotFoundError
    |   +-- InvalidFieldsError
    |
    +-- TransitionError
    |   +-- IllegalTransitionError
    |
    +-- CollectionError
    |   +-- UnknownCollectionError
    |
    +-- ConcurrencyError
    |   +-- VersionConflictError
    |
    +-- StorageError
    |   +-- StorageUnavailableError
    |
    +-- HistoryError
    |   +-- HistoryChainBrokenError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- RegistrationError
        +-- UnknownResourceTypeError
        +-- DuplicateResourceTypeError
        +-- InvalidResourceTypeError
        +-- InvalidExpressionError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                     | When Raised
--------------|--------------------------|--------------------------------------
Resource      | RESOURCE_NOT_FOUND       | Identifier does not exist
              | INVALID_FIELDS           | Field schema violation on input
--------------|--------------------------|--------------------------------------
Transition    | ILLEGAL_TRANSITION       | No edge, guard failed, frozen field,
              |                          | or collection closed in this state
--------------|--------------------------|--------------------------------------
Collection    | UNKNOWN_COLLECTION       | Collection not declared for the type
--------------|--------------------------|--------------------------------------
Concurrency   | VERSION_CONFLICT         | Stale expected_version
--------------|--------------------------|--------------------------------------
Storage       | STORAGE_UNAVAILABLE      | Backend failed (fatal, never retried)
--------------|--------------------------|--------------------------------------
History       | HISTORY_CHAIN_BROKEN     | Hash chain validation failed
--------------|--------------------------|--------------------------------------
Immutability  | IMMUTABILITY_VIOLATION   | UPDATE/DELETE on an append-only row
--------------|--------------------------|--------------------------------------
Registration  | UNKNOWN_RESOURCE_TYPE    | Type name not registered
              | DUPLICATE_RESOURCE_TYPE  | Type registered twice
              | INVALID_RESOURCE_TYPE    | Malformed state graph or schema
              | INVALID_EXPRESSION       | Guard/trigger outside restricted AST

===============================================================================
RETRY POLICY
===============================================================================

The kernel never retries. VersionConflictError asks the caller to re-read
and retry; StorageUnavailableError is surfaced as-is because a write whose
outcome is unknown must not be blindly re-applied.
"""

from typing import Any


class HypermediaKernelError(Exception):
    """
    Base exception for all hypermedia kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "HYPERMEDIA_KERNEL_ERROR"


# Resource-related exceptions


class ResourceError(HypermediaKernelError):
    """Base exception for resource-related errors."""

    code: str = "RESOURCE_ERROR"


class NotFoundError(ResourceError):
    """Resource with given ID was not found."""

    code: str = "RESOURCE_NOT_FOUND"

    def __init__(self, resource_id: str):
        self.resource_id = resource_id
        super().__init__(f"Resource not found: {resource_id}")


class InvalidFieldsError(ResourceError):
    """
    Input fields violate the declared field schema.

    ``field_errors`` is a list of ``{"code", "field", "message"}`` dicts so
    a transport layer can echo them back verbatim.
    """

    code: str = "INVALID_FIELDS"

    def __init__(self, type_name: str, field_errors: list[dict[str, Any]]):
        self.type_name = type_name
        self.field_errors = field_errors
        super().__init__(
            f"Invalid fields for {type_name}: {len(field_errors)} error(s)"
        )


# Transition-related exceptions


class TransitionError(HypermediaKernelError):
    """Base exception for state transition errors."""

    code: str = "TRANSITION_ERROR"


class IllegalTransitionError(TransitionError):
    """
    Requested change is not permitted from the current state.

    ``reason`` is one of NO_SUCH_TRANSITION, GUARD_FAILED, FIELD_FROZEN or
    COLLECTION_CLOSED.  This signals a domain-logic misuse by the caller,
    not a system fault.
    """

    code: str = "ILLEGAL_TRANSITION"

    def __init__(
        self,
        type_name: str,
        from_state: str,
        to_state: str | None,
        reason: str,
        detail: str = "",
    ):
        self.type_name = type_name
        self.from_state = from_state
        self.to_state = to_state
        self.reason = reason
        self.detail = detail
        target = to_state if to_state is not None else from_state
        msg = f"Illegal transition on {type_name} {from_state} -> {target}: {reason}"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)


# Collection-related exceptions


class CollectionError(HypermediaKernelError):
    """Base exception for sub-resource collection errors."""

    code: str = "COLLECTION_ERROR"


class UnknownCollectionError(CollectionError):
    """Collection name is not declared for the resource type."""

    code: str = "UNKNOWN_COLLECTION"

    def __init__(self, type_name: str, collection: str):
        self.type_name = type_name
        self.collection = collection
        super().__init__(
            f"Resource type {type_name} declares no collection '{collection}'"
        )


# Concurrency-related exceptions


class ConcurrencyError(HypermediaKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class VersionConflictError(ConcurrencyError):
    """Optimistic concurrency conflict: caller presented a stale version."""

    code: str = "VERSION_CONFLICT"

    def __init__(
        self,
        resource_id: str,
        expected_version: int | None,
        actual_version: int | None = None,
    ):
        self.resource_id = resource_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        msg = f"Version conflict on resource {resource_id}"
        if expected_version is not None:
            msg += f": expected version {expected_version}"
        if actual_version is not None:
            msg += f", current version is {actual_version}"
        super().__init__(msg)


# Storage-related exceptions


class StorageError(HypermediaKernelError):
    """Base exception for persistence backend errors."""

    code: str = "STORAGE_ERROR"


class StorageUnavailableError(StorageError):
    """
    The persistence backend failed.

    The only fatal error class.  Surfaced undiminished and never retried
    inside the kernel.
    """

    code: str = "STORAGE_UNAVAILABLE"

    def __init__(self, operation: str, reason: str):
        self.operation = operation
        self.reason = reason
        super().__init__(f"Storage unavailable during {operation}: {reason}")


# History-related exceptions


class HistoryError(HypermediaKernelError):
    """Base exception for history log errors."""

    code: str = "HISTORY_ERROR"


class HistoryChainBrokenError(HistoryError):
    """History hash chain validation failed."""

    code: str = "HISTORY_CHAIN_BROKEN"

    def __init__(
        self,
        resource_id: str,
        seq: int,
        expected_hash: str,
        actual_hash: str,
    ):
        self.resource_id = resource_id
        self.seq = seq
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"History chain broken for resource {resource_id} at seq {seq}: "
            f"expected {expected_hash}, got {actual_hash}"
        )


# Immutability-related exceptions


class ImmutabilityError(HypermediaKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Registration-related exceptions


class RegistrationError(HypermediaKernelError):
    """Base exception for resource type registration errors."""

    code: str = "REGISTRATION_ERROR"


class UnknownResourceTypeError(RegistrationError):
    """Resource type name is not registered."""

    code: str = "UNKNOWN_RESOURCE_TYPE"

    def __init__(self, type_name: str):
        self.type_name = type_name
        super().__init__(f"Resource type not registered: {type_name}")


class DuplicateResourceTypeError(RegistrationError):
    """Resource type is already registered; definitions are never replaced."""

    code: str = "DUPLICATE_RESOURCE_TYPE"

    def __init__(self, type_name: str):
        self.type_name = type_name
        super().__init__(f"Resource type already registered: {type_name}")


class InvalidResourceTypeError(RegistrationError):
    """Resource type definition is structurally invalid."""

    code: str = "INVALID_RESOURCE_TYPE"

    def __init__(self, type_name: str, problems: list[str]):
        self.type_name = type_name
        self.problems = problems
        super().__init__(
            f"Invalid resource type {type_name}: " + "; ".join(problems)
        )


class InvalidExpressionError(RegistrationError):
    """Guard or trigger expression is outside the restricted grammar."""

    code: str = "INVALID_EXPRESSION"

    def __init__(self, expression: str, problems: list[str]):
        self.expression = expression
        self.problems = problems
        super().__init__(
            f"Invalid expression {expression!r}: " + "; ".join(problems)
        )
