"""
ORM-level immutability enforcement for append-only records.

History events and sub-resources are written once and never changed.
SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database; the listeners below intercept them and abort the flush:

    session.flush()
         |
         v
    [before_update / before_delete] --> _block_*() --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Protected entities
------------------
HistoryEventRecord  always (from creation)   history is the audit trail
SubresourceRecord   always (from creation)   items may fire transitions

Resource snapshots are NOT protected here: they are replaced on every
mutation, guarded by the version compare-and-set in ``storage/sql.py``.

Usage::

    from hypermedia_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent

To temporarily disable (TESTS ONLY)::

    unregister_immutability_listeners()
"""

from sqlalchemy import event

from hypermedia_kernel.exceptions import ImmutabilityViolationError
from hypermedia_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


def _block_history_event_update(mapper, connection, target):
    _block("HistoryEvent", target, "UPDATE", "History events are immutable")


def _block_history_event_delete(mapper, connection, target):
    _block("HistoryEvent", target, "DELETE", "History events cannot be deleted")


def _block_subresource_update(mapper, connection, target):
    _block("Subresource", target, "UPDATE", "Sub-resources are immutable once added")


def _block_subresource_delete(mapper, connection, target):
    _block("Subresource", target, "DELETE", "Sub-resources cannot be deleted")


def _listeners():
    # Inline import: models import db.base, so db must not import models at load.
    from hypermedia_kernel.models.history_event import HistoryEventRecord
    from hypermedia_kernel.models.subresource import SubresourceRecord

    return (
        (HistoryEventRecord, "before_update", _block_history_event_update),
        (HistoryEventRecord, "before_delete", _block_history_event_delete),
        (SubresourceRecord, "before_update", _block_subresource_update),
        (SubresourceRecord, "before_delete", _block_subresource_delete),
    )


def register_immutability_listeners() -> None:
    """Register all immutability listeners (safe to call repeatedly)."""
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove the immutability listeners.

    WARNING: Only use this in tests that must violate the rules on purpose.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)


def immutability_listeners_registered() -> bool:
    return all(
        event.contains(target, event_name, listener_fn)
        for target, event_name, listener_fn in _listeners()
    )
