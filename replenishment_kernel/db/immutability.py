"""
ORM-level immutability enforcement.

SQLAlchemy fires mapper events before UPDATE/DELETE statements reach the
database.  The listeners registered here stop three kinds of change:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
         |
         v
    [before_delete] --> _check_*_delete() --------> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

Entity                | When immutable
----------------------|-------------------------------------------
StatusLogEntry        | ALWAYS (from creation)
ActivityLogEntry      | ALWAYS (from creation)
ReplenishmentRequest  | Once status is received or cancelled

Status changes themselves go through a guarded bulk UPDATE issued by
StatusTransitionService, which does not fire mapper events; these listeners
catch stray attribute writes on loaded instances.

Usage:

    from replenishment_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent, runs on models import

Tests that need to corrupt data on purpose call
unregister_immutability_listeners() and re-register afterwards.
"""

from sqlalchemy import event
from sqlalchemy.orm import object_session
from sqlalchemy.orm.attributes import get_history

from replenishment_kernel.exceptions import ImmutabilityViolationError
from replenishment_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_TERMINAL_VALUES = frozenset({"received", "cancelled"})


def _blocked(entity_type: str, entity_id, operation: str, reason: str) -> ImmutabilityViolationError:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "reason": reason,
        },
    )
    return ImmutabilityViolationError(entity_type, str(entity_id), reason)


def _check_status_log_immutability(mapper, connection, target):
    raise _blocked("StatusLogEntry", target.id, "UPDATE", "status log entries are append-only")


def _check_status_log_delete(mapper, connection, target):
    raise _blocked("StatusLogEntry", target.id, "DELETE", "status log entries are append-only")


def _check_activity_immutability(mapper, connection, target):
    raise _blocked("ActivityLogEntry", target.id, "UPDATE", "activity entries are append-only")


def _check_activity_delete(mapper, connection, target):
    raise _blocked("ActivityLogEntry", target.id, "DELETE", "activity entries are append-only")


def _check_request_immutability(mapper, connection, target):
    """
    Block ORM updates to a request that was already terminal.

    history.deleted holds the value loaded from the database when status is
    being reassigned; history.unchanged holds it otherwise.  Appending to
    the status_log collection marks the request dirty without changing a
    column; that is allowed.
    """
    session = object_session(target)
    if session is not None and not session.is_modified(target, include_collections=False):
        return

    status_history = get_history(target, "status")
    previous = list(status_history.deleted) or list(status_history.unchanged)
    if previous and previous[0] in _TERMINAL_VALUES:
        raise _blocked(
            "ReplenishmentRequest",
            target.id,
            "UPDATE",
            f"request is {previous[0]}",
        )


def _listeners():
    from replenishment_kernel.models.activity import ActivityLogEntry
    from replenishment_kernel.models.request import ReplenishmentRequest, StatusLogEntry

    return (
        (StatusLogEntry, "before_update", _check_status_log_immutability),
        (StatusLogEntry, "before_delete", _check_status_log_delete),
        (ActivityLogEntry, "before_update", _check_activity_immutability),
        (ActivityLogEntry, "before_delete", _check_activity_delete),
        (ReplenishmentRequest, "before_update", _check_request_immutability),
    )


def register_immutability_listeners():
    """Register all immutability listeners.  Safe to call more than once."""
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability listeners.

    WARNING: Only use this in tests that intentionally violate the rules.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
