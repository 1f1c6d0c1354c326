"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

The ledger's correctness rests on one property: balances are a fold over an
append-only movement log.  A single UPDATE on a movement silently changes
every aggregate and every closing that was reconciled against it.  The
closing and audit rows carry the same weight for the reconciliation trail.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
We register listeners that intercept these events and check our invariants:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity        | Rule
--------------|------------------------------------------------------------
Movement      | Never updated, never deleted
AuditEvent    | Never updated, never deleted
Closing       | Only the reopen fields and CLOSED -> REOPENED may change;
              | DELETE is allowed (ClosingService.delete audits it first)
Alert         | Only the resolution fields may change; never deleted

updated_at/updated_by_id are audit metadata and always allowed to change.

===============================================================================
USAGE
===============================================================================

    from closing_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # Called once at startup

To temporarily disable (TESTS ONLY - never in production):

    from closing_kernel.db.immutability import unregister_immutability_listeners
    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from closing_kernel.exceptions import ImmutabilityViolationError
from closing_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_METADATA_FIELDS = frozenset({"updated_at", "updated_by_id"})

CLOSING_MUTABLE_FIELDS = frozenset({
    "status",
    "reopened_by_id",
    "reopened_at",
    "reopen_justification",
}) | _AUDIT_METADATA_FIELDS

ALERT_MUTABLE_FIELDS = frozenset({
    "is_resolved",
    "resolved_by_id",
    "resolved_at",
    "resolution_notes",
})


def _changed_fields(target) -> set[str]:
    """Names of column attributes with pending changes on target."""
    state = inspect(target)
    changed = set()
    for attr in state.mapper.column_attrs:
        if state.attrs[attr.key].history.has_changes():
            changed.add(attr.key)
    return changed


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


def _check_movement_immutability(mapper, connection, target):
    """Movements are append-only."""
    _block("Movement", target, "UPDATE", "Ledger movements are immutable; void them instead")


def _check_movement_delete(mapper, connection, target):
    _block("Movement", target, "DELETE", "Ledger movements cannot be deleted; void them instead")


def _check_audit_event_immutability(mapper, connection, target):
    _block("AuditEvent", target, "UPDATE", "Audit events are immutable and cannot be modified")


def _check_audit_event_delete(mapper, connection, target):
    _block("AuditEvent", target, "DELETE", "Audit events are immutable and cannot be deleted")


def _check_closing_immutability(mapper, connection, target):
    """
    Allow only the reopen transition on a Closing.

    Logic:
        1. Any change outside CLOSING_MUTABLE_FIELDS: block.
        2. status may only move from closed to reopened.
    """
    from closing_kernel.models.closing import ClosingStatus

    forbidden = _changed_fields(target) - CLOSING_MUTABLE_FIELDS
    if forbidden:
        _block(
            "Closing",
            target,
            "UPDATE",
            f"Reconciliation fields are immutable: {', '.join(sorted(forbidden))}",
        )

    status_history = get_history(target, "status")
    if status_history.has_changes():
        old = status_history.deleted[0] if status_history.deleted else None
        new = status_history.added[0] if status_history.added else None
        if old != ClosingStatus.CLOSED or new != ClosingStatus.REOPENED:
            _block(
                "Closing",
                target,
                "UPDATE",
                f"Invalid status transition {old} -> {new}",
            )


def _check_alert_immutability(mapper, connection, target):
    forbidden = _changed_fields(target) - ALERT_MUTABLE_FIELDS
    if forbidden:
        _block(
            "Alert",
            target,
            "UPDATE",
            f"Only resolution fields may change: {', '.join(sorted(forbidden))}",
        )


def _check_alert_delete(mapper, connection, target):
    _block("Alert", target, "DELETE", "Alerts cannot be deleted; resolve them instead")


def _listeners():
    from closing_kernel.models.alert import Alert
    from closing_kernel.models.audit_event import AuditEvent
    from closing_kernel.models.closing import Closing
    from closing_kernel.models.movement import Movement

    return (
        (Movement, "before_update", _check_movement_immutability),
        (Movement, "before_delete", _check_movement_delete),
        (AuditEvent, "before_update", _check_audit_event_immutability),
        (AuditEvent, "before_delete", _check_audit_event_delete),
        (Closing, "before_update", _check_closing_immutability),
        (Alert, "before_update", _check_alert_immutability),
        (Alert, "before_delete", _check_alert_delete),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call this after all models are imported but before any database
    operations begin.  Idempotent.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
