"""
AuditorService -- tamper-evident audit trail and hash chain maintenance.

Responsibility:
    Creates immutable, hash-chained audit events for closes, reopens,
    deletes and payment voids.  Provides chain validation for tamper
    detection and trace queries for review.

Architecture position:
    Kernel > Services -- called by ClosingService and LedgerService inside
    the caller's transaction.

Invariants enforced:
    - Sequence numbers come from SequenceService (locked counter row).
    - ``hash = H(entity_type | entity_id | action | payload_hash | prev_hash)``;
      every event links to its predecessor.
    - The stored payload is exactly what was hashed, so ``validate_chain``
      can recompute ``payload_hash`` from it.
    - Append-only: the AuditEvent model is protected by ORM listeners.

Failure modes:
    - AuditChainBrokenError: a recomputed hash does not match the stored
      one, or ``prev_hash`` does not match the predecessor's hash.

Audit relevance:
    A deleted closing survives only as the snapshot payload of its
    ``closing_deleted`` event.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from closing_kernel.db.types import ensure_utc
from closing_kernel.domain.clock import Clock, SystemClock
from closing_kernel.exceptions import AuditChainBrokenError
from closing_kernel.logging_config import get_logger
from closing_kernel.models.audit_event import AuditAction, AuditEvent
from closing_kernel.models.closing import Closing
from closing_kernel.models.movement import Movement
from closing_kernel.services.sequence_service import SequenceService
from closing_kernel.utils.hashing import hash_audit_event, hash_payload, to_json_safe

logger = get_logger("services.auditor")

CLOSING_ENTITY = "Closing"
MOVEMENT_ENTITY = "Movement"


@dataclass(frozen=True)
class AuditTraceEntry:
    """A single entry in an audit trace."""

    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: UUID
    payload: dict[str, Any]
    hash: str


@dataclass(frozen=True)
class AuditTrace:
    """All audit events of one entity, in chain order."""

    entity_type: str
    entity_id: UUID
    entries: tuple[AuditTraceEntry, ...]

    @property
    def is_empty(self) -> bool:
        return len(self.entries) == 0

    @property
    def first_action(self) -> AuditAction | None:
        return self.entries[0].action if self.entries else None

    @property
    def last_action(self) -> AuditAction | None:
        return self.entries[-1].action if self.entries else None

    @property
    def actions(self) -> tuple[str, ...]:
        return tuple(getattr(e.action, "value", e.action) for e in self.entries)


def closing_snapshot(closing: Closing) -> dict[str, Any]:
    """Every reconciliation field of a closing, JSON-ready."""
    return to_json_safe({
        "id": closing.id,
        "series": closing.series,
        "closing_number": closing.closing_number,
        "period_key": closing.period_key,
        "computed_total": closing.computed_total,
        "counted_total": closing.counted_total,
        "variance": closing.variance,
        "tolerance": closing.tolerance,
        "variance_justification": closing.variance_justification,
        "totals_by_category": closing.totals_by_category,
        "movement_count": closing.movement_count,
        "photo_path": closing.photo_path,
        "notes": closing.notes,
        "status": closing.status,
        "closed_by_id": closing.closed_by_id,
        "closed_at": closing.closed_at,
        "reopened_by_id": closing.reopened_by_id,
        "reopened_at": closing.reopened_at,
        "reopen_justification": closing.reopen_justification,
    })


class AuditorService:
    """
    Service for creating and validating tamper-evident audit events.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT interpret audit events.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        """Get the hash of the most recent audit event."""
        last_event = self._session.execute(
            select(AuditEvent)
            .order_by(AuditEvent.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

        return last_event.hash if last_event else None

    def _create_audit_event(
        self,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        actor_id: UUID,
        payload: dict[str, Any] | None = None,
    ) -> AuditEvent:
        """
        Create a new audit event linked to the current chain head.

        The sequence counter is locked first, which also serializes
        concurrent writers reading the chain head.
        """
        seq = self._sequence_service.next_value(SequenceService.AUDIT_EVENT)
        prev_hash = self._get_last_hash()

        payload_data = to_json_safe(payload or {})
        computed_payload_hash = hash_payload(payload_data)

        event_hash = hash_audit_event(
            entity_type=entity_type,
            entity_id=str(entity_id),
            action=action.value,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
        )

        audit_event = AuditEvent(
            seq=seq,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            actor_id=actor_id,
            occurred_at=ensure_utc(self._clock.now()),
            payload=payload_data,
            payload_hash=computed_payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )

        self._session.add(audit_event)
        self._session.flush()

        logger.info(
            "audit_event_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )

        return audit_event

    # Domain-specific recording methods

    def record_closing_closed(self, closing: Closing, actor_id: UUID) -> AuditEvent:
        """Record a new closing with its full reconciliation snapshot."""
        return self._create_audit_event(
            entity_type=CLOSING_ENTITY,
            entity_id=closing.id,
            action=AuditAction.CLOSING_CLOSED,
            actor_id=actor_id,
            payload=closing_snapshot(closing),
        )

    def record_closing_reopened(
        self,
        closing: Closing,
        actor_id: UUID,
        justification: str,
    ) -> AuditEvent:
        return self._create_audit_event(
            entity_type=CLOSING_ENTITY,
            entity_id=closing.id,
            action=AuditAction.CLOSING_REOPENED,
            actor_id=actor_id,
            payload={
                "series": closing.series,
                "closing_number": closing.closing_number,
                "period_key": closing.period_key,
                "justification": justification,
            },
        )

    def record_closing_deleted(
        self,
        closing: Closing,
        actor_id: UUID,
        justification: str,
    ) -> AuditEvent:
        """Record a delete.  Must run before the row is removed."""
        return self._create_audit_event(
            entity_type=CLOSING_ENTITY,
            entity_id=closing.id,
            action=AuditAction.CLOSING_DELETED,
            actor_id=actor_id,
            payload={
                "justification": justification,
                "snapshot": closing_snapshot(closing),
            },
        )

    def record_payment_voided(
        self,
        original: Movement,
        void: Movement,
        actor_id: UUID,
        justification: str,
    ) -> AuditEvent:
        """Record a void against the original movement's id."""
        return self._create_audit_event(
            entity_type=MOVEMENT_ENTITY,
            entity_id=original.id,
            action=AuditAction.PAYMENT_VOIDED,
            actor_id=actor_id,
            payload={
                "series": original.series,
                "key": original.key,
                "kind": original.kind,
                "category": original.category,
                "amount": original.amount,
                "reference": original.reference,
                "void_movement_id": void.id,
                "justification": justification,
            },
        )

    # Validation

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Checks, in seq order, that each payload still hashes to its
        ``payload_hash``, that each ``hash`` recomputes, and that each
        ``prev_hash`` is its predecessor's ``hash``.

        Raises:
            AuditChainBrokenError: At the first event that fails.
        """
        events = self._session.execute(
            select(AuditEvent).order_by(AuditEvent.seq)
        ).scalars().all()

        if not events:
            return True

        if events[0].prev_hash is not None:
            self._chain_broken(events[0], "None", events[0].prev_hash)

        for i, event in enumerate(events):
            recomputed_payload_hash = hash_payload(event.payload or {})
            if recomputed_payload_hash != event.payload_hash:
                self._chain_broken(event, recomputed_payload_hash, event.payload_hash)

            action_value = getattr(event.action, "value", event.action)
            expected_hash = hash_audit_event(
                entity_type=event.entity_type,
                entity_id=str(event.entity_id),
                action=action_value,
                payload_hash=event.payload_hash,
                prev_hash=event.prev_hash,
            )
            if event.hash != expected_hash:
                self._chain_broken(event, expected_hash, event.hash)

            if i > 0:
                expected_prev = events[i - 1].hash
                if event.prev_hash != expected_prev:
                    self._chain_broken(event, expected_prev, event.prev_hash or "None")

        logger.info(
            "audit_chain_valid",
            extra={"event_count": len(events)},
        )
        return True

    def _chain_broken(self, event: AuditEvent, expected: str, actual: str) -> None:
        logger.critical(
            "audit_chain_broken",
            extra={"audit_event_id": str(event.id), "seq": event.seq},
        )
        raise AuditChainBrokenError(str(event.id), expected, actual)

    # Trace and query methods

    def get_trace(
        self,
        entity_type: str,
        entity_id: UUID,
    ) -> AuditTrace:
        """All audit events of an entity, in chain order."""
        events = self._session.execute(
            select(AuditEvent)
            .where(
                AuditEvent.entity_type == entity_type,
                AuditEvent.entity_id == entity_id,
            )
            .order_by(AuditEvent.seq)
        ).scalars().all()

        entries = tuple(
            AuditTraceEntry(
                seq=event.seq,
                action=event.action,
                occurred_at=event.occurred_at,
                actor_id=event.actor_id,
                payload=event.payload or {},
                hash=event.hash,
            )
            for event in events
        )

        return AuditTrace(
            entity_type=entity_type,
            entity_id=entity_id,
            entries=entries,
        )
