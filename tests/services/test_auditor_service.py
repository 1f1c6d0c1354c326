"""
Tests for AuditorService event creation and traces.

Chain tampering is covered in tests/audit/test_chain_validation.py.
"""

from decimal import Decimal

from closing_kernel.models.audit_event import AuditAction
from closing_kernel.services.auditor_service import CLOSING_ENTITY, MOVEMENT_ENTITY
from closing_kernel.services.sequence_service import SequenceService
from closing_kernel.utils.hashing import hash_payload

DAY = "2026-01-29"
REASON = "corrección de fecha errónea"


class TestAuditEvents:

    def test_events_are_linked(self, closing_service, auditor_service, record_payment, secretaria, admin):
        record_payment(50000)
        closing = closing_service.close("clinic_cash", DAY, Decimal("50000"), secretaria)
        closing_service.reopen(closing.id, REASON, admin)

        entries = auditor_service.get_trace(CLOSING_ENTITY, closing.id).entries
        assert entries[1].seq == entries[0].seq + 1
        assert entries[0].hash != entries[1].hash

    def test_payload_hash_matches_stored_payload(self, closing_service, session, record_payment, secretaria):
        from sqlalchemy import select

        from closing_kernel.models.audit_event import AuditEvent

        record_payment(50000)
        closing = closing_service.close("clinic_cash", DAY, Decimal("50000"), secretaria)
        event = session.execute(
            select(AuditEvent).where(AuditEvent.entity_id == closing.id)
        ).scalar_one()
        assert hash_payload(event.payload) == event.payload_hash
        assert event.actor_id == secretaria.id

    def test_trace_order_and_actions(self, closing_service, auditor_service, record_payment, secretaria, admin):
        record_payment(50000)
        closing = closing_service.close("clinic_cash", DAY, Decimal("50000"), secretaria)
        closing_service.reopen(closing.id, REASON, admin)
        closing_service.delete(closing.id, "cierre duplicado por error", admin)

        trace = auditor_service.get_trace(CLOSING_ENTITY, closing.id)
        assert trace.first_action == AuditAction.CLOSING_CLOSED
        assert trace.last_action == AuditAction.CLOSING_DELETED
        assert trace.actions == ("closing_closed", "closing_reopened", "closing_deleted")

    def test_empty_trace(self, auditor_service, record_payment):
        movement = record_payment(50000)
        trace = auditor_service.get_trace(MOVEMENT_ENTITY, movement.id)
        assert trace.is_empty
        assert trace.first_action is None

    def test_audit_sequence_counter_advances(self, closing_service, session, record_payment, secretaria):
        sequences = SequenceService(session)
        before = sequences.current_value(SequenceService.AUDIT_EVENT)
        record_payment(50000)
        closing_service.close("clinic_cash", DAY, Decimal("50000"), secretaria)
        assert sequences.current_value(SequenceService.AUDIT_EVENT) == (before or 0) + 1

    def test_valid_chain(self, closing_service, ledger_service, auditor_service, record_payment, secretaria, admin):
        payment = record_payment(50000)
        ledger_service.void_movement(payment.id, "paciente canceló la consulta", admin)
        closing_service.close("clinic_cash", DAY, 0, secretaria)
        assert auditor_service.validate_chain() is True
