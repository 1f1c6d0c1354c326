"""Services for the closing kernel (write side)."""

from closing_kernel.services.alert_service import AlertService
from closing_kernel.services.auditor_service import AuditorService, AuditTrace, AuditTraceEntry
from closing_kernel.services.closing_service import ClosingService
from closing_kernel.services.ledger_service import LedgerService
from closing_kernel.services.sequence_service import SequenceCounter, SequenceService

__all__ = [
    "AlertService",
    "AuditTrace",
    "AuditTraceEntry",
    "AuditorService",
    "ClosingService",
    "LedgerService",
    "SequenceCounter",
    "SequenceService",
]
