"""Domain models for the closing kernel."""

from closing_kernel.models.alert import Alert, AlertSeverity, AlertType
from closing_kernel.models.audit_event import AuditAction, AuditEvent
from closing_kernel.models.business_day import BusinessDay
from closing_kernel.models.closing import Closing, ClosingStatus
from closing_kernel.models.ledger_resource import LedgerResource
from closing_kernel.models.movement import Movement, MovementKind

__all__ = [
    "Alert",
    "AlertSeverity",
    "AlertType",
    "AuditAction",
    "AuditEvent",
    "BusinessDay",
    "Closing",
    "ClosingStatus",
    "LedgerResource",
    "Movement",
    "MovementKind",
    "import_all_models",
]


def import_all_models() -> None:
    """Import every ORM module so Base.metadata knows all tables."""
    import closing_kernel.models.alert  # noqa: F401
    import closing_kernel.models.audit_event  # noqa: F401
    import closing_kernel.models.business_day  # noqa: F401
    import closing_kernel.models.closing  # noqa: F401
    import closing_kernel.models.ledger_resource  # noqa: F401
    import closing_kernel.models.movement  # noqa: F401
    import closing_kernel.services.sequence_service  # noqa: F401
