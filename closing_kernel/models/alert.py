"""
Module: closing_kernel.models.alert
Responsibility: ORM persistence for operator alerts raised by anomalous
    actions (voided payments, closing variances).
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Only the resolution fields may change after INSERT (db/immutability.py).
    - Alerts are never deleted.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from closing_kernel.db.base import Base, UUIDString


class AlertType(str, Enum):
    PAYMENT_VOIDED = "pago_anulado"
    CLOSING_VARIANCE = "diferencia_cierre"


class AlertSeverity(str, Enum):
    INFO = "info"
    WARNING = "advertencia"
    CRITICAL = "critico"


class Alert(Base):
    """Alert shown on the administrative dashboard until resolved."""

    __tablename__ = "alerts"

    __table_args__ = (
        Index("idx_alert_unresolved", "is_resolved", "created_at"),
        Index("idx_alert_reference", "reference_type", "reference_id"),
    )

    alert_type: Mapped[AlertType] = mapped_column(String(30), nullable=False)

    severity: Mapped[AlertSeverity] = mapped_column(String(20), nullable=False)

    title: Mapped[str] = mapped_column(String(200), nullable=False)

    description: Mapped[str] = mapped_column(String(1000), nullable=False)

    reference_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    reference_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    is_resolved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    resolved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    resolution_notes: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<Alert {self.alert_type} {self.severity} resolved={self.is_resolved}>"
