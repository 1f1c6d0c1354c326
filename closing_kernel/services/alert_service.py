"""
AlertService -- operator alerts for anomalous actions.

Responsibility:
    Persists alerts raised by voided payments and closing variances, lists
    the unresolved ones for the administrative dashboard, and records their
    resolution.

Invariants enforced:
    - Only the resolution fields of an alert change after INSERT
      (db/immutability.py); an alert is resolved at most once.
    - Resolution notes are 1-500 characters after trimming.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from closing_kernel.domain.clock import Clock
from closing_kernel.domain.dtos import Actor, AlertInfo
from closing_kernel.domain.variance import validate_notes
from closing_kernel.db.types import ensure_utc
from closing_kernel.exceptions import AlertAlreadyResolvedError, AlertNotFoundError
from closing_kernel.logging_config import get_logger
from closing_kernel.models.alert import Alert, AlertSeverity, AlertType
from closing_kernel.services.base import BaseService

logger = get_logger("services.alert")


class AlertService(BaseService[Alert]):
    """Create, list and resolve alerts."""

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock=clock)

    def _to_dto(self, alert: Alert) -> AlertInfo:
        return AlertInfo(
            id=alert.id,
            alert_type=getattr(alert.alert_type, "value", alert.alert_type),
            severity=getattr(alert.severity, "value", alert.severity),
            title=alert.title,
            description=alert.description,
            reference_type=alert.reference_type,
            reference_id=alert.reference_id,
            is_resolved=alert.is_resolved,
            resolved_by_id=alert.resolved_by_id,
            resolved_at=ensure_utc(alert.resolved_at),
            resolution_notes=alert.resolution_notes,
            created_at=ensure_utc(alert.created_at),
        )

    def create(
        self,
        alert_type: AlertType,
        severity: AlertSeverity,
        title: str,
        description: str,
        reference_type: str | None = None,
        reference_id: UUID | None = None,
    ) -> AlertInfo:
        """Raise a new unresolved alert."""
        alert = Alert(
            alert_type=alert_type,
            severity=severity,
            title=title[:200],
            description=description[:1000],
            reference_type=reference_type,
            reference_id=reference_id,
            is_resolved=False,
            created_at=self._now(),
        )
        self.session.add(alert)
        self.session.flush()

        logger.warning(
            "alert_raised",
            extra={
                "alert_id": str(alert.id),
                "alert_type": alert_type.value,
                "severity": severity.value,
                "reference_type": reference_type,
                "reference_id": str(reference_id) if reference_id else None,
            },
        )
        return self._to_dto(alert)

    def list_unresolved(self, limit: int = 100) -> list[AlertInfo]:
        """Unresolved alerts, newest first."""
        alerts = self.session.execute(
            select(Alert)
            .where(Alert.is_resolved.is_(False))
            .order_by(Alert.created_at.desc(), Alert.id)
            .limit(limit)
        ).scalars().all()
        return [self._to_dto(a) for a in alerts]

    def list_for_reference(self, reference_type: str, reference_id: UUID) -> list[AlertInfo]:
        """Alerts raised about one closing or movement, oldest first."""
        alerts = self.session.execute(
            select(Alert)
            .where(
                Alert.reference_type == reference_type,
                Alert.reference_id == reference_id,
            )
            .order_by(Alert.created_at, Alert.id)
        ).scalars().all()
        return [self._to_dto(a) for a in alerts]

    def resolve(self, alert_id: UUID, notes: str, actor: Actor) -> AlertInfo:
        """
        Mark an alert resolved.

        Raises:
            NotesRequiredError: Notes empty or longer than 500 characters.
            AlertNotFoundError: No alert with this id.
            AlertAlreadyResolvedError: Already resolved.
        """
        notes = validate_notes(notes)

        alert = self.session.execute(
            select(Alert).where(Alert.id == alert_id).with_for_update()
        ).scalar_one_or_none()
        if alert is None:
            raise AlertNotFoundError(str(alert_id))
        if alert.is_resolved:
            raise AlertAlreadyResolvedError(str(alert_id))

        alert.is_resolved = True
        alert.resolved_by_id = actor.id
        alert.resolved_at = self._now()
        alert.resolution_notes = notes
        self.session.flush()

        logger.info(
            "alert_resolved",
            extra={"alert_id": str(alert_id), "actor_id": str(actor.id)},
        )
        return self._to_dto(alert)
