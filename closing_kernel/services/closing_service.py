"""
ClosingService -- daily cash closing, reopen and delete.

Responsibility:
    Reconciles the ledger aggregate of a day against the physically
    counted total, records the variance, and locks the day against further
    writes.  Reopen and delete are audited, role-gated and need a written
    justification.

Architecture position:
    Kernel > Services -- imperative shell.  Reads movements through
    LedgerSelector and folds them with ``domain.ledger.fold_movements``.
    LedgerService calls ``validate_period_open`` before every write.

State machine per (series, period_key)::

    OPEN --close--> CLOSED --reopen--> REOPENED --close--> CLOSED (new row)
    CLOSED/REOPENED --delete--> row removed

Invariants enforced:
    - At most one CLOSED row per (series, period_key): checked first, then
      guaranteed by the partial unique index ``uq_closing_active_period``
      for concurrent closes.
    - ``variance == counted_total - computed_total`` and a justification of
      at least 10 characters whenever ``|variance| > tolerance``.
    - Closing numbers come from the series counter, so a re-close after
      reopen always gets a strictly greater number.
    - Every close, reopen and delete writes an AuditEvent in the same
      transaction.
    - A close and a ledger write into the same day are serialized on the
      ``business_days`` row, so the snapshot never misses a movement that
      commits into the locked day.

Failure modes:
    - AlreadyClosedError, JustificationRequiredError, ForbiddenError,
      ClosingNotFoundError, ClosingAlreadyReopenedError, FutureDateError,
      PhotoRequiredError, ClosingNotConfiguredError, InvalidAmountError.
    All leave the session unchanged apart from the caller's own work; the
    caller's ``session_scope()`` rolls back.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from closing_config.schema import ClosingPolicy, LedgerConfiguration, SeriesConfig
from closing_kernel.db.types import to_decimal
from closing_kernel.domain.authorization import ensure_role
from closing_kernel.domain.clock import Clock
from closing_kernel.domain.dtos import (
    Actor,
    ClosingInfo,
    ClosingSummary,
    LedgerAggregate,
    UnclosedDay,
)
from closing_kernel.domain.ledger import fold_movements
from closing_kernel.domain.variance import (
    compute_variance,
    optional_text,
    requires_justification,
    validate_justification,
)
from closing_kernel.exceptions import (
    AlreadyClosedError,
    ClosingAlreadyReopenedError,
    ClosingNotConfiguredError,
    ClosingNotFoundError,
    FutureDateError,
    InvalidAmountError,
    PeriodClosedError,
    PhotoRequiredError,
    UnknownKeyError,
)
from closing_kernel.logging_config import get_logger
from closing_kernel.models.alert import AlertSeverity, AlertType
from closing_kernel.models.business_day import BusinessDay
from closing_kernel.models.closing import Closing, ClosingStatus
from closing_kernel.selectors.closing_selector import ClosingSelector, closing_to_info
from closing_kernel.selectors.ledger_selector import LedgerSelector
from closing_kernel.services.alert_service import AlertService
from closing_kernel.services.auditor_service import CLOSING_ENTITY, AuditorService
from closing_kernel.services.base import BaseService
from closing_kernel.services.sequence_service import SequenceService

logger = get_logger("services.closing")


def to_period_key(series: str, value: date | str) -> date:
    """
    Accept a date or an ISO date string.

    Raises:
        UnknownKeyError: If the value is not an ISO calendar date.
    """
    if isinstance(value, date):
        return value
    try:
        parsed = date.fromisoformat(value)
    except (TypeError, ValueError):
        raise UnknownKeyError(series=series, key=str(value), reason="not an ISO date")
    if parsed.isoformat() != value:
        raise UnknownKeyError(series=series, key=str(value), reason="not an ISO date")
    return parsed


class ClosingService(BaseService[Closing]):
    """
    Closing lifecycle for every date-keyed series.

    Clinic and medias closings run through the same code; tolerance, prefix,
    photo requirement and grants come from the series configuration.
    """

    def __init__(
        self,
        session: Session,
        config: LedgerConfiguration,
        clock: Clock | None = None,
    ):
        super().__init__(session, config=config, clock=clock)
        self._closings = ClosingSelector(session)
        self._ledger = LedgerSelector(session)
        self._auditor = AuditorService(session, self.clock)
        self._alerts = AlertService(session, self.clock)
        self._sequences = SequenceService(session)

    def _policy(self, series: SeriesConfig) -> ClosingPolicy:
        if series.closing is None:
            raise ClosingNotConfiguredError(series.name)
        return series.closing

    def _aggregate(self, series: str, period_key: date) -> LedgerAggregate:
        as_of = self._now()
        key = period_key.isoformat()
        movements = self._ledger.movements_for_key(series, key, as_of=as_of)
        return fold_movements(series, key, movements, as_of=as_of)

    def _locked_day(self, series: str, day: date) -> BusinessDay | None:
        return self.session.execute(
            select(BusinessDay)
            .where(BusinessDay.series == series, BusinessDay.period_key == day)
            .with_for_update()
        ).scalar_one_or_none()

    def _lock_day(self, series: str, day: date) -> None:
        """
        Lock the (series, day) row, creating it on first use.

        Held until the caller's transaction ends; ``close`` and every ledger
        write into the day take it before reading, so neither acts on a
        snapshot the other is about to change.
        """
        if self._locked_day(series, day) is not None:
            return
        savepoint = self.session.begin_nested()
        try:
            self.session.add(BusinessDay(series=series, period_key=day))
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            if self._locked_day(series, day) is None:
                raise

    def _get_closing_for_update(self, closing_id: UUID) -> Closing:
        """Lock the closing row; serializes reopen/delete against each other."""
        closing = self.session.execute(
            select(Closing)
            .where(Closing.id == closing_id)
            .with_for_update()
        ).scalar_one_or_none()
        if closing is None:
            raise ClosingNotFoundError(str(closing_id))
        return closing

    # Close

    def close(
        self,
        series: str,
        period_key: date | str,
        counted_total: Decimal | int | str,
        actor: Actor,
        justification: str | None = None,
        photo_path: str | None = None,
        notes: str | None = None,
    ) -> ClosingInfo:
        """
        Close a day.

        Postconditions:
            - A CLOSED row exists for (series, period_key) and the day is
              locked for ledger writes.
            - A ``closing_closed`` audit event is recorded; a non-zero
              variance also raises a ``diferencia_cierre`` alert.

        Raises:
            UnknownKeyError: Unknown series or malformed period key.
            ClosingNotConfiguredError: The series is never closed.
            ForbiddenError: Role not in the series ``close`` grant.
            InvalidAmountError: counted_total negative or not a number.
            FutureDateError: period_key is after today.
            PhotoRequiredError: The series requires a photo and none given.
            AlreadyClosedError: The day is already closed.
            JustificationRequiredError: |variance| > tolerance without a
                justification of at least 10 characters.
        """
        config = self._series(series)
        policy = self._policy(config)
        day = to_period_key(series, period_key)

        ensure_role(config.grants, "close", actor)

        try:
            counted = to_decimal(counted_total)
        except (TypeError, ValueError) as exc:
            raise InvalidAmountError(amount=str(counted_total), reason=str(exc))
        if counted < 0:
            raise InvalidAmountError(
                amount=str(counted), reason="counted total must not be negative"
            )

        today = self._today()
        if day > today:
            raise FutureDateError(day.isoformat(), today.isoformat())

        photo_path = optional_text(photo_path)
        if policy.photo_required and not photo_path:
            raise PhotoRequiredError(series)

        self._lock_day(series, day)
        existing = self._closings.active_closing(series, day)
        if existing is not None:
            raise AlreadyClosedError(series, day.isoformat())

        aggregate = self._aggregate(series, day)
        if policy.counted_category is not None:
            computed = aggregate.category_total(policy.counted_category)
        else:
            computed = aggregate.grand_total
        variance = compute_variance(counted, computed)

        if requires_justification(variance, policy.tolerance):
            variance_justification = validate_justification(justification)
        else:
            variance_justification = validate_justification(justification, min_length=0) or None

        closing_number = policy.format_number(
            self._sequences.next_value(SequenceService.closing(series))
        )
        now = self._now()

        closing = Closing(
            series=series,
            closing_number=closing_number,
            period_key=day,
            computed_total=computed,
            counted_total=counted,
            variance=variance,
            tolerance=policy.tolerance,
            variance_justification=variance_justification,
            totals_by_category={
                category: str(amount)
                for category, amount in aggregate.totals_by_category.items()
            },
            movement_count=aggregate.movement_count,
            photo_path=photo_path,
            notes=optional_text(notes),
            status=ClosingStatus.CLOSED,
            closed_by_id=actor.id,
            closed_at=now,
            created_at=now,
            created_by_id=actor.id,
        )

        # The partial unique index settles concurrent closes of the same day
        savepoint = self.session.begin_nested()
        try:
            self.session.add(closing)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            if self._closings.active_closing(series, day) is None:
                raise
            logger.warning(
                "concurrent_closing_conflict",
                extra={"series": series, "period_key": day.isoformat()},
            )
            raise AlreadyClosedError(series, day.isoformat())

        self._auditor.record_closing_closed(closing, actor.id)

        if variance != 0:
            self._raise_variance_alert(closing, policy)

        logger.info(
            "closing_created",
            extra={
                "series": series,
                "period_key": day.isoformat(),
                "closing_id": str(closing.id),
                "closing_number": closing_number,
                "computed_total": computed,
                "counted_total": counted,
                "variance": variance,
                "movement_count": aggregate.movement_count,
            },
        )

        return closing_to_info(closing)

    def _raise_variance_alert(self, closing: Closing, policy: ClosingPolicy) -> None:
        if requires_justification(closing.variance, policy.tolerance):
            severity = AlertSeverity.CRITICAL
        else:
            severity = AlertSeverity.WARNING
        direction = "faltante" if closing.variance < 0 else "sobrante"
        self._alerts.create(
            alert_type=AlertType.CLOSING_VARIANCE,
            severity=severity,
            title=f"Diferencia en cierre {closing.closing_number}",
            description=(
                f"{closing.series} {closing.period_key.isoformat()}: {direction} de "
                f"{abs(closing.variance)} (contado {closing.counted_total}, "
                f"calculado {closing.computed_total})"
            ),
            reference_type=CLOSING_ENTITY,
            reference_id=closing.id,
        )

    # Reopen / delete

    def reopen(self, closing_id: UUID, justification: str, actor: Actor) -> ClosingInfo:
        """
        Reopen a closed day.  The row is kept with status ``reopened`` and
        the day accepts writes again.

        Raises:
            JustificationRequiredError: Justification under 10 characters.
            ClosingNotFoundError: No closing with this id.
            ForbiddenError: Role not in the series ``reopen`` grant.
            ClosingAlreadyReopenedError: The closing is already reopened.
        """
        justification = validate_justification(justification)
        closing = self._get_closing_for_update(closing_id)
        config = self._series(closing.series)
        ensure_role(config.grants, "reopen", actor)

        if not closing.is_closed:
            raise ClosingAlreadyReopenedError(str(closing.id), closing.closing_number)

        closing.reopen(actor.id, self._now(), justification)
        self.session.flush()

        self._auditor.record_closing_reopened(closing, actor.id, justification)

        logger.info(
            "closing_reopened",
            extra={
                "series": closing.series,
                "period_key": closing.period_key.isoformat(),
                "closing_id": str(closing.id),
                "closing_number": closing.closing_number,
            },
        )
        return closing_to_info(closing)

    def delete(self, closing_id: UUID, justification: str, actor: Actor) -> None:
        """
        Remove a closing.  A full snapshot is audited first; the day is open
        again unless another closed row exists for it.

        Raises:
            JustificationRequiredError: Justification under 10 characters.
            ClosingNotFoundError: No closing with this id.
            ForbiddenError: Role not in the series ``delete`` grant.
        """
        justification = validate_justification(justification)
        closing = self._get_closing_for_update(closing_id)
        config = self._series(closing.series)
        ensure_role(config.grants, "delete", actor)

        self._auditor.record_closing_deleted(closing, actor.id, justification)

        series, period_key, number = closing.series, closing.period_key, closing.closing_number
        self.session.delete(closing)
        self.session.flush()

        logger.info(
            "closing_deleted",
            extra={
                "series": series,
                "period_key": period_key.isoformat(),
                "closing_id": str(closing_id),
                "closing_number": number,
            },
        )

    # Lock checks

    def is_locked(self, series: str, period_key: date | str) -> bool:
        """True iff a closed row exists for the day."""
        return self._closings.is_locked(series, to_period_key(series, period_key))

    def validate_period_open(self, series: str, period_key: date | str) -> None:
        """
        Lock the day for the caller's transaction and check it is open.

        Raises:
            PeriodClosedError: If the day is locked by an active closing.
        """
        day = to_period_key(series, period_key)
        self._lock_day(series, day)
        active = self._closings.active_closing(series, day)
        if active is not None:
            logger.warning(
                "write_into_closed_period_rejected",
                extra={"series": series, "period_key": day.isoformat()},
            )
            raise PeriodClosedError(series, day.isoformat(), active.closing_number)

    # Reads

    def get_closing(self, closing_id: UUID) -> ClosingInfo:
        info = self._closings.get(closing_id)
        if info is None:
            raise ClosingNotFoundError(str(closing_id))
        return info

    def get_closing_summary(self, series: str, period_key: date | str) -> ClosingSummary:
        """Aggregate of the day plus whether it is already closed."""
        config = self._series(series)
        policy = self._policy(config)
        day = to_period_key(series, period_key)
        existing = self._closings.active_closing(series, day)
        return ClosingSummary(
            series=series,
            period_key=day,
            aggregate=self._aggregate(series, day),
            has_existing_closing=existing is not None,
            existing_closing_id=existing.id if existing else None,
            tolerance=policy.tolerance,
        )

    def list_closings(
        self,
        series: str,
        status: str | ClosingStatus | None = None,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> list[ClosingInfo]:
        self._series(series)
        return self._closings.list_closings(series, status, from_date, to_date)

    def get_unclosed_days(self, series: str, up_to: date | None = None) -> list[UnclosedDay]:
        """Days up to ``up_to`` (default today) with movements and no active closing."""
        self._policy(self._series(series))
        up_to = up_to or self._today()
        closed = self._closings.closed_days(series)
        return [
            UnclosedDay(period_key=date.fromisoformat(key), movement_count=count, total=total)
            for key, (count, total) in self._ledger.day_totals(series, up_to).items()
            if date.fromisoformat(key) not in closed
        ]
