"""
ReconciliationFacade -- transactional entry point for callers.

Responsibility:
    Runs each ledger/closing operation in its own ``session_scope()``,
    binds the structured-log context (correlation id, actor, series, day),
    and turns store connectivity failures into ``StoreUnavailableError``.
    Domain errors propagate unchanged after the transaction rolls back.

Architecture position:
    Outermost kernel layer.  Web handlers or scripts hold one facade; the
    services below never see it.

Usage:
    init_engine_from_url("postgresql://...")
    create_tables()
    facade = ReconciliationFacade()
    facade.record_movement("clinic_cash", "2026-01-29", "entrada",
                           Decimal("50000"), actor, category="efectivo")
    closing = facade.close("clinic_cash", "2026-01-29", Decimal("80000"), actor)
"""

from contextlib import contextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import Generator
from uuid import UUID, uuid4

from sqlalchemy.exc import DBAPIError, InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker

from closing_config import get_active_config
from closing_config.schema import LedgerConfiguration
from closing_kernel.db.engine import session_scope
from closing_kernel.db.immutability import register_immutability_listeners
from closing_kernel.domain.clock import Clock, SystemClock
from closing_kernel.domain.dtos import (
    Actor,
    AlertInfo,
    ClosingInfo,
    ClosingSummary,
    LedgerAggregate,
    MovementInfo,
    ResourceInfo,
    UnclosedDay,
)
from closing_kernel.exceptions import StoreUnavailableError
from closing_kernel.logging_config import LogContext, get_logger
from closing_kernel.services.alert_service import AlertService
from closing_kernel.services.auditor_service import AuditorService, AuditTrace
from closing_kernel.services.closing_service import ClosingService
from closing_kernel.services.ledger_service import LedgerService

logger = get_logger("api")


def _is_connectivity_error(exc: Exception) -> bool:
    if isinstance(exc, (OperationalError, InterfaceError, PoolTimeoutError)):
        return True
    return isinstance(exc, DBAPIError) and exc.connection_invalidated


def _is_dated_series(config: LedgerConfiguration, series: str) -> bool:
    found = config.get_series(series)
    return found is not None and found.is_date_keyed


class ReconciliationFacade:
    """One method per operation; each call is one transaction."""

    def __init__(
        self,
        config: LedgerConfiguration | None = None,
        clock: Clock | None = None,
        session_factory: sessionmaker[Session] | None = None,
    ):
        self.config = config or get_active_config()
        self.clock = clock or SystemClock()
        self._session_factory = session_factory
        register_immutability_listeners()

    @contextmanager
    def _unit_of_work(
        self,
        operation: str,
        actor: Actor | None = None,
        series: str | None = None,
        period_key: date | str | None = None,
        closing_id: UUID | None = None,
    ) -> Generator[Session, None, None]:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=actor.id if actor else None,
            series=series,
            period_key=period_key,
            closing_id=closing_id,
        ):
            try:
                with session_scope(self._session_factory) as session:
                    yield session
            except Exception as exc:
                if not _is_connectivity_error(exc):
                    raise
                detail = str(getattr(exc, "orig", None) or exc)
                logger.error(
                    "store_unavailable",
                    extra={"operation": operation, "detail": detail},
                )
                raise StoreUnavailableError(operation, detail) from exc

    # Ledger

    def record_movement(
        self,
        series: str,
        key: str | date,
        kind: str,
        amount: Decimal | int | str,
        actor: Actor,
        category: str,
        reference: str | None = None,
        justification: str | None = None,
    ) -> MovementInfo:
        period = key if _is_dated_series(self.config, series) else None
        with self._unit_of_work("record_movement", actor, series, period) as session:
            return LedgerService(session, self.config, self.clock).record_movement(
                series, key, kind, amount, actor, category,
                reference=reference, justification=justification,
            )

    def compute_aggregate(
        self,
        series: str,
        key: str | date,
        as_of: datetime | None = None,
    ) -> LedgerAggregate:
        with self._unit_of_work("compute_aggregate", series=series) as session:
            return LedgerService(session, self.config, self.clock).compute_aggregate(
                series, key, as_of=as_of
            )

    def void_movement(self, movement_id: UUID, justification: str, actor: Actor) -> MovementInfo:
        with self._unit_of_work("void_movement", actor) as session:
            return LedgerService(session, self.config, self.clock).void_movement(
                movement_id, justification, actor
            )

    def list_movements(self, series: str, **filters) -> list[MovementInfo]:
        with self._unit_of_work("list_movements", series=series) as session:
            return LedgerService(session, self.config, self.clock).list_movements(
                series, **filters
            )

    def register_resource(self, series: str, key: str, name: str, actor: Actor) -> ResourceInfo:
        with self._unit_of_work("register_resource", actor, series) as session:
            return LedgerService(session, self.config, self.clock).register_resource(
                series, key, name, actor
            )

    def deactivate_resource(self, series: str, key: str, actor: Actor) -> ResourceInfo:
        with self._unit_of_work("deactivate_resource", actor, series) as session:
            return LedgerService(session, self.config, self.clock).deactivate_resource(
                series, key, actor
            )

    # Closing

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
        with self._unit_of_work("close", actor, series, period_key) as session:
            return ClosingService(session, self.config, self.clock).close(
                series, period_key, counted_total, actor,
                justification=justification, photo_path=photo_path, notes=notes,
            )

    def reopen(self, closing_id: UUID, justification: str, actor: Actor) -> ClosingInfo:
        with self._unit_of_work("reopen", actor, closing_id=closing_id) as session:
            return ClosingService(session, self.config, self.clock).reopen(
                closing_id, justification, actor
            )

    def delete(self, closing_id: UUID, justification: str, actor: Actor) -> None:
        with self._unit_of_work("delete", actor, closing_id=closing_id) as session:
            ClosingService(session, self.config, self.clock).delete(
                closing_id, justification, actor
            )

    def is_locked(self, series: str, period_key: date | str) -> bool:
        with self._unit_of_work("is_locked", series=series, period_key=period_key) as session:
            return ClosingService(session, self.config, self.clock).is_locked(series, period_key)

    def get_closing(self, closing_id: UUID) -> ClosingInfo:
        with self._unit_of_work("get_closing", closing_id=closing_id) as session:
            return ClosingService(session, self.config, self.clock).get_closing(closing_id)

    def get_closing_summary(self, series: str, period_key: date | str) -> ClosingSummary:
        with self._unit_of_work("get_closing_summary", series=series, period_key=period_key) as session:
            return ClosingService(session, self.config, self.clock).get_closing_summary(
                series, period_key
            )

    def list_closings(self, series: str, **filters) -> list[ClosingInfo]:
        with self._unit_of_work("list_closings", series=series) as session:
            return ClosingService(session, self.config, self.clock).list_closings(
                series, **filters
            )

    def get_unclosed_days(self, series: str, up_to: date | None = None) -> list[UnclosedDay]:
        with self._unit_of_work("get_unclosed_days", series=series) as session:
            return ClosingService(session, self.config, self.clock).get_unclosed_days(
                series, up_to
            )

    # Alerts and audit

    def list_unresolved_alerts(self, limit: int = 100) -> list[AlertInfo]:
        with self._unit_of_work("list_unresolved_alerts") as session:
            return AlertService(session, self.clock).list_unresolved(limit)

    def resolve_alert(self, alert_id: UUID, notes: str, actor: Actor) -> AlertInfo:
        with self._unit_of_work("resolve_alert", actor) as session:
            return AlertService(session, self.clock).resolve(alert_id, notes, actor)

    def get_trace(self, entity_type: str, entity_id: UUID) -> AuditTrace:
        with self._unit_of_work("get_trace") as session:
            return AuditorService(session, self.clock).get_trace(entity_type, entity_id)

    def validate_chain(self) -> bool:
        with self._unit_of_work("validate_chain") as session:
            return AuditorService(session, self.clock).validate_chain()
