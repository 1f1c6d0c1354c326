"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Common constructor and session contract for every write-side service.
    Services persist with ``session.flush()`` -- never ``session.commit()``.
    The caller's ``session_scope()`` owns commit and rollback, so a close
    together with its audit event and alert is one unit.
"""

from abc import ABC
from datetime import date, datetime
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from closing_config.schema import LedgerConfiguration, SeriesConfig
from closing_kernel.db.base import Base
from closing_kernel.db.types import ensure_utc
from closing_kernel.domain.clock import Clock, SystemClock
from closing_kernel.exceptions import UnknownKeyError

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel services.

    Non-goals:
        - Does NOT manage transaction lifecycle (commit/rollback).
        - Does NOT provide query-only methods -- those belong in
          ``closing_kernel/selectors/``.
    """

    def __init__(
        self,
        session: Session,
        config: LedgerConfiguration | None = None,
        clock: Clock | None = None,
    ):
        self.session = session
        self.config = config
        self.clock = clock or SystemClock()

    def _now(self) -> datetime:
        """The clock's current instant in UTC, the zone every stored timestamp uses."""
        return ensure_utc(self.clock.now())

    def _today(self) -> date:
        """The current business day, in the configured timezone."""
        zone = self.config.zone if self.config is not None else None
        return self.clock.today(zone)

    def _series(self, name: str) -> SeriesConfig:
        """
        Look up a configured series.

        Raises:
            UnknownKeyError: If no configuration is loaded or the series is
                not declared in it.
        """
        series = self.config.get_series(name) if self.config is not None else None
        if series is None:
            raise UnknownKeyError(series=name, reason="series is not configured")
        return series
