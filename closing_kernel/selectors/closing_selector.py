"""
Module: closing_kernel.selectors.closing_selector
Responsibility: Read-only closing queries: the active closing of a day,
    closing history per series, and the lock check writers rely on.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - A day is locked iff a row with status ``closed`` exists for
      (series, period_key).  Reopened rows never lock.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select

from closing_kernel.db.types import ensure_utc, normalize_amount
from closing_kernel.domain.dtos import ClosingInfo, ClosingState
from closing_kernel.models.closing import Closing, ClosingStatus
from closing_kernel.selectors.base import BaseSelector


def closing_to_info(closing: Closing) -> ClosingInfo:
    return ClosingInfo(
        id=closing.id,
        series=closing.series,
        closing_number=closing.closing_number,
        period_key=closing.period_key,
        computed_total=normalize_amount(closing.computed_total),
        counted_total=normalize_amount(closing.counted_total),
        variance=normalize_amount(closing.variance),
        tolerance=normalize_amount(closing.tolerance),
        variance_justification=closing.variance_justification,
        totals_by_category={
            category: normalize_amount(amount)
            for category, amount in (closing.totals_by_category or {}).items()
        },
        movement_count=closing.movement_count,
        photo_path=closing.photo_path,
        notes=closing.notes,
        state=ClosingState(getattr(closing.status, "value", closing.status)),
        closed_by_id=closing.closed_by_id,
        closed_at=ensure_utc(closing.closed_at),
        reopened_by_id=closing.reopened_by_id,
        reopened_at=ensure_utc(closing.reopened_at),
        reopen_justification=closing.reopen_justification,
    )


class ClosingSelector(BaseSelector[Closing]):
    """Selector for closing queries."""

    def active_closing(self, series: str, period_key: date) -> ClosingInfo | None:
        """The CLOSED row for the day, if any."""
        closing = self.session.execute(
            select(Closing).where(
                Closing.series == series,
                Closing.period_key == period_key,
                Closing.status == ClosingStatus.CLOSED.value,
            )
        ).scalar_one_or_none()
        return closing_to_info(closing) if closing else None

    def is_locked(self, series: str, period_key: date) -> bool:
        return self.active_closing(series, period_key) is not None

    def get(self, closing_id: UUID) -> ClosingInfo | None:
        closing = self.session.get(Closing, closing_id)
        return closing_to_info(closing) if closing else None

    def list_closings(
        self,
        series: str,
        status: str | None = None,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> list[ClosingInfo]:
        """Closings of a series, newest day first, then newest number."""
        stmt = select(Closing).where(Closing.series == series)
        if status is not None:
            stmt = stmt.where(Closing.status == getattr(status, "value", status))
        if from_date is not None:
            stmt = stmt.where(Closing.period_key >= from_date)
        if to_date is not None:
            stmt = stmt.where(Closing.period_key <= to_date)
        stmt = stmt.order_by(Closing.period_key.desc(), Closing.closing_number.desc())
        return [closing_to_info(c) for c in self.session.execute(stmt).scalars()]

    def closed_days(self, series: str) -> set[date]:
        """Days currently locked in a series."""
        rows = self.session.execute(
            select(Closing.period_key).where(
                Closing.series == series,
                Closing.status == ClosingStatus.CLOSED.value,
            )
        ).scalars()
        return set(rows)
