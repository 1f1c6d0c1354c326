"""
Module: closing_kernel.selectors.ledger_selector
Responsibility: Read-only movement queries.  The ledger is the movement log;
    there are no stored balances, so every total is folded from the rows
    this selector returns.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - ``as_of`` bounds are inclusive: a movement stamped exactly at
      ``as_of`` is part of the aggregate.
    - Amounts are returned as Decimal; sums happen in Python so SQLite and
      PostgreSQL fold identically.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from closing_kernel.db.types import ensure_utc, normalize_amount
from closing_kernel.domain.dtos import MovementInfo
from closing_kernel.models.ledger_resource import LedgerResource
from closing_kernel.models.movement import Movement
from closing_kernel.selectors.base import BaseSelector

DEFAULT_LIMIT = 200


def movement_to_info(movement: Movement) -> MovementInfo:
    return MovementInfo(
        id=movement.id,
        series=movement.series,
        key=movement.key,
        kind=getattr(movement.kind, "value", movement.kind),
        category=movement.category,
        amount=normalize_amount(movement.amount),
        reference=movement.reference,
        voids_movement_id=movement.voids_movement_id,
        justification=movement.justification,
        created_at=ensure_utc(movement.created_at),
        created_by_id=movement.created_by_id,
    )


class LedgerSelector(BaseSelector[Movement]):
    """
    Selector for movement queries.

    Non-goals:
        - Does NOT aggregate; ``closing_kernel.domain.ledger.fold_movements``
          does.
    """

    def movements_for_key(
        self,
        series: str,
        key: str,
        as_of: datetime | None = None,
    ) -> list[MovementInfo]:
        """All movements of (series, key) recorded at or before ``as_of``."""
        stmt = select(Movement).where(Movement.series == series, Movement.key == key)
        if as_of is not None:
            stmt = stmt.where(Movement.created_at <= ensure_utc(as_of))
        stmt = stmt.order_by(Movement.created_at, Movement.id)
        return [movement_to_info(m) for m in self.session.execute(stmt).scalars()]

    def get_movement(self, movement_id: UUID) -> MovementInfo | None:
        movement = self.session.get(Movement, movement_id)
        return movement_to_info(movement) if movement else None

    def find_void_of(self, movement_id: UUID) -> MovementInfo | None:
        """The ``anulacion`` entry compensating ``movement_id``, if any."""
        movement = self.session.execute(
            select(Movement).where(Movement.voids_movement_id == movement_id)
        ).scalar_one_or_none()
        return movement_to_info(movement) if movement else None

    def list_movements(
        self,
        series: str,
        key: str | None = None,
        kind: str | None = None,
        from_at: datetime | None = None,
        to_at: datetime | None = None,
        limit: int = DEFAULT_LIMIT,
    ) -> list[MovementInfo]:
        """Movement history, newest first."""
        stmt = select(Movement).where(Movement.series == series)
        if key is not None:
            stmt = stmt.where(Movement.key == key)
        if kind is not None:
            stmt = stmt.where(Movement.kind == kind)
        if from_at is not None:
            stmt = stmt.where(Movement.created_at >= ensure_utc(from_at))
        if to_at is not None:
            stmt = stmt.where(Movement.created_at <= ensure_utc(to_at))
        stmt = stmt.order_by(Movement.created_at.desc(), Movement.id).limit(limit)
        return [movement_to_info(m) for m in self.session.execute(stmt).scalars()]

    def day_totals(self, series: str, up_to: date) -> dict[str, tuple[int, Decimal]]:
        """
        ``{iso_day: (movement_count, net_total)}`` for a date-keyed series.

        ISO date keys sort lexicographically, so ``key <= up_to`` is a date
        comparison.
        """
        rows = self.session.execute(
            select(Movement.key, Movement.amount)
            .where(Movement.series == series, Movement.key <= up_to.isoformat())
        ).all()
        totals: dict[str, tuple[int, Decimal]] = {}
        for key, amount in rows:
            count, total = totals.get(key, (0, Decimal("0")))
            totals[key] = (count + 1, total + normalize_amount(amount))
        return dict(sorted(totals.items()))

    def get_resource(self, series: str, key: str) -> LedgerResource | None:
        return self.session.execute(
            select(LedgerResource).where(
                LedgerResource.series == series,
                LedgerResource.key == key,
            )
        ).scalar_one_or_none()

    def is_active_resource(self, series: str, key: str) -> bool:
        resource = self.get_resource(series, key)
        return resource is not None and resource.is_active
