"""
Module: closing_kernel.models.closing
Responsibility: ORM persistence for daily closings (cierres de caja).
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - At most one CLOSED closing per (series, period_key): partial unique
      index ``uq_closing_active_period``.  Reopened rows stay for audit and
      do not count.
    - closing_number is unique per series.
    - Reconciliation figures (computed_total, counted_total, variance,
      totals_by_category) never change after INSERT; only the reopen fields
      and the CLOSED -> REOPENED transition may (db/immutability.py).

Failure modes:
    - IntegrityError when a concurrent close for the same day commits first
      (translated to AlreadyClosedError by ClosingService).
    - ImmutabilityViolationError on any other UPDATE.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Date, DateTime, Index, Numeric, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from closing_kernel.db.base import TrackedBase, UUIDString


class ClosingStatus(str, Enum):
    """Lifecycle status of a closing row.

    OPEN is the absence of a CLOSED row for the day; it is never stored.
    """

    CLOSED = "closed"
    REOPENED = "reopened"


class Closing(TrackedBase):
    """
    Daily reconciliation snapshot that locks a period.

    Guarantees:
        - variance == counted_total - computed_total.
        - variance_justification is present whenever |variance| > tolerance.
        - closed_by_id/closed_at are set at INSERT; reopened_* only by reopen.
    """

    __tablename__ = "closings"

    __table_args__ = (
        UniqueConstraint("series", "closing_number", name="uq_closing_number"),
        Index(
            "uq_closing_active_period",
            "series",
            "period_key",
            unique=True,
            sqlite_where=text("status = 'closed'"),
            postgresql_where=text("status = 'closed'"),
        ),
        Index("idx_closing_period", "series", "period_key"),
        Index("idx_closing_status", "status"),
    )

    series: Mapped[str] = mapped_column(String(50), nullable=False)

    # e.g. CIE-000001, CIM-000001
    closing_number: Mapped[str] = mapped_column(String(30), nullable=False)

    period_key: Mapped[date] = mapped_column(Date, nullable=False)

    computed_total: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    counted_total: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    variance: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    # Tolerance in force when the closing was made
    tolerance: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    variance_justification: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # {category: amount-as-string} snapshot of the aggregate
    totals_by_category: Mapped[dict] = mapped_column(JSON, nullable=False)

    movement_count: Mapped[int] = mapped_column(BigInteger, nullable=False)

    photo_path: Mapped[str | None] = mapped_column(String(500), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)

    status: Mapped[ClosingStatus] = mapped_column(
        String(20),
        default=ClosingStatus.CLOSED,
        nullable=False,
    )

    closed_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    closed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    reopened_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    reopened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    reopen_justification: Mapped[str | None] = mapped_column(String(500), nullable=True)

    def __repr__(self) -> str:
        return f"<Closing {self.closing_number} {self.series}:{self.period_key} {self.status}>"

    @property
    def is_closed(self) -> bool:
        return self.status == ClosingStatus.CLOSED

    @property
    def is_reopened(self) -> bool:
        return self.status == ClosingStatus.REOPENED

    def reopen(self, actor_id: UUID, reopened_at: datetime, justification: str) -> None:
        """Transition CLOSED -> REOPENED.

        Note: Requires reopened_at from the injected clock.

        Raises: ValueError if the closing is not CLOSED.
        """
        if not self.is_closed:
            raise ValueError(f"Closing {self.closing_number} is not closed")

        self.status = ClosingStatus.REOPENED
        self.reopened_by_id = actor_id
        self.reopened_at = reopened_at
        self.reopen_justification = justification
        self.updated_by_id = actor_id
