"""
Module: closing_kernel.models.business_day
Responsibility: One row per (series, period_key) that writers and closers
    lock with ``SELECT ... FOR UPDATE`` before touching the day.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - At most one row per (series, period_key).
    - A movement write into a day and the close of that day hold the same
      row lock, so under READ COMMITTED the close either sees the committed
      movement in its aggregate or the write sees the committed closing and
      is rejected.

Rows carry no data beyond their key and are never updated.
"""

from datetime import date

from sqlalchemy import Date, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from closing_kernel.db.base import Base


class BusinessDay(Base):
    """Lock anchor for a day of a date-keyed series."""

    __tablename__ = "business_days"

    __table_args__ = (
        UniqueConstraint("series", "period_key", name="uq_business_day"),
    )

    series: Mapped[str] = mapped_column(String(50), nullable=False)

    period_key: Mapped[date] = mapped_column(Date, nullable=False)

    def __repr__(self) -> str:
        return f"<BusinessDay {self.series}:{self.period_key.isoformat()}>"
