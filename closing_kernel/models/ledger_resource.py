"""
Module: closing_kernel.models.ledger_resource
Responsibility: Registry of keys for product-keyed ledgers (e.g. stocking
    codes in the medias inventory).  Date-keyed ledgers need no registry.
Architecture position: Kernel > Models.  May import from db/ only.
"""

from sqlalchemy import Boolean, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from closing_kernel.db.base import TrackedBase


class LedgerResource(TrackedBase):
    """A registered key (product) in a product-keyed series."""

    __tablename__ = "ledger_resources"

    __table_args__ = (
        UniqueConstraint("series", "key", name="uq_resource_series_key"),
    )

    series: Mapped[str] = mapped_column(String(50), nullable=False)

    key: Mapped[str] = mapped_column(String(100), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<LedgerResource {self.series}:{self.key}>"
