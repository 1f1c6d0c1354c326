"""
Module: closing_kernel.models.movement
Responsibility: ORM persistence for the append-only movement ledger.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Movements are immutable after INSERT; no UPDATE or DELETE (ORM listener
      in db/immutability.py).
    - A movement is voided at most once: ``voids_movement_id`` is unique, so
      two concurrent voids of the same payment cannot both commit.
    - Balances are never stored on any row.  Every total is a fold over the
      movements of a (series, key).

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - IntegrityError on a second void of the same movement (translated to
      MovementAlreadyVoidedError by LedgerService).
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import DateTime, Index, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from closing_kernel.db.base import Base, UUIDString


class MovementKind(str, Enum):
    """Kinds of ledger movements.

    The sign each kind must carry is configuration (per series), not code:
    a ``venta`` adds cash to a cash ledger and removes units from a stock
    ledger.
    """

    ENTRADA = "entrada"
    SALIDA = "salida"
    VENTA = "venta"
    COMPRA = "compra"
    DEVOLUCION = "devolucion"
    AJUSTE = "ajuste"
    # Compensating entry produced only by LedgerService.void_movement
    ANULACION = "anulacion"


class Movement(Base):
    """
    Immutable ledger entry.

    Guarantees:
        - ``amount`` is signed and never zero.
        - ``created_at`` comes from the injected clock; it bounds the
          ``as_of`` fold and orders history display.
        - ``voids_movement_id`` is set only on ``anulacion`` entries.
    """

    __tablename__ = "ledger_movements"

    __table_args__ = (
        Index("idx_movement_series_key", "series", "key", "created_at"),
        Index("idx_movement_kind", "series", "kind"),
        Index("idx_movement_reference", "reference"),
    )

    series: Mapped[str] = mapped_column(String(50), nullable=False)

    # ISO date for cash ledgers, product code for stock ledgers
    key: Mapped[str] = mapped_column(String(100), nullable=False)

    kind: Mapped[MovementKind] = mapped_column(String(20), nullable=False)

    # Payment method (efectivo, tarjeta, ...) or stock bucket (normal, devoluciones)
    category: Mapped[str] = mapped_column(String(50), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    # Originating transaction (payment, sale, purchase, return)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    voids_movement_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
        unique=True,
    )

    justification: Mapped[str | None] = mapped_column(String(500), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    created_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    def __repr__(self) -> str:
        return f"<Movement {self.series}:{self.key} {self.kind} {self.category} {self.amount}>"

    @property
    def is_void(self) -> bool:
        return self.voids_movement_id is not None
