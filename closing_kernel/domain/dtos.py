"""
Domain DTOs -- immutable values crossing the service boundary.

Responsibility:
    Frozen dataclasses returned by services and selectors.  ORM entities
    never leave the kernel; callers receive these instead.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  No SQLAlchemy imports.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Mapping
from uuid import UUID


class Role(str, Enum):
    """Application roles supplied by the authentication provider."""

    ADMIN = "admin"
    MEDICO = "medico"
    ENFERMERA = "enfermera"
    SECRETARIA = "secretaria"


@dataclass(frozen=True)
class Actor:
    """
    The caller of a state-changing operation.

    Threaded explicitly into every write; the kernel never derives the
    current user from ambient state.
    """

    id: UUID
    role: Role

    @classmethod
    def of(cls, actor_id: UUID, role: str | Role) -> "Actor":
        return cls(id=actor_id, role=Role(role))


@dataclass(frozen=True)
class MovementInfo:
    """Read-only view of a ledger movement."""

    id: UUID
    series: str
    key: str
    kind: str
    category: str
    amount: Decimal
    reference: str | None
    voids_movement_id: UUID | None
    justification: str | None
    created_at: datetime
    created_by_id: UUID

    @property
    def is_void(self) -> bool:
        return self.voids_movement_id is not None


@dataclass(frozen=True)
class ResourceInfo:
    """A registered key of a product-keyed series."""

    id: UUID
    series: str
    key: str
    name: str
    is_active: bool


def _frozen(mapping: Mapping[str, Decimal]) -> Mapping[str, Decimal]:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class LedgerAggregate:
    """
    Fold of all movements for one (series, key) as of a timestamp.

    Guarantees:
        - grand_total == sum(totals_by_category.values()).
        - grand_total == sum(totals_by_kind.values()).
    """

    series: str
    key: str
    as_of: datetime | None
    totals_by_category: Mapping[str, Decimal] = field(default_factory=dict)
    totals_by_kind: Mapping[str, Decimal] = field(default_factory=dict)
    grand_total: Decimal = Decimal("0")
    movement_count: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "totals_by_category", _frozen(self.totals_by_category))
        object.__setattr__(self, "totals_by_kind", _frozen(self.totals_by_kind))

    def category_total(self, category: str) -> Decimal:
        return self.totals_by_category.get(category, Decimal("0"))

    def as_dict(self) -> dict[str, Decimal]:
        """Category totals plus ``grand_total``, the shape shown on screen."""
        result = dict(self.totals_by_category)
        result["grand_total"] = self.grand_total
        return result


class ClosingState(str, Enum):
    """State of a period as seen by callers (OPEN has no stored row)."""

    OPEN = "open"
    CLOSED = "closed"
    REOPENED = "reopened"


@dataclass(frozen=True)
class ClosingInfo:
    """Read-only view of a closing row."""

    id: UUID
    series: str
    closing_number: str
    period_key: date
    computed_total: Decimal
    counted_total: Decimal
    variance: Decimal
    tolerance: Decimal
    variance_justification: str | None
    totals_by_category: Mapping[str, Decimal]
    movement_count: int
    photo_path: str | None
    notes: str | None
    state: ClosingState
    closed_by_id: UUID
    closed_at: datetime
    reopened_by_id: UUID | None
    reopened_at: datetime | None
    reopen_justification: str | None

    def __post_init__(self) -> None:
        object.__setattr__(self, "totals_by_category", _frozen(self.totals_by_category))

    @property
    def sequence(self) -> int:
        """Numeric part of the closing number (CIE-000042 -> 42)."""
        return int(self.closing_number.rsplit("-", 1)[-1])


@dataclass(frozen=True)
class ClosingSummary:
    """Preview shown before closing a day."""

    series: str
    period_key: date
    aggregate: LedgerAggregate
    has_existing_closing: bool
    existing_closing_id: UUID | None
    tolerance: Decimal


@dataclass(frozen=True)
class UnclosedDay:
    """A day with movements and no active closing."""

    period_key: date
    movement_count: int
    total: Decimal


@dataclass(frozen=True)
class AlertInfo:
    """Read-only view of an alert."""

    id: UUID
    alert_type: str
    severity: str
    title: str
    description: str
    reference_type: str | None
    reference_id: UUID | None
    is_resolved: bool
    resolved_by_id: UUID | None
    resolved_at: datetime | None
    resolution_notes: str | None
    created_at: datetime
