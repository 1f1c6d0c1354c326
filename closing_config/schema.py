"""
LedgerConfiguration schema.

Defines the human-authored, reviewable source artifact for ledger
configuration.  YAML fragments are parsed into these types by the loader,
checked by the validator, and handed to the kernel services as-is.

A series is a named ledger (clinic cash, medias cash, medias stock) with its
own key type, categories, sign rules, closing policy and role grants.  The
clinic and medias closings differ only here, never in code.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from zoneinfo import ZoneInfo

# Roles issued by the authentication provider
KNOWN_ROLES: tuple[str, ...] = ("admin", "medico", "enfermera", "secretaria")

# Kinds a series may enable.  ``anulacion`` is reserved for voids.
CONFIGURABLE_KINDS: tuple[str, ...] = (
    "entrada",
    "salida",
    "venta",
    "compra",
    "devolucion",
    "ajuste",
)

# Actions a RoleGrants block may name
GRANT_ACTIONS: tuple[str, ...] = ("record", "void", "close", "reopen", "delete")


class KeyType(str, Enum):
    """How movements of a series are keyed."""

    DATE = "date"
    PRODUCT = "product"


class SignRule(str, Enum):
    """Sign a movement amount must carry for a given kind."""

    POSITIVE = "positive"
    NEGATIVE = "negative"
    ANY = "any"


# ---------------------------------------------------------------------------
# Policy blocks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RoleGrants:
    """Roles allowed to perform each action on a series."""

    record: tuple[str, ...] = ()
    void: tuple[str, ...] = ()
    close: tuple[str, ...] = ()
    reopen: tuple[str, ...] = ()
    delete: tuple[str, ...] = ()

    def roles_for(self, action: str) -> tuple[str, ...]:
        if action not in GRANT_ACTIONS:
            raise ValueError(f"Unknown action: {action!r}")
        return getattr(self, action)

    def allows(self, action: str, role: str) -> bool:
        return role in self.roles_for(action)


@dataclass(frozen=True)
class ClosingPolicy:
    """How a date-keyed series is closed each day."""

    prefix: str
    tolerance: Decimal
    number_width: int = 6
    photo_required: bool = False
    # Compare the count against one category (e.g. efectivo) instead of the
    # grand total.
    counted_category: str | None = None

    def format_number(self, value: int) -> str:
        return f"{self.prefix}-{value:0{self.number_width}d}"


@dataclass(frozen=True)
class SeriesConfig:
    """Configuration of one ledger series."""

    name: str
    key_type: KeyType
    categories: tuple[str, ...]
    kinds: tuple[tuple[str, SignRule], ...]
    grants: RoleGrants
    closing: ClosingPolicy | None = None
    allow_negative_balance: bool = True
    # Date-keyed series whose closings also lock this series' writes
    lock_series: str | None = None
    # Kinds that need a written reason (e.g. stock adjustments)
    justified_kinds: tuple[str, ...] = ()
    description: str = ""

    @property
    def kind_names(self) -> tuple[str, ...]:
        return tuple(name for name, _ in self.kinds)

    def sign_rule(self, kind: str) -> SignRule | None:
        for name, rule in self.kinds:
            if name == kind:
                return rule
        return None

    @property
    def is_date_keyed(self) -> bool:
        return self.key_type == KeyType.DATE

    @property
    def closes(self) -> bool:
        return self.closing is not None


# ---------------------------------------------------------------------------
# Top-level configuration set
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerConfiguration:
    """
    Complete ledger configuration -- the unit handed to the services.

    The checksum is the SHA-256 of the canonical JSON of the source
    fragments, so two configurations with equal checksums behave the same.
    """

    config_id: str
    version: int
    series: tuple[SeriesConfig, ...]
    description: str = ""
    checksum: str = ""
    # IANA zone whose calendar date is "today" for period keys
    timezone: str = "UTC"

    def get_series(self, name: str) -> SeriesConfig | None:
        for series in self.series:
            if series.name == name:
                return series
        return None

    @property
    def series_names(self) -> tuple[str, ...]:
        return tuple(s.name for s in self.series)

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)
