"""
Module: closing_kernel.db.types
Responsibility: Conversion helpers for amounts and timestamps crossing the
    store boundary, shared by every model and service.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats anywhere in the kernel.  Amounts entering the kernel pass
      through ``to_decimal()``, which rejects floats and non-finite values.
    - Stored timestamps are UTC; ``ensure_utc()`` restores the tzinfo that
      SQLite drops on round trip.
    - Amounts leave the store through ``normalize_amount()``, so readers and
      error messages see ``50000``, not the column scale.
"""

from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation


def to_decimal(value: Decimal | int | str) -> Decimal:
    """
    Convert an operator-supplied amount to Decimal.

    Floats are refused: ``Decimal(0.1)`` silently carries binary error into
    the ledger.

    Raises:
        TypeError: If value is a float or bool.
        ValueError: If value is not a finite number.
    """
    if isinstance(value, (float, bool)):
        raise TypeError(f"Amounts must be Decimal, int or str, not {type(value).__name__}")
    try:
        result = value if isinstance(value, Decimal) else Decimal(value)
    except InvalidOperation as exc:
        raise ValueError(f"Not a number: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from the store."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def normalize_amount(value: Decimal | int | str) -> Decimal:
    """
    Drop the storage scale from an amount read back from a Numeric column.

    ``Decimal("50000.000000000")`` becomes ``Decimal("50000")`` and
    ``Decimal("0E-9")`` becomes ``Decimal("0")``; significant fractional
    digits are kept.  The result never uses exponent notation.
    """
    amount = Decimal(value).normalize()
    if amount == amount.to_integral_value():
        return amount.quantize(Decimal(1))
    return amount
