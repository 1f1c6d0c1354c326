"""
Ledger fold -- pure aggregation of movements.

Responsibility:
    Turns a collection of movements into a ``LedgerAggregate`` and checks
    a proposed amount against the sign rule of its kind.  Balances exist
    only as the output of ``fold_movements``; nothing stores them.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.  The selector reads
    the rows (already filtered by ``created_at <= as_of``) and hands them
    here.

Invariants enforced:
    - The fold is a sum of exact Decimals, so it is independent of the
      order in which movements were appended or read.
    - grand_total equals the sum of the category totals and of the kind
      totals.
"""

from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from typing import Iterable, Protocol

from closing_kernel.domain.dtos import LedgerAggregate

ZERO = Decimal("0")


class MovementLike(Protocol):
    kind: str
    category: str
    amount: Decimal


def fold_movements(
    series: str,
    key: str,
    movements: Iterable[MovementLike],
    as_of: datetime | None = None,
) -> LedgerAggregate:
    """
    Fold movements into totals by category and by kind.

    Args:
        series: Ledger series the movements belong to.
        key: Ledger key (ISO date or product code).
        movements: Movements for (series, key).  Any order.
        as_of: Recorded on the aggregate; filtering is the caller's job.
    """
    by_category: dict[str, Decimal] = defaultdict(lambda: ZERO)
    by_kind: dict[str, Decimal] = defaultdict(lambda: ZERO)
    total = ZERO
    count = 0

    for movement in movements:
        amount = Decimal(movement.amount)
        kind = getattr(movement.kind, "value", movement.kind)
        by_category[movement.category] += amount
        by_kind[kind] += amount
        total += amount
        count += 1

    return LedgerAggregate(
        series=series,
        key=key,
        as_of=as_of,
        totals_by_category=dict(sorted(by_category.items())),
        totals_by_kind=dict(sorted(by_kind.items())),
        grand_total=total,
        movement_count=count,
    )


def sign_violation(amount: Decimal, rule: str) -> str | None:
    """
    Check an amount against a sign rule.

    Returns:
        None when the amount is acceptable, else the reason it is not.
        Zero is never acceptable.
    """
    rule = getattr(rule, "value", rule)
    if amount == ZERO:
        return "amount must not be zero"
    if rule == "positive" and amount < ZERO:
        return "amount must be positive"
    if rule == "negative" and amount > ZERO:
        return "amount must be negative"
    return None


def balance_after(aggregate: LedgerAggregate, category: str, amount: Decimal) -> Decimal:
    """Category balance once ``amount`` is appended."""
    return aggregate.category_total(category) + amount
