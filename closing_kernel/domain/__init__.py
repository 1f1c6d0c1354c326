"""
Pure domain layer.

This module contains pure data transfer objects and domain logic
with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from closing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from closing_kernel.domain.dtos import (
    Actor,
    AlertInfo,
    ClosingInfo,
    ClosingState,
    ClosingSummary,
    LedgerAggregate,
    MovementInfo,
    ResourceInfo,
    Role,
    UnclosedDay,
)
from closing_kernel.domain.ledger import fold_movements, sign_violation
from closing_kernel.domain.variance import (
    compute_variance,
    requires_justification,
    validate_justification,
)

__all__ = [
    "Actor",
    "AlertInfo",
    "Clock",
    "ClosingInfo",
    "ClosingState",
    "ClosingSummary",
    "DeterministicClock",
    "LedgerAggregate",
    "MovementInfo",
    "ResourceInfo",
    "Role",
    "SystemClock",
    "UnclosedDay",
    "compute_variance",
    "fold_movements",
    "requires_justification",
    "sign_violation",
    "validate_justification",
]
