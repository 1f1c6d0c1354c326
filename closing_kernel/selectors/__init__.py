"""Selectors for the closing kernel (read side)."""

from closing_kernel.selectors.closing_selector import ClosingSelector, closing_to_info
from closing_kernel.selectors.ledger_selector import LedgerSelector, movement_to_info

__all__ = [
    "ClosingSelector",
    "LedgerSelector",
    "closing_to_info",
    "movement_to_info",
]
