"""
Closing Kernel

An append-only movement ledger with daily cash-closing reconciliation:
- Balances derived by folding the movement log, never stored
- Atomic close with sequential, per-series closing numbers
- Reopen/delete gated by role with mandatory justification
- Full auditability via hash chain
"""

__version__ = "0.1.0"
