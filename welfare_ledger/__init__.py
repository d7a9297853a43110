"""
Welfare Ledger

Allocation and quarterly-interest ledger engine for a welfare association:
waterfall principal/interest splits, idempotent quarterly interest charges
and fiscal-year financial summaries, all using Decimal arithmetic.
"""

__version__ = "1.0.0"
