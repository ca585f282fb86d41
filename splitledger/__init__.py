"""
Group Ledger - Source Package

Shared expense splitting and balance tracking for groups of people
(flatmates, trips, families).

DESIGN PRINCIPLES:
1. Splits always add up exactly to the expense amount
2. Balances are recomputed from the full history, never patched
3. No silent corrections
4. Every write must be auditable
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Group Ledger Team"
