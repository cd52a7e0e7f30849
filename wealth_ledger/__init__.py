"""
Wealth Ledger - Source Package

The balance-reconstruction core of a personal financial-tracking app:
ledger replay, monthly snapshots and the cash-flow bridge report.

DESIGN PRINCIPLES:
1. Compute is pure: same ledger in, same numbers out
2. Replay from scratch, never from a cached delta
3. Fail early, fail visibly (a bad account reference aborts the month)
4. Data sources are injected, never ambient
5. Storage layer is swappable
"""

__version__ = "1.0.0"
__author__ = "Wealth Ledger Team"
