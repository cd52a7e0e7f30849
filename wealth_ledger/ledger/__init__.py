"""
Ledger Package

Replay engine, snapshot generator and snapshot persistence.
"""

from wealth_ledger.ledger.months import (
    InvalidMonthError,
    expand_month_range,
    month_bounds,
    month_end,
    month_of,
    parse_month,
    resolve_months,
    shift_month,
)
from wealth_ledger.ledger.persistence import persist_snapshots
from wealth_ledger.ledger.replay import (
    AccountPolarityError,
    MissingAccountError,
    ReplayStep,
    compute_balances,
    iter_replay,
    roll_forward,
    sort_transactions,
)
from wealth_ledger.ledger.snapshots import (
    ChainMismatch,
    SnapshotFailure,
    SnapshotGenerationCancelled,
    SnapshotRun,
    build_snapshot,
    check_accounting_identity,
    compute_pnl,
    generate_snapshots,
    summarize_balances,
    verify_snapshot_chain,
)

__all__ = [
    # Months
    "InvalidMonthError",
    "expand_month_range",
    "month_bounds",
    "month_end",
    "month_of",
    "parse_month",
    "resolve_months",
    "shift_month",
    # Replay
    "AccountPolarityError",
    "MissingAccountError",
    "ReplayStep",
    "compute_balances",
    "iter_replay",
    "roll_forward",
    "sort_transactions",
    # Snapshots
    "ChainMismatch",
    "SnapshotFailure",
    "SnapshotGenerationCancelled",
    "SnapshotRun",
    "build_snapshot",
    "check_accounting_identity",
    "compute_pnl",
    "generate_snapshots",
    "summarize_balances",
    "verify_snapshot_chain",
    # Persistence
    "persist_snapshots",
]
