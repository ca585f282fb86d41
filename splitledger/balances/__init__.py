"""Balance aggregation package."""

from splitledger.balances.aggregator import (
    DataIntegrityError,
    compute_balances,
    summarize_user_balance,
)

__all__ = [
    "DataIntegrityError",
    "compute_balances",
    "summarize_user_balance",
]
