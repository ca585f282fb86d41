"""Group ledger service package."""

from splitledger.ledger.cache import BalanceCache
from splitledger.ledger.service import (
    ExpenseNotFoundError,
    ExpenseRejectedError,
    GroupLedgerService,
    GroupNotFoundError,
    LedgerError,
    MembershipError,
    PermissionDeniedError,
    SettlementNotFoundError,
    SettlementRejectedError,
    create_app_components,
)

__all__ = [
    "BalanceCache",
    "ExpenseNotFoundError",
    "ExpenseRejectedError",
    "GroupLedgerService",
    "GroupNotFoundError",
    "LedgerError",
    "MembershipError",
    "PermissionDeniedError",
    "SettlementNotFoundError",
    "SettlementRejectedError",
    "create_app_components",
]
