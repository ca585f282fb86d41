"""
Data Models Package

This package contains all Pydantic models used by the group ledger.
All data flowing into the split calculator and balance aggregator
must conform to these schemas.
"""

from splitledger.models.group import (
    SPLIT_SUM_TOLERANCE,
    ExpensePage,
    ExpenseSplit,
    Group,
    GroupMember,
    MemberRole,
    Settlement,
    SettlementPage,
    SharedExpense,
    new_id,
)
from splitledger.models.split import (
    RoundingStrategy,
    SplitParticipant,
    SplitResult,
    SplitSummary,
    SplitType,
)
from splitledger.models.balance import (
    GroupBalanceSummary,
    MemberBalance,
    UserBalanceOverview,
)
from splitledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from splitledger.models.validation import (
    ExpenseDraft,
    SettlementDraft,
    ValidationIssue,
    ValidationResult,
)
from splitledger.models.timestamps import (
    millis_to_datetime,
    now_millis,
    to_epoch_millis,
)

__all__ = [
    # Group models
    "SPLIT_SUM_TOLERANCE",
    "ExpensePage",
    "ExpenseSplit",
    "Group",
    "GroupMember",
    "MemberRole",
    "Settlement",
    "SettlementPage",
    "SharedExpense",
    "new_id",
    # Split models
    "RoundingStrategy",
    "SplitParticipant",
    "SplitResult",
    "SplitSummary",
    "SplitType",
    # Balance models
    "GroupBalanceSummary",
    "MemberBalance",
    "UserBalanceOverview",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Drafts & validation
    "ExpenseDraft",
    "SettlementDraft",
    "ValidationIssue",
    "ValidationResult",
    # Timestamps
    "millis_to_datetime",
    "now_millis",
    "to_epoch_millis",
]
