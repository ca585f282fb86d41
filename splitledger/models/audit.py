"""
Audit Models for Group Ledger

Every write to a group ledger (and every balance computation) is logged
for audit purposes. This provides:
1. Complete traceability of who added, removed or settled what
2. Debugging information when balances look wrong
3. Ability to reconstruct history

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Groups & membership
    GROUP_CREATED = "group_created"
    MEMBER_ADDED = "member_added"
    MEMBER_REMOVED = "member_removed"
    MEMBER_LEFT = "member_left"

    # Expenses
    EXPENSE_ADDED = "expense_added"
    EXPENSE_REJECTED = "expense_rejected"
    EXPENSE_DELETED = "expense_deleted"

    # Settlements
    SETTLEMENT_RECORDED = "settlement_recorded"
    SETTLEMENT_REJECTED = "settlement_rejected"
    SETTLEMENT_DELETED = "settlement_deleted"

    # Balances
    BALANCES_COMPUTED = "balances_computed"
    DATA_INTEGRITY_ERROR = "data_integrity_error"

    # System events
    SYSTEM_ERROR = "system_error"
    STORAGE_ERROR = "storage_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    group_id: Optional[str] = Field(
        default=None,
        description="Group the event belongs to"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'settlement', 'member')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )
    actor_id: Optional[str] = Field(
        default=None,
        description="User who triggered the event"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one request)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "group_id": self.group_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_id": self.actor_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_record(self) -> dict:
        """
        Convert to a flat document for audit storage.

        Details are JSON-encoded; Decimal amounts become strings.
        """
        record = self.to_log_dict()
        record["details"] = json.dumps(self.details, default=str) if self.details else ""
        return record


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expense_added(expense, actor_id, correlation_id)
        event = AuditEventBuilder.member_removed(group_id, user_id, actor_id)
    """

    @staticmethod
    def group_created(
        group_id: str,
        name: str,
        actor_id: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GROUP_CREATED,
            group_id=group_id,
            entity_type="group",
            entity_id=group_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Group created: {name}",
            details={"name": name},
        )

    @staticmethod
    def member_added(
        group_id: str,
        user_id: str,
        role: str,
        actor_id: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.MEMBER_ADDED,
            group_id=group_id,
            entity_type="member",
            entity_id=user_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Member added as {role}",
            details={"role": role},
        )

    @staticmethod
    def member_removed(
        group_id: str,
        user_id: str,
        actor_id: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        left = user_id == actor_id
        return AuditEvent(
            event_type=AuditEventType.MEMBER_LEFT if left else AuditEventType.MEMBER_REMOVED,
            group_id=group_id,
            entity_type="member",
            entity_id=user_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description="Member left the group" if left else "Member removed from the group",
        )

    @staticmethod
    def expense_added(
        group_id: str,
        expense_id: str,
        amount: Decimal,
        paid_by: str,
        participant_count: int,
        actor_id: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_ADDED,
            group_id=group_id,
            entity_type="expense",
            entity_id=expense_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Expense of {amount} added, split {participant_count} ways",
            details={
                "amount": str(amount),
                "paid_by": paid_by,
                "participant_count": participant_count,
            },
        )

    @staticmethod
    def expense_rejected(
        group_id: str,
        issues: list[dict],
        actor_id: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_REJECTED,
            severity=AuditSeverity.WARNING,
            group_id=group_id,
            entity_type="expense",
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Expense rejected with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def expense_deleted(
        group_id: str,
        expense_id: str,
        actor_id: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            group_id=group_id,
            entity_type="expense",
            entity_id=expense_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description="Expense deleted",
        )

    @staticmethod
    def settlement_recorded(
        group_id: str,
        settlement_id: str,
        from_user: str,
        to_user: str,
        amount: Decimal,
        actor_id: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_RECORDED,
            group_id=group_id,
            entity_type="settlement",
            entity_id=settlement_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Settlement of {amount} recorded",
            details={
                "from": from_user,
                "to": to_user,
                "amount": str(amount),
            },
        )

    @staticmethod
    def settlement_rejected(
        group_id: str,
        issues: list[dict],
        actor_id: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_REJECTED,
            severity=AuditSeverity.WARNING,
            group_id=group_id,
            entity_type="settlement",
            actor_id=actor_id,
            correlation_id=correlation_id,
            description=f"Settlement rejected with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def settlement_deleted(
        group_id: str,
        settlement_id: str,
        actor_id: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_DELETED,
            group_id=group_id,
            entity_type="settlement",
            entity_id=settlement_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
            description="Settlement deleted",
        )

    @staticmethod
    def balances_computed(
        group_id: str,
        member_count: int,
        from_cache: bool,
        expense_count: Optional[int] = None,
        settlement_count: Optional[int] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        if from_cache:
            description = f"Balances for {member_count} members served from cache"
            details = {"member_count": member_count, "from_cache": True}
        else:
            description = (
                f"Balances for {member_count} members from "
                f"{expense_count} expenses and {settlement_count} settlements"
            )
            details = {
                "member_count": member_count,
                "expense_count": expense_count,
                "settlement_count": settlement_count,
                "from_cache": False,
            }
        return AuditEvent(
            event_type=AuditEventType.BALANCES_COMPUTED,
            severity=AuditSeverity.DEBUG,
            group_id=group_id,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description=description,
            details=details,
        )

    @staticmethod
    def data_integrity_error(
        group_id: str,
        error_message: str,
        unknown_user_ids: list[str],
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DATA_INTEGRITY_ERROR,
            severity=AuditSeverity.ERROR,
            group_id=group_id,
            entity_type="group",
            entity_id=group_id,
            correlation_id=correlation_id,
            description="Ledger references users who are not group members",
            error_message=error_message,
            details={"unknown_user_ids": unknown_user_ids},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def storage_error(
        operation: str,
        error_message: str,
        group_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            group_id=group_id,
            description=f"Storage error during {operation}",
            error_message=error_message,
            details={"operation": operation},
            correlation_id=correlation_id,
        )
