"""
Audit Logger

DESIGN DECISION: Every write to a group ledger is logged.
This provides:
1. Complete traceability of expenses, settlements and membership changes
2. Debugging capability when balances look wrong
3. Members can see the history of their group

The audit logger:
- Is async so it fits the storage-driven ledger flows
- Gracefully handles failures (doesn't break a write if logging fails)
- Supports correlation IDs to trace related events
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import structlog

from splitledger.models.audit import AuditEvent, AuditEventBuilder
from splitledger.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage (for persistence and member visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("splitledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        elif event.severity.value == "debug":
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_group_created(
        self,
        group_id: str,
        name: str,
        actor_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log group creation."""
        await self.log(AuditEventBuilder.group_created(
            group_id=group_id,
            name=name,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    async def log_member_added(
        self,
        group_id: str,
        user_id: str,
        role: str,
        actor_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a member joining a group."""
        await self.log(AuditEventBuilder.member_added(
            group_id=group_id,
            user_id=user_id,
            role=role,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    async def log_member_removed(
        self,
        group_id: str,
        user_id: str,
        actor_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a member leaving or being removed."""
        await self.log(AuditEventBuilder.member_removed(
            group_id=group_id,
            user_id=user_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    async def log_expense_added(
        self,
        group_id: str,
        expense_id: str,
        amount: Decimal,
        paid_by: str,
        participant_count: int,
        actor_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an expense being saved."""
        await self.log(AuditEventBuilder.expense_added(
            group_id=group_id,
            expense_id=expense_id,
            amount=amount,
            paid_by=paid_by,
            participant_count=participant_count,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    async def log_expense_rejected(
        self,
        group_id: str,
        issues: list[dict],
        actor_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an expense that failed validation."""
        await self.log(AuditEventBuilder.expense_rejected(
            group_id=group_id,
            issues=issues,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    async def log_expense_deleted(
        self,
        group_id: str,
        expense_id: str,
        actor_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.expense_deleted(
            group_id=group_id,
            expense_id=expense_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    async def log_settlement_recorded(
        self,
        group_id: str,
        settlement_id: str,
        from_user: str,
        to_user: str,
        amount: Decimal,
        actor_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a settlement being saved."""
        await self.log(AuditEventBuilder.settlement_recorded(
            group_id=group_id,
            settlement_id=settlement_id,
            from_user=from_user,
            to_user=to_user,
            amount=amount,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    async def log_settlement_rejected(
        self,
        group_id: str,
        issues: list[dict],
        actor_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.settlement_rejected(
            group_id=group_id,
            issues=issues,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    async def log_settlement_deleted(
        self,
        group_id: str,
        settlement_id: str,
        actor_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.settlement_deleted(
            group_id=group_id,
            settlement_id=settlement_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
        ))

    async def log_balances_computed(
        self,
        group_id: str,
        member_count: int,
        from_cache: bool,
        expense_count: Optional[int] = None,
        settlement_count: Optional[int] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a balance computation (or cache hit, where counts are unknown)."""
        await self.log(AuditEventBuilder.balances_computed(
            group_id=group_id,
            member_count=member_count,
            expense_count=expense_count,
            settlement_count=settlement_count,
            from_cache=from_cache,
            correlation_id=correlation_id,
        ))

    async def log_data_integrity_error(
        self,
        group_id: str,
        error_message: str,
        unknown_user_ids: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a ledger that references non-members."""
        await self.log(AuditEventBuilder.data_integrity_error(
            group_id=group_id,
            error_message=error_message,
            unknown_user_ids=unknown_user_ids,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_storage_error(
        self,
        operation: str,
        error_message: str,
        group_id: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a storage failure."""
        await self.log(AuditEventBuilder.storage_error(
            operation=operation,
            error_message=error_message,
            group_id=group_id,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., adding an expense).
    Pass it through all subsequent operations.
    """
    return uuid4()
