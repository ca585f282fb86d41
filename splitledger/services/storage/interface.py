"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Keep the ledger logic independent of the hosted document store
2. Use in-memory storage for testing and the demo UI
3. Add caching layers transparently

Expenses and settlements are read in pages (date descending, cursor based),
exactly as the document store serves them. The ledger service is
responsible for following cursors until the full history is loaded.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from splitledger.models.audit import AuditEvent
from splitledger.models.group import (
    ExpensePage,
    Group,
    GroupMember,
    Settlement,
    SettlementPage,
    SharedExpense,
)


class GroupStorageInterface(ABC):
    """
    Abstract interface for group ledger storage.

    Any storage implementation (document store, SQL, in-memory)
    must implement these methods.
    """

    @abstractmethod
    async def get_group(self, group_id: str) -> Optional[Group]:
        """
        Retrieve a group by its ID.

        Returns:
            The group if found, None otherwise
        """
        pass

    @abstractmethod
    async def save_group(self, group: Group) -> bool:
        """
        Create or replace a group document (including its members).

        Returns:
            True if saved successfully

        Raises:
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def fetch_group_members(self, group_id: str) -> list[GroupMember]:
        """
        Current members of a group.

        Raises:
            NotFoundError: If the group doesn't exist
        """
        pass

    @abstractmethod
    async def fetch_group_expenses(
        self,
        group_id: str,
        date_from: Optional[int] = None,
        date_to: Optional[int] = None,
        cursor: Optional[str] = None,
        limit: int = 50,
    ) -> ExpensePage:
        """
        One page of a group's expenses, newest first.

        Args:
            group_id: The group
            date_from: Only expenses on or after this time (epoch ms)
            date_to: Only expenses on or before this time (epoch ms)
            cursor: next_cursor from the previous page
            limit: Maximum number of expenses in the page

        Returns:
            ExpensePage with items, next_cursor and has_more
        """
        pass

    @abstractmethod
    async def fetch_group_settlements(
        self,
        group_id: str,
        cursor: Optional[str] = None,
        limit: int = 50,
    ) -> SettlementPage:
        """One page of a group's settlements, newest first."""
        pass

    @abstractmethod
    async def persist_expense(self, group_id: str, expense: SharedExpense) -> bool:
        """
        Save an expense.

        Raises:
            DuplicateError: If an expense with the same ID exists
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def persist_settlement(self, group_id: str, settlement: Settlement) -> bool:
        """
        Save a settlement.

        Raises:
            DuplicateError: If a settlement with the same ID exists
            StorageError: If save fails
        """
        pass

    @abstractmethod
    async def get_expense(self, group_id: str, expense_id: str) -> Optional[SharedExpense]:
        """Retrieve one expense, None if not found."""
        pass

    @abstractmethod
    async def get_settlement(self, group_id: str, settlement_id: str) -> Optional[Settlement]:
        """Retrieve one settlement, None if not found."""
        pass

    @abstractmethod
    async def delete_expense(self, group_id: str, expense_id: str) -> bool:
        """
        Delete an expense by ID.

        Returns:
            True if deleted, False if it did not exist
        """
        pass

    @abstractmethod
    async def delete_settlement(self, group_id: str, settlement_id: str) -> bool:
        """
        Delete a settlement by ID.

        Returns:
            True if deleted, False if it did not exist
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """All events for a correlation ID, in chronological order."""
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """All events for a specific entity, in chronological order."""
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """The most recent audit events (newest first)."""
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
