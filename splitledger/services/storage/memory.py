"""
In-Memory Storage Implementation

Used by the test suite and the demo UI. It behaves like the hosted
document store as far as the ledger is concerned:
- expenses and settlements are served newest first, in pages
- the cursor is an opaque string pointing after the last item served
- documents are copied in and out, so callers cannot mutate stored state

Not suitable for production: nothing survives a restart.
"""

from typing import Optional, Union
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
from splitledger.services.storage.interface import (
    AuditStorageInterface,
    DuplicateError,
    GroupStorageInterface,
    NotFoundError,
    StorageError,
)


Record = Union[SharedExpense, Settlement]


def _sort_key(record: Record) -> tuple[int, str]:
    return (-record.date, record.id)


def _encode_cursor(record: Record) -> str:
    return f"{record.date}:{record.id}"


def _decode_cursor(cursor: str) -> tuple[int, str]:
    try:
        date_part, record_id = cursor.split(":", 1)
        return (-int(date_part), record_id)
    except ValueError:
        raise StorageError(f"Invalid page cursor: {cursor!r}")


def _paginate(
    records: list[Record],
    cursor: Optional[str],
    limit: int,
) -> tuple[list[Record], Optional[str], bool]:
    if limit < 1:
        raise StorageError(f"Page limit must be positive, got {limit}")

    ordered = sorted(records, key=_sort_key)
    if cursor:
        after = _decode_cursor(cursor)
        ordered = [record for record in ordered if _sort_key(record) > after]

    page = ordered[:limit]
    has_more = len(ordered) > limit
    next_cursor = _encode_cursor(page[-1]) if has_more else None
    return page, next_cursor, has_more


class InMemoryGroupStorage(GroupStorageInterface):
    """In-memory implementation of group ledger storage."""

    def __init__(self):
        self._groups: dict[str, Group] = {}
        self._expenses: dict[str, dict[str, SharedExpense]] = {}
        self._settlements: dict[str, dict[str, Settlement]] = {}

    def _require_group(self, group_id: str) -> None:
        if group_id not in self._groups:
            raise NotFoundError(f"Group not found: {group_id}")

    async def get_group(self, group_id: str) -> Optional[Group]:
        group = self._groups.get(group_id)
        return group.model_copy(deep=True) if group else None

    async def save_group(self, group: Group) -> bool:
        self._groups[group.id] = group.model_copy(deep=True)
        self._expenses.setdefault(group.id, {})
        self._settlements.setdefault(group.id, {})
        return True

    async def list_groups_for_user(self, user_id: str) -> list[Group]:
        """Groups where the user is a current or former member."""
        return [
            group.model_copy(deep=True)
            for group in self._groups.values()
            if any(member.user_id == user_id for member in group.all_members())
        ]

    async def fetch_group_members(self, group_id: str) -> list[GroupMember]:
        self._require_group(group_id)
        return [member.model_copy() for member in self._groups[group_id].members]

    async def fetch_group_expenses(
        self,
        group_id: str,
        date_from: Optional[int] = None,
        date_to: Optional[int] = None,
        cursor: Optional[str] = None,
        limit: int = 50,
    ) -> ExpensePage:
        self._require_group(group_id)
        expenses = [
            expense for expense in self._expenses[group_id].values()
            if (date_from is None or expense.date >= date_from)
            and (date_to is None or expense.date <= date_to)
        ]
        page, next_cursor, has_more = _paginate(expenses, cursor, limit)
        return ExpensePage(
            items=[expense.model_copy(deep=True) for expense in page],
            next_cursor=next_cursor,
            has_more=has_more,
        )

    async def fetch_group_settlements(
        self,
        group_id: str,
        cursor: Optional[str] = None,
        limit: int = 50,
    ) -> SettlementPage:
        self._require_group(group_id)
        settlements = list(self._settlements[group_id].values())
        page, next_cursor, has_more = _paginate(settlements, cursor, limit)
        return SettlementPage(
            items=[settlement.model_copy(deep=True) for settlement in page],
            next_cursor=next_cursor,
            has_more=has_more,
        )

    async def persist_expense(self, group_id: str, expense: SharedExpense) -> bool:
        self._require_group(group_id)
        if expense.group_id != group_id:
            raise StorageError(
                f"Expense belongs to group {expense.group_id}, not {group_id}"
            )
        if expense.id in self._expenses[group_id]:
            raise DuplicateError(f"Expense already exists: {expense.id}")
        self._expenses[group_id][expense.id] = expense.model_copy(deep=True)
        return True

    async def persist_settlement(self, group_id: str, settlement: Settlement) -> bool:
        self._require_group(group_id)
        if settlement.group_id != group_id:
            raise StorageError(
                f"Settlement belongs to group {settlement.group_id}, not {group_id}"
            )
        if settlement.id in self._settlements[group_id]:
            raise DuplicateError(f"Settlement already exists: {settlement.id}")
        self._settlements[group_id][settlement.id] = settlement.model_copy(deep=True)
        return True

    async def get_expense(self, group_id: str, expense_id: str) -> Optional[SharedExpense]:
        self._require_group(group_id)
        expense = self._expenses[group_id].get(expense_id)
        return expense.model_copy(deep=True) if expense else None

    async def get_settlement(self, group_id: str, settlement_id: str) -> Optional[Settlement]:
        self._require_group(group_id)
        settlement = self._settlements[group_id].get(settlement_id)
        return settlement.model_copy(deep=True) if settlement else None

    async def delete_expense(self, group_id: str, expense_id: str) -> bool:
        self._require_group(group_id)
        return self._expenses[group_id].pop(expense_id, None) is not None

    async def delete_settlement(self, group_id: str, settlement_id: str) -> bool:
        self._require_group(group_id)
        return self._settlements[group_id].pop(settlement_id, None) is not None


class InMemoryAuditStorage(AuditStorageInterface):
    """Append-only in-memory audit log."""

    def __init__(self):
        self._events: list[AuditEvent] = []

    async def append_event(self, event: AuditEvent) -> bool:
        self._events.append(event.model_copy(deep=True))
        return True

    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        return [e for e in self._events if e.correlation_id == correlation_id]

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        return [
            e for e in self._events
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        return list(reversed(self._events))[:limit]
