"""
Group Ledger Service

This module ties together storage, validation, the split calculator,
the balance aggregator, the balance cache and the audit log, and defines
the end-to-end flows for:
1. Group membership (create, add, remove, leave)
2. Expenses (validate → persist → invalidate → audit)
3. Settlements (validate → persist → invalidate → audit)
4. Balances (fetch full history → aggregate → cache)

DESIGN DECISION: The service enforces the boundaries:
- Only members write to a group, only admins manage membership
- Nothing is persisted without passing validation
- A group never loses its last admin
- Every write invalidates the group's cached balances and is audited

Storage reads are paged. Balances are always computed from the COMPLETE
history: the service follows next_cursor until has_more is False.
"""

from decimal import Decimal
from typing import Any, Iterable, Mapping, Optional, Sequence, Union
from uuid import UUID

import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from splitledger.audit import AuditLogger, create_correlation_id
from splitledger.balances import DataIntegrityError, compute_balances, summarize_user_balance
from splitledger.config import LedgerSettings, get_settings
from splitledger.ledger.cache import BalanceCache
from splitledger.models.balance import MemberBalance, UserBalanceOverview
from splitledger.models.group import (
    ExpenseSplit,
    Group,
    GroupMember,
    MemberRole,
    Settlement,
    SharedExpense,
)
from splitledger.models.split import RoundingStrategy, SplitType
from splitledger.models.validation import ExpenseDraft, SettlementDraft, ValidationResult
from splitledger.services.storage import (
    AuditStorageInterface,
    ConnectionError as StorageConnectionError,
    GroupStorageInterface,
    InMemoryAuditStorage,
    InMemoryGroupStorage,
)
from splitledger.splits import calculate_splits
from splitledger.validation import LedgerValidator


logger = structlog.get_logger(__name__)


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


class GroupNotFoundError(LedgerError):
    """The group does not exist."""
    pass


class PermissionDeniedError(LedgerError):
    """The acting user is not allowed to do this."""
    pass


class MembershipError(LedgerError):
    """Duplicate member, unknown member, or removal of the last admin."""
    pass


class ExpenseNotFoundError(LedgerError):
    pass


class SettlementNotFoundError(LedgerError):
    pass


class ExpenseRejectedError(LedgerError):
    """An expense draft failed validation."""

    def __init__(self, message: str, result: ValidationResult):
        super().__init__(message)
        self.result = result


class SettlementRejectedError(LedgerError):
    """A settlement draft failed validation."""

    def __init__(self, message: str, result: ValidationResult):
        super().__init__(message)
        self.result = result


class GroupLedgerService:
    """
    Orchestrates every read and write of a group ledger.

    All collaborators are injectable; anything not given is built from
    LedgerSettings.
    """

    def __init__(
        self,
        storage: GroupStorageInterface,
        validator: Optional[LedgerValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
        cache: Optional[BalanceCache] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._settings = settings or get_settings().ledger
        self._storage = storage
        self._validator = validator or LedgerValidator(self._settings)
        self._audit_logger = audit_logger or AuditLogger()
        self._cache = cache if cache is not None else BalanceCache(
            ttl_seconds=self._settings.balance_cache_ttl_seconds,
            max_size=self._settings.balance_cache_max_size,
        )

    @property
    def cache(self) -> BalanceCache:
        return self._cache

    # -------------------------------------------------------------------------
    # Groups & membership
    # -------------------------------------------------------------------------

    async def get_group(self, group_id: str) -> Group:
        """
        Load a group.

        Raises:
            GroupNotFoundError: If the group doesn't exist
        """
        group = await self._storage.get_group(group_id)
        if group is None:
            raise GroupNotFoundError(f"Group not found: {group_id}")
        return group

    async def create_group(
        self,
        name: str,
        creator: GroupMember,
        correlation_id: Optional[UUID] = None,
    ) -> Group:
        """Create a group. The creator always becomes its first admin."""
        correlation_id = correlation_id or create_correlation_id()

        admin = creator.model_copy(update={"role": MemberRole.ADMIN})
        group = Group(name=name, created_by=creator.user_id, members=[admin])
        await self._storage.save_group(group)

        await self._audit_logger.log_group_created(
            group_id=group.id,
            name=group.name,
            actor_id=creator.user_id,
            correlation_id=correlation_id,
        )
        return group

    async def add_member(
        self,
        group_id: str,
        actor_id: str,
        member: GroupMember,
        correlation_id: Optional[UUID] = None,
    ) -> Group:
        """
        Add a member to a group.

        Only admins can add members. A former member who is added again
        is moved back from former_members.

        Raises:
            PermissionDeniedError: The actor is not an admin
            MembershipError: The user is already a member
        """
        correlation_id = correlation_id or create_correlation_id()
        group = await self.get_group(group_id)

        if not group.is_admin(actor_id):
            raise PermissionDeniedError("Only group admins can add members")
        if group.is_member(member.user_id):
            raise MembershipError(f"{member.user_id} is already a member of {group.name}")

        former = [m for m in group.former_members if m.user_id != member.user_id]
        updated = group.with_members(group.members + [member], former)
        await self._storage.save_group(updated)
        self._cache.invalidate(group_id)

        await self._audit_logger.log_member_added(
            group_id=group_id,
            user_id=member.user_id,
            role=member.role.value,
            actor_id=actor_id,
            correlation_id=correlation_id,
        )
        return updated

    async def remove_member(
        self,
        group_id: str,
        actor_id: str,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> Group:
        """
        Remove a member from a group.

        Admins can remove anyone; members can only remove themselves.
        The removed member is kept in former_members so their historic
        splits still resolve.

        Raises:
            PermissionDeniedError: A non-admin removing someone else
            MembershipError: Unknown member, or the last admin
        """
        correlation_id = correlation_id or create_correlation_id()
        group = await self.get_group(group_id)

        member = group.get_member(user_id)
        if member is None:
            raise MembershipError(f"{user_id} is not a member of {group.name}")
        if actor_id != user_id and not group.is_admin(actor_id):
            raise PermissionDeniedError("Only group admins can remove other members")
        if member.is_admin and group.admin_count == 1:
            raise MembershipError(
                "Cannot remove the last admin. Make another member an admin first."
            )

        remaining = [m for m in group.members if m.user_id != user_id]
        former = [m for m in group.former_members if m.user_id != user_id] + [member]
        updated = group.with_members(remaining, former)
        await self._storage.save_group(updated)
        self._cache.invalidate(group_id)

        await self._audit_logger.log_member_removed(
            group_id=group_id,
            user_id=user_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
        )
        return updated

    async def leave_group(
        self,
        group_id: str,
        user_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> Group:
        return await self.remove_member(group_id, user_id, user_id, correlation_id)

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    async def add_expense(
        self,
        actor_id: str,
        draft: ExpenseDraft,
        correlation_id: Optional[UUID] = None,
    ) -> SharedExpense:
        """
        Validate and save an expense.

        Raises:
            PermissionDeniedError: The actor is not a member
            ExpenseRejectedError: The draft failed validation
        """
        correlation_id = correlation_id or create_correlation_id()
        group = await self.get_group(draft.group_id)

        if not group.is_member(actor_id):
            raise PermissionDeniedError("Only group members can add expenses")

        result = self._validator.validate_expense(draft, group)
        if not result.is_valid:
            await self._audit_logger.log_expense_rejected(
                group_id=group.id,
                issues=result.issues_as_dicts(),
                actor_id=actor_id,
                correlation_id=correlation_id,
            )
            raise ExpenseRejectedError(
                self._validator.get_user_friendly_summary(result),
                result,
            )

        expense = SharedExpense(
            group_id=group.id,
            date=draft.date,
            amount=draft.amount,
            description=draft.description,
            paid_by=draft.paid_by,
            category=draft.category,
            receipt_image_url=draft.receipt_image_url,
            splits=draft.splits,
            created_by=draft.created_by or actor_id,
        )
        await self._storage.persist_expense(group.id, expense)
        self._cache.invalidate(group.id)

        await self._audit_logger.log_expense_added(
            group_id=group.id,
            expense_id=expense.id,
            amount=expense.amount,
            paid_by=expense.paid_by,
            participant_count=len(expense.splits),
            actor_id=actor_id,
            correlation_id=correlation_id,
        )
        return expense

    async def add_split_expense(
        self,
        actor_id: str,
        group_id: str,
        amount: Union[Decimal, int, float, str],
        paid_by: str,
        participants: Iterable[Any],
        split_type: Union[SplitType, str] = SplitType.EQUAL,
        description: str = "",
        custom_amounts: Optional[Mapping[str, Any]] = None,
        custom_percentages: Optional[Mapping[str, Any]] = None,
        rounding_strategy: Union[RoundingStrategy, str, None] = None,
        category: Optional[str] = None,
        date: Any = None,
        correlation_id: Optional[UUID] = None,
    ) -> SharedExpense:
        """
        Calculate the splits for an expense, then validate and save it.

        Raises:
            UnsupportedSplitTypeError / UnsupportedRoundingStrategyError
            ExpenseRejectedError: e.g. the calculator returned no splits
        """
        results = calculate_splits(
            amount,
            participants,
            split_type,
            custom_amounts=custom_amounts,
            custom_percentages=custom_percentages,
            rounding_strategy=rounding_strategy,
        )

        draft_data = dict(
            group_id=group_id,
            amount=amount,
            paid_by=paid_by,
            description=description,
            category=category,
            splits=[ExpenseSplit(user_id=r.user_id, amount=r.amount) for r in results],
            created_by=actor_id,
        )
        if date is not None:
            draft_data["date"] = date

        return await self.add_expense(actor_id, ExpenseDraft(**draft_data), correlation_id)

    async def delete_expense(
        self,
        group_id: str,
        expense_id: str,
        actor_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Delete an expense. Allowed for its creator and group admins.

        Raises:
            ExpenseNotFoundError: No such expense in the group
            PermissionDeniedError: Not a current member, or neither creator nor admin
        """
        correlation_id = correlation_id or create_correlation_id()
        group = await self.get_group(group_id)

        expense = await self._storage.get_expense(group_id, expense_id)
        if expense is None:
            raise ExpenseNotFoundError(f"Expense not found: {expense_id}")
        if not group.is_member(actor_id):
            raise PermissionDeniedError("Only group members can delete expenses")
        if expense.created_by != actor_id and not group.is_admin(actor_id):
            raise PermissionDeniedError(
                "Only the member who added this expense or an admin can delete it"
            )

        await self._storage.delete_expense(group_id, expense_id)
        self._cache.invalidate(group_id)

        await self._audit_logger.log_expense_deleted(
            group_id=group_id,
            expense_id=expense_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
        )

    # -------------------------------------------------------------------------
    # Settlements
    # -------------------------------------------------------------------------

    async def add_settlement(
        self,
        actor_id: str,
        draft: SettlementDraft,
        correlation_id: Optional[UUID] = None,
    ) -> Settlement:
        """
        Validate and save a settlement.

        The current debt from draft.from_user to draft.to_user is looked
        up so that overpayments are flagged as a warning.

        Raises:
            PermissionDeniedError: The actor is not a member
            SettlementRejectedError: The draft failed validation
        """
        correlation_id = correlation_id or create_correlation_id()
        group = await self.get_group(draft.group_id)

        if not group.is_member(actor_id):
            raise PermissionDeniedError("Only group members can record settlements")

        outstanding = None
        if group.is_member(draft.from_user) and group.is_member(draft.to_user):
            balances = await self.get_group_balances(group.id, correlation_id)
            outstanding = balances[draft.from_user].owes_to_others.get(
                draft.to_user, Decimal("0")
            )

        result = self._validator.validate_settlement(draft, group, outstanding)
        if not result.is_valid:
            await self._audit_logger.log_settlement_rejected(
                group_id=group.id,
                issues=result.issues_as_dicts(),
                actor_id=actor_id,
                correlation_id=correlation_id,
            )
            raise SettlementRejectedError(
                self._validator.get_user_friendly_summary(result),
                result,
            )

        settlement = Settlement(
            group_id=group.id,
            from_user=draft.from_user,
            to_user=draft.to_user,
            amount=draft.amount,
            date=draft.date,
            notes=draft.notes,
            related_expense_ids=draft.related_expense_ids,
            created_by=draft.created_by or actor_id,
        )
        await self._storage.persist_settlement(group.id, settlement)
        self._cache.invalidate(group.id)

        await self._audit_logger.log_settlement_recorded(
            group_id=group.id,
            settlement_id=settlement.id,
            from_user=settlement.from_user,
            to_user=settlement.to_user,
            amount=settlement.amount,
            actor_id=actor_id,
            correlation_id=correlation_id,
        )
        return settlement

    async def delete_settlement(
        self,
        group_id: str,
        settlement_id: str,
        actor_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Delete a settlement. Allowed for its creator and group admins.

        Raises:
            SettlementNotFoundError: No such settlement in the group
            PermissionDeniedError: Not a current member, or neither creator nor admin
        """
        correlation_id = correlation_id or create_correlation_id()
        group = await self.get_group(group_id)

        settlement = await self._storage.get_settlement(group_id, settlement_id)
        if settlement is None:
            raise SettlementNotFoundError(f"Settlement not found: {settlement_id}")
        if not group.is_member(actor_id):
            raise PermissionDeniedError("Only group members can delete settlements")
        if settlement.created_by != actor_id and not group.is_admin(actor_id):
            raise PermissionDeniedError(
                "Only the member who recorded this settlement or an admin can delete it"
            )

        await self._storage.delete_settlement(group_id, settlement_id)
        self._cache.invalidate(group_id)

        await self._audit_logger.log_settlement_deleted(
            group_id=group_id,
            settlement_id=settlement_id,
            actor_id=actor_id,
            correlation_id=correlation_id,
        )

    # -------------------------------------------------------------------------
    # Full history
    # -------------------------------------------------------------------------

    def _retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self._settings.fetch_retry_attempts),
            wait=wait_exponential(
                multiplier=1,
                min=self._settings.fetch_retry_min_wait_seconds,
                max=self._settings.fetch_retry_max_wait_seconds,
            ),
            retry=retry_if_exception_type(StorageConnectionError),
            reraise=True,
        )

    async def _fetch_page(self, operation: str, group_id: str, fetch, **kwargs):
        try:
            async for attempt in self._retrying():
                with attempt:
                    page = await fetch(group_id, **kwargs)
        except StorageConnectionError as e:
            await self._audit_logger.log_storage_error(
                operation=operation,
                error_message=str(e),
                group_id=group_id,
            )
            raise
        return page

    async def fetch_all_expenses(
        self,
        group_id: str,
        date_from: Optional[int] = None,
        date_to: Optional[int] = None,
    ) -> list[SharedExpense]:
        """Every expense of a group, following page cursors to the end."""
        expenses = []
        cursor = None
        while True:
            page = await self._fetch_page(
                "fetch_group_expenses",
                group_id,
                self._storage.fetch_group_expenses,
                date_from=date_from,
                date_to=date_to,
                cursor=cursor,
                limit=self._settings.fetch_page_size,
            )
            expenses.extend(page.items)
            if not page.has_more:
                break
            cursor = page.next_cursor

        logger.debug("expenses_fetched", group_id=group_id, count=len(expenses))
        return expenses

    async def fetch_all_settlements(self, group_id: str) -> list[Settlement]:
        """Every settlement of a group, following page cursors to the end."""
        settlements = []
        cursor = None
        while True:
            page = await self._fetch_page(
                "fetch_group_settlements",
                group_id,
                self._storage.fetch_group_settlements,
                cursor=cursor,
                limit=self._settings.fetch_page_size,
            )
            settlements.extend(page.items)
            if not page.has_more:
                break
            cursor = page.next_cursor

        logger.debug("settlements_fetched", group_id=group_id, count=len(settlements))
        return settlements

    # -------------------------------------------------------------------------
    # Balances
    # -------------------------------------------------------------------------

    async def get_group_balances(
        self,
        group_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> dict[str, MemberBalance]:
        """
        Balances of every current and former member of a group.

        Served from the cache when possible.

        Raises:
            GroupNotFoundError: If the group doesn't exist
            DataIntegrityError: The history references non-members
                (strict mode only)
        """
        correlation_id = correlation_id or create_correlation_id()

        cached = self._cache.get(group_id)
        if cached is not None:
            await self._audit_logger.log_balances_computed(
                group_id=group_id,
                member_count=len(cached),
                from_cache=True,
                correlation_id=correlation_id,
            )
            return {k: v.model_copy(deep=True) for k, v in cached.items()}

        group = await self.get_group(group_id)
        expenses = await self.fetch_all_expenses(group_id)
        settlements = await self.fetch_all_settlements(group_id)

        try:
            balances = compute_balances(
                group.all_members(),
                expenses,
                settlements,
                strict=self._settings.strict_member_references,
            )
        except DataIntegrityError as e:
            await self._audit_logger.log_data_integrity_error(
                group_id=group_id,
                error_message=str(e),
                unknown_user_ids=e.unknown_user_ids,
                correlation_id=correlation_id,
            )
            raise

        self._cache.set(group_id, balances)
        await self._audit_logger.log_balances_computed(
            group_id=group_id,
            member_count=len(balances),
            expense_count=len(expenses),
            settlement_count=len(settlements),
            from_cache=False,
            correlation_id=correlation_id,
        )
        return {k: v.model_copy(deep=True) for k, v in balances.items()}

    async def get_user_balance(
        self,
        user_id: str,
        group_ids: Sequence[str],
    ) -> UserBalanceOverview:
        """A user's totals across the given groups."""
        ledgers = []
        for group_id in group_ids:
            group = await self.get_group(group_id)
            expenses = await self.fetch_all_expenses(group_id)
            settlements = await self.fetch_all_settlements(group_id)
            ledgers.append((group, expenses, settlements))

        return summarize_user_balance(
            user_id,
            ledgers,
            strict=self._settings.strict_member_references,
        )


def create_app_components(
    storage: Optional[GroupStorageInterface] = None,
    audit_storage: Optional[AuditStorageInterface] = None,
) -> tuple[GroupLedgerService, GroupStorageInterface]:
    """
    Factory function to create all application components.

    Args:
        storage: Group storage backend. Defaults to in-memory storage.
        audit_storage: Audit storage backend. Defaults to in-memory storage.

    Returns:
        (ledger_service, storage)
    """
    storage = storage or InMemoryGroupStorage()
    audit_logger = AuditLogger(audit_storage or InMemoryAuditStorage())

    service = GroupLedgerService(
        storage=storage,
        audit_logger=audit_logger,
    )
    return service, storage
