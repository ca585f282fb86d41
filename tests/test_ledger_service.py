"""
Integration tests for the group ledger service.

Everything runs against in-memory storage. Async flows are driven with
asyncio.run.
"""

import asyncio

import pytest
from decimal import Decimal

from splitledger.audit import AuditLogger
from splitledger.balances import DataIntegrityError
from splitledger.config import LedgerSettings
from splitledger.ledger import (
    ExpenseNotFoundError,
    ExpenseRejectedError,
    GroupLedgerService,
    GroupNotFoundError,
    MembershipError,
    PermissionDeniedError,
    SettlementNotFoundError,
    SettlementRejectedError,
    create_app_components,
)
from splitledger.models.audit import AuditEventType
from splitledger.models.group import ExpenseSplit, GroupMember, MemberRole, SharedExpense
from splitledger.models.split import SplitType
from splitledger.models.validation import ExpenseDraft, SettlementDraft
from splitledger.services.storage import (
    ConnectionError as StorageConnectionError,
    InMemoryAuditStorage,
    InMemoryGroupStorage,
)


def fast_settings(**overrides):
    data = dict(
        fetch_page_size=2,
        fetch_retry_attempts=3,
        fetch_retry_min_wait_seconds=0,
        fetch_retry_max_wait_seconds=0,
        strict_member_references=True,
    )
    data.update(overrides)
    return LedgerSettings(**data)


class CountingStorage(InMemoryGroupStorage):
    """Counts page reads and can fail the first few of them."""

    def __init__(self, failures=0):
        super().__init__()
        self.expense_page_reads = 0
        self.failures = failures

    async def fetch_group_expenses(self, group_id, **kwargs):
        self.expense_page_reads += 1
        if self.failures > 0:
            self.failures -= 1
            raise StorageConnectionError("store unavailable")
        return await super().fetch_group_expenses(group_id, **kwargs)


def make_service(storage=None, **settings):
    storage = storage or CountingStorage()
    audit_storage = InMemoryAuditStorage()
    service = GroupLedgerService(
        storage=storage,
        audit_logger=AuditLogger(audit_storage),
        settings=fast_settings(**settings),
    )
    return service, storage, audit_storage


async def flat_with_members(service):
    group = await service.create_group("Flat", GroupMember(user_id="alice", name="Alice"))
    await service.add_member(group.id, "alice", GroupMember(user_id="bob", name="Bob"))
    await service.add_member(group.id, "alice", GroupMember(user_id="carol", name="Carol"))
    return group.id


async def event_types(audit_storage):
    return [e.event_type for e in await audit_storage.get_recent_events()]


class TestMembership:
    """Tests for group membership rules."""

    def test_creator_becomes_admin(self):
        async def scenario():
            service, _, audit = make_service()
            group = await service.create_group("Flat", GroupMember(user_id="alice"))
            return group, await event_types(audit)

        group, events = asyncio.run(scenario())
        assert group.is_admin("alice")
        assert group.created_by == "alice"
        assert events == [AuditEventType.GROUP_CREATED]

    def test_only_admins_add_members(self):
        async def scenario():
            service, _, _ = make_service()
            group_id = await flat_with_members(service)
            await service.add_member(group_id, "bob", GroupMember(user_id="dave"))

        with pytest.raises(PermissionDeniedError):
            asyncio.run(scenario())

    def test_duplicate_member_rejected(self):
        async def scenario():
            service, _, _ = make_service()
            group_id = await flat_with_members(service)
            await service.add_member(group_id, "alice", GroupMember(user_id="bob"))

        with pytest.raises(MembershipError, match="already a member"):
            asyncio.run(scenario())

    def test_last_admin_cannot_leave(self):
        async def scenario():
            service, _, _ = make_service()
            group_id = await flat_with_members(service)
            await service.leave_group(group_id, "alice")

        with pytest.raises(MembershipError, match="last admin"):
            asyncio.run(scenario())

    def test_second_admin_can_leave(self):
        async def scenario():
            service, _, _ = make_service()
            group_id = await flat_with_members(service)
            await service.add_member(
                group_id, "alice", GroupMember(user_id="dave", role=MemberRole.ADMIN)
            )
            return await service.leave_group(group_id, "alice")

        group = asyncio.run(scenario())
        assert group.member_ids == ["bob", "carol", "dave"]
        assert [m.user_id for m in group.former_members] == ["alice"]

    def test_members_cannot_remove_others(self):
        async def scenario():
            service, _, _ = make_service()
            group_id = await flat_with_members(service)
            await service.remove_member(group_id, "bob", "carol")

        with pytest.raises(PermissionDeniedError):
            asyncio.run(scenario())

    def test_member_leaves_and_rejoins(self):
        """Test leaving moves a member to former_members and re-adding moves them back."""
        async def scenario():
            service, _, audit = make_service()
            group_id = await flat_with_members(service)
            left = await service.leave_group(group_id, "bob")
            rejoined = await service.add_member(group_id, "alice", GroupMember(user_id="bob"))
            return left, rejoined, await event_types(audit)

        left, rejoined, events = asyncio.run(scenario())
        assert not left.is_member("bob")
        assert [m.user_id for m in left.former_members] == ["bob"]
        assert rejoined.is_member("bob")
        assert rejoined.former_members == []
        assert AuditEventType.MEMBER_LEFT in events

    def test_remove_unknown_member(self):
        async def scenario():
            service, _, _ = make_service()
            group_id = await flat_with_members(service)
            await service.remove_member(group_id, "alice", "mallory")

        with pytest.raises(MembershipError, match="not a member"):
            asyncio.run(scenario())

    def test_missing_group(self):
        async def scenario():
            service, _, _ = make_service()
            await service.get_group_balances("nope")

        with pytest.raises(GroupNotFoundError):
            asyncio.run(scenario())


class TestExpenses:
    """Tests for adding and deleting expenses."""

    def test_split_expense_updates_balances(self):
        async def scenario():
            service, _, audit = make_service()
            group_id = await flat_with_members(service)
            expense = await service.add_split_expense(
                "alice", group_id, "10", "alice", ["alice", "bob", "carol"],
                description="Milk",
            )
            balances = await service.get_group_balances(group_id)
            return expense, balances, await event_types(audit)

        expense, balances, events = asyncio.run(scenario())
        assert sum(s.amount for s in expense.splits) == Decimal("10")
        assert expense.created_by == "alice"
        assert balances["alice"].total_paid == Decimal("10")
        assert balances["alice"].net_balance == Decimal("10") - expense.share_of("alice")
        assert balances["bob"].owes_to_others["alice"] == expense.share_of("bob")
        assert AuditEventType.EXPENSE_ADDED in events
        assert AuditEventType.BALANCES_COMPUTED in events

    def test_percentage_split_expense(self):
        async def scenario():
            service, _, _ = make_service()
            group_id = await flat_with_members(service)
            return await service.add_split_expense(
                "bob", group_id, "200", "bob", ["alice", "bob"],
                split_type=SplitType.PERCENTAGE,
                custom_percentages={"alice": "25", "bob": "75"},
            )

        expense = asyncio.run(scenario())
        assert expense.share_of("alice") == Decimal("50.00")
        assert expense.share_of("bob") == Decimal("150.00")

    def test_non_member_cannot_add_expense(self):
        async def scenario():
            service, _, _ = make_service()
            group_id = await flat_with_members(service)
            await service.add_split_expense("mallory", group_id, "10", "alice", ["alice"])

        with pytest.raises(PermissionDeniedError):
            asyncio.run(scenario())

    def test_unbalanced_expense_rejected(self):
        """Test a draft whose splits don't add up is rejected and audited."""
        async def scenario():
            service, storage, audit = make_service()
            group_id = await flat_with_members(service)
            draft = ExpenseDraft(
                group_id=group_id,
                amount=Decimal("100"),
                paid_by="alice",
                splits=[
                    ExpenseSplit(user_id="alice", amount=Decimal("50")),
                    ExpenseSplit(user_id="bob", amount=Decimal("40")),
                ],
            )
            try:
                await service.add_expense("alice", draft)
            finally:
                page = await storage.fetch_group_expenses(group_id)
                assert page.items == []
                assert AuditEventType.EXPENSE_REJECTED in await event_types(audit)

        with pytest.raises(ExpenseRejectedError) as exc_info:
            asyncio.run(scenario())
        assert exc_info.value.result.is_valid is False
        assert "can't be saved" in str(exc_info.value)

    def test_degenerate_split_rejected(self):
        """Test an amount with nobody to split between is rejected."""
        async def scenario():
            service, _, _ = make_service()
            group_id = await flat_with_members(service)
            await service.add_split_expense("alice", group_id, "10", "alice", [])

        with pytest.raises(ExpenseRejectedError):
            asyncio.run(scenario())

    def test_delete_expense_permissions(self):
        """Test only the creator or an admin can delete an expense."""
        async def scenario():
            service, _, _ = make_service()
            group_id = await flat_with_members(service)
            expense = await service.add_split_expense(
                "bob", group_id, "30", "bob", ["alice", "bob", "carol"],
            )
            with pytest.raises(PermissionDeniedError):
                await service.delete_expense(group_id, expense.id, "carol")
            await service.delete_expense(group_id, expense.id, "alice")
            with pytest.raises(ExpenseNotFoundError):
                await service.delete_expense(group_id, expense.id, "alice")
            return await service.get_group_balances(group_id)

        balances = asyncio.run(scenario())
        assert all(b.total_paid == Decimal("0") for b in balances.values())

    def test_creator_can_delete_own_expense(self):
        async def scenario():
            service, _, audit = make_service()
            group_id = await flat_with_members(service)
            expense = await service.add_split_expense("bob", group_id, "30", "bob", ["bob"])
            await service.delete_expense(group_id, expense.id, "bob")
            return await event_types(audit)

        assert AuditEventType.EXPENSE_DELETED in asyncio.run(scenario())

    def test_former_member_cannot_delete_expense(self):
        """Test a member who left can no longer delete their expenses."""
        async def scenario():
            service, _, _ = make_service()
            group_id = await flat_with_members(service)
            expense = await service.add_split_expense(
                "bob", group_id, "30", "bob", ["alice", "bob", "carol"],
            )
            await service.leave_group(group_id, "bob")
            try:
                await service.delete_expense(group_id, expense.id, "bob")
            finally:
                assert len(await service.fetch_all_expenses(group_id)) == 1

        with pytest.raises(PermissionDeniedError, match="Only group members"):
            asyncio.run(scenario())


class TestSettlements:
    """Tests for recording and deleting settlements."""

    def test_settlement_clears_debt(self):
        async def scenario():
            service, _, _ = make_service()
            group_id = await flat_with_members(service)
            await service.add_split_expense("alice", group_id, "100", "alice", ["alice", "bob"])
            await service.add_settlement("bob", SettlementDraft(
                group_id=group_id, from_user="bob", to_user="alice", amount=Decimal("50"),
            ))
            return await service.get_group_balances(group_id)

        balances = asyncio.run(scenario())
        assert balances["bob"].owes_to_others["alice"] == Decimal("0")
        assert balances["bob"].net_balance == Decimal("-50")

    def test_overpayment_allowed(self):
        async def scenario():
            service, _, _ = make_service()
            group_id = await flat_with_members(service)
            await service.add_split_expense("alice", group_id, "100", "alice", ["alice", "bob"])
            return await service.add_settlement("bob", SettlementDraft(
                group_id=group_id, from_user="bob", to_user="alice", amount=Decimal("80"),
            ))

        settlement = asyncio.run(scenario())
        assert settlement.amount == Decimal("80")
        assert settlement.created_by == "bob"

    def test_self_settlement_rejected(self):
        async def scenario():
            service, _, audit = make_service()
            group_id = await flat_with_members(service)
            try:
                await service.add_settlement("bob", SettlementDraft(
                    group_id=group_id, from_user="bob", to_user="bob", amount=Decimal("5"),
                ))
            finally:
                assert AuditEventType.SETTLEMENT_REJECTED in await event_types(audit)

        with pytest.raises(SettlementRejectedError):
            asyncio.run(scenario())

    def test_delete_settlement_permissions(self):
        async def scenario():
            service, _, _ = make_service()
            group_id = await flat_with_members(service)
            settlement = await service.add_settlement("bob", SettlementDraft(
                group_id=group_id, from_user="bob", to_user="carol", amount=Decimal("5"),
            ))
            with pytest.raises(PermissionDeniedError):
                await service.delete_settlement(group_id, settlement.id, "carol")
            await service.delete_settlement(group_id, settlement.id, "bob")
            with pytest.raises(SettlementNotFoundError):
                await service.delete_settlement(group_id, settlement.id, "alice")

        asyncio.run(scenario())

    def test_former_member_cannot_delete_settlement(self):
        """Test a member who left can no longer delete their settlements."""
        async def scenario():
            service, _, _ = make_service()
            group_id = await flat_with_members(service)
            settlement = await service.add_settlement("bob", SettlementDraft(
                group_id=group_id, from_user="bob", to_user="carol", amount=Decimal("5"),
            ))
            await service.leave_group(group_id, "bob")
            try:
                await service.delete_settlement(group_id, settlement.id, "bob")
            finally:
                assert len(await service.fetch_all_settlements(group_id)) == 1

        with pytest.raises(PermissionDeniedError, match="Only group members"):
            asyncio.run(scenario())


class TestBalancesAndHistory:
    """Tests for full-history fetching and the balance cache."""

    def test_history_spans_several_pages(self):
        """Test every expense is counted when history is paged."""
        async def scenario():
            service, storage, _ = make_service()
            group_id = await flat_with_members(service)
            for _ in range(5):
                await service.add_split_expense("alice", group_id, "10", "alice", ["bob"])
            storage.expense_page_reads = 0
            balances = await service.get_group_balances(group_id)
            return balances, storage.expense_page_reads

        balances, reads = asyncio.run(scenario())
        assert balances["bob"].owes_to_others["alice"] == Decimal("50")
        assert reads == 3

    def test_cached_until_next_write(self):
        """Test balances are served from cache until the group changes."""
        async def scenario():
            service, storage, _ = make_service()
            group_id = await flat_with_members(service)
            await service.add_split_expense("alice", group_id, "10", "alice", ["bob"])

            await service.get_group_balances(group_id)
            reads_after_first = storage.expense_page_reads
            await service.get_group_balances(group_id)
            reads_after_second = storage.expense_page_reads

            await service.add_split_expense("bob", group_id, "4", "bob", ["alice"])
            cached_after_write = group_id in service.cache
            balances = await service.get_group_balances(group_id)
            return reads_after_first, reads_after_second, cached_after_write, balances

        first, second, cached_after_write, balances = asyncio.run(scenario())
        assert first == second
        assert cached_after_write is False
        assert balances["bob"].net_balance == Decimal("-6")

    def test_cached_balances_are_copies(self):
        async def scenario():
            service, _, _ = make_service()
            group_id = await flat_with_members(service)
            await service.add_split_expense("alice", group_id, "10", "alice", ["bob"])
            balances = await service.get_group_balances(group_id)
            balances["bob"].owes_to_others["alice"] = Decimal("0")
            return await service.get_group_balances(group_id)

        balances = asyncio.run(scenario())
        assert balances["bob"].owes_to_others["alice"] == Decimal("10")

    def test_cache_hit_audit_omits_counts(self):
        """Test a cache hit doesn't report an empty ledger."""
        async def scenario():
            service, _, audit = make_service()
            group_id = await flat_with_members(service)
            await service.add_split_expense("alice", group_id, "10", "alice", ["bob"])
            await service.get_group_balances(group_id)
            await service.get_group_balances(group_id)
            return [
                e for e in await audit.get_recent_events()
                if e.event_type == AuditEventType.BALANCES_COMPUTED
            ]

        cache_hit, computed = asyncio.run(scenario())
        assert cache_hit.details["from_cache"] is True
        assert "expense_count" not in cache_hit.details
        assert "cache" in cache_hit.description
        assert computed.details["from_cache"] is False
        assert computed.details["expense_count"] == 1
        assert computed.details["settlement_count"] == 0

    def test_former_member_history_kept(self):
        """Test a member who left still appears in balances."""
        async def scenario():
            service, _, _ = make_service()
            group_id = await flat_with_members(service)
            await service.add_split_expense("alice", group_id, "30", "alice", ["alice", "bob", "carol"])
            await service.leave_group(group_id, "carol")
            return await service.get_group_balances(group_id)

        balances = asyncio.run(scenario())
        assert balances["carol"].owes_to_others["alice"] == Decimal("10")

    def test_transient_fetch_errors_retried(self):
        async def scenario():
            storage = CountingStorage(failures=2)
            service, _, _ = make_service(storage=storage)
            group_id = await flat_with_members(service)
            return await service.fetch_all_expenses(group_id), storage.expense_page_reads

        expenses, reads = asyncio.run(scenario())
        assert expenses == []
        assert reads == 3

    def test_persistent_fetch_errors_raised(self):
        async def scenario():
            storage = CountingStorage(failures=10)
            service, _, audit = make_service(storage=storage)
            group_id = await flat_with_members(service)
            try:
                await service.get_group_balances(group_id)
            finally:
                assert storage.expense_page_reads == 3
                assert AuditEventType.STORAGE_ERROR in await event_types(audit)

        with pytest.raises(StorageConnectionError):
            asyncio.run(scenario())

    def test_data_integrity_error_logged(self):
        """Test strict mode reports history that references non-members."""
        async def scenario():
            service, storage, audit = make_service()
            group_id = await flat_with_members(service)
            await storage.persist_expense(group_id, SharedExpense(
                group_id=group_id,
                amount=Decimal("10"),
                paid_by="alice",
                splits=[ExpenseSplit(user_id="mallory", amount=Decimal("10"))],
            ))
            try:
                await service.get_group_balances(group_id)
            finally:
                assert AuditEventType.DATA_INTEGRITY_ERROR in await event_types(audit)

        with pytest.raises(DataIntegrityError):
            asyncio.run(scenario())

    def test_permissive_mode_drops_unknown_references(self):
        async def scenario():
            service, storage, _ = make_service(strict_member_references=False)
            group_id = await flat_with_members(service)
            await storage.persist_expense(group_id, SharedExpense(
                group_id=group_id,
                amount=Decimal("10"),
                paid_by="alice",
                splits=[ExpenseSplit(user_id="mallory", amount=Decimal("10"))],
            ))
            return await service.get_group_balances(group_id)

        balances = asyncio.run(scenario())
        assert "mallory" not in balances
        assert balances["alice"].total_paid == Decimal("10")

    def test_user_balance_across_groups(self):
        async def scenario():
            service, _, _ = make_service()
            flat = await flat_with_members(service)
            trip = await flat_with_members(service)
            await service.add_split_expense("alice", flat, "100", "alice", ["alice", "bob"])
            await service.add_split_expense("bob", trip, "40", "bob", ["alice", "bob"])
            return await service.get_user_balance("bob", [flat, trip])

        overview = asyncio.run(scenario())
        assert overview.total_paid == Decimal("40")
        assert overview.total_owed == Decimal("70")
        assert overview.net_balance == Decimal("-30")
        assert len(overview.group_balances) == 2


class TestFactory:
    def test_create_app_components(self):
        service, storage = create_app_components()
        assert isinstance(service, GroupLedgerService)
        assert isinstance(storage, InMemoryGroupStorage)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
