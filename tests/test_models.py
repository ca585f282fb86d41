"""
Tests for Group Ledger

Test strategy:
1. Unit tests for individual components (models, calculator, aggregator)
2. Integration tests for flows (with in-memory storage)
3. No real storage backends in tests
"""

import pytest
from decimal import Decimal
from uuid import uuid4

from splitledger.models.group import (
    ExpenseSplit,
    Group,
    GroupMember,
    MemberRole,
    Settlement,
    SharedExpense,
)
from splitledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from splitledger.models.validation import (
    SettlementDraft,
    ValidationIssue,
    ValidationResult,
)


def make_group(**overrides):
    data = dict(
        name="Flat 4B",
        created_by="alice",
        members=[
            GroupMember(user_id="alice", name="Alice", role=MemberRole.ADMIN),
            GroupMember(user_id="bob", name="Bob"),
        ],
    )
    data.update(overrides)
    return Group(**data)


class TestGroupModels:
    """Tests for group and membership models."""

    def test_group_creation(self):
        """Test Group model creation."""
        group = make_group()
        assert group.name == "Flat 4B"
        assert group.member_ids == ["alice", "bob"]
        assert group.admin_count == 1
        assert group.is_admin("alice") is True
        assert group.is_admin("bob") is False

    def test_group_name_strips_whitespace(self):
        """Test that whitespace is stripped from group name."""
        group = make_group(name="  Flat 4B  ")
        assert group.name == "Flat 4B"

    def test_group_requires_an_admin(self):
        """Test that a group without admins is rejected."""
        with pytest.raises(ValueError, match="at least one admin"):
            make_group(members=[GroupMember(user_id="bob")])

    def test_group_rejects_duplicate_members(self):
        """Test that a user can only be a member once."""
        with pytest.raises(ValueError, match="only be a member of a group once"):
            make_group(members=[
                GroupMember(user_id="alice", role=MemberRole.ADMIN),
                GroupMember(user_id="alice"),
            ])

    def test_group_rejects_member_also_former(self):
        """Test that current and former members cannot overlap."""
        with pytest.raises(ValueError, match="both current and former"):
            make_group(former_members=[GroupMember(user_id="bob")])

    def test_all_members_includes_former(self):
        """Test all_members lists current then former members."""
        group = make_group(former_members=[GroupMember(user_id="carol")])
        assert [m.user_id for m in group.all_members()] == ["alice", "bob", "carol"]
        assert group.is_member("carol") is False

    def test_with_members_revalidates(self):
        """Test that with_members enforces the admin invariant."""
        group = make_group()
        with pytest.raises(ValueError):
            group.with_members([GroupMember(user_id="bob")])

    def test_member_joined_at_normalized(self):
        """Test joined_at accepts ISO strings."""
        member = GroupMember(user_id="alice", joined_at="2024-01-01T00:00:00Z")
        assert member.joined_at == 1704067200000


class TestExpenseModels:
    """Tests for shared expense models."""

    def test_expense_creation(self):
        """Test SharedExpense model creation."""
        expense = SharedExpense(
            group_id="g1",
            amount=Decimal("90.00"),
            paid_by="alice",
            description="Groceries",
            splits=[
                ExpenseSplit(user_id="alice", amount=Decimal("45.00")),
                ExpenseSplit(user_id="bob", amount=Decimal("45.00")),
            ],
        )
        assert expense.participant_ids == ["alice", "bob"]
        assert expense.share_of("bob") == Decimal("45.00")
        assert expense.share_of("carol") == Decimal("0")
        assert len(expense.id) == 32

    def test_expense_rejects_unbalanced_splits(self):
        """Test that splits must add up to the amount."""
        with pytest.raises(ValueError, match="Splits add up to"):
            SharedExpense(
                group_id="g1",
                amount=Decimal("100"),
                paid_by="alice",
                splits=[
                    ExpenseSplit(user_id="alice", amount=Decimal("50")),
                    ExpenseSplit(user_id="bob", amount=Decimal("49.98")),
                ],
            )

    def test_expense_accepts_splits_within_tolerance(self):
        """Test that a one-cent difference is tolerated."""
        expense = SharedExpense(
            group_id="g1",
            amount=Decimal("100"),
            paid_by="alice",
            splits=[
                ExpenseSplit(user_id="alice", amount=Decimal("50")),
                ExpenseSplit(user_id="bob", amount=Decimal("49.99")),
            ],
        )
        assert expense.amount == Decimal("100")

    def test_expense_rejects_duplicate_participant(self):
        """Test one split per participant."""
        with pytest.raises(ValueError, match="only have one split"):
            SharedExpense(
                group_id="g1",
                amount=Decimal("10"),
                paid_by="alice",
                splits=[
                    ExpenseSplit(user_id="bob", amount=Decimal("5")),
                    ExpenseSplit(user_id="bob", amount=Decimal("5")),
                ],
            )

    def test_expense_rejects_non_positive_amount(self):
        """Test that the amount must be positive."""
        with pytest.raises(ValueError):
            SharedExpense(group_id="g1", amount=Decimal("0"), paid_by="alice")

    def test_split_rejects_negative_amount(self):
        """Test that negative split amounts are rejected."""
        with pytest.raises(ValueError):
            ExpenseSplit(user_id="bob", amount=Decimal("-1"))


class TestSettlementModels:
    """Tests for settlement models."""

    def test_settlement_accepts_from_to_keys(self):
        """Test that stored "from"/"to" keys populate the model."""
        settlement = Settlement.model_validate({
            "group_id": "g1",
            "from": "bob",
            "to": "alice",
            "amount": "25.50",
            "date": 1700000000000,
        })
        assert settlement.from_user == "bob"
        assert settlement.to_user == "alice"
        assert settlement.amount == Decimal("25.50")

    def test_settlement_dump_by_alias(self):
        """Test that dumping by alias restores "from"/"to"."""
        settlement = Settlement(group_id="g1", from_user="bob", to_user="alice", amount=5)
        data = settlement.model_dump(by_alias=True)
        assert data["from"] == "bob"
        assert data["to"] == "alice"

    def test_settlement_rejects_self_payment(self):
        """Test that a member cannot settle with themselves."""
        with pytest.raises(ValueError, match="two different members"):
            Settlement(group_id="g1", from_user="bob", to_user="bob", amount=5)

    def test_settlement_draft_is_lenient(self):
        """Test that drafts allow missing fields for validation to report."""
        draft = SettlementDraft(group_id="g1")
        assert draft.from_user is None
        assert draft.amount is None


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.GROUP_CREATED,
            description="Group created",
        )
        assert event.event_type == AuditEventType.GROUP_CREATED
        assert event.severity == AuditSeverity.INFO

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEvent(
            event_type=AuditEventType.EXPENSE_ADDED,
            description="Expense added",
            details={"paid_by": "alice", "amount": "1000"},
        )
        log_dict = event.to_log_dict()
        assert "event_id" in log_dict
        assert log_dict["event_type"] == "expense_added"
        assert log_dict["details"]["paid_by"] == "alice"

    def test_audit_event_to_record(self):
        """Test conversion to a flat storage record."""
        event = AuditEventBuilder.expense_added(
            group_id="g1",
            expense_id="e1",
            amount=Decimal("12.50"),
            paid_by="alice",
            participant_count=2,
            actor_id="alice",
        )
        record = event.to_record()
        assert record["event_type"] == "expense_added"
        assert '"amount": "12.50"' in record["details"]

    def test_audit_event_builder_member_removed(self):
        """Test AuditEventBuilder.member_removed by an admin."""
        correlation_id = uuid4()
        event = AuditEventBuilder.member_removed(
            group_id="g1",
            user_id="bob",
            actor_id="alice",
            correlation_id=correlation_id,
        )
        assert event.event_type == AuditEventType.MEMBER_REMOVED
        assert event.entity_id == "bob"
        assert event.correlation_id == correlation_id

    def test_audit_event_builder_member_left(self):
        """Test that removing yourself is recorded as leaving."""
        event = AuditEventBuilder.member_removed(
            group_id="g1",
            user_id="bob",
            actor_id="bob",
        )
        assert event.event_type == AuditEventType.MEMBER_LEFT

    def test_audit_event_builder_data_integrity_error(self):
        """Test data integrity errors are logged at error severity."""
        event = AuditEventBuilder.data_integrity_error(
            group_id="g1",
            error_message="Ledger references non-members",
            unknown_user_ids=["mallory"],
        )
        assert event.severity == AuditSeverity.ERROR
        assert event.details["unknown_user_ids"] == ["mallory"]


class TestValidationResult:
    """Tests for ValidationResult model."""

    def test_validation_result_has_errors(self):
        """Test has_errors property."""
        result = ValidationResult(
            entity_type="expense",
            schema_valid=False,
            semantic_valid=False,
            is_valid=False,
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="missing",
                    message="Expense amount is required",
                    severity="error",
                ),
            ],
        )
        assert result.has_errors is True
        assert result.error_count == 1

    def test_validation_result_warnings_only(self):
        """Test that warnings don't count as errors."""
        result = ValidationResult(
            entity_type="settlement",
            schema_valid=True,
            semantic_valid=True,
            is_valid=True,
            issues=[
                ValidationIssue(
                    field="amount",
                    issue_type="overpayment",
                    message="Settlement is more than what is owed",
                    severity="warning",
                ),
            ],
        )
        assert result.has_errors is False
        assert result.error_count == 0

    def test_validation_result_entity_type(self):
        """Test that only expenses and settlements are validated."""
        with pytest.raises(ValueError):
            ValidationResult(
                entity_type="invoice",
                schema_valid=True,
                semantic_valid=True,
                is_valid=True,
            )


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
