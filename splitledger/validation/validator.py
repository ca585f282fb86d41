"""
Two-Stage Validation Pipeline

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence
- Positive amounts
- One split per participant
- This catches malformed form input

STAGE 2 - SEMANTIC VALIDATION:
- Payer and participants are group members
- Splits add up to the amount (validate_splits)
- Future date and absurd amount detection
- Settlements larger than the outstanding debt
- This catches data that would corrupt the group's balances

IMPORTANT: Validation NEVER silently fixes issues.
It reports them so the member can correct the split before saving.
"""

from datetime import timedelta
from decimal import Decimal
from typing import Optional

from splitledger.config import LedgerSettings, get_settings
from splitledger.models.group import Group
from splitledger.models.timestamps import now_millis
from splitledger.models.validation import (
    ExpenseDraft,
    SettlementDraft,
    ValidationIssue,
    ValidationResult,
)
from splitledger.splits import format_currency_with_precision, validate_splits


def _is_valid(issues: list[ValidationIssue]) -> bool:
    return not any(issue.severity == "error" for issue in issues)


class LedgerValidator:
    """
    Validates expense and settlement drafts through a two-stage pipeline.

    Stage 1: Schema validation (needs only the draft)
    Stage 2: Semantic validation (needs the group for membership checks)
    """

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or get_settings().ledger

    # -------------------------------------------------------------------------
    # Expenses
    # -------------------------------------------------------------------------

    def _validate_expense_schema(
        self,
        draft: ExpenseDraft,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 1: Schema validation.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if draft.amount is None:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="missing",
                message="Expense amount is required",
                severity="error",
                suggested_fix="Enter how much was paid",
            ))
        elif draft.amount <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Expense amount must be greater than zero",
                severity="error",
            ))

        if not draft.paid_by:
            issues.append(ValidationIssue(
                field="paid_by",
                issue_type="missing",
                message="Select who paid for this expense",
                severity="error",
            ))

        if not draft.splits:
            issues.append(ValidationIssue(
                field="splits",
                issue_type="missing",
                message="An expense must be split between at least one member",
                severity="error",
                suggested_fix="Select the members sharing this expense",
            ))

        user_ids = [split.user_id for split in draft.splits]
        duplicates = sorted({u for u in user_ids if user_ids.count(u) > 1})
        if duplicates:
            issues.append(ValidationIssue(
                field="splits",
                issue_type="duplicate",
                message=f"Members appear more than once in the split: {', '.join(duplicates)}",
                severity="error",
            ))

        if not draft.description:
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="No description given",
                severity="info",
            ))

        return _is_valid(issues), issues

    def _validate_expense_semantic(
        self,
        draft: ExpenseDraft,
        group: Group,
    ) -> tuple[bool, list[ValidationIssue]]:
        """
        Stage 2: Semantic validation.

        Checks:
        - Payer and participants are current members
        - Splits add up to the amount
        - Future dates
        - Absurd amounts

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        if not group.is_member(draft.paid_by):
            issues.append(ValidationIssue(
                field="paid_by",
                issue_type="not_a_member",
                message=f"{draft.paid_by} is not a member of {group.name}",
                severity="error",
            ))

        outsiders = [s.user_id for s in draft.splits if not group.is_member(s.user_id)]
        if outsiders:
            issues.append(ValidationIssue(
                field="splits",
                issue_type="not_a_member",
                message=f"Not members of {group.name}: {', '.join(outsiders)}",
                severity="error",
                suggested_fix="Only current group members can share an expense",
            ))

        tolerance = self._settings.split_tolerance
        if not validate_splits(draft.splits, draft.amount, tolerance):
            total_split = sum((split.amount for split in draft.splits), Decimal("0"))
            difference = total_split - draft.amount
            direction = "over" if difference > 0 else "short"
            issues.append(ValidationIssue(
                field="splits",
                issue_type="unbalanced",
                message=(
                    f"Split doesn't balance: splits add up to "
                    f"{format_currency_with_precision(total_split)} but the expense is "
                    f"{format_currency_with_precision(draft.amount)} "
                    f"({format_currency_with_precision(abs(difference))} {direction})"
                ),
                severity="error",
                suggested_fix="Adjust the amounts or recalculate the split",
            ))

        zero_splits = [s.user_id for s in draft.splits if s.amount == 0]
        if zero_splits:
            issues.append(ValidationIssue(
                field="splits",
                issue_type="zero_share",
                message=f"Members with a zero share: {', '.join(zero_splits)}",
                severity="warning",
                suggested_fix="Remove them from the split if they did not take part",
            ))

        max_future = now_millis() + int(
            timedelta(days=self._settings.future_date_tolerance_days).total_seconds() * 1000
        )
        if draft.date > max_future:
            issues.append(ValidationIssue(
                field="date",
                issue_type="future_date",
                message="Expense date is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        if draft.amount > self._settings.max_expense_amount:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="suspicious_value",
                message=(
                    f"Amount ({format_currency_with_precision(draft.amount)}) "
                    "seems unusually high"
                ),
                severity="warning",
                suggested_fix="Please verify this amount is correct",
            ))

        return _is_valid(issues), issues

    def validate_expense(
        self,
        draft: ExpenseDraft,
        group: Group,
    ) -> ValidationResult:
        """
        Run full two-stage validation on an expense draft.

        Stage 2 only runs if stage 1 passes.
        """
        all_issues = []

        schema_valid, schema_issues = self._validate_expense_schema(draft)
        all_issues.extend(schema_issues)

        semantic_valid = False
        if schema_valid:
            semantic_valid, semantic_issues = self._validate_expense_semantic(draft, group)
            all_issues.extend(semantic_issues)

        return ValidationResult(
            entity_type="expense",
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=schema_valid and semantic_valid,
            issues=all_issues,
            warnings=[i.message for i in all_issues if i.severity == "warning"],
        )

    # -------------------------------------------------------------------------
    # Settlements
    # -------------------------------------------------------------------------

    def validate_settlement(
        self,
        draft: SettlementDraft,
        group: Group,
        outstanding: Optional[Decimal] = None,
    ) -> ValidationResult:
        """
        Validate a settlement draft.

        Args:
            draft: The proposed settlement
            group: The group it belongs to
            outstanding: What from_user currently owes to_user, if known.
                Paying more is allowed but produces a warning.
        """
        schema_issues = []

        if not draft.from_user or not draft.to_user:
            schema_issues.append(ValidationIssue(
                field="from" if not draft.from_user else "to",
                issue_type="missing",
                message="A settlement needs both a payer and a recipient",
                severity="error",
            ))
        elif draft.from_user == draft.to_user:
            schema_issues.append(ValidationIssue(
                field="to",
                issue_type="invalid_value",
                message="A member cannot settle with themselves",
                severity="error",
            ))

        if draft.amount is None or draft.amount <= 0:
            schema_issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Settlement amount must be greater than zero",
                severity="error",
            ))

        schema_valid = _is_valid(schema_issues)
        semantic_issues = []

        if schema_valid:
            for field, user_id in (("from", draft.from_user), ("to", draft.to_user)):
                if not group.is_member(user_id):
                    semantic_issues.append(ValidationIssue(
                        field=field,
                        issue_type="not_a_member",
                        message=f"{user_id} is not a member of {group.name}",
                        severity="error",
                    ))

            if outstanding is not None and draft.amount > outstanding:
                semantic_issues.append(ValidationIssue(
                    field="amount",
                    issue_type="overpayment",
                    message=(
                        f"Settlement of {format_currency_with_precision(draft.amount)} is more "
                        f"than the {format_currency_with_precision(outstanding)} currently owed"
                    ),
                    severity="warning",
                    suggested_fix="The extra amount will not be tracked as a debt",
                ))

        semantic_valid = schema_valid and _is_valid(semantic_issues)
        all_issues = schema_issues + semantic_issues

        return ValidationResult(
            entity_type="settlement",
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=semantic_valid,
            issues=all_issues,
            warnings=[i.message for i in all_issues if i.severity == "warning"],
        )

    def get_user_friendly_summary(
        self,
        result: ValidationResult,
    ) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show before the member hits "Save".
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed!"

        lines = []

        if result.has_errors:
            lines.append(f"❌ This {result.entity_type} can't be saved yet:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        lines.append("")
        if result.is_valid:
            lines.append("You can still save, but please review carefully.")
        else:
            lines.append("Please fix the issues above before saving.")

        return "\n".join(lines)
