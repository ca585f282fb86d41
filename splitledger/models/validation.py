"""
Draft and Validation Models

A draft is what a member PROPOSES to record. It is not trusted: it goes
through validation before a SharedExpense or Settlement is built from
it and persisted.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from splitledger.models.group import ExpenseSplit
from splitledger.models.timestamps import now_millis, to_epoch_millis


class ExpenseDraft(BaseModel):
    """
    A proposed shared expense.

    Fields are loosely typed on purpose: a missing payer or a zero amount
    should come back as a validation issue, not as a model error.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    group_id: str
    amount: Optional[Decimal] = None
    paid_by: Optional[str] = None
    description: str = ""
    category: Optional[str] = None
    receipt_image_url: Optional[str] = None
    date: int = Field(default_factory=now_millis)
    splits: list[ExpenseSplit] = Field(default_factory=list)
    created_by: Optional[str] = None

    @field_validator('date', mode='before')
    @classmethod
    def normalize_date(cls, v):
        return to_epoch_millis(v)


class SettlementDraft(BaseModel):
    """A proposed settlement between two members."""
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    group_id: str
    from_user: Optional[str] = Field(default=None, alias="from")
    to_user: Optional[str] = Field(default=None, alias="to")
    amount: Optional[Decimal] = None
    date: int = Field(default_factory=now_millis)
    notes: Optional[str] = None
    related_expense_ids: list[str] = Field(default_factory=list)
    created_by: Optional[str] = None

    @field_validator('date', mode='before')
    @classmethod
    def normalize_date(cls, v):
        return to_epoch_millis(v)


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'unbalanced', 'not_a_member')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (required fields, basic values)
    Stage 2: Semantic validation (membership, balance, sanity checks)
    """

    entity_type: str = Field(
        ...,
        pattern="^(expense|settlement)$"
    )
    validated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    schema_valid: bool = Field(
        ...,
        description="Did schema validation pass?"
    )
    semantic_valid: bool = Field(
        ...,
        description="Did semantic validation pass?"
    )
    is_valid: bool = Field(
        ...,
        description="Overall validation result"
    )

    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All validation issues found"
    )

    # Warnings don't block but should be shown
    warnings: list[str] = Field(
        default_factory=list,
        description="Non-blocking warnings"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    def issues_as_dicts(self) -> list[dict]:
        return [issue.model_dump() for issue in self.issues]
