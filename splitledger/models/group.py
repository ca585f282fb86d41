"""
Core Data Models for Group Ledger

These models define the strict schemas for the group expense ledger:
groups and their members, shared expenses with their splits, and
settlements between members. They are designed to:
1. Enforce the ledger invariants at construction time
2. Provide clear validation error messages
3. Be serializable to and from the document store

DESIGN DECISION: Every timestamp is normalized to integer epoch
milliseconds by a "before" validator. Whatever shape the storage driver
hands us, the rest of the package only ever sees an int.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

from splitledger.models.timestamps import now_millis, to_epoch_millis


# Fixed tolerance for the "splits sum to the expense amount" invariant
SPLIT_SUM_TOLERANCE = Decimal("0.01")


def new_id() -> str:
    """Generate a document id."""
    return uuid4().hex


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class MemberRole(str, Enum):
    """
    Role of a member inside a group.

    Admins manage settings and membership. Every member can add
    expenses and settlements.
    """
    ADMIN = "admin"
    MEMBER = "member"


# =============================================================================
# GROUP & MEMBERSHIP
# =============================================================================

class GroupMember(BaseModel):
    """A user associated with a group."""
    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: str = Field(
        ...,
        min_length=1,
        description="User identifier"
    )
    name: str = Field(
        default="",
        max_length=200,
        description="Display name"
    )
    email: str = Field(
        default="",
        max_length=320,
        description="Contact email"
    )
    photo_url: Optional[str] = None
    role: MemberRole = Field(
        default=MemberRole.MEMBER,
        description="Role inside the group"
    )
    joined_at: int = Field(
        default_factory=now_millis,
        description="When the user joined (epoch ms)"
    )

    @field_validator('joined_at', mode='before')
    @classmethod
    def normalize_joined_at(cls, v):
        return to_epoch_millis(v)

    @property
    def is_admin(self) -> bool:
        return self.role == MemberRole.ADMIN


class Group(BaseModel):
    """
    A group of people sharing expenses.

    CRITICAL: A group always has at least one admin, and each user
    appears at most once. Members who leave are kept in former_members
    so that their historic splits still resolve when balances are
    recomputed.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=new_id,
        description="Group identifier"
    )
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Group name"
    )
    created_by: str = Field(
        ...,
        min_length=1,
        description="User who created the group"
    )
    created_at: int = Field(
        default_factory=now_millis,
        description="Creation time (epoch ms)"
    )
    members: list[GroupMember] = Field(
        default_factory=list,
        description="Current members (order is irrelevant)"
    )
    former_members: list[GroupMember] = Field(
        default_factory=list,
        description="Users who left or were removed"
    )

    @field_validator('created_at', mode='before')
    @classmethod
    def normalize_created_at(cls, v):
        return to_epoch_millis(v)

    @model_validator(mode='after')
    def validate_membership(self) -> 'Group':
        """Enforce membership invariants."""
        user_ids = [member.user_id for member in self.members]
        if len(user_ids) != len(set(user_ids)):
            raise ValueError("Each user can only be a member of a group once")

        if not any(member.is_admin for member in self.members):
            raise ValueError("A group must have at least one admin")

        former_ids = {member.user_id for member in self.former_members}
        overlap = former_ids.intersection(user_ids)
        if overlap:
            raise ValueError(
                f"Users cannot be both current and former members: {sorted(overlap)}"
            )

        return self

    def get_member(self, user_id: str) -> Optional[GroupMember]:
        """Find a current member by user id."""
        for member in self.members:
            if member.user_id == user_id:
                return member
        return None

    def is_member(self, user_id: str) -> bool:
        return self.get_member(user_id) is not None

    def is_admin(self, user_id: str) -> bool:
        member = self.get_member(user_id)
        return member is not None and member.is_admin

    @property
    def admin_count(self) -> int:
        return sum(1 for member in self.members if member.is_admin)

    @property
    def member_ids(self) -> list[str]:
        return [member.user_id for member in self.members]

    def all_members(self) -> list[GroupMember]:
        """Current members followed by former members."""
        return list(self.members) + list(self.former_members)

    def with_members(
        self,
        members: list[GroupMember],
        former_members: Optional[list[GroupMember]] = None,
    ) -> 'Group':
        """Return a re-validated copy with a new membership."""
        data = self.model_dump()
        data["members"] = [member.model_dump() for member in members]
        if former_members is not None:
            data["former_members"] = [member.model_dump() for member in former_members]
        return Group.model_validate(data)


# =============================================================================
# SHARED EXPENSES
# =============================================================================

class ExpenseSplit(BaseModel):
    """
    The portion of a shared expense attributed to one participant.

    is_paid is advisory settlement tracking only. Balance math ignores it.
    """

    user_id: str = Field(
        ...,
        min_length=1,
        description="Participant (current or former group member)"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Participant's share"
    )
    is_paid: bool = False
    paid_date: Optional[int] = None

    @field_validator('paid_date', mode='before')
    @classmethod
    def normalize_paid_date(cls, v):
        if v is None:
            return v
        return to_epoch_millis(v)


class SharedExpense(BaseModel):
    """
    An expense paid by one member and split among several.

    CRITICAL: The splits must add up to the amount (within 0.01).
    Use validate_splits() before building one of these so the user gets
    a friendly message instead of a validation error.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=new_id,
        description="Expense identifier"
    )
    group_id: str = Field(
        ...,
        min_length=1,
        description="Group this expense belongs to"
    )
    date: int = Field(
        default_factory=now_millis,
        description="When the expense happened (epoch ms)"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Total amount paid"
    )
    description: str = Field(
        default="",
        max_length=500,
        description="What the expense was for"
    )
    paid_by: str = Field(
        ...,
        min_length=1,
        description="Member who paid"
    )
    category: Optional[str] = Field(
        default=None,
        max_length=100,
        description="Optional category label"
    )
    receipt_image_url: Optional[str] = None
    splits: list[ExpenseSplit] = Field(
        default_factory=list,
        description="One split per participating member"
    )
    created_by: Optional[str] = Field(
        default=None,
        description="User who recorded the expense"
    )
    created_at: int = Field(
        default_factory=now_millis,
        description="When the expense was recorded (epoch ms)"
    )

    @field_validator('date', 'created_at', mode='before')
    @classmethod
    def normalize_timestamps(cls, v):
        return to_epoch_millis(v)

    @model_validator(mode='after')
    def validate_splits_balance(self) -> 'SharedExpense':
        """Validate one split per user and that splits add up."""
        user_ids = [split.user_id for split in self.splits]
        if len(user_ids) != len(set(user_ids)):
            raise ValueError("Each participant can only have one split per expense")

        total_split = sum((split.amount for split in self.splits), Decimal("0"))
        if abs(total_split - self.amount) > SPLIT_SUM_TOLERANCE:
            raise ValueError(
                f"Splits add up to {total_split} but the expense amount is {self.amount}"
            )

        return self

    @property
    def participant_ids(self) -> list[str]:
        return [split.user_id for split in self.splits]

    def share_of(self, user_id: str) -> Decimal:
        """A participant's split amount (zero if not participating)."""
        for split in self.splits:
            if split.user_id == user_id:
                return split.amount
        return Decimal("0")


# =============================================================================
# SETTLEMENTS
# =============================================================================

class Settlement(BaseModel):
    """
    A real-world payment from one member to another.

    Stored with "from"/"to" keys. In Python they are from_user/to_user
    since "from" is a keyword; both names are accepted on input.
    """
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    id: str = Field(
        default_factory=new_id,
        description="Settlement identifier"
    )
    group_id: str = Field(
        ...,
        min_length=1,
        description="Group this settlement belongs to"
    )
    from_user: str = Field(
        ...,
        alias="from",
        min_length=1,
        description="Member who paid"
    )
    to_user: str = Field(
        ...,
        alias="to",
        min_length=1,
        description="Member who received the payment"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Amount paid"
    )
    date: int = Field(
        default_factory=now_millis,
        description="When the payment happened (epoch ms)"
    )
    notes: Optional[str] = Field(
        default=None,
        max_length=1000
    )
    related_expense_ids: list[str] = Field(
        default_factory=list,
        description="Expenses this payment relates to (advisory)"
    )
    created_by: Optional[str] = None

    @field_validator('date', mode='before')
    @classmethod
    def normalize_date(cls, v):
        return to_epoch_millis(v)

    @model_validator(mode='after')
    def validate_parties(self) -> 'Settlement':
        if self.from_user == self.to_user:
            raise ValueError("A settlement must be between two different members")
        return self


# =============================================================================
# STORAGE PAGES
# =============================================================================

class ExpensePage(BaseModel):
    """One page of group expenses plus the cursor to continue from."""

    items: list[SharedExpense] = Field(default_factory=list)
    next_cursor: Optional[str] = None
    has_more: bool = False


class SettlementPage(BaseModel):
    """One page of group settlements plus the cursor to continue from."""

    items: list[Settlement] = Field(default_factory=list)
    next_cursor: Optional[str] = None
    has_more: bool = False
