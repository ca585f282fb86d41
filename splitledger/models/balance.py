"""
Balance Models

These are never persisted. They are recomputed from the full expense
and settlement history every time they are needed.
"""

from decimal import Decimal

from pydantic import BaseModel, Field


ZERO = Decimal("0")


class MemberBalance(BaseModel):
    """
    One member's position in a group.

    total_share includes the member's own share of expenses they paid,
    so net_balance = total_paid - total_share holds for everyone.
    Settlements only reduce the directional maps, never the totals.
    """

    user_id: str
    total_paid: Decimal = ZERO
    total_share: Decimal = ZERO
    net_balance: Decimal = ZERO
    owed_by_others: dict[str, Decimal] = Field(
        default_factory=dict,
        description="Other member -> amount they owe this member"
    )
    owes_to_others: dict[str, Decimal] = Field(
        default_factory=dict,
        description="Other member -> amount this member owes them"
    )

    @property
    def total_owed(self) -> Decimal:
        """Alias kept for callers that use the older name."""
        return self.total_share

    def outstanding_debts(self) -> dict[str, Decimal]:
        """Debts to other members, without the self entry or settled pairs."""
        return {
            user_id: amount
            for user_id, amount in self.owes_to_others.items()
            if user_id != self.user_id and amount > 0
        }

    def outstanding_credits(self) -> dict[str, Decimal]:
        """Amounts other members still owe, without settled pairs."""
        return {
            user_id: amount
            for user_id, amount in self.owed_by_others.items()
            if amount > 0
        }


class GroupBalanceSummary(BaseModel):
    """A user's totals inside one group."""

    group_id: str
    group_name: str
    paid: Decimal = ZERO
    owed: Decimal = ZERO
    net: Decimal = ZERO
    settled_out: Decimal = Field(
        default=ZERO,
        description="Settlements this user paid in the group"
    )
    settled_in: Decimal = Field(
        default=ZERO,
        description="Settlements this user received in the group"
    )


class UserBalanceOverview(BaseModel):
    """A user's totals across every group they belong to."""

    user_id: str
    total_paid: Decimal = ZERO
    total_owed: Decimal = ZERO
    net_balance: Decimal = ZERO
    group_balances: dict[str, GroupBalanceSummary] = Field(default_factory=dict)
