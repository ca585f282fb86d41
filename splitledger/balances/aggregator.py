"""
Balance Aggregator

Computes, for every member of a group, how much they paid, their share
of all expenses, their net balance, and who owes whom.

RULES:
1. The payer is credited the full expense amount (total_paid).
2. Every split is added to that participant's total_share, INCLUDING
   the payer's own share. The payer's own share is also recorded as a
   self entry in owes_to_others so it can be shown, but it never creates
   a debt between two people.
3. Any other participant owes their split to the payer.
4. Settlements reduce the directional debt from -> to, floored at zero.
   They never change total_paid, total_share or net_balance: the net
   balance reflects the expense ledger only.

Every step is a sum or a zero-floor, so the result does not depend on
the order of expenses or settlements, and calling this twice with the
same input gives the same output.
"""

from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence

import structlog

from splitledger.config import get_settings
from splitledger.models.balance import (
    GroupBalanceSummary,
    MemberBalance,
    UserBalanceOverview,
)
from splitledger.models.group import Group, Settlement, SharedExpense


logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


class DataIntegrityError(Exception):
    """The ledger references users who are not (and never were) members."""

    def __init__(self, message: str, unknown_user_ids: Sequence[str] = ()):
        super().__init__(message)
        self.unknown_user_ids = list(unknown_user_ids)


def _member_ids(members: Iterable[Any]) -> list[str]:
    ids = []
    for member in members:
        user_id = member if isinstance(member, str) else member.user_id
        if user_id not in ids:
            ids.append(user_id)
    return ids


def _add(bucket: dict[str, Decimal], key: str, amount: Decimal) -> None:
    bucket[key] = bucket.get(key, ZERO) + amount


def compute_balances(
    members: Iterable[Any],
    expenses: Iterable[SharedExpense],
    settlements: Iterable[Settlement],
    strict: Optional[bool] = None,
) -> dict[str, MemberBalance]:
    """
    Compute every member's balance from the full group history.

    Args:
        members: GroupMember objects or user ids (current AND former members)
        expenses: Every expense of the group
        settlements: Every settlement of the group
        strict: Raise on references to non-members. Defaults to
            LedgerSettings.strict_member_references. When False those
            references are dropped.

    Returns:
        user id -> MemberBalance, in member order

    Raises:
        DataIntegrityError: strict mode and a payer, split participant or
            settlement party is not in members
    """
    if strict is None:
        strict = get_settings().ledger.strict_member_references

    member_ids = _member_ids(members)
    known = set(member_ids)

    paid = {user_id: ZERO for user_id in member_ids}
    share = {user_id: ZERO for user_id in member_ids}
    owes_to = {user_id: {} for user_id in member_ids}
    owed_by = {user_id: {} for user_id in member_ids}
    unknown_refs = []

    for expense in expenses:
        payer = expense.paid_by
        if payer in known:
            paid[payer] += expense.amount
        else:
            unknown_refs.append(("expense", expense.id, payer))

        for split in expense.splits:
            participant = split.user_id
            if participant not in known:
                unknown_refs.append(("expense", expense.id, participant))
                continue

            share[participant] += split.amount

            if participant == payer:
                _add(owes_to[participant], participant, split.amount)
            elif payer in known:
                _add(owes_to[participant], payer, split.amount)
                _add(owed_by[payer], participant, split.amount)

    for settlement in settlements:
        debtor, creditor = settlement.from_user, settlement.to_user
        missing = [u for u in (debtor, creditor) if u not in known]
        if missing:
            unknown_refs.extend(("settlement", settlement.id, u) for u in missing)
            continue

        if creditor in owes_to[debtor]:
            owes_to[debtor][creditor] = max(ZERO, owes_to[debtor][creditor] - settlement.amount)
        if debtor in owed_by[creditor]:
            owed_by[creditor][debtor] = max(ZERO, owed_by[creditor][debtor] - settlement.amount)

    if unknown_refs:
        unknown_ids = sorted({user_id for _, _, user_id in unknown_refs})
        if strict:
            refs = ", ".join(f"{kind} {ref_id} -> {user_id}" for kind, ref_id, user_id in unknown_refs)
            raise DataIntegrityError(
                f"Ledger references non-members: {refs}",
                unknown_user_ids=unknown_ids,
            )
        logger.warning(
            "ledger_references_dropped",
            unknown_user_ids=unknown_ids,
            reference_count=len(unknown_refs),
        )

    return {
        user_id: MemberBalance(
            user_id=user_id,
            total_paid=paid[user_id],
            total_share=share[user_id],
            net_balance=paid[user_id] - share[user_id],
            owed_by_others=owed_by[user_id],
            owes_to_others=owes_to[user_id],
        )
        for user_id in member_ids
    }


def summarize_user_balance(
    user_id: str,
    ledgers: Iterable[tuple[Group, Sequence[SharedExpense], Sequence[Settlement]]],
    strict: Optional[bool] = None,
) -> UserBalanceOverview:
    """
    Total a user's position across several groups.

    Each ledger is (group, expenses, settlements). Groups the user has
    never been a member of are skipped. Settlements are reported per
    group as settled_out/settled_in and do not change the net balance.
    """
    overview = UserBalanceOverview(user_id=user_id)

    for group, expenses, settlements in ledgers:
        members = group.all_members()
        if user_id not in {member.user_id for member in members}:
            continue

        balance = compute_balances(members, expenses, settlements, strict=strict)[user_id]
        summary = GroupBalanceSummary(
            group_id=group.id,
            group_name=group.name,
            paid=balance.total_paid,
            owed=balance.total_share,
            net=balance.net_balance,
            settled_out=sum((s.amount for s in settlements if s.from_user == user_id), ZERO),
            settled_in=sum((s.amount for s in settlements if s.to_user == user_id), ZERO),
        )
        overview.group_balances[group.id] = summary
        overview.total_paid += summary.paid
        overview.total_owed += summary.owed

    overview.net_balance = overview.total_paid - overview.total_owed
    return overview
