"""
Split Calculator

Divides an expense amount between participants so that the shares add
up EXACTLY to the amount.

DESIGN DECISION: All arithmetic happens in integer minor units
(e.g. paise/cents at precision 2) on top of Decimal. Rounding each share
independently leaves a remainder of a few units; the rounding strategy
decides who absorbs it:

- distribute: one unit at a time, walking participants in a stable
  order (user id for equal splits, largest rounding error first for
  percentage and custom splits)
- largest: the last participant in user id order takes all of it
- smallest: the first participant in user id order takes all of it

Degenerate input (no participants, non-positive total, negative custom
values) returns an empty list. An unknown split type or rounding
strategy is a programming error and raises immediately.
"""

from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

import structlog

from splitledger.config import get_settings
from splitledger.models.split import (
    RoundingStrategy,
    SplitResult,
    SplitSummary,
    SplitType,
)


logger = structlog.get_logger(__name__)

ZERO = Decimal("0")
HUNDRED = Decimal("100")
PERCENT_QUANTUM = Decimal("0.0001")

Number = Union[Decimal, int, float, str]


class SplitCalculationError(Exception):
    """Base exception for split calculation."""
    pass


class UnsupportedSplitTypeError(SplitCalculationError):
    """The split type is not equal, percentage or custom."""
    pass


class UnsupportedRoundingStrategyError(SplitCalculationError):
    """The rounding strategy is not distribute, largest or smallest."""
    pass


# =============================================================================
# HELPERS
# =============================================================================

def to_decimal(value: Number) -> Decimal:
    """Convert a number to Decimal without binary float noise."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(value))
    return Decimal(value)


def _participant_id(participant: Any) -> str:
    if isinstance(participant, str):
        return participant
    return participant.user_id


def _unique_ids(participants: Iterable[Any]) -> list[str]:
    """User ids in caller order, duplicates collapsed to the first one."""
    seen = set()
    ids = []
    for participant in participants:
        user_id = _participant_id(participant)
        if user_id not in seen:
            seen.add(user_id)
            ids.append(user_id)
    return ids


def _round_units(exact_units: Decimal) -> int:
    return int(exact_units.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _coerce_split_type(split_type: Union[SplitType, str]) -> SplitType:
    if isinstance(split_type, SplitType):
        return split_type
    try:
        return SplitType(str(split_type).strip().lower())
    except ValueError:
        raise UnsupportedSplitTypeError(f"Unsupported split type: {split_type!r}")


def _coerce_strategy(strategy: Union[RoundingStrategy, str]) -> RoundingStrategy:
    if isinstance(strategy, RoundingStrategy):
        return strategy
    try:
        return RoundingStrategy(str(strategy).strip().lower())
    except ValueError:
        raise UnsupportedRoundingStrategyError(
            f"Unsupported rounding strategy: {strategy!r}"
        )


def _spread(units: dict[str, int], remainder: int, order: Sequence[str]) -> int:
    """
    Hand out the remainder one unit at a time along order, cycling.

    Nobody is pushed below zero units. Returns whatever could not be
    placed (only non-zero for impossible negative remainders).
    """
    step = 1 if remainder > 0 else -1
    while remainder != 0:
        eligible = [u for u in order if step > 0 or units[u] > 0]
        if not eligible:
            break
        rounds, extra = divmod(abs(remainder), len(eligible))
        for index, user_id in enumerate(eligible):
            wanted = rounds + (1 if index < extra else 0)
            if step < 0:
                wanted = min(wanted, units[user_id])
            units[user_id] += step * wanted
            remainder -= step * wanted
    return remainder


def _absorb(
    units: dict[str, int],
    remainder: int,
    target: str,
    order: Sequence[str],
) -> None:
    """Put the whole remainder on one participant (spilling only below zero)."""
    if remainder >= 0 or units[target] + remainder >= 0:
        units[target] += remainder
        return
    remainder += units[target]
    units[target] = 0
    _spread(units, remainder, [u for u in order if u != target])


def _resolve_remainder(
    units: dict[str, int],
    remainder: int,
    strategy: RoundingStrategy,
    distribute_order: Sequence[str],
    sorted_ids: Sequence[str],
) -> None:
    if remainder == 0 or not sorted_ids:
        return
    if strategy == RoundingStrategy.DISTRIBUTE:
        _spread(units, remainder, distribute_order)
    elif strategy == RoundingStrategy.LARGEST:
        _absorb(units, remainder, sorted_ids[-1], sorted_ids)
    else:
        _absorb(units, remainder, sorted_ids[0], sorted_ids)


def _share_percentage(amount: Decimal, total: Decimal) -> Decimal:
    return (amount / total * HUNDRED).quantize(PERCENT_QUANTUM, rounding=ROUND_HALF_UP)


# =============================================================================
# SPLIT MODES
# =============================================================================

def _split_equal(
    ids: list[str],
    total: Decimal,
    precision: int,
    strategy: RoundingStrategy,
) -> list[SplitResult]:
    scale = Decimal(10) ** precision
    target_units = _round_units(total * scale)

    base = _round_units(total * scale / len(ids))
    units = {user_id: base for user_id in ids}
    rounded = dict(units)

    order = sorted(ids)
    _resolve_remainder(units, target_units - base * len(ids), strategy, order, order)

    results = []
    for user_id in ids:
        amount = Decimal(units[user_id]).scaleb(-precision)
        results.append(SplitResult(
            user_id=user_id,
            amount=amount,
            percentage=_share_percentage(amount, total),
            is_adjusted=units[user_id] != rounded[user_id],
        ))
    return results


def _split_percentage(
    ids: list[str],
    total: Decimal,
    percentages: Mapping[str, Number],
    precision: int,
    strategy: RoundingStrategy,
) -> list[SplitResult]:
    scale = Decimal(10) ** precision
    target_units = _round_units(total * scale)

    assigned = {user_id: to_decimal(percentages.get(user_id, 0)) for user_id in ids}
    exact = {user_id: assigned[user_id] / HUNDRED * total * scale for user_id in ids}
    units = {user_id: _round_units(exact[user_id]) for user_id in ids}
    rounded = dict(units)
    errors = {user_id: exact[user_id] - units[user_id] for user_id in ids}

    remainder = target_units - sum(units.values())
    by_error = sorted(ids, key=lambda u: (-abs(errors[u]), u))
    _resolve_remainder(units, remainder, strategy, by_error, sorted(ids))

    return [
        SplitResult(
            user_id=user_id,
            amount=Decimal(units[user_id]).scaleb(-precision),
            percentage=assigned[user_id],
            is_adjusted=units[user_id] != rounded[user_id],
        )
        for user_id in ids
    ]


def _split_custom(
    ids: list[str],
    total: Decimal,
    custom_amounts: Mapping[str, Number],
    precision: int,
    strategy: RoundingStrategy,
    tolerance: Decimal,
) -> list[SplitResult]:
    supplied = {user_id: to_decimal(custom_amounts.get(user_id, 0)) for user_id in ids}
    supplied_total = sum(supplied.values(), ZERO)
    unit = Decimal(1).scaleb(-precision)

    if abs(supplied_total - total) <= tolerance:
        results = []
        for user_id in ids:
            amount = supplied[user_id]
            # Pad to the split precision; extra digits are never dropped
            if amount == amount.quantize(unit):
                amount = amount.quantize(unit)
            results.append(SplitResult(
                user_id=user_id,
                amount=amount,
                percentage=_share_percentage(amount, total),
                is_adjusted=False,
            ))
        return results

    if supplied_total == 0:
        logger.info(
            "custom_split_fallback_to_equal",
            participant_count=len(ids),
            total_amount=str(total),
        )
        return _split_equal(ids, total, precision, strategy)

    scale = Decimal(10) ** precision
    target_units = _round_units(total * scale)
    difference = total - supplied_total

    # Proportional correction: zero custom amounts stay at zero
    exact = {
        user_id: (supplied[user_id] + difference * supplied[user_id] / supplied_total) * scale
        for user_id in ids
    }
    units = {user_id: _round_units(exact[user_id]) for user_id in ids}
    errors = {user_id: exact[user_id] - units[user_id] for user_id in ids}

    contributors = [user_id for user_id in ids if supplied[user_id] != 0]
    by_error = sorted(contributors, key=lambda u: (-abs(errors[u]), u))
    _resolve_remainder(
        units,
        target_units - sum(units.values()),
        strategy,
        by_error,
        sorted(contributors),
    )

    results = []
    for user_id in ids:
        amount = Decimal(units[user_id]).scaleb(-precision)
        results.append(SplitResult(
            user_id=user_id,
            amount=amount,
            percentage=_share_percentage(amount, total),
            is_adjusted=amount != supplied[user_id],
        ))
    return results


# =============================================================================
# PUBLIC API
# =============================================================================

def calculate_splits(
    total_amount: Number,
    participants: Iterable[Any],
    split_type: Union[SplitType, str],
    custom_amounts: Optional[Mapping[str, Number]] = None,
    custom_percentages: Optional[Mapping[str, Number]] = None,
    precision: Optional[int] = None,
    rounding_strategy: Union[RoundingStrategy, str, None] = None,
) -> list[SplitResult]:
    """
    Split total_amount between participants.

    Args:
        total_amount: Amount to split (must be > 0)
        participants: User ids, or objects with a user_id attribute
        split_type: equal, percentage or custom
        custom_amounts: user id -> amount (custom splits)
        custom_percentages: user id -> percentage 0-100 (percentage splits)
        precision: Decimal places (defaults to LedgerSettings.default_precision)
        rounding_strategy: distribute, largest or smallest
            (defaults to LedgerSettings.default_rounding_strategy)

    Returns:
        One SplitResult per unique participant, in caller order, whose
        amounts add up to total_amount. Empty for degenerate input.

    Raises:
        UnsupportedSplitTypeError: Unknown split type
        UnsupportedRoundingStrategyError: Unknown rounding strategy
    """
    settings = get_settings().ledger
    kind = _coerce_split_type(split_type)
    strategy = _coerce_strategy(
        rounding_strategy if rounding_strategy is not None
        else settings.default_rounding_strategy
    )
    if precision is None:
        precision = settings.default_precision
    if precision < 0:
        raise ValueError(f"Precision must be non-negative, got {precision}")

    total = to_decimal(total_amount)
    ids = _unique_ids(participants)

    if total <= 0 or not ids:
        logger.warning(
            "split_skipped_degenerate_input",
            total_amount=str(total),
            participant_count=len(ids),
        )
        return []

    if kind == SplitType.EQUAL:
        return _split_equal(ids, total, precision, strategy)

    if kind == SplitType.PERCENTAGE:
        percentages = custom_percentages or {}
        if any(to_decimal(percentages.get(u, 0)) < 0 for u in ids):
            logger.warning("split_skipped_negative_percentage", participant_count=len(ids))
            return []
        return _split_percentage(ids, total, percentages, precision, strategy)

    amounts = custom_amounts or {}
    if any(to_decimal(amounts.get(u, 0)) < 0 for u in ids):
        logger.warning("split_skipped_negative_amount", participant_count=len(ids))
        return []
    return _split_custom(
        ids, total, amounts, precision, strategy, settings.custom_amount_tolerance
    )


def validate_splits(
    splits: Iterable[Any],
    total_amount: Number,
    tolerance: Optional[Number] = None,
) -> bool:
    """
    Check that split amounts add up to the total.

    Works with SplitResult, ExpenseSplit or anything with an amount.
    Tolerance defaults to LedgerSettings.split_tolerance (0.01).
    """
    if tolerance is None:
        tolerance = get_settings().ledger.split_tolerance
    total_split = sum((to_decimal(split.amount) for split in splits), ZERO)
    return abs(total_split - to_decimal(total_amount)) <= to_decimal(tolerance)


def get_split_summary(
    splits: Sequence[Any],
    total_amount: Number,
    tolerance: Optional[Number] = None,
) -> SplitSummary:
    """Summarize splits for display before saving an expense."""
    total = to_decimal(total_amount)
    total_split = sum((to_decimal(split.amount) for split in splits), ZERO)
    return SplitSummary(
        total_amount=total,
        total_split=total_split,
        difference=total_split - total,
        adjusted_count=sum(1 for split in splits if getattr(split, "is_adjusted", False)),
        participant_count=len(splits),
        is_balanced=validate_splits(splits, total, tolerance),
    )
