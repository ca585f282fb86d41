"""Split calculator package."""

from splitledger.splits.calculator import (
    SplitCalculationError,
    UnsupportedRoundingStrategyError,
    UnsupportedSplitTypeError,
    calculate_splits,
    get_split_summary,
    to_decimal,
    validate_splits,
)
from splitledger.splits.formatting import format_currency_with_precision

__all__ = [
    "SplitCalculationError",
    "UnsupportedRoundingStrategyError",
    "UnsupportedSplitTypeError",
    "calculate_splits",
    "format_currency_with_precision",
    "get_split_summary",
    "to_decimal",
    "validate_splits",
]
