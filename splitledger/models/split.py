"""
Split Calculator Models

SplitResult is what the calculator returns; once an expense is saved
each result becomes an ExpenseSplit amount. SplitSummary is the
"does this balance?" view shown before saving.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SplitType(str, Enum):
    """Supported ways of dividing an expense."""
    EQUAL = "equal"
    PERCENTAGE = "percentage"
    CUSTOM = "custom"


class RoundingStrategy(str, Enum):
    """
    Who absorbs the rounding remainder.

    DISTRIBUTE spreads it one minimal unit at a time, so no participant
    is adjusted by more than one unit. LARGEST/SMALLEST put the whole
    remainder on the last/first participant in user id order.
    """
    DISTRIBUTE = "distribute"
    LARGEST = "largest"
    SMALLEST = "smallest"


class SplitParticipant(BaseModel):
    """Someone taking part in a split."""
    model_config = ConfigDict(str_strip_whitespace=True)

    user_id: str = Field(..., min_length=1)
    name: str = ""
    email: Optional[str] = None


class SplitResult(BaseModel):
    """
    One participant's computed share.

    percentage is informational. is_adjusted is True when the participant
    absorbed part of a rounding remainder or a custom-amount correction.
    """

    user_id: str
    amount: Decimal = Field(..., ge=0)
    percentage: Decimal = Decimal("0")
    is_adjusted: bool = False


class SplitSummary(BaseModel):
    """Totals for a set of splits compared to the expense amount."""

    total_amount: Decimal
    total_split: Decimal
    difference: Decimal = Field(
        ...,
        description="total_split minus total_amount"
    )
    adjusted_count: int = Field(ge=0)
    participant_count: int = Field(ge=0)
    is_balanced: bool
