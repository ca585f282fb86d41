"""Display helpers for amounts."""

from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from splitledger.config import get_settings


CURRENCY_SYMBOLS = {
    "INR": "₹",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
}


def format_currency_with_precision(
    amount: Union[Decimal, int, float, str],
    precision: int = 2,
    currency: Optional[str] = None,
) -> str:
    """
    Format an amount with a fixed number of decimals, e.g. "₹1,234.50".

    Currency defaults to AppSettings.display_currency. Unknown codes are
    written as a prefix ("CHF 12.00").
    """
    if currency is None:
        currency = get_settings().app.display_currency
    currency = currency.upper()

    value = amount if isinstance(amount, Decimal) else Decimal(str(amount))
    value = value.quantize(Decimal(1).scaleb(-precision), rounding=ROUND_HALF_UP)

    sign = "-" if value < 0 else ""
    digits = f"{abs(value):,.{precision}f}"
    symbol = CURRENCY_SYMBOLS.get(currency)
    if symbol:
        return f"{sign}{symbol}{digits}"
    return f"{sign}{currency} {digits}"
