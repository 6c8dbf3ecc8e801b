"""
Formatting utilities.
"""

from decimal import Decimal
from typing import Union


def format_currency(amount: Union[int, Decimal], currency: str = "GBP") -> str:
    """
    Format an amount as currency.

    Whole amounts are shown without pence; anything else to two places.

    Args:
        amount: The amount in whole units (e.g., pounds, not pence).
        currency: Currency code (default GBP).

    Returns:
        Formatted currency string.
    """
    symbols = {
        "GBP": "£",
        "USD": "$",
        "EUR": "€",
    }
    symbol = symbols.get(currency, currency + " ")
    value = Decimal(amount)
    if value == value.to_integral_value():
        return f"{symbol}{int(value):,}"
    return f"{symbol}{value:,.2f}"


def truncate(text: str, width: int) -> str:
    """
    Truncate text to a column width, marking the cut with an ellipsis.

    Args:
        text: The text to fit.
        width: Maximum length of the result.

    Returns:
        Text no longer than width.
    """
    text = text or ""
    if len(text) <= width:
        return text
    return text[: max(0, width - 3)] + "..."
