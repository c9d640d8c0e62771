"""Amount parsing utilities."""

from decimal import Decimal, InvalidOperation
import re


def parse_amount(amount_str: str) -> int:
    """Parse a major-unit amount string into integer minor units.

    Handles various formats:
    - "1500" -> 150000
    - "1,500.50" -> 150050
    - "Le 1,500.50" (currency prefix)
    - "$12.5" -> 1250

    Args:
        amount_str: Amount string

    Returns:
        Amount in minor units

    Raises:
        ValueError: If the string cannot be parsed, is negative or has
            more than two decimal places
    """
    if not amount_str or not amount_str.strip():
        raise ValueError("Empty amount string")

    cleaned = amount_str.strip()

    # Remove currency symbols and codes
    cleaned = re.sub(r"^(?:[A-Za-z]{2,3}\.?\s*|[$€£¥₦]\s*)", "", cleaned)

    # Remove thousands separators
    cleaned = cleaned.replace(",", "").strip()

    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        raise ValueError(f"Could not parse amount '{amount_str}'")

    if not amount.is_finite():
        raise ValueError(f"Could not parse amount '{amount_str}'")
    if amount < 0:
        raise ValueError(f"Amount cannot be negative: '{amount_str}'")

    minor = amount * 100
    if minor != minor.to_integral_value():
        raise ValueError(f"Amount '{amount_str}' has more than two decimal places")
    return int(minor)


