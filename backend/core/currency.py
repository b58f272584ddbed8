"""Malaysian Ringgit helpers.

All amounts are stored as integer cents (sen). These helpers convert between
cents, ringgit and the ``RM 1,234.56`` display format used across the API.
"""

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

Number = Union[int, float, Decimal]

_CURRENCY_PREFIX = re.compile(r"(RM|MYR)\s*", re.IGNORECASE)


def round_half_up(value: Number) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def cents_to_ringgit(cents: Number) -> Decimal:
    """Convert cents to a ringgit Decimal (1050 -> Decimal('10.50'))."""
    return (Decimal(str(cents)) / 100).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


def format_myr(cents: Number) -> str:
    """Format cents for display, e.g. 123456 -> 'RM 1,234.56'."""
    return f"RM {cents_to_ringgit(cents):,.2f}"


def parse_amount_to_cents(raw: str) -> int:
    """
    Parse an amount as it appears in Malaysian bank exports into cents.

    Currency markers (RM, MYR), thousands separators and minus signs are
    removed; statement debits are often exported as negatives.

    Raises:
        ValueError: if the remaining text is not a number
    """
    cleaned = _CURRENCY_PREFIX.sub("", str(raw).strip())
    cleaned = cleaned.replace(",", "").replace("-", "").strip()

    try:
        amount = Decimal(cleaned)
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {raw}")

    if not amount.is_finite() or amount < 0:
        raise ValueError(f"Invalid amount: {raw}")

    return round_half_up(amount * 100)
