"""Price parsing and rupee formatting."""

import re
from typing import Any, Optional

RUPEE_SYMBOL = "₹"

_NON_NUMERIC = re.compile(r"[^\d.]")


def parse_price(value: Any) -> float:
    """
    Parse a stored price into a float.

    Strings are stripped of everything but digits and dots before parsing,
    so "₹1,299.00" reads as 1299.0. Unparsable input reads as 0.0, which
    is indistinguishable from a genuinely free item.
    """
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = _NON_NUMERIC.sub("", str(value))
    try:
        return float(cleaned)
    except ValueError:
        return 0.0


def _indian_grouping(whole: str) -> str:
    # 1234567 -> 12,34,567
    if len(whole) <= 3:
        return whole
    head, tail = whole[:-3], whole[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups + [tail])


def format_price(amount: Optional[float], decimals: int = 2) -> str:
    """Format an amount as Indian rupees, e.g. ``₹1,23,456.78``."""
    if amount is None:
        amount = 0.0
    sign = "-" if amount < 0 else ""
    text = f"{abs(amount):.{decimals}f}"
    whole, _, fraction = text.partition(".")
    grouped = _indian_grouping(whole)
    if fraction:
        grouped = f"{grouped}.{fraction}"
    return f"{sign}{RUPEE_SYMBOL}{grouped}"


def format_price_string(price: Optional[str]) -> str:
    """Format a stored price string such as "1299" or "₹1,299"."""
    return format_price(parse_price(price))
