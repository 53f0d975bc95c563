"""Normalization of card fields as the shopper types them.

Card data is only checked for shape here and never written to the order
row; charging is the payment provider's job.
"""

import re

from .domain import CardDetails

_NON_DIGITS = re.compile(r"\D")


def format_card_number(value: str) -> str:
    """Keep up to 16 digits, grouped by four (``4242 4242 4242 4242``)."""
    digits = _NON_DIGITS.sub("", value or "")[:16]
    return " ".join(digits[i:i + 4] for i in range(0, len(digits), 4))


def format_expiry(value: str) -> str:
    """Keep up to 4 digits, rendered ``MM/YY`` once the year starts."""
    digits = _NON_DIGITS.sub("", value or "")[:4]
    if len(digits) <= 2:
        return digits
    return f"{digits[:2]}/{digits[2:]}"


def format_cvv(value: str) -> str:
    return _NON_DIGITS.sub("", value or "")[:4]


def normalize_card(card_number: str = "", card_name: str = "", expiry_date: str = "", cvv: str = "") -> CardDetails:
    return CardDetails(
        card_number=format_card_number(card_number),
        card_name=(card_name or "").strip(),
        expiry_date=format_expiry(expiry_date),
        cvv=format_cvv(cvv),
    )
