"""Fixed-point money helpers.

Every amount in the engine is a signed ``int`` holding the currency's natural
unit multiplied by :data:`SCALE`, whatever the currency's own decimal
precision. ``format_minor`` and ``to_minor`` round-trip exactly.
"""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

SCALE = 10000
_SCALE_DECIMAL = Decimal(SCALE)
_PLACES = Decimal("0.0001")

_CURRENCY_TOKENS: tuple[str, ...] = (
    "VNĐ",
    "VND",
    "USD",
    "EUR",
    "GBP",
    "JPY",
    "CNY",
    "INR",
    "THB",
    "KRW",
    "RUB",
    "BRL",
    "CHF",
    "CAD",
    "AUD",
    "NZD",
    "SGD",
    "HKD",
    "R$",
    "₫",
    "đ",
    "$",
    "€",
    "£",
    "¥",
    "₹",
    "฿",
    "₩",
    "₽",
)
_NUMBER_RE = re.compile(r"^\d+(\.\d*)?$")

Number = Union[int, str, Decimal]


def _split_sign(raw: str) -> tuple[str, bool]:
    text = raw.strip()
    if text.startswith("(") and text.endswith(")"):
        return text[1:-1].strip(), True
    if text.endswith("-"):
        return text[:-1].strip(), True
    if text.startswith("-"):
        return text[1:].strip(), True
    if text.startswith("+"):
        return text[1:].strip(), False
    return text, False


def _strip_currency(text: str) -> str:
    for token in _CURRENCY_TOKENS:
        text = text.replace(token, "")
    return text.strip()


def _separators(text: str) -> tuple[str, str]:
    """Return ``(decimal, thousands)`` separators guessed from the digits."""
    dots = text.count(".")
    commas = text.count(",")
    if dots and commas:
        return (".", ",") if text.rfind(".") > text.rfind(",") else (",", ".")
    if dots:
        if dots > 1 or len(text) - text.rfind(".") - 1 == 3:
            return ",", "."
        return ".", ","
    if commas:
        if commas > 1 or len(text) - text.rfind(",") - 1 == 3:
            return ".", ","
        return ",", "."
    return ".", ","


def parse_decimal(raw: str) -> Decimal:
    """Parse a human formatted amount such as ``"(1.234,50 €)"``."""
    if raw is None or not raw.strip():
        raise ValueError("Amount cannot be empty")
    text, negative = _split_sign(raw)
    text = _strip_currency(text)
    if text.startswith("-"):
        text, negative = text[1:].strip(), not negative
    decimal_sep, thousands_sep = _separators(text)
    if " " in text:
        thousands_sep = " "
    cleaned = text.replace(thousands_sep, "").replace(" ", "")
    if decimal_sep != ".":
        cleaned = cleaned.replace(decimal_sep, ".")
    if not _NUMBER_RE.match(cleaned):
        raise ValueError(f"Invalid amount: {raw!r}")
    try:
        value = Decimal(cleaned)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid amount: {raw!r}") from exc
    return -value if negative else value


def to_minor(value: Number) -> int:
    """Convert a natural-unit amount to scaled minor units (half-up rounding)."""
    if isinstance(value, bool):
        raise TypeError("Amounts must be numbers, not booleans")
    if isinstance(value, int):
        return value * SCALE
    if isinstance(value, str):
        value = parse_decimal(value)
    return int((value * _SCALE_DECIMAL).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def from_minor(amount: int) -> Decimal:
    """Convert scaled minor units back to a natural-unit ``Decimal``."""
    return (Decimal(amount) / _SCALE_DECIMAL).quantize(_PLACES)


def format_minor(amount: int) -> str:
    """Render minor units with every fractional digit, e.g. ``"10.0000"``."""
    return f"{from_minor(amount):.4f}"


def apply_rate(amount: int, rate: Decimal) -> int:
    """Multiply a minor-unit amount by an exchange rate, rounding half-up."""
    return int((Decimal(amount) * rate).quantize(Decimal(1), rounding=ROUND_HALF_UP))


__all__ = [
    "SCALE",
    "apply_rate",
    "format_minor",
    "from_minor",
    "parse_decimal",
    "to_minor",
]
