"""Utility helpers for normalising price values."""

from __future__ import annotations

import re

_PRICE_PATTERN = re.compile(r"-?\d[\d,]*(?:\.\d+)?|-?\.\d+")

CURRENCY_SYMBOLS = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
}


def parse_price(value: object) -> float | None:
    """Convert a scraped price (number or text like ``"$1,234.56"``) to a float."""

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value).strip()
    if not text:
        return None

    match = _PRICE_PATTERN.search(text.replace(" ", ""))
    if not match:
        return None
    try:
        return float(match.group(0).replace(",", ""))
    except ValueError:
        return None


def format_price(amount: float | None, currency: str | None = "USD") -> str:
    """Render *amount* with the symbol of *currency* when one is known."""

    if amount is None:
        return "n/a"
    code = (currency or "USD").upper()
    symbol = CURRENCY_SYMBOLS.get(code)
    if code == "JPY":
        number = f"{amount:,.0f}"
    else:
        number = f"{amount:,.2f}"
    if symbol:
        return f"{symbol}{number}"
    return f"{code} {number}"


__all__ = ["CURRENCY_SYMBOLS", "format_price", "parse_price"]
