from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any


def _plain_decimal_string(amount: Any) -> str:
    if isinstance(amount, bool):
        raise ValueError(f"Invalid amount: {amount!r}")
    if isinstance(amount, int):
        return str(amount)
    if isinstance(amount, float):
        # repr gives the shortest string that round-trips, so no binary digits leak in.
        amount = repr(amount)
    if isinstance(amount, (str, Decimal)):
        try:
            parsed = Decimal(str(amount).strip())
        except InvalidOperation as exc:
            raise ValueError(f"Invalid amount: {amount!r}") from exc
        if not parsed.is_finite():
            raise ValueError(f"Invalid amount: {amount!r}")
        return format(parsed, "f")
    raise ValueError(f"Invalid amount: {amount!r}")


def decimal_to_wei(amount: Any, decimals: int) -> int:
    """Convert a human decimal amount into integer smallest units.

    Digits beyond ``decimals`` are truncated, never rounded, so the payer can
    not overpay. Only integer arithmetic is used on the digit strings.
    """

    if decimals < 0:
        raise ValueError("decimals must be non-negative")
    text = _plain_decimal_string(amount)
    if text.startswith("-"):
        raise ValueError(f"Negative amount: {amount!r}")
    text = text.lstrip("+")

    integer_part, _, fractional_part = text.partition(".")
    integer_part = integer_part or "0"
    if not integer_part.isdigit() or (fractional_part and not fractional_part.isdigit()):
        raise ValueError(f"Invalid amount: {amount!r}")

    multiplier = 10**decimals
    integer_wei = int(integer_part) * multiplier
    if not fractional_part or decimals == 0:
        return integer_wei

    padded = fractional_part[:decimals].ljust(decimals, "0")
    return integer_wei + int(padded)


def clamp_decimals(amount_wei: int, decimals: int, clamp: int) -> int:
    """Drop dust below ``clamp`` fractional digits by truncation."""

    if clamp < 0:
        raise ValueError("clamp_decimals must be non-negative")
    if clamp >= decimals:
        return amount_wei
    dust_factor = 10 ** (decimals - clamp)
    return (amount_wei // dust_factor) * dust_factor


def wei_to_decimal(amount_wei: int | str, decimals: int) -> str:
    """Format smallest units as a decimal string without trailing zeros."""

    value = int(amount_wei)
    sign = "-" if value < 0 else ""
    value = abs(value)
    if decimals == 0:
        return f"{sign}{value}"
    whole, fraction = divmod(value, 10**decimals)
    fraction_text = str(fraction).rjust(decimals, "0").rstrip("0")
    if not fraction_text:
        return f"{sign}{whole}"
    return f"{sign}{whole}.{fraction_text}"


__all__ = ["clamp_decimals", "decimal_to_wei", "wei_to_decimal"]
