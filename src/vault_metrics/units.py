from __future__ import annotations

from .constants import WAD


def scale_to_18(value: int, decimals: int) -> int:
    """Rescale an integer amount with ``decimals`` places to 18 places.

    Amounts with more than 18 places are floored.
    """
    if decimals == 18:
        return value
    if decimals < 18:
        return value * (10 ** (18 - decimals))
    return value // (10 ** (decimals - 18))


def format_units(value: int | str, decimals: int) -> str:
    """Render a raw token amount as a decimal string without going through float.

    ``format_units("1500000", 6)`` returns ``"1.500000"``. All ``decimals``
    fractional digits are kept.
    """
    raw = int(value)
    sign = "-" if raw < 0 else ""
    integer_part, fractional_part = divmod(abs(raw), 10**decimals)
    if decimals == 0:
        return f"{sign}{integer_part}"
    return f"{sign}{integer_part}.{fractional_part:0{decimals}d}"


def wad_to_float(value: int) -> float:
    """Convert an 18-decimal fixed-point integer to float."""
    return value / WAD
