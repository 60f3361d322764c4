"""
Unit conversion helpers for wei-denominated quantities.

All amounts stay arbitrary-precision ``int`` internally; these helpers only
produce the human-readable decimal strings placed in analysis output.
"""
from typing import Any, Optional

GWEI_DECIMALS = 9
ETHER_DECIMALS = 18


def to_int(value: Any) -> Optional[int]:
    """Parse a JSON-RPC quantity (hex string, decimal string or int)"""
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, (bytes, bytearray)):
        return int.from_bytes(value, 'big')
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.lower().startswith('0x'):
            return int(text, 16) if len(text) > 2 else 0
        return int(text)
    raise ValueError(f"Cannot interpret {value!r} as an integer quantity")


def format_units(value: int, decimals: int) -> str:
    """
    Format an integer amount of minor units as a decimal string.

    Always keeps at least one fractional digit, so ``10**18`` with 18
    decimals renders as ``"1.0"``.
    """
    if decimals < 0:
        raise ValueError("decimals cannot be negative")

    sign = '-' if value < 0 else ''
    digits = str(abs(value))

    if decimals == 0:
        return f"{sign}{digits}.0"

    digits = digits.rjust(decimals + 1, '0')
    whole = digits[:-decimals]
    fraction = digits[-decimals:].rstrip('0') or '0'
    return f"{sign}{whole}.{fraction}"


def format_ether(value: int) -> str:
    return format_units(value, ETHER_DECIMALS)


def format_gwei(value: int) -> str:
    return format_units(value, GWEI_DECIMALS)
