import re
from datetime import datetime, timezone

ADDRESS_RE = re.compile(r"0x[a-fA-F0-9]{40}")
ADDRESS_IN_TEXT_RE = re.compile(r"\b0x[a-fA-F0-9]{40}\b")

NATIVE_SYMBOL = "STT"
NATIVE_DECIMALS = 18


def is_valid_address(address: object) -> bool:
    """True for `0x` + 40 hex digits. Purely syntactic, no checksum check."""
    if not isinstance(address, str):
        return False
    return ADDRESS_RE.fullmatch(address) is not None


def short_address(address: str, head: int = 6, tail: int = 4) -> str:
    """Truncate: 0x1234...abcd"""
    if len(address) <= head + tail + 3:
        return address
    return f"{address[:head]}...{address[-tail:]}"


def to_whole_units(base_units: int | str, decimals: int = NATIVE_DECIMALS) -> int:
    """Integer division against the base-unit exponent. Truncates, never rounds."""
    return int(base_units) // (10 ** decimals)


def format_native(base_units: int | str, symbol: str = NATIVE_SYMBOL) -> str:
    return f"{to_whole_units(base_units)} {symbol}"


def hex_to_int(value: str | int | None) -> int | None:
    if value is None:
        return None
    if isinstance(value, int):
        return value
    return int(value, 16)


def plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


def iso_now() -> str:
    """UTC wall-clock time as ISO-8601 with millisecond precision, e.g. 2025-01-01T00:00:00.000Z"""
    return (
        datetime.now(timezone.utc)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z")
    )
