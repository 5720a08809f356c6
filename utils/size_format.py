"""Human-readable byte sizes for diagnostics output."""

import re

_UNITS = ("B", "KB", "MB", "GB", "TB", "PB", "EB", "ZB", "YB", "RB")
_BINARY_UNITS = ("B", "KiB", "MiB", "GiB", "TiB", "PiB")

_BINARY_MULTIPLIERS = {
    "B": 1,
    "KIB": 1024,
    "MIB": 1024 ** 2,
    "GIB": 1024 ** 3,
    "TIB": 1024 ** 4,
    "PIB": 1024 ** 5,
}
_DECIMAL_MULTIPLIERS = {
    "B": 1,
    "KB": 1000,
    "MB": 1000 ** 2,
    "GB": 1000 ** 3,
    "TB": 1000 ** 4,
    "PB": 1000 ** 5,
}

_SIZE_PATTERN = re.compile(r"^([\d.]+)\s*([A-Z]+)$")


def _trim(value: float, decimals: int) -> str:
    formatted = f"{value:.{decimals}f}"
    if "." in formatted:
        formatted = formatted.rstrip("0").rstrip(".")
    return formatted


def _scale(size: float, divisor: int, units: tuple[str, ...], decimals: int) -> str:
    index = 0
    while size >= divisor and index < len(units) - 1:
        size /= divisor
        index += 1
    return f"{_trim(size, decimals)} {units[index]}"


def format_size(num_bytes: float, decimals: int = 2, decimal: bool = False) -> str:
    """Format a byte count, e.g. ``1536 -> "1.5 KB"``.

    Binary divisor (1024) by default; ``decimal=True`` switches to SI (1000).
    Negative counts are formatted by magnitude.
    """
    if num_bytes == 0:
        return "0 B"
    return _scale(abs(num_bytes), 1000 if decimal else 1024, _UNITS, decimals)


def format_size_binary(num_bytes: float, decimals: int = 2) -> str:
    """Like format_size but with IEC labels (KiB, MiB, ...)."""
    if num_bytes == 0:
        return "0 B"
    return _scale(abs(num_bytes), 1024, _BINARY_UNITS, decimals)


def format_size_decimal(num_bytes: float, decimals: int = 2) -> str:
    return format_size(num_bytes, decimals=decimals, decimal=True)


def parse_size(text: str) -> int | None:
    """Convert ``"1.5 MB"`` / ``"256 KiB"`` back to bytes; None if invalid."""
    match = _SIZE_PATTERN.match(text.strip().upper())
    if not match:
        return None

    try:
        value = float(match.group(1))
    except ValueError:
        return None

    unit = match.group(2)
    multiplier = _BINARY_MULTIPLIERS.get(unit) or _DECIMAL_MULTIPLIERS.get(unit)
    if not multiplier:
        return None
    return int(value * multiplier + 0.5)
