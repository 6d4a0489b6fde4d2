"""Human-readable formatting helpers."""

from __future__ import annotations

_KB = 1024
_MB = _KB * 1024
_GB = _MB * 1024


def format_size(size_bytes: int) -> str:
    """Format a byte count using binary units with one decimal place.

    Example:
        >>> format_size(1536)
        '1.5 KB'
    """
    if size_bytes >= _GB:
        return f"{size_bytes / _GB:.1f} GB"
    if size_bytes >= _MB:
        return f"{size_bytes / _MB:.1f} MB"
    if size_bytes >= _KB:
        return f"{size_bytes / _KB:.1f} KB"
    return f"{size_bytes} bytes"
