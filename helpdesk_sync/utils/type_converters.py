"""
Type converters — tolerant conversion of header and payload values.
Version: 1.0.0
"""
from typing import Any, Optional


def to_int(value: Any) -> Optional[int]:
    """Convert value to int ("42", "42.0", 42.7 -> 42), returning None if invalid."""
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(float(str(value).strip()))
    except (ValueError, TypeError, OverflowError):
        return None
