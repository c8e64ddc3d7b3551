"""
Weight parsing for order exports.

Marketplace exports write weights in many ways: "1.2", "1,2 kg", "0.5KG",
" 3 kg ", or leave the cell empty. Everything here collapses into a
non-negative number of kilograms and never raises.
"""

import math
import re
from typing import Any, Optional

# Trailing "kg" unit, case-insensitive, optionally preceded by whitespace
_KG_SUFFIX = re.compile(r"\s*kg\s*$", re.IGNORECASE)

# Leading floating point number, the way a lenient float parser reads it
_LEADING_FLOAT = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def try_parse_weight(raw: Any) -> Optional[float]:
    """
    Parse a weight value, reporting failure instead of defaulting.

    Args:
        raw: Cell value (str, int, float or None)

    Returns:
        The parsed weight in kg (may be negative), or None if the value is
        empty or not a number.
    """
    if raw is None or isinstance(raw, bool):
        return None

    if isinstance(raw, (int, float)):
        value = float(raw)
        return value if math.isfinite(value) else None

    text = str(raw).strip()
    if not text:
        return None

    text = _KG_SUFFIX.sub("", text)
    # European decimal comma
    text = text.replace(",", ".", 1).strip()

    match = _LEADING_FLOAT.match(text)
    if not match:
        return None

    value = float(match.group(0))
    return value if math.isfinite(value) else None


def parse_weight(raw: Any) -> float:
    """
    Normalize a weight value into non-negative kilograms.

    Examples:
        "2,5 kg" -> 2.5
        "0.5kg"  -> 0.5
        ""       -> 0.0
        "abc"    -> 0.0
        "-3"     -> 0.0

    Args:
        raw: Cell value (str, int, float or None)

    Returns:
        Weight in kg, 0.0 for anything empty, invalid or negative
    """
    value = try_parse_weight(raw)
    if value is None:
        return 0.0
    return max(0.0, value)
