"""
Weight and AWB key parsing for raw spreadsheet cells.
"""
import math
import re
from typing import Any, Optional

# Leading decimal number, e.g. "12.5" in "12.5 kg"
_NUMBER_PREFIX = re.compile(r'^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?')


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return False


def parse_weight(value: Any) -> float:
    """
    Parse a weight cell into a float.

    Handles:
    - Numeric cells (int, float, numpy numbers)
    - Strings with a numeric prefix: "12.5", " 12.5 kg", "1e3"
    - Empty, missing or unparseable values, which become 0.0

    Args:
        value: Raw cell value

    Returns:
        A finite float, or 0.0 if the value holds no usable number
    """
    if _is_missing(value) or isinstance(value, bool):
        return 0.0

    if isinstance(value, (int, float)):
        number = float(value)
        return number if math.isfinite(number) else 0.0

    value_str = str(value).strip()
    match = _NUMBER_PREFIX.match(value_str)
    if not match:
        return 0.0

    number = float(match.group(0))
    return number if math.isfinite(number) else 0.0


def has_valid_weight(value: Any) -> bool:
    """
    Check if a value contains a parseable weight.

    Args:
        value: A value to check

    Returns:
        True if a number can be read from the value, False otherwise
    """
    if _is_missing(value) or isinstance(value, bool):
        return False

    if isinstance(value, (int, float)):
        return math.isfinite(float(value))

    match = _NUMBER_PREFIX.match(str(value).strip())
    return match is not None and math.isfinite(float(match.group(0)))


def normalize_key(value: Any) -> Optional[str]:
    """
    Normalize an AWB cell into a trimmed string key.

    Integral floats such as 12345678.0 (how spreadsheets often hand back
    numeric AWBs) lose the trailing ".0".

    Args:
        value: Raw cell value

    Returns:
        The key, or None for empty cells
    """
    if _is_missing(value):
        return None

    if isinstance(value, float) and value.is_integer():
        value = int(value)

    key = str(value).strip()
    return key or None
