"""
Safe arithmetic helpers.

Every engine routes its divisions and numeric coercions through this module.
The policy is a zero default: a division by zero, a missing value, a string
that does not parse and any NaN or infinite result all become 0 (or the
explicit default passed by the caller). NaN never leaves the engine.
"""

from typing import Any, Optional, Sequence
import logging

import numpy as np

logger = logging.getLogger(__name__)


def safe_float(value: Any, default: float = 0.0) -> float:
    """
    Coerce a value to a finite float.

    Args:
        value: Number, numeric string, None or NaN
        default: Returned when the value is missing or not finite

    Returns:
        The value as float, or default

    Example:
        >>> safe_float("12.5")
        12.5
        >>> safe_float(float("nan"))
        0.0
    """
    if value is None:
        return default
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return default
    try:
        result = float(value)
    except (TypeError, ValueError):
        return default
    if not np.isfinite(result):
        return default
    return result


def safe_int(value: Any, default: Optional[int] = None) -> Optional[int]:
    """Coerce a value to int; '2021', 2021.0 and ' 2021 ' all give 2021."""
    number = safe_float(value, default=np.nan)
    if not np.isfinite(number):
        return default
    return int(number)


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """
    Divide, returning default when the denominator is zero or the result is not finite.

    Example:
        >>> safe_divide(130, 100)
        1.3
        >>> safe_divide(5, 0)
        0.0
    """
    numerator = safe_float(numerator)
    denominator = safe_float(denominator)
    if denominator == 0:
        return default
    return safe_float(numerator / denominator, default)


def pattern_value(pattern: Sequence[float], index: int) -> float:
    """Return pattern[index] as a finite float; out-of-range or NaN entries give 0."""
    if pattern is None or index < 0 or index >= len(pattern):
        return 0.0
    return safe_float(pattern[index])


def safe_sum(values) -> float:
    """Sum values, treating missing or non-finite entries as 0."""
    return float(sum(safe_float(v) for v in values))
