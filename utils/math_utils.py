"""
Numeric helpers shared by the forecasting services.

Quantities are reported as whole units, rounded half up the way the
pharmacy staff round by hand (2.5 boxes -> 3), not banker's rounding.
"""

import math
from decimal import Decimal, ROUND_HALF_UP


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    if not math.isfinite(value):
        return 0
    return int(Decimal(repr(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))

def round_decimal(value: float, places: int = 4) -> float:
    """Round a float to fixed places for display in methodology steps."""
    if not math.isfinite(value):
        return 0.0
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP))

def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Divide, returning default when the denominator is zero or the result is not finite."""
    if denominator == 0:
        return default
    result = numerator / denominator
    return result if math.isfinite(result) else default

def clamp(value: float, lower: float, upper: float) -> float:
    """Clamp value into [lower, upper]."""
    return max(lower, min(upper, value))
