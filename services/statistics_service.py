"""
Descriptive statistics for consumption series.

Pure functions: no I/O, never raise on empty or all-zero input.
"""

import math
from typing import Sequence

from models.forecast import ConsumptionStatistics
from utils.math_utils import safe_divide


def calculate_statistics(quantities: Sequence[float]) -> ConsumptionStatistics:
    """
    Compute mean, population std-dev, CV (%), min and max.

    - Empty series: everything 0.
    - One point: std-dev 0.
    - Zero mean: CV 0 (treated as no variability).
    """
    n = len(quantities)
    if n == 0:
        return ConsumptionStatistics()

    mean = sum(quantities) / n

    std_deviation = 0.0
    if n > 1:
        variance = sum((q - mean) ** 2 for q in quantities) / n
        std_deviation = math.sqrt(variance)

    cv = safe_divide(std_deviation, mean) * 100 if mean > 0 else 0.0

    return ConsumptionStatistics(
        mean=mean,
        std_deviation=std_deviation,
        coefficient_of_variation=cv,
        min=min(quantities),
        max=max(quantities),
        data_points=n,
    )
