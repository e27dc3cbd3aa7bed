"""
Algorithm selection and daily demand estimation.

The forecasting method grows with the amount of history:

    data_points          algorithm
    0                    insufficient_data
    1 .. T1-1            moving_average
    T1 .. T2-1           weighted_moving_average
    T2 .. T3-1           exponential_moving_average
    T3+                  linear_regression_combined

Thresholds default to T1=7, T2=30, T3=90 (see config.settings).
Every branch records its formula and numbers in the methodology trail.
"""

from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Union

from models.forecast import AlgorithmSelection, AlgorithmType, ForecastPeriod, StepStatus
from exceptions import InvalidPeriodError
from services.methodology import MethodologyTrail
from utils.math_utils import round_half_up, safe_divide

# Share of the weighted average vs. the regression trend in the combined method
REGRESSION_BLEND_WEIGHT = 0.5


@dataclass(frozen=True)
class HistoryThresholds:
    """Minimum data points for each algorithm tier."""
    weighted: int = 7
    exponential: int = 30
    regression: int = 90

    @classmethod
    def from_settings(cls, settings) -> "HistoryThresholds":
        return cls(
            weighted=settings.forecast_min_history_days,
            exponential=settings.forecast_ema_history_days,
            regression=settings.forecast_regression_history_days,
        )


DEFAULT_THRESHOLDS = HistoryThresholds()


def parse_period(value: Union[str, ForecastPeriod]) -> ForecastPeriod:
    """Convert a period name to ForecastPeriod, raising InvalidPeriodError."""
    if isinstance(value, ForecastPeriod):
        return value
    try:
        return ForecastPeriod(str(value).strip().lower())
    except ValueError:
        raise InvalidPeriodError(str(value))


# ===================
# SELECTION
# ===================

def select_algorithm(
    data_points: int,
    thresholds: HistoryThresholds = DEFAULT_THRESHOLDS
) -> AlgorithmType:
    """Pick the algorithm for a series length. First match wins."""
    if data_points <= 0:
        return AlgorithmType.INSUFFICIENT_DATA
    if data_points < thresholds.weighted:
        return AlgorithmType.MOVING_AVERAGE
    if data_points < thresholds.exponential:
        return AlgorithmType.WEIGHTED_MOVING_AVERAGE
    if data_points < thresholds.regression:
        return AlgorithmType.EXPONENTIAL_MOVING_AVERAGE
    return AlgorithmType.LINEAR_REGRESSION_COMBINED


# ===================
# CALCULATIONS
# ===================

def simple_average(values: Sequence[float]) -> float:
    """Arithmetic mean, 0 for an empty sequence."""
    return safe_divide(sum(values), len(values))


def weighted_moving_average(values: Sequence[float]) -> float:
    """
    Linearly weighted average: weight_i = i for i = 1..n, so the
    most recent day weighs most.
    """
    n = len(values)
    weighted_sum = sum((i + 1) * v for i, v in enumerate(values))
    weight_sum = n * (n + 1) / 2
    return safe_divide(weighted_sum, weight_sum)


def exponential_moving_average(values: Sequence[float]) -> tuple[float, float]:
    """
    EMA seeded with the first value, alpha = 2 / (n + 1).

    Returns:
        Tuple of (final EMA, alpha)
    """
    if not values:
        return 0.0, 0.0
    alpha = 2 / (len(values) + 1)
    ema = values[0]
    for value in values[1:]:
        ema = alpha * value + (1 - alpha) * ema
    return ema, alpha


def linear_regression(values: Sequence[float]) -> Optional[tuple[float, float]]:
    """
    Ordinary least squares of quantity against day index (1..n).

    Returns:
        Tuple of (slope, intercept), or None with fewer than 2 points
    """
    n = len(values)
    if n < 2:
        return None

    sum_x = n * (n + 1) / 2
    sum_x2 = n * (n + 1) * (2 * n + 1) / 6
    sum_y = sum(values)
    sum_xy = sum((i + 1) * v for i, v in enumerate(values))

    denominator = n * sum_x2 - sum_x * sum_x
    if denominator == 0:
        return None

    slope = (n * sum_xy - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n
    return slope, intercept


# ===================
# BRANCHES
# ===================

def _moving_average_branch(values: Sequence[float], trail: MethodologyTrail) -> float:
    daily = simple_average(values)
    trail.add(
        "Simple moving average",
        description="Few days of history: every available day counts equally.",
        formula="daily_average = Σxᵢ / n",
        inputs={"n": len(values), "sum": sum(values)},
        outputs={"daily_average": daily},
    )
    return daily


def _weighted_branch(values: Sequence[float], trail: MethodologyTrail) -> float:
    daily = weighted_moving_average(values)
    n = len(values)
    trail.add(
        "Weighted moving average",
        description="Recent days weigh more: day i of n gets weight i.",
        formula="daily_average = Σ(i·xᵢ) / Σi, i = 1..n",
        inputs={
            "n": n,
            "weighted_sum": sum((i + 1) * v for i, v in enumerate(values)),
            "weight_sum": n * (n + 1) / 2,
        },
        outputs={"daily_average": daily},
    )
    return daily


def _exponential_branch(values: Sequence[float], trail: MethodologyTrail) -> float:
    daily, alpha = exponential_moving_average(values)
    trail.add(
        "Exponential moving average",
        description="Smoothed series seeded with the first day.",
        formula="α = 2/(n+1); EMA₁ = x₁; EMAₜ = α·xₜ + (1−α)·EMAₜ₋₁",
        inputs={"n": len(values), "alpha": alpha, "first_value": values[0]},
        outputs={"daily_average": daily},
    )
    return daily


def _regression_branch(values: Sequence[float], trail: MethodologyTrail) -> float:
    weighted = _weighted_branch(values, trail)

    n = len(values)
    fit = linear_regression(values)
    if fit is None:
        trail.add(
            "Linear regression",
            status=StepStatus.INFO,
            description="Regression not defined for this series; weighted average used alone.",
            inputs={"n": n},
        )
        return weighted

    slope, intercept = fit
    trend_prediction = slope * (n + 1) + intercept
    trail.add(
        "Linear regression",
        description="Least-squares trend of quantity against day index, evaluated at the next day.",
        formula="m = (nΣxy − ΣxΣy)/(nΣx² − (Σx)²); b = (Σy − mΣx)/n; trend = m·(n+1) + b",
        inputs={"n": n},
        outputs={"slope": slope, "intercept": intercept, "trend_prediction": trend_prediction},
    )

    daily = REGRESSION_BLEND_WEIGHT * weighted + (1 - REGRESSION_BLEND_WEIGHT) * trend_prediction
    trail.add(
        "Combine average and trend",
        description="Blend of the weighted average and the regression trend.",
        formula="daily_average = 0.5·weighted_average + 0.5·trend_prediction",
        inputs={"weighted_average": weighted, "trend_prediction": trend_prediction},
        outputs={"daily_average": daily},
    )
    return daily


_BRANCHES: dict[AlgorithmType, Callable[[Sequence[float], MethodologyTrail], float]] = {
    AlgorithmType.MOVING_AVERAGE: _moving_average_branch,
    AlgorithmType.WEIGHTED_MOVING_AVERAGE: _weighted_branch,
    AlgorithmType.EXPONENTIAL_MOVING_AVERAGE: _exponential_branch,
    AlgorithmType.LINEAR_REGRESSION_COMBINED: _regression_branch,
}


# ===================
# ENTRY POINTS
# ===================

def estimate_daily_demand(
    quantities: Sequence[float],
    thresholds: HistoryThresholds = DEFAULT_THRESHOLDS,
    trail: Optional[MethodologyTrail] = None,
) -> AlgorithmSelection:
    """
    Select the algorithm for the series and compute the daily average.

    Never raises. No history gives insufficient_data with a 0 average;
    an all-zero history gives moving_average with a 0 average.
    """
    trail = trail if trail is not None else MethodologyTrail()
    values = [float(q) for q in quantities]
    n = len(values)

    algorithm = select_algorithm(n, thresholds)

    if algorithm == AlgorithmType.INSUFFICIENT_DATA:
        trail.add(
            "Historical data check",
            status=StepStatus.INSUFFICIENT,
            description="No consumption recorded in the lookback window; no forecast possible yet.",
            inputs={"data_points": 0},
            outputs={"daily_average": 0.0},
        )
        return AlgorithmSelection(algorithm=algorithm, daily_average=0.0, steps=trail.steps)

    trail.add(
        "Historical data check",
        description=f"{n} days of history selects {algorithm.value}.",
        inputs={
            "data_points": n,
            "weighted_threshold": thresholds.weighted,
            "exponential_threshold": thresholds.exponential,
            "regression_threshold": thresholds.regression,
        },
    )

    if sum(values) == 0:
        trail.add(
            "Zero consumption",
            status=StepStatus.INFO,
            description="All recorded days are zero; falling back to a moving average of 0.",
            inputs={"data_points": n},
            outputs={"daily_average": 0.0},
        )
        return AlgorithmSelection(
            algorithm=AlgorithmType.MOVING_AVERAGE,
            daily_average=0.0,
            steps=trail.steps
        )

    daily_average = _BRANCHES[algorithm](values, trail)
    return AlgorithmSelection(algorithm=algorithm, daily_average=daily_average, steps=trail.steps)


def project_quantity(
    daily_average: float,
    period: ForecastPeriod,
    trail: Optional[MethodologyTrail] = None
) -> int:
    """Scale the daily average to the horizon; never negative."""
    raw = daily_average * period.horizon_days
    predicted = max(0, round_half_up(raw))
    if trail is not None:
        trail.add(
            "Horizon projection",
            description=f"Daily average projected over a {period.value} ({period.horizon_days} days), clamped at 0.",
            formula="predicted_quantity = max(0, round(daily_average × horizon_days))",
            inputs={"daily_average": daily_average, "horizon_days": period.horizon_days},
            outputs={"predicted_quantity": predicted},
        )
    return predicted
