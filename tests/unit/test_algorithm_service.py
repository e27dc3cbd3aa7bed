"""
Unit tests for algorithm selection and daily demand estimation.

Tests:
1. Selection table boundaries
2. The individual calculations
3. estimate_daily_demand end to end, methodology trail included
4. Horizon projection and period parsing

Run: pytest tests/unit/test_algorithm_service.py -v
"""

import pytest

from services.algorithm_service import (
    HistoryThresholds,
    select_algorithm,
    simple_average,
    weighted_moving_average,
    exponential_moving_average,
    linear_regression,
    estimate_daily_demand,
    project_quantity,
    parse_period,
)
from services.methodology import MethodologyTrail
from models.forecast import AlgorithmType, ForecastPeriod, StepStatus
from exceptions import InvalidPeriodError


# ===================
# TEST 1: SELECTION
# ===================

class TestSelectAlgorithm:
    """Default thresholds: T1=7, T2=30, T3=90."""

    @pytest.mark.parametrize("data_points,expected", [
        (0, AlgorithmType.INSUFFICIENT_DATA),
        (1, AlgorithmType.MOVING_AVERAGE),
        (6, AlgorithmType.MOVING_AVERAGE),
        (7, AlgorithmType.WEIGHTED_MOVING_AVERAGE),
        (29, AlgorithmType.WEIGHTED_MOVING_AVERAGE),
        (30, AlgorithmType.EXPONENTIAL_MOVING_AVERAGE),
        (89, AlgorithmType.EXPONENTIAL_MOVING_AVERAGE),
        (90, AlgorithmType.LINEAR_REGRESSION_COMBINED),
        (365, AlgorithmType.LINEAR_REGRESSION_COMBINED),
    ])
    def test_boundaries(self, data_points, expected):
        assert select_algorithm(data_points) == expected

    def test_custom_thresholds(self):
        thresholds = HistoryThresholds(weighted=3, exponential=5, regression=8)

        assert select_algorithm(2, thresholds) == AlgorithmType.MOVING_AVERAGE
        assert select_algorithm(3, thresholds) == AlgorithmType.WEIGHTED_MOVING_AVERAGE
        assert select_algorithm(5, thresholds) == AlgorithmType.EXPONENTIAL_MOVING_AVERAGE
        assert select_algorithm(8, thresholds) == AlgorithmType.LINEAR_REGRESSION_COMBINED

    def test_thresholds_from_settings(self, test_settings):
        thresholds = HistoryThresholds.from_settings(test_settings)

        assert thresholds == HistoryThresholds(weighted=7, exponential=30, regression=90)


# ===================
# TEST 2: CALCULATIONS
# ===================

class TestCalculations:

    def test_simple_average(self):
        assert simple_average([10, 20, 30]) == 20
        assert simple_average([]) == 0

    def test_weighted_average_favours_recent_days(self):
        """Weights 1..n: (1·10 + 2·20) / 3."""
        assert weighted_moving_average([10, 20]) == pytest.approx(50 / 3)

    def test_weighted_average_example(self):
        """Σ(i·xᵢ) = 354, Σi = 28."""
        assert weighted_moving_average([10, 12, 11, 13, 12, 14, 13]) == pytest.approx(354 / 28)

    def test_ema_seeded_with_first_value(self):
        """alpha = 2/(n+1) = 0.5 for three values."""
        ema, alpha = exponential_moving_average([1, 2, 3])

        assert alpha == pytest.approx(0.5)
        assert ema == pytest.approx(2.25)

    def test_ema_empty(self):
        assert exponential_moving_average([]) == (0.0, 0.0)

    def test_regression_perfect_line(self):
        slope, intercept = linear_regression([1, 2, 3, 4])

        assert slope == pytest.approx(1.0)
        assert intercept == pytest.approx(0.0, abs=1e-9)

    def test_regression_flat_series(self):
        slope, intercept = linear_regression([5, 5, 5])

        assert slope == pytest.approx(0.0, abs=1e-9)
        assert intercept == pytest.approx(5.0)

    def test_regression_needs_two_points(self):
        assert linear_regression([5]) is None


# ===================
# TEST 3: ESTIMATION
# ===================

class TestEstimateDailyDemand:

    def test_no_history_is_insufficient(self):
        trail = MethodologyTrail()
        selection = estimate_daily_demand([], trail=trail)

        assert selection.algorithm == AlgorithmType.INSUFFICIENT_DATA
        assert selection.daily_average == 0
        assert len(trail) == 1
        assert trail.steps[0].status == StepStatus.INSUFFICIENT

    def test_few_days_use_moving_average(self):
        selection = estimate_daily_demand([4, 6, 8])

        assert selection.algorithm == AlgorithmType.MOVING_AVERAGE
        assert selection.daily_average == pytest.approx(6.0)

    def test_example_uses_weighted_average(self):
        selection = estimate_daily_demand([10, 12, 11, 13, 12, 14, 13])

        assert selection.algorithm == AlgorithmType.WEIGHTED_MOVING_AVERAGE
        assert selection.daily_average == pytest.approx(12.642857, rel=1e-6)

    def test_thirty_days_use_ema(self):
        values = [10.0] * 29 + [40.0]
        selection = estimate_daily_demand(values)

        # alpha = 2/31; only the last day differs from the seed
        assert selection.algorithm == AlgorithmType.EXPONENTIAL_MOVING_AVERAGE
        assert selection.daily_average == pytest.approx(10 + 30 * 2 / 31)

    def test_regression_blends_average_and_trend(self):
        """For 1..90: WMA = 181/3, trend at day 91 = 91, blend = 0.5 each."""
        values = [float(i) for i in range(1, 91)]
        selection = estimate_daily_demand(values)

        assert selection.algorithm == AlgorithmType.LINEAR_REGRESSION_COMBINED
        assert selection.daily_average == pytest.approx(0.5 * (181 / 3) + 0.5 * 91)

    def test_regression_on_flat_series(self):
        selection = estimate_daily_demand([4.0] * 120)

        assert selection.daily_average == pytest.approx(4.0)

    def test_all_zero_history_falls_back_to_zero(self):
        """Zero consumption is not an error: moving average of 0."""
        trail = MethodologyTrail()
        selection = estimate_daily_demand([0] * 40, trail=trail)

        assert selection.algorithm == AlgorithmType.MOVING_AVERAGE
        assert selection.daily_average == 0
        assert trail.steps[-1].status == StepStatus.INFO

    def test_trail_is_numbered_in_order(self):
        trail = MethodologyTrail()
        estimate_daily_demand([float(i) for i in range(1, 91)], trail=trail)

        names = [s.name for s in trail.steps]
        assert [s.step_number for s in trail.steps] == list(range(1, len(names) + 1))
        assert names == [
            "Historical data check",
            "Weighted moving average",
            "Linear regression",
            "Combine average and trend",
        ]

    def test_trail_records_the_numbers_used(self):
        trail = MethodologyTrail()
        selection = estimate_daily_demand([10, 12, 11, 13, 12, 14, 13], trail=trail)

        step = trail.steps[-1]
        assert step.inputs["weighted_sum"] == 354
        assert step.inputs["weight_sum"] == 28
        assert step.outputs["daily_average"] == pytest.approx(selection.daily_average, abs=1e-4)


# ===================
# TEST 4: PROJECTION
# ===================

class TestProjectQuantity:

    @pytest.mark.parametrize("period,expected", [
        (ForecastPeriod.MONTH, 379),
        (ForecastPeriod.QUARTER, 1138),
        (ForecastPeriod.YEAR, 4615),
    ])
    def test_example_projection(self, period, expected):
        assert project_quantity(354 / 28, period) == expected

    def test_rounds_half_up(self):
        """0.25 × 30 = 7.5 rounds to 8."""
        assert project_quantity(0.25, ForecastPeriod.MONTH) == 8

    def test_never_negative(self):
        assert project_quantity(-3.0, ForecastPeriod.MONTH) == 0

    def test_adds_step_to_trail(self):
        trail = MethodologyTrail()
        project_quantity(2.0, ForecastPeriod.QUARTER, trail)

        assert trail.steps[0].outputs["predicted_quantity"] == 180
        assert trail.steps[0].inputs["horizon_days"] == 90


class TestParsePeriod:

    def test_accepts_names_case_insensitively(self):
        assert parse_period("Quarter") == ForecastPeriod.QUARTER
        assert parse_period(ForecastPeriod.YEAR) == ForecastPeriod.YEAR

    def test_unknown_period_raises(self):
        with pytest.raises(InvalidPeriodError) as exc_info:
            parse_period("weekly")

        assert exc_info.value.code == "INVALID_PERIOD"
        assert exc_info.value.status_code == 422
