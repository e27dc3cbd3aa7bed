"""
Confidence scoring for forecasts.

Score = baseline (by amount of history)
      + variability penalty (CV above threshold)
      + horizon adjustment (longer horizons are less certain),
clamped to [0, 100].

Deterministic: same statistics, period and algorithm give the same score.
"""

from dataclasses import dataclass, field
from typing import Optional

from models.forecast import (
    AlgorithmType,
    ConfidenceAssessment,
    ConfidenceBand,
    ConfidenceFactor,
    ConsumptionStatistics,
    ForecastPeriod,
    StepStatus,
)
from services.algorithm_service import DEFAULT_THRESHOLDS, HistoryThresholds
from services.methodology import MethodologyTrail
from utils.math_utils import clamp, round_half_up

# Baseline per history tier: below T1, T1..T2-1, T2..T3-1, T3+
BASELINE_BELOW_WEIGHTED = 20
BASELINE_WEIGHTED = 50
BASELINE_EXPONENTIAL = 70
BASELINE_REGRESSION = 90


@dataclass(frozen=True)
class ConfidencePolicy:
    """Tunable constants of the confidence score."""
    thresholds: HistoryThresholds = field(default_factory=HistoryThresholds)
    insufficient_floor: int = 20
    cv_threshold: float = 50.0
    penalty_slope: float = 0.5
    penalty_cap: float = 30.0
    quarter_adjustment: int = -10
    year_adjustment: int = -20

    @classmethod
    def from_settings(cls, settings) -> "ConfidencePolicy":
        return cls(
            thresholds=HistoryThresholds.from_settings(settings),
            insufficient_floor=settings.insufficient_data_confidence,
            cv_threshold=settings.variability_cv_threshold,
            penalty_slope=settings.variability_penalty_slope,
            penalty_cap=settings.variability_penalty_cap,
            quarter_adjustment=settings.quarter_confidence_adjustment,
            year_adjustment=settings.year_confidence_adjustment,
        )

    def period_adjustment(self, period: ForecastPeriod) -> int:
        return {
            ForecastPeriod.MONTH: 0,
            ForecastPeriod.QUARTER: self.quarter_adjustment,
            ForecastPeriod.YEAR: self.year_adjustment,
        }[period]


DEFAULT_POLICY = ConfidencePolicy(thresholds=DEFAULT_THRESHOLDS)


def baseline_confidence(data_points: int, thresholds: HistoryThresholds = DEFAULT_THRESHOLDS) -> int:
    """Baseline score from the amount of history."""
    if data_points < thresholds.weighted:
        return BASELINE_BELOW_WEIGHTED
    if data_points < thresholds.exponential:
        return BASELINE_WEIGHTED
    if data_points < thresholds.regression:
        return BASELINE_EXPONENTIAL
    return BASELINE_REGRESSION


def variability_penalty(cv: float, policy: ConfidencePolicy = DEFAULT_POLICY) -> float:
    """Points lost for a coefficient of variation above the threshold (0 otherwise)."""
    if cv <= policy.cv_threshold:
        return 0.0
    return min(policy.penalty_cap, (cv - policy.cv_threshold) * policy.penalty_slope)


def score_confidence(
    stats: ConsumptionStatistics,
    period: ForecastPeriod,
    algorithm: AlgorithmType,
    policy: ConfidencePolicy = DEFAULT_POLICY,
    trail: Optional[MethodologyTrail] = None,
) -> ConfidenceAssessment:
    """
    Score a forecast's reliability with the factors that shaped it.

    With no history the configured floor is returned for every period.
    """
    if algorithm == AlgorithmType.INSUFFICIENT_DATA:
        level = int(clamp(policy.insufficient_floor, 0, 100))
        factors = [
            ConfidenceFactor(
                factor_name="insufficient historical data",
                impact=0,
                triggering_value=stats.data_points,
                reason="No consumption history; confidence fixed at the configured floor",
            )
        ]
        if trail is not None:
            trail.add(
                "Confidence scoring",
                status=StepStatus.INSUFFICIENT,
                description="No history: confidence set to the floor.",
                outputs={"confidence_level": level},
            )
        return ConfidenceAssessment(
            baseline=level,
            factors=factors,
            confidence_level=level,
            band=ConfidenceBand.from_score(level),
        )

    baseline = baseline_confidence(stats.data_points, policy.thresholds)
    factors: list[ConfidenceFactor] = []

    penalty = variability_penalty(stats.coefficient_of_variation, policy)
    if penalty > 0:
        factors.append(
            ConfidenceFactor(
                factor_name="high consumption variability",
                impact=-penalty,
                triggering_value=stats.coefficient_of_variation,
                reason=(
                    f"Coefficient of variation {stats.coefficient_of_variation:.1f}% "
                    f"exceeds {policy.cv_threshold:.0f}%"
                ),
            )
        )

    adjustment = policy.period_adjustment(period)
    if adjustment != 0:
        factors.append(
            ConfidenceFactor(
                factor_name=f"{period.value} horizon",
                impact=adjustment,
                triggering_value=period.horizon_days,
                reason=f"Forecasting {period.horizon_days} days ahead is less certain",
            )
        )

    raw = baseline + sum(f.impact for f in factors)
    level = round_half_up(clamp(raw, 0, 100))

    if trail is not None:
        trail.add(
            "Confidence scoring",
            description="Baseline by history length, minus variability and horizon penalties.",
            formula="confidence = clamp(baseline + Σ adjustments, 0, 100)",
            inputs={
                "baseline": baseline,
                "coefficient_of_variation": stats.coefficient_of_variation,
                "variability_penalty": -penalty,
                "period_adjustment": adjustment,
            },
            outputs={"confidence_level": level},
        )

    return ConfidenceAssessment(
        baseline=baseline,
        factors=factors,
        confidence_level=level,
        band=ConfidenceBand.from_score(level),
    )
