"""
Forecast schemas for the consumption forecasting engine.

Covers the input series, the derived statistics, the methodology
audit trail, confidence scoring, stock recommendations and the
bulk generation report.
"""

import calendar
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Optional

from pydantic import Field, field_validator, model_validator

from models.base import BaseSchema, FrozenSchema
from utils.math_utils import round_half_up

# Fixed share of predicted demand held as safety stock
SAFETY_STOCK_RATIO = 0.20


# ===================
# ENUMS
# ===================

class ForecastPeriod(str, Enum):
    """Forecast horizon."""
    MONTH = "month"
    QUARTER = "quarter"
    YEAR = "year"

    @property
    def horizon_days(self) -> int:
        """Days projected for this horizon."""
        return {"month": 30, "quarter": 90, "year": 365}[self.value]

    @property
    def horizon_months(self) -> int:
        """Calendar months covered by this horizon."""
        return {"month": 1, "quarter": 3, "year": 12}[self.value]

    def window_end(self, start: date) -> date:
        """Calendar end of the forecast window starting at `start`."""
        month_index = start.month - 1 + self.horizon_months
        year = start.year + month_index // 12
        month = month_index % 12 + 1
        day = min(start.day, calendar.monthrange(year, month)[1])
        return date(year, month, day)


class AlgorithmType(str, Enum):
    """Forecasting method, chosen by how much history exists."""
    INSUFFICIENT_DATA = "insufficient_data"
    MOVING_AVERAGE = "moving_average"
    WEIGHTED_MOVING_AVERAGE = "weighted_moving_average"
    EXPONENTIAL_MOVING_AVERAGE = "exponential_moving_average"
    LINEAR_REGRESSION_COMBINED = "linear_regression_combined"


class StepStatus(str, Enum):
    """Outcome of a single methodology step."""
    COMPLETED = "COMPLETED"
    INSUFFICIENT = "INSUFFICIENT"
    INFO = "INFO"


class ConfidenceBand(str, Enum):
    """Dashboard grouping of confidence scores."""
    HIGH = "high"      # 80+
    MEDIUM = "medium"  # 50-79
    LOW = "low"        # below 50

    @classmethod
    def from_score(cls, score: int) -> "ConfidenceBand":
        if score >= 80:
            return cls.HIGH
        if score >= 50:
            return cls.MEDIUM
        return cls.LOW


class BatchStatus(str, Enum):
    """Lifecycle of a bulk generation run."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


# ===================
# INPUT SERIES
# ===================

class ConsumptionPoint(FrozenSchema):
    """Units consumed on one day."""
    date: date
    quantity: float = Field(..., ge=0, allow_inf_nan=False, description="Units consumed")


class ConsumptionSeries(BaseSchema):
    """
    Daily consumption history for one product.

    Points are kept in chronological order; several entries for the
    same day are merged by summing. Days without an entry are either
    absent (sparse) or zero-filled by densify().
    """
    product_id: str
    area_id: Optional[str] = None
    points: list[ConsumptionPoint] = Field(default_factory=list)

    @field_validator("points")
    @classmethod
    def sort_and_merge(cls, points: list[ConsumptionPoint]) -> list[ConsumptionPoint]:
        by_day: dict[date, float] = {}
        for point in points:
            by_day[point.date] = by_day.get(point.date, 0.0) + point.quantity
        return [
            ConsumptionPoint(date=day, quantity=qty)
            for day, qty in sorted(by_day.items())
        ]

    @property
    def quantities(self) -> list[float]:
        return [p.quantity for p in self.points]

    @property
    def data_points(self) -> int:
        return len(self.points)

    @property
    def start_date(self) -> Optional[date]:
        return self.points[0].date if self.points else None

    @property
    def end_date(self) -> Optional[date]:
        return self.points[-1].date if self.points else None

    def densify(self, end_date: Optional[date] = None) -> "ConsumptionSeries":
        """
        Return a contiguous daily series from the first recorded day
        through end_date (or the last recorded day), missing days = 0.
        """
        if not self.points:
            return self.model_copy()

        last = max(end_date or self.end_date, self.end_date)
        recorded = {p.date: p.quantity for p in self.points}
        day = self.start_date
        filled = []
        while day <= last:
            filled.append(ConsumptionPoint(date=day, quantity=recorded.get(day, 0.0)))
            day += timedelta(days=1)
        return ConsumptionSeries(
            product_id=self.product_id,
            area_id=self.area_id,
            points=filled
        )


# ===================
# DERIVED VALUES
# ===================

class ConsumptionStatistics(FrozenSchema):
    """Descriptive statistics of a consumption series."""
    mean: float = 0.0
    std_deviation: float = 0.0
    coefficient_of_variation: float = Field(0.0, description="std_deviation / mean, in percent")
    min: float = 0.0
    max: float = 0.0
    data_points: int = Field(0, ge=0)


class MethodologyStep(FrozenSchema):
    """One entry of the forecast's audit trail."""
    step_number: int = Field(..., ge=1)
    name: str
    status: StepStatus
    description: str = ""
    formula: str = ""
    inputs: dict[str, float] = Field(default_factory=dict)
    outputs: dict[str, float] = Field(default_factory=dict)


class AlgorithmSelection(BaseSchema):
    """Chosen algorithm, its daily estimate and the steps that produced it."""
    algorithm: AlgorithmType
    daily_average: float = Field(..., allow_inf_nan=False)
    steps: list[MethodologyStep] = Field(default_factory=list)


class ConfidenceFactor(FrozenSchema):
    """A signed adjustment applied to the confidence baseline."""
    factor_name: str
    impact: float = Field(..., description="Percentage points added (negative = penalty)")
    triggering_value: Optional[float] = None
    reason: str


class ConfidenceAssessment(BaseSchema):
    """Confidence score with the factors that shaped it."""
    baseline: int = Field(..., ge=0, le=100)
    factors: list[ConfidenceFactor] = Field(default_factory=list)
    confidence_level: int = Field(..., ge=0, le=100)
    band: ConfidenceBand


class StockRecommendation(BaseSchema):
    """Safety stock and reorder advice for a predicted demand."""
    predicted_quantity: int = Field(..., ge=0)
    current_stock: int = Field(..., ge=0)
    recommended_safety_stock: int = Field(..., ge=0)
    deficit: int = Field(..., ge=0, description="Predicted demand not covered by stock")
    reorder_quantity: int = Field(..., ge=0)
    needs_reorder: bool


# ===================
# FORECAST RESULT
# ===================

class ForecastResult(BaseSchema):
    """
    Full forecast for one (product, period[, area]) pair.

    Stored as a whole; a recomputation replaces the previous record.
    """
    product_id: str
    area_id: Optional[str] = None
    period: ForecastPeriod
    predicted_quantity: int = Field(..., ge=0)
    daily_average: float = Field(0.0, allow_inf_nan=False)
    algorithm_used: AlgorithmType
    confidence_level: int = Field(..., ge=0, le=100)
    confidence_band: ConfidenceBand
    confidence_factors: list[ConfidenceFactor] = Field(default_factory=list)
    methodology: list[MethodologyStep] = Field(default_factory=list)
    historical_data_points: int = Field(0, ge=0)
    recommended_safety_stock: int = Field(..., ge=0)
    start_date: date
    end_date: date
    calculation_date: datetime

    @model_validator(mode="after")
    def check_safety_stock(self) -> "ForecastResult":
        expected = round_half_up(SAFETY_STOCK_RATIO * self.predicted_quantity)
        if self.recommended_safety_stock != expected:
            raise ValueError(
                f"recommended_safety_stock must be {expected} for "
                f"predicted_quantity {self.predicted_quantity}"
            )
        return self

    @property
    def is_insufficient(self) -> bool:
        return self.algorithm_used == AlgorithmType.INSUFFICIENT_DATA


class ForecastWithRecommendation(BaseSchema):
    """Forecast enriched with the current stock position."""
    forecast: ForecastResult
    recommendation: StockRecommendation


class ForecastSummary(BaseSchema):
    """KPI block over the stored forecasts of one period."""
    period: ForecastPeriod
    area_id: Optional[str] = None
    total_forecasts: int = 0
    total_predicted_quantity: int = 0
    total_deficit: int = 0
    products_with_deficit: int = 0
    average_confidence: float = 0.0
    high_confidence_count: int = 0
    medium_confidence_count: int = 0
    low_confidence_count: int = 0


# ===================
# BULK GENERATION
# ===================

class BatchItemFailure(BaseSchema):
    """One (product, period) pair that did not produce a stored forecast."""
    product_id: str
    period: ForecastPeriod
    error_code: str
    error: str


class BatchProgress(BaseSchema):
    """Point-in-time progress of a bulk run."""
    run_id: str
    status: BatchStatus
    completed: int = 0
    total: int = 0
    succeeded_count: int = 0
    failed_count: int = 0


class BatchReport(BaseSchema):
    """Aggregate outcome of a bulk run."""
    run_id: str
    area_id: Optional[str] = None
    periods: list[ForecastPeriod] = Field(default_factory=list)
    succeeded: list[ForecastResult] = Field(default_factory=list)
    failed: list[BatchItemFailure] = Field(default_factory=list)
    total_attempted: int = 0
    skipped: int = Field(0, description="Pairs never dispatched because the run was cancelled")
    cancelled: bool = False
    started_at: datetime
    finished_at: Optional[datetime] = None


class BatchRunResponse(BaseSchema):
    """Progress plus the report once the run has finished."""
    progress: BatchProgress
    report: Optional[BatchReport] = None


class GenerateAllRequest(BaseSchema):
    """Body of POST /generate-all."""
    area_id: Optional[str] = None
    period: Optional[ForecastPeriod] = None


class GenerateProductRequest(BaseSchema):
    """Body of POST /product/{id}/generate."""
    area_id: Optional[str] = None
