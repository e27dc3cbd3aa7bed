"""
Pydantic models for validation and serialization.
"""

from models.base import BaseSchema, FrozenSchema
from models.forecast import (
    ForecastPeriod,
    AlgorithmType,
    StepStatus,
    ConfidenceBand,
    BatchStatus,
    ConsumptionPoint,
    ConsumptionSeries,
    ConsumptionStatistics,
    MethodologyStep,
    AlgorithmSelection,
    ConfidenceFactor,
    ConfidenceAssessment,
    StockRecommendation,
    ForecastResult,
    ForecastWithRecommendation,
    ForecastSummary,
    BatchItemFailure,
    BatchProgress,
    BatchReport,
    BatchRunResponse,
    GenerateAllRequest,
    GenerateProductRequest,
)

__all__ = [
    # Base
    "BaseSchema",
    "FrozenSchema",

    # Enums
    "ForecastPeriod",
    "AlgorithmType",
    "StepStatus",
    "ConfidenceBand",
    "BatchStatus",

    # Series and derived values
    "ConsumptionPoint",
    "ConsumptionSeries",
    "ConsumptionStatistics",
    "MethodologyStep",
    "AlgorithmSelection",
    "ConfidenceFactor",
    "ConfidenceAssessment",
    "StockRecommendation",

    # Results
    "ForecastResult",
    "ForecastWithRecommendation",
    "ForecastSummary",

    # Bulk generation
    "BatchItemFailure",
    "BatchProgress",
    "BatchReport",
    "BatchRunResponse",
    "GenerateAllRequest",
    "GenerateProductRequest",
]
