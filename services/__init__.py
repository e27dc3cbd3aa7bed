"""
Business logic services.

Calculation modules (statistics, algorithm, confidence, recommendation)
are pure; the forecast service orchestrates them with the history
lookups and the forecast store.
"""

from services.statistics_service import calculate_statistics
from services.algorithm_service import (
    HistoryThresholds,
    select_algorithm,
    estimate_daily_demand,
    project_quantity,
    parse_period,
)
from services.confidence_service import ConfidencePolicy, score_confidence
from services.recommendation_service import generate_recommendation, safety_stock_for
from services.consumption_service import ConsumptionService, get_consumption_service
from services.forecast_store import (
    ForecastStore,
    InMemoryForecastStore,
    SupabaseForecastStore,
    get_forecast_store,
)
from services.forecast_service import ForecastService, get_forecast_service

__all__ = [
    "calculate_statistics",
    "HistoryThresholds",
    "select_algorithm",
    "estimate_daily_demand",
    "project_quantity",
    "parse_period",
    "ConfidencePolicy",
    "score_confidence",
    "generate_recommendation",
    "safety_stock_for",
    "ConsumptionService",
    "get_consumption_service",
    "ForecastStore",
    "InMemoryForecastStore",
    "SupabaseForecastStore",
    "get_forecast_store",
    "ForecastService",
    "get_forecast_service",
]
