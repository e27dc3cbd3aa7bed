"""
Forecast persistence.

Forecasts are stored whole, keyed by (product_id, period, area).
Saving replaces the previous record for the key (last write wins);
records are never patched in place.
"""

import threading
from datetime import datetime, timedelta
from typing import Optional, Protocol
import structlog

from config import get_admin_client, get_supabase_client, query_error_reason
from models.forecast import ForecastPeriod, ForecastResult
from exceptions import ForecastPersistenceError

logger = structlog.get_logger(__name__)

# Stored in place of a NULL area so the unique key works for hospital-wide forecasts
ALL_AREAS_KEY = "all"


def area_key(area_id: Optional[str]) -> str:
    return area_id if area_id else ALL_AREAS_KEY


def _is_fresh(result: ForecastResult, max_age_days: Optional[int], now: Optional[datetime] = None) -> bool:
    if max_age_days is None:
        return True
    now = now or datetime.utcnow()
    return result.calculation_date >= now - timedelta(days=max_age_days)


class ForecastStore(Protocol):
    """Key-value store for forecasts."""

    def save(self, result: ForecastResult) -> None: ...

    def load(
        self,
        product_id: str,
        period: ForecastPeriod,
        area_id: Optional[str] = None,
        max_age_days: Optional[int] = None,
    ) -> Optional[ForecastResult]: ...

    def list_for_period(
        self,
        period: ForecastPeriod,
        area_id: Optional[str] = None,
        max_age_days: Optional[int] = None,
    ) -> list[ForecastResult]: ...


class InMemoryForecastStore:
    """
    Process-local store.

    Used by tests and single-node deployments without a database.
    """

    def __init__(self):
        self._records: dict[tuple[str, ForecastPeriod, str], ForecastResult] = {}
        self._lock = threading.Lock()

    def save(self, result: ForecastResult) -> None:
        key = (result.product_id, result.period, area_key(result.area_id))
        with self._lock:
            self._records[key] = result.model_copy(deep=True)

    def load(
        self,
        product_id: str,
        period: ForecastPeriod,
        area_id: Optional[str] = None,
        max_age_days: Optional[int] = None,
    ) -> Optional[ForecastResult]:
        with self._lock:
            result = self._records.get((product_id, period, area_key(area_id)))
        if result is None or not _is_fresh(result, max_age_days):
            return None
        return result.model_copy(deep=True)

    def list_for_period(
        self,
        period: ForecastPeriod,
        area_id: Optional[str] = None,
        max_age_days: Optional[int] = None,
    ) -> list[ForecastResult]:
        wanted = area_key(area_id)
        with self._lock:
            records = [
                r for (_, p, a), r in self._records.items()
                if p == period and a == wanted
            ]
        return [
            r.model_copy(deep=True)
            for r in sorted(records, key=lambda r: r.product_id)
            if _is_fresh(r, max_age_days)
        ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class SupabaseForecastStore:
    """
    Store backed by the consumption_predictions table.

    Unique key: (product_id, area_key, prediction_period). The full
    ForecastResult, methodology included, is kept in the payload column.
    """

    def __init__(self):
        self.db = get_admin_client() or get_supabase_client()
        self.table = "consumption_predictions"

    def save(self, result: ForecastResult) -> None:
        row = {
            "product_id": result.product_id,
            "area_id": result.area_id,
            "area_key": area_key(result.area_id),
            "prediction_period": result.period.value,
            "predicted_quantity": result.predicted_quantity,
            "confidence_level": result.confidence_level,
            "algorithm_used": result.algorithm_used.value,
            "start_date": result.start_date.isoformat(),
            "end_date": result.end_date.isoformat(),
            "calculation_date": result.calculation_date.isoformat(),
            "payload": result.model_dump(mode="json"),
        }
        try:
            self.db.table(self.table).upsert(
                row,
                on_conflict="product_id,area_key,prediction_period",
            ).execute()
        except Exception as e:
            logger.error(
                "save_forecast_failed",
                product_id=result.product_id,
                period=result.period.value,
                error=str(e)
            )
            raise ForecastPersistenceError("upsert", query_error_reason(e), product_id=result.product_id)

        logger.debug(
            "forecast_saved",
            product_id=result.product_id,
            period=result.period.value,
            area_id=result.area_id
        )

    def _select(self, period: ForecastPeriod, area_id: Optional[str], max_age_days: Optional[int]):
        query = (
            self.db.table(self.table)
            .select("payload")
            .eq("prediction_period", period.value)
            .eq("area_key", area_key(area_id))
        )
        if max_age_days is not None:
            cutoff = datetime.utcnow() - timedelta(days=max_age_days)
            query = query.gte("calculation_date", cutoff.isoformat())
        return query

    def load(
        self,
        product_id: str,
        period: ForecastPeriod,
        area_id: Optional[str] = None,
        max_age_days: Optional[int] = None,
    ) -> Optional[ForecastResult]:
        try:
            result = (
                self._select(period, area_id, max_age_days)
                .eq("product_id", product_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(
                "load_forecast_failed",
                product_id=product_id,
                period=period.value,
                error=str(e)
            )
            raise ForecastPersistenceError("select", query_error_reason(e), product_id=product_id)

        if not result.data:
            return None
        return ForecastResult.model_validate(result.data[0]["payload"])

    def list_for_period(
        self,
        period: ForecastPeriod,
        area_id: Optional[str] = None,
        max_age_days: Optional[int] = None,
    ) -> list[ForecastResult]:
        try:
            result = (
                self._select(period, area_id, max_age_days)
                .order("product_id")
                .execute()
            )
        except Exception as e:
            logger.error("list_forecasts_failed", period=period.value, error=str(e))
            raise ForecastPersistenceError("select", query_error_reason(e))

        return [ForecastResult.model_validate(row["payload"]) for row in (result.data or [])]


# Singleton instance for convenience
_forecast_store: Optional[SupabaseForecastStore] = None

def get_forecast_store() -> SupabaseForecastStore:
    """Get or create the Supabase-backed forecast store."""
    global _forecast_store
    if _forecast_store is None:
        _forecast_store = SupabaseForecastStore()
    return _forecast_store
