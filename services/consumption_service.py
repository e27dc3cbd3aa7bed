"""
Consumption history, stock and catalog lookups.

Reads the pharmacy's Supabase tables:
    stock_history    - every stock movement; "remove" rows are consumption
    product_batches  - on-hand quantity per batch
    products         - product catalog

Every failure surfaces as DataUnavailableError so callers can tell
"source down" apart from "no history yet".
"""

from datetime import date, datetime, timedelta
from typing import Optional
import structlog

from config import get_supabase_client, query_error_reason, settings
from models.forecast import ConsumptionPoint, ConsumptionSeries, ForecastPeriod
from exceptions import DataUnavailableError

logger = structlog.get_logger(__name__)

CONSUMPTION_ACTION = "remove"


def _row_day(row: dict) -> date:
    """Consumption day of a stock_history row (consumption_date, else created_at)."""
    raw = row.get("consumption_date") or row.get("created_at")
    if not raw:
        raise ValueError("row has neither consumption_date nor created_at")
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    return date.fromisoformat(str(raw)[:10])


def aggregate_daily_consumption(
    rows: list[dict],
    start_date: date,
    end_date: date
) -> dict[date, float]:
    """
    Sum units removed per day inside [start_date, end_date].

    Units removed by a row = previous_stock - new_stock.

    Raises:
        ValueError: If a row has unparseable stock values or dates
    """
    daily: dict[date, float] = {}
    for row in rows:
        if row.get("action", CONSUMPTION_ACTION) != CONSUMPTION_ACTION:
            continue
        day = _row_day(row)
        if day < start_date or day > end_date:
            continue
        removed = float(row["previous_stock"]) - float(row["new_stock"])
        if removed < 0:
            logger.warning(
                "negative_consumption_row_skipped",
                day=day.isoformat(),
                removed=removed
            )
            continue
        daily[day] = daily.get(day, 0.0) + removed
    return daily


class ConsumptionService:
    """
    History and stock lookups for the forecast engine.
    """

    def __init__(self):
        self.db = get_supabase_client()
        self.history_table = "stock_history"
        self.batches_table = "product_batches"
        self.products_table = "products"

    def get_consumption_series(
        self,
        product_id: str,
        period: Optional[ForecastPeriod] = None,
        area_id: Optional[str] = None,
        lookback_days: Optional[int] = None,
        today: Optional[date] = None,
    ) -> ConsumptionSeries:
        """
        Daily consumption for a product over the lookback window ending today.

        Args:
            product_id: Product UUID
            period: Horizon being forecast (logged only; the window is fixed)
            area_id: Restrict to consumption in one hospital area
            lookback_days: Window length (defaults to settings)
            today: Window end (defaults to today)

        Returns:
            ConsumptionSeries with one point per day that had consumption

        Raises:
            DataUnavailableError: If the query fails or rows are malformed
        """
        end_date = today or date.today()
        days = lookback_days or settings.consumption_lookback_days
        start_date = end_date - timedelta(days=days)

        logger.debug(
            "getting_consumption_series",
            product_id=product_id,
            period=period.value if period else None,
            area_id=area_id,
            start_date=start_date.isoformat()
        )

        try:
            query = (
                self.db.table(self.history_table)
                .select("previous_stock, new_stock, action, consumption_date, created_at")
                .eq("product_id", product_id)
                .eq("action", CONSUMPTION_ACTION)
                .gte("created_at", start_date.isoformat())
            )
            if area_id:
                query = query.eq("area_id", area_id)
            result = query.execute()
        except Exception as e:
            logger.error(
                "get_consumption_series_failed",
                product_id=product_id,
                error=str(e)
            )
            raise DataUnavailableError("consumption_history", query_error_reason(e), product_id=product_id)

        try:
            daily = aggregate_daily_consumption(result.data or [], start_date, end_date)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(
                "consumption_rows_malformed",
                product_id=product_id,
                error=str(e)
            )
            raise DataUnavailableError(
                "consumption_history",
                f"malformed history row: {e}",
                product_id=product_id
            )

        return ConsumptionSeries(
            product_id=product_id,
            area_id=area_id,
            points=[ConsumptionPoint(date=day, quantity=qty) for day, qty in daily.items()]
        )

    def get_current_stock(self, product_id: str) -> int:
        """
        On-hand units across all batches of a product.

        Raises:
            DataUnavailableError: If the query fails or quantities are malformed
        """
        logger.debug("getting_current_stock", product_id=product_id)

        try:
            result = (
                self.db.table(self.batches_table)
                .select("quantity")
                .eq("product_id", product_id)
                .execute()
            )
            total = sum(int(row.get("quantity") or 0) for row in (result.data or []))
        except Exception as e:
            logger.error(
                "get_current_stock_failed",
                product_id=product_id,
                error=str(e)
            )
            raise DataUnavailableError("current_stock", query_error_reason(e), product_id=product_id)

        return max(0, total)

    def get_product_catalog(self, area_id: Optional[str] = None) -> list[str]:
        """
        Active product ids, optionally only those consumed in an area.

        Raises:
            DataUnavailableError: If a query fails
        """
        logger.info("getting_product_catalog", area_id=area_id)

        try:
            products = (
                self.db.table(self.products_table)
                .select("id")
                .eq("active", True)
                .order("id")
                .execute()
            )
            product_ids = [str(row["id"]) for row in (products.data or [])]

            if area_id:
                history = (
                    self.db.table(self.history_table)
                    .select("product_id")
                    .eq("area_id", area_id)
                    .execute()
                )
                in_area = {str(row["product_id"]) for row in (history.data or [])}
                product_ids = [pid for pid in product_ids if pid in in_area]

        except Exception as e:
            logger.error(
                "get_product_catalog_failed",
                area_id=area_id,
                error=str(e)
            )
            raise DataUnavailableError("product_catalog", query_error_reason(e))

        logger.info("product_catalog_loaded", area_id=area_id, count=len(product_ids))
        return product_ids


# Singleton instance for convenience
_consumption_service: Optional[ConsumptionService] = None

def get_consumption_service() -> ConsumptionService:
    """Get or create ConsumptionService instance."""
    global _consumption_service
    if _consumption_service is None:
        _consumption_service = ConsumptionService()
    return _consumption_service
