"""
Forecast orchestration for single items and bulk runs.

Single item:
    history -> statistics -> algorithm/daily average -> horizon projection
    -> confidence -> safety stock -> ForecastResult

Bulk ("generate all"):
    every (product, period) pair of the catalog through a bounded worker
    pool. Failures are collected per item; cancellation stops dispatching
    new pairs while in-flight pairs finish and are recorded.

Collaborator calls (history, stock, catalog, store writes) run on the
calling thread. Their timeout is enforced by the Supabase client, so a
bulk item is recorded only after its store write has settled. The
computation itself is pure and needs no locking.
"""

from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from datetime import datetime
from typing import Callable, Iterable, Optional, Union
import httpx
import structlog

from config import query_error_reason, settings as app_settings
from models.forecast import (
    SAFETY_STOCK_RATIO,
    BatchItemFailure,
    BatchReport,
    ConfidenceBand,
    ConsumptionSeries,
    ForecastPeriod,
    ForecastResult,
    ForecastSummary,
    ForecastWithRecommendation,
    StepStatus,
)
from services.algorithm_service import (
    HistoryThresholds,
    estimate_daily_demand,
    parse_period,
    project_quantity,
)
from services import batch_run_service
from services.batch_run_service import BatchRun
from services.confidence_service import ConfidencePolicy, score_confidence
from services.consumption_service import get_consumption_service
from services.forecast_store import get_forecast_store
from services.methodology import MethodologyTrail
from services.recommendation_service import generate_recommendation, safety_stock_for
from services.statistics_service import calculate_statistics
from exceptions import AppError, DataUnavailableError, ForecastPersistenceError

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[int, int], None]
PeriodArg = Union[str, ForecastPeriod]


class ForecastService:
    """
    Forecast orchestrator.

    Collaborators are injected so the engine can run against Supabase
    in production and against in-memory fakes in tests.
    """

    def __init__(
        self,
        consumption_service=None,
        store=None,
        config=None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = config or app_settings
        self.consumption = consumption_service if consumption_service is not None else get_consumption_service()
        self.store = store if store is not None else get_forecast_store()
        self.thresholds = HistoryThresholds.from_settings(self.settings)
        self.policy = ConfidencePolicy.from_settings(self.settings)
        self._clock = clock or datetime.utcnow

    # ===================
    # COLLABORATOR CALLS
    # ===================

    def _fetch(
        self,
        source: str,
        fn: Callable,
        *args,
        product_id: Optional[str] = None,
        **kwargs,
    ):
        """
        Run a lookup on the calling thread.

        Raises:
            DataUnavailableError: On timeout or any failure of the lookup
        """
        try:
            return fn(*args, **kwargs)
        except DataUnavailableError:
            raise
        except httpx.TimeoutException as e:
            logger.warning("collaborator_timeout", source=source, product_id=product_id)
            raise DataUnavailableError(source, query_error_reason(e), product_id=product_id)
        except Exception as e:
            logger.error(
                "collaborator_failed",
                source=source,
                product_id=product_id,
                error=str(e),
                error_type=type(e).__name__
            )
            raise DataUnavailableError(source, str(e), product_id=product_id)

    def _fetch_series(
        self,
        product_id: str,
        period: ForecastPeriod,
        area_id: Optional[str],
    ) -> ConsumptionSeries:
        series = self._fetch(
            "consumption_history",
            self.consumption.get_consumption_series,
            product_id,
            period,
            area_id=area_id,
            product_id=product_id,
        )
        if not isinstance(series, ConsumptionSeries):
            raise DataUnavailableError(
                "consumption_history",
                f"expected ConsumptionSeries, got {type(series).__name__}",
                product_id=product_id
            )
        return series

    def _fetch_stock(self, product_id: str) -> int:
        stock = self._fetch(
            "current_stock",
            self.consumption.get_current_stock,
            product_id,
            product_id=product_id,
        )
        if isinstance(stock, bool) or not isinstance(stock, (int, float)) or stock < 0:
            raise DataUnavailableError(
                "current_stock",
                f"invalid stock value {stock!r}",
                product_id=product_id
            )
        return int(stock)

    # ===================
    # SINGLE ITEM
    # ===================

    def build_forecast(
        self,
        series: ConsumptionSeries,
        period: PeriodArg,
        area_id: Optional[str] = None,
        product_id: Optional[str] = None,
    ) -> ForecastResult:
        """
        Run the engine on an already fetched series. Pure apart from the clock.
        """
        period = parse_period(period)
        now = self._clock()

        if self.settings.fill_missing_days:
            series = series.densify(now.date())

        trail = MethodologyTrail()
        stats = calculate_statistics(series.quantities)
        trail.add(
            "Descriptive statistics",
            status=StepStatus.COMPLETED if stats.data_points else StepStatus.INFO,
            description="Summary of the daily consumption history.",
            formula="mean = Σx/n; σ = √(Σ(x−mean)²/n); CV = σ/mean × 100",
            inputs={"data_points": stats.data_points},
            outputs={
                "mean": stats.mean,
                "std_deviation": stats.std_deviation,
                "coefficient_of_variation": stats.coefficient_of_variation,
                "min": stats.min,
                "max": stats.max,
            },
        )

        selection = estimate_daily_demand(series.quantities, self.thresholds, trail)
        predicted = project_quantity(selection.daily_average, period, trail)
        assessment = score_confidence(stats, period, selection.algorithm, self.policy, trail)

        safety_stock = safety_stock_for(predicted)
        trail.add(
            "Safety stock",
            description="Buffer against forecast error.",
            formula="safety_stock = round(0.20 × predicted_quantity)",
            inputs={"predicted_quantity": predicted, "ratio": SAFETY_STOCK_RATIO},
            outputs={"recommended_safety_stock": safety_stock},
        )

        start_date = now.date()
        return ForecastResult(
            product_id=product_id or series.product_id,
            area_id=area_id if area_id is not None else series.area_id,
            period=period,
            predicted_quantity=predicted,
            daily_average=selection.daily_average,
            algorithm_used=selection.algorithm,
            confidence_level=assessment.confidence_level,
            confidence_band=assessment.band,
            confidence_factors=assessment.factors,
            methodology=trail.steps,
            historical_data_points=stats.data_points,
            recommended_safety_stock=safety_stock,
            start_date=start_date,
            end_date=period.window_end(start_date),
            calculation_date=now,
        )

    def compute_forecast(
        self,
        product_id: str,
        period: PeriodArg,
        area_id: Optional[str] = None,
    ) -> ForecastResult:
        """
        Compute (without storing) the forecast for one product and period.

        Raises:
            DataUnavailableError: If the history lookup fails or times out
            InvalidPeriodError: If the period name is unknown
        """
        period = parse_period(period)
        series = self._fetch_series(product_id, period, area_id)
        result = self.build_forecast(series, period, area_id, product_id=product_id)

        logger.info(
            "forecast_computed",
            product_id=product_id,
            period=period.value,
            area_id=area_id,
            algorithm=result.algorithm_used.value,
            data_points=result.historical_data_points,
            predicted_quantity=result.predicted_quantity,
            confidence=result.confidence_level
        )
        return result

    def compute_with_recommendation(
        self,
        product_id: str,
        period: PeriodArg,
        area_id: Optional[str] = None,
    ) -> ForecastWithRecommendation:
        """Forecast plus safety stock / reorder advice against current stock."""
        forecast = self.compute_forecast(product_id, period, area_id)
        stock = self._fetch_stock(product_id)
        return ForecastWithRecommendation(
            forecast=forecast,
            recommendation=generate_recommendation(forecast.predicted_quantity, stock),
        )

    # ===================
    # PERSISTENCE
    # ===================

    def persist_forecast(self, result: ForecastResult) -> None:
        """
        Store a forecast, replacing any previous one for the same key.

        Returns only once the write has settled.

        Raises:
            ForecastPersistenceError: If the write fails or times out
        """
        try:
            self.store.save(result)
        except ForecastPersistenceError:
            raise
        except httpx.TimeoutException as e:
            logger.warning("forecast_save_timeout", product_id=result.product_id)
            raise ForecastPersistenceError(
                "upsert", query_error_reason(e), product_id=result.product_id
            )
        except Exception as e:
            logger.error("forecast_save_failed", product_id=result.product_id, error=str(e))
            raise ForecastPersistenceError("upsert", str(e), product_id=result.product_id)

    def load_forecast(
        self,
        product_id: str,
        period: PeriodArg,
        area_id: Optional[str] = None,
    ) -> Optional[ForecastResult]:
        """Latest stored forecast within the freshness window, if any."""
        return self.store.load(
            product_id,
            parse_period(period),
            area_id=area_id,
            max_age_days=self.settings.forecast_freshness_days,
        )

    def generate_for_product(
        self,
        product_id: str,
        area_id: Optional[str] = None,
        periods: Optional[Iterable[PeriodArg]] = None,
    ) -> list[ForecastResult]:
        """
        Compute and store forecasts for every period of one product.

        Forecasts without history are returned but not stored.
        """
        results = []
        for period in self._periods(periods):
            result = self.compute_forecast(product_id, period, area_id)
            if not result.is_insufficient:
                self.persist_forecast(result)
            results.append(result)

        logger.info(
            "product_forecasts_generated",
            product_id=product_id,
            area_id=area_id,
            stored=sum(1 for r in results if not r.is_insufficient)
        )
        return results

    def get_forecasts(
        self,
        product_id: str,
        area_id: Optional[str] = None,
    ) -> list[ForecastWithRecommendation]:
        """Stored forecasts of a product with recommendations from current stock."""
        stored = [
            f for f in (self.load_forecast(product_id, p, area_id) for p in ForecastPeriod)
            if f is not None
        ]
        if not stored:
            return []

        stock = self._fetch_stock(product_id)
        return [
            ForecastWithRecommendation(
                forecast=f,
                recommendation=generate_recommendation(f.predicted_quantity, stock),
            )
            for f in stored
        ]

    def summarize(
        self,
        period: PeriodArg,
        area_id: Optional[str] = None,
    ) -> ForecastSummary:
        """KPI summary over the stored forecasts of one period."""
        period = parse_period(period)
        forecasts = self.store.list_for_period(
            period,
            area_id=area_id,
            max_age_days=self.settings.forecast_freshness_days,
        )
        summary = ForecastSummary(period=period, area_id=area_id)
        if not forecasts:
            return summary

        total_deficit = 0
        with_deficit = 0
        for forecast in forecasts:
            stock = self._fetch_stock(forecast.product_id)
            deficit = max(0, forecast.predicted_quantity - stock)
            total_deficit += deficit
            with_deficit += 1 if deficit > 0 else 0

        levels = [f.confidence_level for f in forecasts]
        summary.total_forecasts = len(forecasts)
        summary.total_predicted_quantity = sum(f.predicted_quantity for f in forecasts)
        summary.total_deficit = total_deficit
        summary.products_with_deficit = with_deficit
        summary.average_confidence = round(sum(levels) / len(levels), 1)
        summary.high_confidence_count = sum(1 for f in forecasts if f.confidence_band == ConfidenceBand.HIGH)
        summary.medium_confidence_count = sum(1 for f in forecasts if f.confidence_band == ConfidenceBand.MEDIUM)
        summary.low_confidence_count = sum(1 for f in forecasts if f.confidence_band == ConfidenceBand.LOW)
        return summary

    # ===================
    # BULK
    # ===================

    @staticmethod
    def _periods(periods: Optional[Iterable[PeriodArg]]) -> list[ForecastPeriod]:
        if periods is None:
            return list(ForecastPeriod)
        return [parse_period(p) for p in periods]

    def _generate_item(
        self,
        product_id: str,
        period: ForecastPeriod,
        area_id: Optional[str],
    ) -> Union[ForecastResult, BatchItemFailure]:
        """One bulk unit of work. Returns the failure instead of raising."""
        try:
            result = self.compute_forecast(product_id, period, area_id)
            if result.is_insufficient:
                if self.settings.bulk_insufficient_as_failure:
                    return BatchItemFailure(
                        product_id=product_id,
                        period=period,
                        error_code="INSUFFICIENT_DATA",
                        error="No consumption history in the lookback window",
                    )
                return result
            self.persist_forecast(result)
            return result
        except AppError as e:
            logger.warning(
                "bulk_generation_item_failed",
                product_id=product_id,
                period=period.value,
                code=e.code,
                error=e.message
            )
            return BatchItemFailure(
                product_id=product_id, period=period, error_code=e.code, error=e.message
            )
        except Exception as e:
            logger.error(
                "bulk_generation_item_crashed",
                product_id=product_id,
                period=period.value,
                error=str(e),
                error_type=type(e).__name__
            )
            return BatchItemFailure(
                product_id=product_id, period=period, error_code="INTERNAL_ERROR", error=str(e)
            )

    @staticmethod
    def _notify(callback: Optional[ProgressCallback], completed: int, total: int) -> None:
        if callback is None:
            return
        try:
            callback(completed, total)
        except Exception as e:
            logger.warning("progress_callback_failed", error=str(e))

    def generate_all(
        self,
        area_id: Optional[str] = None,
        period: Optional[PeriodArg] = None,
        progress_callback: Optional[ProgressCallback] = None,
        run: Optional[BatchRun] = None,
    ) -> BatchReport:
        """
        Generate and store forecasts for the whole catalog.

        Args:
            area_id: Only products consumed in this area, forecast per area
            period: One period, or all three when None
            progress_callback: Called with (completed, total) after each item
            run: Run handle for polling and cancellation

        Returns:
            BatchReport with per-item successes and failures

        Raises:
            DataUnavailableError: If the catalog itself cannot be loaded
        """
        periods = self._periods(None if period is None else [period])
        run = run or BatchRun()
        started_at = self._clock()
        max_workers = self.settings.forecast_max_workers

        logger.info(
            "bulk_generation_started",
            run_id=run.run_id,
            area_id=area_id,
            periods=[p.value for p in periods],
            max_workers=max_workers
        )

        try:
            product_ids = self._fetch(
                "product_catalog",
                self.consumption.get_product_catalog,
                area_id=area_id,
            )
        except AppError as e:
            run.fail(e.message)
            logger.error("bulk_generation_catalog_failed", run_id=run.run_id, error=e.message)
            raise

        pairs = [(str(pid), p) for pid in product_ids for p in periods]
        order = {pair: index for index, pair in enumerate(pairs)}
        run.start(len(pairs))

        succeeded: list[ForecastResult] = []
        failed: list[BatchItemFailure] = []
        in_flight: dict[Future, tuple[str, ForecastPeriod]] = {}
        queue = iter(pairs)
        dispatched = 0

        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="forecast") as executor:

            def fill() -> None:
                nonlocal dispatched
                while len(in_flight) < max_workers and not run.cancel_requested:
                    pair = next(queue, None)
                    if pair is None:
                        return
                    future = executor.submit(self._generate_item, pair[0], pair[1], area_id)
                    in_flight[future] = pair
                    dispatched += 1

            fill()
            while in_flight:
                done, _ = wait(in_flight, return_when=FIRST_COMPLETED)
                for future in done:
                    in_flight.pop(future)
                    outcome = future.result()
                    ok = isinstance(outcome, ForecastResult)
                    if ok:
                        succeeded.append(outcome)
                    else:
                        failed.append(outcome)
                    completed, total = run.record(ok)
                    self._notify(progress_callback, completed, total)
                fill()

        succeeded.sort(key=lambda r: order[(r.product_id, r.period)])
        failed.sort(key=lambda f: order[(f.product_id, f.period)])

        report = BatchReport(
            run_id=run.run_id,
            area_id=area_id,
            periods=periods,
            succeeded=succeeded,
            failed=failed,
            total_attempted=dispatched,
            skipped=len(pairs) - dispatched,
            cancelled=run.cancel_requested,
            started_at=started_at,
            finished_at=self._clock(),
        )
        run.finish(report)

        logger.info(
            "bulk_generation_finished",
            run_id=run.run_id,
            attempted=report.total_attempted,
            succeeded=len(succeeded),
            failed=len(failed),
            skipped=report.skipped,
            cancelled=report.cancelled
        )
        return report


# Singleton instance for convenience
_forecast_service: Optional[ForecastService] = None

def get_forecast_service() -> ForecastService:
    """Get or create ForecastService instance."""
    global _forecast_service
    if _forecast_service is None:
        _forecast_service = ForecastService()
    return _forecast_service


def close_forecast_service() -> None:
    """
    Shut down the shared ForecastService.

    Active bulk runs stop dispatching new items; the next
    get_forecast_service() call builds a fresh instance.
    """
    global _forecast_service
    cancelled = batch_run_service.cancel_active_runs()
    _forecast_service = None
    logger.info("forecast_service_closed", runs_cancelled=cancelled)
