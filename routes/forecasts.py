"""
Consumption forecast API routes.

Single-product calculation and generation, stored forecasts with
stock recommendations, period summaries, and bulk generation runs
that are started in the background and polled by run id.
"""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Query
from fastapi.responses import JSONResponse
import structlog

from models.forecast import (
    BatchProgress,
    BatchRunResponse,
    ForecastPeriod,
    ForecastResult,
    ForecastSummary,
    ForecastWithRecommendation,
    GenerateAllRequest,
    GenerateProductRequest,
)
from services import batch_run_service
from services.batch_run_service import BatchRun
from services.forecast_service import get_forecast_service
from exceptions import AppError

logger = structlog.get_logger(__name__)

router = APIRouter()


# ===================
# EXCEPTION HANDLER
# ===================

def handle_error(e: Exception) -> JSONResponse:
    """Convert exception to JSON response."""
    if isinstance(e, AppError):
        return JSONResponse(
            status_code=e.status_code,
            content=e.to_dict()
        )
    logger.error("unexpected_error", error=str(e), type=type(e).__name__)
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred"
            }
        }
    )


# ===================
# SINGLE PRODUCT
# ===================

@router.get("/product/{product_id}/calculate", response_model=ForecastResult)
def calculate_forecast(
    product_id: str,
    period: ForecastPeriod = Query(ForecastPeriod.MONTH, description="Forecast horizon"),
    area_id: Optional[str] = Query(None, description="Hospital area"),
):
    """
    Calculate a forecast without storing it (preview).

    Returns the full methodology so the numbers can be audited.
    """
    try:
        service = get_forecast_service()
        return service.compute_forecast(product_id, period, area_id)

    except Exception as e:
        return handle_error(e)


@router.post("/product/{product_id}/generate", response_model=list[ForecastResult])
def generate_product_forecasts(
    product_id: str,
    request: Optional[GenerateProductRequest] = None,
):
    """
    Generate and store month, quarter and year forecasts for one product.

    Forecasts without history are returned but not stored.
    """
    try:
        service = get_forecast_service()
        area_id = request.area_id if request else None
        return service.generate_for_product(product_id, area_id=area_id)

    except Exception as e:
        return handle_error(e)


@router.get("/product/{product_id}", response_model=list[ForecastWithRecommendation])
def get_product_forecasts(
    product_id: str,
    area_id: Optional[str] = Query(None, description="Hospital area"),
):
    """
    Stored forecasts of a product (last 7 days) with safety stock,
    deficit and reorder quantity against current stock.
    """
    try:
        service = get_forecast_service()
        return service.get_forecasts(product_id, area_id=area_id)

    except Exception as e:
        return handle_error(e)


@router.get("/summary", response_model=ForecastSummary)
def get_forecast_summary(
    period: ForecastPeriod = Query(ForecastPeriod.MONTH, description="Forecast horizon"),
    area_id: Optional[str] = Query(None, description="Hospital area"),
):
    """
    Totals over stored forecasts: predicted demand, deficit, and
    confidence distribution. Useful for dashboard widgets.
    """
    try:
        service = get_forecast_service()
        return service.summarize(period, area_id=area_id)

    except Exception as e:
        return handle_error(e)


# ===================
# BULK GENERATION
# ===================

def _run_bulk_generation(run: BatchRun, area_id: Optional[str], period: Optional[ForecastPeriod]) -> None:
    """Background task body. The run records the outcome for polling."""
    try:
        get_forecast_service().generate_all(area_id=area_id, period=period, run=run)
    except AppError as e:
        logger.error("bulk_generation_aborted", run_id=run.run_id, code=e.code, error=e.message)
    except Exception as e:
        run.fail(str(e))
        logger.error(
            "bulk_generation_crashed",
            run_id=run.run_id,
            error=str(e),
            error_type=type(e).__name__
        )


@router.post("/generate-all", response_model=BatchProgress, status_code=202)
def generate_all_forecasts(
    background_tasks: BackgroundTasks,
    request: Optional[GenerateAllRequest] = None,
):
    """
    Start forecast generation for every product.

    Runs in the background with a bounded worker pool; poll
    GET /runs/{run_id} for progress and the final report.
    """
    try:
        request = request or GenerateAllRequest()
        run = batch_run_service.start_run()
        background_tasks.add_task(_run_bulk_generation, run, request.area_id, request.period)

        logger.info(
            "bulk_generation_requested",
            run_id=run.run_id,
            area_id=request.area_id,
            period=request.period.value if request.period else None
        )
        return run.progress()

    except Exception as e:
        return handle_error(e)


@router.get("/runs/{run_id}", response_model=BatchRunResponse)
def get_generation_run(run_id: str):
    """Progress of a bulk run, with the report once it has finished."""
    try:
        run = batch_run_service.get_run(run_id)
        return BatchRunResponse(progress=run.progress(), report=run.report)

    except Exception as e:
        return handle_error(e)


@router.post("/runs/{run_id}/cancel", response_model=BatchProgress)
def cancel_generation_run(run_id: str):
    """
    Stop scheduling new products. Forecasts already in flight
    finish and appear in the report.
    """
    try:
        return batch_run_service.cancel_run(run_id)

    except Exception as e:
        return handle_error(e)
