"""
FastAPI router module for technician performance endpoints.

Key Endpoints:
- GET /performance/cohort: Ranked performance snapshots for a window
- GET /performance/trend: Monthly revenue trend
- GET /performance/pest-specialization: Pest-type specialization and overview
- GET /performance/kpi: Cohort KPI summary
- GET /performance/technicians/{technician_id}/comparison: Technician vs cohort

Window parameters:
- start / end are ISO dates, both inclusive
- when omitted the window is the current month up to today
- end before start answers 422; a cohort without active technicians 404

Every multi-source response carries a diagnostics block; partial_data is set
when a case store failed or part of the cohort timed out.
"""

import logging
from datetime import date
from typing import List, Optional, Tuple

from fastapi import APIRouter, HTTPException, Query

from technician_analytics.api.errors import to_http_exception
from technician_analytics.core.dependencies import EngineDep
from technician_analytics.models.schemas import (
    CohortPerformanceResponse,
    MonthlyTrendResponse,
    PestSpecializationResponse,
    TechnicianComparison,
    TechnicianKpi,
)


# =============================================================================
# Module Configuration
# =============================================================================

logger = logging.getLogger(__name__)

router = APIRouter()

# Upper bound for caller-supplied fan-out budgets
MAX_TIMEOUT_SECONDS = 120.0


def default_window(start: Optional[date], end: Optional[date]) -> Tuple[date, date]:
    """Fill in a missing window: end defaults to today, start to the first of end's month."""
    if end is None:
        end = date.today()
    if start is None:
        start = end.replace(day=1)
    return start, end


# =============================================================================
# API Endpoints
# =============================================================================

@router.get(
    '/cohort',
    response_model=CohortPerformanceResponse,
    summary="Get Cohort Performance",
    description="""
    Ranked per-technician revenue and case counts for a window.

    Revenue is split over individual, business and contract cases. Ranks
    follow total revenue (ties by technician id). Technicians without
    completed cases are included with zeros.
    """
)
async def get_cohort_performance(
    engine: EngineDep,
    start: Optional[date] = Query(default=None, description="Window start (inclusive)"),
    end: Optional[date] = Query(default=None, description="Window end (inclusive)"),
    technician_ids: Optional[List[str]] = Query(
        default=None,
        description="Restrict the cohort to these technicians"
    ),
    timeout: Optional[float] = Query(
        default=None,
        gt=0,
        le=MAX_TIMEOUT_SECONDS,
        description="Fan-out budget in seconds"
    ),
) -> CohortPerformanceResponse:
    """
    Get ranked performance snapshots.

    Args:
        engine: PerformanceEngine from dependency injection.
        start: Window start (inclusive).
        end: Window end (inclusive).
        technician_ids: Optional cohort restriction.
        timeout: Optional fan-out budget in seconds.

    Returns:
        CohortPerformanceResponse with ranked snapshots and diagnostics.

    Raises:
        HTTPException 404: If the cohort has no active technicians.
        HTTPException 422: If end is before start.
        HTTPException 500: If the query fails.
    """
    start, end = default_window(start, end)
    logger.info(f"Fetching cohort performance {start} to {end}, technician_ids={technician_ids}")

    try:
        response = await engine.get_cohort_performance(
            start, end, technician_ids=technician_ids, timeout=timeout
        )
        logger.info(f"Returning {len(response.snapshots)} snapshots (partial={response.diagnostics.partial_data})")
        return response

    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "fetch cohort performance", logger)


@router.get(
    '/trend',
    response_model=MonthlyTrendResponse,
    summary="Get Monthly Trend",
    description="""
    Per-technician revenue by calendar month over the last `months_back`
    months. Months without completed cases are omitted.
    """
)
async def get_monthly_trend(
    engine: EngineDep,
    months_back: Optional[int] = Query(
        default=None,
        ge=0,
        le=60,
        description="Trend length in months (default from settings)"
    ),
    timeout: Optional[float] = Query(default=None, gt=0, le=MAX_TIMEOUT_SECONDS),
) -> MonthlyTrendResponse:
    """
    Get the monthly revenue trend.

    Raises:
        HTTPException 404: If there are no active technicians.
        HTTPException 500: If the query fails.
    """
    logger.info(f"Fetching monthly trend, months_back={months_back}")

    try:
        return await engine.get_monthly_trend(months_back=months_back, timeout=timeout)

    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "fetch monthly trend", logger)


@router.get(
    '/pest-specialization',
    response_model=PestSpecializationResponse,
    summary="Get Pest Specialization",
    description="""
    Completed cases grouped by technician, pest type and case store, plus an
    overview per pest type. Defaults to the last year when no window is given.
    """
)
async def get_pest_specialization(
    engine: EngineDep,
    start: Optional[date] = Query(default=None, description="Window start (inclusive)"),
    end: Optional[date] = Query(default=None, description="Window end (inclusive)"),
    timeout: Optional[float] = Query(default=None, gt=0, le=MAX_TIMEOUT_SECONDS),
) -> PestSpecializationResponse:
    """
    Get pest-type specialization.

    Raises:
        HTTPException 404: If there are no active technicians.
        HTTPException 422: If end is before start.
        HTTPException 500: If the query fails.
    """
    logger.info(f"Fetching pest specialization {start} to {end}")

    try:
        return await engine.get_pest_specialization(start=start, end=end, timeout=timeout)

    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "fetch pest specialization", logger)


@router.get(
    '/kpi',
    response_model=TechnicianKpi,
    summary="Get Technician KPI",
    description="Active vs total technicians, revenue and case totals, and per-technician averages."
)
async def get_technician_kpi(
    engine: EngineDep,
    start: Optional[date] = Query(default=None),
    end: Optional[date] = Query(default=None),
    timeout: Optional[float] = Query(default=None, gt=0, le=MAX_TIMEOUT_SECONDS),
) -> TechnicianKpi:
    """
    Get the cohort KPI summary.

    Raises:
        HTTPException 404: If there are no active technicians.
        HTTPException 422: If end is before start.
        HTTPException 500: If the query fails.
    """
    start, end = default_window(start, end)

    try:
        return await engine.get_technician_kpi(start, end, timeout=timeout)

    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "fetch technician KPI", logger)


@router.get(
    '/technicians/{technician_id}/comparison',
    response_model=TechnicianComparison,
    summary="Compare Technician With Cohort",
    description="""
    Percentage deltas of a technician's revenue, case count and average case
    value against the cohort mean, with rule-based recommendations.
    """
)
async def get_technician_comparison(
    technician_id: str,
    engine: EngineDep,
    start: Optional[date] = Query(default=None),
    end: Optional[date] = Query(default=None),
    timeout: Optional[float] = Query(default=None, gt=0, le=MAX_TIMEOUT_SECONDS),
) -> TechnicianComparison:
    """
    Compare one technician with the active cohort.

    Args:
        technician_id: Technician to compare.
        engine: PerformanceEngine from dependency injection.
        start: Window start (inclusive).
        end: Window end (inclusive).
        timeout: Optional fan-out budget in seconds.

    Raises:
        HTTPException 404: If the technician is not an active cohort member.
        HTTPException 422: If end is before start.
        HTTPException 500: If the query fails.
    """
    start, end = default_window(start, end)
    logger.info(f"Comparing technician {technician_id} with cohort, {start} to {end}")

    try:
        return await engine.get_technician_comparison(technician_id, start, end, timeout=timeout)

    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, f"compare technician {technician_id}", logger)
