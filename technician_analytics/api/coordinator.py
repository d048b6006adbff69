"""
FastAPI router module for coordinator endpoints.

Key Endpoints:
- GET /coordinator/utilization: Booked hours vs available hours per field
  technician, with efficiency ratings
- GET /coordinator/routes: Route optimization scores for one day
- GET /coordinator/scheduling-efficiency: Lead time from creation to booking
- GET /coordinator/rescheduling: Reschedules recorded in the audit log
- GET /coordinator/business-impact: Revenue and turnaround of new cases

Utilization and routes only consider active technicians with the field
technician role (Settings.technician_role). The coordination metrics cover
all individual and business cases created in the window, which defaults to
the last Settings.coordination_lookback_days days.
"""

import logging
from datetime import date, timedelta
from typing import Optional, Tuple

from fastapi import APIRouter, HTTPException, Query

from technician_analytics.api.errors import to_http_exception
from technician_analytics.core.dependencies import EngineDep
from technician_analytics.models.schemas import (
    BusinessImpact,
    ReschedulingMetrics,
    RouteOptimizationResponse,
    SchedulingEfficiencyResponse,
    UtilizationResponse,
)


logger = logging.getLogger(__name__)

router = APIRouter()


def current_week(today: date) -> Tuple[date, date]:
    """Monday through Sunday of the week containing today."""
    monday = today - timedelta(days=today.weekday())
    return monday, monday + timedelta(days=6)


@router.get(
    '/utilization',
    response_model=UtilizationResponse,
    summary="Get Technician Utilization",
    description="""
    Utilization per field technician: hours booked on cases divided by
    scheduled work hours after absences. Ratings: low below 60%, optimal up
    to 95%, overbooked above. Defaults to the current week.
    """
)
async def get_utilization(
    engine: EngineDep,
    start: Optional[date] = Query(default=None, description="Window start (inclusive)"),
    end: Optional[date] = Query(default=None, description="Window end (inclusive)"),
) -> UtilizationResponse:
    """
    Get utilization records for field technicians.

    Raises:
        HTTPException 404: If there are no active field technicians.
        HTTPException 422: If end is before start.
        HTTPException 500: If the query fails.
    """
    week_start, week_end = current_week(date.today())
    start = start or week_start
    end = end or week_end
    logger.info(f"Fetching utilization {start} to {end}")

    try:
        return await engine.get_utilization(start, end)

    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "fetch utilization", logger)


@router.get(
    '/routes',
    response_model=RouteOptimizationResponse,
    summary="Get Route Optimization",
    description="""
    Heuristic route score per field technician for one day (default today).
    data_source tells whether live vehicle telemetry backed the score.
    """
)
async def get_route_optimization(
    engine: EngineDep,
    day: Optional[date] = Query(default=None, alias="date", description="Day to score"),
) -> RouteOptimizationResponse:
    """
    Get route optimization scores.

    Raises:
        HTTPException 404: If there are no active field technicians.
        HTTPException 500: If the query fails.
    """
    day = day or date.today()
    logger.info(f"Fetching route optimization for {day}")

    try:
        return await engine.get_route_optimization(day)

    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "fetch route optimization", logger)


@router.get(
    '/scheduling-efficiency',
    response_model=SchedulingEfficiencyResponse,
    summary="Get Scheduling Efficiency",
    description="""
    Hours from case creation to booked start: average, share booked within
    24/48/72 hours and a daily series with a 0-100 efficiency score.
    """
)
async def get_scheduling_efficiency(
    engine: EngineDep,
    start: Optional[date] = Query(default=None, description="Window start (inclusive)"),
    end: Optional[date] = Query(default=None, description="Window end (inclusive)"),
) -> SchedulingEfficiencyResponse:
    """
    Get scheduling efficiency.

    Raises:
        HTTPException 422: If end is before start.
        HTTPException 500: If the query fails.
    """
    logger.info(f"Fetching scheduling efficiency {start} to {end}")

    try:
        return await engine.get_scheduling_efficiency(start, end)

    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "fetch scheduling efficiency", logger)


@router.get(
    '/rescheduling',
    response_model=ReschedulingMetrics,
    summary="Get Rescheduling Metrics",
    description="""
    Status changes from the audit log: count, rate against cases created in
    the window and the most common reasons.
    """
)
async def get_rescheduling_metrics(
    engine: EngineDep,
    start: Optional[date] = Query(default=None, description="Window start (inclusive)"),
    end: Optional[date] = Query(default=None, description="Window end (inclusive)"),
) -> ReschedulingMetrics:
    """
    Get rescheduling metrics.

    Raises:
        HTTPException 422: If end is before start.
        HTTPException 503: If the audit log cannot be read.
        HTTPException 500: If the query fails.
    """
    logger.info(f"Fetching rescheduling metrics {start} to {end}")

    try:
        return await engine.get_rescheduling_metrics(start, end)

    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "fetch rescheduling metrics", logger)


@router.get(
    '/business-impact',
    response_model=BusinessImpact,
    summary="Get Business Impact",
    description="""
    Revenue managed, average days to completion, revenue per booked hour,
    daily throughput and a 0-100 coordination efficiency score.
    """
)
async def get_business_impact(
    engine: EngineDep,
    start: Optional[date] = Query(default=None, description="Window start (inclusive)"),
    end: Optional[date] = Query(default=None, description="Window end (inclusive)"),
) -> BusinessImpact:
    """
    Get business impact metrics.

    Raises:
        HTTPException 422: If end is before start.
        HTTPException 500: If the query fails.
    """
    logger.info(f"Fetching business impact {start} to {end}")

    try:
        return await engine.get_business_impact(start, end)

    except HTTPException:
        raise
    except Exception as e:
        raise to_http_exception(e, "fetch business impact", logger)
