"""
Pydantic request/response models for the technician analytics backend.

This module provides type-safe data validation and serialization for all API
contracts: the roster entity, per-technician performance snapshots, monthly
trend points, pest specialization rows, utilization records, route
optimization scores, technician comparisons, the cohort KPI summary and the
coordination metrics (scheduling efficiency, rescheduling, business impact).

Every response that merges the three case stores carries a QueryDiagnostics
block so callers can tell a complete answer from a partial one.

Monetary values are Money: a Decimal rounded to cents that is emitted as a JSON
number. Totals are built from the already-rounded parts, so a total always
equals the exact sum of its split. Utilization hours are Hours, the same
Decimal-in-Python, number-in-JSON shape rounded to 0.01. Other hours and
percentages are floats rounded to 2 decimals.

All models use Pydantic v2 syntax with proper field validation and examples.
"""

from datetime import date as DateType
from decimal import Decimal
from typing import Annotated, Dict, List, Optional

from pydantic import BaseModel, Field, ConfigDict, PlainSerializer

from technician_analytics.models.enums import (
    CaseSource,
    EfficiencyRating,
    RouteEfficiency,
    RouteDataSource,
)


# Decimal in Python, number in JSON
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used='json')]
Hours = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used='json')]

ZERO_MONEY = Decimal('0.00')
ZERO_HOURS = Decimal('0.00')


# =============================================================================
# Roster
# =============================================================================


class Technician(BaseModel):
    """
    A technician as read from the roster.

    Only active technicians take part in cohort-wide computations. The
    vehicle_id links the technician to the telemetry provider and is None
    for technicians without a tracked vehicle.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(..., description="Technician identifier")
    name: str = Field(..., description="Display name")
    role: Optional[str] = Field(default=None, description="Roster role")
    email: Optional[str] = Field(default=None, description="Contact email")
    active: bool = Field(default=True, description="Whether the technician is active")
    vehicle_id: Optional[str] = Field(
        default=None,
        description="Telemetry vehicle identifier, if any"
    )


# =============================================================================
# Diagnostics
# =============================================================================


class QueryDiagnostics(BaseModel):
    """
    Completeness report attached to multi-source responses.

    partial_data is True when any case store failed or any technician batch
    did not finish within the query timeout.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "partial_data": True,
                "failed_sources": ["business"],
                "dropped_records": 2,
                "incomplete_technician_ids": []
            }
        }
    )

    partial_data: bool = Field(default=False, description="Whether the answer is incomplete")
    failed_sources: List[CaseSource] = Field(
        default_factory=list,
        description="Case stores that could not be read"
    )
    dropped_records: int = Field(
        default=0,
        ge=0,
        description="Malformed records excluded from aggregation"
    )
    incomplete_technician_ids: List[str] = Field(
        default_factory=list,
        description="Technicians whose data fetch timed out and are omitted"
    )


# =============================================================================
# Performance Snapshots and Ranking
# =============================================================================


class RevenueBySource(BaseModel):
    """Revenue split over the three case stores."""

    individual: Money = Field(default=ZERO_MONEY, ge=0)
    business: Money = Field(default=ZERO_MONEY, ge=0)
    contract: Money = Field(default=ZERO_MONEY, ge=0)


class CasesBySource(BaseModel):
    """Completed case counts split over the three case stores."""

    individual: int = Field(default=0, ge=0)
    business: int = Field(default=0, ge=0)
    contract: int = Field(default=0, ge=0)


class PerformanceSnapshot(BaseModel):
    """
    Aggregated performance of one technician over a window.

    total_revenue equals the sum of revenue_by_source and total_cases equals
    the sum of cases_by_source. rank is None until the snapshot has been
    ranked against its cohort.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "technician_id": "3f1c2a",
                "name": "Anna Svensson",
                "period_start": "2026-01-01",
                "period_end": "2026-01-31",
                "total_revenue": 15000.0,
                "total_cases": 3,
                "revenue_by_source": {"individual": 10000.0, "business": 5000.0, "contract": 0.0},
                "cases_by_source": {"individual": 2, "business": 1, "contract": 0},
                "avg_case_value": 5000.0,
                "rank": 2
            }
        }
    )

    technician_id: str = Field(..., description="Technician identifier")
    name: str = Field(default="", description="Technician display name")
    period_start: Optional[DateType] = Field(default=None, description="Window start (inclusive)")
    period_end: Optional[DateType] = Field(default=None, description="Window end (inclusive)")
    total_revenue: Money = Field(
        default=ZERO_MONEY,
        ge=0,
        description="Revenue over all stores, the exact sum of revenue_by_source"
    )
    total_cases: int = Field(default=0, ge=0, description="Completed cases over all stores")
    revenue_by_source: RevenueBySource = Field(default_factory=RevenueBySource)
    cases_by_source: CasesBySource = Field(default_factory=CasesBySource)
    avg_case_value: Money = Field(
        default=ZERO_MONEY,
        ge=0,
        description="total_revenue / total_cases, 0 when there are no cases"
    )
    rank: Optional[int] = Field(default=None, ge=1, description="1-based revenue rank")


class CohortPerformanceResponse(BaseModel):
    """Ranked snapshots for a cohort and window."""

    period_start: DateType
    period_end: DateType
    snapshots: List[PerformanceSnapshot] = Field(default_factory=list)
    diagnostics: QueryDiagnostics = Field(default_factory=QueryDiagnostics)


class TechnicianKpi(BaseModel):
    """
    Cohort-level KPI summary.

    Averages per technician are taken over the active technicians; the
    average case value is taken over all completed cases.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "total_technicians": 12,
                "active_technicians": 10,
                "total_revenue": 350000.0,
                "total_cases": 140,
                "avg_revenue_per_technician": 35000.0,
                "avg_cases_per_technician": 14.0,
                "avg_case_value": 2500.0
            }
        }
    )

    period_start: Optional[DateType] = None
    period_end: Optional[DateType] = None
    total_technicians: int = Field(default=0, ge=0, description="Technicians on the roster")
    active_technicians: int = Field(default=0, ge=0, description="Active technicians in the cohort")
    total_revenue: Money = Field(default=ZERO_MONEY, ge=0)
    total_cases: int = Field(default=0, ge=0)
    avg_revenue_per_technician: Money = Field(default=ZERO_MONEY, ge=0)
    avg_cases_per_technician: float = Field(default=0.0, ge=0.0)
    avg_case_value: Money = Field(default=ZERO_MONEY, ge=0)
    diagnostics: QueryDiagnostics = Field(default_factory=QueryDiagnostics)


# =============================================================================
# Monthly Trend
# =============================================================================


class TrendPoint(BaseModel):
    """Revenue and case totals of one technician in one calendar month."""

    month: str = Field(..., pattern=r"^\d{4}-\d{2}$", description="Calendar month, YYYY-MM")
    technician_id: str
    technician_name: str = ""
    total_revenue: Money = Field(default=ZERO_MONEY, ge=0)
    total_cases: int = Field(default=0, ge=0)
    revenue_by_source: RevenueBySource = Field(default_factory=RevenueBySource)


class MonthlyTrendResponse(BaseModel):
    """Sparse monthly trend, ordered by month then technician."""

    months_back: int
    period_start: DateType
    period_end: DateType
    points: List[TrendPoint] = Field(default_factory=list)
    diagnostics: QueryDiagnostics = Field(default_factory=QueryDiagnostics)


# =============================================================================
# Pest Specialization
# =============================================================================


class PestSpecialization(BaseModel):
    """One (technician, pest_type, source) group."""

    technician_id: str
    technician_name: str = ""
    pest_type: str = Field(..., description="Pest category, 'unknown' when missing")
    source: CaseSource
    case_count: int = Field(default=0, ge=0)
    total_revenue: Money = Field(default=ZERO_MONEY, ge=0)
    avg_case_value: Money = Field(default=ZERO_MONEY, ge=0)


class PestTypeOverview(BaseModel):
    """Roll-up of one pest type across technicians and stores."""

    pest_type: str
    case_count: int = Field(default=0, ge=0)
    total_revenue: Money = Field(default=ZERO_MONEY, ge=0)
    avg_case_value: Money = Field(default=ZERO_MONEY, ge=0)
    technician_count: int = Field(default=0, ge=0, description="Distinct technicians")
    top_technician_id: Optional[str] = Field(
        default=None,
        description="Technician with the highest revenue for this pest type"
    )


class PestSpecializationResponse(BaseModel):
    """Specialization rows plus the per-pest-type overview."""

    period_start: DateType
    period_end: DateType
    specializations: List[PestSpecialization] = Field(default_factory=list)
    overview: List[PestTypeOverview] = Field(default_factory=list)
    diagnostics: QueryDiagnostics = Field(default_factory=QueryDiagnostics)


# =============================================================================
# Utilization
# =============================================================================


class UtilizationRecord(BaseModel):
    """
    Scheduled hours against available work hours for one technician.

    Hours are Decimals rounded to 0.01. total_work_hours = max(0,
    original_work_hours - absence input) and the reported absence_hours is
    exactly original_work_hours - total_work_hours, so an absence longer than
    the schedule is clipped.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "technician_id": "3f1c2a",
                "name": "Anna Svensson",
                "period_start": "2026-03-02",
                "period_end": "2026-03-08",
                "scheduled_hours": 25.0,
                "total_work_hours": 30.0,
                "original_work_hours": 40.0,
                "absence_hours": 10.0,
                "cases_assigned": 9,
                "avg_case_value": 2400.0,
                "utilization_percent": 83.33,
                "efficiency_rating": "optimal",
                "fully_absent": False
            }
        }
    )

    technician_id: str
    name: str = ""
    period_start: Optional[DateType] = None
    period_end: Optional[DateType] = None
    scheduled_hours: Hours = Field(default=ZERO_HOURS, ge=0)
    total_work_hours: Hours = Field(default=ZERO_HOURS, ge=0)
    original_work_hours: Hours = Field(default=ZERO_HOURS, ge=0)
    absence_hours: Hours = Field(default=ZERO_HOURS, ge=0)
    cases_assigned: int = Field(default=0, ge=0)
    avg_case_value: Money = Field(default=ZERO_MONEY, ge=0)
    utilization_percent: float = Field(default=0.0, ge=0.0)
    efficiency_rating: EfficiencyRating
    fully_absent: bool = Field(
        default=False,
        description="True when no work hours remain after absences"
    )


class UtilizationSummary(BaseModel):
    """Totals and rating distribution over a set of utilization records."""

    technician_count: int = 0
    total_work_hours: Hours = ZERO_HOURS
    total_scheduled_hours: Hours = ZERO_HOURS
    avg_utilization_percent: float = 0.0
    rating_counts: Dict[EfficiencyRating, int] = Field(default_factory=dict)
    fully_absent_count: int = 0


class UtilizationResponse(BaseModel):
    """Utilization records sorted by utilization percent, highest first."""

    period_start: DateType
    period_end: DateType
    records: List[UtilizationRecord] = Field(default_factory=list)
    summary: UtilizationSummary = Field(default_factory=UtilizationSummary)


# =============================================================================
# Route Optimization
# =============================================================================


class RouteOptimization(BaseModel):
    """
    Heuristic route score for one technician on one day.

    The score is 70 at baseline with bonuses for case density, short
    per-case distance and live telemetry, clamped to [0, 100].
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "technician_id": "3f1c2a",
                "name": "Anna Svensson",
                "date": "2026-03-04",
                "total_cases": 8,
                "total_distance_km": 48.0,
                "avg_distance_per_case_km": 6.0,
                "optimization_score": 100.0,
                "route_efficiency": "excellent",
                "data_source": "telemetry"
            }
        }
    )

    technician_id: str
    name: str = ""
    date: DateType
    total_cases: int = Field(default=0, ge=0)
    total_distance_km: float = Field(default=0.0, ge=0.0)
    avg_distance_per_case_km: float = Field(default=0.0, ge=0.0)
    optimization_score: float = Field(..., ge=0.0, le=100.0)
    route_efficiency: RouteEfficiency
    data_source: RouteDataSource


class RouteSummary(BaseModel):
    """Aggregate view over a day's route scores."""

    technician_count: int = 0
    total_distance_km: float = 0.0
    avg_optimization_score: float = 0.0
    excellent_count: int = 0
    poor_count: int = 0
    data_source_counts: Dict[RouteDataSource, int] = Field(default_factory=dict)


class RouteOptimizationResponse(BaseModel):
    """
    Route scores for a day, one per field technician.

    Case counts come from whichever stores answered; a store that failed is
    listed in diagnostics.failed_sources and contributes no cases.
    """

    date: DateType
    routes: List[RouteOptimization] = Field(default_factory=list)
    summary: RouteSummary = Field(default_factory=RouteSummary)
    diagnostics: QueryDiagnostics = Field(default_factory=QueryDiagnostics)


# =============================================================================
# Comparison
# =============================================================================


class CohortAverage(BaseModel):
    """Mean performance over the active cohort."""

    technician_count: int = Field(default=0, ge=0)
    total_revenue: Money = Field(default=ZERO_MONEY, ge=0, description="Mean revenue per technician")
    total_cases: float = Field(default=0.0, ge=0.0, description="Mean cases per technician")
    avg_case_value: Money = Field(default=ZERO_MONEY, ge=0, description="Mean of per-technician averages")


class TechnicianComparison(BaseModel):
    """
    A technician measured against the cohort mean.

    Deltas are percentages relative to the cohort average and are 0 when the
    average is 0. Recommendations appear in rule order.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "technician_id": "3f1c2a",
                "revenue_delta_pct": -25.0,
                "cases_delta_pct": -5.0,
                "avg_case_value_delta_pct": -21.05,
                "recommendations": [
                    "Focus on value-adding services",
                    "Review pricing and add-on services on each visit"
                ]
            }
        }
    )

    technician_id: str
    name: str = ""
    snapshot: Optional[PerformanceSnapshot] = None
    cohort_average: Optional[CohortAverage] = None
    revenue_delta_pct: float = 0.0
    cases_delta_pct: float = 0.0
    avg_case_value_delta_pct: float = 0.0
    recommendations: List[str] = Field(default_factory=list)
    primary_specialization: Optional[str] = Field(
        default=None,
        description="Pest type with the highest revenue for this technician"
    )
    diagnostics: QueryDiagnostics = Field(default_factory=QueryDiagnostics)


# =============================================================================
# Coordination: Scheduling Efficiency, Rescheduling, Business Impact
# =============================================================================


class SchedulingEfficiency(BaseModel):
    """
    How quickly new cases get a booked start time.

    Lead time is start_date - created_at in hours, floored at 0 for cases
    booked into the past. Percentages are shares of scheduled cases.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "cases_scheduled": 120,
                "avg_hours_to_schedule": 30.5,
                "scheduled_within_24h_percent": 45.0,
                "scheduled_within_48h_percent": 75.83,
                "scheduled_within_72h_percent": 90.0
            }
        }
    )

    cases_scheduled: int = Field(default=0, ge=0)
    avg_hours_to_schedule: float = Field(default=0.0, ge=0.0)
    scheduled_within_24h_percent: float = Field(default=0.0, ge=0.0, le=100.0)
    scheduled_within_48h_percent: float = Field(default=0.0, ge=0.0, le=100.0)
    scheduled_within_72h_percent: float = Field(default=0.0, ge=0.0, le=100.0)


class SchedulingEfficiencyDay(BaseModel):
    """Scheduling lead time of the cases created on one day."""

    date: DateType
    cases_scheduled: int = Field(default=0, ge=0)
    avg_scheduling_time_hours: float = Field(default=0.0, ge=0.0)
    efficiency_score: float = Field(
        default=0.0,
        ge=0.0,
        le=100.0,
        description="100 - avg hours / 24 * 100, clamped to [0, 100]"
    )


class SchedulingEfficiencyResponse(BaseModel):
    """Scheduling efficiency summary and daily series for a window."""

    period_start: DateType
    period_end: DateType
    summary: SchedulingEfficiency = Field(default_factory=SchedulingEfficiency)
    daily: List[SchedulingEfficiencyDay] = Field(default_factory=list)
    diagnostics: QueryDiagnostics = Field(default_factory=QueryDiagnostics)


class RescheduleReason(BaseModel):
    """A reschedule note and how often it occurred."""

    reason: str
    count: int = Field(default=0, ge=0)


class ReschedulingMetrics(BaseModel):
    """
    Status changes recorded in the audit log, relative to the cases created
    in the same window.
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "total_reschedules": 12,
                "total_cases": 150,
                "reschedule_rate_percent": 8.0,
                "avg_reschedules_per_case": 0.08,
                "top_reschedule_reasons": [{"reason": "Kund ej hemma", "count": 5}]
            }
        }
    )

    period_start: DateType
    period_end: DateType
    total_reschedules: int = Field(default=0, ge=0)
    total_cases: int = Field(default=0, ge=0, description="Cases created in the window")
    reschedule_rate_percent: float = Field(default=0.0, ge=0.0)
    avg_reschedules_per_case: float = Field(default=0.0, ge=0.0)
    top_reschedule_reasons: List[RescheduleReason] = Field(default_factory=list)
    diagnostics: QueryDiagnostics = Field(default_factory=QueryDiagnostics)


class BusinessImpact(BaseModel):
    """
    Revenue and turnaround of the cases created in a window.

    coordination_efficiency_score is 100 - 2 * avg_case_completion_days,
    clamped to [0, 100].
    """
    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "total_cases": 150,
                "total_revenue_managed": 420000.0,
                "avg_case_completion_days": 6.5,
                "scheduled_hours": 310.0,
                "revenue_per_scheduled_hour": 1354.84,
                "case_throughput_per_day": 5.0,
                "coordination_efficiency_score": 87.0
            }
        }
    )

    period_start: DateType
    period_end: DateType
    total_cases: int = Field(default=0, ge=0)
    total_revenue_managed: Money = Field(default=ZERO_MONEY, ge=0)
    avg_case_completion_days: float = Field(default=0.0, ge=0.0)
    scheduled_hours: float = Field(default=0.0, ge=0.0, description="Booked due_date - start_date hours")
    revenue_per_scheduled_hour: Money = Field(default=ZERO_MONEY, ge=0)
    case_throughput_per_day: float = Field(default=0.0, ge=0.0)
    coordination_efficiency_score: float = Field(default=0.0, ge=0.0, le=100.0)
    diagnostics: QueryDiagnostics = Field(default_factory=QueryDiagnostics)
