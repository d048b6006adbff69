"""
Package initialization file for technician analytics models.

Re-exports the enumerations from enums.py and the Pydantic schemas from
schemas.py so other modules can import data models from
technician_analytics.models directly.

Usage:
    from technician_analytics.models import (
        CaseSource,
        EfficiencyRating,
        PerformanceSnapshot,
        QueryDiagnostics,
    )
"""

# =============================================================================
# Enums
# =============================================================================

from technician_analytics.models.enums import (
    CaseSource,
    EfficiencyRating,
    RouteEfficiency,
    RouteDataSource,
    COMPLETED_STATUS,
    COMPLETED_STATUSES,
    UNKNOWN_PEST_TYPE,
)

# =============================================================================
# Schemas
# =============================================================================

from technician_analytics.models.schemas import (
    # Roster
    Technician,
    # Diagnostics
    QueryDiagnostics,
    # Performance
    RevenueBySource,
    CasesBySource,
    PerformanceSnapshot,
    CohortPerformanceResponse,
    TechnicianKpi,
    # Trend
    TrendPoint,
    MonthlyTrendResponse,
    # Pest specialization
    PestSpecialization,
    PestTypeOverview,
    PestSpecializationResponse,
    # Utilization
    UtilizationRecord,
    UtilizationSummary,
    UtilizationResponse,
    # Routes
    RouteOptimization,
    RouteSummary,
    RouteOptimizationResponse,
    # Comparison
    CohortAverage,
    TechnicianComparison,
    # Coordination
    SchedulingEfficiency,
    SchedulingEfficiencyDay,
    SchedulingEfficiencyResponse,
    RescheduleReason,
    ReschedulingMetrics,
    BusinessImpact,
    # Value types
    Money,
    Hours,
)

__all__ = [
    'CaseSource',
    'EfficiencyRating',
    'RouteEfficiency',
    'RouteDataSource',
    'COMPLETED_STATUS',
    'COMPLETED_STATUSES',
    'UNKNOWN_PEST_TYPE',
    'Technician',
    'QueryDiagnostics',
    'RevenueBySource',
    'CasesBySource',
    'PerformanceSnapshot',
    'CohortPerformanceResponse',
    'TechnicianKpi',
    'TrendPoint',
    'MonthlyTrendResponse',
    'PestSpecialization',
    'PestTypeOverview',
    'PestSpecializationResponse',
    'UtilizationRecord',
    'UtilizationSummary',
    'UtilizationResponse',
    'RouteOptimization',
    'RouteSummary',
    'RouteOptimizationResponse',
    'CohortAverage',
    'TechnicianComparison',
    'SchedulingEfficiency',
    'SchedulingEfficiencyDay',
    'SchedulingEfficiencyResponse',
    'RescheduleReason',
    'ReschedulingMetrics',
    'BusinessImpact',
    'Money',
    'Hours',
]
