"""
Technician Analytics Services Module

Business logic for the performance and routing analytics engine. Pure
computation services are stateless; providers wrap the asyncpg pool or the
telemetry HTTP API.

Services:
- case_store: Reads the three case stores into per-store row types
- source_fetcher: Concurrent multi-store fetch and normalization
- aggregation: Immutable fold into performance snapshots
- ranking: Revenue ranking and cohort KPI summary
- trends: Monthly revenue trend
- pest_specialization: Pest-type specialization and overview
- utilization: Utilization percent and efficiency rating
- geographic: Route optimization score
- comparison: Technician vs cohort comparison and recommendations
- fanout: Bounded parallel fan-out with join barrier
- roster / scheduling / telemetry: Collaborator providers
- performance_engine: Orchestration of the external operations

All services are designed to be consumed by the API layer
(technician_analytics/api/).
"""

from technician_analytics.services.fanout import FanoutResult, gather_bounded
from technician_analytics.services.case_store import (
    BusinessCaseRow,
    CaseRecordStore,
    CaseRow,
    ContractCaseRow,
    IndividualCaseRow,
)
from technician_analytics.services.source_fetcher import (
    CaseRecord,
    SourceFetcher,
    SourceFetchResult,
    normalize,
)
from technician_analytics.services.aggregation import (
    AggregationResult,
    CaseTotals,
    GroupKey,
    aggregate,
    aggregate_cohort,
    fold_case_totals,
    merge_folds,
)
from technician_analytics.services.ranking import rank, summarize_cohort
from technician_analytics.services.trends import monthly_trend
from technician_analytics.services.pest_specialization import (
    overview,
    primary_specialization,
    specialize,
)
from technician_analytics.services.utilization import UtilizationCalculator, summarize_utilization
from technician_analytics.services.geographic import (
    DistanceEstimator,
    GeographicOptimizer,
    RouteScoringConfig,
    classify_route,
    summarize_routes,
)
from technician_analytics.services.comparison import (
    ComparisonEngine,
    RecommendationRule,
    cohort_average,
)
from technician_analytics.services.roster import RosterProvider
from technician_analytics.services.scheduling import SchedulingProvider, compute_work_hours
from technician_analytics.services.telemetry import TelemetryClient, VehiclePosition
from technician_analytics.services.performance_engine import PerformanceEngine

__all__ = [
    'FanoutResult',
    'gather_bounded',
    'BusinessCaseRow',
    'CaseRecordStore',
    'CaseRow',
    'ContractCaseRow',
    'IndividualCaseRow',
    'CaseRecord',
    'SourceFetcher',
    'SourceFetchResult',
    'normalize',
    'AggregationResult',
    'CaseTotals',
    'GroupKey',
    'aggregate',
    'aggregate_cohort',
    'fold_case_totals',
    'merge_folds',
    'rank',
    'summarize_cohort',
    'monthly_trend',
    'overview',
    'primary_specialization',
    'specialize',
    'UtilizationCalculator',
    'summarize_utilization',
    'DistanceEstimator',
    'GeographicOptimizer',
    'RouteScoringConfig',
    'classify_route',
    'summarize_routes',
    'ComparisonEngine',
    'RecommendationRule',
    'cohort_average',
    'RosterProvider',
    'SchedulingProvider',
    'compute_work_hours',
    'TelemetryClient',
    'VehiclePosition',
    'PerformanceEngine',
]
