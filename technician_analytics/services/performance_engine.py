"""
Performance engine: orchestration of the analytics operations.

Every operation is recomputed from the stores on each call. Nothing is cached,
including cohort membership, which is re-read from the roster every time.

Operations:
- get_cohort_performance: Ranked snapshots for a cohort and window
- get_monthly_trend: Sparse monthly revenue trend for the active cohort
- get_pest_specialization: Specialization rows and per-pest overview
- get_technician_kpi: Cohort KPI summary
- get_technician_comparison: One technician against the cohort mean
- get_utilization: Utilization records for field technicians
- get_route_optimization: Route scores for field technicians on one day
- get_scheduling_efficiency: Scheduling lead time summary and daily series
- get_rescheduling_metrics: Audit log reschedules against cases created
- get_business_impact: Revenue and turnaround of cases created in a window

Fan-out:
Cohort queries split the technician set into batches of
Settings.fetch_batch_size. Each batch queries the three case stores
concurrently and batches run under gather_bounded with
Settings.fetch_concurrency slots and the query timeout. Batches that time out
or fail are reported as incomplete_technician_ids and those technicians are
left out of the result; a failing case store is reported in failed_sources
and the other stores' data is still used.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from functools import partial
from typing import Callable, Collection, Dict, List, Optional, Sequence, Set, Tuple
from zoneinfo import ZoneInfo

import httpx
from asyncpg import Pool

from technician_analytics.core.config import Settings
from technician_analytics.core.exceptions import EmptyCohort, InvalidWindow, TelemetryUnavailable
from technician_analytics.models.enums import CaseSource, RouteDataSource
from technician_analytics.models.schemas import (
    BusinessImpact,
    CohortPerformanceResponse,
    MonthlyTrendResponse,
    PerformanceSnapshot,
    PestSpecializationResponse,
    QueryDiagnostics,
    ReschedulingMetrics,
    RouteOptimization,
    RouteOptimizationResponse,
    SchedulingEfficiencyResponse,
    Technician,
    TechnicianComparison,
    TechnicianKpi,
    UtilizationRecord,
    UtilizationResponse,
)
from technician_analytics.services.aggregation import aggregate_cohort, partition_records
from technician_analytics.services.case_store import CaseRecordStore
from technician_analytics.services.comparison import (
    ComparisonEngine,
    DEFAULT_RULES,
    RecommendationRule,
    cohort_average,
)
from technician_analytics.services.coordination import (
    business_impact,
    daily_scheduling_efficiency,
    rescheduling_metrics,
    scheduling_efficiency,
)
from technician_analytics.services.fanout import gather_bounded
from technician_analytics.services.geographic import (
    DEFAULT_SCORING,
    DistanceEstimator,
    GeographicOptimizer,
    RouteScoringConfig,
    summarize_routes,
)
from technician_analytics.services.pest_specialization import (
    overview,
    primary_specialization,
    specialize,
)
from technician_analytics.services.ranking import rank, summarize_cohort
from technician_analytics.services.roster import RosterProvider
from technician_analytics.services.scheduling import SchedulingProvider
from technician_analytics.services.source_fetcher import CaseRecord, SourceFetcher
from technician_analytics.services.telemetry import TelemetryClient
from technician_analytics.services.trends import monthly_trend, trend_window
from technician_analytics.services.utilization import UtilizationCalculator, summarize_utilization


logger = logging.getLogger(__name__)


@dataclass
class CollectedCases:
    """Valid records of a cohort fetch plus its diagnostics."""
    records: List[CaseRecord] = field(default_factory=list)
    diagnostics: QueryDiagnostics = field(default_factory=QueryDiagnostics)
    incomplete_ids: Set[str] = field(default_factory=set)


def validate_window(start: date, end: date) -> None:
    """Raise InvalidWindow if the window ends before it starts."""
    if end < start:
        raise InvalidWindow(start, end)


def chunk(ids: Sequence[str], size: int) -> List[List[str]]:
    """Split ids into consecutive batches of at most size elements."""
    size = max(1, size)
    return [list(ids[i:i + size]) for i in range(0, len(ids), size)]


class PerformanceEngine:
    """
    Analytics operations over the case stores and collaborators.

    Args:
        store: Case store reader.
        roster: Roster provider.
        scheduling: Scheduling provider (work hours, absences, bookings).
        settings: Application settings.
        telemetry: Vehicle telemetry client; None disables live positions.
        estimator: Distance model; built from settings when None.
        scoring: Route heuristic weights.
        rules: Recommendation rule table.
        clock: Returns "today"; injectable for tests.
    """

    def __init__(
        self,
        store: CaseRecordStore,
        roster: RosterProvider,
        scheduling: SchedulingProvider,
        settings: Settings,
        telemetry: Optional[TelemetryClient] = None,
        estimator: Optional[DistanceEstimator] = None,
        scoring: RouteScoringConfig = DEFAULT_SCORING,
        rules: Sequence[RecommendationRule] = DEFAULT_RULES,
        clock: Callable[[], date] = date.today,
    ):
        self.store = store
        self.fetcher = SourceFetcher(store)
        self.roster = roster
        self.scheduling = scheduling
        self.settings = settings
        self.telemetry = telemetry
        self.clock = clock
        self.tz = ZoneInfo(settings.business_timezone)

        if estimator is None:
            estimator = DistanceEstimator(
                min_km=settings.route_distance_min_km,
                max_km=settings.route_distance_max_km,
                seed=settings.route_distance_seed,
            )
        self.optimizer = GeographicOptimizer(scoring, estimator)
        self.utilization_calculator = UtilizationCalculator(
            low_threshold=settings.utilization_low_threshold,
            overbooked_threshold=settings.utilization_overbooked_threshold,
        )
        self.comparison = ComparisonEngine(rules)

    @classmethod
    def from_pool(
        cls,
        pool: Pool,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> 'PerformanceEngine':
        """Build an engine whose collaborators all read from one asyncpg pool."""
        return cls(
            store=CaseRecordStore(pool),
            roster=RosterProvider(pool),
            scheduling=SchedulingProvider(pool, settings.business_timezone),
            settings=settings,
            telemetry=TelemetryClient.from_settings(settings, http_client),
        )

    # =========================================================================
    # Cohort Resolution and Fetching
    # =========================================================================

    async def _resolve_cohort(
        self,
        technician_ids: Optional[Collection[str]] = None,
        role: Optional[str] = None,
    ) -> List[Technician]:
        roster = await self.roster.list_technicians(active_only=True, role=role)
        cohort = [t for t in roster if t.active]

        if technician_ids is not None:
            wanted = set(technician_ids)
            cohort = [t for t in cohort if t.id in wanted]
            unknown = wanted - {t.id for t in cohort}
            if unknown:
                logger.warning(f"Ignoring unknown or inactive technicians: {sorted(unknown)}")

        if not cohort:
            raise EmptyCohort()
        return cohort

    async def _collect(
        self,
        technicians: Collection[Technician],
        start: date,
        end: date,
        timeout: Optional[float] = None,
    ) -> CollectedCases:
        ids = sorted(t.id for t in technicians)
        batches = chunk(ids, self.settings.fetch_batch_size)
        jobs = {index: partial(self.fetcher.fetch, batch, start, end) for index, batch in enumerate(batches)}

        outcome = await gather_bounded(
            jobs,
            concurrency=self.settings.fetch_concurrency,
            timeout=timeout if timeout is not None else self.settings.query_timeout_seconds,
        )

        raw_records: List[CaseRecord] = []
        failed: Set[CaseSource] = set()
        skipped = 0
        for index in sorted(outcome.successes):
            batch_result = outcome.successes[index]
            raw_records.extend(batch_result.records)
            failed.update(batch_result.failed_sources)
            skipped += batch_result.skipped_rows

        incomplete: Set[str] = set()
        for index in list(outcome.timed_out) + list(outcome.failures):
            incomplete.update(batches[index])

        records, invalid = partition_records(raw_records)
        dropped = skipped + invalid
        records = [r for r in records if r.technician_id not in incomplete]

        diagnostics = QueryDiagnostics(
            partial_data=bool(failed or incomplete),
            failed_sources=[source for source in CaseSource if source in failed],
            dropped_records=dropped,
            incomplete_technician_ids=sorted(incomplete),
        )
        logger.info(
            f"Collected {len(records)} records for {len(ids)} technicians in "
            f"{len(batches)} batches (dropped={dropped}, incomplete={len(incomplete)}, "
            f"failed_sources={[s.value for s in diagnostics.failed_sources]})"
        )
        return CollectedCases(records=records, diagnostics=diagnostics, incomplete_ids=incomplete)

    async def _cohort_snapshots(
        self,
        cohort: List[Technician],
        start: date,
        end: date,
        timeout: Optional[float],
    ) -> Tuple[List[PerformanceSnapshot], CollectedCases]:
        collected = await self._collect(cohort, start, end, timeout)
        members = [t for t in cohort if t.id not in collected.incomplete_ids]
        aggregation = aggregate_cohort(collected.records, members, start, end)
        return rank(aggregation.snapshots.values()), collected

    # =========================================================================
    # Performance Operations
    # =========================================================================

    async def get_cohort_performance(
        self,
        start: date,
        end: date,
        technician_ids: Optional[Collection[str]] = None,
        timeout: Optional[float] = None,
    ) -> CohortPerformanceResponse:
        """
        Ranked performance snapshots for a cohort.

        Args:
            start: Window start (inclusive).
            end: Window end (inclusive).
            technician_ids: Restrict the cohort; None means every active
                technician. Unknown or inactive ids are ignored.
            timeout: Fan-out budget in seconds; defaults to the setting.

        Returns:
            CohortPerformanceResponse with one ranked snapshot per active
            cohort member that completed.

        Raises:
            InvalidWindow: If end is before start.
            EmptyCohort: If no active technician remains in the cohort.
        """
        validate_window(start, end)
        cohort = await self._resolve_cohort(technician_ids)
        snapshots, collected = await self._cohort_snapshots(cohort, start, end, timeout)

        return CohortPerformanceResponse(
            period_start=start,
            period_end=end,
            snapshots=snapshots,
            diagnostics=collected.diagnostics,
        )

    async def get_monthly_trend(
        self,
        months_back: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> MonthlyTrendResponse:
        """
        Monthly revenue trend of the active cohort.

        Args:
            months_back: Trend length; defaults to Settings.default_months_back.
            timeout: Fan-out budget in seconds.

        Raises:
            EmptyCohort: If there are no active technicians.
        """
        if months_back is None:
            months_back = self.settings.default_months_back
        today = self.clock()
        start, end = trend_window(today, months_back)

        cohort = await self._resolve_cohort()
        collected = await self._collect(cohort, start, end, timeout)
        names = {t.id: t.name for t in cohort}

        return MonthlyTrendResponse(
            months_back=months_back,
            period_start=start,
            period_end=end,
            points=monthly_trend(collected.records, months_back, today, names),
            diagnostics=collected.diagnostics,
        )

    async def get_pest_specialization(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
        timeout: Optional[float] = None,
    ) -> PestSpecializationResponse:
        """
        Pest-type specialization of the active cohort.

        The window defaults to the last Settings.specialization_lookback_days
        days ending today.

        Raises:
            InvalidWindow: If end is before start.
            EmptyCohort: If there are no active technicians.
        """
        if end is None:
            end = self.clock()
        if start is None:
            start = end - timedelta(days=self.settings.specialization_lookback_days)
        validate_window(start, end)

        cohort = await self._resolve_cohort()
        collected = await self._collect(cohort, start, end, timeout)
        names = {t.id: t.name for t in cohort}

        return PestSpecializationResponse(
            period_start=start,
            period_end=end,
            specializations=specialize(collected.records, names),
            overview=overview(collected.records),
            diagnostics=collected.diagnostics,
        )

    async def get_technician_kpi(
        self,
        start: date,
        end: date,
        timeout: Optional[float] = None,
    ) -> TechnicianKpi:
        """
        KPI summary over the active cohort.

        Raises:
            InvalidWindow: If end is before start.
            EmptyCohort: If there are no active technicians.
        """
        validate_window(start, end)
        cohort = await self._resolve_cohort()
        snapshots, collected = await self._cohort_snapshots(cohort, start, end, timeout)
        total_technicians = await self.roster.count_technicians()

        kpi = summarize_cohort(snapshots, total_technicians)
        return kpi.model_copy(update={
            'period_start': start,
            'period_end': end,
            'diagnostics': collected.diagnostics,
        })

    async def get_technician_comparison(
        self,
        technician_id: str,
        start: date,
        end: date,
        timeout: Optional[float] = None,
    ) -> TechnicianComparison:
        """
        Compare one technician with the mean of the active cohort.

        Raises:
            InvalidWindow: If end is before start.
            EmptyCohort: If the technician is not an active cohort member or
                their data could not be fetched in time.
        """
        validate_window(start, end)
        cohort = await self._resolve_cohort()
        if technician_id not in {t.id for t in cohort}:
            raise EmptyCohort(f"Technician {technician_id} is not an active technician")

        snapshots, collected = await self._cohort_snapshots(cohort, start, end, timeout)
        by_id: Dict[str, PerformanceSnapshot] = {s.technician_id: s for s in snapshots}
        if technician_id not in by_id:
            raise EmptyCohort(f"No data could be fetched for technician {technician_id}")

        comparison = self.comparison.compare(by_id[technician_id], cohort_average(snapshots))
        return comparison.model_copy(update={
            'primary_specialization': primary_specialization(collected.records, technician_id),
            'diagnostics': collected.diagnostics,
        })

    # =========================================================================
    # Coordinator Operations
    # =========================================================================

    async def get_utilization(self, start: date, end: date) -> UtilizationResponse:
        """
        Utilization of field technicians over a window.

        Records are sorted by utilization percent, highest first (ties by
        technician id).

        Raises:
            InvalidWindow: If end is before start.
            EmptyCohort: If there are no active field technicians.
        """
        validate_window(start, end)
        cohort = await self._resolve_cohort(role=self.settings.technician_role)
        schedules = await self.scheduling.get_schedules([t.id for t in cohort], start, end)

        records: List[UtilizationRecord] = []
        for technician in cohort:
            schedule = schedules.get(technician.id)
            if schedule is None:
                logger.warning(f"No schedule data for technician {technician.id}")
                continue
            records.append(self.utilization_calculator.utilization(
                technician_id=technician.id,
                name=technician.name,
                period_start=start,
                period_end=end,
                scheduled_hours=schedule.scheduled_hours,
                original_work_hours=schedule.original_work_hours,
                absence_hours=schedule.absence_hours,
                cases_assigned=schedule.cases_assigned,
                avg_case_value=schedule.avg_case_value,
            ))

        records.sort(key=lambda r: (-r.utilization_percent, r.technician_id))
        return UtilizationResponse(
            period_start=start,
            period_end=end,
            records=records,
            summary=summarize_utilization(records),
        )

    async def _route_data_sources(self, technicians: List[Technician]) -> Dict[str, RouteDataSource]:
        sources = {t.id: RouteDataSource.ESTIMATED for t in technicians}
        tracked = [t for t in technicians if t.vehicle_id]
        if not tracked or self.telemetry is None or not self.telemetry.is_configured:
            return sources

        try:
            await self.telemetry.get_token()
        except TelemetryUnavailable as e:
            logger.warning(f"Telemetry unavailable, falling back to estimates: {e}")
            for technician in tracked:
                sources[technician.id] = RouteDataSource.ERROR
            return sources

        outcome = await gather_bounded(
            {t.id: partial(self.telemetry.get_vehicle_position, t.vehicle_id) for t in tracked},
            concurrency=self.settings.fetch_concurrency,
            timeout=self.settings.telemetry_timeout_seconds,
        )
        for technician_id, position in outcome.successes.items():
            if position is not None:
                sources[technician_id] = RouteDataSource.TELEMETRY
        for technician_id in list(outcome.failures) + list(outcome.timed_out):
            sources[technician_id] = RouteDataSource.ERROR

        return sources

    async def get_route_optimization(self, day: date) -> RouteOptimizationResponse:
        """
        Route scores of field technicians for one day.

        Case counts are read per store; a store that fails is reported in
        failed_sources and the counts of the other stores are still scored.
        Routes are sorted by score, highest first (ties by technician id).

        Raises:
            EmptyCohort: If there are no active field technicians.
        """
        cohort = await self._resolve_cohort(role=self.settings.technician_role)
        daily = await self.fetcher.count_daily_cases([t.id for t in cohort], day)
        data_sources = await self._route_data_sources(cohort)

        routes: List[RouteOptimization] = [
            self.optimizer.optimize(
                technician_id=technician.id,
                day=day,
                case_count=daily.counts.get(technician.id, 0),
                data_source=data_sources[technician.id],
                name=technician.name,
            )
            for technician in cohort
        ]
        routes.sort(key=lambda r: (-r.optimization_score, r.technician_id))

        return RouteOptimizationResponse(
            date=day,
            routes=routes,
            summary=summarize_routes(routes),
            diagnostics=_source_diagnostics(daily.failed_sources),
        )

    # =========================================================================
    # Coordination Metrics
    # =========================================================================

    def _coordination_window(self, start: Optional[date], end: Optional[date]) -> Tuple[date, date]:
        if end is None:
            end = self.clock()
        if start is None:
            start = end - timedelta(days=self.settings.coordination_lookback_days)
        validate_window(start, end)
        return start, end

    async def get_scheduling_efficiency(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> SchedulingEfficiencyResponse:
        """
        Scheduling lead time of the cases created in a window.

        The window defaults to the last Settings.coordination_lookback_days
        days ending today.

        Raises:
            InvalidWindow: If end is before start.
        """
        start, end = self._coordination_window(start, end)
        lifecycle = await self.fetcher.fetch_lifecycle(start, end)

        return SchedulingEfficiencyResponse(
            period_start=start,
            period_end=end,
            summary=scheduling_efficiency(lifecycle.rows, self.tz),
            daily=daily_scheduling_efficiency(lifecycle.rows, self.tz),
            diagnostics=_source_diagnostics(lifecycle.failed_sources),
        )

    async def get_rescheduling_metrics(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> ReschedulingMetrics:
        """
        Reschedules recorded in the audit log, relative to the cases created
        in the same window.

        Raises:
            InvalidWindow: If end is before start.
            SourceUnavailable: If the audit log cannot be read.
        """
        start, end = self._coordination_window(start, end)
        lifecycle = await self.fetcher.fetch_lifecycle(start, end)
        changes = await self.store.fetch_status_changes(start, end)

        metrics = rescheduling_metrics(
            changes,
            total_cases=len(lifecycle.rows),
            period_start=start,
            period_end=end,
            reason_limit=self.settings.reschedule_reason_limit,
        )
        return metrics.model_copy(update={'diagnostics': _source_diagnostics(lifecycle.failed_sources)})

    async def get_business_impact(
        self,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> BusinessImpact:
        """
        Revenue, turnaround and throughput of the cases created in a window.

        Raises:
            InvalidWindow: If end is before start.
        """
        start, end = self._coordination_window(start, end)
        lifecycle = await self.fetcher.fetch_lifecycle(start, end)

        impact = business_impact(lifecycle.rows, start, end, self.tz)
        return impact.model_copy(update={'diagnostics': _source_diagnostics(lifecycle.failed_sources)})


def _source_diagnostics(failed_sources: Collection[CaseSource]) -> QueryDiagnostics:
    return QueryDiagnostics(
        partial_data=bool(failed_sources),
        failed_sources=[source for source in CaseSource if source in failed_sources],
    )
