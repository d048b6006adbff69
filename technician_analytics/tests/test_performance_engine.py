"""
Tests for the PerformanceEngine orchestration.

The engine runs over in-memory fakes (see conftest). The active roster is
admin, t1, t2 and t3; t9 is inactive and only t1..t3 are field technicians.
With fetch_batch_size=2 the cohort is fetched as [admin, t1] and [t2, t3].

Tests cover:
- Ranked cohort performance, cohort filtering and caller errors
- Partial data: unavailable stores and timed-out batches
- Idempotence and per-call roster reads
- Trend, pest specialization, KPI and comparison operations
- Utilization and route optimization for field technicians
- Coordination metrics over lifecycle rows and the audit log
"""

from datetime import date, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, Mock
from zoneinfo import ZoneInfo

import pytest

from technician_analytics.core.exceptions import (
    EmptyCohort,
    InvalidWindow,
    SourceUnavailable,
    TelemetryUnavailable,
)
from technician_analytics.models.enums import (
    CaseSource,
    EfficiencyRating,
    RouteDataSource,
    RouteEfficiency,
)
from technician_analytics.services.geographic import DistanceEstimator
from technician_analytics.services.performance_engine import PerformanceEngine, chunk
from technician_analytics.services.scheduling import TechnicianSchedule
from technician_analytics.services.telemetry import VehiclePosition
from technician_analytics.tests.conftest import TODAY, status_change, technician


pytestmark = pytest.mark.asyncio

START = date(2026, 3, 1)
END = date(2026, 3, 31)


@pytest.fixture
def seeded_store(fake_store, make_row):
    """t1: 10000 individual + 5000 business, t2: 20000 contract, t9 (inactive): 99999."""
    fake_store.add(
        make_row(CaseSource.INDIVIDUAL, 't1', 10000, pest_type='Råttor', completed_date=date(2026, 3, 3)),
        make_row(CaseSource.BUSINESS, 't1', 5000, pest_type='Myror', completed_date=date(2026, 3, 5)),
        make_row(CaseSource.CONTRACT, 't2', 20000, pest_type='Råttor', completed_date=date(2026, 3, 7)),
        make_row(CaseSource.INDIVIDUAL, 't9', 99999, completed_date=date(2026, 3, 7)),
    )
    return fake_store


class TestChunk:
    """Tests for chunk()."""

    async def test_batches(self):
        assert chunk(['a', 'b', 'c', 'd', 'e'], 2) == [['a', 'b'], ['c', 'd'], ['e']]
        assert chunk([], 3) == []
        assert chunk(['a'], 0) == [['a']]


class TestCohortPerformance:
    """Tests for get_cohort_performance()."""

    async def test_ranked_snapshots(self, engine, seeded_store):
        response = await engine.get_cohort_performance(START, END)

        assert [(s.technician_id, s.rank, s.total_revenue) for s in response.snapshots] == [
            ('t2', 1, 20000.0),
            ('t1', 2, 15000.0),
            ('admin', 3, 0.0),
            ('t3', 4, 0.0),
        ]
        assert response.snapshots[1].name == 'Anna Svensson'
        assert response.snapshots[1].revenue_by_source.business == 5000.0
        assert response.period_start == START
        assert response.period_end == END
        assert not response.diagnostics.partial_data
        assert response.diagnostics.failed_sources == []

    async def test_fetches_in_batches(self, engine, seeded_store):
        await engine.get_cohort_performance(START, END)

        batches = {ids for _, ids in seeded_store.calls}
        assert batches == {('admin', 't1'), ('t2', 't3')}
        assert len(seeded_store.calls) == 6

    async def test_explicit_cohort_ignores_unknown_and_inactive(self, engine, seeded_store):
        response = await engine.get_cohort_performance(START, END, technician_ids=['t1', 't9', 'ghost'])

        assert [s.technician_id for s in response.snapshots] == ['t1']
        assert response.snapshots[0].rank == 1

    async def test_window_excludes_other_days(self, engine, seeded_store):
        response = await engine.get_cohort_performance(date(2026, 3, 4), date(2026, 3, 6))

        by_id = {s.technician_id: s for s in response.snapshots}
        assert by_id['t1'].total_revenue == 5000.0
        assert by_id['t2'].total_revenue == 0.0

    async def test_single_day_window(self, engine, seeded_store):
        day = date(2026, 3, 7)
        response = await engine.get_cohort_performance(day, day)

        assert response.snapshots[0].technician_id == 't2'
        assert response.snapshots[0].total_revenue == 20000.0

    async def test_empty_cohort(self, engine, seeded_store):
        with pytest.raises(EmptyCohort):
            await engine.get_cohort_performance(START, END, technician_ids=['ghost'])

    async def test_invalid_window(self, engine, seeded_store):
        with pytest.raises(InvalidWindow):
            await engine.get_cohort_performance(END, START)
        assert seeded_store.calls == []

    async def test_unavailable_store_reports_partial_data(self, engine, seeded_store):
        seeded_store.failing.add(CaseSource.BUSINESS)

        response = await engine.get_cohort_performance(START, END)

        by_id = {s.technician_id: s for s in response.snapshots}
        assert by_id['t1'].total_revenue == 10000.0
        assert by_id['t2'].total_revenue == 20000.0
        assert response.diagnostics.partial_data
        assert response.diagnostics.failed_sources == [CaseSource.BUSINESS]

    async def test_timed_out_batch_is_reported_incomplete(self, engine, seeded_store):
        seeded_store.slow_technicians.add('t3')

        response = await engine.get_cohort_performance(START, END, timeout=0.05)

        assert [s.technician_id for s in response.snapshots] == ['t1', 'admin']
        assert [s.rank for s in response.snapshots] == [1, 2]
        assert response.diagnostics.partial_data
        assert response.diagnostics.incomplete_technician_ids == ['t2', 't3']

    async def test_malformed_rows_are_counted(self, engine, seeded_store, make_row):
        seeded_store.add(
            make_row(CaseSource.INDIVIDUAL, 't3', 'not a price'),
            make_row(CaseSource.INDIVIDUAL, 't3', 400, status='Bokad'),
        )

        response = await engine.get_cohort_performance(START, END)

        assert response.diagnostics.dropped_records == 2
        assert {s.technician_id: s.total_revenue for s in response.snapshots}['t3'] == 0.0

    async def test_unreadable_rows_are_counted_as_dropped(self, engine, seeded_store, make_row):
        seeded_store.add(
            make_row(CaseSource.INDIVIDUAL, 't3', 400, completed_date=None, created_at=None),
            make_row(CaseSource.CONTRACT, 't3', 'not a price'),
        )

        response = await engine.get_cohort_performance(START, END)

        assert response.diagnostics.dropped_records == 2
        assert not response.diagnostics.partial_data

    async def test_repeated_calls_are_identical(self, engine, seeded_store):
        first = await engine.get_cohort_performance(START, END)
        second = await engine.get_cohort_performance(START, END)

        assert first == second

    async def test_roster_is_read_on_every_call(self, engine, seeded_store, fake_roster, make_row):
        await engine.get_cohort_performance(START, END)

        fake_roster.technicians.append(technician('t4', 'New Hire'))
        seeded_store.add(make_row(CaseSource.CONTRACT, 't4', 50000))
        response = await engine.get_cohort_performance(START, END)

        assert fake_roster.list_calls == 2
        assert response.snapshots[0].technician_id == 't4'


class TestMonthlyTrend:
    """Tests for get_monthly_trend()."""

    async def test_trend_uses_clock_and_default_length(self, engine, fake_store, make_row):
        fake_store.add(
            make_row(CaseSource.INDIVIDUAL, 't1', 300, completed_date=date(2026, 1, 10)),
            make_row(CaseSource.CONTRACT, 't1', 700, completed_date=date(2026, 3, 2)),
            make_row(CaseSource.CONTRACT, 't2', 900, completed_date=date(2024, 3, 2)),
        )

        response = await engine.get_monthly_trend()

        assert response.months_back == 12
        assert response.period_end == TODAY
        assert response.period_start == date(2025, 3, 15)
        assert [(p.month, p.technician_id, p.total_revenue) for p in response.points] == [
            ('2026-01', 't1', 300.0),
            ('2026-03', 't1', 700.0),
        ]
        assert response.points[0].technician_name == 'Anna Svensson'

    async def test_zero_months_covers_today_only(self, engine, fake_store, make_row):
        fake_store.add(
            make_row(CaseSource.INDIVIDUAL, 't1', 100, completed_date=TODAY),
            make_row(CaseSource.INDIVIDUAL, 't1', 100, completed_date=TODAY - timedelta(days=1)),
        )

        response = await engine.get_monthly_trend(months_back=0)

        assert len(response.points) == 1
        assert response.points[0].total_cases == 1


class TestPestSpecialization:
    """Tests for get_pest_specialization()."""

    async def test_default_window_and_rows(self, engine, seeded_store):
        response = await engine.get_pest_specialization()

        assert response.period_end == TODAY
        assert response.period_start == TODAY - timedelta(days=365)
        assert [(r.technician_id, r.pest_type) for r in response.specializations] == [
            ('t1', 'Råttor'),
            ('t1', 'Myror'),
            ('t2', 'Råttor'),
        ]
        assert response.overview[0].pest_type == 'Råttor'
        assert response.overview[0].total_revenue == 30000.0
        assert response.overview[0].top_technician_id == 't2'

    async def test_invalid_window(self, engine):
        with pytest.raises(InvalidWindow):
            await engine.get_pest_specialization(start=END, end=START)


class TestTechnicianKpi:
    """Tests for get_technician_kpi()."""

    async def test_kpi(self, engine, seeded_store):
        kpi = await engine.get_technician_kpi(START, END)

        assert kpi.total_technicians == 5
        assert kpi.active_technicians == 4
        assert kpi.total_revenue == 35000.0
        assert kpi.total_cases == 3
        assert kpi.avg_revenue_per_technician == 8750.0
        assert kpi.avg_case_value == Decimal('11666.67')
        assert kpi.period_start == START
        assert not kpi.diagnostics.partial_data


class TestTechnicianComparison:
    """Tests for get_technician_comparison()."""

    async def test_comparison(self, engine, seeded_store):
        result = await engine.get_technician_comparison('t1', START, END)

        assert result.technician_id == 't1'
        assert result.cohort_average.technician_count == 4
        assert result.cohort_average.total_revenue == 8750.0
        assert result.revenue_delta_pct == round((15000 - 8750) / 8750 * 100, 2)
        assert "Share expertise with the team" in result.recommendations
        assert result.primary_specialization == 'Råttor'

    async def test_technician_without_cases(self, engine, seeded_store):
        result = await engine.get_technician_comparison('t3', START, END)

        assert result.revenue_delta_pct == -100.0
        assert result.recommendations[0] == "Focus on value-adding services"
        assert result.primary_specialization is None

    async def test_unknown_technician(self, engine, seeded_store):
        with pytest.raises(EmptyCohort):
            await engine.get_technician_comparison('t9', START, END)

    async def test_technician_in_timed_out_batch(self, engine, seeded_store):
        seeded_store.slow_technicians.add('t3')

        with pytest.raises(EmptyCohort):
            await engine.get_technician_comparison('t2', START, END, timeout=0.05)


class TestUtilization:
    """Tests for get_utilization()."""

    async def test_field_technicians_sorted_by_utilization(self, engine, fake_scheduling):
        fake_scheduling.schedules['t1'] = TechnicianSchedule(
            't1', original_work_hours=40, absence_hours=10, scheduled_hours=25,
            cases_assigned=5, avg_case_value=1800,
        )
        fake_scheduling.schedules['t2'] = TechnicianSchedule('t2', original_work_hours=40, scheduled_hours=39)

        response = await engine.get_utilization(date(2026, 3, 9), date(2026, 3, 15))

        assert [(r.technician_id, r.utilization_percent, r.efficiency_rating) for r in response.records] == [
            ('t2', 97.5, EfficiencyRating.OVERBOOKED),
            ('t1', 83.33, EfficiencyRating.OPTIMAL),
            ('t3', 0.0, EfficiencyRating.LOW),
        ]
        assert response.records[1].cases_assigned == 5
        assert response.records[2].fully_absent
        assert response.summary.technician_count == 3
        assert response.summary.fully_absent_count == 1

    async def test_no_field_technicians(self, engine, fake_roster):
        fake_roster.technicians = [technician('admin', role='Admin')]

        with pytest.raises(EmptyCohort):
            await engine.get_utilization(date(2026, 3, 9), date(2026, 3, 15))

    async def test_invalid_window(self, engine):
        with pytest.raises(InvalidWindow):
            await engine.get_utilization(date(2026, 3, 15), date(2026, 3, 9))


@pytest.fixture
def telemetry():
    """Telemetry double: veh-1 reports a position, veh-2 fails."""
    async def position(vehicle_id):
        if vehicle_id == 'veh-1':
            return VehiclePosition(vehicle_id, 59.33, 18.07)
        raise TelemetryUnavailable("vehicle endpoint down")

    client = Mock()
    client.is_configured = True
    client.get_token = AsyncMock(return_value='tok')
    client.get_vehicle_position = AsyncMock(side_effect=position)
    return client


@pytest.fixture
def engine_with_telemetry(fake_store, fake_roster, fake_scheduling, settings, telemetry):
    return PerformanceEngine(
        store=fake_store,
        roster=fake_roster,
        scheduling=fake_scheduling,
        settings=settings,
        telemetry=telemetry,
        estimator=DistanceEstimator(seed=42),
        clock=lambda: TODAY,
    )


class TestRouteOptimization:
    """Tests for get_route_optimization()."""

    async def test_estimated_without_telemetry(self, engine, fake_store):
        fake_store.daily_counts = {
            CaseSource.INDIVIDUAL: {'t1': 5, 'admin': 9},
            CaseSource.CONTRACT: {'t1': 3, 't2': 3},
        }

        response = await engine.get_route_optimization(TODAY)

        assert [r.technician_id for r in response.routes] == ['t1', 't2', 't3']
        assert {r.data_source for r in response.routes} == {RouteDataSource.ESTIMATED}

        t1 = response.routes[0]
        assert t1.total_cases == 8
        assert 8.0 <= t1.avg_distance_per_case_km <= 14.0
        assert t1.optimization_score == 85.0
        assert t1.route_efficiency is RouteEfficiency.EXCELLENT

        t3 = response.routes[2]
        assert t3.total_cases == 0
        assert t3.total_distance_km == 0.0
        assert response.summary.data_source_counts[RouteDataSource.ESTIMATED] == 3
        assert not response.diagnostics.partial_data

    async def test_failing_store_count_is_partial(self, engine, fake_store):
        fake_store.daily_counts = {
            CaseSource.INDIVIDUAL: {'t1': 5},
            CaseSource.BUSINESS: {'t1': 4, 't2': 2},
            CaseSource.CONTRACT: {'t1': 3},
        }
        fake_store.failing.add(CaseSource.BUSINESS)

        response = await engine.get_route_optimization(TODAY)

        by_id = {r.technician_id: r.total_cases for r in response.routes}
        assert by_id == {'t1': 8, 't2': 0, 't3': 0}
        assert response.diagnostics.partial_data
        assert response.diagnostics.failed_sources == [CaseSource.BUSINESS]

    async def test_telemetry_sources(self, engine_with_telemetry, fake_store):
        fake_store.daily_counts = {CaseSource.INDIVIDUAL: {'t1': 8}}

        response = await engine_with_telemetry.get_route_optimization(TODAY)

        by_id = {r.technician_id: r for r in response.routes}
        assert by_id['t1'].data_source is RouteDataSource.TELEMETRY
        assert by_id['t1'].optimization_score == 90.0
        assert by_id['t2'].data_source is RouteDataSource.ERROR
        assert by_id['t2'].optimization_score == 70.0
        assert by_id['t3'].data_source is RouteDataSource.ESTIMATED

    async def test_token_failure_marks_tracked_technicians(self, engine_with_telemetry, telemetry, fake_store):
        telemetry.get_token.side_effect = TelemetryUnavailable("identity provider down")

        response = await engine_with_telemetry.get_route_optimization(TODAY)

        by_id = {r.technician_id: r.data_source for r in response.routes}
        assert by_id == {
            't1': RouteDataSource.ERROR,
            't2': RouteDataSource.ERROR,
            't3': RouteDataSource.ESTIMATED,
        }
        telemetry.get_vehicle_position.assert_not_called()

    async def test_unconfigured_telemetry_is_not_called(self, engine_with_telemetry, telemetry):
        telemetry.is_configured = False

        response = await engine_with_telemetry.get_route_optimization(TODAY)

        assert {r.data_source for r in response.routes} == {RouteDataSource.ESTIMATED}
        telemetry.get_token.assert_not_called()


@pytest.fixture
def lifecycle_store(fake_store, make_lifecycle):
    """
    Cases created 2026-03-02 and 2026-03-06 with lead times 12h, 36h and 6h,
    one unscheduled case and one created before the default window.
    """
    fake_store.lifecycle[CaseSource.INDIVIDUAL] = [
        make_lifecycle(
            datetime(2026, 3, 2, 8, 0),
            start_date=datetime(2026, 3, 2, 20, 0),
            due_date=datetime(2026, 3, 2, 22, 0),
            completed_date=datetime(2026, 3, 4, 8, 0),
        ),
        make_lifecycle(datetime(2026, 3, 5, 9, 0), amount=None),
        make_lifecycle(datetime(2026, 3, 6, 8, 0), start_date=datetime(2026, 3, 6, 14, 0)),
        make_lifecycle(datetime(2026, 1, 1, 8, 0), start_date=datetime(2026, 1, 9, 8, 0)),
    ]
    fake_store.lifecycle[CaseSource.BUSINESS] = [
        make_lifecycle(
            datetime(2026, 3, 2, 10, 0),
            start_date=datetime(2026, 3, 3, 22, 0),
            due_date=datetime(2026, 3, 4, 1, 0),
            amount='500.50',
            source=CaseSource.BUSINESS,
        ),
    ]
    return fake_store


class TestSchedulingEfficiency:
    """Tests for get_scheduling_efficiency()."""

    async def test_default_window_summary_and_daily(self, engine, lifecycle_store):
        response = await engine.get_scheduling_efficiency()

        assert response.period_end == TODAY
        assert response.period_start == TODAY - timedelta(days=30)
        assert response.summary.cases_scheduled == 3
        assert response.summary.avg_hours_to_schedule == 18.0
        assert response.summary.scheduled_within_24h_percent == 66.67
        assert response.summary.scheduled_within_48h_percent == 100.0
        assert [(d.date, d.cases_scheduled, d.avg_scheduling_time_hours, d.efficiency_score) for d in response.daily] == [
            (date(2026, 3, 2), 2, 24.0, 0.0),
            (date(2026, 3, 6), 1, 6.0, 75.0),
        ]
        assert not response.diagnostics.partial_data

    async def test_failing_store_is_partial(self, engine, lifecycle_store):
        lifecycle_store.failing.add(CaseSource.BUSINESS)

        response = await engine.get_scheduling_efficiency()

        assert response.summary.cases_scheduled == 2
        assert response.diagnostics.failed_sources == [CaseSource.BUSINESS]

    async def test_invalid_window(self, engine):
        with pytest.raises(InvalidWindow):
            await engine.get_scheduling_efficiency(start=END, end=START)


class TestReschedulingMetrics:
    """Tests for get_rescheduling_metrics()."""

    async def test_reschedules_against_cases_created(self, engine, lifecycle_store):
        lifecycle_store.status_changes = [
            status_change('a', 'Bokad', 'Ombokad', notes='Kund ej hemma'),
            status_change('b', 'Bokad', 'Ombokad', notes='Kund ej hemma'),
            status_change('c', 'Bokad', 'Bokad'),
            status_change('d', None, 'Bokad'),
            status_change('e', 'Bokad', 'Avbokad'),
            status_change('f', 'Bokad', 'Avbokad', changed_at=datetime(2025, 12, 1, 9, 0)),
        ]

        metrics = await engine.get_rescheduling_metrics()

        assert metrics.total_reschedules == 3
        assert metrics.total_cases == 4
        assert metrics.reschedule_rate_percent == 75.0
        assert metrics.avg_reschedules_per_case == 0.75
        assert [(r.reason, r.count) for r in metrics.top_reschedule_reasons] == [
            ('Kund ej hemma', 2),
            ('Ej specificerat', 1),
        ]

    async def test_unreadable_audit_log_raises(self, engine, lifecycle_store):
        lifecycle_store.audit_failing = True

        with pytest.raises(SourceUnavailable):
            await engine.get_rescheduling_metrics()


class TestBusinessImpact:
    """Tests for get_business_impact()."""

    async def test_impact(self, engine, lifecycle_store):
        impact = await engine.get_business_impact()

        assert impact.total_cases == 4
        assert impact.total_revenue_managed == Decimal('2500.50')
        assert impact.scheduled_hours == 5.0
        assert impact.revenue_per_scheduled_hour == Decimal('500.10')
        assert impact.avg_case_completion_days == 2.0
        assert impact.coordination_efficiency_score == 96.0
        assert impact.case_throughput_per_day == round(4 / 31, 2)

    async def test_explicit_window_without_cases(self, engine, lifecycle_store):
        impact = await engine.get_business_impact(date(2026, 2, 1), date(2026, 2, 10))

        assert impact.total_cases == 0
        assert impact.revenue_per_scheduled_hour == 0
        assert impact.coordination_efficiency_score == 100.0


class TestFromPool:
    """Tests for PerformanceEngine.from_pool()."""

    async def test_scheduling_uses_business_timezone(self, mock_db_pool, settings):
        engine = PerformanceEngine.from_pool(
            mock_db_pool,
            settings.model_copy(update={'business_timezone': 'America/New_York'}),
        )

        assert engine.scheduling.tz == ZoneInfo('America/New_York')
        assert engine.tz == ZoneInfo('America/New_York')
