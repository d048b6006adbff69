"""
Coordination metrics: scheduling lead time, rescheduling and business impact.

All metrics are computed from the lifecycle rows of individual and business
cases created in a window:

    lead time       = start_date - created_at (hours, floored at 0)
    completion time = completed_date - created_at (days, floored at 0)
    booked hours    = due_date - start_date (hours)

Timestamps are compared as wall-clock times in the business timezone, so
the daily series buckets cases by their local creation day.

Scores:
    efficiency_score              = 100 - avg lead hours / 24 * 100
    coordination_efficiency_score = 100 - 2 * avg completion days

both clamped to [0, 100] and rounded to 2 decimals.
"""

from collections import Counter, defaultdict
from datetime import date, datetime, tzinfo
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Union

from technician_analytics.models.schemas import (
    ZERO_MONEY,
    BusinessImpact,
    RescheduleReason,
    ReschedulingMetrics,
    SchedulingEfficiency,
    SchedulingEfficiencyDay,
)
from technician_analytics.services.aggregation import ZERO, to_money
from technician_analytics.services.case_store import CaseLifecycleRow, StatusChangeRow
from technician_analytics.services.scheduling import as_local
from technician_analytics.services.source_fetcher import parse_amount

LEAD_TIME_BUCKETS = (24, 48, 72)

UNSPECIFIED_REASON = "Ej specificerat"
DEFAULT_REASON_LIMIT = 5


def _clamp_score(value: float) -> float:
    return round(min(100.0, max(0.0, value)), 2)


def _percent(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


def _elapsed_hours(start: Union[date, datetime], end: Union[date, datetime], tz: tzinfo) -> float:
    seconds = (as_local(end, tz) - as_local(start, tz)).total_seconds()
    return max(0.0, seconds / 3600)


# =============================================================================
# Scheduling Efficiency
# =============================================================================


def lead_time_hours(row: CaseLifecycleRow, tz: tzinfo) -> Optional[float]:
    """Hours from creation to the booked start, None for unscheduled cases."""
    if row.start_date is None:
        return None
    return _elapsed_hours(row.created_at, row.start_date, tz)


def scheduling_efficiency(rows: Iterable[CaseLifecycleRow], tz: tzinfo) -> SchedulingEfficiency:
    """
    Summarize scheduling lead times.

    Args:
        rows: Lifecycle rows; unscheduled cases are ignored.
        tz: Business timezone.

    Returns:
        SchedulingEfficiency; all zeros when no case has been scheduled.
    """
    lead_times = [hours for hours in (lead_time_hours(row, tz) for row in rows) if hours is not None]
    total = len(lead_times)
    if not total:
        return SchedulingEfficiency()

    within = {bucket: sum(1 for hours in lead_times if hours <= bucket) for bucket in LEAD_TIME_BUCKETS}
    return SchedulingEfficiency(
        cases_scheduled=total,
        avg_hours_to_schedule=round(sum(lead_times) / total, 2),
        scheduled_within_24h_percent=_percent(within[24], total),
        scheduled_within_48h_percent=_percent(within[48], total),
        scheduled_within_72h_percent=_percent(within[72], total),
    )


def daily_scheduling_efficiency(rows: Iterable[CaseLifecycleRow], tz: tzinfo) -> List[SchedulingEfficiencyDay]:
    """
    Scheduling lead time per local creation day.

    Days without a scheduled case are omitted. Ordered by date.
    """
    by_day: Dict[date, List[float]] = defaultdict(list)
    for row in rows:
        hours = lead_time_hours(row, tz)
        if hours is not None:
            by_day[as_local(row.created_at, tz).date()].append(hours)

    days: List[SchedulingEfficiencyDay] = []
    for day in sorted(by_day):
        lead_times = by_day[day]
        avg_hours = sum(lead_times) / len(lead_times)
        days.append(SchedulingEfficiencyDay(
            date=day,
            cases_scheduled=len(lead_times),
            avg_scheduling_time_hours=round(avg_hours, 2),
            efficiency_score=_clamp_score(100 - avg_hours / 24 * 100),
        ))
    return days


# =============================================================================
# Rescheduling
# =============================================================================


def is_reschedule(change: StatusChangeRow) -> bool:
    """A change counts when both statuses are recorded and differ."""
    return bool(change.old_status) and bool(change.new_status) and change.old_status != change.new_status


def rescheduling_metrics(
    changes: Iterable[StatusChangeRow],
    total_cases: int,
    period_start: date,
    period_end: date,
    reason_limit: int = DEFAULT_REASON_LIMIT,
) -> ReschedulingMetrics:
    """
    Count reschedules and their most common reasons.

    Args:
        changes: Audit log status changes in the window.
        total_cases: Cases created in the window, the rate's denominator.
        period_start: Window start.
        period_end: Window end.
        reason_limit: Number of reasons to report.

    Returns:
        ReschedulingMetrics with reasons ordered by count, then reason text.
    """
    reasons: Counter = Counter()
    for change in changes:
        if is_reschedule(change):
            reasons[(change.notes or "").strip() or UNSPECIFIED_REASON] += 1

    total_reschedules = sum(reasons.values())
    top = sorted(reasons.items(), key=lambda item: (-item[1], item[0]))[:max(0, reason_limit)]

    return ReschedulingMetrics(
        period_start=period_start,
        period_end=period_end,
        total_reschedules=total_reschedules,
        total_cases=total_cases,
        reschedule_rate_percent=_percent(total_reschedules, total_cases),
        avg_reschedules_per_case=round(total_reschedules / total_cases, 2) if total_cases else 0.0,
        top_reschedule_reasons=[RescheduleReason(reason=reason, count=count) for reason, count in top],
    )


# =============================================================================
# Business Impact
# =============================================================================


def business_impact(
    rows: Sequence[CaseLifecycleRow],
    period_start: date,
    period_end: date,
    tz: tzinfo,
) -> BusinessImpact:
    """
    Revenue, turnaround and throughput of the cases created in a window.

    Missing, unreadable and negative amounts add nothing to the revenue.
    Throughput divides by the number of days in the inclusive window.

    Args:
        rows: Lifecycle rows of the cases created in the window.
        period_start: Window start (inclusive).
        period_end: Window end (inclusive).
        tz: Business timezone.
    """
    revenue = ZERO
    booked_hours = 0.0
    completion_days: List[float] = []

    for row in rows:
        amount = parse_amount(row.amount)
        if amount is not None and amount >= ZERO:
            revenue += amount
        if row.start_date is not None and row.due_date is not None:
            booked_hours += _elapsed_hours(row.start_date, row.due_date, tz)
        if row.completed_date is not None:
            completion_days.append(_elapsed_hours(row.created_at, row.completed_date, tz) / 24)

    total_revenue = to_money(revenue)
    scheduled_hours = round(booked_hours, 2)
    avg_days = sum(completion_days) / len(completion_days) if completion_days else 0.0
    window_days = (period_end - period_start).days + 1

    return BusinessImpact(
        period_start=period_start,
        period_end=period_end,
        total_cases=len(rows),
        total_revenue_managed=total_revenue,
        avg_case_completion_days=round(avg_days, 2),
        scheduled_hours=scheduled_hours,
        revenue_per_scheduled_hour=(
            to_money(total_revenue / Decimal(str(scheduled_hours))) if scheduled_hours > 0 else ZERO_MONEY
        ),
        case_throughput_per_day=round(len(rows) / window_days, 2),
        coordination_efficiency_score=_clamp_score(100 - 2 * avg_days),
    )
