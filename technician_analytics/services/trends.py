"""
Monthly revenue trend per technician.

Records are bucketed by the calendar month of their completion time. The
output is sparse: a (month, technician) pair without records is omitted
rather than emitted with zeros. Points are ordered by month, then
technician id.
"""

import calendar
from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from technician_analytics.models.schemas import TrendPoint
from technician_analytics.services.aggregation import (
    ZERO,
    fold_case_totals,
    partition_records,
    revenue_by_source,
    rounded_by_source,
    totals_by_technician,
)
from technician_analytics.services.source_fetcher import CaseRecord


def subtract_months(day: date, months: int) -> date:
    """
    Move a date back by whole calendar months.

    The day of month is clamped to the length of the target month, so
    2026-03-31 minus one month is 2026-02-28.
    """
    month_index = day.year * 12 + (day.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def trend_window(today: date, months_back: int) -> Tuple[date, date]:
    """Return the inclusive window [today - months_back months, today]."""
    if months_back < 0:
        raise ValueError("months_back must be non-negative")
    return subtract_months(today, months_back), today


def monthly_trend(
    records: Iterable[CaseRecord],
    months_back: int,
    now: date,
    names: Optional[Mapping[str, str]] = None,
) -> List[TrendPoint]:
    """
    Build the per-technician monthly revenue trend.

    Args:
        records: Canonical case records; records outside the window and
            malformed records are ignored.
        months_back: Trend length in months.
        now: End of the window (inclusive).
        names: Optional technician id -> display name mapping.

    Returns:
        TrendPoints ordered by (month, technician_id).
    """
    names = names or {}
    start, end = trend_window(now, months_back)
    valid, _ = partition_records(records)

    by_month: Dict[str, List[CaseRecord]] = defaultdict(list)
    for record in valid:
        completed_on = record.completed_at.date()
        if start <= completed_on <= end:
            by_month[completed_on.strftime('%Y-%m')].append(record)

    points: List[TrendPoint] = []
    for month in sorted(by_month):
        per_technician = totals_by_technician(fold_case_totals(by_month[month]))
        for technician_id in sorted(per_technician):
            by_source = per_technician[technician_id]
            rounded = rounded_by_source(by_source)
            points.append(TrendPoint(
                month=month,
                technician_id=technician_id,
                technician_name=names.get(technician_id, ""),
                total_revenue=sum(rounded.values(), ZERO),
                total_cases=sum(totals.cases for totals in by_source.values()),
                revenue_by_source=revenue_by_source(rounded),
            ))

    return points
