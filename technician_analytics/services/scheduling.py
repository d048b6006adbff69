"""
Scheduling provider: work hours, absences and booked hours per technician.

Each technician has a weekly `work_schedule` stored as JSON:

    {"monday": {"active": true, "start": "08:00", "end": "17:00"}, ...}

For a window this module derives:
- original work hours: the sum of active schedule hours over every day in
  the window
- absence hours: the part of those working hours covered by entries in
  `technician_absences` (overlapping absences are merged first). Working
  hours are wall-clock times in the business timezone, so timezone-aware
  absence timestamps are converted to that zone rather than the server's
- scheduled hours: the sum of due_date - start_date over individual and
  business cases booked to start in the window, together with the number
  of those cases and their mean value

Key Functions:
- parse_work_schedule: JSON/dict -> weekday index -> DaySchedule
- compute_work_hours: Pure work/absence hour computation
- summarize_bookings: Booked hours, case count and mean value
- SchedulingProvider.get_schedules: asyncpg-backed bundle per technician
"""

import json
import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, tzinfo
from decimal import Decimal
from typing import Any, Collection, Dict, Iterable, List, Mapping, Optional, Tuple, Union
from zoneinfo import ZoneInfo

from asyncpg import Pool

from technician_analytics.models.schemas import ZERO_MONEY
from technician_analytics.services.aggregation import to_money
from technician_analytics.services.source_fetcher import parse_amount
from technician_analytics.sql.case_queries import SCHEDULED_SOURCES, get_scheduled_cases_query
from technician_analytics.sql.technician_queries import get_absences_query, get_work_schedules_query


logger = logging.getLogger(__name__)

# Indexed by date.weekday()
WEEKDAY_KEYS = ('monday', 'tuesday', 'wednesday', 'thursday', 'friday', 'saturday', 'sunday')

DEFAULT_TIMEZONE = 'Europe/Stockholm'

Interval = Tuple[datetime, datetime]


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class DaySchedule:
    """Working hours of one weekday."""
    start: time
    end: time

    @property
    def hours(self) -> float:
        start = datetime.combine(date.min, self.start)
        end = datetime.combine(date.min, self.end)
        return max(0.0, (end - start).total_seconds() / 3600)


@dataclass(frozen=True)
class WorkHours:
    original_hours: float
    absence_hours: float


@dataclass(frozen=True)
class Booking:
    """A case booked on a technician's calendar."""
    technician_id: str
    start: Optional[datetime]
    due: Optional[datetime]
    amount: Optional[Decimal]


@dataclass(frozen=True)
class TechnicianSchedule:
    """
    Everything utilization needs for one technician and window.

    Attributes:
        technician_id: Technician identifier.
        original_work_hours: Schedule hours in the window.
        absence_hours: Schedule hours covered by absences.
        scheduled_hours: Hours booked on cases.
        cases_assigned: Cases booked to start in the window.
        avg_case_value: Mean value of those cases.
    """
    technician_id: str
    original_work_hours: float = 0.0
    absence_hours: float = 0.0
    scheduled_hours: float = 0.0
    cases_assigned: int = 0
    avg_case_value: Decimal = ZERO_MONEY


# =============================================================================
# Parsing
# =============================================================================


def _parse_time(value: Any) -> time:
    if isinstance(value, time):
        return value
    hours, minutes = str(value).strip().split(':')[:2]
    return time(int(hours), int(minutes))


def parse_work_schedule(raw: Union[str, Mapping[str, Any], None]) -> Dict[int, DaySchedule]:
    """
    Parse a stored weekly schedule.

    Args:
        raw: JSON text or already-decoded mapping; None means no schedule.

    Returns:
        Mapping of weekday index (Monday = 0) to DaySchedule for active days.
        Inactive days and unreadable entries are left out.
    """
    if raw is None:
        return {}
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring work_schedule that is not valid JSON")
            return {}
    if not isinstance(raw, Mapping):
        return {}

    schedule: Dict[int, DaySchedule] = {}
    for index, key in enumerate(WEEKDAY_KEYS):
        day = raw.get(key)
        if not isinstance(day, Mapping) or not day.get('active'):
            continue
        try:
            schedule[index] = DaySchedule(start=_parse_time(day['start']), end=_parse_time(day['end']))
        except (KeyError, ValueError) as e:
            logger.warning(f"Ignoring unreadable work_schedule entry for {key}: {e}")
    return schedule


def as_local(value: Union[date, datetime], tz: tzinfo, end_of_day: bool = False) -> datetime:
    """Naive wall-clock time in tz; naive datetimes are taken as already local."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(tz).replace(tzinfo=None)
        return value
    # A bare date as an end bound covers the whole day
    day_start = datetime.combine(value, time.min)
    return day_start + timedelta(days=1) if end_of_day else day_start


def _merge(intervals: Iterable[Interval]) -> List[Interval]:
    merged: List[Interval] = []
    for start, end in sorted(intervals):
        if end <= start:
            continue
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


# =============================================================================
# Hour Computation
# =============================================================================


def compute_work_hours(
    work_schedule: Mapping[int, DaySchedule],
    start: date,
    end: date,
    absences: Iterable[Tuple[Union[date, datetime], Union[date, datetime]]] = (),
    tz: Optional[tzinfo] = None,
) -> WorkHours:
    """
    Compute schedule hours and absence hours over an inclusive date window.

    Args:
        work_schedule: Weekday index -> DaySchedule (from parse_work_schedule).
        start: First day of the window.
        end: Last day of the window.
        absences: (start, end) pairs; bare dates cover whole days.
        tz: Business timezone the schedule is expressed in; aware absence
            timestamps are converted to it. Defaults to DEFAULT_TIMEZONE.

    Returns:
        WorkHours with the schedule total and the part covered by absences.
    """
    tz = tz or ZoneInfo(DEFAULT_TIMEZONE)
    absence_intervals = _merge(
        (as_local(a_start, tz), as_local(a_end, tz, end_of_day=True)) for a_start, a_end in absences
        if a_start is not None and a_end is not None
    )

    original = 0.0
    absent = 0.0
    day = start
    while day <= end:
        schedule = work_schedule.get(day.weekday())
        if schedule is not None and schedule.hours > 0:
            work_start = datetime.combine(day, schedule.start)
            work_end = datetime.combine(day, schedule.end)
            original += schedule.hours
            for a_start, a_end in absence_intervals:
                overlap = (min(work_end, a_end) - max(work_start, a_start)).total_seconds()
                if overlap > 0:
                    absent += overlap / 3600
        day += timedelta(days=1)

    return WorkHours(original_hours=round(original, 2), absence_hours=round(absent, 2))


def summarize_bookings(bookings: Iterable[Booking]) -> Tuple[float, int, Decimal]:
    """
    Booked hours, case count and mean case value.

    Bookings without both a start and a due time count as cases but add no
    hours; missing amounts count as 0 in the mean.

    Returns:
        Tuple of (scheduled_hours, cases_assigned, avg_case_value).
    """
    hours = 0.0
    count = 0
    total_value = Decimal('0')

    for booking in bookings:
        count += 1
        if booking.start is not None and booking.due is not None and booking.due > booking.start:
            hours += (booking.due - booking.start).total_seconds() / 3600
        if booking.amount is not None and booking.amount > 0:
            total_value += booking.amount

    avg_value = to_money(total_value / count) if count else ZERO_MONEY
    return round(hours, 2), count, avg_value


# =============================================================================
# Provider
# =============================================================================


class SchedulingProvider:
    """
    asyncpg-backed source of work schedules, absences and bookings.

    Args:
        pool: asyncpg connection pool.
        timezone: IANA name of the business timezone work schedules use.
    """

    def __init__(self, pool: Pool, timezone: str = DEFAULT_TIMEZONE):
        self.pool = pool
        self.tz = ZoneInfo(timezone)

    async def get_schedules(
        self,
        technician_ids: Collection[str],
        start: date,
        end: date,
    ) -> Dict[str, TechnicianSchedule]:
        """
        Build a TechnicianSchedule per technician for the inclusive window.

        Args:
            technician_ids: Technicians to include.
            start: First day of the window.
            end: Last day of the window.

        Returns:
            Mapping of technician id to TechnicianSchedule; every requested
            technician is present.
        """
        ids = list(technician_ids)
        if not ids:
            return {}
        end_exclusive = end + timedelta(days=1)

        async with self.pool.acquire() as conn:
            schedule_rows = await conn.fetch(get_work_schedules_query(), ids)
            absence_rows = await conn.fetch(get_absences_query(), ids, start, end_exclusive)
            booking_rows = []
            for source in SCHEDULED_SOURCES:
                booking_rows.extend(
                    await conn.fetch(get_scheduled_cases_query(source), ids, start, end_exclusive)
                )

        schedules = {row['technician_id']: parse_work_schedule(row['work_schedule']) for row in schedule_rows}

        absences: Dict[str, List[Tuple[Any, Any]]] = {}
        for row in absence_rows:
            absences.setdefault(row['technician_id'], []).append((row['start_date'], row['end_date']))

        bookings: Dict[str, List[Booking]] = {}
        for row in booking_rows:
            bookings.setdefault(row['technician_id'], []).append(Booking(
                technician_id=row['technician_id'],
                start=row['start_date'],
                due=row['due_date'],
                amount=parse_amount(row['amount']),
            ))

        result: Dict[str, TechnicianSchedule] = {}
        for technician_id in ids:
            work = compute_work_hours(
                schedules.get(technician_id, {}), start, end, absences.get(technician_id, []), self.tz
            )
            scheduled_hours, cases_assigned, avg_value = summarize_bookings(bookings.get(technician_id, []))
            result[technician_id] = TechnicianSchedule(
                technician_id=technician_id,
                original_work_hours=work.original_hours,
                absence_hours=work.absence_hours,
                scheduled_hours=scheduled_hours,
                cases_assigned=cases_assigned,
                avg_case_value=avg_value,
            )

        logger.info(f"Built schedules for {len(result)} technicians ({start} to {end})")
        return result
