"""
Technician utilization and efficiency rating.

Utilization compares the hours booked on a technician's cases with the hours
they are available to work:

    total_work_hours    = max(0, original_work_hours - absence_hours)
    utilization_percent = scheduled_hours / total_work_hours * 100

Hours are rounded to 0.01 as Decimals and absence_hours is derived from the
rounded schedule and work hours, so original = total + absence exactly.
utilization_percent is rounded to 2 decimals and the rating is taken on the
rounded value:

    utilization <  low threshold (60)         -> low
    low <= utilization <= overbooked (95)     -> optimal
    utilization >  overbooked threshold       -> overbooked

A technician with no remaining work hours reports 0% and is flagged
fully_absent, which keeps them rated low instead of dividing by zero.
"""

from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, Optional, Union

from technician_analytics.models.enums import EfficiencyRating
from technician_analytics.models.schemas import ZERO_HOURS, UtilizationRecord, UtilizationSummary
from technician_analytics.services.aggregation import to_money

DEFAULT_LOW_THRESHOLD = 60.0
DEFAULT_OVERBOOKED_THRESHOLD = 95.0

HOUR_STEP = Decimal('0.01')


def to_hours(value: Union[Decimal, int, float]) -> Decimal:
    """Round an hour amount to 0.01 as Decimal."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(HOUR_STEP, rounding=ROUND_HALF_UP)


class UtilizationCalculator:
    """
    Computes utilization records against configurable rating thresholds.

    Args:
        low_threshold: Utilization percent below which the rating is low.
        overbooked_threshold: Utilization percent above which the rating is
            overbooked.

    Raises:
        ValueError: If low_threshold exceeds overbooked_threshold.
    """

    def __init__(
        self,
        low_threshold: float = DEFAULT_LOW_THRESHOLD,
        overbooked_threshold: float = DEFAULT_OVERBOOKED_THRESHOLD,
    ):
        if low_threshold > overbooked_threshold:
            raise ValueError(
                f"low_threshold ({low_threshold}) must not exceed "
                f"overbooked_threshold ({overbooked_threshold})"
            )
        self.low_threshold = low_threshold
        self.overbooked_threshold = overbooked_threshold

    def rate(self, utilization_percent: float) -> EfficiencyRating:
        """Map a utilization percent onto its efficiency rating."""
        if utilization_percent < self.low_threshold:
            return EfficiencyRating.LOW
        if utilization_percent > self.overbooked_threshold:
            return EfficiencyRating.OVERBOOKED
        return EfficiencyRating.OPTIMAL

    def utilization(
        self,
        technician_id: str,
        scheduled_hours: float,
        original_work_hours: float,
        absence_hours: float = 0.0,
        cases_assigned: int = 0,
        avg_case_value: Union[Decimal, float] = 0,
        name: str = "",
        period_start: Optional[date] = None,
        period_end: Optional[date] = None,
    ) -> UtilizationRecord:
        """
        Build the utilization record for one technician and period.

        Args:
            technician_id: Technician identifier.
            scheduled_hours: Hours booked on cases in the period.
            original_work_hours: Hours of the weekly schedule in the period.
            absence_hours: Absence hours to subtract; may exceed the schedule.
            cases_assigned: Cases booked in the period.
            avg_case_value: Mean value of those cases.
            name: Technician display name.
            period_start: Period start (inclusive).
            period_end: Period end (inclusive).

        Returns:
            UtilizationRecord with the clipped absence and the rating.

        Raises:
            ValueError: If any hour input is negative.
        """
        if scheduled_hours < 0 or original_work_hours < 0 or absence_hours < 0:
            raise ValueError("Hour inputs must be non-negative")

        original = to_hours(original_work_hours)
        total_work_hours = max(ZERO_HOURS, original - to_hours(absence_hours))
        fully_absent = total_work_hours == 0

        if fully_absent:
            utilization_percent = 0.0
        else:
            raw_work_hours = max(0.0, float(original_work_hours) - float(absence_hours))
            utilization_percent = round(float(scheduled_hours) / raw_work_hours * 100, 2)

        return UtilizationRecord(
            technician_id=technician_id,
            name=name,
            period_start=period_start,
            period_end=period_end,
            scheduled_hours=to_hours(scheduled_hours),
            total_work_hours=total_work_hours,
            original_work_hours=original,
            absence_hours=original - total_work_hours,
            cases_assigned=cases_assigned,
            avg_case_value=to_money(avg_case_value),
            utilization_percent=utilization_percent,
            efficiency_rating=self.rate(utilization_percent),
            fully_absent=fully_absent,
        )


def summarize_utilization(records: Iterable[UtilizationRecord]) -> UtilizationSummary:
    """
    Summarize utilization records.

    The average utilization is taken over technicians that are not fully
    absent; every rating appears in rating_counts, with 0 when unused.
    """
    records = list(records)
    rating_counts: Dict[EfficiencyRating, int] = {rating: 0 for rating in EfficiencyRating}
    for record in records:
        rating_counts[record.efficiency_rating] += 1

    present = [r for r in records if not r.fully_absent]
    avg_utilization = (
        round(sum(r.utilization_percent for r in present) / len(present), 2) if present else 0.0
    )

    return UtilizationSummary(
        technician_count=len(records),
        total_work_hours=sum((r.total_work_hours for r in records), ZERO_HOURS),
        total_scheduled_hours=sum((r.scheduled_hours for r in records), ZERO_HOURS),
        avg_utilization_percent=avg_utilization,
        rating_counts=rating_counts,
        fully_absent_count=len(records) - len(present),
    )
