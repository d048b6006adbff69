"""
Revenue ranking and cohort KPI summary.

Key Functions:
- rank: Order snapshots by revenue and assign 1-based ranks
- summarize_cohort: Totals and per-technician averages for a cohort

Ranking rules:
- total_revenue descending
- ties broken by technician_id ascending
- rank = position + 1, so ranks are a permutation of 1..N
- technicians with no cases are ranked like everyone else
"""

from typing import Iterable, List

from technician_analytics.models.schemas import PerformanceSnapshot, TechnicianKpi
from technician_analytics.services.aggregation import ZERO, to_money


def rank(snapshots: Iterable[PerformanceSnapshot]) -> List[PerformanceSnapshot]:
    """
    Rank snapshots by total revenue.

    Args:
        snapshots: Unranked (or previously ranked) snapshots.

    Returns:
        New snapshots in rank order with `rank` set; inputs are not modified.
    """
    ordered = sorted(snapshots, key=lambda s: (-s.total_revenue, s.technician_id))
    return [
        snapshot.model_copy(update={'rank': position + 1})
        for position, snapshot in enumerate(ordered)
    ]


def summarize_cohort(
    snapshots: Iterable[PerformanceSnapshot],
    total_technicians: int,
) -> TechnicianKpi:
    """
    Summarize a cohort's snapshots into a KPI block.

    Args:
        snapshots: One snapshot per active technician.
        total_technicians: Roster size including inactive technicians.

    Returns:
        TechnicianKpi with totals and averages. Averages are 0 for an empty
        cohort or a cohort without cases.
    """
    snapshots = list(snapshots)
    active = len(snapshots)

    # Snapshot revenues are already whole cents, so the total is exact
    total_revenue = sum((s.total_revenue for s in snapshots), ZERO)
    total_cases = sum(s.total_cases for s in snapshots)

    return TechnicianKpi(
        total_technicians=max(total_technicians, active),
        active_technicians=active,
        total_revenue=to_money(total_revenue),
        total_cases=total_cases,
        avg_revenue_per_technician=to_money(total_revenue / active if active else ZERO),
        avg_cases_per_technician=round(total_cases / active, 2) if active else 0.0,
        avg_case_value=to_money(total_revenue / total_cases if total_cases else ZERO),
    )
