"""
Technician-versus-cohort comparison.

A technician's snapshot is compared with the cohort mean on three metrics
(revenue, case count, average case value). Each delta is

    (value - average) / average * 100

and is 0 when the average is 0. Recommendations come from an ordered rule
table; every matching rule contributes its message, in table order.
"""

import operator
from dataclasses import dataclass
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Sequence, Union

from technician_analytics.models.schemas import (
    CohortAverage,
    PerformanceSnapshot,
    TechnicianComparison,
)
from technician_analytics.services.aggregation import ZERO, to_money


REVENUE = 'revenue'
CASES = 'cases'
AVG_CASE_VALUE = 'avg_case_value'


@dataclass(frozen=True)
class RecommendationRule:
    """
    One row of the recommendation table.

    Attributes:
        metric: Delta the rule looks at (revenue, cases or avg_case_value).
        compare: Binary predicate applied as compare(delta, threshold).
        threshold: Delta percentage to compare against.
        message: Recommendation emitted when the rule matches.
    """
    metric: str
    compare: Callable[[float, float], bool]
    threshold: float
    message: str

    def matches(self, deltas: Dict[str, float]) -> bool:
        return self.compare(deltas[self.metric], self.threshold)


DEFAULT_RULES: Sequence[RecommendationRule] = (
    RecommendationRule(REVENUE, operator.lt, -10.0, "Focus on value-adding services"),
    RecommendationRule(REVENUE, operator.gt, 20.0, "Share expertise with the team"),
    RecommendationRule(CASES, operator.lt, -15.0, "Increase case throughput with denser scheduling"),
    RecommendationRule(
        AVG_CASE_VALUE, operator.lt, -10.0, "Review pricing and add-on services on each visit"
    ),
)


def delta_pct(value: Union[Decimal, float], average: Union[Decimal, float]) -> float:
    """Percentage difference from the average, 0 when the average is 0."""
    if average == 0:
        return 0.0
    return round((float(value) - float(average)) / float(average) * 100, 2)


def cohort_average(snapshots: Iterable[PerformanceSnapshot]) -> CohortAverage:
    """
    Mean performance over the given (active cohort) snapshots.

    Returns:
        CohortAverage; all means are 0 for an empty cohort.
    """
    snapshots = list(snapshots)
    count = len(snapshots)
    if count == 0:
        return CohortAverage()

    return CohortAverage(
        technician_count=count,
        total_revenue=to_money(sum((s.total_revenue for s in snapshots), ZERO) / count),
        total_cases=round(sum(s.total_cases for s in snapshots) / count, 2),
        avg_case_value=to_money(sum((s.avg_case_value for s in snapshots), ZERO) / count),
    )


class ComparisonEngine:
    """
    Compares snapshots with a cohort average using a rule table.

    Args:
        rules: Ordered recommendation rules.
    """

    def __init__(self, rules: Sequence[RecommendationRule] = DEFAULT_RULES):
        self.rules = tuple(rules)

    def compare(
        self,
        snapshot: PerformanceSnapshot,
        average: CohortAverage,
    ) -> TechnicianComparison:
        """
        Compare one technician with the cohort average.

        Args:
            snapshot: The technician's performance snapshot.
            average: Cohort mean to compare against.

        Returns:
            TechnicianComparison with deltas and recommendations in rule order.
        """
        deltas = {
            REVENUE: delta_pct(snapshot.total_revenue, average.total_revenue),
            CASES: delta_pct(snapshot.total_cases, average.total_cases),
            AVG_CASE_VALUE: delta_pct(snapshot.avg_case_value, average.avg_case_value),
        }
        recommendations: List[str] = [rule.message for rule in self.rules if rule.matches(deltas)]

        return TechnicianComparison(
            technician_id=snapshot.technician_id,
            name=snapshot.name,
            snapshot=snapshot,
            cohort_average=average,
            revenue_delta_pct=deltas[REVENUE],
            cases_delta_pct=deltas[CASES],
            avg_case_value_delta_pct=deltas[AVG_CASE_VALUE],
            recommendations=recommendations,
        )
