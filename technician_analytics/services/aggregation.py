"""
Case aggregation service for the technician analytics backend.

This module folds canonical case records into per-technician performance
snapshots. The fold is keyed by GroupKey(technician_id, source, pest_type) and
its accumulators are immutable CaseTotals values combined with `+`, so the
fold is associative and commutative: record order never changes the output
and partial folds (e.g. one per technician batch) can be merged.

Key Functions:
- validate_record: Raise MalformedRecord for records that cannot be counted
- partition_records: Split records into valid ones and a dropped count
- fold_case_totals: Fold valid records into a GroupKey -> CaseTotals mapping
- merge_folds: Combine partial folds
- aggregate: Project records into PerformanceSnapshots (without rank)
- aggregate_cohort: Same, plus zero snapshots for silent cohort members

Record validity:
- status must denote completion for the record's store
- amount must be present and non-negative

Invalid records are logged at WARNING and counted, never raised to callers.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Mapping, NamedTuple, Optional, Tuple, Union

from technician_analytics.core.exceptions import MalformedRecord
from technician_analytics.models.enums import CaseSource, COMPLETED_STATUSES
from technician_analytics.models.schemas import (
    CasesBySource,
    PerformanceSnapshot,
    RevenueBySource,
    Technician,
)
from technician_analytics.services.source_fetcher import CaseRecord


logger = logging.getLogger(__name__)

ZERO = Decimal('0')
CENT = Decimal('0.01')


# =============================================================================
# Fold Types
# =============================================================================


class GroupKey(NamedTuple):
    """Fold key: one accumulator per technician, store and pest category."""
    technician_id: str
    source: CaseSource
    pest_type: Optional[str]


@dataclass(frozen=True)
class CaseTotals:
    """
    Immutable revenue/case-count accumulator.

    CaseTotals() is the identity element of `+`.
    """
    revenue: Decimal = ZERO
    cases: int = 0

    def __add__(self, other: 'CaseTotals') -> 'CaseTotals':
        if not isinstance(other, CaseTotals):
            return NotImplemented
        return CaseTotals(revenue=self.revenue + other.revenue, cases=self.cases + other.cases)

    @property
    def avg_value(self) -> Decimal:
        """Mean value per case, 0 when there are no cases."""
        if self.cases == 0:
            return ZERO
        return self.revenue / self.cases


Fold = Dict[GroupKey, CaseTotals]


@dataclass
class AggregationResult:
    """Snapshots keyed by technician id, plus the number of dropped records."""
    snapshots: Dict[str, PerformanceSnapshot] = field(default_factory=dict)
    dropped_records: int = 0


# =============================================================================
# Money Helpers
# =============================================================================


def to_money(value: Union[Decimal, int, float, str]) -> Decimal:
    """Round an amount to cents."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def rounded_by_source(by_source: Mapping[CaseSource, CaseTotals]) -> Dict[CaseSource, Decimal]:
    """Per-store revenue rounded to cents, one entry per store."""
    return {
        source: to_money(by_source.get(source, CaseTotals()).revenue)
        for source in CaseSource
    }


def revenue_by_source(rounded: Mapping[CaseSource, Decimal]) -> RevenueBySource:
    """Build the API revenue split from rounded per-store revenue."""
    return RevenueBySource(**{source.value: amount for source, amount in rounded.items()})


def cases_by_source(by_source: Mapping[CaseSource, CaseTotals]) -> CasesBySource:
    """Build the API case-count split from per-store totals."""
    return CasesBySource(**{
        source.value: by_source.get(source, CaseTotals()).cases
        for source in CaseSource
    })


# =============================================================================
# Validation
# =============================================================================


def validate_record(record: CaseRecord) -> None:
    """
    Check that a record can take part in aggregation.

    Args:
        record: Canonical case record.

    Raises:
        MalformedRecord: If the amount is missing or negative, or the status
            does not denote completion for the record's store.
    """
    if record.amount is None:
        raise MalformedRecord("Missing or non-numeric amount", record.case_id, record.source.value)
    if record.amount < ZERO:
        raise MalformedRecord(
            f"Negative amount {record.amount}", record.case_id, record.source.value
        )
    if record.status not in COMPLETED_STATUSES[record.source]:
        raise MalformedRecord(
            f"Status '{record.status}' is not a completion status",
            record.case_id,
            record.source.value,
        )


def partition_records(records: Iterable[CaseRecord]) -> Tuple[List[CaseRecord], int]:
    """
    Split records into valid ones and a count of dropped ones.

    Args:
        records: Canonical case records.

    Returns:
        Tuple of (valid records in input order, dropped count).
    """
    valid: List[CaseRecord] = []
    dropped = 0

    for record in records:
        try:
            validate_record(record)
        except MalformedRecord as e:
            logger.warning(f"Dropping malformed case record: {e}")
            dropped += 1
            continue
        valid.append(record)

    return valid, dropped


# =============================================================================
# Fold
# =============================================================================


def fold_case_totals(records: Iterable[CaseRecord]) -> Fold:
    """
    Fold valid records into per-(technician, store, pest type) totals.

    Args:
        records: Records that passed validate_record.

    Returns:
        Mapping of GroupKey to CaseTotals.
    """
    fold: Fold = {}
    for record in records:
        key = GroupKey(record.technician_id, record.source, record.pest_type)
        fold[key] = fold.get(key, CaseTotals()) + CaseTotals(revenue=record.amount, cases=1)
    return fold


def merge_folds(*folds: Mapping[GroupKey, CaseTotals]) -> Fold:
    """
    Combine partial folds into a new one.

    Returns:
        A new mapping; the inputs are left untouched.
    """
    merged: Fold = {}
    for fold in folds:
        for key, totals in fold.items():
            merged[key] = merged.get(key, CaseTotals()) + totals
    return merged


def totals_by_technician(fold: Mapping[GroupKey, CaseTotals]) -> Dict[str, Dict[CaseSource, CaseTotals]]:
    """Collapse the pest dimension: technician -> store -> totals."""
    result: Dict[str, Dict[CaseSource, CaseTotals]] = {}
    for key, totals in fold.items():
        per_source = result.setdefault(key.technician_id, {})
        per_source[key.source] = per_source.get(key.source, CaseTotals()) + totals
    return result


# =============================================================================
# Snapshot Projection
# =============================================================================


def build_snapshot(
    technician_id: str,
    name: str,
    by_source: Mapping[CaseSource, CaseTotals],
    period_start: Optional[date] = None,
    period_end: Optional[date] = None,
) -> PerformanceSnapshot:
    """
    Project per-store totals onto an unranked PerformanceSnapshot.

    Each store's revenue is rounded to cents first and total_revenue is the
    exact Decimal sum of those rounded amounts, so total_revenue equals the
    sum of revenue_by_source. total_cases is the sum of cases_by_source.
    """
    rounded = rounded_by_source(by_source)
    total_revenue = sum(rounded.values(), ZERO)
    total_cases = sum(totals.cases for totals in by_source.values())

    return PerformanceSnapshot(
        technician_id=technician_id,
        name=name,
        period_start=period_start,
        period_end=period_end,
        total_revenue=total_revenue,
        total_cases=total_cases,
        revenue_by_source=revenue_by_source(rounded),
        cases_by_source=cases_by_source(by_source),
        avg_case_value=to_money(total_revenue / total_cases) if total_cases else to_money(ZERO),
    )


def aggregate(
    records: Iterable[CaseRecord],
    names: Optional[Mapping[str, str]] = None,
    period_start: Optional[date] = None,
    period_end: Optional[date] = None,
) -> AggregationResult:
    """
    Aggregate case records into per-technician snapshots.

    Only technicians that have at least one valid record appear in the
    result. Malformed records are dropped and counted.

    Args:
        records: Canonical case records, any order.
        names: Optional technician id -> display name mapping.
        period_start: Window start stamped on each snapshot.
        period_end: Window end stamped on each snapshot.

    Returns:
        AggregationResult with unranked snapshots keyed by technician id.
    """
    names = names or {}
    valid, dropped = partition_records(records)
    per_technician = totals_by_technician(fold_case_totals(valid))

    snapshots = {
        technician_id: build_snapshot(
            technician_id,
            names.get(technician_id, ""),
            by_source,
            period_start,
            period_end,
        )
        for technician_id, by_source in per_technician.items()
    }

    return AggregationResult(snapshots=snapshots, dropped_records=dropped)


def aggregate_cohort(
    records: Iterable[CaseRecord],
    technicians: Iterable[Technician],
    period_start: Optional[date] = None,
    period_end: Optional[date] = None,
) -> AggregationResult:
    """
    Aggregate records for a cohort, including members without records.

    Records of technicians outside the cohort are ignored. Every active
    cohort member gets a snapshot; members with no valid records get an
    all-zero one.

    Args:
        records: Canonical case records.
        technicians: Cohort members; inactive ones are skipped.
        period_start: Window start stamped on each snapshot.
        period_end: Window end stamped on each snapshot.

    Returns:
        AggregationResult with one snapshot per active cohort member.
    """
    members = {t.id: t.name for t in technicians if t.active}
    in_cohort = [r for r in records if r.technician_id in members]

    result = aggregate(in_cohort, members, period_start, period_end)

    for technician_id, name in members.items():
        if technician_id not in result.snapshots:
            result.snapshots[technician_id] = build_snapshot(
                technician_id, name, {}, period_start, period_end
            )

    return result
