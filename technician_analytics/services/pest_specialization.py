"""
Pest-type specialization per technician.

Shares the aggregation fold: the (technician, store, pest type) keys of the
fold are exactly the specialization rows. Records without a pest category
are grouped under "unknown".

Key Functions:
- specialize: One row per (technician, pest_type, source)
- overview: Roll-up per pest type across technicians and stores
- primary_specialization: A technician's highest-revenue pest type
"""

from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from technician_analytics.models.enums import CaseSource, UNKNOWN_PEST_TYPE
from technician_analytics.models.schemas import PestSpecialization, PestTypeOverview
from technician_analytics.services.aggregation import (
    CaseTotals,
    Fold,
    fold_case_totals,
    partition_records,
    to_money,
)
from technician_analytics.services.source_fetcher import CaseRecord


def _fold(records: Iterable[CaseRecord]) -> Fold:
    valid, _ = partition_records(records)
    return fold_case_totals(valid)


def _pest_label(pest_type: Optional[str]) -> str:
    return pest_type if pest_type else UNKNOWN_PEST_TYPE


def specialize(
    records: Iterable[CaseRecord],
    names: Optional[Mapping[str, str]] = None,
) -> List[PestSpecialization]:
    """
    Group records by technician, pest type and store.

    Args:
        records: Canonical case records; malformed ones are ignored.
        names: Optional technician id -> display name mapping.

    Returns:
        PestSpecialization rows ordered by technician id, then revenue
        descending, then pest type and store.
    """
    names = names or {}
    grouped: Dict[Tuple[str, str, CaseSource], CaseTotals] = {}
    for key, totals in _fold(records).items():
        label_key = (key.technician_id, _pest_label(key.pest_type), key.source)
        grouped[label_key] = grouped.get(label_key, CaseTotals()) + totals

    rows = [
        PestSpecialization(
            technician_id=technician_id,
            technician_name=names.get(technician_id, ""),
            pest_type=pest_type,
            source=source,
            case_count=totals.cases,
            total_revenue=to_money(totals.revenue),
            avg_case_value=to_money(totals.avg_value),
        )
        for (technician_id, pest_type, source), totals in grouped.items()
    ]
    rows.sort(key=lambda r: (r.technician_id, -r.total_revenue, r.pest_type, r.source.value))
    return rows


def overview(records: Iterable[CaseRecord]) -> List[PestTypeOverview]:
    """
    Roll records up per pest type.

    Args:
        records: Canonical case records; malformed ones are ignored.

    Returns:
        PestTypeOverview rows ordered by total revenue descending, ties by
        pest type ascending. top_technician_id is the technician with the
        highest revenue for the pest type (ties: lowest id).
    """
    per_pest: Dict[str, CaseTotals] = {}
    per_pest_technician: Dict[str, Dict[str, CaseTotals]] = {}

    for key, totals in _fold(records).items():
        pest_type = _pest_label(key.pest_type)
        per_pest[pest_type] = per_pest.get(pest_type, CaseTotals()) + totals
        technicians = per_pest_technician.setdefault(pest_type, {})
        technicians[key.technician_id] = technicians.get(key.technician_id, CaseTotals()) + totals

    rows: List[PestTypeOverview] = []
    for pest_type, totals in per_pest.items():
        technicians = per_pest_technician[pest_type]
        top_technician = min(technicians, key=lambda t: (-technicians[t].revenue, t))
        rows.append(PestTypeOverview(
            pest_type=pest_type,
            case_count=totals.cases,
            total_revenue=to_money(totals.revenue),
            avg_case_value=to_money(totals.avg_value),
            technician_count=len(technicians),
            top_technician_id=top_technician,
        ))

    rows.sort(key=lambda r: (-r.total_revenue, r.pest_type))
    return rows


def primary_specialization(records: Iterable[CaseRecord], technician_id: str) -> Optional[str]:
    """
    Return the technician's pest type with the highest revenue.

    Ties go to the alphabetically first pest type. Returns None when the
    technician has no valid records.
    """
    revenue: Dict[str, CaseTotals] = {}
    for key, totals in _fold(records).items():
        if key.technician_id != technician_id:
            continue
        pest_type = _pest_label(key.pest_type)
        revenue[pest_type] = revenue.get(pest_type, CaseTotals()) + totals

    if not revenue:
        return None
    return min(revenue, key=lambda p: (-revenue[p].revenue, p))
