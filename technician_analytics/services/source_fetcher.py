"""
Multi-store case fetching and normalization.

Reads completed cases from all three case stores concurrently for a
technician set and window, and normalizes the store-specific rows into the
canonical CaseRecord consumed by aggregation.

Key Functions:
- normalize: Map any per-store row onto a CaseRecord
- SourceFetcher.fetch: Query the three stores concurrently and collect
  records plus the names of stores that failed
- SourceFetcher.count_daily_cases: Per-store booked case counts for one day
- SourceFetcher.fetch_lifecycle: Lifecycle rows for the coordination metrics

Normalization rules:
- completed_at = completed_date when present, otherwise created_at
- a date-only completed_date becomes midnight of that day
- amounts that cannot be read as a number become None; such records are
  dropped later at the aggregation boundary
- rows without an assignee or a usable timestamp are skipped and counted
- blank pest categories become None

A failing store never aborts the fetch: its name is reported in
SourceFetchResult.failed_sources and the other stores' records are returned.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Collection, Dict, List, Optional, Sequence, Tuple, TypeVar

from technician_analytics.core.exceptions import SourceUnavailable
from technician_analytics.models.enums import CaseSource
from technician_analytics.services.case_store import (
    BusinessCaseRow,
    CaseLifecycleRow,
    CaseRecordStore,
    CaseRow,
    ContractCaseRow,
    IndividualCaseRow,
)
from technician_analytics.sql.case_queries import SCHEDULED_SOURCES


logger = logging.getLogger(__name__)

T = TypeVar('T')


# =============================================================================
# Canonical Record
# =============================================================================


@dataclass(frozen=True)
class CaseRecord:
    """
    Canonical completed case, independent of the store it came from.

    Attributes:
        case_id: Case identifier within its store.
        technician_id: Assigned technician.
        source: Store the case came from.
        amount: Case value; None when the stored value is missing or unreadable.
        pest_type: Pest category, None when not recorded.
        completed_at: Completion timestamp.
        status: Workflow status as stored.
    """
    case_id: str
    technician_id: str
    source: CaseSource
    amount: Optional[Decimal]
    pest_type: Optional[str]
    completed_at: datetime
    status: str


@dataclass
class SourceFetchResult:
    """Records of the stores that answered, plus the stores that did not."""
    records: List[CaseRecord] = field(default_factory=list)
    failed_sources: List[CaseSource] = field(default_factory=list)
    skipped_rows: int = 0


@dataclass
class DailyCaseCounts:
    """Per-technician booked case counts of the stores that answered."""
    counts: Dict[str, int] = field(default_factory=dict)
    failed_sources: List[CaseSource] = field(default_factory=list)


@dataclass
class LifecycleFetchResult:
    """Lifecycle rows of the booked stores that answered."""
    rows: List[CaseLifecycleRow] = field(default_factory=list)
    failed_sources: List[CaseSource] = field(default_factory=list)


# =============================================================================
# Normalization
# =============================================================================


def parse_amount(value: Any) -> Optional[Decimal]:
    """
    Read a stored amount as Decimal.

    Args:
        value: Raw amount (Decimal, int, float, numeric string or None).

    Returns:
        Decimal value, or None if the value is missing or not a finite number.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value if value.is_finite() else None
    try:
        # str() keeps float amounts at their printed precision
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    return amount if amount.is_finite() else None


def _completion_time(
    completed_date: Optional[Any],
    created_at: Optional[datetime],
) -> Optional[datetime]:
    value = completed_date if completed_date is not None else created_at
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    return None


def _clean_pest_type(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def normalize(row: CaseRow) -> CaseRecord:
    """
    Map a store-specific row onto the canonical CaseRecord.

    Args:
        row: Row from any of the three stores.

    Returns:
        CaseRecord carrying the row's technician, amount, pest type and
        completion time.

    Raises:
        ValueError: If the row has no assignee or no usable timestamp.
        TypeError: If the row is not one of the known row types.
    """
    if isinstance(row, ContractCaseRow):
        source = CaseSource.CONTRACT
        technician_id = row.assigned_technician_id
        raw_amount = row.price
        pest_type = row.pest_type
    elif isinstance(row, (IndividualCaseRow, BusinessCaseRow)):
        source = CaseSource.INDIVIDUAL if isinstance(row, IndividualCaseRow) else CaseSource.BUSINESS
        technician_id = row.primary_assignee_id
        raw_amount = row.pris
        pest_type = row.skadedjur
    else:
        raise TypeError(f"Unsupported case row type: {type(row).__name__}")

    if not technician_id:
        raise ValueError(f"Case {row.id} has no assigned technician")

    completed_at = _completion_time(row.completed_date, row.created_at)
    if completed_at is None:
        raise ValueError(f"Case {row.id} has neither completed_date nor created_at")

    return CaseRecord(
        case_id=str(row.id),
        technician_id=str(technician_id),
        source=source,
        amount=parse_amount(raw_amount),
        pest_type=_clean_pest_type(pest_type),
        completed_at=completed_at,
        status=row.status,
    )


# =============================================================================
# Fetcher
# =============================================================================


class SourceFetcher:
    """
    Concurrent reader of the case stores.

    Args:
        store: CaseRecordStore (or any object with the same coroutines).
    """

    def __init__(self, store: CaseRecordStore):
        self.store = store

    async def _per_source(
        self,
        sources: Sequence[CaseSource],
        read: Callable[[CaseSource], Awaitable[T]],
    ) -> Tuple[Dict[CaseSource, T], List[CaseSource]]:
        """
        Run one read per store concurrently.

        Returns:
            Tuple of (results of the stores that answered, stores that raised
            SourceUnavailable, in input order). Any other error propagates.
        """
        outcomes = await asyncio.gather(*(read(source) for source in sources), return_exceptions=True)

        answered: Dict[CaseSource, T] = {}
        failed: List[CaseSource] = []
        for source, outcome in zip(sources, outcomes):
            if isinstance(outcome, SourceUnavailable):
                logger.warning(f"Case store {source.value} unavailable: {outcome}")
                failed.append(source)
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                answered[source] = outcome
        return answered, failed

    async def _fetch_source(
        self,
        source: CaseSource,
        technician_ids: Collection[str],
        start: date,
        end: date,
    ) -> Tuple[List[CaseRecord], int]:
        rows = await self.store.fetch_completed_rows(source, technician_ids, start, end)

        records: List[CaseRecord] = []
        skipped = 0
        for row in rows:
            try:
                records.append(normalize(row))
            except ValueError as e:
                logger.warning(f"Skipping unreadable {source.value} case: {e}")
                skipped += 1
        return records, skipped

    async def fetch(
        self,
        technician_ids: Collection[str],
        start: date,
        end: date,
    ) -> SourceFetchResult:
        """
        Fetch and normalize completed cases from the three stores.

        The three store queries run concurrently. A store raising
        SourceUnavailable is recorded in failed_sources; any other error
        propagates. Rows that cannot be normalized are counted in
        skipped_rows.

        Args:
            technician_ids: Technicians whose cases to fetch.
            start: Window start (inclusive).
            end: Window end (inclusive).

        Returns:
            SourceFetchResult with records ordered by store, then case id.
        """
        sources = list(CaseSource)
        answered, failed = await self._per_source(
            sources,
            lambda source: self._fetch_source(source, technician_ids, start, end),
        )

        result = SourceFetchResult(failed_sources=failed)
        for source in sources:
            if source in answered:
                records, skipped = answered[source]
                result.records.extend(records)
                result.skipped_rows += skipped

        logger.info(
            f"Fetched {len(result.records)} completed cases for "
            f"{len(technician_ids)} technicians ({start} to {end}), "
            f"skipped={result.skipped_rows}, "
            f"failed sources: {[s.value for s in result.failed_sources]}"
        )
        return result

    async def count_daily_cases(self, technician_ids: Collection[str], day: date) -> DailyCaseCounts:
        """
        Count cases booked per technician on one day, summed over the stores
        that answered.
        """
        answered, failed = await self._per_source(
            list(CaseSource),
            lambda source: self.store.fetch_daily_case_counts(source, technician_ids, day),
        )

        result = DailyCaseCounts(failed_sources=failed)
        for counts in answered.values():
            for technician_id, count in counts.items():
                result.counts[technician_id] = result.counts.get(technician_id, 0) + count
        return result

    async def fetch_lifecycle(self, start: date, end: date) -> LifecycleFetchResult:
        """Fetch lifecycle rows of the booked stores for cases created in a window."""
        answered, failed = await self._per_source(
            SCHEDULED_SOURCES,
            lambda source: self.store.fetch_case_lifecycle(source, start, end),
        )

        result = LifecycleFetchResult(failed_sources=failed)
        for source in SCHEDULED_SOURCES:
            result.rows.extend(answered.get(source, []))
        return result
