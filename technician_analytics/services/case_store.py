"""
Case record store access for the technician analytics backend.

The three case stores live in the same PostgreSQL backend but have different
shapes. This module reads raw rows from each of them into a per-store row
type; turning those rows into canonical records is the job of
source_fetcher.normalize().

Key Components:
- IndividualCaseRow / BusinessCaseRow / ContractCaseRow: per-store row types
- CaseRow: union of the three row types
- CaseRecordStore: async reader over an asyncpg pool
    - fetch_completed_rows: completed cases of one store in a window
    - fetch_daily_case_counts: cases of one store booked per technician on one day
    - fetch_case_lifecycle: lifecycle timestamps of cases created in a window
    - fetch_status_changes: audit log status changes in a window

Any driver or network failure while reading a store is raised as
SourceUnavailable naming the store, so the caller can keep the other stores'
results.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Any, Collection, Dict, List, Optional, Union

import asyncpg
from asyncpg import Pool

from technician_analytics.core.exceptions import SourceUnavailable
from technician_analytics.models.enums import CaseSource, COMPLETED_STATUSES
from technician_analytics.sql.case_queries import (
    get_case_lifecycle_query,
    get_completed_cases_query,
    get_daily_case_counts_query,
    get_status_changes_query,
)


logger = logging.getLogger(__name__)


# =============================================================================
# Per-Store Row Types
# =============================================================================


@dataclass(frozen=True)
class IndividualCaseRow:
    """
    Row of the individual-customer store (private_cases).

    Attributes:
        id: Case identifier.
        primary_assignee_id: Assigned technician.
        pris: Case amount as stored; may be null or non-numeric.
        skadedjur: Pest category.
        status: Workflow status.
        completed_date: Completion date, if recorded.
        created_at: Creation timestamp, used when completed_date is missing.
    """
    id: str
    primary_assignee_id: Optional[str]
    pris: Any
    skadedjur: Optional[str]
    status: str
    completed_date: Optional[Union[date, datetime]]
    created_at: Optional[datetime]


@dataclass(frozen=True)
class BusinessCaseRow:
    """Row of the business-customer store (business_cases); same columns as private_cases."""
    id: str
    primary_assignee_id: Optional[str]
    pris: Any
    skadedjur: Optional[str]
    status: str
    completed_date: Optional[Union[date, datetime]]
    created_at: Optional[datetime]


@dataclass(frozen=True)
class ContractCaseRow:
    """Row of the contract-customer store (cases)."""
    id: str
    assigned_technician_id: Optional[str]
    price: Any
    pest_type: Optional[str]
    status: str
    completed_date: Optional[Union[date, datetime]]
    created_at: Optional[datetime]


CaseRow = Union[IndividualCaseRow, BusinessCaseRow, ContractCaseRow]


@dataclass(frozen=True)
class CaseLifecycleRow:
    """
    Timestamps of a booked case, read for the coordination metrics.

    Attributes:
        id: Case identifier.
        source: Store the case was read from.
        amount: Case amount as stored; may be null or non-numeric.
        created_at: Creation timestamp.
        start_date: Booked start, None while unscheduled.
        due_date: Booked end, None while unscheduled.
        completed_date: Completion time, None while open.
    """
    id: str
    source: CaseSource
    amount: Any
    created_at: datetime
    start_date: Optional[datetime]
    due_date: Optional[datetime]
    completed_date: Optional[Union[date, datetime]]


@dataclass(frozen=True)
class StatusChangeRow:
    """A status transition recorded in billing_audit_log."""
    case_id: str
    old_status: Optional[str]
    new_status: Optional[str]
    changed_at: datetime
    notes: Optional[str]


def row_from_record(source: CaseSource, record: Any) -> CaseRow:
    """
    Build the store-specific row type from a query result.

    Query results use the aliased column names of sql.case_queries; this maps
    them back onto each store's own field names.

    Args:
        source: Store the record was read from.
        record: asyncpg.Record or mapping with the aliased columns.

    Returns:
        The row type matching the store.
    """
    if source is CaseSource.CONTRACT:
        return ContractCaseRow(
            id=record['id'],
            assigned_technician_id=record['technician_id'],
            price=record['amount'],
            pest_type=record['pest_type'],
            status=record['status'],
            completed_date=record['completed_date'],
            created_at=record['created_at'],
        )

    row_type = IndividualCaseRow if source is CaseSource.INDIVIDUAL else BusinessCaseRow
    return row_type(
        id=record['id'],
        primary_assignee_id=record['technician_id'],
        pris=record['amount'],
        skadedjur=record['pest_type'],
        status=record['status'],
        completed_date=record['completed_date'],
        created_at=record['created_at'],
    )


# =============================================================================
# Store Reader
# =============================================================================

# Failures that mean "this store could not be read"
_STORE_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)

AUDIT_LOG = "billing_audit_log"


class CaseRecordStore:
    """
    Async reader over the three case stores.

    Args:
        pool: asyncpg connection pool.
    """

    def __init__(self, pool: Pool):
        self.pool = pool

    async def fetch_completed_rows(
        self,
        source: CaseSource,
        technician_ids: Collection[str],
        start: date,
        end: date,
    ) -> List[CaseRow]:
        """
        Fetch completed cases of one store for a technician set and window.

        Args:
            source: Store to read.
            technician_ids: Assignees to include.
            start: Window start (inclusive).
            end: Window end (inclusive).

        Returns:
            Store-specific rows, ordered by case id.

        Raises:
            SourceUnavailable: If the store cannot be read.
        """
        if not technician_ids:
            return []

        query = get_completed_cases_query(source)
        statuses = sorted(COMPLETED_STATUSES[source])

        try:
            async with self.pool.acquire() as conn:
                records = await conn.fetch(
                    query,
                    list(technician_ids),
                    start,
                    end + timedelta(days=1),
                    statuses,
                )
        except _STORE_ERRORS as e:
            raise SourceUnavailable(source.value, e) from e

        return [row_from_record(source, record) for record in records]

    async def fetch_daily_case_counts(
        self,
        source: CaseSource,
        technician_ids: Collection[str],
        day: date,
    ) -> Dict[str, int]:
        """
        Count cases of one store booked per technician on one day.

        Args:
            source: Store to count.
            technician_ids: Technicians to count for.
            day: Calendar day.

        Returns:
            Dict mapping technician id to case count; technicians without
            bookings are absent.

        Raises:
            SourceUnavailable: If the store cannot be read.
        """
        if not technician_ids:
            return {}

        try:
            async with self.pool.acquire() as conn:
                records = await conn.fetch(
                    get_daily_case_counts_query(source),
                    list(technician_ids),
                    day,
                    day + timedelta(days=1),
                )
        except _STORE_ERRORS as e:
            raise SourceUnavailable(source.value, e) from e

        return {record['technician_id']: int(record['case_count']) for record in records}

    async def fetch_case_lifecycle(
        self,
        source: CaseSource,
        start: date,
        end: date,
    ) -> List[CaseLifecycleRow]:
        """
        Fetch lifecycle timestamps of one store's cases created in a window.

        Args:
            source: Store to read (individual or business).
            start: Window start (inclusive).
            end: Window end (inclusive).

        Returns:
            Lifecycle rows ordered by case id.

        Raises:
            SourceUnavailable: If the store cannot be read.
        """
        try:
            async with self.pool.acquire() as conn:
                records = await conn.fetch(
                    get_case_lifecycle_query(source),
                    start,
                    end + timedelta(days=1),
                )
        except _STORE_ERRORS as e:
            raise SourceUnavailable(source.value, e) from e

        return [
            CaseLifecycleRow(
                id=record['id'],
                source=source,
                amount=record['amount'],
                created_at=record['created_at'],
                start_date=record['start_date'],
                due_date=record['due_date'],
                completed_date=record['completed_date'],
            )
            for record in records
        ]

    async def fetch_status_changes(self, start: date, end: date) -> List[StatusChangeRow]:
        """
        Fetch audit log status changes in a window.

        Raises:
            SourceUnavailable: If the audit log cannot be read.
        """
        try:
            async with self.pool.acquire() as conn:
                records = await conn.fetch(get_status_changes_query(), start, end + timedelta(days=1))
        except _STORE_ERRORS as e:
            raise SourceUnavailable(AUDIT_LOG, e) from e

        return [
            StatusChangeRow(
                case_id=record['case_id'],
                old_status=record['old_status'],
                new_status=record['new_status'],
                changed_at=record['changed_at'],
                notes=record['notes'],
            )
            for record in records
        ]
