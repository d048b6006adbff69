"""
Case Queries Module for the technician analytics backend.

Provides parameterized PostgreSQL queries against the three case stores:
- private_cases: individual-customer cases
- business_cases: business-customer cases
- cases: contract-customer cases

The stores differ in column names for the assignee, the amount and the pest
category, and in their completion status vocabulary. Every query here aliases
the store columns to the same output names so callers can read rows
uniformly:

    id, technician_id, amount, pest_type, status, completed_date, created_at

Window convention: dates are inclusive on both ends. The end bound is
implemented as `< end + 1 day` so timestamps on the last day are included;
callers pass the already-shifted exclusive end as a parameter.

Parameter conventions ($-placeholders, asyncpg style):
- $1: technician ids (text[])
- $2: window start (date, inclusive)
- $3: window end (date, exclusive)
- $4: completion statuses (text[])

This module follows the Repository Pattern for clean separation between
business logic and data access.
"""

from typing import Dict

from technician_analytics.models.enums import CaseSource


# =============================================================================
# STORE LAYOUT
# =============================================================================

# Physical column names per store; output aliases are fixed.
STORE_COLUMNS: Dict[CaseSource, Dict[str, str]] = {
    CaseSource.INDIVIDUAL: {
        'table': 'private_cases',
        'assignee': 'primary_assignee_id',
        'amount': 'pris',
        'pest_type': 'skadedjur',
        'scheduled': 'start_date',
    },
    CaseSource.BUSINESS: {
        'table': 'business_cases',
        'assignee': 'primary_assignee_id',
        'amount': 'pris',
        'pest_type': 'skadedjur',
        'scheduled': 'start_date',
    },
    CaseSource.CONTRACT: {
        'table': 'cases',
        'assignee': 'assigned_technician_id',
        'amount': 'price',
        'pest_type': 'pest_type',
        'scheduled': 'scheduled_date',
    },
}

# Stores whose cases carry start_date/due_date bookings used for utilization
SCHEDULED_SOURCES = (CaseSource.INDIVIDUAL, CaseSource.BUSINESS)


# =============================================================================
# COMPLETED CASES QUERY
# =============================================================================

def get_completed_cases_query(source: CaseSource) -> str:
    """
    Generate SQL query fetching completed cases of one store for a window.

    Rows are filtered by assignee set, completion status and a non-null
    amount. The completion timestamp is COALESCE(completed_date, created_at)
    and must fall inside the window.

    Args:
        source: Case store to query.

    Returns:
        Parameterized PostgreSQL query string ($1 ids, $2 start, $3 end
        exclusive, $4 statuses).
    """
    columns = STORE_COLUMNS[source]

    return f"""
        SELECT
            id::text AS id,
            {columns['assignee']}::text AS technician_id,
            {columns['amount']} AS amount,
            {columns['pest_type']} AS pest_type,
            status,
            completed_date,
            created_at
        FROM {columns['table']}
        WHERE {columns['assignee']}::text = ANY($1::text[])
          AND status = ANY($4::text[])
          AND {columns['amount']} IS NOT NULL
          AND COALESCE(completed_date, created_at) >= $2::date
          AND COALESCE(completed_date, created_at) < $3::date
        ORDER BY id
    """


# =============================================================================
# DAILY CASE COUNT QUERY
# =============================================================================

def get_daily_case_counts_query(source: CaseSource) -> str:
    """
    Generate SQL query counting cases of one store booked per technician on
    one day.

    Individual and business cases are placed on a day by start_date, contract
    cases by scheduled_date. Each store is counted by its own query so one
    unavailable store does not hide the others' counts.

    Args:
        source: Case store to count.

    Returns:
        Parameterized PostgreSQL query string ($1 ids, $2 day, $3 next day).
    """
    columns = STORE_COLUMNS[source]

    return f"""
        SELECT {columns['assignee']}::text AS technician_id, COUNT(*) AS case_count
        FROM {columns['table']}
        WHERE {columns['assignee']}::text = ANY($1::text[])
          AND {columns['scheduled']} >= $2::date
          AND {columns['scheduled']} < $3::date
        GROUP BY {columns['assignee']}
    """


# =============================================================================
# SCHEDULED CASES QUERY
# =============================================================================

def get_scheduled_cases_query(source: CaseSource) -> str:
    """
    Generate SQL query fetching cases booked to start inside a window.

    Used for utilization: each returned row contributes due_date - start_date
    hours to the technician's scheduled hours and its amount to the average
    case value.

    Args:
        source: Case store to query (individual or business).

    Returns:
        Parameterized PostgreSQL query string ($1 ids, $2 start, $3 end
        exclusive).

    Raises:
        ValueError: If the store has no start/due booking columns.
    """
    if source not in SCHEDULED_SOURCES:
        raise ValueError(f"Store '{source.value}' has no start/due booking columns")

    columns = STORE_COLUMNS[source]

    return f"""
        SELECT
            {columns['assignee']}::text AS technician_id,
            start_date,
            due_date,
            {columns['amount']} AS amount
        FROM {columns['table']}
        WHERE {columns['assignee']}::text = ANY($1::text[])
          AND start_date >= $2::date
          AND start_date < $3::date
    """


# =============================================================================
# CASE LIFECYCLE QUERY
# =============================================================================

def get_case_lifecycle_query(source: CaseSource) -> str:
    """
    Generate SQL query fetching the lifecycle timestamps of cases created in
    a window.

    Used by the coordination metrics: created_at -> start_date is the
    scheduling lead time, created_at -> completed_date the turnaround, and
    start_date -> due_date the booked hours. Cases are not filtered by
    assignee or status.

    Args:
        source: Case store to query (individual or business).

    Returns:
        Parameterized PostgreSQL query string ($1 start, $2 end exclusive).

    Raises:
        ValueError: If the store has no start/due booking columns.
    """
    if source not in SCHEDULED_SOURCES:
        raise ValueError(f"Store '{source.value}' has no start/due booking columns")

    columns = STORE_COLUMNS[source]

    return f"""
        SELECT
            id::text AS id,
            {columns['amount']} AS amount,
            created_at,
            start_date,
            due_date,
            completed_date
        FROM {columns['table']}
        WHERE created_at >= $1::date
          AND created_at < $2::date
        ORDER BY id
    """


# =============================================================================
# STATUS CHANGE QUERY
# =============================================================================

def get_status_changes_query() -> str:
    """
    Generate SQL query fetching audit log status changes in a window.

    Returns:
        Parameterized PostgreSQL query string ($1 start, $2 end exclusive).
    """
    return """
        SELECT
            case_id::text AS case_id,
            old_status,
            new_status,
            changed_at,
            notes
        FROM billing_audit_log
        WHERE changed_at >= $1::date
          AND changed_at < $2::date
        ORDER BY changed_at, case_id
    """
