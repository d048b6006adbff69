"""
SQL Query Module for the technician analytics backend.

Provides parameterized PostgreSQL queries ($-placeholders) for:
- The three case stores (case_queries)
- The technician roster, work schedules and absences (technician_queries)

Follows the Repository Pattern for clean separation between business logic
and data access.

Example usage:
    from technician_analytics.sql import get_completed_cases_query
    from technician_analytics.models.enums import CaseSource

    sql = get_completed_cases_query(CaseSource.CONTRACT)
"""

from technician_analytics.sql.case_queries import (
    STORE_COLUMNS,
    SCHEDULED_SOURCES,
    get_completed_cases_query,
    get_daily_case_counts_query,
    get_scheduled_cases_query,
)
from technician_analytics.sql.technician_queries import (
    get_roster_query,
    get_roster_count_query,
    get_work_schedules_query,
    get_absences_query,
)

__all__ = [
    'STORE_COLUMNS',
    'SCHEDULED_SOURCES',
    'get_completed_cases_query',
    'get_daily_case_counts_query',
    'get_scheduled_cases_query',
    'get_roster_query',
    'get_roster_count_query',
    'get_work_schedules_query',
    'get_absences_query',
]
