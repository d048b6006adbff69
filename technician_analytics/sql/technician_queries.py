"""
Technician Queries Module for the technician analytics backend.

Roster and working-time queries:
- technicians: roster with role, activity flag, weekly work_schedule and the
  telemetry vehicle id
- technician_absences: absence periods overlapping a window
"""


def get_roster_query(active_only: bool = True, with_role: bool = False) -> str:
    """
    Generate SQL query for the technician roster.

    Args:
        active_only: Restrict to is_active = true.
        with_role: Add a role filter bound to $1.

    Returns:
        PostgreSQL query string ordered by technician id.
    """
    conditions = []
    if active_only:
        conditions.append("is_active = true")
    if with_role:
        conditions.append("role = $1")

    where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

    return f"""
        SELECT
            id::text AS id,
            name,
            role,
            email,
            is_active,
            abax_vehicle_id::text AS vehicle_id
        FROM technicians
        {where_clause}
        ORDER BY id
    """


def get_roster_count_query() -> str:
    """Count every technician on the roster, active or not."""
    return "SELECT COUNT(*) AS total FROM technicians"


def get_work_schedules_query() -> str:
    """
    Generate SQL query for weekly work schedules.

    Returns:
        Parameterized PostgreSQL query string ($1 technician ids).
    """
    return """
        SELECT id::text AS technician_id, work_schedule
        FROM technicians
        WHERE id::text = ANY($1::text[])
    """


def get_absences_query() -> str:
    """
    Generate SQL query for absences overlapping a window.

    Returns:
        Parameterized PostgreSQL query string ($1 technician ids, $2 window
        start, $3 window end exclusive).
    """
    return """
        SELECT technician_id::text AS technician_id, start_date, end_date
        FROM technician_absences
        WHERE technician_id::text = ANY($1::text[])
          AND start_date < $3::date
          AND end_date >= $2::date
        ORDER BY technician_id, start_date
    """
