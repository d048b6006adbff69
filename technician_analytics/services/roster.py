"""
Technician roster provider.

Reads technicians from the `technicians` table. Cohort membership is read
fresh on every call; nothing is cached between queries.
"""

import logging
from typing import List, Optional

from asyncpg import Pool

from technician_analytics.models.schemas import Technician
from technician_analytics.sql.technician_queries import get_roster_count_query, get_roster_query


logger = logging.getLogger(__name__)


class RosterProvider:
    """
    asyncpg-backed roster reader.

    Args:
        pool: asyncpg connection pool.
    """

    def __init__(self, pool: Pool):
        self.pool = pool

    async def list_technicians(
        self,
        active_only: bool = True,
        role: Optional[str] = None,
    ) -> List[Technician]:
        """
        List technicians ordered by id.

        Args:
            active_only: Only return technicians with is_active = true.
            role: Only return technicians with this role.

        Returns:
            Technicians from the roster.
        """
        query = get_roster_query(active_only=active_only, with_role=role is not None)
        args = (role,) if role is not None else ()

        async with self.pool.acquire() as conn:
            rows = await conn.fetch(query, *args)

        technicians = [
            Technician(
                id=row['id'],
                name=row['name'] or "",
                role=row['role'],
                email=row['email'],
                active=bool(row['is_active']),
                vehicle_id=row['vehicle_id'],
            )
            for row in rows
        ]
        logger.info(f"Roster returned {len(technicians)} technicians (active_only={active_only}, role={role})")
        return technicians

    async def count_technicians(self) -> int:
        """Number of technicians on the roster, active or not."""
        async with self.pool.acquire() as conn:
            return int(await conn.fetchval(get_roster_count_query()))
