"""
Core infrastructure package for the technician analytics backend.

Provides:
- Configuration management via pydantic-settings
- Async PostgreSQL database connectivity via asyncpg
- The analytics exception hierarchy

FastAPI dependencies live in core.dependencies and are imported from there
directly, since they depend on the services package.

Usage Examples:
    from technician_analytics.core import get_settings, init_db, close_db

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await init_db()
        yield
        await close_db()
"""

from technician_analytics.core.config import Settings, get_settings
from technician_analytics.core.database import init_db, close_db, get_db_pool
from technician_analytics.core.exceptions import (
    AnalyticsError,
    SourceUnavailable,
    EmptyCohort,
    InvalidWindow,
    MalformedRecord,
    TelemetryUnavailable,
)

__all__ = [
    # Configuration management (from config.py)
    'Settings',
    'get_settings',
    # Database pool lifecycle (from database.py)
    'init_db',
    'close_db',
    'get_db_pool',
    # Exceptions (from exceptions.py)
    'AnalyticsError',
    'SourceUnavailable',
    'EmptyCohort',
    'InvalidWindow',
    'MalformedRecord',
    'TelemetryUnavailable',
]
