"""
FastAPI dependency injection module for the technician analytics backend.

This module provides reusable FastAPI dependencies for configuration access
and the analytics engine, enabling loose coupling between endpoint handlers
and infrastructure components.

Key Dependencies Provided:
- get_settings_dependency: Returns the cached Settings singleton
- get_performance_engine: Builds a PerformanceEngine over the shared pool
- SettingsDep: Type alias for injecting Settings into endpoints
- EngineDep: Type alias for injecting the PerformanceEngine into endpoints

Usage Examples:
    @router.get("/cohort")
    async def get_cohort(engine: EngineDep) -> CohortPerformanceResponse:
        return await engine.get_cohort_performance(start, end)

    # In tests, replace the engine with a fake:
    app.dependency_overrides[get_performance_engine] = lambda: fake_engine
"""

from typing import Annotated

from fastapi import Depends

from technician_analytics.core.config import Settings, get_settings
from technician_analytics.core.database import get_db_pool
from technician_analytics.services.performance_engine import PerformanceEngine


# =============================================================================
# Settings Dependency
# =============================================================================

def get_settings_dependency() -> Settings:
    """
    Return the Settings singleton instance.

    This is a thin wrapper around get_settings() so it can be replaced via
    app.dependency_overrides in tests.

    Returns:
        Settings: The cached Settings instance.
    """
    return get_settings()


# Usage: async def endpoint(settings: SettingsDep)
SettingsDep = Annotated[Settings, Depends(get_settings_dependency)]


# =============================================================================
# Engine Dependency
# =============================================================================

async def get_performance_engine(settings: SettingsDep) -> PerformanceEngine:
    """
    Build a PerformanceEngine over the shared connection pool.

    A new engine is built per request; it holds no state beyond the pool
    reference and settings.

    Returns:
        PerformanceEngine: Engine wired to the case stores, roster,
            scheduling provider and telemetry client.
    """
    pool = await get_db_pool()
    return PerformanceEngine.from_pool(pool, settings)


# Usage: async def endpoint(engine: EngineDep)
EngineDep = Annotated[PerformanceEngine, Depends(get_performance_engine)]
