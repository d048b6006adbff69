"""
Tests for configuration, the database pool lifecycle, the engine dependency
and the exception hierarchy.
"""

from datetime import date
from unittest.mock import AsyncMock, patch

import pytest

from technician_analytics.core import database
from technician_analytics.core.config import Settings, get_settings
from technician_analytics.core.dependencies import get_performance_engine
from technician_analytics.core.exceptions import (
    AnalyticsError,
    EmptyCohort,
    InvalidWindow,
    MalformedRecord,
    SourceUnavailable,
    TelemetryUnavailable,
)
from technician_analytics.services.case_store import CaseRecordStore
from technician_analytics.services.performance_engine import PerformanceEngine


@pytest.fixture
def env(monkeypatch):
    """Environment with only DATABASE_URL set and a fresh settings cache."""
    monkeypatch.setenv('DATABASE_URL', 'postgresql://env:env@db:5432/portal')
    get_settings.cache_clear()
    yield monkeypatch
    get_settings.cache_clear()


@pytest.fixture
def reset_pool():
    database._pool = None
    yield
    database._pool = None


class TestSettings:
    """Tests for Settings and get_settings()."""

    def test_defaults(self, env):
        settings = Settings(_env_file=None)

        assert settings.database_url == 'postgresql://env:env@db:5432/portal'
        assert settings.fetch_concurrency == 4
        assert settings.fetch_batch_size == 10
        assert settings.utilization_low_threshold == 60.0
        assert settings.utilization_overbooked_threshold == 95.0
        assert settings.route_distance_min_km == 8.0
        assert settings.route_distance_max_km == 14.0
        assert settings.route_distance_seed is None
        assert settings.telemetry_client_id is None

    def test_environment_overrides(self, env):
        env.setenv('FETCH_CONCURRENCY', '8')
        env.setenv('UTILIZATION_LOW_THRESHOLD', '55.5')
        env.setenv('ROUTE_DISTANCE_SEED', '123')

        settings = Settings(_env_file=None)

        assert settings.fetch_concurrency == 8
        assert settings.utilization_low_threshold == 55.5
        assert settings.route_distance_seed == 123

    def test_get_settings_is_cached(self, env):
        assert get_settings() is get_settings()


@pytest.mark.asyncio
class TestDatabasePool:
    """Tests for the pool singleton."""

    async def test_init_creates_pool_once(self, env, reset_pool, mock_db_pool):
        with patch('technician_analytics.core.database.asyncpg.create_pool',
                   new=AsyncMock(return_value=mock_db_pool)) as create_pool:
            first = await database.init_db()
            second = await database.get_db_pool()

        assert first is second is mock_db_pool
        create_pool.assert_awaited_once()
        kwargs = create_pool.call_args.kwargs
        assert kwargs['dsn'] == 'postgresql://env:env@db:5432/portal'
        assert kwargs['max_size'] == 10

    async def test_get_pool_initializes_lazily(self, env, reset_pool, mock_db_pool):
        with patch('technician_analytics.core.database.asyncpg.create_pool',
                   new=AsyncMock(return_value=mock_db_pool)):
            assert await database.get_db_pool() is mock_db_pool

    async def test_close(self, reset_pool, mock_db_pool):
        database._pool = mock_db_pool

        await database.close_db()
        await database.close_db()

        mock_db_pool.close.assert_awaited_once()
        assert database._pool is None

    async def test_engine_dependency_uses_shared_pool(self, reset_pool, mock_db_pool, settings):
        database._pool = mock_db_pool

        engine = await get_performance_engine(settings)

        assert isinstance(engine, PerformanceEngine)
        assert isinstance(engine.store, CaseRecordStore)
        assert engine.store.pool is mock_db_pool
        assert not engine.telemetry.is_configured
        assert engine.optimizer.estimator.min_km == settings.route_distance_min_km


class TestExceptions:
    """Tests for the exception hierarchy."""

    def test_hierarchy(self):
        for error in (
            SourceUnavailable('contract'),
            EmptyCohort(),
            InvalidWindow(date(2026, 3, 2), date(2026, 3, 1)),
            MalformedRecord('Negative amount'),
            TelemetryUnavailable('down'),
        ):
            assert isinstance(error, AnalyticsError)

    def test_messages(self):
        original = ConnectionResetError('reset by peer')

        assert str(SourceUnavailable('business', original)) == (
            "Case store 'business' is unavailable (Original error: reset by peer)"
        )
        assert str(InvalidWindow(date(2026, 3, 2), date(2026, 3, 1))) == (
            "Invalid window: end 2026-03-01 is before start 2026-03-02"
        )
        assert str(MalformedRecord('Missing amount', 'c-9', 'individual')) == (
            "Missing amount | Source: individual | Case: c-9"
        )
