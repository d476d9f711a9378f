"""
Pytest configuration and fixtures.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from wonder_redis.libs.redis.circuit_breaker import CircuitBreaker
from wonder_redis.libs.redis.connection import RedisConnectionManager
from wonder_redis.libs.redis.factory import RedisComponentFactory


@pytest.fixture(autouse=True)
def reset_component_factory():
    """
    Forget the factory singletons after each test so no pool or mock leaks
    from one test into the next.
    """
    yield
    RedisComponentFactory._connection_manager = None
    RedisComponentFactory._component = None
    RedisComponentFactory._initialized = False


@pytest.fixture
def mock_redis():
    """A mock single-connection Redis client; every command is awaitable."""
    client = AsyncMock()
    client.ping.return_value = True
    return client


@pytest.fixture
def mock_pool():
    pool = MagicMock()
    pool.disconnect = AsyncMock()
    return pool


@pytest.fixture
def circuit_breaker():
    return CircuitBreaker(failure_threshold=3, reset_timeout=30)


@pytest.fixture
def connection_manager(mock_redis, mock_pool, circuit_breaker):
    """A connection manager whose pool hands out ``mock_redis``."""
    manager = RedisConnectionManager(
        host="localhost",
        port=6379,
        health_check_interval=0,
        max_retries=2,
        initial_backoff_ms=10,
        max_backoff_ms=100,
        circuit_breaker=circuit_breaker
    )
    manager._pool = mock_pool
    manager._create_client = MagicMock(return_value=mock_redis)
    return manager
