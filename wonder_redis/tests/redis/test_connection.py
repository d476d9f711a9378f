"""
Tests for the Redis connection manager.
"""

import pytest
import asyncio
import time
from unittest.mock import AsyncMock, MagicMock, patch
from redis.exceptions import (
    ConnectionError as RedisBaseConnectionError,
    ResponseError,
    TimeoutError as RedisBaseTimeoutError,
)

from wonder_redis.libs.redis.circuit_breaker import CircuitState
from wonder_redis.libs.redis.connection import RedisConnectionManager
from wonder_redis.libs.redis.errors import (
    RedisCircuitBreakerOpenError,
    RedisConnectionError,
    RedisNotInitializedError,
    RedisOperationError,
)


@pytest.fixture
def fresh_manager(mock_redis, mock_pool, circuit_breaker):
    """A manager that has not been initialized yet."""
    manager = RedisConnectionManager(
        host="localhost",
        port=6379,
        health_check_interval=0,
        circuit_breaker=circuit_breaker
    )
    manager._create_pool = MagicMock(return_value=mock_pool)
    manager._create_client = MagicMock(return_value=mock_redis)
    return manager


@pytest.mark.asyncio
async def test_initialize_success(fresh_manager, mock_redis):
    """Initialization creates the pool and pings once through a borrowed connection."""
    result = await fresh_manager.initialize()

    assert result is True
    assert fresh_manager.initialized
    mock_redis.ping.assert_awaited_once()
    mock_redis.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_initialize_is_idempotent(fresh_manager):
    await fresh_manager.initialize()
    await fresh_manager.initialize()

    fresh_manager._create_pool.assert_called_once()


@pytest.mark.asyncio
async def test_initialize_failure(fresh_manager, mock_redis, mock_pool):
    """A failed ping leaves the manager uninitialized and disconnects the pool."""
    mock_redis.ping.side_effect = RedisBaseConnectionError("Failed to connect")

    result = await fresh_manager.initialize()

    assert result is False
    assert not fresh_manager.initialized
    mock_pool.disconnect.assert_awaited_once()


@pytest.mark.asyncio
async def test_initialize_pool_creation_failure(circuit_breaker):
    manager = RedisConnectionManager(health_check_interval=0, circuit_breaker=circuit_breaker)
    manager._create_pool = MagicMock(side_effect=RedisConnectionError("bad url"))

    assert await manager.initialize() is False
    assert not manager.initialized


@pytest.mark.asyncio
async def test_initialize_starts_health_check(fresh_manager):
    fresh_manager._health_check_interval = 60

    await fresh_manager.initialize()

    assert fresh_manager._health_check_task is not None
    await fresh_manager.close()
    assert fresh_manager._health_check_task is None


@pytest.mark.asyncio
async def test_acquire_not_initialized(fresh_manager):
    with pytest.raises(RedisNotInitializedError):
        async with fresh_manager.acquire():
            pass


@pytest.mark.asyncio
async def test_acquire_circuit_open(connection_manager, circuit_breaker):
    """An open breaker refuses the borrow before any connection is taken."""
    circuit_breaker.state = CircuitState.OPEN
    circuit_breaker.last_failure_time = time.monotonic()

    with pytest.raises(RedisCircuitBreakerOpenError):
        async with connection_manager.acquire():
            pass

    connection_manager._create_client.assert_not_called()


@pytest.mark.asyncio
async def test_acquire_releases_connection(connection_manager, mock_redis, mock_pool):
    async with connection_manager.acquire() as client:
        assert client is mock_redis

    connection_manager._create_client.assert_called_once_with(mock_pool)
    mock_redis.initialize.assert_awaited_once()
    mock_redis.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_execute_success(connection_manager, mock_redis, circuit_breaker):
    mock_redis.get.return_value = "value"

    result = await connection_manager.execute("GET", lambda client: client.get("key"))

    assert result == "value"
    mock_redis.get.assert_awaited_once_with("key")
    mock_redis.aclose.assert_awaited_once()
    assert circuit_breaker.failure_count == 0


@pytest.mark.asyncio
async def test_execute_releases_connection_when_task_raises(connection_manager, mock_redis):
    """The connection goes back to the pool even if the task itself blows up."""
    async def broken_task(client):
        raise ValueError("boom")

    with pytest.raises(ValueError):
        await connection_manager.execute("GET", broken_task)

    mock_redis.aclose.assert_awaited_once()


@pytest.mark.asyncio
async def test_execute_releases_connection_when_borrow_fails(connection_manager, mock_redis):
    mock_redis.initialize.side_effect = RedisBaseConnectionError("pool exhausted")
    connection_manager._max_retries = 0

    with pytest.raises(RedisOperationError):
        await connection_manager.execute("GET", lambda client: client.get("key"))

    mock_redis.aclose.assert_awaited_once()
    mock_redis.get.assert_not_awaited()


@pytest.mark.asyncio
@patch("asyncio.sleep")
async def test_execute_with_retry(mock_sleep, connection_manager, mock_redis):
    """A connection error is retried on a freshly borrowed connection."""
    mock_redis.get.side_effect = [
        RedisBaseConnectionError("Connection error"),
        "retry_success"
    ]

    result = await connection_manager.execute("GET", lambda client: client.get("key"))

    assert result == "retry_success"
    assert mock_redis.get.await_count == 2
    assert mock_redis.aclose.await_count == 2
    mock_sleep.assert_awaited_once()


@pytest.mark.asyncio
@patch("asyncio.sleep")
async def test_execute_max_retries_exceeded(mock_sleep, connection_manager, mock_redis, circuit_breaker):
    mock_redis.get.side_effect = RedisBaseTimeoutError("Timeout")

    with pytest.raises(RedisOperationError) as exc_info:
        await connection_manager.execute("GET", lambda client: client.get("key"))

    assert exc_info.value.command == "GET"
    assert isinstance(exc_info.value.__cause__, RedisBaseTimeoutError)
    assert mock_redis.get.await_count == 3  # Initial + 2 retries
    assert mock_sleep.await_count == 2
    # Three consecutive failures reach the threshold of 3
    assert circuit_breaker.state == CircuitState.OPEN


@pytest.mark.asyncio
@patch("asyncio.sleep")
async def test_execute_backoff_grows(mock_sleep, connection_manager, mock_redis):
    mock_redis.get.side_effect = RedisBaseConnectionError("Connection error")

    with patch("random.uniform", return_value=1.0):
        with pytest.raises(RedisOperationError):
            await connection_manager.execute("GET", lambda client: client.get("key"))

    delays = [call.args[0] for call in mock_sleep.await_args_list]
    assert delays == [0.01, 0.02]


@pytest.mark.asyncio
async def test_execute_response_error_not_retried(connection_manager, mock_redis, circuit_breaker):
    """Server-side errors mean the connection is healthy, so no retry."""
    mock_redis.incr.side_effect = ResponseError("value is not an integer")

    with pytest.raises(RedisOperationError) as exc_info:
        await connection_manager.execute("INCR", lambda client: client.incr("key"))

    assert exc_info.value.command == "INCR"
    mock_redis.incr.assert_awaited_once()
    assert circuit_breaker.failure_count == 0


@pytest.mark.asyncio
async def test_ping(connection_manager):
    assert await connection_manager.ping() is True


@pytest.mark.asyncio
async def test_ping_failure_returns_false(connection_manager, mock_redis):
    connection_manager._max_retries = 0
    mock_redis.ping.side_effect = RedisBaseConnectionError("down")

    assert await connection_manager.ping() is False


def test_pool_stats_not_initialized(fresh_manager):
    stats = fresh_manager.pool_stats()

    assert stats["initialized"] is False
    assert stats["max_connections"] == 10


def test_pool_stats(connection_manager, mock_pool):
    mock_pool._in_use_connections = {object()}
    mock_pool._available_connections = [object(), object()]

    stats = connection_manager.pool_stats()

    assert stats["initialized"] is True
    assert stats["in_use"] == 1
    assert stats["available"] == 2
    assert stats["circuit_state"] == "closed"


@pytest.mark.asyncio
async def test_close(connection_manager, mock_pool):
    connection_manager._health_check_task = asyncio.create_task(asyncio.sleep(1))

    await connection_manager.close()

    mock_pool.disconnect.assert_awaited_once()
    assert not connection_manager.initialized
    assert connection_manager._health_check_task is None

    # A second close is a no-op
    await connection_manager.close()
    mock_pool.disconnect.assert_awaited_once()


@pytest.mark.asyncio
async def test_execute_after_close(connection_manager):
    await connection_manager.close()

    with pytest.raises(RedisNotInitializedError):
        await connection_manager.execute("GET", lambda client: client.get("key"))


@pytest.mark.asyncio
async def test_health_check_success(connection_manager, mock_redis, circuit_breaker):
    """One health-check iteration pings and records success."""
    sleep_counter = 0

    async def mock_sleep(seconds):
        nonlocal sleep_counter
        sleep_counter += 1
        if sleep_counter > 1:
            raise asyncio.CancelledError()

    circuit_breaker.failure_count = 2

    with patch("asyncio.sleep", side_effect=mock_sleep):
        await connection_manager._health_check_loop()

    mock_redis.ping.assert_awaited_once()
    assert circuit_breaker.failure_count == 0


@pytest.mark.asyncio
async def test_health_check_failure_reconnects(connection_manager, mock_redis, mock_pool, circuit_breaker):
    """A failed health check records the failure and rebuilds the pool."""
    sleep_counter = 0

    async def mock_sleep(seconds):
        nonlocal sleep_counter
        sleep_counter += 1
        if sleep_counter > 1:
            raise asyncio.CancelledError()

    mock_redis.ping.side_effect = [RedisBaseConnectionError("Health check failed"), True]
    new_pool = MagicMock()
    new_pool.disconnect = AsyncMock()
    connection_manager._create_pool = MagicMock(return_value=new_pool)

    with patch("asyncio.sleep", side_effect=mock_sleep):
        await connection_manager._health_check_loop()

    assert circuit_breaker.failure_count == 1
    mock_pool.disconnect.assert_awaited_once()
    assert connection_manager._pool is new_pool


@pytest.mark.asyncio
async def test_reconnect_failure_keeps_pool(connection_manager, mock_redis, mock_pool, circuit_breaker):
    """A failed reconnect keeps the current pool, so commands work once Redis is back."""
    mock_redis.ping.side_effect = RedisBaseConnectionError("Failed to reconnect")
    new_pool = MagicMock()
    new_pool.disconnect = AsyncMock()
    connection_manager._create_pool = MagicMock(return_value=new_pool)

    result = await connection_manager._try_reconnect()

    assert result is False
    assert connection_manager.initialized
    assert connection_manager._pool is mock_pool
    new_pool.disconnect.assert_awaited_once()
    mock_pool.disconnect.assert_not_awaited()
    assert circuit_breaker.failure_count == 0

    # Server answers again
    mock_redis.ping.side_effect = None
    mock_redis.get.return_value = "value"

    assert await connection_manager.execute("GET", lambda client: client.get("key")) == "value"


@pytest.mark.asyncio
async def test_health_check_failed_reconnect_counts_once(connection_manager, mock_redis, mock_pool, circuit_breaker):
    """An outage seen by one health-check tick counts as a single breaker failure."""
    sleep_counter = 0

    async def mock_sleep(seconds):
        nonlocal sleep_counter
        sleep_counter += 1
        if sleep_counter > 1:
            raise asyncio.CancelledError()

    mock_redis.ping.side_effect = RedisBaseConnectionError("Connection refused")
    new_pool = MagicMock()
    new_pool.disconnect = AsyncMock()
    connection_manager._create_pool = MagicMock(return_value=new_pool)

    with patch("asyncio.sleep", side_effect=mock_sleep):
        await connection_manager._health_check_loop()

    assert circuit_breaker.failure_count == 1
    assert connection_manager._pool is mock_pool
    mock_pool.disconnect.assert_not_awaited()


@pytest.mark.asyncio
async def test_execute_pool_exhausted_does_not_trip_breaker(connection_manager, mock_redis, circuit_breaker):
    """Waiting too long for a free pooled connection is not a server failure."""
    connection_manager._max_retries = 0
    mock_redis.initialize.side_effect = RedisBaseConnectionError("No connection available.")

    with pytest.raises(RedisOperationError):
        await connection_manager.execute("GET", lambda client: client.get("key"))

    assert circuit_breaker.failure_count == 0
    mock_redis.aclose.assert_awaited_once()


def test_url_overrides_host_and_port(circuit_breaker):
    manager = RedisConnectionManager(
        host="ignored", port=1, url="redis://cache:6380/3", circuit_breaker=circuit_breaker
    )

    assert manager._build_url() == "redis://cache:6380/3"


def test_build_url_with_password(circuit_breaker):
    manager = RedisConnectionManager(
        host="cache", port=6380, db=2, password="secret", circuit_breaker=circuit_breaker
    )

    assert manager._build_url() == "redis://:secret@cache:6380/2"


def test_build_url_without_password(circuit_breaker):
    manager = RedisConnectionManager(
        host="cache", port=6379, db=0, password="", circuit_breaker=circuit_breaker
    )

    assert manager._build_url() == "redis://cache:6379/0"
