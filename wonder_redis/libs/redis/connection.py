"""
Redis connection manager.

This module owns the Redis connection pool. Every command borrows exactly one
connection from the pool, runs on it, and hands it back in a ``finally`` block,
whatever the outcome. It also runs a background health check, feeds a circuit
breaker and retries commands that fail on the connection level.
"""

import asyncio
import random
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional, TypeVar

import redis.asyncio as redis
from redis.exceptions import (
    ConnectionError as RedisBaseConnectionError,
    RedisError as RedisBaseError,
    TimeoutError as RedisBaseTimeoutError,
)

from wonder_redis.core.config import build_redis_url, settings
from wonder_redis.libs.redis.circuit_breaker import CircuitBreaker
from wonder_redis.libs.redis.errors import (
    RedisCircuitBreakerOpenError,
    RedisConnectionError,
    RedisNotInitializedError,
    RedisOperationError,
)
from wonder_redis.log.logging import logger

T = TypeVar("T")

# Failures worth retrying; anything else is a server reply or a caller bug
RETRYABLE_ERRORS = (RedisBaseConnectionError, RedisBaseTimeoutError)

# Raised by BlockingConnectionPool when no connection frees up within its timeout
POOL_EXHAUSTED_MESSAGE = "No connection available"


def _is_pool_exhausted(error: Exception) -> bool:
    return (
        isinstance(error, RedisBaseConnectionError)
        and str(error).startswith(POOL_EXHAUSTED_MESSAGE)
    )


class RedisConnectionManager:
    """
    Redis connection manager.

    Wraps a ``redis.asyncio.BlockingConnectionPool``: when all
    ``max_connections`` are borrowed, callers wait up to
    ``connection_timeout`` seconds for one to be returned.
    """

    def __init__(
        self,
        host: str = settings.redis_host,
        port: int = settings.redis_port,
        db: int = settings.redis_db,
        password: Optional[str] = settings.redis_password,
        max_connections: int = settings.redis_max_connections,
        connection_timeout: float = settings.redis_connection_timeout,
        health_check_interval: int = settings.redis_health_check_interval,
        max_retries: int = settings.redis_max_retries,
        initial_backoff_ms: int = settings.redis_initial_backoff_ms,
        max_backoff_ms: int = settings.redis_max_backoff_ms,
        circuit_breaker: Optional[CircuitBreaker] = None,
        url: Optional[str] = None
    ):
        """
        Initialize the Redis connection manager.

        Args:
            host: Redis server hostname
            port: Redis server port
            db: Redis database number
            password: Redis password (empty or None for no auth)
            max_connections: Maximum number of connections in the pool
            connection_timeout: Socket and pool-wait timeout in seconds
            health_check_interval: Health check interval in seconds (0 disables)
            max_retries: Retries for connection-level command failures
            initial_backoff_ms: First retry delay in milliseconds
            max_backoff_ms: Upper bound for the retry delay in milliseconds
            circuit_breaker: Circuit breaker instance (created if not provided)
            url: Full redis:// URL; built from host, port, db and password if omitted
        """
        self._host = host
        self._port = port
        self._db = db
        self._password = password
        self._max_connections = max_connections
        self._connection_timeout = connection_timeout
        self._health_check_interval = health_check_interval
        self._max_retries = max_retries
        self._initial_backoff_ms = initial_backoff_ms
        self._max_backoff_ms = max_backoff_ms
        self._url = url or build_redis_url(host, port, db, password)

        self._circuit_breaker = circuit_breaker or CircuitBreaker(
            failure_threshold=settings.redis_circuit_failure_threshold,
            reset_timeout=settings.redis_circuit_reset_timeout,
        )

        self._pool: Optional[redis.BlockingConnectionPool] = None
        self._health_check_task: Optional[asyncio.Task] = None

        logger.info(
            f"Redis connection manager initialized for "
            f"{host}:{port}/{db} with {max_connections} max connections"
        )

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit_breaker

    @property
    def initialized(self) -> bool:
        return self._pool is not None

    async def initialize(self) -> bool:
        """
        Create the pool and verify the server answers PING.

        Returns:
            True if connection successful, False otherwise
        """
        if self._pool is not None:
            return True

        try:
            self._pool = self._create_pool()
            async with self._borrow() as client:
                await client.ping()

            self._start_health_check()

            logger.info("Redis connection initialized successfully")
            return True

        except Exception as e:
            logger.error(f"Failed to initialize Redis connection: {str(e)}")
            await self._discard_pool()
            return False

    @asynccontextmanager
    async def _borrow(
        self,
        pool: Optional[redis.BlockingConnectionPool] = None
    ) -> AsyncIterator[redis.Redis]:
        """Borrow one connection from ``pool`` (default: the live pool); always released on exit."""
        if pool is None:
            pool = self._pool
        if pool is None:
            raise RedisNotInitializedError("Redis connection pool not initialized")

        client = self._create_client(pool)
        try:
            await client.initialize()
            yield client
        finally:
            # Hands the connection back to the pool, the pool itself stays open
            await client.aclose()

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[redis.Redis]:
        """
        Borrow a single connection from the pool.

        Yields:
            A Redis client bound to one pooled connection

        Raises:
            RedisNotInitializedError: If the pool has not been created
            RedisCircuitBreakerOpenError: If the circuit breaker is open
        """
        if self._pool is None:
            raise RedisNotInitializedError("Redis connection pool not initialized")

        if not await self._circuit_breaker.is_allowed():
            raise RedisCircuitBreakerOpenError("Circuit breaker is open")

        async with self._borrow() as client:
            yield client

    async def execute(
        self,
        command: str,
        task: Callable[[redis.Redis], Awaitable[T]]
    ) -> T:
        """
        Run ``task`` on a borrowed connection and release it afterwards.

        Args:
            command: Command name, used in logs and errors
            task: Coroutine function receiving the borrowed client

        Returns:
            Whatever ``task`` returns

        Raises:
            RedisNotInitializedError: If the pool has not been created
            RedisCircuitBreakerOpenError: If the circuit breaker is open
            RedisOperationError: If the command fails after all retries
        """
        attempt = 0
        backoff_ms = self._initial_backoff_ms

        while True:
            start_time = time.perf_counter()
            try:
                async with self.acquire() as client:
                    result = await task(client)

            except RETRYABLE_ERRORS as e:
                # Waiting on our own exhausted pool says nothing about the server
                if not _is_pool_exhausted(e):
                    await self._circuit_breaker.record_failure()
                attempt += 1

                if attempt > self._max_retries:
                    logger.error(
                        f"Redis {command} failed after {attempt} attempt(s): {str(e)}"
                    )
                    raise RedisOperationError(
                        f"{command} failed: {str(e)}", command=command
                    ) from e

                jitter = random.uniform(0.8, 1.2)
                sleep_time = (backoff_ms / 1000.0) * jitter
                logger.warning(
                    f"Redis {command} error (attempt {attempt}/{self._max_retries}), "
                    f"retrying in {sleep_time:.2f}s: {str(e)}"
                )
                await asyncio.sleep(sleep_time)
                backoff_ms = min(backoff_ms * 2, self._max_backoff_ms)
                continue

            except RedisBaseError as e:
                # The server answered with an error, the connection is fine
                logger.error(f"Redis {command} rejected: {str(e)}")
                raise RedisOperationError(
                    f"{command} failed: {str(e)}", command=command
                ) from e

            await self._circuit_breaker.record_success()
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.debug(f"Redis {command} took {elapsed_ms:.2f}ms")
            return result

    async def ping(self) -> bool:
        """Return True if Redis answers PING, never raises."""
        try:
            return bool(await self.execute("PING", lambda client: client.ping()))
        except Exception as e:
            logger.warning(f"Redis ping failed: {str(e)}")
            return False

    def pool_stats(self) -> Dict[str, Any]:
        """Connection counts of the underlying pool."""
        if self._pool is None:
            return {"initialized": False, "max_connections": self._max_connections}

        in_use = len(getattr(self._pool, "_in_use_connections", ()))
        available = len(
            [c for c in getattr(self._pool, "_available_connections", ()) if c is not None]
        )
        return {
            "initialized": True,
            "max_connections": self._max_connections,
            "in_use": in_use,
            "available": available,
            "circuit_state": self._circuit_breaker.state.value,
        }

    async def close(self) -> None:
        """Stop the health check and disconnect every pooled connection."""
        if self._health_check_task:
            self._health_check_task.cancel()
            try:
                await self._health_check_task
            except asyncio.CancelledError:
                pass
            self._health_check_task = None

        if self._pool is not None:
            await self._discard_pool()
            logger.info("Redis connection pool closed")

    def _start_health_check(self) -> None:
        if self._health_check_interval <= 0:
            return
        if self._health_check_task is None or self._health_check_task.done():
            self._health_check_task = asyncio.create_task(self._health_check_loop())
            logger.debug("Redis health check task started")

    async def _health_check_loop(self) -> None:
        """Ping periodically; rebuild the pool when the server stops answering."""
        while True:
            try:
                await asyncio.sleep(self._health_check_interval)

                async with self._borrow() as client:
                    await client.ping()

                await self._circuit_breaker.record_success()
                logger.debug("Redis health check successful")

            except asyncio.CancelledError:
                logger.debug("Redis health check task cancelled")
                break

            except Exception as e:
                logger.error(f"Redis health check failed: {str(e)}")
                await self._circuit_breaker.record_failure()

                if await self._try_reconnect():
                    logger.info("Redis reconnection successful")
                else:
                    logger.error("Redis reconnection failed")

    async def _try_reconnect(self) -> bool:
        """
        Replace the pool with a fresh one once the fresh one answers PING.

        On failure the current pool is kept; its connections reconnect
        lazily when the server comes back.

        Returns:
            True if reconnection successful, False otherwise
        """
        new_pool = None
        try:
            new_pool = self._create_pool()

            async with self._borrow(new_pool) as client:
                await client.ping()

        except Exception as e:
            logger.error(f"Failed to reconnect to Redis: {str(e)}")
            if new_pool is not None:
                await self._disconnect(new_pool)
            return False

        old_pool, self._pool = self._pool, new_pool
        if old_pool is not None:
            await self._disconnect(old_pool)

        logger.info("Successfully reconnected to Redis")
        return True

    async def _discard_pool(self) -> None:
        pool, self._pool = self._pool, None
        if pool is not None:
            await self._disconnect(pool)

    async def _disconnect(self, pool: redis.BlockingConnectionPool) -> None:
        try:
            await pool.disconnect()
        except Exception as e:
            logger.warning(f"Error disconnecting Redis pool: {str(e)}")

    def _build_url(self) -> str:
        return self._url

    def _create_pool(self) -> redis.BlockingConnectionPool:
        """
        Create the connection pool.

        Raises:
            RedisConnectionError: If the pool cannot be created
        """
        try:
            return redis.BlockingConnectionPool.from_url(
                self._build_url(),
                max_connections=self._max_connections,
                timeout=self._connection_timeout,
                socket_timeout=self._connection_timeout,
                socket_connect_timeout=self._connection_timeout,
                health_check_interval=self._health_check_interval,
                encoding="utf-8",
                decode_responses=True,
            )
        except Exception as e:
            logger.error(f"Error creating Redis connection pool: {str(e)}")
            raise RedisConnectionError(f"Failed to create Redis pool: {str(e)}") from e

    def _create_client(self, pool: redis.BlockingConnectionPool) -> redis.Redis:
        return redis.Redis(connection_pool=pool, single_connection_client=True)
