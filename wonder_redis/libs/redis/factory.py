"""
Redis component factory.

Builds the shared connection manager from application settings and hands out
a single ``RedisComponent`` bound to it.
"""

from typing import Optional

from wonder_redis.core.config import settings
from wonder_redis.libs.redis.circuit_breaker import CircuitBreaker
from wonder_redis.libs.redis.component import RedisComponent
from wonder_redis.libs.redis.connection import RedisConnectionManager
from wonder_redis.libs.redis.errors import RedisConnectionError
from wonder_redis.log.logging import logger


class RedisComponentFactory:
    """
    Factory holding the process-wide Redis connection manager and component.
    """

    # Singleton connection manager
    _connection_manager: Optional[RedisConnectionManager] = None

    # Singleton component bound to the manager
    _component: Optional[RedisComponent] = None

    _initialized = False

    @classmethod
    async def initialize(cls) -> bool:
        """
        Initialize the shared connection manager.

        Returns:
            True if initialization successful, False otherwise
        """
        if cls._initialized:
            return True

        if cls._connection_manager is None:
            circuit_breaker = CircuitBreaker(
                failure_threshold=settings.redis_circuit_failure_threshold,
                reset_timeout=settings.redis_circuit_reset_timeout
            )

            cls._connection_manager = RedisConnectionManager(
                host=settings.redis_host,
                port=settings.redis_port,
                db=settings.redis_db,
                password=settings.redis_password,
                max_connections=settings.redis_max_connections,
                connection_timeout=settings.redis_connection_timeout,
                health_check_interval=settings.redis_health_check_interval,
                max_retries=settings.redis_max_retries,
                initial_backoff_ms=settings.redis_initial_backoff_ms,
                max_backoff_ms=settings.redis_max_backoff_ms,
                circuit_breaker=circuit_breaker,
                url=settings.redis_url
            )

        success = await cls._connection_manager.initialize()

        if success:
            cls._initialized = True
            logger.info("Redis component factory initialized successfully")
        else:
            logger.error("Failed to initialize Redis component factory")

        return success

    @classmethod
    async def get_component(cls) -> RedisComponent:
        """
        Return the shared component, initializing the pool on first use.

        Raises:
            RedisConnectionError: If Redis cannot be reached
        """
        if cls._component is not None:
            return cls._component

        if not cls._initialized and not await cls.initialize():
            raise RedisConnectionError(
                f"Could not connect to Redis at {settings.redis_host}:{settings.redis_port}"
            )

        cls._component = RedisComponent(cls._connection_manager)
        return cls._component

    @classmethod
    async def close(cls) -> None:
        """Close the pool and forget the singletons."""
        if cls._connection_manager is not None:
            await cls._connection_manager.close()
        cls._connection_manager = None
        cls._component = None
        cls._initialized = False
        logger.info("Closed all Redis connections")


async def initialize_component() -> Optional[RedisComponent]:
    """
    Initialize the shared Redis component.

    Returns:
        The component, or None if Redis is unavailable
    """
    try:
        return await RedisComponentFactory.get_component()
    except Exception as e:
        logger.exception(f"Error initializing Redis component: {str(e)}")
        return None
