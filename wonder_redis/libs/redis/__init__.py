"""
Redis helper package.

Pooled connection management plus a fixed set of Redis command helpers with
optional JSON serialization and TTL handling.
"""

from wonder_redis.libs.redis.component import RedisComponent
from wonder_redis.libs.redis.connection import RedisConnectionManager
from wonder_redis.libs.redis.factory import RedisComponentFactory, initialize_component
from wonder_redis.libs.redis.errors import (
    RedisError,
    RedisConnectionError,
    RedisNotInitializedError,
    RedisCircuitBreakerOpenError,
    RedisSerializationError,
    RedisOperationError
)
from wonder_redis.libs.redis.circuit_breaker import CircuitBreaker, CircuitState
from wonder_redis.libs.redis.expiry import TimeUnit, to_seconds
from wonder_redis.libs.redis.serialization import RedisSerializer

__all__ = [
    'RedisComponent',
    'RedisConnectionManager',
    'RedisComponentFactory',
    'initialize_component',
    'RedisError',
    'RedisConnectionError',
    'RedisNotInitializedError',
    'RedisCircuitBreakerOpenError',
    'RedisSerializationError',
    'RedisOperationError',
    'CircuitBreaker',
    'CircuitState',
    'TimeUnit',
    'to_seconds',
    'RedisSerializer'
]
