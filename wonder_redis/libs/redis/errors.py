"""
Redis-specific error classes.

Every error raised by the Redis helpers derives from ``RedisError``.
"""

from typing import Optional


class RedisError(Exception):
    """Base class for Redis-related errors."""
    pass


class RedisConnectionError(RedisError):
    """Error creating or reaching the Redis connection pool."""
    pass


class RedisNotInitializedError(RedisConnectionError):
    """A command was issued before initialize() or after close()."""
    pass


class RedisCircuitBreakerOpenError(RedisError):
    """Error indicating the circuit breaker is open."""
    pass


class RedisSerializationError(RedisError):
    """Error during serialization, deserialization or validation of stored data."""
    pass


class RedisOperationError(RedisError):
    """A Redis command failed after all retry attempts."""

    def __init__(self, message: str, command: Optional[str] = None):
        super().__init__(message)
        self.command = command
