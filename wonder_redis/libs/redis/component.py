"""
Redis command helpers.

``RedisComponent`` exposes a fixed set of string, key, list, sorted-set and
hash commands. Each helper borrows one pooled connection through
``RedisConnectionManager.execute``, runs a single command on it and releases
the connection before returning.
"""

from typing import Any, Dict, List, Mapping, Optional, Set, Type, TypeVar

from wonder_redis.libs.redis.connection import RedisConnectionManager
from wonder_redis.libs.redis.expiry import ExpireTime, TimeUnit, to_seconds
from wonder_redis.libs.redis.serialization import RedisSerializer
from wonder_redis.log.logging import logger

T = TypeVar("T")


class RedisComponent:
    """
    Convenience wrapper over a pooled Redis connection.

    Strings are stored as-is; any other value given to ``set`` is stored as
    JSON and can be read back with ``get_object`` or ``get_list``.
    """

    def __init__(self, connection_manager: RedisConnectionManager):
        self._connection_manager = connection_manager

    @property
    def connection_manager(self) -> RedisConnectionManager:
        return self._connection_manager

    async def _execute(self, command: str, task):
        return await self._connection_manager.execute(command, task)

    # Strings

    async def set(
        self,
        key: str,
        value: Any,
        expire: Optional[ExpireTime] = None,
        unit: TimeUnit = TimeUnit.SECONDS
    ) -> bool:
        """
        Store a value, optionally with an expiry.

        Args:
            key: Redis key
            value: A str is stored verbatim, anything else as JSON
            expire: Expiry amount in ``unit``s or a timedelta; None never expires
            unit: Unit of ``expire``

        Returns:
            True when Redis replied OK

        Raises:
            RedisSerializationError: If ``value`` cannot be encoded
            ValueError: If ``expire`` is not positive
        """
        data = value if isinstance(value, str) else RedisSerializer.serialize(value)

        if expire is None:
            return bool(await self._execute("SET", lambda client: client.set(key, data)))

        seconds = to_seconds(expire, unit)
        return bool(
            await self._execute("SET", lambda client: client.set(key, data, ex=seconds))
        )

    async def setnx(self, key: str, value: str) -> int:
        """Set ``key`` only if it does not exist. Returns 1 if set, 0 otherwise."""
        result = await self._execute("SETNX", lambda client: client.setnx(key, value))
        return int(bool(result))

    async def get(self, key: str) -> Optional[str]:
        return await self._execute("GET", lambda client: client.get(key))

    async def get_object(self, key: str, cls: Type[T]) -> Optional[T]:
        """
        Read a JSON value and validate it as ``cls``.

        Returns:
            The validated object, or None when the key is missing or blank

        Raises:
            RedisSerializationError: If the stored value is not valid for ``cls``
        """
        data = await self.get(key)
        if RedisSerializer.is_blank(data):
            logger.debug(f"No stored object for key: {key}")
            return None
        return RedisSerializer.deserialize_as(data, cls)

    async def get_list(self, key: str, cls: Type[T]) -> Optional[List[T]]:
        """
        Read a JSON array and validate each element as ``cls``.

        Returns:
            The validated list, or None when the key is missing or blank
        """
        data = await self.get(key)
        if RedisSerializer.is_blank(data):
            logger.debug(f"No stored list for key: {key}")
            return None
        return RedisSerializer.deserialize_list(data, cls)

    # Keys

    async def delete(self, *keys: str) -> int:
        """Delete keys and return how many existed."""
        if not keys:
            return 0
        return await self._execute("DEL", lambda client: client.delete(*keys))

    async def exists(self, key: str) -> bool:
        return bool(await self._execute("EXISTS", lambda client: client.exists(key)))

    async def get_expire_time(self, key: str) -> int:
        """Remaining TTL in seconds: -1 if the key never expires, -2 if it is missing."""
        return await self._execute("TTL", lambda client: client.ttl(key))

    async def set_expire(
        self,
        key: str,
        expire: ExpireTime,
        unit: TimeUnit = TimeUnit.SECONDS
    ) -> bool:
        """Set a TTL on an existing key. Returns False if the key does not exist."""
        seconds = to_seconds(expire, unit)
        return bool(await self._execute("EXPIRE", lambda client: client.expire(key, seconds)))

    async def keys(self, pattern: str = "*") -> Set[str]:
        """
        Keys matching a glob-style pattern.

        KEYS blocks the server while it walks the keyspace; avoid it on large
        production databases.
        """
        return set(await self._execute("KEYS", lambda client: client.keys(pattern)))

    async def increment(self, key: str, amount: int = 1) -> int:
        """Increment the integer at ``key`` and return the new value."""
        if amount == 1:
            return await self._execute("INCR", lambda client: client.incr(key))
        return await self._execute("INCRBY", lambda client: client.incrby(key, amount))

    # Lists

    async def lpush(self, key: str, *values: str) -> int:
        """Insert values at the head of the list. Returns the new length."""
        return await self._execute("LPUSH", lambda client: client.lpush(key, *values))

    async def rpush(self, key: str, *values: str) -> int:
        """Append values at the tail of the list. Returns the new length."""
        return await self._execute("RPUSH", lambda client: client.rpush(key, *values))

    async def lpop(self, key: str) -> Optional[str]:
        return await self._execute("LPOP", lambda client: client.lpop(key))

    async def rpop(self, key: str) -> Optional[str]:
        """Remove and return the last element of the list."""
        return await self._execute("RPOP", lambda client: client.rpop(key))

    async def lrange(self, key: str, start: int = 0, end: int = -1) -> List[str]:
        return await self._execute("LRANGE", lambda client: client.lrange(key, start, end))

    # Sorted sets

    async def zadd(self, key: str, score: float, member: str) -> int:
        """Add a member with a score. Returns 1 if the member is new."""
        return await self._execute("ZADD", lambda client: client.zadd(key, {member: score}))

    async def zrange(self, key: str, start: int, end: int) -> List[str]:
        """Members by ascending score; ``start`` and ``end`` are 0-based and inclusive."""
        return await self._execute("ZRANGE", lambda client: client.zrange(key, start, end))

    async def zscore(self, key: str, member: str) -> Optional[float]:
        return await self._execute("ZSCORE", lambda client: client.zscore(key, member))

    # Hashes

    async def hget(self, key: str, field: str) -> Optional[str]:
        return await self._execute("HGET", lambda client: client.hget(key, field))

    async def hmget(self, key: str, *fields: str) -> List[Optional[str]]:
        """Values of several fields, None for the missing ones."""
        return await self._execute("HMGET", lambda client: client.hmget(key, list(fields)))

    async def hset(self, key: str, field: str, value: str) -> int:
        """Set one field. Returns 1 if the field is new, 0 if it was updated."""
        return await self._execute("HSET", lambda client: client.hset(key, field, value))

    async def hmset(self, key: str, mapping: Mapping[str, str]) -> bool:
        """Set several fields at once."""
        # HMSET is deprecated server-side, HSET takes multiple pairs since 4.0
        await self._execute("HSET", lambda client: client.hset(key, mapping=dict(mapping)))
        return True

    async def hexists(self, key: str, field: str) -> bool:
        return bool(await self._execute("HEXISTS", lambda client: client.hexists(key, field)))

    async def hgetall(self, key: str) -> Dict[str, str]:
        return await self._execute("HGETALL", lambda client: client.hgetall(key))
