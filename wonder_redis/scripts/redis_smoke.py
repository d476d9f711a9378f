"""
Smoke-check the Redis helpers against a live server.

Writes a key through the shared component, checks Redis acknowledged it, and
reads the value back. Connection settings come from the REDIS_* environment
variables.
"""

import argparse
import asyncio
import sys

from wonder_redis.libs.redis.factory import RedisComponentFactory
from wonder_redis.log.logging import logger


async def run_smoke_check(key: str, value: str) -> bool:
    """Set ``key`` to ``value`` and read it back. Returns True on success."""
    try:
        component = await RedisComponentFactory.get_component()

        if not await component.set(key, value):
            logger.error(f"❌ SET {key} was not acknowledged")
            return False
        logger.info(f"✅ SET {key} acknowledged")

        stored = await component.get(key)
        print(stored)
        if stored != value:
            logger.error(f"❌ GET {key} returned {stored!r}, expected {value!r}")
            return False

        logger.info(f"✅ GET {key} returned the stored value")
        logger.info(f"Pool stats: {component.connection_manager.pool_stats()}")
        return True

    except Exception as e:
        logger.exception(f"Redis smoke check failed: {str(e)}")
        return False

    finally:
        await RedisComponentFactory.close()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Smoke-check the Redis helpers")
    parser.add_argument("--key", default="a", help="Key to write")
    parser.add_argument("--value", default="c", help="Value to write")
    args = parser.parse_args()

    ok = asyncio.run(run_smoke_check(args.key, args.value))
    sys.exit(0 if ok else 1)
