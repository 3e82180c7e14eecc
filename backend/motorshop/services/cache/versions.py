"""
Cache namespace versioning.

Readers embed the current namespace version in their cache keys, so a
bump invalidates every key in the namespace at once. Versions start at
1 and only ever increase.
"""

import asyncio
from typing import Optional

from motorshop.cache.redis_client import RedisClient, get_redis_client
from motorshop.core.logging import get_logger

logger = get_logger(__name__)

ORDERS = "orders"
ORDER_HISTORIES = "order_histories"
ATTACHMENTS = "attachments"

INITIAL_VERSION = 1


def version_key(namespace: str) -> str:
    return f"{namespace}:version"


class CacheVersionStore:
    """Interface for namespace version counters."""

    async def bump_version(self, namespace: str) -> int:
        raise NotImplementedError

    async def current_version(self, namespace: str) -> int:
        raise NotImplementedError


class RedisCacheVersionStore(CacheVersionStore):
    """
    Namespace versions kept as Redis counters under ``<namespace>:version``.
    """

    def __init__(self, client: Optional[RedisClient] = None):
        self._client = client

    async def _get_client(self) -> RedisClient:
        if self._client is None:
            self._client = await get_redis_client()
        return self._client

    async def bump_version(self, namespace: str) -> int:
        """
        Atomically increment the namespace version with a single INCR.

        Redis starts absent counters at 0, so the first bump returns 1.
        """
        client = await self._get_client()
        version = await client.incr(version_key(namespace))
        logger.info("Cache namespace version bumped", namespace=namespace, version=version)
        return version

    async def current_version(self, namespace: str) -> int:
        """
        Read the namespace version, initializing it to 1 when absent.
        """
        client = await self._get_client()
        key = version_key(namespace)
        value = await client.get(key)
        if value is None:
            await client.set(key, INITIAL_VERSION, nx=True)
            value = await client.get(key)
        return int(value) if value is not None else INITIAL_VERSION


class InMemoryCacheVersionStore(CacheVersionStore):
    """Process-local version counters, used in tests and single-node setups."""

    def __init__(self):
        self._versions: dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def bump_version(self, namespace: str) -> int:
        async with self._lock:
            version = self._versions.get(namespace, 0) + 1
            self._versions[namespace] = version
        logger.debug("Cache namespace version bumped", namespace=namespace, version=version)
        return version

    async def current_version(self, namespace: str) -> int:
        async with self._lock:
            return self._versions.setdefault(namespace, INITIAL_VERSION)
