"""
Async Redis client with connection pooling and retry.

Only the commands the cache version store needs are exposed: GET, SET
(with NX/EX) and INCRBY, plus connection lifecycle and health checks.
"""

from typing import Optional, Union

from redis.asyncio import ConnectionPool, Redis
from redis.asyncio.retry import Retry
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError, RedisError, TimeoutError

from motorshop.core.config import get_settings
from motorshop.core.logging import get_logger

logger = get_logger(__name__)


class RedisClient:
    """
    Async Redis client with a pooled connection and retry on timeouts.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        max_connections: Optional[int] = None,
        socket_timeout: float = 5.0,
        socket_connect_timeout: float = 5.0,
    ):
        """
        Args:
            url: Redis connection URL (defaults to settings.redis_url)
            max_connections: Maximum pool connections (defaults to settings)
            socket_timeout: Socket operation timeout in seconds
            socket_connect_timeout: Socket connection timeout in seconds
        """
        settings = get_settings()
        self._url = url or settings.redis_url
        self._max_connections = max_connections or settings.redis_max_connections
        self._socket_timeout = socket_timeout
        self._socket_connect_timeout = socket_connect_timeout

        self._pool: Optional[ConnectionPool] = None
        self._client: Optional[Redis] = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    @staticmethod
    def _sanitize_url(url: str) -> str:
        """Strip credentials from a Redis URL for logging."""
        if "://" in url and "@" in url:
            protocol, rest = url.split("://", 1)
            _, host_part = rest.split("@", 1)
            return f"{protocol}://***@{host_part}"
        return url

    async def connect(self) -> None:
        """
        Create the connection pool and verify it with PING.

        Raises:
            ConnectionError: If Redis cannot be reached
        """
        if self._client is not None:
            return

        self._pool = ConnectionPool.from_url(
            self._url,
            max_connections=self._max_connections,
            socket_timeout=self._socket_timeout,
            socket_connect_timeout=self._socket_connect_timeout,
            retry_on_timeout=True,
            retry=Retry(ExponentialBackoff(base=0.1, cap=2.0), retries=3),
            decode_responses=True,
        )
        self._client = Redis(connection_pool=self._pool)

        try:
            await self._client.ping()
        except (ConnectionError, TimeoutError) as e:
            logger.error(
                "Failed to connect to Redis",
                error=str(e),
                url=self._sanitize_url(self._url),
            )
            await self.disconnect()
            raise ConnectionError(f"Redis connection failed: {e}") from e

        logger.info(
            "Redis connection established",
            url=self._sanitize_url(self._url),
            pool_size=self._max_connections,
        )

    async def disconnect(self) -> None:
        """Close the client and its pool."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        if self._pool is not None:
            await self._pool.aclose()
            self._pool = None
        logger.info("Redis connection closed")

    async def health_check(self) -> bool:
        if self._client is None:
            return False
        try:
            await self._client.ping()
            return True
        except RedisError as e:
            logger.warning("Redis health check failed", error=str(e))
            return False

    def _require_client(self) -> Redis:
        if self._client is None:
            raise ConnectionError("Redis client is not connected")
        return self._client

    async def get(self, key: str) -> Optional[str]:
        """
        Get a value by key.

        Raises:
            ConnectionError: If Redis is not connected
            RedisError: If the command fails
        """
        client = self._require_client()
        try:
            return await client.get(key)
        except RedisError as e:
            logger.error("Redis GET operation failed", key=key, error=str(e))
            raise

    async def set(
        self,
        key: str,
        value: Union[str, int],
        ex: Optional[int] = None,
        nx: bool = False,
    ) -> bool:
        """
        Set a value, optionally with expiry or only when absent.

        Returns:
            True if the value was written
        """
        client = self._require_client()
        try:
            result = await client.set(key, value, ex=ex, nx=nx)
            logger.debug("Redis SET operation", key=key, ex=ex, nx=nx, success=bool(result))
            return bool(result)
        except RedisError as e:
            logger.error("Redis SET operation failed", key=key, error=str(e))
            raise

    async def incr(self, key: str, amount: int = 1) -> int:
        """
        Atomically increment a counter; absent keys start from 0.

        Returns:
            Value after the increment
        """
        client = self._require_client()
        try:
            value = await client.incrby(key, amount)
            logger.debug("Redis INCR operation", key=key, amount=amount, new_value=value)
            return value
        except RedisError as e:
            logger.error("Redis INCR operation failed", key=key, error=str(e))
            raise


_redis_client: Optional[RedisClient] = None


async def get_redis_client() -> RedisClient:
    """
    Get or create the process-wide connected Redis client.

    Raises:
        ConnectionError: If Redis connection fails
    """
    global _redis_client

    if _redis_client is None:
        client = RedisClient()
        await client.connect()
        _redis_client = client

    return _redis_client


async def close_redis_client() -> None:
    global _redis_client

    if _redis_client is not None:
        await _redis_client.disconnect()
        _redis_client = None
