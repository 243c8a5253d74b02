"""
Redis Repository Base Class

Shared key handling, hash encoding and script execution for the
Redis-backed repositories, plus the pooled connection manager.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

import redis
from redis.exceptions import ConnectionError as RedisConnectionError

from filedrop.domain.errors import MetadataError

logger = logging.getLogger(__name__)


def to_timestamp(value: datetime) -> float:
    """Epoch seconds used as sorted-set score."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.timestamp()


def from_timestamp(value: Union[str, bytes, float, None]) -> Optional[datetime]:
    if value in (None, b"", ""):
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    return datetime.fromtimestamp(float(value), tz=timezone.utc)


class RedisRepository:
    """Base Redis repository with prefixed keys and script helpers."""

    def __init__(self, redis_client: redis.Redis, key_prefix: str = ""):
        self.redis = redis_client
        self.key_prefix = key_prefix

    def _make_key(self, key: str) -> str:
        """Create a prefixed key for Redis storage."""
        return f"{self.key_prefix}:{key}" if self.key_prefix else key

    @staticmethod
    def _decode(value: Any) -> Any:
        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def _decode_hash(self, raw: Dict[Any, Any]) -> Dict[str, str]:
        return {self._decode(k): self._decode(v) for k, v in (raw or {}).items()}

    def _decode_list(self, raw: List[Any]) -> List[str]:
        return [self._decode(item) for item in raw or []]

    def _run_script(self, script: str, keys: List[str], args: List[Any]) -> Any:
        """
        Execute a Lua script atomically.

        Raises:
            MetadataError: If Redis is unreachable or rejects the script
        """
        try:
            return self.redis.eval(script, len(keys), *keys, *args)
        except redis.RedisError as e:
            logger.error(f"Redis script failed on {keys[0] if keys else '?'}: {e}", exc_info=True)
            raise MetadataError("Metadata store operation failed", original_error=e)


class RedisConnectionManager:
    """Manages Redis connection with connection pooling."""

    def __init__(self, host: str = 'localhost', port: int = 6379, db: int = 0,
                 password: Optional[str] = None, max_connections: int = 20,
                 socket_timeout: Optional[float] = 5.0, decode_responses: bool = True):
        self.connection_pool = redis.ConnectionPool(
            host=host,
            port=port,
            db=db,
            password=password,
            max_connections=max_connections,
            decode_responses=decode_responses,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
            retry_on_timeout=True,
            socket_keepalive=True,
        )
        self._client = None

    @property
    def client(self) -> redis.Redis:
        """Get Redis client instance with connection pooling."""
        if self._client is None:
            self._client = redis.Redis(connection_pool=self.connection_pool)
        return self._client

    def health_check(self) -> bool:
        """Check if Redis connection is healthy."""
        try:
            return bool(self.client.ping())
        except (RedisConnectionError, redis.TimeoutError):
            return False

    def close(self):
        """Close the connection pool."""
        if self.connection_pool:
            self.connection_pool.disconnect()
