# redis_client.py - Async Redis cache used for landlord property listings

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TypeVar

import orjson
from redis.asyncio import ConnectionPool as AsyncConnectionPool
from redis.asyncio import Redis as AsyncRedis
from redis.exceptions import RedisError

from pgstay.core.config import Settings, settings
from pgstay.core.MongoORJSONResponse import bson_default
from pgstay.metrics.metrics import MetricsCollector

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RedisConfig:
    host: str
    port: int
    db: int = 0
    password: Optional[str] = None
    max_connections: int = 20
    socket_timeout: float = 2.0

    @classmethod
    def from_settings(cls, source: Settings = settings) -> "RedisConfig":
        return cls(
            host=source.redis_host,
            port=source.redis_port,
            db=source.redis_db,
            password=source.redis_password,
        )

    def validate(self) -> None:
        if not self.host:
            raise ValueError("REDIS_HOST is empty")
        if not 1 <= self.port <= 65535:
            raise ValueError(f"REDIS_PORT out of range: {self.port}")


class AsyncRedisClient:
    """
    Cache client that never fails its caller.

    A Redis error is logged and counted, and the call returns the
    operation's miss value instead (None, False or 0). Values are stored
    as orjson-encoded JSON.
    """

    def __init__(self, config: RedisConfig, metrics_collector: Optional[MetricsCollector] = None):
        config.validate()
        self.config = config
        self.metrics = metrics_collector
        self.pool = AsyncConnectionPool(
            host=config.host,
            port=config.port,
            db=config.db,
            password=config.password,
            decode_responses=True,
            max_connections=config.max_connections,
            socket_timeout=config.socket_timeout,
            socket_connect_timeout=config.socket_timeout,
        )
        self._client: Optional[AsyncRedis] = None

    async def get_client(self) -> AsyncRedis:
        if self._client is None:
            self._client = AsyncRedis(connection_pool=self.pool)
        return self._client

    async def _guarded(self, operation: str, call: Callable[[AsyncRedis], Awaitable[T]], miss: T) -> T:
        try:
            return await call(await self.get_client())
        except RedisError as e:
            logger.error(f"Redis {operation} failed, continuing without cache: {e}")
            if self.metrics:
                self.metrics.record_cache_error(operation)
            return miss

    async def ping(self) -> bool:
        return bool(await self._guarded("ping", lambda r: r.ping(), False))

    async def get(self, key: str) -> Optional[Any]:
        raw = await self._guarded("get", lambda r: r.get(key), None)
        if raw is None:
            return None
        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.warning(f"Ignoring undecodable cache entry '{key}'")
            return None

    async def set(self, key: str, value: Any, ex: Optional[int] = None) -> bool:
        payload = orjson.dumps(bson_default(value))
        return bool(await self._guarded("set", lambda r: r.set(key, payload, ex=ex), False))

    async def delete(self, *keys: str) -> int:
        return await self._guarded("delete", lambda r: r.delete(*keys), 0)

    async def close(self) -> None:
        if self._client is not None:
            await self._guarded("close", lambda r: r.aclose(), None)
        await self.pool.disconnect()
        logger.info("Redis connection pool closed")


def create_redis_key(namespace: str, *parts: str) -> str:
    """
    Join key parts with ':'.

        >>> create_redis_key("properties", "LL42")
        'properties:LL42'
    """
    return ":".join(str(part) for part in (namespace, *parts))
