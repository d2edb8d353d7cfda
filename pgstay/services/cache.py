import logging
from typing import Any, List, Optional

from pgstay.utils.redis_client import AsyncRedisClient, create_redis_key

logger = logging.getLogger(__name__)


class PropertyCache:
    """Landlord property-list cache under ``properties:{landlordId}``.

    Reads miss and writes/invalidations are dropped when Redis is down; the
    database stays the only source of truth.
    """

    namespace = "properties"

    def __init__(self, redis_client: AsyncRedisClient, ttl: int):
        self.redis = redis_client
        self.ttl = ttl

    def key(self, landlord_id: str) -> str:
        return create_redis_key(self.namespace, landlord_id)

    async def get(self, landlord_id: str) -> Optional[List[Any]]:
        return await self.redis.get(self.key(landlord_id))

    async def set(self, landlord_id: str, summaries: List[Any]) -> bool:
        return await self.redis.set(self.key(landlord_id), summaries, ex=self.ttl)

    async def invalidate(self, landlord_id: str) -> None:
        removed = await self.redis.delete(self.key(landlord_id))
        logger.debug(f"Invalidated {self.key(landlord_id)} ({removed} key(s) removed)")
