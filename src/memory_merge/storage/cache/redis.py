"""
Redis search result cache.

Shares cached search results across replicas. Entries expire through Redis
TTLs; writes drop every key of the affected account.
"""

import json
import logging
from typing import List, Optional

import redis.asyncio as redis
from pydantic import TypeAdapter

from memory_merge.errors import StoreUnavailable
from memory_merge.models import SearchResult

logger = logging.getLogger(__name__)

_results_adapter = TypeAdapter(List[SearchResult])


class RedisSearchCache:
    """
    Redis implementation of the SearchCache protocol.

    Each result list is stored as a JSON string under
    ``<prefix><account_id>:<key>`` with a TTL.
    """

    def __init__(
        self,
        url: str = "redis://localhost:6379/0",
        ttl_seconds: int = 120,
        key_prefix: str = "memory-merge:search:",
        client: Optional[redis.Redis] = None,
    ):
        """
        Initialize the Redis cache.

        Args:
            url: Redis connection URL
            ttl_seconds: Lifetime of a cached result list (default: 120)
            key_prefix: Prefix for Redis keys
            client: Pre-built async client (tests, shared connections)
        """
        self.client = client or redis.Redis.from_url(url, decode_responses=True)
        self._ttl = ttl_seconds
        self._key_prefix = key_prefix

        logger.info(f"RedisSearchCache initialized (ttl={ttl_seconds}s)")

    def _get_key(self, account_id: str, key: str) -> str:
        return f"{self._key_prefix}{account_id}:{key}"

    async def ping(self) -> bool:
        try:
            return await self.client.ping()
        except redis.ConnectionError as e:
            logger.error(f"Failed to connect to Redis: {e}")
            raise StoreUnavailable(f"Redis unavailable: {e}") from e

    async def get(self, account_id: str, key: str) -> Optional[List[SearchResult]]:
        try:
            raw = await self.client.get(self._get_key(account_id, key))
        except redis.RedisError as e:
            logger.warning(f"Search cache read failed, treating as miss: {e}")
            return None

        if raw is None:
            return None

        try:
            return _results_adapter.validate_json(raw)
        except ValueError as e:
            logger.warning(f"Failed to deserialize cached results: {e}")
            return None

    async def set(self, account_id: str, key: str, results: List[SearchResult]) -> None:
        payload = json.dumps([result.model_dump(mode="json") for result in results])
        try:
            await self.client.set(self._get_key(account_id, key), payload, ex=self._ttl)
        except redis.RedisError as e:
            logger.warning(f"Search cache write failed: {e}")

    async def invalidate_account(self, account_id: str) -> int:
        """Delete every cached search of an account."""
        pattern = f"{self._key_prefix}{account_id}:*"
        try:
            keys = [key async for key in self.client.scan_iter(match=pattern)]
            count = await self.client.delete(*keys) if keys else 0
        except redis.RedisError as e:
            logger.error(f"Failed to invalidate search cache for account {account_id}: {e}")
            raise StoreUnavailable(f"Redis unavailable: {e}") from e

        logger.debug(f"Invalidated {count} cached searches for account {account_id}")
        return count

    async def close(self) -> None:
        await self.client.aclose()
