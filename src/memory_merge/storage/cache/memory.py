"""
In-memory search result cache.

Suitable for testing and single-instance deployments. For production with
multiple replicas, use the Redis implementation instead.
"""

import logging
import time
from typing import Dict, List, Optional, Tuple

from memory_merge.models import SearchResult

logger = logging.getLogger(__name__)


class InMemorySearchCache:
    """In-memory implementation of the SearchCache protocol with per-entry TTL."""

    def __init__(self, ttl_seconds: int = 120):
        """
        Initialize the cache.

        Args:
            ttl_seconds: Lifetime of a cached result list (default: 120)
        """
        # account_id -> key -> (expires_at, results)
        self._entries: Dict[str, Dict[str, Tuple[float, List[SearchResult]]]] = {}
        self._ttl = ttl_seconds

        logger.info(f"InMemorySearchCache initialized (ttl={ttl_seconds}s)")

    async def get(self, account_id: str, key: str) -> Optional[List[SearchResult]]:
        entry = self._entries.get(account_id, {}).get(key)
        if entry is None:
            return None

        expires_at, results = entry
        if time.monotonic() >= expires_at:
            del self._entries[account_id][key]
            return None

        return [result.model_copy() for result in results]

    def _prune(self, now: float) -> int:
        removed = 0
        for account_id in list(self._entries):
            entries = self._entries[account_id]
            for key in [key for key, (expires_at, _) in entries.items() if now >= expires_at]:
                del entries[key]
                removed += 1
            if not entries:
                del self._entries[account_id]
        return removed

    async def set(self, account_id: str, key: str, results: List[SearchResult]) -> None:
        now = time.monotonic()
        removed = self._prune(now)
        if removed:
            logger.debug(f"Evicted {removed} expired cached searches")

        self._entries.setdefault(account_id, {})[key] = (
            now + self._ttl,
            [result.model_copy() for result in results],
        )

    async def invalidate_account(self, account_id: str) -> int:
        count = len(self._entries.pop(account_id, {}))
        if count:
            logger.debug(f"Invalidated {count} cached searches for account {account_id}")
        return count
