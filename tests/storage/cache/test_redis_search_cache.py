"""Unit tests for the Redis search cache with a mocked client."""

from unittest.mock import AsyncMock

import pytest
import redis.asyncio as redis

from memory_merge.errors import StoreUnavailable
from memory_merge.models import SearchResult
from memory_merge.storage.cache.redis import RedisSearchCache


@pytest.fixture
def client():
    return AsyncMock()


@pytest.fixture
def cache(client):
    return RedisSearchCache(ttl_seconds=60, client=client)


def _result():
    return SearchResult(
        id="vec-1",
        document_id="doc1",
        account_id="acct",
        enriched_content="text",
        created_at="2024-01-15T09:00:00",
        updated_at="2024-01-15T09:00:00",
        similarity=0.75,
    )


@pytest.mark.asyncio
async def test_set_uses_ttl_and_account_key(cache, client):
    await cache.set("acct", "abc", [_result()])

    args, kwargs = client.set.call_args
    assert args[0] == "memory-merge:search:acct:abc"
    assert kwargs["ex"] == 60


@pytest.mark.asyncio
async def test_get_round_trips_json(cache, client):
    await cache.set("acct", "abc", [_result()])
    client.get.return_value = client.set.call_args.args[1]

    results = await cache.get("acct", "abc")

    assert results[0].document_id == "doc1"
    assert results[0].similarity == 0.75


@pytest.mark.asyncio
async def test_read_failure_is_a_miss(cache, client):
    client.get.side_effect = redis.ConnectionError("down")

    assert await cache.get("acct", "abc") is None


@pytest.mark.asyncio
async def test_corrupt_entry_is_a_miss(cache, client):
    client.get.return_value = "not json"

    assert await cache.get("acct", "abc") is None


@pytest.mark.asyncio
async def test_invalidate_failure_raises(cache, client):
    client.scan_iter = lambda match: _failing_iter()

    with pytest.raises(StoreUnavailable):
        await cache.invalidate_account("acct")


async def _failing_iter():
    raise redis.ConnectionError("down")
    yield  # pragma: no cover
