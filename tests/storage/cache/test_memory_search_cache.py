"""Unit tests for the in-memory search cache."""

import pytest

from memory_merge.models import SearchResult
from memory_merge.storage.cache.memory import InMemorySearchCache


def _result(document_id: str) -> SearchResult:
    return SearchResult(
        id=f"vec-{document_id}",
        document_id=document_id,
        account_id="acct",
        enriched_content="text",
        created_at="2024-01-15T09:00:00",
        updated_at="2024-01-15T09:00:00",
        similarity=0.9,
    )


@pytest.mark.asyncio
async def test_miss(search_cache):
    assert await search_cache.get("acct", "key") is None


@pytest.mark.asyncio
async def test_set_then_get(search_cache):
    await search_cache.set("acct", "key", [_result("doc1")])

    results = await search_cache.get("acct", "key")

    assert [r.document_id for r in results] == ["doc1"]


@pytest.mark.asyncio
async def test_keys_scoped_by_account(search_cache):
    await search_cache.set("acct-a", "key", [_result("doc1")])

    assert await search_cache.get("acct-b", "key") is None


@pytest.mark.asyncio
async def test_expired_entry_is_a_miss():
    cache = InMemorySearchCache(ttl_seconds=0)
    await cache.set("acct", "key", [_result("doc1")])

    assert await cache.get("acct", "key") is None


@pytest.mark.asyncio
async def test_invalidate_account(search_cache):
    await search_cache.set("acct", "k1", [_result("doc1")])
    await search_cache.set("acct", "k2", [])
    await search_cache.set("other", "k1", [_result("doc2")])

    assert await search_cache.invalidate_account("acct") == 2
    assert await search_cache.get("acct", "k1") is None
    assert await search_cache.get("other", "k1") is not None
    assert await search_cache.invalidate_account("acct") == 0


@pytest.mark.asyncio
async def test_empty_result_list_is_cached(search_cache):
    await search_cache.set("acct", "key", [])
    assert await search_cache.get("acct", "key") == []


@pytest.mark.asyncio
async def test_set_evicts_expired_entries_of_every_account():
    cache = InMemorySearchCache(ttl_seconds=0)
    await cache.set("acct", "k1", [_result("doc1")])
    await cache.set("acct", "k2", [_result("doc2")])

    await cache.set("other", "k1", [])

    assert list(cache._entries) == ["other"]
    assert list(cache._entries["other"]) == ["k1"]
