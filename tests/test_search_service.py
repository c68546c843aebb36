"""
Tests for HybridSearchService.

Most tests run against the in-memory store with the hashing embedder from
conftest; threshold-ladder behavior is checked with a mocked store so the
cutoffs tried can be asserted exactly.
"""

from datetime import datetime
from unittest.mock import AsyncMock, Mock

import pytest

from memory_merge.errors import EmbeddingError, InvalidRequest
from memory_merge.models import SearchOptions, TemporalFilter
from memory_merge.search_service import TAG_MATCH_SCORE, HybridSearchService, make_cache_key
from memory_merge.storage.vector.models import KnowledgeVector, build_payload, vector_id_for
from memory_merge.utils.temporal import process_temporal_content


@pytest.fixture
def service(vector_store, embedding):
    return HybridSearchService(vector_store, embedding)


@pytest.fixture
def mock_store():
    store = Mock()
    store.similarity_search = AsyncMock(return_value=[])
    store.by_tags = AsyncMock(return_value=[])
    store.recent = AsyncMock(return_value=[])
    store.tag_counts = AsyncMock(return_value={})
    return store


def _row(document_id: str, account_id: str = "acct") -> KnowledgeVector:
    return KnowledgeVector(
        id=vector_id_for(account_id, document_id),
        vector=[1.0, 0.0],
        payload=build_payload(account_id, document_id, f"text of {document_id}"),
    )


async def _store(vector_store, embedding, account_id, document_id, text, **kwargs):
    vector = await embedding.embed_document(text)
    return await vector_store.upsert(account_id, document_id, text, vector, **kwargs)


class TestVectorSearch:
    @pytest.mark.asyncio
    async def test_exact_text_ranks_first(self, service, vector_store, embedding):
        await _store(vector_store, embedding, "acct", "doc1", "spare key under the mat")
        await _store(vector_store, embedding, "acct", "doc2", "pizza dough recipe")

        results = await service.search("acct", "spare key under the mat")

        assert results[0].document_id == "doc1"
        assert results[0].similarity == pytest.approx(1.0)
        assert results[0].match_type == "vector"

    @pytest.mark.asyncio
    async def test_query_is_expanded_before_embedding(self, service, embedding):
        await service.search("acct", "cash")

        assert embedding.calls[0].startswith("cash money bucks")

    @pytest.mark.asyncio
    async def test_accounts_never_mix(self, service, vector_store, embedding):
        await _store(vector_store, embedding, "acct-a", "doc1", "spare key under the mat")
        await _store(vector_store, embedding, "acct-b", "doc2", "spare key under the mat")

        results = await service.search(
            "acct-a", "spare key under the mat", options=SearchOptions(match_threshold=-1.0)
        )

        assert [r.account_id for r in results] == ["acct-a"]

    @pytest.mark.asyncio
    async def test_threshold_minus_one_returns_all_rows(self, service, vector_store, embedding):
        for i, text in enumerate(["spare key", "pizza recipe", "wifi password"]):
            await _store(vector_store, embedding, "acct", f"doc{i}", text)

        results = await service.search(
            "acct", "spare key", options=SearchOptions(match_threshold=-1.0, match_count=10)
        )

        assert len(results) == 3
        similarities = [r.similarity for r in results]
        assert similarities == sorted(similarities, reverse=True)

    @pytest.mark.asyncio
    async def test_match_count_truncates(self, service, vector_store, embedding):
        for i in range(5):
            await _store(vector_store, embedding, "acct", f"doc{i}", "spare key")

        results = await service.search("acct", "spare key", options=SearchOptions(match_count=2))

        assert len(results) == 2

    @pytest.mark.asyncio
    async def test_embedding_error_propagates(self, service, embedding):
        embedding.fail = True

        with pytest.raises(EmbeddingError):
            await service.search("acct", "spare key")


class TestTagMerge:
    @pytest.mark.asyncio
    async def test_tag_rows_rank_after_vector_hits(self, service, vector_store, embedding):
        await _store(vector_store, embedding, "acct", "doc1", "spare key under the mat")
        await _store(vector_store, embedding, "acct", "doc2", "oil change booked", tags=["car"])

        results = await service.search("acct", "spare key under the mat", tags=["car"])

        assert [r.document_id for r in results] == ["doc1", "doc2"]
        assert results[1].similarity == TAG_MATCH_SCORE
        assert results[1].match_type == "tag"

    @pytest.mark.asyncio
    async def test_document_matched_both_ways_appears_once(self, service, vector_store, embedding):
        await _store(vector_store, embedding, "acct", "doc1", "spare key under the mat", tags=["home"])

        results = await service.search("acct", "spare key under the mat", tags=["home"])

        assert len(results) == 1
        assert results[0].match_type == "vector"
        assert results[0].similarity == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_tag_only_search_skips_embedding(self, service, vector_store, embedding):
        await _store(vector_store, embedding, "acct", "doc1", "oil change", tags=["car"])
        await _store(vector_store, embedding, "acct", "doc2", "new tyres", tags=["car"])
        await _store(vector_store, embedding, "acct", "doc3", "rent due", tags=["house"])
        embedding.calls.clear()

        results = await service.search("acct", "", tags=["car"])

        assert {r.document_id for r in results} == {"doc1", "doc2"}
        assert all(r.similarity == TAG_MATCH_SCORE for r in results)
        assert embedding.calls == []

    @pytest.mark.asyncio
    async def test_tag_rows_count_toward_match_count(self, service, vector_store, embedding):
        for i in range(4):
            await _store(vector_store, embedding, "acct", f"doc{i}", f"entry {i}", tags=["car"])

        results = await service.search("acct", tags=["car"], options=SearchOptions(match_count=3))

        assert len(results) == 3


class TestValidation:
    @pytest.mark.asyncio
    async def test_missing_account(self, service):
        with pytest.raises(InvalidRequest):
            await service.search("", "spare key")

    @pytest.mark.asyncio
    async def test_no_query_and_no_tags(self, service):
        with pytest.raises(InvalidRequest) as exc_info:
            await service.search("acct", "   ", tags=[])
        assert exc_info.value.field == "query"

    @pytest.mark.asyncio
    async def test_match_count_zero_touches_nothing(self, mock_store, embedding):
        service = HybridSearchService(mock_store, embedding)

        results = await service.search("acct", "spare key", tags=["car"], options=SearchOptions(match_count=0))

        assert results == []
        assert embedding.calls == []
        mock_store.similarity_search.assert_not_called()
        mock_store.by_tags.assert_not_called()


class TestThresholdLadder:
    @pytest.mark.asyncio
    async def test_relaxes_until_rows_found(self, mock_store, embedding):
        mock_store.similarity_search.side_effect = [[], [], [(_row("doc1"), 0.35)]]
        service = HybridSearchService(mock_store, embedding)

        results = await service.search("acct", "spare key")

        thresholds = [call.args[2] for call in mock_store.similarity_search.call_args_list]
        assert thresholds == [0.5, 0.4, 0.3]
        assert results[0].similarity == 0.35

    @pytest.mark.asyncio
    async def test_exhausted_ladder_returns_empty(self, mock_store, embedding):
        service = HybridSearchService(mock_store, embedding)

        assert await service.search("acct", "spare key") == []

        thresholds = [call.args[2] for call in mock_store.similarity_search.call_args_list]
        assert thresholds == [0.5, 0.4, 0.3, 0.2, 0.1, 0.0]

    @pytest.mark.asyncio
    async def test_ladder_only_goes_below_start(self, mock_store, embedding):
        service = HybridSearchService(mock_store, embedding)

        await service.search("acct", "spare key", options=SearchOptions(match_threshold=0.25))

        thresholds = [call.args[2] for call in mock_store.similarity_search.call_args_list]
        assert thresholds == [0.25, 0.2, 0.1, 0.0]

    @pytest.mark.asyncio
    async def test_no_ladder_when_first_search_hits(self, mock_store, embedding):
        mock_store.similarity_search.return_value = [(_row("doc1"), 0.9)]
        service = HybridSearchService(mock_store, embedding)

        await service.search("acct", "spare key")

        assert mock_store.similarity_search.call_count == 1


async def _seed_temporal(vector_store, embedding):
    await _store(vector_store, embedding, "acct", "plain", "dentist phone number")
    for document_id, text in (("future", "dentist tomorrow"), ("past", "dentist yesterday")):
        await _store(
            vector_store,
            embedding,
            "acct",
            document_id,
            text,
            temporal=process_temporal_content(text),
        )


class TestTemporalFilter:
    @pytest.mark.asyncio
    async def test_future_frame(self, service, vector_store, embedding):
        await _seed_temporal(vector_store, embedding)

        results = await service.search(
            "acct",
            "dentist",
            options=SearchOptions(match_threshold=-1.0, temporal_filter=TemporalFilter(time_frame="future")),
        )

        assert {r.document_id for r in results} == {"plain", "future"}

    @pytest.mark.asyncio
    async def test_all_frame_keeps_past_events(self, service, vector_store, embedding):
        await _seed_temporal(vector_store, embedding)

        results = await service.search(
            "acct",
            "dentist",
            options=SearchOptions(
                match_threshold=-1.0,
                temporal_filter=TemporalFilter(time_frame="all", relevance_threshold=0.0),
            ),
        )

        assert {r.document_id for r in results} == {"plain", "future", "past"}

    @pytest.mark.asyncio
    async def test_past_frame(self, service, vector_store, embedding):
        await _seed_temporal(vector_store, embedding)

        results = await service.search(
            "acct",
            "dentist",
            options=SearchOptions(match_threshold=-1.0, temporal_filter=TemporalFilter(time_frame="past")),
        )

        assert {r.document_id for r in results} == {"plain", "past"}

    @pytest.mark.asyncio
    async def test_future_query_intent(self, service, vector_store, embedding):
        await _seed_temporal(vector_store, embedding)

        results = await service.search(
            "acct",
            "what is planned with the dentist",
            options=SearchOptions(match_threshold=-1.0, temporal_filter=TemporalFilter()),
        )

        assert {r.document_id for r in results} == {"plain", "future"}

    @pytest.mark.asyncio
    async def test_past_query_intent(self, service, vector_store, embedding):
        await _seed_temporal(vector_store, embedding)

        results = await service.search(
            "acct",
            "when was the dentist",
            options=SearchOptions(match_threshold=-1.0, temporal_filter=TemporalFilter()),
        )

        assert {r.document_id for r in results} == {"plain", "past"}

    @pytest.mark.asyncio
    async def test_query_intent_can_be_disabled(self, service, vector_store, embedding):
        await _seed_temporal(vector_store, embedding)

        results = await service.search(
            "acct",
            "when was the dentist",
            options=SearchOptions(
                match_threshold=-1.0,
                temporal_filter=TemporalFilter(match_query_intent=False),
            ),
        )

        assert len(results) == 3

    @pytest.mark.asyncio
    async def test_filtered_results_carry_temporal_context(self, service, vector_store, embedding):
        await _seed_temporal(vector_store, embedding)

        results = await service.search(
            "acct",
            "dentist",
            options=SearchOptions(match_threshold=-1.0, temporal_filter=TemporalFilter()),
        )

        by_document = {r.document_id: r for r in results}
        assert "refers to tomorrow" in by_document["future"].temporal_context
        assert by_document["plain"].temporal_context is None

    @pytest.mark.asyncio
    async def test_no_filter_keeps_everything(self, service, vector_store, embedding):
        await _seed_temporal(vector_store, embedding)

        results = await service.search("acct", "dentist", options=SearchOptions(match_threshold=-1.0))

        assert len(results) == 3


class TestRelaxation:
    @pytest.mark.asyncio
    async def test_lower_threshold_returns_superset(self, service, vector_store, embedding):
        texts = {
            "doc1": "spare key under the mat",
            "doc2": "spare key in the glovebox",
            "doc3": "key lime pie recipe",
            "doc4": "wifi password for the guest network",
        }
        for document_id, text in texts.items():
            await _store(
                vector_store,
                embedding,
                "acct",
                document_id,
                text,
                tags=["house"] if document_id == "doc4" else None,
            )

        previous = set()
        for threshold in (0.9, 0.5, 0.2, 0.0, -1.0):
            results = await service.search(
                "acct",
                "spare key under the mat",
                tags=["house"],
                options=SearchOptions(match_threshold=threshold, match_count=10),
            )

            documents = {r.document_id for r in results}
            assert previous <= documents
            previous = documents

            vector_scores = [r.similarity for r in results if r.match_type == "vector"]
            tag_scores = [r.similarity for r in results if r.match_type == "tag"]
            assert all(v >= t for v in vector_scores for t in tag_scores)

        assert previous == set(texts)


class TestCache:
    @pytest.mark.asyncio
    async def test_repeated_search_served_from_cache(self, vector_store, embedding, search_cache):
        service = HybridSearchService(vector_store, embedding, cache=search_cache)
        await _store(vector_store, embedding, "acct", "doc1", "spare key under the mat")
        embedding.calls.clear()

        first = await service.search("acct", "spare key under the mat")
        second = await service.search("acct", "spare key under the mat")

        assert [r.document_id for r in first] == [r.document_id for r in second]
        assert len(embedding.calls) == 1

    @pytest.mark.asyncio
    async def test_cache_scoped_by_account(self, vector_store, embedding, search_cache):
        service = HybridSearchService(vector_store, embedding, cache=search_cache)
        await _store(vector_store, embedding, "acct-a", "doc1", "spare key under the mat")

        await service.search("acct-a", "spare key under the mat")
        results = await service.search("acct-b", "spare key under the mat")

        assert results == []

    def test_cache_key_ignores_tag_order(self):
        a = make_cache_key("q", ["car", "home"], 0.5, 10, None)
        b = make_cache_key("q", ["home", "car"], 0.5, 10, None)
        c = make_cache_key("q", ["home", "car"], 0.4, 10, None)

        assert a == b
        assert a != c


class TestBrowse:
    @pytest.mark.asyncio
    async def test_recent(self, service, vector_store, embedding):
        await _store(vector_store, embedding, "acct", "old", "a", created_at=datetime(2024, 1, 1))
        await _store(vector_store, embedding, "acct", "new", "b", created_at=datetime(2024, 2, 1))

        results = await service.recent("acct", limit=5)

        assert [r.document_id for r in results] == ["new", "old"]
        assert all(r.match_type == "recent" and r.similarity == 0.0 for r in results)

    @pytest.mark.asyncio
    async def test_recent_requires_account(self, service):
        with pytest.raises(InvalidRequest):
            await service.recent("  ")

    @pytest.mark.asyncio
    async def test_by_tags(self, service, vector_store, embedding):
        await _store(vector_store, embedding, "acct", "doc1", "oil change", tags=["car"])
        await _store(vector_store, embedding, "acct", "doc2", "rent", tags=["house"])

        results = await service.by_tags("acct", ["car"])

        assert [r.document_id for r in results] == ["doc1"]
        assert results[0].match_type == "tag"

    @pytest.mark.asyncio
    async def test_by_tags_requires_tags(self, service):
        with pytest.raises(InvalidRequest):
            await service.by_tags("acct", [])

    @pytest.mark.asyncio
    async def test_overview(self, service, vector_store, embedding):
        await _store(vector_store, embedding, "acct", "doc1", "oil change", tags=["car"])
        await _store(vector_store, embedding, "acct", "doc2", "new tyres", tags=["car", "money"])

        overview = await service.overview("acct")

        assert len(overview.recent) == 2
        assert overview.tag_counts == {"car": 2, "money": 1}


class TestSweepThresholds:
    @pytest.mark.asyncio
    async def test_counts_per_cutoff(self, mock_store, embedding):
        rows = {0.9: [], 0.5: [(_row("doc1"), 0.6)], 0.1: [(_row("doc1"), 0.6), (_row("doc2"), 0.2)]}
        mock_store.similarity_search.side_effect = (
            lambda account_id, vector, cutoff, limit, temporal_filter=None: rows[cutoff]
        )
        service = HybridSearchService(mock_store, embedding)

        counts = await service.sweep_thresholds("acct", "spare key", cutoffs=[0.1, 0.9, 0.5])

        assert counts == [(0.9, 0), (0.5, 1), (0.1, 2)]

    @pytest.mark.asyncio
    async def test_requires_query(self, service):
        with pytest.raises(InvalidRequest):
            await service.sweep_thresholds("acct", "  ")
