import asyncio
import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from memory_merge.embeddings import TextEmbedding
from memory_merge.enrichment import QueryExpander
from memory_merge.errors import InvalidRequest
from memory_merge.models import SearchOptions, SearchResult, TemporalFilter
from memory_merge.storage import KnowledgeVectorStore, SearchCache
from memory_merge.storage.vector.models import KnowledgeVector
from memory_merge.utils.temporal import (
    detect_temporal_intent,
    is_temporally_relevant,
    matches_temporal_intent,
    temporal_context,
)

logger = logging.getLogger(__name__)

DEFAULT_MATCH_THRESHOLD = 0.5
DEFAULT_MATCH_COUNT = 10
DEFAULT_THRESHOLD_LADDER = (0.4, 0.3, 0.2, 0.1, 0.0)
# Below any cosine similarity, so tag-only rows always rank after vector hits
TAG_MATCH_SCORE = -2.0


@dataclass
class SearchOverview:
    """Dashboard view of an account: latest entries and tag statistics."""

    recent: List[SearchResult] = field(default_factory=list)
    tag_counts: Dict[str, int] = field(default_factory=dict)


def _require_account(account_id: Optional[str]) -> str:
    if not account_id or not account_id.strip():
        raise InvalidRequest("accountId is required", field="accountId")
    return account_id


def make_cache_key(
    expanded_query: str,
    tags: Sequence[str],
    threshold: float,
    count: int,
    temporal_filter: Optional[TemporalFilter],
) -> str:
    raw = json.dumps(
        {
            "q": expanded_query,
            "tags": sorted(tags),
            "threshold": threshold,
            "count": count,
            "temporal": temporal_filter.model_dump() if temporal_filter else None,
        },
        sort_keys=True,
    )
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


class HybridSearchService:
    """
    Hybrid semantic + tag search over one account's knowledge.

    Pipeline per search: expand the query, embed it, run a similarity search
    that relaxes its cutoff along a descending threshold ladder until rows
    come back, merge in tag matches, apply the optional temporal filter, then
    sort and truncate. Every step is scoped to a single account.
    """

    def __init__(
        self,
        vector_store: KnowledgeVectorStore,
        embedding: TextEmbedding,
        expander: Optional[QueryExpander] = None,
        cache: Optional[SearchCache] = None,
        default_match_threshold: float = DEFAULT_MATCH_THRESHOLD,
        default_match_count: int = DEFAULT_MATCH_COUNT,
        threshold_ladder: Sequence[float] = DEFAULT_THRESHOLD_LADDER,
        tag_match_score: float = TAG_MATCH_SCORE,
        max_tag_results: int = 100,
    ):
        self.vector_store = vector_store
        self.embedding = embedding
        self.expander = expander or QueryExpander()
        self.cache = cache
        self.default_match_threshold = default_match_threshold
        self.default_match_count = default_match_count
        self.threshold_ladder = tuple(sorted(threshold_ladder, reverse=True))
        self.tag_match_score = tag_match_score
        self.max_tag_results = max_tag_results

    async def search(
        self,
        account_id: str,
        query: str = "",
        tags: Optional[Sequence[str]] = None,
        options: Optional[SearchOptions] = None,
    ) -> List[SearchResult]:
        """
        Run a hybrid search.

        Args:
            account_id: Account whose knowledge is searched
            query: Free-text query; empty for a tag-only search
            tags: Tags whose entries are merged into the results
            options: Threshold, count and temporal filter overrides

        Returns:
            Results sorted by similarity descending, at most ``match_count``

        Raises:
            InvalidRequest: If account_id is missing or neither query nor tags is given
            EmbeddingError: If the query cannot be embedded
            StoreUnavailable: If the vector store cannot be reached
        """
        account_id = _require_account(account_id)
        query = (query or "").strip()
        tags = [tag for tag in (tags or []) if tag]
        if not query and not tags:
            raise InvalidRequest("query or tags is required", field="query")

        options = options or SearchOptions()
        threshold = (
            options.match_threshold
            if options.match_threshold is not None
            else self.default_match_threshold
        )
        count = options.match_count if options.match_count is not None else self.default_match_count
        if count <= 0:
            return []

        expanded = self.expander.expand(query)

        cache_key = None
        if self.cache is not None:
            cache_key = make_cache_key(expanded, tags, threshold, count, options.temporal_filter)
            cached = await self.cache.get(account_id, cache_key)
            if cached is not None:
                logger.debug(f"Search cache hit (account={account_id})")
                return cached

        results: Dict[str, SearchResult] = {}

        if expanded:
            query_vector = await self.embedding.embed_query(expanded)
            rows = await self._ladder_search(
                account_id, query_vector, threshold, count, options.temporal_filter
            )
            for row, score in rows:
                if row.payload.document_id not in results:
                    results[row.payload.document_id] = row.to_result(score, "vector")

        if tags:
            tag_rows = await self.vector_store.by_tags(account_id, tags, self.max_tag_results)
            added = 0
            for row in tag_rows:
                if row.payload.document_id not in results:
                    results[row.payload.document_id] = row.to_result(self.tag_match_score, "tag")
                    added += 1
            logger.debug(f"Tag merge added {added} of {len(tag_rows)} tagged rows")

        merged = list(results.values())
        if options.temporal_filter is not None:
            merged = self._apply_temporal_filter(merged, options.temporal_filter, query)

        # Stable sort keeps store order among equal scores
        merged.sort(key=lambda result: result.similarity, reverse=True)
        merged = merged[:count]

        logger.info(
            f"Search returned {len(merged)} results "
            f"(account={account_id}, tags={len(tags)}, threshold={threshold})"
        )

        if self.cache is not None and cache_key is not None:
            await self.cache.set(account_id, cache_key, merged)

        return merged

    async def _ladder_search(
        self,
        account_id: str,
        query_vector: List[float],
        threshold: float,
        count: int,
        temporal_filter: Optional[TemporalFilter],
    ) -> List[Tuple[KnowledgeVector, float]]:
        rows = await self.vector_store.similarity_search(
            account_id, query_vector, threshold, count, temporal_filter
        )
        if rows:
            return rows

        # Relax the cutoff one step at a time; never in parallel
        for cutoff in self.threshold_ladder:
            if cutoff >= threshold:
                continue
            rows = await self.vector_store.similarity_search(
                account_id, query_vector, cutoff, count, temporal_filter
            )
            if rows:
                logger.info(
                    f"No results at threshold {threshold}, {len(rows)} found at {cutoff} "
                    f"(account={account_id})"
                )
                return rows

        logger.info(f"No vector results down to the lowest threshold (account={account_id})")
        return []

    def _apply_temporal_filter(
        self, results: List[SearchResult], temporal_filter: TemporalFilter, query: str = ""
    ) -> List[SearchResult]:
        now = datetime.now()
        intent = detect_temporal_intent(query) if temporal_filter.match_query_intent else "general"

        kept = []
        for result in results:
            if result.contains_temporal_refs and (
                result.temporal_relevance_score < temporal_filter.relevance_threshold
            ):
                continue
            # "all" spans every date, so only narrower frames are checked
            if temporal_filter.time_frame != "all" and not is_temporally_relevant(
                result.temporal_info,
                temporal_filter.time_frame,
                temporal_filter.include_expired_events,
                now,
            ):
                continue
            if not matches_temporal_intent(result.temporal_info, intent, now):
                continue
            result.temporal_context = temporal_context(result.temporal_info, now) or None
            kept.append(result)

        if len(kept) != len(results):
            logger.debug(
                f"Temporal filter dropped {len(results) - len(kept)} results (intent={intent})"
            )
        return kept

    async def recent(self, account_id: str, limit: int = DEFAULT_MATCH_COUNT) -> List[SearchResult]:
        """Most recently created entries of an account, newest first."""
        account_id = _require_account(account_id)
        if limit <= 0:
            return []

        rows = await self.vector_store.recent(account_id, limit)
        return [row.to_result(0.0, "recent") for row in rows]

    async def by_tags(
        self, account_id: str, tags: Sequence[str], limit: Optional[int] = None
    ) -> List[SearchResult]:
        """Browse entries carrying any of ``tags``, newest first."""
        account_id = _require_account(account_id)
        tags = [tag for tag in (tags or []) if tag]
        if not tags:
            raise InvalidRequest("tags is required", field="tags")

        limit = self.max_tag_results if limit is None else limit
        if limit <= 0:
            return []

        rows = await self.vector_store.by_tags(account_id, tags, limit)
        return [row.to_result(self.tag_match_score, "tag") for row in rows]

    async def overview(self, account_id: str, limit: int = DEFAULT_MATCH_COUNT) -> SearchOverview:
        """Latest entries and tag statistics, fetched concurrently."""
        account_id = _require_account(account_id)
        recent, tag_counts = await asyncio.gather(
            self.recent(account_id, limit),
            self.vector_store.tag_counts(account_id),
        )
        return SearchOverview(recent=recent, tag_counts=tag_counts)

    async def sweep_thresholds(
        self,
        account_id: str,
        query: str,
        cutoffs: Optional[Sequence[float]] = None,
        limit: int = 50,
    ) -> List[Tuple[float, int]]:
        """
        Count vector hits per cutoff for one query (diagnostics).

        Returns:
            (cutoff, number of results) pairs, highest cutoff first
        """
        account_id = _require_account(account_id)
        expanded = self.expander.expand(query)
        if not expanded:
            raise InvalidRequest("query is required", field="query")

        cutoffs = cutoffs or (self.default_match_threshold,) + self.threshold_ladder
        query_vector = await self.embedding.embed_query(expanded)

        counts = []
        for cutoff in sorted(set(cutoffs), reverse=True):
            rows = await self.vector_store.similarity_search(account_id, query_vector, cutoff, limit)
            counts.append((cutoff, len(rows)))
        return counts
