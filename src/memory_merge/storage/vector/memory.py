"""
In-memory vector storage implementation.

Provides a simple in-memory store for knowledge vectors and similarity search,
suitable for testing and development. For production, use the Qdrant
implementation.
"""

import logging
import uuid
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from memory_merge.errors import DimensionMismatch, NotFound
from memory_merge.models import ProcessedTemporalContent, TemporalFilter
from memory_merge.storage.vector.models import (
    KnowledgeVector,
    build_payload,
    passes_relevance_floor,
    vector_id_for,
)

logger = logging.getLogger(__name__)


class InMemoryKnowledgeVectorStore:
    """
    In-memory implementation of the KnowledgeVectorStore protocol.

    Stores rows in a dictionary with cosine similarity search. Data is lost
    on restart. When ``dimension`` is None the store adopts the dimension of
    the first vector written.
    """

    def __init__(self, dimension: Optional[int] = None):
        self._rows: Dict[str, KnowledgeVector] = {}
        # Insertion sequence breaks created_at ties in recency ordering
        self._sequence: Dict[str, int] = {}
        self._counter = 0
        self._dimension = dimension

        logger.info(f"InMemoryKnowledgeVectorStore initialized (dimension={dimension})")

    @property
    def dimension(self) -> Optional[int]:
        return self._dimension

    def _check_dimension(self, vector: List[float]) -> None:
        if self._dimension is None:
            self._dimension = len(vector)
            return
        if len(vector) != self._dimension:
            logger.critical(
                f"Vector dimension {len(vector)} does not match store dimension {self._dimension}"
            )
            raise DimensionMismatch(self._dimension, len(vector))

    @staticmethod
    def _cosine_similarity(vec1: np.ndarray, vec2: np.ndarray) -> float:
        """Calculate cosine similarity between two vectors."""
        magnitude = np.linalg.norm(vec1) * np.linalg.norm(vec2)
        if magnitude == 0:
            return 0.0
        return float(np.dot(vec1, vec2) / magnitude)

    def _account_rows(self, account_id: str) -> List[KnowledgeVector]:
        return [row for row in self._rows.values() if row.payload.account_id == account_id]

    def _find(self, account_id: str, document_id: str) -> Optional[KnowledgeVector]:
        for row in self._account_rows(account_id):
            if row.payload.document_id == document_id:
                return row
        return None

    def _newest_first(self, rows: List[KnowledgeVector]) -> List[KnowledgeVector]:
        return sorted(
            rows,
            key=lambda row: (row.payload.created_at_ts, self._sequence[row.id]),
            reverse=True,
        )

    async def upsert(
        self,
        account_id: str,
        document_id: str,
        enriched_content: str,
        vector: List[float],
        *,
        tags: Optional[Sequence[str]] = None,
        temporal: Optional[ProcessedTemporalContent] = None,
        embedding_model: Optional[str] = None,
        enrichment_version: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> str:
        """Insert or replace the vector for a document."""
        self._check_dimension(vector)

        existing = self._find(account_id, document_id)
        if existing is not None:
            vector_id = existing.id
        else:
            vector_id = vector_id_for(account_id, document_id)
            if vector_id in self._rows:
                # Derived id still held by a row relinked to another document
                vector_id = str(uuid.uuid4())
        now = datetime.now()

        payload = build_payload(
            account_id=account_id,
            document_id=document_id,
            enriched_content=enriched_content,
            tags=list(tags or []),
            temporal=temporal,
            embedding_model=embedding_model,
            enrichment_version=enrichment_version,
            created_at=created_at or now,
            updated_at=now,
        )
        if existing is not None:
            payload.created_at = existing.payload.created_at
            payload.created_at_ts = existing.payload.created_at_ts
        else:
            self._counter += 1
            self._sequence[vector_id] = self._counter

        self._rows[vector_id] = KnowledgeVector(id=vector_id, vector=list(vector), payload=payload)

        logger.debug(
            f"{'Replaced' if existing else 'Inserted'} vector {vector_id} "
            f"(account={account_id}, document={document_id})"
        )
        return vector_id

    async def get(self, vector_id: str) -> Optional[KnowledgeVector]:
        row = self._rows.get(vector_id)
        return row.model_copy(deep=True) if row is not None else None

    async def find_by_document(
        self, account_id: str, document_id: str
    ) -> Optional[KnowledgeVector]:
        row = self._find(account_id, document_id)
        return row.model_copy(deep=True) if row is not None else None

    async def update(
        self,
        vector_id: str,
        *,
        enriched_content: Optional[str] = None,
        vector: Optional[List[float]] = None,
        tags: Optional[Sequence[str]] = None,
        temporal: Optional[ProcessedTemporalContent] = None,
        document_id: Optional[str] = None,
        embedding_model: Optional[str] = None,
        enrichment_version: Optional[str] = None,
    ) -> KnowledgeVector:
        """Partially update a row. ``updated_at`` is always refreshed."""
        row = self._rows.get(vector_id)
        if row is None:
            raise NotFound(f"Vector {vector_id} not found")

        if vector is not None:
            self._check_dimension(vector)
            row.vector = list(vector)

        payload = row.payload
        if enriched_content is not None:
            payload.enriched_content = enriched_content
        if tags is not None:
            payload.tags = list(tags)
        if temporal is not None:
            payload.temporal_info = temporal.temporal_info
            payload.resolved_dates = temporal.resolved_dates
            payload.temporal_relevance_score = temporal.temporal_relevance_score
            payload.contains_temporal_refs = temporal.contains_temporal_refs
        if document_id is not None:
            payload.document_id = document_id
        if embedding_model is not None:
            payload.embedding_model = embedding_model
        if enrichment_version is not None:
            payload.enrichment_version = enrichment_version
        payload.updated_at = datetime.now().isoformat()

        logger.debug(f"Updated vector {vector_id}")
        return row.model_copy(deep=True)

    async def delete_by_vector_id(self, vector_id: str) -> bool:
        if self._rows.pop(vector_id, None) is None:
            logger.debug(f"Vector {vector_id} not found, nothing to delete")
            return False

        self._sequence.pop(vector_id, None)
        logger.debug(f"Deleted vector {vector_id}")
        return True

    async def similarity_search(
        self,
        account_id: str,
        query_vector: List[float],
        threshold: float,
        limit: int,
        temporal_filter: Optional[TemporalFilter] = None,
    ) -> List[Tuple[KnowledgeVector, float]]:
        """Cosine similarity search within one account (inclusive threshold)."""
        self._check_dimension(query_vector)
        if limit <= 0:
            return []

        query = np.asarray(query_vector, dtype=float)
        results = []

        for row in self._account_rows(account_id):
            if temporal_filter is not None and not passes_relevance_floor(
                row.payload, temporal_filter.relevance_threshold
            ):
                continue

            score = self._cosine_similarity(query, np.asarray(row.vector, dtype=float))
            if score >= threshold:
                results.append((row.model_copy(deep=True), score))

        # Sort by score (highest first) and limit
        results.sort(key=lambda item: item[1], reverse=True)
        results = results[:limit]

        logger.debug(
            f"{len(results)} results found (account={account_id}, threshold={threshold})"
        )
        return results

    async def by_tags(
        self, account_id: str, tags: Sequence[str], limit: int
    ) -> List[KnowledgeVector]:
        wanted = set(tags)
        if not wanted or limit <= 0:
            return []

        results: List[KnowledgeVector] = []
        seen_documents = set()
        for row in self._newest_first(self._account_rows(account_id)):
            if wanted.isdisjoint(row.payload.tags) or row.payload.document_id in seen_documents:
                continue
            seen_documents.add(row.payload.document_id)
            results.append(row.model_copy(deep=True))
            if len(results) >= limit:
                break

        logger.debug(f"{len(results)} rows tagged {sorted(wanted)} (account={account_id})")
        return results

    async def recent(self, account_id: str, limit: int) -> List[KnowledgeVector]:
        if limit <= 0:
            return []
        rows = self._newest_first(self._account_rows(account_id))[:limit]
        return [row.model_copy(deep=True) for row in rows]

    async def scan(self, account_id: str) -> List[KnowledgeVector]:
        return [row.model_copy(deep=True) for row in self._account_rows(account_id)]

    async def tag_counts(self, account_id: str) -> Dict[str, int]:
        counts = Counter(tag for row in self._account_rows(account_id) for tag in row.payload.tags)
        return dict(counts.most_common())

    def clear(self):
        """Clear ALL rows from the store."""
        count = len(self._rows)
        self._rows.clear()
        self._sequence.clear()
        logger.info(f"Cleared all vectors ({count} total)")
