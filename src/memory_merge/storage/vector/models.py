"""
Models for vector storage.

Defines the rows kept by vector storage implementations: one embedding per
stored memory plus the enrichment and temporal side-channel that produced it.
"""

import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel

from memory_merge.models import ProcessedTemporalContent, SearchResult, TemporalReference


class KnowledgeVectorPayload(BaseModel):
    """
    Payload for a knowledge vector.

    The raw entry text is owned by the document store; only the enriched
    text that was actually embedded lives here.
    """

    account_id: str
    document_id: str
    enriched_content: str
    tags: List[str] = []

    # Temporal side-channel
    temporal_info: List[TemporalReference] = []
    resolved_dates: List[datetime] = []
    temporal_relevance_score: float = 0.0
    contains_temporal_refs: bool = False

    # Provenance of the vector itself
    embedding_model: Optional[str] = None
    enrichment_version: Optional[str] = None

    created_at: str
    updated_at: str
    created_at_ts: float


class KnowledgeVector(BaseModel):
    """A knowledge vector row: embedding plus payload."""

    id: str
    vector: List[float]
    payload: KnowledgeVectorPayload

    def to_result(
        self, similarity: float, match_type: Literal["vector", "tag", "recent"] = "vector"
    ) -> SearchResult:
        return SearchResult(
            id=self.id,
            document_id=self.payload.document_id,
            account_id=self.payload.account_id,
            enriched_content=self.payload.enriched_content,
            tags=self.payload.tags,
            temporal_info=self.payload.temporal_info,
            resolved_dates=self.payload.resolved_dates,
            temporal_relevance_score=self.payload.temporal_relevance_score,
            contains_temporal_refs=self.payload.contains_temporal_refs,
            created_at=self.payload.created_at,
            updated_at=self.payload.updated_at,
            similarity=similarity,
            match_type=match_type,
        )


_VECTOR_ID_NAMESPACE = uuid.uuid5(uuid.NAMESPACE_DNS, "memory-merge.knowledge-vectors")


def vector_id_for(account_id: str, document_id: str) -> str:
    """
    Deterministic vector id for an (account, document) pair.

    Writing the same document twice targets the same row, so upserts are
    idempotent and ids never collide across accounts.
    """
    return str(uuid.uuid5(_VECTOR_ID_NAMESPACE, f"{account_id}/{document_id}"))


def build_payload(
    account_id: str,
    document_id: str,
    enriched_content: str,
    tags: Optional[List[str]] = None,
    temporal: Optional[ProcessedTemporalContent] = None,
    embedding_model: Optional[str] = None,
    enrichment_version: Optional[str] = None,
    created_at: Optional[datetime] = None,
    updated_at: Optional[datetime] = None,
) -> KnowledgeVectorPayload:
    created = created_at or datetime.now()
    updated = updated_at or created
    return KnowledgeVectorPayload(
        account_id=account_id,
        document_id=document_id,
        enriched_content=enriched_content,
        tags=list(tags or []),
        temporal_info=temporal.temporal_info if temporal else [],
        resolved_dates=temporal.resolved_dates if temporal else [],
        temporal_relevance_score=temporal.temporal_relevance_score if temporal else 0.0,
        contains_temporal_refs=temporal.contains_temporal_refs if temporal else False,
        embedding_model=embedding_model,
        enrichment_version=enrichment_version,
        created_at=created.isoformat(),
        updated_at=updated.isoformat(),
        created_at_ts=created.timestamp(),
    )


def passes_relevance_floor(payload: KnowledgeVectorPayload, floor: float) -> bool:
    """Rows without temporal references always pass the relevance floor."""
    return not payload.contains_temporal_refs or payload.temporal_relevance_score >= floor
