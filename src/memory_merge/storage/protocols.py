"""
Storage protocol definitions for knowledge retrieval.

These protocols define the interface that storage implementations must provide.
They are implementation-agnostic and can be backed by various databases
(Qdrant, PostgreSQL, Redis, in-memory, etc.).
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

from memory_merge.models import ProcessedTemporalContent, SearchResult, TemporalFilter
from memory_merge.storage.vector.models import KnowledgeVector


class KnowledgeVectorStore(Protocol):
    """
    Protocol for the vector store holding one embedding per (account, document).

    Every query is scoped to a single account id. Implementations raise
    ``StoreUnavailable`` when the backend cannot be reached and
    ``DimensionMismatch`` when a vector does not match the stored dimension.
    """

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
        """
        Insert or replace the vector for a document.

        Idempotent per (account_id, document_id): a second call replaces the
        row linked to that document in place, whatever its id, and keeps its
        original ``created_at``.

        Args:
            account_id: Owning account
            document_id: Id of the entry in the document store
            enriched_content: The text that was embedded
            vector: Embedding of ``enriched_content``
            tags: Entry tags (kept for tag search)
            temporal: Temporal side-channel computed during enrichment
            embedding_model: Model that produced ``vector``
            enrichment_version: Synonym table version used for enrichment
            created_at: Creation time for a new row (default: now)

        Returns:
            The vector id
        """
        ...

    async def get(self, vector_id: str) -> Optional[KnowledgeVector]:
        """Retrieve a vector row by id, or None."""
        ...

    async def find_by_document(
        self, account_id: str, document_id: str
    ) -> Optional[KnowledgeVector]:
        """
        The row currently linked to a document, or None.

        Looks the row up by its ``document_id`` payload, not by the derived id,
        so rows relinked to another document are found too.
        """
        ...

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
        """
        Partially update a vector row. ``updated_at`` is always refreshed.

        Raises:
            NotFound: If no row has this id
        """
        ...

    async def delete_by_vector_id(self, vector_id: str) -> bool:
        """
        Delete a vector row.

        Returns:
            True if a row was deleted, False if it did not exist
        """
        ...

    async def similarity_search(
        self,
        account_id: str,
        query_vector: List[float],
        threshold: float,
        limit: int,
        temporal_filter: Optional[TemporalFilter] = None,
    ) -> List[Tuple[KnowledgeVector, float]]:
        """
        Cosine similarity search within one account.

        Rows with ``similarity >= threshold`` are returned, sorted by
        similarity descending and truncated to ``limit``. With a temporal
        filter, rows carrying temporal references must also meet its
        relevance threshold.
        """
        ...

    async def by_tags(
        self, account_id: str, tags: Sequence[str], limit: int
    ) -> List[KnowledgeVector]:
        """Rows carrying any of ``tags``, newest first, one per document."""
        ...

    async def recent(self, account_id: str, limit: int) -> List[KnowledgeVector]:
        """Most recently created rows, newest first."""
        ...

    async def scan(self, account_id: str) -> List[KnowledgeVector]:
        """Every row of an account (maintenance only)."""
        ...

    async def tag_counts(self, account_id: str) -> Dict[str, int]:
        """Number of rows per tag, most used first."""
        ...


class DocumentStore(Protocol):
    """
    Protocol for the document store owning the raw knowledge entries.

    The document store is the source of truth for entry content and
    metadata; the retrieval pipeline only reads from it.
    """

    async def get_document(self, account_id: str, document_id: str) -> Optional[Dict[str, Any]]:
        """
        Retrieve a raw entry.

        Returns:
            The entry fields (``content``, ``tags``, ``added_by``,
            ``added_by_name``, ...) or None if missing
        """
        ...

    async def exists(self, account_id: str, document_id: str) -> bool:
        ...

    async def list_document_ids(self, account_id: str) -> List[str]:
        ...


class SearchCache(Protocol):
    """
    Protocol for short-lived caching of search results.

    Entries expire after the configured TTL. Any write to an account must
    call ``invalidate_account`` so stale results are never served.
    """

    async def get(self, account_id: str, key: str) -> Optional[List[SearchResult]]:
        ...

    async def set(self, account_id: str, key: str, results: List[SearchResult]) -> None:
        ...

    async def invalidate_account(self, account_id: str) -> int:
        """
        Drop every cached result of an account.

        Returns:
            Number of entries removed
        """
        ...
