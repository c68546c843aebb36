"""
memory-merge: Hybrid semantic retrieval for collaborative knowledge spaces.

Core components:
- enrichment: Content enrichment and query expansion over a shared synonym table
- embeddings: Text embedding adapters (OpenAI, E5)
- storage: Protocol abstractions and backends for vectors, documents and caching
- search_service: Hybrid search orchestration (vector + tags, threshold fallback)
- knowledge_service: Write path (enrich, embed, upsert)
- models: Core data models (KnowledgeEntry, SearchResult, etc.)
"""

__version__ = "0.1.0"

from memory_merge.errors import (
    DimensionMismatch,
    EmbeddingError,
    InvalidRequest,
    MemoryMergeError,
    NotFound,
    StoreUnavailable,
)
from memory_merge.knowledge_service import KnowledgeService
from memory_merge.models import (
    KnowledgeEntry,
    KnowledgeUpdate,
    SearchOptions,
    SearchResult,
    TemporalFilter,
)
from memory_merge.search_service import HybridSearchService

__all__ = [
    "__version__",
    # Models
    "KnowledgeEntry",
    "KnowledgeUpdate",
    "SearchOptions",
    "SearchResult",
    "TemporalFilter",
    # Services
    "HybridSearchService",
    "KnowledgeService",
    # Errors
    "MemoryMergeError",
    "InvalidRequest",
    "EmbeddingError",
    "StoreUnavailable",
    "DimensionMismatch",
    "NotFound",
]
