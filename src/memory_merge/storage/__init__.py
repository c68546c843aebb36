"""
Storage protocols and backends for knowledge retrieval.

Provides protocol definitions for the vector store, the document store and
the search cache, plus their in-memory, Qdrant, SQLAlchemy and Redis
implementations.
"""

from memory_merge.storage.cache.memory import InMemorySearchCache
from memory_merge.storage.cache.redis import RedisSearchCache
from memory_merge.storage.documents.memory import InMemoryDocumentStore
from memory_merge.storage.documents.sqlalchemy import SQLAlchemyDocumentStore
from memory_merge.storage.protocols import DocumentStore, KnowledgeVectorStore, SearchCache
from memory_merge.storage.vector.memory import InMemoryKnowledgeVectorStore
from memory_merge.storage.vector.models import KnowledgeVector, KnowledgeVectorPayload
from memory_merge.storage.vector.qdrant import QdrantKnowledgeVectorStore

__all__ = [
    # Protocols
    "KnowledgeVectorStore",
    "DocumentStore",
    "SearchCache",
    # Models
    "KnowledgeVector",
    "KnowledgeVectorPayload",
    # Vector storage
    "InMemoryKnowledgeVectorStore",
    "QdrantKnowledgeVectorStore",
    # Document storage
    "InMemoryDocumentStore",
    "SQLAlchemyDocumentStore",
    # Search cache
    "InMemorySearchCache",
    "RedisSearchCache",
]
