"""Build the retrieval components from runtime settings."""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import create_engine

from memory_merge.config import Settings
from memory_merge.embeddings import OpenAIEmbedding, TextEmbedding
from memory_merge.enrichment import ContentEnricher, QueryExpander
from memory_merge.knowledge_service import KnowledgeService
from memory_merge.maintenance import KnowledgeMaintenance
from memory_merge.search_service import HybridSearchService
from memory_merge.storage import (
    DocumentStore,
    InMemoryDocumentStore,
    InMemoryKnowledgeVectorStore,
    InMemorySearchCache,
    KnowledgeVectorStore,
    QdrantKnowledgeVectorStore,
    RedisSearchCache,
    SearchCache,
    SQLAlchemyDocumentStore,
)

logger = logging.getLogger(__name__)


@dataclass
class Components:
    embedding: TextEmbedding
    vector_store: KnowledgeVectorStore
    document_store: DocumentStore
    cache: Optional[SearchCache]
    search_service: HybridSearchService
    knowledge_service: KnowledgeService
    maintenance: KnowledgeMaintenance


def build_vector_store(settings: Settings) -> KnowledgeVectorStore:
    if settings.vector_backend == "qdrant":
        return QdrantKnowledgeVectorStore(
            url=settings.qdrant_url,
            collection_name=settings.qdrant_collection,
            dimension=settings.embedding_dimensions,
            api_key=settings.qdrant_api_key,
        )
    return InMemoryKnowledgeVectorStore(dimension=settings.embedding_dimensions)


def build_document_store(settings: Settings) -> DocumentStore:
    if settings.document_backend == "sqlalchemy":
        connect_args = {}
        if settings.database_url.startswith("sqlite"):
            # Sessions run in worker threads
            connect_args["check_same_thread"] = False
        store = SQLAlchemyDocumentStore(
            create_engine(settings.database_url, pool_pre_ping=True, connect_args=connect_args)
        )
        store.create_tables()
        return store
    return InMemoryDocumentStore()


def build_cache(settings: Settings) -> Optional[SearchCache]:
    if settings.cache_backend == "redis":
        return RedisSearchCache(url=settings.redis_url, ttl_seconds=settings.search_cache_ttl)
    if settings.cache_backend == "memory":
        return InMemorySearchCache(ttl_seconds=settings.search_cache_ttl)
    return None


def build_components(
    settings: Settings,
    embedding: Optional[TextEmbedding] = None,
    vector_store: Optional[KnowledgeVectorStore] = None,
    document_store: Optional[DocumentStore] = None,
    cache: Optional[SearchCache] = None,
) -> Components:
    """
    Wire every component from settings.

    Explicit arguments override the configured backends (tests, embedding
    into another service). The write path and the search path share one
    embedder and one enricher/expander table.
    """
    embedding = embedding or OpenAIEmbedding(
        model=settings.embedding_model,
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        dimensions=settings.embedding_dimensions,
        timeout=settings.embedding_timeout,
    )
    vector_store = vector_store or build_vector_store(settings)
    document_store = document_store or build_document_store(settings)
    if cache is None:
        cache = build_cache(settings)

    enricher = ContentEnricher()
    expander = QueryExpander(enricher.table)

    search_service = HybridSearchService(
        vector_store,
        embedding,
        expander=expander,
        cache=cache,
        default_match_threshold=settings.default_match_threshold,
        default_match_count=settings.default_match_count,
        threshold_ladder=settings.threshold_ladder,
        tag_match_score=settings.tag_match_score,
        max_tag_results=settings.max_tag_results,
    )
    knowledge_service = KnowledgeService(
        vector_store,
        embedding,
        enricher=enricher,
        document_store=document_store,
        cache=cache,
    )
    maintenance = KnowledgeMaintenance(vector_store, document_store, knowledge_service)

    logger.info(
        f"Components built (vector={settings.vector_backend}, documents={settings.document_backend}, "
        f"cache={settings.cache_backend}, model={embedding.model_name})"
    )
    return Components(
        embedding=embedding,
        vector_store=vector_store,
        document_store=document_store,
        cache=cache,
        search_service=search_service,
        knowledge_service=knowledge_service,
        maintenance=maintenance,
    )


async def close_components(components: Components) -> None:
    for resource in (components.vector_store, components.cache):
        close = getattr(resource, "close", None)
        if close is not None:
            await close()
