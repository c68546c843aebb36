import logging
from datetime import datetime
from typing import Any, Dict, Optional

from memory_merge.embeddings import TextEmbedding
from memory_merge.enrichment import ContentEnricher, EnrichmentContext, strip_enrichment
from memory_merge.errors import InvalidRequest, NotFound
from memory_merge.models import KnowledgeEntry, KnowledgeUpdate
from memory_merge.storage import DocumentStore, KnowledgeVectorStore, SearchCache
from memory_merge.storage.vector.models import KnowledgeVector

logger = logging.getLogger(__name__)


def parse_client_date(value: Optional[str]) -> Optional[datetime]:
    """
    Parse a client storage date (``YYYY-MM-DD`` or ISO timestamp).

    The wall-clock time is kept as the user saw it; any offset is dropped.

    Raises:
        InvalidRequest: If the value is not an ISO date
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise InvalidRequest(
            f"Invalid clientStorageDate: {value!r}", field="clientStorageDate"
        ) from e
    return parsed.replace(tzinfo=None)


def entry_from_document(document: Dict[str, Any]) -> KnowledgeEntry:
    """Build a KnowledgeEntry from a document store record (snake or camel case keys)."""
    return KnowledgeEntry(
        content=document.get("content") or "",
        tags=list(document.get("tags") or []),
        added_by=document.get("added_by") or document.get("addedBy"),
        added_by_name=document.get("added_by_name") or document.get("addedByName"),
        client_storage_date=document.get("client_storage_date")
        or document.get("clientStorageDate"),
        user_timezone=document.get("user_timezone") or document.get("userTimezone"),
    )


class KnowledgeService:
    """
    Write path for knowledge entries.

    Every stored entry is enriched, embedded and upserted, strictly in that
    order: if enrichment or embedding fails nothing is written. The vector
    row is keyed by (account, document), so retries are idempotent.
    """

    def __init__(
        self,
        vector_store: KnowledgeVectorStore,
        embedding: TextEmbedding,
        enricher: Optional[ContentEnricher] = None,
        document_store: Optional[DocumentStore] = None,
        cache: Optional[SearchCache] = None,
    ):
        self.vector_store = vector_store
        self.embedding = embedding
        self.enricher = enricher or ContentEnricher()
        self.document_store = document_store
        self.cache = cache

    async def _resolve_author(
        self, account_id: str, document_id: str, entry: KnowledgeEntry
    ) -> Optional[str]:
        if entry.added_by_name:
            return entry.added_by_name

        if self.document_store is not None:
            document = await self.document_store.get_document(account_id, document_id)
            if document:
                name = document.get("added_by_name") or document.get("addedByName")
                if name:
                    return name

        if entry.added_by:
            return f"User {entry.added_by[:8]}"
        return None

    async def _invalidate(self, account_id: str) -> None:
        if self.cache is not None:
            await self.cache.invalidate_account(account_id)

    async def store(
        self,
        account_id: str,
        document_id: str,
        entry: KnowledgeEntry,
        storage_date: Optional[datetime] = None,
    ) -> str:
        """
        Enrich, embed and store a knowledge entry.

        Args:
            account_id: Owning account
            document_id: Id of the entry in the document store
            entry: The raw entry
            storage_date: When the entry was first stored, for entries without a
                client storage date (default: now)

        Returns:
            The vector id

        Raises:
            InvalidRequest: If account_id or document_id is missing
            EmbeddingError: If the enriched text cannot be embedded (nothing is written)
            StoreUnavailable: If the vector store cannot be reached
        """
        if not account_id or not account_id.strip():
            raise InvalidRequest("accountId is required", field="accountId")
        if not document_id or not document_id.strip():
            raise InvalidRequest("firebaseDocId is required", field="firebaseDocId")

        now = datetime.now()
        stored_on = parse_client_date(entry.client_storage_date) or storage_date or now
        author = await self._resolve_author(account_id, document_id, entry)

        context = EnrichmentContext(
            author=author,
            action="Added",
            storage_date=stored_on,
            storage_date_label=entry.client_storage_date,
            reference_date=stored_on,
            now=now,
        )
        enriched = self.enricher.enrich_entry(entry.content, context)
        vector = await self.embedding.embed_document(enriched.text)

        vector_id = await self.vector_store.upsert(
            account_id,
            document_id,
            enriched.text,
            vector,
            tags=entry.tags,
            temporal=enriched.temporal,
            embedding_model=self.embedding.model_name,
            enrichment_version=self.enricher.version,
            created_at=storage_date,
        )
        await self._invalidate(account_id)

        logger.info(
            f"Stored knowledge {vector_id} (account={account_id}, document={document_id}, "
            f"temporal_refs={len(enriched.temporal.temporal_info)})"
        )
        return vector_id

    async def update(
        self,
        vector_id: str,
        updates: KnowledgeUpdate,
        document_id: Optional[str] = None,
    ) -> KnowledgeVector:
        """
        Apply a partial update to a stored entry.

        Content changes are re-enriched (relative dates resolve against now,
        provenance keeps the original storage date) and re-embedded. Tag and
        document id changes update the row in place.

        Raises:
            NotFound: If no vector has this id
            InvalidRequest: If the new content is blank
            EmbeddingError: If new content cannot be embedded (nothing is written)
        """
        if not vector_id:
            raise InvalidRequest("vectorId is required", field="vectorId")

        row = await self.vector_store.get(vector_id)
        if row is None:
            raise NotFound(f"Vector {vector_id} not found")

        changes: Dict[str, Any] = {}
        if updates.content is not None:
            content = updates.content.strip()
            if not content:
                raise InvalidRequest("content must not be empty", field="content")

            if content != strip_enrichment(row.payload.enriched_content).strip():
                now = datetime.now()
                context = EnrichmentContext(
                    action="Updated",
                    storage_date=datetime.fromisoformat(row.payload.created_at),
                    reference_date=now,
                    now=now,
                )
                enriched = self.enricher.enrich_entry(content, context)
                changes["vector"] = await self.embedding.embed_document(enriched.text)
                changes["enriched_content"] = enriched.text
                changes["temporal"] = enriched.temporal
                changes["embedding_model"] = self.embedding.model_name
                changes["enrichment_version"] = self.enricher.version
            else:
                logger.debug(f"Content of {vector_id} unchanged, skipping re-embedding")

        if updates.tags is not None:
            changes["tags"] = updates.tags
        if document_id and document_id != row.payload.document_id:
            linked = await self.vector_store.find_by_document(row.payload.account_id, document_id)
            if linked is not None and linked.id != vector_id:
                # One row per document: the relinked row replaces the current one
                await self.vector_store.delete_by_vector_id(linked.id)
                logger.info(f"Replaced vector {linked.id} of document {document_id} with {vector_id}")
            changes["document_id"] = document_id

        updated = await self.vector_store.update(vector_id, **changes)
        await self._invalidate(row.payload.account_id)

        logger.info(
            f"Updated knowledge {vector_id} "
            f"(re-embedded={'vector' in changes}, fields={sorted(changes)})"
        )
        return updated

    async def delete(self, vector_id: str) -> None:
        """
        Delete the vector row of an entry. The document store is not touched.

        Raises:
            NotFound: If no vector has this id
        """
        if not vector_id:
            raise InvalidRequest("vectorId is required", field="vectorId")

        row = await self.vector_store.get(vector_id)
        if row is None:
            raise NotFound(f"Vector {vector_id} not found")

        await self.vector_store.delete_by_vector_id(vector_id)
        await self._invalidate(row.payload.account_id)

        logger.info(f"Deleted knowledge {vector_id} (account={row.payload.account_id})")

    async def delete_for_document(self, account_id: str, document_id: str) -> bool:
        """
        Delete the vector of a document that was removed from the document store.

        Returns:
            True if a vector was deleted, False if there was none
        """
        row = await self.vector_store.find_by_document(account_id, document_id)
        if row is None:
            return False

        deleted = await self.vector_store.delete_by_vector_id(row.id)
        if deleted:
            await self._invalidate(account_id)
            logger.info(f"Deleted vector of removed document {document_id} (account={account_id})")
        return deleted
