import asyncio
import logging
import uuid
from collections import Counter
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from qdrant_client import AsyncQdrantClient
from qdrant_client.http.exceptions import ResponseHandlingException, UnexpectedResponse
from qdrant_client.models import (
    Direction,
    Distance,
    FieldCondition,
    Filter,
    MatchAny,
    MatchValue,
    OrderBy,
    PayloadSchemaType,
    PointIdsList,
    PointStruct,
    Range,
    VectorParams,
)

from memory_merge.errors import DimensionMismatch, NotFound, StoreUnavailable
from memory_merge.models import ProcessedTemporalContent, TemporalFilter
from memory_merge.storage.vector.models import (
    KnowledgeVector,
    KnowledgeVectorPayload,
    build_payload,
    vector_id_for,
)

logger = logging.getLogger(__name__)

BACKEND_ERRORS = (UnexpectedResponse, ResponseHandlingException, ConnectionError, TimeoutError)

KEYWORD_INDEXES = ("account_id", "document_id", "tags")


class QdrantKnowledgeVectorStore:
    def __init__(
        self,
        url: str = "http://localhost:6333",
        collection_name: str = "knowledge_vectors",
        dimension: int = 1536,
        api_key: Optional[str] = None,
        client: Optional[AsyncQdrantClient] = None,
        scroll_batch_size: int = 256,
    ):
        """
        Initialize Qdrant knowledge vector store.

        The collection is created (or checked) lazily on first use, or
        eagerly via ``initialize()``.

        Args:
            url: Qdrant server URL (default: http://localhost:6333)
            collection_name: Collection name (default: knowledge_vectors)
            dimension: Vector dimension of the configured embedding model
            api_key: Optional Qdrant API key
            client: Pre-built async client (tests, shared connections)
            scroll_batch_size: Page size for scans
        """
        self.client = client or AsyncQdrantClient(url=url, api_key=api_key)
        self.collection_name = collection_name
        self._dimension = dimension
        self._scroll_batch_size = scroll_batch_size
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @property
    def dimension(self) -> int:
        return self._dimension

    async def initialize(self) -> None:
        """
        Create the collection and payload indexes, or verify an existing one.

        Raises:
            DimensionMismatch: If the existing collection has another vector size
            StoreUnavailable: If Qdrant cannot be reached
        """
        async with self._init_lock:
            if self._initialized:
                return
            try:
                if not await self.client.collection_exists(self.collection_name):
                    await self.client.create_collection(
                        collection_name=self.collection_name,
                        vectors_config=VectorParams(size=self._dimension, distance=Distance.COSINE),
                    )
                    logger.info(
                        f"Created collection '{self.collection_name}' "
                        f"with vector size {self._dimension}"
                    )
                else:
                    info = await self.client.get_collection(self.collection_name)
                    size = info.config.params.vectors.size
                    if size != self._dimension:
                        logger.critical(
                            f"Collection '{self.collection_name}' has vector size {size}, "
                            f"configured embedding produces {self._dimension}"
                        )
                        raise DimensionMismatch(size, self._dimension)

                # Idempotent: Qdrant ignores indexes that already exist
                for field in KEYWORD_INDEXES:
                    await self.client.create_payload_index(
                        collection_name=self.collection_name,
                        field_name=field,
                        field_schema=PayloadSchemaType.KEYWORD,
                    )
                # created_at_ts FLOAT index is required for order_by in scroll
                await self.client.create_payload_index(
                    collection_name=self.collection_name,
                    field_name="created_at_ts",
                    field_schema=PayloadSchemaType.FLOAT,
                )
            except BACKEND_ERRORS as e:
                logger.error(f"Failed to initialize collection '{self.collection_name}': {e}")
                raise StoreUnavailable(f"Qdrant unavailable: {e}") from e

            self._initialized = True
            logger.info(f"QdrantKnowledgeVectorStore ready (collection={self.collection_name})")

    async def close(self) -> None:
        await self.client.close()

    async def _ensure_ready(self) -> None:
        if not self._initialized:
            await self.initialize()

    def _check_dimension(self, vector: List[float]) -> None:
        if len(vector) != self._dimension:
            logger.critical(
                f"Vector dimension {len(vector)} does not match collection dimension {self._dimension}"
            )
            raise DimensionMismatch(self._dimension, len(vector))

    @staticmethod
    def _account_condition(account_id: str) -> FieldCondition:
        return FieldCondition(key="account_id", match=MatchValue(value=account_id))

    @staticmethod
    def _to_vector(point) -> KnowledgeVector:
        return KnowledgeVector(
            id=str(point.id),
            vector=list(point.vector or []),
            payload=KnowledgeVectorPayload.model_validate(point.payload),
        )

    async def _put(self, row: KnowledgeVector) -> None:
        await self.client.upsert(
            collection_name=self.collection_name,
            points=[
                PointStruct(id=row.id, vector=row.vector, payload=row.payload.model_dump(mode="json"))
            ],
        )

    @staticmethod
    def _is_point_id(vector_id: str) -> bool:
        try:
            uuid.UUID(vector_id)
        except (TypeError, ValueError):
            return False
        return True

    async def _get(self, vector_id: str) -> Optional[KnowledgeVector]:
        # Qdrant rejects ids that are not UUIDs with a 400
        if not self._is_point_id(vector_id):
            logger.debug(f"Vector id {vector_id!r} is not a UUID, no such row")
            return None
        points = await self.client.retrieve(
            collection_name=self.collection_name,
            ids=[vector_id],
            with_vectors=True,
            with_payload=True,
        )
        return self._to_vector(points[0]) if points else None

    async def _find(self, account_id: str, document_id: str) -> Optional[KnowledgeVector]:
        rows = await self._scroll(
            Filter(
                must=[
                    self._account_condition(account_id),
                    FieldCondition(key="document_id", match=MatchValue(value=document_id)),
                ]
            ),
            limit=1,
        )
        return rows[0] if rows else None

    async def _scroll(
        self,
        scroll_filter: Filter,
        limit: Optional[int] = None,
        newest_first: bool = False,
        with_vectors: bool = True,
    ) -> List[KnowledgeVector]:
        rows: List[KnowledgeVector] = []

        if newest_first:
            # order_by pages are bounded by limit; no offset paging
            points, _ = await self.client.scroll(
                collection_name=self.collection_name,
                scroll_filter=scroll_filter,
                limit=limit or self._scroll_batch_size,
                order_by=OrderBy(key="created_at_ts", direction=Direction.DESC),
                with_payload=True,
                with_vectors=with_vectors,
            )
            return [self._to_vector(point) for point in points]

        offset = None
        while True:
            points, offset = await self.client.scroll(
                collection_name=self.collection_name,
                scroll_filter=scroll_filter,
                limit=self._scroll_batch_size,
                offset=offset,
                with_payload=True,
                with_vectors=with_vectors,
            )
            rows.extend(self._to_vector(point) for point in points)
            if offset is None or (limit is not None and len(rows) >= limit):
                break

        return rows[:limit] if limit is not None else rows

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

        Returns:
            The id of the row linked to the document; new rows get the
            deterministic id of (account_id, document_id)
        """
        self._check_dimension(vector)
        await self._ensure_ready()

        now = datetime.now()
        try:
            existing = await self._find(account_id, document_id)
            if existing is not None:
                vector_id = existing.id
            else:
                vector_id = vector_id_for(account_id, document_id)
                if await self._get(vector_id) is not None:
                    # Derived id still held by a row relinked to another document
                    vector_id = str(uuid.uuid4())
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

            await self._put(KnowledgeVector(id=vector_id, vector=list(vector), payload=payload))
        except BACKEND_ERRORS as e:
            logger.error(f"Failed to upsert vector for document {document_id}: {e}")
            raise StoreUnavailable(f"Qdrant unavailable: {e}") from e

        logger.debug(f"Upserted vector {vector_id} (account={account_id}, document={document_id})")
        return vector_id

    async def get(self, vector_id: str) -> Optional[KnowledgeVector]:
        await self._ensure_ready()
        try:
            return await self._get(vector_id)
        except BACKEND_ERRORS as e:
            logger.error(f"Failed to retrieve vector {vector_id}: {e}")
            raise StoreUnavailable(f"Qdrant unavailable: {e}") from e

    async def find_by_document(
        self, account_id: str, document_id: str
    ) -> Optional[KnowledgeVector]:
        await self._ensure_ready()
        try:
            return await self._find(account_id, document_id)
        except BACKEND_ERRORS as e:
            logger.error(f"Failed to look up vector for document {document_id}: {e}")
            raise StoreUnavailable(f"Qdrant unavailable: {e}") from e

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
        Partially update a row. ``updated_at`` is always refreshed.

        Raises:
            NotFound: If no row has this id
        """
        if vector is not None:
            self._check_dimension(vector)

        row = await self.get(vector_id)
        if row is None:
            raise NotFound(f"Vector {vector_id} not found")

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
        if vector is not None:
            row.vector = list(vector)

        try:
            await self._put(row)
        except BACKEND_ERRORS as e:
            logger.error(f"Failed to update vector {vector_id}: {e}")
            raise StoreUnavailable(f"Qdrant unavailable: {e}") from e

        logger.debug(f"Updated vector {vector_id}")
        return row

    async def delete_by_vector_id(self, vector_id: str) -> bool:
        await self._ensure_ready()
        try:
            if await self._get(vector_id) is None:
                logger.debug(f"Vector {vector_id} not found, nothing to delete")
                return False
            await self.client.delete(
                collection_name=self.collection_name,
                points_selector=PointIdsList(points=[vector_id]),
            )
        except BACKEND_ERRORS as e:
            logger.error(f"Failed to delete vector {vector_id}: {e}")
            raise StoreUnavailable(f"Qdrant unavailable: {e}") from e

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
        await self._ensure_ready()

        # Account scoping is always the first condition
        must = [self._account_condition(account_id)]
        if temporal_filter is not None:
            must.append(
                Filter(
                    should=[
                        FieldCondition(
                            key="temporal_relevance_score",
                            range=Range(gte=temporal_filter.relevance_threshold),
                        ),
                        FieldCondition(key="contains_temporal_refs", match=MatchValue(value=False)),
                    ]
                )
            )

        try:
            response = await self.client.query_points(
                collection_name=self.collection_name,
                query=query_vector,
                query_filter=Filter(must=must),
                limit=limit,
                score_threshold=threshold,
                with_payload=True,
                with_vectors=True,
            )
        except BACKEND_ERRORS as e:
            logger.error(f"Similarity search failed (account={account_id}): {e}")
            raise StoreUnavailable(f"Qdrant unavailable: {e}") from e

        results = []
        for point in response.points:
            if point.score < threshold:
                logger.debug(f"Skipping due to low score: {point.score}")
                continue
            results.append((self._to_vector(point), float(point.score)))

        results.sort(key=lambda item: item[1], reverse=True)
        logger.debug(f"{len(results)} hits found (account={account_id}, threshold={threshold})")
        return results[:limit]

    async def by_tags(
        self, account_id: str, tags: Sequence[str], limit: int
    ) -> List[KnowledgeVector]:
        if not tags or limit <= 0:
            return []
        await self._ensure_ready()

        scroll_filter = Filter(
            must=[
                self._account_condition(account_id),
                FieldCondition(key="tags", match=MatchAny(any=list(tags))),
            ]
        )
        try:
            rows = await self._scroll(scroll_filter, limit=limit, newest_first=True)
        except BACKEND_ERRORS as e:
            logger.error(f"Tag search failed (account={account_id}): {e}")
            raise StoreUnavailable(f"Qdrant unavailable: {e}") from e

        results: List[KnowledgeVector] = []
        seen_documents = set()
        for row in rows:
            if row.payload.document_id in seen_documents:
                continue
            seen_documents.add(row.payload.document_id)
            results.append(row)
        return results

    async def recent(self, account_id: str, limit: int) -> List[KnowledgeVector]:
        if limit <= 0:
            return []
        await self._ensure_ready()
        try:
            return await self._scroll(
                Filter(must=[self._account_condition(account_id)]),
                limit=limit,
                newest_first=True,
            )
        except BACKEND_ERRORS as e:
            logger.error(f"Recent listing failed (account={account_id}): {e}")
            raise StoreUnavailable(f"Qdrant unavailable: {e}") from e

    async def scan(self, account_id: str) -> List[KnowledgeVector]:
        await self._ensure_ready()
        try:
            return await self._scroll(Filter(must=[self._account_condition(account_id)]))
        except BACKEND_ERRORS as e:
            logger.error(f"Scan failed (account={account_id}): {e}")
            raise StoreUnavailable(f"Qdrant unavailable: {e}") from e

    async def tag_counts(self, account_id: str) -> Dict[str, int]:
        await self._ensure_ready()
        try:
            rows = await self._scroll(
                Filter(must=[self._account_condition(account_id)]), with_vectors=False
            )
        except BACKEND_ERRORS as e:
            logger.error(f"Tag statistics failed (account={account_id}): {e}")
            raise StoreUnavailable(f"Qdrant unavailable: {e}") from e

        counts = Counter(tag for row in rows for tag in row.payload.tags)
        return dict(counts.most_common())

    async def clear_account(self, account_id: str) -> int:
        """
        Delete every vector of an account.

        Returns:
            Number of vectors deleted
        """
        rows = await self.scan(account_id)
        if rows:
            try:
                await self.client.delete(
                    collection_name=self.collection_name,
                    points_selector=PointIdsList(points=[row.id for row in rows]),
                )
            except BACKEND_ERRORS as e:
                logger.error(f"Failed to clear vectors for account={account_id}: {e}")
                raise StoreUnavailable(f"Qdrant unavailable: {e}") from e

        logger.info(f"Cleared {len(rows)} vectors for account={account_id}")
        return len(rows)
