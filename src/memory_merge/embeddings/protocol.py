"""
Text embedding protocol for memory-merge.

Provides a unified interface for embedding enriched content and expanded
queries into dense vectors for similarity search.
"""

from typing import List, Protocol

from typing_extensions import runtime_checkable


@runtime_checkable
class TextEmbedding(Protocol):
    """
    Protocol for text embedding providers.

    All implementations must:

    1. Return deterministic vectors for the same input
    2. Return vectors of exactly ``dimension`` elements
    3. Raise ``EmbeddingError`` on upstream failure, timeout or bad output
    4. Not retry internally (retry policy belongs to the HTTP edge)

    The write path and the read path must share one embedder: vectors from
    different models or dimensions are not comparable.

    Example:
        >>> embedder = OpenAIEmbedding()
        >>> vector = await embedder.embed_document("Spare key under the mat")
        >>> len(vector) == embedder.dimension
        True
    """

    @property
    def dimension(self) -> int:
        """
        Vector dimension produced by this embedder.

        All vectors in a vector store must share this dimension.
        """
        ...

    @property
    def model_name(self) -> str:
        """Identifier of the embedding model (e.g., "text-embedding-3-large")."""
        ...

    async def embed_document(self, text: str) -> List[float]:
        """
        Generate embedding for enriched content to be stored.

        Raises:
            ValueError: If text is empty
            EmbeddingError: If the model call fails or returns a bad vector
        """
        ...

    async def embed_query(self, text: str) -> List[float]:
        """
        Generate embedding for an expanded search query.

        Raises:
            ValueError: If text is empty
            EmbeddingError: If the model call fails or returns a bad vector
        """
        ...

    async def embed_documents(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        """Generate embeddings for multiple documents (same order as input)."""
        ...

    async def embed_queries(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        """Generate embeddings for multiple queries (same order as input)."""
        ...
