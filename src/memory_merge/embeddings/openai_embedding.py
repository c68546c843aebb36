"""OpenAI embedding adapter for memory-merge."""

import logging
import os
from typing import List, Optional

import openai
from openai import AsyncOpenAI

from memory_merge.errors import EmbeddingError

logger = logging.getLogger(__name__)

DEFAULT_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class OpenAIEmbedding:
    """
    Embedding adapter using OpenAI's embedding API.

    Supports OpenAI's embedding models via API:
    - text-embedding-3-large (3072 dims, configurable; 1536 by default here)
    - text-embedding-3-small (1536 dims, configurable 512-1536)
    - text-embedding-ada-002 (1536 dims, legacy)

    Also compatible with OpenAI-compatible APIs (Azure, OpenRouter, etc.)

    The client is created with ``max_retries=0``: a failed call surfaces as
    ``EmbeddingError`` immediately and the caller decides whether to retry.

    Example:
        >>> embedder = OpenAIEmbedding(api_key="sk-...")
        >>> vector = await embedder.embed_document("I like pizza")
        >>> len(vector)
        1536
    """

    def __init__(
        self,
        model: str = "text-embedding-3-large",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        dimensions: Optional[int] = 1536,
        timeout: float = 30.0,
    ):
        """
        Initialize OpenAI embedder.

        Args:
            model: OpenAI model name (default: text-embedding-3-large)
            api_key: OpenAI API key (None = use OPENAI_API_KEY env var)
            base_url: Custom endpoint (None = official OpenAI, or Azure/OpenRouter)
            dimensions: Output dimension (None = the model's native size)
            timeout: Request timeout in seconds
        """
        if dimensions is None and model not in DEFAULT_DIMENSIONS:
            raise ValueError(f"Unknown model {model}: dimensions must be given explicitly")

        self._model = model
        self._dimensions = dimensions
        self._dimension = dimensions if dimensions is not None else DEFAULT_DIMENSIONS[model]

        self._client = AsyncOpenAI(
            api_key=api_key or os.getenv("OPENAI_API_KEY"),
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
        )

        logger.info(f"OpenAI embedder initialized: {model} ({self._dimension} dimensions)")

    @property
    def dimension(self) -> int:
        """Vector dimension produced by this model."""
        return self._dimension

    @property
    def model_name(self) -> str:
        """Identifier of the OpenAI model."""
        return self._model

    async def _embed(self, texts: List[str]) -> List[List[float]]:
        kwargs = {
            "model": self._model,
            "input": [text.replace("\n", " ") for text in texts],
            "encoding_format": "float",
        }
        if self._dimensions is not None:
            kwargs["dimensions"] = self._dimensions

        try:
            response = await self._client.embeddings.create(**kwargs)
        except openai.OpenAIError as e:
            logger.error(f"Embedding request failed ({self._model}): {e}")
            raise EmbeddingError(f"Failed to generate embedding: {e}") from e

        vectors = [item.embedding for item in sorted(response.data, key=lambda item: item.index)]
        if len(vectors) != len(texts):
            raise EmbeddingError(f"Expected {len(texts)} embeddings, got {len(vectors)}")
        for vector in vectors:
            if len(vector) != self._dimension:
                raise EmbeddingError(
                    f"Model {self._model} returned {len(vector)} dimensions, expected {self._dimension}"
                )
        return vectors

    async def embed_document(self, text: str) -> List[float]:
        """
        Generate embedding for enriched content to be stored.

        OpenAI models don't require document/query distinction, so this
        is identical to embed_query().

        Raises:
            ValueError: If text is empty
            EmbeddingError: If the API request fails or returns a bad vector
        """
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        return (await self._embed([text]))[0]

    async def embed_query(self, text: str) -> List[float]:
        """
        Generate embedding for a search query.

        Raises:
            ValueError: If text is empty
            EmbeddingError: If the API request fails or returns a bad vector
        """
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        return (await self._embed([text]))[0]

    async def embed_documents(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        """
        Generate embeddings for multiple documents, ``batch_size`` per request.

        Raises:
            ValueError: If any text is empty
            EmbeddingError: If any API request fails
        """
        if not texts:
            return []

        if any(not text or not text.strip() for text in texts):
            raise ValueError("Cannot embed empty texts in batch")

        vectors: List[List[float]] = []
        for start in range(0, len(texts), batch_size):
            vectors.extend(await self._embed(texts[start:start + batch_size]))
        return vectors

    async def embed_queries(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        """Generate embeddings for multiple queries (identical to embed_documents)."""
        return await self.embed_documents(texts, batch_size=batch_size)
