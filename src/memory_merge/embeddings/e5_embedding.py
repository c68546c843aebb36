"""E5 embedding adapter for memory-merge (local sentence-transformers model)."""

import asyncio
import logging
from typing import List, Optional

from memory_merge.errors import EmbeddingError

logger = logging.getLogger(__name__)


class E5Embedding:
    """
    Local E5 embedder for deployments without an embedding API.

    E5 checkpoints expect a role prefix on every input:
    - "passage: " for enriched content to be stored
    - "query: " for expanded search queries

    This adapter handles prefix injection in embed_document() and
    embed_query(). Encoding runs in the default executor so the event loop
    is not blocked.

    The vector store dimension must match the checkpoint: 768 for
    e5-base-v2, 1024 for e5-large-v2 and 384 for e5-small-v2. Switching
    checkpoints means re-embedding the stored knowledge.
    """

    def __init__(
        self,
        model_name: str = "intfloat/e5-base-v2",
        device: Optional[str] = None,
        normalize_embeddings: bool = True,
        cache_folder: Optional[str] = None,
    ):
        """
        Load the model. Blocks until the checkpoint is downloaded.

        Args:
            model_name: HuggingFace checkpoint
            device: "cuda", "cpu", or None to let sentence-transformers pick
            normalize_embeddings: L2-normalize outputs so dot product equals cosine
            cache_folder: Checkpoint cache directory
        """
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as e:
            raise ImportError(
                "sentence-transformers is required for E5Embedding. "
                "Install with: pip install memory-merge[embeddings-transformers]"
            ) from e

        self._model_name = model_name
        self._normalize = normalize_embeddings

        logger.info(f"Loading E5 model: {model_name}")
        self._model = SentenceTransformer(model_name, device=device, cache_folder=cache_folder)
        self._dimension = self._model.get_sentence_embedding_dimension()
        logger.info(f"Model loaded: {model_name} ({self._dimension} dimensions)")

    @property
    def dimension(self) -> int:
        """Vector dimension produced by this model."""
        return self._dimension

    @property
    def model_name(self) -> str:
        """Identifier of the loaded model."""
        return self._model_name

    async def _encode(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        loop = asyncio.get_running_loop()
        try:
            embeddings = await loop.run_in_executor(
                None,
                lambda: self._model.encode(
                    texts,
                    normalize_embeddings=self._normalize,
                    show_progress_bar=False,
                    batch_size=batch_size,
                ),
            )
        except Exception as e:
            logger.error(f"E5 encoding failed: {e}")
            raise EmbeddingError(f"Failed to generate embedding: {e}") from e

        vectors = embeddings.tolist()
        for vector in vectors:
            if len(vector) != self._dimension:
                raise EmbeddingError(
                    f"Model {self._model_name} returned {len(vector)} dimensions, expected {self._dimension}"
                )
        return vectors

    async def embed_document(self, text: str) -> List[float]:
        """Generate embedding for enriched content ("passage: " prefix added)."""
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        return (await self._encode([f"passage: {text}"]))[0]

    async def embed_query(self, text: str) -> List[float]:
        """Generate embedding for a search query ("query: " prefix added)."""
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        return (await self._encode([f"query: {text}"]))[0]

    async def embed_documents(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        if not texts:
            return []

        if any(not text or not text.strip() for text in texts):
            raise ValueError("Cannot embed empty texts in batch")

        return await self._encode([f"passage: {text}" for text in texts], batch_size=batch_size)

    async def embed_queries(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        if not texts:
            return []

        if any(not text or not text.strip() for text in texts):
            raise ValueError("Cannot embed empty texts in batch")

        return await self._encode([f"query: {text}" for text in texts], batch_size=batch_size)
