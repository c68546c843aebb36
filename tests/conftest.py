"""Shared fixtures: a deterministic embedder and in-memory backends."""

import hashlib
import math
import re
from typing import List

import pytest

from memory_merge.errors import EmbeddingError
from memory_merge.storage.cache.memory import InMemorySearchCache
from memory_merge.storage.documents.memory import InMemoryDocumentStore
from memory_merge.storage.vector.memory import InMemoryKnowledgeVectorStore

TOKEN_RE = re.compile(r"\w+")


class HashingEmbedding:
    """
    Bag-of-words embedder for tests.

    Every token is hashed into one of ``dimension`` buckets and the vector is
    L2-normalized, so texts sharing words have positive cosine similarity and
    identical texts have similarity 1.0.
    """

    def __init__(self, dimension: int = 256, model_name: str = "hashing-test"):
        self._dimension = dimension
        self._model_name = model_name
        self.calls: List[str] = []
        self.fail = False

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return self._model_name

    def _vector(self, text: str) -> List[float]:
        vector = [0.0] * self._dimension
        for token in TOKEN_RE.findall(text.lower()):
            bucket = int(hashlib.md5(token.encode("utf-8")).hexdigest(), 16) % self._dimension
            vector[bucket] += 1.0
        norm = math.sqrt(sum(value * value for value in vector))
        if norm == 0:
            vector[0] = 1.0
            return vector
        return [value / norm for value in vector]

    async def _embed(self, text: str) -> List[float]:
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")
        self.calls.append(text)
        if self.fail:
            raise EmbeddingError("embedding backend down")
        return self._vector(text)

    async def embed_document(self, text: str) -> List[float]:
        return await self._embed(text)

    async def embed_query(self, text: str) -> List[float]:
        return await self._embed(text)

    async def embed_documents(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        return [await self._embed(text) for text in texts]

    async def embed_queries(self, texts: List[str], batch_size: int = 32) -> List[List[float]]:
        return [await self._embed(text) for text in texts]


@pytest.fixture
def embedding():
    return HashingEmbedding()


@pytest.fixture
def vector_store(embedding):
    return InMemoryKnowledgeVectorStore(dimension=embedding.dimension)


@pytest.fixture
def document_store():
    return InMemoryDocumentStore()


@pytest.fixture
def search_cache():
    return InMemorySearchCache(ttl_seconds=120)
