"""
Text embedding abstractions for memory-merge.

Provides protocol-based embedding interfaces with model-specific adapters:
- OpenAIEmbedding: OpenAI API embeddings (default deployment model)
- E5Embedding: local E5 models via sentence-transformers (optional extra)
"""

from memory_merge.embeddings.e5_embedding import E5Embedding
from memory_merge.embeddings.openai_embedding import OpenAIEmbedding
from memory_merge.embeddings.protocol import TextEmbedding

__all__ = [
    "TextEmbedding",
    "OpenAIEmbedding",
    "E5Embedding",
]
