"""
Error taxonomy for memory-merge.

Every error carries a stable ``code`` so the HTTP layer can map it to a
status code and clients can check it without parsing messages.
"""


class MemoryMergeError(Exception):
    """Base class for all memory-merge errors."""

    code = "internal_error"
    retryable = False


class InvalidRequest(MemoryMergeError, ValueError):
    """Missing or malformed required fields. Never retried."""

    code = "invalid_request"

    def __init__(self, message: str, field: str | None = None):
        super().__init__(message)
        self.field = field


class EmbeddingError(MemoryMergeError):
    """The upstream embedding model failed, timed out or returned a bad vector."""

    code = "embedding_error"
    retryable = True


class StoreUnavailable(MemoryMergeError):
    """The vector or document backend could not be reached."""

    code = "store_unavailable"
    retryable = True


class DimensionMismatch(MemoryMergeError):
    """
    A vector does not match the dimension of the stored data.

    Signals that an embedding-model migration was not applied. Fatal.
    """

    code = "dimension_mismatch"

    def __init__(self, expected: int, actual: int):
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}. "
            f"Stored vectors must be re-embedded after an embedding model change."
        )
        self.expected = expected
        self.actual = actual


class NotFound(MemoryMergeError, LookupError):
    """A named vector, tag or document does not exist."""

    code = "not_found"
