"""
Exceptions raised by the conversational memory subsystem.

Every failure surfaces as a subclass of MemoryStoreError so callers can
decide between degrading (answer without memory context) and failing.
"""


class MemoryStoreError(Exception):
    """Base exception for memory operations."""
    pass


class EmbeddingError(MemoryStoreError):
    """Failed to produce an embedding."""
    pass


class ModelLoadError(EmbeddingError):
    """The local embedding model could not be initialized."""
    pass


class EmbeddingHTTPError(EmbeddingError):
    """Remote embedding provider answered with a non-success status."""

    def __init__(self, status_code: int, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Embedding API error: {status_code} {body}".strip())


class EmbeddingConnectionError(EmbeddingError):
    """Remote embedding provider could not be reached."""
    pass


class EmbeddingResponseError(EmbeddingError):
    """Embedding response did not have the expected shape."""
    pass


class VectorIndexError(MemoryStoreError):
    """Vector index insert, search or persistence failed."""
    pass


class RecordStoreError(MemoryStoreError):
    """Relational store read or write failed."""
    pass
