"""
Conversational Memory System.

Durably records every exchange and assembles a bounded context window for
the next model call from important facts, recent turns, and semantically
related older turns.
"""

from .base import ConversationTurn, ImportantEntry, IndexHit
from .conversation_store import ConversationStore
from .embeddings import (
    EmbeddingService,
    GeminiEmbeddingService,
    LocalEmbeddingService,
    ModelState,
    OpenAIEmbeddingService,
    create_embedding_service,
)
from .errors import (
    EmbeddingConnectionError,
    EmbeddingError,
    EmbeddingHTTPError,
    EmbeddingResponseError,
    MemoryStoreError,
    ModelLoadError,
    RecordStoreError,
    VectorIndexError,
)
from .memory_manager import MemoryManager, create_memory_manager
from .record_store import RecordStore
from .vector_index import ApproximateIndex

__all__ = [
    "ConversationTurn",
    "ImportantEntry",
    "IndexHit",
    "ConversationStore",
    "EmbeddingService",
    "GeminiEmbeddingService",
    "LocalEmbeddingService",
    "ModelState",
    "OpenAIEmbeddingService",
    "create_embedding_service",
    "EmbeddingConnectionError",
    "EmbeddingError",
    "EmbeddingHTTPError",
    "EmbeddingResponseError",
    "MemoryStoreError",
    "ModelLoadError",
    "RecordStoreError",
    "VectorIndexError",
    "MemoryManager",
    "create_memory_manager",
    "RecordStore",
    "ApproximateIndex",
]
