"""
Memory Manager - Orchestrates the conversational memory system.

This is the high-level interface that the agent layer uses.
It handles:
- Recording every completed exchange
- Assembling the context block for the next model call
- Managing important facts (with duplicate suppression)
- Semantic search over past conversations
"""

import asyncio
import logging
from pathlib import Path
from typing import Literal

from .base import ConversationTurn, ImportantEntry
from .conversation_store import ConversationStore
from .embeddings import LocalEmbeddingService, create_embedding_service

logger = logging.getLogger("memoir.memory.manager")

RECENT_HEADER = "# Recent Conversations"
RELATED_HEADER = "# Related Past Conversations"

# Both strings must be longer than this before substring containment counts
DEDUP_MIN_LENGTH = 10
MAX_SEARCH_RESULTS = 20


def is_duplicate_fact(candidate: str, existing: str) -> bool:
    """
    Approximate near-duplicate test for important facts.

    Both sides are trimmed and lowercased. They are duplicates if equal, or
    if both are longer than DEDUP_MIN_LENGTH and one contains the other.
    Containment can flag unrelated facts that happen to share a long
    substring (e.g. "my sister lives in Paris" vs. "lives in Paris").
    """
    a = candidate.strip().lower()
    b = existing.strip().lower()
    if a == b:
        return True
    return (
        len(a) > DEDUP_MIN_LENGTH
        and len(b) > DEDUP_MIN_LENGTH
        and (a in b or b in a)
    )


class MemoryManager:
    """
    High-level memory management for the agent.

    Context is assembled from three disjoint sources: important facts, a
    chronological recency window, and older turns retrieved by semantic
    similarity to the current prompt.
    """

    def __init__(
        self,
        store: ConversationStore,
        recent_window: int = 10,
        related_top_k: int = 5,
        min_similarity: float | None = None,
    ):
        self.store = store
        self.recent_window = recent_window
        self.related_top_k = related_top_k
        self.min_similarity = min_similarity
        self._important_lock = asyncio.Lock()
        self._initialized = False
        logger.info("MemoryManager created")

    async def initialize(self) -> None:
        """Initialize the memory system."""
        await self.store.initialize()
        self._initialized = True
        count = await self.store.count()
        logger.info(f"MemoryManager initialized with {count} stored turns")

    def _ensure_initialized(self) -> None:
        """Ensure the system is initialized."""
        if not self._initialized:
            raise RuntimeError("MemoryManager not initialized. Call initialize() first.")

    async def add_turn(
        self,
        author: str,
        user_input: str,
        assistant_response: str,
    ) -> None:
        """
        Record a completed exchange.

        Any embedding, store or index failure propagates. A failure after the
        store write leaves the turn recorded but unindexed.
        """
        self._ensure_initialized()
        await self.store.add_turn(author, user_input, assistant_response)

    @staticmethod
    def _format_turns(header: str, turns: list[ConversationTurn]) -> str:
        blocks = "\n\n".join(turn.format_for_context() for turn in turns)
        return f"{header}\n\n{blocks}"

    async def get_context(self, query: str) -> str:
        """
        Build the memory context for the next model call.

        Sections, in order, each omitted when empty:
        1. Important facts, oldest first
        2. The last `recent_window` turns, oldest first
        3. Older turns semantically related to `query`, never repeating a
           turn already shown in section 2
        """
        self._ensure_initialized()

        sections = []

        important = await self.store.get_important_context()
        if important:
            sections.append(important.rstrip("\n"))

        recent = await self.store.recent_turns(self.recent_window)
        if recent:
            sections.append(self._format_turns(RECENT_HEADER, recent))

        # An empty recency window with a non-zero size means nothing is stored yet
        if recent or self.recent_window <= 0:
            related = await self.store.search_turns(
                query,
                self.related_top_k,
                exclude_ids=[turn.id for turn in recent],
                min_similarity=self.min_similarity,
            )
            if related:
                sections.append(self._format_turns(RELATED_HEADER, related))

        return "\n\n".join(sections)

    async def add_important(self, content: str) -> str:
        """
        Store an important fact unless a near-duplicate already exists.

        Returns:
            The id of the new entry, or of the existing duplicate
        """
        self._ensure_initialized()

        async with self._important_lock:
            for entry in await self.store.list_important():
                if is_duplicate_fact(content, entry.content):
                    logger.info(
                        f"Skipping duplicate important entry (matches {entry.id})"
                    )
                    return entry.id

            entry = await self.store.add_important(content.strip())
            return entry.id

    async def add_to_long_term(self, content: str) -> None:
        """Remember a fact. Near-duplicates are silently skipped."""
        await self.add_important(content)

    async def list_important(self) -> list[ImportantEntry]:
        self._ensure_initialized()
        return await self.store.list_important()

    async def delete_important(self, entry_id: str) -> bool:
        """Delete an important fact. Returns False if the id does not exist."""
        self._ensure_initialized()
        return await self.store.delete_important(entry_id)

    async def get_important_context(self) -> str:
        """The important-facts section on its own."""
        self._ensure_initialized()
        return await self.store.get_important_context()

    async def search_memory(self, query: str, top_k: int = 5) -> list[ConversationTurn]:
        """Semantic search over all past turns, oldest first."""
        self._ensure_initialized()
        top_k = max(1, min(top_k, MAX_SEARCH_RESULTS))
        return await self.store.search_turns(query, top_k)

    async def count(self) -> int:
        self._ensure_initialized()
        return await self.store.count()

    async def close(self) -> None:
        """Clean up resources."""
        await self.store.close()
        self._initialized = False
        logger.info("MemoryManager closed")


async def create_memory_manager(
    data_dir: str | Path = "data",
    embedding_provider: Literal["local", "gemini", "openai"] = "local",
    embedding_api_key: str = "",
    embedding_model: str = "",
    embedding_dimensions: int | None = None,
    model_cache_dir: str | Path | None = None,
    idle_timeout: float = LocalEmbeddingService.IDLE_TIMEOUT,
    unload_poll_interval: float = LocalEmbeddingService.POLL_INTERVAL,
    recent_window: int = 10,
    related_top_k: int = 5,
    min_similarity: float | None = None,
    index_initial_capacity: int = 1000,
    index_growth_step: int = 1000,
) -> MemoryManager:
    """
    Factory function to create a configured MemoryManager.

    Must be awaited inside the running event loop that will use the manager:
    the local provider's idle-unload task is started on it.

    Returns:
        Initialized MemoryManager
    """
    embedding_service = create_embedding_service(
        provider=embedding_provider,
        api_key=embedding_api_key,
        model=embedding_model,
        dimensions=embedding_dimensions,
        cache_dir=model_cache_dir,
        idle_timeout=idle_timeout,
        poll_interval=unload_poll_interval,
    )
    store = ConversationStore(
        data_dir=data_dir,
        embedding_service=embedding_service,
        index_initial_capacity=index_initial_capacity,
        index_growth_step=index_growth_step,
    )

    manager = MemoryManager(
        store=store,
        recent_window=recent_window,
        related_top_k=related_top_k,
        min_similarity=min_similarity,
    )

    try:
        await manager.initialize()
    except Exception:
        await embedding_service.close()
        raise

    if isinstance(embedding_service, LocalEmbeddingService):
        embedding_service.start_unload_timer()
    return manager
