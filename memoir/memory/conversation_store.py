"""
Storage subsystem: record store + vector index + embeddings.

The only owner of the ApproximateIndex. Writes always hit the record store
first and use its row identity as the index key, so every index key resolves
to a row at the time it is inserted. The reverse does not hold: if indexing
fails after the row is written, the turn is durably recorded but never
surfaces in semantic search. That gap is accepted; the store is
authoritative and the index is best-effort.
"""

import asyncio
import logging
from pathlib import Path
from typing import Iterable

from .base import ConversationTurn, ImportantEntry, format_exchange
from .embeddings import EmbeddingService
from .record_store import RecordStore
from .vector_index import ApproximateIndex

logger = logging.getLogger("memoir.memory.store")

DB_FILE = "memory.db"
INDEX_FILE = "conversations.faiss"

# Extra candidates fetched from the index to absorb post-search filtering
SEARCH_SLACK = 5


class ConversationStore:
    """
    Persists conversation turns and important facts and serves recency and
    semantic lookups over them.
    """

    def __init__(
        self,
        data_dir: str | Path,
        embedding_service: EmbeddingService,
        index_initial_capacity: int = 1000,
        index_growth_step: int = 1000,
    ):
        self.data_dir = Path(data_dir)
        self.embedding_service = embedding_service
        self.index_initial_capacity = index_initial_capacity
        self.index_growth_step = index_growth_step
        self._records: RecordStore | None = None
        self._index: ApproximateIndex | None = None
        logger.info(f"ConversationStore configured with directory: {data_dir}")

    @property
    def index_path(self) -> Path:
        return self.data_dir / INDEX_FILE

    def _open(self) -> tuple[RecordStore, ApproximateIndex]:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        records = RecordStore(self.data_dir / DB_FILE)

        index = ApproximateIndex(
            dimensions=self.embedding_service.dimensions,
            path=self.index_path,
            initial_capacity=self.index_initial_capacity,
            growth_step=self.index_growth_step,
        )
        if self.index_path.exists():
            index.load()

        total = records.count_turns()
        if index.size < total:
            logger.warning(
                f"{total - index.size} stored turns are not in the vector index "
                f"and will not appear in semantic search"
            )
        return records, index

    async def initialize(self) -> None:
        """Open the database and load (or create) the vector index."""
        self._records, self._index = await asyncio.to_thread(self._open)
        logger.info(
            f"ConversationStore ready ({self._index.size} indexed turns, "
            f"capacity {self._index.capacity})"
        )

    def _ensure_initialized(self) -> tuple[RecordStore, ApproximateIndex]:
        if self._records is None or self._index is None:
            raise RuntimeError("ConversationStore not initialized. Call initialize() first.")
        return self._records, self._index

    @property
    def index_size(self) -> int:
        _, index = self._ensure_initialized()
        return index.size

    @property
    def index_capacity(self) -> int:
        _, index = self._ensure_initialized()
        return index.capacity

    async def add_turn(
        self,
        author: str,
        user_input: str,
        assistant_response: str,
    ) -> ConversationTurn:
        """
        Embed, store and index one completed exchange.

        Raises:
            EmbeddingError: nothing was written
            RecordStoreError: nothing was written; the index is untouched
            VectorIndexError: the turn is stored but not indexed
        """
        records, index = self._ensure_initialized()

        embedding = await self.embedding_service.embed_passage(
            format_exchange(author, user_input, assistant_response)
        )

        def persist() -> ConversationTurn:
            rowid, turn = records.insert_turn(author, user_input, assistant_response)
            index.add_and_save(rowid, embedding)
            return turn

        turn = await asyncio.to_thread(persist)
        logger.info(f"Stored turn {turn.id} with {len(embedding)}-dim embedding")
        return turn

    async def recent_turns(self, n: int) -> list[ConversationTurn]:
        """The newest `n` turns in chronological order."""
        records, _ = self._ensure_initialized()
        return await asyncio.to_thread(records.recent_turns, n)

    async def search_turns(
        self,
        query: str,
        top_k: int,
        exclude_ids: Iterable[str] = (),
        min_similarity: float | None = None,
    ) -> list[ConversationTurn]:
        """
        Find past turns semantically similar to `query`.

        The index cannot skip keys during search, so it is asked for
        `top_k + len(exclude_ids) + SEARCH_SLACK` candidates. Excluded ids,
        keys with no backing row and hits below `min_similarity` are dropped;
        the survivors are sorted oldest first (row identity breaks timestamp
        ties) and truncated to `top_k`.
        """
        records, index = self._ensure_initialized()
        if top_k <= 0:
            return []

        exclude = set(exclude_ids)
        query_embedding = await self.embedding_service.embed_query(query)
        fetch_n = top_k + len(exclude) + SEARCH_SLACK

        def lookup() -> list[tuple[int, int, ConversationTurn]]:
            hits = index.search(query_embedding, fetch_n)
            if not hits:
                return []
            rows = records.turns_by_rowids(hit.key for hit in hits)

            candidates = []
            for hit in hits:
                if min_similarity is not None and hit.score < min_similarity:
                    continue
                turn = rows.get(hit.key)
                if turn is None or turn.id in exclude:
                    continue
                candidates.append((turn.timestamp_us, hit.key, turn))
            return candidates

        candidates = await asyncio.to_thread(lookup)
        candidates.sort(key=lambda c: (c[0], c[1]))
        turns = [turn for _, _, turn in candidates[:top_k]]
        logger.debug(
            f"Semantic search kept {len(turns)} of {len(candidates)} candidates "
            f"(fetched {fetch_n})"
        )
        return turns

    async def add_important(self, content: str) -> ImportantEntry:
        records, _ = self._ensure_initialized()
        entry = await asyncio.to_thread(records.insert_important, content)
        logger.info(f"Added important entry: {entry.id}")
        return entry

    async def list_important(self) -> list[ImportantEntry]:
        records, _ = self._ensure_initialized()
        return await asyncio.to_thread(records.list_important)

    async def delete_important(self, entry_id: str) -> bool:
        records, _ = self._ensure_initialized()
        deleted = await asyncio.to_thread(records.delete_important, entry_id)
        if deleted:
            logger.info(f"Deleted important entry: {entry_id}")
        else:
            logger.info(f"No important entry to delete: {entry_id}")
        return deleted

    async def get_important_context(self) -> str:
        """Render all important facts as a bulleted section, or "" if none."""
        entries = await self.list_important()
        if not entries:
            return ""

        lines = ["# Important Facts", ""]
        lines.extend(f"- {entry.content}" for entry in entries)
        return "\n".join(lines) + "\n"

    async def count(self) -> int:
        """Total number of stored turns."""
        records, _ = self._ensure_initialized()
        return await asyncio.to_thread(records.count_turns)

    async def close(self) -> None:
        await self.embedding_service.close()
        self._records = None
        self._index = None
        logger.info("ConversationStore closed")
