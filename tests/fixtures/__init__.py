"""
Test fixtures and sample data for memoir tests.
"""

import re
import uuid
from datetime import datetime, timezone

from memoir.memory import ConversationTurn, ImportantEntry
from memoir.memory.embeddings import EmbeddingService


# Each topic owns one dimension; synonyms map onto the same one
KEYWORD_TOPICS = {
    "cat": 0, "cats": 0, "feline": 0, "kitten": 0,
    "dog": 1, "dogs": 1, "puppy": 1, "canine": 1,
    "paris": 2, "france": 2,
    "python": 3, "code": 3,
    "weather": 4, "rain": 4,
}
KEYWORD_DIMENSIONS = 6


class KeywordEmbeddingService(EmbeddingService):
    """
    Deterministic embedding service for tests.

    Counts topic keywords into fixed dimensions, so texts sharing a topic
    have cosine similarity 1 and texts with disjoint topics are close to 0.
    The last dimension carries a small constant so no vector is all zeros.
    """

    def __init__(self):
        self.passages: list[str] = []
        self.queries: list[str] = []
        self.fail_with: Exception | None = None
        self.closed = False

    @property
    def dimensions(self) -> int:
        return KEYWORD_DIMENSIONS

    def _vectorize(self, text: str) -> list[float]:
        vector = [0.0] * KEYWORD_DIMENSIONS
        for word in re.findall(r"[a-z]+", text.lower()):
            if word in KEYWORD_TOPICS:
                vector[KEYWORD_TOPICS[word]] += 1.0
        vector[-1] = 0.01
        return vector

    async def embed_passage(self, text: str) -> list[float]:
        if self.fail_with is not None:
            raise self.fail_with
        self.passages.append(text)
        return self._vectorize(text)

    async def embed_query(self, text: str) -> list[float]:
        if self.fail_with is not None:
            raise self.fail_with
        self.queries.append(text)
        return self._vectorize(text)

    async def close(self) -> None:
        self.closed = True


def make_turn(
    user_input: str = "I have two cats",
    assistant_response: str = "Lovely! What are their names?",
    author: str = "alice",
    timestamp: datetime = None,
    id: str = None,
) -> ConversationTurn:
    """Create a sample ConversationTurn for testing."""
    timestamp = timestamp or datetime(2024, 3, 1, 12, 30, tzinfo=timezone.utc)
    return ConversationTurn(
        id=id or str(uuid.uuid4()),
        author=author,
        user_input=user_input,
        assistant_response=assistant_response,
        timestamp_us=int(timestamp.timestamp() * 1_000_000),
    )


def make_important(
    content: str = "Alice is allergic to peanuts",
    timestamp: datetime = None,
    id: str = "1a2b3c4d",
) -> ImportantEntry:
    """Create a sample ImportantEntry for testing."""
    timestamp = timestamp or datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)
    return ImportantEntry(
        id=id,
        content=content,
        timestamp_us=int(timestamp.timestamp() * 1_000_000),
    )


SAMPLE_EXCHANGES = [
    ("alice", "I adopted two cats last week", "Congratulations on the new cats!"),
    ("bob", "My dogs keep barking at night", "Have you tried a longer evening walk?"),
    ("alice", "The cats are settling in nicely", "Glad to hear the cats are happy."),
]
