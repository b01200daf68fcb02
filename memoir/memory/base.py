"""
Data structures shared by the memory subsystem.

Conversation turns and important facts are the public records; the integer
row identity used as the vector index key never leaves the storage layer.
"""

from dataclasses import dataclass
from datetime import datetime, timezone


def micros_to_datetime(timestamp_us: int) -> datetime:
    """Convert a microsecond Unix timestamp to an aware UTC datetime."""
    return datetime.fromtimestamp(timestamp_us / 1_000_000, tz=timezone.utc)


def format_exchange(author: str, user_input: str, assistant_response: str) -> str:
    """
    Render one exchange as "author: input" / "Assistant: response".

    Passage embeddings of turns are computed over exactly this string.
    """
    return f"{author}: {user_input}\nAssistant: {assistant_response}"


@dataclass
class ConversationTurn:
    """
    A single completed exchange between a user and the assistant.

    Created exactly once when the exchange is persisted and never mutated
    afterwards.
    """
    id: str  # UUID4, assigned at write time
    author: str  # Display name of the user
    user_input: str
    assistant_response: str
    timestamp_us: int  # Microseconds since epoch, non-decreasing per insert

    @property
    def created_at(self) -> datetime:
        return micros_to_datetime(self.timestamp_us)

    def format_for_context(self) -> str:
        """Render the turn as the two-line block used in LLM context."""
        return format_exchange(self.author, self.user_input, self.assistant_response)

    def format_with_timestamp(self) -> str:
        return f"[{self.created_at.strftime('%Y-%m-%d %H:%M')}] {self.format_for_context()}"


@dataclass
class ImportantEntry:
    """A persistent fact the assistant should always keep in mind."""
    id: str  # Short opaque identifier (8 hex chars)
    content: str
    timestamp_us: int

    @property
    def created_at(self) -> datetime:
        return micros_to_datetime(self.timestamp_us)


@dataclass
class IndexHit:
    """A nearest-neighbor result from the vector index."""
    key: int  # Internal row identity
    score: float  # Cosine similarity, higher is more similar
