"""
Shared pytest fixtures for memoir tests.

This module provides:
- Temporary data directories and database paths
- A deterministic keyword embedding service
- Mock external services (sentence-transformers, Gemini, OpenAI)
- Sample data fixtures
"""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import numpy as np
import pytest

from memoir.memory import ConversationStore, ConversationTurn, ImportantEntry, MemoryManager
from tests.fixtures import KeywordEmbeddingService, make_important, make_turn


# =============================================================================
# Core Fixtures
# =============================================================================


@pytest.fixture
def data_dir(tmp_path) -> Path:
    """Provide a temporary memory data directory."""
    return tmp_path / "data"


@pytest.fixture
def temp_db_path(tmp_path) -> str:
    """Provide a temporary SQLite database path."""
    return str(tmp_path / "test_memory.db")


@pytest.fixture
def keyword_embeddings() -> KeywordEmbeddingService:
    """Provide a deterministic embedding service."""
    return KeywordEmbeddingService()


@pytest.fixture
def store(data_dir, keyword_embeddings) -> ConversationStore:
    """Provide an uninitialized ConversationStore backed by keyword embeddings."""
    return ConversationStore(
        data_dir=data_dir,
        embedding_service=keyword_embeddings,
        index_initial_capacity=4,
        index_growth_step=4,
    )


@pytest.fixture
def make_manager(store):
    """Build an uninitialized MemoryManager over the shared store."""
    def _make(**kwargs) -> MemoryManager:
        return MemoryManager(store=store, **kwargs)
    return _make


# =============================================================================
# Sample Data Fixtures
# =============================================================================


@pytest.fixture
def sample_turn() -> ConversationTurn:
    """Provide a single sample turn."""
    return make_turn()


@pytest.fixture
def sample_important() -> ImportantEntry:
    """Provide a single sample important entry."""
    return make_important()


@pytest.fixture
def sample_config_yaml(tmp_path) -> Path:
    """Create a sample config.yaml file."""
    config_path = tmp_path / "config.yaml"
    config_content = """
storage:
  data_dir: /var/lib/memoir

embedding:
  provider: gemini
  model: gemini-embedding-001
  dimensions: 256
  idle_timeout_seconds: 120

memory:
  recent_window: 4
  related_top_k: 3
  min_similarity: 0.25

logging:
  level: DEBUG
"""
    config_path.write_text(config_content)
    return config_path


# =============================================================================
# Mock External Services
# =============================================================================


@pytest.fixture
def mock_sentence_transformers():
    """
    Install a fake sentence_transformers module.

    The fake model returns a unit vector of the requested size and counts
    how many times the model was constructed.
    """
    fake_module = MagicMock()

    def build_model(name, cache_folder=None):
        model = MagicMock()
        model.get_sentence_embedding_dimension.return_value = 384
        vector = np.zeros(384, dtype=np.float32)
        vector[0] = 1.0
        model.encode.return_value = vector
        return model

    fake_module.SentenceTransformer = MagicMock(side_effect=build_model)

    with patch.dict("sys.modules", {"sentence_transformers": fake_module}):
        yield fake_module.SentenceTransformer


@pytest.fixture
def mock_google_genai():
    """Mock google.genai.Client for Gemini embedding tests."""
    with patch("google.genai.Client") as mock_client_class:
        mock_client = MagicMock()

        mock_embedding = MagicMock()
        mock_embedding.values = [0.1] * 768
        mock_response = MagicMock()
        mock_response.embeddings = [mock_embedding]

        mock_client.aio.models.embed_content = AsyncMock(return_value=mock_response)
        mock_client_class.return_value = mock_client
        yield mock_client_class


@pytest.fixture
def mock_openai_client():
    """Mock openai.AsyncOpenAI for OpenAI embedding tests."""
    with patch("openai.AsyncOpenAI") as mock_client_class:
        mock_client = MagicMock()

        mock_response = MagicMock()
        mock_response.data = [MagicMock(embedding=[0.2] * 1536)]

        mock_client.embeddings.create = AsyncMock(return_value=mock_response)
        mock_client.close = AsyncMock()
        mock_client_class.return_value = mock_client
        yield mock_client_class


@pytest.fixture
def mock_env_vars(monkeypatch):
    """Set up mock environment variables for testing."""
    env_vars = {
        "GEMINI_API_KEY": "test-gemini-key",
        "OPENAI_API_KEY": "test-openai-key",
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars
