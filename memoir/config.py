"""
Configuration module for memoir.

Loads application settings from config.yaml and secrets from environment variables.
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

import yaml
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


# Default config file path
CONFIG_FILE = Path(__file__).parent.parent / "config.yaml"


def _load_yaml_config() -> dict:
    """Load configuration from YAML file."""
    if CONFIG_FILE.exists():
        with open(CONFIG_FILE) as f:
            return yaml.safe_load(f) or {}
    return {}


# Load YAML config once at module import
_yaml_config = _load_yaml_config()


def _get_yaml(section: str, key: str, default=None):
    """Get a value from the YAML config."""
    return _yaml_config.get(section, {}).get(key, default)


@dataclass
class StorageConfig:
    """Where the database and vector index live."""
    data_dir: str = field(
        default_factory=lambda: _get_yaml("storage", "data_dir", "data")
    )


@dataclass
class EmbeddingConfig:
    """Embedding provider configuration."""
    provider: Literal["local", "gemini", "openai"] = field(
        default_factory=lambda: _get_yaml("embedding", "provider", "local")
    )
    # Empty = provider default (multilingual-e5-small, gemini-embedding-001, text-embedding-3-small)
    model: str = field(
        default_factory=lambda: _get_yaml("embedding", "model", "")
    )
    # None = provider default (384 local, 768 gemini, model default for openai)
    dimensions: int | None = field(
        default_factory=lambda: _get_yaml("embedding", "dimensions", None)
    )
    # Local model download cache; None = <data_dir>/models
    cache_dir: str | None = field(
        default_factory=lambda: _get_yaml("embedding", "cache_dir", None)
    )
    # Unload the local model after this many idle seconds
    idle_timeout_seconds: float = field(
        default_factory=lambda: _get_yaml("embedding", "idle_timeout_seconds", 300)
    )
    unload_poll_seconds: float = field(
        default_factory=lambda: _get_yaml("embedding", "unload_poll_seconds", 60)
    )

    # Secrets from .env
    gemini_api_key: str = field(default_factory=lambda: os.getenv("GEMINI_API_KEY", ""))
    openai_api_key: str = field(default_factory=lambda: os.getenv("OPENAI_API_KEY", ""))

    @property
    def api_key(self) -> str:
        """API key for the configured provider ("" for local)."""
        if self.provider == "gemini":
            return self.gemini_api_key
        if self.provider == "openai":
            return self.openai_api_key
        return ""


@dataclass
class MemoryConfig:
    """Context assembly and index tuning."""
    # Turns always included verbatim, most recent last
    recent_window: int = field(
        default_factory=lambda: _get_yaml("memory", "recent_window", 10)
    )
    # Semantically related older turns to include
    related_top_k: int = field(
        default_factory=lambda: _get_yaml("memory", "related_top_k", 5)
    )
    # None = no similarity floor for related turns
    min_similarity: float | None = field(
        default_factory=lambda: _get_yaml("memory", "min_similarity", None)
    )
    index_initial_capacity: int = field(
        default_factory=lambda: _get_yaml("memory", "index_initial_capacity", 1000)
    )
    index_growth_step: int = field(
        default_factory=lambda: _get_yaml("memory", "index_growth_step", 1000)
    )


@dataclass
class AppConfig:
    """Application settings from YAML."""
    log_level: str = field(
        default_factory=lambda: _get_yaml("logging", "level", "INFO")
    )


@dataclass
class Config:
    """Main configuration container."""
    storage: StorageConfig = field(default_factory=StorageConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    app: AppConfig = field(default_factory=AppConfig)

    @property
    def model_cache_dir(self) -> Path:
        if self.embedding.cache_dir:
            return Path(self.embedding.cache_dir)
        return Path(self.storage.data_dir) / "models"

    def setup_logging(self) -> logging.Logger:
        """Configure and return the application logger."""
        # Reset existing handlers to ensure clean configuration
        root = logging.getLogger()
        if root.handlers:
            for handler in root.handlers[:]:
                root.removeHandler(handler)

        logging.basicConfig(
            level=getattr(logging, self.app.log_level.upper()),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

        return logging.getLogger("memoir")

    def validate(self) -> list[str]:
        """
        Validate configuration and return list of missing/invalid settings.

        Returns:
            List of validation error messages, empty if all valid.
        """
        errors = []

        if self.embedding.provider not in ("local", "gemini", "openai"):
            errors.append(f"Unknown embedding provider: {self.embedding.provider}")
        elif self.embedding.provider == "gemini" and not self.embedding.gemini_api_key:
            errors.append("GEMINI_API_KEY is required when using the gemini embedding provider")
        elif self.embedding.provider == "openai" and not self.embedding.openai_api_key:
            errors.append("OPENAI_API_KEY is required when using the openai embedding provider")

        if self.memory.recent_window < 0:
            errors.append("memory.recent_window must not be negative")
        if self.memory.related_top_k < 0:
            errors.append("memory.related_top_k must not be negative")
        if self.memory.index_growth_step <= 0:
            errors.append("memory.index_growth_step must be positive")
        if self.embedding.idle_timeout_seconds <= 0:
            errors.append("embedding.idle_timeout_seconds must be positive")

        return errors


# Global configuration instance
config = Config()
