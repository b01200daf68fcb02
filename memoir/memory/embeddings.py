"""
Embedding Service for generating vector representations.

Every provider encodes asymmetrically: text being stored is embedded as a
passage, text being searched with is embedded as a query. How that is
signalled to the model (prefix, task type, nothing at all) stays inside the
provider.

Providers:
- local: multilingual-e5-small via sentence-transformers, loaded on first use
  and unloaded again after a period of inactivity
- gemini: Google's embedding API (the default remote provider)
- openai: text-embedding-3 models
"""

import asyncio
import gc
import logging
import threading
import time
import weakref
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Literal, Sequence

import httpx

from .errors import (
    EmbeddingConnectionError,
    EmbeddingError,
    EmbeddingHTTPError,
    EmbeddingResponseError,
    ModelLoadError,
)

logger = logging.getLogger("memoir.memory.embeddings")


class EmbeddingService(ABC):
    """Abstract interface for embedding generation."""

    @property
    @abstractmethod
    def dimensions(self) -> int:
        """Return the dimension of embeddings produced."""
        pass

    @abstractmethod
    async def embed_passage(self, text: str) -> list[float]:
        """Embed content that is going to be stored."""
        pass

    @abstractmethod
    async def embed_query(self, text: str) -> list[float]:
        """Embed text that is used to search stored content."""
        pass

    async def close(self) -> None:
        """Release provider resources."""
        pass

    def _check_dimensions(self, vector: Sequence[float]) -> list[float]:
        if len(vector) != self.dimensions:
            raise EmbeddingResponseError(
                f"Expected {self.dimensions}-dim embedding, got {len(vector)}"
            )
        return [float(v) for v in vector]


class ModelState(Enum):
    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"


class LocalEmbeddingService(EmbeddingService):
    """
    Local embedding service using sentence-transformers.

    The model is loaded lazily inside a worker thread on the first embed call
    and dropped again by a background task once it has been idle for
    `idle_timeout` seconds. An idle process therefore holds no model memory;
    the next request pays the reload latency once.
    """

    MODEL_NAME = "intfloat/multilingual-e5-small"
    DEFAULT_DIMENSIONS = 384
    IDLE_TIMEOUT = 300.0
    POLL_INTERVAL = 60.0

    def __init__(
        self,
        model_name: str = MODEL_NAME,
        cache_dir: str | Path | None = None,
        dimensions: int = DEFAULT_DIMENSIONS,
        idle_timeout: float = IDLE_TIMEOUT,
        poll_interval: float = POLL_INTERVAL,
    ):
        self.model_name = model_name
        self.cache_dir = Path(cache_dir) if cache_dir else None
        self.idle_timeout = idle_timeout
        self.poll_interval = poll_interval
        self._dimensions = dimensions
        self._model = None
        self._state = ModelState.UNLOADED
        # Held for the whole load/encode so concurrent calls never double-load
        self._lock = threading.Lock()
        self._last_used = time.monotonic()
        self._unload_task: asyncio.Task | None = None
        logger.info(
            f"LocalEmbeddingService initialized with model: {model_name} "
            f"(lazy loading, {idle_timeout:.0f}s idle timeout)"
        )

    @property
    def dimensions(self) -> int:
        return self._dimensions

    @property
    def state(self) -> ModelState:
        return self._state

    def _load_model(self) -> None:
        """Load the model. Caller must hold self._lock."""
        self._state = ModelState.LOADING
        logger.info(f"Loading embedding model ({self.model_name})...")
        try:
            from sentence_transformers import SentenceTransformer

            model = SentenceTransformer(
                self.model_name,
                cache_folder=str(self.cache_dir) if self.cache_dir else None,
            )
        except Exception as e:
            self._state = ModelState.UNLOADED
            raise ModelLoadError(
                f"Failed to initialize embedding model {self.model_name}: {e}"
            ) from e

        loaded_dimensions = model.get_sentence_embedding_dimension()
        if loaded_dimensions != self._dimensions:
            self._state = ModelState.UNLOADED
            raise ModelLoadError(
                f"Model {self.model_name} produces {loaded_dimensions}-dim embeddings, "
                f"expected {self._dimensions}"
            )

        self._model = model
        self._state = ModelState.READY
        logger.info("Embedding model ready")

    def _encode(self, text: str) -> list[float]:
        with self._lock:
            if self._model is None:
                self._load_model()
            try:
                embedding = self._model.encode(
                    text,
                    convert_to_numpy=True,
                    normalize_embeddings=True,
                )
            except Exception as e:
                raise EmbeddingError(f"Embedding inference failed: {e}") from e
            self._last_used = time.monotonic()
        return self._check_dimensions(embedding.tolist())

    async def embed_passage(self, text: str) -> list[float]:
        return await asyncio.to_thread(self._encode, f"passage: {text}")

    async def embed_query(self, text: str) -> list[float]:
        return await asyncio.to_thread(self._encode, f"query: {text}")

    def unload_if_idle(self) -> bool:
        """
        Drop the model if it has been idle longer than the timeout.

        Never waits for the lock: a model that is busy is by definition not
        idle, so the check is simply skipped.

        Returns:
            True if the model was unloaded
        """
        if not self._lock.acquire(blocking=False):
            return False
        try:
            if self._model is None:
                return False
            idle = time.monotonic() - self._last_used
            if idle < self.idle_timeout:
                return False
            self._model = None
            self._state = ModelState.UNLOADED
        finally:
            self._lock.release()

        gc.collect()
        logger.info(f"Embedding model unloaded (idle for {idle:.0f}s)")
        return True

    def start_unload_timer(self) -> asyncio.Task:
        """Start the background idle-unload task on the running loop."""
        if self._unload_task is None or self._unload_task.done():
            self._unload_task = asyncio.create_task(
                _unload_when_idle(weakref.ref(self), self.poll_interval),
                name="embedding-idle-unload",
            )
        return self._unload_task

    def _release(self) -> None:
        with self._lock:
            self._model = None
            self._state = ModelState.UNLOADED

    async def close(self) -> None:
        if self._unload_task is not None:
            self._unload_task.cancel()
            try:
                await self._unload_task
            except asyncio.CancelledError:
                pass
            self._unload_task = None
        await asyncio.to_thread(self._release)
        logger.info("LocalEmbeddingService closed")


async def _unload_when_idle(
    service_ref: "weakref.ref[LocalEmbeddingService]",
    poll_interval: float,
) -> None:
    # Only a weak reference is held so the loop never keeps the service alive
    while True:
        await asyncio.sleep(poll_interval)
        service = service_ref()
        if service is None:
            return
        await asyncio.to_thread(service.unload_if_idle)
        del service


class GeminiEmbeddingService(EmbeddingService):
    """
    Google Gemini embedding service.

    Passages and queries are distinguished by the API's task type
    (RETRIEVAL_DOCUMENT / RETRIEVAL_QUERY). Output dimensionality is
    requested explicitly so the vector size is fixed per instance.
    """

    DEFAULT_MODEL = "gemini-embedding-001"
    DEFAULT_DIMENSIONS = 768

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        dimensions: int | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self._dimensions = dimensions or self.DEFAULT_DIMENSIONS
        self._client = None
        logger.info(
            f"GeminiEmbeddingService initialized: model={model}, dimensions={self._dimensions}"
        )

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def _get_client(self):
        if self._client is None:
            from google import genai
            self._client = genai.Client(api_key=self.api_key)
        return self._client

    async def _embed(self, text: str, task_type: str) -> list[float]:
        from google.genai import errors, types

        client = self._get_client()
        try:
            response = await client.aio.models.embed_content(
                model=self.model,
                contents=text,
                config=types.EmbedContentConfig(
                    task_type=task_type,
                    output_dimensionality=self._dimensions,
                ),
            )
        except errors.APIError as e:
            raise EmbeddingHTTPError(e.code, e.message or "") from e
        except httpx.TransportError as e:
            raise EmbeddingConnectionError(f"Gemini embedding request failed: {e}") from e

        if not response.embeddings or response.embeddings[0].values is None:
            raise EmbeddingResponseError("Gemini embedding response contained no values")
        return self._check_dimensions(response.embeddings[0].values)

    async def embed_passage(self, text: str) -> list[float]:
        return await self._embed(text, "RETRIEVAL_DOCUMENT")

    async def embed_query(self, text: str) -> list[float]:
        return await self._embed(text, "RETRIEVAL_QUERY")


class OpenAIEmbeddingService(EmbeddingService):
    """
    OpenAI embedding service using text-embedding-3 models.

    Supports native dimension reduction via the dimensions parameter.
    The API has no passage/query distinction, so both paths send the
    text unchanged.

    Models:
    - text-embedding-3-small: default 1536 dimensions
    - text-embedding-3-large: default 3072 dimensions (can be reduced)
    """

    MODEL_DEFAULT_DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
    }

    def __init__(
        self,
        api_key: str,
        model: str = "text-embedding-3-small",
        dimensions: int | None = None,
    ):
        self.api_key = api_key
        self.model = model
        self._client = None

        default_dim = self.MODEL_DEFAULT_DIMENSIONS.get(model, 1536)
        if dimensions is not None and dimensions > default_dim:
            logger.warning(
                f"Requested dimensions ({dimensions}) exceeds model default ({default_dim}). "
                f"Using {default_dim}."
            )
            dimensions = None
        self._requested_dimensions = dimensions
        self._dimensions = dimensions or default_dim

        logger.info(
            f"OpenAIEmbeddingService initialized: model={model}, dimensions={self._dimensions}"
        )

    @property
    def dimensions(self) -> int:
        return self._dimensions

    def _get_client(self):
        if self._client is None:
            from openai import AsyncOpenAI
            self._client = AsyncOpenAI(api_key=self.api_key)
        return self._client

    async def _embed(self, text: str) -> list[float]:
        from openai import APIConnectionError, APIStatusError

        client = self._get_client()

        kwargs = {
            "model": self.model,
            "input": text,
        }
        if self._requested_dimensions is not None:
            kwargs["dimensions"] = self._requested_dimensions

        try:
            response = await client.embeddings.create(**kwargs)
        except APIStatusError as e:
            raise EmbeddingHTTPError(e.status_code, e.message) from e
        except APIConnectionError as e:
            raise EmbeddingConnectionError(f"OpenAI embedding request failed: {e}") from e

        if not response.data:
            raise EmbeddingResponseError("OpenAI embedding response contained no data")
        return self._check_dimensions(response.data[0].embedding)

    async def embed_passage(self, text: str) -> list[float]:
        return await self._embed(text)

    async def embed_query(self, text: str) -> list[float]:
        return await self._embed(text)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


def create_embedding_service(
    provider: Literal["local", "gemini", "openai"] = "local",
    api_key: str = "",
    model: str = "",
    dimensions: int | None = None,
    cache_dir: str | Path | None = None,
    idle_timeout: float = LocalEmbeddingService.IDLE_TIMEOUT,
    poll_interval: float = LocalEmbeddingService.POLL_INTERVAL,
) -> EmbeddingService:
    """
    Factory function to create the appropriate embedding service.

    Args:
        provider: "local", "gemini" or "openai"
        api_key: API key (required for remote providers)
        model: Model name (optional, uses defaults)
        dimensions: Output dimensions override
        cache_dir: Model download cache for the local provider
        idle_timeout: Seconds of inactivity before the local model is unloaded
        poll_interval: Seconds between idle checks

    Returns:
        Configured EmbeddingService instance
    """
    if provider == "local":
        return LocalEmbeddingService(
            model_name=model or LocalEmbeddingService.MODEL_NAME,
            cache_dir=cache_dir,
            dimensions=dimensions or LocalEmbeddingService.DEFAULT_DIMENSIONS,
            idle_timeout=idle_timeout,
            poll_interval=poll_interval,
        )
    elif provider == "gemini":
        if not api_key:
            raise ValueError("Gemini API key required for gemini embedding provider")
        return GeminiEmbeddingService(
            api_key=api_key,
            model=model or GeminiEmbeddingService.DEFAULT_MODEL,
            dimensions=dimensions,
        )
    elif provider == "openai":
        if not api_key:
            raise ValueError("OpenAI API key required for openai embedding provider")
        return OpenAIEmbeddingService(
            api_key=api_key,
            model=model or "text-embedding-3-small",
            dimensions=dimensions,
        )
    else:
        raise ValueError(f"Unknown embedding provider: {provider}")
