"""
Nearest-neighbor index over conversation embeddings.

A faiss inner-product index keyed by the record store's integer row
identity. Vectors are L2-normalized on the way in, so the inner product is
the cosine similarity of the original vectors regardless of their scale.

The index is a derived artifact: the record store is authoritative, and a
row that never made it into the index is an accepted gap, not corruption.
"""

import logging
import os
import threading
from pathlib import Path
from typing import Sequence

import faiss
import numpy as np

from .base import IndexHit
from .errors import VectorIndexError

logger = logging.getLogger("memoir.memory.index")


class ApproximateIndex:
    """
    Cosine-similarity index with fixed-step capacity growth.

    Capacity is reserved up front and grown by `growth_step` whenever an
    insert would bring the index within one slot of it, so growth happens
    in predictable increments rather than doublings.

    A single lock serializes every operation, searches included. All methods
    block; async callers should run them with asyncio.to_thread.
    """

    def __init__(
        self,
        dimensions: int,
        path: str | Path | None = None,
        initial_capacity: int = 1000,
        growth_step: int = 1000,
    ):
        if growth_step <= 0:
            raise ValueError("growth_step must be positive")
        self.dimensions = dimensions
        self.path = Path(path) if path else None
        self.growth_step = growth_step
        self._index = faiss.IndexIDMap2(faiss.IndexFlatIP(dimensions))
        self._capacity = 0
        self._lock = threading.Lock()
        self.reserve(initial_capacity)

    @property
    def size(self) -> int:
        return int(self._index.ntotal)

    @property
    def capacity(self) -> int:
        return self._capacity

    def reserve(self, additional: int) -> None:
        """Grow capacity by `additional` slots. Capacity never shrinks."""
        if additional < 0:
            raise ValueError("Cannot reserve a negative number of slots")
        with self._lock:
            self._grow(additional)

    def _grow(self, additional: int) -> None:
        self._capacity += additional
        logger.debug(f"Index capacity now {self._capacity} ({self.size} used)")

    def _prepare(self, vector: Sequence[float]) -> np.ndarray:
        array = np.array(vector, dtype=np.float32, copy=True).reshape(1, -1)
        if array.shape[1] != self.dimensions:
            raise VectorIndexError(
                f"Vector has {array.shape[1]} dimensions, index expects {self.dimensions}"
            )
        faiss.normalize_L2(array)
        return array

    def _add(self, key: int, vector: Sequence[float]) -> None:
        array = self._prepare(vector)
        if self.size + 1 >= self._capacity:
            self._grow(self.growth_step)
        try:
            self._index.add_with_ids(array, np.array([key], dtype=np.int64))
        except RuntimeError as e:
            raise VectorIndexError(f"Failed to add key {key} to index: {e}") from e

    def add(self, key: int, vector: Sequence[float]) -> None:
        """Insert a vector under `key` (the row identity of its record)."""
        with self._lock:
            self._add(key, vector)

    def search(self, vector: Sequence[float], k: int) -> list[IndexHit]:
        """
        Find the `k` nearest keys to `vector`.

        Returns:
            Hits ordered by descending cosine similarity; fewer than `k`
            when the index holds fewer vectors.
        """
        if k <= 0:
            return []
        query = self._prepare(vector)

        with self._lock:
            if self.size == 0:
                return []
            try:
                scores, keys = self._index.search(query, min(k, self.size))
            except RuntimeError as e:
                raise VectorIndexError(f"Index search failed: {e}") from e

        return [
            IndexHit(key=int(key), score=float(score))
            for key, score in zip(keys[0], scores[0])
            if key != -1
        ]

    def _resolve_path(self, path: str | Path | None) -> Path:
        target = Path(path) if path else self.path
        if target is None:
            raise VectorIndexError("No index path configured")
        return target

    def _save(self, path: str | Path | None) -> None:
        target = self._resolve_path(path)
        tmp_path = target.with_name(target.name + ".tmp")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            faiss.write_index(self._index, str(tmp_path))
            os.replace(tmp_path, target)
        except (RuntimeError, OSError) as e:
            raise VectorIndexError(f"Failed to save index to {target}: {e}") from e

    def save(self, path: str | Path | None = None) -> None:
        """
        Write a full snapshot of the index to a single file.

        The snapshot goes to a temporary file first and is renamed over the
        target, so a crash mid-save leaves the previous snapshot intact.
        """
        with self._lock:
            self._save(path)

    def add_and_save(self, key: int, vector: Sequence[float]) -> None:
        """Insert and persist under one lock hold."""
        with self._lock:
            self._add(key, vector)
            self._save(None)

    def load(self, path: str | Path | None = None) -> None:
        """Replace the in-memory index with the snapshot at `path`."""
        source = self._resolve_path(path)
        try:
            index = faiss.read_index(str(source))
        except RuntimeError as e:
            raise VectorIndexError(f"Failed to load index from {source}: {e}") from e

        if index.d != self.dimensions:
            raise VectorIndexError(
                f"Index at {source} has {index.d} dimensions, expected {self.dimensions}"
            )

        with self._lock:
            self._index = index
            self._capacity = max(self._capacity, self.size)
        logger.info(f"Loaded vector index ({self.size} vectors) from {source}")
