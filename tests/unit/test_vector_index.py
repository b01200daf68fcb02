"""
Unit tests for memoir/memory/vector_index.py

Tests capacity growth, cosine search ordering and snapshot persistence
against a real faiss index.
"""

from unittest.mock import patch

import pytest

from memoir.memory import ApproximateIndex, VectorIndexError


def unit(dim: int, axis: int, scale: float = 1.0) -> list[float]:
    vector = [0.0] * dim
    vector[axis] = scale
    return vector


class TestCapacity:
    """Tests for fixed-step capacity growth."""

    def test_initial_capacity_reserved(self):
        """Test the initial capacity is reserved up front."""
        index = ApproximateIndex(dimensions=4, initial_capacity=10, growth_step=5)

        assert index.size == 0
        assert index.capacity == 10

    def test_grows_by_fixed_step(self):
        """Test capacity grows by exactly growth_step when nearly full."""
        index = ApproximateIndex(dimensions=4, initial_capacity=3, growth_step=5)

        index.add(1, unit(4, 0))
        index.add(2, unit(4, 1))
        assert index.capacity == 3
        index.add(3, unit(4, 2))
        # size + 1 reached capacity before this insert
        assert index.capacity == 8
        assert index.size == 3

    def test_size_never_exceeds_capacity(self):
        """Test size stays below capacity across many inserts."""
        index = ApproximateIndex(dimensions=4, initial_capacity=0, growth_step=2)

        for key in range(1, 21):
            index.add(key, unit(4, key % 4, scale=key))
            assert index.size <= index.capacity

        assert index.size == 20
        assert index.capacity % 2 == 0

    def test_reserve_adds_slots(self):
        """Test explicit reserve grows capacity."""
        index = ApproximateIndex(dimensions=4, initial_capacity=10)
        index.reserve(15)
        assert index.capacity == 25

    def test_reserve_negative_rejected(self):
        """Test a negative reservation is rejected."""
        index = ApproximateIndex(dimensions=4)
        with pytest.raises(ValueError):
            index.reserve(-1)

    def test_growth_step_must_be_positive(self):
        """Test a zero growth step is rejected."""
        with pytest.raises(ValueError, match="growth_step"):
            ApproximateIndex(dimensions=4, growth_step=0)


class TestSearch:
    """Tests for nearest-neighbor search."""

    def test_empty_index_returns_nothing(self):
        """Test searching an empty index returns no hits."""
        index = ApproximateIndex(dimensions=4)
        assert index.search(unit(4, 0), 5) == []

    def test_non_positive_k_returns_nothing(self):
        """Test k <= 0 returns no hits."""
        index = ApproximateIndex(dimensions=4)
        index.add(1, unit(4, 0))
        assert index.search(unit(4, 0), 0) == []

    def test_hits_ordered_by_similarity(self):
        """Test hits come back most similar first, keyed by row identity."""
        index = ApproximateIndex(dimensions=4)
        index.add(10, [1.0, 0.0, 0.0, 0.0])
        index.add(20, [0.0, 1.0, 0.0, 0.0])
        index.add(30, [1.0, 1.0, 0.0, 0.0])

        hits = index.search([1.0, 0.1, 0.0, 0.0], 3)

        assert [hit.key for hit in hits] == [10, 30, 20]
        assert hits[0].score == pytest.approx(0.995, abs=1e-3)
        assert hits[0].score > hits[1].score > hits[2].score

    def test_similarity_ignores_vector_scale(self):
        """Test vectors are compared by direction, not magnitude."""
        index = ApproximateIndex(dimensions=4)
        index.add(1, unit(4, 0, scale=100.0))
        index.add(2, unit(4, 1, scale=0.01))

        hits = index.search(unit(4, 1, scale=5.0), 1)

        assert hits[0].key == 2
        assert hits[0].score == pytest.approx(1.0, abs=1e-5)

    def test_k_larger_than_size(self):
        """Test asking for more hits than stored returns all of them."""
        index = ApproximateIndex(dimensions=4)
        index.add(1, unit(4, 0))
        index.add(2, unit(4, 1))

        hits = index.search(unit(4, 0), 10)

        assert len(hits) == 2

    def test_wrong_dimension_rejected(self):
        """Test vectors of the wrong size are rejected on add and search."""
        index = ApproximateIndex(dimensions=4)

        with pytest.raises(VectorIndexError, match="3 dimensions"):
            index.add(1, [1.0, 0.0, 0.0])
        with pytest.raises(VectorIndexError):
            index.search([1.0, 0.0], 1)

    def test_caller_vector_not_mutated(self):
        """Test normalization works on a copy of the caller's vector."""
        index = ApproximateIndex(dimensions=4)
        vector = [3.0, 4.0, 0.0, 0.0]

        index.add(1, vector)

        assert vector == [3.0, 4.0, 0.0, 0.0]


class TestPersistence:
    """Tests for save/load snapshots."""

    def test_save_and_load(self, tmp_path):
        """Test a saved index reloads with the same contents."""
        path = tmp_path / "conversations.faiss"
        index = ApproximateIndex(dimensions=4, path=path, initial_capacity=2, growth_step=2)
        index.add(7, unit(4, 0))
        index.add(8, unit(4, 1))
        index.add(9, unit(4, 2))
        index.save()

        reloaded = ApproximateIndex(dimensions=4, path=path, initial_capacity=1)
        reloaded.load()

        assert reloaded.size == 3
        assert reloaded.capacity >= reloaded.size
        assert reloaded.search(unit(4, 2), 1)[0].key == 9

    def test_save_leaves_no_temp_file(self, tmp_path):
        """Test the temporary snapshot is renamed over the target."""
        path = tmp_path / "index" / "conversations.faiss"
        index = ApproximateIndex(dimensions=4, path=path)
        index.add_and_save(1, unit(4, 0))

        assert path.exists()
        assert not (path.parent / "conversations.faiss.tmp").exists()

    def test_failed_save_keeps_previous_snapshot(self, tmp_path):
        """Test a crash while writing leaves the last good snapshot in place."""
        path = tmp_path / "conversations.faiss"
        index = ApproximateIndex(dimensions=4, path=path)
        index.add_and_save(1, unit(4, 0))

        with patch("memoir.memory.vector_index.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(VectorIndexError, match="disk full"):
                index.add_and_save(2, unit(4, 1))

        reloaded = ApproximateIndex(dimensions=4, path=path)
        reloaded.load()
        assert reloaded.size == 1

    def test_save_without_path_raises(self):
        """Test saving an index with no configured path fails cleanly."""
        index = ApproximateIndex(dimensions=4)
        with pytest.raises(VectorIndexError, match="No index path"):
            index.save()

    def test_load_dimension_mismatch(self, tmp_path):
        """Test loading a snapshot of a different dimension is rejected."""
        path = tmp_path / "conversations.faiss"
        ApproximateIndex(dimensions=4, path=path).save()

        with pytest.raises(VectorIndexError, match="expected 8"):
            ApproximateIndex(dimensions=8, path=path).load()

    def test_load_missing_file(self, tmp_path):
        """Test loading a missing snapshot raises VectorIndexError."""
        index = ApproximateIndex(dimensions=4, path=tmp_path / "missing.faiss")
        with pytest.raises(VectorIndexError):
            index.load()
