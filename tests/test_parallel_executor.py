"""
Unit tests for the fork-join executor.

Tests ParallelExecutor and split_range for correctness, ordering and
error handling.
"""

import numpy as np
import pytest

from multiscale_features.acceleration import ParallelExecutor, split_range


# Module-level worker functions for pickling compatibility
def _range_sum_worker(chunk, scale=1):
    """Worker that sums a (start, stop) range."""
    import time
    import random
    time.sleep(random.uniform(0.001, 0.01))
    start, stop = chunk
    return sum(range(start, stop)) * scale


def _error_worker(chunk):
    """Worker that raises an error."""
    raise ValueError(f"Intentional error on chunk {chunk}")


class _Counter:
    def __init__(self):
        self.value = 0


def _increment(counter):
    counter.value += 1
    return counter


class _PickleCounter:
    """Payload that counts how often the parent process serialises it."""

    pickles = 0

    def __init__(self, value):
        self.value = value

    def __getstate__(self):
        type(self).pickles += 1
        return self.__dict__

    def __setstate__(self, state):
        self.__dict__.update(state)


def _offset_worker(chunk, offset, scale=1):
    start, stop = chunk
    return (sum(range(start, stop)) + offset.value) * scale


class TestParallelExecutor:
    """Test suite for ParallelExecutor."""

    def test_executor_initialization(self):
        """Test executor initializes with correct worker count."""
        executor = ParallelExecutor()
        assert executor.n_workers >= 1
        assert executor.use_threads is False

        executor = ParallelExecutor(n_workers=4)
        assert executor.n_workers == 4

        # Minimum workers (should be at least 1)
        executor = ParallelExecutor(n_workers=0)
        assert executor.n_workers == 1

    def test_with_threads_keeps_worker_count(self):
        executor = ParallelExecutor(n_workers=3)
        threaded = executor.with_threads()
        assert threaded.use_threads is True
        assert threaded.n_workers == 3
        assert threaded.with_threads() is threaded

    def test_sequential_fallback_one_worker(self):
        """Test executor uses sequential processing with 1 worker."""
        executor = ParallelExecutor(n_workers=1)
        chunks = split_range(10, 3)

        results = executor.map_chunks(chunks, _range_sum_worker, {'scale': 1})

        assert results == [3, 12, 21, 9]

    def test_parallel_processing_order_preserved(self):
        """Test parallel processing preserves chunk order."""
        executor = ParallelExecutor(n_workers=2)
        chunks = split_range(100, 10)

        results = executor.map_chunks(chunks, _range_sum_worker, {'scale': 2})

        expected = [2 * sum(range(s, e)) for s, e in chunks]
        assert results == expected

    def test_empty_chunk_list(self):
        """Test executor handles empty chunk list gracefully."""
        executor = ParallelExecutor(n_workers=4)
        assert executor.map_chunks([], _range_sum_worker) == []

    @pytest.mark.parametrize("n_workers", [1, 2])
    def test_worker_error_handling(self, n_workers):
        """A single failing chunk aborts the whole map."""
        executor = ParallelExecutor(n_workers=n_workers)

        with pytest.raises(RuntimeError, match="failed"):
            executor.map_chunks(split_range(50, 10), _error_worker)

    def test_threads_share_objects(self):
        """Thread workers act on the objects they are given, not on copies."""
        executor = ParallelExecutor(n_workers=3, use_threads=True)
        counters = [_Counter() for _ in range(6)]

        results = executor.map_chunks(counters, _increment)

        assert all(c.value == 1 for c in counters)
        assert all(r is c for r, c in zip(results, counters))

    @pytest.mark.parametrize("n_workers", [1, 2])
    def test_shared_kwargs_reach_every_chunk(self, n_workers):
        executor = ParallelExecutor(n_workers=n_workers)
        chunks = split_range(80, 10)

        results = executor.map_chunks(
            chunks, _offset_worker, {'scale': 2}, shared_kwargs={'offset': _PickleCounter(5)}
        )

        assert results == [2 * (sum(range(s, e)) + 5) for s, e in chunks]

    def test_shared_kwargs_sent_once_per_worker(self):
        """Large shared arguments are not serialised with every chunk."""
        _PickleCounter.pickles = 0
        executor = ParallelExecutor(n_workers=2)
        chunks = split_range(80, 10)

        executor.map_chunks(chunks, _offset_worker, shared_kwargs={'offset': _PickleCounter(1)})

        assert _PickleCounter.pickles <= executor.n_workers < len(chunks)

    def test_shared_kwargs_with_threads(self):
        executor = ParallelExecutor(n_workers=2, use_threads=True)
        offset = _PickleCounter(3)

        results = executor.map_chunks(split_range(40, 10), _offset_worker, shared_kwargs={'offset': offset})

        assert results == [sum(range(s, e)) + 3 for s, e in split_range(40, 10)]


class TestSplitRange:

    def test_covers_range_contiguously(self):
        chunks = split_range(25, 10)
        assert chunks == [(0, 10), (10, 20), (20, 25)]

    def test_empty_range(self):
        assert split_range(0, 10) == []

    def test_chunk_larger_than_range(self):
        assert split_range(5, 100) == [(0, 5)]

    def test_invalid_chunk_size(self):
        with pytest.raises(ValueError):
            split_range(10, 0)

    def test_partition_is_exhaustive(self):
        chunks = split_range(1001, 64)
        covered = np.concatenate([np.arange(s, e) for s, e in chunks])
        assert np.array_equal(covered, np.arange(1001))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
