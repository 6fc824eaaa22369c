"""
Parallel execution infrastructure for fork-join work partitions.

Provides ParallelExecutor for distributing independent units of work
(contiguous point ranges of one level, or whole levels during
initialisation) across CPU cores, and split_range for building the
point-range partition.
"""

from __future__ import annotations

import logging
import time
from multiprocessing import Pool, cpu_count
from multiprocessing.pool import ThreadPool
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Arguments installed once per worker process by _init_worker
_worker_shared: Dict[str, Any] = {}


def _init_worker(shared_kwargs: Dict[str, Any]) -> None:
    """Pool initializer: keep arguments shared by every chunk in the worker."""
    global _worker_shared
    _worker_shared = shared_kwargs


def _worker_wrapper(args: Tuple[int, Any, Callable, Dict[str, Any]]) -> Tuple[int, Any, Optional[str]]:
    """
    Worker wrapper function for parallel chunk processing.

    Must be at module level for pickling.

    Args:
        args: Tuple of (chunk_index, chunk, worker_fn, worker_kwargs)

    Returns:
        Tuple of (chunk_index, result, error_message)
    """
    idx, chunk, worker_fn, worker_kwargs = args
    try:
        result = worker_fn(chunk, **_worker_shared, **worker_kwargs)
        return (idx, result, None)
    except Exception as e:
        error_msg = f"{type(e).__name__}: {str(e)}"
        return (idx, None, error_msg)


def split_range(n: int, chunk_size: int) -> List[Tuple[int, int]]:
    """
    Partition ``range(n)`` into contiguous ``(start, stop)`` chunks.

    Returns an empty list when n is 0.
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    return [(start, min(start + chunk_size, n)) for start in range(0, n, chunk_size)]


class ParallelExecutor:
    """
    Fork-join executor for independent work items.

    Distributes chunks to workers and collects results in input order.
    Per-point chunks go to worker processes (``multiprocessing.Pool``);
    with ``use_threads=True`` a ``ThreadPool`` with the same interface is
    used instead, which lets workers mutate the objects they receive
    (level initialisation relies on this).

    Any failed chunk aborts the whole map with a RuntimeError: callers
    assume every chunk produced a complete result.

    Example:
        executor = ParallelExecutor(n_workers=4)
        queries = [points[start:stop] for start, stop in split_range(len(points), 100_000)]
        results = executor.map_chunks(
            chunks=queries,
            worker_fn=compute_shape_chunk,
            worker_kwargs={'k': 10},
            shared_kwargs={'index': index},
        )
    """

    def __init__(
        self,
        n_workers: Optional[int] = None,
        use_threads: bool = False,
    ):
        """
        Initialize parallel executor.

        Args:
            n_workers: Number of workers. If None, uses cpu_count - 1
                to leave one core for system/coordination. Minimum is 1.
            use_threads: Run workers on threads instead of processes.
        """
        if n_workers is None:
            n_workers = max(1, cpu_count() - 1)
        else:
            n_workers = max(1, int(n_workers))

        self.n_workers = n_workers
        self.use_threads = use_threads

        logger.debug(
            f"Initialized ParallelExecutor with {self.n_workers} "
            f"{'threads' if use_threads else 'workers'} (total CPUs: {cpu_count()})"
        )

    def with_threads(self) -> "ParallelExecutor":
        """Return an executor with the same worker count running on threads."""
        if self.use_threads:
            return self
        return ParallelExecutor(n_workers=self.n_workers, use_threads=True)

    def map_chunks(
        self,
        chunks: List[Any],
        worker_fn: Callable,
        worker_kwargs: Optional[Dict[str, Any]] = None,
        shared_kwargs: Optional[Dict[str, Any]] = None,
    ) -> List[Any]:
        """
        Map worker function over chunks in parallel.

        Args:
            chunks: Work items, e.g. ``(start, stop)`` point ranges or Scale objects
            worker_fn: Function to apply to each chunk. Must be picklable when
                running on processes and have signature:
                worker_fn(chunk, **shared_kwargs, **worker_kwargs) -> result
            worker_kwargs: Fixed keyword arguments sent with every chunk
            shared_kwargs: Large read-only keyword arguments (e.g. a spatial
                index). Process workers receive them once, through the pool
                initializer, instead of once per chunk.

        Returns:
            List of results in same order as input chunks

        Raises:
            RuntimeError: If any chunk fails
        """
        worker_kwargs = worker_kwargs or {}
        shared_kwargs = shared_kwargs or {}
        n_chunks = len(chunks)

        if n_chunks == 0:
            return []

        start_time = time.time()

        # If only 1 worker or 1 chunk, use sequential processing (no pool overhead)
        if self.n_workers == 1 or n_chunks == 1:
            results = []
            for i, chunk in enumerate(chunks):
                try:
                    results.append(worker_fn(chunk, **shared_kwargs, **worker_kwargs))
                except Exception as e:
                    logger.error(f"Error processing chunk {i}: {e}", exc_info=True)
                    raise RuntimeError(f"Chunk processing failed: {e}") from e
            logger.debug(
                f"Sequential processing complete: {n_chunks} chunks in "
                f"{time.time() - start_time:.2f}s"
            )
            return results

        results = self._parallel_map(chunks, worker_fn, worker_kwargs, shared_kwargs)
        logger.debug(
            f"Parallel processing complete: {n_chunks} chunks in "
            f"{time.time() - start_time:.2f}s on {self.n_workers} workers"
        )
        return results

    def _parallel_map(
        self,
        chunks: List[Any],
        worker_fn: Callable,
        worker_kwargs: Dict[str, Any],
        shared_kwargs: Dict[str, Any],
    ) -> List[Any]:
        """
        Execute parallel mapping on a process or thread pool.

        Uses imap_unordered for responsiveness, then reorders results to
        match input chunk order. Threads share memory with the caller, so
        shared arguments simply travel with each task there.
        """
        n_chunks = len(chunks)
        n_processes = min(self.n_workers, n_chunks)
        if self.use_threads:
            task_kwargs = {**shared_kwargs, **worker_kwargs}
            pool = ThreadPool(processes=n_processes)
        else:
            task_kwargs = worker_kwargs
            pool = Pool(processes=n_processes, initializer=_init_worker, initargs=(shared_kwargs,))
        worker_args = [(i, chunk, worker_fn, task_kwargs) for i, chunk in enumerate(chunks)]

        results_dict = {}
        errors = []
        with pool:
            for idx, result, error in pool.imap_unordered(_worker_wrapper, worker_args):
                if error:
                    errors.append((idx, error))
                else:
                    results_dict[idx] = result

        if errors:
            error_msg = f"{len(errors)} chunks failed out of {n_chunks}"
            logger.error(error_msg)
            for idx, error in sorted(errors)[:5]:  # Log first 5 errors
                logger.error(f"  Chunk {idx}: {error}")
            if len(errors) > 5:
                logger.error(f"  ... and {len(errors) - 5} more errors")
            raise RuntimeError(f"{error_msg}: {sorted(errors)[0][1]}")

        return [results_dict[i] for i in range(n_chunks)]
