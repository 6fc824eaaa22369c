"""
Acceleration Module

Fork-join parallel execution for the per-point descriptor passes and
for level initialisation.
"""

from .parallel_executor import ParallelExecutor, split_range

__all__ = [
    "ParallelExecutor",
    "split_range",
]
