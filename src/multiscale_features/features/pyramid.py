"""
Multiscale pyramid construction.

Builds the base level over the raw cloud, then ``num_scales`` feature
levels over the base level's finest working set with geometrically
increasing resolutions (level i uses start_resolution * 2**(i - 1)).
"""

from __future__ import annotations

import logging
from typing import List, Optional

from ..acceleration import ParallelExecutor
from ..pointset import PointSet
from .scale import DEFAULT_CHUNK_POINTS, DEFAULT_K_NEIGHBORS, Scale

logger = logging.getLogger(__name__)


def _init_scale(scale: Scale) -> Scale:
    scale.init()
    return scale


def compute_scales(
    num_scales: int,
    point_set: PointSet,
    start_resolution: float,
    radius: float,
    k_neighbors: int = DEFAULT_K_NEIGHBORS,
    executor: Optional[ParallelExecutor] = None,
    chunk_points: int = DEFAULT_CHUNK_POINTS,
) -> List[Scale]:
    """
    Build the pyramid and compute descriptors for every feature level.

    Ordering:
    1. the base level is initialised first; its downsampled set becomes the
       finest working set and is attached to ``point_set.base``
    2. level 1 shares that set (same resolution), levels 2..N downsample it
    3. feature levels are initialised concurrently on threads
    4. feature levels are built one after another; each build is itself
       parallel over point chunks

    Any failure aborts the whole computation.

    Args:
        num_scales: Number of feature levels (at least 1)
        point_set: Raw input cloud
        start_resolution: Voxel size of the base level and level 1
        radius: Colour averaging radius for level 1
        k_neighbors: Neighbours per shape descriptor
        executor: Executor for the per-point passes (sequential if None)
        chunk_points: Query points per unit of work

    Returns:
        Feature levels ordered by id (1..num_scales)
    """
    if num_scales < 1:
        raise ValueError(f"num_scales must be at least 1, got {num_scales}")

    executor = executor or ParallelExecutor(n_workers=1)

    base = Scale(0, point_set, start_resolution, k_neighbors, radius)
    base.init()
    point_set.base = base.scaled_set
    logger.info(
        f"Finest working set: {base.scaled_set.count():,} of {point_set.count():,} points "
        f"at resolution {start_resolution}"
    )

    scales = [Scale.derive_first_level(base, k_neighbors, radius)]
    for i in range(1, num_scales):
        scales.append(
            Scale(i + 1, base.scaled_set, start_resolution * 2.0 ** i, k_neighbors, radius)
        )

    executor.with_threads().map_chunks(scales, _init_scale)

    for scale in scales:
        scale.build(executor, chunk_points)
        x0, y0, z0 = (float(v) for v in scale.origin)
        logger.info(f"Scale {scale.id} coordinates: x={x0}, y={y0}, z={z0}")

    return scales
