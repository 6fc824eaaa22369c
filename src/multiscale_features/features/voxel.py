"""
Voxel grid downsampling.

Keeps one representative point per occupied voxel:
- a lone point is kept as is
- of two points, the one closer to the voxel centre is kept
- of three or more, the member closest to the voxel centroid is kept

Voxels are visited in ascending key order, which fixes the order of the
output points. Ties always go to the member that comes first in the input.

The voxel key of a point truncates (rather than floors) its offset from the
first input point, and the row/column components are measured from the
swapped x/y origin values. Both behaviours are kept so results match
feature files produced by earlier releases.
"""

from __future__ import annotations

import logging
from typing import List, Tuple

import numpy as np

from ..pointset import PointSet

logger = logging.getLogger(__name__)


def voxel_keys(points: np.ndarray, origin: np.ndarray, resolution: float) -> np.ndarray:
    """
    Integer (row, column, depth) voxel key of every point.

    row = trunc((x - y0) / resolution), column = trunc((y - x0) / resolution),
    depth = trunc((z - z0) / resolution).
    """
    points = np.asarray(points, dtype=np.float64)
    x0, y0, z0 = (float(v) for v in origin)
    offsets = np.column_stack([
        points[:, 0] - y0,
        points[:, 1] - x0,
        points[:, 2] - z0,
    ])
    return np.trunc(offsets / resolution).astype(np.int64)


def voxel_centers(keys: np.ndarray, origin: np.ndarray, resolution: float) -> np.ndarray:
    """Geometric centre (x, y, z) of each voxel key, mirroring the key layout."""
    keys = np.asarray(keys, dtype=np.float64).reshape(-1, 3)
    x0, y0, z0 = (float(v) for v in origin)
    return np.column_stack([
        x0 + (keys[:, 1] + 0.5) * resolution,
        y0 + (keys[:, 0] + 0.5) * resolution,
        z0 + (keys[:, 2] + 0.5) * resolution,
    ])


def incremental_centroids(members: np.ndarray, starts: np.ndarray, counts: np.ndarray) -> np.ndarray:
    """
    Running-mean centroid of every group.

    ``members`` holds the coordinates of all groups back to back; group g
    occupies ``members[starts[g]:starts[g] + counts[g]]``. The mean is
    updated one member position at a time for all groups that have one:
    ``mean += (value - mean) / n``.
    """
    n_groups = len(counts)
    centroids = np.zeros((n_groups, 3), dtype=np.float64)
    if n_groups == 0:
        return centroids

    by_size = np.argsort(-counts, kind="stable")
    neg_sizes = -counts[by_size]
    for j in range(int(counts.max())):
        # groups with more than j members are a prefix of by_size
        n_active = int(np.searchsorted(neg_sizes, -j, side="left"))
        active = by_size[:n_active]
        values = members[starts[active] + j]
        centroids[active] += (values - centroids[active]) / (j + 1)
    return centroids


def _first_argmin_per_group(dist: np.ndarray, starts: np.ndarray, group_of: np.ndarray) -> np.ndarray:
    """Position of the first minimal distance within each contiguous group."""
    group_min = np.minimum.reduceat(dist, starts)
    candidates = np.flatnonzero(dist == group_min[group_of])
    _, first = np.unique(group_of[candidates], return_index=True)
    return candidates[first]


def group_by_voxel(points: np.ndarray, resolution: float) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Bucket points into voxels.

    Returns:
        keys: (G, 3) occupied voxel keys in ascending lexicographic order
        order: point indices grouped by voxel, ascending within each voxel
        starts: offset of each voxel's members in ``order``
        counts: number of members per voxel
    """
    keys = voxel_keys(points, points[0], resolution)
    unique_keys, inverse, counts = np.unique(keys, axis=0, return_inverse=True, return_counts=True)
    inverse = inverse.reshape(-1)
    order = np.argsort(inverse, kind="stable")
    starts = np.zeros(len(counts), dtype=np.int64)
    np.cumsum(counts[:-1], out=starts[1:])
    return unique_keys, order, starts, counts


def voxel_downsample(point_set: PointSet, resolution: float, track: bool = False) -> PointSet:
    """
    Reduce a point set to one representative point per occupied voxel.

    Args:
        point_set: Source points (and colours, carried along)
        resolution: Voxel edge length, must be positive
        track: If True, record on the output which source points each
            representative stands for (``point_map``) and on the source
            which representative each point went to (``raw_to_finest``)

    Returns:
        Downsampled PointSet in ascending voxel-key order
    """
    if not resolution > 0:
        raise ValueError(f"resolution must be positive, got {resolution}")

    if point_set.is_empty():
        empty = point_set.take([])
        if track:
            empty.track([], point_set)
        return empty

    points = point_set.points
    origin = points[0]
    keys, order, starts, counts = group_by_voxel(points, resolution)

    members = points[order]
    group_of = np.repeat(np.arange(len(counts)), counts)

    # Pairs are judged against the voxel centre, larger groups against their centroid
    targets = incremental_centroids(members, starts, counts)
    pairs = counts == 2
    if pairs.any():
        targets[pairs] = voxel_centers(keys[pairs], origin, resolution)

    dist = ((targets[group_of] - members) ** 2).sum(axis=1)
    chosen = order[_first_argmin_per_group(dist, starts, group_of)]

    scaled = point_set.take(chosen)
    if track:
        point_map: List[np.ndarray] = np.split(order, starts[1:])
        scaled.track(point_map, point_set)

    logger.debug(
        f"Voxel downsampling at {resolution}: {point_set.count():,} -> {scaled.count():,} points"
    )
    return scaled
