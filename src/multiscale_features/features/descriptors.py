"""
Per-point neighbourhood descriptors.

All functions work on a batch of query points at once. Neighbourhoods are
(M, k, 3) arrays of neighbour coordinates taken from a level's downsampled
set. The two chunk functions at the bottom are the units of work handed to
ParallelExecutor; they only read their arguments and return fresh arrays.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

import numpy as np

from ..pointset import SpatialIndex

# Rows of order_axis
AXIS_SUM = 0
AXIS_SQSUM = 1

# Radius matches held in memory at once by the colour pass
MAX_RADIUS_MATCHES = 2_000_000


def compute_medoids(neighbors: np.ndarray) -> np.ndarray:
    """
    Medoid of each neighbourhood.

    The medoid is the neighbour with the smallest summed squared distance to
    all other neighbours. Exhaustive O(k^2) scan; on ties the earlier
    neighbour wins.

    Args:
        neighbors: (M, k, 3) neighbour coordinates

    Returns:
        (M, 3) medoid coordinates
    """
    m, k, _ = neighbors.shape
    sums = np.zeros((m, k), dtype=np.float64)
    for j in range(k):
        sums += ((neighbors - neighbors[:, j:j + 1, :]) ** 2).sum(axis=2)
    best = np.argmin(sums, axis=1)
    return neighbors[np.arange(m), best]


def compute_covariances(offsets: np.ndarray) -> np.ndarray:
    """
    Sample covariance (A A^T) / (k - 1) of offsets from the medoid.

    A neighbourhood of a single point has no spread; its divisor is clamped
    to 1 so the result is the zero matrix rather than NaN.

    Args:
        offsets: (M, k, 3) neighbour coordinates minus the medoid

    Returns:
        (M, 3, 3) covariance matrices
    """
    k = offsets.shape[1]
    return np.einsum("mki,mkj->mij", offsets, offsets) / max(k - 1, 1)


def normalized_eigen(covariances: np.ndarray):
    """
    Eigen decomposition of symmetric 3x3 matrices.

    Negative eigenvalues (numerical noise on a PSD matrix) are clamped to 0
    and the triple is divided by its sum. A zero sum yields a zero triple.

    Returns:
        (eigenvalues, eigenvectors): (M, 3) ascending and sum-normalised,
        (M, 3, 3) with column i belonging to eigenvalue i
    """
    values, vectors = np.linalg.eigh(covariances)
    values = np.maximum(values, 0.0)
    total = values.sum(axis=1, keepdims=True)
    normalized = np.divide(values, total, out=np.zeros_like(values), where=total > 0)
    return normalized, vectors


def order_axis(offsets: np.ndarray, eigenvectors: np.ndarray) -> np.ndarray:
    """
    First and second moments of offsets projected on the two dominant axes.

    Returns:
        (M, 2, 2): row 0 holds the projection sums, row 1 the squared
        projection sums; column 0 is the dominant axis (eigenvector 2),
        column 1 the middle axis (eigenvector 1).
    """
    dominant = np.einsum("mki,mi->mk", offsets, eigenvectors[:, :, 2])
    middle = np.einsum("mki,mi->mk", offsets, eigenvectors[:, :, 1])

    result = np.empty((offsets.shape[0], 2, 2), dtype=np.float64)
    result[:, AXIS_SUM, 0] = dominant.sum(axis=1)
    result[:, AXIS_SUM, 1] = middle.sum(axis=1)
    result[:, AXIS_SQSUM, 0] = (dominant * dominant).sum(axis=1)
    result[:, AXIS_SQSUM, 1] = (middle * middle).sum(axis=1)
    return result


def height_range(neighbors: np.ndarray):
    """Raw (min z, max z) over each neighbourhood."""
    z = neighbors[:, :, 2]
    return z.min(axis=1), z.max(axis=1)


def compute_shape_chunk(query: np.ndarray, index: SpatialIndex, k: int) -> Dict[str, np.ndarray]:
    """
    Shape descriptors for a batch of query points.

    Finds the k nearest points of the level's downsampled set, then derives
    medoid, covariance eigen decomposition, order axis and height range.

    Args:
        query: (M, 3) query coordinates (points of the finest working set)
        index: Spatial index over the level's downsampled set
        k: Neighbours per query point (clamped to the indexed point count)

    Returns:
        Dict with eigen_values (M, 3), eigen_vectors (M, 3, 3),
        order_axis (M, 2, 2), height_min (M,), height_max (M,)
    """
    neighbor_ids, _ = index.knn_search(query, k)
    neighbors = index.points[neighbor_ids]

    medoids = compute_medoids(neighbors)
    offsets = neighbors - medoids[:, None, :]
    values, vectors = normalized_eigen(compute_covariances(offsets))
    z_min, z_max = height_range(neighbors)

    return {
        "eigen_values": values,
        "eigen_vectors": vectors,
        "order_axis": order_axis(offsets, vectors),
        "height_min": z_min,
        "height_max": z_max,
    }


def match_batches(counts: np.ndarray, max_matches: int) -> List[Tuple[int, int]]:
    """
    Split queries into contiguous ``(start, stop)`` batches of at most
    ``max_matches`` total radius matches.

    A query whose own match count exceeds the budget forms a batch by itself.
    """
    if max_matches <= 0:
        raise ValueError(f"max_matches must be positive, got {max_matches}")

    cumulative = np.cumsum(counts)
    batches = []
    start, consumed = 0, 0
    while start < len(counts):
        stop = int(np.searchsorted(cumulative, consumed + max_matches, side="right"))
        stop = max(stop, start + 1)
        batches.append((start, stop))
        consumed = int(cumulative[stop - 1])
        start = stop
    return batches


def compute_hsv_chunk(
    query: np.ndarray,
    index: SpatialIndex,
    hsv: Optional[np.ndarray],
    radius: float,
    max_matches: int = MAX_RADIUS_MATCHES,
) -> np.ndarray:
    """
    Average HSV colour of the indexed points within ``radius`` of each query.

    Match counts are taken first, then the queries are processed in batches
    holding at most ``max_matches`` matches. Scratch memory is bounded by
    that budget, not by the chunk size.

    Args:
        query: (M, 3) query coordinates
        index: Spatial index over the level's downsampled set
        hsv: (N, 3) HSV colour of every indexed point, or None if the set
            carries no colour
        radius: Search radius
        max_matches: Upper bound on radius matches held in memory at once

    Returns:
        (M, 3) per-channel mean; rows without matches (or without colour) are 0
    """
    averages = np.zeros((len(query), 3), dtype=np.float64)
    if hsv is None or len(query) == 0:
        return averages

    counts = index.radius_count(query, radius)
    for start, stop in match_batches(counts, max_matches):
        if counts[start:stop].sum() == 0:
            continue
        matches = index.radius_search(query[start:stop], radius)
        sizes = np.array([len(m) for m in matches], dtype=np.int64)
        owner = np.repeat(np.arange(stop - start), sizes)
        ids = np.concatenate(matches)
        for channel in range(3):
            averages[start:stop, channel] = np.bincount(
                owner, weights=hsv[ids, channel], minlength=stop - start
            )
        has_matches = sizes > 0
        averages[start:stop][has_matches] /= sizes[has_matches, None]

    return averages
