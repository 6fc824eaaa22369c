"""
Point set container and spatial index.

A PointSet holds coordinates, optional RGB colours and, for the base level,
the bookkeeping that ties downsampled representatives back to raw points.
The spatial index is built lazily and cached on the set.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np
from sklearn.neighbors import KDTree

logger = logging.getLogger(__name__)


class SpatialIndex:
    """
    k-nearest-neighbour and radius queries over a fixed set of 3-D points.

    Thin wrapper around ``sklearn.neighbors.KDTree``. The tree is built once
    in the constructor and never modified, so concurrent readers are safe.
    """

    def __init__(self, points: np.ndarray, leaf_size: int = 30):
        points = np.ascontiguousarray(points, dtype=np.float64)
        if points.ndim != 2 or points.shape[1] != 3:
            raise ValueError(f"points must be (N, 3), got {points.shape}")
        if len(points) == 0:
            raise ValueError("Cannot build a spatial index over an empty point set")
        self.points = points
        self.n_points = len(points)
        self._tree = KDTree(points, leaf_size=leaf_size)

    def knn_search(self, query: np.ndarray, k: int) -> Tuple[np.ndarray, np.ndarray]:
        """
        Find the k nearest indexed points of every query point.

        k is clamped to the number of indexed points.

        Returns:
            (indices, sqr_distances), both (M, k), rows sorted by distance
        """
        query = np.atleast_2d(np.asarray(query, dtype=np.float64))
        k = min(int(k), self.n_points)
        if k < 1:
            raise ValueError(f"k must be at least 1, got {k}")
        dist, ind = self._tree.query(query, k=k, return_distance=True, sort_results=True)
        return ind, dist * dist

    def radius_search(self, query: np.ndarray, radius: float) -> List[np.ndarray]:
        """Indices of the indexed points within ``radius`` of each query point."""
        query = np.atleast_2d(np.asarray(query, dtype=np.float64))
        return list(self._tree.query_radius(query, r=float(radius)))

    def radius_count(self, query: np.ndarray, radius: float) -> np.ndarray:
        """Number of indexed points within ``radius`` of each query point."""
        query = np.atleast_2d(np.asarray(query, dtype=np.float64))
        return np.asarray(self._tree.query_radius(query, r=float(radius), count_only=True), dtype=np.int64)


class PointSet:
    """
    Ordered 3-D points with optional colours.

    Attributes:
        points: (N, 3) float64 coordinates; row order is the canonical point order
        colors: (N, 3) uint8 RGB colours or None
        point_map: for a downsampled set, one array per point listing the
            original indices that point represents
        raw_to_finest: for a raw set, the representative index of every raw point
        base: for a raw set, the finest working set produced from it
    """

    def __init__(self, points: Optional[np.ndarray] = None, colors: Optional[np.ndarray] = None):
        if points is None:
            points = np.empty((0, 3), dtype=np.float64)
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        if colors is not None:
            colors = np.asarray(colors)
            if colors.ndim != 2 or colors.shape[1] != 3:
                raise ValueError(f"colors must be (N, 3), got {colors.shape}")
            if len(colors) != len(points):
                raise ValueError(
                    f"colors length {len(colors)} does not match points length {len(points)}"
                )
            colors = colors.astype(np.uint8, copy=False)

        self.points = points
        self.colors = colors
        self.point_map: Optional[List[np.ndarray]] = None
        self.raw_to_finest: Optional[np.ndarray] = None
        self.base: Optional[PointSet] = None
        self._index: Optional[SpatialIndex] = None

    def __repr__(self) -> str:
        return f"PointSet(count={self.count()}, colors={self.has_colors()})"

    def count(self) -> int:
        return len(self.points)

    def is_empty(self) -> bool:
        return self.count() == 0

    def has_colors(self) -> bool:
        return self.colors is not None

    def first_point(self) -> Optional[np.ndarray]:
        """Coordinates of the first point, or None for an empty set."""
        if self.is_empty():
            return None
        return self.points[0].copy()

    def take(self, indices: Sequence[int]) -> "PointSet":
        """New PointSet with copies of the selected points, in the given order."""
        indices = np.asarray(indices, dtype=np.int64)
        colors = self.colors[indices] if self.colors is not None else None
        return PointSet(self.points[indices], colors)

    def track(self, point_map: List[np.ndarray], source: "PointSet") -> None:
        """
        Record which source points each point of this set represents.

        Fills ``self.point_map`` and the inverse ``source.raw_to_finest``.
        """
        if len(point_map) != self.count():
            raise ValueError(
                f"point_map has {len(point_map)} entries for {self.count()} points"
            )
        raw_to_finest = np.full(source.count(), -1, dtype=np.int64)
        for new_idx, members in enumerate(point_map):
            raw_to_finest[members] = new_idx
        self.point_map = point_map
        source.raw_to_finest = raw_to_finest

    def build_index(self) -> SpatialIndex:
        """Build (or return the cached) spatial index over the coordinates."""
        if self._index is None:
            self._index = SpatialIndex(self.points)
            logger.debug(f"Built spatial index over {self.count()} points")
        return self._index

    def get_index(self) -> SpatialIndex:
        if self._index is None:
            raise RuntimeError("Spatial index has not been built for this point set")
        return self._index

    def has_index(self) -> bool:
        return self._index is not None
