"""
One level of the multiscale pyramid.

A Scale downsamples its reference set at its resolution, indexes the
result and, for feature levels (id > 0), computes descriptors for every
point of the reference set against that downsampled set.

Level 0 (the base) only downsamples: its output is the finest working set
all other levels compute descriptors for, and it records which raw points
each finest point represents.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

import numpy as np

from ..acceleration import ParallelExecutor, split_range
from ..pointset import PointSet, save_point_set
from .color import rgb_to_hsv
from .descriptors import compute_hsv_chunk, compute_shape_chunk
from .voxel import voxel_downsample

logger = logging.getLogger(__name__)

DEFAULT_K_NEIGHBORS = 10
MIN_K_NEIGHBORS = 2
DEFAULT_CHUNK_POINTS = 250_000


@dataclass
class ScaleDescriptors:
    """Per-point descriptor arrays of one level, indexed like the finest working set."""

    eigen_values: np.ndarray
    eigen_vectors: np.ndarray
    order_axis: np.ndarray
    height_min: np.ndarray
    height_max: np.ndarray
    avg_hsv: Optional[np.ndarray] = None

    @classmethod
    def allocate(cls, n_points: int, with_hsv: bool = False) -> "ScaleDescriptors":
        return cls(
            eigen_values=np.zeros((n_points, 3), dtype=np.float32),
            eigen_vectors=np.zeros((n_points, 3, 3), dtype=np.float32),
            order_axis=np.zeros((n_points, 2, 2), dtype=np.float32),
            height_min=np.zeros(n_points, dtype=np.float32),
            height_max=np.zeros(n_points, dtype=np.float32),
            avg_hsv=np.zeros((n_points, 3), dtype=np.float32) if with_hsv else None,
        )

    def __len__(self) -> int:
        return len(self.eigen_values)

    def check_size(self, n_points: int) -> None:
        if len(self) != n_points:
            raise RuntimeError(
                f"Descriptor arrays hold {len(self)} points but the reference set has {n_points}"
            )

    def store_shape(self, start: int, stop: int, result: Dict[str, np.ndarray]) -> None:
        self.eigen_values[start:stop] = result["eigen_values"]
        self.eigen_vectors[start:stop] = result["eigen_vectors"]
        self.order_axis[start:stop] = result["order_axis"]
        self.height_min[start:stop] = result["height_min"]
        self.height_max[start:stop] = result["height_max"]


class Scale:
    """
    A single pyramid level.

    Args:
        id: 0 for the base level, 1..N for feature levels
        reference_set: The raw set for the base level, otherwise the finest
            working set. Not owned; never modified by feature levels.
        resolution: Voxel edge length
        k_neighbors: Neighbours per shape descriptor (at least 2)
        radius: Colour averaging radius, only used by level 1
    """

    def __init__(
        self,
        id: int,
        reference_set: PointSet,
        resolution: float,
        k_neighbors: int = DEFAULT_K_NEIGHBORS,
        radius: float = 0.75,
    ):
        if id < 0:
            raise ValueError(f"Scale id must be non-negative, got {id}")
        if not resolution > 0:
            raise ValueError(f"resolution must be positive, got {resolution}")
        if k_neighbors < MIN_K_NEIGHBORS:
            raise ValueError(f"k_neighbors must be at least {MIN_K_NEIGHBORS}, got {k_neighbors}")

        self.id = id
        self.reference_set = reference_set
        self.resolution = float(resolution)
        self.k_neighbors = int(k_neighbors)
        self.radius = float(radius)
        self.scaled_set = PointSet()
        self.descriptors: Optional[ScaleDescriptors] = None

        first = reference_set.first_point()
        self.origin = first if first is not None else np.zeros(3)

    @classmethod
    def derive_first_level(
        cls,
        base: "Scale",
        k_neighbors: int = DEFAULT_K_NEIGHBORS,
        radius: float = 0.75,
    ) -> "Scale":
        """
        Create level 1 from an initialised base level.

        Level 1 runs at the base resolution, so it shares the base level's
        downsampled set instead of computing it again. The shared set is the
        same object as ``base.scaled_set`` and its reference set; neither
        level modifies it after this point.
        """
        level = cls(1, base.scaled_set, base.resolution, k_neighbors, radius)
        level.scaled_set = base.scaled_set
        level.update_origin()
        return level

    def __repr__(self) -> str:
        return (
            f"Scale(id={self.id}, resolution={self.resolution}, "
            f"scaled_points={self.scaled_set.count()})"
        )

    @property
    def is_base(self) -> bool:
        return self.id == 0

    def update_origin(self) -> None:
        """Take the first downsampled point as the level's origin, if there is one."""
        first = self.scaled_set.first_point()
        if first is not None:
            self.origin = first

    def init(self) -> None:
        """Allocate descriptor storage, downsample and build the spatial index."""
        logger.info(f"Init scale {self.id} at {self.resolution} ...")

        if not self.is_base:
            self.descriptors = ScaleDescriptors.allocate(
                self.reference_set.count(), with_hsv=self.id == 1
            )

        self.compute_scaled_set()
        self.update_origin()

    def compute_scaled_set(self) -> None:
        """
        Downsample the reference set unless a downsampled set is already present.

        Feature levels then index the downsampled set. A non-empty reference
        set that produced no downsampled points cannot be indexed and is fatal
        for the level.
        """
        if self.scaled_set.is_empty() and (self.is_base or not self.reference_set.is_empty()):
            self.scaled_set = voxel_downsample(
                self.reference_set, self.resolution, track=self.is_base
            )

        if self.is_base:
            return

        if self.reference_set.is_empty():
            logger.warning(f"Scale {self.id}: reference set is empty, no descriptors to compute")
            return

        try:
            self.scaled_set.build_index()
        except ValueError as e:
            raise RuntimeError(f"Scale {self.id}: cannot build spatial index: {e}") from e

    def build(self, executor: Optional[ParallelExecutor] = None, chunk_points: int = DEFAULT_CHUNK_POINTS) -> None:
        """
        Compute descriptors for every point of the reference set.

        Points are split into contiguous chunks; each chunk is an independent
        unit of work and writes to its own slice of the descriptor arrays.
        """
        if self.is_base:
            raise RuntimeError("The base level does not compute descriptors")
        if self.descriptors is None:
            raise RuntimeError(f"Scale {self.id} must be initialised before it is built")

        n_points = self.reference_set.count()
        self.descriptors.check_size(n_points)

        logger.info(f"Building scale {self.id} ({self.scaled_set.count()} points) ...")
        if n_points == 0:
            return

        executor = executor or ParallelExecutor(n_workers=1)
        index = self.scaled_set.get_index()
        ranges = split_range(n_points, chunk_points)
        queries = [self.reference_set.points[start:stop] for start, stop in ranges]

        results = executor.map_chunks(
            queries,
            compute_shape_chunk,
            {"k": self.k_neighbors},
            shared_kwargs={"index": index},
        )
        for (start, stop), result in zip(ranges, results):
            self.descriptors.store_shape(start, stop, result)

        if self.id == 1:
            hsv = None
            if self.scaled_set.has_colors():
                hsv = rgb_to_hsv(self.scaled_set.colors)
            else:
                logger.warning(f"Scale {self.id}: no colours available, HSV averages are zero")
            averages = executor.map_chunks(
                queries,
                compute_hsv_chunk,
                {"radius": self.radius},
                shared_kwargs={"index": index, "hsv": hsv},
            )
            for (start, stop), avg in zip(ranges, averages):
                self.descriptors.avg_hsv[start:stop] = avg

    def save(self, output_path: Union[str, Path]) -> str:
        """Write this level's downsampled set to a LAS/LAZ file."""
        return save_point_set(self.scaled_set, output_path)
