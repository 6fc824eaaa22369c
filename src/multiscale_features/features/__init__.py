"""
Multiscale Feature Module

This module computes per-point multiscale descriptors:
- Voxel grid downsampling into a pyramid of resolutions
- Neighbourhood shape descriptors (eigenvalues, order axis, height range)
- Averaged HSV colour on the first level
- Named feature columns and CSV export
"""

from .color import rgb_to_hsv
from .voxel import voxel_downsample, voxel_keys, voxel_centers, incremental_centroids
from .descriptors import (
    compute_medoids,
    compute_covariances,
    normalized_eigen,
    order_axis,
    height_range,
    compute_shape_chunk,
    compute_hsv_chunk,
)
from .scale import Scale, ScaleDescriptors, DEFAULT_K_NEIGHBORS
from .pyramid import compute_scales
from .export import Feature, get_features, scale_features, write_features_csv

__all__ = [
    "rgb_to_hsv",
    "voxel_downsample",
    "voxel_keys",
    "voxel_centers",
    "incremental_centroids",
    "compute_medoids",
    "compute_covariances",
    "normalized_eigen",
    "order_axis",
    "height_range",
    "compute_shape_chunk",
    "compute_hsv_chunk",
    "Scale",
    "ScaleDescriptors",
    "DEFAULT_K_NEIGHBORS",
    "compute_scales",
    "Feature",
    "get_features",
    "scale_features",
    "write_features_csv",
]
