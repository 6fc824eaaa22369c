"""
Point Set Module

Containers and I/O for point clouds:
- PointSet: coordinates, colours and downsampling bookkeeping
- SpatialIndex: k-NN and radius queries
- LAS/LAZ reading and writing
"""

from .point_set import PointSet, SpatialIndex
from .io import read_point_set, save_point_set

__all__ = [
    "PointSet",
    "SpatialIndex",
    "read_point_set",
    "save_point_set",
]
