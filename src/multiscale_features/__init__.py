"""
Multiscale Features Package

Computes, for every point of a 3-D point cloud, multiscale local geometric
descriptors for downstream classification. The cloud is voxel-downsampled
into a pyramid of progressively coarser levels; every level answers
neighbourhood queries for the points of the finest level and contributes
eigenvalue, order-axis, height and (first level only) colour descriptors.
"""

__version__ = "0.1.0"

from .pointset import *
from .features import *
from .acceleration import *
from .utils import *

__all__ = [
    "pointset",
    "features",
    "acceleration",
    "utils",
]
