"""
Point Cloud Reading and Writing

This module loads LAS/LAZ files into PointSet objects and writes
PointSet objects back out (used to save a level's downsampled set).
"""

from pathlib import Path
from typing import Union
import logging

import laspy
import numpy as np

from .point_set import PointSet

logger = logging.getLogger(__name__)

SUPPORTED_SUFFIXES = ('.las', '.laz')


def _colors_from_las(las) -> Union[np.ndarray, None]:
    """Extract RGB as uint8 rows, or None if the point format has no colour."""
    if not (hasattr(las, 'red') and hasattr(las, 'green') and hasattr(las, 'blue')):
        return None
    rgb = np.column_stack([
        np.array(las.red),
        np.array(las.green),
        np.array(las.blue),
    ]).astype(np.uint32)
    # LAS stores 16-bit colour; many writers still emit 8-bit values
    if rgb.size and rgb.max() > 255:
        rgb = rgb >> 8
    return rgb.astype(np.uint8)


def read_point_set(file_path: Union[str, Path]) -> PointSet:
    """
    Load a LAS/LAZ file into a PointSet.

    Args:
        file_path: Path to the LAS/LAZ file

    Returns:
        PointSet with coordinates and, when present, RGB colours

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file format is unsupported
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"File not found: {file_path}")

    if file_path.suffix.lower() not in SUPPORTED_SUFFIXES:
        raise ValueError(f"Unsupported file format: {file_path.suffix}")

    logger.info(f"Loading point cloud data from {file_path}")

    try:
        las = laspy.read(file_path)
        points = np.column_stack([
            np.array(las.x, dtype=np.float64),
            np.array(las.y, dtype=np.float64),
            np.array(las.z, dtype=np.float64),
        ])
        colors = _colors_from_las(las)
    except Exception as e:
        logger.error(f"Error loading point cloud data from {file_path}: {e}")
        raise

    if colors is None:
        logger.warning(f"{file_path.name} has no RGB colours; colour features will be zero")

    logger.info(f"Loaded {len(points):,} points from {file_path.name}")
    return PointSet(points, colors)


def save_point_set(point_set: PointSet, output_path: Union[str, Path]) -> str:
    """
    Write a PointSet to a LAS/LAZ file (point format 2, LAS 1.2).

    Args:
        point_set: Points to write
        output_path: Destination path (extension determines compression)

    Returns:
        Path to created file
    """
    output_path = Path(output_path)
    if output_path.suffix.lower() not in SUPPORTED_SUFFIXES:
        raise ValueError(f"Unsupported file format: {output_path.suffix}")
    output_path.parent.mkdir(parents=True, exist_ok=True)

    header = laspy.LasHeader(point_format=2, version="1.2")
    if not point_set.is_empty():
        header.offsets = point_set.points.min(axis=0)
    header.scales = np.array([0.0001, 0.0001, 0.0001])

    las = laspy.LasData(header)
    las.x = point_set.points[:, 0]
    las.y = point_set.points[:, 1]
    las.z = point_set.points[:, 2]

    if point_set.has_colors():
        rgb16 = point_set.colors.astype(np.uint16) * 257
        las.red = rgb16[:, 0]
        las.green = rgb16[:, 1]
        las.blue = rgb16[:, 2]

    las.write(str(output_path))
    logger.info(f"Saved {point_set.count():,} points to {output_path}")
    return str(output_path)
