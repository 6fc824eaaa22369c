"""
Named feature columns and CSV export.

Each feature level contributes one column per descriptor channel. Column
values are indexed like the finest working set; the CSV writer expands
them to the raw input points through the base level's tracking map.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import List, Sequence, Union

import numpy as np

from ..pointset import PointSet
from .descriptors import AXIS_SQSUM, AXIS_SUM
from .scale import Scale

logger = logging.getLogger(__name__)


@dataclass
class Feature:
    """A named descriptor channel, indexed by finest-set point index."""

    name: str
    values: np.ndarray

    def get_value(self, idx: int) -> float:
        return float(self.values[idx])

    def __len__(self) -> int:
        return len(self.values)


def scale_features(scale: Scale) -> List[Feature]:
    """Feature columns of a single feature level."""
    if scale.descriptors is None:
        raise ValueError(f"Scale {scale.id} has no descriptors")

    d = scale.descriptors
    suffix = f"_s{scale.id}"
    features = [Feature(f"eigenvalue_{i}{suffix}", d.eigen_values[:, i]) for i in range(3)]

    for axis in (0, 1):
        features.append(Feature(f"order_axis_sum_{axis + 1}{suffix}", d.order_axis[:, AXIS_SUM, axis]))
        features.append(Feature(f"order_axis_sqsum_{axis + 1}{suffix}", d.order_axis[:, AXIS_SQSUM, axis]))

    features.append(Feature(f"height_min{suffix}", d.height_min))
    features.append(Feature(f"height_max{suffix}", d.height_max))

    if d.avg_hsv is not None:
        for i, channel in enumerate(("hue", "saturation", "value")):
            features.append(Feature(f"avg_{channel}{suffix}", d.avg_hsv[:, i]))

    return features


def get_features(scales: Sequence[Scale]) -> List[Feature]:
    """Feature columns of all levels, in level order."""
    features: List[Feature] = []
    for scale in scales:
        features.extend(scale_features(scale))
    return features


def write_features_csv(
    features: Sequence[Feature],
    output_path: Union[str, Path],
    point_set: PointSet,
) -> str:
    """
    Write one CSV row per raw input point.

    Rows follow the raw point order; each raw point takes the values of the
    finest-set point that represents it. The file is written to a temporary
    sibling first and renamed on success, so a failure never leaves a
    partial output behind.

    Args:
        features: Columns to write
        output_path: CSV destination
        point_set: The raw set passed to compute_scales (carries raw_to_finest)

    Returns:
        Path to created file
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    if point_set.raw_to_finest is None:
        raise ValueError("Point set has no raw-to-finest mapping; run compute_scales first")
    lookup = point_set.raw_to_finest

    if features:
        table = np.column_stack([np.asarray(f.values, dtype=np.float64)[lookup] for f in features])
    else:
        table = np.empty((len(lookup), 0))
    header = ",".join(f.name for f in features)

    fd, tmp_name = tempfile.mkstemp(suffix=".csv.tmp", dir=output_path.parent)
    try:
        with os.fdopen(fd, "w", newline="") as fh:
            np.savetxt(fh, table, fmt="%.6f", delimiter=",", header=header, comments="")
        os.replace(tmp_name, output_path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.remove(tmp_name)
        raise

    logger.info(f"Features saved to: {output_path}")
    logger.info(f"Number of points: {len(lookup):,}")
    logger.info(f"Number of features: {len(features)}")
    return str(output_path)
