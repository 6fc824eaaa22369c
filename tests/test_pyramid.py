"""Tests for multiscale pyramid construction."""

import numpy as np
import pytest

from multiscale_features.acceleration import ParallelExecutor
from multiscale_features.features import compute_scales
from multiscale_features.pointset import PointSet


def _make_cloud(seed: int = 0, n_points: int = 600) -> PointSet:
    rng = np.random.default_rng(seed)
    points = rng.uniform(0, 1, size=(n_points, 3))
    colors = rng.integers(0, 256, size=(n_points, 3))
    return PointSet(points, colors)


class TestComputeScales:

    def test_levels_and_resolutions(self):
        cloud = _make_cloud()
        scales = compute_scales(3, cloud, 0.05, 0.2)

        assert [s.id for s in scales] == [1, 2, 3]
        assert [s.resolution for s in scales] == [0.05, 0.1, 0.2]

    def test_finest_set_is_shared(self):
        cloud = _make_cloud()
        scales = compute_scales(3, cloud, 0.05, 0.2)

        finest = cloud.base
        assert finest is not None
        assert all(s.reference_set is finest for s in scales)
        assert all(len(s.descriptors) == finest.count() for s in scales)

    def test_level_one_aliases_base_set(self):
        cloud = _make_cloud()
        scales = compute_scales(2, cloud, 0.05, 0.2)

        assert scales[0].scaled_set is cloud.base
        np.testing.assert_array_equal(scales[0].scaled_set.points, cloud.base.points)
        np.testing.assert_array_equal(scales[0].origin, cloud.base.points[0])

    def test_coarser_levels_have_fewer_points(self):
        cloud = _make_cloud()
        scales = compute_scales(4, cloud, 0.05, 0.2)
        counts = [s.scaled_set.count() for s in scales]
        assert counts == sorted(counts, reverse=True)

    def test_descriptor_invariants_all_levels(self):
        cloud = _make_cloud()
        scales = compute_scales(3, cloud, 0.05, 0.2)

        for scale in scales:
            d = scale.descriptors
            assert (d.eigen_values >= 0).all()
            np.testing.assert_allclose(d.eigen_values.sum(axis=1), 1.0, atol=1e-5)
            assert (d.height_min <= d.height_max).all()
            assert (d.avg_hsv is not None) == (scale.id == 1)

    def test_deterministic_across_runs_and_workers(self):
        sequential = compute_scales(3, _make_cloud(seed=1), 0.05, 0.2)
        parallel = compute_scales(
            3,
            _make_cloud(seed=1),
            0.05,
            0.2,
            executor=ParallelExecutor(n_workers=2),
            chunk_points=64,
        )

        for a, b in zip(sequential, parallel):
            np.testing.assert_array_equal(a.scaled_set.points, b.scaled_set.points)
            np.testing.assert_array_equal(a.descriptors.eigen_values, b.descriptors.eigen_values)
            np.testing.assert_array_equal(a.descriptors.eigen_vectors, b.descriptors.eigen_vectors)
            np.testing.assert_array_equal(a.descriptors.order_axis, b.descriptors.order_axis)
            np.testing.assert_array_equal(a.descriptors.height_min, b.descriptors.height_min)
            np.testing.assert_array_equal(a.descriptors.height_max, b.descriptors.height_max)
        np.testing.assert_array_equal(sequential[0].descriptors.avg_hsv, parallel[0].descriptors.avg_hsv)

    def test_flat_plane(self):
        points = np.array([
            [0.0, 0.0, 0.0],
            [1.0, 0.2, 0.0],
            [0.3, 1.0, 0.0],
            [1.2, 1.1, 0.0],
            [0.5, 0.4, 0.0],
        ])
        cloud = PointSet(points)
        scales = compute_scales(1, cloud, 0.01, 1.0, k_neighbors=5)

        values = scales[0].descriptors.eigen_values
        assert cloud.base.count() == 5
        np.testing.assert_allclose(values[:, 0], 0.0, atol=1e-6)
        np.testing.assert_allclose(values[:, 1] + values[:, 2], 1.0, atol=1e-6)

    def test_empty_cloud(self):
        cloud = PointSet()
        scales = compute_scales(2, cloud, 0.05, 0.2)

        assert len(scales) == 2
        assert all(len(s.descriptors) == 0 for s in scales)
        assert cloud.base.is_empty()

    def test_invalid_level_count(self):
        with pytest.raises(ValueError):
            compute_scales(0, _make_cloud(), 0.05, 0.2)

    def test_invalid_k(self):
        with pytest.raises(ValueError):
            compute_scales(2, _make_cloud(), 0.05, 0.2, k_neighbors=1)
