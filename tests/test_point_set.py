"""
Tests for the PointSet container, spatial index and LAS/LAZ I/O.
"""

import numpy as np
import pytest

from multiscale_features.pointset import PointSet, SpatialIndex, read_point_set, save_point_set


class TestPointSet:

    def test_empty_defaults(self):
        ps = PointSet()
        assert ps.count() == 0
        assert ps.is_empty()
        assert ps.first_point() is None
        assert not ps.has_colors()

    def test_color_length_must_match(self):
        with pytest.raises(ValueError, match="colors length"):
            PointSet(np.zeros((3, 3)), np.zeros((2, 3)))

    def test_color_shape_checked(self):
        with pytest.raises(ValueError):
            PointSet(np.zeros((3, 3)), np.zeros((3, 4)))

    def test_take_copies_in_order(self):
        points = np.arange(12, dtype=float).reshape(4, 3)
        colors = np.arange(12).reshape(4, 3)
        ps = PointSet(points, colors)

        sub = ps.take([2, 0])

        assert sub.points.tolist() == [points[2].tolist(), points[0].tolist()]
        assert sub.colors.tolist() == [colors[2].tolist(), colors[0].tolist()]
        sub.points[0, 0] = -1.0
        assert ps.points[2, 0] == 6.0

    def test_track_inverse_mapping(self):
        raw = PointSet(np.zeros((4, 3)))
        finest = raw.take([0, 3])
        finest.track([np.array([0, 1, 2]), np.array([3])], raw)

        assert raw.raw_to_finest.tolist() == [0, 0, 0, 1]
        assert len(finest.point_map) == 2

    def test_track_requires_one_entry_per_point(self):
        raw = PointSet(np.zeros((2, 3)))
        with pytest.raises(ValueError):
            raw.take([0]).track([], raw)

    def test_index_is_cached(self):
        ps = PointSet(np.random.default_rng(0).uniform(size=(10, 3)))
        assert not ps.has_index()
        with pytest.raises(RuntimeError):
            ps.get_index()

        index = ps.build_index()
        assert ps.build_index() is index
        assert ps.get_index() is index

    def test_empty_set_cannot_be_indexed(self):
        with pytest.raises(ValueError, match="empty"):
            PointSet().build_index()


class TestSpatialIndex:

    @pytest.fixture
    def grid(self):
        return np.array([[float(i), 0.0, 0.0] for i in range(10)])

    def test_knn_sorted_by_distance(self, grid):
        index = SpatialIndex(grid)
        ids, sqr = index.knn_search(np.array([[2.1, 0.0, 0.0]]), 3)

        assert ids[0].tolist() == [2, 3, 1]
        np.testing.assert_allclose(sqr[0], [0.01, 0.81, 1.21])

    def test_knn_clamps_k(self, grid):
        ids, _ = SpatialIndex(grid[:4]).knn_search(grid[:1], 10)
        assert ids.shape == (1, 4)

    def test_radius_search(self, grid):
        matches = SpatialIndex(grid).radius_search(np.array([[5.0, 0.0, 0.0], [50.0, 0.0, 0.0]]), 1.0)
        assert sorted(matches[0].tolist()) == [4, 5, 6]
        assert len(matches[1]) == 0

    def test_radius_count_matches_search(self, grid):
        index = SpatialIndex(grid)
        query = np.array([[5.0, 0.0, 0.0], [0.0, 0.0, 0.0], [50.0, 0.0, 0.0]])

        counts = index.radius_count(query, 1.0)

        assert counts.tolist() == [len(m) for m in index.radius_search(query, 1.0)]
        assert counts.tolist() == [3, 2, 0]


class TestPointSetIO:

    def test_round_trip(self, tmp_path):
        rng = np.random.default_rng(2)
        ps = PointSet(rng.uniform(100, 200, size=(50, 3)), rng.integers(0, 256, size=(50, 3)))
        out = tmp_path / "cloud.las"

        save_point_set(ps, out)
        loaded = read_point_set(out)

        assert loaded.count() == 50
        np.testing.assert_allclose(loaded.points, ps.points, atol=1e-4)
        assert loaded.colors.tolist() == ps.colors.tolist()

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            read_point_set(tmp_path / "missing.laz")

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "cloud.xyz"
        path.write_text("0 0 0\n")
        with pytest.raises(ValueError, match="Unsupported"):
            read_point_set(path)
