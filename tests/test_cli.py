"""End-to-end tests for the command line entry point."""

import numpy as np
import pytest

from multiscale_features.cli import main
from multiscale_features.pointset import PointSet, save_point_set


@pytest.fixture
def input_cloud(tmp_path):
    rng = np.random.default_rng(8)
    ps = PointSet(rng.uniform(0, 1, size=(300, 3)), rng.integers(0, 256, size=(300, 3)))
    path = tmp_path / "input.las"
    save_point_set(ps, path)
    return path


def test_writes_feature_csv(input_cloud, tmp_path):
    out = tmp_path / "features.csv"

    code = main([
        str(input_cloud), str(out),
        "--num-scales", "2",
        "--start-resolution", "0.05",
        "--radius", "0.2",
        "--workers", "1",
    ])

    assert code == 0
    lines = out.read_text().splitlines()
    assert len(lines[0].split(",")) == 12 + 9
    assert len(lines) == 1 + 300


def test_saves_finest_set(input_cloud, tmp_path):
    out = tmp_path / "features.csv"
    base = tmp_path / "finest.las"

    code = main([
        str(input_cloud), str(out),
        "--num-scales", "1",
        "--start-resolution", "0.05",
        "--save-base", str(base),
    ])

    assert code == 0
    assert base.exists()


def test_missing_input_fails_without_output(tmp_path):
    out = tmp_path / "features.csv"
    code = main([str(tmp_path / "missing.laz"), str(out), "--num-scales", "1"])

    assert code == 1
    assert not out.exists()


def test_invalid_override_fails(input_cloud, tmp_path):
    out = tmp_path / "features.csv"
    code = main([str(input_cloud), str(out), "--k-neighbors", "1"])

    assert code == 1
    assert not out.exists()
