import numpy as np
import pytest

from voronoi_dla import WorldConfig, WorldSimulator
from voronoi_dla.analysis import radius_of_gyration, sandbox_dimension, summarize_world


def test_radius_of_gyration_square():
    pts = np.array([[1, 1], [1, -1], [-1, 1], [-1, -1]])
    assert radius_of_gyration(pts) == pytest.approx(np.sqrt(2.0))
    assert radius_of_gyration(np.array([[3, 4]])) == 0.0


def test_radius_of_gyration_rejects_bad_shape():
    with pytest.raises(ValueError):
        radius_of_gyration(np.zeros((3, 3)))


def test_sandbox_dimension_line_and_disk():
    line = np.array([[x, 0] for x in range(1, 200)])
    df_line, r2 = sandbox_dimension(line, (0, 0))
    assert df_line == pytest.approx(1.0, abs=0.05)
    assert r2 > 0.99

    xs, ys = np.meshgrid(np.arange(-40, 41), np.arange(-40, 41))
    disk = np.column_stack([xs.ravel(), ys.ravel()])
    disk = disk[np.hypot(disk[:, 0], disk[:, 1]) <= 40]
    df_disk, _ = sandbox_dimension(disk, (0, 0))
    assert df_disk == pytest.approx(2.0, abs=0.15)


def test_sandbox_dimension_needs_radii():
    with pytest.raises(ValueError):
        sandbox_dimension(np.array([[0, 0], [1, 0]]), (0, 0))


def test_summary_reports_sandbox_dimension():
    world = WorldSimulator(WorldConfig(grid_width=48, grid_height=48, voronoi_points=2, radius=10, seed=3))
    world.run()
    for row in summarize_world(world):
        if row["added_count"] >= 10:
            assert np.isfinite(row["sandbox_df"])
            assert 0.0 <= row["sandbox_r2"] <= 1.0
        else:
            assert "sandbox_df" in row
