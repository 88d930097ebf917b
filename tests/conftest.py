"""
Shared pytest fixtures and configuration for lidar_surface tests.
"""

import numpy as np
import pytest


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "requires_laspy: cross-checks output with laspy"
    )


def pytest_collection_modifyitems(config, items):
    """Auto-skip tests based on missing dependencies."""
    try:
        import laspy
        laspy_available = True
    except ImportError:
        laspy_available = False

    for item in items:
        if "requires_laspy" in item.keywords and not laspy_available:
            item.add_marker(pytest.mark.skip(reason="laspy not installed"))


@pytest.fixture
def grid_cloud():
    """Flat 5 x 5 grid at unit spacing (z = 0)."""
    from lidar_surface.io.point_cloud import PointCloud

    xs, ys = np.meshgrid(np.arange(5.0), np.arange(5.0))
    xyz = np.column_stack([xs.ravel(), ys.ravel(), np.zeros(25)])
    return PointCloud(xyz=xyz)


@pytest.fixture
def sample_point_cloud():
    """Generate a small synthetic point cloud for fast tests."""
    from lidar_surface.io.point_cloud import generate_sample_terrain

    return generate_sample_terrain(
        size=(20.0, 20.0),
        resolution=1.0,
        base_elevation=100.0,
        seed=42,
    )


@pytest.fixture
def sample_records():
    """A handful of point records with every optional attribute filled in."""
    from lidar_surface.io.las_points import PointRecord

    return [
        PointRecord(
            x=1000.0 + i, y=2000.0 + 2 * i, z=50.0 + 0.5 * i,
            intensity=100 * i,
            return_number=1, number_of_returns=2,
            classification=2 if i % 2 else 5,
            gps_time=1.5 * i,
            red=1000 * i, green=2000 * i, blue=3000 * i,
        )
        for i in range(1, 6)
    ]


@pytest.fixture
def tmp_output_dir(tmp_path):
    """Temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def cli_runner():
    """Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()
