"""
Tests for PointCloud, the file loader and the sample terrain generator.
"""

import numpy as np
import pytest

from lidar_surface.core.validation import FormatError
from lidar_surface.io.las import write_las
from lidar_surface.io.point_cloud import PointCloud, PointCloudLoader, generate_sample_terrain


class TestPointCloud:
    """PointCloud container behaviour."""

    def test_shape_checked(self):
        with pytest.raises(ValueError, match="Nx3"):
            PointCloud(xyz=np.zeros((4, 2)))

    def test_attribute_lengths_checked(self):
        with pytest.raises(ValueError, match="classification length"):
            PointCloud(xyz=np.zeros((4, 3)), classification=np.zeros(3, dtype=np.uint8))

    def test_bounds_and_bbox(self, grid_cloud):
        mins, maxs = grid_cloud.bounds
        np.testing.assert_array_equal(mins, [0, 0, 0])
        np.testing.assert_array_equal(maxs, [4, 4, 0])
        assert grid_cloud.bbox == (0.0, 0.0, 4.0, 4.0)

    def test_empty_bounds(self):
        with pytest.raises(ValueError, match="no bounds"):
            PointCloud(xyz=np.zeros((0, 3))).bounds

    def test_filter_by_classification(self, sample_records):
        cloud = PointCloud.from_records(sample_records)
        ground = cloud.filter_by_classification([2])
        assert ground.num_points == 3
        assert set(ground.classification) == {2}

    def test_from_records_rgb(self, sample_records):
        cloud = PointCloud.from_records(sample_records, crs="EPSG:28350")
        assert cloud.rgb.shape == (5, 3)
        assert tuple(cloud.rgb[0]) == (1000, 2000, 3000)
        assert cloud.crs == "EPSG:28350"

    def test_from_records_without_rgb(self, sample_records):
        from dataclasses import replace

        records = [replace(r, red=None, green=None, blue=None) for r in sample_records]
        assert PointCloud.from_records(records).rgb is None

    def test_to_records(self, sample_records):
        records = PointCloud.from_records(sample_records).to_records()
        assert [(r.x, r.y, r.z) for r in records] == [(r.x, r.y, r.z) for r in sample_records]
        assert [r.classification for r in records] == [r.classification for r in sample_records]
        assert records[2].rgb == sample_records[2].rgb

    def test_with_xyz_keeps_attributes(self, sample_records):
        cloud = PointCloud.from_records(sample_records, crs="EPSG:4326")
        moved = cloud.with_xyz(cloud.xyz + 1.0)
        assert moved.crs == "EPSG:4326"
        np.testing.assert_array_equal(moved.intensity, cloud.intensity)


class TestLoader:
    """File-format detection."""

    def test_las(self, tmp_output_dir, sample_records):
        path = tmp_output_dir / "points.las"
        write_las(path, sample_records, point_format=3, epsg_code=28350)
        cloud = PointCloudLoader.load(path)
        assert cloud.num_points == 5
        assert cloud.crs == "EPSG:28350"
        assert cloud.rgb is not None

    def test_las_max_points(self, tmp_output_dir, sample_records):
        path = tmp_output_dir / "points.las"
        write_las(path, sample_records)
        assert PointCloudLoader.load(path, max_points=3).num_points == 3

    def test_xyz(self, tmp_output_dir):
        path = tmp_output_dir / "points.xyz"
        path.write_text("0 0 1 2\n1 0 2 2\n0 1 3 6\n")
        cloud = PointCloudLoader.load(path)
        assert cloud.num_points == 3
        np.testing.assert_array_equal(cloud.classification, [2, 2, 6])

    def test_xyz_comments_and_max_points(self, tmp_output_dir):
        path = tmp_output_dir / "points.txt"
        path.write_text("# x y z\n0 0 1\n1 0 2\n0 1 3\n")
        cloud = PointCloudLoader.load(path, max_points=2)
        assert cloud.num_points == 2
        assert cloud.classification is None

    def test_xyz_too_few_columns(self, tmp_output_dir):
        path = tmp_output_dir / "points.xyz"
        path.write_text("0 0\n1 0\n")
        with pytest.raises(FormatError, match="at least x y z"):
            PointCloudLoader.load(path)

    def test_unsupported(self, tmp_output_dir):
        with pytest.raises(ValueError, match="Unsupported format"):
            PointCloudLoader.load(tmp_output_dir / "points.ply")


class TestSampleTerrain:
    """Synthetic terrain generator."""

    def test_grid_size(self, sample_point_cloud):
        assert sample_point_cloud.num_points == 400
        assert set(sample_point_cloud.classification) == {2}

    def test_reproducible(self):
        a = generate_sample_terrain(size=(10, 10), seed=7)
        b = generate_sample_terrain(size=(10, 10), seed=7)
        np.testing.assert_array_equal(a.xyz, b.xyz)

    def test_rgb(self):
        cloud = generate_sample_terrain(size=(10, 10), with_rgb=True)
        assert cloud.rgb.dtype == np.uint16
        assert cloud.rgb.shape == (100, 3)
        # 8-bit spectrum colours widened to 16 bits
        assert not np.any(cloud.rgb % 257)

    def test_hill_height_raises_terrain(self):
        flat = generate_sample_terrain(size=(20, 20), hill_height=0.0, noise_scale=0.0)
        hilly = generate_sample_terrain(size=(20, 20), hill_height=10.0, noise_scale=0.0)
        assert np.all(hilly.z >= flat.z)
        assert hilly.z.max() > flat.z.max()
