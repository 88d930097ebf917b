"""
Tests for Delaunay surface building and triangle culling.
"""

import numpy as np
import pytest
from shapely.geometry import box

from lidar_surface.core.surface import (
    ELEVATION_COLORS,
    DelaunaySurfaceBuilder,
    TriangulatedSurface,
    build_surface,
    elevation_colors,
    rgb16_to_rgb8,
)
from lidar_surface.core.validation import InsufficientDataError, ValidationError
from lidar_surface.io.point_cloud import PointCloud

CENTER = 12  # (2, 2) in the 5 x 5 grid


@pytest.fixture
def lifted_grid(grid_cloud):
    """The 5 x 5 grid with its centre vertex raised by 10."""
    xyz = grid_cloud.xyz.copy()
    xyz[CENTER, 2] = 10.0
    return PointCloud(xyz=xyz)


@pytest.fixture
def sheared_lifted_grid(lifted_grid):
    """
    The lifted grid sheared by x += y / 4.

    Each cell becomes a parallelogram with one short diagonal, so the
    Delaunay triangulation is unique and every interior vertex touches
    exactly 6 triangles.
    """
    xyz = lifted_grid.xyz.copy()
    xyz[:, 0] += xyz[:, 1] / 4
    return PointCloud(xyz=xyz)


def triangles_touching(surface, vertex):
    return int(np.count_nonzero(np.any(surface.triangles == vertex, axis=1)))


class TestGridSurface:
    """Unculled triangulation of a regular grid."""

    def test_triangle_count(self, grid_cloud):
        surface = DelaunaySurfaceBuilder().build(grid_cloud)
        assert surface.triangle_count == 32
        assert surface.point_count == 25

    def test_mesh_bounds(self, grid_cloud):
        surface = DelaunaySurfaceBuilder().build(grid_cloud)
        assert surface.mesh_bounds == {
            "minX": 0.0, "maxX": 4.0,
            "minY": 0.0, "maxY": 4.0,
            "minZ": 0.0, "maxZ": 0.0,
        }

    def test_covers_the_grid(self, grid_cloud):
        surface = DelaunaySurfaceBuilder().build(grid_cloud)
        assert surface.planar_area() == pytest.approx(16.0)

    def test_no_culling_when_disabled(self, lifted_grid):
        surface = DelaunaySurfaceBuilder(max_edge_length=0, min_angle=0,
                                         consider_3d_length=True, consider_3d_angle=True).build(lifted_grid)
        m = surface.metadata
        assert m["culled_by_edge"] == 0
        assert m["culled_by_angle"] == 0
        assert m["triangle_count"] == 32

    def test_indices_in_range(self, grid_cloud):
        surface = DelaunaySurfaceBuilder().build(grid_cloud)
        assert surface.triangles.min() >= 0
        assert surface.triangles.max() < surface.point_count


class TestEdgeCulling:
    """Maximum edge length rule."""

    def test_3d_length_removes_triangles_at_raised_vertex(self, lifted_grid):
        adjacent = triangles_touching(DelaunaySurfaceBuilder().build(lifted_grid), CENTER)
        # each cocircular cell around the centre may take either diagonal
        assert 4 <= adjacent <= 8

        surface = DelaunaySurfaceBuilder(max_edge_length=5, consider_3d_length=True).build(lifted_grid)

        assert surface.metadata["culled_by_edge"] == adjacent
        assert surface.triangle_count == 32 - adjacent
        assert triangles_touching(surface, CENTER) == 0

    def test_3d_length_on_unique_triangulation(self, sheared_lifted_grid):
        unculled = DelaunaySurfaceBuilder().build(sheared_lifted_grid)
        assert unculled.triangle_count == 32
        assert triangles_touching(unculled, CENTER) == 6

        surface = DelaunaySurfaceBuilder(max_edge_length=5, consider_3d_length=True).build(sheared_lifted_grid)

        assert surface.metadata["culled_by_edge"] == 6
        assert surface.triangle_count == 26
        assert triangles_touching(surface, CENTER) == 0

    def test_plan_length_ignores_height(self, lifted_grid):
        surface = DelaunaySurfaceBuilder(max_edge_length=5).build(lifted_grid)
        assert surface.metadata["culled_by_edge"] == 0

    def test_short_limit_removes_everything(self, grid_cloud):
        surface = DelaunaySurfaceBuilder(max_edge_length=1.2).build(grid_cloud)
        # every grid triangle has a sqrt(2) diagonal
        assert surface.triangle_count == 0
        assert surface.metadata["culled_by_edge"] == 32


class TestAngleCulling:
    """Minimum internal angle rule."""

    def test_right_isoceles_kept_below_45(self, grid_cloud):
        surface = DelaunaySurfaceBuilder(min_angle=44).build(grid_cloud)
        assert surface.metadata["culled_by_angle"] == 0

    def test_right_isoceles_removed_above_45(self, grid_cloud):
        surface = DelaunaySurfaceBuilder(min_angle=46).build(grid_cloud)
        assert surface.metadata["culled_by_angle"] == 32

    def test_3d_angles(self, lifted_grid):
        adjacent = triangles_touching(DelaunaySurfaceBuilder().build(lifted_grid), CENTER)
        flat = DelaunaySurfaceBuilder(min_angle=30).build(lifted_grid)
        steep = DelaunaySurfaceBuilder(min_angle=30, consider_3d_angle=True).build(lifted_grid)
        assert flat.metadata["culled_by_angle"] == 0
        assert steep.metadata["culled_by_angle"] == adjacent

    def test_edge_rule_counted_first(self, lifted_grid):
        surface = DelaunaySurfaceBuilder(
            max_edge_length=5, min_angle=30, consider_3d_length=True, consider_3d_angle=True,
        ).build(lifted_grid)
        assert surface.metadata["culled_by_edge"] > 0
        assert surface.metadata["culled_by_angle"] == 0


class TestBoundaryClip:
    """Optional polygon clip on triangle centroids."""

    def test_inside(self, grid_cloud):
        surface = DelaunaySurfaceBuilder(boundary=box(0, 0, 2, 2)).build(grid_cloud)
        assert surface.triangle_count == 8
        assert surface.metadata["culled_by_boundary"] == 24

    def test_outside(self, grid_cloud):
        surface = DelaunaySurfaceBuilder(boundary=box(0, 0, 2, 2), clip_mode="outside").build(grid_cloud)
        assert surface.triangle_count == 24

    def test_bad_mode(self):
        with pytest.raises(ValidationError, match="clip_mode"):
            DelaunaySurfaceBuilder(clip_mode="around")


class TestInsufficientData:
    """Inputs that cannot form a surface."""

    def test_two_points(self):
        cloud = PointCloud(xyz=np.array([[0.0, 0.0, 0.0], [1.0, 1.0, 1.0]]))
        with pytest.raises(InsufficientDataError, match="at least 3"):
            DelaunaySurfaceBuilder().build(cloud)

    def test_collinear(self):
        cloud = PointCloud(xyz=np.array([[float(i), float(i), 0.0] for i in range(5)]))
        with pytest.raises(InsufficientDataError):
            DelaunaySurfaceBuilder().build(cloud)

    def test_negative_threshold(self):
        with pytest.raises(ValidationError):
            DelaunaySurfaceBuilder(max_edge_length=-1)


class TestColors:
    """Per-vertex colours."""

    def test_flat_cloud_uses_first_stop(self, grid_cloud):
        surface = DelaunaySurfaceBuilder().build(grid_cloud)
        assert surface.colors.shape == (25, 3)
        np.testing.assert_array_equal(surface.colors, np.tile(ELEVATION_COLORS[0], (25, 1)))

    def test_ramp_endpoints(self):
        colors = elevation_colors(np.array([0.0, 5.0, 10.0]))
        np.testing.assert_array_equal(colors[0], ELEVATION_COLORS[0])
        np.testing.assert_array_equal(colors[-1], ELEVATION_COLORS[-1])

    def test_rgb_preferred(self, grid_cloud):
        rgb = np.full((25, 3), 65535, dtype=np.uint16)
        rgb[:, 1] = 0
        cloud = PointCloud(xyz=grid_cloud.xyz, rgb=rgb)
        surface = DelaunaySurfaceBuilder().build(cloud)
        np.testing.assert_array_equal(surface.colors[0], [255, 0, 255])

    def test_rgb16_to_rgb8(self):
        out = rgb16_to_rgb8(np.array([[0, 256, 65535]]))
        np.testing.assert_array_equal(out, [[0, 1, 255]])


class TestSummary:
    """Summary and serialisation of the surface."""

    def test_to_dict(self, grid_cloud):
        surface = build_surface(grid_cloud)
        data = surface.to_dict()
        assert data["triangle_count"] == 32
        assert data["centroid"] == [2.0, 2.0, 0.0]
        assert data["planar_area"] == pytest.approx(16.0)
        assert data["metadata"]["candidate_count"] >= 32

    def test_summary_text(self, grid_cloud):
        text = build_surface(grid_cloud, max_edge_length=10).summary()
        assert "SURFACE SUMMARY" in text
        assert "Triangles:" in text

    def test_empty_surface_area(self):
        surface = TriangulatedSurface(
            points=np.zeros((3, 3)),
            triangles=np.zeros((0, 3), dtype=np.int64),
            colors=np.zeros((3, 3), dtype=np.uint8),
            mesh_bounds={"minX": 0, "maxX": 0, "minY": 0, "maxY": 0, "minZ": 0, "maxZ": 0},
        )
        assert surface.planar_area() == 0.0


class TestDisableSemantics:
    """A zero threshold disables its rule."""

    def test_zero_edge_length_same_as_huge(self, lifted_grid):
        disabled = DelaunaySurfaceBuilder(max_edge_length=0, consider_3d_length=True).build(lifted_grid)
        huge = DelaunaySurfaceBuilder(max_edge_length=1e9, consider_3d_length=True).build(lifted_grid)
        np.testing.assert_array_equal(disabled.triangles, huge.triangles)

    def test_zero_angle_removes_nothing(self, lifted_grid):
        surface = DelaunaySurfaceBuilder(min_angle=0, consider_3d_angle=True).build(lifted_grid)
        assert surface.metadata["culled_by_angle"] == 0
        assert surface.triangle_count == 32
