"""
Delaunay Surface Builder

Triangulates a processed point cloud in plan (X, Y) and removes triangles
that fail the edge-length or minimum-angle quality rules. Z is carried on
the vertices but never influences the triangulation topology.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, TYPE_CHECKING

import numpy as np
from scipy.spatial import Delaunay, QhullError

from .validation import InsufficientDataError, ValidationError, validate_angle, validate_edge_length

if TYPE_CHECKING:
    from shapely.geometry import Polygon
    from ..io.point_cloud import PointCloud

logger = logging.getLogger(__name__)

# Elevation colour ramp: blue, cyan, green, yellow, red at t = 0, .25, .5, .75, 1
ELEVATION_STOPS = np.array([0.0, 0.25, 0.5, 0.75, 1.0])
ELEVATION_COLORS = np.array([
    [0, 0, 255],
    [0, 255, 255],
    [0, 255, 0],
    [255, 255, 0],
    [255, 0, 0],
], dtype=np.float64)

CLIP_MODES = ("inside", "outside")


def elevation_colors(z: np.ndarray) -> np.ndarray:
    """
    Colour each elevation on the 5-stop spectrum over [min(z), max(z)].

    A flat set of points maps entirely to the first stop.

    Returns:
        Nx3 uint8 array
    """
    z = np.asarray(z, dtype=np.float64)
    if len(z) == 0:
        return np.zeros((0, 3), dtype=np.uint8)

    z_range = z.max() - z.min()
    t = (z - z.min()) / z_range if z_range > 0 else np.zeros_like(z)

    channels = [np.interp(t, ELEVATION_STOPS, ELEVATION_COLORS[:, c]) for c in range(3)]
    return np.rint(np.column_stack(channels)).astype(np.uint8)


def rgb16_to_rgb8(rgb: np.ndarray) -> np.ndarray:
    """Scale 16-bit colour channels down to 8 bits, rounding and clamping."""
    return np.clip(np.rint(np.asarray(rgb, dtype=np.float64) / 256.0), 0, 255).astype(np.uint8)


def _edge_lengths(vertices: np.ndarray) -> np.ndarray:
    """
    Side lengths of each triangle, (M, 3).

    Column k is the length of the side opposite vertex k.
    """
    p0, p1, p2 = vertices[:, 0], vertices[:, 1], vertices[:, 2]
    return np.column_stack([
        np.linalg.norm(p1 - p2, axis=1),
        np.linalg.norm(p2 - p0, axis=1),
        np.linalg.norm(p0 - p1, axis=1),
    ])


def _internal_angles(lengths: np.ndarray) -> np.ndarray:
    """Internal angles in degrees from side lengths via the law of cosines."""
    a, b, c = lengths[:, 0], lengths[:, 1], lengths[:, 2]
    with np.errstate(divide="ignore", invalid="ignore"):
        cos_a = (b * b + c * c - a * a) / (2 * b * c)
        cos_b = (a * a + c * c - b * b) / (2 * a * c)
        cos_c = (a * a + b * b - c * c) / (2 * a * b)
    cosines = np.clip(np.column_stack([cos_a, cos_b, cos_c]), -1.0, 1.0)
    # Zero-length sides give NaN; treat those triangles as having a 0 degree angle
    return np.nan_to_num(np.degrees(np.arccos(cosines)), nan=0.0)


@dataclass
class TriangulatedSurface:
    """
    Surface mesh built from a point cloud.

    Attributes:
        points: Nx3 vertex coordinates
        triangles: Mx3 vertex indices into `points`
        colors: Nx3 uint8 per-vertex colours
        mesh_bounds: minX..maxZ of `points`
        metadata: Counts describing how the mesh was built
    """
    points: np.ndarray
    triangles: np.ndarray
    colors: np.ndarray
    mesh_bounds: dict
    metadata: dict = field(default_factory=dict)

    @property
    def point_count(self) -> int:
        return len(self.points)

    @property
    def triangle_count(self) -> int:
        return len(self.triangles)

    @property
    def triangle_vertices(self) -> np.ndarray:
        """(M, 3, 3) vertex coordinates of every triangle."""
        return self.points[self.triangles]

    @property
    def centroid(self) -> tuple:
        b = self.mesh_bounds
        return (
            (b["minX"] + b["maxX"]) / 2,
            (b["minY"] + b["maxY"]) / 2,
            (b["minZ"] + b["maxZ"]) / 2,
        )

    def planar_area(self) -> float:
        """Total plan area of the triangles."""
        v = self.triangle_vertices
        if len(v) == 0:
            return 0.0
        cross = (
            (v[:, 1, 0] - v[:, 0, 0]) * (v[:, 2, 1] - v[:, 0, 1])
            - (v[:, 2, 0] - v[:, 0, 0]) * (v[:, 1, 1] - v[:, 0, 1])
        )
        return float(np.sum(np.abs(cross)) / 2)

    def summary(self) -> str:
        """Return human-readable summary."""
        m = self.metadata
        b = self.mesh_bounds
        lines = [
            "=" * 50,
            "SURFACE SUMMARY",
            "=" * 50,
            f"Points:            {self.point_count:,}",
            f"Triangles:         {self.triangle_count:,}",
            f"  Candidates:      {m.get('candidate_count', 0):,}",
            f"  Degenerate:      {m.get('degenerate_removed', 0):,}",
            f"  Culled (edge):   {m.get('culled_by_edge', 0):,}",
            f"  Culled (angle):  {m.get('culled_by_angle', 0):,}",
            f"  Culled (clip):   {m.get('culled_by_boundary', 0):,}",
            f"",
            f"Bounds:",
            f"  X:               {b['minX']:.3f} to {b['maxX']:.3f}",
            f"  Y:               {b['minY']:.3f} to {b['maxY']:.3f}",
            f"  Z:               {b['minZ']:.3f} to {b['maxZ']:.3f}",
            f"Plan area:         {self.planar_area():,.2f} sq units",
            "=" * 50,
        ]
        return "\n".join(lines)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization (no vertex arrays)."""
        return {
            "point_count": self.point_count,
            "triangle_count": self.triangle_count,
            "mesh_bounds": dict(self.mesh_bounds),
            "centroid": list(self.centroid),
            "planar_area": self.planar_area(),
            "metadata": dict(self.metadata),
        }


class DelaunaySurfaceBuilder:
    """
    Build a TriangulatedSurface from a point cloud.

    A threshold of 0 disables its rule. Rules run in a fixed order on the
    candidates that survived the previous one: degenerate (zero-area)
    triangles, maximum edge length, minimum internal angle, then the
    optional boundary clip. Each removal is counted against the first rule
    that rejected the triangle.

    Example:
        >>> builder = DelaunaySurfaceBuilder(max_edge_length=25.0, min_angle=5.0)
        >>> surface = builder.build(cloud)
        >>> print(surface.summary())
    """

    def __init__(
        self,
        max_edge_length: float = 0.0,
        min_angle: float = 0.0,
        consider_3d_length: bool = False,
        consider_3d_angle: bool = False,
        boundary: Optional['Polygon'] = None,
        clip_mode: str = "inside",
    ):
        self.max_edge_length = validate_edge_length(max_edge_length)
        self.min_angle = validate_angle(min_angle)
        self.consider_3d_length = consider_3d_length
        self.consider_3d_angle = consider_3d_angle

        if clip_mode not in CLIP_MODES:
            raise ValidationError(
                f"clip_mode must be one of {', '.join(CLIP_MODES)}, got '{clip_mode}'"
            )
        self.boundary = boundary
        self.clip_mode = clip_mode

    def build(self, cloud: 'PointCloud') -> TriangulatedSurface:
        """
        Triangulate `cloud` and apply the culling rules.

        Raises:
            InsufficientDataError: Fewer than 3 points, or all points collinear
        """
        xyz = np.asarray(cloud.xyz, dtype=np.float64)
        n = len(xyz)
        if n < 3:
            raise InsufficientDataError(
                f"Need at least 3 points to triangulate, got {n}"
            )

        try:
            tri = Delaunay(xyz[:, :2])
        except QhullError as e:
            raise InsufficientDataError(
                f"Cannot triangulate {n} points: they do not span an area"
            ) from e

        candidates = tri.simplices.astype(np.int64)
        candidate_count = len(candidates)
        metadata = {
            "point_count": n,
            "candidate_count": candidate_count,
            "degenerate_removed": 0,
            "culled_by_edge": 0,
            "culled_by_angle": 0,
            "culled_by_boundary": 0,
        }

        triangles = self._drop_degenerate(xyz, candidates, metadata)

        if self.max_edge_length > 0 and len(triangles):
            dims = 3 if self.consider_3d_length else 2
            lengths = _edge_lengths(xyz[triangles][:, :, :dims])
            keep = lengths.max(axis=1) <= self.max_edge_length
            metadata["culled_by_edge"] = int(np.count_nonzero(~keep))
            triangles = triangles[keep]

        if self.min_angle > 0 and len(triangles):
            dims = 3 if self.consider_3d_angle else 2
            angles = _internal_angles(_edge_lengths(xyz[triangles][:, :, :dims]))
            keep = angles.min(axis=1) >= self.min_angle
            metadata["culled_by_angle"] = int(np.count_nonzero(~keep))
            triangles = triangles[keep]

        if self.boundary is not None and len(triangles):
            triangles = self._clip(xyz, triangles, metadata)

        metadata["triangle_count"] = len(triangles)

        if cloud.rgb is not None:
            colors = rgb16_to_rgb8(cloud.rgb)
        else:
            colors = elevation_colors(xyz[:, 2])

        mins, maxs = xyz.min(axis=0), xyz.max(axis=0)
        mesh_bounds = {
            "minX": float(mins[0]), "maxX": float(maxs[0]),
            "minY": float(mins[1]), "maxY": float(maxs[1]),
            "minZ": float(mins[2]), "maxZ": float(maxs[2]),
        }

        logger.info(
            "Triangulated %d points: %d of %d candidate triangles kept "
            "(edge %d, angle %d, boundary %d, degenerate %d removed)",
            n, len(triangles), candidate_count,
            metadata["culled_by_edge"], metadata["culled_by_angle"],
            metadata["culled_by_boundary"], metadata["degenerate_removed"],
        )

        return TriangulatedSurface(
            points=xyz.copy(),
            triangles=triangles,
            colors=colors,
            mesh_bounds=mesh_bounds,
            metadata=metadata,
        )

    @staticmethod
    def _drop_degenerate(xyz: np.ndarray, triangles: np.ndarray, metadata: dict) -> np.ndarray:
        v = xyz[triangles][:, :, :2]
        cross = (
            (v[:, 1, 0] - v[:, 0, 0]) * (v[:, 2, 1] - v[:, 0, 1])
            - (v[:, 2, 0] - v[:, 0, 0]) * (v[:, 1, 1] - v[:, 0, 1])
        )
        extent = float(np.ptp(xyz[:, :2], axis=0).max())
        keep = np.abs(cross) > 1e-12 * extent * extent
        metadata["degenerate_removed"] = int(np.count_nonzero(~keep))
        return triangles[keep]

    def _clip(self, xyz: np.ndarray, triangles: np.ndarray, metadata: dict) -> np.ndarray:
        import shapely

        centroids = xyz[triangles][:, :, :2].mean(axis=1)
        inside = shapely.contains_xy(self.boundary, centroids[:, 0], centroids[:, 1])
        keep = inside if self.clip_mode == "inside" else ~inside
        metadata["culled_by_boundary"] = int(np.count_nonzero(~keep))
        return triangles[keep]


def build_surface(cloud: 'PointCloud', **options) -> TriangulatedSurface:
    """Convenience wrapper: DelaunaySurfaceBuilder(**options).build(cloud)."""
    return DelaunaySurfaceBuilder(**options).build(cloud)
