"""
Coordinate Transformation

Detects geographic (degree) bounds and reprojects point clouds between
coordinate systems with pyproj.
"""

from __future__ import annotations

import logging
from typing import Sequence, Union, TYPE_CHECKING

import numpy as np
from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError, ProjError

from .validation import ProjectionError

if TYPE_CHECKING:
    from ..io.point_cloud import PointCloud

logger = logging.getLogger(__name__)

CRSDefinition = Union[str, int, CRS]


def is_geographic(bbox: Sequence[float]) -> bool:
    """
    Guess whether a planar bounding box is in longitude/latitude degrees.

    Args:
        bbox: (min_x, min_y, max_x, max_y)

    Returns:
        True when both X values lie in [-180, 180] and both Y values in [-90, 90]
    """
    min_x, min_y, max_x, max_y = bbox
    return (
        -180.0 <= min_x <= 180.0 and -180.0 <= max_x <= 180.0
        and -90.0 <= min_y <= 90.0 and -90.0 <= max_y <= 90.0
    )


def resolve_crs(definition: CRSDefinition) -> CRS:
    """
    Parse a WKT string, PROJ string, "EPSG:<code>" or bare EPSG code.

    Raises:
        ProjectionError: If pyproj cannot interpret the definition
    """
    if isinstance(definition, CRS):
        return definition
    if definition is None or (isinstance(definition, str) and not definition.strip()):
        raise ProjectionError("Projection definition is empty")
    try:
        return CRS.from_user_input(definition)
    except CRSError as e:
        raise ProjectionError(f"Invalid projection definition {str(definition)[:80]!r}: {e}") from e


def load_projection_catalog_entry(code: int, wkt_version: str = "WKT2_2019") -> str:
    """
    Resolve a catalog code to a WKT definition.

    Args:
        code: EPSG code present in PROJECTION_CATALOG
        wkt_version: pyproj WKT flavour, e.g. "WKT1_ESRI" for .prj files

    Raises:
        ProjectionError: If the code is not in the catalog or pyproj has no
            definition for it
    """
    from ..io.georef import PROJECTION_CATALOG

    try:
        code = int(code)
    except (TypeError, ValueError):
        raise ProjectionError(f"Projection code must be an integer, got {code!r}") from None

    if code not in PROJECTION_CATALOG:
        raise ProjectionError(f"EPSG:{code} is not in the projection catalog")

    try:
        wkt = CRS.from_epsg(code).to_wkt(version=wkt_version)
    except (CRSError, ValueError) as e:
        raise ProjectionError(f"No definition available for EPSG:{code}: {e}") from e

    if not wkt:
        raise ProjectionError(f"EPSG:{code} cannot be written as {wkt_version}")
    return wkt


class CoordinateTransformer:
    """
    Reproject point cloud X/Y between two coordinate systems; Z is untouched.

    Both definitions are parsed when the transformer is created, so a bad
    definition fails before any point is touched.

    Example:
        >>> transformer = CoordinateTransformer("EPSG:4326", "EPSG:28350")
        >>> projected = transformer.transform(cloud)
    """

    def __init__(self, source: CRSDefinition, target: CRSDefinition):
        self.source = resolve_crs(source)
        self.target = resolve_crs(target)
        try:
            self._transformer = Transformer.from_crs(self.source, self.target, always_xy=True)
        except ProjError as e:
            raise ProjectionError(
                f"Cannot transform from {self.source.name} to {self.target.name}: {e}"
            ) from e

    def transform_xy(self, x: np.ndarray, y: np.ndarray):
        """
        Transform coordinate arrays, returning new arrays.

        Raises:
            ProjectionError: If PROJ fails or produces non-finite values
        """
        try:
            tx, ty = self._transformer.transform(
                np.asarray(x, dtype=np.float64), np.asarray(y, dtype=np.float64), errcheck=True
            )
        except ProjError as e:
            raise ProjectionError(f"Transformation failed: {e}") from e

        tx, ty = np.asarray(tx, dtype=np.float64), np.asarray(ty, dtype=np.float64)
        bad = ~(np.isfinite(tx) & np.isfinite(ty))
        if bad.any():
            raise ProjectionError(
                f"Transformation produced {int(bad.sum())} non-finite coordinates"
            )
        return tx, ty

    def transform(self, cloud: 'PointCloud') -> 'PointCloud':
        """Return a reprojected copy of `cloud` tagged with the target CRS."""
        tx, ty = self.transform_xy(cloud.x, cloud.y)
        xyz = np.column_stack([tx, ty, cloud.z.copy()])
        logger.info(
            "Transformed %d points from %s to %s",
            cloud.num_points, self.source.name, self.target.name,
        )
        return cloud.with_xyz(xyz, crs=self.target.to_string())
