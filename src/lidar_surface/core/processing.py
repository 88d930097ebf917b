"""
Point Cloud Post-Processing

Deduplication of near-coincident points, deterministic stride decimation
and classification grouping. Every function returns a new PointCloud and
leaves its input untouched.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, Tuple

import numpy as np
from scipy.spatial import cKDTree

from ..io.las_format import classification_name
from ..io.point_cloud import PointCloud
from .validation import validate_max_points, validate_tolerance

logger = logging.getLogger(__name__)

DEFAULT_XY_TOLERANCE = 0.001

# Default display colours per ASPRS class
CLASSIFICATION_COLORS = {
    0: "#000000",
    1: "#CCCCCC",
    2: "#8B4513",
    3: "#228B22",
    4: "#6B8E23",
    5: "#00FF7F",
    6: "#FFD700",
    7: "#FFA500",
    8: "#9370DB",
    9: "#0000FF",
    10: "#800080",
    11: "#696969",
    12: "#A9A9A9",
    13: "#FFFF00",
    14: "#FFFFE0",
    15: "#90EE90",
    16: "#FF00FF",
    17: "#ADD8E6",
    18: "#FF0000",
}
FALLBACK_CLASS_COLOR = "#808080"


def classification_color(code: int) -> str:
    return CLASSIFICATION_COLORS.get(code, FALLBACK_CLASS_COLOR)


def rgb16_to_hex(red: int, green: int, blue: int) -> str:
    """16-bit channels to an 8-bit "#rrggbb" string."""
    channels = (min(255, max(0, round(c / 256))) for c in (red, green, blue))
    return "#" + "".join(f"{c:02x}" for c in channels)


@dataclass
class DeduplicationResult:
    """Outcome of collapsing near-coincident points."""
    unique: PointCloud
    original_count: int
    unique_count: int

    @property
    def removed_count(self) -> int:
        return self.original_count - self.unique_count


def deduplicate(cloud: PointCloud, xy_tolerance: float = DEFAULT_XY_TOLERANCE) -> DeduplicationResult:
    """
    Collapse points closer than `xy_tolerance` in plan.

    Points are visited in input order. A point not yet absorbed becomes a
    representative and absorbs every later point whose planar distance to
    it is strictly less than the tolerance. The representative keeps its
    own Z, colour, intensity and class, so the result is stable under
    repeated application.

    Args:
        cloud: Input points
        xy_tolerance: Planar merge distance; points exactly this far apart
            are kept separate

    Returns:
        DeduplicationResult with the surviving points in input order
    """
    xy_tolerance = validate_tolerance(xy_tolerance)
    n = cloud.num_points
    if n == 0:
        return DeduplicationResult(unique=cloud.subset(np.arange(0)), original_count=0, unique_count=0)

    xy = cloud.xyz[:, :2]
    tree = cKDTree(xy)
    absorbed = np.zeros(n, dtype=bool)
    keep = []

    for i in range(n):
        if absorbed[i]:
            continue
        keep.append(i)
        candidates = np.asarray(tree.query_ball_point(xy[i], r=xy_tolerance), dtype=np.intp)
        candidates = candidates[candidates > i]
        if len(candidates):
            distances = np.hypot(*(xy[candidates] - xy[i]).T)
            absorbed[candidates[distances < xy_tolerance]] = True

    unique = cloud.subset(np.asarray(keep, dtype=np.intp))
    logger.info(
        "Deduplicated %d points to %d (tolerance %g)", n, unique.num_points, xy_tolerance
    )
    return DeduplicationResult(unique=unique, original_count=n, unique_count=unique.num_points)


def decimation_step(n_points: int, max_points: int) -> int:
    """Stride used by decimate(): ceil(n / max_points), 1 when no thinning is needed."""
    if n_points <= max_points:
        return 1
    return math.ceil(n_points / max_points)


def decimate(cloud: PointCloud, max_points: int) -> PointCloud:
    """
    Thin a cloud to at most `max_points` with a uniform stride.

    Keeps every `ceil(n / max_points)`-th point starting with the first.
    The selection is deterministic, so decimating an already decimated
    cloud with the same cap returns it unchanged.
    """
    max_points = validate_max_points(max_points)
    n = cloud.num_points
    if n <= max_points:
        return cloud

    step = decimation_step(n, max_points)
    result = cloud.subset(np.arange(0, n, step))
    logger.info("Decimated %d points to %d (every %d)", n, result.num_points, step)
    return result


def group_by_classification(cloud: PointCloud) -> Dict[int, PointCloud]:
    """Split a cloud into one cloud per classification code, in ascending code order."""
    if cloud.classification is None:
        return {1: cloud}

    return {
        int(code): cloud.subset(cloud.classification == code)
        for code in np.unique(cloud.classification)
    }


def classification_statistics(cloud: PointCloud) -> Dict[int, Tuple[str, int]]:
    """Map each classification code to (name, point count)."""
    if cloud.classification is None:
        return {}
    codes, counts = np.unique(cloud.classification, return_counts=True)
    return {
        int(code): (classification_name(int(code)), int(count))
        for code, count in zip(codes, counts)
    }
