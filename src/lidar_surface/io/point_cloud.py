"""
Point Cloud Module

Provides the PointCloud container used by every processing stage and a
loader for LAS and XYZ text files.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..core.validation import FormatError
from .las import read_las
from .las_points import PointRecord

logger = logging.getLogger(__name__)

GROUND_CLASS = 2


@dataclass
class PointCloud:
    """
    Unified point cloud data structure.

    Processing stages never modify a PointCloud in place; each returns a
    new instance.

    Attributes:
        xyz: Nx3 array of point coordinates
        classification: Optional Nx1 array of point classifications
            (2 = ground, 6 = building, etc. per ASPRS LAS)
        intensity: Optional Nx1 array of return intensity values
        rgb: Optional Nx3 array of 16-bit RGB colors (0-65535)
        crs: Coordinate reference system (EPSG code or WKT)
    """
    xyz: np.ndarray
    classification: Optional[np.ndarray] = None
    intensity: Optional[np.ndarray] = None
    rgb: Optional[np.ndarray] = None
    crs: Optional[str] = None
    _bounds: Optional[Tuple[np.ndarray, np.ndarray]] = field(default=None, repr=False)

    def __post_init__(self):
        """Validate data shapes."""
        if self.xyz.ndim != 2 or self.xyz.shape[1] != 3:
            raise ValueError(f"xyz must be Nx3 array, got shape {self.xyz.shape}")

        n_points = len(self.xyz)

        if self.classification is not None and len(self.classification) != n_points:
            raise ValueError("classification length must match xyz")
        if self.intensity is not None and len(self.intensity) != n_points:
            raise ValueError("intensity length must match xyz")
        if self.rgb is not None and len(self.rgb) != n_points:
            raise ValueError("rgb length must match xyz")

    @property
    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        """Get (min_xyz, max_xyz) bounding box."""
        if self._bounds is None:
            if self.num_points == 0:
                raise ValueError("Empty point cloud has no bounds")
            self._bounds = (
                np.min(self.xyz, axis=0),
                np.max(self.xyz, axis=0)
            )
        return self._bounds

    @property
    def bbox(self) -> Tuple[float, float, float, float]:
        """Planar bounding box as (min_x, min_y, max_x, max_y)."""
        mins, maxs = self.bounds
        return (float(mins[0]), float(mins[1]), float(maxs[0]), float(maxs[1]))

    @property
    def num_points(self) -> int:
        """Total number of points."""
        return len(self.xyz)

    @property
    def x(self) -> np.ndarray:
        return self.xyz[:, 0]

    @property
    def y(self) -> np.ndarray:
        return self.xyz[:, 1]

    @property
    def z(self) -> np.ndarray:
        return self.xyz[:, 2]

    def filter_by_classification(self, classes: list[int]) -> PointCloud:
        """
        Return a new PointCloud containing only points with specified classifications.

        Args:
            classes: List of classification codes to keep (e.g., [2] for ground only)

        Returns:
            New filtered PointCloud
        """
        if self.classification is None:
            raise ValueError("Point cloud has no classification data")

        mask = np.isin(self.classification, classes)
        return self.subset(mask)

    def subset(self, selector: np.ndarray) -> PointCloud:
        """Copy the points picked by a boolean mask or an index array."""
        return PointCloud(
            xyz=self.xyz[selector].copy(),
            classification=self.classification[selector].copy() if self.classification is not None else None,
            intensity=self.intensity[selector].copy() if self.intensity is not None else None,
            rgb=self.rgb[selector].copy() if self.rgb is not None else None,
            crs=self.crs,
        )

    def with_xyz(self, xyz: np.ndarray, crs: Optional[str] = None) -> PointCloud:
        """Same attributes, new coordinates (and optionally a new CRS)."""
        return PointCloud(
            xyz=xyz,
            classification=self.classification,
            intensity=self.intensity,
            rgb=self.rgb,
            crs=crs if crs is not None else self.crs,
        )

    @classmethod
    def from_records(cls, records: Sequence[PointRecord], crs: Optional[str] = None) -> PointCloud:
        """
        Build a cloud from decoded LAS records.

        RGB is kept only when every record carries it, which is the case
        exactly when the source point format has an RGB group.
        """
        n = len(records)
        xyz = np.empty((n, 3), dtype=np.float64)
        classification = np.empty(n, dtype=np.uint8)
        intensity = np.empty(n, dtype=np.uint16)
        has_rgb = n > 0 and all(r.red is not None for r in records)
        rgb = np.empty((n, 3), dtype=np.uint16) if has_rgb else None

        for i, record in enumerate(records):
            xyz[i] = (record.x, record.y, record.z)
            classification[i] = record.classification
            intensity[i] = record.intensity
            if has_rgb:
                rgb[i] = (record.red, record.green, record.blue)

        return cls(xyz=xyz, classification=classification, intensity=intensity, rgb=rgb, crs=crs)

    def to_records(self) -> List[PointRecord]:
        """Convert back to PointRecords for the LAS writer."""
        records = []
        for i in range(self.num_points):
            x, y, z = (float(v) for v in self.xyz[i])
            fields = dict(x=x, y=y, z=z)
            if self.classification is not None:
                fields["classification"] = int(self.classification[i])
            if self.intensity is not None:
                fields["intensity"] = int(self.intensity[i])
            if self.rgb is not None:
                fields["red"], fields["green"], fields["blue"] = (int(c) for c in self.rgb[i])
            records.append(PointRecord(**fields))
        return records


class PointCloudLoader:
    """
    Load a PointCloud by file extension.

    `.las` goes through the built-in LAS decoder and keeps the file's CRS.
    `.xyz` and `.txt` are whitespace (or `delimiter`) separated columns:
    x y z, then optionally classification and intensity.
    """

    XYZ_COLUMNS = ("x", "y", "z", "classification", "intensity")

    @classmethod
    def load(cls, filepath: str | Path, **kwargs) -> PointCloud:
        """
        Raises:
            FormatError: Unsupported extension or malformed file contents
        """
        filepath = Path(filepath)
        suffix = filepath.suffix.lower()

        if suffix == ".las":
            return cls._load_las(filepath, **kwargs)
        if suffix in (".xyz", ".txt"):
            return cls._load_xyz(filepath, **kwargs)
        raise FormatError(f"Unsupported format: {suffix or filepath.name}")

    @classmethod
    def _load_las(cls, filepath: Path, max_points: Optional[int] = None, **kwargs) -> PointCloud:
        result = read_las(filepath, max_points=max_points)
        for message in result.warnings:
            logger.warning("%s: %s", filepath.name, message)
        return PointCloud.from_records(result.points, crs=result.crs)

    @classmethod
    def _load_xyz(
        cls,
        filepath: Path,
        delimiter: Optional[str] = None,
        skip_header: int = 0,
        max_points: Optional[int] = None,
        **kwargs
    ) -> PointCloud:
        data = np.loadtxt(
            filepath,
            delimiter=delimiter,
            skiprows=skip_header,
            comments="#",
            ndmin=2,
            max_rows=max_points,
        )

        n_columns = data.shape[1]
        if n_columns < 3:
            raise FormatError(
                f"{filepath.name}: expected at least x y z columns, found {n_columns}"
            )
        if n_columns > len(cls.XYZ_COLUMNS):
            logger.warning(
                "%s: ignoring %d columns after %s",
                filepath.name, n_columns - len(cls.XYZ_COLUMNS), cls.XYZ_COLUMNS[-1],
            )

        columns = dict(zip(cls.XYZ_COLUMNS, data.T))
        classification = columns.get("classification")
        intensity = columns.get("intensity")

        logger.debug("Loaded %d points from %s", len(data), filepath)
        return PointCloud(
            xyz=np.ascontiguousarray(data[:, :3], dtype=np.float64),
            classification=classification.astype(np.uint8) if classification is not None else None,
            intensity=intensity.astype(np.uint16) if intensity is not None else None,
        )


def generate_sample_terrain(
    size: Tuple[float, float] = (100.0, 100.0),
    resolution: float = 1.0,
    base_elevation: float = 100.0,
    noise_scale: float = 0.5,
    hill_height: float = 10.0,
    with_rgb: bool = False,
    seed: int = 42,
) -> PointCloud:
    """
    Synthetic ground survey on a regular grid.

    Elevation is a gentle tilt plus three Gaussian mounds of up to
    `hill_height`, with `noise_scale` of Gaussian noise on top. Every point
    is ground (class 2) with a random intensity. `with_rgb` colours points
    on the mesh elevation spectrum, widened to 16 bits.

    Args:
        size: (width, height) of the survey area
        resolution: Grid spacing
        seed: Seed for the mound placement, noise and intensities
    """
    from ..core.surface import elevation_colors

    rng = np.random.default_rng(seed)

    width, height = size
    xx, yy = np.meshgrid(np.arange(0, width, resolution), np.arange(0, height, resolution))
    x, y = xx.ravel(), yy.ravel()

    z = base_elevation + 0.02 * x + 0.01 * y
    centres = rng.uniform((0.0, 0.0), (width, height), size=(3, 2))
    spreads = rng.uniform(0.15, 0.3, size=3) * max(width, height)
    peaks = hill_height * rng.uniform(0.5, 1.0, size=3)
    for (cx, cy), spread, peak in zip(centres, spreads, peaks):
        z += peak * np.exp(-((x - cx) ** 2 + (y - cy) ** 2) / (2 * spread ** 2))
    z += noise_scale * rng.standard_normal(len(z))

    n = len(z)
    rgb = elevation_colors(z).astype(np.uint16) * 257 if with_rgb else None

    return PointCloud(
        xyz=np.column_stack([x, y, z]),
        classification=np.full(n, GROUND_CLASS, dtype=np.uint8),
        intensity=rng.integers(0, 65535, n, dtype=np.uint16, endpoint=True),
        rgb=rgb,
    )
