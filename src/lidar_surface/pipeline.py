"""
Import and Export Pipelines

import_las runs decode -> (reproject) -> deduplicate -> decimate ->
triangulate; export_las runs the writer and the optional .prj sidecar.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Union

from .core.config import ExportConfig, ImportConfig
from .core.processing import decimate, deduplicate
from .core.surface import DelaunaySurfaceBuilder, TriangulatedSurface
from .core.transform import CoordinateTransformer, is_geographic
from .core.validation import ProjectionError, validate_output_path
from .io.georef import write_projection_sidecar
from .io.las import EncodeResult, LASReader, write_las
from .io.las_header import LASHeader
from .io.las_points import PointRecord
from .io.las_vlr import VariableLengthRecord
from .io.point_cloud import PointCloud

logger = logging.getLogger(__name__)

GEOGRAPHIC_SOURCE_CRS = "EPSG:4326"

Source = Union[str, Path, bytes, bytearray, memoryview]


@dataclass
class ImportResult:
    """Decoded file plus the processed cloud and, for surface imports, the mesh."""
    header: LASHeader
    vlrs: List[VariableLengthRecord]
    cloud: PointCloud
    surface: Optional[TriangulatedSurface]
    warnings: List[str] = field(default_factory=list)
    geographic: bool = False
    decoded_count: int = 0
    deduplicated_count: int = 0

    def summary(self) -> str:
        """Return human-readable summary."""
        lines = [
            f"LAS {self.header.version}, point format {self.header.point_format}",
            f"Decoded points:      {self.decoded_count:,}",
            f"After deduplication: {self.deduplicated_count:,}",
            f"Processed points:    {self.cloud.num_points:,}",
            f"Geographic bounds:   {'yes' if self.geographic else 'no'}",
        ]
        if self.surface is not None:
            lines.append(f"Triangles:           {self.surface.triangle_count:,}")
        if self.warnings:
            lines.append(f"Warnings:            {len(self.warnings)}")
        return "\n".join(lines)


def _read_source(source: Source) -> bytes:
    if isinstance(source, (bytes, bytearray, memoryview)):
        return source
    path = Path(source)
    logger.info("Reading %s", path)
    return path.read_bytes()


def import_las(source: Source, config: Optional[ImportConfig] = None) -> ImportResult:
    """
    Decode a LAS file and run it through the processing pipeline.

    Args:
        source: Path to a LAS file, or the file contents
        config: Import options (defaults to ImportConfig())

    Returns:
        ImportResult; `surface` is None when `config.import_type == "points"`

    Raises:
        FormatError: If the file is not valid LAS
        ProjectionError: If reprojection is requested but cannot be set up
        InsufficientDataError: If fewer than 3 points remain to triangulate
    """
    config = config or ImportConfig()

    decoded = LASReader(max_points=config.max_points).read(_read_source(source))
    warnings = list(decoded.warnings)

    cloud = PointCloud.from_records(decoded.points, crs=decoded.crs)
    decoded_count = cloud.num_points

    geographic = cloud.num_points > 0 and is_geographic(cloud.bbox)
    if geographic and not config.transform:
        message = (
            "Point bounds look like longitude/latitude degrees; "
            "set a target CRS to reproject before triangulating"
        )
        logger.warning(message)
        warnings.append(message)

    if config.transform:
        source_crs = config.source_crs or decoded.crs
        if source_crs is None and geographic:
            source_crs = GEOGRAPHIC_SOURCE_CRS
        if source_crs is None:
            raise ProjectionError(
                "Cannot reproject: the file has no CRS and none was configured"
            )
        cloud = CoordinateTransformer(source_crs, config.target_crs).transform(cloud)

    if config.deduplicate and cloud.num_points:
        cloud = deduplicate(cloud, config.xy_tolerance).unique
    deduplicated_count = cloud.num_points

    if config.decimate_to is not None:
        cloud = decimate(cloud, config.decimate_to)

    surface = None
    if config.import_type == "surface":
        builder = DelaunaySurfaceBuilder(
            max_edge_length=config.max_edge_length,
            min_angle=config.min_angle,
            consider_3d_length=config.consider_3d_length,
            consider_3d_angle=config.consider_3d_angle,
        )
        surface = builder.build(cloud)

    return ImportResult(
        header=decoded.header,
        vlrs=decoded.vlrs,
        cloud=cloud,
        surface=surface,
        warnings=warnings,
        geographic=geographic,
        decoded_count=decoded_count,
        deduplicated_count=deduplicated_count,
    )


def export_las(
    data: Union[PointCloud, Sequence[PointRecord]],
    filepath: Union[str, Path],
    config: Optional[ExportConfig] = None,
) -> EncodeResult:
    """
    Write a cloud (or raw point records) as LAS.

    When `config.epsg_code` is set the file carries a GeoKey VLR and, with
    `config.write_prj`, a `<stem>.prj` sidecar is written next to it.

    Raises:
        FilePermissionError: If the output location is not writable
        FormatError: If a coordinate cannot be quantized
        ProjectionError: If the sidecar's EPSG code cannot be resolved
    """
    config = config or ExportConfig()
    filepath = validate_output_path(filepath, "LAS file")

    records = data.to_records() if isinstance(data, PointCloud) else list(data)

    result = write_las(
        filepath,
        records,
        version=config.version,
        point_format=config.point_format,
        force_version=config.force_version,
        epsg_code=config.epsg_code,
    )

    if config.epsg_code and config.write_prj:
        write_projection_sidecar(filepath, config.epsg_code)

    return result
