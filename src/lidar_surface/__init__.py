"""
lidar-surface

A Python library for reading and writing ASPRS LAS point clouds and
turning them into triangulated surfaces.
"""

__version__ = "0.1.0"

from .core.validation import (
    FormatError,
    InsufficientDataError,
    LidarSurfaceError,
    ProjectionError,
    ValidationError,
)
from .io.las import LASReader, LASWriter, read_las, write_las
from .io.point_cloud import PointCloud, PointCloudLoader
from .core.config import ExportConfig, ImportConfig, PipelineConfig, load_config
from .core.surface import DelaunaySurfaceBuilder, TriangulatedSurface
from .core.transform import CoordinateTransformer
from .pipeline import ImportResult, export_las, import_las

__all__ = [
    "LidarSurfaceError",
    "FormatError",
    "InsufficientDataError",
    "ProjectionError",
    "ValidationError",
    "LASReader",
    "LASWriter",
    "read_las",
    "write_las",
    "PointCloud",
    "PointCloudLoader",
    "ImportConfig",
    "ExportConfig",
    "PipelineConfig",
    "load_config",
    "DelaunaySurfaceBuilder",
    "TriangulatedSurface",
    "CoordinateTransformer",
    "ImportResult",
    "import_las",
    "export_las",
]
