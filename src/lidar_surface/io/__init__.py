"""I/O modules for LAS files, point clouds and mesh exports."""

from .las import DecodeResult, EncodeResult, LASReader, LASWriter, read_las, write_las
from .las_header import LASHeader
from .las_points import PointRecord
from .las_vlr import VariableLengthRecord
from .point_cloud import PointCloudLoader, PointCloud
from .georef import PROJECTION_CATALOG, inject_geokeys, write_projection_sidecar
from .exporters import (
    export_points_csv,
    export_surface_json,
    export_surface_obj,
)

__all__ = [
    "DecodeResult",
    "EncodeResult",
    "LASReader",
    "LASWriter",
    "read_las",
    "write_las",
    "LASHeader",
    "PointRecord",
    "VariableLengthRecord",
    "PointCloudLoader",
    "PointCloud",
    "PROJECTION_CATALOG",
    "inject_geokeys",
    "write_projection_sidecar",
    "export_points_csv",
    "export_surface_json",
    "export_surface_obj",
]
