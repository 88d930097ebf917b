"""
Configuration module for lidar_surface.

Holds the import (decode, processing, triangulation, projection) and
export (LAS version, point format, georeferencing) options, and reads
and writes them as nested YAML.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ..io.las_format import SUPPORTED_VERSIONS
from .validation import (
    ValidationError,
    validate_angle,
    validate_edge_length,
    validate_max_points,
    validate_tolerance,
)

IMPORT_TYPES = ("surface", "points")


@dataclass
class ImportConfig:
    """Options for turning a LAS file into a point cloud or surface.

    Parameters
    ----------
    import_type : str
        "surface" to triangulate after processing, "points" to stop at the cloud.
    max_points : int, optional
        Decode only the first N records (hard truncation).
    deduplicate : bool
        Collapse points closer than `xy_tolerance` in plan.
    xy_tolerance : float
        Planar merge distance for deduplication.
    decimate_to : int, optional
        Thin the processed cloud to at most this many points.
    max_edge_length : float
        Remove triangles with a longer edge; 0 disables.
    min_angle : float
        Remove triangles with a smaller internal angle (degrees); 0 disables.
    consider_3d_length, consider_3d_angle : bool
        Measure edges/angles in 3D instead of plan.
    transform : bool
        Reproject X/Y from `source_crs` to `target_crs`.
    source_crs, target_crs : str, optional
        Any definition pyproj accepts (WKT, PROJ string, "EPSG:<code>").
        `source_crs` falls back to the file's CRS, then to EPSG:4326 for
        geographic bounds.
    """

    import_type: str = "surface"

    # Decode
    max_points: Optional[int] = None

    # Processing
    deduplicate: bool = True
    xy_tolerance: float = 0.001
    decimate_to: Optional[int] = None

    # Triangulation
    max_edge_length: float = 0.0
    min_angle: float = 0.0
    consider_3d_length: bool = False
    consider_3d_angle: bool = False

    # Projection
    transform: bool = False
    source_crs: Optional[str] = None
    target_crs: Optional[str] = None

    def __post_init__(self):
        if self.import_type not in IMPORT_TYPES:
            raise ValidationError(
                f"import_type must be one of {', '.join(IMPORT_TYPES)}, got '{self.import_type}'"
            )
        if self.max_points is not None:
            validate_max_points(self.max_points)
        if self.decimate_to is not None:
            validate_max_points(self.decimate_to, "decimate_to")
        self.xy_tolerance = validate_tolerance(self.xy_tolerance)
        self.max_edge_length = validate_edge_length(self.max_edge_length)
        self.min_angle = validate_angle(self.min_angle)
        if self.transform and not self.target_crs:
            raise ValidationError("transform requires target_crs")


@dataclass
class ExportConfig:
    """Options for writing a LAS file.

    Parameters
    ----------
    version : str
        Requested LAS version ("1.2", "1.3" or "1.4").
    point_format : int
        Requested point data record format.
    force_version : bool
        Keep `version` even when the format needs 1.4 (format drops to 0).
    epsg_code : int, optional
        Write a GeoKey VLR for this code.
    write_prj : bool
        Also write a `.prj` sidecar when `epsg_code` is set.
    """

    version: str = "1.2"
    point_format: int = 0
    force_version: bool = False
    epsg_code: Optional[int] = None
    write_prj: bool = True

    def __post_init__(self):
        self.version = str(self.version)
        if self.version not in SUPPORTED_VERSIONS:
            raise ValidationError(
                f"version must be one of {', '.join(SUPPORTED_VERSIONS)}, got '{self.version}'"
            )
        if isinstance(self.point_format, bool) or not isinstance(self.point_format, int):
            raise ValidationError(
                f"point_format must be an integer, got {type(self.point_format).__name__}"
            )
        if self.epsg_code is not None and (
            isinstance(self.epsg_code, bool) or not isinstance(self.epsg_code, int)
            or not 0 < self.epsg_code <= 0xFFFF
        ):
            raise ValidationError(
                f"epsg_code must be an integer between 1 and 65535, got {self.epsg_code!r}"
            )


@dataclass
class PipelineConfig:
    """Import and export options loaded together from one YAML file."""

    import_options: ImportConfig = field(default_factory=ImportConfig)
    export_options: ExportConfig = field(default_factory=ExportConfig)


# YAML section -> ImportConfig fields it holds
_IMPORT_SECTIONS = {
    "decode": ["max_points"],
    "processing": ["deduplicate", "xy_tolerance", "decimate_to"],
    "triangulation": [
        "import_type",
        "max_edge_length",
        "min_angle",
        "consider_3d_length",
        "consider_3d_angle",
    ],
    "projection": ["transform", "source_crs", "target_crs"],
}

_EXPORT_SECTION = "export"


def load_config(yaml_path: Path) -> PipelineConfig:
    """
    Load configuration from YAML file.

    Parameters
    ----------
    yaml_path : Path
        Path to YAML configuration file.

    Returns
    -------
    PipelineConfig
        Configuration with values from file; missing keys keep defaults.

    Raises
    ------
    FileNotFoundError
        If the YAML file does not exist.
    ValidationError
        If the YAML file contains unknown keys or invalid values.
    """
    yaml_path = Path(yaml_path)
    if not yaml_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {yaml_path}")

    with open(yaml_path) as f:
        data = yaml.safe_load(f)

    if data is None:
        return PipelineConfig()
    if not isinstance(data, dict):
        raise ValidationError(f"{yaml_path}: expected a mapping at the top level")

    import_values = _flatten_sections(data)
    export_values = data.get(_EXPORT_SECTION) or {}

    try:
        return PipelineConfig(
            import_options=ImportConfig(**import_values),
            export_options=ExportConfig(**export_values),
        )
    except TypeError as e:
        raise ValidationError(f"{yaml_path}: {e}") from e


def save_config(config: PipelineConfig, yaml_path: Path) -> None:
    """
    Save configuration to YAML file.

    Parameters
    ----------
    config : PipelineConfig
        Configuration object to save.
    yaml_path : Path
        Path to output YAML file.
    """
    data = _unflatten_config(config)

    yaml_path = Path(yaml_path)
    yaml_path.parent.mkdir(parents=True, exist_ok=True)
    with open(yaml_path, "w") as f:
        yaml.dump(data, f, default_flow_style=False, sort_keys=False)


def _flatten_sections(data: Dict[str, Any]) -> Dict[str, Any]:
    """Collect ImportConfig fields from their YAML sections."""
    result = {}
    known = set(_IMPORT_SECTIONS) | {_EXPORT_SECTION}

    for key in data:
        if key not in known:
            raise ValidationError(
                f"Unknown configuration section '{key}'. "
                f"Expected one of: {', '.join(sorted(known))}"
            )

    for section, keys in _IMPORT_SECTIONS.items():
        values = data.get(section) or {}
        for key, value in values.items():
            if key not in keys:
                raise ValidationError(
                    f"Unknown key '{key}' in section '{section}'. "
                    f"Expected one of: {', '.join(keys)}"
                )
            result[key] = value

    return result


def _unflatten_config(config: PipelineConfig) -> Dict[str, Any]:
    """Convert config objects to nested structure for YAML output."""
    options = config.import_options
    data: Dict[str, Any] = {
        section: {key: getattr(options, key) for key in keys}
        for section, keys in _IMPORT_SECTIONS.items()
    }
    export = config.export_options
    data[_EXPORT_SECTION] = {
        "version": export.version,
        "point_format": export.point_format,
        "force_version": export.force_version,
        "epsg_code": export.epsg_code,
        "write_prj": export.write_prj,
    }
    return data
