"""Core data structures and algorithms."""

from .validation import (
    FormatError,
    InsufficientDataError,
    LidarSurfaceError,
    ProjectionError,
    ValidationError,
)
from .quantization import ScaleOffset, compute_scale_offset

__all__ = [
    "LidarSurfaceError",
    "FormatError",
    "InsufficientDataError",
    "ProjectionError",
    "ValidationError",
    "ScaleOffset",
    "compute_scale_offset",
]
