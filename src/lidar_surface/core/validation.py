"""
Errors and Input Validation

Defines the exception taxonomy for the lidar_surface package and the
argument validators shared by the processing and triangulation stages.
All validation functions provide clear, actionable error messages.
"""

from __future__ import annotations

import math
import os
import warnings
from pathlib import Path
from typing import Union


class LidarSurfaceError(Exception):
    """Base class for every error raised by lidar_surface."""
    pass


class FormatError(LidarSurfaceError, ValueError):
    """Binary data does not follow the LAS layout (signature, truncation, lengths)."""
    pass


class InsufficientDataError(LidarSurfaceError, ValueError):
    """Too few points survive processing to build a surface."""
    pass


class ProjectionError(LidarSurfaceError, ValueError):
    """A projection definition could not be resolved or applied."""
    pass


class ValidationError(LidarSurfaceError, ValueError):
    """Base exception for validation errors with user-friendly messages."""
    pass


class FilePermissionError(ValidationError):
    """Cannot write to specified path."""
    pass


def _require_number(value, context: str) -> float:
    if value is None:
        raise ValidationError(f"{context} cannot be None")

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(
            f"{context} must be a number, got {type(value).__name__}"
        )

    if not math.isfinite(value):
        raise ValidationError(f"{context} must be finite, got {value}")

    return float(value)


def validate_tolerance(tolerance: float, context: str = "xy_tolerance") -> float:
    """
    Validate a deduplication distance.

    Args:
        tolerance: Planar merge distance in coordinate units
        context: Name used in error messages

    Returns:
        The validated tolerance as a float

    Raises:
        ValidationError: If tolerance is None, not a number, or <= 0
    """
    tolerance = _require_number(tolerance, context)

    if tolerance <= 0:
        raise ValidationError(
            f"{context} must be positive, got {tolerance}. "
            "Typical values are 0.001-0.1 for survey-grade data."
        )

    if tolerance > 10.0:
        warnings.warn(
            f"{context} of {tolerance} merges points more than 10 units apart. "
            "Verify this is intentional.",
            UserWarning,
            stacklevel=2
        )

    return tolerance


def validate_max_points(max_points: int, context: str = "max_points") -> int:
    """
    Validate a point-count cap.

    Raises:
        ValidationError: If max_points is not a positive integer
    """
    if max_points is None:
        raise ValidationError(f"{context} cannot be None")

    if isinstance(max_points, bool) or not isinstance(max_points, int):
        raise ValidationError(
            f"{context} must be an integer, got {type(max_points).__name__}"
        )

    if max_points <= 0:
        raise ValidationError(f"{context} must be positive, got {max_points}")

    return max_points


def validate_edge_length(length: float, context: str = "max_edge_length") -> float:
    """
    Validate a maximum edge length. Zero disables edge culling.

    Raises:
        ValidationError: If length is None, not a number, or negative
    """
    length = _require_number(length, context)

    if length < 0:
        raise ValidationError(
            f"{context} cannot be negative, got {length}. Use 0 to disable edge culling."
        )

    return length


def validate_angle(angle: float, context: str = "min_angle") -> float:
    """
    Validate a minimum internal angle in degrees. Zero disables angle culling.

    Raises:
        ValidationError: If angle is None, not a number, negative or >= 180
    """
    angle = _require_number(angle, context)

    if angle < 0:
        raise ValidationError(
            f"{context} cannot be negative, got {angle}. Use 0 to disable angle culling."
        )

    if angle >= 180:
        raise ValidationError(f"{context} must be below 180 degrees, got {angle}")

    if angle > 60:
        warnings.warn(
            f"{context} of {angle} degrees exceeds 60; every triangle has a smaller "
            "angle, so the whole mesh will be culled.",
            UserWarning,
            stacklevel=2
        )

    return angle


def validate_output_path(filepath: Union[str, Path], context: str = "output file") -> Path:
    """
    Validate output path is writable before attempting to write.

    Args:
        filepath: The path to validate
        context: Description of what will be written (used in error messages)

    Returns:
        The validated path as a Path object

    Raises:
        FilePermissionError: If directory doesn't exist or isn't writable
    """
    path = Path(filepath)
    parent = path.parent

    # Handle empty parent (current directory)
    if str(parent) == '.':
        parent = Path.cwd()

    if not parent.exists():
        raise FilePermissionError(
            f"Cannot write {context}: directory '{parent}' does not exist. "
            "Create the directory first or specify a different path."
        )

    if not os.access(parent, os.W_OK):
        raise FilePermissionError(
            f"Cannot write {context}: no write permission for directory '{parent}'."
        )

    if path.exists() and not os.access(path, os.W_OK):
        raise FilePermissionError(
            f"Cannot overwrite {context}: file '{path}' exists but is not writable."
        )

    return path
