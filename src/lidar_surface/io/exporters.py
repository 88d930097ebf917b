"""
Export utilities for point clouds and triangulated surfaces.

Provides OBJ mesh, JSON summary and CSV point exports.
Uses only standard library for CSV/JSON to avoid dependencies.
"""

from __future__ import annotations

import csv
import json
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from ..core.surface import TriangulatedSurface
    from .point_cloud import PointCloud

logger = logging.getLogger(__name__)


def export_surface_obj(
    surface: 'TriangulatedSurface',
    filepath: str,
    include_colors: bool = True,
    precision: int = 4,
) -> None:
    """
    Export a triangulated surface as Wavefront OBJ.

    Vertex colours are written with the common `v x y z r g b` extension
    (channels in 0-1). Faces use 1-based vertex indices.

    Args:
        surface: TriangulatedSurface to export
        filepath: Output OBJ file path
        include_colors: Append per-vertex colours (default: True)
        precision: Decimal places for coordinates (default: 4)
    """
    filepath = Path(filepath)

    with open(filepath, 'w', encoding='utf-8') as f:
        f.write(f"# {surface.point_count} vertices, {surface.triangle_count} faces\n")

        for i, (x, y, z) in enumerate(surface.points):
            line = f"v {x:.{precision}f} {y:.{precision}f} {z:.{precision}f}"
            if include_colors:
                r, g, b = surface.colors[i]
                line += f" {r / 255:.4f} {g / 255:.4f} {b / 255:.4f}"
            f.write(line + "\n")

        for a, b, c in surface.triangles:
            f.write(f"f {a + 1} {b + 1} {c + 1}\n")

    logger.info("Wrote OBJ mesh %s", filepath)


def export_surface_json(
    surface: 'TriangulatedSurface',
    filepath: str,
    include_triangles: bool = False,
    crs: Optional[str] = None,
    indent: int = 2,
) -> None:
    """
    Export surface summary to JSON.

    Args:
        surface: TriangulatedSurface to summarise
        filepath: Output JSON file path
        include_triangles: Include vertex and face arrays (can be large)
        crs: Optional CRS string recorded alongside the summary
        indent: JSON indentation level (default: 2)
    """
    data = surface.to_dict()

    if crs:
        data['crs'] = crs

    if include_triangles:
        data['points'] = surface.points.tolist()
        data['triangles'] = surface.triangles.tolist()
        data['colors'] = surface.colors.tolist()

    with open(filepath, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=indent)


def export_points_csv(
    cloud: 'PointCloud',
    filepath: str,
    include_header: bool = True,
) -> None:
    """
    Export points to CSV.

    Columns: x, y, z, then classification, intensity, red, green, blue
    when the cloud carries them.

    Args:
        cloud: PointCloud to export
        filepath: Output CSV file path
        include_header: Whether to include column header row (default: True)
    """
    filepath = Path(filepath)

    columns = ['x', 'y', 'z']
    if cloud.classification is not None:
        columns.append('classification')
    if cloud.intensity is not None:
        columns.append('intensity')
    if cloud.rgb is not None:
        columns += ['red', 'green', 'blue']

    with open(filepath, 'w', newline='', encoding='utf-8') as f:
        writer = csv.writer(f)

        if include_header:
            writer.writerow(columns)

        for i in range(cloud.num_points):
            x, y, z = cloud.xyz[i]
            row = [f"{x:.6f}", f"{y:.6f}", f"{z:.4f}"]
            if cloud.classification is not None:
                row.append(int(cloud.classification[i]))
            if cloud.intensity is not None:
                row.append(int(cloud.intensity[i]))
            if cloud.rgb is not None:
                row += [int(c) for c in cloud.rgb[i]]
            writer.writerow(row)
