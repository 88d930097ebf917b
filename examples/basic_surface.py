"""
Basic Surface Example

This example demonstrates:
1. Generating a point cloud and writing it as LAS 1.4 with a CRS
2. Reading the file back and inspecting the header
3. Deduplicating, decimating and triangulating the points
4. Exporting the mesh as OBJ plus a JSON summary

Run from the project root after `pip install -e .`:
    python examples/basic_surface.py
"""

from pathlib import Path

from lidar_surface import ExportConfig, ImportConfig, export_las, import_las
from lidar_surface.core.processing import classification_statistics
from lidar_surface.io.exporters import export_surface_json, export_surface_obj
from lidar_surface.io.point_cloud import generate_sample_terrain


def main():
    output_dir = Path(__file__).parent / "output"
    output_dir.mkdir(exist_ok=True)

    print("=" * 60)
    print("LIDAR SURFACE - EXAMPLE")
    print("=" * 60)

    # =========================================================================
    # Step 1: Generate and write a point cloud
    # =========================================================================
    print("\n[1] Generating sample terrain...")

    cloud = generate_sample_terrain(
        size=(200.0, 150.0),     # 200m x 150m site
        resolution=1.0,          # 1m point spacing
        base_elevation=100.0,
        noise_scale=1.5,
        hill_height=8.0,
        with_rgb=True,
        seed=42,
    )
    print(f"   Points: {cloud.num_points:,}")

    las_path = output_dir / "site.las"
    encoded = export_las(
        cloud,
        las_path,
        ExportConfig(version="1.4", point_format=7, epsg_code=28350),
    )
    print(f"   Wrote {las_path.name}: LAS {encoded.header.version}, "
          f"format {encoded.header.point_format}, scale {encoded.header.scale[0]:g}")

    # =========================================================================
    # Step 2: Read it back and build a surface
    # =========================================================================
    print("\n[2] Importing and triangulating...")

    config = ImportConfig(
        xy_tolerance=0.01,       # merge points closer than 1cm
        decimate_to=10_000,      # keep the mesh light
        max_edge_length=5.0,     # drop long slivers at the edges
        min_angle=10.0,
    )
    result = import_las(las_path, config)
    print(result.summary())

    for code, (name, count) in classification_statistics(result.cloud).items():
        print(f"   Class {code} ({name}): {count:,}")

    # =========================================================================
    # Step 3: Export the mesh
    # =========================================================================
    print("\n[3] Exporting...")

    surface = result.surface
    print(surface.summary())

    export_surface_obj(surface, output_dir / "site.obj")
    export_surface_json(surface, output_dir / "site.json", crs=result.cloud.crs)
    print(f"   Results written to {output_dir}")


if __name__ == "__main__":
    main()
