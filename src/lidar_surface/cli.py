"""
Command Line Interface for lidar-surface

Usage:
    lidar-surface info <input>
    lidar-surface convert <input> <output> --version 1.4 --point-format 7
    lidar-surface mesh <input> --output <file.obj> --max-edge-length 5
    lidar-surface generate-sample --output <file>
"""

import dataclasses
import logging
import sys
from pathlib import Path
from typing import Optional

import click

from . import __version__
from .core.config import ExportConfig, PipelineConfig, load_config
from .core.processing import classification_statistics
from .core.validation import LidarSurfaceError, validate_output_path
from .io.las import LASReader
from .io.point_cloud import PointCloud, PointCloudLoader, generate_sample_terrain


def _fail(message: str) -> None:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option('--verbose', '-v', is_flag=True, help='Show debug logging')
def main(verbose: bool):
    """lidar-surface: LAS point cloud codec and surface builder

    Read, convert and write ASPRS LAS 1.2-1.4 files and turn point
    clouds into triangulated surfaces.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.argument('input_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--max-points', type=int, default=None, help='Decode only the first N points')
def info(input_file: str, max_points: Optional[int]):
    """Display header, VLR and classification information for a LAS file."""
    click.echo(f"Loading: {input_file}")

    try:
        result = LASReader(max_points=max_points).read(Path(input_file).read_bytes())
    except (LidarSurfaceError, OSError) as e:
        _fail(f"loading file: {e}")

    header = result.header

    click.echo("\n" + "=" * 50)
    click.echo("LAS FILE INFO")
    click.echo("=" * 50)
    click.echo(f"File:           {input_file}")
    click.echo(f"Version:        {header.version}")
    click.echo(f"Point format:   {header.point_format} ({header.point_record_length} bytes)")
    click.echo(f"Points:         {header.point_count:,} declared, {len(result.points):,} decoded")
    click.echo(f"Software:       {header.generating_software or '-'}")
    click.echo(f"")
    click.echo(f"Bounds:")
    click.echo(f"  X:            {header.min_x:.3f} to {header.max_x:.3f}")
    click.echo(f"  Y:            {header.min_y:.3f} to {header.max_y:.3f}")
    click.echo(f"  Z:            {header.min_z:.3f} to {header.max_z:.3f}")
    click.echo(f"Scale:          {header.scale[0]:g} {header.scale[1]:g} {header.scale[2]:g}")

    if result.vlrs:
        click.echo(f"\nVLRs:")
        for vlr in result.vlrs:
            click.echo(f"  {vlr.user_id}/{vlr.record_id}: {vlr.record_length} bytes")
    if result.crs:
        crs = result.crs if len(result.crs) < 60 else result.crs[:57] + "..."
        click.echo(f"CRS:            {crs}")

    cloud = PointCloud.from_records(result.points)
    stats = classification_statistics(cloud)
    if stats:
        click.echo(f"\nClassifications:")
        for code, (name, count) in stats.items():
            pct = count / cloud.num_points * 100
            click.echo(f"  {code:3d} {name}: {count:,} ({pct:.1f}%)")

    if result.warnings:
        click.echo(f"\nWarnings ({len(result.warnings)}):")
        for message in result.warnings[:10]:
            click.echo(f"  {message}")
        if len(result.warnings) > 10:
            click.echo(f"  ... {len(result.warnings) - 10} more")

    click.echo("=" * 50)


@main.command()
@click.argument('input_file', type=click.Path(exists=True, dir_okay=False))
@click.argument('output_file', type=click.Path(dir_okay=False))
@click.option('--version', 'las_version', default='1.2', type=click.Choice(['1.2', '1.3', '1.4']),
              help='Output LAS version (default: 1.2)')
@click.option('--point-format', '-f', default=0, type=int, help='Output point format (default: 0)')
@click.option('--force-version', is_flag=True,
              help='Keep the requested version even if the point format needs 1.4')
@click.option('--epsg', type=int, default=None, help='Embed this EPSG code and write a .prj')
def convert(
    input_file: str,
    output_file: str,
    las_version: str,
    point_format: int,
    force_version: bool,
    epsg: Optional[int],
):
    """Rewrite a LAS or XYZ file as LAS with another version or point format.

    Example:
        lidar-surface convert site.las site14.las --version 1.4 -f 7 --epsg 28350
    """
    from .pipeline import export_las

    try:
        config = ExportConfig(
            version=las_version,
            point_format=point_format,
            force_version=force_version,
            epsg_code=epsg,
        )
        if Path(input_file).suffix.lower() == '.las':
            source = LASReader().read(Path(input_file).read_bytes())
            for message in source.warnings:
                click.echo(f"Warning: {message}", err=True)
            data = source.points
        else:
            data = PointCloudLoader.load(input_file)

        result = export_las(data, output_file, config)
    except (LidarSurfaceError, OSError, ValueError) as e:
        _fail(str(e))

    for message in result.warnings:
        click.echo(f"Warning: {message}", err=True)

    click.echo(
        f"Wrote {result.header.point_count:,} points to {output_file} "
        f"(LAS {result.header.version}, format {result.header.point_format})"
    )


@main.command()
@click.argument('input_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--output', '-o', required=True, type=click.Path(dir_okay=False),
              help='Output OBJ mesh file')
@click.option('--config', 'config_file', type=click.Path(exists=True, dir_okay=False),
              help='YAML configuration file')
@click.option('--max-edge-length', type=float, default=None,
              help='Remove triangles with a longer edge (0 disables)')
@click.option('--min-angle', type=float, default=None,
              help='Remove triangles with a smaller angle in degrees (0 disables)')
@click.option('--3d-length', 'consider_3d_length', is_flag=True,
              help='Measure edge length in 3D')
@click.option('--3d-angle', 'consider_3d_angle', is_flag=True,
              help='Measure angles in 3D')
@click.option('--tolerance', 'xy_tolerance', type=float, default=None,
              help='Deduplication distance in plan')
@click.option('--max-points', type=int, default=None, help='Decode only the first N points')
@click.option('--decimate-to', type=int, default=None, help='Thin to at most N points')
@click.option('--target-crs', type=str, default=None, help='Reproject to this CRS first')
@click.option('--summary', 'summary_file', type=click.Path(dir_okay=False),
              help='Write a JSON summary of the surface')
def mesh(
    input_file: str,
    output: str,
    config_file: Optional[str],
    max_edge_length: Optional[float],
    min_angle: Optional[float],
    consider_3d_length: Optional[bool],
    consider_3d_angle: Optional[bool],
    xy_tolerance: Optional[float],
    max_points: Optional[int],
    decimate_to: Optional[int],
    target_crs: Optional[str],
    summary_file: Optional[str],
):
    """Triangulate a LAS file into an OBJ surface mesh.

    Options given on the command line override values from --config.

    Example:
        lidar-surface mesh site.las -o site.obj --max-edge-length 5 --min-angle 10
    """
    from .io.exporters import export_surface_json, export_surface_obj
    from .pipeline import import_las

    overrides = {
        key: value for key, value in dict(
            max_edge_length=max_edge_length,
            min_angle=min_angle,
            consider_3d_length=consider_3d_length or None,
            consider_3d_angle=consider_3d_angle or None,
            xy_tolerance=xy_tolerance,
            max_points=max_points,
            decimate_to=decimate_to,
            target_crs=target_crs,
        ).items()
        if value is not None
    }
    if target_crs:
        overrides["transform"] = True

    try:
        pipeline_config = load_config(Path(config_file)) if config_file else PipelineConfig()
        config = dataclasses.replace(pipeline_config.import_options, import_type="surface", **overrides)

        output_path = validate_output_path(output, "OBJ mesh")
        summary_path = validate_output_path(summary_file, "JSON summary") if summary_file else None

        click.echo(f"Loading: {input_file}")
        result = import_las(input_file, config)
    except (LidarSurfaceError, OSError) as e:
        _fail(str(e))

    for message in result.warnings[:10]:
        click.echo(f"Warning: {message}", err=True)

    surface = result.surface
    click.echo("\n" + surface.summary())

    export_surface_obj(surface, output_path)
    click.echo(f"\nMesh saved to: {output}")

    if summary_path:
        export_surface_json(surface, summary_path, crs=result.cloud.crs)
        click.echo(f"Summary saved to: {summary_file}")


@main.command()
@click.option('--output', '-o', required=True, type=click.Path(dir_okay=False),
              help='Output file path (.las or .xyz)')
@click.option('--size', default="100,100", help='Terrain size as "width,height" (default: 100,100)')
@click.option('--resolution', '-r', default=1.0, help='Point spacing (default: 1.0)')
@click.option('--base-elevation', default=100.0, help='Base elevation (default: 100)')
@click.option('--hill-height', default=10.0, help='Maximum hill height (default: 10)')
@click.option('--rgb', is_flag=True, help='Attach elevation-tinted colours')
@click.option('--point-format', '-f', default=None, type=int,
              help='LAS point format (default: 3 with --rgb, otherwise 1)')
@click.option('--seed', default=42, help='Random seed (default: 42)')
def generate_sample(
    output: str,
    size: str,
    resolution: float,
    base_elevation: float,
    hill_height: float,
    rgb: bool,
    point_format: Optional[int],
    seed: int,
):
    """Generate a sample terrain point cloud for testing.

    Creates synthetic terrain with gentle hills and random variation.

    Example:
        lidar-surface generate-sample -o sample.las --size 200,200 --rgb
    """
    from .pipeline import export_las

    try:
        width, height = [float(x) for x in size.split(',')]
    except ValueError:
        _fail("Size must be 'width,height'")

    if resolution <= 0:
        _fail(f"Resolution must be positive (got {resolution})")

    click.echo(f"Generating sample terrain...")
    click.echo(f"  Size: {width} x {height}")
    click.echo(f"  Resolution: {resolution}")
    click.echo(f"  Base elevation: {base_elevation}")

    pc = generate_sample_terrain(
        size=(width, height),
        resolution=resolution,
        base_elevation=base_elevation,
        hill_height=hill_height,
        with_rgb=rgb,
        seed=seed,
    )

    click.echo(f"  Generated {pc.num_points:,} points")

    output_path = Path(output)

    if output_path.suffix.lower() == '.las':
        if point_format is None:
            point_format = 3 if rgb else 1
        try:
            result = export_las(pc, output_path, ExportConfig(point_format=point_format))
        except LidarSurfaceError as e:
            _fail(str(e))
        for message in result.warnings:
            click.echo(f"Warning: {message}", err=True)
    else:
        with open(output_path, 'w') as f:
            for i in range(pc.num_points):
                f.write(f"{pc.x[i]:.3f} {pc.y[i]:.3f} {pc.z[i]:.3f}")
                if pc.classification is not None:
                    f.write(f" {pc.classification[i]}")
                f.write("\n")

    click.echo(f"Saved to: {output}")


if __name__ == '__main__':
    main()
