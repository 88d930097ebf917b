"""
LAS Reader and Writer

Ties the header, VLR and point codecs together into whole-file decode and
encode passes. Both directions are pure functions of their inputs: the
reader never mutates the buffer it is given and the writer builds a fresh
bytearray.
"""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

import numpy as np

from ..core.quantization import ScaleOffset, compute_scale_offset
from ..core.validation import FormatError, validate_max_points
from .las_format import HEADER_SIZES, parse_version
from .las_header import (
    CoercionResult,
    LASHeader,
    coerce_version_format,
    decode_header,
    encode_header,
)
from .las_points import PointRecord, decode_point, encode_point, get_layout
from .las_vlr import VariableLengthRecord, build_geokey_vlr, crs_from_vlrs, decode_vlrs, encode_vlr

logger = logging.getLogger(__name__)

DEFAULT_SYSTEM_IDENTIFIER = "lidar-surface"
DEFAULT_GENERATING_SOFTWARE = "lidar-surface LASWriter"


@dataclass
class DecodeResult:
    """Everything decoded from one LAS buffer."""
    header: LASHeader
    vlrs: List[VariableLengthRecord]
    points: List[PointRecord]
    warnings: List[str] = field(default_factory=list)

    @property
    def crs(self) -> Optional[str]:
        return crs_from_vlrs(self.vlrs)

    def summary(self) -> str:
        h = self.header
        lines = [
            f"LAS {h.version}, point format {h.point_format} "
            f"({h.point_record_length} bytes/record)",
            f"Points: {len(self.points):,} decoded of {h.point_count:,} declared",
            f"Scale: {h.scale}",
            f"Offset: {h.offset}",
            f"X: {h.min_x:.3f} to {h.max_x:.3f}",
            f"Y: {h.min_y:.3f} to {h.max_y:.3f}",
            f"Z: {h.min_z:.3f} to {h.max_z:.3f}",
            f"VLRs: {len(self.vlrs)}",
        ]
        if self.crs:
            lines.append(f"CRS: {self.crs if len(self.crs) < 60 else self.crs[:57] + '...'}")
        if self.warnings:
            lines.append(f"Warnings: {len(self.warnings)}")
        return "\n".join(lines)


@dataclass
class EncodeResult:
    """Encoded file bytes plus the header written and any recoveries made."""
    data: bytes
    header: LASHeader
    coercion: CoercionResult
    warnings: List[str] = field(default_factory=list)


class LASReader:
    """
    Decode LAS 1.2-1.4 buffers, point formats 0-10.

    Example:
        >>> result = LASReader(max_points=100_000).read(Path("site.las").read_bytes())
        >>> print(result.summary())
    """

    def __init__(self, max_points: Optional[int] = None):
        if max_points is not None:
            validate_max_points(max_points)
        self.max_points = max_points

    def read(self, buffer) -> DecodeResult:
        """
        Decode a complete LAS file held in memory.

        Records that fail to decode are skipped and reported in
        `DecodeResult.warnings` as "point <index>: <message>".

        Raises:
            FormatError: Bad signature, truncated header or VLR block,
                inconsistent point data offset, or a record length smaller
                than the point format requires
        """
        view = memoryview(buffer)
        warnings: List[str] = []

        header = decode_header(view)
        vlrs = decode_vlrs(view, header)

        vlr_end = header.header_size + sum(vlr.size for vlr in vlrs)
        if header.offset_to_point_data < vlr_end:
            raise FormatError(
                f"Offset to point data ({header.offset_to_point_data}) is inside "
                f"the header/VLR block ending at byte {vlr_end}"
            )

        layout = get_layout(header.point_format)
        record_length = header.point_record_length
        if record_length < layout.size:
            raise FormatError(
                f"Point record length {record_length} is smaller than the "
                f"{layout.size} bytes format {header.point_format} requires"
            )
        if record_length > layout.size:
            self._warn(
                warnings,
                f"Point record length {record_length} exceeds format "
                f"{header.point_format} size {layout.size}; "
                f"skipping {record_length - layout.size} extra bytes per record",
            )

        count = header.point_count
        if self.max_points is not None and count > self.max_points:
            logger.info("Reading first %d of %d points", self.max_points, count)
            count = self.max_points

        available = max(len(view) - header.offset_to_point_data, 0) // record_length
        if available < count:
            self._warn(
                warnings,
                f"Point data truncated: header declares {header.point_count} points, "
                f"buffer holds {available}",
            )
            count = available

        points = []
        scale, origin = header.scale, header.offset
        offset = header.offset_to_point_data
        for index in range(count):
            try:
                points.append(decode_point(view, offset, layout, scale, origin))
            except FormatError as e:
                self._warn(warnings, f"point {index}: {e}")
            offset += record_length

        logger.info(
            "Decoded %d points (LAS %s, format %d, %d VLRs)",
            len(points), header.version, header.point_format, len(vlrs),
        )
        return DecodeResult(header=header, vlrs=vlrs, points=points, warnings=warnings)

    @staticmethod
    def _warn(warnings: List[str], message: str) -> None:
        logger.warning(message)
        warnings.append(message)


class LASWriter:
    """
    Encode point records into a LAS 1.2-1.4 file, point formats 0/1/2/3/6/7/8.

    Mismatched version/format requests are coerced rather than rejected
    (see `coerce_version_format`); each decision is logged and returned in
    `EncodeResult.warnings`. No VLRs are written unless `epsg_code` is set,
    in which case a single GeoKey directory VLR carries the CRS.

    Example:
        >>> writer = LASWriter(version="1.4", point_format=7, epsg_code=28350)
        >>> Path("out.las").write_bytes(writer.write(records).data)
    """

    def __init__(
        self,
        version: str = "1.2",
        point_format: int = 0,
        force_version: bool = False,
        epsg_code: Optional[int] = None,
        system_identifier: str = DEFAULT_SYSTEM_IDENTIFIER,
        generating_software: str = DEFAULT_GENERATING_SOFTWARE,
        creation_date: Optional[datetime.date] = None,
    ):
        self.version = version
        self.point_format = point_format
        self.force_version = force_version
        self.epsg_code = epsg_code
        self.system_identifier = system_identifier
        self.generating_software = generating_software
        self.creation_date = creation_date

    def write(self, points: Sequence[PointRecord]) -> EncodeResult:
        """
        Encode `points` into a complete LAS buffer.

        Raises:
            FormatError: If a coordinate cannot be quantized into int32
        """
        warnings: List[str] = []

        coercion = coerce_version_format(self.version, self.point_format, self.force_version)
        for message in coercion.messages:
            logger.warning(message)
            warnings.append(message)

        layout = get_layout(coercion.point_format)
        _, minor = parse_version(coercion.version)

        if not layout.extended and any(p.classification > 31 for p in points):
            message = (
                f"Classification codes above 31 do not fit point format "
                f"{layout.format_id}; masking to 5 bits"
            )
            logger.warning(message)
            warnings.append(message)

        bounds = _bounds_of(points)
        if not (np.all(np.isfinite(bounds[0])) and np.all(np.isfinite(bounds[1]))):
            raise FormatError("Cannot quantize points with non-finite coordinates")
        scale_offset = compute_scale_offset(bounds)
        vlrs = [build_geokey_vlr(self.epsg_code)] if self.epsg_code else []
        header_size = HEADER_SIZES[minor]
        offset_to_point_data = header_size + sum(vlr.size for vlr in vlrs)

        header = self._build_header(
            points, bounds, coercion, layout.size, header_size, offset_to_point_data,
            len(vlrs), scale_offset,
        )

        out = bytearray(encode_header(header))
        for vlr in vlrs:
            out += encode_vlr(vlr)
        for point in points:
            out += encode_point(point, layout, scale_offset.scale, scale_offset.offset)

        logger.info(
            "Encoded %d points (LAS %s, format %d, %d bytes)",
            len(points), coercion.version, coercion.point_format, len(out),
        )
        return EncodeResult(data=bytes(out), header=header, coercion=coercion, warnings=warnings)

    def _build_header(
        self,
        points: Sequence[PointRecord],
        bounds,
        coercion: CoercionResult,
        record_length: int,
        header_size: int,
        offset_to_point_data: int,
        number_of_vlrs: int,
        scale_offset: ScaleOffset,
    ) -> LASHeader:
        major, minor = parse_version(coercion.version)
        point_format = coercion.point_format
        today = self.creation_date or datetime.date.today()

        legacy_by_return = [0] * 5
        by_return = [0] * 15
        for point in points:
            legacy_by_return[min(max(point.return_number, 1), 5) - 1] += 1
            by_return[min(max(point.return_number, 1), 15) - 1] += 1

        n = len(points)
        mins, maxs = bounds

        # Bit 0: GPS time is standard GPS time rather than GPS week time
        global_encoding = 0x01 if point_format == 1 or point_format >= 3 else 0

        return LASHeader(
            version_major=major,
            version_minor=minor,
            point_format=point_format,
            point_record_length=record_length,
            point_count=n,
            scale=scale_offset.scale,
            offset=scale_offset.offset,
            min_x=float(mins[0]), max_x=float(maxs[0]),
            min_y=float(mins[1]), max_y=float(maxs[1]),
            min_z=float(mins[2]), max_z=float(maxs[2]),
            header_size=header_size,
            offset_to_point_data=offset_to_point_data,
            number_of_vlrs=number_of_vlrs,
            legacy_point_count=n if n <= 0xFFFFFFFF else 0,
            legacy_points_by_return=tuple(legacy_by_return),
            points_by_return=tuple(by_return) if minor >= 4 else tuple(legacy_by_return) + (0,) * 10,
            global_encoding=global_encoding,
            system_identifier=self.system_identifier,
            generating_software=self.generating_software,
            creation_day=today.timetuple().tm_yday,
            creation_year=today.year,
        )


def _bounds_of(points: Sequence[PointRecord]):
    if not points:
        return np.zeros(3), np.zeros(3)
    xyz = np.array([(p.x, p.y, p.z) for p in points], dtype=np.float64)
    return xyz.min(axis=0), xyz.max(axis=0)


def read_las(filepath: str | Path, max_points: Optional[int] = None) -> DecodeResult:
    """Read and decode a LAS file from disk."""
    filepath = Path(filepath)
    logger.debug("Reading %s", filepath)
    return LASReader(max_points=max_points).read(filepath.read_bytes())


def write_las(filepath: str | Path, points: Iterable[PointRecord], **kwargs) -> EncodeResult:
    """
    Encode `points` and write them to `filepath`.

    Args:
        filepath: Output path
        points: Point records to write
        **kwargs: Forwarded to LASWriter (version, point_format, epsg_code, ...)
    """
    filepath = Path(filepath)
    result = LASWriter(**kwargs).write(list(points))
    filepath.write_bytes(result.data)
    logger.info("Wrote %s", filepath)
    return result
