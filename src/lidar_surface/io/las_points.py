"""
LAS Point Data Records

One immutable layout per point data record format (0-10). A layout fixes
the base bit layout (legacy 0-5 or extended 6-10) and which optional
groups follow it, always in the order GPS time, RGB, NIR, waveform packet.
Presence of a group depends only on the format id, never on the payload.
"""

from __future__ import annotations

import math
import struct
from dataclasses import dataclass
from types import MappingProxyType
from typing import Optional, Tuple

from ..core.validation import FormatError
from .las_format import INT32_MAX, INT32_MIN, SCAN_ANGLE_LIMIT, SCAN_ANGLE_UNIT

_LEGACY_CORE = "lllHBBbBH"
_EXTENDED_CORE = "lllHBBBBhH"
_GPS = "d"
_RGB = "HHH"
_NIR = "H"
_WAVEFORM = "BQLffff"


@dataclass(frozen=True)
class WaveformPacket:
    descriptor_index: int
    byte_offset: int
    packet_size: int
    return_point_location: float
    xt: float
    yt: float
    zt: float


@dataclass(frozen=True)
class PointLayout:
    """Byte layout of one point data record format."""
    format_id: int
    extended: bool
    has_gps_time: bool = False
    has_rgb: bool = False
    has_nir: bool = False
    has_waveform: bool = False

    @property
    def record_struct(self) -> struct.Struct:
        return _STRUCTS[self.format_id]

    @property
    def size(self) -> int:
        return self.record_struct.size

    def format_string(self) -> str:
        fmt = "<" + (_EXTENDED_CORE if self.extended else _LEGACY_CORE)
        if self.has_gps_time:
            fmt += _GPS
        if self.has_rgb:
            fmt += _RGB
        if self.has_nir:
            fmt += _NIR
        if self.has_waveform:
            fmt += _WAVEFORM
        return fmt


POINT_LAYOUTS = MappingProxyType({
    0: PointLayout(0, extended=False),
    1: PointLayout(1, extended=False, has_gps_time=True),
    2: PointLayout(2, extended=False, has_rgb=True),
    3: PointLayout(3, extended=False, has_gps_time=True, has_rgb=True),
    4: PointLayout(4, extended=False, has_gps_time=True, has_waveform=True),
    5: PointLayout(5, extended=False, has_gps_time=True, has_rgb=True, has_waveform=True),
    6: PointLayout(6, extended=True, has_gps_time=True),
    7: PointLayout(7, extended=True, has_gps_time=True, has_rgb=True),
    8: PointLayout(8, extended=True, has_gps_time=True, has_rgb=True, has_nir=True),
    9: PointLayout(9, extended=True, has_gps_time=True, has_waveform=True),
    10: PointLayout(10, extended=True, has_gps_time=True, has_rgb=True, has_nir=True,
                    has_waveform=True),
})

_STRUCTS = MappingProxyType({
    format_id: struct.Struct(layout.format_string())
    for format_id, layout in POINT_LAYOUTS.items()
})

# Record sizes by format id, as fixed by ASPRS LAS 1.4 R15
POINT_RECORD_SIZES = MappingProxyType({
    format_id: layout.size for format_id, layout in POINT_LAYOUTS.items()
})


def get_layout(format_id: int) -> PointLayout:
    try:
        return POINT_LAYOUTS[format_id]
    except KeyError:
        raise FormatError(f"Unknown point data record format {format_id}") from None


@dataclass(frozen=True)
class PointRecord:
    """
    One LiDAR sample.

    Real-world coordinates are `raw * scale + offset`. Optional groups are
    None when the record's format does not carry them. `scan_angle` is in
    degrees for every format (an integer rank for formats 0-5).
    """
    x: float
    y: float
    z: float
    intensity: int = 0
    return_number: int = 1
    number_of_returns: int = 1
    scan_direction_flag: int = 0
    edge_of_flight_line: int = 0
    classification: int = 1
    synthetic: bool = False
    key_point: bool = False
    withheld: bool = False
    overlap: bool = False
    scanner_channel: int = 0
    scan_angle: float = 0.0
    user_data: int = 0
    point_source_id: int = 0
    gps_time: Optional[float] = None
    red: Optional[int] = None
    green: Optional[int] = None
    blue: Optional[int] = None
    nir: Optional[int] = None
    waveform: Optional[WaveformPacket] = None
    raw_x: int = 0
    raw_y: int = 0
    raw_z: int = 0

    @property
    def rgb(self) -> Optional[Tuple[int, int, int]]:
        if self.red is None:
            return None
        return (self.red, self.green, self.blue)


def decode_point(buffer, offset: int, layout: PointLayout, scale, origin) -> PointRecord:
    """
    Decode the record starting at `offset`.

    Args:
        buffer: Bytes-like object holding the whole file
        offset: Byte offset of the record
        layout: Layout of the file's point format
        scale: (x, y, z) scale factors from the header
        origin: (x, y, z) offsets from the header

    Raises:
        FormatError: If the record extends past the end of the buffer, or
            holds an extended scan angle beyond +/-30000 or a non-finite
            GPS time
    """
    if offset + layout.size > len(buffer):
        raise FormatError(
            f"record at byte {offset} needs {layout.size} bytes, "
            f"only {max(len(buffer) - offset, 0)} available"
        )

    values = layout.record_struct.unpack_from(buffer, offset)
    raw_x, raw_y, raw_z, intensity = values[:4]

    fields = dict(
        raw_x=raw_x,
        raw_y=raw_y,
        raw_z=raw_z,
        x=raw_x * scale[0] + origin[0],
        y=raw_y * scale[1] + origin[1],
        z=raw_z * scale[2] + origin[2],
        intensity=intensity,
    )

    if layout.extended:
        returns, flags, classification, user_data, angle, source_id = values[4:10]
        if abs(angle) > SCAN_ANGLE_LIMIT:
            raise FormatError(f"scan angle {angle} is outside +/-{SCAN_ANGLE_LIMIT}")
        fields.update(
            return_number=returns & 0x0F,
            number_of_returns=(returns >> 4) & 0x0F,
            synthetic=bool(flags & 0x01),
            key_point=bool(flags & 0x02),
            withheld=bool(flags & 0x04),
            overlap=bool(flags & 0x08),
            scanner_channel=(flags >> 4) & 0x03,
            scan_direction_flag=(flags >> 6) & 0x01,
            edge_of_flight_line=(flags >> 7) & 0x01,
            classification=classification,
            user_data=user_data,
            scan_angle=angle * SCAN_ANGLE_UNIT,
            point_source_id=source_id,
        )
        rest = values[10:]
    else:
        returns, class_byte, angle_rank, user_data, source_id = values[4:9]
        fields.update(
            return_number=returns & 0x07,
            number_of_returns=(returns >> 3) & 0x07,
            scan_direction_flag=(returns >> 6) & 0x01,
            edge_of_flight_line=(returns >> 7) & 0x01,
            classification=class_byte & 0x1F,
            synthetic=bool(class_byte & 0x20),
            key_point=bool(class_byte & 0x40),
            withheld=bool(class_byte & 0x80),
            scan_angle=angle_rank,
            user_data=user_data,
            point_source_id=source_id,
        )
        rest = values[9:]

    rest = iter(rest)
    if layout.has_gps_time:
        gps_time = next(rest)
        if not math.isfinite(gps_time):
            raise FormatError(f"GPS time {gps_time} is not finite")
        fields["gps_time"] = gps_time
    if layout.has_rgb:
        fields["red"], fields["green"], fields["blue"] = next(rest), next(rest), next(rest)
    if layout.has_nir:
        fields["nir"] = next(rest)
    if layout.has_waveform:
        fields["waveform"] = WaveformPacket(*rest)

    return PointRecord(**fields)


def quantize(value: float, scale: float, origin: float) -> int:
    """round((value - origin) / scale), half away from zero, checked against int32."""
    scaled = (value - origin) / scale
    if not math.isfinite(scaled):
        raise FormatError(f"coordinate {value} cannot be quantized")
    raw = int(math.floor(abs(scaled) + 0.5))
    raw = raw if scaled >= 0 else -raw
    if raw < INT32_MIN or raw > INT32_MAX:
        raise FormatError(
            f"coordinate {value} does not fit a 32-bit integer "
            f"with scale {scale} and offset {origin}"
        )
    return raw


def encode_scan_angle(degrees: float) -> int:
    """Degrees to the extended formats' 0.006-degree units, clamped to +/-30000."""
    raw = int(round(degrees / SCAN_ANGLE_UNIT))
    return max(-SCAN_ANGLE_LIMIT, min(SCAN_ANGLE_LIMIT, raw))


def encode_point(point: PointRecord, layout: PointLayout, scale, origin) -> bytes:
    """
    Encode `point` with `layout`; missing optional groups are written as zeros.

    Raises:
        FormatError: If a coordinate does not fit the int32 range
    """
    values = [
        quantize(point.x, scale[0], origin[0]),
        quantize(point.y, scale[1], origin[1]),
        quantize(point.z, scale[2], origin[2]),
        point.intensity & 0xFFFF,
    ]

    if layout.extended:
        flags = (
            int(point.synthetic)
            | int(point.key_point) << 1
            | int(point.withheld) << 2
            | int(point.overlap) << 3
            | (point.scanner_channel & 0x03) << 4
            | (point.scan_direction_flag & 0x01) << 6
            | (point.edge_of_flight_line & 0x01) << 7
        )
        values += [
            (point.return_number & 0x0F) | (point.number_of_returns & 0x0F) << 4,
            flags,
            point.classification & 0xFF,
            point.user_data & 0xFF,
            encode_scan_angle(point.scan_angle),
            point.point_source_id & 0xFFFF,
        ]
    else:
        values += [
            (point.return_number & 0x07)
            | (point.number_of_returns & 0x07) << 3
            | (point.scan_direction_flag & 0x01) << 6
            | (point.edge_of_flight_line & 0x01) << 7,
            (point.classification & 0x1F)
            | int(point.synthetic) << 5
            | int(point.key_point) << 6
            | int(point.withheld) << 7,
            max(-90, min(90, int(round(point.scan_angle)))),
            point.user_data & 0xFF,
            point.point_source_id & 0xFFFF,
        ]

    if layout.has_gps_time:
        values.append(point.gps_time or 0.0)
    if layout.has_rgb:
        values += [point.red or 0, point.green or 0, point.blue or 0]
    if layout.has_nir:
        values.append(point.nir or 0)
    if layout.has_waveform:
        packet = point.waveform or WaveformPacket(0, 0, 0, 0.0, 0.0, 0.0, 0.0)
        values += [
            packet.descriptor_index, packet.byte_offset, packet.packet_size,
            packet.return_point_location, packet.xt, packet.yt, packet.zt,
        ]

    return layout.record_struct.pack(*values)
